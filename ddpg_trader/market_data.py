"""
Market Data Provider

Loads OHLCV history and serves the pieces the agent needs for one step:
- normalized state windows (min-max scaled per feature over the window)
- raw entry price, forward price window and recent price range for the
  reward simulation
- valid start indices for random sampling
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .agent_config import AgentConfig, OHLCV_FEATURES
from .errors import DataBoundsError
from .rewards import ForwardWindow

logger = logging.getLogger(__name__)


def load_price_data(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load OHLCV data from disk.

    Supports a columnar JSON document (``{"open": [...], "high": [...], ...}``)
    and CSV files with the same columns. Column names are lowercased and
    columns other than OHLCV are dropped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Price data not found: {path}")

    if path.suffix.lower() == ".json":
        with open(path, "r") as f:
            raw = json.load(f)
        if isinstance(raw, dict):
            df = pd.DataFrame({str(key).lower(): value for key, value in raw.items()})
        else:
            df = pd.DataFrame(raw)
    elif path.suffix.lower() == ".csv":
        df = pd.read_csv(path)
    else:
        raise ValueError(f"Unsupported price data format: {path.suffix}")

    df.columns = [str(col).lower() for col in df.columns]
    missing = [col for col in OHLCV_FEATURES if col not in df.columns]
    if missing:
        raise ValueError(f"Price data missing required columns: {', '.join(missing)}")

    df = df[OHLCV_FEATURES].astype(float).reset_index(drop=True)
    logger.info(f"Loaded {len(df)} bars from {path}")
    return df


def normalize_window(window: np.ndarray) -> np.ndarray:
    """Min-max scale each column of a window to [0, 1]; constant columns become 0.5."""
    normalized = np.zeros_like(window, dtype=np.float64)
    for i in range(window.shape[1]):
        col = window[:, i]
        col_min, col_max = col.min(), col.max()
        if col_max - col_min > 1e-12:
            normalized[:, i] = (col - col_min) / (col_max - col_min)
        else:
            normalized[:, i] = 0.5
    return normalized


class MarketData:
    """
    Windowed view over a price history.

    Args:
        df: DataFrame with open/high/low/close/volume columns
        lookback: Bars per state window
        bars_predicted: Bars each trade is held for
        features: Columns included in state windows, in order
        max_data_points: Keep only this many most recent bars
    """

    def __init__(
        self,
        df: pd.DataFrame,
        lookback: int = 20,
        bars_predicted: int = 5,
        features: Optional[Sequence[str]] = None,
        max_data_points: Optional[int] = 2000,
    ):
        self.lookback = lookback
        self.bars_predicted = bars_predicted
        self.features: List[str] = list(features or OHLCV_FEATURES)

        df = df.copy()
        df.columns = [str(col).lower() for col in df.columns]
        self._validate_dataframe(df)

        if max_data_points is not None and len(df) > max_data_points:
            df = df.iloc[-max_data_points:]
        self.df = df.reset_index(drop=True)

        if len(self.df) < self.min_length:
            raise ValueError(
                f"Price data must have at least {self.min_length} rows "
                f"for lookback={lookback}, bars_predicted={bars_predicted}"
            )

        self._features = self.df[self.features].to_numpy(dtype=np.float64)
        self._highs = self.df["high"].to_numpy(dtype=np.float64)
        self._lows = self.df["low"].to_numpy(dtype=np.float64)
        self._closes = self.df["close"].to_numpy(dtype=np.float64)

    @classmethod
    def from_config(cls, df: pd.DataFrame, config: AgentConfig) -> "MarketData":
        return cls(
            df,
            lookback=config.lookback,
            bars_predicted=config.bars_predicted,
            features=config.features,
            max_data_points=config.max_data_points,
        )

    def _validate_dataframe(self, df: pd.DataFrame) -> None:
        """Ensure required columns exist"""
        required = set(["high", "low", "close"]) | set(self.features)
        for col in sorted(required):
            if col not in df.columns:
                raise ValueError(f"DataFrame missing required column: {col}")

    @property
    def min_length(self) -> int:
        return 2 * self.lookback + 3 * self.bars_predicted + 1

    @property
    def n_features(self) -> int:
        return len(self.features)

    def __len__(self) -> int:
        return len(self.df)

    def _check_index(self, index: int) -> None:
        if not self.lookback - 1 <= index < len(self.df) - self.bars_predicted:
            raise DataBoundsError(
                f"Index {index} outside [{self.lookback - 1}, {len(self.df) - self.bars_predicted})"
            )

    def valid_index_range(self) -> Tuple[int, int]:
        """
        Half-open range of trade indices.

        Leaves a full window plus trade horizon before the index, and room
        for the trade horizon and the next state window after it.
        """
        low = self.lookback + self.bars_predicted
        high = len(self.df) - self.lookback - 2 * self.bars_predicted
        return low, high

    def random_index(self, rng: np.random.Generator) -> int:
        low, high = self.valid_index_range()
        return int(rng.integers(low, high))

    def get_state(self, index: int) -> np.ndarray:
        """Normalized ``(lookback, n_features)`` window ending at ``index``."""
        self._check_index(index)
        window = self._features[index - self.lookback + 1:index + 1]
        return normalize_window(window)

    def entry_price(self, index: int) -> float:
        self._check_index(index)
        return float(self._closes[index])

    def price_range(self, index: int) -> float:
        """Max high minus min low over the raw state window ending at ``index``."""
        self._check_index(index)
        start = index - self.lookback + 1
        return float(self._highs[start:index + 1].max() - self._lows[start:index + 1].min())

    def forward_window(self, index: int) -> ForwardWindow:
        """Raw prices of the ``bars_predicted`` bars after ``index``."""
        self._check_index(index)
        end = index + self.bars_predicted + 1
        return ForwardWindow(
            highs=self._highs[index + 1:end].copy(),
            lows=self._lows[index + 1:end].copy(),
            closes=self._closes[index + 1:end].copy(),
        )
