"""Tests for MarketData — windowed, normalized view over OHLCV history."""

import json

import numpy as np
import pandas as pd
import pytest

from ddpg_trader.agent_config import PRESET_AGENT_CONFIGS
from ddpg_trader.errors import DataBoundsError
from ddpg_trader.market_data import MarketData, load_price_data, normalize_window


def make_df(n: int = 200, seed: int = 42) -> pd.DataFrame:
    """Create a synthetic OHLCV DataFrame for testing."""
    rng = np.random.RandomState(seed)
    close = 100.0 + np.cumsum(rng.randn(n) * 0.5)
    df = pd.DataFrame({
        "date": pd.date_range("2023-01-01", periods=n),
        "open": close + rng.randn(n) * 0.2,
        "high": close + np.abs(rng.randn(n)),
        "low": close - np.abs(rng.randn(n)),
        "close": close,
        "volume": rng.randint(100_000, 1_000_000, n).astype(float),
    })
    df.set_index("date", inplace=True)
    return df


class TestLoadPriceData:
    """Reading OHLCV files."""

    def test_columnar_json(self, tmp_path):
        df = make_df(30)
        doc = {key: list(values) for key, values in df.reset_index(drop=True).to_dict(orient="list").items()}
        doc["time"] = list(range(30))
        path = tmp_path / "bars.json"
        path.write_text(json.dumps(doc))

        loaded = load_price_data(path)
        assert list(loaded.columns) == ["open", "high", "low", "close", "volume"]
        assert len(loaded) == 30
        np.testing.assert_allclose(loaded["close"].to_numpy(), df["close"].to_numpy())

    def test_csv_with_uppercase_columns(self, tmp_path):
        df = make_df(25)
        df.columns = [c.upper() for c in df.columns]
        path = tmp_path / "bars.csv"
        df.to_csv(path)

        loaded = load_price_data(path)
        assert len(loaded) == 25
        assert "close" in loaded.columns

    def test_missing_column(self, tmp_path):
        path = tmp_path / "bars.json"
        path.write_text(json.dumps({"open": [1.0], "close": [1.0]}))
        with pytest.raises(ValueError):
            load_price_data(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_price_data(tmp_path / "nope.json")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "bars.txt"
        path.write_text("")
        with pytest.raises(ValueError):
            load_price_data(path)


class TestNormalizeWindow:
    """Per-column min-max scaling."""

    def test_range(self):
        out = normalize_window(np.array([[1.0, 10.0], [3.0, 20.0], [2.0, 30.0]]))
        np.testing.assert_allclose(out[:, 0], [0.0, 1.0, 0.5])
        np.testing.assert_allclose(out[:, 1], [0.0, 0.5, 1.0])

    def test_constant_column(self):
        out = normalize_window(np.array([[1.0, 5.0], [2.0, 5.0]]))
        np.testing.assert_allclose(out[:, 1], [0.5, 0.5])


class TestMarketDataCreation:
    """Construction and validation."""

    def test_too_short(self):
        with pytest.raises(ValueError, match="at least"):
            MarketData(make_df(30), lookback=20, bars_predicted=5)

    def test_missing_column(self):
        with pytest.raises(ValueError):
            MarketData(make_df().drop(columns=["high"]))

    def test_keeps_most_recent_rows(self):
        df = make_df(300)
        md = MarketData(df, max_data_points=100)
        assert len(md) == 100
        assert md.df["close"].iloc[0] == pytest.approx(df["close"].iloc[-100])
        assert md.df["close"].iloc[-1] == pytest.approx(df["close"].iloc[-1])

    def test_from_config(self):
        md = MarketData.from_config(make_df(), PRESET_AGENT_CONFIGS["fast_debug"])
        assert md.lookback == 5
        assert md.bars_predicted == 2
        assert md.n_features == 5


class TestWindows:
    """State windows and trade inputs."""

    def test_state_shape_and_range(self):
        md = MarketData(make_df())
        state = md.get_state(50)
        assert state.shape == (20, 5)
        assert state.min() >= 0.0 and state.max() <= 1.0

    def test_state_ends_at_index(self):
        df = make_df()
        md = MarketData(df)
        window = df["close"].to_numpy()[31:51]
        expected = (window - window.min()) / (window.max() - window.min())
        np.testing.assert_allclose(md.get_state(50)[:, 3], expected)

    def test_feature_subset(self):
        md = MarketData(make_df(), features=["close", "volume"])
        assert md.get_state(50).shape == (20, 2)

    def test_index_too_low(self):
        with pytest.raises(DataBoundsError):
            MarketData(make_df()).get_state(10)

    def test_index_too_high(self):
        md = MarketData(make_df())
        with pytest.raises(DataBoundsError):
            md.forward_window(len(md) - 3)

    def test_bounds_error_is_index_error(self):
        with pytest.raises(IndexError):
            MarketData(make_df()).entry_price(-1)

    def test_valid_index_range(self):
        md = MarketData(make_df(200), lookback=20, bars_predicted=5)
        assert md.valid_index_range() == (25, 170)

    def test_every_valid_index_serves_a_full_step(self):
        md = MarketData(make_df(60), lookback=10, bars_predicted=8)
        low, high = md.valid_index_range()
        for index in range(low, high):
            md.get_state(index)
            md.get_state(index + md.bars_predicted)
            md.forward_window(index)

    def test_random_index_in_range(self):
        md = MarketData(make_df())
        rng = np.random.default_rng(0)
        low, high = md.valid_index_range()
        for _ in range(100):
            assert low <= md.random_index(rng) < high

    def test_forward_window(self):
        df = make_df()
        md = MarketData(df)
        fw = md.forward_window(50)
        assert len(fw.closes) == 5
        np.testing.assert_allclose(fw.highs, df["high"].to_numpy()[51:56])
        np.testing.assert_allclose(fw.lows, df["low"].to_numpy()[51:56])

    def test_price_range(self):
        df = make_df()
        md = MarketData(df)
        expected = df["high"].to_numpy()[31:51].max() - df["low"].to_numpy()[31:51].min()
        assert md.price_range(50) == pytest.approx(expected)
