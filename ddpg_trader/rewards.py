"""
Trade-outcome reward for the LSTM-DDPG agent.

Every action is simulated as a single trade entered at the close of the
current bar and held for the following ``bars_predicted`` bars:

1. Validity screen - direction-inconsistent stop-loss/take-profit
   combinations are rejected with a zero reward.
2. Boundary levels - stop-loss and take-profit prices are placed at
   ``range * |distance|`` from the entry, on the side given by the direction.
3. Outcome - stop-loss if the window breaches the stop level, otherwise
   take-profit if it reaches the target, otherwise the trade is marked to
   the final close.
4. Reward - ``tanh(scale * (exit - entry) / entry) * position_size`` plus
   risk-shaping penalties, clamped to the configured range.

Sign convention for the screen: a long trade carries a positive stop-loss
and a negative take-profit, a short trade a negative stop-loss and a
positive take-profit. Distances enter prices only as magnitudes.
"""

import logging
import math
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .agent_config import AgentConfig

logger = logging.getLogger(__name__)

MIN_POSITION = 0.01


class ExitReason(str, Enum):
    """How a simulated trade ended"""
    BAD_INPUT = "bad_input"
    INVALID = "invalid"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    FLOATING = "floating"


class ForwardWindow(NamedTuple):
    """Raw prices of the bars following the entry"""
    highs: np.ndarray
    lows: np.ndarray
    closes: np.ndarray


@dataclass(frozen=True)
class TradeAction:
    """Position size, stop-loss and take-profit, each in [-1, 1]"""
    position_size: float
    stop_loss: float
    take_profit: float

    @classmethod
    def from_actor_output(cls, raw: Sequence[float], position_scale: float = 50.0) -> "TradeAction":
        """
        Convert a raw actor output into an executable action.

        The position is scaled, snapped away from zero to at least 0.01 in
        magnitude, clipped to [-1, 1] and rounded to two decimals.
        """
        raw = np.asarray(raw, dtype=np.float64).reshape(-1)
        position = float(raw[0]) * position_scale
        if 0 <= position < MIN_POSITION:
            position = MIN_POSITION
        elif -MIN_POSITION < position < 0:
            position = -MIN_POSITION
        else:
            position = round(float(np.clip(position, -1.0, 1.0)), 2)

        return cls(
            position_size=position,
            stop_loss=float(np.clip(raw[1], -1.0, 1.0)),
            take_profit=float(np.clip(raw[2], -1.0, 1.0)),
        )

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "TradeAction":
        values = np.clip(np.asarray(values, dtype=np.float64).reshape(-1), -1.0, 1.0)
        return cls(float(values[0]), float(values[1]), float(values[2]))

    def as_array(self) -> np.ndarray:
        return np.array([self.position_size, self.stop_loss, self.take_profit])

    @property
    def direction(self) -> int:
        if self.position_size > 0:
            return 1
        if self.position_size < 0:
            return -1
        return 0

    def has_nan(self) -> bool:
        return any(math.isnan(v) for v in (self.position_size, self.stop_loss, self.take_profit))


@dataclass
class TradeOutcome:
    """Reward together with the simulation details that produced it"""
    reward: float
    exit_reason: ExitReason
    entry_price: float
    exit_price: Optional[float] = None
    stop_level: Optional[float] = None
    take_profit_level: Optional[float] = None
    pnl_reward: float = 0.0
    penalty: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["exit_reason"] = self.exit_reason.value
        return data


class RewardEvaluator:
    """
    Simulates trades against a forward price window and scores them.

    Args:
        reward_scale: Multiplier applied to the relative price change inside tanh
        stop_loss_band: Healthy (low, high) range for ``|stop_loss|``
        take_profit_band: Healthy (low, high) range for ``|take_profit|``
        band_penalty: Added when a distance falls outside its band
        max_position_size: ``|position_size|`` above this is penalised
        size_penalty: Added for oversized positions
        reward_min: Lower bound of the total reward
        reward_max: Upper bound of the total reward
    """

    def __init__(
        self,
        reward_scale: float = 10.0,
        stop_loss_band: Tuple[float, float] = (0.03, 0.5),
        take_profit_band: Tuple[float, float] = (0.05, 1.0),
        band_penalty: float = -0.1,
        max_position_size: float = 0.8,
        size_penalty: float = -0.05,
        reward_min: float = -1.0,
        reward_max: float = 2.0,
    ):
        self.reward_scale = reward_scale
        self.stop_loss_band = tuple(stop_loss_band)
        self.take_profit_band = tuple(take_profit_band)
        self.band_penalty = band_penalty
        self.max_position_size = max_position_size
        self.size_penalty = size_penalty
        self.reward_min = reward_min
        self.reward_max = reward_max

    @classmethod
    def from_config(cls, config: AgentConfig) -> "RewardEvaluator":
        return cls(
            reward_scale=config.reward_scale,
            stop_loss_band=tuple(config.stop_loss_band),
            take_profit_band=tuple(config.take_profit_band),
            band_penalty=config.band_penalty,
            max_position_size=config.max_position_size,
            size_penalty=config.size_penalty,
            reward_min=config.reward_min,
            reward_max=config.reward_max,
        )

    def is_valid_trade(self, action: TradeAction) -> bool:
        """Direction-dependent stop-loss/take-profit screen."""
        sl, tp = action.stop_loss, action.take_profit
        if action.direction > 0:
            return not (sl <= tp or sl <= 0 or tp >= 0)
        if action.direction < 0:
            return not (sl >= tp or sl >= 0 or tp <= 0)
        return True

    def risk_penalty(self, action: TradeAction) -> float:
        """Additive penalties for unhealthy distances and oversized positions."""
        penalty = 0.0
        sl_low, sl_high = self.stop_loss_band
        if not sl_low <= abs(action.stop_loss) <= sl_high:
            penalty += self.band_penalty
        tp_low, tp_high = self.take_profit_band
        if not tp_low <= abs(action.take_profit) <= tp_high:
            penalty += self.band_penalty
        if abs(action.position_size) > self.max_position_size:
            penalty += self.size_penalty
        return penalty

    def _clamp(self, value: float) -> float:
        return float(min(self.reward_max, max(self.reward_min, value)))

    def _scaled_pnl(self, exit_price: float, entry_price: float, position_size: float) -> float:
        change = (exit_price - entry_price) / entry_price
        return float(np.tanh(change * self.reward_scale) * position_size)

    def evaluate(
        self,
        action: TradeAction,
        entry_price: float,
        window: ForwardWindow,
        price_range: float,
    ) -> TradeOutcome:
        """
        Simulate one trade.

        Args:
            action: Trade parameters
            entry_price: Price the trade is entered at
            window: Highs, lows and closes of the bars the trade is held for
            price_range: Recent max high minus min low, the unit for distances
        """
        highs = np.asarray(window.highs, dtype=np.float64)
        lows = np.asarray(window.lows, dtype=np.float64)
        closes = np.asarray(window.closes, dtype=np.float64)

        inputs_ok = (
            not action.has_nan()
            and math.isfinite(entry_price)
            and entry_price > 0
            and math.isfinite(price_range)
            and closes.size > 0
            and np.isfinite(highs).all()
            and np.isfinite(lows).all()
            and np.isfinite(closes).all()
        )
        if not inputs_ok:
            logger.debug(f"Invalid reward inputs: entry={entry_price}, range={price_range}, action={action}")
            return TradeOutcome(reward=0.0, exit_reason=ExitReason.BAD_INPUT, entry_price=entry_price)

        if not self.is_valid_trade(action):
            logger.debug(f"Invalid trade rejected: {action}")
            return TradeOutcome(reward=0.0, exit_reason=ExitReason.INVALID, entry_price=entry_price)

        stop_distance = price_range * abs(action.stop_loss)
        target_distance = price_range * abs(action.take_profit)
        final_close = closes[-1]

        if action.direction >= 0:
            stop_level = entry_price - stop_distance
            take_profit_level = entry_price + target_distance
            stopped = lows.min() < stop_level
            target_hit = highs.max() > take_profit_level or final_close > take_profit_level
        else:
            stop_level = entry_price + stop_distance
            take_profit_level = entry_price - target_distance
            stopped = highs.max() > stop_level
            target_hit = lows.min() < take_profit_level or final_close < take_profit_level

        if action.direction == 0:
            exit_reason, exit_price = ExitReason.FLOATING, final_close
        elif stopped:
            exit_reason, exit_price = ExitReason.STOP_LOSS, stop_level
        elif target_hit:
            exit_reason, exit_price = ExitReason.TAKE_PROFIT, take_profit_level
        else:
            exit_reason, exit_price = ExitReason.FLOATING, final_close
        logger.debug(
            f"{exit_reason.value}: entry={entry_price:.5f} exit={exit_price:.5f} "
            f"SL={stop_level:.5f} TP={take_profit_level:.5f}"
        )

        pnl_reward = self._clamp(self._scaled_pnl(exit_price, entry_price, action.position_size))
        penalty = self.risk_penalty(action)

        return TradeOutcome(
            reward=self._clamp(pnl_reward + penalty),
            exit_reason=exit_reason,
            entry_price=float(entry_price),
            exit_price=float(exit_price),
            stop_level=float(stop_level),
            take_profit_level=float(take_profit_level),
            pnl_reward=pnl_reward,
            penalty=penalty,
        )

    def calculate_reward(
        self,
        action: TradeAction,
        entry_price: float,
        window: ForwardWindow,
        price_range: float,
    ) -> float:
        """Scalar reward of :meth:`evaluate`."""
        return self.evaluate(action, entry_price, window, price_range).reward
