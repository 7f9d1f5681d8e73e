"""
Trading Environment for Reinforcement Learning

Implements a Gymnasium-compatible environment in which every episode is a
single trade:
- reset() picks an entry bar and returns its normalized state window
- step() simulates the trade over the following bars and returns the
  reward together with the state window at the end of the trade horizon

Episodes never terminate; they are truncated after one trade.
"""

import gymnasium as gym
from gymnasium import spaces
import numpy as np
from typing import Optional, Tuple, Dict, Any, Union, Sequence

from .errors import DataBoundsError
from .market_data import MarketData
from .rewards import RewardEvaluator, TradeAction, TradeOutcome


class TradeEnvironment(gym.Env):
    """
    A Gymnasium environment for single-trade simulation.

    Observation Space:
    - Normalized lookback window of bars, shape (lookback, n_features)

    Action Space:
    - Continuous [position_size, stop_loss, take_profit], each in [-1, 1]

    Reward:
    - Trade outcome from :class:`RewardEvaluator`
    """

    metadata = {"render_modes": ["human", "ansi"]}

    def __init__(
        self,
        market_data: MarketData,
        reward_evaluator: Optional[RewardEvaluator] = None,
        render_mode: Optional[str] = None,
    ):
        super().__init__()

        self.market_data = market_data
        self.reward_evaluator = reward_evaluator or RewardEvaluator()
        self.render_mode = render_mode

        self.action_space = spaces.Box(low=-1.0, high=1.0, shape=(3,), dtype=np.float64)
        self.observation_space = spaces.Box(
            low=0.0,
            high=1.0,
            shape=(market_data.lookback, market_data.n_features),
            dtype=np.float64,
        )

        self.current_index: Optional[int] = None
        self.last_outcome: Optional[TradeOutcome] = None

    def reset(
        self,
        seed: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> Tuple[np.ndarray, Dict[str, Any]]:
        """
        Pick the entry bar for a new trade.

        ``options={"index": i}`` fixes the entry bar; otherwise it is drawn
        uniformly from the valid range using the environment's seeded RNG.
        """
        super().reset(seed=seed)

        index = options.get("index") if options else None
        if index is None:
            index = self.market_data.random_index(self.np_random)
        else:
            low, high = self.market_data.valid_index_range()
            if not low <= index < high:
                raise DataBoundsError(f"Start index {index} outside [{low}, {high})")

        self.current_index = int(index)
        self.last_outcome = None
        return self._get_observation(), self._get_info()

    def _get_observation(self) -> np.ndarray:
        return self.market_data.get_state(self.current_index)

    def _get_info(self) -> Dict[str, Any]:
        """Get info dict for current state"""
        index = self.current_index
        info = {
            "index": index,
            "entry_price": self.market_data.entry_price(index),
            "price_range": self.market_data.price_range(index),
        }
        if self.last_outcome is not None:
            info.update(self.last_outcome.to_dict())
        return info

    def step(
        self, action: Union[TradeAction, Sequence[float], np.ndarray]
    ) -> Tuple[np.ndarray, float, bool, bool, Dict[str, Any]]:
        """
        Simulate the trade opened at the current index.

        Returns:
            next_state, reward, terminated, truncated, info
        """
        if self.current_index is None:
            raise RuntimeError("Call reset() before step()")

        trade = action if isinstance(action, TradeAction) else TradeAction.from_array(action)
        index = self.current_index

        self.last_outcome = self.reward_evaluator.evaluate(
            trade,
            entry_price=self.market_data.entry_price(index),
            window=self.market_data.forward_window(index),
            price_range=self.market_data.price_range(index),
        )
        next_state = self.market_data.get_state(index + self.market_data.bars_predicted)

        if self.render_mode == "human":
            self.render()

        return next_state, self.last_outcome.reward, False, True, self._get_info()

    def render(self):
        """Render the last trade"""
        if self.last_outcome is None:
            text = f"Index {self.current_index}: no trade yet"
        else:
            o = self.last_outcome
            text = (f"Index {self.current_index}: {o.exit_reason.value} "
                    f"entry={o.entry_price:.5f} exit={o.exit_price} reward={o.reward:.4f}")
        if self.render_mode == "human":
            print(text)
        return text

    def close(self):
        """Clean up resources"""
        pass
