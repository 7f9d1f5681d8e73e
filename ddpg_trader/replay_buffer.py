"""
Experience replay buffer.

Stores transitions (state, action, reward, next_state, done) in a bounded
FIFO queue and samples minibatches uniformly with replacement, so training
updates are decorrelated from the order experiences were collected in.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from .errors import EmptyBufferError


@dataclass(frozen=True, eq=False)
class Experience:
    """A single transition.

    Attributes:
        state: The state window the agent saw before acting.
        action: ``[position_size, stop_loss, take_profit]`` as executed.
        reward: Scalar reward of the simulated trade.
        next_state: The state window after the trade horizon.
        done: Terminal flag. The environment has no terminal states, so
            this is always False in practice.
    """

    state: np.ndarray
    action: np.ndarray
    reward: float
    next_state: np.ndarray
    done: bool = False


class ReplayBuffer:
    """Fixed-capacity FIFO experience store.

    Usage::

        buffer = ReplayBuffer(max_size=10_000, rng=np.random.default_rng(0))
        buffer.add(state, action, reward, next_state, False)
        batch = buffer.sample(batch_size=32)
    """

    def __init__(self, max_size: int = 100000, rng: Optional[np.random.Generator] = None) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.rng = rng or np.random.default_rng()
        self._buffer: deque = deque(maxlen=max_size)

    def add(self, state, action, reward: float, next_state, done: bool = False) -> Experience:
        """Append a transition, evicting the oldest one when at capacity."""
        experience = Experience(
            state=np.array(state, dtype=np.float64),
            action=np.array(action, dtype=np.float64),
            reward=float(reward),
            next_state=np.array(next_state, dtype=np.float64),
            done=bool(done),
        )
        self._buffer.append(experience)
        return experience

    def sample(self, batch_size: int) -> List[Experience]:
        """Draw ``batch_size`` experiences independently and uniformly, with replacement.

        Duplicates are expected, including when ``batch_size`` exceeds the
        number of stored experiences.

        Raises:
            EmptyBufferError: the buffer holds no experiences
        """
        if not self._buffer:
            raise EmptyBufferError("Cannot sample from an empty replay buffer")
        indices = self.rng.integers(0, len(self._buffer), size=batch_size)
        return [self._buffer[i] for i in indices]

    @property
    def experiences(self) -> List[Experience]:
        """Stored experiences, oldest first."""
        return list(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def is_ready(self, batch_size: int) -> bool:
        """Check if buffer has enough samples for training."""
        return len(self._buffer) >= batch_size

    def clear(self) -> None:
        self._buffer.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Summary statistics about the stored rewards."""
        if not self._buffer:
            return {
                "size": 0,
                "max_size": self.max_size,
                "utilization_pct": 0.0,
                "avg_reward": 0.0,
                "reward_std": 0.0,
                "reward_min": 0.0,
                "reward_max": 0.0,
                "zero_reward_pct": 0.0,
            }

        rewards = np.array([exp.reward for exp in self._buffer])
        n = len(rewards)
        return {
            "size": n,
            "max_size": self.max_size,
            "utilization_pct": round(n / self.max_size * 100.0, 2),
            "avg_reward": round(float(rewards.mean()), 6),
            "reward_std": round(float(rewards.std()), 6),
            "reward_min": float(rewards.min()),
            "reward_max": float(rewards.max()),
            "zero_reward_pct": round(float((rewards == 0).mean()) * 100.0, 2),
        }
