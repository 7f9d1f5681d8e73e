"""
Actor-Critic Learner (DDPG)

The actor maps an encoded state to a three-value action (position size,
stop-loss, take-profit); the critic scores a (state, action) pair.

Updates are coarse: the critic shifts every weight by the same
clipped TD-error step and the actor shifts every weight by the same clipped
policy-gradient step. Both keep their weights inside [-1, 1].
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ..errors import ShapeError, ShapeMismatchError
from .params import LayerSpec, ParameterSet, init_matrix, sanitize, soft_update

logger = logging.getLogger(__name__)

WEIGHT_BOUND = 1.0
Q_BOUND = 10.0


@dataclass(eq=False)
class ActorWeights(ParameterSet):
    """state -> hidden1 -> hidden2 -> action"""
    layer1: np.ndarray
    layer2: np.ndarray
    output: np.ndarray

    LAYERS = (
        LayerSpec("layer1", "layer1"),
        LayerSpec("layer2", "layer2"),
        LayerSpec("output", "output"),
    )

    @classmethod
    def initialize(
        cls,
        state_size: int,
        action_size: int,
        hidden: Tuple[int, int],
        rng: np.random.Generator,
    ) -> "ActorWeights":
        return cls(
            layer1=init_matrix(hidden[0], state_size, rng),
            layer2=init_matrix(hidden[1], hidden[0], rng),
            output=init_matrix(action_size, hidden[1], rng),
        )


@dataclass(eq=False)
class CriticWeights(ParameterSet):
    """State and action branches joined into a hidden layer and a linear output"""
    state_layer: np.ndarray
    action_layer: np.ndarray
    hidden: np.ndarray
    output: np.ndarray

    LAYERS = (
        LayerSpec("state_layer", "stateLayer"),
        LayerSpec("action_layer", "actionLayer"),
        LayerSpec("hidden", "hidden"),
        LayerSpec("output", "output"),
    )

    @classmethod
    def initialize(
        cls,
        state_size: int,
        action_size: int,
        hidden: Tuple[int, int],
        rng: np.random.Generator,
    ) -> "CriticWeights":
        return cls(
            state_layer=init_matrix(hidden[0], state_size, rng),
            action_layer=init_matrix(hidden[0], action_size, rng),
            hidden=init_matrix(hidden[1], 2 * hidden[0], rng),
            output=init_matrix(1, hidden[1], rng),
        )


def relu(x: np.ndarray) -> np.ndarray:
    return np.maximum(0.0, x)


class ActorCriticLearner:
    """
    Deterministic policy (actor) and value estimator (critic).

    Args:
        state_size: Length of the (flattened) state fed to both networks
        action_size: Length of the action vector
        actor_learning_rate: Step size of ``update_actor``
        critic_learning_rate: Step size of ``update_critic``
        actor_hidden: Hidden layer sizes of the actor
        critic_hidden: Branch size and hidden size of the critic
        rng: Source of randomness for weight initialisation
    """

    def __init__(
        self,
        state_size: int,
        action_size: int,
        actor_learning_rate: float = 0.0001,
        critic_learning_rate: float = 0.001,
        actor_hidden: Tuple[int, int] = (64, 32),
        critic_hidden: Tuple[int, int] = (64, 32),
        rng: Optional[np.random.Generator] = None,
        actor_weights: Optional[ActorWeights] = None,
        critic_weights: Optional[CriticWeights] = None,
    ):
        if not isinstance(state_size, (int, np.integer)) or not isinstance(action_size, (int, np.integer)):
            raise ShapeError("State size and action size must be integers")
        if state_size < 1 or action_size < 1:
            raise ShapeError("State size and action size must be positive")

        self.state_size = int(state_size)
        self.action_size = int(action_size)
        self.actor_learning_rate = actor_learning_rate
        self.critic_learning_rate = critic_learning_rate

        rng = rng or np.random.default_rng()
        self.actor_weights = actor_weights or ActorWeights.initialize(
            self.state_size, self.action_size, actor_hidden, rng
        )
        self.critic_weights = critic_weights or CriticWeights.initialize(
            self.state_size, self.action_size, critic_hidden, rng
        )

    def _flatten_state(self, state) -> np.ndarray:
        flat = np.asarray(state, dtype=np.float64).reshape(-1)
        if flat.shape[0] != self.state_size:
            raise ShapeError(f"State must have length {self.state_size}, received {flat.shape[0]}")
        return flat

    def actor_forward(self, state) -> np.ndarray:
        """
        Action for a state; nested states are flattened first.

        Returns a zero vector if the computation produced NaN.
        """
        flat = self._flatten_state(state)
        w = self.actor_weights

        layer1 = relu(w.layer1 @ flat)
        layer2 = relu(w.layer2 @ layer1)
        output = np.tanh(w.output @ layer2)

        if np.isnan(output).any():
            logger.warning("Actor produced NaN output, falling back to zero action")
            return np.zeros(self.action_size)
        return np.clip(output, -1.0, 1.0)

    def critic_forward(self, state, action: Sequence[float]) -> float:
        """Q-value of (state, action), clipped to [-10, 10]; NaN maps to 0."""
        flat = self._flatten_state(state)
        action = np.asarray(action, dtype=np.float64)
        if action.ndim != 1 or action.shape[0] != self.action_size:
            raise ShapeError(f"Action must be an array of length {self.action_size}")
        w = self.critic_weights

        state_features = relu(w.state_layer @ flat)
        action_features = relu(w.action_layer @ action)
        combined = np.concatenate([state_features, action_features])
        hidden = relu(w.hidden @ combined)
        value = float((w.output @ hidden)[0])

        if np.isnan(value):
            logger.debug("Critic produced NaN, returning 0")
            return 0.0
        return float(np.clip(value, -Q_BOUND, Q_BOUND))

    def update_critic(self, td_error: float) -> None:
        """Shift every critic weight by ``lr * clip(td_error, -1, 1)``, then clip to [-1, 1]."""
        if not np.isfinite(td_error):
            logger.warning(f"Skipping critic update for non-finite TD error {td_error}")
            return
        delta = self.critic_learning_rate * float(np.clip(td_error, -1.0, 1.0))
        self.critic_weights = self.critic_weights.map(
            lambda weights: sanitize(weights + delta, WEIGHT_BOUND)
        )

    def get_actor_gradient(self, state) -> np.ndarray:
        """Tanh-shaped policy gradient ``clip(Q * (1 - a^2), -1, 1)`` per action dimension."""
        flat = self._flatten_state(state)
        actions = self.actor_forward(flat)
        critic_value = self.critic_forward(flat, actions)
        return np.clip(critic_value * (1.0 - actions * actions), -1.0, 1.0)

    def update_actor(self, gradient: Sequence[float]) -> None:
        """Shift every actor weight by ``lr * clip(gradient[0], -1, 1)``, then clip to [-1, 1]."""
        gradient = np.asarray(gradient, dtype=np.float64).reshape(-1)
        if gradient.shape[0] == 0:
            raise ShapeError("Gradient must not be empty")
        step = gradient[0]
        if not np.isfinite(step):
            logger.warning(f"Skipping actor update for non-finite gradient {step}")
            return
        delta = self.actor_learning_rate * float(np.clip(step, -1.0, 1.0))
        self.actor_weights = self.actor_weights.map(
            lambda weights: sanitize(weights + delta, WEIGHT_BOUND)
        )

    def soft_update_from(self, source: "ActorCriticLearner", tau: float) -> None:
        """Track ``source`` with an exponential moving average of rate ``tau``."""
        self.actor_weights = soft_update(self.actor_weights, source.actor_weights, tau)
        self.critic_weights = soft_update(self.critic_weights, source.critic_weights, tau)

    def to_json(self) -> Dict[str, Any]:
        return {
            "stateSize": self.state_size,
            "actionSize": self.action_size,
            "actorWeights": self.actor_weights.to_dict(),
            "criticWeights": self.critic_weights.to_dict(),
        }

    @classmethod
    def from_json(
        cls,
        data: Dict[str, Any],
        actor_learning_rate: float = 0.0001,
        critic_learning_rate: float = 0.001,
    ) -> "ActorCriticLearner":
        """
        Rebuild a learner from ``to_json`` output.

        Raises:
            ShapeMismatchError: declared sizes disagree with the weight matrices
        """
        state_size = data.get("stateSize")
        action_size = data.get("actionSize")
        if not isinstance(state_size, int) or not isinstance(action_size, int):
            raise ShapeError("State size and action size must be integers")

        actor = ActorWeights.from_dict(data.get("actorWeights", {}))
        critic = CriticWeights.from_dict(data.get("criticWeights", {}))
        for spec, array in list(actor.arrays()) + list(critic.arrays()):
            if array.ndim != 2:
                raise ShapeMismatchError(f"{spec.key} must be a matrix, found shape {array.shape}")

        h1, h2 = actor.layer1.shape[0], actor.layer2.shape[0]
        c1, c2 = critic.state_layer.shape[0], critic.hidden.shape[0]
        expected = [
            ("actorWeights.layer1", actor.layer1, (h1, state_size)),
            ("actorWeights.layer2", actor.layer2, (h2, h1)),
            ("actorWeights.output", actor.output, (action_size, h2)),
            ("criticWeights.stateLayer", critic.state_layer, (c1, state_size)),
            ("criticWeights.actionLayer", critic.action_layer, (c1, action_size)),
            ("criticWeights.hidden", critic.hidden, (c2, 2 * c1)),
            ("criticWeights.output", critic.output, (1, c2)),
        ]
        for name, array, shape in expected:
            if array.shape != shape:
                raise ShapeMismatchError(f"{name}: expected shape {shape}, found {array.shape}")

        return cls(
            state_size,
            action_size,
            actor_learning_rate=actor_learning_rate,
            critic_learning_rate=critic_learning_rate,
            actor_weights=actor,
            critic_weights=critic,
        )
