"""
Recurrent State Encoder

A single LSTM cell that compresses a lookback window of normalized bars into
a hidden representation for the actor-critic pair.

The backward pass is a one-step approximation, not backpropagation through
time: the TD error is broadcast as the hidden-state error and every gate
receives the same outer-product gradient from the most recent step only.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ShapeError, ShapeMismatchError
from .params import LayerSpec, ParameterSet, init_matrix, sanitize, soft_update

logger = logging.getLogger(__name__)

GATES = ("f", "i", "c", "o")

# exp() overflows float64 beyond this magnitude
SIGMOID_CLAMP = 709.0


@dataclass(eq=False)
class LSTMWeights(ParameterSet):
    """Input (W), recurrent (U) and bias (b) parameters for the four gates"""
    Wf: np.ndarray
    Wi: np.ndarray
    Wc: np.ndarray
    Wo: np.ndarray
    Uf: np.ndarray
    Ui: np.ndarray
    Uc: np.ndarray
    Uo: np.ndarray
    bf: np.ndarray
    bi: np.ndarray
    bc: np.ndarray
    bo: np.ndarray

    LAYERS = tuple(
        LayerSpec(name, name)
        for prefix in ("W", "U", "b")
        for name in (prefix + gate for gate in GATES)
    )

    @classmethod
    def initialize(cls, input_size: int, hidden_size: int, rng: np.random.Generator) -> "LSTMWeights":
        params = {}
        for gate in GATES:
            params["W" + gate] = init_matrix(hidden_size, input_size, rng)
        for gate in GATES:
            params["U" + gate] = init_matrix(hidden_size, hidden_size, rng)
        for gate in GATES:
            params["b" + gate] = np.zeros(hidden_size)
        return cls(**params)


@dataclass(eq=False)
class LSTMGradients(LSTMWeights):
    """Gradients with the same layout as :class:`LSTMWeights`"""


@dataclass
class ActivationCache:
    """Intermediate values of one forward step, consumed by ``backward``"""
    x: np.ndarray
    prev_hidden: np.ndarray
    prev_cell: np.ndarray
    f_gate: np.ndarray
    i_gate: np.ndarray
    c_tilde: np.ndarray
    cell_state: np.ndarray
    o_gate: np.ndarray
    hidden_state: np.ndarray


def sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -SIGMOID_CLAMP, SIGMOID_CLAMP)))


class RecurrentEncoder:
    """
    LSTM cell with a one-step update rule.

    Args:
        input_size: Values per bar
        hidden_size: Size of hidden and cell state
        gradient_clip: Elementwise bound applied to every gradient in ``backward``
        rng: Source of randomness for weight initialisation
        weights: Existing parameters (skips initialisation)
    """

    def __init__(
        self,
        input_size: int,
        hidden_size: int,
        gradient_clip: float = 0.9,
        rng: Optional[np.random.Generator] = None,
        weights: Optional[LSTMWeights] = None,
    ):
        if not isinstance(input_size, (int, np.integer)) or not isinstance(hidden_size, (int, np.integer)):
            raise ShapeError("Input size and hidden size must be integers")
        if input_size < 1 or hidden_size < 1:
            raise ShapeError("Input size and hidden size must be positive")

        self.input_size = int(input_size)
        self.hidden_size = int(hidden_size)
        self.gradient_clip = gradient_clip

        if weights is None:
            weights = LSTMWeights.initialize(
                self.input_size, self.hidden_size, rng or np.random.default_rng()
            )
        self.weights = weights

    def _zeros(self) -> np.ndarray:
        return np.zeros(self.hidden_size)

    def _as_vector(self, values, size: int, name: str) -> np.ndarray:
        vector = np.asarray(values, dtype=np.float64).reshape(-1)
        if vector.shape[0] != size:
            raise ShapeError(f"{name} must have length {size}, received {vector.shape[0]}")
        return vector

    def forward(
        self,
        x: Sequence[float],
        prev_hidden: Optional[Sequence[float]] = None,
        prev_cell: Optional[Sequence[float]] = None,
    ) -> Tuple[np.ndarray, np.ndarray, ActivationCache]:
        """
        One LSTM step.

        Returns:
            (hidden_state, cell_state, cache) where cache feeds ``backward``
        """
        x = self._as_vector(x, self.input_size, "Input")
        h = self._zeros() if prev_hidden is None else self._as_vector(prev_hidden, self.hidden_size, "Hidden state")
        c = self._zeros() if prev_cell is None else self._as_vector(prev_cell, self.hidden_size, "Cell state")
        w = self.weights

        f_gate = sigmoid(w.Wf @ x + w.Uf @ h + w.bf)
        i_gate = sigmoid(w.Wi @ x + w.Ui @ h + w.bi)
        c_tilde = np.tanh(w.Wc @ x + w.Uc @ h + w.bc)
        o_gate = sigmoid(w.Wo @ x + w.Uo @ h + w.bo)

        cell_state = f_gate * c + i_gate * c_tilde
        hidden_state = o_gate * np.tanh(cell_state)

        cache = ActivationCache(
            x=x,
            prev_hidden=h,
            prev_cell=c,
            f_gate=f_gate,
            i_gate=i_gate,
            c_tilde=c_tilde,
            cell_state=cell_state,
            o_gate=o_gate,
            hidden_state=hidden_state,
        )
        return hidden_state, cell_state, cache

    def encode(self, window) -> Tuple[np.ndarray, np.ndarray, ActivationCache]:
        """
        Run the cell over every bar of a state window, oldest first.

        Only the last step's activations are returned; earlier steps are not
        retained.
        """
        bars = np.asarray(window, dtype=np.float64)
        if bars.ndim == 1:
            bars = bars.reshape(1, -1)
        if bars.ndim != 2 or bars.shape[1] != self.input_size or bars.shape[0] == 0:
            raise ShapeError(
                f"State window must have shape (n, {self.input_size}), received {bars.shape}"
            )

        hidden, cell, cache = None, None, None
        for bar in bars:
            hidden, cell, cache = self.forward(bar, hidden, cell)
        return hidden, cell, cache

    def backward(self, td_error: Union[float, Sequence[float]], cache: ActivationCache) -> LSTMGradients:
        """
        One-step gradient approximation.

        ``td_error`` is broadcast to every hidden unit (or used per unit when
        a vector is given). All four gates receive
        ``dW = dh ⊗ x``, ``dU = dh ⊗ h_prev`` and ``db = dh``, clipped
        elementwise to ``gradient_clip``.
        """
        if np.ndim(td_error) == 0:
            dh_next = np.full(self.hidden_size, float(td_error))
        else:
            dh_next = self._as_vector(td_error, self.hidden_size, "TD error")

        grad_w = np.outer(dh_next, cache.x)
        grad_u = np.outer(dh_next, cache.prev_hidden)
        grad_b = dh_next

        params = {}
        for gate in GATES:
            params["W" + gate] = grad_w.copy()
            params["U" + gate] = grad_u.copy()
            params["b" + gate] = grad_b.copy()
        gradients = LSTMGradients(**params)
        return gradients.map(lambda g: np.clip(g, -self.gradient_clip, self.gradient_clip))

    def update_weights(self, gradients: LSTMGradients, learning_rate: float = 0.0001) -> None:
        """Plain SGD step ``w -= lr * grad`` over weights, recurrent weights and biases."""
        self.weights.check_compatible(gradients)
        updated = {}
        for (spec, weight), (_, grad) in zip(self.weights.arrays(), gradients.arrays()):
            stepped = weight - learning_rate * grad
            if not np.isfinite(stepped).all():
                logger.warning(f"Non-finite values in encoder {spec.key} after update, replacing with 0")
            updated[spec.attr] = sanitize(stepped)
        self.weights = LSTMWeights(**updated)

    def soft_update_from(self, source: "RecurrentEncoder", tau: float) -> None:
        """Track ``source`` with an exponential moving average of rate ``tau``."""
        self.weights = soft_update(self.weights, source.weights, tau)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputSize": self.input_size,
            "hiddenSize": self.hidden_size,
            **self.weights.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], gradient_clip: float = 0.9) -> "RecurrentEncoder":
        weights = LSTMWeights.from_dict(data)
        if weights.Wf.ndim != 2:
            raise ShapeMismatchError(f"Wf must be a matrix, found shape {weights.Wf.shape}")
        hidden_size, input_size = weights.Wf.shape
        declared = (data.get("inputSize", input_size), data.get("hiddenSize", hidden_size))
        if declared != (input_size, hidden_size):
            raise ShapeMismatchError(
                f"Encoder declares input/hidden {declared}, weights have {(input_size, hidden_size)}"
            )
        for spec, array in weights.arrays():
            expected = (hidden_size,) if spec.attr.startswith("b") else (
                (hidden_size, input_size) if spec.attr.startswith("W") else (hidden_size, hidden_size)
            )
            if array.shape != expected:
                raise ShapeMismatchError(f"{spec.key}: expected shape {expected}, found {array.shape}")
        return cls(input_size, hidden_size, gradient_clip=gradient_clip, weights=weights)
