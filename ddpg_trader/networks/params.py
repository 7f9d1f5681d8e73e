"""
Named parameter structures shared by the encoder and the actor-critic pair.

Every network keeps its weights in a dataclass with one field per layer.
The ``LAYERS`` tuple lists those fields together with the key they are
stored under in checkpoints, so serialization, copying and target-network
tracking iterate an explicit descriptor list instead of reflecting over
attributes.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Optional, Tuple, Type, TypeVar

import numpy as np

from ..errors import ShapeError

P = TypeVar("P", bound="ParameterSet")


@dataclass(frozen=True)
class LayerSpec:
    """One named parameter array: dataclass attribute and checkpoint key"""
    attr: str
    key: str


def init_matrix(rows: int, cols: int, rng: np.random.Generator) -> np.ndarray:
    """Uniform(-1, 1) scaled by sqrt(2 / (rows + cols))."""
    scale = np.sqrt(2.0 / (rows + cols))
    return rng.uniform(-1.0, 1.0, size=(rows, cols)) * scale


def sanitize(values: np.ndarray, bound: Optional[float] = None) -> np.ndarray:
    """
    Replace non-finite entries so they cannot persist in a weight array.

    NaN becomes 0. Without a bound, infinities also become 0; with a bound
    they become the nearest bound and the whole array is clipped to it.
    """
    if bound is None:
        return np.nan_to_num(values, nan=0.0, posinf=0.0, neginf=0.0)
    cleaned = np.nan_to_num(values, nan=0.0, posinf=bound, neginf=-bound)
    return np.clip(cleaned, -bound, bound)


@dataclass(eq=False)
class ParameterSet:
    """Base class for a network's fixed set of weight arrays."""

    LAYERS = ()  # type: Tuple[LayerSpec, ...]

    def arrays(self) -> Iterator[Tuple[LayerSpec, np.ndarray]]:
        for spec in self.LAYERS:
            yield spec, getattr(self, spec.attr)

    def shapes(self) -> Dict[str, Tuple[int, ...]]:
        return {spec.key: array.shape for spec, array in self.arrays()}

    def copy(self: P) -> P:
        return replace(self, **{spec.attr: array.copy() for spec, array in self.arrays()})

    def map(self: P, fn) -> P:
        """New parameter set with ``fn`` applied to every array."""
        return replace(self, **{spec.attr: fn(array) for spec, array in self.arrays()})

    def check_compatible(self, other: "ParameterSet") -> None:
        if self.LAYERS != other.LAYERS:
            raise ShapeError(
                f"Cannot combine {type(self).__name__} with {type(other).__name__}"
            )
        for (spec, mine), (_, theirs) in zip(self.arrays(), other.arrays()):
            if mine.shape != theirs.shape:
                raise ShapeError(
                    f"{spec.key}: shape {mine.shape} does not match {theirs.shape}"
                )

    def equals(self, other: "ParameterSet") -> bool:
        if type(self) is not type(other):
            return False
        return all(
            mine.shape == theirs.shape and np.array_equal(mine, theirs)
            for (_, mine), (_, theirs) in zip(self.arrays(), other.arrays())
        )

    def to_dict(self) -> Dict[str, Any]:
        return {spec.key: array.tolist() for spec, array in self.arrays()}

    @classmethod
    def from_dict(cls: Type[P], data: Dict[str, Any]) -> P:
        missing = [spec.key for spec in cls.LAYERS if spec.key not in data]
        if missing:
            raise ShapeError(f"{cls.__name__} is missing layers: {', '.join(missing)}")
        return cls(**{
            spec.attr: np.asarray(data[spec.key], dtype=np.float64) for spec in cls.LAYERS
        })


def soft_update(target: P, source: P, tau: float) -> P:
    """
    Exponential moving average of two equally-shaped parameter sets.

    Returns ``(1 - tau) * target + tau * source`` elementwise; ``tau=1``
    yields an exact copy of ``source``.
    """
    if not 0.0 < tau <= 1.0:
        raise ValueError(f"tau must be in (0, 1], got {tau}")
    target.check_compatible(source)
    if tau == 1.0:
        return source.copy()
    blended = {
        spec.attr: (1.0 - tau) * target_array + tau * source_array
        for (spec, target_array), (_, source_array) in zip(target.arrays(), source.arrays())
    }
    return replace(target, **blended)
