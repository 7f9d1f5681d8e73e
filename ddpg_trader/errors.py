"""
Exception types raised by the trader.

Numeric faults (NaN/Infinity inside a forward pass or an update) are not
represented here: they are neutralised where they occur.
"""


class TraderError(Exception):
    """Base trader exception"""
    pass


class ShapeError(TraderError, ValueError):
    """State/action length or size configuration mismatch"""
    pass


class ShapeMismatchError(ShapeError):
    """Checkpoint declares sizes that disagree with its weight matrices"""
    pass


class DataBoundsError(TraderError, IndexError):
    """Requested window falls outside the available price history"""
    pass


class EmptyBufferError(TraderError):
    """Sampling was requested from an empty replay buffer"""
    pass


class CheckpointNotFoundError(TraderError, FileNotFoundError):
    """No checkpoint stored under the requested label"""
    pass
