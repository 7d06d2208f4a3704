"""Exception types raised by the colorization engine.

Each class derives from the builtin exception that the rest of the codebase
would otherwise raise, so callers catching ``ValueError`` or ``IOError`` keep
working.
"""


class ConfigurationError(ValueError):
    """Invalid configuration detected before any point is streamed."""


class CalibrationLookupError(KeyError):
    """A scan position, image, camera or mount could not be resolved by name."""

    def __str__(self) -> str:
        # KeyError.__str__ quotes its argument, which garbles long messages.
        return str(self.args[0]) if self.args else ""


class PointStreamError(IOError):
    """An input point cloud could not be opened or read."""


class PointSinkError(IOError):
    """An output point cloud could not be opened, written or finalized."""


class RasterLookupError(IndexError):
    """A thermal pixel lookup failed after a successful projection."""


class FrameError(TypeError):
    """A coordinate transform was applied to a point in the wrong frame."""
