"""
Exception taxonomy for HOG inversion.

Structural problems (shapes, missing dictionary) are raised before any work
is done. Per-window numerical failures are never raised: the sparse coder
zeroes the offending column and logs a warning instead.
"""


class IHOGError(ValueError):
    """Base exception for HOG inversion errors."""
    pass


class ShapeError(IHOGError):
    """Feature grid, dictionary or consistency state have incompatible shapes."""
    pass


class MissingDictionaryError(IHOGError):
    """No paired dictionary was supplied and none could be provided."""
    pass


class StateFileError(IHOGError):
    """A saved consistency state is missing or cannot be read."""
    pass
