"""Exceptions raised by the operator layers."""


class OperatorError(Exception):
    """Base class for all operator layer errors."""


class ShapeMismatchError(OperatorError, ValueError):
    """Input or weight shape disagrees with the layer configuration."""


class ModeTruncationError(OperatorError, ValueError):
    """Requested retained modes exceed the available frequency bins."""


class UnsupportedTransformError(OperatorError, NotImplementedError):
    """Transform variant lacks a registered operation (derivative, bins, ...)."""
