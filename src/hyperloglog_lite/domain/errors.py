"""Exception taxonomy for sketch construction and estimation."""
from __future__ import annotations


class ConfigurationMismatch(ValueError):
    """Raised when sketch parameters are invalid or two sketches disagree.

    Covers construction with an unsupported precision or an undersized
    register width, and union/merge/intersection between sketches whose
    precision, register width, hash seed or hash width differ. Subclasses
    ValueError so callers that only care about "bad argument" can catch
    the broader type.
    """


class NumericNonConvergence(ArithmeticError):
    """Raised by the maximum-likelihood solver when it cannot converge.

    Never escapes an estimate() call: the MLE strategy catches it and
    falls back to the beta-corrected estimate.
    """

    def __init__(self, message: str, iterations: int = 0) -> None:
        super().__init__(message)
        self.iterations = iterations
