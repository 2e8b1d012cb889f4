"""
Exception types raised by the simulation and estimation routines.

All errors are fatal for the operation that detects them. They subclass
``ValueError`` so callers that already guard against bad input keep working.
"""


class XSRecencyError(ValueError):
    """Base class for all package errors."""


class ConfigurationError(XSRecencyError):
    """Mutually exclusive or required parameters were violated."""


class NumericalRangeError(XSRecencyError):
    """A numerical quantity fell outside the range it must lie in.

    Raised for phi estimates outside [0, 1], for integration grids that are
    too short or too coarse to reach a cumulative-hazard threshold, and for
    draws that come back as NaN.
    """


class DomainError(XSRecencyError):
    """An incidence rate was negative where it was evaluated."""
