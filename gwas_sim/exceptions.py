"""
Error taxonomy for the simulation engine.

Every error is raised at the boundary of the component that owns the
offending input and aborts the whole simulation call.
"""


class SimulationError(ValueError):
    """Base class for all simulation input and numerical errors."""


class CyclicGraphError(SimulationError):
    """The trait graph contains a directed cycle (or a self-loop)."""


class InvalidCorrelationError(SimulationError):
    """A correlation matrix or heritability budget is invalid."""


class InsufficientVariantsError(SimulationError):
    """Disjoint supports need more variants than are available."""


class MalformedLDError(SimulationError):
    """An LD block is not a valid correlation matrix."""


class NonPositiveDefiniteError(SimulationError):
    """A covariance needed for sampling is not positive semi-definite."""


class DimensionMismatchError(SimulationError):
    """Shapes of the simulation inputs disagree."""


class InvalidParameterError(SimulationError):
    """A scalar parameter or option is outside its allowed range."""


class ConfigurationError(SimulationError):
    """A configuration file or mapping is missing required entries."""
