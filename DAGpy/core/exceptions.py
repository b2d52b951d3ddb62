"""Errors raised while building, resizing, unrolling or evaluating a network."""


class GraphError(ValueError):
    """Raised when a graph is structurally invalid."""

    pass


class ShapeError(GraphError):
    """Raised when operand shapes or arity do not fit an operator."""

    pass


class CostError(GraphError):
    """Raised when a network has no usable scalar cost node."""

    pass


class UnrollError(GraphError):
    """Raised when a network cannot be unrolled."""

    pass


class CycleError(RuntimeError):
    """Raised when the scheduler finds a true cycle."""

    pass


class BindingError(RuntimeError):
    """Raised when a feed node has missing or ill-sized data."""

    pass


class RecurrentStateError(RuntimeError):
    """Raised on an illegal continuous-feeding state transition."""

    pass
