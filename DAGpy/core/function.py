from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Type

import numpy as np
from numpy.typing import NDArray

from .context import Context, EvalContext
from .exceptions import GraphError
from .node import Node

Shape = Tuple[int, ...]
Gradients = Sequence[Optional[NDArray[Any]]]


class Function(ABC):
    """
    Base class for all graph operators.

    An operator is a stateless description of one kind of node. It knows how
    to infer its output shape from the shapes of its operands, how to compute
    its value from operand values and how to turn the gradient of its output
    into one gradient contribution per operand. Per-node arguments and saved
    intermediates live in the node's Context, not in the operator.

    Subclasses set ``name`` to a unique tag; the tag is how persisted networks
    refer back to the operator.

    Attributes:
        name: Registry tag of the operator
        arity: Exact number of operands, or None for one or more
        pooling: Whether the operator aggregates over its operands, which
            makes it collect every time step's copy when a network is unrolled
        stochastic: Whether the operator behaves differently in training
    """

    name: ClassVar[str] = ""
    arity: ClassVar[Optional[int]] = None
    pooling: ClassVar[bool] = False
    stochastic: ClassVar[bool] = False

    _registry: ClassVar[Dict[str, Type["Function"]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.name:
            Function._registry[cls.name] = cls

    @staticmethod
    @abstractmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        """
        Computes the output shape.

        Args:
            ctx: Context holding the operator arguments
            *shapes: Current shapes of the operands

        Returns:
            Shape of the output

        Raises:
            ShapeError: If the operand shapes do not fit the operator
        """
        raise NotImplementedError

    @staticmethod
    @abstractmethod
    def forward(ctx: Context, run: EvalContext, *inputs: NDArray[Any]) -> NDArray[Any]:
        """
        Performs the forward computation.

        Args:
            ctx: Context for arguments and intermediates needed by backward
            run: Evaluation context (mode and random generator)
            *inputs: Operand values

        Returns:
            Output value
        """
        raise NotImplementedError

    @staticmethod
    @abstractmethod
    def backward(
        ctx: Context,
        grad_output: NDArray[Any],
        output: NDArray[Any],
        *inputs: NDArray[Any],
    ) -> Gradients:
        """
        Computes gradient contributions for the operands.

        Args:
            ctx: Context holding arguments and saved intermediates
            grad_output: Gradient of the cost with respect to the output
            output: Output value computed by the last forward pass
            *inputs: Operand values used by the last forward pass

        Returns:
            One contribution per operand, None where the operand gets none.
            The engine sums contributions into the operands' gradients.
        """
        raise NotImplementedError

    @classmethod
    def is_batched(cls, ctx: Context, children: List[Node]) -> bool:
        """Whether the output's first dimension follows the batch size."""
        return any(c.batched for c in children)

    @classmethod
    def apply(cls, *children: Node, **arguments: Any) -> Node:
        """
        Creates a node applying this operator to the given operands.

        The node is created by the builder that owns the operands.
        """
        if not children:
            from .builder import get_builder

            builder = get_builder()
        else:
            if not isinstance(children[0], Node):
                raise TypeError(
                    f"{cls.name} expects Node operands, got {type(children[0]).__name__}"
                )
            builder = children[0].builder
        return builder.apply(cls, list(children), **arguments)

    @staticmethod
    def lookup(name: str) -> Type["Function"]:
        """Returns the operator registered under ``name``."""
        try:
            return Function._registry[name]
        except KeyError:
            raise GraphError(f"Unknown operator: {name}") from None

    @staticmethod
    def reduce_grad(grad: NDArray[Any], target_shape: Shape) -> NDArray[Any]:
        """
        Reduces a gradient to the target shape by summing over broadcast
        dimensions.
        """
        if grad.shape == tuple(target_shape):
            return grad
        lead = grad.ndim - len(target_shape)
        if lead > 0:
            grad = grad.sum(axis=tuple(range(lead)))
        for axis, (grad_dim, target_dim) in enumerate(zip(grad.shape, target_shape)):
            if target_dim == 1 and grad_dim != 1:
                grad = grad.sum(axis=axis, keepdims=True)
        return np.reshape(grad, target_shape)
