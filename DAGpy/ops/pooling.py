"""
Pooling operators.

A pooling operator aggregates any number of operands of the same shape. In a
recurrent network a pooling node marks the boundary of the unrolled region:
when the network is unrolled, the pooling node receives the copies of its
operands from every time step.
"""

from typing import Any, List

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.exceptions import ShapeError
from ..core.function import Function, Gradients, Shape
from ..core.node import Node
from .basic import _broadcast_shape


class _Pooling(Function):
    pooling = True

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        return _broadcast_shape("pooling", *shapes)


class Avg(_Pooling):
    """Element-wise mean of the operands."""

    name = "avg"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, *xs: NDArray[Any]) -> NDArray[Any]:
        return sum(xs) / len(xs)

    @staticmethod
    def backward(ctx, grad_output, output, *xs) -> Gradients:
        grad = grad_output / len(xs)
        return tuple(grad for _ in xs)


class Sum(_Pooling):
    """Element-wise sum of the operands."""

    name = "sum"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, *xs: NDArray[Any]) -> NDArray[Any]:
        return sum(xs[1:], xs[0].copy())

    @staticmethod
    def backward(ctx, grad_output, output, *xs) -> Gradients:
        return tuple(grad_output for _ in xs)


class Max(_Pooling):
    """Element-wise maximum; ties send the gradient to the first operand."""

    name = "max"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, *xs: NDArray[Any]) -> NDArray[Any]:
        stacked = np.stack(np.broadcast_arrays(*xs))
        ctx.store_intermediate("argmax", np.argmax(stacked, axis=0))
        return np.max(stacked, axis=0)

    @staticmethod
    def backward(ctx, grad_output, output, *xs) -> Gradients:
        argmax = ctx.get_intermediate("argmax")
        return tuple(np.where(argmax == i, grad_output, 0.0) for i in range(len(xs)))


class Stack(_Pooling):
    """Stacks the operands along a new leading axis."""

    name = "stack"

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        if any(s != shapes[0] for s in shapes):
            raise ShapeError(f"stack: operand shapes differ: {shapes}")
        return (len(shapes),) + shapes[0]

    @classmethod
    def is_batched(cls, ctx: Context, children: List[Node]) -> bool:
        return False

    @staticmethod
    def forward(ctx: Context, run: EvalContext, *xs: NDArray[Any]) -> NDArray[Any]:
        return np.stack(xs)

    @staticmethod
    def backward(ctx, grad_output, output, *xs) -> Gradients:
        return tuple(grad_output[i] for i in range(len(xs)))


class Select(_Pooling):
    """
    Picks operand ``index`` (negative counts from the end), e.g. -1 for the
    last time step of an unrolled network.
    """

    name = "select"

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        index = ctx.argument("index", -1)
        if not -len(shapes) <= index < len(shapes):
            raise ShapeError(f"select: index {index} out of range for {len(shapes)} operands")
        return shapes[index]

    @classmethod
    def is_batched(cls, ctx: Context, children: List[Node]) -> bool:
        return children[ctx.argument("index", -1)].batched

    @staticmethod
    def forward(ctx: Context, run: EvalContext, *xs: NDArray[Any]) -> NDArray[Any]:
        return xs[ctx.argument("index", -1)]

    @staticmethod
    def backward(ctx, grad_output, output, *xs) -> Gradients:
        chosen = ctx.argument("index", -1) % len(xs)
        return tuple(grad_output if i == chosen else None for i in range(len(xs)))
