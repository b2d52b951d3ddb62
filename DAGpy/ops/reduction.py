from typing import Any, List

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.exceptions import ShapeError
from ..core.function import Function, Gradients, Shape
from ..core.node import Node


def _normalize_axis(name: str, axis: int, n_dims: int) -> int:
    if not -n_dims <= axis < n_dims:
        raise ShapeError(f"{name}: axis {axis} out of range for {n_dims} dimensions")
    return axis % n_dims


class _Reduce(Function):
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        axis = _normalize_axis("reduce", ctx.argument("axis", -1), len(shape))
        return shape[:axis] + shape[axis + 1:]

    @classmethod
    def is_batched(cls, ctx: Context, children: List[Node]) -> bool:
        child = children[0]
        if not child.batched:
            return False
        return _normalize_axis(cls.name, ctx.argument("axis", -1), child.n_dims) != 0


class ReduceSum(_Reduce):
    """Sum along one axis (argument ``axis``)."""

    name = "reduce_sum"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return np.sum(x, axis=ctx.argument("axis", -1))

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        axis = ctx.argument("axis", -1)
        return (np.broadcast_to(np.expand_dims(grad_output, axis=axis), x.shape),)


class ReduceMean(_Reduce):
    """Mean along one axis (argument ``axis``)."""

    name = "reduce_mean"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return np.mean(x, axis=ctx.argument("axis", -1))

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        axis = ctx.argument("axis", -1)
        grad = np.expand_dims(grad_output, axis=axis) / x.shape[axis]
        return (np.broadcast_to(grad, x.shape),)
