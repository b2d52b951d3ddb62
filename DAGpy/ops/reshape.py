from typing import Any, List

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.exceptions import ShapeError
from ..core.function import Function, Gradients, Shape
from ..core.node import Node
from .reduction import _normalize_axis


class Reshape(Function):
    """
    Reshape to ``shape``; one entry may be -1. Keep the batch dimension
    dynamic by making the first entry -1.
    """

    name = "reshape"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        target = [int(d) for d in ctx.argument("shape")]
        total = int(np.prod(shape, dtype=np.int64))
        if target.count(-1) > 1:
            raise ShapeError(f"reshape: more than one -1 in {tuple(target)}")
        known = int(np.prod([d for d in target if d != -1], dtype=np.int64))
        if -1 in target:
            if known == 0 or total % known != 0:
                raise ShapeError(f"reshape: cannot reshape {shape} into {tuple(target)}")
            target[target.index(-1)] = total // known
        elif known != total:
            raise ShapeError(f"reshape: cannot reshape {shape} into {tuple(target)}")
        return tuple(target)

    @classmethod
    def is_batched(cls, ctx: Context, children: List[Node]) -> bool:
        target = ctx.argument("shape")
        return children[0].batched and len(target) > 0 and int(target[0]) == -1

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return x.reshape([int(d) for d in ctx.argument("shape")])

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output.reshape(x.shape),)


class Concat(Function):
    """Concatenation along ``axis``."""

    name = "concat"

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        first = shapes[0]
        axis = _normalize_axis("concat", ctx.argument("axis", -1), len(first))
        for s in shapes[1:]:
            if len(s) != len(first) or s[:axis] != first[:axis] or s[axis + 1:] != first[axis + 1:]:
                raise ShapeError(f"concat: incompatible shapes {shapes} along axis {axis}")
        return first[:axis] + (sum(s[axis] for s in shapes),) + first[axis + 1:]

    @staticmethod
    def forward(ctx: Context, run: EvalContext, *xs: NDArray[Any]) -> NDArray[Any]:
        return np.concatenate(xs, axis=ctx.argument("axis", -1))

    @staticmethod
    def backward(ctx, grad_output, output, *xs) -> Gradients:
        axis = ctx.argument("axis", -1)
        bounds = np.cumsum([x.shape[axis] for x in xs])[:-1]
        return tuple(np.split(grad_output, bounds, axis=axis))


class Slice(Function):
    """Elements ``start:end`` along ``axis``."""

    name = "slice"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        axis = _normalize_axis("slice", ctx.argument("axis", -1), len(shape))
        start, end = ctx.argument("start"), ctx.argument("end")
        if not 0 <= start < end <= shape[axis]:
            raise ShapeError(f"slice: range [{start}, {end}) out of bounds for {shape}")
        return shape[:axis] + (end - start,) + shape[axis + 1:]

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        axis = ctx.argument("axis", -1)
        index = [slice(None)] * x.ndim
        index[axis] = slice(ctx.argument("start"), ctx.argument("end"))
        return x[tuple(index)]

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        axis = ctx.argument("axis", -1)
        index = [slice(None)] * x.ndim
        index[axis] = slice(ctx.argument("start"), ctx.argument("end"))
        grad = np.zeros_like(x)
        grad[tuple(index)] = grad_output
        return (grad,)
