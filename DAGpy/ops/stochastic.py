"""
Mode-sensitive operators.

These are the only operators whose result depends on the evaluation context:
they consult ``EvalContext.training`` and, for dropout, draw from its
generator.
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.exceptions import ShapeError
from ..core.function import Function, Gradients, Shape


class Dropout(Function):
    """
    Randomly zeroes elements of x with probability p during training and
    scales the survivors by 1/(1-p). In evaluation mode it is the identity.

    The second operand is a scalar constant holding p, so the rate can be
    changed without rebuilding the graph. With p == 1 every element is
    dropped and the scale is 0.
    """

    name = "dropout"
    arity = 2
    stochastic = True

    @staticmethod
    def infer_shape(ctx: Context, x_shape: Shape, p_shape: Shape) -> Shape:
        if int(np.prod(p_shape)) != 1:
            raise ShapeError(f"dropout: rate must be a scalar, got shape {p_shape}")
        return x_shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any], p: NDArray[Any]) -> NDArray[Any]:
        if not run.training:
            ctx.store_intermediate("mask", None)
            return x
        rate = float(np.reshape(p, -1)[0])
        if rate < 0 or rate > 1:
            raise ValueError(f"dropout probability has to be between 0 and 1, but got {rate}")
        scale = 1.0 / (1.0 - rate) if rate != 1.0 else 0.0
        keep = run.rng.random(x.shape) >= rate
        mask = keep * scale
        ctx.store_intermediate("mask", mask)
        return x * mask

    @staticmethod
    def backward(ctx, grad_output, output, x, p) -> Gradients:
        mask = ctx.get_intermediate("mask")
        if mask is None:
            return grad_output, None
        return grad_output * mask, None


class Switch(Function):
    """
    Selects the first operand in training mode and the second in evaluation
    mode, e.g. a dropout branch and a plain pass-through.
    """

    name = "switch"
    arity = 2
    stochastic = True

    @staticmethod
    def infer_shape(ctx: Context, train_shape: Shape, eval_shape: Shape) -> Shape:
        if train_shape != eval_shape:
            raise ShapeError(f"switch: branch shapes differ: {train_shape} vs {eval_shape}")
        return train_shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, train: NDArray[Any], evaluate: NDArray[Any]) -> NDArray[Any]:
        chosen = 0 if run.training else 1
        ctx.store_intermediate("chosen", chosen)
        return train if chosen == 0 else evaluate

    @staticmethod
    def backward(ctx, grad_output, output, train, evaluate) -> Gradients:
        if ctx.get_intermediate("chosen") == 0:
            return grad_output, None
        return None, grad_output
