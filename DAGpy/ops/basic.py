from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.exceptions import ShapeError
from ..core.function import Function, Gradients, Shape


def _broadcast_shape(name: str, *shapes: Shape) -> Shape:
    try:
        return tuple(np.broadcast_shapes(*shapes))
    except ValueError:
        raise ShapeError(f"{name}: cannot broadcast shapes {shapes}") from None


class Add(Function):
    """Element-wise sum; the second operand may broadcast (e.g. a bias)."""

    name = "add"
    arity = 2

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        return _broadcast_shape("add", *shapes)

    @staticmethod
    def forward(ctx: Context, run: EvalContext, a: NDArray[Any], b: NDArray[Any]) -> NDArray[Any]:
        return a + b

    @staticmethod
    def backward(ctx, grad_output, output, a, b) -> Gradients:
        return grad_output, grad_output


class Sub(Function):
    name = "sub"
    arity = 2

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        return _broadcast_shape("sub", *shapes)

    @staticmethod
    def forward(ctx: Context, run: EvalContext, a: NDArray[Any], b: NDArray[Any]) -> NDArray[Any]:
        return a - b

    @staticmethod
    def backward(ctx, grad_output, output, a, b) -> Gradients:
        return grad_output, -grad_output


class Mul(Function):
    """Element-wise product."""

    name = "mul"
    arity = 2

    @staticmethod
    def infer_shape(ctx: Context, *shapes: Shape) -> Shape:
        return _broadcast_shape("mul", *shapes)

    @staticmethod
    def forward(ctx: Context, run: EvalContext, a: NDArray[Any], b: NDArray[Any]) -> NDArray[Any]:
        return a * b

    @staticmethod
    def backward(ctx, grad_output, output, a, b) -> Gradients:
        return grad_output * b, grad_output * a


class CMul(Function):
    """
    Product with a transposed weight matrix: y = x W^T.

    x has shape (..., n_in) and W has shape (n_out, n_in); the output has
    shape (..., n_out).
    """

    name = "cmul"
    arity = 2

    @staticmethod
    def infer_shape(ctx: Context, x_shape: Shape, w_shape: Shape) -> Shape:
        if len(w_shape) != 2 or len(x_shape) < 1:
            raise ShapeError(f"cmul: expected x (..., n) and W (m, n), got {x_shape} and {w_shape}")
        if x_shape[-1] != w_shape[1]:
            raise ShapeError(
                f"cmul: inner dimensions differ: {x_shape} vs {w_shape} (transposed)"
            )
        return x_shape[:-1] + (w_shape[0],)

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any], w: NDArray[Any]) -> NDArray[Any]:
        return x @ w.T

    @staticmethod
    def backward(ctx, grad_output, output, x, w) -> Gradients:
        grad_x = grad_output @ w
        # Flatten leading dimensions so the weight gradient sums over them
        g2 = grad_output.reshape(-1, grad_output.shape[-1])
        x2 = x.reshape(-1, x.shape[-1])
        return grad_x, g2.T @ x2


class MatMul(Function):
    """Matrix product y = A B with B two-dimensional."""

    name = "matmul"
    arity = 2

    @staticmethod
    def infer_shape(ctx: Context, a_shape: Shape, b_shape: Shape) -> Shape:
        if len(b_shape) != 2 or len(a_shape) < 1:
            raise ShapeError(f"matmul: expected A (..., k) and B (k, n), got {a_shape} and {b_shape}")
        if a_shape[-1] != b_shape[0]:
            raise ShapeError(f"matmul: inner dimensions differ: {a_shape} vs {b_shape}")
        return a_shape[:-1] + (b_shape[1],)

    @staticmethod
    def forward(ctx: Context, run: EvalContext, a: NDArray[Any], b: NDArray[Any]) -> NDArray[Any]:
        return a @ b

    @staticmethod
    def backward(ctx, grad_output, output, a, b) -> Gradients:
        grad_a = grad_output @ b.T
        g2 = grad_output.reshape(-1, grad_output.shape[-1])
        a2 = a.reshape(-1, a.shape[-1])
        return grad_a, a2.T @ g2


class Square(Function):
    name = "square"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        return shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return x * x

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (2.0 * grad_output * x,)


class Exp(Function):
    """
    Exponential.

    Forward: f(x) = exp(x)
    Backward: f'(x) = exp(x), read back from the output
    """

    name = "exp"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        return shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return np.exp(x)

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output * output,)


class Log(Function):
    """
    Natural logarithm.

    Non-positive inputs yield -inf/NaN; divergence is left to the caller to
    detect.
    """

    name = "log"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        return shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return np.log(x)

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output / x,)


class OneMinus(Function):
    """f(x) = 1 - x, used by gated recurrent layers."""

    name = "1minus"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        return shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return 1.0 - x

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (-grad_output,)


class Scale(Function):
    """Multiplication by a fixed factor given at construction."""

    name = "scale"
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        return shape

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return x * ctx.argument("factor")

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output * ctx.argument("factor"),)
