"""
Activation operators.

All activations here work element-wise except softmax and log-softmax, which
normalise over the last axis.
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.function import Function, Gradients, Shape


class _Elementwise(Function):
    arity = 1

    @staticmethod
    def infer_shape(ctx: Context, shape: Shape) -> Shape:
        return shape


class Sigmoid(_Elementwise):
    """
    Logistic sigmoid.

    Forward: f(x) = 1 / (1 + exp(-x))
    Backward: f'(x) = f(x) * (1 - f(x))
    """

    name = "sigm"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        # exp(-|x|) never overflows
        z = np.exp(-np.abs(x))
        return np.where(x >= 0, 1.0 / (1.0 + z), z / (1.0 + z))

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output * output * (1.0 - output),)


class Tanh(_Elementwise):
    """
    Hyperbolic tangent.

    Forward: f(x) = tanh(x)
    Backward: f'(x) = 1 - f(x)^2
    """

    name = "tanh"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return np.tanh(x)

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output * (1.0 - output * output),)


class ReLU(_Elementwise):
    """
    Rectified linear unit.

    Forward: f(x) = max(0, x)
    Backward: f'(x) = 1 if x > 0 else 0
    """

    name = "relu"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        return np.maximum(0, x)

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        return (grad_output * (x > 0),)


class Softmax(_Elementwise):
    """Softmax over the last axis."""

    name = "softmax"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        # Subtract the max for numerical stability
        exp_x = np.exp(x - np.max(x, axis=-1, keepdims=True))
        return exp_x / np.sum(exp_x, axis=-1, keepdims=True)

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        # dsoftmax_i/dx_j = softmax_i * (1{i=j} - softmax_j)
        inner = np.sum(grad_output * output, axis=-1, keepdims=True)
        return (output * (grad_output - inner),)


class LogSoftmax(_Elementwise):
    """log(softmax(x)) over the last axis, computed stably."""

    name = "logsm"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, x: NDArray[Any]) -> NDArray[Any]:
        shifted = x - np.max(x, axis=-1, keepdims=True)
        return shifted - np.log(np.sum(np.exp(shifted), axis=-1, keepdims=True))

    @staticmethod
    def backward(ctx, grad_output, output, x) -> Gradients:
        softmax = np.exp(output)
        return (grad_output - softmax * np.sum(grad_output, axis=-1, keepdims=True),)
