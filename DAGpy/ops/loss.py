"""
Cost operators.

Every cost takes a prediction and a truth of identical shape and produces a
scalar. Gradients are only returned for the prediction; truth nodes are
feeds and never require gradients.
"""

from typing import Any, List

import numpy as np
from numpy.typing import NDArray

from ..core.context import Context, EvalContext
from ..core.exceptions import ShapeError
from ..core.function import Function, Gradients, Shape
from ..core.node import Node

TINY = 1e-9


class _Cost(Function):
    arity = 2

    @staticmethod
    def infer_shape(ctx: Context, pred_shape: Shape, truth_shape: Shape) -> Shape:
        if int(np.prod(pred_shape)) != int(np.prod(truth_shape)) or pred_shape[-1:] != truth_shape[-1:]:
            raise ShapeError(f"Shape mismatch: predictions {pred_shape} vs truth {truth_shape}")
        return ()

    @classmethod
    def is_batched(cls, ctx: Context, children: List[Node]) -> bool:
        return False


def _xlogy_ratio(t: NDArray[Any], p: NDArray[Any]) -> NDArray[Any]:
    """t * log(t / p), taken as 0 where t == 0."""
    safe_t = np.where(t > 0, t, 1.0)
    return np.where(t > 0, t * np.log(safe_t / p), 0.0)


class CrossEntropyMulti(_Cost):
    """
    Multi-class cross-entropy against probabilities (e.g. softmax output):
    L = 1/B * Σ t * log(t / p)

    The t*log(t) term makes the cost zero at a perfect prediction. B is the
    number of rows, i.e. the size divided by the last dimension.
    """

    name = "ce_multi"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, p: NDArray[Any], t: NDArray[Any]) -> NDArray[Any]:
        t = t.reshape(p.shape)
        n_rows = p.size // p.shape[-1]
        return np.asarray(np.sum(_xlogy_ratio(t, np.maximum(p, TINY))) / n_rows)

    @staticmethod
    def backward(ctx, grad_output, output, p, t) -> Gradients:
        t = t.reshape(p.shape)
        n_rows = p.size // p.shape[-1]
        scale = grad_output / n_rows
        grad_p = np.where(p >= TINY, -scale * t / np.maximum(p, TINY), 0.0)
        return grad_p, None


class CrossEntropyBinary(_Cost):
    """
    Binary cross-entropy for sigmoid outputs, averaged over all elements:
    L = 1/N * Σ t*log(t/p) + (1-t)*log((1-t)/(1-p))
    """

    name = "ce_bin"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, p: NDArray[Any], t: NDArray[Any]) -> NDArray[Any]:
        t = t.reshape(p.shape)
        pc = np.clip(p, TINY, 1.0 - TINY)
        loss = _xlogy_ratio(t, pc) + _xlogy_ratio(1.0 - t, 1.0 - pc)
        return np.asarray(np.sum(loss) / p.size)

    @staticmethod
    def backward(ctx, grad_output, output, p, t) -> Gradients:
        t = t.reshape(p.shape)
        pc = np.clip(p, TINY, 1.0 - TINY)
        grad_p = grad_output / p.size * ((1.0 - t) / (1.0 - pc) - t / pc)
        return grad_p, None


class CrossEntropyBinaryNeg(_Cost):
    """
    Binary cross-entropy for tanh outputs in [-1, 1]; both prediction and
    truth are mapped to [0, 1] via (1 + x) / 2.
    """

    name = "ce_bin_neg"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, y: NDArray[Any], t: NDArray[Any]) -> NDArray[Any]:
        p = np.clip(0.5 * (1.0 + y), TINY, 1.0 - TINY)
        q = 0.5 * (1.0 + t.reshape(y.shape))
        loss = _xlogy_ratio(q, p) + _xlogy_ratio(1.0 - q, 1.0 - p)
        return np.asarray(np.sum(loss) / y.size)

    @staticmethod
    def backward(ctx, grad_output, output, y, t) -> Gradients:
        p = np.clip(0.5 * (1.0 + y), TINY, 1.0 - TINY)
        q = 0.5 * (1.0 + t.reshape(y.shape))
        grad_y = 0.5 * grad_output / y.size * ((1.0 - q) / (1.0 - p) - q / p)
        return grad_y, None


class MSE(_Cost):
    """Mean squared error: L = 1/N * Σ (y - t)^2"""

    name = "mse"

    @staticmethod
    def forward(ctx: Context, run: EvalContext, y: NDArray[Any], t: NDArray[Any]) -> NDArray[Any]:
        diff = y - t.reshape(y.shape)
        return np.asarray(np.sum(diff * diff) / y.size)

    @staticmethod
    def backward(ctx, grad_output, output, y, t) -> Gradients:
        diff = y - t.reshape(y.shape)
        grad_y = grad_output * 2.0 * diff / y.size
        return grad_y, -grad_y.reshape(t.shape)
