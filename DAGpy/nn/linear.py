from typing import Optional

from ..core.builder import Builder, get_builder
from ..core.node import F_IN, Node
from ..ops.basic import Add, CMul
from ..ops.stochastic import Dropout, Switch
from ..utils.init import normal_array, weight_sigma


def input(n: int, builder: Optional[Builder] = None) -> Node:
    """A feed of ``n`` features per sample, flagged as network input."""
    builder = builder if builder is not None else get_builder()
    return builder.feed(1, n, flag=F_IN)


def weight(n_out: int, n_in: int, builder: Optional[Builder] = None) -> Node:
    """
    A trainable (n_out, n_in) matrix drawn from N(0, 1/n_in).

    Args:
        n_out: Number of rows (output features)
        n_in: Number of columns (input features)
        builder: Builder to create the variable in; the default builder if
            None
    """
    builder = builder if builder is not None else get_builder()
    shape = (n_out, n_in)
    value = normal_array(builder.rng, weight_sigma(shape), shape, builder.config.dtype)
    return builder.var(shape, value)


def bias(n: int, builder: Optional[Builder] = None) -> Node:
    """A zero-initialised trainable vector."""
    builder = builder if builder is not None else get_builder()
    return builder.var((n,))


def linear(x: Node, n: int) -> Node:
    """
    Applies a linear transformation to the incoming data: y = xW^T + b

    Args:
        x: Input node, features along the last dimension
        n: Number of output features
    """
    w = weight(n, x.shape[-1], x.builder)
    b = bias(n, x.builder)
    return Add.apply(CMul.apply(x, w), b)


def dropout(x: Node, p: float) -> Node:
    """
    Randomly zeroes elements with probability ``p`` in training mode and
    passes ``x`` through unchanged in prediction mode.

    The rate is stored in a scalar constant, so it can be changed later by
    writing to the network's constant buffer.
    """
    if p < 0 or p > 1:
        raise ValueError(f"Dropout probability has to be between 0 and 1, but got {p}")
    rate = x.builder.scalar(p)
    return Switch.apply(Dropout.apply(x, rate), x)
