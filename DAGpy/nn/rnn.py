"""
Recurrent layers.

Each layer builds one time step. The previous hidden state is a (1, n)
constant (or trainable variable, with ``var_h0``) marked as the recurrent
input of the new state, so the graph itself stays acyclic; the network
is either unrolled over a sequence or fed one step at a time.
"""

from ..core.node import Node
from ..ops.activations import Sigmoid, Tanh
from ..ops.basic import Add, CMul, Mul, OneMinus
from .linear import bias, weight


def _initial_state(x: Node, n: int, var_h0: bool) -> Node:
    if var_h0:
        return x.builder.var((1, n))
    return x.builder.const((1, n))


def _gate(x: Node, h0: Node, n: int) -> Node:
    """x W^T + h0 U^T + b"""
    builder = x.builder
    w = weight(n, x.shape[-1], builder)
    u = weight(n, n, builder)
    b = bias(n, builder)
    return Add.apply(Add.apply(CMul.apply(x, w), CMul.apply(h0, u)), b)


def rnn(x: Node, n: int, var_h0: bool = False) -> Node:
    """
    Vanilla recurrent layer: h = tanh(x W^T + h0 U^T + b).

    Args:
        x: Input at one time step
        n: Number of hidden units
        var_h0: Whether the initial state is trainable

    Returns:
        The new hidden state
    """
    h0 = _initial_state(x, n, var_h0)
    h = Tanh.apply(_gate(x, h0, n))
    return x.builder.recur(h, h0)


def lstm(x: Node, n: int, var_h0: bool = False) -> Node:
    """
    Long short-term memory layer.

        i = sigm(gate), f = sigm(gate), o = sigm(gate), g = tanh(gate)
        c = f * c0 + i * g
        h = o * tanh(c)

    Both ``c`` and ``h`` are recurrent states. Returns ``h``.
    """
    builder = x.builder
    h0 = _initial_state(x, n, var_h0)
    c0 = builder.const((1, n))
    i = Sigmoid.apply(_gate(x, h0, n))
    f = Sigmoid.apply(_gate(x, h0, n))
    o = Sigmoid.apply(_gate(x, h0, n))
    g = Tanh.apply(_gate(x, h0, n))
    c = Add.apply(Mul.apply(f, c0), Mul.apply(i, g))
    builder.recur(c, c0)
    h = Mul.apply(o, Tanh.apply(c))
    return builder.recur(h, h0)


def gru(x: Node, n: int, var_h0: bool = False) -> Node:
    """
    Gated recurrent unit.

        z = sigm(gate), r = sigm(gate)
        s = tanh(x W^T + (r * h0) U^T + b)
        h = (1 - z) * s + z * h0
    """
    builder = x.builder
    h0 = _initial_state(x, n, var_h0)
    z = Sigmoid.apply(_gate(x, h0, n))
    r = Sigmoid.apply(_gate(x, h0, n))
    s = Tanh.apply(_gate(x, Mul.apply(r, h0), n))
    h = Add.apply(Mul.apply(OneMinus.apply(z), s), Mul.apply(z, h0))
    return builder.recur(h, h0)
