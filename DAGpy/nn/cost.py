from enum import Enum

from ..core.node import F_COST, F_OUT, F_TRUTH, Node
from ..ops.activations import Sigmoid, Softmax, Tanh
from ..ops.loss import MSE, CrossEntropyBinary, CrossEntropyBinaryNeg, CrossEntropyMulti
from .linear import linear


class CostType(Enum):
    """Output activation and cost pairs."""

    CEB = "ceb"  # sigmoid + binary cross-entropy
    CEM = "cem"  # softmax + multi-class cross-entropy
    CEB_NEG = "ceb_neg"  # tanh + binary cross-entropy on [-1, 1]
    MSE = "mse"  # identity + mean squared error


_ACTIVATIONS = {
    CostType.CEB: Sigmoid,
    CostType.CEM: Softmax,
    CostType.CEB_NEG: Tanh,
    CostType.MSE: None,
}

_COSTS = {
    CostType.CEB: CrossEntropyBinary,
    CostType.CEM: CrossEntropyMulti,
    CostType.CEB_NEG: CrossEntropyBinaryNeg,
    CostType.MSE: MSE,
}


def cost(x: Node, n_out: int, cost_type: CostType) -> Node:
    """
    Adds an output layer and its cost.

    Builds a linear layer of ``n_out`` units, the output activation for
    ``cost_type`` (flagged F_OUT), a truth feed of ``n_out`` features
    (flagged F_TRUTH) and the cost node (flagged F_COST).

    Returns:
        The scalar cost node
    """
    cost_type = CostType(cost_type)
    out = linear(x, n_out)
    activation = _ACTIVATIONS[cost_type]
    if activation is not None:
        out = activation.apply(out)
    out.ext_flag |= F_OUT
    truth = x.builder.feed(1, n_out, flag=F_TRUTH)
    node = _COSTS[cost_type].apply(out, truth)
    node.ext_flag |= F_COST
    return node
