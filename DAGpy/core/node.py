from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Tuple, Type

import numpy as np
from numpy.typing import NDArray

from .context import Context

if TYPE_CHECKING:
    from .builder import Builder
    from .function import Function

# External role flags
F_IN = 0x1
F_OUT = 0x2
F_TRUTH = 0x4
F_COST = 0x8

# Lookup sentinels
NOT_FOUND = -1
AMBIGUOUS = -2


class NodeKind(Enum):
    FEED = "feed"
    VAR = "var"
    CONST = "const"
    OP = "op"


def match_flag(flag: int, query: int) -> bool:
    """A zero query matches every flag; otherwise any shared bit matches."""
    return query == 0 or (flag & query) != 0


def match_label(label: int, query: int) -> bool:
    """A zero query matches every label."""
    return query == 0 or label == query


class Node:
    """
    A vertex of the computational graph.

    A node is either a leaf (feed, trainable variable or constant) or the
    application of an operator to an ordered list of operand nodes. Nodes are
    created by a Builder, which owns them and assigns each a creation index.
    Operand references are plain object references that stay valid for the
    lifetime of the builder.

    For feed nodes, and for every operator node that depends on one, the
    first dimension is the batch dimension and is rewritten whenever a
    network changes its batch size.

    Attributes:
        id: Creation index inside the owning builder
        builder: The builder that created the node
        kind: Feed, variable, constant or operator
        shape: Current shape, including the batch dimension if batched
        op: Operator class for operator nodes, None for leaves
        children: Ordered operand nodes
        ctx: Operator arguments and saved intermediates
        ext_flag: External role bits (F_IN, F_OUT, F_TRUTH, F_COST)
        ext_label: External label used to match data at bind time
        pre: For a recurrent state output, the node it replaces at the next
            time step
        batched: Whether the first dimension follows the batch size
        requires_grad: Whether a gradient flows into this node
        value: Current value (a view into a shared buffer for leaves)
        grad: Current gradient, None when no gradient is kept
        name: Optional debugging name
    """

    def __init__(
        self,
        builder: "Builder",
        node_id: int,
        kind: NodeKind,
        shape: Tuple[int, ...],
        op: Optional[Type["Function"]] = None,
        children: Optional[List["Node"]] = None,
        ctx: Optional[Context] = None,
        batched: bool = False,
        name: Optional[str] = None,
    ):
        self.builder = builder
        self.id = node_id
        self.kind = kind
        self.shape = tuple(int(d) for d in shape)
        self.op = op
        self.children: List[Node] = list(children or [])
        self.ctx = ctx if ctx is not None else Context()
        self.ext_flag = 0
        self.ext_label = 0
        self.pre: Optional[Node] = None
        self.batched = batched
        self.requires_grad = kind is NodeKind.VAR or any(
            c.requires_grad for c in self.children
        )
        self.value: Optional[NDArray[Any]] = None
        self.grad: Optional[NDArray[Any]] = None
        self.name = name

    @property
    def is_feed(self) -> bool:
        return self.kind is NodeKind.FEED

    @property
    def is_var(self) -> bool:
        return self.kind is NodeKind.VAR

    @property
    def is_const(self) -> bool:
        return self.kind is NodeKind.CONST

    @property
    def is_leaf(self) -> bool:
        return self.kind is not NodeKind.OP

    @property
    def is_pooling(self) -> bool:
        return self.op is not None and self.op.pooling

    @property
    def n_dims(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        """Number of elements at the current batch size."""
        return int(np.prod(self.shape, dtype=np.int64))

    @property
    def size_per_sample(self) -> int:
        """Number of elements for a batch of one."""
        if self.batched and self.shape:
            return int(np.prod(self.shape[1:], dtype=np.int64))
        return self.size

    def matches(self, flag: int, label: int) -> bool:
        return match_flag(self.ext_flag, flag) and match_label(self.ext_label, label)

    def __repr__(self) -> str:
        if self.op is not None:
            desc = f"{self.op.name}({', '.join(str(c.id) for c in self.children)})"
        else:
            desc = self.kind.value
        return f"Node(id={self.id}, {desc}, shape={self.shape})"

    def __add__(self, other: "Node") -> "Node":
        from ..ops.basic import Add

        return Add.apply(self, other)

    def __sub__(self, other: "Node") -> "Node":
        from ..ops.basic import Sub

        return Sub.apply(self, other)

    def __mul__(self, other: "Node") -> "Node":
        from ..ops.basic import Mul

        return Mul.apply(self, other)

    def __matmul__(self, other: "Node") -> "Node":
        from ..ops.basic import MatMul

        return MatMul.apply(self, other)
