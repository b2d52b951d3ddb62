from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Sequence, Type, Union

import numpy as np
from numpy.typing import ArrayLike

from .config import Config
from .context import Context
from .exceptions import GraphError, ShapeError
from .node import Node, NodeKind

if TYPE_CHECKING:
    from .function import Function


class Builder:
    """
    Creates graph nodes and owns them.

    The builder keeps every node it created in an arena, in creation order,
    and gives each one an increasing id that is never reused. Nodes from different
    builders cannot be combined. The builder also carries the configuration
    and the random generator used to initialise trainable variables.

    Args:
        config: Configuration shared with networks assembled from these nodes
        name: Optional name used in messages
    """

    def __init__(self, config: Optional[Config] = None, name: Optional[str] = None):
        self.config = config if config is not None else Config()
        self.name = name
        self.rng = self.config.make_rng()
        self.nodes: List[Node] = []
        self._next_id = 0

    def __len__(self) -> int:
        return len(self.nodes)

    def _new_node(self, kind: NodeKind, shape: Sequence[int], **kwargs: Any) -> Node:
        node = Node(self, self._next_id, kind, tuple(shape), **kwargs)
        self._next_id += 1
        self.nodes.append(node)
        return node

    def _leaf_value(self, shape: Sequence[int], value: Optional[ArrayLike]) -> np.ndarray:
        if value is None:
            return np.zeros(shape, dtype=self.config.dtype)
        data = np.array(value, dtype=self.config.dtype)
        if data.size != int(np.prod(shape, dtype=np.int64)):
            raise ShapeError(f"Value of size {data.size} does not fit shape {tuple(shape)}")
        return data.reshape(shape)

    def feed(self, *dims: int, flag: int = 0, label: int = 0, name: Optional[str] = None) -> Node:
        """
        Creates a feed node; the first dimension is the batch dimension.

        Args:
            *dims: Shape for a batch of one, batch dimension first
            flag: External role bits
            label: External label
        """
        if not dims:
            raise ShapeError("A feed node needs at least the batch dimension")
        if any(d <= 0 for d in dims):
            raise ShapeError(f"Invalid feed shape: {dims}")
        node = self._new_node(NodeKind.FEED, dims, batched=True, name=name)
        node.ext_flag = flag
        node.ext_label = label
        return node

    def var(
        self,
        shape: Union[int, Sequence[int]],
        value: Optional[ArrayLike] = None,
        name: Optional[str] = None,
    ) -> Node:
        """Creates a trainable variable, zero-filled unless a value is given."""
        shape = (shape,) if isinstance(shape, int) else tuple(shape)
        node = self._new_node(NodeKind.VAR, shape, name=name)
        node.value = self._leaf_value(shape, value)
        return node

    def const(
        self,
        shape: Union[int, Sequence[int]],
        value: Optional[ArrayLike] = None,
        name: Optional[str] = None,
    ) -> Node:
        """Creates a constant, zero-filled unless a value is given."""
        shape = (shape,) if isinstance(shape, int) else tuple(shape)
        node = self._new_node(NodeKind.CONST, shape, name=name)
        node.value = self._leaf_value(shape, value)
        return node

    def scalar(self, value: float, name: Optional[str] = None) -> Node:
        """Creates a scalar constant."""
        return self.const((), value, name=name)

    def apply(self, op: Type["Function"], children: List[Node], **arguments: Any) -> Node:
        """
        Creates an operator node.

        Args:
            op: Operator class
            children: Ordered operand nodes
            **arguments: Operator arguments stored in the node's context

        Returns:
            The new node

        Raises:
            ShapeError: On an arity or shape mismatch
            GraphError: If an operand was created by another builder
        """
        if op.arity is not None and len(children) != op.arity:
            raise ShapeError(f"{op.name} takes {op.arity} operands, got {len(children)}")
        if not children:
            raise ShapeError(f"{op.name} needs at least one operand")
        for child in children:
            if not isinstance(child, Node):
                raise TypeError(f"{op.name} expects Node operands, got {type(child).__name__}")
            if child.builder is not self:
                raise GraphError(f"Operand {child!r} of {op.name} belongs to a different builder")

        ctx = Context()
        ctx.save_arguments(**arguments)
        shape = op.infer_shape(ctx, *(c.shape for c in children))
        return self._new_node(
            NodeKind.OP,
            shape,
            op=op,
            children=children,
            ctx=ctx,
            batched=op.is_batched(ctx, children),
        )

    def recur(self, state_out: Node, state_in: Node) -> Node:
        """
        Marks ``state_out`` as the value ``state_in`` takes at the next step.

        Args:
            state_out: Node computing the new recurrent state
            state_in: Node holding the previous state (usually a variable or
                constant initial state)

        Returns:
            state_out
        """
        if state_out.builder is not self or state_in.builder is not self:
            raise GraphError("Recurrent nodes must belong to this builder")
        if state_out is state_in:
            raise GraphError("A node cannot be its own recurrent state")
        if state_out.shape[-1:] != state_in.shape[-1:] or state_out.size_per_sample != state_in.size_per_sample:
            raise ShapeError(
                f"Recurrent state shapes differ: {state_out.shape} vs {state_in.shape}"
            )
        state_out.pre = state_in
        return state_out

    def clear(self) -> None:
        """Drops every node created so far. Ids are never reused."""
        self.nodes.clear()


_default_builder = Builder()


def get_builder() -> Builder:
    """Returns the builder used when no operand fixes one."""
    return _default_builder


@contextmanager
def use_builder(builder: Optional[Builder] = None) -> Iterator[Builder]:
    """
    Temporarily installs a builder as the default:

        with use_builder(Builder(Config(seed=1))) as b:
            x = nn.input(4)
            ...
    """
    global _default_builder
    prev = _default_builder
    try:
        _default_builder = builder if builder is not None else Builder()
        yield _default_builder
    finally:
        _default_builder = prev
