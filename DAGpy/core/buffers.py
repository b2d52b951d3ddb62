import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
from numpy.typing import DTypeLike, NDArray

from .exceptions import ShapeError
from .node import Node

logger = logging.getLogger(__name__)

Shape = Tuple[int, ...]


class BufferAllocator:
    """
    Owns the three flat arrays of a network and the activation buffers of its
    operator nodes.

    Trainable variables live in ``x`` with their gradients at the same
    offsets in ``g``; constants live in ``c``. Each leaf's ``value`` (and, for
    variables, ``grad``) is rebound to a view into these arrays, so writing
    to ``x`` between calls is how an optimiser updates the network. Offsets
    are assigned once by ``collate`` in network order and do not move when
    the batch size changes.

    An allocator created with ``share`` reuses another allocator's flat
    arrays and offsets without owning them.

    Args:
        dtype: Numpy dtype of every buffer
    """

    def __init__(self, dtype: DTypeLike = np.float64) -> None:
        self.dtype = np.dtype(dtype)
        self.x: NDArray[Any] = np.zeros(0, dtype=self.dtype)
        self.g: NDArray[Any] = np.zeros(0, dtype=self.dtype)
        self.c: NDArray[Any] = np.zeros(0, dtype=self.dtype)
        self.offsets: Dict[int, int] = {}
        self.owns_buffers = True

    @classmethod
    def share(cls, other: "BufferAllocator") -> "BufferAllocator":
        """Returns a non-owning allocator over ``other``'s flat arrays."""
        alloc = cls(other.dtype)
        alloc.x, alloc.g, alloc.c = other.x, other.g, other.c
        alloc.offsets = other.offsets
        alloc.owns_buffers = False
        return alloc

    def collate(self, nodes: Sequence[Node]) -> None:
        """
        Packs variables and constants into contiguous arrays.

        Args:
            nodes: Nodes in network order
        """
        variables = [n for n in nodes if n.is_var]
        constants = [n for n in nodes if n.is_const]
        n_var = sum(n.size for n in variables)
        n_const = sum(n.size for n in constants)

        x = np.zeros(n_var, dtype=self.dtype)
        g = np.zeros(n_var, dtype=self.dtype)
        c = np.zeros(n_const, dtype=self.dtype)
        offsets: Dict[int, int] = {}

        offset = 0
        for node in variables:
            offsets[node.id] = offset
            if node.value is not None:
                x[offset : offset + node.size] = np.reshape(node.value, -1)
            offset += node.size
        offset = 0
        for node in constants:
            offsets[node.id] = offset
            if node.value is not None:
                c[offset : offset + node.size] = np.reshape(node.value, -1)
            offset += node.size

        for node in variables:
            start = offsets[node.id]
            node.value = x[start : start + node.size].reshape(node.shape)
            node.grad = g[start : start + node.size].reshape(node.shape)
        for node in constants:
            start = offsets[node.id]
            node.value = c[start : start + node.size].reshape(node.shape)
            node.grad = None

        self.x, self.g, self.c, self.offsets = x, g, c, offsets
        logger.debug(
            "Collated %d variables (%d values) and %d constants (%d values)",
            len(variables),
            n_var,
            len(constants),
            n_const,
        )

    @staticmethod
    def infer_shapes(nodes: Sequence[Node], batch_size: int) -> Dict[int, Shape]:
        """
        Computes the shape of every node for a given batch size.

        Nothing is modified; operator arguments are only read.

        Args:
            nodes: Nodes in topological order
            batch_size: Size of the leading dimension of batched nodes

        Returns:
            Mapping from node id to shape

        Raises:
            ShapeError: If an operator rejects the resized operand shapes
        """
        if batch_size <= 0:
            raise ShapeError(f"Batch size must be positive, got {batch_size}")
        shapes: Dict[int, Shape] = {}
        for node in nodes:
            if node.is_feed:
                shapes[node.id] = (batch_size,) + node.shape[1:]
            elif node.is_leaf:
                shapes[node.id] = node.shape
            else:
                child_shapes = [shapes.get(c.id, c.shape) for c in node.children]
                shapes[node.id] = tuple(node.op.infer_shape(node.ctx, *child_shapes))
        return shapes

    def resize(
        self,
        nodes: Sequence[Node],
        batch_size: int,
        owned: Optional[Set[int]] = None,
    ) -> None:
        """
        Reshapes the network for a new batch size.

        All shapes and activation arrays are computed before anything is
        committed, so an error leaves every node as it was. Variables and
        constants keep their contents; activations are reallocated.

        Args:
            nodes: Nodes in topological order
            batch_size: New batch size
            owned: Ids of operator nodes whose activations belong to this
                network. None means all of them. Shared nodes only get a
                buffer when they have none of the right shape.
        """
        shapes = self.infer_shapes(nodes, batch_size)

        fresh: List[Tuple[Node, NDArray[Any]]] = []
        for node in nodes:
            if node.is_leaf:
                continue
            shape = shapes[node.id]
            mine = owned is None or node.id in owned
            if mine or node.value is None or node.value.shape != shape:
                fresh.append((node, np.zeros(shape, dtype=self.dtype)))

        for node in nodes:
            shape = shapes[node.id]
            if node.is_feed and node.shape != shape:
                node.value = None
            node.shape = shape
        for node, array in fresh:
            node.value = array
            node.grad = None
        logger.debug("Resized %d nodes to batch size %d", len(nodes), batch_size)

    @staticmethod
    def release(nodes: Iterable[Node], owned: Optional[Set[int]] = None) -> None:
        """Drops activation buffers and saved intermediates."""
        for node in nodes:
            if owned is not None and node.id not in owned:
                continue
            if node.is_feed or not node.is_leaf:
                node.value = None
                node.grad = None
                node.ctx.clear_intermediates()

    @property
    def size_var(self) -> int:
        return int(self.x.size)

    @property
    def size_const(self) -> int:
        return int(self.c.size)
