import heapq
import itertools
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import numpy as np
from numpy.typing import NDArray

from .context import EvalContext
from .exceptions import BindingError, CycleError
from .function import Function
from .node import Node


def collect(roots: Iterable[Node]) -> List[Node]:
    """Returns every node reachable from ``roots`` through operand edges."""
    seen: Set[int] = set()
    found: List[Node] = []
    stack = list(roots)
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        found.append(node)
        stack.extend(node.children)
    return found


def topological_sort(roots: Iterable[Node]) -> List[Node]:
    """
    Orders the nodes reachable from ``roots`` so that operands come before
    the nodes that consume them.

    Kahn's algorithm; among ready nodes the one created first is scheduled
    first, which makes the order deterministic.

    Args:
        roots: Nodes to start from

    Returns:
        List of nodes in topological order

    Raises:
        CycleError: If the graph contains a cycle
    """
    nodes = collect(roots)
    pending: Dict[int, int] = {}
    consumers: Dict[int, List[Node]] = {id(n): [] for n in nodes}
    for node in nodes:
        # An operand used twice by one node is counted twice
        pending[id(node)] = len(node.children)
        for child in node.children:
            consumers[id(child)].append(node)

    tie = itertools.count()
    ready = [(n.id, next(tie), n) for n in nodes if pending[id(n)] == 0]
    heapq.heapify(ready)
    order: List[Node] = []
    while ready:
        _, _, node = heapq.heappop(ready)
        order.append(node)
        for consumer in consumers[id(node)]:
            pending[id(consumer)] -= 1
            if pending[id(consumer)] == 0:
                heapq.heappush(ready, (consumer.id, next(tie), consumer))

    if len(order) != len(nodes):
        raise CycleError("Cycle detected in computation graph")
    return order


def mark_ancestors(nodes: Sequence[Node], targets: Iterable[int]) -> List[bool]:
    """
    Marks the target positions and every position they depend on.

    Args:
        nodes: Nodes in topological order
        targets: Positions in ``nodes`` to evaluate

    Returns:
        One flag per node
    """
    index = {id(n): i for i, n in enumerate(nodes)}
    marked = [False] * len(nodes)
    for i in targets:
        marked[i] = True
    for i in range(len(nodes) - 1, -1, -1):
        if marked[i]:
            for child in nodes[i].children:
                marked[index[id(child)]] = True
    return marked


class AutogradEngine:
    """
    Evaluates a fixed, topologically ordered node list.

    The forward pass walks the list front to back and stores each operator
    node's result in its activation buffer. The backward pass walks it back
    to front; each node hands one contribution per operand to the engine,
    which sums them into the operand's gradient. Because every consumer
    comes after its operands, a node's gradient is complete by the time the
    walk reaches it.

    Args:
        nodes: Nodes in topological order
    """

    def __init__(self, nodes: Sequence[Node]) -> None:
        self.nodes = list(nodes)
        self._index = {id(n): i for i, n in enumerate(self.nodes)}
        self._currently_computing_gradients = False

    def index(self, node: Node) -> int:
        return self._index[id(node)]

    def _value(self, node: Node, run: EvalContext) -> NDArray[Any]:
        override = run.overrides.get(node.id)
        return override if override is not None else node.value

    def forward(self, run: EvalContext, targets: Optional[Iterable[int]] = None) -> None:
        """
        Runs the forward pass.

        Args:
            run: Evaluation context
            targets: Positions to evaluate; None evaluates every node

        Raises:
            BindingError: If a feed node that is needed has no bound data
        """
        if targets is None:
            marked = [True] * len(self.nodes)
        else:
            marked = mark_ancestors(self.nodes, targets)

        for i, node in enumerate(self.nodes):
            if not marked[i]:
                continue
            if node.is_feed:
                if node.value is None and node.id not in run.overrides:
                    raise BindingError(f"Feed node {node!r} has no bound data")
                continue
            if node.is_leaf:
                continue
            inputs = [self._value(c, run) for c in node.children]
            result = np.asarray(node.op.forward(node.ctx, run, *inputs))
            if node.value is None:
                # Released by another network sharing this node
                node.value = np.array(result)
                continue
            if node.value.shape != result.shape:
                raise RuntimeError(
                    f"{node.op.name} produced shape {result.shape}, "
                    f"expected {node.shape}; was the batch size set?"
                )
            np.copyto(node.value, result)

    def backward(self, cost: int, run: Optional[EvalContext] = None) -> None:
        """
        Runs the backward pass from the node at position ``cost``.

        Gradients of trainable variables land in their slots of the shared
        gradient buffer, which must have been zeroed by the caller.

        Args:
            cost: Position of the scalar cost node
            run: Context of the preceding forward pass (for overrides)
        """
        if self._currently_computing_gradients:
            raise RuntimeError("Nested gradient computation detected")
        run = run if run is not None else EvalContext()

        self._currently_computing_gradients = True
        try:
            marked = mark_ancestors(self.nodes, [cost])
            active = [marked[i] and n.requires_grad for i, n in enumerate(self.nodes)]
            if not active[cost]:
                return

            # Count the contributions each node must receive before it may
            # propagate: one per use by an active consumer
            pending = [0] * len(self.nodes)
            for i, node in enumerate(self.nodes):
                if not active[i] or node.is_leaf:
                    continue
                for child in node.children:
                    j = self._index[id(child)]
                    if active[j]:
                        pending[j] += 1

            for i, node in enumerate(self.nodes):
                if active[i] and not node.is_var:
                    node.grad = np.zeros(node.shape, dtype=node.value.dtype)

            cost_node = self.nodes[cost]
            cost_node.grad[...] = 1.0

            for i in range(cost, -1, -1):
                node = self.nodes[i]
                if not active[i] or node.is_leaf:
                    continue
                if pending[i] != 0:
                    raise RuntimeError(
                        f"Gradient of {node!r} still waits for {pending[i]} contributions"
                    )
                inputs = [self._value(c, run) for c in node.children]
                grads = node.op.backward(node.ctx, node.grad, node.value, *inputs)
                for child, grad in zip(node.children, grads):
                    j = self._index[id(child)]
                    if not active[j]:
                        continue
                    pending[j] -= 1
                    if grad is not None:
                        child.grad += Function.reduce_grad(np.asarray(grad), child.shape)
        finally:
            self._currently_computing_gradients = False

