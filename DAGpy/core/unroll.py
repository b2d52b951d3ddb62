"""
Expansion of recurrent networks into a fixed number of time steps.

The nodes of a recurrent network fall into four regions:

* per-step nodes: feeds consumed before any pooling, recurrent states and
  everything depending on them up to the pooling nodes; copied once per
  time step
* pooling nodes: rebuilt once over the per-step copies of their operands
* post-pooling nodes: anything downstream of a pooling node, plus feeds
  consumed only there; copied once
* shared nodes: variables, constants and operators that depend on neither
  feeds nor recurrent states; reused as they are

At step t > 0 every recurrent state resolves to step t-1's copy of the node
that marks it; at step 0 it keeps its initial node.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from .config import COST_REDUCTIONS
from .exceptions import UnrollError
from .node import Node

if TYPE_CHECKING:
    from .network import Network

logger = logging.getLogger(__name__)

STEP = "step"
POOL = "pool"
ONCE = "once"
SHARED = "shared"


def classify(nodes: List[Node]) -> Dict[int, str]:
    """
    Assigns every node of a recurrent network to its unrolling region.

    Args:
        nodes: Nodes in topological order

    Returns:
        Mapping from node id to region
    """
    targets = {n.pre.id for n in nodes if n.pre is not None}
    consumers: Dict[int, List[Node]] = {n.id: [] for n in nodes}
    for node in nodes:
        for child in node.children:
            consumers[child.id].append(node)

    post_pool: Set[int] = set()
    varying: Set[int] = set()
    for node in nodes:
        if any(c.is_pooling or c.id in post_pool for c in node.children):
            post_pool.add(node.id)
        if node.is_feed or node.id in targets or any(c.id in varying for c in node.children):
            varying.add(node.id)

    region: Dict[int, str] = {}
    for node in nodes:
        if node.is_pooling:
            region[node.id] = POOL
        elif node.id in post_pool:
            region[node.id] = ONCE
        elif node.is_feed and node.id not in targets:
            users = consumers[node.id]
            per_step = not users or any(u.is_pooling or u.id not in post_pool for u in users)
            region[node.id] = STEP if per_step else ONCE
        elif node.id in varying:
            region[node.id] = STEP
        else:
            region[node.id] = SHARED
    return region


def _copy(node: Node, children: List[Node]) -> Node:
    builder = node.builder
    if node.is_feed:
        copy = builder.feed(*((1,) + node.shape[1:]), name=node.name)
    else:
        copy = builder.apply(node.op, children, **node.ctx.saved_arguments)
        copy.name = node.name
    copy.ext_flag = node.ext_flag
    copy.ext_label = node.ext_label
    return copy


def unroll(network: "Network", length: int, cost_reduction: Optional[str] = None) -> "Network":
    """
    Unrolls a recurrent network into ``length`` time steps.

    The result is a new network without recurrence. Per-step feeds appear
    once per step, in step order, so ``feed_bind`` takes one array per step.
    Variables and constants are shared with ``network``: gradients from the
    unrolled network land in the same ``g`` and optimiser updates to ``x``
    are seen by both. The base network is left untouched.

    Args:
        network: Recurrent network to unroll
        length: Number of time steps
        cost_reduction: 'mean' or 'sum' to override how the per-step costs
            are pooled, if the pooling node was added automatically

    Returns:
        The unrolled network, which does not own the shared arrays

    Raises:
        UnrollError: If the network has no recurrence or length < 1
    """
    from .network import Network
    from ..ops.pooling import Avg, Sum

    if not network.is_rnn:
        raise UnrollError("Network has no recurrent state to unroll")
    if isinstance(length, bool) or not isinstance(length, int) or length < 1:
        raise UnrollError(f"Unroll length must be a positive integer, got {length!r}")
    if cost_reduction is not None and cost_reduction not in COST_REDUCTIONS:
        raise UnrollError(f"Invalid cost reduction: {cost_reduction}")

    nodes = network.nodes
    region = classify(nodes)
    marker_of = {state_in.id: state_out for state_out, state_in in network.recurrences}
    for state_out, _ in network.recurrences:
        if region[state_out.id] != STEP:
            raise UnrollError(f"Recurrent state {state_out!r} is computed after pooling")

    steps: List[Dict[int, Node]] = []
    owned: Set[int] = set()
    for t in range(length):
        mapping: Dict[int, Node] = {}
        for node in nodes:
            if region[node.id] != STEP:
                continue
            if node.id in marker_of and t > 0:
                mapping[node.id] = steps[t - 1][marker_of[node.id].id]
            elif node.is_leaf and not node.is_feed:
                mapping[node.id] = node
            else:
                children = [mapping.get(c.id, c) for c in node.children]
                mapping[node.id] = _copy(node, children)
                owned.add(mapping[node.id].id)
        steps.append(mapping)

    once: Dict[int, Node] = {}

    def resolve(child: Node) -> Node:
        if region[child.id] == STEP:
            return steps[-1][child.id]
        return once.get(child.id, child)

    for node in nodes:
        kind = region[node.id]
        if kind == POOL:
            children = []
            for mapping in steps:
                children.extend(
                    mapping[c.id] if region[c.id] == STEP else resolve(c) for c in node.children
                )
            op = node.op
            if node is network._auto_pool and cost_reduction is not None:
                op = Avg if cost_reduction == "mean" else Sum
            copy = node.builder.apply(op, children, **node.ctx.saved_arguments)
            copy.ext_flag = node.ext_flag
            copy.ext_label = node.ext_label
            copy.name = node.name
        elif kind == ONCE:
            copy = _copy(node, [resolve(c) for c in node.children])
        else:
            continue
        once[node.id] = copy
        owned.add(copy.id)

    def lift(root: Node) -> List[Node]:
        if region[root.id] == STEP:
            return [mapping[root.id] for mapping in steps]
        return [once.get(root.id, root)]

    cost = network.roots[0]
    if region[cost.id] == STEP:
        raise UnrollError("Cost is computed per step; pool it before unrolling")
    cost = lift(cost)[0]
    rest = [n for root in network.roots[1:] for n in lift(root)]

    unrolled = Network.derived(
        network,
        cost,
        rest,
        owned,
        auto_pool=once.get(network._auto_pool.id) if network._auto_pool is not None else None,
    )
    logger.debug(
        "Unrolled %d nodes over %d steps into %d nodes",
        network.n_nodes,
        length,
        unrolled.n_nodes,
    )
    return unrolled
