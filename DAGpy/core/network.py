import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .autograd import AutogradEngine, collect, topological_sort
from .buffers import BufferAllocator
from .config import Config
from .context import EvalContext
from .exceptions import BindingError, CostError, GraphError, RecurrentStateError
from .node import AMBIGUOUS, F_COST, F_IN, F_OUT, F_TRUTH, NOT_FOUND, Node

logger = logging.getLogger(__name__)


class RNNState(Enum):
    """States of a network fed one time step at a time."""

    IDLE = "idle"
    STARTED = "started"
    STEPPING = "stepping"
    ENDED = "ended"


class Network:
    """
    A trainable network assembled from a scalar cost node.

    The network collects every node reachable from the cost (and from any
    extra roots, e.g. auxiliary outputs), orders them once, and packs the
    trainable variables and constants into the flat arrays ``x``, ``g`` and
    ``c``. Feed data is bound with ``feed_bind``; ``cost`` runs a forward
    and optionally a backward pass, after which ``g`` holds the gradient of
    the cost with respect to ``x``.

    A network containing recurrence markers is either unrolled to a fixed
    length for training (``unroll``) or fed one step at a time between
    ``rnn_start`` and ``rnn_end``. If such a network has no pooling node,
    its cost is wrapped in one so that unrolling pools the per-step costs.

    Args:
        cost: Scalar cost node
        *rest: Additional root nodes
        config: Settings; defaults to the config of the cost's builder

    Raises:
        CostError: If the cost is missing or not a scalar
    """

    def __init__(self, cost: Node, *rest: Node, config: Optional[Config] = None) -> None:
        if cost is None or not isinstance(cost, Node):
            raise CostError("A network needs a scalar cost node")
        if cost.shape != ():
            raise CostError(f"Cost node must be a scalar, got shape {cost.shape}")

        self.config = config if config is not None else cost.builder.config
        self.rng = self.config.make_rng()
        self.training = True
        self.rnn_state = RNNState.IDLE
        self._states: Dict[int, NDArray[Any]] = {}
        self._auto_pool: Optional[Node] = None

        reachable = collect((cost,) + rest)
        if any(n.pre is not None for n in reachable) and not any(n.is_pooling for n in reachable):
            cost = self._wrap_cost(cost)
        cost.ext_flag |= F_COST

        self._setup(topological_sort((cost,) + rest), (cost,) + rest)
        self._buffers = BufferAllocator(self.config.dtype)
        self._buffers.collate(self.nodes)
        self._owned: Optional[Set[int]] = None
        self.batch_size = 0
        self.set_batch_size(1)
        logger.debug(
            "Assembled network: %d nodes, %d variables, %d constants%s",
            self.n_nodes,
            self.size_var,
            self.size_const,
            ", recurrent" if self.is_rnn else "",
        )

    def _wrap_cost(self, cost: Node) -> Node:
        from ..ops.pooling import Avg, Sum

        pool = Avg if self.config.cost_reduction == "mean" else Sum
        cost.ext_flag &= ~F_COST
        wrapped = pool.apply(cost)
        self._auto_pool = wrapped
        logger.debug("Wrapped recurrent cost in %s pooling", pool.name)
        return wrapped

    def _setup(self, nodes: List[Node], roots: Sequence[Node]) -> None:
        self.nodes = nodes
        self.roots = list(roots)
        self.engine = AutogradEngine(nodes)
        self._uses: Dict[int, int] = {n.id: 0 for n in nodes}
        for node in nodes:
            for child in node.children:
                self._uses[child.id] += 1
        self.recurrences: List[Tuple[Node, Node]] = [
            (n, n.pre) for n in nodes if n.pre is not None
        ]
        for state_out, state_in in self.recurrences:
            if state_in.id not in self._uses:
                raise GraphError(
                    f"Recurrent state {state_in!r} of {state_out!r} is not part of the network"
                )

    @classmethod
    def derived(
        cls,
        base: "Network",
        cost: Node,
        rest: Sequence[Node],
        owned: Set[int],
        auto_pool: Optional[Node] = None,
    ) -> "Network":
        """
        Creates a network over new nodes that shares ``base``'s variables
        and constants. The new network does not own the shared arrays.
        """
        net = cls.__new__(cls)
        net.config = base.config
        net.rng = base.rng
        net.training = base.training
        net.rnn_state = RNNState.IDLE
        net._states = {}
        net._auto_pool = auto_pool
        net._setup(topological_sort((cost,) + tuple(rest)), (cost,) + tuple(rest))
        net._buffers = BufferAllocator.share(base._buffers)
        net._owned = owned
        net.batch_size = 0
        net.set_batch_size(base.batch_size)
        return net

    # Buffers

    @property
    def x(self) -> NDArray[Any]:
        """Values of all trainable variables."""
        return self._buffers.x

    @property
    def g(self) -> NDArray[Any]:
        """Gradients, at the same offsets as ``x``."""
        return self._buffers.g

    @property
    def c(self) -> NDArray[Any]:
        """Values of all constants."""
        return self._buffers.c

    @property
    def owns_buffers(self) -> bool:
        return self._buffers.owns_buffers

    @property
    def offsets(self) -> Dict[int, int]:
        return self._buffers.offsets

    # Queries

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def size_var(self) -> int:
        return self._buffers.size_var

    @property
    def size_const(self) -> int:
        return self._buffers.size_const

    @property
    def is_rnn(self) -> bool:
        return bool(self.recurrences)

    def uses(self, node: Node) -> int:
        """Number of operand slots in the network that refer to ``node``."""
        return self._uses[node.id]

    def index(self, node: Node) -> int:
        return self.engine.index(node)

    def find(self, flag: int = 0, label: int = 0) -> int:
        """
        Finds the single node matching a flag and label.

        A zero flag matches any flags and a zero label matches any label.

        Returns:
            The node's index, NOT_FOUND or AMBIGUOUS
        """
        found = NOT_FOUND
        for i, node in enumerate(self.nodes):
            if node.matches(flag, label):
                if found >= 0:
                    return AMBIGUOUS
                found = i
        return found

    def _matching_feeds(self, flag: int, label: int) -> List[Node]:
        return [n for n in self.nodes if n.is_feed and n.matches(flag, label)]

    def feed_dim(self, flag: int, label: int = 0) -> int:
        """Per-sample size of the single matching feed, or a sentinel."""
        feeds = self._matching_feeds(flag, label)
        if not feeds:
            return NOT_FOUND
        if len(feeds) > 1:
            return AMBIGUOUS
        return feeds[0].size_per_sample

    @property
    def dim_in(self) -> int:
        return self.feed_dim(F_IN)

    @property
    def dim_out(self) -> int:
        """Per-sample size of the single truth feed, or a lookup sentinel."""
        return self.feed_dim(F_TRUTH)

    def feed_bind(self, flag: int, label: int, arrays: Sequence[ArrayLike]) -> int:
        """
        Binds caller arrays to the matching feed nodes, in network order.

        Each array must hold ``batch_size`` samples. Arrays of the network's
        dtype are bound without copying.

        Args:
            flag: Required role flags (0 matches all)
            label: Required label (0 matches all)
            arrays: One array per matching feed

        Returns:
            The number of matching feed nodes

        Raises:
            BindingError: If an array does not hold batch_size samples
        """
        feeds = self._matching_feeds(flag, label)
        for node, array in zip(feeds, arrays):
            data = np.asarray(array, dtype=self.config.dtype)
            if data.size != node.size:
                raise BindingError(
                    f"Array of size {data.size} does not fit {node!r} at batch size "
                    f"{self.batch_size}"
                )
            node.value = data.reshape(node.shape)
        return len(feeds)

    # Evaluation

    def set_batch_size(self, batch_size: int) -> None:
        """
        Resizes every batched node. Variables keep their values; bound feeds
        whose shape changes are unbound.

        Raises:
            ShapeError: If the graph cannot take this batch size. The network
                is left unchanged.
        """
        batch_size = int(batch_size)
        if batch_size == self.batch_size:
            return
        self._buffers.resize(self.nodes, batch_size, self._owned)
        self.batch_size = batch_size

    def switch(self, is_train: bool) -> None:
        """Selects training or prediction behaviour for later calls."""
        self.training = bool(is_train)

    def eval_context(self) -> EvalContext:
        """Returns the evaluation context used when a call passes none."""
        return EvalContext(training=self.training, rng=self.rng)

    def _cost_index(self, label: int) -> int:
        i = self.find(F_COST, label)
        if i == NOT_FOUND:
            raise CostError(f"No cost node with label {label}")
        if i == AMBIGUOUS:
            raise CostError(f"Several cost nodes match label {label}")
        return i

    def cost(self, label: int = 0, grad: bool = True, run: Optional[EvalContext] = None) -> float:
        """
        Computes the cost and, optionally, the gradients in ``g``.

        Args:
            label: Label of the cost node to use (0 when there is only one)
            grad: Whether to run the backward pass
            run: Evaluation context; defaults to the network's mode

        Returns:
            The cost
        """
        i = self._cost_index(label)
        run = run if run is not None else self.eval_context()
        self.engine.forward(run, [i])
        if grad:
            self.g.fill(0.0)
            self.engine.backward(i, run)
        return float(self.nodes[i].value)

    def eval(self, flag: int = F_OUT, label: int = 0, run: Optional[EvalContext] = None) -> int:
        """
        Computes every node matching ``flag`` and ``label``.

        During continuous feeding the recurrent states are computed as well
        and carried over to the next call.

        Returns:
            Number of matching nodes
        """
        targets = [i for i, n in enumerate(self.nodes) if n.matches(flag, label)]
        run = run if run is not None else self.eval_context()
        stepping = self.rnn_state in (RNNState.STARTED, RNNState.STEPPING)
        if stepping:
            run = replace(run, overrides={**run.overrides, **self._states})
            targets += [self.index(state_out) for state_out, _ in self.recurrences]
        self.engine.forward(run, targets)
        if stepping:
            for state_out, state_in in self.recurrences:
                self._states[state_in.id] = state_out.value.reshape(state_in.shape).copy()
            self.rnn_state = RNNState.STEPPING
        return len([n for n in self.nodes if n.matches(flag, label)])

    def value(self, i: int) -> NDArray[Any]:
        """Current value of the node at position ``i``."""
        return self.nodes[i].value

    def class_error(self) -> Tuple[int, int]:
        """
        Counts classification errors of the last forward pass.

        Looks at every cross-entropy cost node and compares its prediction
        with its truth: by arg-max per row for multi-class costs, by
        thresholding each element for binary ones.

        Returns:
            (number of errors, number of classified items)
        """
        n_err, base = 0, 0
        for node in self.nodes:
            if not (node.ext_flag & F_COST) or node.op is None:
                continue
            pred, truth = (c.value for c in node.children[:2])
            if node.op.name == "ce_multi":
                p = pred.reshape(-1, pred.shape[-1])
                t = truth.reshape(p.shape)
                has_label = t.max(axis=1) > 0
                wrong = np.argmax(p, axis=1) != np.argmax(t, axis=1)
                n_err += int(np.sum(wrong & has_label))
                base += int(np.sum(has_label))
            elif node.op.name in ("ce_bin", "ce_bin_neg"):
                cut = 0.5 if node.op.name == "ce_bin" else 0.0
                p = np.reshape(pred, -1)
                t = np.reshape(truth, -1)
                n_err += int(np.sum((p > cut) != (t > cut)))
                base += int(p.size)
        return n_err, base

    # Continuous feeding

    def rnn_start(self) -> None:
        """
        Prepares a recurrent network for feeding one step per ``eval`` call.

        The batch size is set to 1 and every recurrent state starts from its
        initial node's own value.
        """
        if not self.is_rnn:
            raise RecurrentStateError("Continuous feeding needs a recurrent network")
        if self.rnn_state in (RNNState.STARTED, RNNState.STEPPING):
            logger.warning("Continuous feeding restarted without rnn_end()")
        self.set_batch_size(1)
        self._states = {}
        self.rnn_state = RNNState.STARTED
        logger.debug("Continuous feeding started (%d states)", len(self.recurrences))

    def rnn_end(self) -> None:
        """Ends continuous feeding and forgets the carried states."""
        if self.rnn_state not in (RNNState.STARTED, RNNState.STEPPING):
            raise RecurrentStateError(f"rnn_end() called in state {self.rnn_state.value}")
        self._states = {}
        self.rnn_state = RNNState.ENDED
        logger.debug("Continuous feeding ended")

    # Structure

    def unroll(self, length: int, cost_reduction: Optional[str] = None) -> "Network":
        """
        Expands the recurrence into ``length`` time steps.

        See ``DAGpy.core.unroll.unroll``.
        """
        from .unroll import unroll

        return unroll(self, length, cost_reduction=cost_reduction)

    def delete(self) -> None:
        """
        Releases the activations this network owns. A network that owns its
        flat arrays also drops them; a derived network leaves them alone.
        """
        self._buffers.release(self.nodes, self._owned)
        if self._buffers.owns_buffers:
            self._buffers = BufferAllocator(self.config.dtype)
        else:
            self._buffers = BufferAllocator.share(self._buffers)
        self.nodes = []
        self.engine = AutogradEngine([])
        self.recurrences = []
        self.batch_size = 0

    def __repr__(self) -> str:
        return (
            f"Network(n_nodes={self.n_nodes}, size_var={self.size_var}, "
            f"size_const={self.size_const}, batch_size={self.batch_size})"
        )

