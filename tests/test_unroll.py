import pytest
import numpy as np
from DAGpy import nn
from DAGpy.core import (
    F_COST,
    F_IN,
    F_OUT,
    F_TRUTH,
    Builder,
    Config,
    EvalContext,
    Network,
    RecurrentStateError,
    RNNState,
    UnrollError,
    use_builder,
)
from DAGpy.core.unroll import ONCE, POOL, SHARED, STEP, classify
from DAGpy.ops import Avg, CMul, Sum, mse, select, sum_
from DAGpy.utils import check_grad


def build_rnn(layer=nn.rnn, n_in=2, n_hidden=3, n_out=2, depth=1, seed=3, **config):
    """Per-step regression network: input -> recurrent layers -> linear -> mse."""
    with use_builder(Builder(Config(seed=seed, **config))):
        h = nn.input(n_in)
        for _ in range(depth):
            h = layer(h, n_hidden)
        cost = nn.cost(h, n_out, nn.CostType.MSE)
    return Network(cost)


def sequence(length, n, seed):
    rng = np.random.default_rng(seed)
    return [rng.normal(size=n) for _ in range(length)]


def bind(net, length, n_in=2, n_out=2):
    net.feed_bind(F_IN, 0, sequence(length, n_in, 10))
    net.feed_bind(F_TRUTH, 0, sequence(length, n_out, 20))


class TestAutoPooling:
    """Tests for the pooling node added to recurrent costs"""

    def test_cost_wrapped_in_mean(self):
        net = build_rnn()
        assert net.is_rnn
        pool = net.nodes[net.find(F_COST)]
        assert pool.op is Avg
        assert pool is net.roots[0]
        assert len(pool.children) == 1
        assert not pool.children[0].ext_flag & F_COST

    def test_sum_reduction_from_config(self):
        net = build_rnn(cost_reduction="sum")
        assert net.nodes[net.find(F_COST)].op is Sum

    def test_existing_pooling_is_kept(self):
        b = Builder(Config(seed=0))
        x = b.feed(1, 2, flag=F_IN)
        h = nn.rnn(x, 3)
        last = select([h])
        t = b.feed(1, 3, flag=F_TRUTH)
        net = Network(mse(last, t))
        assert net.n_nodes == len(b.nodes)
        assert net.nodes[net.find(F_COST)].op.name == "mse"


class TestClassify:
    def test_regions(self):
        b = Builder(Config(seed=0))
        x = b.feed(1, 2, flag=F_IN)
        w = b.var((3, 3))
        shared = CMul.apply(w, w)
        h = nn.rnn(x, 3)
        last = select([h])
        t = b.feed(1, 3, flag=F_TRUTH)
        cost = mse(CMul.apply(last, shared), t)
        net = Network(cost)
        region = classify(net.nodes)
        assert region[x.id] == STEP
        assert region[h.id] == STEP
        assert region[h.pre.id] == STEP
        assert region[last.id] == POOL
        assert region[t.id] == ONCE
        assert region[cost.id] == ONCE
        assert region[w.id] == SHARED
        assert region[shared.id] == SHARED


class TestUnroll:
    """Tests for unrolled networks"""

    def setup_method(self):
        self.net = build_rnn()
        self.length = 3
        self.unrolled = self.net.unroll(self.length)

    def test_invalid_arguments(self):
        with pytest.raises(UnrollError):
            self.net.unroll(0)
        with pytest.raises(UnrollError):
            self.net.unroll(True)
        with pytest.raises(UnrollError):
            self.net.unroll(2, cost_reduction="max")
        b = Builder()
        plain = Network(mse(b.feed(1, 2), b.feed(1, 2)))
        with pytest.raises(UnrollError):
            plain.unroll(2)

    def test_per_step_cost_rejected(self):
        b = Builder(Config(seed=0))
        x = b.feed(1, 2, flag=F_IN)
        h = nn.rnn(x, 3)
        t = b.feed(1, 3, flag=F_TRUTH)
        net = Network(mse(h, t), sum_([h]))
        with pytest.raises(UnrollError):
            net.unroll(2)

    def test_no_recurrence_left(self):
        assert not self.unrolled.is_rnn
        assert self.unrolled.n_nodes > self.net.n_nodes

    def test_base_untouched(self):
        n_nodes = self.net.n_nodes
        self.net.unroll(4)
        assert self.net.n_nodes == n_nodes
        assert self.net.is_rnn

    def test_buffers_shared(self):
        assert self.unrolled.x is self.net.x
        assert self.unrolled.g is self.net.g
        assert self.unrolled.c is self.net.c
        assert self.net.owns_buffers
        assert not self.unrolled.owns_buffers
        assert self.unrolled.size_var == self.net.size_var

    def test_feeds_per_step(self):
        assert self.unrolled.feed_bind(F_IN, 0, sequence(3, 2, 0)) == self.length
        assert self.unrolled.feed_bind(F_TRUTH, 0, sequence(3, 2, 1)) == self.length

    def test_single_cost(self):
        cost = self.unrolled.nodes[self.unrolled.find(F_COST)]
        assert cost.op is Avg
        assert len(cost.children) == self.length

    def test_gradients_land_in_shared_buffer(self):
        bind(self.unrolled, self.length)
        self.unrolled.cost()
        assert np.any(self.net.g != 0)

    def test_optimizer_update_seen_by_base(self):
        w = next(n for n in self.net.nodes if n.is_var)
        before = w.value.copy()
        self.unrolled.x[:] += 1.0
        assert np.allclose(w.value, before + 1.0)

    def test_gradient_check(self):
        net = build_rnn(depth=2)
        unrolled = net.unroll(3)
        bind(unrolled, 3)
        assert check_grad(unrolled) == []

    def test_sum_is_length_times_mean(self):
        mean_net = self.net.unroll(self.length)
        sum_net = self.net.unroll(self.length, cost_reduction="sum")
        bind(mean_net, self.length)
        bind(sum_net, self.length)
        mean_cost = mean_net.cost()
        mean_grad = self.net.g.copy()
        sum_cost = sum_net.cost()
        assert np.isclose(sum_cost, self.length * mean_cost)
        assert np.allclose(self.net.g, self.length * mean_grad)

    def test_gradient_sums_step_gradients(self):
        net = build_rnn(cost_reduction="sum")
        # Without the recurrent weight every step depends on its own input only
        u = next(n for n in net.nodes if n.is_var and n.shape == (3, 3))
        u.value[...] = 0.0
        xs, ts = sequence(3, 2, 10), sequence(3, 2, 20)

        unrolled = net.unroll(3)
        unrolled.feed_bind(F_IN, 0, xs)
        unrolled.feed_bind(F_TRUTH, 0, ts)
        total = unrolled.cost()
        unrolled_grad = net.g.copy()

        step_costs = 0.0
        step_grads = np.zeros_like(net.g)
        for x, t in zip(xs, ts):
            net.feed_bind(F_IN, 0, [x])
            net.feed_bind(F_TRUTH, 0, [t])
            step_costs += net.cost()
            step_grads += net.g

        assert np.isclose(total, step_costs)
        # The recurrent weight sees the previous state only when unrolled
        mask = np.ones(net.size_var, dtype=bool)
        mask[net.offsets[u.id]:net.offsets[u.id] + u.size] = False
        assert np.allclose(unrolled_grad[mask], step_grads[mask])

    def test_length_one_matches_base(self):
        one = self.net.unroll(1)
        xs, ts = sequence(1, 2, 10), sequence(1, 2, 20)
        for net in (self.net, one):
            net.feed_bind(F_IN, 0, xs)
            net.feed_bind(F_TRUTH, 0, ts)
        assert np.isclose(one.cost(grad=False), self.net.cost(grad=False))

    def test_batched_unroll(self):
        self.unrolled.set_batch_size(4)
        xs = [np.random.default_rng(i).normal(size=(4, 2)) for i in range(self.length)]
        ts = [np.zeros((4, 2)) for _ in range(self.length)]
        self.unrolled.feed_bind(F_IN, 0, xs)
        self.unrolled.feed_bind(F_TRUTH, 0, ts)
        assert np.isfinite(self.unrolled.cost())
        assert self.net.batch_size == 1

    def test_delete_leaves_base_intact(self):
        x = self.net.x.copy()
        self.unrolled.delete()
        assert np.array_equal(self.net.x, x)
        bind(self.net, 1)
        assert np.isfinite(self.net.cost())

    @pytest.mark.parametrize("layer", [nn.lstm, nn.gru])
    def test_gated_layers(self, layer):
        net = build_rnn(layer=layer, seed=7)
        assert net.is_rnn
        unrolled = net.unroll(2)
        bind(unrolled, 2)
        assert check_grad(unrolled) == []


class TestManyToOne:
    """A recurrent encoder whose last state feeds a single prediction"""

    def setup_method(self):
        b = Builder(Config(seed=4))
        x = b.feed(1, 2, flag=F_IN)
        h = nn.rnn(x, 3)
        self.out = nn.linear(select([h]), 1)
        self.out.ext_flag |= F_OUT
        self.truth = b.feed(1, 1, flag=F_TRUTH)
        self.net = Network(mse(self.out, self.truth))

    def test_truth_fed_once(self):
        unrolled = self.net.unroll(4)
        assert unrolled.feed_bind(F_IN, 0, sequence(4, 2, 0)) == 4
        assert unrolled.feed_bind(F_TRUTH, 0, [np.array([0.5])]) == 1
        assert unrolled.find(F_OUT) >= 0
        assert unrolled.dim_out == 1
        assert check_grad(unrolled) == []


class TestContinuousFeeding:
    """Tests for feeding a recurrent network one step at a time"""

    def setup_method(self):
        self.net = build_rnn(depth=2)

    def test_matches_unrolled_outputs(self):
        length = 4
        xs = sequence(length, 2, 30)
        unrolled = self.net.unroll(length)
        unrolled.feed_bind(F_IN, 0, xs)
        unrolled.eval(F_OUT)
        outs = sorted((n for n in unrolled.nodes if n.ext_flag & F_OUT), key=lambda n: n.id)
        expected = [n.value.copy() for n in outs]

        out = self.net.nodes[self.net.find(F_OUT)]
        self.net.rnn_start()
        assert self.net.rnn_state is RNNState.STARTED
        stepped = []
        for x in xs:
            self.net.feed_bind(F_IN, 0, [x])
            self.net.eval(F_OUT)
            stepped.append(out.value.copy())
        assert self.net.rnn_state is RNNState.STEPPING
        self.net.rnn_end()
        assert self.net.rnn_state is RNNState.ENDED

        assert len(expected) == length
        for got, want in zip(stepped, expected):
            assert np.allclose(got, want)

    def test_restart_resets_state(self):
        x = sequence(1, 2, 5)
        out = self.net.nodes[self.net.find(F_OUT)]
        self.net.rnn_start()
        self.net.feed_bind(F_IN, 0, x)
        self.net.eval(F_OUT)
        first = out.value.copy()
        self.net.eval(F_OUT)
        self.net.rnn_start()
        self.net.feed_bind(F_IN, 0, x)
        self.net.eval(F_OUT)
        assert np.allclose(out.value, first)

    def test_caller_context_untouched(self):
        run = EvalContext(training=False)
        out = self.net.nodes[self.net.find(F_OUT)]
        self.net.rnn_start()
        self.net.feed_bind(F_IN, 0, sequence(1, 2, 5))
        self.net.eval(F_OUT, run=run)
        first = out.value.copy()
        self.net.eval(F_OUT, run=run)
        assert run.overrides == {}
        # The carried state still reaches the second step
        assert not np.allclose(out.value, first)

    def test_state_errors(self):
        with pytest.raises(RecurrentStateError):
            self.net.rnn_end()
        b = Builder()
        plain = Network(mse(b.feed(1, 2), b.feed(1, 2)))
        with pytest.raises(RecurrentStateError):
            plain.rnn_start()

    def test_sets_batch_size_one(self):
        self.net.set_batch_size(5)
        self.net.rnn_start()
        assert self.net.batch_size == 1
