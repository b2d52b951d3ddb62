import pytest
import numpy as np
from DAGpy.core import (
    F_COST,
    F_IN,
    F_OUT,
    F_TRUTH,
    Builder,
    Config,
    GraphError,
    Network,
    Node,
    NodeKind,
    ShapeError,
    get_builder,
    use_builder,
)
from DAGpy.core.node import match_flag, match_label
from DAGpy.ops import Add, CMul, Sigmoid, add, cmul, matmul, mse, reshape


class TestBuilder:
    """Tests for node construction"""

    def setup_method(self):
        self.b = Builder(Config(seed=0))

    def test_ids_follow_creation_order(self):
        x = self.b.feed(1, 3)
        w = self.b.var((2, 3))
        y = cmul(x, w)
        assert [x.id, w.id, y.id] == [0, 1, 2]
        assert self.b.nodes == [x, w, y]
        assert len(self.b) == 3

    def test_leaf_kinds(self):
        x = self.b.feed(1, 4, flag=F_IN, label=5)
        w = self.b.var((4,), value=np.arange(4))
        c = self.b.const((2, 2))
        s = self.b.scalar(0.5)

        assert x.kind is NodeKind.FEED and x.batched
        assert x.ext_flag == F_IN and x.ext_label == 5
        assert w.is_var and w.requires_grad and not w.batched
        assert np.array_equal(w.value, np.arange(4))
        assert c.is_const and not c.requires_grad
        assert np.array_equal(c.value, np.zeros((2, 2)))
        assert s.shape == () and float(s.value) == 0.5

    def test_invalid_leaves(self):
        with pytest.raises(ShapeError):
            self.b.feed()
        with pytest.raises(ShapeError):
            self.b.feed(1, 0)
        with pytest.raises(ShapeError):
            self.b.var((2, 2), value=[1.0, 2.0, 3.0])

    def test_shape_inference(self):
        x = self.b.feed(1, 3)
        w = self.b.var((5, 3))
        y = cmul(x, w)
        assert y.shape == (1, 5)
        assert y.batched
        assert y.requires_grad
        assert y.op is CMul
        assert y.children == [x, w]

    def test_batched_propagation(self):
        w = self.b.var((2, 3))
        u = self.b.var((3, 4))
        y = matmul(w, u)
        assert y.shape == (2, 4)
        assert not y.batched
        assert reshape(self.b.feed(1, 6), [-1, 2, 3]).batched
        assert not reshape(self.b.feed(1, 6), [2, 3]).batched

    def test_inner_dimension_mismatch(self):
        x = self.b.feed(1, 3)
        w = self.b.var((5, 4))
        with pytest.raises(ShapeError):
            cmul(x, w)

    def test_arity_mismatch(self):
        x = self.b.feed(1, 3)
        with pytest.raises(ShapeError):
            self.b.apply(Add, [x])
        with pytest.raises(ShapeError):
            self.b.apply(Sigmoid, [x, x])

    def test_foreign_operand(self):
        other = Builder()
        x = self.b.feed(1, 3)
        y = other.var((3,))
        with pytest.raises(GraphError):
            add(x, y)

    def test_non_node_operand(self):
        with pytest.raises(TypeError):
            Add.apply(np.zeros(3), np.zeros(3))

    def test_operator_overloads(self):
        a = self.b.var((3,))
        c = self.b.const((3,))
        assert (a + c).op.name == "add"
        assert (a - c).op.name == "sub"
        assert (a * c).op.name == "mul"
        assert not c.requires_grad and (a * c).requires_grad

    def test_recur(self):
        x = self.b.feed(1, 3)
        h0 = self.b.const((1, 3))
        h = add(x, h0)
        assert self.b.recur(h, h0) is h
        assert h.pre is h0

    def test_recur_invalid(self):
        x = self.b.feed(1, 3)
        h0 = self.b.const((1, 2))
        with pytest.raises(ShapeError):
            self.b.recur(x, h0)
        with pytest.raises(GraphError):
            self.b.recur(x, x)
        with pytest.raises(GraphError):
            self.b.recur(x, Builder().const((1, 3)))

    def test_clear(self):
        self.b.feed(1, 2)
        self.b.clear()
        assert len(self.b) == 0

    def test_ids_not_reused_after_clear(self):
        old = self.b.var((2,), value=[1.0, 2.0])
        self.b.clear()
        new = self.b.var((2,), value=[5.0, 6.0])
        assert new.id != old.id

        net = Network(mse(old, new))
        assert np.array_equal(old.value, [1.0, 2.0])
        assert np.array_equal(new.value, [5.0, 6.0])
        assert not np.shares_memory(old.value, new.value)
        assert net.size_var == 4


class TestDefaultBuilder:
    """Tests for the default builder"""

    def test_use_builder_restores_previous(self):
        before = get_builder()
        mine = Builder()
        with use_builder(mine) as b:
            assert b is mine
            assert get_builder() is mine
        assert get_builder() is before

    def test_use_builder_creates_fresh(self):
        with use_builder() as b:
            assert isinstance(b, Builder)
            assert len(b) == 0


class TestNodeHelpers:
    """Tests for node properties and flag matching"""

    def test_sizes(self):
        b = Builder()
        x = b.feed(1, 2, 3)
        x.shape = (4, 2, 3)
        assert x.size == 24
        assert x.size_per_sample == 6
        assert x.n_dims == 3
        w = b.var((2, 3))
        assert w.size == w.size_per_sample == 6

    def test_match_flag(self):
        assert match_flag(F_IN, 0)
        assert match_flag(F_IN | F_OUT, F_OUT)
        assert not match_flag(F_TRUTH, F_IN)
        assert match_flag(0, 0)
        assert not match_flag(0, F_COST)

    def test_match_label(self):
        assert match_label(3, 0)
        assert match_label(3, 3)
        assert not match_label(3, 4)

    def test_repr(self):
        b = Builder()
        x = b.feed(1, 2)
        y = Sigmoid.apply(x)
        assert isinstance(y, Node)
        assert "sigm" in repr(y)
        assert "feed" in repr(x)
