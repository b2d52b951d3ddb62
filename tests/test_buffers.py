import pytest
import numpy as np
from DAGpy.core import BufferAllocator, Builder, Config, Network, ShapeError, topological_sort
from DAGpy.ops import add, cmul, mse, reshape, tanh


class TestCollate:
    """Tests for packing variables and constants"""

    def setup_method(self):
        self.b = Builder(Config(seed=0))
        self.w = self.b.var((2, 3), value=np.arange(6.0))
        self.bias = self.b.var((2,), value=[10.0, 20.0])
        self.c = self.b.const((2,), value=[0.5, 0.25])
        x = self.b.feed(1, 3)
        self.y = add(add(cmul(x, self.w), self.bias), self.c)
        self.nodes = topological_sort([self.y])
        self.alloc = BufferAllocator()
        self.alloc.collate(self.nodes)

    def test_flat_layout(self):
        assert self.alloc.size_var == 8
        assert self.alloc.size_const == 2
        assert self.alloc.g.shape == self.alloc.x.shape
        assert np.array_equal(self.alloc.x, [0, 1, 2, 3, 4, 5, 10, 20])
        assert np.array_equal(self.alloc.c, [0.5, 0.25])
        assert self.alloc.offsets[self.w.id] == 0
        assert self.alloc.offsets[self.bias.id] == 6
        assert self.alloc.offsets[self.c.id] == 0

    def test_leaves_are_views(self):
        self.alloc.x[0] = 100.0
        assert self.w.value[0, 0] == 100.0
        self.bias.grad[1] = 7.0
        assert self.alloc.g[7] == 7.0
        assert self.c.grad is None
        assert np.shares_memory(self.c.value, self.alloc.c)

    def test_infer_shapes_does_not_mutate(self):
        shapes = BufferAllocator.infer_shapes(self.nodes, 5)
        assert shapes[self.y.id] == (5, 2)
        assert self.y.shape == (1, 2)

    def test_invalid_batch_size(self):
        with pytest.raises(ShapeError):
            BufferAllocator.infer_shapes(self.nodes, 0)


class TestResize:
    """Tests for batch size changes"""

    def setup_method(self):
        self.b = Builder(Config(seed=0))
        self.x = self.b.feed(1, 3)
        self.t = self.b.feed(1, 2)
        self.w = self.b.var((2, 3), value=np.random.default_rng(0).normal(size=(2, 3)))
        self.h = tanh(cmul(self.x, self.w))
        self.net = Network(mse(self.h, self.t))

    def test_resize_preserves_variables(self):
        before = self.net.x.copy()
        self.net.set_batch_size(7)
        assert self.net.batch_size == 7
        assert self.h.shape == (7, 2)
        assert self.h.value.shape == (7, 2)
        assert self.w.shape == (2, 3)
        self.net.set_batch_size(1)
        assert self.h.value.shape == (1, 2)
        assert np.array_equal(self.net.x, before)
        assert self.net.g.size == self.net.x.size

    def test_resize_unbinds_feeds(self):
        self.net.feed_bind(0, 0, [np.ones((1, 3)), np.ones((1, 2))])
        self.net.set_batch_size(2)
        assert self.x.value is None

    def test_offsets_stable_across_resize(self):
        offsets = dict(self.net.offsets)
        self.net.set_batch_size(4)
        assert self.net.offsets == offsets

    def test_failed_resize_changes_nothing(self):
        b = Builder()
        x = b.feed(1, 4)
        w = b.var((2, 2), value=np.ones((2, 2)))
        # A fixed reshape target only fits a batch of one
        y = cmul(reshape(x, [2, 2]), w)
        target = b.const((2, 2))
        net = Network(mse(y, target))
        value = y.value

        with pytest.raises(ShapeError):
            net.set_batch_size(3)
        assert net.batch_size == 1
        assert x.shape == (1, 4)
        assert y.value is value
        assert y.shape == (2, 2)

    def test_release(self):
        BufferAllocator.release(self.net.nodes)
        assert self.h.value is None
        assert self.w.value is not None
