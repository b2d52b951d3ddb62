import logging

import pytest
import numpy as np
from DAGpy import nn
from DAGpy.core import F_IN, F_TRUTH, BindingError, Builder, Config, Network, use_builder
from DAGpy.ops import MSE, mse
from DAGpy.utils import (
    apply1,
    calculate_fan_in_fan_out,
    check_grad,
    normal_array,
    train_fnn1,
    weight_sigma,
)


class TestInit:
    """Tests for weight initialisation helpers"""

    def test_fan_in_fan_out(self):
        assert calculate_fan_in_fan_out((4, 3)) == (3, 4)
        assert calculate_fan_in_fan_out((5,)) == (1, 5)
        assert calculate_fan_in_fan_out((2, 3, 4)) == (12, 8)
        with pytest.raises(ValueError):
            calculate_fan_in_fan_out(())

    def test_weight_sigma(self):
        assert np.isclose(weight_sigma((10, 4)), 0.5)

    def test_normal_array(self):
        a = normal_array(np.random.default_rng(0), 0.1, (200, 50), np.float32)
        assert a.dtype == np.float32
        assert a.shape == (200, 50)
        assert abs(a.mean()) < 0.01
        assert np.isclose(a.std(), 0.1, rtol=0.05)

    def test_seeded_builders_agree(self):
        first = nn.weight(3, 4, Builder(Config(seed=42)))
        second = nn.weight(3, 4, Builder(Config(seed=42)))
        assert np.array_equal(first.value, second.value)


class TestCheckGrad:
    def test_reports_wrong_gradient(self, monkeypatch):
        b = Builder(Config(seed=0))
        w = b.var((3,), value=[0.1, 0.2, 0.3])
        target = b.const((3,), value=[1.0, 1.0, 1.0])
        net = Network(mse(w, target))
        assert check_grad(net) == []

        original = MSE.backward

        def doubled(ctx, grad_output, output, pred, truth):
            grads = original(ctx, grad_output, output, pred, truth)
            return (grads[0] * 2.0,) + tuple(grads[1:])

        monkeypatch.setattr(MSE, "backward", staticmethod(doubled))
        assert check_grad(net) == [0, 1, 2]

    def test_subset_of_indices(self):
        b = Builder(Config(seed=0))
        w = b.var((4,), value=[0.1, 0.2, 0.3, 0.4])
        net = Network(mse(w, b.const((4,))))
        assert check_grad(net, indices=[1, 3]) == []


class TestTraining:
    """Tests for the feed-forward training helpers"""

    def setup_method(self):
        with use_builder(Builder(Config(seed=1))):
            x = nn.input(2)
            h = nn.linear(x, 8)
            cost = nn.cost(h, 2, nn.CostType.CEM)
        self.net = Network(cost)
        rng = np.random.default_rng(0)
        self.x = rng.normal(size=(200, 2))
        labels = (self.x[:, 0] + self.x[:, 1] > 0).astype(int)
        self.y = np.eye(2)[labels]

    def loss(self):
        self.net.switch(False)
        self.net.set_batch_size(len(self.x))
        self.net.feed_bind(F_IN, 0, [self.x])
        self.net.feed_bind(F_TRUTH, 0, [self.y])
        return self.net.cost(grad=False)

    def test_train_reduces_cost(self):
        before = self.loss()
        epochs = train_fnn1(self.net, self.x, self.y, lr=0.01, mini_size=16, max_epoch=10)
        assert 1 <= epochs <= 10
        assert self.loss() < before

    def test_train_without_validation(self):
        epochs = train_fnn1(self.net, self.x, self.y, lr=0.01, max_epoch=3, frac_val=0.0)
        assert epochs == 3

    def test_train_logs_progress(self, caplog):
        self.net.config.verbose = 1
        with caplog.at_level(logging.INFO, logger="DAGpy.utils.training"):
            train_fnn1(self.net, self.x, self.y, max_epoch=2)
        assert "epoch 1" in caplog.text

    def test_train_invalid_data(self):
        with pytest.raises(ValueError):
            train_fnn1(self.net, self.x, self.y[:10])
        with pytest.raises(ValueError):
            train_fnn1(self.net, self.x, self.y, frac_val=1.0)

    def test_apply1(self):
        out = apply1(self.net, [0.3, -0.2])
        assert out.shape == (2,)
        assert np.isclose(out.sum(), 1.0)
        out[0] = 99.0
        assert apply1(self.net, [0.3, -0.2])[0] != 99.0

    def test_apply1_wrong_size(self):
        with pytest.raises(BindingError):
            apply1(self.net, [1.0, 2.0, 3.0])

    def test_needs_single_input(self):
        b = Builder()
        a = b.feed(1, 2, flag=F_IN)
        c = b.feed(1, 2, flag=F_IN)
        net = Network(mse(a, c))
        with pytest.raises(BindingError):
            apply1(net, [1.0, 2.0])
