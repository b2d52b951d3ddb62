import logging
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ..core.exceptions import BindingError
from ..core.node import F_IN, F_OUT, F_TRUTH
from ..core.network import Network
from ..optim.rmsprop import RMSprop

logger = logging.getLogger(__name__)


def _check_fnn1(network: Network) -> None:
    if network.dim_in < 0 or network.find(F_OUT) < 0:
        raise BindingError("Network needs exactly one input feed and one output node")
    if network.dim_out < 0:
        raise BindingError("Network needs exactly one truth feed")


def train_fnn1(
    network: Network,
    x: ArrayLike,
    y: ArrayLike,
    lr: float = 0.001,
    mini_size: int = 64,
    max_epoch: int = 25,
    max_drop_streak: int = 10,
    frac_val: float = 0.1,
) -> int:
    """
    Trains a network with one input and one output on in-memory data.

    The samples are shuffled and a fraction is held out for validation.
    Each epoch runs RMSprop over shuffled mini-batches in training mode and
    then measures the validation cost in prediction mode. Training stops
    after ``max_drop_streak`` epochs without improvement, and the variables
    with the lowest validation cost are restored.

    Args:
        network: Network to train
        x: Inputs, one sample per row
        y: Truth, one sample per row
        lr: Learning rate
        mini_size: Mini-batch size
        max_epoch: Maximum number of epochs
        max_drop_streak: Epochs without validation improvement before
            stopping
        frac_val: Fraction of samples used for validation

    Returns:
        Number of epochs run
    """
    _check_fnn1(network)
    x = np.asarray(x, dtype=network.config.dtype).reshape(-1, network.dim_in)
    y = np.asarray(y, dtype=network.config.dtype).reshape(-1, network.feed_dim(F_TRUTH))
    if x.shape[0] != y.shape[0]:
        raise ValueError(f"Got {x.shape[0]} inputs but {y.shape[0]} truth rows")
    if not 0.0 <= frac_val < 1.0:
        raise ValueError(f"Invalid validation fraction: {frac_val}")

    rng = network.rng
    n = x.shape[0]
    n_val = int(n * frac_val)
    n_train = n - n_val
    shuffled = rng.permutation(n)
    train_idx, val_idx = shuffled[:n_train], shuffled[n_train:]

    optimizer = RMSprop(network, lr=lr, decay=0.9)
    level = logging.INFO if network.config.verbose > 0 else logging.DEBUG
    best_x = network.x.copy()
    best_cost = np.inf
    drop_streak = 0

    epoch = 0
    for epoch in range(max_epoch):
        rng.shuffle(train_idx)
        network.switch(True)
        train_cost, n_err, n_base = 0.0, 0, 0
        for start in range(0, n_train, mini_size):
            batch = train_idx[start : start + mini_size]
            network.set_batch_size(len(batch))
            network.feed_bind(F_IN, 0, [x[batch]])
            network.feed_bind(F_TRUTH, 0, [y[batch]])
            train_cost += network.cost(0, grad=True) * len(batch)
            err, base = network.class_error()
            n_err += err
            n_base += base
            optimizer.step()

        network.switch(False)
        val_cost = 0.0
        for start in range(0, n_val, mini_size):
            batch = val_idx[start : start + mini_size]
            network.set_batch_size(len(batch))
            network.feed_bind(F_IN, 0, [x[batch]])
            network.feed_bind(F_TRUTH, 0, [y[batch]])
            val_cost += network.cost(0, grad=False) * len(batch)

        train_cost /= max(n_train, 1)
        message = f"epoch {epoch + 1}: training cost {train_cost:.6g}"
        if n_base > 0:
            message += f" (class error {100.0 * n_err / n_base:.2f}%)"
        if n_val > 0:
            val_cost /= n_val
            message += f"; validation cost {val_cost:.6g}"
        logger.log(level, message)

        if n_val > 0:
            if val_cost < best_cost:
                best_cost = val_cost
                best_x[:] = network.x
                drop_streak = 0
            else:
                drop_streak += 1
                if drop_streak >= max_drop_streak:
                    break

    if n_val > 0:
        network.x[:] = best_x
    return epoch + 1


def apply1(network: Network, x: ArrayLike) -> NDArray[Any]:
    """
    Computes the output of a one-input, one-output network for one sample.

    Returns:
        A copy of the output values
    """
    _check_fnn1(network)
    sample = np.asarray(x, dtype=network.config.dtype)
    if sample.size != network.dim_in:
        raise BindingError(f"Expected {network.dim_in} input values, got {sample.size}")
    network.set_batch_size(1)
    network.feed_bind(F_IN, 0, [sample])
    network.eval(F_OUT)
    return network.value(network.find(F_OUT)).reshape(-1).copy()
