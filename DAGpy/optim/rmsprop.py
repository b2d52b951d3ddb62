from typing import Any, Dict, Optional, Union

import numpy as np
from numpy.typing import NDArray

from ..core.network import Network
from .optimizer import Optimizer


def rmsprop(
    lr: float,
    decay: float,
    g: NDArray[Any],
    x: NDArray[Any],
    r: NDArray[Any],
    h: Optional[NDArray[Any]] = None,
    eps: float = 1e-6,
) -> None:
    """
    One RMSprop update, in place:

        r = (1 - decay) * g^2 + decay * r
        x -= lr_i * g / sqrt(eps + r)

    Args:
        lr: Global learning rate, used where ``h`` is None
        decay: Decay of the squared-gradient average; 0.9 if unsure
        g: Gradients
        x: Variables to update
        r: Running average of squared gradients, same size as ``x``
        h: Optional per-variable learning rates
        eps: Term added inside the square root for numerical stability
    """
    if not (g.shape == x.shape == r.shape):
        raise ValueError(f"Buffer shapes differ: g {g.shape}, x {x.shape}, r {r.shape}")
    r *= decay
    r += (1.0 - decay) * g * g
    rate = lr if h is None else h
    x -= rate * g / np.sqrt(eps + r)


class RMSprop(Optimizer):
    """
    Implements RMSprop over a network's flat buffers.

    Args:
        network: Network to optimize
        lr: Learning rate (default: 0.001)
        decay: Decay of the squared-gradient average (default: 0.9)
        eps: Term added inside the square root (default: 1e-6)
        per_variable_lr: Optional learning rate per entry of ``x``
    """

    def __init__(
        self,
        network: Network,
        lr: float = 0.001,
        decay: float = 0.9,
        eps: float = 1e-6,
        per_variable_lr: Optional[NDArray[Any]] = None,
    ) -> None:
        if not 0.0 <= lr:
            raise ValueError(f"Invalid learning rate: {lr}")
        if not 0.0 <= decay < 1.0:
            raise ValueError(f"Invalid decay value: {decay}")
        if not 0.0 <= eps:
            raise ValueError(f"Invalid epsilon value: {eps}")

        defaults: Dict[str, Union[float, bool]] = dict(lr=lr, decay=decay, eps=eps)
        super().__init__(network, defaults)
        if per_variable_lr is not None and np.shape(per_variable_lr) != self.x.shape:
            raise ValueError(
                f"Per-variable learning rates have shape {np.shape(per_variable_lr)}, "
                f"expected {self.x.shape}"
            )
        self.per_variable_lr = per_variable_lr
        self.state["memory"] = np.zeros_like(self.x)

    def step(self) -> None:
        """Performs a single optimization step."""
        rmsprop(
            self.defaults["lr"],
            self.defaults["decay"],
            self.g,
            self.x,
            self.state["memory"],
            h=self.per_variable_lr,
            eps=self.defaults["eps"],
        )
