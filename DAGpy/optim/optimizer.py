from typing import Any, Dict, Union, cast

import numpy as np
from numpy.typing import NDArray

from ..core.network import Network

# Define more precise type aliases
OptState = Dict[str, Any]  # Per-optimizer buffers (e.g. RMSprop memory)
OptDefaults = Dict[str, Any]  # Default hyperparameters dictionary
StateDict = Dict[str, Union[OptState, OptDefaults]]


class Optimizer:
    """
    Base class for all optimizers.

    An optimizer works on a network's flat buffers: it reads the gradient
    buffer ``g`` filled by ``Network.cost`` and updates the variable buffer
    ``x`` in place. Every node of the network, and of any network unrolled
    from it, sees the update because variables are views into ``x``.

    Args:
        network: Network whose variables are optimized
        defaults: Dictionary of default hyperparameter values for the optimizer
    """

    def __init__(self, network: Network, defaults: OptDefaults) -> None:
        self.defaults = defaults
        self.x: NDArray[Any] = network.x
        self.g: NDArray[Any] = network.g
        self.state: OptState = {}

    def zero_grad(self) -> None:
        """Clears the gradient buffer."""
        self.g.fill(0)

    def step(self) -> None:
        """
        Performs a single optimization step.

        This method should be overridden by all optimizers to implement
        their specific parameter update rules.

        Raises:
            NotImplementedError: If not implemented by subclass
        """
        raise NotImplementedError

    def state_dict(self) -> StateDict:
        """
        Returns the state of the optimizer as a dictionary.

        The state dictionary has two main components:
        - 'state': Buffers kept between steps
        - 'defaults': Contains the default hyperparameters
        """
        return {
            "state": {k: np.copy(v) if isinstance(v, np.ndarray) else v for k, v in self.state.items()},
            "defaults": dict(self.defaults),
        }

    def load_state_dict(self, state_dict: StateDict) -> None:
        """
        Loads the optimizer state from a dictionary.

        Args:
            state_dict: Dictionary containing optimizer state and defaults
        """
        state = cast(OptState, state_dict["state"])
        for name, value in state.items():
            if isinstance(value, np.ndarray) and value.shape != self.x.shape:
                raise ValueError(
                    f"State buffer '{name}' has shape {value.shape}, expected {self.x.shape}"
                )
        self.state = {k: np.copy(v) if isinstance(v, np.ndarray) else v for k, v in state.items()}
        self.defaults = dict(cast(OptDefaults, state_dict["defaults"]))
