from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import NDArray


@dataclass
class Context:
    """
    Per-node storage for operator arguments and saved intermediates.

    Every operator node owns one Context. Arguments are fixed when the node
    is built (an axis, a slice range, a reshape target) and are written out
    when a network is saved. Intermediates are produced by the forward pass
    and read back by the backward pass, e.g. a dropout mask.

    Attributes:
        _arguments: Operator arguments given at construction time
        _intermediate_values: Values stored by the last forward pass
    """

    _arguments: Dict[str, Any] = field(default_factory=dict)
    _intermediate_values: Dict[str, Any] = field(default_factory=dict)

    def save_arguments(self, **kwargs: Any) -> None:
        """
        Saves operator arguments.

        Args:
            **kwargs: Keyword arguments to save
        """
        self._arguments.update(kwargs)

    @property
    def saved_arguments(self) -> Dict[str, Any]:
        """Returns a copy of the saved operator arguments."""
        return self._arguments.copy()

    def argument(self, name: str, default: Any = None) -> Any:
        return self._arguments.get(name, default)

    def store_intermediate(self, name: str, value: Any) -> None:
        """
        Stores a value computed during the forward pass for use by backward.

        Args:
            name: Identifier for the intermediate value
            value: The value to store
        """
        self._intermediate_values[name] = value

    def get_intermediate(self, name: str) -> Any:
        """
        Retrieves a stored intermediate value.

        Raises:
            KeyError: If no value exists for the given name
        """
        return self._intermediate_values[name]

    def clear_intermediates(self) -> None:
        self._intermediate_values.clear()


@dataclass
class EvalContext:
    """
    State of one forward evaluation.

    The evaluation context is handed to every operator's forward method. Only
    mode-sensitive operators (dropout, switch) look at it.

    Attributes:
        training: Whether training-only behaviour (random masks) is active
        rng: Generator used by stochastic operators
        overrides: Values that replace a node's own value, keyed by node id.
            Used to carry recurrent state between continuous-feeding steps.
    """

    training: bool = True
    rng: Optional[np.random.Generator] = None
    overrides: Dict[int, NDArray[Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.rng is None:
            self.rng = np.random.default_rng()
