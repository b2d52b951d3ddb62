from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import DTypeLike

COST_REDUCTIONS = ("mean", "sum")


@dataclass
class Config:
    """
    Settings shared by a builder and the networks assembled from it.

    Attributes:
        seed: Seed for every random generator derived from this config.
            None draws fresh entropy.
        dtype: Numpy dtype of all value, gradient and constant buffers
        cost_reduction: How the per-step costs of a recurrent network are
            pooled into a single scalar: 'mean' or 'sum'
        verbose: When positive, training progress is logged at INFO level
    """

    seed: Optional[int] = None
    dtype: DTypeLike = np.float64
    cost_reduction: str = "mean"
    verbose: int = 0

    def __post_init__(self) -> None:
        if self.cost_reduction not in COST_REDUCTIONS:
            raise ValueError(
                f"Invalid cost reduction: {self.cost_reduction} "
                f"(expected one of {COST_REDUCTIONS})"
            )
        if not np.issubdtype(np.dtype(self.dtype), np.floating):
            raise ValueError(f"dtype must be a floating point type, got {self.dtype}")
        if self.verbose < 0:
            raise ValueError(f"Invalid verbosity: {self.verbose}")

    def make_rng(self) -> np.random.Generator:
        """Returns a new generator seeded from this config."""
        return np.random.default_rng(self.seed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "dtype": np.dtype(self.dtype).name,
            "cost_reduction": self.cost_reduction,
            "verbose": self.verbose,
        }
