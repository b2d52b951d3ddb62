"""
Utilities for DAGpy: weight initialisation, gradient checking and training
helpers for simple feed-forward networks.
"""

from .gradcheck import check_grad
from .init import calculate_fan_in_fan_out, normal_array, weight_sigma
from .training import apply1, train_fnn1

__all__ = [
    "calculate_fan_in_fan_out",
    "normal_array",
    "weight_sigma",
    "check_grad",
    "train_fnn1",
    "apply1",
]
