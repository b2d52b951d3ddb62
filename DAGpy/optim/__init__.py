"""
Optimization for DAGpy.

Optimizers update a network's variable buffer from its gradient buffer.
"""

from .clip import clip_grad_norm
from .optimizer import Optimizer
from .rmsprop import RMSprop, rmsprop

__all__ = ["Optimizer", "RMSprop", "rmsprop", "clip_grad_norm"]
