from typing import Any

import numpy as np
from numpy.typing import NDArray


def clip_grad_norm(g: NDArray[Any], threshold: float) -> float:
    """
    Scales gradients down to a maximum global L2 norm.

    If the norm of ``g`` exceeds ``threshold``, ``g`` is scaled in place so
    that its norm equals ``threshold``; otherwise it is left alone.

    Args:
        g: Gradient buffer
        threshold: Maximum norm

    Returns:
        The norm before clipping
    """
    if threshold <= 0:
        raise ValueError(f"Invalid clipping threshold: {threshold}")
    norm = float(np.sqrt(np.sum(np.square(g))))
    if norm > threshold:
        g *= threshold / norm
    return norm
