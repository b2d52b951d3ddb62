from typing import Any, Sequence, Tuple, Union

import numpy as np
from numpy.typing import DTypeLike, NDArray


def calculate_fan_in_fan_out(shape: Sequence[int]) -> Tuple[int, int]:
    """
    Calculate fan-in and fan-out of a weight shape.

    Args:
        shape: Weight shape, rows first

    Returns:
        Tuple of (fan_in, fan_out)

    Note:
        Weights are stored as (n_out, n_in) and applied as x W^T, so fan_in
        is the number of columns and fan_out the number of rows. A vector
        (e.g. a bias) has fan_in 1.
    """
    dimensions = tuple(shape)

    if len(dimensions) == 1:
        fan_in, fan_out = 1, dimensions[0]

    elif len(dimensions) == 2:
        fan_in, fan_out = dimensions[1], dimensions[0]

    elif len(dimensions) > 2:
        receptive_field_size = int(np.prod(dimensions[2:]))
        fan_in = dimensions[1] * receptive_field_size
        fan_out = dimensions[0] * receptive_field_size

    else:
        raise ValueError(f"shape should have at least 1 dimension, got {dimensions}")

    return fan_in, fan_out


def normal_array(
    rng: np.random.Generator,
    sigma: float,
    shape: Union[int, Sequence[int]],
    dtype: DTypeLike = np.float64,
) -> NDArray[Any]:
    """Draws an array from N(0, sigma^2)."""
    return rng.normal(0.0, sigma, size=shape).astype(dtype)


def weight_sigma(shape: Sequence[int]) -> float:
    """Standard deviation 1/sqrt(fan_in) used for new weights."""
    fan_in, _ = calculate_fan_in_fan_out(shape)
    return 1.0 / np.sqrt(fan_in)
