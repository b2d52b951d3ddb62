import logging
from typing import List, Optional

import numpy as np

from ..core.context import EvalContext
from ..core.network import Network

logger = logging.getLogger(__name__)


def check_grad(
    network: Network,
    label: int = 0,
    eps: float = 1e-5,
    rtol: float = 1e-3,
    atol: float = 1e-7,
    indices: Optional[List[int]] = None,
) -> List[int]:
    """
    Compares analytic gradients with central finite differences.

    Feeds must be bound beforehand. The check runs in evaluation mode so
    that dropout masks do not change between the perturbed evaluations.

    Args:
        network: Network to check
        label: Label of the cost node
        eps: Perturbation applied to each variable
        rtol: Relative tolerance
        atol: Absolute tolerance
        indices: Positions in ``x`` to check; all of them by default

    Returns:
        Positions whose analytic and numeric gradients disagree
    """
    run = EvalContext(training=False, rng=network.rng)
    network.cost(label, grad=True, run=run)
    analytic = network.g.copy()

    x = network.x
    positions = range(x.size) if indices is None else indices
    bad: List[int] = []
    for i in positions:
        saved = x[i]
        x[i] = saved + eps
        plus = network.cost(label, grad=False, run=run)
        x[i] = saved - eps
        minus = network.cost(label, grad=False, run=run)
        x[i] = saved
        numeric = (plus - minus) / (2 * eps)
        if not np.isclose(analytic[i], numeric, rtol=rtol, atol=atol):
            logger.debug(
                "Gradient mismatch at %d: analytic %g, numeric %g", i, analytic[i], numeric
            )
            bad.append(i)
    return bad
