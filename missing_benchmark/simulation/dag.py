import logging
from typing import Tuple

import numpy as np
import pandas as pd

from missing_benchmark.utils.errors import InvalidArgument


def node_labels(p: int) -> list[str]:
    return [f"V{i + 1}" for i in range(p)]


def random_dag(
    p: int,
    en: float,
    rng: np.random.Generator,
    weight_range: Tuple[float, float] = (0.1, 1.0),
    signed: bool = False,
) -> pd.DataFrame:
    """Draw a random weighted DAG over ``p`` nodes.

    Each pair ``i < j`` receives the edge ``V_i -> V_j`` independently with
    probability ``en / (p - 1)``, so a node has ``en`` neighbours on average
    and edges only point forward in label order.

    Parameters
    ----------
    p:
        Number of nodes, at least 2.
    en:
        Expected neighbourhood size, strictly between 0 and ``p - 1``.
    rng:
        Source of randomness.
    weight_range:
        Edge weights are drawn uniformly from this interval.
    signed:
        Flip the sign of each weight with probability 1/2.

    Returns
    -------
    pd.DataFrame
        ``p x p`` weighted adjacency, entry ``[u, v]`` is the weight of
        ``u -> v``.
    """
    if int(p) != p or p < 2:
        raise InvalidArgument(f"p must be an integer >= 2, got {p}")
    p = int(p)
    if not 0 < en < p - 1:
        raise InvalidArgument(f"en must lie in (0, {p - 1}), got {en}")
    low, high = weight_range
    if not 0 <= low <= high:
        raise InvalidArgument(f"Invalid weight_range {weight_range}")

    prob = en / (p - 1)
    upper = np.triu_indices(p, k=1)
    present = rng.random(len(upper[0])) < prob
    weights = rng.uniform(low, high, size=len(upper[0]))
    if signed:
        weights *= rng.choice([-1.0, 1.0], size=len(weights))

    mat = np.zeros((p, p))
    mat[upper] = np.where(present, weights, 0.0)

    labels = node_labels(p)
    logging.getLogger("benchmark").debug(
        "Random DAG: p=%d en=%.2f prob=%.3f edges=%d", p, en, prob, int(present.sum())
    )
    return pd.DataFrame(mat, index=labels, columns=labels)


def edge_count(adj: pd.DataFrame) -> int:
    return int((adj.to_numpy() != 0).sum())
