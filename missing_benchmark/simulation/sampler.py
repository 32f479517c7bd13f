import logging

import numpy as np
import pandas as pd

from missing_benchmark.utils.errors import InvalidArgument, NumericalInstability


def implied_covariance(adj: pd.DataFrame, ridge: float = 1e-6) -> np.ndarray:
    """Covariance of the linear SEM ``X = A^T X + eps`` with ``eps ~ N(0, I)``.

    ``ridge * I`` is added to ``I - A^T`` before inversion to keep
    near-singular systems invertible; it slightly biases the result.
    """
    A = np.asarray(adj, dtype=float)
    p = A.shape[0]
    if A.shape != (p, p):
        raise InvalidArgument(f"Adjacency must be square, got shape {A.shape}")
    M = np.eye(p) - A.T + ridge * np.eye(p)
    try:
        M_inv = np.linalg.inv(M)
    except np.linalg.LinAlgError as e:
        raise NumericalInstability(f"I - A^T is singular: {e}") from e
    sigma = M_inv @ M_inv.T
    if not np.all(np.isfinite(sigma)):
        raise NumericalInstability("Implied covariance has non-finite entries")
    return sigma


def sample_linear_gaussian(
    adj: pd.DataFrame,
    n: int,
    rng: np.random.Generator,
    ridge: float = 1e-6,
) -> pd.DataFrame:
    """Draw ``n`` i.i.d. rows from the zero-mean Gaussian implied by ``adj``."""
    if int(n) != n or n < 1:
        raise InvalidArgument(f"n must be a positive integer, got {n}")
    sigma = implied_covariance(adj, ridge=ridge)
    samples = rng.multivariate_normal(np.zeros(sigma.shape[0]), sigma, size=int(n))
    logging.getLogger("benchmark").debug(
        "Sample linear gaussian: nodes=%d n=%d", sigma.shape[0], int(n)
    )
    return pd.DataFrame(samples, columns=list(adj.columns))
