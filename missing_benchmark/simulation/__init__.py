from .dag import random_dag, edge_count, node_labels
from .sampler import sample_linear_gaussian, implied_covariance
from .missingness import MECHANISMS, inject_missingness, missing_rate

__all__ = [
    "random_dag",
    "edge_count",
    "node_labels",
    "sample_linear_gaussian",
    "implied_covariance",
    "MECHANISMS",
    "inject_missingness",
    "missing_rate",
]
