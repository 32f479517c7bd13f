"""Two-phase hybrid learner: restrict the candidate edges, then maximize a score.

The restrict phase builds an undirected candidate skeleton, either with
causal-learn's PC (``"pc"``) or with pairwise Fisher-z tests on marginal
correlations (``"marginal"``). The maximize phase runs pgmpy's
``HillClimbSearch`` with the Gaussian BIC (``"bic-g"``) over DAGs whose
adjacencies lie inside the skeleton. ``"hc"`` is plain greedy hill climbing;
``"tabu"`` keeps a tabu list of the last ``tabu_length`` moves so the search
cannot immediately undo them.
"""

import time
import inspect
import logging
from itertools import permutations
from typing import Dict, Set, Tuple

import networkx as nx
import numpy as np
import pandas as pd
from scipy.stats import norm

from missing_benchmark.utils.errors import InvalidArgument, LearnerFailure

try:
    from causallearn.search.ConstraintBased.PC import pc
except Exception:
    pc = None

try:
    from pgmpy.estimators import HillClimbSearch
except Exception:
    HillClimbSearch = None

REQUIRES_COMPLETE_DATA = True

RESTRICT_METHODS = ("pc", "marginal")
MAXIMIZE_METHODS = ("hc", "tabu")


def _marginal_skeleton(X: np.ndarray, alpha: float) -> np.ndarray:
    n, d = X.shape
    if n < 4:
        raise LearnerFailure(f"Fisher-z tests need at least 4 rows, got {n}")
    corr = np.clip(np.corrcoef(X, rowvar=False), -0.999999, 0.999999)
    z = 0.5 * np.log((1 + corr) / (1 - corr)) * np.sqrt(n - 3)
    pvals = 2 * (1 - norm.cdf(np.abs(z)))
    skel = pvals < alpha
    np.fill_diagonal(skel, False)
    return skel


def _pc_skeleton(X: np.ndarray, alpha: float) -> np.ndarray:
    if pc is None:
        raise ImportError(
            "causal-learn is required for the PC restrict phase. Install via pip install causal-learn."
        )
    cg = pc(X, alpha=alpha, indep_test="fisherz", stable=True, show_progress=False)
    amat = np.asarray(cg.G.graph)
    skel = (amat != 0) | (amat.T != 0)
    np.fill_diagonal(skel, False)
    return skel


def _search_space(skel: np.ndarray, cols) -> Set[Tuple[str, str]]:
    """Both orientations of every candidate adjacency."""
    rows, cols_idx = np.nonzero(skel)
    return {(cols[i], cols[j]) for i, j in zip(rows, cols_idx)}


def _restriction_kwargs(estimate, allowed: Set[Tuple[str, str]], cols) -> Dict[str, object]:
    # pgmpy 1.0 replaced white_list with ExpertKnowledge
    if "white_list" in inspect.signature(estimate).parameters:
        return {"white_list": allowed}
    from pgmpy.estimators import ExpertKnowledge

    forbidden = set(permutations(cols, 2)) - allowed
    return {"expert_knowledge": ExpertKnowledge(forbidden_edges=forbidden)}


def run(
    data: pd.DataFrame,
    restrict: str = "pc",
    maximize: str = "hc",
    alpha: float = 0.05,
    max_iter: int = 1000,
    tabu_length: int = 10,
) -> Tuple[nx.DiGraph, Dict[str, object]]:
    logger = logging.getLogger("benchmark")
    if restrict not in RESTRICT_METHODS:
        raise InvalidArgument(f"restrict must be one of {RESTRICT_METHODS}, got {restrict!r}")
    if maximize not in MAXIMIZE_METHODS:
        raise InvalidArgument(f"maximize must be one of {MAXIMIZE_METHODS}, got {maximize!r}")
    if data.isna().to_numpy().any():
        raise LearnerFailure("rsmax requires complete data; filter incomplete rows first")
    if len(data) < 2:
        raise LearnerFailure(f"rsmax needs at least 2 rows, got {len(data)}")
    if HillClimbSearch is None:
        raise ImportError(
            "pgmpy is required for the RSMAX maximize phase. Install via pip install pgmpy."
        )

    cols = [str(c) for c in data.columns]
    frame = pd.DataFrame(data.to_numpy(dtype=float), columns=cols)
    logger.info(
        "RSMAX start: n=%d d=%d restrict=%s maximize=%s alpha=%.3g",
        len(data), data.shape[1], restrict, maximize, alpha,
    )
    start = time.perf_counter()
    X = frame.to_numpy()
    skel = _pc_skeleton(X, alpha) if restrict == "pc" else _marginal_skeleton(X, alpha)
    allowed = _search_space(skel, cols)

    dag = nx.DiGraph()
    dag.add_nodes_from(data.columns)
    if allowed:
        est = HillClimbSearch(frame)
        model = est.estimate(
            scoring_method="bic-g",
            tabu_length=tabu_length if maximize == "tabu" else 0,
            max_iter=max_iter,
            show_progress=False,
            **_restriction_kwargs(est.estimate, allowed, cols),
        )
        labels = dict(zip(cols, data.columns))
        dag.add_edges_from((labels[u], labels[v]) for u, v in model.edges())
    runtime = time.perf_counter() - start

    logger.info(
        "RSMAX end: candidates=%d edges=%d runtime_s=%.3f",
        len(allowed) // 2, dag.number_of_edges(), runtime,
    )
    return dag, {
        "runtime_s": runtime,
        "restrict": restrict,
        "maximize": maximize,
        "candidate_edges": len(allowed) // 2,
        "tabu_length": tabu_length if maximize == "tabu" else 0,
    }
