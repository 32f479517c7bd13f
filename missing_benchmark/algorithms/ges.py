import time
import networkx as nx
import pandas as pd

from typing import Tuple, Dict

from missing_benchmark.utils.errors import LearnerFailure
from missing_benchmark.utils.helpers import causallearn_to_dag

import numpy as np
import logging

# causal-learn's score functions still call np.mat, removed in numpy 2.0
if not hasattr(np, "mat"):
    np.mat = np.asmatrix

try:
    from causallearn.search.ScoreBased.GES import ges
except Exception:
    ges = None

REQUIRES_COMPLETE_DATA = True


def run(
    data: pd.DataFrame, score_func: str = "bic", max_parents: int | None = None
) -> Tuple[nx.DiGraph, Dict[str, object]]:
    logger = logging.getLogger("benchmark")
    if ges is None:
        raise ImportError(
            "causal-learn is required for the GES algorithm. Install via pip install causal-learn."
        )
    if data.isna().to_numpy().any():
        raise LearnerFailure("GES requires complete data; filter incomplete rows first")

    logger.info("GES start: n=%d d=%d score_func=%s", len(data), data.shape[1], score_func)
    start = time.perf_counter()
    # map commonly used shorthand score names to those expected by causal-learn
    score_map = {
        "bic": "local_score_BIC",
        "bdeu": "local_score_BDeu",
        "cv": "local_score_CV_general",
        "marginal": "local_score_marginal_general",
    }
    cl_score = score_map.get(score_func.lower(), score_func)
    record = ges(data.to_numpy(dtype=float), score_func=cl_score, maxP=max_parents)
    runtime = time.perf_counter() - start

    if hasattr(record["G"], "graph"):
        amat = record["G"].graph
    elif hasattr(record["G"], "get_graph"):
        amat = record["G"].get_graph()
    else:
        raise AttributeError("Unknown graph representation returned by GES")

    dag, meta = causallearn_to_dag(amat, data.columns)
    meta.update({
        "runtime_s": runtime,
        "score_func": score_func,
        "score": float(np.asarray(record.get("score", np.nan)).ravel()[0]),
    })
    logger.info("GES end: edges=%d runtime_s=%.3f score_func=%s", dag.number_of_edges(), runtime, score_func)
    return dag, meta
