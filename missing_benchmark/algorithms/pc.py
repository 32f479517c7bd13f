import time
import logging
import networkx as nx
import pandas as pd

from typing import Tuple, Dict

from missing_benchmark.utils.helpers import causallearn_to_dag

try:
    from causallearn.search.ConstraintBased.PC import pc
except Exception:
    pc = None

# test-wise deletion lets PC run on incomplete data
REQUIRES_COMPLETE_DATA = False


def run(
    data: pd.DataFrame,
    alpha: float = 0.05,
    indep_test: str | None = None,
    stable: bool = True,
    mvpc: bool = False,
) -> Tuple[nx.DiGraph, Dict[str, object]]:
    """Learn a CPDAG with causal-learn's PC and return a member DAG.

    ``indep_test`` defaults to ``"mv_fisherz"`` (Fisher-z with test-wise
    deletion) when ``data`` has missing values and ``"fisherz"`` otherwise.
    ``mvpc`` enables causal-learn's MVPC correction of the deletion bias.
    """
    logger = logging.getLogger("benchmark")
    if pc is None:
        raise ImportError(
            "causal-learn is required for the PC algorithm. Install via pip install causal-learn."
        )

    has_missing = bool(data.isna().to_numpy().any())
    if indep_test is None:
        indep_test = "mv_fisherz" if has_missing or mvpc else "fisherz"

    logger.info(
        "PC start: n=%d d=%d alpha=%.3g indep_test=%s mvpc=%s missing=%s",
        len(data), data.shape[1], alpha, indep_test, mvpc, has_missing,
    )
    start = time.perf_counter()
    cg = pc(
        data.to_numpy(dtype=float),
        alpha=alpha,
        indep_test=indep_test,
        stable=stable,
        mvpc=mvpc,
        show_progress=False,
    )
    runtime = time.perf_counter() - start

    if hasattr(cg.G, "graph"):
        amat = cg.G.graph
    elif hasattr(cg.G, "get_graph"):
        amat = cg.G.get_graph()
    else:
        raise AttributeError("Unknown graph representation returned by PC")

    dag, meta = causallearn_to_dag(amat, data.columns)
    meta.update({
        "runtime_s": runtime,
        "indep_test": indep_test,
        "alpha": alpha,
        "mvpc": mvpc,
    })
    logger.info("PC end: edges=%d runtime_s=%.3f", dag.number_of_edges(), runtime)
    return dag, meta
