import networkx as nx
import numpy as np
from typing import Iterable, Tuple, Set, Dict
import logging

from missing_benchmark.utils.graph_ops import pdag_to_dag, undirected_edges


def causallearn_to_pdag(amat: np.ndarray, nodes: Iterable) -> nx.DiGraph:
    """Read a causal-learn endpoint matrix into a PDAG.

    causal-learn marks ``i -> j`` with ``amat[i, j] == -1`` and
    ``amat[j, i] == 1``; ``-1`` on both sides is an undirected edge. A
    bidirected pair (``1`` on both sides) is kept as undirected.
    """
    nodes_list = list(nodes)
    amat = np.asarray(amat)
    n = len(nodes_list)
    if amat.shape != (n, n):
        raise ValueError(f"Adjacency shape {amat.shape} does not match {n} nodes")

    pdag = nx.DiGraph()
    pdag.add_nodes_from(nodes_list)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = amat[i, j], amat[j, i]
            if a == 0 and b == 0:
                continue
            u, v = nodes_list[i], nodes_list[j]
            if a == -1 and b == 1:
                pdag.add_edge(u, v)
            elif a == 1 and b == -1:
                pdag.add_edge(v, u)
            else:
                pdag.add_edge(u, v)
                pdag.add_edge(v, u)
    return pdag


def _orient_greedily(pdag: nx.DiGraph) -> Tuple[nx.DiGraph, Set[Tuple]]:
    """Orient undirected edges one at a time without creating cycles.

    Used only when the PDAG has no consistent extension, which happens when a
    constraint-based learner returns conflicting orientations.
    """
    logger = logging.getLogger("benchmark")
    dag = nx.DiGraph()
    dag.add_nodes_from(pdag.nodes())
    loose = undirected_edges(pdag)
    dag.add_edges_from((u, v) for u, v in pdag.edges() if (u, v) not in loose and (v, u) not in loose)

    oriented: Set[Tuple] = set()
    for u, v in sorted(loose, key=str):
        if not nx.has_path(dag, v, u):
            dag.add_edge(u, v)
            oriented.add((u, v))
        else:
            dag.add_edge(v, u)
            oriented.add((v, u))
    if not nx.is_directed_acyclic_graph(dag):
        # the directed part itself is cyclic; drop edges until it is not
        while True:
            try:
                cycle = nx.find_cycle(dag)
            except nx.NetworkXNoCycle:
                break
            u, v = cycle[-1][:2]
            dag.remove_edge(u, v)
            oriented.discard((u, v))
            logger.warning("Dropped edge (%s, %s) to break a cycle", u, v)
    return dag, oriented


def causallearn_to_dag(amat: np.ndarray, nodes: Iterable) -> Tuple[nx.DiGraph, Dict[str, object]]:
    """Convert a causal-learn adjacency matrix to a NetworkX DAG.

    PC and GES return CPDAGs. The DAG returned here is a member of the
    encoded equivalence class, so converting it back with
    :func:`~missing_benchmark.utils.graph_ops.dag_to_cpdag` recovers the
    learner's output.

    Parameters
    ----------
    amat : np.ndarray
        causal-learn endpoint matrix (``G.graph``).
    nodes : Iterable
        Node labels in column order.

    Returns
    -------
    tuple
        ``(dag, meta)`` where ``meta["undirected_edges"]`` holds the edges
        whose orientation was chosen here and ``meta["pdag"]`` the parsed
        learner output.
    """
    pdag = causallearn_to_pdag(amat, nodes)
    dag = pdag_to_dag(pdag)
    if dag is None:
        logging.getLogger("benchmark").warning(
            "Learner output has no consistent extension; orienting %d undirected edges greedily",
            len(undirected_edges(pdag)),
        )
        dag, oriented = _orient_greedily(pdag)
    else:
        oriented = {(u, v) for u, v in dag.edges() if pdag.has_edge(v, u)}
    return dag, {"undirected_edges": oriented, "pdag": pdag}


def edge_differences(
    pred: nx.DiGraph, true: nx.DiGraph
) -> Tuple[Set[tuple], Set[tuple], Set[tuple]]:
    """Return extra, missing and reversed edges between two DAGs.

    Parameters
    ----------
    pred : nx.DiGraph
        Predicted graph.
    true : nx.DiGraph
        Ground truth graph.

    Returns
    -------
    tuple of sets
        ``(extra, missing, reversed)`` edges represented as ``(u, v)`` tuples.
    """
    pred_edges = set(pred.edges())
    true_edges = set(true.edges())

    pred_pairs = {frozenset(e) for e in pred_edges}
    true_pairs = {frozenset(e) for e in true_edges}

    extra = {e for e in pred_edges if frozenset(e) not in true_pairs}
    missing = {e for e in true_edges if frozenset(e) not in pred_pairs}
    reversed_edges = {(u, v) for (u, v) in pred_edges if (v, u) in true_edges and (u, v) not in true_edges}

    logger = logging.getLogger("benchmark")
    logger.debug(
        "Edge diffs computed: pred_edges=%d true_edges=%d extra=%d missing=%d reversed=%d",
        pred.number_of_edges(), true.number_of_edges(), len(extra), len(missing), len(reversed_edges)
    )
    return extra, missing, reversed_edges
