import logging
import time
from functools import wraps
from typing import Callable, Dict

import networkx as nx
import numpy as np
import pandas as pd

from missing_benchmark.utils.errors import ShapeMismatch
from missing_benchmark.utils.graph_ops import (
    adjacency_to_graph,
    binarize,
    dag_to_cpdag,
    pdag_to_dag,
)

METRIC_COLUMNS = ["precision", "recall", "f1", "shd", "nshd"]


def runtime_sec(fn: Callable) -> Callable:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = fn(*args, **kwargs)
        end = time.perf_counter()
        return result, end - start
    return wrapper


def _binary_pair(pred_graph: nx.DiGraph, true_graph: nx.DiGraph):
    nodes = list(true_graph.nodes())
    adj_pred = binarize(nx.to_numpy_array(pred_graph, nodelist=nodes, weight=None))
    adj_true = binarize(nx.to_numpy_array(true_graph, nodelist=nodes, weight=None))
    return adj_pred, adj_true


def shd(pred_graph: nx.DiGraph, true_graph: nx.DiGraph) -> int:
    """Structural Hamming distance between two (partially) directed graphs.

    Counts unordered node pairs whose edge marks differ, so a missing, an
    extra or a reversed edge, or a directed edge where the other graph has
    an undirected one, each cost exactly one.
    """
    adj_pred, adj_true = _binary_pair(pred_graph, true_graph)
    diff = adj_pred != adj_true
    return int(np.triu(diff | diff.T, k=1).sum())


def precision_recall_f1(pred_graph: nx.DiGraph, true_graph: nx.DiGraph) -> Dict[str, float]:
    """Edge precision, recall and F1 over ordered node pairs."""
    pred_edges, true_edges = _binary_pair(pred_graph, true_graph)
    tp = np.sum((pred_edges == 1) & (true_edges == 1))
    fp = np.sum((pred_edges == 1) & (true_edges == 0))
    fn = np.sum((pred_edges == 0) & (true_edges == 1))
    precision = float(tp / (tp + fp)) if tp + fp > 0 else 0.0
    recall = float(tp / (tp + fn)) if tp + fn > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0
    return {"precision": precision, "recall": recall, "f1": f1}


def _as_graph(g) -> nx.DiGraph:
    if isinstance(g, pd.DataFrame):
        return adjacency_to_graph(g)
    return g


def _as_cpdag(g: nx.DiGraph) -> nx.DiGraph:
    if nx.is_directed_acyclic_graph(g):
        return dag_to_cpdag(g)
    # already partially directed; canonicalize through a member DAG if one exists
    dag = pdag_to_dag(g)
    return dag_to_cpdag(dag) if dag is not None else g


def evaluate(true_graph, pred_graph, cpdag: bool = True) -> Dict[str, float]:
    """Score ``pred_graph`` against ``true_graph``.

    Both arguments may be ``nx.DiGraph`` objects or labelled adjacency
    frames. With ``cpdag`` both graphs are first replaced by their CPDAGs so
    that orientations which are not identifiable from observational data are
    not penalized.

    Returns a dict with ``precision``, ``recall``, ``f1``, ``shd`` and
    ``nshd`` (``shd`` divided by the number of true edges). ``nshd`` is
    ``NaN`` when the true graph has no edges.
    """
    if isinstance(true_graph, pd.DataFrame) and isinstance(pred_graph, pd.DataFrame):
        if true_graph.shape != pred_graph.shape:
            raise ShapeMismatch(f"Adjacency shapes differ: {true_graph.shape} vs {pred_graph.shape}")
    true_graph = _as_graph(true_graph)
    pred_graph = _as_graph(pred_graph)
    if set(true_graph.nodes()) != set(pred_graph.nodes()):
        raise ShapeMismatch(
            f"Node sets differ: {sorted(map(str, true_graph.nodes()))} vs {sorted(map(str, pred_graph.nodes()))}"
        )

    n_true = len({frozenset(e) for e in true_graph.edges()})
    if cpdag:
        true_graph = _as_cpdag(true_graph)
        pred_graph = _as_cpdag(pred_graph)

    metrics = precision_recall_f1(pred_graph, true_graph)
    metrics["shd"] = shd(pred_graph, true_graph)
    if n_true == 0:
        logging.getLogger("benchmark").warning("True graph has no edges; normalized SHD is undefined")
        metrics["nshd"] = float("nan")
    else:
        metrics["nshd"] = metrics["shd"] / n_true
    return metrics
