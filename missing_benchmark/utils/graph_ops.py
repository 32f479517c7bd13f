"""Graph conversions shared by the generator, the learners and the evaluator.

Partially directed graphs (PDAGs, CPDAGs) are stored as ``nx.DiGraph``
objects where an undirected edge ``u - v`` is the pair of edges ``u -> v``
and ``v -> u``.
"""

from itertools import combinations
from typing import Iterable

import networkx as nx
import numpy as np
import pandas as pd


def binarize(adj):
    """Map every nonzero entry of ``adj`` to 1 and every zero entry to 0."""
    if isinstance(adj, pd.DataFrame):
        return (adj != 0).astype(int)
    return (np.asarray(adj) != 0).astype(int)


def adjacency_to_nx(adj: np.ndarray, nodes: Iterable) -> nx.DiGraph:
    """Build a graph from a square matrix, keeping nonzero entries as weights."""
    adj = np.asarray(adj, dtype=float)
    nodes = list(nodes)
    G = nx.DiGraph()
    G.add_nodes_from(nodes)
    rows, cols = np.nonzero(adj)
    for i, j in zip(rows, cols):
        G.add_edge(nodes[i], nodes[j], weight=float(adj[i, j]))
    return G


def adjacency_to_graph(adj: pd.DataFrame) -> nx.DiGraph:
    """Convert a labelled weighted adjacency frame to an ``nx.DiGraph``."""
    if list(adj.index) != list(adj.columns):
        raise ValueError("Adjacency frame must share row and column labels")
    return adjacency_to_nx(adj.to_numpy(), adj.columns)


def is_undirected(G: nx.DiGraph, u, v) -> bool:
    return G.has_edge(u, v) and G.has_edge(v, u)


def is_directed(G: nx.DiGraph, u, v) -> bool:
    return G.has_edge(u, v) and not G.has_edge(v, u)


def is_adjacent(G: nx.DiGraph, u, v) -> bool:
    return G.has_edge(u, v) or G.has_edge(v, u)


def undirected_edges(G: nx.DiGraph) -> set:
    """Undirected edges of a PDAG, each reported once as ``(u, v)``."""
    seen = set()
    for u, v in G.edges():
        if G.has_edge(v, u) and (v, u) not in seen:
            seen.add((u, v))
    return seen


def _meek_orients(G: nx.DiGraph, a, b) -> bool:
    """Whether one of Meek's rules R1-R3 forces the undirected edge ``a - b`` to ``a -> b``."""
    # R1: c -> a - b with c, b non-adjacent
    for c in G.predecessors(a):
        if is_directed(G, c, a) and c != b and not is_adjacent(G, c, b):
            return True
    # R2: a -> c -> b
    for c in G.successors(a):
        if is_directed(G, a, c) and is_directed(G, c, b):
            return True
    # R3: a - c -> b, a - d -> b with c, d non-adjacent
    kites = [
        c for c in G.successors(a)
        if c != b and is_undirected(G, a, c) and is_directed(G, c, b)
    ]
    for c, d in combinations(kites, 2):
        if not is_adjacent(G, c, d):
            return True
    return False


def apply_meek_rules(G: nx.DiGraph) -> nx.DiGraph:
    """Orient undirected edges of ``G`` in place until no rule applies."""
    changed = True
    while changed:
        changed = False
        for a, b in list(G.edges()):
            if is_undirected(G, a, b) and _meek_orients(G, a, b):
                G.remove_edge(b, a)
                changed = True
    return G


def dag_to_cpdag(dag: nx.DiGraph) -> nx.DiGraph:
    """Return the CPDAG (Markov equivalence class) of ``dag``.

    Edges taking part in a v-structure stay directed, every other edge
    starts undirected and the result is closed under Meek's rules.
    """
    if not nx.is_directed_acyclic_graph(dag):
        raise ValueError("dag_to_cpdag expects a directed acyclic graph")

    compelled = set()
    for c in dag.nodes():
        for a, b in combinations(list(dag.predecessors(c)), 2):
            if not is_adjacent(dag, a, b):
                compelled.add((a, c))
                compelled.add((b, c))

    cpdag = nx.DiGraph()
    cpdag.add_nodes_from(dag.nodes())
    for u, v in dag.edges():
        cpdag.add_edge(u, v)
        if (u, v) not in compelled:
            cpdag.add_edge(v, u)
    return apply_meek_rules(cpdag)


def pdag_to_dag(pdag: nx.DiGraph) -> nx.DiGraph | None:
    """Consistent DAG extension of a PDAG (Dor & Tarsi, 1992).

    Returns ``None`` when the PDAG admits no extension without new
    v-structures or cycles.
    """
    dag = nx.DiGraph()
    dag.add_nodes_from(pdag.nodes())
    dag.add_edges_from((u, v) for u, v in pdag.edges() if is_directed(pdag, u, v))

    work = pdag.copy()
    while work.number_of_nodes() > 0:
        for x in list(work.nodes()):
            if any(is_directed(work, x, y) for y in work.successors(x)):
                continue
            neighbours = set(work.predecessors(x)) | set(work.successors(x))
            loose = [y for y in neighbours if is_undirected(work, x, y)]
            if all(
                is_adjacent(work, y, z)
                for y in loose
                for z in neighbours
                if z != y
            ):
                dag.add_edges_from((y, x) for y in loose)
                work.remove_node(x)
                break
        else:
            return None

    if not nx.is_directed_acyclic_graph(dag):
        return None
    return dag
