import numpy as np
import pandas as pd
import networkx as nx
import pytest

from missing_benchmark.algorithms import get_learner, pc, ges, rsmax
from missing_benchmark.metrics.metrics import evaluate
from missing_benchmark.simulation.dag import random_dag
from missing_benchmark.simulation.missingness import inject_missingness
from missing_benchmark.simulation.sampler import sample_linear_gaussian
from missing_benchmark.utils.errors import InvalidArgument, LearnerFailure


def _chain_data(n=2000, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.normal(size=n)
    y = 0.8 * x + rng.normal(size=n)
    z = 0.8 * y + rng.normal(size=n)
    return pd.DataFrame({'X': x, 'Y': y, 'Z': z})


def _chain_truth():
    return nx.DiGraph([('X', 'Y'), ('Y', 'Z')])


def _empty_record(data):
    return type('G', (), {'graph': np.zeros((data.shape[1], data.shape[1]))})()


def test_get_learner():
    assert get_learner('pc') is pc
    assert get_learner('GES') is ges
    with pytest.raises(InvalidArgument):
        get_learner('lingam')


def test_complete_data_requirements():
    assert pc.REQUIRES_COMPLETE_DATA is False
    assert ges.REQUIRES_COMPLETE_DATA is True
    assert rsmax.REQUIRES_COMPLETE_DATA is True


def test_pc_default_indep_test(monkeypatch):
    recorded = {}

    def dummy_pc(data, alpha=0.05, indep_test=None, stable=True, **kwargs):
        recorded['indep_test'] = indep_test
        recorded['alpha'] = alpha
        recorded['mvpc'] = kwargs.get('mvpc')

        class CG:
            pass

        CG.G = _empty_record(data)
        return CG()

    monkeypatch.setattr(pc, 'pc', dummy_pc)
    df = _chain_data(n=100)
    g, meta = pc.run(df, alpha=0.01)
    assert recorded['indep_test'] == 'fisherz'
    assert recorded['alpha'] == 0.01
    assert set(g.nodes()) == set(df.columns)
    assert meta['indep_test'] == 'fisherz'

    incomplete = df.copy()
    incomplete.iloc[0, 0] = np.nan
    pc.run(incomplete)
    assert recorded['indep_test'] == 'mv_fisherz'

    pc.run(df, mvpc=True)
    assert recorded['indep_test'] == 'mv_fisherz'
    assert recorded['mvpc'] is True


def test_ges_score_mapping(monkeypatch):
    recorded = {}

    def dummy_ges(data, score_func=None, maxP=None, **kwargs):
        recorded['score_func'] = score_func
        recorded['maxP'] = maxP
        return {'G': _empty_record(data), 'score': np.array([[1.5]])}

    monkeypatch.setattr(ges, 'ges', dummy_ges)
    df = _chain_data(n=50)
    g, meta = ges.run(df)
    assert recorded['score_func'] == 'local_score_BIC'
    assert meta['score'] == pytest.approx(1.5)
    assert g.number_of_edges() == 0

    ges.run(df, score_func='local_score_BDeu', max_parents=2)
    assert recorded['score_func'] == 'local_score_BDeu'
    assert recorded['maxP'] == 2


def test_ges_rejects_missing_values():
    df = _chain_data(n=50)
    df.iloc[3, 1] = np.nan
    with pytest.raises(LearnerFailure):
        ges.run(df)


class _RecordingSearch:
    calls = []

    def __init__(self, data):
        self.data = data

    def estimate(self, scoring_method=None, tabu_length=100, max_iter=1e6,
                 show_progress=True, white_list=None, **kwargs):
        _RecordingSearch.calls.append({
            'scoring_method': scoring_method,
            'tabu_length': tabu_length,
            'max_iter': max_iter,
            'white_list': set(white_list),
        })
        g = nx.DiGraph()
        g.add_nodes_from(self.data.columns)
        g.add_edge('X', 'Y')
        return g


@pytest.mark.parametrize('maximize,tabu', [('hc', 0), ('tabu', 7)])
def test_rsmax_restricts_score_search(monkeypatch, maximize, tabu):
    _RecordingSearch.calls = []
    monkeypatch.setattr(rsmax, 'HillClimbSearch', _RecordingSearch)
    rng = np.random.default_rng(0)
    x = rng.normal(size=500)
    df = pd.DataFrame({'X': x, 'Y': x + 0.5 * rng.normal(size=500), 'Z': rng.normal(size=500)})
    g, meta = rsmax.run(df, restrict='marginal', maximize=maximize, alpha=1e-6,
                        max_iter=50, tabu_length=7)
    call = _RecordingSearch.calls[0]
    assert call['scoring_method'] == 'bic-g'
    assert call['tabu_length'] == tabu
    assert call['max_iter'] == 50
    # only the X - Y adjacency survives the marginal tests, in both directions
    assert call['white_list'] == {('X', 'Y'), ('Y', 'X')}
    assert meta['candidate_edges'] == 1
    assert list(g.edges()) == [('X', 'Y')]
    assert set(g.nodes()) == {'X', 'Y', 'Z'}


@pytest.mark.parametrize('maximize', ['hc', 'tabu'])
def test_rsmax_marginal_recovers_chain(maximize):
    pytest.importorskip('pgmpy')
    df = _chain_data()
    g, meta = rsmax.run(df, restrict='marginal', maximize=maximize)
    assert nx.is_directed_acyclic_graph(g)
    assert set(g.nodes()) == {'X', 'Y', 'Z'}
    assert meta['candidate_edges'] == 3
    metrics = evaluate(_chain_truth(), g)
    assert metrics['f1'] == 1
    assert metrics['shd'] == 0


def test_rsmax_restrict_limits_search():
    pytest.importorskip('pgmpy')
    rng = np.random.default_rng(1)
    df = pd.DataFrame(rng.normal(size=(500, 4)), columns=list('ABCD'))
    g, meta = rsmax.run(df, restrict='marginal', alpha=1e-6)
    assert meta['candidate_edges'] == 0
    assert g.number_of_edges() == 0


def test_rsmax_invalid_options():
    df = _chain_data(n=50)
    with pytest.raises(InvalidArgument):
        rsmax.run(df, restrict='mmpc')
    with pytest.raises(InvalidArgument):
        rsmax.run(df, maximize='anneal')
    df.iloc[0, 0] = np.nan
    with pytest.raises(LearnerFailure):
        rsmax.run(df, restrict='marginal')


def test_causallearn_learners_on_chain():
    pytest.importorskip('causallearn')
    df = _chain_data(n=1000)
    for learner in (pc, ges):
        g, meta = learner.run(df)
        assert nx.is_directed_acyclic_graph(g)
        assert set(g.nodes()) == set(df.columns)
        assert 'runtime_s' in meta
        # the chain's equivalence class is fully undirected
        assert evaluate(_chain_truth(), g)['f1'] == 1

    pytest.importorskip('pgmpy')
    g, meta = rsmax.run(df, restrict='pc', maximize='hc')
    assert evaluate(_chain_truth(), g)['f1'] == 1


def test_pc_testwise_deletion_on_incomplete_data():
    pytest.importorskip('causallearn')
    rng = np.random.default_rng(3)
    adj = random_dag(6, 2, rng)
    data = sample_linear_gaussian(adj, 800, rng)
    observed = inject_missingness(data, 'mar', 0.5, 0.3, rng)
    assert observed.isna().to_numpy().any()
    g, meta = pc.run(observed, alpha=0.01)
    assert meta['indep_test'] == 'mv_fisherz'
    assert nx.is_directed_acyclic_graph(g)
    assert set(g.nodes()) == set(adj.columns)
