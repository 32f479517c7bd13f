import json
import math

import networkx as nx
import numpy as np
import pandas as pd
import pytest
import yaml

from missing_benchmark.algorithms import ges, pc
from missing_benchmark.experiments import run_simulation
from missing_benchmark.utils.config import validate_config
from missing_benchmark.utils.errors import DegenerateInput, InvalidArgument, NumericalInstability
from missing_benchmark.utils.logging_utils import close_file_handlers


def _empty_learner(data, **kwargs):
    g = nx.DiGraph()
    g.add_nodes_from(data.columns)
    return g, {}


def _failing_learner(data, **kwargs):
    raise RuntimeError("boom")


def _small_cfg(**overrides):
    cfg = {
        "seed": 7,
        "n_nodes": 5,
        "expected_neighbours": 1,
        "sample_sizes": [60, 120],
        "perc_miss": [0.2, 0.4],
        "prob_miss": 0.3,
        "repetitions": 2,
        "algorithms": {"pc": {}, "ges": {}},
    }
    cfg.update(overrides)
    return validate_config(cfg)


@pytest.fixture
def fake_learners(monkeypatch):
    monkeypatch.setattr(pc, "run", _empty_learner)
    monkeypatch.setattr(ges, "run", _empty_learner)


def test_build_grid():
    cfg = _small_cfg()
    grid = run_simulation.build_grid(cfg)
    assert len(grid) == 2 * 2 * 2
    assert {(rc["perc_miss"], rc["n"], rc["rep"]) for rc in grid} == {
        (p, n, r) for p in (0.2, 0.4) for n in (60, 120) for r in (0, 1)
    }
    # the seed depends on the repetition only
    assert all(rc["seed"] == 7 + rc["rep"] for rc in grid)


def test_run_configuration_records(fake_learners):
    rc = run_simulation.build_grid(_small_cfg())[0]
    records = run_simulation.run_configuration(rc)
    assert len(records) == 4 * 2
    df = pd.DataFrame(records)
    assert set(df["mechanism"]) == {"oracle", "mcar", "mar", "mnar"}
    assert set(df["algorithm"]) == {"pc", "ges"}
    assert (df["error"] == "").all()
    assert (df["precision"] == 0).all()
    assert (df["recall"] == 0).all()
    assert df["nshd"].isin([1.0]).all() or df["nshd"].isna().all()
    oracle = df[df["mechanism"] == "oracle"]
    assert (oracle["missing_rate"] == 0).all()
    assert (oracle["n_complete"] == rc["n"]).all()
    assert (df.loc[df["mechanism"] != "oracle", "missing_rate"] > 0).all()


def test_failing_learner_yields_sentinel(monkeypatch):
    monkeypatch.setattr(pc, "run", _failing_learner)
    monkeypatch.setattr(ges, "run", _empty_learner)
    rc = run_simulation.build_grid(_small_cfg())[0]
    df = pd.DataFrame(run_simulation.run_configuration(rc))
    failed = df[df["algorithm"] == "pc"]
    assert len(failed) == 4
    assert (failed["error"] == "boom").all()
    assert failed[["precision", "recall", "f1", "shd", "nshd"]].isna().all().all()
    ok = df[df["algorithm"] == "ges"]
    assert (ok["error"] == "").all()
    assert ok["f1"].notna().all()


def test_complete_case_learner_needs_enough_rows(fake_learners):
    cfg = _small_cfg(
        min_complete_rows=10_000,
        algorithms={"pc": {}, "pc_cc": {"module": "pc", "complete_cases": True}},
    )
    rc = run_simulation.build_grid(cfg)[0]
    df = pd.DataFrame(run_simulation.run_configuration(rc))
    cc = df[df["algorithm"] == "pc_cc"]
    assert cc["error"].str.contains("complete rows").all()
    assert (df.loc[df["algorithm"] == "pc", "error"] == "").all()


def test_learner_parameters_are_forwarded(monkeypatch):
    seen = []

    def recording_learner(data, **kwargs):
        seen.append((kwargs, bool(data.isna().to_numpy().any())))
        return _empty_learner(data)

    monkeypatch.setattr(pc, "run", recording_learner)
    cfg = _small_cfg(
        mechanisms=["mcar"],
        algorithms={"pc_cc": {"module": "pc", "complete_cases": True, "alpha": 0.2}},
    )
    run_simulation.run_configuration(run_simulation.build_grid(cfg)[0])
    kwargs, has_missing = seen[0]
    assert kwargs == {"alpha": 0.2}
    assert not has_missing


def test_invalid_argument_is_not_swallowed(monkeypatch):
    def bad_params(data, **kwargs):
        raise InvalidArgument("bad parameter")

    monkeypatch.setattr(pc, "run", bad_params)
    rc = run_simulation.build_grid(_small_cfg(algorithms={"pc": {}}))[0]
    with pytest.raises(InvalidArgument):
        run_simulation.run_configuration(rc)


def test_degenerate_cause_skips_mechanism(monkeypatch, fake_learners):
    inject = run_simulation.inject_missingness

    def degenerate_mar(data, mechanism, *args):
        if mechanism == "mar":
            raise DegenerateInput("cause has zero variance")
        return inject(data, mechanism, *args)

    monkeypatch.setattr(run_simulation, "inject_missingness", degenerate_mar)
    rc = run_simulation.build_grid(_small_cfg())[0]
    df = pd.DataFrame(run_simulation.run_configuration(rc))
    assert set(df["mechanism"]) == {"oracle", "mcar", "mnar"}
    assert len(df) == 3 * 2
    assert (df["error"] == "").all()


def test_unstable_sample_skips_repetition(monkeypatch, fake_learners):
    def unstable(*args, **kwargs):
        raise NumericalInstability("singular covariance")

    monkeypatch.setattr(run_simulation, "sample_linear_gaussian", unstable)
    grid = run_simulation.build_grid(_small_cfg())
    assert run_simulation.run_configuration(grid[0]) == []
    assert run_simulation.run_grid(grid[:2], 1) == []


def test_edge_differences_reported_per_record(monkeypatch, fake_learners):
    calls = []

    def recording_diff(pred, true):
        calls.append((set(pred.nodes()), set(true.nodes())))
        return set(), set(true.edges()), set()

    monkeypatch.setattr(run_simulation, "edge_differences", recording_diff)
    rc = run_simulation.build_grid(_small_cfg())[0]
    records = run_simulation.run_configuration(rc)
    assert len(calls) == len(records)
    assert all(pred == true for pred, true in calls)


def test_summary_reports_missing_rate(fake_learners):
    cfg = _small_cfg(sample_sizes=[200], perc_miss=[0.4], repetitions=3)
    records = run_simulation.run_grid(run_simulation.build_grid(cfg), 1)
    summary = run_simulation.aggregate(records).set_index("mechanism")
    assert {"missing_rate", "missing_rate_std"} <= set(summary.columns)
    assert (summary.loc["oracle", "missing_rate"] == 0).all()
    # two of five columns lose about 30% of their values
    expected = math.ceil(5 * 0.4) / 5 * 0.3
    assert summary.loc["mcar", "missing_rate"].mean() == pytest.approx(expected, abs=0.03)


def test_run_configuration_is_deterministic(fake_learners):
    rc = run_simulation.build_grid(_small_cfg())[3]
    a = pd.DataFrame(run_simulation.run_configuration(rc)).drop(columns="runtime_s")
    b = pd.DataFrame(run_simulation.run_configuration(rc)).drop(columns="runtime_s")
    pd.testing.assert_frame_equal(a, b)


def test_aggregate():
    base = {"n": 100, "algorithm": "pc", "mechanism": "mcar", "perc_miss": 0.1, "prob_miss": 0.2,
            "seed": 0, "n_complete": 90, "missing_rate": 0.02, "runtime_s": 1.0, "shd": 1, "nshd": 0.5}
    records = [
        {**base, "rep": 0, "precision": 1.0, "recall": 0.5, "f1": 0.6, "error": ""},
        {**base, "rep": 1, "precision": 0.5, "recall": 0.5, "f1": 0.4, "error": ""},
        {**base, "rep": 2, "precision": np.nan, "recall": np.nan, "f1": np.nan,
         "shd": np.nan, "nshd": np.nan, "error": "boom"},
    ]
    summary = run_simulation.aggregate(records)
    assert len(summary) == 1
    row = summary.iloc[0]
    assert row["precision"] == pytest.approx(0.75)
    assert row["f1"] == pytest.approx(0.5)
    assert row["f1_std"] == pytest.approx(np.std([0.6, 0.4], ddof=1))
    assert row["n_runs"] == 3
    assert row["n_fail"] == 1


def test_aggregate_empty():
    summary = run_simulation.aggregate([])
    assert summary.empty
    assert {"f1", "f1_std", "n_fail"} <= set(summary.columns)


def test_parallel_matches_serial(fake_learners):
    grid = run_simulation.build_grid(_small_cfg())
    serial = pd.DataFrame(run_simulation.run_grid(grid, 1)).drop(columns="runtime_s")
    parallel = pd.DataFrame(run_simulation.run_grid(grid, 2)).drop(columns="runtime_s")
    pd.testing.assert_frame_equal(serial, parallel)


@pytest.mark.timeout(60)
def test_run_writes_outputs(tmp_path, fake_learners):
    cfg = {
        "seed": 3,
        "n_nodes": 5,
        "expected_neighbours": 1.5,
        "sample_sizes": [80],
        "perc_miss": [0.2, 0.4],
        "repetitions": 2,
        "algorithms": {"pc": {"alpha": 0.05}, "ges": {}},
    }
    cfg_path = tmp_path / "cfg.yaml"
    with open(cfg_path, "w") as f:
        yaml.safe_dump(cfg, f)

    try:
        summary = run_simulation.run(str(cfg_path), output_dir=tmp_path)
    finally:
        close_file_handlers()

    written = pd.read_csv(tmp_path / "summary_metrics.csv")
    assert len(written) == len(summary) == 2 * 4 * 2
    assert {"f1", "f1_std", "shd", "nshd", "n_runs", "n_fail"} <= set(written.columns)
    assert set(written["algorithm"]) == {"pc", "ges"}
    assert (written["n_runs"] == 2).all()
    assert written["precision"].between(0, 1).all()

    records = pd.read_csv(tmp_path / "records.csv")
    assert len(records) == 2 * 2 * 4 * 2

    meta = json.loads((tmp_path / "run_metadata.json").read_text())
    assert meta["results"]["n_records"] == len(records)
    assert meta["results"]["n_failures"] == 0
    assert meta["config"]["seed"] == 3
    assert "numpy" in meta["environment"]["libraries"]

    log = tmp_path / "logs" / "simulation.log"
    assert log.exists()
    assert "Sweep end" in log.read_text()


@pytest.mark.timeout(120)
def test_run_with_causallearn(tmp_path):
    pytest.importorskip("causallearn")
    pytest.importorskip("pgmpy")
    cfg = {
        "seed": 11,
        "n_nodes": 5,
        "expected_neighbours": 1.5,
        "sample_sizes": [300],
        "perc_miss": [0.4],
        "repetitions": 1,
        "algorithms": {"pc": {"alpha": 0.01}, "rsmax": {"restrict": "marginal", "alpha": 0.01}},
    }
    cfg_path = tmp_path / "cfg.yaml"
    with open(cfg_path, "w") as f:
        yaml.safe_dump(cfg, f)
    try:
        summary = run_simulation.run(str(cfg_path), output_dir=tmp_path)
    finally:
        close_file_handlers()
    assert len(summary) == 2 * 4
    assert summary["f1"].between(0, 1).all()
    assert not math.isnan(summary["shd"].mean())
