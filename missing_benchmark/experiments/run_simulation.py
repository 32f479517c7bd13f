"""Simulation sweep: random DAG -> Gaussian data -> missingness -> learners -> metrics.

Each grid point ``(perc_miss, n, rep)`` is processed by
:func:`run_configuration`, a pure function of its configuration. The DAG and
the complete dataset depend only on ``seed + rep``, so every mechanism and
every learner within a repetition sees the same ground truth.
"""

import argparse
import logging
import time
import warnings
from pathlib import Path
from typing import Dict, List

import joblib
import numpy as np
import pandas as pd

from missing_benchmark.algorithms import get_learner
from missing_benchmark.metrics.metrics import METRIC_COLUMNS, evaluate, runtime_sec
from missing_benchmark.simulation.dag import edge_count, random_dag
from missing_benchmark.simulation.missingness import MECHANISMS, inject_missingness, missing_rate
from missing_benchmark.simulation.sampler import sample_linear_gaussian
from missing_benchmark.utils.config import load_config
from missing_benchmark.utils.errors import (
    DegenerateInput,
    InvalidArgument,
    LearnerFailure,
    NumericalInstability,
)
from missing_benchmark.utils.graph_ops import adjacency_to_graph
from missing_benchmark.utils.helpers import edge_differences
from missing_benchmark.utils.logging_utils import setup_logging
from missing_benchmark.utils.provenance import save_run_metadata

RESULTS_DIR = Path(__file__).resolve().parents[1] / "results"

GROUP_KEYS = ["n", "algorithm", "mechanism", "perc_miss"]
VALUE_COLUMNS = ["runtime_s", *METRIC_COLUMNS, "n_complete", "missing_rate"]
RECORD_COLUMNS = [
    "n", "algorithm", "mechanism", "perc_miss", "prob_miss", "rep", "seed",
    "n_complete", "missing_rate", "runtime_s", *METRIC_COLUMNS, "error",
]

# Suppress noisy deprecation warnings from NumPy's legacy matrix API used by causal-learn
warnings.filterwarnings(
    "ignore",
    category=PendingDeprecationWarning,
    message=r".*matrix subclass is not the recommended way.*",
)


def build_grid(cfg: Dict) -> List[Dict]:
    """Expand a validated config into one run configuration per ``(perc_miss, n, rep)``."""
    shared = {
        "n_nodes": cfg["n_nodes"],
        "expected_neighbours": cfg["expected_neighbours"],
        "weight_range": tuple(cfg["weight_range"]),
        "signed_weights": cfg["signed_weights"],
        "ridge": cfg["ridge"],
        "prob_miss": cfg["prob_miss"],
        "mechanisms": list(cfg["mechanisms"]),
        "min_complete_rows": cfg["min_complete_rows"],
        "algorithms": cfg["algorithms"],
    }
    return [
        {**shared, "perc_miss": perc, "n": n, "rep": rep, "seed": cfg["seed"] + rep}
        for perc in cfg["perc_miss"]
        for n in cfg["sample_sizes"]
        for rep in range(cfg["repetitions"])
    ]


def _sentinel(row: Dict, error: str, runtime: float = np.nan) -> Dict:
    row = dict(row)
    row.update({m: np.nan for m in METRIC_COLUMNS})
    row["runtime_s"] = runtime
    row["error"] = error or "unknown error"
    return row


def _learn(name: str, params: Dict, observed: pd.DataFrame, min_complete_rows: int):
    params = dict(params)
    mod = get_learner(params.pop("module", name))
    complete_cases = bool(params.pop("complete_cases", mod.REQUIRES_COMPLETE_DATA))
    if complete_cases:
        d_run = observed.dropna().reset_index(drop=True)
        if len(d_run) < min_complete_rows:
            raise LearnerFailure(
                f"only {len(d_run)} complete rows, {min_complete_rows} required"
            )
    else:
        d_run = observed
    return runtime_sec(mod.run)(d_run.copy(), **params)


def run_configuration(run_cfg: Dict) -> List[Dict]:
    """Run every mechanism and learner for one ``(perc_miss, n, rep)`` grid point.

    Learner failures become sentinel records with ``NaN`` metrics. A
    numerically unstable draw skips the whole repetition and a degenerate
    cause variable skips the affected mechanism; both are logged.
    """
    logger = logging.getLogger("benchmark")
    seed = run_cfg["seed"]
    base = {
        "n": run_cfg["n"],
        "perc_miss": run_cfg["perc_miss"],
        "prob_miss": run_cfg["prob_miss"],
        "rep": run_cfg["rep"],
        "seed": seed,
    }

    rng = np.random.default_rng(seed)
    try:
        adj = random_dag(
            run_cfg["n_nodes"],
            run_cfg["expected_neighbours"],
            rng,
            weight_range=run_cfg["weight_range"],
            signed=run_cfg["signed_weights"],
        )
        data = sample_linear_gaussian(adj, run_cfg["n"], rng, ridge=run_cfg["ridge"])
    except NumericalInstability as e:
        logger.warning("Skipping rep=%d n=%d seed=%d: %s", run_cfg["rep"], run_cfg["n"], seed, e)
        return []
    true_graph = adjacency_to_graph(adj)
    logger.info(
        "Repetition start: n=%d perc_miss=%.2f rep=%d seed=%d true_edges=%d",
        run_cfg["n"], run_cfg["perc_miss"], run_cfg["rep"], seed, edge_count(adj),
    )

    records = []
    for mechanism in run_cfg["mechanisms"]:
        # one independent stream per mechanism, stable under reordering of the config
        inj_rng = np.random.default_rng([seed, MECHANISMS.index(mechanism)])
        try:
            observed = inject_missingness(
                data, mechanism, run_cfg["perc_miss"], run_cfg["prob_miss"], inj_rng
            )
        except DegenerateInput as e:
            logger.warning("Skipping mechanism=%s rep=%d seed=%d: %s", mechanism, run_cfg["rep"], seed, e)
            continue

        row_base = {
            **base,
            "mechanism": mechanism,
            "n_complete": int(observed.notna().all(axis=1).sum()),
            "missing_rate": missing_rate(observed),
        }
        for name, params in run_cfg["algorithms"].items():
            row = {**row_base, "algorithm": name}
            try:
                (graph, _info), elapsed = _learn(name, params, observed, run_cfg["min_complete_rows"])
            except InvalidArgument:
                raise
            except Exception as e:
                logger.warning(
                    "Learner failed: algorithm=%s mechanism=%s n=%d rep=%d error=%s",
                    name, mechanism, run_cfg["n"], run_cfg["rep"], e,
                )
                records.append(_sentinel(row, str(e)))
                continue

            row.update(evaluate(true_graph, graph))
            extra, missing, rev = edge_differences(graph, true_graph)
            logger.debug(
                "Edge diffs: algorithm=%s mechanism=%s rep=%d extra=%s missing=%s reversed=%s",
                name, mechanism, run_cfg["rep"], sorted(extra), sorted(missing), sorted(rev),
            )
            row["runtime_s"] = elapsed
            row["error"] = ""
            logger.info(
                "Learner done: algorithm=%s mechanism=%s f1=%.3f shd=%d runtime_s=%.3f",
                name, mechanism, row["f1"], row["shd"], elapsed,
            )
            records.append(row)
    return records


def aggregate(records: List[Dict] | pd.DataFrame) -> pd.DataFrame:
    """Mean and standard deviation of every metric per configuration.

    Sentinel rows are left out of the means and counted in ``n_fail``.
    """
    df = pd.DataFrame(records, columns=RECORD_COLUMNS) if not isinstance(records, pd.DataFrame) else records
    if df.empty:
        cols = GROUP_KEYS + [c for v in VALUE_COLUMNS for c in (v, f"{v}_std")] + ["n_runs", "n_fail"]
        return pd.DataFrame(columns=cols)

    grouped = df.groupby(GROUP_KEYS, sort=True)
    means = grouped[VALUE_COLUMNS].mean()
    stds = grouped[VALUE_COLUMNS].std().add_suffix("_std")
    summary = means.join(stds)
    summary = summary[[c for v in VALUE_COLUMNS for c in (v, f"{v}_std")]].copy()
    summary["n_runs"] = grouped.size()
    summary["n_fail"] = grouped["error"].agg(lambda s: int((s.fillna("") != "").sum()))
    return summary.reset_index()


def run_grid(grid: List[Dict], parallel_jobs: int = 1) -> List[Dict]:
    if parallel_jobs == 1:
        chunks = [run_configuration(rc) for rc in grid]
    else:
        chunks = joblib.Parallel(n_jobs=parallel_jobs, prefer="threads")(
            joblib.delayed(run_configuration)(rc) for rc in grid
        )
    return [row for chunk in chunks for row in chunk]


def run(
    config_path: str,
    output_dir: str | Path | None = None,
    parallel_jobs: int | None = None,
    verbose: bool = False,
) -> pd.DataFrame:
    """Run the full sweep and write ``records.csv`` and ``summary_metrics.csv``.

    Results are aggregated after each missingness percentage and the
    summary file is rewritten, so an interrupted sweep keeps the finished
    percentages.
    """
    cfg = load_config(config_path)
    base_dir = Path(output_dir) if output_dir is not None else RESULTS_DIR
    logs_dir = base_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    logger = setup_logging(
        logs_dir / "simulation.log",
        level=logging.DEBUG if verbose else logging.INFO,
        to_stdout=verbose,
    )
    parallel_jobs = int(parallel_jobs if parallel_jobs is not None else cfg["parallel_jobs"])
    grid = build_grid(cfg)
    logger.info(
        "Sweep start: configurations=%d algorithms=%s mechanisms=%s parallel_jobs=%d",
        len(grid), list(cfg["algorithms"]), cfg["mechanisms"], parallel_jobs,
    )

    start = time.perf_counter()
    records: List[Dict] = []
    summaries = []
    for perc in cfg["perc_miss"]:
        chunk = run_grid([rc for rc in grid if rc["perc_miss"] == perc], parallel_jobs)
        records.extend(chunk)
        summaries.append(aggregate(chunk))
        summary = pd.concat(summaries, ignore_index=True)
        summary.to_csv(base_dir / "summary_metrics.csv", index=False)
        logger.info("Aggregated perc_miss=%.2f: records=%d", perc, len(chunk))

    records_df = pd.DataFrame(records, columns=RECORD_COLUMNS)
    records_df.to_csv(base_dir / "records.csv", index=False)
    runtime = time.perf_counter() - start
    n_fail = int((records_df["error"].fillna("") != "").sum())
    save_run_metadata(base_dir / "run_metadata.json", cfg, len(records_df), n_fail, runtime)
    logger.info("Sweep end: records=%d failures=%d runtime_s=%.1f", len(records_df), n_fail, runtime)
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Benchmark structure learners on randomly generated DAGs with missing data."
    )
    parser.add_argument(
        "--config", default=str(Path(__file__).with_name("config.yaml"))
    )
    parser.add_argument("--out-dir", default=None)
    parser.add_argument("--parallel-jobs", type=int, default=None)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()
    run(args.config, args.out_dir, parallel_jobs=args.parallel_jobs, verbose=args.verbose)


if __name__ == "__main__":
    main()
