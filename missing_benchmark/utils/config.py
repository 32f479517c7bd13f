"""Experiment configuration: YAML loading, defaults and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict
import copy

import yaml

from missing_benchmark.utils.errors import InvalidArgument

DEFAULTS: Dict[str, Any] = {
    "seed": 1000,
    "n_nodes": 20,
    "expected_neighbours": 2.0,
    "weight_range": [0.1, 1.0],
    "signed_weights": False,
    "ridge": 1e-6,
    "sample_sizes": [100, 500, 1000],
    "perc_miss": [0.1, 0.3, 0.5],
    "prob_miss": 0.2,
    "mechanisms": ["oracle", "mcar", "mar", "mnar"],
    "repetitions": 10,
    "min_complete_rows": 10,
    "algorithms": {"pc": {"alpha": 0.01}},
    "parallel_jobs": 1,
}


def _as_list(value) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def validate_config(cfg: Dict[str, Any] | None) -> Dict[str, Any]:
    """Merge ``cfg`` over :data:`DEFAULTS` and check every field.

    Returns a new dict; raises :class:`InvalidArgument` on the first
    problem found.
    """
    from missing_benchmark.algorithms import LEARNERS
    from missing_benchmark.simulation.missingness import MECHANISMS

    merged = copy.deepcopy(DEFAULTS)
    unknown = set(cfg or {}) - set(DEFAULTS)
    if unknown:
        raise InvalidArgument(f"Unknown config keys: {sorted(unknown)}")
    merged.update(copy.deepcopy(cfg or {}))

    merged["sample_sizes"] = [int(n) for n in _as_list(merged["sample_sizes"])]
    merged["perc_miss"] = [float(p) for p in _as_list(merged["perc_miss"])]
    merged["mechanisms"] = [str(m).lower() for m in _as_list(merged["mechanisms"])]
    merged["weight_range"] = [float(w) for w in merged["weight_range"]]

    p = merged["n_nodes"]
    if int(p) != p or p < 2:
        raise InvalidArgument(f"n_nodes must be an integer >= 2, got {p}")
    if not 0 < merged["expected_neighbours"] < p - 1:
        raise InvalidArgument(f"expected_neighbours must lie in (0, {p - 1})")
    if len(merged["weight_range"]) != 2 or not 0 <= merged["weight_range"][0] <= merged["weight_range"][1]:
        raise InvalidArgument(f"Invalid weight_range {merged['weight_range']}")
    if not merged["sample_sizes"] or any(n < 1 for n in merged["sample_sizes"]):
        raise InvalidArgument("sample_sizes must be a non-empty list of positive integers")
    if not merged["perc_miss"] or any(not 0 <= v <= 0.5 for v in merged["perc_miss"]):
        raise InvalidArgument("perc_miss values must lie in [0, 0.5]")
    if not 0 <= merged["prob_miss"] <= 0.5:
        raise InvalidArgument("prob_miss must lie in [0, 0.5]")
    bad = [m for m in merged["mechanisms"] if m not in MECHANISMS]
    if bad or not merged["mechanisms"]:
        raise InvalidArgument(f"mechanisms must be drawn from {MECHANISMS}, got {bad}")
    if int(merged["repetitions"]) < 1:
        raise InvalidArgument("repetitions must be positive")
    merged["repetitions"] = int(merged["repetitions"])
    merged["min_complete_rows"] = int(merged["min_complete_rows"])
    merged["parallel_jobs"] = int(merged["parallel_jobs"])

    algorithms = merged["algorithms"] or {}
    if not isinstance(algorithms, dict) or not algorithms:
        raise InvalidArgument("algorithms must map names to parameter dicts")
    normalized = {}
    for name, params in algorithms.items():
        params = dict(params or {})
        module = str(params.get("module", name)).lower()
        if module not in LEARNERS:
            raise InvalidArgument(f"Unknown algorithm module {module!r} for {name!r}")
        normalized[str(name)] = params
    merged["algorithms"] = normalized
    return merged


def load_config(path: str | Path) -> Dict[str, Any]:
    with open(path) as f:
        cfg = yaml.safe_load(f)
    if cfg is not None and not isinstance(cfg, dict):
        raise InvalidArgument(f"Config file {path} must contain a mapping")
    return validate_config(cfg)
