"""Missing-value injection under MCAR, MAR and MNAR.

Every mechanism first picks ``ceil(p * perc_miss)`` target variables and
then decides, per observation of each target, whether the value is
deleted. Missingness probabilities are always computed from the complete
input, so the order in which targets are processed does not matter.
"""

import logging
import math
from typing import Callable, Dict, List, Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm

from missing_benchmark.utils.errors import DegenerateInput, InvalidArgument

MECHANISMS = ("oracle", "mcar", "mar", "mnar")


def _check_fractions(perc_miss: float, prob_miss: float) -> None:
    if not 0 <= perc_miss <= 0.5:
        raise InvalidArgument(f"perc_miss must lie in [0, 0.5], got {perc_miss}")
    if not 0 <= prob_miss <= 0.5:
        raise InvalidArgument(f"prob_miss must lie in [0, 0.5], got {prob_miss}")


def choose_targets(columns: Sequence[str], perc_miss: float, rng: np.random.Generator) -> List[str]:
    """Pick ``ceil(p * perc_miss)`` distinct columns uniformly at random."""
    columns = list(columns)
    k = math.ceil(len(columns) * perc_miss)
    if k == 0:
        return []
    picks = rng.choice(len(columns), size=k, replace=False)
    return [columns[i] for i in picks]


def cause_probabilities(cause: pd.Series, prob_miss: float) -> np.ndarray:
    """Per-observation missingness probabilities driven by ``cause``.

    The normal CDF of each standardized value is rescaled so the vector has
    mean ``prob_miss`` and then clipped to [0, 1].
    """
    values = cause.to_numpy(dtype=float)
    sd = values.std(ddof=1) if len(values) > 1 else 0.0
    if not np.isfinite(sd) or sd == 0:
        raise DegenerateInput(f"Cause variable {cause.name!r} has zero variance")
    probs = norm.cdf(values, loc=values.mean(), scale=sd)
    probs = probs * prob_miss / probs.mean()
    return np.clip(probs, 0.0, 1.0)


def _mask_from_cause(
    data: pd.DataFrame,
    target: str,
    cause: str,
    prob_miss: float,
    rng: np.random.Generator,
) -> np.ndarray:
    probs = cause_probabilities(data[cause], prob_miss)
    logging.getLogger("benchmark").debug("Missingness of %s driven by %s", target, cause)
    return rng.random(len(data)) < probs


def inject_mcar(data: pd.DataFrame, perc_miss: float, prob_miss: float, rng: np.random.Generator) -> pd.DataFrame:
    _check_fractions(perc_miss, prob_miss)
    out = data.copy()
    for target in choose_targets(data.columns, perc_miss, rng):
        mask = rng.random(len(data)) < prob_miss
        out.loc[mask, target] = np.nan
    return out


def _observed_pool(data: pd.DataFrame, targets: List[str]) -> List[str]:
    pool = [c for c in data.columns if c not in set(targets)]
    if not pool:
        raise InvalidArgument("No fully observed variable left to drive missingness")
    return pool


def inject_mar(data: pd.DataFrame, perc_miss: float, prob_miss: float, rng: np.random.Generator) -> pd.DataFrame:
    _check_fractions(perc_miss, prob_miss)
    out = data.copy()
    targets = choose_targets(data.columns, perc_miss, rng)
    if not targets:
        return out
    pool = _observed_pool(data, targets)
    for target in targets:
        cause = pool[rng.integers(len(pool))]
        out.loc[_mask_from_cause(data, target, cause, prob_miss, rng), target] = np.nan
    return out


def inject_mnar(data: pd.DataFrame, perc_miss: float, prob_miss: float, rng: np.random.Generator) -> pd.DataFrame:
    """MAR-style deletion for the first half of the targets, self-referential for the rest.

    The second half draws its cause from the target set itself, so
    missingness depends on values that are themselves partly unobserved.
    """
    _check_fractions(perc_miss, prob_miss)
    out = data.copy()
    targets = choose_targets(data.columns, perc_miss, rng)
    if not targets:
        return out
    split = math.ceil(len(targets) / 2)
    pool = _observed_pool(data, targets)
    for target in targets[:split]:
        cause = pool[rng.integers(len(pool))]
        out.loc[_mask_from_cause(data, target, cause, prob_miss, rng), target] = np.nan
    for target in targets[split:]:
        cause = targets[rng.integers(len(targets))]
        out.loc[_mask_from_cause(data, target, cause, prob_miss, rng), target] = np.nan
    return out


def inject_oracle(data: pd.DataFrame, perc_miss: float, prob_miss: float, rng: np.random.Generator) -> pd.DataFrame:
    _check_fractions(perc_miss, prob_miss)
    return data.copy()


_INJECTORS: Dict[str, Callable[..., pd.DataFrame]] = {
    "oracle": inject_oracle,
    "mcar": inject_mcar,
    "mar": inject_mar,
    "mnar": inject_mnar,
}


def inject_missingness(
    data: pd.DataFrame,
    mechanism: str,
    perc_miss: float,
    prob_miss: float,
    rng: np.random.Generator,
) -> pd.DataFrame:
    """Return a copy of ``data`` with values deleted by ``mechanism``."""
    try:
        injector = _INJECTORS[mechanism.lower()]
    except (KeyError, AttributeError):
        raise InvalidArgument(
            f"Unknown missingness mechanism {mechanism!r}; expected one of {MECHANISMS}"
        ) from None
    out = injector(data, perc_miss, prob_miss, rng)
    logging.getLogger("benchmark").debug(
        "Injected %s: perc_miss=%.2f prob_miss=%.2f missing_rate=%.4f",
        mechanism, perc_miss, prob_miss, missing_rate(out),
    )
    return out


def missing_rate(data: pd.DataFrame) -> float:
    """Fraction of cells in ``data`` that are missing."""
    if data.size == 0:
        return 0.0
    return float(data.isna().to_numpy().mean())
