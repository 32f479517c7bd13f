"""Structure learners behind a common ``run(data, **params) -> (dag, meta)`` interface.

Each module also defines ``REQUIRES_COMPLETE_DATA``; the driver drops
incomplete rows before calling learners that set it.
"""

from missing_benchmark.utils.errors import InvalidArgument

from . import pc
from . import ges
from . import rsmax

LEARNERS = {
    "pc": pc,
    "ges": ges,
    "rsmax": rsmax,
}


def get_learner(name: str):
    """Return the learner module registered under ``name``."""
    try:
        return LEARNERS[name.lower()]
    except KeyError:
        raise InvalidArgument(
            f"Unknown algorithm {name!r}; expected one of {sorted(LEARNERS)}"
        ) from None


__all__ = ["pc", "ges", "rsmax", "LEARNERS", "get_learner"]
