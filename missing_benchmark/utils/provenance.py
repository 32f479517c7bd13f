import json
import platform
import sys
import pandas as pd
import numpy as np
import networkx as nx
import scipy
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Dict, Any


def get_library_versions() -> Dict[str, str]:
    """Get versions of key libraries."""
    libs = {
        "python": sys.version,
        "platform": platform.platform(),
        "pandas": pd.__version__,
        "numpy": np.__version__,
        "networkx": nx.__version__,
        "scipy": scipy.__version__,
    }
    # causal-learn does not expose __version__
    for dist in ("causal-learn", "pgmpy"):
        try:
            libs[dist] = version(dist)
        except PackageNotFoundError:
            libs[dist] = "not installed"
    return libs


def save_run_metadata(
    output_path: Path,
    config: Dict[str, Any],
    n_records: int,
    n_failures: int,
    runtime_s: float,
):
    """Write the resolved configuration and environment of one sweep."""
    metadata = {
        "config": config,
        "results": {
            "n_records": n_records,
            "n_failures": n_failures,
            "runtime_s": runtime_s,
        },
        "environment": {
            "random_seed": config.get("seed"),
            "libraries": get_library_versions(),
        },
    }

    with open(output_path, "w") as f:
        json.dump(metadata, f, indent=2, default=str)
