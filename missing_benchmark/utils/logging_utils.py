"""Logging setup for the simulation study.

All modules share the ``"benchmark"`` logger and only call
``logging.getLogger("benchmark")``; handlers are attached once by the driver
through :func:`setup_logging`.
"""

from __future__ import annotations

from pathlib import Path
import logging

LOGGER_NAME = "benchmark"

_FORMAT = "%(asctime)s %(levelname)s %(module)s:%(funcName)s:%(lineno)d - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_file: str | Path | None,
    level: int = logging.INFO,
    to_stdout: bool = False,
) -> logging.Logger:
    """Configure and return the shared ``"benchmark"`` logger.

    Parameters
    ----------
    log_file:
        Destination log file. ``None`` skips the file handler, which is
        useful together with ``to_stdout``.
    level:
        Logging level applied to the logger and every handler it owns.
    to_stdout:
        Also echo records to the console.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    if log_file is not None:
        log_path = str(Path(log_file).resolve())
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        # repeated setup calls with the same file must not duplicate output
        has_file = any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == log_path
            for h in logger.handlers
        )
        if not has_file:
            fh = logging.FileHandler(log_path)
            fh.setFormatter(fmt)
            logger.addHandler(fh)

    if to_stdout and not any(
        type(h) is logging.StreamHandler for h in logger.handlers
    ):
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        logger.addHandler(sh)

    for h in logger.handlers:
        h.setLevel(level)

    logger.propagate = False
    return logger


def close_file_handlers(logger: logging.Logger | None = None) -> None:
    """Detach and close file handlers so output directories can be removed."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.FileHandler):
            logger.removeHandler(h)
            h.close()
