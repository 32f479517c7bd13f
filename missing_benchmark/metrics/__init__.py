from .metrics import evaluate, shd, precision_recall_f1, runtime_sec, METRIC_COLUMNS

__all__ = ["evaluate", "shd", "precision_recall_f1", "runtime_sec", "METRIC_COLUMNS"]
