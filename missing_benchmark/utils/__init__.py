from .helpers import causallearn_to_dag
from .graph_ops import dag_to_cpdag, pdag_to_dag
from .logging_utils import setup_logging

__all__ = [
    'causallearn_to_dag',
    'dag_to_cpdag',
    'pdag_to_dag',
    'setup_logging',
]
