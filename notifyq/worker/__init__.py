"""
Worker module.
Contains the dispatch worker and its retry backoff policy.
"""

from notifyq.worker.backoff import compute_backoff
from notifyq.worker.main import DispatchWorker, run

__all__ = ["DispatchWorker", "compute_backoff", "run"]
