"""
Processing Workers
"""

from .processing_worker import ProcessingWorker, get_worker, set_worker

__all__ = ["ProcessingWorker", "get_worker", "set_worker"]
