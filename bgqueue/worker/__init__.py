"""
Worker module.
Contains the polling worker that claims and executes jobs.
"""

from bgqueue.worker.main import Worker, load_registry, run

__all__ = ["Worker", "load_registry", "run"]
