"""Batch refresh and scheduling"""

from .coordinator import RefreshCoordinator, RefreshError, RunSummary, build_coordinator
from .scheduler import JobScheduler

__all__ = ["RefreshCoordinator", "RefreshError", "RunSummary", "build_coordinator", "JobScheduler"]
