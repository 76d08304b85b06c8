"""
Interfaces of the collaborators the rightsizing core consumes.

The core reads utilization summaries, the latest allocation of a workload,
and the recent cost of a namespace. It never writes to any of them.
"""

from datetime import timedelta
from typing import Optional, Protocol

from rightsize_ai.core.entities import (
    ResourceAllocation,
    ResourceKind,
    UtilizationSummary,
    WorkloadId,
)


class CollaboratorError(Exception):
    """Base exception for collaborator failures."""
    pass


class CollaboratorUnavailable(CollaboratorError):
    """Raised when a collaborator cannot be reached or fails to answer."""
    pass


class AllocationNotFound(CollaboratorError):
    """Raised when no allocation has been recorded for a workload."""

    def __init__(self, workload_id: WorkloadId):
        super().__init__(f"No resource allocation recorded for {workload_id}")
        self.workload_id = workload_id


class StatisticsAggregator(Protocol):
    """Supplies usage summaries per workload and resource kind."""

    def summarize(
        self,
        workload_id: WorkloadId,
        kind: ResourceKind,
        window: timedelta,
    ) -> Optional[UtilizationSummary]:
        """
        Summarize usage over the trailing window.

        Returns None when fewer than the minimum number of samples exist.
        """
        ...

    def list_workloads(self, namespace: str, window: timedelta) -> list[WorkloadId]:
        """List the workloads with usage samples in the trailing window."""
        ...


class AllocationStore(Protocol):
    """Supplies the latest resource allocation of a workload."""

    def get_current_allocation(self, workload_id: WorkloadId) -> ResourceAllocation:
        """
        Return the most recent allocation.

        Raises:
            AllocationNotFound: If none has been recorded.
        """
        ...


class CostBaselineSource(Protocol):
    """Supplies the recent cost of a namespace."""

    def get_namespace_baseline_cost(self, namespace: str, window: timedelta) -> float:
        """Total cost accrued by the namespace over the trailing window."""
        ...
