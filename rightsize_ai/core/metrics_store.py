"""
Database-backed collaborators for RightSize AI.

SQLMetricsStore reads the ``pod_metrics``, ``resource_requests`` and
``namespace_costs`` tables and serves as the statistics aggregator, the
allocation store and the cost-baseline source of the rightsizing core.
Database errors roll back the session and surface as CollaboratorUnavailable
so the resilience layer can retry them on a clean transaction.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rightsize_ai.core.collaborators import AllocationNotFound, CollaboratorUnavailable
from rightsize_ai.core.entities import (
    ResourceAllocation,
    ResourceKind,
    UtilizationSummary,
    WorkloadId,
)
from rightsize_ai.core.models import NamespaceCost, PodMetric, ResourceRequestSnapshot
from rightsize_ai.core.summary_stats import summarize_samples

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLMetricsStore:
    """
    Read-only view of the collected metrics tables.

    Args:
        session: SQLAlchemy session (normally ``db.session``).
        min_data_points: Minimum samples for a summary to be returned.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        session: Session,
        min_data_points: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.min_data_points = min_data_points
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _unavailable(self, message: str, error: SQLAlchemyError) -> CollaboratorUnavailable:
        # A failed statement leaves the transaction unusable until rolled back
        self.session.rollback()
        return CollaboratorUnavailable(f"{message}: {error}")

    def summarize(
        self,
        workload_id: WorkloadId,
        kind: ResourceKind,
        window: timedelta,
    ) -> Optional[UtilizationSummary]:
        """
        Summarize a container's usage over the trailing window.

        Returns:
            The summary, or None when fewer than ``min_data_points`` samples
            were collected.

        Raises:
            CollaboratorUnavailable: If the database query fails.
        """
        window_end = self._clock()
        window_start = window_end - window
        column = PodMetric.cpu_millicores if kind == ResourceKind.CPU else PodMetric.memory_bytes

        stmt = (
            select(column)
            .where(
                PodMetric.namespace == workload_id.namespace,
                PodMetric.pod_name == workload_id.pod_name,
                PodMetric.container_name == workload_id.container_name,
                PodMetric.timestamp >= window_start,
                PodMetric.timestamp <= window_end,
                column.is_not(None),
            )
        )

        try:
            values = list(self.session.scalars(stmt))
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {kind.value} samples for {workload_id}: {e}")
            raise self._unavailable(f"Metrics query failed for {workload_id}", e) from e

        if len(values) < self.min_data_points:
            logger.debug(
                f"{workload_id} has {len(values)} {kind.value} samples, "
                f"fewer than {self.min_data_points}"
            )
            return None

        stats = summarize_samples(values)
        return UtilizationSummary(
            workload_id=workload_id,
            kind=kind,
            window_start=window_start,
            window_end=window_end,
            p50=stats.p50,
            p95=stats.p95,
            p99=stats.p99,
            max=stats.max,
            mean=stats.mean,
            stddev=stats.stddev,
            sample_count=stats.count,
        )

    def list_workloads(self, namespace: str, window: timedelta) -> list[WorkloadId]:
        """
        List containers in the namespace that reported samples in the window.

        Raises:
            CollaboratorUnavailable: If the database query fails.
        """
        window_start = self._clock() - window
        stmt = (
            select(PodMetric.pod_name, PodMetric.container_name)
            .where(
                PodMetric.namespace == namespace,
                PodMetric.timestamp >= window_start,
            )
            .distinct()
            .order_by(PodMetric.pod_name, PodMetric.container_name)
        )

        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list workloads in {namespace}: {e}")
            raise self._unavailable(f"Workload listing failed for {namespace}", e) from e

        return [WorkloadId(namespace, pod_name, container_name) for pod_name, container_name in rows]

    def get_current_allocation(self, workload_id: WorkloadId) -> ResourceAllocation:
        """
        Return the most recently recorded requests and limits.

        Raises:
            AllocationNotFound: If no snapshot exists for the container.
            CollaboratorUnavailable: If the database query fails.
        """
        stmt = (
            select(ResourceRequestSnapshot)
            .where(
                ResourceRequestSnapshot.namespace == workload_id.namespace,
                ResourceRequestSnapshot.pod_name == workload_id.pod_name,
                ResourceRequestSnapshot.container_name == workload_id.container_name,
            )
            .order_by(ResourceRequestSnapshot.timestamp.desc())
            .limit(1)
        )

        try:
            row = self.session.scalars(stmt).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load allocation for {workload_id}: {e}")
            raise self._unavailable(f"Allocation query failed for {workload_id}", e) from e

        if row is None:
            raise AllocationNotFound(workload_id)

        return ResourceAllocation(
            workload_id=workload_id,
            cpu_request=row.cpu_request or 0.0,
            cpu_limit=row.cpu_limit or 0.0,
            memory_request=row.memory_request or 0.0,
            memory_limit=row.memory_limit or 0.0,
            observed_at=_as_utc(row.timestamp),
        )

    def get_namespace_baseline_cost(self, namespace: str, window: timedelta) -> float:
        """
        Total cost recorded for the namespace over the trailing window.

        Raises:
            CollaboratorUnavailable: If the database query fails.
        """
        window_start = self._clock() - window
        total = (
            func.coalesce(NamespaceCost.compute_cost, 0.0)
            + func.coalesce(NamespaceCost.storage_cost, 0.0)
            + func.coalesce(NamespaceCost.network_cost, 0.0)
            + func.coalesce(NamespaceCost.other_cost, 0.0)
        )
        stmt = select(func.coalesce(func.sum(total), 0.0)).where(
            NamespaceCost.namespace == namespace,
            NamespaceCost.timestamp >= window_start,
        )

        try:
            return float(self.session.scalar(stmt) or 0.0)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load baseline cost for {namespace}: {e}")
            raise self._unavailable(f"Cost query failed for {namespace}", e) from e
