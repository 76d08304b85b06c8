"""
Recommendation persistence for RightSize AI.

Stores recommendations append-only and records the decisions users make on
them. Recording an ``apply`` decision only marks the stored row; nothing is
pushed to a cluster.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from rightsize_ai.core.entities import Recommendation, ResourceKind, WorkloadId
from rightsize_ai.core.models import (
    RecommendationAction,
    RecommendationActionRecord,
    RecommendationRecord,
)

logger = logging.getLogger(__name__)


class RecommendationNotFound(Exception):
    """Raised when a decision references a recommendation that was never stored."""

    def __init__(self, workload_id: WorkloadId, kind: ResourceKind):
        super().__init__(f"No stored {kind.value} recommendation for {workload_id}")
        self.workload_id = workload_id
        self.kind = kind


class RecommendationStore:
    """
    Append-only store of recommendations and user decisions.

    Args:
        session: SQLAlchemy session (normally ``db.session``).
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        session: Session,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def save(self, recommendations: Iterable[Recommendation]) -> list[RecommendationRecord]:
        """
        Persist recommendations as new rows.

        Returns:
            The stored records, in input order.
        """
        records = [
            RecommendationRecord(
                namespace=rec.workload_id.namespace,
                pod_name=rec.workload_id.pod_name,
                container_name=rec.workload_id.container_name,
                resource_type=rec.kind,
                current_request=rec.current_request,
                current_limit=rec.current_limit,
                recommended_request=rec.recommended_request,
                recommended_limit=rec.recommended_limit,
                p50_usage=rec.p50,
                p95_usage=rec.p95,
                p99_usage=rec.p99,
                max_usage=rec.max,
                potential_savings=rec.potential_savings,
                confidence=rec.confidence,
                risk_level=rec.risk_level,
                reasoning=rec.reasoning,
                created_at=rec.created_at,
            )
            for rec in recommendations
        ]
        self.session.add_all(records)
        self.session.commit()

        logger.info(f"Stored {len(records)} recommendations")
        return records

    def history(self, namespace: str, limit: int = 100) -> list[RecommendationRecord]:
        """Stored recommendations for a namespace, newest first."""
        stmt = (
            select(RecommendationRecord)
            .where(RecommendationRecord.namespace == namespace)
            .order_by(RecommendationRecord.created_at.desc(), RecommendationRecord.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def latest(
        self,
        workload_id: WorkloadId,
        kind: ResourceKind,
    ) -> Optional[RecommendationRecord]:
        stmt = (
            select(RecommendationRecord)
            .where(
                RecommendationRecord.namespace == workload_id.namespace,
                RecommendationRecord.pod_name == workload_id.pod_name,
                RecommendationRecord.container_name == workload_id.container_name,
                RecommendationRecord.resource_type == kind,
            )
            .order_by(RecommendationRecord.created_at.desc(), RecommendationRecord.id.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def record_action(
        self,
        workload_id: WorkloadId,
        kind: ResourceKind,
        action: Union[RecommendationAction, str],
    ) -> RecommendationActionRecord:
        """
        Record a user's decision on the newest stored recommendation.

        Args:
            workload_id: The container the decision is about.
            kind: Resource kind of the recommendation.
            action: ``apply``, ``reject`` or ``modify``.

        Returns:
            The stored action record.

        Raises:
            ValueError: If the action is unknown.
            RecommendationNotFound: If no recommendation was stored.
        """
        action = RecommendationAction(action)
        recommendation = self.latest(workload_id, kind)
        if recommendation is None:
            raise RecommendationNotFound(workload_id, kind)

        now = self._clock()
        record = RecommendationActionRecord(
            recommendation_id=recommendation.id,
            namespace=workload_id.namespace,
            pod_name=workload_id.pod_name,
            container_name=workload_id.container_name,
            resource_type=kind,
            action=action,
            applied_at=now,
        )
        if action == RecommendationAction.APPLY:
            recommendation.applied = True
            recommendation.applied_at = now

        self.session.add(record)
        self.session.commit()

        logger.info(
            f"Recorded '{action.value}' for {kind.value} recommendation "
            f"{recommendation.id} of {workload_id}"
        )
        return record
