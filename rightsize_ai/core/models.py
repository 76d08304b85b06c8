"""
SQLAlchemy database models for RightSize AI.

Defines the persistence layer for collected usage samples, allocation
snapshots, namespace costs, stored recommendations and the decisions users
record against them.

All timestamps are stored in UTC.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rightsize_ai.core.entities import ResourceKind, RiskLevel, WorkloadId
from rightsize_ai.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class RecommendationAction(str, Enum):
    """Decisions a user can record against a recommendation."""
    APPLY = "apply"
    REJECT = "reject"
    MODIFY = "modify"


class PodMetric(db.Model):
    """
    One usage sample of a container.

    CPU is stored in millicores and memory in bytes. Either may be null
    when the collector did not observe it.
    """
    __tablename__ = "pod_metrics"

    namespace: Mapped[str] = mapped_column(String(255), primary_key=True)
    pod_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    container_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    cpu_millicores: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    memory_bytes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_pod_metrics_namespace_timestamp", "namespace", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<PodMetric {self.namespace}/{self.pod_name}/{self.container_name} {self.timestamp}>"

    @property
    def workload_id(self) -> WorkloadId:
        return WorkloadId(self.namespace, self.pod_name, self.container_name)

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "pod_name": self.pod_name,
            "container_name": self.container_name,
            "timestamp": _isoformat(self.timestamp),
            "cpu_millicores": self.cpu_millicores,
            "memory_bytes": self.memory_bytes,
        }


class ResourceRequestSnapshot(db.Model):
    """
    Requests and limits of a container at a point in time.

    The most recent row per container is its current allocation.
    """
    __tablename__ = "resource_requests"

    namespace: Mapped[str] = mapped_column(String(255), primary_key=True)
    pod_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    container_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    cpu_request: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    cpu_limit: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    memory_request: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    memory_limit: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_resource_requests_namespace_timestamp", "namespace", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ResourceRequestSnapshot {self.namespace}/{self.pod_name}/{self.container_name}>"

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "pod_name": self.pod_name,
            "container_name": self.container_name,
            "timestamp": _isoformat(self.timestamp),
            "cpu_request": self.cpu_request,
            "cpu_limit": self.cpu_limit,
            "memory_request": self.memory_request,
            "memory_limit": self.memory_limit,
        }


class NamespaceCost(db.Model):
    """Cost accrued by a namespace during one collection interval."""
    __tablename__ = "namespace_costs"

    namespace: Mapped[str] = mapped_column(String(255), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    compute_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    storage_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    network_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    other_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    __table_args__ = (
        Index("ix_namespace_costs_namespace_timestamp", "namespace", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<NamespaceCost {self.namespace} {self.timestamp} total={self.total_cost}>"

    @property
    def total_cost(self) -> float:
        return (
            (self.compute_cost or 0.0)
            + (self.storage_cost or 0.0)
            + (self.network_cost or 0.0)
            + (self.other_cost or 0.0)
        )

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "timestamp": _isoformat(self.timestamp),
            "compute_cost": self.compute_cost,
            "storage_cost": self.storage_cost,
            "network_cost": self.network_cost,
            "other_cost": self.other_cost,
            "total_cost": self.total_cost,
        }


class RecommendationRecord(db.Model):
    """
    A stored rightsizing recommendation.

    Rows are append-only; the same workload may have many rows over time.
    """
    __tablename__ = "recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(255), nullable=False)
    pod_name: Mapped[str] = mapped_column(String(255), nullable=False)
    container_name: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_type: Mapped[ResourceKind] = mapped_column(
        SQLEnum(ResourceKind, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    current_request: Mapped[float] = mapped_column(Float, nullable=False)
    current_limit: Mapped[float] = mapped_column(Float, nullable=False)
    recommended_request: Mapped[float] = mapped_column(Float, nullable=False)
    recommended_limit: Mapped[float] = mapped_column(Float, nullable=False)
    p50_usage: Mapped[float] = mapped_column(Float, nullable=False)
    p95_usage: Mapped[float] = mapped_column(Float, nullable=False)
    p99_usage: Mapped[float] = mapped_column(Float, nullable=False)
    max_usage: Mapped[float] = mapped_column(Float, nullable=False)
    potential_savings: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    risk_level: Mapped[RiskLevel] = mapped_column(
        SQLEnum(RiskLevel, native_enum=False),
        nullable=False
    )
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    actions: Mapped[list["RecommendationActionRecord"]] = relationship(
        "RecommendationActionRecord",
        back_populates="recommendation",
        cascade="all, delete-orphan",
        lazy="dynamic"
    )

    __table_args__ = (
        Index("ix_recommendations_namespace_created_at", "namespace", "created_at"),
        Index(
            "ix_recommendations_workload",
            "namespace", "pod_name", "container_name", "resource_type"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<RecommendationRecord {self.id} "
            f"{self.namespace}/{self.pod_name}/{self.container_name} {self.resource_type}>"
        )

    @property
    def workload_id(self) -> WorkloadId:
        return WorkloadId(self.namespace, self.pod_name, self.container_name)

    def to_dict(self) -> dict:
        """Convert model to dictionary representation."""
        return {
            "id": self.id,
            "namespace": self.namespace,
            "pod_name": self.pod_name,
            "container_name": self.container_name,
            "resource_type": self.resource_type.value if self.resource_type else None,
            "current_request": self.current_request,
            "current_limit": self.current_limit,
            "recommended_request": self.recommended_request,
            "recommended_limit": self.recommended_limit,
            "p50_usage": self.p50_usage,
            "p95_usage": self.p95_usage,
            "p99_usage": self.p99_usage,
            "max_usage": self.max_usage,
            "potential_savings": self.potential_savings,
            "confidence": self.confidence,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "reasoning": self.reasoning,
            "applied": self.applied,
            "created_at": _isoformat(self.created_at),
            "applied_at": _isoformat(self.applied_at),
        }


class RecommendationActionRecord(db.Model):
    """A user decision (apply, reject or modify) on a stored recommendation."""
    __tablename__ = "recommendation_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recommendation_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("recommendations.id", ondelete="CASCADE"),
        nullable=True
    )
    namespace: Mapped[str] = mapped_column(String(255), nullable=False)
    pod_name: Mapped[str] = mapped_column(String(255), nullable=False)
    container_name: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_type: Mapped[ResourceKind] = mapped_column(
        SQLEnum(ResourceKind, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    action: Mapped[RecommendationAction] = mapped_column(
        SQLEnum(
            RecommendationAction,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False
    )
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    recommendation: Mapped[Optional["RecommendationRecord"]] = relationship(
        "RecommendationRecord",
        back_populates="actions"
    )

    __table_args__ = (
        Index("ix_recommendation_actions_namespace_applied_at", "namespace", "applied_at"),
    )

    def __repr__(self) -> str:
        return f"<RecommendationActionRecord {self.id} action={self.action}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recommendation_id": self.recommendation_id,
            "namespace": self.namespace,
            "pod_name": self.pod_name,
            "container_name": self.container_name,
            "resource_type": self.resource_type.value if self.resource_type else None,
            "action": self.action.value if self.action else None,
            "applied_at": _isoformat(self.applied_at),
        }
