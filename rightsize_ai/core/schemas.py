"""
Pydantic schemas for API request validation.

Resource quantities may be sent either as Kubernetes strings ("250m",
"512Mi") or as plain numbers already in millicores and bytes.
"""

from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from rightsize_ai.core.cost_engine import ResourceParser
from rightsize_ai.core.entities import (
    ResourceKind,
    SimulationChange,
    SimulationPeriod,
    WorkloadId,
)
from rightsize_ai.core.models import RecommendationAction


Quantity = Optional[Union[float, str]]


def _normalize_kind(value):
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "cpu":
            return ResourceKind.CPU
        if lowered == "memory":
            return ResourceKind.MEMORY
    return value


# ============================================================================
# Recommendation Schemas
# ============================================================================

class RecommendationQuery(BaseModel):
    """Query parameters for namespace analysis."""
    persist: bool = Field(default=False, description="Store the recommendations")
    fail_fast: bool = Field(
        default=False,
        description="Fail the request when any workload cannot be analyzed"
    )


class HistoryQuery(BaseModel):
    """Query parameters for recommendation history."""
    limit: int = Field(default=100, ge=1, le=500)


class RecommendationActionRequest(BaseModel):
    """Request body for recording a decision on a recommendation."""
    namespace: str = Field(..., min_length=1, max_length=255)
    pod_name: str = Field(..., min_length=1, max_length=255)
    container_name: str = Field(..., min_length=1, max_length=255)
    resource_type: ResourceKind
    action: RecommendationAction

    @field_validator("resource_type", mode="before")
    @classmethod
    def normalize_resource_type(cls, value):
        return _normalize_kind(value)

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def workload_id(self) -> WorkloadId:
        return WorkloadId(self.namespace, self.pod_name, self.container_name)


# ============================================================================
# Simulation Schemas
# ============================================================================

class SimulationChangeRequest(BaseModel):
    """A proposed allocation for one container; omitted values keep the current one."""
    pod_name: str = Field(..., min_length=1, max_length=255)
    container_name: str = Field(..., min_length=1, max_length=255)
    cpu_request: Quantity = None
    cpu_limit: Quantity = None
    memory_request: Quantity = None
    memory_limit: Quantity = None
    replicas: int = Field(default=1, ge=0, le=10000)

    @field_validator("cpu_request", "cpu_limit", mode="before")
    @classmethod
    def parse_cpu(cls, value):
        if value is None:
            return None
        quantity = ResourceParser.parse_cpu(value)
        if quantity < 0:
            raise ValueError("CPU quantity must not be negative")
        return quantity

    @field_validator("memory_request", "memory_limit", mode="before")
    @classmethod
    def parse_memory(cls, value):
        if value is None:
            return None
        quantity = ResourceParser.parse_memory(value)
        if quantity < 0:
            raise ValueError("memory quantity must not be negative")
        return quantity

    def to_change(self, namespace: str) -> SimulationChange:
        return SimulationChange(
            workload_id=WorkloadId(namespace, self.pod_name, self.container_name),
            cpu_request=self.cpu_request,
            cpu_limit=self.cpu_limit,
            memory_request=self.memory_request,
            memory_limit=self.memory_limit,
            replicas=self.replicas,
        )


class SimulationRequest(BaseModel):
    """Request body for a cost simulation."""
    namespace: str = Field(..., min_length=1, max_length=255)
    changes: list[SimulationChangeRequest] = Field(default_factory=list)
    period: SimulationPeriod = Field(
        default=SimulationPeriod.MONTHLY,
        description="Projection period: daily, monthly or yearly"
    )

    @field_validator("period", mode="before")
    @classmethod
    def normalize_period(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    def to_changes(self) -> list[SimulationChange]:
        return [change.to_change(self.namespace) for change in self.changes]


# ============================================================================
# Common Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response format."""
    code: str
    message: str
    details: Optional[Union[dict, list]] = None
    trace_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str = "1.0.0"
    checks: Optional[dict] = None
