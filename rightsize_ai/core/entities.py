"""
Domain values exchanged between the rightsizing core and its collaborators.

All values are immutable. CPU quantities are expressed in millicores and
memory quantities in bytes.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ResourceKind(str, Enum):
    """Resource kinds the recommender sizes."""
    CPU = "CPU"
    MEMORY = "Memory"


class RiskLevel(str, Enum):
    """Advisory risk of applying a recommendation."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SimulationPeriod(str, Enum):
    """Projection period for a cost simulation."""
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @property
    def hours(self) -> int:
        return _PERIOD_HOURS[self]


_PERIOD_HOURS = {
    SimulationPeriod.DAILY: 24,
    SimulationPeriod.MONTHLY: 24 * 30,
    SimulationPeriod.YEARLY: 24 * 365,
}


@dataclass(frozen=True, order=True)
class WorkloadId:
    """A pod + container identity."""
    namespace: str
    pod_name: str
    container_name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.pod_name}/{self.container_name}"


@dataclass(frozen=True)
class UtilizationSample:
    """A single usage observation, owned by the collection pipeline."""
    workload_id: WorkloadId
    kind: ResourceKind
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class UtilizationSummary:
    """Distribution summary of a workload's usage over an analysis window."""
    workload_id: WorkloadId
    kind: ResourceKind
    window_start: datetime
    window_end: datetime
    p50: float
    p95: float
    p99: float
    max: float
    mean: float
    stddev: float
    sample_count: int

    @property
    def cv(self) -> float:
        """Coefficient of variation; zero when the mean is zero."""
        if self.mean == 0:
            return 0.0
        return self.stddev / self.mean


@dataclass(frozen=True)
class ResourceAllocation:
    """Latest requests/limits snapshot for a workload."""
    workload_id: WorkloadId
    cpu_request: float
    cpu_limit: float
    memory_request: float
    memory_limit: float
    observed_at: Optional[datetime] = None

    def request_for(self, kind: ResourceKind) -> float:
        return self.cpu_request if kind == ResourceKind.CPU else self.memory_request

    def limit_for(self, kind: ResourceKind) -> float:
        return self.cpu_limit if kind == ResourceKind.CPU else self.memory_limit


@dataclass(frozen=True)
class Recommendation:
    """A rightsizing recommendation for one resource kind of one workload."""
    workload_id: WorkloadId
    kind: ResourceKind
    current_request: float
    current_limit: float
    recommended_request: float
    recommended_limit: float
    p50: float
    p95: float
    p99: float
    max: float
    potential_savings: float  # monthly, in the unit-cost currency
    confidence: float
    risk_level: RiskLevel
    reasoning: str
    created_at: datetime

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "namespace": self.workload_id.namespace,
            "pod_name": self.workload_id.pod_name,
            "container_name": self.workload_id.container_name,
            "resource_type": self.kind.value,
            "current_request": self.current_request,
            "current_limit": self.current_limit,
            "recommended_request": self.recommended_request,
            "recommended_limit": self.recommended_limit,
            "p50_usage": self.p50,
            "p95_usage": self.p95,
            "p99_usage": self.p99,
            "max_usage": self.max,
            "potential_savings": self.potential_savings,
            "confidence": self.confidence,
            "risk_level": self.risk_level.value,
            "reasoning": self.reasoning,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SimulationChange:
    """
    A proposed allocation for one workload.

    ``None`` for a request or limit keeps the workload's current value.
    """
    workload_id: WorkloadId
    cpu_request: Optional[float] = None
    cpu_limit: Optional[float] = None
    memory_request: Optional[float] = None
    memory_limit: Optional[float] = None
    replicas: int = 1


@dataclass(frozen=True)
class CostSplit:
    """Heuristic split of a projected cost across spend categories."""
    compute: float
    storage: float
    network: float
    other: float

    def to_dict(self) -> dict:
        return {
            "compute": self.compute,
            "storage": self.storage,
            "network": self.network,
            "other": self.other,
        }


@dataclass(frozen=True)
class SimulationResult:
    """Projected cost of a set of hypothetical changes."""
    namespace: str
    period: SimulationPeriod
    current_cost: float
    projected_cost: float
    cost_delta: float
    savings: float
    savings_percent: float
    breakdown: CostSplit

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "namespace": self.namespace,
            "period": self.period.value,
            "current_cost": self.current_cost,
            "projected_cost": self.projected_cost,
            "cost_delta": self.cost_delta,
            "savings": self.savings,
            "savings_percent": self.savings_percent,
            "breakdown": self.breakdown.to_dict(),
        }
