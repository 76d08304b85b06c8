"""
Rightsizing recommender for RightSize AI.

Turns a workload's usage distribution and its current allocation into CPU
and memory request/limit recommendations with a confidence score, an
advisory risk tier and an estimated monthly saving.

CPU and memory are treated asymmetrically. Exceeding a CPU limit throttles
the container while exceeding a memory limit kills it, so memory limits are
always sized from the highest observed peak plus an OOM buffer.

Every collaborator call goes through a ResilientCaller. A namespace run
yields one outcome per workload so callers can choose between fail-fast and
best-effort aggregation.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from rightsize_ai.config import MIB, AnalysisSettings
from rightsize_ai.core.collaborators import (
    AllocationNotFound,
    AllocationStore,
    CollaboratorError,
    StatisticsAggregator,
)
from rightsize_ai.core.cost_engine import CostModel
from rightsize_ai.core.entities import (
    Recommendation,
    ResourceAllocation,
    ResourceKind,
    RiskLevel,
    UtilizationSummary,
    WorkloadId,
)
from rightsize_ai.core.resilience import CancellationToken, ResilientCaller

logger = logging.getLogger(__name__)


# Confidence model
CONFIDENCE_SATURATION_SAMPLES = 1000
CONFIDENCE_CV_WEIGHT = 0.5
CONFIDENCE_VARIABILITY_FLOOR = 0.3
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

# Variability tiers (coefficient of variation)
MEDIUM_VARIABILITY_CV = 0.30
HIGH_VARIABILITY_CV = 0.60

# CPU limit factors per tier
CPU_LOW_RISK_P99_FACTOR = 1.20
CPU_MEDIUM_RISK_P99_FACTOR = 1.5
CPU_HIGH_RISK_MAX_FACTOR = 1.30

# Limits never sit below this multiple of the request
LIMIT_TO_REQUEST_FLOOR = 1.5

# Summary confidence buckets
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6

MONTHS_PER_YEAR = 12


def ceil_to_mib(num_bytes: float) -> float:
    """Round a byte count up to the next whole MiB."""
    return math.ceil(num_bytes / MIB) * MIB


class NamespaceAnalysisError(Exception):
    """Raised by a fail-fast namespace run when a workload cannot be analyzed."""

    def __init__(self, namespace: str, workload_id: WorkloadId, error: Exception):
        super().__init__(f"Analysis of namespace '{namespace}' failed at {workload_id}: {error}")
        self.namespace = namespace
        self.workload_id = workload_id
        self.error = error


@dataclass(frozen=True)
class WorkloadOutcome:
    """Result of analyzing one workload: recommendations or an error."""
    workload_id: WorkloadId
    recommendations: tuple[Recommendation, ...] = ()
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class WorkloadFailure:
    """A workload whose analysis failed after the resilience layer gave up."""
    workload_id: WorkloadId
    error_type: str
    message: str

    @classmethod
    def from_outcome(cls, outcome: WorkloadOutcome) -> "WorkloadFailure":
        return cls(
            workload_id=outcome.workload_id,
            error_type=type(outcome.error).__name__,
            message=str(outcome.error),
        )

    def to_dict(self) -> dict:
        return {
            "namespace": self.workload_id.namespace,
            "pod_name": self.workload_id.pod_name,
            "container_name": self.workload_id.container_name,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class NamespaceAnalysis:
    """Recommendations and per-workload failures of a namespace run."""
    namespace: str
    recommendations: list[Recommendation] = field(default_factory=list)
    failures: list[WorkloadFailure] = field(default_factory=list)

    @property
    def total_savings(self) -> float:
        return sum(rec.potential_savings for rec in self.recommendations)

    @property
    def average_confidence(self) -> float:
        if not self.recommendations:
            return 0.0
        return sum(rec.confidence for rec in self.recommendations) / len(self.recommendations)


@dataclass(frozen=True)
class OptimizationSummary:
    """Aggregate view of a namespace's recommendations."""
    namespace: str
    total_recommendations: int
    total_savings: float
    annual_savings: float
    savings_by_resource_kind: dict[str, float]
    confidence_buckets: dict[str, int]
    risk_buckets: dict[str, int]
    average_confidence: float
    failed_workloads: int

    @classmethod
    def from_analysis(cls, analysis: NamespaceAnalysis) -> "OptimizationSummary":
        savings_by_kind = {"cpu": 0.0, "memory": 0.0}
        confidence_buckets = {"high": 0, "medium": 0, "low": 0}
        risk_buckets = {"low": 0, "medium": 0, "high": 0}

        for rec in analysis.recommendations:
            key = "cpu" if rec.kind == ResourceKind.CPU else "memory"
            savings_by_kind[key] += rec.potential_savings

            if rec.confidence >= HIGH_CONFIDENCE:
                confidence_buckets["high"] += 1
            elif rec.confidence >= MEDIUM_CONFIDENCE:
                confidence_buckets["medium"] += 1
            else:
                confidence_buckets["low"] += 1

            risk_buckets[rec.risk_level.value.lower()] += 1

        total_savings = analysis.total_savings
        return cls(
            namespace=analysis.namespace,
            total_recommendations=len(analysis.recommendations),
            total_savings=total_savings,
            annual_savings=total_savings * MONTHS_PER_YEAR,
            savings_by_resource_kind=savings_by_kind,
            confidence_buckets=confidence_buckets,
            risk_buckets=risk_buckets,
            average_confidence=analysis.average_confidence,
            failed_workloads=len(analysis.failures),
        )

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "total_recommendations": self.total_recommendations,
            "total_savings": self.total_savings,
            "annual_savings": self.annual_savings,
            "savings_by_resource_kind": dict(self.savings_by_resource_kind),
            "confidence_buckets": dict(self.confidence_buckets),
            "risk_buckets": dict(self.risk_buckets),
            "average_confidence": self.average_confidence,
            "failed_workloads": self.failed_workloads,
        }


@dataclass(frozen=True)
class _Sizing:
    request: float
    limit: float
    risk_level: RiskLevel
    reasoning: str


class RightsizingRecommender:
    """
    Recommends requests and limits from observed usage.

    Args:
        aggregator: Source of usage summaries and workload listings.
        allocations: Source of current requests and limits.
        settings: Analysis thresholds; defaults to AnalysisSettings().
        cost_model: Cost model for savings; built from settings if omitted.
        aggregator_guard: Resilience wrapper for aggregator calls.
        allocation_guard: Resilience wrapper for allocation store calls.
        clock: Returns the current UTC time for ``created_at``.
    """

    def __init__(
        self,
        aggregator: StatisticsAggregator,
        allocations: AllocationStore,
        settings: Optional[AnalysisSettings] = None,
        cost_model: Optional[CostModel] = None,
        aggregator_guard: Optional[ResilientCaller] = None,
        allocation_guard: Optional[ResilientCaller] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.aggregator = aggregator
        self.allocations = allocations
        self.settings = settings or AnalysisSettings()
        self.cost_model = cost_model or CostModel.from_settings(self.settings)
        self._aggregator_guard = aggregator_guard or ResilientCaller("aggregator")
        self._allocation_guard = allocation_guard or ResilientCaller("allocation_store")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_confidence(sample_count: int, cv: float) -> float:
        """
        Confidence in a recommendation.

        More samples raise confidence up to saturation at 1000; variability
        lowers it, but the variability factor never drops below 0.3.
        """
        sample_factor = min(sample_count / CONFIDENCE_SATURATION_SAMPLES, 1.0)
        variability_factor = max(1 - cv * CONFIDENCE_CV_WEIGHT, CONFIDENCE_VARIABILITY_FLOOR)
        return min(max(sample_factor * variability_factor, MIN_CONFIDENCE), MAX_CONFIDENCE)

    @staticmethod
    def risk_tier(cv: float) -> RiskLevel:
        if cv < MEDIUM_VARIABILITY_CV:
            return RiskLevel.LOW
        if cv < HIGH_VARIABILITY_CV:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    @staticmethod
    def calculate_waste(current_request: float, p95: float) -> float:
        """Fraction of the current request above P95 usage; 0 without a request."""
        if current_request <= 0:
            return 0.0
        return (current_request - p95) / current_request

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def _size_cpu(self, summary: UtilizationSummary, cv: float) -> _Sizing:
        settings = self.settings
        request = summary.p95 * settings.cpu_request_margin
        risk_level = self.risk_tier(cv)

        if risk_level == RiskLevel.LOW:
            limit = summary.p99 * CPU_LOW_RISK_P99_FACTOR
            reasoning = f"Low variability workload (cv={cv:.2f}), using P99 + 20% for limit"
        elif risk_level == RiskLevel.MEDIUM:
            limit = max(summary.p99 * CPU_MEDIUM_RISK_P99_FACTOR, summary.max)
            reasoning = (
                f"Medium variability workload (cv={cv:.2f}), "
                f"using max(P99*1.5, max) for limit"
            )
        else:
            limit = summary.max * CPU_HIGH_RISK_MAX_FACTOR
            reasoning = f"High variability workload (cv={cv:.2f}), using max + 30% for limit"

        if request < settings.min_cpu_request:
            request = settings.min_cpu_request
            reasoning += f" (adjusted to minimum {settings.min_cpu_request:g}m CPU)"

        if limit < request * LIMIT_TO_REQUEST_FLOOR:
            limit = request * LIMIT_TO_REQUEST_FLOOR
            reasoning += " (adjusted limit to 1.5x request)"

        return _Sizing(request, limit, risk_level, reasoning)

    def _size_memory(self, summary: UtilizationSummary, cv: float) -> _Sizing:
        settings = self.settings
        request = ceil_to_mib(summary.p95 * settings.memory_request_margin)
        limit = ceil_to_mib(summary.max * settings.oom_buffer)
        risk_level = self.risk_tier(cv)
        reasoning = (
            f"Memory recommendation with OOM prevention buffer, using max + "
            f"{(settings.oom_buffer - 1) * 100:.0f}% for limit "
            f"({risk_level.value.lower()} variability, cv={cv:.2f})"
        )

        if request < settings.min_memory_request:
            request = settings.min_memory_request
            reasoning += f" (adjusted to minimum {settings.min_memory_request / MIB:g}Mi memory)"

        if limit < request * LIMIT_TO_REQUEST_FLOOR:
            limit = ceil_to_mib(request * LIMIT_TO_REQUEST_FLOOR)
            reasoning += " (adjusted limit to 1.5x request)"

        return _Sizing(request, limit, risk_level, reasoning)

    def recommend(
        self,
        summary: UtilizationSummary,
        allocation: ResourceAllocation,
    ) -> Optional[Recommendation]:
        """
        Build the recommendation for one resource kind.

        Returns:
            The recommendation, or None when the waste gate suppresses it.
        """
        settings = self.settings
        kind = summary.kind
        cv = summary.cv
        confidence = self.calculate_confidence(summary.sample_count, cv)
        current_request = allocation.request_for(kind)

        # Suppress only when waste is low AND the estimate is trustworthy.
        waste = self.calculate_waste(current_request, summary.p95)
        if (
            waste < settings.waste_threshold
            and confidence > settings.confidence_suppression_threshold
        ):
            logger.debug(
                f"Suppressed {kind.value} recommendation for {summary.workload_id}: "
                f"waste={waste:.2f}, confidence={confidence:.2f}"
            )
            return None

        if kind == ResourceKind.CPU:
            sizing = self._size_cpu(summary, cv)
        else:
            sizing = self._size_memory(summary, cv)

        return Recommendation(
            workload_id=summary.workload_id,
            kind=kind,
            current_request=current_request,
            current_limit=allocation.limit_for(kind),
            recommended_request=sizing.request,
            recommended_limit=sizing.limit,
            p50=summary.p50,
            p95=summary.p95,
            p99=summary.p99,
            max=summary.max,
            potential_savings=self.cost_model.monthly_savings(
                kind, current_request, sizing.request
            ),
            confidence=confidence,
            risk_level=sizing.risk_level,
            reasoning=sizing.reasoning,
            created_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def analyze_workload(
        self,
        workload_id: WorkloadId,
        cancel: Optional[CancellationToken] = None,
    ) -> list[Recommendation]:
        """
        Analyze one workload.

        Returns:
            Zero, one or two recommendations, CPU before memory. A workload
            without a recorded allocation yields none.

        Raises:
            CollaboratorUnavailable: If a collaborator stays unavailable.
            OperationCancelled: If the token fires.
        """
        cancel = cancel or CancellationToken()

        try:
            allocation = self._allocation_guard.call(
                self.allocations.get_current_allocation, workload_id, cancel=cancel
            )
        except AllocationNotFound:
            logger.warning(f"Skipping {workload_id}: no resource allocation recorded")
            return []

        recommendations = []
        for kind in (ResourceKind.CPU, ResourceKind.MEMORY):
            summary = self._aggregator_guard.call(
                self.aggregator.summarize,
                workload_id,
                kind,
                self.settings.analysis_window,
                cancel=cancel,
            )
            if summary is None or summary.sample_count < self.settings.min_data_points:
                logger.debug(f"Skipping {kind.value} for {workload_id}: insufficient samples")
                continue

            recommendation = self.recommend(summary, allocation)
            if recommendation is not None:
                recommendations.append(recommendation)

        cancel.raise_if_cancelled()
        return recommendations

    def iter_namespace(
        self,
        namespace: str,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[WorkloadOutcome]:
        """
        Analyze each workload of a namespace lazily.

        A collaborator failure for one workload becomes that outcome's
        ``error``. Failure to list the workloads and cancellation propagate.
        """
        cancel = cancel or CancellationToken()
        workloads = self._aggregator_guard.call(
            self.aggregator.list_workloads,
            namespace,
            self.settings.analysis_window,
            cancel=cancel,
        )

        for workload_id in workloads:
            cancel.raise_if_cancelled()
            try:
                recommendations = self.analyze_workload(workload_id, cancel)
            except CollaboratorError as e:
                logger.error(f"Analysis of {workload_id} failed: {e}")
                yield WorkloadOutcome(workload_id, error=e)
                continue
            yield WorkloadOutcome(workload_id, tuple(recommendations))

    def analyze_namespace(
        self,
        namespace: str,
        cancel: Optional[CancellationToken] = None,
        fail_fast: bool = False,
    ) -> NamespaceAnalysis:
        """
        Analyze every workload of a namespace.

        Args:
            namespace: Kubernetes namespace.
            cancel: Cancellation token with an optional deadline.
            fail_fast: Raise on the first failed workload instead of
                collecting it.

        Raises:
            NamespaceAnalysisError: In fail-fast mode, on a failed workload.
            OperationCancelled: If the token fires; nothing partial is returned.
        """
        logger.info(f"Analyzing namespace {namespace}")
        analysis = NamespaceAnalysis(namespace=namespace)

        for outcome in self.iter_namespace(namespace, cancel):
            if outcome.ok:
                analysis.recommendations.extend(outcome.recommendations)
                continue
            if fail_fast:
                raise NamespaceAnalysisError(
                    namespace, outcome.workload_id, outcome.error
                ) from outcome.error
            analysis.failures.append(WorkloadFailure.from_outcome(outcome))

        logger.info(
            f"Namespace {namespace} analysis complete: "
            f"{len(analysis.recommendations)} recommendations, "
            f"{len(analysis.failures)} failed workloads"
        )
        return analysis

    def summarize(
        self,
        namespace: str,
        cancel: Optional[CancellationToken] = None,
    ) -> OptimizationSummary:
        """Aggregate a best-effort namespace run into an OptimizationSummary."""
        return OptimizationSummary.from_analysis(self.analyze_namespace(namespace, cancel))
