"""
Optimizer service orchestration for RightSize AI.

This module ties together the metrics sources, the resilience layer, the
rightsizing recommender, the simulation engine and the recommendation store
behind the operations the HTTP API exposes.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from sqlalchemy.orm import Session

from rightsize_ai.config import AnalysisSettings
from rightsize_ai.core.collaborators import StatisticsAggregator
from rightsize_ai.core.cost_engine import CostModel
from rightsize_ai.core.entities import (
    Recommendation,
    ResourceKind,
    SimulationChange,
    SimulationPeriod,
    SimulationResult,
    WorkloadId,
)
from rightsize_ai.core.metrics_collector import PrometheusAggregator
from rightsize_ai.core.metrics_store import SQLMetricsStore
from rightsize_ai.core.models import RecommendationActionRecord, RecommendationRecord
from rightsize_ai.core.patches import apply_command, generate_resource_patches
from rightsize_ai.core.recommendation_store import RecommendationStore
from rightsize_ai.core.resilience import (
    CancellationToken,
    ResilientCaller,
    RetryPolicy,
    get_circuit_breaker,
)
from rightsize_ai.core.rightsizing import OptimizationSummary, RightsizingRecommender
from rightsize_ai.core.simulation import SimulationEngine

logger = logging.getLogger(__name__)


class OptimizerService:
    """
    Service for orchestrating rightsizing analysis and cost simulation.

    Every entry point runs under a fresh cancellation token carrying the
    configured analysis deadline.
    """

    def __init__(
        self,
        recommender: RightsizingRecommender,
        simulation_engine: SimulationEngine,
        store: RecommendationStore,
        analysis_timeout: Optional[float] = None,
    ):
        """
        Initialize the optimizer service.

        Args:
            recommender: Rightsizing recommender.
            simulation_engine: Cost simulation engine.
            store: Recommendation store.
            analysis_timeout: Deadline in seconds for each operation, or None.
        """
        self.recommender = recommender
        self.simulation_engine = simulation_engine
        self.store = store
        self.analysis_timeout = analysis_timeout

    def _token(self) -> CancellationToken:
        return CancellationToken(timeout=self.analysis_timeout)

    def analyze_namespace(
        self,
        namespace: str,
        fail_fast: bool = False,
        persist: bool = False,
    ) -> dict:
        """
        Analyze a namespace and build the API report.

        Args:
            namespace: Kubernetes namespace.
            fail_fast: Raise on the first failed workload.
            persist: Store the recommendations.

        Returns:
            Report with recommendations, totals, patches and failures.
        """
        analysis = self.recommender.analyze_namespace(
            namespace, cancel=self._token(), fail_fast=fail_fast
        )

        stored = 0
        if persist and analysis.recommendations:
            stored = len(self.store.save(analysis.recommendations))

        return {
            "namespace": namespace,
            "recommendations": [rec.to_dict() for rec in analysis.recommendations],
            "total_recommendations": len(analysis.recommendations),
            "total_savings": analysis.total_savings,
            "annual_savings": analysis.total_savings * 12,
            "confidence_score": analysis.average_confidence,
            "patches": generate_resource_patches(analysis.recommendations),
            "apply_command": apply_command(namespace),
            "failures": [failure.to_dict() for failure in analysis.failures],
            "persisted": stored,
        }

    def analyze_workload(self, workload_id: WorkloadId) -> list[Recommendation]:
        return self.recommender.analyze_workload(workload_id, cancel=self._token())

    def summarize(self, namespace: str) -> OptimizationSummary:
        return self.recommender.summarize(namespace, cancel=self._token())

    def simulate(
        self,
        namespace: str,
        changes: Iterable[SimulationChange],
        period: Union[SimulationPeriod, str] = SimulationPeriod.MONTHLY,
    ) -> SimulationResult:
        return self.simulation_engine.simulate(
            namespace, changes, period, cancel=self._token()
        )

    def history(self, namespace: str, limit: int = 100) -> list[RecommendationRecord]:
        return self.store.history(namespace, limit=limit)

    def record_action(
        self,
        workload_id: WorkloadId,
        kind: ResourceKind,
        action: str,
    ) -> RecommendationActionRecord:
        return self.store.record_action(workload_id, kind, action)


def _guard(name: str, config: Mapping[str, Any], retry_policy: RetryPolicy) -> ResilientCaller:
    breaker = get_circuit_breaker(
        name,
        failure_threshold=int(config.get("CIRCUIT_FAILURE_THRESHOLD", 5)),
        reset_timeout=float(config.get("CIRCUIT_RESET_TIMEOUT", 30.0)),
        half_open_max_calls=int(config.get("CIRCUIT_HALF_OPEN_MAX_CALLS", 3)),
    )
    return ResilientCaller(name, breaker=breaker, retry_policy=retry_policy)


def create_optimizer_service(
    app_config: Optional[Mapping[str, Any]] = None,
    session: Optional[Session] = None,
) -> OptimizerService:
    """
    Factory function to create an optimizer service with configuration.

    Args:
        app_config: Application configuration mapping.
        session: SQLAlchemy session; defaults to ``db.session``.

    Returns:
        Configured OptimizerService instance.
    """
    config = app_config or {}
    if session is None:
        from rightsize_ai.extensions import db
        session = db.session

    settings = AnalysisSettings.from_app_config(config)
    cost_model = CostModel.from_settings(settings)
    retry_policy = RetryPolicy(
        max_attempts=int(config.get("RETRY_MAX_ATTEMPTS", 3)),
        initial_delay=float(config.get("RETRY_INITIAL_DELAY", 1.0)),
        max_delay=float(config.get("RETRY_MAX_DELAY", 30.0)),
        backoff_factor=float(config.get("RETRY_BACKOFF_FACTOR", 2.0)),
    )

    metrics_store = SQLMetricsStore(session, min_data_points=settings.min_data_points)
    aggregator: StatisticsAggregator = metrics_store
    if config.get("METRICS_SOURCE", "database") == "prometheus":
        aggregator = PrometheusAggregator.from_url(
            config.get("PROMETHEUS_BASE_URL", "http://prometheus:9090"),
            timeout=int(config.get("PROMETHEUS_TIMEOUT", 30)),
            min_data_points=settings.min_data_points,
        )

    allocation_guard = _guard("allocation_store", config, retry_policy)
    recommender = RightsizingRecommender(
        aggregator,
        metrics_store,
        settings=settings,
        cost_model=cost_model,
        aggregator_guard=_guard("aggregator", config, retry_policy),
        allocation_guard=allocation_guard,
    )
    simulation_engine = SimulationEngine(
        metrics_store,
        metrics_store,
        settings=settings,
        cost_model=cost_model,
        allocation_guard=allocation_guard,
        cost_guard=_guard("cost_store", config, retry_policy),
    )

    timeout = config.get("ANALYSIS_TIMEOUT_SECONDS")
    return OptimizerService(
        recommender=recommender,
        simulation_engine=simulation_engine,
        store=RecommendationStore(session),
        analysis_timeout=float(timeout) if timeout else None,
    )
