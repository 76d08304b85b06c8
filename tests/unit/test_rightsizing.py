"""
Unit tests for the rightsizing recommender.

Covers the confidence model, CPU and memory sizing with their floors, the
waste gate, namespace-level aggregation and cancellation.
"""

from datetime import timedelta

import pytest

from rightsize_ai.config import AnalysisSettings, MIB
from rightsize_ai.core.collaborators import CollaboratorUnavailable
from rightsize_ai.core.entities import ResourceKind, RiskLevel, WorkloadId
from rightsize_ai.core.resilience import (
    CancellationToken,
    DeadlineExceeded,
    OperationCancelled,
)
from rightsize_ai.core.rightsizing import (
    NamespaceAnalysisError,
    OptimizationSummary,
    RightsizingRecommender,
)

from conftest import NOW, WORKLOAD


@pytest.fixture
def recommender(aggregator, allocations, no_retry):
    return RightsizingRecommender(
        aggregator,
        allocations,
        settings=AnalysisSettings(),
        aggregator_guard=no_retry,
        allocation_guard=no_retry,
        clock=lambda: NOW,
    )


class FlakyAggregator:
    """Wraps an aggregator and fails for selected workloads."""

    def __init__(self, inner, failing=()):
        self.inner = inner
        self.failing = set(failing)

    def summarize(self, workload_id, kind, window):
        if workload_id in self.failing:
            raise CollaboratorUnavailable(f"metrics backend down for {workload_id}")
        return self.inner.summarize(workload_id, kind, window)

    def list_workloads(self, namespace, window):
        return self.inner.list_workloads(namespace, window)


class TestConfidence:
    """Tests for the confidence model."""

    def test_worked_example(self):
        """500 samples at cv 0.25 give 0.5 * 0.875."""
        assert RightsizingRecommender.calculate_confidence(500, 0.25) == pytest.approx(0.4375)

    @pytest.mark.parametrize("samples,cv,expected", [
        (10, 0.0, 0.1),        # clamped up to the minimum
        (5000, 0.0, 0.95),     # clamped down to the maximum
        (1000, 10.0, 0.3),     # variability factor floor
        (2000, 0.2, 0.9),      # samples saturate at 1000
    ])
    def test_bounds(self, samples, cv, expected):
        assert RightsizingRecommender.calculate_confidence(samples, cv) == pytest.approx(expected)

    @pytest.mark.parametrize("samples", [1, 100, 999, 1000, 100000])
    @pytest.mark.parametrize("cv", [0.0, 0.3, 0.6, 1.4, 50.0])
    def test_always_within_range(self, samples, cv):
        confidence = RightsizingRecommender.calculate_confidence(samples, cv)
        assert 0.1 <= confidence <= 0.95


class TestWaste:
    """Tests for the waste calculation."""

    def test_waste_fraction(self):
        assert RightsizingRecommender.calculate_waste(400, 180) == pytest.approx(0.55)

    def test_zero_request_has_no_waste(self):
        assert RightsizingRecommender.calculate_waste(0, 180) == 0.0

    def test_under_provisioned_is_negative(self):
        assert RightsizingRecommender.calculate_waste(100, 150) == pytest.approx(-0.5)


class TestCpuRecommendation:
    """Tests for the CPU branch."""

    def test_worked_example(self, recommender, aggregator, allocations, make_summary, make_allocation):
        """LOW tier where the 1.5x request floor dominates the P99 limit."""
        aggregator.add(make_summary())
        allocations.add(make_allocation(cpu_request=400.0))

        recs = recommender.analyze_workload(WORKLOAD)

        assert len(recs) == 1
        rec = recs[0]
        assert rec.kind == ResourceKind.CPU
        assert rec.recommended_request == pytest.approx(207.0)
        assert rec.recommended_limit == pytest.approx(310.5)
        assert rec.confidence == pytest.approx(0.4375)
        assert rec.risk_level == RiskLevel.LOW
        assert "Low variability" in rec.reasoning
        assert "adjusted limit to 1.5x request" in rec.reasoning
        assert rec.potential_savings == pytest.approx((400 - 207) * 0.00001 * 720)
        assert rec.current_request == 400.0
        assert rec.current_limit == 800.0
        assert rec.created_at == NOW

    def test_medium_tier_limit(self, recommender, aggregator, allocations, make_summary, make_allocation):
        """0.30 <= cv < 0.60 uses max(P99 * 1.5, max)."""
        aggregator.add(make_summary(p95=300, p99=400, max=900, mean=200, stddev=90))
        allocations.add(make_allocation(cpu_request=2000.0))

        rec = recommender.analyze_workload(WORKLOAD)[0]

        assert rec.risk_level == RiskLevel.MEDIUM
        assert rec.recommended_limit == pytest.approx(900.0)
        assert "Medium variability" in rec.reasoning

    def test_high_tier_limit(self, recommender, aggregator, allocations, make_summary, make_allocation):
        """cv >= 0.60 uses max * 1.30."""
        aggregator.add(make_summary(p95=300, p99=400, max=1000, mean=200, stddev=160))
        allocations.add(make_allocation(cpu_request=2000.0))

        rec = recommender.analyze_workload(WORKLOAD)[0]

        assert rec.risk_level == RiskLevel.HIGH
        assert rec.recommended_limit == pytest.approx(1300.0)
        assert "High variability" in rec.reasoning

    def test_minimum_request_floor(self, recommender, aggregator, allocations, make_summary, make_allocation):
        """Tiny usage is raised to 10m and the limit follows."""
        aggregator.add(make_summary(p50=1, p95=2, p99=3, max=4, mean=2, stddev=0.2))
        allocations.add(make_allocation(cpu_request=100.0))

        rec = recommender.analyze_workload(WORKLOAD)[0]

        assert rec.recommended_request == 10.0
        assert rec.recommended_limit >= 1.5 * rec.recommended_request
        assert "minimum 10m CPU" in rec.reasoning

    @pytest.mark.parametrize("p95,p99,max_usage,stddev", [
        (2, 3, 4, 0.1),
        (180, 220, 250, 30),
        (300, 400, 900, 90),
        (300, 310, 320, 200),
    ])
    def test_floors_hold(
        self, recommender, aggregator, allocations, make_summary, make_allocation,
        p95, p99, max_usage, stddev,
    ):
        aggregator.add(make_summary(p95=p95, p99=p99, max=max_usage, stddev=stddev))
        allocations.add(make_allocation(cpu_request=5000.0))

        for rec in recommender.analyze_workload(WORKLOAD):
            assert rec.recommended_request >= 10
            assert rec.recommended_limit >= 1.5 * rec.recommended_request


class TestMemoryRecommendation:
    """Tests for the memory branch."""

    def test_limit_buffers_observed_peak(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        """The limit sits 20% above the highest observed usage, in whole MiB."""
        summary = make_summary(
            kind=ResourceKind.MEMORY,
            p50=150 * MIB, p95=200 * MIB, p99=250 * MIB, max=300 * MIB,
            mean=180 * MIB, stddev=18 * MIB, sample_count=1000,
        )
        aggregator.add(summary)
        allocations.add(make_allocation(memory_request=1024 * MIB))

        recs = recommender.analyze_workload(WORKLOAD)

        assert len(recs) == 1
        rec = recs[0]
        assert rec.kind == ResourceKind.MEMORY
        assert rec.recommended_limit >= summary.max * 1.20
        assert rec.recommended_request % MIB == 0
        assert rec.recommended_limit % MIB == 0
        assert summary.p95 * 1.10 <= rec.recommended_request < summary.p95 * 1.10 + MIB
        assert rec.risk_level == RiskLevel.LOW
        assert "OOM prevention buffer" in rec.reasoning

    def test_minimum_request_floor(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        aggregator.add(make_summary(
            kind=ResourceKind.MEMORY,
            p50=8 * MIB, p95=10 * MIB, p99=15 * MIB, max=20 * MIB,
            mean=9 * MIB, stddev=1 * MIB,
        ))
        allocations.add(make_allocation(memory_request=256 * MIB))

        rec = recommender.analyze_workload(WORKLOAD)[0]

        assert rec.recommended_request == 64 * MIB
        assert rec.recommended_limit == 96 * MIB
        assert "minimum 64Mi memory" in rec.reasoning
        assert "adjusted limit to 1.5x request" in rec.reasoning

    @pytest.mark.parametrize("p95,max_usage,stddev", [
        (10, 20, 1),
        (200, 300, 18),
        (500, 2000, 400),
        (900, 901, 100),
    ])
    def test_oom_buffer_holds(
        self, recommender, aggregator, allocations, make_summary, make_allocation,
        p95, max_usage, stddev,
    ):
        aggregator.add(make_summary(
            kind=ResourceKind.MEMORY,
            p50=p95 * MIB / 2, p95=p95 * MIB, p99=max_usage * MIB, max=max_usage * MIB,
            mean=p95 * MIB / 2, stddev=stddev * MIB,
        ))
        allocations.add(make_allocation(memory_request=8192 * MIB))

        rec = recommender.analyze_workload(WORKLOAD)[0]

        assert rec.recommended_limit >= max_usage * MIB * 1.20
        assert rec.recommended_limit >= 1.5 * rec.recommended_request


class TestWasteGate:
    """Suppression requires low waste AND high confidence."""

    def test_scenario_a_high_waste_is_emitted(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        """waste 0.70, confidence 0.9: emitted."""
        aggregator.add(make_summary(p95=300, p99=350, max=400, mean=100, stddev=20, sample_count=1000))
        allocations.add(make_allocation(cpu_request=1000.0))

        recs = recommender.analyze_workload(WORKLOAD)

        assert len(recs) == 1
        assert recs[0].confidence == pytest.approx(0.9)

    def test_scenario_b_low_confidence_is_emitted(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        """waste 0.20, confidence 0.5: still emitted because confidence is low."""
        aggregator.add(make_summary(p95=800, p99=850, max=900, mean=700, stddev=0, sample_count=500))
        allocations.add(make_allocation(cpu_request=1000.0))

        recs = recommender.analyze_workload(WORKLOAD)

        assert len(recs) == 1
        assert recs[0].confidence == pytest.approx(0.5)

    def test_scenario_c_low_waste_high_confidence_is_suppressed(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        """waste 0.20, confidence 0.85: suppressed."""
        aggregator.add(make_summary(p95=800, p99=850, max=900, mean=100, stddev=30, sample_count=1000))
        allocations.add(make_allocation(cpu_request=1000.0))

        assert recommender.analyze_workload(WORKLOAD) == []

    def test_threshold_comes_from_settings(
        self, aggregator, allocations, make_summary, make_allocation, no_retry
    ):
        """A lower waste threshold stops suppressing scenario C."""
        aggregator.add(make_summary(p95=800, p99=850, max=900, mean=100, stddev=30, sample_count=1000))
        allocations.add(make_allocation(cpu_request=1000.0))
        recommender = RightsizingRecommender(
            aggregator,
            allocations,
            settings=AnalysisSettings(waste_threshold=0.10),
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        assert len(recommender.analyze_workload(WORKLOAD)) == 1


class TestAnalyzeWorkload:
    """Tests for skip behavior of a single workload."""

    def test_insufficient_samples_emit_nothing(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        aggregator.add(make_summary(sample_count=99))
        allocations.add(make_allocation())

        assert recommender.analyze_workload(WORKLOAD) == []

    def test_absent_summary_is_skipped(self, recommender, allocations, make_allocation):
        allocations.add(make_allocation())

        assert recommender.analyze_workload(WORKLOAD) == []

    def test_missing_allocation_is_skipped(self, recommender, aggregator, make_summary):
        aggregator.add(make_summary())

        assert recommender.analyze_workload(WORKLOAD) == []
        assert aggregator.calls == []

    def test_cpu_before_memory(self, recommender, aggregator, allocations, make_summary, make_allocation):
        aggregator.add(make_summary(
            kind=ResourceKind.MEMORY,
            p50=100 * MIB, p95=200 * MIB, p99=250 * MIB, max=300 * MIB,
            mean=150 * MIB, stddev=15 * MIB,
        ))
        aggregator.add(make_summary())
        allocations.add(make_allocation())

        kinds = [rec.kind for rec in recommender.analyze_workload(WORKLOAD)]

        assert kinds == [ResourceKind.CPU, ResourceKind.MEMORY]

    def test_window_comes_from_settings(
        self, aggregator, allocations, make_summary, make_allocation, no_retry
    ):
        aggregator.add(make_summary())
        allocations.add(make_allocation())
        recommender = RightsizingRecommender(
            aggregator,
            allocations,
            settings=AnalysisSettings(analysis_window=timedelta(days=14)),
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        recommender.analyze_workload(WORKLOAD)

        assert {window for _, _, window in aggregator.calls} == {timedelta(days=14)}

    def test_unavailable_aggregator_propagates(
        self, aggregator, allocations, make_summary, make_allocation, no_retry
    ):
        aggregator.add(make_summary())
        allocations.add(make_allocation())
        recommender = RightsizingRecommender(
            FlakyAggregator(aggregator, failing=[WORKLOAD]),
            allocations,
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        with pytest.raises(CollaboratorUnavailable):
            recommender.analyze_workload(WORKLOAD)


class TestCancellation:
    """Cancelled runs return nothing partial."""

    def test_cancelled_token_aborts_workload(
        self, recommender, aggregator, allocations, make_summary, make_allocation
    ):
        aggregator.add(make_summary())
        allocations.add(make_allocation())
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            recommender.analyze_workload(WORKLOAD, cancel=token)

    def test_result_after_deadline_is_discarded(
        self, allocations, make_summary, make_allocation, no_retry
    ):
        """A summary that arrives after the deadline is not turned into a recommendation."""
        now = [0.0]
        token = CancellationToken(timeout=5.0, clock=lambda: now[0])

        class SlowAggregator:
            def summarize(self, workload_id, kind, window):
                now[0] += 10.0
                return make_summary(workload_id=workload_id, kind=kind)

            def list_workloads(self, namespace, window):
                return [WORKLOAD]

        allocations.add(make_allocation())
        recommender = RightsizingRecommender(
            SlowAggregator(),
            allocations,
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        with pytest.raises(DeadlineExceeded):
            recommender.analyze_workload(WORKLOAD, cancel=token)

    def test_cancelled_namespace_run_raises(self, recommender, aggregator, allocations, make_summary, make_allocation):
        aggregator.add(make_summary())
        allocations.add(make_allocation())
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            recommender.analyze_namespace("default", cancel=token)


class TestNamespaceAnalysis:
    """Tests for namespace-level aggregation."""

    @pytest.fixture
    def two_workloads(self, aggregator, allocations, make_summary, make_allocation):
        other = WorkloadId("default", "worker-5c4b2", "worker")
        for workload_id in (WORKLOAD, other):
            aggregator.add(make_summary(workload_id=workload_id))
            allocations.add(make_allocation(workload_id=workload_id))
        return WORKLOAD, other

    def test_collects_recommendations(self, recommender, two_workloads):
        analysis = recommender.analyze_namespace("default")

        assert len(analysis.recommendations) == 2
        assert analysis.failures == []
        assert analysis.total_savings == pytest.approx(2 * (400 - 207) * 0.00001 * 720)
        assert analysis.average_confidence == pytest.approx(0.4375)

    def test_iter_namespace_yields_per_workload_outcomes(
        self, aggregator, allocations, two_workloads, no_retry
    ):
        failing = two_workloads[1]
        recommender = RightsizingRecommender(
            FlakyAggregator(aggregator, failing=[failing]),
            allocations,
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        outcomes = list(recommender.iter_namespace("default"))

        assert [o.workload_id for o in outcomes] == list(two_workloads)
        assert outcomes[0].ok and len(outcomes[0].recommendations) == 1
        assert not outcomes[1].ok
        assert isinstance(outcomes[1].error, CollaboratorUnavailable)

    def test_best_effort_collects_failures(self, aggregator, allocations, two_workloads, no_retry):
        failing = two_workloads[1]
        recommender = RightsizingRecommender(
            FlakyAggregator(aggregator, failing=[failing]),
            allocations,
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        analysis = recommender.analyze_namespace("default")

        assert len(analysis.recommendations) == 1
        assert len(analysis.failures) == 1
        assert analysis.failures[0].workload_id == failing
        assert analysis.failures[0].error_type == "CollaboratorUnavailable"

    def test_fail_fast_raises(self, aggregator, allocations, two_workloads, no_retry):
        failing = two_workloads[1]
        recommender = RightsizingRecommender(
            FlakyAggregator(aggregator, failing=[failing]),
            allocations,
            aggregator_guard=no_retry,
            allocation_guard=no_retry,
        )

        with pytest.raises(NamespaceAnalysisError) as exc_info:
            recommender.analyze_namespace("default", fail_fast=True)

        assert exc_info.value.workload_id == failing
        assert isinstance(exc_info.value.__cause__, CollaboratorUnavailable)

    def test_missing_allocation_is_not_a_failure(self, recommender, aggregator, make_summary, two_workloads, allocations):
        del allocations.allocations[two_workloads[1]]

        analysis = recommender.analyze_namespace("default")

        assert len(analysis.recommendations) == 1
        assert analysis.failures == []

    def test_listing_failure_propagates(self, allocations, no_retry):
        class DownAggregator:
            def summarize(self, workload_id, kind, window):
                raise AssertionError("not reached")

            def list_workloads(self, namespace, window):
                raise CollaboratorUnavailable("metrics backend down")

        recommender = RightsizingRecommender(
            DownAggregator(), allocations, aggregator_guard=no_retry, allocation_guard=no_retry
        )

        with pytest.raises(CollaboratorUnavailable):
            recommender.analyze_namespace("default")

    def test_empty_namespace(self, recommender):
        analysis = recommender.analyze_namespace("empty")

        assert analysis.recommendations == []
        assert analysis.average_confidence == 0.0


class TestSummary:
    """Tests for the optimization summary."""

    def test_summary_buckets(self, recommender, aggregator, allocations, make_summary, make_allocation):
        # CPU: confidence 0.4375 (low), LOW risk
        aggregator.add(make_summary())
        # Memory: confidence 0.75 (medium), MEDIUM risk (cv 0.5)
        aggregator.add(make_summary(
            kind=ResourceKind.MEMORY,
            p50=100 * MIB, p95=200 * MIB, p99=250 * MIB, max=300 * MIB,
            mean=100 * MIB, stddev=50 * MIB, sample_count=5000,
        ))
        allocations.add(make_allocation(memory_request=1024 * MIB))

        summary = recommender.summarize("default")

        assert summary.total_recommendations == 2
        assert summary.confidence_buckets == {"high": 0, "medium": 1, "low": 1}
        assert summary.risk_buckets == {"low": 1, "medium": 1, "high": 0}
        assert summary.annual_savings == pytest.approx(summary.total_savings * 12)
        assert summary.savings_by_resource_kind["cpu"] == pytest.approx((400 - 207) * 0.00001 * 720)
        assert summary.total_savings == pytest.approx(
            summary.savings_by_resource_kind["cpu"] + summary.savings_by_resource_kind["memory"]
        )
        assert summary.failed_workloads == 0

    def test_confidence_bucket_edges(self):
        """0.8 is high and 0.6 is medium."""
        from rightsize_ai.core.rightsizing import NamespaceAnalysis
        from rightsize_ai.core.entities import Recommendation

        def rec(confidence):
            return Recommendation(
                workload_id=WORKLOAD, kind=ResourceKind.CPU,
                current_request=100, current_limit=200,
                recommended_request=50, recommended_limit=75,
                p50=10, p95=20, p99=30, max=40,
                potential_savings=1.0, confidence=confidence,
                risk_level=RiskLevel.HIGH, reasoning="", created_at=NOW,
            )

        analysis = NamespaceAnalysis("default", [rec(0.8), rec(0.6), rec(0.59)])
        summary = OptimizationSummary.from_analysis(analysis)

        assert summary.confidence_buckets == {"high": 1, "medium": 1, "low": 1}
        assert summary.risk_buckets["high"] == 3
        assert summary.to_dict()["annual_savings"] == pytest.approx(36.0)
