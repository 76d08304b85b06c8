"""
Shared pytest fixtures for RightSize AI tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from rightsize_ai.app import create_app
from rightsize_ai.config import MIB, TestConfig
from rightsize_ai.core.collaborators import AllocationNotFound
from rightsize_ai.core.entities import (
    ResourceAllocation,
    ResourceKind,
    UtilizationSummary,
    WorkloadId,
)
from rightsize_ai.core.models import NamespaceCost, PodMetric, ResourceRequestSnapshot
from rightsize_ai.core.resilience import ResilientCaller, RetryPolicy, reset_circuit_breakers
from rightsize_ai.extensions import db


WORKLOAD = WorkloadId("default", "api-7d9f8", "api")
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class InMemoryAggregator:
    """Statistics aggregator serving canned summaries."""

    def __init__(self):
        self.summaries = {}
        self.workloads = {}
        self.calls = []

    def add(self, summary: UtilizationSummary) -> None:
        self.summaries[(summary.workload_id, summary.kind)] = summary
        known = self.workloads.setdefault(summary.workload_id.namespace, [])
        if summary.workload_id not in known:
            known.append(summary.workload_id)

    def summarize(self, workload_id, kind, window):
        self.calls.append((workload_id, kind, window))
        return self.summaries.get((workload_id, kind))

    def list_workloads(self, namespace, window):
        return list(self.workloads.get(namespace, []))


class InMemoryAllocations:
    """Allocation store backed by a dict."""

    def __init__(self):
        self.allocations = {}

    def add(self, allocation: ResourceAllocation) -> None:
        self.allocations[allocation.workload_id] = allocation

    def get_current_allocation(self, workload_id):
        try:
            return self.allocations[workload_id]
        except KeyError:
            raise AllocationNotFound(workload_id) from None


class StaticCostSource:
    """Cost baseline source returning fixed totals per namespace."""

    def __init__(self, costs=None):
        self.costs = dict(costs or {})
        self.calls = 0

    def get_namespace_baseline_cost(self, namespace, window):
        self.calls += 1
        return self.costs.get(namespace, 0.0)


@pytest.fixture(autouse=True)
def clear_circuit_breakers():
    """Breakers are process-wide; start every test with closed circuits."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def app():
    """Create Flask test application with fresh database."""
    app = create_app(TestConfig())
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def db_session(app):
    """Provide database session for tests."""
    with app.app_context():
        yield db.session
        db.session.rollback()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def aggregator():
    return InMemoryAggregator()


@pytest.fixture
def allocations():
    return InMemoryAllocations()


@pytest.fixture
def cost_source():
    return StaticCostSource()


@pytest.fixture
def no_retry():
    """Guard that makes a single attempt and never sleeps."""
    return ResilientCaller("test", retry_policy=RetryPolicy(max_attempts=1))


@pytest.fixture
def make_summary():
    """Factory for utilization summaries with sensible defaults."""

    def _make(
        workload_id=WORKLOAD,
        kind=ResourceKind.CPU,
        p50=100.0,
        p95=180.0,
        p99=220.0,
        max=250.0,
        mean=120.0,
        stddev=30.0,
        sample_count=500,
    ):
        return UtilizationSummary(
            workload_id=workload_id,
            kind=kind,
            window_start=NOW - timedelta(days=7),
            window_end=NOW,
            p50=p50,
            p95=p95,
            p99=p99,
            max=max,
            mean=mean,
            stddev=stddev,
            sample_count=sample_count,
        )

    return _make


@pytest.fixture
def make_allocation():
    """Factory for allocations; CPU in millicores, memory in bytes."""

    def _make(
        workload_id=WORKLOAD,
        cpu_request=400.0,
        cpu_limit=800.0,
        memory_request=512.0 * MIB,
        memory_limit=1024.0 * MIB,
    ):
        return ResourceAllocation(
            workload_id=workload_id,
            cpu_request=cpu_request,
            cpu_limit=cpu_limit,
            memory_request=memory_request,
            memory_limit=memory_limit,
        )

    return _make


@pytest.fixture
def seeded_namespace(db_session):
    """
    Populate the metrics tables for one over-provisioned container.

    The container ``default/api-7d9f8/api`` requests 1000m CPU and 1Gi of
    memory but uses roughly 200m and 200Mi. The namespace accrued 5.0 in the
    last hour.
    """
    now = datetime.now(timezone.utc)
    for i in range(150):
        db_session.add(PodMetric(
            namespace=WORKLOAD.namespace,
            pod_name=WORKLOAD.pod_name,
            container_name=WORKLOAD.container_name,
            timestamp=now - timedelta(minutes=5 * (i + 1)),
            cpu_millicores=180.0 + (i % 5) * 10,
            memory_bytes=(190 + (i % 5) * 5) * MIB,
        ))

    db_session.add(ResourceRequestSnapshot(
        namespace=WORKLOAD.namespace,
        pod_name=WORKLOAD.pod_name,
        container_name=WORKLOAD.container_name,
        timestamp=now - timedelta(days=2),
        cpu_request=500.0,
        cpu_limit=1000.0,
        memory_request=512.0 * MIB,
        memory_limit=1024.0 * MIB,
    ))
    db_session.add(ResourceRequestSnapshot(
        namespace=WORKLOAD.namespace,
        pod_name=WORKLOAD.pod_name,
        container_name=WORKLOAD.container_name,
        timestamp=now - timedelta(hours=1),
        cpu_request=1000.0,
        cpu_limit=2000.0,
        memory_request=1024.0 * MIB,
        memory_limit=2048.0 * MIB,
    ))

    db_session.add(NamespaceCost(
        namespace=WORKLOAD.namespace,
        timestamp=now - timedelta(minutes=30),
        compute_cost=3.0,
        storage_cost=1.0,
        network_cost=0.75,
        other_cost=0.25,
    ))
    db_session.add(NamespaceCost(
        namespace=WORKLOAD.namespace,
        timestamp=now - timedelta(hours=3),
        compute_cost=100.0,
        storage_cost=0.0,
        network_cost=0.0,
        other_cost=0.0,
    ))
    db_session.commit()
    return WORKLOAD
