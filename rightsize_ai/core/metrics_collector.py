"""
Prometheus statistics aggregator for RightSize AI.

This module summarizes container CPU and memory usage directly from
Prometheus using ``*_over_time`` subqueries, as an alternative to the
``pod_metrics`` table. CPU usage is converted from cores to millicores.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests
from requests.exceptions import RequestException

from rightsize_ai.core.collaborators import CollaboratorUnavailable
from rightsize_ai.core.entities import ResourceKind, UtilizationSummary, WorkloadId

logger = logging.getLogger(__name__)


class MetricsCollectionError(CollaboratorUnavailable):
    """Exception raised when Prometheus cannot be queried."""
    pass


@dataclass
class PrometheusConfig:
    """Configuration for Prometheus connection."""
    base_url: str = "http://prometheus:9090"
    timeout: int = 30
    verify_ssl: bool = True


def format_duration(window: timedelta) -> str:
    """
    Render a window as a PromQL duration ("7d", "12h", "30m", "45s").

    Raises:
        ValueError: If the window is shorter than one second.
    """
    seconds = int(window.total_seconds())
    if seconds < 1:
        raise ValueError(f"window must be at least one second, got {window}")
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"


def escape_label_value(value: str) -> str:
    """Escape a value for use inside a double-quoted PromQL label matcher."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


# ============================================================================
# PromQL Query Templates
# ============================================================================

class PromQLQueries:
    """
    PromQL query templates for summarizing container usage.

    Series templates are parameterized with ``namespace``, ``pod`` and
    ``container``; statistic templates wrap a series in a
    ``[lookback:5m]`` subquery.
    """

    # CPU in millicores (rate of cores * 1000)
    CPU_SERIES = (
        'sum(rate(container_cpu_usage_seconds_total{{'
        'namespace="{namespace}", pod="{pod}", container="{container}"'
        '}}[5m])) * 1000'
    )

    # Memory working set in bytes
    MEMORY_SERIES = (
        'sum(container_memory_working_set_bytes{{'
        'namespace="{namespace}", pod="{pod}", container="{container}"'
        '}})'
    )

    QUANTILE = "quantile_over_time({quantile}, ({series})[{lookback}:5m])"
    MAX = "max_over_time(({series})[{lookback}:5m])"
    AVG = "avg_over_time(({series})[{lookback}:5m])"
    STDDEV = "stddev_over_time(({series})[{lookback}:5m])"
    COUNT = "count_over_time(({series})[{lookback}:5m])"

    # Containers with working-set samples in the namespace
    WORKLOADS = (
        'count by (pod, container) (count_over_time(container_memory_working_set_bytes{{'
        'namespace="{namespace}", container!="", container!="POD"'
        '}}[{lookback}]))'
    )

    @classmethod
    def series(cls, kind: ResourceKind, workload_id: WorkloadId) -> str:
        template = cls.CPU_SERIES if kind == ResourceKind.CPU else cls.MEMORY_SERIES
        return template.format(
            namespace=escape_label_value(workload_id.namespace),
            pod=escape_label_value(workload_id.pod_name),
            container=escape_label_value(workload_id.container_name),
        )


class PrometheusClient:
    """
    Client for querying Prometheus metrics.

    Handles HTTP requests to the Prometheus API and parses responses.
    """

    def __init__(self, config: Optional[PrometheusConfig] = None):
        """
        Initialize the Prometheus client.

        Args:
            config: Prometheus connection configuration.
        """
        self.config = config or PrometheusConfig()
        self._session = requests.Session()

    def _get(self, promql: str) -> list[dict]:
        url = f"{self.config.base_url}/api/v1/query"
        params = {"query": promql.strip()}

        try:
            response = self._session.get(
                url,
                params=params,
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
            )
            response.raise_for_status()
            data = response.json()
        except RequestException as e:
            logger.error(f"Prometheus request failed: {e}")
            raise MetricsCollectionError(f"Failed to query Prometheus: {e}") from e
        except ValueError as e:
            raise MetricsCollectionError(f"Invalid response from Prometheus: {e}") from e

        if data.get("status") != "success":
            logger.warning(f"Prometheus query failed: {data.get('error', 'Unknown error')}")
            return []

        return data.get("data", {}).get("result", [])

    def query(self, promql: str) -> Optional[float]:
        """
        Execute an instant PromQL query and return the scalar result.

        Args:
            promql: The PromQL query string.

        Returns:
            The query result as a float, or None if no data.

        Raises:
            MetricsCollectionError: If the query fails.
        """
        result = self._get(promql)
        if not result:
            return None

        # Result format: [timestamp, "value"]
        value = result[0].get("value", [None, None])
        if len(value) >= 2 and value[1] is not None:
            try:
                return float(value[1])
            except (ValueError, TypeError):
                return None

        return None

    def query_labels(self, promql: str) -> list[dict[str, str]]:
        """
        Execute an instant vector query and return each series' labels.

        Raises:
            MetricsCollectionError: If the query fails.
        """
        return [item.get("metric", {}) for item in self._get(promql)]


class PrometheusAggregator:
    """
    Statistics aggregator backed by Prometheus.

    Args:
        client: Prometheus client.
        min_data_points: Minimum subquery samples for a summary.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        client: Optional[PrometheusClient] = None,
        min_data_points: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client or PrometheusClient()
        self._queries = PromQLQueries()
        self.min_data_points = min_data_points
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_url(
        cls,
        prometheus_url: str,
        timeout: int = 30,
        min_data_points: int = 100,
    ) -> "PrometheusAggregator":
        config = PrometheusConfig(base_url=prometheus_url, timeout=timeout)
        return cls(PrometheusClient(config), min_data_points=min_data_points)

    def summarize(
        self,
        workload_id: WorkloadId,
        kind: ResourceKind,
        window: timedelta,
    ) -> Optional[UtilizationSummary]:
        """
        Summarize usage over the trailing window.

        Returns:
            The summary, or None if Prometheus holds fewer than
            ``min_data_points`` samples.

        Raises:
            MetricsCollectionError: If Prometheus cannot be queried.
        """
        params = {
            "series": self._queries.series(kind, workload_id),
            "lookback": format_duration(window),
        }

        count = self._client.query(self._queries.COUNT.format(**params))
        if count is None or count < self.min_data_points:
            logger.debug(
                f"{workload_id} has {count or 0:.0f} {kind.value} samples in Prometheus, "
                f"fewer than {self.min_data_points}"
            )
            return None

        stats = {
            "p50": self._client.query(self._queries.QUANTILE.format(quantile=0.5, **params)),
            "p95": self._client.query(self._queries.QUANTILE.format(quantile=0.95, **params)),
            "p99": self._client.query(self._queries.QUANTILE.format(quantile=0.99, **params)),
            "max": self._client.query(self._queries.MAX.format(**params)),
            "mean": self._client.query(self._queries.AVG.format(**params)),
            "stddev": self._client.query(self._queries.STDDEV.format(**params)),
        }
        missing = [name for name, value in stats.items() if value is None]
        if missing:
            logger.debug(f"Prometheus returned no {', '.join(missing)} for {workload_id}")
            return None

        window_end = self._clock()
        return UtilizationSummary(
            workload_id=workload_id,
            kind=kind,
            window_start=window_end - window,
            window_end=window_end,
            sample_count=int(count),
            **stats,
        )

    def list_workloads(self, namespace: str, window: timedelta) -> list[WorkloadId]:
        """
        List containers in the namespace that reported samples in the window.

        Raises:
            MetricsCollectionError: If Prometheus cannot be queried.
        """
        promql = self._queries.WORKLOADS.format(
            namespace=escape_label_value(namespace),
            lookback=format_duration(window),
        )
        workloads = {
            WorkloadId(namespace, labels["pod"], labels["container"])
            for labels in self._client.query_labels(promql)
            if labels.get("pod") and labels.get("container")
        }
        return sorted(workloads)
