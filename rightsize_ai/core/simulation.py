"""
Cost simulation for RightSize AI.

Projects a namespace's cost under hypothetical allocation changes. The
current cost is the namespace's recent hourly spend; each change adds the
hourly cost difference between its proposed and current requests.

Simulation only reads. It never mutates allocations, recommendations or any
persisted state, so identical inputs on identical state give identical
results.
"""

import logging
from typing import Iterable, Optional, Union

from rightsize_ai.config import AnalysisSettings
from rightsize_ai.core.collaborators import (
    AllocationNotFound,
    AllocationStore,
    CostBaselineSource,
)
from rightsize_ai.core.cost_engine import CostModel
from rightsize_ai.core.entities import (
    CostSplit,
    ResourceAllocation,
    ResourceKind,
    SimulationChange,
    SimulationPeriod,
    SimulationResult,
)
from rightsize_ai.core.resilience import CancellationToken, ResilientCaller

logger = logging.getLogger(__name__)


# Fixed heuristic split of projected spend. This approximates a typical
# cluster bill; it is not derived from the namespace's actual costs.
BREAKDOWN_RATIOS = {
    "compute": 0.60,
    "storage": 0.20,
    "network": 0.15,
    "other": 0.05,
}


def parse_period(period: Union[SimulationPeriod, str]) -> SimulationPeriod:
    """
    Coerce a period name to a SimulationPeriod.

    Raises:
        ValueError: If the period is not daily, monthly or yearly.
    """
    if isinstance(period, SimulationPeriod):
        return period
    try:
        return SimulationPeriod(str(period).lower())
    except ValueError:
        valid = ", ".join(p.value for p in SimulationPeriod)
        raise ValueError(f"Unknown simulation period '{period}', expected one of: {valid}") from None


def split_cost(total: float) -> CostSplit:
    return CostSplit(
        compute=total * BREAKDOWN_RATIOS["compute"],
        storage=total * BREAKDOWN_RATIOS["storage"],
        network=total * BREAKDOWN_RATIOS["network"],
        other=total * BREAKDOWN_RATIOS["other"],
    )


class SimulationEngine:
    """
    Projects namespace cost for a set of proposed allocation changes.

    Args:
        allocations: Source of current requests and limits.
        cost_source: Source of the namespace's recent cost.
        settings: Analysis settings (unit costs, baseline window).
        cost_model: Cost model; built from settings if omitted.
        allocation_guard: Resilience wrapper for allocation store calls.
        cost_guard: Resilience wrapper for cost source calls.
    """

    def __init__(
        self,
        allocations: AllocationStore,
        cost_source: CostBaselineSource,
        settings: Optional[AnalysisSettings] = None,
        cost_model: Optional[CostModel] = None,
        allocation_guard: Optional[ResilientCaller] = None,
        cost_guard: Optional[ResilientCaller] = None,
    ):
        self.allocations = allocations
        self.cost_source = cost_source
        self.settings = settings or AnalysisSettings()
        self.cost_model = cost_model or CostModel.from_settings(self.settings)
        self._allocation_guard = allocation_guard or ResilientCaller("allocation_store")
        self._cost_guard = cost_guard or ResilientCaller("cost_store")

    def _current_allocation(
        self,
        change: SimulationChange,
        cancel: CancellationToken,
    ) -> ResourceAllocation:
        try:
            return self._allocation_guard.call(
                self.allocations.get_current_allocation, change.workload_id, cancel=cancel
            )
        except AllocationNotFound:
            logger.info(f"No allocation recorded for {change.workload_id}, simulating as new")
            return ResourceAllocation(
                workload_id=change.workload_id,
                cpu_request=0.0,
                cpu_limit=0.0,
                memory_request=0.0,
                memory_limit=0.0,
            )

    def hourly_delta(
        self,
        change: SimulationChange,
        current: ResourceAllocation,
    ) -> float:
        """Hourly cost difference of one change; unset requests keep the current value."""
        cpu = change.cpu_request if change.cpu_request is not None else current.cpu_request
        memory = (
            change.memory_request if change.memory_request is not None
            else current.memory_request
        )
        cpu_delta = self.cost_model.cost(ResourceKind.CPU, cpu - current.cpu_request, 1)
        memory_delta = self.cost_model.cost(
            ResourceKind.MEMORY, memory - current.memory_request, 1
        )
        return cpu_delta * change.replicas + memory_delta * change.replicas

    def simulate(
        self,
        namespace: str,
        changes: Iterable[SimulationChange],
        period: Union[SimulationPeriod, str] = SimulationPeriod.MONTHLY,
        cancel: Optional[CancellationToken] = None,
    ) -> SimulationResult:
        """
        Project the namespace's cost over a period with the changes applied.

        Raises:
            ValueError: If the period is unknown.
            CollaboratorUnavailable: If a collaborator stays unavailable.
            OperationCancelled: If the token fires; no result is returned.
        """
        period = parse_period(period)
        cancel = cancel or CancellationToken()
        changes = list(changes)
        window = self.settings.baseline_window

        logger.info(
            f"Simulating {len(changes)} changes in namespace {namespace} ({period.value})"
        )

        baseline_cost = self._cost_guard.call(
            self.cost_source.get_namespace_baseline_cost, namespace, window, cancel=cancel
        )
        baseline_hourly = baseline_cost / (window.total_seconds() / 3600)

        delta = 0.0
        for change in changes:
            cancel.raise_if_cancelled()
            current = self._current_allocation(change, cancel)
            delta += self.hourly_delta(change, current)

        cancel.raise_if_cancelled()

        multiplier = period.hours
        current_cost = baseline_hourly * multiplier
        projected_cost = (baseline_hourly + delta) * multiplier
        savings = current_cost - projected_cost
        savings_percent = savings / current_cost * 100 if current_cost else 0.0

        result = SimulationResult(
            namespace=namespace,
            period=period,
            current_cost=current_cost,
            projected_cost=projected_cost,
            cost_delta=delta * multiplier,
            savings=savings,
            savings_percent=savings_percent,
            breakdown=split_cost(projected_cost),
        )
        logger.info(
            f"Simulation for {namespace} complete: projected {projected_cost:.2f}, "
            f"savings {savings:.2f} ({savings_percent:.1f}%)"
        )
        return result
