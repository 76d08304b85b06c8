"""
Core package for RightSize AI.

Contains the rightsizing, cost and simulation logic, the collaborators it
reads from, and the persistence models.
"""

from rightsize_ai.core.entities import (
    Recommendation,
    ResourceAllocation,
    ResourceKind,
    RiskLevel,
    SimulationChange,
    SimulationPeriod,
    SimulationResult,
    UtilizationSummary,
    WorkloadId,
)

__all__ = [
    "Recommendation",
    "ResourceAllocation",
    "ResourceKind",
    "RiskLevel",
    "SimulationChange",
    "SimulationPeriod",
    "SimulationResult",
    "UtilizationSummary",
    "WorkloadId",
]
