"""
Cost model for RightSize AI.

This module maps a resource quantity held for a duration to money using a
linear per-unit price, and converts Kubernetes resource quantity strings to
and from the numeric units used by the analysis (millicores and bytes).

The same CostModel instance prices both the recommender's savings estimate
and the simulation engine's projection, so the two stay consistent with each
other. Unit costs are configured constants, not a live billing feed.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Union

from rightsize_ai.config import AnalysisSettings
from rightsize_ai.core.entities import ResourceKind

logger = logging.getLogger(__name__)


HOURS_PER_DAY = 24
HOURS_PER_MONTH = 24 * 30
HOURS_PER_YEAR = 24 * 365


@dataclass(frozen=True)
class UnitCosts:
    """Price per resource unit per hour."""
    cpu: float  # USD per millicore hour
    memory: float  # USD per byte hour

    def for_kind(self, kind: ResourceKind) -> float:
        if kind == ResourceKind.CPU:
            return self.cpu
        return self.memory


class CostModel:
    """
    Linear cost model.

    ``cost(kind, quantity, hours) = quantity * unit_cost[kind] * hours``.
    There is no tiering or discounting; negative quantities price a reduction.
    """

    def __init__(self, unit_costs: UnitCosts):
        self.unit_costs = unit_costs

    @classmethod
    def from_settings(cls, settings: AnalysisSettings) -> "CostModel":
        return cls(UnitCosts(cpu=settings.unit_cost_cpu, memory=settings.unit_cost_memory))

    def cost(self, kind: ResourceKind, quantity: float, hours: float) -> float:
        """
        Price a quantity of a resource held for a number of hours.

        Args:
            kind: Resource kind being priced.
            quantity: Millicores for CPU, bytes for memory.
            hours: Duration in hours.

        Returns:
            Cost in the unit-cost currency.
        """
        return quantity * self.unit_costs.for_kind(kind) * hours

    def hourly_cost(self, kind: ResourceKind, quantity: float) -> float:
        return self.cost(kind, quantity, 1)

    def monthly_savings(
        self,
        kind: ResourceKind,
        current: float,
        recommended: float,
    ) -> float:
        """Monthly cost difference between the current and a recommended quantity."""
        return self.cost(kind, current - recommended, HOURS_PER_MONTH)


class ResourceParser:
    """Parse Kubernetes resource strings into millicores and bytes."""

    # CPU patterns: "100m", "0.5", "1", "2000m"
    CPU_MILLI_PATTERN = re.compile(r"^(\d+\.?\d*)m$")
    CPU_CORE_PATTERN = re.compile(r"^(\d+\.?\d*)$")

    # Memory patterns: "128Mi", "1Gi", "256M", "1G", "1073741824"
    MEMORY_PATTERN = re.compile(
        r"^(\d+\.?\d*)(Ki|Mi|Gi|Ti|K|M|G|T|k)?$"
    )

    # Multipliers for memory units (to bytes)
    MEMORY_MULTIPLIERS = {
        None: 1,
        "": 1,
        "Ki": 1024,
        "Mi": 1024**2,
        "Gi": 1024**3,
        "Ti": 1024**4,
        "K": 1000,
        "k": 1000,
        "M": 1000**2,
        "G": 1000**3,
        "T": 1000**4,
    }

    @classmethod
    def parse_cpu(cls, cpu: Optional[Union[str, int, float]]) -> float:
        """
        Parse a Kubernetes CPU quantity to millicores.

        Numbers are taken to be millicores already. Strings follow the
        Kubernetes notation ("250m" or "0.25" cores).

        Raises:
            ValueError: If the string is not a CPU quantity.
        """
        if cpu is None or cpu == "":
            return 0.0
        if isinstance(cpu, (int, float)):
            return float(cpu)

        cpu_str = str(cpu).strip()

        milli_match = cls.CPU_MILLI_PATTERN.match(cpu_str)
        if milli_match:
            return float(milli_match.group(1))

        core_match = cls.CPU_CORE_PATTERN.match(cpu_str)
        if core_match:
            return float(core_match.group(1)) * 1000

        raise ValueError(f"Could not parse CPU quantity: {cpu_str!r}")

    @classmethod
    def parse_memory(cls, memory: Optional[Union[str, int, float]]) -> float:
        """
        Parse a Kubernetes memory quantity to bytes.

        Raises:
            ValueError: If the string is not a memory quantity.
        """
        if memory is None or memory == "":
            return 0.0
        if isinstance(memory, (int, float)):
            return float(memory)

        mem_str = str(memory).strip()

        match = cls.MEMORY_PATTERN.match(mem_str)
        if not match:
            raise ValueError(f"Could not parse memory quantity: {mem_str!r}")

        value = float(match.group(1))
        multiplier = cls.MEMORY_MULTIPLIERS[match.group(2)]
        return value * multiplier


def format_cpu(millicores: float) -> str:
    """Render millicores as a Kubernetes quantity, rounding up ("207m")."""
    return f"{int(math.ceil(millicores))}m"


def format_memory(num_bytes: float) -> str:
    """Render bytes as a whole number of MiB, rounding up ("256Mi")."""
    return f"{int(math.ceil(num_bytes / 1024**2))}Mi"
