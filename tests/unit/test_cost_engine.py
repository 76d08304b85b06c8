"""
Unit tests for the cost model.

Tests linear pricing, monthly savings and Kubernetes quantity parsing.
"""

import pytest

from rightsize_ai.config import AnalysisSettings, MIB
from rightsize_ai.core.cost_engine import (
    HOURS_PER_MONTH,
    CostModel,
    ResourceParser,
    UnitCosts,
    format_cpu,
    format_memory,
)
from rightsize_ai.core.entities import ResourceKind


@pytest.fixture
def cost_model():
    return CostModel(UnitCosts(cpu=0.00001, memory=0.00000001))


class TestCostModel:
    """Tests for linear cost calculation."""

    def test_cost_uses_unit_cost_per_kind(self, cost_model):
        """CPU and memory are priced with their own unit cost."""
        assert cost_model.cost(ResourceKind.CPU, 1000, 1) == pytest.approx(0.01)
        assert cost_model.cost(ResourceKind.MEMORY, 1024 * MIB, 1) == pytest.approx(
            1024 * MIB * 0.00000001
        )

    @pytest.mark.parametrize("kind", list(ResourceKind))
    @pytest.mark.parametrize("quantity,hours", [(250, 1), (1.5, 720), (64 * MIB, 24)])
    def test_cost_is_linear_in_quantity(self, cost_model, kind, quantity, hours):
        """Doubling the quantity doubles the cost."""
        assert cost_model.cost(kind, 2 * quantity, hours) == 2 * cost_model.cost(
            kind, quantity, hours
        )

    def test_negative_quantity_prices_a_reduction(self, cost_model):
        """Deltas may be negative."""
        assert cost_model.cost(ResourceKind.CPU, -100, 1) == pytest.approx(-0.001)

    def test_monthly_savings_uses_720_hours(self, cost_model):
        """Monthly savings price the request difference over 720 hours."""
        assert HOURS_PER_MONTH == 720
        savings = cost_model.monthly_savings(ResourceKind.CPU, 400, 207)
        assert savings == pytest.approx((400 - 207) * 0.00001 * 720)

    def test_from_settings(self):
        """The model takes its unit costs from the analysis settings."""
        settings = AnalysisSettings(unit_cost_cpu=0.5, unit_cost_memory=0.25)
        model = CostModel.from_settings(settings)

        assert model.unit_costs == UnitCosts(cpu=0.5, memory=0.25)


class TestResourceParser:
    """Tests for Kubernetes resource string parsing."""

    def test_parse_cpu_millicores(self):
        """Parse CPU values in millicores."""
        assert ResourceParser.parse_cpu("100m") == 100.0
        assert ResourceParser.parse_cpu("2500m") == 2500.0

    def test_parse_cpu_cores(self):
        """Core values are converted to millicores."""
        assert ResourceParser.parse_cpu("1") == 1000.0
        assert ResourceParser.parse_cpu("0.25") == 250.0

    def test_parse_cpu_numbers_are_millicores(self):
        """Plain numbers are taken as millicores already."""
        assert ResourceParser.parse_cpu(250) == 250.0

    def test_parse_cpu_empty(self):
        """Parse empty or None CPU values."""
        assert ResourceParser.parse_cpu(None) == 0.0
        assert ResourceParser.parse_cpu("") == 0.0

    def test_parse_cpu_invalid(self):
        """Unparseable CPU strings raise."""
        with pytest.raises(ValueError):
            ResourceParser.parse_cpu("invalid")
        with pytest.raises(ValueError):
            ResourceParser.parse_cpu("100Mi")

    def test_parse_memory_binary_units(self):
        """Parse memory with binary units."""
        assert ResourceParser.parse_memory("128Mi") == 128 * MIB
        assert ResourceParser.parse_memory("1Gi") == 1024 * MIB
        assert ResourceParser.parse_memory("1048576Ki") == 1024 * MIB

    def test_parse_memory_decimal_units(self):
        """1G is smaller than 1Gi."""
        assert ResourceParser.parse_memory("1G") == 1000 ** 3
        assert ResourceParser.parse_memory("1G") < ResourceParser.parse_memory("1Gi")

    def test_parse_memory_bytes(self):
        assert ResourceParser.parse_memory("1073741824") == 1024 * MIB

    def test_parse_memory_invalid(self):
        """Unparseable memory strings raise."""
        with pytest.raises(ValueError):
            ResourceParser.parse_memory("lots")


class TestFormatting:
    """Tests for rendering quantities."""

    def test_format_cpu_rounds_up(self):
        assert format_cpu(206.99999999999997) == "207m"
        assert format_cpu(310.5) == "311m"

    def test_format_memory_rounds_up_to_mib(self):
        assert format_memory(256 * MIB) == "256Mi"
        assert format_memory(256 * MIB + 1) == "257Mi"
