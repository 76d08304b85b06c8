"""
Resource patch generation for RightSize AI.

Renders recommendations as Kubernetes Pod manifests carrying only the
recommended ``resources`` block, ready for review and ``kubectl apply``.
Nothing here talks to a cluster.
"""

import logging
from io import StringIO
from typing import Iterable

from ruamel.yaml import YAML

from rightsize_ai.core.cost_engine import format_cpu, format_memory
from rightsize_ai.core.entities import Recommendation, ResourceKind, WorkloadId

logger = logging.getLogger(__name__)


def _quantity(kind: ResourceKind, value: float) -> str:
    if kind == ResourceKind.CPU:
        return format_cpu(value)
    return format_memory(value)


class ResourcePatchGenerator:
    """Builds one YAML document per container from its recommendations."""

    def __init__(self):
        self._yaml = YAML()
        self._yaml.default_flow_style = False

    def build_manifest(
        self,
        workload_id: WorkloadId,
        recommendations: Iterable[Recommendation],
    ) -> dict:
        """
        Build the patch manifest for one container.

        Args:
            workload_id: The container being patched.
            recommendations: Its CPU and/or memory recommendations.

        Returns:
            Pod manifest dictionary with requests and limits set.
        """
        requests: dict[str, str] = {}
        limits: dict[str, str] = {}
        for rec in recommendations:
            resource = rec.kind.value.lower()
            requests[resource] = _quantity(rec.kind, rec.recommended_request)
            limits[resource] = _quantity(rec.kind, rec.recommended_limit)

        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": workload_id.pod_name,
                "namespace": workload_id.namespace,
            },
            "spec": {
                "containers": [
                    {
                        "name": workload_id.container_name,
                        "resources": {
                            "requests": requests,
                            "limits": limits,
                        },
                    }
                ]
            },
        }

    def generate(self, recommendations: Iterable[Recommendation]) -> list[str]:
        """
        Generate patches, one per container, in first-seen order.

        Returns:
            List of YAML documents.
        """
        grouped: dict[WorkloadId, list[Recommendation]] = {}
        for rec in recommendations:
            grouped.setdefault(rec.workload_id, []).append(rec)

        patches = [
            self.dump_yaml(self.build_manifest(workload_id, recs))
            for workload_id, recs in grouped.items()
        ]
        logger.debug(f"Generated {len(patches)} resource patches")
        return patches

    def dump_yaml(self, data: dict) -> str:
        """
        Dump a dictionary to YAML string.

        Args:
            data: Dictionary to convert to YAML.

        Returns:
            YAML formatted string.
        """
        stream = StringIO()
        self._yaml.dump(data, stream)
        return stream.getvalue()


def generate_resource_patches(recommendations: Iterable[Recommendation]) -> list[str]:
    """Convenience wrapper around ResourcePatchGenerator.generate."""
    return ResourcePatchGenerator().generate(recommendations)


def apply_command(namespace: str) -> str:
    """The kubectl command an operator runs on the saved patch file."""
    return f"kubectl apply -f recommendations-{namespace}.yaml"
