"""
Recommendation API endpoints for RightSize AI.

Provides REST API for analyzing namespaces and workloads, summarizing the
optimization potential of a namespace, browsing stored recommendations and
recording the decisions users make on them.
"""

import logging
from flask import Blueprint, jsonify, request, current_app
from pydantic import ValidationError

from rightsize_ai.core.entities import WorkloadId
from rightsize_ai.core.optimizer_service import OptimizerService, create_optimizer_service
from rightsize_ai.core.patches import generate_resource_patches
from rightsize_ai.core.rate_limiter import RateLimits, rate_limit
from rightsize_ai.core.recommendation_store import RecommendationNotFound
from rightsize_ai.core.rightsizing import NamespaceAnalysisError
from rightsize_ai.core.schemas import (
    HistoryQuery,
    RecommendationActionRequest,
    RecommendationQuery,
)
from rightsize_ai.extensions import db
from rightsize_ai.routes import error_response

logger = logging.getLogger(__name__)

recommendations_bp = Blueprint("recommendations", __name__)


def get_optimizer_service() -> OptimizerService:
    """Build the optimizer service for the current request."""
    return create_optimizer_service(app_config=current_app.config, session=db.session)


def validation_error(e: ValidationError):
    return error_response(
        "VALIDATION_ERROR",
        "Invalid request",
        400,
        e.errors(include_url=False, include_context=False),
    )


@recommendations_bp.route("/recommendations/<namespace>", methods=["GET"])
@rate_limit(RateLimits.ANALYZE)
def get_namespace_recommendations(namespace: str):
    """
    Analyze every workload of a namespace.

    Query parameters:
        - persist: store the recommendations (default false)
        - fail_fast: respond 503 if any workload cannot be analyzed (default false)

    Returns:
        - recommendations, total and annual savings, average confidence
        - YAML patches and the kubectl command to apply them
        - workloads whose analysis failed
    """
    try:
        query = RecommendationQuery.model_validate(request.args.to_dict())
    except ValidationError as e:
        return validation_error(e)

    logger.info(f"Received recommendation request for namespace: {namespace}")

    service = get_optimizer_service()
    try:
        report = service.analyze_namespace(
            namespace, fail_fast=query.fail_fast, persist=query.persist
        )
    except NamespaceAnalysisError as e:
        logger.error(f"Namespace analysis failed: {e}")
        return error_response(
            "UPSTREAM_UNAVAILABLE",
            str(e),
            503,
            {
                "namespace": e.namespace,
                "workload": str(e.workload_id),
                "error_type": type(e.error).__name__,
            },
        )

    return jsonify(report), 200


@recommendations_bp.route("/recommendations/<namespace>/summary", methods=["GET"])
@rate_limit(RateLimits.ANALYZE)
def get_namespace_summary(namespace: str):
    """
    Summarize the optimization potential of a namespace.

    Returns:
        - recommendation count, monthly and annual savings
        - savings per resource kind
        - confidence and risk buckets
    """
    summary = get_optimizer_service().summarize(namespace)
    return jsonify(summary.to_dict()), 200


@recommendations_bp.route("/recommendations/<namespace>/history", methods=["GET"])
@rate_limit(RateLimits.READ)
def get_recommendation_history(namespace: str):
    """List stored recommendations for a namespace, newest first."""
    try:
        query = HistoryQuery.model_validate(request.args.to_dict())
    except ValidationError as e:
        return validation_error(e)

    records = get_optimizer_service().history(namespace, limit=query.limit)
    return jsonify({
        "namespace": namespace,
        "recommendations": [record.to_dict() for record in records],
        "total": len(records),
        "limit": query.limit,
    }), 200


@recommendations_bp.route(
    "/recommendations/<namespace>/<pod_name>/<container_name>", methods=["GET"]
)
@rate_limit(RateLimits.ANALYZE)
def get_workload_recommendations(namespace: str, pod_name: str, container_name: str):
    """Analyze a single container."""
    workload_id = WorkloadId(namespace, pod_name, container_name)
    recommendations = get_optimizer_service().analyze_workload(workload_id)

    return jsonify({
        "namespace": namespace,
        "pod_name": pod_name,
        "container_name": container_name,
        "recommendations": [rec.to_dict() for rec in recommendations],
        "total_savings": sum(rec.potential_savings for rec in recommendations),
        "patches": generate_resource_patches(recommendations),
    }), 200


@recommendations_bp.route("/recommendations/actions", methods=["POST"])
@rate_limit(RateLimits.WRITE)
def record_recommendation_action():
    """
    Record a decision on the newest stored recommendation of a container.

    Request JSON body:
        - namespace, pod_name, container_name: the container
        - resource_type: "CPU" or "Memory"
        - action: "apply", "reject" or "modify"

    Nothing is applied to the cluster; the decision is only recorded.
    """
    data = request.get_json(silent=True) or {}

    try:
        req = RecommendationActionRequest.model_validate(data)
    except ValidationError as e:
        return validation_error(e)

    try:
        record = get_optimizer_service().record_action(
            req.workload_id, req.resource_type, req.action
        )
    except RecommendationNotFound as e:
        return error_response("NOT_FOUND", str(e), 404)

    return jsonify({
        "status": "recorded",
        "action": record.to_dict(),
    }), 201
