"""
Health check endpoints for RightSize AI.

Provides liveness and readiness probes for Kubernetes deployments.
"""

import logging
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from rightsize_ai import __version__
from rightsize_ai.core.rate_limiter import exempt_from_rate_limit
from rightsize_ai.core.schemas import HealthResponse
from rightsize_ai.extensions import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)

SERVICE_NAME = "rightsize-ai"


@health_bp.route("/api/v1/health", methods=["GET"])
@exempt_from_rate_limit
def health():
    """
    Health check endpoint.

    Returns basic application health status.
    """
    body = HealthResponse(status="healthy", service=SERVICE_NAME, version=__version__)
    return jsonify(body.model_dump(exclude_none=True)), 200


@health_bp.route("/api/v1/health/ready", methods=["GET"])
@exempt_from_rate_limit
def readiness():
    """
    Readiness check endpoint for Kubernetes readiness probe.

    Checks database connectivity, which every analysis depends on.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db.session.rollback()
        body = HealthResponse(
            status="not_ready",
            service=SERVICE_NAME,
            version=__version__,
            checks={"database": {"status": "unhealthy", "message": "Database connection failed"}},
        )
        return jsonify(body.model_dump()), 503

    body = HealthResponse(
        status="ready",
        service=SERVICE_NAME,
        version=__version__,
        checks={"database": {"status": "healthy", "message": "Database connection successful"}},
    )
    return jsonify(body.model_dump()), 200


@health_bp.route("/api/v1/health/live", methods=["GET"])
@exempt_from_rate_limit
def liveness():
    """
    Liveness check endpoint for Kubernetes liveness probe.

    Returns simple alive status without dependency checks.
    """
    return jsonify({
        "status": "alive",
        "service": SERVICE_NAME
    }), 200
