"""
Cost simulation API endpoint for RightSize AI.

Projects a namespace's cost under proposed allocation changes without
changing anything.
"""

import logging
from flask import Blueprint, jsonify, request, current_app
from pydantic import ValidationError

from rightsize_ai.core.optimizer_service import create_optimizer_service
from rightsize_ai.core.rate_limiter import RateLimits, rate_limit
from rightsize_ai.core.schemas import SimulationRequest
from rightsize_ai.extensions import db
from rightsize_ai.routes import error_response

logger = logging.getLogger(__name__)

simulation_bp = Blueprint("simulation", __name__)


@simulation_bp.route("/simulate", methods=["POST"])
@rate_limit(RateLimits.SIMULATE)
def simulate():
    """
    Simulate the cost impact of allocation changes.

    Request JSON body:
        - namespace: string
        - changes: list of {pod_name, container_name, cpu_request,
          cpu_limit, memory_request, memory_limit, replicas}; omitted
          quantities keep the container's current value
        - period: "daily", "monthly" (default) or "yearly"

    Returns:
        - current_cost, projected_cost, cost_delta, savings, savings_percent
        - breakdown: heuristic split of the projected cost
    """
    data = request.get_json(silent=True) or {}

    try:
        req = SimulationRequest.model_validate(data)
    except ValidationError as e:
        return error_response(
            "VALIDATION_ERROR",
            "Invalid request body",
            400,
            e.errors(include_url=False, include_context=False),
        )

    logger.info(
        f"Received simulation request for namespace {req.namespace} "
        f"with {len(req.changes)} changes"
    )

    service = create_optimizer_service(app_config=current_app.config, session=db.session)
    result = service.simulate(req.namespace, req.to_changes(), req.period)

    response = result.to_dict()
    response["changes"] = len(req.changes)
    return jsonify(response), 200
