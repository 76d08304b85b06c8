"""
Rate limiting utilities for RightSize AI.

Provides rate limiting decorators and the 429 error handler for API endpoints.
"""

import logging

from flask import jsonify, request

from rightsize_ai.extensions import limiter

logger = logging.getLogger(__name__)


class RateLimits:
    """Standard rate limit configurations."""

    # Namespace analysis queries every workload
    ANALYZE = "30/minute"

    # Simulations are cheaper but still fan out to the stores
    SIMULATE = "60/minute"

    # Read operations (higher limits)
    READ = "300/hour"

    # Write operations
    WRITE = "60/hour"


def rate_limit(limit: str):
    """
    Apply rate limiting to an endpoint.

    Args:
        limit: Rate limit string (e.g., "100/hour", "10/minute")

    Returns:
        Decorator function.
    """
    return limiter.limit(limit)


def exempt_from_rate_limit(f):
    """Exempt an endpoint, such as a health probe, from rate limiting."""
    return limiter.exempt(f)


def handle_rate_limit_exceeded(e):
    """
    Error handler for rate limit exceeded.

    Args:
        e: The rate limit exception.

    Returns:
        JSON error response with 429 status.
    """
    logger.warning(
        f"Rate limit exceeded: {request.remote_addr} - {request.path}"
    )

    retry_after = getattr(e, "retry_after", None)

    resp = jsonify({
        "code": "RATE_LIMIT_EXCEEDED",
        "message": "Too many requests. Please slow down.",
        "details": {
            "limit": str(e.description) if hasattr(e, "description") else None,
            "retry_after": retry_after,
        },
        "trace_id": None,
    })
    resp.status_code = 429

    if retry_after:
        resp.headers["Retry-After"] = str(retry_after)

    return resp
