"""
Routes package for RightSize AI.

Contains Flask blueprints for API endpoints and the shared JSON error
envelope they respond with.
"""

from typing import Optional, Union

from flask import jsonify

from rightsize_ai.core.schemas import ErrorResponse


def error_response(
    code: str,
    message: str,
    status: int,
    details: Optional[Union[dict, list]] = None,
):
    """Build a ``{code, message, details, trace_id}`` error response."""
    body = ErrorResponse(code=code, message=message, details=details)
    return jsonify(body.model_dump()), status
