"""
Flask application factory for RightSize AI.

This module provides the application factory pattern for creating Flask instances
with proper configuration, extensions, and route registration.
"""

import logging
import sys
from typing import Optional

from flask import Flask

from rightsize_ai.config import get_config, BaseConfig
from rightsize_ai.extensions import init_extensions


def setup_logging(app: Flask) -> None:
    """
    Configure application logging.

    Args:
        app: Flask application instance
    """
    log_level = getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper())
    log_format = app.config.get("LOG_FORMAT", "json")

    if log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(log_level)
    root_logger.addHandler(stream_handler)

    app.logger.setLevel(log_level)


def register_blueprints(app: Flask) -> None:
    """
    Register all Flask blueprints.

    Args:
        app: Flask application instance
    """
    from rightsize_ai.routes.health import health_bp
    from rightsize_ai.routes.recommendations import recommendations_bp
    from rightsize_ai.routes.simulation import simulation_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(recommendations_bp, url_prefix="/api/v1")
    app.register_blueprint(simulation_bp, url_prefix="/api/v1")


def register_error_handlers(app: Flask) -> None:
    """
    Register application-wide error handlers.

    Collaborator outages map to 503 and expired analysis deadlines to 504,
    so every route shares the same envelope for them.

    Args:
        app: Flask application instance
    """
    from rightsize_ai.core.collaborators import CollaboratorUnavailable
    from rightsize_ai.core.rate_limiter import handle_rate_limit_exceeded
    from rightsize_ai.core.resilience import OperationCancelled
    from rightsize_ai.routes import error_response

    @app.errorhandler(400)
    def bad_request(error):
        message = str(error.description) if hasattr(error, "description") else "Bad request"
        return error_response("BAD_REQUEST", message, 400)

    @app.errorhandler(404)
    def not_found(error):
        return error_response("NOT_FOUND", "Resource not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response("METHOD_NOT_ALLOWED", "Method not allowed", 405)

    app.register_error_handler(429, handle_rate_limit_exceeded)

    @app.errorhandler(CollaboratorUnavailable)
    def upstream_unavailable(error):
        app.logger.error(f"Upstream unavailable: {error}")
        return error_response("UPSTREAM_UNAVAILABLE", str(error), 503)

    @app.errorhandler(OperationCancelled)
    def analysis_timeout(error):
        app.logger.warning(f"Analysis aborted: {error}")
        return error_response("ANALYSIS_TIMEOUT", str(error), 504)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("Internal server error")
        return error_response("INTERNAL_ERROR", "An internal error occurred", 500)


def create_app(config: Optional[BaseConfig] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Optional configuration object. If not provided, configuration
                is determined from FLASK_ENV environment variable.

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    if config is None:
        config = get_config()

    app.config.from_object(config)

    setup_logging(app)
    init_extensions(app)
    register_blueprints(app)
    register_error_handlers(app)

    app.logger.info("RightSize AI application initialized")

    return app
