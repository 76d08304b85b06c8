"""
Flask extensions initialization.

This module initializes Flask extensions that are shared across the application.
Extensions are initialized without the app context and bound later in the app factory.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Database extension
db = SQLAlchemy()

# Migration extension
migrate = Migrate()

# Rate limiter extension, limits are applied per-endpoint
limiter = Limiter(key_func=get_remote_address)


def init_extensions(app) -> None:
    """
    Initialize all Flask extensions with the application instance.

    Args:
        app: Flask application instance
    """
    db.init_app(app)
    migrate.init_app(app, db)

    # Flask-Limiter reads its own RATELIMIT_* keys
    app.config.setdefault("RATELIMIT_ENABLED", app.config.get("RATE_LIMIT_ENABLED", True))
    app.config.setdefault(
        "RATELIMIT_STORAGE_URI", app.config.get("RATE_LIMIT_STORAGE_URL", "memory://")
    )
    default_limits = app.config.get("RATE_LIMIT_DEFAULT", "")
    if default_limits:
        app.config.setdefault("RATELIMIT_DEFAULT", default_limits)

    limiter.init_app(app)
