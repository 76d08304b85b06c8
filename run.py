#!/usr/bin/env python
"""
RightSize AI application entrypoint.

Use this for development or invoke via gunicorn for production.

Usage:
    Development: python run.py
    Production: gunicorn -w 4 -b 0.0.0.0:5000 'run:app'
    Migrations: FLASK_APP=run.py flask db upgrade
"""

import os
from rightsize_ai.app import create_app

app = create_app()

if __name__ == "__main__":
    host = os.environ.get("FLASK_HOST", "0.0.0.0")
    port = int(os.environ.get("FLASK_PORT", "5000"))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"

    app.run(host=host, port=port, debug=debug)
