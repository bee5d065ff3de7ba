from __future__ import annotations

# WSGI entry point for `gunicorn directory_app.wsgi:app`.
from directory_app.app import create_app


app = create_app()
