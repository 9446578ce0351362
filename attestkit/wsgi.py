"""WSGI entrypoint for gunicorn."""

from attestkit import create_app

app = create_app()
