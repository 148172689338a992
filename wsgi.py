"""
WSGI / CLI entry point for the Demand Capacity Engine.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade          # apply migrations
    flask --app wsgi seed-defaults       # default categories + SLA rules
"""

from app import create_app

app = create_app()
