"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi data-health-report --organization-id <org>
    gunicorn wsgi:app
"""

from checkin_health import create_app

app = create_app()
