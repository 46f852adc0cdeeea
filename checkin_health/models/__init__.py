"""
Check-in Data Health
SQLAlchemy extension instance shared by every model module.

Usage:
    from checkin_health.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
