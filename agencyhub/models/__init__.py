"""
Agency Hub
Database models package.

All models share the single ``db`` instance defined here; it is bound to the
Flask app inside ``create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
