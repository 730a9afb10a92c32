"""
SLAM - SLA Record Store
Shared SQLAlchemy extension instance.

Every model module imports ``db`` from here; the app factory binds it with
``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
