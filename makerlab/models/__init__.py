"""
MakerLab Mission Engine
Shared SQLAlchemy handle.

Every model module imports ``db`` from here; the Flask app factory binds it
with ``db.init_app(app)``.
"""

import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)
