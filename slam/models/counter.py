"""
SLAM - SLA Record Store
Persisted monotonic counters used for identifier generation.
"""

from slam.models import db


class IdCounter(db.Model):
    """Named counter row; ``value`` is the last number handed out."""

    __tablename__ = "id_counters"

    name = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<IdCounter {self.name}={self.value}>"
