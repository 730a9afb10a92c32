"""
SLAM - SLA Record Store
SLA relationship table (``SLA_RELATIONSHIPS``).

Direction is carried by the type: "A depends-on B" is stored as
source=A, target=B.  Lookups are undirected.
"""

from datetime import datetime, timezone

from slam.models import db

RELATIONSHIP_TYPES = {"depends-on", "blocks", "related-to"}


class SlaRelationship(db.Model):
    __tablename__ = "sla_relationships"
    __table_args__ = (
        db.Index("idx_rel_source", "source_sla_id"),
        db.Index("idx_rel_target", "target_sla_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    relationship_id = db.Column(db.String(40), unique=True, nullable=False)
    relationship_type = db.Column(db.String(30), nullable=False)
    source_sla_id = db.Column(db.String(30), nullable=False)
    target_sla_id = db.Column(db.String(30), nullable=False)
    notes = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_by = db.Column(db.String(200), default="")

    def to_dict(self):
        return {
            "relationshipId": self.relationship_id,
            "relationshipType": self.relationship_type,
            "sourceSlaId": self.source_sla_id,
            "targetSlaId": self.target_sla_id,
            "notes": self.notes or "",
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "createdBy": self.created_by or "",
        }

    def __repr__(self):
        return f"<SlaRelationship {self.source_sla_id} {self.relationship_type} {self.target_sla_id}>"
