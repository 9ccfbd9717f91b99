# smartaudit/models/result.py
from smartaudit.models import db
from smartaudit.models.types import JSONBCompat, new_id, utcnow


class AuditResult(db.Model):
    """Written once, in the same transaction that completes its session."""
    __tablename__ = "audit_results"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    session_id = db.Column(
        db.String(36), db.ForeignKey("audit_sessions.id"), nullable=False, unique=True
    )

    raw_response = db.Column(db.Text, nullable=True)        # producer text, untouched
    formatted_report = db.Column(db.Text, nullable=True)
    vulnerability_count = db.Column(JSONBCompat(), nullable=False)   # {high, medium, low, info}
    security_score = db.Column(db.Float, nullable=False)             # 0..10

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    session = db.relationship("AuditSession", back_populates="result")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "formattedReport": self.formatted_report,
            "vulnerabilityCount": self.vulnerability_count,
            "securityScore": self.security_score,
            "createdAt": self.created_at.replace(microsecond=0).isoformat() + "Z"
            if self.created_at else None,
        }
