# smartaudit/models/session.py
from smartaudit.models import db
from smartaudit.models.types import JSONBCompat, new_id, utcnow

PENDING = "pending"
ANALYZING = "analyzing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, ANALYZING, COMPLETED, FAILED)
TERMINAL = (COMPLETED, FAILED)


class AuditSession(db.Model):
    __tablename__ = "audit_sessions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), index=True, nullable=True)   # None = anonymous
    session_key = db.Column(db.String(64), nullable=False, unique=True)

    contract_code = db.Column(db.Text, nullable=False)
    contract_language = db.Column(db.String(32), nullable=False, default="solidity")
    contract_source = db.Column(db.String(64), nullable=True, default="code-only")  # code-only|github|<address>
    analysis_type = db.Column(db.String(32), nullable=False, default="security")

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)  # pending|analyzing|completed|failed
    error_message = db.Column(db.Text, nullable=True)

    public_visibility = db.Column(db.Boolean, nullable=False, default=False)
    public_title = db.Column(db.String(100), nullable=True)
    public_description = db.Column(db.Text, nullable=True)
    tags = db.Column(JSONBCompat(), nullable=True)

    credits_used = db.Column(db.Integer, nullable=False, default=0)
    code_complexity = db.Column(db.Float, nullable=False, default=1.0)   # 1..10, from CostEstimator

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)   # set once, on completed|failed

    result = db.relationship("AuditResult", back_populates="session", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def to_dict(self, include_code: bool = False) -> dict:
        data = {
            "id": self.id,
            "sessionKey": self.session_key,
            "userId": self.user_id,
            "contractLanguage": self.contract_language,
            "contractSource": self.contract_source,
            "analysisType": self.analysis_type,
            "status": self.status,
            "error": self.error_message,
            "publicVisibility": self.public_visibility,
            "publicTitle": self.public_title,
            "tags": self.tags or [],
            "creditsUsed": self.credits_used,
            "codeComplexity": self.code_complexity,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }
        if include_code:
            data["contractCode"] = self.contract_code
        return data


def _iso(dt):
    return dt.replace(microsecond=0).isoformat() + "Z" if dt else None
