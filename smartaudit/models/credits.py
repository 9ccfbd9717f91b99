# smartaudit/models/credits.py
from smartaudit.models import db
from smartaudit.models.types import utcnow


class UserCredits(db.Model):
    __tablename__ = "user_credits"

    user_id = db.Column(db.String(64), primary_key=True)
    balance = db.Column(db.Integer, nullable=False, default=0)
    total_earned = db.Column(db.Integer, nullable=False, default=0)
    plan_tier = db.Column(db.String(20), nullable=True)   # explicit assignment only (e.g. Enterprise)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class CreditTransaction(db.Model):
    __tablename__ = "credit_transactions"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.String(64), db.ForeignKey("user_credits.user_id"), nullable=False, index=True)
    kind = db.Column(db.String(20), nullable=False)      # initial|deduction|refund|purchase|bonus
    amount = db.Column(db.Integer, nullable=False)       # negative for deductions
    reason = db.Column(db.String(255), nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    session_id = db.Column(db.String(36), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
