# smartaudit/services/session_store.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from smartaudit.models import db
from smartaudit.models.result import AuditResult
from smartaudit.models.session import AuditSession, ANALYZING, TERMINAL
from smartaudit.models.types import utcnow


class SessionStore(ABC):
    """Persistence seam for audit sessions and their results."""

    @abstractmethod
    def create_audit_session(self, fields: Dict[str, Any]) -> AuditSession: ...

    @abstractmethod
    def create_audit_result(self, fields: Dict[str, Any]) -> AuditResult:
        """Insert a result row on its own. The orchestrator writes results through
        ``transition(result_fields=...)`` instead, so a result never lands without
        its completed status; this is for imports and backfills."""

    @abstractmethod
    def get_user_audit_sessions(self, user_id: str, limit: int = 50) -> List[AuditSession]: ...

    @abstractmethod
    def get_audit_session(self, session_id: str) -> Optional[AuditSession]: ...

    @abstractmethod
    def get_audit_result(self, session_id: str) -> Optional[AuditResult]: ...

    @abstractmethod
    def transition(
        self,
        session_id: str,
        allowed_from: Iterable[str],
        to_status: str,
        error_message: Optional[str] = None,
        result_fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Compare-and-set the session status.

        Moves ``session_id`` to ``to_status`` only if its current status is in
        ``allowed_from``; returns False (and writes nothing) otherwise. When
        ``result_fields`` is given the AuditResult is inserted in the same
        transaction, so the new status is never visible without its result.
        """

    @abstractmethod
    def find_sessions(
        self,
        status: str,
        started_before: Optional[datetime] = None,
        source: Optional[str] = None,
    ) -> List[AuditSession]: ...


class SqlSessionStore(SessionStore):
    """Flask-SQLAlchemy adapter; needs an app context."""

    def create_audit_session(self, fields):
        rec = AuditSession(**fields)
        db.session.add(rec)
        db.session.commit()
        return rec

    def create_audit_result(self, fields):
        rec = AuditResult(**fields)
        db.session.add(rec)
        db.session.commit()
        return rec

    def get_user_audit_sessions(self, user_id, limit=50):
        return (
            AuditSession.query
            .filter(AuditSession.user_id == user_id)
            .order_by(AuditSession.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_audit_session(self, session_id):
        return db.session.get(AuditSession, session_id)

    def get_audit_result(self, session_id):
        return AuditResult.query.filter_by(session_id=session_id).first()

    def transition(self, session_id, allowed_from, to_status, error_message=None, result_fields=None):
        now = utcnow()
        values: Dict[str, Any] = {"status": to_status}
        if to_status == ANALYZING:
            values["started_at"] = now
        if to_status in TERMINAL:
            values["completed_at"] = now
            values["error_message"] = error_message

        try:
            updated = (
                AuditSession.query
                .filter(AuditSession.id == session_id, AuditSession.status.in_(list(allowed_from)))
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                db.session.rollback()
                return False
            if result_fields is not None:
                db.session.add(AuditResult(session_id=session_id, **result_fields))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return True

    def find_sessions(self, status, started_before=None, source=None):
        q = AuditSession.query.filter(AuditSession.status == status)
        if started_before is not None:
            # sessions that never recorded a start fall back to their creation time
            q = q.filter(db.func.coalesce(AuditSession.started_at, AuditSession.created_at) <= started_before)
        if source:
            q = q.filter(AuditSession.contract_source == source)
        return q.order_by(AuditSession.created_at.asc()).all()
