# smartaudit/services/orchestrator.py
"""
Audit session state machine.

    pending -> analyzing -> completed
       |           |
       +-----------+-----> failed

Only the orchestrator writes ``status``. Every move is a compare-and-set in
the SessionStore, so a second writer racing on the same session (a late
producer callback, a cancel, the stuck-session sweeper) loses quietly
instead of overwriting a terminal state.
"""
import logging
import secrets
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from smartaudit.core import cost, findings, scoring, tiers
from smartaudit.models.result import AuditResult
from smartaudit.models.session import (
    AuditSession, PENDING, ANALYZING, COMPLETED, FAILED,
)
from smartaudit.models.types import new_id, utcnow
from smartaudit.services.credits import CreditLedger, InsufficientCredits, PlanRestricted
from smartaudit.services.session_store import SessionStore

logger = logging.getLogger(__name__)

ALLOWED_FROM = {
    ANALYZING: (PENDING,),
    COMPLETED: (ANALYZING,),
    FAILED: (PENDING, ANALYZING),
}

CANCELLED_MESSAGE = "Cancelled by user"
DEFAULT_MAX_CODE_BYTES = 100_000


class OrchestrationError(Exception):
    pass


class SessionNotFound(OrchestrationError):
    pass


class InvalidTransition(OrchestrationError):
    def __init__(self, session_id: str, current: str, target: str):
        super().__init__(f"Session {session_id} cannot move from {current} to {target}")
        self.session_id = session_id
        self.current = current
        self.target = target


class ContractValidationError(OrchestrationError):
    pass


def new_session_key() -> str:
    return f"audit_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


class AuditOrchestrator:
    def __init__(self, store: SessionStore, ledger: Optional[CreditLedger] = None,
                 max_code_bytes: int = DEFAULT_MAX_CODE_BYTES):
        self.store = store
        self.ledger = ledger
        self.max_code_bytes = max_code_bytes

    # ---------------------------
    # Creation
    # ---------------------------

    def create_session(
        self,
        contract_code: str,
        contract_language: str = "solidity",
        contract_source: str = "code-only",
        analysis_type: str = "security",
        public_visibility: bool = False,
        user_id: Optional[str] = None,
        public_title: Optional[str] = None,
        public_description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> AuditSession:
        """
        Persist a new ``pending`` session, charging authenticated users.

        Raises PlanRestricted for private audits below the Pro tier and
        InsufficientCredits when the balance does not cover the estimate;
        nothing is persisted in either case.
        """
        language = (contract_language or "solidity").strip().lower()
        est = cost.estimate(contract_code, language)
        session_id = new_id()
        charged = 0

        if user_id and self.ledger is not None:
            if not public_visibility:
                tier = self.ledger.plan_tier(user_id)
                if not tiers.can_create_private_audits(tier):
                    raise PlanRestricted(tiers.PRIVATE_AUDIT_TIER,
                                         "Private audits require Pro or Pro+ plan")
            available = self.ledger.balance(user_id)
            if available < est.total_cost:
                raise InsufficientCredits(est.total_cost, available)
            self.ledger.deduct(user_id, est.total_cost, session_id,
                               f"Smart contract analysis - {analysis_type}")
            charged = est.total_cost

        try:
            session = self.store.create_audit_session({
                "id": session_id,
                "user_id": user_id,
                "session_key": new_session_key(),
                "contract_code": contract_code,
                "contract_language": language,
                "contract_source": contract_source,
                "analysis_type": analysis_type,
                "status": PENDING,
                "public_visibility": bool(public_visibility),
                "public_title": public_title,
                "public_description": public_description,
                "tags": list(tags or []),
                "credits_used": charged,
                "code_complexity": est.complexity,
            })
        except Exception:
            if charged:
                self.ledger.refund(user_id, charged, session_id, "Session creation failed")
            raise

        logger.info("Audit session %s created (%s, %s credits)", session.id, language, charged,
                    extra={"session_id": session.id, "status": PENDING})
        return session

    # ---------------------------
    # Transitions
    # ---------------------------

    def _get(self, session_id: str) -> AuditSession:
        session = self.store.get_audit_session(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    def validate_code(self, code: Optional[str]) -> Optional[str]:
        """Return the validation problem with ``code``, or None when it is acceptable."""
        if not code or not code.strip():
            return "Contract code is required"
        if len(code.encode("utf-8")) > self.max_code_bytes:
            return f"Contract code too large (max {self.max_code_bytes // 1000}KB)"
        return None

    def begin_analysis(self, session_id: str) -> AuditSession:
        """pending -> analyzing. Invalid code fails the session instead."""
        session = self._get(session_id)
        problem = self.validate_code(session.contract_code)
        if problem:
            self.fail_session(session_id, problem)
            raise ContractValidationError(problem)

        if not self.store.transition(session_id, ALLOWED_FROM[ANALYZING], ANALYZING):
            current = self._get(session_id).status
            raise InvalidTransition(session_id, current, ANALYZING)

        logger.info("Audit session %s analyzing", session_id,
                    extra={"session_id": session_id, "status": ANALYZING})
        return self._get(session_id)

    def complete_session(self, session_id: str, report_text: str) -> Optional[AuditResult]:
        """
        analyzing -> completed, deriving and storing the AuditResult in the
        same transition. Returns None when the session was already terminal
        (idempotent second writer).
        """
        self._get(session_id)
        report_text = report_text or ""
        vulns = findings.parse(report_text)
        if not vulns:
            logger.warning("No findings could be parsed for session %s; result is unparsed, not clean",
                           session_id)

        fields = {
            "raw_response": report_text,
            "formatted_report": report_text.strip(),
            "vulnerability_count": scoring.vulnerability_counts(vulns),
            "security_score": scoring.score(vulns),
        }
        if not self.store.transition(session_id, ALLOWED_FROM[COMPLETED], COMPLETED,
                                     result_fields=fields):
            logger.info("Completion of session %s ignored (status %s)",
                        session_id, self._get(session_id).status)
            return None

        logger.info("Audit session %s completed (%d findings, score %.1f)",
                    session_id, len(vulns), fields["security_score"],
                    extra={"session_id": session_id, "status": COMPLETED})
        return self.store.get_audit_result(session_id)

    def fail_session(self, session_id: str, message: str) -> bool:
        """Move a non-terminal session to failed and refund its charge."""
        session = self._get(session_id)
        user_id, charged = session.user_id, session.credits_used or 0

        if not self.store.transition(session_id, ALLOWED_FROM[FAILED], FAILED,
                                     error_message=message or "Analysis failed"):
            return False

        logger.warning("Audit session %s failed: %s", session_id, message,
                       extra={"session_id": session_id, "status": FAILED})
        if user_id and charged and self.ledger is not None:
            self.ledger.refund(user_id, charged, session_id, f"Refund: {message}")
        return True

    def cancel_session(self, session_id: str) -> bool:
        # cancels the session record only; a running producer call is not interrupted
        return self.fail_session(session_id, CANCELLED_MESSAGE)

    def run_analysis(self, session_id: str, producer) -> Optional[AuditResult]:
        """Drive one session end to end with ``producer`` (see report_producer)."""
        session = self.begin_analysis(session_id)
        try:
            report = producer.analyze(
                session.contract_code,
                language=session.contract_language,
                session_key=session.session_key,
            )
        except Exception as e:
            self.fail_session(session_id, str(e) or e.__class__.__name__)
            raise
        return self.complete_session(session_id, report)

    def recover_stuck_sessions(self, max_age: timedelta, source: Optional[str] = None) -> int:
        cutoff = utcnow() - max_age
        recovered = 0
        for session in self.store.find_sessions(ANALYZING, started_before=cutoff, source=source):
            minutes = int(max_age.total_seconds() // 60)
            if self.fail_session(session.id, f"Analysis timed out after {minutes} minutes"):
                recovered += 1
        if recovered:
            logger.warning("Recovered %d stuck sessions", recovered)
        return recovered

    # ---------------------------
    # Read side
    # ---------------------------

    def status_view(self, session_id: str) -> Dict[str, Any]:
        session = self._get(session_id)
        out: Dict[str, Any] = {"status": session.status}
        if session.status == COMPLETED:
            result = self.store.get_audit_result(session_id)
            out["report"] = result.formatted_report if result else ""
        elif session.status == FAILED:
            out["error"] = session.error_message or "Analysis failed"
        return out

    def result_view(self, session_id: str) -> Tuple[AuditSession, Optional[AuditResult], List[findings.Vulnerability]]:
        session = self._get(session_id)
        result = self.store.get_audit_result(session_id)
        vulns = findings.parse(result.raw_response) if result else []
        return session, result, vulns

    def history(self, user_id: str, limit: int = 50) -> List[AuditSession]:
        return self.store.get_user_audit_sessions(user_id, limit=limit)
