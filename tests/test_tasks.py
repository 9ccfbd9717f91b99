from datetime import timedelta

import pytest

from smartaudit.models import db
from smartaudit.models.session import AuditSession
from smartaudit.models.types import utcnow
from smartaudit.services.report_producer import ReportProducerError
from smartaudit.tasks import audit_tasks


class StubProducer:
    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error

    def analyze(self, contract_code, language="solidity", session_key=None):
        if self.error:
            raise self.error
        return self.report


def _use_producer(monkeypatch, producer):
    monkeypatch.setattr(audit_tasks, "make_producer", lambda config: producer)


def test_analyze_completes_session(monkeypatch, orchestrator, vault_code, report_text):
    _use_producer(monkeypatch, StubProducer(report=report_text))
    s = orchestrator.create_session(vault_code)

    out = audit_tasks.analyze_session(s.id)

    assert out["ok"] is True
    assert out["security_score"] == 7.5
    assert orchestrator.status_view(s.id)["status"] == "completed"


def test_analyze_marks_failure_and_reraises(monkeypatch, orchestrator, ledger, vault_code):
    _use_producer(monkeypatch, StubProducer(error=ReportProducerError("Analysis failed: 500")))
    s = orchestrator.create_session(vault_code, user_id="ivy", public_visibility=True)

    with pytest.raises(ReportProducerError):
        audit_tasks.analyze_session(s.id)

    assert orchestrator.status_view(s.id) == {"status": "failed", "error": "Analysis failed: 500"}
    assert ledger.balance("ivy") == 1000


def test_analyze_skips_cancelled_session(monkeypatch, orchestrator, vault_code):
    producer = StubProducer(report="unused")
    _use_producer(monkeypatch, producer)
    s = orchestrator.create_session(vault_code)
    orchestrator.cancel_session(s.id)

    out = audit_tasks.analyze_session(s.id)
    assert out["skipped"] is True
    assert out["status"] == "failed"


def test_analyze_invalid_code(monkeypatch, orchestrator):
    _use_producer(monkeypatch, StubProducer(report="unused"))
    s = orchestrator.create_session("")
    out = audit_tasks.analyze_session(s.id)
    assert out == {"ok": False, "session_id": s.id, "error": "Contract code is required"}


def test_recover_task(orchestrator, vault_code):
    s = orchestrator.create_session(vault_code)
    orchestrator.begin_analysis(s.id)
    AuditSession.query.filter_by(id=s.id).update({"started_at": utcnow() - timedelta(hours=1)})
    db.session.commit()

    assert audit_tasks.recover_stuck_sessions() == {"ok": True, "recovered": 1}
    assert orchestrator.status_view(s.id)["status"] == "failed"
