# smartaudit/tasks/audit_tasks.py
import logging
from datetime import timedelta

from celery import shared_task
from flask import current_app

from smartaudit.services.orchestrator import ContractValidationError, InvalidTransition
from smartaudit.services.report_producer import HttpReportProducer

logger = logging.getLogger(__name__)


def make_producer(config):
    return HttpReportProducer.from_config(config)


@shared_task(name="audit.analyze")
def analyze_session(session_id: str):
    orch = current_app.extensions["audit_orchestrator"]
    producer = make_producer(current_app.config)

    try:
        result = orch.run_analysis(session_id, producer)
    except ContractValidationError as e:
        # the session is already failed; retrying cannot help
        return {"ok": False, "session_id": session_id, "error": str(e)}
    except InvalidTransition as e:
        logger.info("Skipping analysis of %s: %s", session_id, e)
        return {"ok": False, "session_id": session_id, "skipped": True, "status": e.current}

    if result is None:
        return {"ok": False, "session_id": session_id, "skipped": True}
    return {
        "ok": True,
        "session_id": session_id,
        "security_score": result.security_score,
        "vulnerability_count": result.vulnerability_count,
    }


@shared_task(name="audit.recover_stuck")
def recover_stuck_sessions(minutes: int = None):
    orch = current_app.extensions["audit_orchestrator"]
    minutes = minutes or current_app.config["STUCK_SESSION_MINUTES"]
    recovered = orch.recover_stuck_sessions(timedelta(minutes=minutes))
    return {"ok": True, "recovered": recovered}
