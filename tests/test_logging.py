import json
import logging

from smartaudit.logging_setup import JsonRequestFormatter


def test_transitions_carry_session_context(orchestrator, vault_code, caplog):
    s = orchestrator.create_session(vault_code)
    caplog.clear()
    with caplog.at_level(logging.INFO, logger="smartaudit.services.orchestrator"):
        orchestrator.begin_analysis(s.id)
        orchestrator.fail_session(s.id, "Analysis failed: 500")

    records = [r for r in caplog.records if r.name == "smartaudit.services.orchestrator"]
    assert [(r.session_id, r.status) for r in records] == [(s.id, "analyzing"), (s.id, "failed")]

    line = json.loads(JsonRequestFormatter().format(records[-1]))
    assert line["session_id"] == s.id
    assert line["status"] == "failed"
    assert line["level"] == "WARNING"
    assert "method" not in line


def test_formatter_skips_missing_context():
    record = logging.LogRecord("smartaudit.client.api", logging.INFO, __file__, 1,
                               "Retrying %s", ("startAudit",), None)
    record.attempt = 2
    line = json.loads(JsonRequestFormatter().format(record))
    assert line["msg"] == "Retrying startAudit"
    assert line["attempt"] == 2
    assert "session_id" not in line
