import pytest

from smartaudit.models import db
from smartaudit.models.session import AuditSession, FAILED


class DummyAsync:
    id = "fake-task-id"


@pytest.fixture()
def queued(monkeypatch):
    """Capture analyze_session.delay calls instead of hitting a broker."""
    calls = []

    def fake_delay(session_id):
        calls.append(session_id)
        return DummyAsync()

    monkeypatch.setattr("smartaudit.tasks.audit_tasks.analyze_session.delay", fake_delay)
    return calls


def test_create_requires_code_or_address(client, queued):
    rv = client.post("/api/audit/sessions", json={})
    assert rv.status_code == 400
    assert rv.get_json()["ok"] is False
    assert queued == []


def test_create_rejects_bad_tags(client, queued, vault_code):
    rv = client.post("/api/audit/sessions", json={"contractCode": vault_code, "tags": "defi"})
    assert rv.status_code == 400


def test_create_anonymous(client, queued, vault_code):
    rv = client.post("/api/audit/sessions", json={"contractCode": vault_code})
    assert rv.status_code == 202
    js = rv.get_json()
    assert js["success"] is True
    assert js["status"] == "pending"
    assert js["sessionKey"].startswith("audit_")
    assert js["creditsUsed"] == 0
    assert js["taskId"] == "fake-task-id"
    assert queued == [js["sessionId"]]


def test_create_charges_user(client, queued, ledger, vault_code):
    rv = client.post("/api/audit/sessions",
                     json={"contractCode": vault_code, "isPublic": True, "tags": ["vault"]},
                     headers={"X-User-ID": "alice"})
    assert rv.status_code == 202
    assert rv.get_json()["creditsUsed"] == 13
    assert ledger.balance("alice") == 987


def test_create_private_needs_plan(client, queued, ledger, vault_code):
    rv = client.post("/api/audit/sessions",
                     json={"contractCode": vault_code, "isPublic": False, "userId": "bob"})
    assert rv.status_code == 403
    assert rv.get_json()["planRequired"] == "Pro"
    assert queued == []


def test_create_insufficient_credits(client, queued, ledger, vault_code):
    ledger.deduct("carol", 995, None, "spent")
    rv = client.post("/api/audit/sessions",
                     json={"contractCode": vault_code, "isPublic": True, "userId": "carol"})
    assert rv.status_code == 402
    js = rv.get_json()
    assert (js["required"], js["available"]) == (13, 5)


def test_create_from_address(client, queued, monkeypatch, vault_code):
    seen = {}

    def fake_fetch(address, network="ethereum", api_key=None, timeout=20):
        seen.update(address=address, network=network)
        return {"source": vault_code, "name": "Vault", "compiler": "v0.8.20", "language": "solidity"}

    monkeypatch.setattr("smartaudit.services.source_fetcher.fetch_verified_source", fake_fetch)
    address = "0x00000000000000000000000000000000DeaDBeef"
    rv = client.post("/api/audit/sessions", json={"contractAddress": address, "network": "polygon"})
    assert rv.status_code == 202
    assert seen == {"address": address, "network": "polygon"}

    session = db.session.get(AuditSession, rv.get_json()["sessionId"])
    assert session.contract_source == address.lower()
    assert session.contract_code == vault_code


def test_create_from_unverified_address(client, queued, monkeypatch):
    from smartaudit.services.source_fetcher import SourceFetchError

    def fake_fetch(*args, **kwargs):
        raise SourceFetchError("Contract source code is not verified on Etherscan")

    monkeypatch.setattr("smartaudit.services.source_fetcher.fetch_verified_source", fake_fetch)
    rv = client.post("/api/audit/sessions", json={"contractAddress": "0xabc"})
    assert rv.status_code == 400
    assert "not verified" in rv.get_json()["error"]


def test_queue_failure_fails_session(client, monkeypatch, vault_code):
    def broken_delay(session_id):
        raise ConnectionError("broker down")

    monkeypatch.setattr("smartaudit.tasks.audit_tasks.analyze_session.delay", broken_delay)
    rv = client.post("/api/audit/sessions", json={"contractCode": vault_code})
    assert rv.status_code == 503
    session = db.session.get(AuditSession, rv.get_json()["sessionId"])
    assert session.status == FAILED


def test_status_and_results(client, orchestrator, vault_code, report_text):
    s = orchestrator.create_session(vault_code)

    rv = client.get(f"/api/audit/status/{s.id}")
    assert rv.status_code == 200
    assert rv.get_json()["status"] == "pending"
    assert "report" not in rv.get_json()

    assert client.get(f"/api/audit/results/{s.id}").status_code == 409

    orchestrator.begin_analysis(s.id)
    orchestrator.complete_session(s.id, report_text)

    js = client.get(f"/api/audit/status/{s.id}").get_json()
    assert js["status"] == "completed"
    assert "Reentrancy" in js["report"]

    js = client.get(f"/api/audit/results/{s.id}").get_json()
    assert js["ok"] is True
    assert js["parsed"] is True
    assert [v["title"] for v in js["vulnerabilities"]] == ["Reentrancy", "Floating pragma"]
    assert js["result"]["securityScore"] == 7.5
    assert js["result"]["vulnerabilityCount"] == {"high": 1, "medium": 0, "low": 1, "info": 0}


def test_failed_status_carries_error(client, orchestrator, vault_code):
    s = orchestrator.create_session(vault_code)
    orchestrator.fail_session(s.id, "producer timeout")
    js = client.get(f"/api/audit/status/{s.id}").get_json()
    assert js["status"] == "failed"
    assert js["error"] == "producer timeout"


def test_unknown_session_is_404(client):
    assert client.get("/api/audit/status/nope").status_code == 404
    assert client.get("/api/audit/results/nope").status_code == 404
    assert client.post("/api/audit/sessions/nope/cancel").status_code == 404


def test_history(client, orchestrator, ledger, vault_code, report_text):
    done = orchestrator.create_session(vault_code, user_id="frank", public_visibility=True)
    orchestrator.begin_analysis(done.id)
    orchestrator.complete_session(done.id, report_text)
    orchestrator.create_session(vault_code, user_id="frank", public_visibility=True)
    orchestrator.create_session(vault_code, user_id="someone-else", public_visibility=True)

    items = client.get("/api/audit/history/frank").get_json()["items"]
    assert len(items) == 2
    completed = [i for i in items if i["id"] == done.id][0]
    assert completed["securityScore"] == 7.5
    assert "contractCode" not in completed

    assert len(client.get("/api/audit/history/frank?limit=1").get_json()["items"]) == 1


def test_cancel(client, orchestrator, vault_code):
    s = orchestrator.create_session(vault_code)
    js = client.post(f"/api/audit/sessions/{s.id}/cancel").get_json()
    assert js == {"ok": True, "cancelled": True, "status": "failed"}

    js = client.post(f"/api/audit/sessions/{s.id}/cancel").get_json()
    assert js["cancelled"] is False


def test_recover_endpoint(client, orchestrator, vault_code):
    s = orchestrator.create_session(vault_code)
    orchestrator.begin_analysis(s.id)
    js = client.post("/api/audit/recover", json={"minutes": 10}).get_json()
    assert js["recovered"] == 0

    rv = client.post("/api/audit/recover", json={"minutes": "x"})
    assert rv.status_code == 400
