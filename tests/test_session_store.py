from smartaudit.models.session import COMPLETED, PENDING
from smartaudit.services.session_store import SqlSessionStore


def _session(store, **extra):
    fields = {"id": "sess-1", "session_key": "audit_1_abc", "contract_code": "contract A {}",
              "status": PENDING}
    fields.update(extra)
    return store.create_audit_session(fields)


def test_create_audit_result_standalone(app):
    store = SqlSessionStore()
    _session(store)

    rec = store.create_audit_result({
        "session_id": "sess-1",
        "raw_response": "**LOW**\nIssue: Floating pragma",
        "formatted_report": "**LOW**\nIssue: Floating pragma",
        "vulnerability_count": {"high": 0, "medium": 0, "low": 1, "info": 0},
        "security_score": 9.5,
    })

    got = store.get_audit_result("sess-1")
    assert got.id == rec.id
    assert got.to_dict()["securityScore"] == 9.5
    assert got.session.id == "sess-1"
    # a bare result row does not move the session
    assert store.get_audit_session("sess-1").status == PENDING


def test_transition_is_compare_and_set(app):
    store = SqlSessionStore()
    _session(store)

    assert store.transition("sess-1", ("analyzing",), COMPLETED) is False
    assert store.get_audit_session("sess-1").status == PENDING
    assert store.get_audit_result("sess-1") is None
