import os
import pytest

from smartaudit import create_app
from smartaudit.models import db as _db
from smartaudit.services.credits import InMemoryCreditLedger


@pytest.fixture(scope="session")
def app():
    os.environ["FLASK_ENV"] = "testing"
    app = create_app("testing", ledger=InMemoryCreditLedger())
    with app.app_context():
        _db.create_all()
        yield app
        _db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _clean_tables(request):
    yield
    if "app" not in request.fixturenames:
        return
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()


@pytest.fixture()
def ledger(app):
    led = InMemoryCreditLedger()
    previous = app.extensions["credit_ledger"]
    orch = app.extensions["audit_orchestrator"]
    app.extensions["credit_ledger"] = led
    orch.ledger = led
    yield led
    app.extensions["credit_ledger"] = previous
    orch.ledger = previous


@pytest.fixture()
def orchestrator(app):
    return app.extensions["audit_orchestrator"]


VAULT = """pragma solidity ^0.8.0;
contract Vault {
    mapping(address => uint256) public balances;
    event Deposit(address indexed who, uint256 amount);
    function withdraw(uint256 amount) external {
        (bool ok, ) = msg.sender.call{value: amount}("");
        require(ok);
        balances[msg.sender] -= amount;
    }
}
"""

REPORT = """# Audit report

**HIGH**
Vulnerability: Reentrancy
Line 45
Description:
External call before state update
Recommendation:
Use checks-effects-interactions

**LOW**
Issue: **Floating pragma**
Description:
Pin the compiler version

Fix: use pragma solidity 0.8.20
"""


@pytest.fixture()
def vault_code():
    return VAULT


@pytest.fixture()
def report_text():
    return REPORT


# --- async client fakes (no network, no real waiting) ---

class FakeTransport:
    """Plays back queued ApiResponse objects (or raises queued exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def __call__(self, method, url, headers=None, json=None, params=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": headers,
                           "json": json, "params": params})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeSleep:
    def __init__(self, clock=None):
        self.delays = []
        self.clock = clock

    async def __call__(self, delay):
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.now += delay


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def fake_sleep():
    return FakeSleep()


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def api_client(transport, fake_clock, fake_sleep):
    from smartaudit.client.api import ResilientApiClient
    return ResilientApiClient(
        base_url="https://audit.example.test",
        api_key="test-key",
        transport=transport,
        clock=fake_clock,
        sleep=fake_sleep,
    )
