import asyncio

import pytest

from smartaudit.client.errors import (
    AuditFailedError,
    AuthenticationError,
    PollTimeoutError,
    ServerError,
)
from smartaudit.client.poller import ResultPoller

ANALYZING = {"status": "analyzing"}


class ScriptedApi:
    """Answers get_status from a script; the last entry repeats forever."""

    def __init__(self, script, results=None):
        self.script = list(script)
        self.results = results or {}
        self.status_calls = 0
        self.result_calls = 0

    async def get_status(self, session_id):
        self.status_calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def get_results(self, session_id):
        self.result_calls += 1
        return self.results


def test_completes_on_the_last_allowed_tick(fake_sleep, report_text):
    api = ScriptedApi([ANALYZING] * 59 + [{"status": "completed", "report": report_text}])
    poller = ResultPoller(api, sleep=fake_sleep)

    outcome = asyncio.run(poller.poll_until_done("s1", interval=5, max_attempts=60))

    assert api.status_calls == 60
    assert fake_sleep.delays == [5] * 59
    assert outcome.session_id == "s1"
    assert outcome.score == 7.5
    assert [v.title for v in outcome.vulnerabilities] == ["Reentrancy", "Floating pragma"]
    assert outcome.vulnerability_count == {"high": 1, "medium": 0, "low": 1, "info": 0}


def test_times_out_after_exactly_max_attempts(fake_sleep):
    api = ScriptedApi([ANALYZING])
    poller = ResultPoller(api, sleep=fake_sleep)

    with pytest.raises(PollTimeoutError) as exc:
        asyncio.run(poller.poll_until_done("s1", interval=5, max_attempts=60))

    assert api.status_calls == 60
    assert exc.value.attempts == 60
    assert len(fake_sleep.delays) == 59
    assert not poller.is_polling("s1")


def test_failed_session_message_is_verbatim(fake_sleep):
    api = ScriptedApi([{"status": "pending"}, {"status": "failed", "error": "Contract code too large (max 100KB)"}])
    with pytest.raises(AuditFailedError) as exc:
        asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done("s1"))
    assert exc.value.message == "Contract code too large (max 100KB)"
    assert exc.value.session_id == "s1"


def test_progress_every_n_ticks(fake_sleep):
    api = ScriptedApi([ANALYZING])
    ticks = []
    with pytest.raises(PollTimeoutError):
        asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done(
            "s1", max_attempts=13, progress_every=6, on_progress=lambda t, total: ticks.append((t, total))))
    assert ticks == [(6, 13), (12, 13)]


def test_progress_callback_errors_are_not_fatal(fake_sleep):
    api = ScriptedApi([ANALYZING] * 6 + [{"status": "completed", "report": ""}])

    def explode(tick, total):
        raise RuntimeError("ui gone")

    outcome = asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done(
        "s1", progress_every=2, on_progress=explode))
    assert outcome.parsed is False
    assert outcome.score == 10.0


def test_transient_errors_count_as_ticks(fake_sleep):
    api = ScriptedApi([ServerError("bad gateway", status=502), {"status": "completed", "report": "x"}])
    outcome = asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done("s1", max_attempts=5))
    assert api.status_calls == 2
    assert outcome.report == "x"


def test_transient_errors_still_time_out(fake_sleep):
    api = ScriptedApi([ServerError("down", status=503)])
    with pytest.raises(PollTimeoutError):
        asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done("s1", max_attempts=3))
    assert api.status_calls == 3


def test_non_retryable_error_stops_polling(fake_sleep):
    api = ScriptedApi([AuthenticationError("bad key", status=401)])
    with pytest.raises(AuthenticationError):
        asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done("s1"))
    assert api.status_calls == 1


def test_completed_without_report_fetches_result(fake_sleep, report_text):
    api = ScriptedApi([{"status": "completed"}], results={"result": {"formattedReport": report_text}})
    outcome = asyncio.run(ResultPoller(api, sleep=fake_sleep).poll_until_done("s1"))
    assert api.result_calls == 1
    assert len(outcome.vulnerabilities) == 2


def test_rejects_nonpositive_attempts(fake_sleep):
    with pytest.raises(ValueError):
        asyncio.run(ResultPoller(ScriptedApi([ANALYZING]), sleep=fake_sleep).poll_until_done("s1", max_attempts=0))


def test_second_poll_attaches_to_the_first():
    async def main():
        gate = asyncio.Event()

        async def gated_sleep(delay):
            await gate.wait()

        api = ScriptedApi([ANALYZING, {"status": "completed", "report": "done"}])
        poller = ResultPoller(api, sleep=gated_sleep)

        first = asyncio.ensure_future(poller.poll_until_done("s1"))
        for _ in range(3):
            await asyncio.sleep(0)
        second = asyncio.ensure_future(poller.poll_until_done("s1"))
        for _ in range(3):
            await asyncio.sleep(0)

        assert poller.is_polling("s1")
        gate.set()
        a, b = await asyncio.gather(first, second)
        return a, b, api.status_calls, poller.is_polling("s1")

    a, b, calls, still_polling = asyncio.run(main())
    assert a is b
    assert calls == 2
    assert still_polling is False


def test_cancel_stops_only_the_local_loop():
    async def main():
        never = asyncio.Event()

        async def stuck_sleep(delay):
            await never.wait()

        api = ScriptedApi([ANALYZING])
        poller = ResultPoller(api, sleep=stuck_sleep)
        task = asyncio.ensure_future(poller.poll_until_done("s1"))
        for _ in range(3):
            await asyncio.sleep(0)

        assert poller.cancel("s1") is True
        with pytest.raises(asyncio.CancelledError):
            await task
        assert poller.cancel("s1") is False

        # the analysis kept running server-side; a fresh poll still sees it finish
        api.script = [{"status": "completed", "report": "late"}]
        outcome = await ResultPoller(api, sleep=stuck_sleep).poll_until_done("s1")
        return outcome.report

    assert asyncio.run(main()) == "late"


def test_cancelling_the_first_caller_keeps_the_loop_for_others():
    async def main():
        gate = asyncio.Event()

        async def gated_sleep(delay):
            await gate.wait()

        api = ScriptedApi([ANALYZING, {"status": "completed", "report": "done"}])
        poller = ResultPoller(api, sleep=gated_sleep)

        first = asyncio.ensure_future(poller.poll_until_done("s1"))
        for _ in range(3):
            await asyncio.sleep(0)
        second = asyncio.ensure_future(poller.poll_until_done("s1"))
        for _ in range(3):
            await asyncio.sleep(0)

        first.cancel()
        for _ in range(3):
            await asyncio.sleep(0)
        assert first.cancelled()
        assert poller.is_polling("s1")

        gate.set()
        outcome = await second
        return outcome.report, api.status_calls

    assert asyncio.run(main()) == ("done", 2)
