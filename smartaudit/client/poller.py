# smartaudit/client/poller.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from smartaudit.core import findings, scoring

from .errors import ApiError, AuditFailedError, PollTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_PROGRESS_EVERY = 6


@dataclass
class PollOutcome:
    session_id: str
    report: str
    vulnerabilities: List[findings.Vulnerability] = field(default_factory=list)
    score: float = 10.0
    vulnerability_count: Dict[str, int] = field(default_factory=dict)

    @property
    def parsed(self) -> bool:
        # an empty list means "could not read the report", not "no issues"
        return bool(self.vulnerabilities)

    def to_dict(self):
        return {
            "sessionId": self.session_id,
            "report": self.report,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "score": self.score,
            "vulnerabilityCount": self.vulnerability_count,
            "parsed": self.parsed,
        }


def build_outcome(session_id: str, report: str) -> PollOutcome:
    vulns = findings.parse(report)
    if not vulns:
        logger.warning("No findings could be parsed from the report for %s", session_id)
    return PollOutcome(
        session_id=session_id,
        report=report,
        vulnerabilities=vulns,
        score=scoring.score(vulns),
        vulnerability_count=scoring.vulnerability_counts(vulns),
    )


class ResultPoller:
    """
    Watches one audit session until it reaches a terminal state.

    Each tick is one status call followed, when the session is still
    pending or analyzing, by an awaited ``sleep(interval)``, so the event
    loop stays free between ticks. At most one loop runs per session: a
    second ``poll_until_done`` for the same id attaches to the running one,
    and cancelling any waiter (the first included) leaves the loop running
    for the others. ``cancel()`` stops the loop itself; the server-side
    analysis keeps going and a later poll can still see it finish.
    """

    def __init__(self, api, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.api = api
        self._sleep = sleep
        self._active: Dict[str, asyncio.Task] = {}

    def is_polling(self, session_id: str) -> bool:
        task = self._active.get(session_id)
        return task is not None and not task.done()

    async def poll_until_done(
        self,
        session_id: str,
        interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> PollOutcome:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        running = self._active.get(session_id)
        if running is not None and not running.done():
            logger.debug("Attaching to the running poll for %s", session_id)
            return await asyncio.shield(running)

        task = asyncio.get_running_loop().create_task(
            self._run(session_id, interval, max_attempts, progress_every, on_progress)
        )
        self._active[session_id] = task
        task.add_done_callback(lambda t: self._forget(session_id, t))
        # the loop outlives its first caller; only cancel() stops it
        return await asyncio.shield(task)

    def _forget(self, session_id: str, task: asyncio.Task) -> None:
        if self._active.get(session_id) is task:
            del self._active[session_id]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Poll for %s ended with %r", session_id, task.exception())

    def cancel(self, session_id: str) -> bool:
        task = self._active.get(session_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _run(self, session_id, interval, max_attempts, progress_every, on_progress):
        for tick in range(1, max_attempts + 1):
            try:
                status = await self.api.get_status(session_id)
            except ApiError as e:
                if not e.transient:
                    raise
                logger.warning("Status check %d for %s failed: %s", tick, session_id, e)
                status = {}

            state = status.get("status")
            if state == "completed":
                return await self._outcome(session_id, status)
            if state == "failed":
                raise AuditFailedError(status.get("error") or "Analysis failed", session_id=session_id)

            if on_progress is not None and progress_every and tick % progress_every == 0:
                try:
                    on_progress(tick, max_attempts)
                except Exception:
                    logger.exception("Progress callback failed for %s", session_id)

            if tick < max_attempts:
                await self._sleep(interval)

        raise PollTimeoutError(session_id, max_attempts)

    async def _outcome(self, session_id: str, status: dict) -> PollOutcome:
        report = status.get("report")
        if report is None:
            data = await self.api.get_results(session_id)
            report = (data.get("result") or {}).get("formattedReport") or ""
        return build_outcome(session_id, report)
