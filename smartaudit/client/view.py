# smartaudit/client/view.py
"""
One view-model for every client surface, and one render function.

Hosts (IDE panel, browser popup, assistant bridge) subscribe to state
changes and display ``render(state)``; none of them talk to the API or the
poller directly.
"""
import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from smartaudit.core.cost import CreditCostEstimate

from .errors import ApiError, InsufficientCreditsError, PlanRestrictionError, PollTimeoutError
from .poller import PollOutcome

logger = logging.getLogger(__name__)

IDLE = "idle"
ESTIMATING = "estimating"
SUBMITTING = "submitting"
POLLING = "polling"
COMPLETED = "completed"
FAILED = "failed"

PHASES = (IDLE, ESTIMATING, SUBMITTING, POLLING, COMPLETED, FAILED)


@dataclass(frozen=True)
class ViewState:
    phase: str = IDLE
    language: Optional[str] = None
    estimate: Optional[CreditCostEstimate] = None
    session_id: Optional[str] = None
    credits_used: Optional[int] = None
    progress: Optional[tuple] = None     # (tick, max_attempts)
    outcome: Optional[PollOutcome] = None
    error: Optional[str] = None
    timed_out: bool = False


class AuditViewModel:
    def __init__(self, api, poller, interval: float = 5.0, max_attempts: int = 60,
                 progress_every: int = 6):
        self.api = api
        self.poller = poller
        self.interval = interval
        self.max_attempts = max_attempts
        self.progress_every = progress_every
        self.state = ViewState()
        self._listeners: List[Callable[[ViewState], None]] = []

    def subscribe(self, listener: Callable[[ViewState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set(self, **changes) -> ViewState:
        self.state = replace(self.state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("View listener failed")
        return self.state

    def reset(self) -> ViewState:
        return self._set(**vars(ViewState()))

    def estimate(self, contract_code: str, language: str = "solidity") -> CreditCostEstimate:
        self._set(phase=ESTIMATING, language=language, error=None)
        est = self.api.estimate_cost(contract_code, language)
        self._set(estimate=est)
        return est

    async def run_audit(self, contract_code: str, language: str = "solidity", **submit_kwargs) -> ViewState:
        """Estimate, submit and poll one contract. Failures end in the ``failed`` phase."""
        self.reset()
        self.estimate(contract_code, language)
        self._set(phase=SUBMITTING)
        try:
            started = await self.api.start_audit(contract_code, language, **submit_kwargs)
        except ApiError as e:
            return self._set(phase=FAILED, error=describe_error(e))

        session_id = started.get("sessionId")
        self._set(phase=POLLING, session_id=session_id, credits_used=started.get("creditsUsed"),
                  progress=(0, self.max_attempts))
        return await self.watch(session_id)

    async def watch(self, session_id: str) -> ViewState:
        """Poll an existing session (e.g. after reopening the panel)."""
        if self.state.session_id != session_id or self.state.phase != POLLING:
            self._set(phase=POLLING, session_id=session_id, progress=(0, self.max_attempts),
                      error=None, outcome=None, timed_out=False)
        try:
            outcome = await self.poller.poll_until_done(
                session_id,
                interval=self.interval,
                max_attempts=self.max_attempts,
                progress_every=self.progress_every,
                on_progress=lambda tick, total: self._set(progress=(tick, total)),
            )
        except PollTimeoutError as e:
            return self._set(phase=FAILED, error=describe_error(e), timed_out=True)
        except ApiError as e:
            return self._set(phase=FAILED, error=describe_error(e))
        return self._set(phase=COMPLETED, outcome=outcome)


def describe_error(error: ApiError) -> str:
    if isinstance(error, InsufficientCreditsError):
        return (f"Insufficient credits: this audit needs {error.required}, "
                f"you have {error.available}.")
    if isinstance(error, PlanRestrictionError):
        return f"{error.message} (upgrade to {error.plan_required or 'a paid plan'})"
    if isinstance(error, PollTimeoutError):
        return (f"{error.message}. The analysis is still running on the server; "
                f"check again later with session {error.session_id}.")
    return error.message


# ---------------------------
# Rendering
# ---------------------------

def _render_estimate(est: CreditCostEstimate) -> List[str]:
    return [
        f"**Estimated cost**: {est.total_cost} credits",
        f"- Code length: {est.code_length} chars",
        f"- Complexity: {est.complexity:g}/10",
        f"- Multiple files: {'yes' if est.has_multiple_files else 'no'}",
        f"- Language: {est.language}",
    ]


def _render_outcome(outcome: PollOutcome) -> List[str]:
    counts = outcome.vulnerability_count
    lines = [
        f"**Security score**: {outcome.score:g}/10",
        f"**Findings**: {counts.get('high', 0)} high, {counts.get('medium', 0)} medium, "
        f"{counts.get('low', 0)} low, {counts.get('info', 0)} info",
        "",
    ]
    if not outcome.parsed:
        lines += ["_No structured findings could be read from this report; "
                  "review the full text below._", ""]
    for v in outcome.vulnerabilities:
        where = f" (line {v.line})" if v.line is not None else ""
        lines.append(f"### {v.severity or 'Unknown'} - {v.title}{where}")
        if v.description:
            lines.append(f"- **Description**: {v.description}")
        if v.recommendation:
            lines.append(f"- **Recommendation**: {v.recommendation}")
        lines.append("")
    lines += ["## Full report", "", outcome.report]
    return lines


def render(state: ViewState) -> str:
    """Markdown for ``state``."""
    lines = ["# SmartAudit"]
    if state.phase == IDLE:
        lines.append("Submit a contract to start an audit.")
    elif state.phase == ESTIMATING:
        lines.append("Estimating cost...")
        if state.estimate:
            lines += _render_estimate(state.estimate)
    elif state.phase == SUBMITTING:
        lines.append("Submitting contract...")
        if state.estimate:
            lines += _render_estimate(state.estimate)
    elif state.phase == POLLING:
        tick, total = state.progress or (0, 0)
        lines.append(f"Analyzing session `{state.session_id}` ({tick}/{total} checks)...")
    elif state.phase == COMPLETED:
        lines.append(f"Audit `{state.session_id}` completed.")
        lines.append("")
        lines += _render_outcome(state.outcome)
    elif state.phase == FAILED:
        lines.append(f"**Audit failed**: {state.error or 'unknown error'}")
        if state.session_id:
            lines.append(f"Session: `{state.session_id}`")
    return "\n".join(lines)
