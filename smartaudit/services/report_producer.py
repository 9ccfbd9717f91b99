# smartaudit/services/report_producer.py
import json
import logging
from typing import Iterable, Optional

import requests

logger = logging.getLogger(__name__)

AUDIT_PROMPT = (
    "Please perform a comprehensive security audit of this smart contract code. "
    "Analyze for vulnerabilities, security issues, gas optimization opportunities, "
    "and best practices. Provide a detailed report with severity levels and "
    "recommendations.\n\n"
)


class ReportProducerError(RuntimeError):
    pass


class HttpReportProducer:
    """
    Client for the external analysis service ("submit code -> get report text").

    The service answers with a server-sent-event stream; each ``data:`` line
    carries either ``{"body": "<chunk>"}`` or ``{"status": "..."}``. The report
    is the concatenation of every body chunk, up to the end of the stream or
    a ``complete`` status.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 300):
        if not base_url:
            raise ReportProducerError("REPORT_PRODUCER_URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "HttpReportProducer":
        return cls(
            config.get("REPORT_PRODUCER_URL"),
            token=config.get("REPORT_PRODUCER_TOKEN"),
            timeout=float(config.get("REPORT_PRODUCER_TIMEOUT", 300)),
        )

    def analyze(self, contract_code: str, language: str = "solidity",
                session_key: Optional[str] = None) -> str:
        payload = {
            "sessionKey": session_key,
            "language": language,
            "messages": [{"role": "user", "content": AUDIT_PROMPT + contract_code}],
            "stream": True,
        }
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        logger.info("Requesting analysis for session key %s", session_key)
        try:
            with requests.post(f"{self.base_url}/analyze", json=payload, headers=headers,
                               stream=True, timeout=self.timeout) as resp:
                if resp.status_code >= 400:
                    raise ReportProducerError(f"Analysis failed: {resp.status_code} {resp.reason}")
                report = collect_stream(resp.iter_lines(decode_unicode=True))
        except requests.RequestException as e:
            raise ReportProducerError(f"Analysis request failed: {e}") from e

        if not report.strip():
            raise ReportProducerError("Analysis produced an empty report")
        return report


def collect_stream(lines: Iterable) -> str:
    """Concatenate the ``body`` chunks of an SSE stream."""
    chunks = []
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        if not line or not line.startswith("data: "):
            continue
        try:
            data = json.loads(line[6:])
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream line: %s", line[:80])
            continue
        if not isinstance(data, dict):
            continue
        if data.get("body"):
            chunks.append(data["body"])
        elif data.get("status") in ("complete", "completed"):
            break
        elif data.get("error"):
            raise ReportProducerError(str(data["error"]))
    return "".join(chunks)
