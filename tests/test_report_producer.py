import json

import pytest
import requests

from smartaudit.services import report_producer
from smartaudit.services.report_producer import HttpReportProducer, ReportProducerError, collect_stream


def _event(payload):
    return "data: " + json.dumps(payload)


def test_collect_concatenates_bodies():
    lines = [
        _event({"status": "started"}),
        "",
        _event({"body": "**HIGH**\n"}),
        ": keep-alive",
        _event({"body": "Vulnerability: Reentrancy"}).encode("utf-8"),
        "data: not-json",
        _event({"status": "complete"}),
        _event({"body": "ignored after completion"}),
    ]
    assert collect_stream(lines) == "**HIGH**\nVulnerability: Reentrancy"


def test_collect_raises_on_error_event():
    with pytest.raises(ReportProducerError, match="model overloaded"):
        collect_stream([_event({"body": "partial"}), _event({"error": "model overloaded"})])


class FakeStreamResponse:
    def __init__(self, status_code=200, lines=(), reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self._lines = list(lines)

    def iter_lines(self, decode_unicode=False):
        return iter(self._lines)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_analyze_posts_prompt_and_reads_stream(monkeypatch):
    seen = {}

    def fake_post(url, json=None, headers=None, stream=False, timeout=None):
        seen.update(url=url, body=json, headers=headers, stream=stream)
        return FakeStreamResponse(lines=[_event({"body": "report text"})])

    monkeypatch.setattr(report_producer.requests, "post", fake_post)
    producer = HttpReportProducer("http://producer.test/", token="t0k")

    assert producer.analyze("contract A {}", "solidity", session_key="audit_1_x") == "report text"
    assert seen["url"] == "http://producer.test/analyze"
    assert seen["stream"] is True
    assert seen["headers"]["Authorization"] == "Bearer t0k"
    assert seen["body"]["sessionKey"] == "audit_1_x"
    assert seen["body"]["messages"][0]["content"].endswith("contract A {}")


def test_analyze_http_error(monkeypatch):
    monkeypatch.setattr(report_producer.requests, "post",
                        lambda *a, **k: FakeStreamResponse(status_code=502, reason="Bad Gateway"))
    with pytest.raises(ReportProducerError, match="502"):
        HttpReportProducer("http://producer.test").analyze("contract A {}")


def test_analyze_connection_error(monkeypatch):
    def boom(*a, **k):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(report_producer.requests, "post", boom)
    with pytest.raises(ReportProducerError, match="refused"):
        HttpReportProducer("http://producer.test").analyze("contract A {}")


def test_empty_report_is_an_error(monkeypatch):
    monkeypatch.setattr(report_producer.requests, "post",
                        lambda *a, **k: FakeStreamResponse(lines=[_event({"status": "complete"})]))
    with pytest.raises(ReportProducerError, match="empty"):
        HttpReportProducer("http://producer.test").analyze("contract A {}")


def test_from_config_requires_url():
    with pytest.raises(ReportProducerError):
        HttpReportProducer.from_config({"REPORT_PRODUCER_URL": ""})
    producer = HttpReportProducer.from_config({"REPORT_PRODUCER_URL": "http://p", "REPORT_PRODUCER_TIMEOUT": 12})
    assert producer.timeout == 12.0
