"""
Heuristic extraction of structured findings from free-form report text.

The report producer answers with markdown written by a language model, so
everything here is best effort: a line-oriented single pass looking for
bold severity markers and labelled fields, with a regex fallback when no
structured block is found. An empty result means "could not parse", not
"no issues"; callers must not read it as a clean bill of health.

A producer that already returns structured findings bypasses this module
entirely (see ``Vulnerability.from_dict``).
"""
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

SEVERITIES = ("Critical", "High", "Medium", "Low")

_SEVERITY_MARK = re.compile(r"\*\*(critical|high|medium|low)\*\*", re.IGNORECASE)
_TITLE_PREFIX = re.compile(r".*?(Vulnerability|Issue|Finding):\s*")
_LINE_NO = re.compile(r"line\s*(\d+)", re.IGNORECASE)
_DESCRIPTION_PREFIX = re.compile(r".*Description:\s*")
_RECOMMENDATION_PREFIX = re.compile(r".*(Recommendation|Fix):\s*")

_FALLBACK = (
    ("Critical", re.compile(r"critical.*?vulnerability", re.IGNORECASE),
     "Critical security vulnerability detected by AI analysis"),
    ("High", re.compile(r"high.*?vulnerability", re.IGNORECASE),
     "High severity security issue detected by AI analysis"),
    ("Medium", re.compile(r"medium.*?vulnerability", re.IGNORECASE),
     "Medium severity security issue detected by AI analysis"),
    ("Low", re.compile(r"low.*?vulnerability", re.IGNORECASE),
     "Low severity security issue detected by AI analysis"),
)


@dataclass
class Vulnerability:
    severity: Optional[str] = None
    title: Optional[str] = None
    line: Optional[int] = None
    description: Optional[str] = None
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Vulnerability":
        severity = data.get("severity")
        if isinstance(severity, str):
            severity = severity.strip().capitalize()
        line = data.get("line")
        return cls(
            severity=severity,
            title=data.get("title"),
            line=int(line) if line is not None else None,
            description=data.get("description"),
            recommendation=data.get("recommendation"),
        )


def _next_or_rest(lines: List[str], i: int, prefix: re.Pattern) -> str:
    # the value usually sits on the following line; fall back to the same line
    if i + 1 < len(lines):
        following = lines[i + 1].strip()
        if following:
            return following
    return prefix.sub("", lines[i].strip(), count=1)


def _parse_blocks(text: str) -> List[Vulnerability]:
    found: List[Vulnerability] = []
    lines = text.split("\n")
    current = Vulnerability()

    for i, raw in enumerate(lines):
        line = raw.strip()

        mark = _SEVERITY_MARK.search(line)
        if mark:
            if current.title:
                found.append(current)
            current = Vulnerability(severity=mark.group(1).capitalize())

        if "Vulnerability:" in line or "Issue:" in line or "Finding:" in line:
            current.title = _TITLE_PREFIX.sub("", line, count=1).replace("**", "").strip()

        number = _LINE_NO.search(line)
        if number and current.line is None:
            current.line = int(number.group(1))

        if "Description:" in line:
            current.description = _next_or_rest(lines, i, _DESCRIPTION_PREFIX)

        if "Recommendation:" in line or "Fix:" in line:
            current.recommendation = _next_or_rest(lines, i, _RECOMMENDATION_PREFIX)

    if current.title:
        found.append(current)
    return found


def _parse_fallback(text: str) -> List[Vulnerability]:
    found: List[Vulnerability] = []
    for severity, pattern, description in _FALLBACK:
        for match in pattern.finditer(text):
            title = re.sub(severity + r"\s*", "", match.group(0), count=1, flags=re.IGNORECASE)
            found.append(Vulnerability(
                severity=severity,
                title=title.strip(),
                description=description,
            ))
    return found


def parse(report_text: str) -> List[Vulnerability]:
    """Return the vulnerabilities found in ``report_text``; never raises."""
    if not isinstance(report_text, str) or not report_text.strip():
        return []
    try:
        found = _parse_blocks(report_text)
        if not found:
            found = _parse_fallback(report_text)
        return found
    except Exception:  # advisory only: degrade to "unparsed"
        return []
