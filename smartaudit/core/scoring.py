# smartaudit/core/scoring.py
from typing import Dict, Iterable

from .findings import Vulnerability

PENALTIES = {
    "Critical": 3.0,
    "High": 2.0,
    "Medium": 1.0,
    "Low": 0.5,
}

# stored counters only have four buckets; Critical folds into "high"
COUNT_BUCKETS = {
    "Critical": "high",
    "High": "high",
    "Medium": "medium",
    "Low": "low",
}


def score(vulns: Iterable[Vulnerability]) -> float:
    """Security score in [0, 10]; an empty list scores exactly 10."""
    total = 10.0
    for v in vulns:
        total -= PENALTIES.get(v.severity or "", 0.0)
    return max(0.0, min(10.0, total))


def vulnerability_counts(vulns: Iterable[Vulnerability]) -> Dict[str, int]:
    """
    Bucket findings into the persisted {high, medium, low, info} counters.

    Every finding lands in exactly one bucket (unknown or missing severity
    counts as "info"), so the counters always add up to len(vulns).
    """
    counts = {"high": 0, "medium": 0, "low": 0, "info": 0}
    for v in vulns:
        counts[COUNT_BUCKETS.get(v.severity or "", "info")] += 1
    return counts
