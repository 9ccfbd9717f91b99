# smartaudit/core/__init__.py
# Pure functions shared by the server and every client (no I/O, no Flask).
from .cost import CreditCostEstimate, estimate
from .findings import Vulnerability, parse
from .scoring import score, vulnerability_counts

__all__ = [
    "CreditCostEstimate",
    "estimate",
    "Vulnerability",
    "parse",
    "score",
    "vulnerability_counts",
]
