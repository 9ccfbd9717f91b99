# smartaudit/core/cost.py
import math
import re
from dataclasses import dataclass
from typing import Dict, Any

BASE_COST = 10
MIN_COST = 5
MAX_COST = 500

# (keyword, weight) - matched case-insensitively
COMPLEXITY_WEIGHTS = (
    ("mapping", 1.0),
    ("modifier", 1.0),
    ("event", 0.5),
    ("interface", 0.5),
    ("assembly", 2.0),
    ("delegatecall", 1.5),
    ("selfdestruct", 1.0),
)

LANGUAGE_MULTIPLIERS = {
    "solidity": 1.0,
    "rust": 1.3,
    "go": 1.1,
    "vyper": 1.2,
    "cairo": 1.4,
    "move": 1.3,
}

_CONTRACT_DECL = re.compile(r"contract\s+\w+", re.IGNORECASE)


@dataclass(frozen=True)
class CreditCostEstimate:
    base_cost: int
    code_length: int
    complexity: float
    has_multiple_files: bool
    language: str
    total_cost: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseCost": self.base_cost,
            "factors": {
                "codeLength": self.code_length,
                "complexity": self.complexity,
                "hasMultipleFiles": self.has_multiple_files,
                "language": self.language,
            },
            "totalCost": self.total_cost,
        }


def complexity_of(code: str) -> float:
    """Keyword-weighted complexity on a 1..10 scale."""
    lowered = (code or "").lower()
    complexity = 1.0
    for keyword, weight in COMPLEXITY_WEIGHTS:
        if keyword in lowered:
            complexity += weight
    return min(10.0, max(1.0, complexity))


def has_multiple_files(code: str) -> bool:
    code = code or ""
    if "import" in code:
        return True
    return "pragma" in code and len(_CONTRACT_DECL.findall(code)) > 1


def _length_multiplier(length: int) -> float:
    if length <= 0:
        return 1.0
    return max(1.0, math.log10(length / 100) * 0.5)


def estimate(code: str, language: str = "solidity") -> CreditCostEstimate:
    """
    Credit price of auditing `code`.

    Total function: any input (empty code, unknown language) yields a price
    inside [MIN_COST, MAX_COST]. This is the only pricing implementation;
    the pre-flight preview and the server-side charge both call it.
    """
    code = code or ""
    lang = (language or "solidity").strip().lower()

    cost = float(BASE_COST)
    cost *= _length_multiplier(len(code))

    complexity = complexity_of(code)
    cost *= 1 + (complexity - 1) * 0.2

    multi = has_multiple_files(code)
    if multi:
        cost *= 1.5

    cost *= LANGUAGE_MULTIPLIERS.get(lang, 1.0)

    # round away float noise (10 * 1.2 * 1.5 must price 18, not 19)
    total = max(MIN_COST, min(int(math.ceil(round(cost, 6))), MAX_COST))
    return CreditCostEstimate(
        base_cost=BASE_COST,
        code_length=len(code),
        complexity=complexity,
        has_multiple_files=multi,
        language=lang,
        total_cost=total,
    )
