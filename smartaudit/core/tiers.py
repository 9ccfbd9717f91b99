# smartaudit/core/tiers.py
# Single plan-tier table. Thresholds are on total credits ever earned
# (initial grant included), matching the Pro / Pro+ package sizes.
from typing import Optional

FREE = "Free"
PRO = "Pro"
PRO_PLUS = "Pro+"
ENTERPRISE = "Enterprise"

TIER_ORDER = (FREE, PRO, PRO_PLUS, ENTERPRISE)

TIER_THRESHOLDS = (
    (15000, PRO_PLUS),
    (5000, PRO),
    (0, FREE),
)

INITIAL_CREDITS = 1000
PRIVATE_AUDIT_TIER = PRO


def tier_for(total_earned: int, explicit: Optional[str] = None) -> str:
    # an explicit assignment wins; Enterprise is never inferred from credits
    if explicit in TIER_ORDER:
        return explicit
    for threshold, tier in TIER_THRESHOLDS:
        if (total_earned or 0) >= threshold:
            return tier
    return FREE


def at_least(tier: str, required: str) -> bool:
    return TIER_ORDER.index(tier) >= TIER_ORDER.index(required)


def can_create_private_audits(tier: str) -> bool:
    return at_least(tier, PRIVATE_AUDIT_TIER)
