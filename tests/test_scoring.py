import pytest

from smartaudit.core import tiers
from smartaudit.core.findings import Vulnerability
from smartaudit.core.scoring import score, vulnerability_counts


def _v(severity):
    return Vulnerability(severity=severity, title="t")


def test_clean_list_scores_ten():
    assert score([]) == 10.0


@pytest.mark.parametrize("severity,expected", [
    ("Critical", 7.0), ("High", 8.0), ("Medium", 9.0), ("Low", 9.5), (None, 10.0),
])
def test_penalties(severity, expected):
    assert score([_v(severity)]) == expected


def test_score_floors_at_zero():
    assert score([_v("Critical")] * 5) == 0.0


def test_mixed_list():
    vulns = [_v("Critical"), _v("High"), _v("Medium"), _v("Low"), _v("Low")]
    assert score(vulns) == pytest.approx(3.0)


def test_counts_fold_critical_into_high():
    counts = vulnerability_counts([_v("Critical"), _v("High"), _v("Medium"), _v("Low"), _v(None)])
    assert counts == {"high": 2, "medium": 1, "low": 1, "info": 1}


@pytest.mark.parametrize("earned,tier", [
    (0, tiers.FREE), (1000, tiers.FREE), (4999, tiers.FREE),
    (5000, tiers.PRO), (14999, tiers.PRO), (15000, tiers.PRO_PLUS), (10**7, tiers.PRO_PLUS),
])
def test_tier_table(earned, tier):
    assert tiers.tier_for(earned) == tier


def test_enterprise_only_when_assigned():
    assert tiers.tier_for(10**9) != tiers.ENTERPRISE
    assert tiers.tier_for(0, tiers.ENTERPRISE) == tiers.ENTERPRISE
    assert tiers.can_create_private_audits(tiers.ENTERPRISE)
    assert not tiers.can_create_private_audits(tiers.FREE)
