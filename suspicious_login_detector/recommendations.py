"""Rule-based recommendations attached to each assessment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Tuple

from .models import RiskFactors, RiskLevel

LEGITIMATE_LOGIN = "Login appears legitimate - allow access"


@dataclass(slots=True, frozen=True)
class RecommendationRule:
    name: str
    applies: Callable[[RiskFactors, RiskLevel], bool]
    messages: Tuple[str, ...]


DEFAULT_RULES: Tuple[RecommendationRule, ...] = (
    RecommendationRule(
        "block_high_risk",
        lambda factors, level: level in ("critical", "high"),
        ("Block login attempt and require additional verification",),
    ),
    RecommendationRule(
        "impossible_travel",
        lambda factors, level: factors.impossible_travel > 50,
        ("Send alert for impossible travel detection", "Require multi-factor authentication"),
    ),
    RecommendationRule(
        "brute_force",
        lambda factors, level: factors.brute_force > 50,
        ("Implement temporary account lockout", "Alert user of potential brute force attack"),
    ),
    RecommendationRule(
        "new_location",
        lambda factors, level: factors.location_change > 30,
        ("Send notification to user about new location login",),
    ),
    RecommendationRule(
        "unusual_time",
        lambda factors, level: factors.unusual_time > 30,
        ("Consider requiring additional verification for unusual login times",),
    ),
    RecommendationRule(
        "monitor_medium",
        lambda factors, level: level == "medium",
        ("Monitor this user for additional suspicious activity",),
    ),
)


def recommend(
    factors: RiskFactors,
    level: RiskLevel,
    rules: Tuple[RecommendationRule, ...] = DEFAULT_RULES,
) -> Tuple[str, ...]:
    recommendations: List[str] = []
    for rule in rules:
        if rule.applies(factors, level):
            recommendations.extend(rule.messages)
    if not recommendations:
        recommendations.append(LEGITIMATE_LOGIN)
    return tuple(recommendations)
