from suspicious_login_detector.models import RiskFactors
from suspicious_login_detector.recommendations import DEFAULT_RULES, LEGITIMATE_LOGIN, recommend


def test_quiet_login_is_legitimate():
    assert recommend(RiskFactors(), "low") == (LEGITIMATE_LOGIN,)


def test_rules_fire_in_fixed_order():
    factors = RiskFactors(location_change=40, impossible_travel=100, brute_force=100, unusual_time=35)

    assert recommend(factors, "high") == (
        "Block login attempt and require additional verification",
        "Send alert for impossible travel detection",
        "Require multi-factor authentication",
        "Implement temporary account lockout",
        "Alert user of potential brute force attack",
        "Send notification to user about new location login",
        "Consider requiring additional verification for unusual login times",
    )


def test_medium_level_asks_for_monitoring():
    assert recommend(RiskFactors(), "medium") == ("Monitor this user for additional suspicious activity",)


def test_thresholds_are_strict():
    factors = RiskFactors(location_change=30, impossible_travel=50, brute_force=50, unusual_time=30)
    assert recommend(factors, "low") == (LEGITIMATE_LOGIN,)


def test_critical_blocks():
    assert recommend(RiskFactors(), "critical")[0] == "Block login attempt and require additional verification"


def test_rule_names_are_unique():
    names = [rule.name for rule in DEFAULT_RULES]
    assert len(names) == len(set(names))
