from datetime import datetime, timedelta, timezone

from suspicious_login_detector import (
    GeoLocation,
    LoginAttempt,
    StaticGeoResolver,
    SuspiciousLoginDetector,
)


def build_attempt(now: datetime, user: str, ip: str, success: bool = True) -> LoginAttempt:
    return LoginAttempt(
        user_id=user,
        timestamp=now,
        ip_address=ip,
        success=success,
        user_agent="Mozilla/5.0",
    )


def main() -> None:
    now = datetime.now(timezone.utc)
    resolver = StaticGeoResolver(
        {
            "203.0.113.10": GeoLocation("US", "NY", "New York", 40.7128, -74.0060),
            "203.0.113.20": GeoLocation("JP", "13", "Tokyo", 35.6762, 139.6503),
        }
    )
    detector = SuspiciousLoginDetector(geo_resolver=resolver)

    detector.analyze_login(build_attempt(now - timedelta(hours=1), "bob", "203.0.113.10"))
    for minute in range(5):
        detector.analyze_login(build_attempt(now - timedelta(minutes=5 - minute), "bob", "203.0.113.20", success=False))

    assessment = detector.analyze_login(build_attempt(now, "bob", "203.0.113.20"))

    print("Overall risk:", assessment.overall_risk)
    print("Risk level:", assessment.risk_level)
    factors = assessment.factors
    print(f"- location change: {factors.location_change}")
    print(f"- impossible travel: {factors.impossible_travel}")
    print(f"- brute force: {factors.brute_force}")
    print(f"- unusual time: {factors.unusual_time}")
    for detail in assessment.details:
        print("::", detail)
    print("Recommendations:")
    for recommendation in assessment.recommendations:
        print("  *", recommendation)


if __name__ == "__main__":
    main()
