from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import DetectorConfig, ServiceSettings
from .geo import GeoResolver, StaticGeoResolver, build_geo_resolver
from .models import LoginAttempt, RiskAssessment, RiskFactors, RiskSignal, UserProfile
from .persistence import (
    AssessmentSink,
    InMemoryProfileStore,
    MongoAssessmentRepository,
    MongoProfileStore,
    ProfileConflict,
    ProfileStore,
    StorageUnavailable,
)
from .recommendations import recommend
from .risk_factors import (
    BruteForceFactor,
    ImpossibleTravelFactor,
    LocationChangeFactor,
    UnusualTimeFactor,
)
from .webhook import WebhookSink

logger = logging.getLogger(__name__)

MAX_SAVE_ATTEMPTS = 5


class SuspiciousLoginDetector:
    """Scores login attempts against each user's learned profile.

    The detector holds no locks. Profile saves are version checked, so two
    processes analyzing the same user cannot overwrite each other; the loser
    reloads and rescores. Callers should still feed each user's attempts in
    timestamp order.
    """

    def __init__(
        self,
        config: DetectorConfig | None = None,
        profile_store: ProfileStore | None = None,
        geo_resolver: GeoResolver | None = None,
        sinks: Sequence[AssessmentSink] = (),
    ):
        self.config = config or DetectorConfig()
        self.profile_store: ProfileStore = profile_store or InMemoryProfileStore()
        self.geo_resolver: GeoResolver = geo_resolver or StaticGeoResolver()
        self.sinks: List[AssessmentSink] = list(sinks)
        self.location_change = LocationChangeFactor(self.geo_resolver)
        self.impossible_travel = ImpossibleTravelFactor(self.geo_resolver, self.config.max_travel_speed)
        self.brute_force = BruteForceFactor(self.config)
        self.unusual_time = UnusualTimeFactor()

    @classmethod
    def from_settings(
        cls,
        settings: ServiceSettings,
        sinks: Sequence[AssessmentSink] | None = None,
    ) -> "SuspiciousLoginDetector":
        if sinks is None:
            default_sinks: List[AssessmentSink] = [
                MongoAssessmentRepository(settings.mongodb_uri, settings.mongodb_database)
            ]
            if settings.webhook_url:
                default_sinks.append(WebhookSink(settings.webhook_url))
            sinks = default_sinks
        return cls(
            config=settings.detector,
            profile_store=MongoProfileStore(
                settings.mongodb_uri,
                settings.mongodb_database,
                max_history=settings.profile_history_limit,
            ),
            geo_resolver=build_geo_resolver(settings.geoip_database_path),
            sinks=sinks,
        )

    def analyze_login(self, attempt: LoginAttempt) -> RiskAssessment:
        """Score ``attempt`` and persist the updated profile.

        Another writer saving the same profile first forces a reload and a
        fresh score, so concurrent workers never drop each other's attempts.
        """
        for _ in range(MAX_SAVE_ATTEMPTS):
            profile = self.profile_store.load(attempt.user_id) or UserProfile(user_id=attempt.user_id)
            assessment = self.assess(attempt, profile)
            try:
                self.profile_store.save(profile)
            except ProfileConflict as exc:
                logger.debug("Profile for %s changed during analysis, rescoring: %s", attempt.user_id, exc)
                continue
            except StorageUnavailable as exc:
                # later analyses for this user will see a shorter history
                logger.warning("Profile for %s not saved, assessment still returned: %s", attempt.user_id, exc)
            break
        else:
            logger.warning(
                "Profile for %s kept changing after %d attempts, assessment returned unsaved",
                attempt.user_id,
                MAX_SAVE_ATTEMPTS,
            )

        self._publish(attempt, assessment)
        return assessment

    def analyze_multiple(self, attempts: Iterable[LoginAttempt]) -> List[RiskAssessment]:
        ordered = sorted(attempts, key=lambda attempt: attempt.timestamp)
        return [self.analyze_login(attempt) for attempt in ordered]

    def user_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profile_store.load(user_id)

    def assess(self, attempt: LoginAttempt, profile: UserProfile) -> RiskAssessment:
        """Score ``attempt`` and fold it into ``profile`` in place."""
        profile.record(attempt)

        signals = [
            self.location_change.assess(attempt, profile),
            self.impossible_travel.assess(attempt, profile),
            self.brute_force.assess(attempt, profile),
            self.unusual_time.assess(attempt, profile),
        ]
        if attempt.success:
            profile.last_successful_login = attempt

        factors = RiskFactors(
            location_change=signals[0].score,
            impossible_travel=signals[1].score,
            brute_force=signals[2].score,
            unusual_time=signals[3].score,
        )
        overall = self.overall_risk(factors)
        level = self.config.classify(overall)

        assessment = RiskAssessment(
            user_id=attempt.user_id,
            timestamp=attempt.timestamp,
            overall_risk=overall,
            risk_level=level,
            factors=factors,
            recommendations=recommend(factors, level),
            details=self._details(attempt, signals),
        )
        log = logger.info if assessment.is_suspicious else logger.debug
        log(
            "Login for %s scored %d (%s) factors=%s",
            attempt.user_id,
            overall,
            level,
            factors,
        )
        return assessment

    def overall_risk(self, factors: RiskFactors) -> int:
        weights = self.config.weights
        score = (
            factors.location_change * weights.location_change
            + factors.impossible_travel * weights.impossible_travel
            + factors.brute_force * weights.brute_force
            + factors.unusual_time * weights.unusual_time
        )
        return max(0, min(100, int(math.floor(score + 0.5))))

    def _details(self, attempt: LoginAttempt, signals: Sequence[RiskSignal]) -> Tuple[str, ...]:
        details: List[str] = []
        location = self.geo_resolver.lookup(attempt.ip_address)
        if location is not None:
            details.append(f"Login from: {location.label()}")
        for signal in signals:
            if signal.score > 0:
                details.extend(signal.details)
        return tuple(details)

    def _publish(self, attempt: LoginAttempt, assessment: RiskAssessment) -> None:
        for sink in self.sinks:
            try:
                sink.publish(attempt, assessment)
            except StorageUnavailable as exc:
                logger.warning("Assessment sink %s failed for %s: %s", type(sink).__name__, attempt.user_id, exc)
