from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, List, Set

from .models import LoginAttempt, as_utc

TYPICAL_HOUR_SHARE = 0.1


def hours_between(first: datetime, second: datetime) -> float:
    return abs((second - first).total_seconds()) / 3600


def hour_of_day(moment: datetime) -> int:
    return as_utc(moment).hour


def failed_attempts_in_window(
    attempts: Iterable[LoginAttempt], now: datetime, window: timedelta
) -> List[LoginAttempt]:
    return [
        attempt
        for attempt in attempts
        if not attempt.success and abs(attempt.timestamp - now) <= window
    ]


def typical_login_hours(logins: Iterable[LoginAttempt]) -> Set[int]:
    """Hours holding at least 10% of the given logins.

    When activity is spread too thin for any hour to reach the share, every
    hour that saw a login counts as typical.
    """
    counts = Counter(hour_of_day(login.timestamp) for login in logins)
    total = sum(counts.values())
    if total == 0:
        return set()
    threshold = total * TYPICAL_HOUR_SHARE
    typical = {hour for hour, count in counts.items() if count >= threshold}
    return typical or set(counts)


def is_unusual_login_time(moment: datetime, typical_hours: Set[int]) -> bool:
    if not typical_hours:
        return False
    return hour_of_day(moment) not in typical_hours
