"""
Renewal Scheduler - JWT SVID Refresh Interval

Decides how long to wait before the next fetch, from the remaining lifetime of
the credential just fetched:

1. Use the override if set and positive, else half the remaining lifetime
2. Never exceed 80% of the remaining lifetime
3. Never go below one second
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .identity.credential import Credential

LIFETIME_CAP_RATIO = 0.8
DEFAULT_RATIO = 0.5
MIN_REFRESH_INTERVAL = timedelta(seconds=1)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def refresh_interval(remaining: timedelta, override: Optional[timedelta] = None) -> timedelta:
    """Interval for a credential with ``remaining`` lifetime left."""
    max_allowed = remaining * LIFETIME_CAP_RATIO

    if override is not None and override > timedelta(0):
        interval = override
    else:
        interval = remaining * DEFAULT_RATIO

    # Apply safety limits
    interval = min(interval, max_allowed)
    return max(interval, MIN_REFRESH_INTERVAL)


def next_interval(
    credential: Credential,
    override: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> timedelta:
    """Pure: the same credential, override and ``now`` always give the same interval."""
    if now is None:
        now = utc_now()
    return refresh_interval(credential.remaining(now), override)


class RenewalScheduler:
    """Binds the operator override and a time source to ``next_interval``."""

    def __init__(self, override: Optional[timedelta] = None, clock: Clock = utc_now):
        self.override = override
        self.clock = clock

    def next_interval(self, credential: Credential) -> timedelta:
        return next_interval(credential, self.override, now=self.clock())
