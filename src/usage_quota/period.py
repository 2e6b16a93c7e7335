"""Period key derivation.

Counters reset by keying on a new period rather than by zeroing: two instants
share a key exactly when they fall in the same UTC reset window.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .exceptions import InvalidPolicyError
from .models import ResetPolicy

PERMANENT_KEY = "permanent"

_HOURLY_FORMAT = "%Y-%m-%dT%H"
_DAILY_FORMAT = "%Y-%m-%d"
_MONTHLY_FORMAT = "%Y-%m"


def parse_policy(value: str | ResetPolicy) -> ResetPolicy:
    """Coerce a configured value to a ResetPolicy or fail with InvalidPolicyError."""
    try:
        return ResetPolicy(value)
    except ValueError as e:
        raise InvalidPolicyError(f"Unrecognized reset policy: {value!r}") from e


def _utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(timezone.utc)


def _next_month(start: datetime) -> datetime:
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def period_key(policy: ResetPolicy | str, now: datetime) -> str:
    """Return the bucket key of the window containing ``now``."""
    policy = parse_policy(policy)
    now = _utc(now)
    if policy is ResetPolicy.HOURLY:
        return now.strftime(_HOURLY_FORMAT)
    if policy is ResetPolicy.DAILY:
        return now.strftime(_DAILY_FORMAT)
    if policy is ResetPolicy.MONTHLY:
        return now.strftime(_MONTHLY_FORMAT)
    return PERMANENT_KEY


def period_start(policy: ResetPolicy | str, key: str) -> datetime | None:
    """Inverse of period_key: the first instant of the window named by ``key``.

    Returns None for ``never`` and for keys that do not match the policy format.
    """
    policy = parse_policy(policy)
    fmt = {
        ResetPolicy.HOURLY: _HOURLY_FORMAT,
        ResetPolicy.DAILY: _DAILY_FORMAT,
        ResetPolicy.MONTHLY: _MONTHLY_FORMAT,
    }.get(policy)
    if fmt is None:
        return None
    try:
        return datetime.strptime(key, fmt).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _window_end(policy: ResetPolicy, start: datetime) -> datetime:
    if policy is ResetPolicy.HOURLY:
        return start + timedelta(hours=1)
    if policy is ResetPolicy.DAILY:
        return start + timedelta(days=1)
    return _next_month(start)


def _window_start(policy: ResetPolicy, now: datetime) -> datetime:
    start = _utc(now).replace(minute=0, second=0, microsecond=0)
    if policy is ResetPolicy.HOURLY:
        return start
    if policy is ResetPolicy.DAILY:
        return start.replace(hour=0)
    return start.replace(day=1, hour=0)


def period_end(policy: ResetPolicy | str, now: datetime) -> datetime | None:
    """Return the instant the window containing ``now`` ends, or None for ``never``."""
    policy = parse_policy(policy)
    if policy is ResetPolicy.NEVER:
        return None
    return _window_end(policy, _window_start(policy, now))


def retention_end(policy: ResetPolicy | str, key: str) -> datetime | None:
    """Instant after which the counter for ``key`` may be discarded.

    Counters are retained for one full extra period after their window ends.
    """
    policy = parse_policy(policy)
    start = period_start(policy, key)
    if start is None:
        return None
    return _window_end(policy, _window_end(policy, start))


def is_sweepable(policy: ResetPolicy | str, key: str, now: datetime) -> bool:
    """True once the window named by ``key`` ended at least one full period ago."""
    retained_until = retention_end(policy, key)
    if retained_until is None:
        return False
    return _utc(now) >= retained_until
