"""Period key derivation tests."""

from datetime import datetime, timedelta, timezone

import pytest
from usage_quota.exceptions import InvalidPolicyError, QuotaErrorCodes
from usage_quota.models import ResetPolicy
from usage_quota.period import (
    PERMANENT_KEY,
    is_sweepable,
    period_end,
    period_key,
    period_start,
    retention_end,
)

UTC = timezone.utc


def test_daily_key_and_end() -> None:
    now = datetime(2026, 10, 18, 23, 59, 59, tzinfo=UTC)
    assert period_key(ResetPolicy.DAILY, now) == "2026-10-18"
    assert period_end(ResetPolicy.DAILY, now) == datetime(2026, 10, 19, tzinfo=UTC)


def test_daily_key_uses_utc() -> None:
    """UTC 以外のタイムゾーンでも UTC の日付でキーを作ること。"""
    tokyo = timezone(timedelta(hours=9))
    now = datetime(2026, 10, 19, 8, 0, tzinfo=tokyo)
    assert period_key("daily", now) == "2026-10-18"


def test_monthly_key_and_end() -> None:
    now = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
    assert period_key(ResetPolicy.MONTHLY, now) == "2026-10"
    assert period_end(ResetPolicy.MONTHLY, now) == datetime(2026, 11, 1, tzinfo=UTC)


def test_monthly_end_rolls_over_year() -> None:
    now = datetime(2026, 12, 31, 23, 0, tzinfo=UTC)
    assert period_end(ResetPolicy.MONTHLY, now) == datetime(2027, 1, 1, tzinfo=UTC)


def test_hourly_key_and_end() -> None:
    now = datetime(2026, 10, 18, 12, 30, tzinfo=UTC)
    assert period_key(ResetPolicy.HOURLY, now) == "2026-10-18T12"
    assert period_end(ResetPolicy.HOURLY, now) == datetime(2026, 10, 18, 13, tzinfo=UTC)


def test_never_is_permanent() -> None:
    now = datetime(2026, 10, 18, tzinfo=UTC)
    assert period_key(ResetPolicy.NEVER, now) == PERMANENT_KEY
    assert period_end(ResetPolicy.NEVER, now) is None


def test_same_window_same_key() -> None:
    a = datetime(2026, 10, 18, 0, 0, tzinfo=UTC)
    b = datetime(2026, 10, 18, 23, 59, 59, 999999, tzinfo=UTC)
    c = datetime(2026, 10, 19, 0, 0, tzinfo=UTC)
    assert period_key("daily", a) == period_key("daily", b)
    assert period_key("daily", b) != period_key("daily", c)


def test_unknown_policy_raises() -> None:
    with pytest.raises(InvalidPolicyError) as exc_info:
        period_key("weekly", datetime(2026, 10, 18, tzinfo=UTC))
    assert exc_info.value.code == QuotaErrorCodes.INVALID_POLICY


def test_naive_datetime_rejected() -> None:
    with pytest.raises(ValueError):
        period_key("daily", datetime(2026, 10, 18))


def test_period_start_inverts_key() -> None:
    assert period_start("daily", "2026-10-18") == datetime(2026, 10, 18, tzinfo=UTC)
    assert period_start("monthly", "2026-10") == datetime(2026, 10, 1, tzinfo=UTC)
    assert period_start("hourly", "2026-10-18T07") == datetime(2026, 10, 18, 7, tzinfo=UTC)
    assert period_start("never", PERMANENT_KEY) is None
    assert period_start("daily", "garbage") is None


def test_retention_is_one_extra_period() -> None:
    assert retention_end("daily", "2026-10-18") == datetime(2026, 10, 20, tzinfo=UTC)
    assert retention_end("monthly", "2026-11") == datetime(2027, 1, 1, tzinfo=UTC)
    assert retention_end("never", PERMANENT_KEY) is None


def test_is_sweepable() -> None:
    key = "2026-10-18"
    assert not is_sweepable("daily", key, datetime(2026, 10, 18, 12, tzinfo=UTC))
    assert not is_sweepable("daily", key, datetime(2026, 10, 19, 23, tzinfo=UTC))
    assert is_sweepable("daily", key, datetime(2026, 10, 20, tzinfo=UTC))
    assert not is_sweepable("never", PERMANENT_KEY, datetime(2099, 1, 1, tzinfo=UTC))


def test_period_end_mid_window() -> None:
    """窓の途中の時刻でも次の境界を返すこと。"""
    now = datetime(2026, 10, 18, 12, 30, 15, 500, tzinfo=UTC)
    assert period_end("daily", now) == datetime(2026, 10, 19, tzinfo=UTC)
    assert period_end("hourly", now) == datetime(2026, 10, 18, 13, tzinfo=UTC)
    assert period_end("monthly", now) == datetime(2026, 11, 1, tzinfo=UTC)
    assert period_end("never", now) is None


def test_period_end_rejects_naive_datetime() -> None:
    with pytest.raises(ValueError):
        period_end(ResetPolicy.DAILY, datetime(2026, 10, 18, 12, 0))
