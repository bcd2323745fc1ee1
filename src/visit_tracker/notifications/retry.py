"""When to try an undelivered notification again."""

import random
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

# Transports may ask for a later retry, but never more than a day out
MAX_RETRY_AFTER = timedelta(hours=24)


def compute_backoff(
    attempt: int, base: float, max_delay: float, jitter_ratio: float = 0.0
) -> float:
    """
    Seconds to wait before the next delivery attempt.

    Args:
        attempt: Failed attempts so far, minus one (0 for the first retry)
        base: Delay after the first failure
        max_delay: Cap on the delay
        jitter_ratio: Fraction of the delay to randomize by, either way

    Returns:
        Delay in seconds, never below 0.1
    """
    delay = min(max_delay, base * (2 ** attempt))
    if jitter_ratio:
        delay += random.uniform(-jitter_ratio, jitter_ratio) * delay
    return max(0.1, delay)


def parse_retry_after(value: Optional[str], now: datetime) -> Optional[datetime]:
    """Turn a ``Retry-After`` header (seconds or HTTP-date) into an instant.

    Unparseable values, dates in the past and dates too far ahead give None.
    """
    if not value:
        return None
    value = value.strip()

    if value.isdigit():
        return now + timedelta(seconds=int(value))

    try:
        when = parsedate_to_datetime(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    when = when.astimezone(timezone.utc)

    if now <= when <= now + MAX_RETRY_AFTER:
        return when
    return None


def next_attempt_at(
    attempts: int,
    now: datetime,
    base: float,
    max_delay: float,
    requested: Optional[datetime] = None,
) -> datetime:
    """Schedule the next try, honoring a transport-requested time when given."""
    if requested is not None:
        return requested
    delay = compute_backoff(attempts - 1, base, max_delay, jitter_ratio=0.1)
    return now + timedelta(seconds=delay)
