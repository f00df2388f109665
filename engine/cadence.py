# engine/cadence.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Decides whether a commitment's reminder is due right now. Pure function,
# no I/O: the same commitment and the same instant always give the same
# answer, which is what lets a repeated cycle avoid double-sending.
#
# Rules, checked in this order:
#   1. Already sent today (in the configured timezone)   → not due
#   2. Earlier than today's trigger time                  → not due
#   3. Daily                                              → due
#   4. Weekly    → due only on WEEKLY_TRIGGER_WEEKDAY (Monday)
#   5. Quarterly → due only on the first day of Jan/Apr/Jul/Oct
# ============================================================================

import re
from datetime import datetime, time, tzinfo
from zoneinfo import ZoneInfo

from config.settings import TIMEZONE
from engine.errors import ConfigurationError
from engine.models import Cadence, Commitment
from utils.logger import logger


# Weekly reminders go out on the first day of the week. Fixed for every
# commitment; there is no per-commitment weekday yet.
WEEKLY_TRIGGER_WEEKDAY = 0  # Monday, datetime.weekday()

QUARTER_START_MONTHS = (1, 4, 7, 10)

_CLOCK_PATTERN = re.compile(r'^\s*(\d{1,2}):(\d{2})\s*$')


def parse_clock(value: str) -> time:
    """
    Parse a local time-of-day like "09:00" or "9:00".

    Raises:
        ConfigurationError: for anything that isn't a valid HH:MM.
    """
    match = _CLOCK_PATTERN.match(value or '')
    if not match:
        raise ConfigurationError(f"Malformed time of day: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ConfigurationError(f"Time of day out of range: {value!r}")
    return time(hours, minutes)


def is_due(commitment: Commitment, now: datetime, tz: tzinfo = None) -> bool:
    """
    Return True if a reminder for this commitment should be sent at `now`.

    `now` is converted into `tz` (default: the configured TIMEZONE) before
    any comparison. A naive `now` or `last_sent` is taken to already be in
    that zone. A malformed trigger time fails closed: logged, not due.
    """
    tz = tz or ZoneInfo(TIMEZONE)
    now = _in_zone(now, tz)

    # Rule 1: one reminder per calendar day, whatever the cadence.
    if commitment.last_sent is not None:
        if _in_zone(commitment.last_sent, tz).date() == now.date():
            return False

    # Rule 2: never before the configured clock time.
    try:
        trigger = parse_clock(commitment.trigger_time)
    except ConfigurationError as e:
        logger.error("Skipping commitment with bad trigger time",
                     commitment_id=commitment.id, error=str(e))
        return False

    trigger_at = now.replace(hour=trigger.hour, minute=trigger.minute,
                             second=0, microsecond=0)
    if now < trigger_at:
        return False

    if commitment.cadence == Cadence.DAILY:
        return True

    if commitment.cadence == Cadence.WEEKLY:
        return now.weekday() == WEEKLY_TRIGGER_WEEKDAY

    if commitment.cadence == Cadence.QUARTERLY:
        return is_quarter_start(now)

    return False


def is_quarter_start(moment: datetime) -> bool:
    """True on the first calendar day of a quarter. Time of day is ignored."""
    return moment.day == 1 and moment.month in QUARTER_START_MONTHS


def _in_zone(moment: datetime, tz: tzinfo) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)
