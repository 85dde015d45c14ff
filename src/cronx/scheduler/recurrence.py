"""Recurrence calculation: next fire instant for a 5-field cron expression.

Wall-clock matching is done by croniter on naive local times; each candidate
is then mapped back onto the real timeline of the job's IANA zone so that
local times skipped by a spring-forward transition are never returned and
repeated fall-back hours resolve to whichever occurrence comes next.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.base import BaseTrigger
from croniter import CroniterBadDateError, croniter

from cronx.scheduler.exceptions import InvalidExpression, InvalidTimezone

logger = logging.getLogger("cronx.scheduler.recurrence")

CRON_FIELD_COUNT = 5

# Widest DST shift in the tz database is 2h; candidates are scanned this far
# either side of the origin so no occurrence inside a shifted hour is missed.
_DST_WINDOW = timedelta(hours=2)
_MAX_CANDIDATES = 10_000


def validate_expression(cron_expression: str) -> None:
    """Raise ``InvalidExpression`` unless *cron_expression* is a valid 5-field cron."""
    if not isinstance(cron_expression, str) or not cron_expression.strip():
        raise InvalidExpression(str(cron_expression or ""), "empty expression")

    fields = cron_expression.split()
    if len(fields) != CRON_FIELD_COUNT:
        raise InvalidExpression(
            cron_expression,
            f"expected {CRON_FIELD_COUNT} fields, got {len(fields)}",
        )
    if not croniter.is_valid(cron_expression):
        raise InvalidExpression(cron_expression, "field value out of range or malformed")


def resolve_timezone(name: str | None) -> tzinfo:
    """Look up an IANA zone; ``None`` or empty means UTC."""
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezone(name) from exc


def _occurrences(local: datetime, tz: tzinfo) -> list[datetime]:
    """Real instants (UTC) at which naive wall time *local* happens in *tz*.

    Empty inside a spring-forward gap, two entries inside a fall-back overlap.
    """
    found: list[datetime] = []
    for fold in (0, 1):
        aware = local.replace(tzinfo=tz, fold=fold)
        instant = aware.astimezone(UTC)
        if instant.astimezone(tz).replace(tzinfo=None) != local:
            continue
        if instant not in found:
            found.append(instant)
    return sorted(found)


def next_fire_time(
    cron_expression: str,
    timezone: str | None = "UTC",
    from_instant: datetime | None = None,
) -> datetime:
    """Return the first fire instant strictly after *from_instant*.

    Naive *from_instant* values are taken as UTC; the default is now. The
    result is timezone-aware, expressed in the schedule's zone.
    """
    validate_expression(cron_expression)
    tz = resolve_timezone(timezone)

    if from_instant is None:
        from_instant = datetime.now(UTC)
    elif from_instant.tzinfo is None:
        from_instant = from_instant.replace(tzinfo=UTC)
    origin = from_instant.astimezone(UTC)

    local_start = origin.astimezone(tz).replace(tzinfo=None) - _DST_WINDOW
    itr = croniter(cron_expression, local_start)

    best: datetime | None = None
    try:
        for _ in range(_MAX_CANDIDATES):
            candidate = itr.get_next(datetime)
            if best is not None and candidate > best.astimezone(tz).replace(tzinfo=None) + _DST_WINDOW:
                break
            for instant in _occurrences(candidate, tz):
                if instant > origin and (best is None or instant < best):
                    best = instant
    except CroniterBadDateError as exc:
        raise InvalidExpression(cron_expression, "expression never fires") from exc

    if best is None:
        raise InvalidExpression(cron_expression, "no fire time found")
    return best.astimezone(tz)


class CronExpressionTrigger(BaseTrigger):
    """APScheduler trigger backed by :func:`next_fire_time`.

    Keeps timer fires and the persisted ``next_execution`` on the same
    calculation, including DST handling.
    """

    def __init__(self, cron_expression: str, timezone: str | None = "UTC") -> None:
        validate_expression(cron_expression)
        self.cron_expression = cron_expression
        self.timezone = resolve_timezone(timezone)
        self._timezone_name = timezone or "UTC"

    def get_next_fire_time(self, previous_fire_time, now):
        start = previous_fire_time or now
        try:
            return next_fire_time(self.cron_expression, self._timezone_name, start)
        except InvalidExpression:
            logger.warning("Schedule %r has no further fire times", self.cron_expression)
            return None

    def __str__(self) -> str:
        return f"cron[{self.cron_expression}]"

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} (expression={self.cron_expression!r}, "
            f"timezone='{self._timezone_name}')>"
        )
