"""Расписание прохода: cron-выражение или фиксированный интервал.

Форматы:
  '0 5 * * *'   – cron (5 полей, croniter), вычисляется в таймзоне расписания
  '@daily'      – алиасы cron (@hourly, @daily, @weekly, @monthly, @yearly)
  '@every 15m'  – интервал (s/m/h/d)
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple, Union

from croniter import croniter  # type: ignore[import-untyped]

from .errors import InvalidScheduleError

_ALIASES = {
    '@hourly': '0 * * * *',
    '@daily': '0 0 * * *',
    '@midnight': '0 0 * * *',
    '@weekly': '0 0 * * 0',
    '@monthly': '0 0 1 * *',
    '@yearly': '0 0 1 1 *',
    '@annually': '0 0 1 1 *',
}
_EVERY_RE = re.compile(r'^@every\s+(\d+)\s*([smhd])$', re.IGNORECASE)
_UNITS = {'s': 'seconds', 'm': 'minutes', 'h': 'hours', 'd': 'days'}


class CronSchedule:
    kind = "cron"

    def __init__(self, expression: str, tz: tzinfo = timezone.utc):
        self.expression = expression
        self.cron = _ALIASES.get(expression.strip().lower(), expression.strip())
        self.tz = tz
        if len(self.cron.split()) != 5 or not croniter.is_valid(self.cron):
            raise InvalidScheduleError(expression, "not a valid 5-field cron expression")

    @property
    def fields(self) -> Tuple[str, str, str, str, str]:
        minute, hour, dom, month, dow = self.cron.split()
        return minute, hour, dom, month, dow

    def next_after(self, moment: datetime) -> datetime:
        local = moment.astimezone(self.tz)
        nxt = croniter(self.cron, local).get_next(datetime)
        return nxt.astimezone(timezone.utc)

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r})"


class IntervalSchedule:
    kind = "interval"

    def __init__(self, expression: str, interval: timedelta):
        if interval <= timedelta(0):
            raise InvalidScheduleError(expression, "interval must be positive")
        self.expression = expression
        self.interval = interval

    def next_after(self, moment: datetime) -> datetime:
        return moment.astimezone(timezone.utc) + self.interval

    def __repr__(self) -> str:
        return f"IntervalSchedule({self.expression!r})"


Schedule = Union[CronSchedule, IntervalSchedule]


def parse_schedule(expression: Optional[str], tz: tzinfo = timezone.utc) -> Schedule:
    if not expression or not expression.strip():
        raise InvalidScheduleError(str(expression), "empty expression")
    m = _EVERY_RE.match(expression.strip())
    if m:
        amount, unit = int(m.group(1)), m.group(2).lower()
        return IntervalSchedule(expression, timedelta(**{_UNITS[unit]: amount}))
    if expression.strip().startswith('@') and expression.strip().lower() not in _ALIASES:
        raise InvalidScheduleError(expression, "unknown alias")
    return CronSchedule(expression, tz)


__all__ = ["CronSchedule", "IntervalSchedule", "Schedule", "parse_schedule"]
