"""Источник текущего времени для движка.

Продакшн использует SystemClock; тесты подставляют FixedClock и двигают
время вручную, без sleep().
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Текущее время, всегда timezone-aware (UTC)."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Управляемые часы для детерминированных тестов.

    Пример:
        clock = FixedClock(datetime(2025, 1, 6, tzinfo=timezone.utc))
        clock.advance(days=7)
    """

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, **delta: float) -> datetime:
        step = timedelta(**delta)
        if step < timedelta(0):
            raise ValueError(f"Cannot advance time by negative amount: {step}")
        self._current += step
        return self._current

    def set(self, value: datetime) -> None:
        # Может отмотать время назад – так тесты моделируют clock skew
        if value.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._current = value


__all__ = ["Clock", "SystemClock", "FixedClock"]
