"""Calendar arithmetic for weekly and monthly spend buckets.

Weeks start on Monday. A period is identified by its first day.
"""

from __future__ import annotations

from datetime import date, timedelta

from buildledger.common.enums import TrendPeriod


def period_start(day: date, period: TrendPeriod) -> date:
    if period == TrendPeriod.MONTH:
        return day.replace(day=1)
    return day - timedelta(days=day.weekday())


def next_period(start: date, period: TrendPeriod) -> date:
    if period == TrendPeriod.MONTH:
        if start.month == 12:
            return date(start.year + 1, 1, 1)
        return date(start.year, start.month + 1, 1)
    return start + timedelta(days=7)


def previous_period(start: date, period: TrendPeriod) -> date:
    if period == TrendPeriod.MONTH:
        if start.month == 1:
            return date(start.year - 1, 12, 1)
        return date(start.year, start.month - 1, 1)
    return start - timedelta(days=7)


def period_end(start: date, period: TrendPeriod) -> date:
    return next_period(start, period) - timedelta(days=1)


def window(reference: date, count: int, period: TrendPeriod) -> list[date]:
    """``count`` consecutive period starts, the last one containing ``reference``."""
    starts = [period_start(reference, period)]
    while len(starts) < count:
        starts.append(previous_period(starts[-1], period))
    starts.reverse()
    return starts


def completed_window(reference: date, count: int, period: TrendPeriod) -> list[date]:
    """Like ``window`` but ending with the last period that finished before ``reference``."""
    return window(previous_period(period_start(reference, period), period), count, period)


def span(first: date, last: date, period: TrendPeriod) -> list[date]:
    """Period starts from the one containing ``first`` through the one containing ``last``."""
    start = period_start(first, period)
    end = period_start(last, period)
    starts = []
    while start <= end:
        starts.append(start)
        start = next_period(start, period)
    return starts


def count_periods(first: date, last: date, period: TrendPeriod) -> int:
    if last < first:
        return 0
    if period == TrendPeriod.MONTH:
        a, b = period_start(first, period), period_start(last, period)
        return (b.year - a.year) * 12 + (b.month - a.month) + 1
    return (period_start(last, period) - period_start(first, period)).days // 7 + 1
