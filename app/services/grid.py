"""Month and week grids of day cells, Sunday first.

Everything here is pure: "today" is passed in by the caller so a grid is
fully determined by its arguments.
"""
from __future__ import annotations
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import List, Tuple

from dateutil.relativedelta import relativedelta

WEEKDAY_LABELS = ["日", "月", "火", "水", "木", "金", "土"]

class ViewMode(str, Enum):
    MONTH = "month"
    WEEK = "week"

@dataclass(frozen=True)
class DayCell:
    date: date
    day_number: int
    in_displayed_period: bool
    is_today: bool

WeekRow = List[DayCell]
Grid = List[WeekRow]

_SUNDAY_FIRST = calendar.Calendar(firstweekday=calendar.SUNDAY)

def _cell(d: date, in_period: bool, today: date) -> DayCell:
    return DayCell(date=d, day_number=d.day, in_displayed_period=in_period, is_today=d == today)

def sunday_index(d: date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday."""
    return (d.weekday() + 1) % 7

def month_grid(year: int, month: int, today: date) -> Grid:
    """Minimal run of complete weeks covering the month.

    Lead days come from the previous month and trail days from the next one,
    both marked outside the displayed period. A month starting on Sunday whose
    length is a multiple of 7 gets exactly four rows.
    """
    weeks = _SUNDAY_FIRST.monthdatescalendar(year, month)
    return [[_cell(d, d.month == month, today) for d in week] for week in weeks]

def week_grid(reference: date, today: date) -> Grid:
    # Days outside the reference date's month are flagged out of period even
    # though the whole week is on screen; month view uses the same flag.
    start = reference - timedelta(days=sunday_index(reference))
    row = []
    for i in range(7):
        d = start + timedelta(days=i)
        row.append(_cell(d, d.month == reference.month, today))
    return [row]

def build_grid(reference: date, mode: ViewMode, today: date) -> Grid:
    if mode is ViewMode.WEEK:
        return week_grid(reference, today)
    return month_grid(reference.year, reference.month, today)

def shift_period(reference: date, mode: ViewMode, steps: int = 1) -> date:
    """Move `steps` periods forward (negative for backward).

    Month steps clamp the day to the target month's length, so Jan 31 moves
    to the last day of February.
    """
    if mode is ViewMode.WEEK:
        return reference + timedelta(days=7 * steps)
    return reference + relativedelta(months=steps)

def grid_range(grid: Grid) -> Tuple[date, date]:
    """Inclusive (first, last) dates covered by a grid."""
    return grid[0][0].date, grid[-1][-1].date

def period_title(reference: date) -> str:
    return f"{reference.year}年 {reference.month}月"
