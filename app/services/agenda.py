from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional
import logging

import pytz
from dateutil import parser as dtparser

from app.services.gcal import CalendarEvent, EventTime

log = logging.getLogger(__name__)

def _local(t: EventTime, tz) -> Optional[datetime]:
    if t.date_time is None:
        return None
    dt = dtparser.isoparse(t.date_time)
    if dt.tzinfo is None:
        zone = pytz.timezone(t.time_zone) if t.time_zone else tz
        dt = zone.localize(dt)
    return dt.astimezone(tz)

def event_days(event: CalendarEvent, tzname: str) -> List[date]:
    """Calendar days an event occupies in `tzname`.

    All-day events run from start.date up to but excluding end.date. A timed
    event ending exactly at midnight does not occupy the day it ends on.
    """
    tz = pytz.timezone(tzname)
    if event.start.all_day:
        first = date.fromisoformat(event.start.date)
        last = date.fromisoformat(event.end.date) - timedelta(days=1) if event.end.date else first
    else:
        start = _local(event.start, tz)
        if start is None:
            return []
        end = _local(event.end, tz) or start
        first = start.date()
        last = end.date()
        if end > start and end.time() == datetime.min.time():
            last -= timedelta(days=1)
    if last < first:
        last = first
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]

def events_by_date(events: Iterable[CalendarEvent], tzname: str) -> Dict[date, List[CalendarEvent]]:
    out: Dict[date, List[CalendarEvent]] = {}
    for ev in events:
        try:
            days = event_days(ev, tzname)
        except (ValueError, pytz.UnknownTimeZoneError) as e:
            log.warning("Event %s has unreadable start/end: %s", ev.id, e)
            continue
        for d in days:
            out.setdefault(d, []).append(ev)
    return out
