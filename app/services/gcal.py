from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
import logging

import httplib2
import pytz
from dateutil import parser as dtparser
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.errors import NotAuthenticatedError, UpstreamError

log = logging.getLogger(__name__)

MAX_RESULTS = 250

@dataclass(frozen=True)
class EventTime:
    date: Optional[str] = None        # all-day: "YYYY-MM-DD"
    date_time: Optional[str] = None   # RFC3339 timestamp
    time_zone: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any] | None) -> "EventTime":
        raw = raw or {}
        return cls(date=raw.get("date"), date_time=raw.get("dateTime"), time_zone=raw.get("timeZone"))

    @property
    def all_day(self) -> bool:
        return self.date_time is None and self.date is not None

    def to_json(self) -> Dict[str, str]:
        out = {}
        if self.date is not None:
            out["date"] = self.date
        if self.date_time is not None:
            out["dateTime"] = self.date_time
        if self.time_zone is not None:
            out["timeZone"] = self.time_zone
        return out

@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: EventTime
    end: EventTime
    description: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "CalendarEvent":
        return cls(
            id=item["id"],
            title=item.get("summary", ""),
            start=EventTime.from_api(item.get("start")),
            end=EventTime.from_api(item.get("end")),
            description=item.get("description"),
            location=item.get("location"),
            status=item.get("status"),
        )

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "start": self.start.to_json(),
            "end": self.end.to_json(),
        }
        for key in ("description", "location", "status"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out

def build_service(access_token: str):
    creds = Credentials(token=access_token)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)

def to_rfc3339(value: str, tz: str = "UTC") -> str:
    """Normalize a `timeMin`/`timeMax` query value.

    Accepts a bare date (midnight in `tz`) or any ISO 8601 timestamp; naive
    timestamps are taken to be in `tz`. Raises ValueError on garbage.
    """
    local_tz = pytz.timezone(tz)
    parsed = dtparser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = local_tz.localize(parsed)
    return parsed.isoformat()

def day_bounds(first: date, last: date, tz: str) -> tuple[str, str]:
    """RFC3339 [start of first, start of day after last) in `tz`."""
    local_tz = pytz.timezone(tz)
    start = local_tz.localize(datetime.combine(first, time.min))
    end = local_tz.localize(datetime.combine(last + timedelta(days=1), time.min))
    return start.isoformat(), end.isoformat()

def fetch_calendar_events(service, calendar_id: str,
                          time_min: Optional[str] = None,
                          time_max: Optional[str] = None) -> List[CalendarEvent]:
    params: Dict[str, Any] = {
        "calendarId": calendar_id,
        "orderBy": "startTime",
        "singleEvents": True,
        "maxResults": MAX_RESULTS,
    }
    if time_min:
        params["timeMin"] = time_min
    if time_max:
        params["timeMax"] = time_max
    try:
        resp = service.events().list(**params).execute()
    except HttpError as e:
        if e.resp.status == 401:
            raise NotAuthenticatedError() from e
        raise UpstreamError(f"Calendar API request failed: {e}") from e
    except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
        raise UpstreamError(f"Calendar API request failed: {e}") from e

    items = resp.get("items") or []
    events = []
    for item in items:
        if not item.get("id"):
            log.warning("Skipping calendar item without id")
            continue
        events.append(CalendarEvent.from_api(item))
    return events
