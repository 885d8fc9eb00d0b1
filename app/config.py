from __future__ import annotations
import os
from dataclasses import dataclass

@dataclass(frozen=True)
class Config:
    google_client_id: str
    google_client_secret: str
    session_secret: str
    gcal_id: str
    tz: str
    ui_origin: str
    cookie_domain: str | None
    session_max_age: int
    log_level: str

def load_config() -> Config:
    return Config(
        google_client_id=os.getenv("GOOGLE_CLIENT_ID",""),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET",""),
        session_secret=os.getenv("SESSION_SECRET",""),
        gcal_id=os.getenv("GOOGLE_CALENDAR_ID","primary"),
        tz=os.getenv("TIMEZONE","Asia/Tokyo"),
        ui_origin=os.getenv("UI_ORIGIN","/"),
        cookie_domain=os.getenv("COOKIE_DOMAIN") or None,
        session_max_age=int(os.getenv("SESSION_MAX_AGE","3600")),
        log_level=os.getenv("LOG_LEVEL","INFO").upper(),
    )
