from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import pytz
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Config, load_config
from app.errors import ConfigurationError, NotAuthenticatedError, UpstreamError
from app.logging_setup import configure_logging
from app.services.agenda import events_by_date
from app.services.auth import (
    SESSION_COOKIE,
    STATE_COOKIE,
    access_token_from_cookie,
    clear_session_cookie,
    clear_state_cookie,
    create_session_cookie,
    exchange_code_for_token,
    generate_auth_url,
    redirect_uri_for,
    set_state_cookie,
    state_matches,
)
from app.services.gcal import CalendarEvent, build_service, day_bounds, fetch_calendar_events, to_rfc3339
from app.services.grid import (
    WEEKDAY_LABELS,
    DayCell,
    ViewMode,
    build_grid,
    grid_range,
    period_title,
    shift_period,
)

log = logging.getLogger("calendar_viewer")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load .env before the first load_config() so the log level is honored
    load_dotenv()
    cfg = load_config()
    configure_logging(cfg.log_level)
    if not cfg.session_secret:
        log.warning("SESSION_SECRET is not set; login and calendar routes will fail")
    yield

app = FastAPI(
    title="Calendar Viewer API",
    lifespan=lifespan,
)

@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

@app.exception_handler(NotAuthenticatedError)
async def not_authenticated(request: Request, exc: NotAuthenticatedError):
    return JSONResponse({"error": "Not authenticated"}, status_code=401)

@app.exception_handler(UpstreamError)
async def upstream_failed(request: Request, exc: UpstreamError):
    log.error("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=502)

@app.exception_handler(ConfigurationError)
async def misconfigured(request: Request, exc: ConfigurationError):
    log.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


def today_in(tzname: str) -> date:
    return datetime.now(pytz.timezone(tzname)).date()

def _ui_redirect(cfg: Config, params: Dict[str, str]) -> RedirectResponse:
    return RedirectResponse(cfg.ui_origin.rstrip("/") + "/?" + urlencode(params), status_code=302)

def _session_token(request: Request, cfg: Config) -> Optional[str]:
    value = request.cookies.get(SESSION_COOKIE)
    if not value:
        return None
    return access_token_from_cookie(cfg, value)

def _require_token(request: Request, cfg: Config) -> str:
    token = _session_token(request, cfg)
    if not token:
        raise NotAuthenticatedError()
    return token

def _time_param(name: str, value: Optional[str], tz: str) -> Optional[str]:
    if not value:
        return None
    try:
        return to_rfc3339(value, tz)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value!r}")

def _cell_json(cell: DayCell, events: List[CalendarEvent]) -> Dict[str, Any]:
    return {
        "date": cell.date.isoformat(),
        "dayNumber": cell.day_number,
        "isInDisplayedPeriod": cell.in_displayed_period,
        "isToday": cell.is_today,
        "events": [e.to_json() for e in events],
    }


@app.get("/api/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}

@app.get("/api/auth/google")
def auth_google(request: Request, cfg: Config = Depends(load_config)):
    url, state = generate_auth_url(cfg, redirect_uri_for(str(request.base_url)))
    resp = JSONResponse({"authUrl": url})
    set_state_cookie(resp, state, secure=request.url.scheme == "https")
    return resp

def _auth_error(cfg: Config, message: str) -> RedirectResponse:
    resp = _ui_redirect(cfg, {"auth": "error", "message": message})
    clear_state_cookie(resp)
    return resp

@app.get("/api/auth/callback")
def auth_callback(request: Request,
                  code: Optional[str] = None,
                  state: Optional[str] = None,
                  error: Optional[str] = None,
                  cfg: Config = Depends(load_config)):
    if error or not code:
        message = error or "Missing authorization code"
        log.warning("OAuth callback without code: %s", message)
        return _auth_error(cfg, message)
    if not state_matches(request.cookies.get(STATE_COOKIE), state):
        log.warning("OAuth callback with mismatched state")
        return _auth_error(cfg, "Invalid OAuth state")
    try:
        token = exchange_code_for_token(cfg, code, redirect_uri_for(str(request.base_url)))
    except UpstreamError as e:
        log.error("OAuth callback failed: %s", e)
        return _auth_error(cfg, str(e))

    resp = _ui_redirect(cfg, {"auth": "success"})
    clear_state_cookie(resp)
    create_session_cookie(resp, cfg, token["access_token"], secure=request.url.scheme == "https")
    log.info("Session established")
    return resp

@app.post("/api/auth/logout")
async def auth_logout(cfg: Config = Depends(load_config)):
    resp = JSONResponse({"status": "ok"})
    clear_session_cookie(resp, cfg)
    return resp

@app.get("/api/calendar/events")
def calendar_events(request: Request,
                    time_min: Optional[str] = Query(None, alias="timeMin"),
                    time_max: Optional[str] = Query(None, alias="timeMax"),
                    cfg: Config = Depends(load_config)):
    token = _require_token(request, cfg)
    service = build_service(token)
    events = fetch_calendar_events(
        service, cfg.gcal_id,
        _time_param("timeMin", time_min, cfg.tz),
        _time_param("timeMax", time_max, cfg.tz),
    )
    return {"events": [e.to_json() for e in events]}

@app.get("/api/calendar/grid")
def calendar_grid(request: Request,
                  ref: Optional[str] = Query(None, alias="date"),
                  view: ViewMode = ViewMode.MONTH,
                  step: int = 0,
                  cfg: Config = Depends(load_config)):
    today = today_in(cfg.tz)
    if ref:
        try:
            reference = date.fromisoformat(ref)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid date: {ref!r}")
    else:
        reference = today
    try:
        reference = shift_period(reference, view, step)
        grid = build_grid(reference, view, today)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Requested period is outside the supported date range")

    by_date: Dict[date, List[CalendarEvent]] = {}
    token = _session_token(request, cfg)
    if token:
        time_min, time_max = day_bounds(*grid_range(grid), cfg.tz)
        events = fetch_calendar_events(build_service(token), cfg.gcal_id, time_min, time_max)
        by_date = events_by_date(events, cfg.tz)

    return {
        "title": period_title(reference),
        "view": view.value,
        "date": reference.isoformat(),
        "weekdays": WEEKDAY_LABELS,
        "weeks": [[_cell_json(c, by_date.get(c.date, [])) for c in row] for row in grid],
    }
