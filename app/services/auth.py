from __future__ import annotations
import base64
import hmac
import json
import logging
import time
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

import requests
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from fastapi import Response
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from app.config import Config
from app.errors import ConfigurationError, UpstreamError

log = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
CALLBACK_PATH = "/api/auth/callback"
SESSION_COOKIE = "session"
STATE_COOKIE = "oauth_state"
STATE_MAX_AGE = 600

# Fixed so every instance sharing SESSION_SECRET derives the same key.
_KDF_SALT = b"calendar-viewer/session/v1"
_KDF_ITERATIONS = 100000

def redirect_uri_for(base_url: str) -> str:
    """Callback URL on the host the request came in on."""
    return base_url.rstrip("/") + CALLBACK_PATH

def _flow(cfg: Config, redirect_uri: str) -> Flow:
    if not cfg.google_client_id or not cfg.google_client_secret:
        raise ConfigurationError("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET are not set")
    client_config = {
        "web": {
            "client_id": cfg.google_client_id,
            "client_secret": cfg.google_client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": [redirect_uri],
        }
    }
    # The callback builds a fresh Flow, so no PKCE verifier can be carried over.
    return Flow.from_client_config(
        client_config, SCOPES, redirect_uri=redirect_uri, autogenerate_code_verifier=False
    )

def generate_auth_url(cfg: Config, redirect_uri: str) -> Tuple[str, str]:
    """Authorization URL and the random `state` it carries."""
    auth_url, state = _flow(cfg, redirect_uri).authorization_url(
        access_type="offline", prompt="consent"
    )
    return auth_url, state

def state_matches(expected: Optional[str], received: Optional[str]) -> bool:
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))

def set_state_cookie(response: Response, state: str, secure: bool) -> None:
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=STATE_MAX_AGE,
        path=CALLBACK_PATH,
        secure=secure,
        httponly=True,
        samesite="lax",
    )

def clear_state_cookie(response: Response) -> None:
    response.delete_cookie(STATE_COOKIE, path=CALLBACK_PATH)

def exchange_code_for_token(cfg: Config, code: str, redirect_uri: str) -> Dict[str, Any]:
    """Trade an authorization code for Google's token response."""
    flow = _flow(cfg, redirect_uri)
    try:
        token = flow.fetch_token(code=code)
    except (OAuth2Error, requests.RequestException, ValueError) as e:
        raise UpstreamError(f"Token exchange failed: {e}") from e
    except Warning as e:
        # oauthlib raises a bare Warning when the granted scopes differ from the requested ones
        raise UpstreamError(f"Token exchange failed: {e}") from e
    if not token.get("access_token"):
        raise UpstreamError("Token exchange failed: no access_token in response")
    return dict(token)


class SessionCodec:
    """Encrypts the session payload into an opaque, authenticated cookie value.

    The payload is `{"accessToken": ..., "createdAt": <epoch ms>}`. Fernet
    tokens carry their own timestamp, so expiry is enforced on decode.
    """

    def __init__(self, secret: str, max_age: int = 3600):
        if not secret:
            raise ConfigurationError("SESSION_SECRET is not set")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_KDF_SALT,
            iterations=_KDF_ITERATIONS,
        )
        self._fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8"))))
        self.max_age = max_age

    def encode(self, access_token: str, now: Optional[float] = None) -> str:
        now = time.time() if now is None else now
        payload = json.dumps({"accessToken": access_token, "createdAt": int(now * 1000)})
        return self._fernet.encrypt_at_time(payload.encode("utf-8"), int(now)).decode("ascii")

    def decode(self, value: Optional[str], now: Optional[float] = None) -> Optional[str]:
        """Access token from a cookie value, or None if it is unusable."""
        if not value:
            return None
        now = time.time() if now is None else now
        try:
            raw = self._fernet.decrypt_at_time(value.encode("ascii"), self.max_age, int(now))
            session = json.loads(raw)
        except (InvalidToken, UnicodeError, ValueError):
            log.info("Rejected session cookie")
            return None
        token = session.get("accessToken") if isinstance(session, dict) else None
        return token if isinstance(token, str) and token else None


@lru_cache(maxsize=4)
def _codec(secret: str, max_age: int) -> SessionCodec:
    return SessionCodec(secret, max_age)

def session_codec(cfg: Config) -> SessionCodec:
    return _codec(cfg.session_secret, cfg.session_max_age)

def create_session_cookie(response: Response, cfg: Config, access_token: str, secure: bool) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session_codec(cfg).encode(access_token),
        max_age=cfg.session_max_age,
        path="/",
        domain=cfg.cookie_domain,
        secure=secure,
        httponly=True,
        samesite="lax",
    )

def clear_session_cookie(response: Response, cfg: Config) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/", domain=cfg.cookie_domain)

def access_token_from_cookie(cfg: Config, value: Optional[str]) -> Optional[str]:
    return session_codec(cfg).decode(value)
