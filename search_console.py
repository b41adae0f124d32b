from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import List

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from settings import AppConfig

logger = logging.getLogger("searchconsole")

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
SCOPE = "https://www.googleapis.com/auth/webmasters.readonly"
STATE_TTL_SECONDS = 3600

MIN_OPPORTUNITY_POSITION = 7
MAX_OPPORTUNITIES = 40
LOOKBACK_DAYS = 30


class SearchConsoleError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def redirect_uri(config: AppConfig) -> str:
    return f"{config.app_url}/api/searchconsole/callback"


# ------------------------------------------------------------------------------
# OAuth state
# ------------------------------------------------------------------------------

def _b64u_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64u_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _state_signature(config: AppConfig, body: str) -> str:
    digest = hmac.new(config.oauth_state_secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256).digest()
    return _b64u_encode(digest)


def issue_state(config: AppConfig, email: str) -> str:
    payload = {"email": email, "exp": int(time.time()) + STATE_TTL_SECONDS}
    body = _b64u_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{body}.{_state_signature(config, body)}"


def verify_state(config: AppConfig, state: str) -> str | None:
    """Return the email carried by a signed state, or None if it was tampered with or expired."""
    body, _, signature = (state or "").partition(".")
    if not body or not signature:
        return None
    if not hmac.compare_digest(_state_signature(config, body), signature):
        return None
    try:
        payload = json.loads(_b64u_decode(body).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict) or int(payload.get("exp") or 0) < time.time():
        return None
    return payload.get("email") or None


# ------------------------------------------------------------------------------
# OAuth flow & credentials
# ------------------------------------------------------------------------------

def build_flow(config: AppConfig, state: str | None = None) -> Flow:
    client_config = {
        "web": {
            "client_id": config.google_client_id,
            "client_secret": config.google_client_secret,
            "auth_uri": AUTH_ENDPOINT,
            "token_uri": TOKEN_ENDPOINT,
            "redirect_uris": [redirect_uri(config)],
        }
    }
    flow = Flow.from_client_config(
        client_config, scopes=[SCOPE], state=state, autogenerate_code_verifier=False
    )
    flow.redirect_uri = redirect_uri(config)
    return flow


def build_auth_url(config: AppConfig, email: str) -> str:
    url, _ = build_flow(config, state=issue_state(config, email)).authorization_url(
        access_type="offline", prompt="consent"
    )
    return url


def exchange_code(config: AppConfig, code: str) -> Credentials:
    flow = build_flow(config)
    try:
        flow.fetch_token(code=code)
    except Exception as exc:
        raise SearchConsoleError(f"Token exchange failed: {exc}", status_code=400) from exc
    return flow.credentials


def _parse_expiry(value) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        expiry = datetime.fromisoformat(value)
    except ValueError:
        return None
    if expiry.tzinfo is not None:
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    return expiry


def credentials_to_dict(credentials) -> dict:
    expiry = credentials.expiry
    return {
        "accessToken": credentials.token,
        "refreshToken": credentials.refresh_token,
        "expiryDate": expiry.isoformat() if expiry else None,
    }


def load_credentials(config: AppConfig, stored: dict) -> Credentials:
    return Credentials(
        token=stored.get("accessToken"),
        refresh_token=stored.get("refreshToken"),
        token_uri=TOKEN_ENDPOINT,
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        scopes=[SCOPE],
        expiry=_parse_expiry(stored.get("expiryDate")),
    )


def refresh_credentials(credentials: Credentials) -> None:
    credentials.refresh(GoogleAuthRequest())


def ensure_fresh(credentials: Credentials) -> bool:
    """Refresh expired credentials up front. Returns True when the token changed."""
    if credentials.valid or not credentials.refresh_token:
        return False
    logger.info("Search Console access token expired; refreshing")
    try:
        refresh_credentials(credentials)
    except GoogleAuthError as exc:
        raise SearchConsoleError(f"Token refresh failed: {exc}", status_code=401) from exc
    return True


# ------------------------------------------------------------------------------
# Search Console API
# ------------------------------------------------------------------------------

def build_service(credentials: Credentials):
    return build("searchconsole", "v1", credentials=credentials, cache_discovery=False)


def _execute(request):
    try:
        return request.execute()
    except HttpError as exc:
        raise SearchConsoleError(
            f"Search Console API error: {exc.resp.status} {exc}", status_code=exc.resp.status
        ) from exc
    except GoogleAuthError as exc:
        raise SearchConsoleError(f"Search Console authorization failed: {exc}", status_code=401) from exc


def list_sites(credentials: Credentials) -> List[dict]:
    data = _execute(build_service(credentials).sites().list())
    return [
        {"siteUrl": entry.get("siteUrl"), "permissionLevel": entry.get("permissionLevel")}
        for entry in data.get("siteEntry", [])
    ]


def query_search_analytics(credentials: Credentials, site_url: str, today: date | None = None) -> List[dict]:
    today = today or date.today()
    body = {
        "startDate": (today - timedelta(days=LOOKBACK_DAYS)).isoformat(),
        "endDate": today.isoformat(),
        "dimensions": ["query", "page"],
        "type": "web",
        "rowLimit": 1000,
    }
    service = build_service(credentials)
    return _execute(service.searchanalytics().query(siteUrl=site_url, body=body)).get("rows", [])


def select_keyword_opportunities(rows: List[dict]) -> List[dict]:
    keywords = []
    for row in rows:
        keys = row.get("keys") or []
        keywords.append(
            {
                "keyword": keys[0] if keys else None,
                "url": keys[1] if len(keys) > 1 else None,
                "clicks": row.get("clicks"),
                "impressions": row.get("impressions"),
                "ctr": row.get("ctr"),
                "position": row.get("position"),
            }
        )

    opportunities = [kw for kw in keywords if kw["position"] and kw["position"] >= MIN_OPPORTUNITY_POSITION]
    opportunities.sort(key=lambda kw: (kw["position"], -(kw["impressions"] or 0)))
    return opportunities[:MAX_OPPORTUNITIES]
