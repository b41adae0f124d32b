from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

import db
import search_console
import settings
from auth import verify_user
from errors import error_response

logger = logging.getLogger("searchconsole.routes")

router = APIRouter(prefix="/api/searchconsole", tags=["searchconsole"])

FINDCONTENT_PATH = "/insight/findcontent"


def _redirect(query: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.get_config().app_url}{FINDCONTENT_PATH}?{query}")


def _connected_website(user: str):
    for website in db.list_owned_websites(user):
        integration = db.get_integration(website, "searchconsole")
        if integration and integration.get("enabled"):
            return website, integration
    return None, None


@router.get("/auth")
def auth_url(user: str = Depends(verify_user)):
    return {"authUrl": search_console.build_auth_url(settings.get_config(), user)}


@router.get("/callback")
def oauth_callback(code: Optional[str] = None, state: Optional[str] = None, error: Optional[str] = None):
    if error:
        return _redirect(f"error={quote(error)}")
    if not code or not state:
        return _redirect("error=missing_params")

    config = settings.get_config()
    email = search_console.verify_state(config, state)
    if email is None:
        logger.warning("Rejected Search Console callback with an invalid state")
        return _redirect("error=invalid_state")

    try:
        credentials = search_console.exchange_code(config, code)
    except search_console.SearchConsoleError as exc:
        logger.error("Search Console token exchange failed: %s", exc)
        return _redirect("error=auth_failed")

    stored = search_console.credentials_to_dict(credentials)
    for website in db.list_owned_websites(email):
        integration = db.get_integration(website, "searchconsole")
        if integration is None:
            integration = {"platform": "searchconsole", "settings": {}}
            website["platformIntegrations"].append(integration)
        integration["enabled"] = True
        integration["credentials"] = dict(stored)
        db.save_website(website)
    logger.info("Connected Search Console for %s", email)
    return _redirect("success=true")


def _call_with_credentials(website: dict, integration: dict, call):
    """Run ``call`` with the integration's Google credentials.

    Tokens refreshed before or during the call are written back to the website.
    """
    stored = integration.setdefault("credentials", {})
    credentials = search_console.load_credentials(settings.get_config(), stored)
    token_before = stored.get("accessToken")
    try:
        search_console.ensure_fresh(credentials)
        return call(credentials)
    finally:
        if credentials.token and credentials.token != token_before:
            integration["credentials"] = search_console.credentials_to_dict(credentials)
            db.save_website(website)
            logger.info("Stored refreshed Search Console token for %s", website["name"])


@router.get("/properties")
def list_properties(user: str = Depends(verify_user)):
    website, integration = _connected_website(user)
    if website is None:
        return {"properties": []}

    try:
        properties = _call_with_credentials(website, integration, search_console.list_sites)
    except search_console.SearchConsoleError as exc:
        logger.error("Failed to list Search Console properties: %s", exc)
        return error_response(500, "Failed to fetch properties", details=str(exc))
    return {"properties": properties}


@router.get("/keywords")
def keyword_opportunities(property: Optional[str] = None, user: str = Depends(verify_user)):
    if not property:
        raise HTTPException(status_code=400, detail="Property is required")
    website, integration = _connected_website(user)
    if website is None:
        raise HTTPException(status_code=400, detail="Search Console not connected")

    try:
        rows = _call_with_credentials(
            website,
            integration,
            lambda credentials: search_console.query_search_analytics(credentials, property),
        )
    except search_console.SearchConsoleError as exc:
        logger.error("Failed to query Search Console for %s: %s", property, exc)
        return error_response(500, "Failed to fetch keywords", details=str(exc))

    opportunities = search_console.select_keyword_opportunities(rows)
    integration_settings = integration.setdefault("settings", {})
    integration_settings["lastSync"] = db.utcnow_iso()
    integration_settings["keywordOpportunities"] = opportunities
    db.save_website(website)
    return {"keywords": opportunities}
