from __future__ import annotations

import logging
from typing import Optional

import requests
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import db
import wordpress
from auth import verify_user
from errors import error_response

logger = logging.getLogger("wordpress.routes")

router = APIRouter(prefix="/api/platform/wordpress", tags=["wordpress"])


class PublishRequest(BaseModel):
    websiteName: Optional[str] = None
    contentId: Optional[str] = None
    status: Optional[str] = None
    credentials: Optional[dict] = None


class SettingsRequest(BaseModel):
    websiteName: Optional[str] = None
    settings: dict = {}


class CredentialsRequest(BaseModel):
    websiteName: Optional[str] = None
    credentials: Optional[dict] = None


class ActionRequest(BaseModel):
    action: Optional[str] = None
    websiteName: Optional[str] = None
    credentials: Optional[dict] = None


@router.post("/publish")
def publish(payload: PublishRequest, user: str = Depends(verify_user)):
    website = db.find_website_by_name(payload.websiteName or "")
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    content = next((c for c in website["content"] if c.get("_id") == payload.contentId), None)
    if content is None:
        raise HTTPException(status_code=404, detail="Content not found")

    integration = db.get_integration(website, "wordpress")
    if not integration or not integration.get("enabled") or not payload.credentials:
        raise HTTPException(status_code=400, detail="WordPress integration not configured")

    integration_settings = integration.get("settings") or {}
    status = payload.status or integration_settings.get("defaultStatus") or "draft"
    try:
        site = wordpress.WordPressSite.from_credentials(payload.credentials)
        result = wordpress.publish_content(
            site, content.get("title") or "", content.get("html") or "", status, integration_settings
        )
    except (wordpress.WordPressError, requests.RequestException) as exc:
        logger.error("WordPress publish failed for %s: %s", payload.contentId, exc)
        return error_response(500, "Failed to publish content", message=str(exc))

    content.setdefault("platformPublishStatus", {})["wordpress"] = {
        "published": result["status"] == "publish",
        "publishedUrl": result["postUrl"],
        "lastSynced": db.utcnow_iso(),
    }
    db.save_website(website)
    return result


@router.post("/settings")
def save_settings(payload: SettingsRequest, user: str = Depends(verify_user)):
    website = db.find_website_by_name(payload.websiteName or "")
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    incoming = payload.settings
    credentials = incoming.get("credentials") or {}
    options = incoming.get("settings") or {}

    integration = db.get_integration(website, "wordpress")
    if integration is None:
        integration = {"platform": "wordpress"}
        website["platformIntegrations"].append(integration)
    integration["enabled"] = bool(incoming.get("enabled"))
    integration["credentials"] = {
        "apiUrl": credentials.get("apiUrl") or "",
        "apiKey": credentials.get("apiKey") or "",
        "username": credentials.get("username") or "admin",
    }
    stored = integration.setdefault("settings", {})
    stored["autoPublish"] = bool(options.get("autoPublish"))
    stored["defaultStatus"] = options.get("defaultStatus") or "draft"

    db.save_website(website)
    logger.info("Saved WordPress settings for %s", website["name"])
    return {"success": True, "savedSettings": integration}


@router.post("/test")
def test_connection(payload: CredentialsRequest, user: str = Depends(verify_user)):
    try:
        site = wordpress.WordPressSite.from_credentials(payload.credentials)
        data = wordpress.test_connection(site)
    except (wordpress.WordPressError, requests.RequestException) as exc:
        logger.warning("WordPress connection test failed: %s", exc)
        return error_response(400, "Connection test failed", details=str(exc))
    return {"success": True, "data": data, "message": "Connection successful"}


@router.post("")
def wordpress_action(payload: ActionRequest, user: str = Depends(verify_user)):
    actions = {
        "test-connection": (wordpress.test_connection, "data", "Connection test failed"),
        "get-categories": (wordpress.get_categories, "categories", "Failed to fetch categories"),
        "get-post-types": (wordpress.get_post_types, "postTypes", "Failed to fetch post types"),
    }
    if payload.action not in actions:
        raise HTTPException(status_code=400, detail="Invalid action")

    call, key, failure = actions[payload.action]
    try:
        site = wordpress.WordPressSite.from_credentials(payload.credentials)
        result = call(site)
    except (wordpress.WordPressError, requests.RequestException) as exc:
        logger.warning("WordPress %s failed: %s", payload.action, exc)
        return error_response(400, failure, details=str(exc))

    if payload.action == "test-connection":
        return {"success": True, key: result}
    return {key: result}
