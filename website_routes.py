from __future__ import annotations

import logging
import time
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

import db
from auth import verify_user

logger = logging.getLogger("websites")

router = APIRouter(prefix="/api", tags=["websites"])

PROFILE_FIELDS = ("name", "website", "description", "summary", "toneofvoice", "targetAudience")


class WebsiteActionRequest(BaseModel):
    action: Optional[str] = None
    websiteName: Optional[str] = None
    folderId: Optional[str] = None
    folderName: Optional[str] = None
    content: Optional[List[str]] = None
    name: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    toneofvoice: Optional[str] = None
    targetAudience: Optional[str] = None


class WebsiteUpdateRequest(BaseModel):
    name: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    toneofvoice: Optional[str] = None
    targetAudience: Optional[str] = None


class SaveAnalysisRequest(BaseModel):
    websiteId: Optional[str] = None
    businessAnalysis: Any = None
    contentStructureAnalysis: Any = None
    keyUrls: Any = None


class ShareRequest(BaseModel):
    websiteId: Optional[str] = None
    email: Optional[str] = None


def _create_website(payload: WebsiteActionRequest, user: str) -> dict:
    if not payload.name or not payload.website:
        raise HTTPException(status_code=400, detail="Name and website are required")
    if db.find_website_by_name(payload.name.strip()) is not None:
        raise HTTPException(status_code=409, detail="A website with this name already exists")
    fields = {field: getattr(payload, field) for field in PROFILE_FIELDS}
    fields["name"] = payload.name.strip()
    return db.create_website(user, fields)


@router.get("/website")
def list_websites(user: str = Depends(verify_user)) -> dict:
    return {
        "websites": db.list_owned_websites(user),
        "sharedWebsites": db.list_shared_websites(user),
    }


@router.post("/website")
def update_website_structure(payload: WebsiteActionRequest, user: str = Depends(verify_user)) -> dict:
    if payload.action == "create":
        return {"success": True, "website": _create_website(payload, user)}

    website = db.find_accessible_website(payload.websiteName or "", user)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    if payload.action == "createFolder":
        if not payload.folderName:
            raise HTTPException(status_code=400, detail="Folder name is required")
        website["folders"].append(
            {
                "id": str(int(time.time() * 1000)),
                "name": payload.folderName,
                "createdAt": db.utcnow_iso(),
            }
        )
    elif payload.action == "deleteFolder":
        for item in website["content"]:
            if item.get("folderId") == payload.folderId:
                item["folderId"] = None
        website["folders"] = [f for f in website["folders"] if f.get("id") != payload.folderId]
    elif payload.action == "moveContent":
        content_ids = set(payload.content or [])
        for item in website["content"]:
            if item.get("_id") in content_ids:
                item["folderId"] = payload.folderId
    else:
        raise HTTPException(status_code=400, detail="Invalid action")

    db.save_website(website)
    logger.info("Applied %s to website %s", payload.action, website["name"])
    return {"success": True, "website": website}


@router.post("/website/save-analysis")
def save_analysis(payload: SaveAnalysisRequest, user: str = Depends(verify_user)) -> dict:
    if not payload.websiteId:
        raise HTTPException(status_code=400, detail="Missing websiteId")

    updates = {}
    if isinstance(payload.businessAnalysis, str):
        updates["businessAnalysis"] = payload.businessAnalysis
    if isinstance(payload.contentStructureAnalysis, str):
        updates["contentStructureAnalysis"] = payload.contentStructureAnalysis
    if isinstance(payload.keyUrls, list) and all(isinstance(url, str) for url in payload.keyUrls):
        updates["keyUrls"] = payload.keyUrls
    if not updates:
        raise HTTPException(status_code=400, detail="No analysis data provided")

    website = db.get_website(payload.websiteId)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    website.update(updates)
    db.save_website(website)
    return {"success": True, "message": "Analysis saved", "updatedFields": sorted(updates)}


def _load_shareable(payload: ShareRequest, user: str) -> dict:
    if not payload.websiteId or not payload.email:
        raise HTTPException(status_code=400, detail="Website ID and email are required")
    website = db.get_website(payload.websiteId)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    if website["userId"] != user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return website


@router.post("/website/share")
def share_website(payload: ShareRequest, user: str = Depends(verify_user)) -> dict:
    website = _load_shareable(payload, user)
    email = payload.email.strip().lower()
    if email not in website["sharedUsers"]:
        website["sharedUsers"].append(email)
        db.save_website(website)
    return {"message": "Website shared successfully"}


@router.delete("/website/share")
def unshare_website(payload: ShareRequest, user: str = Depends(verify_user)) -> dict:
    website = _load_shareable(payload, user)
    email = payload.email.strip().lower()
    website["sharedUsers"] = [shared for shared in website["sharedUsers"] if shared != email]
    db.save_website(website)
    return {"message": "User removed successfully"}


# Registered after the /website/share routes so "share" is not taken as an id.
@router.patch("/website/{website_id}")
def update_website(website_id: str, payload: WebsiteUpdateRequest, user: str = Depends(verify_user)) -> dict:
    website = db.get_website(website_id)
    if website is None or website["userId"] != user:
        raise HTTPException(status_code=404, detail="Website not found or unauthorized")

    if payload.name and payload.name != website["name"]:
        if db.find_website_by_name(payload.name) is not None:
            raise HTTPException(status_code=409, detail="A website with this name already exists")
    for field, value in payload.model_dump(exclude_none=True).items():
        website[field] = value
    db.save_website(website)
    return {"success": True, "website": website}


@router.delete("/website/{website_id}")
def delete_website(website_id: str, user: str = Depends(verify_user)) -> dict:
    website = db.get_website(website_id)
    if website is None or website["userId"] != user:
        raise HTTPException(status_code=404, detail="Website not found or unauthorized")
    db.delete_website(website_id)
    logger.info("Deleted website %s", website["name"])
    return {"success": True}
