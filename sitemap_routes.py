from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import db
import settings
import sitemap_indexer
from auth import verify_user
from errors import error_response

logger = logging.getLogger("sitemap")

router = APIRouter(prefix="/api", tags=["sitemap"])


class IndexSitemapRequest(BaseModel):
    sitemapUrl: Optional[str] = None
    sampleSize: Any = None
    websiteId: Optional[str] = None


def _sampling_rate(sample_size: Any) -> float:
    try:
        percentage = float(sample_size)
    except (TypeError, ValueError):
        return sitemap_indexer.SAMPLING_RATE
    if 0 < percentage <= 100:
        return percentage / 100
    return sitemap_indexer.SAMPLING_RATE


@router.post("/index-sitemap")
def index_sitemap(payload: IndexSitemapRequest, user: str = Depends(verify_user)):
    if not payload.sitemapUrl:
        raise HTTPException(status_code=400, detail="sitemapUrl is required")

    config = settings.get_config()
    rate = _sampling_rate(payload.sampleSize)
    try:
        collected = sitemap_indexer.collect_sitemap_urls(
            payload.sitemapUrl, rate, config.sitemap_sampling_enabled
        )
    except Exception as exc:
        logger.exception("Error fetching/parsing sitemap %s: %s", payload.sitemapUrl, exc)
        return error_response(500, "Error processing sitemap", details=str(exc))

    urls = sitemap_indexer.apply_url_sampling(collected.urls, rate, config.sitemap_sampling_enabled)
    if not urls:
        raise HTTPException(status_code=400, detail="No valid URLs found in the sitemap")

    logger.info("Processing %d of %d discovered URLs", len(urls), collected.discovered)
    pages = sitemap_indexer.process_pages(urls)
    sampled = len(urls) < collected.discovered

    if payload.websiteId:
        website = db.get_website(payload.websiteId)
        if website is not None:
            website["sitemapUrls"] = [page["url"] for page in pages if page["url"]]
            db.save_website(website)

    return {"pages": pages, "stats": sitemap_indexer.build_stats(pages, collected.discovered, sampled)}


@router.get("/index-sitemap")
def index_sitemap_get(user: str = Depends(verify_user)):
    return error_response(405, "Method not allowed", message="This endpoint expects a POST request with a sitemapUrl.")


@router.get("/get-sitemap-urls")
def get_sitemap_urls(websiteId: Optional[str] = None, user: str = Depends(verify_user)) -> dict:
    if not websiteId:
        raise HTTPException(status_code=400, detail="websiteId is required")
    website = db.get_website(websiteId)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    urls = website.get("sitemapUrls") or []
    return {
        "message": f"Sitemap URLs retrieved for {website['name']}",
        "urls": urls,
        "stats": {
            "discoveredUrlCount": len(urls),
            "returnedUrlCount": len(urls),
            "capped": False,
        },
        "keyUrls": website.get("keyUrls") or [],
        "businessAnalysis": website.get("businessAnalysis") or None,
        "contentStructureAnalysis": website.get("contentStructureAnalysis") or None,
    }


@router.delete("/get-sitemap-urls")
def clear_sitemap_urls(websiteId: Optional[str] = None, user: str = Depends(verify_user)) -> dict:
    if not websiteId:
        raise HTTPException(status_code=400, detail="websiteId is required")
    website = db.get_website(websiteId)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    website["sitemapUrls"] = []
    website["keyUrls"] = []
    website["businessAnalysis"] = ""
    website["contentStructureAnalysis"] = ""
    db.save_website(website)
    return {"success": True, "message": f"Sitemap data cleared for {website['name']}"}
