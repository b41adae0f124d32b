from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import db
import extraction
import llm
import prompts
import settings
import shopify
from auth import verify_user
from cache import ProductPageCache
from errors import error_response

logger = logging.getLogger("shopify.routes")

router = APIRouter(prefix="/api/platform/shopify", tags=["shopify"])

MASKED_TOKEN = "••••••••"
COLLECTION_MODEL = "o3-mini"

_config = settings.get_config()
PRODUCT_CACHE = ProductPageCache(_config.product_cache_ttl, _config.product_cache_max_entries)


class ProductUpdateRequest(BaseModel):
    productId: Optional[str] = None
    description: Optional[str] = None
    company: Optional[str] = None
    seoTitle: Optional[str] = None
    seoDescription: Optional[str] = None
    summaryHtml: Optional[str] = None


class ShopifySettingsRequest(BaseModel):
    company: Optional[str] = None
    credentials: dict = {}
    enabled: Any = None
    keepExistingToken: bool = False
    descriptionPlacement: Any = None
    syncSeoFields: Any = None


class PendingRequest(BaseModel):
    productId: Optional[str] = None
    company: Optional[str] = None
    newDescription: Optional[str] = None
    oldDescription: Optional[str] = None
    oldSeoTitle: Optional[str] = None
    newSeoTitle: Optional[str] = None
    oldSeoDescription: Optional[str] = None
    newSeoDescription: Optional[str] = None
    summaryHtml: Optional[str] = None


class PublishedRequest(BaseModel):
    productId: Optional[str] = None
    company: Optional[str] = None
    isPublished: bool = True
    publishedAt: Optional[str] = None


class CollectionGenerateRequest(BaseModel):
    title: Optional[str] = None
    products: List[dict] = []
    company: Optional[str] = None
    currentDescription: Optional[str] = None
    language: str = "en-US"
    targetCountry: str = "US"


class CollectionPendingRequest(BaseModel):
    collectionId: Optional[str] = None
    company: Optional[str] = None
    newDescription: Optional[str] = None
    oldDescription: Optional[str] = None


class CollectionUpdateRequest(BaseModel):
    collectionId: Optional[str] = None
    description: Optional[str] = None
    company: Optional[str] = None


def _require_company(company: Optional[str]) -> dict:
    if not company:
        raise HTTPException(status_code=400, detail="Company name is required")
    website = db.find_website_by_name(company)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    return website


def _require_store(website: dict) -> shopify.ShopifyStore:
    store = store_for(website)
    if store is None:
        raise HTTPException(status_code=400, detail="Shopify integration not properly configured")
    return store


def store_for(website: dict) -> Optional[shopify.ShopifyStore]:
    integration = db.get_integration(website, "shopify")
    return shopify.store_from_integration(integration, settings.get_config().shopify_api_version)


def _upstream_status(exc: Exception) -> int:
    return 401 if "status: 401" in str(exc) else 500


# ------------------------------------------------------------------------------
# Products
# ------------------------------------------------------------------------------

@router.get("/products")
def list_products(company: Optional[str] = None, cursor: Optional[str] = None, bypassCache: bool = False,
                  user: str = Depends(verify_user)):
    website = _require_company(company)
    store = _require_store(website)

    if not bypassCache:
        cached = PRODUCT_CACHE.get(company, cursor)
        if cached is not None:
            return JSONResponse(cached, headers={"X-Cache": "HIT", "Cache-Control": "no-store"})

    try:
        total = shopify.get_product_count(store)
        products, pagination = shopify.fetch_products_page(store, cursor)
    except shopify.ShopifyError as exc:
        logger.error("Failed to fetch products for %s: %s", company, exc)
        return error_response(_upstream_status(exc), "Failed to fetch products", details=str(exc))

    current = min(total, len(products)) if total else len(products)
    result = {
        "products": products,
        "total": total,
        "pagination": pagination,
        "progress": {
            "current": current,
            "total": total,
            "percentage": min(100.0, current / total * 100) if total else 100.0,
        },
    }
    PRODUCT_CACHE.set(company, cursor, result)
    return JSONResponse(result, headers={"X-Cache": "MISS", "Cache-Control": "no-store"})


@router.post("/update")
def update_product(payload: ProductUpdateRequest, user: str = Depends(verify_user)):
    if not payload.productId or payload.description is None or not payload.company:
        raise HTTPException(status_code=400, detail="Product ID, description and company are required")
    website = _require_company(payload.company)
    store = _require_store(website)
    integration_settings = (db.get_integration(website, "shopify") or {}).get("settings") or {}
    placement = shopify.normalize_description_placement(integration_settings.get("descriptionPlacement"))
    sync_seo = integration_settings.get("syncSeoFields")

    try:
        product = shopify.update_product(
            store,
            payload.productId,
            payload.description,
            placement,
            sync_seo_fields=True if sync_seo is None else bool(sync_seo),
            seo_title=payload.seoTitle,
            seo_description=payload.seoDescription,
            summary_html=payload.summaryHtml,
        )
    except shopify.ShopifyError as exc:
        logger.error("Failed to update product %s: %s", payload.productId, exc)
        status_code = exc.status_code if exc.status_code == 400 else _upstream_status(exc)
        return error_response(status_code, str(exc))

    db.upsert_published_product(payload.company, payload.productId)
    PRODUCT_CACHE.invalidate(payload.company)
    return {"success": True, "product": product}


# ------------------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------------------

@router.get("/settings")
def get_settings(company: Optional[str] = None, user: str = Depends(verify_user)):
    website = _require_company(company)
    integration = db.get_integration(website, "shopify")
    if integration is None:
        raise HTTPException(status_code=404, detail="Shopify integration not found")

    credentials = integration.get("credentials") or {}
    stored = integration.get("settings") or {}
    return {
        "success": True,
        "settings": {
            **integration,
            "credentials": {
                "storeName": credentials.get("storeName") or "",
                "accessToken": MASKED_TOKEN if credentials.get("accessToken") else "",
            },
            "settings": {
                **stored,
                "descriptionPlacement": shopify.sanitize_description_placement(stored.get("descriptionPlacement")),
                "syncSeoFields": bool(stored.get("syncSeoFields", False)),
            },
        },
    }


@router.post("/settings")
def save_settings(payload: ShopifySettingsRequest, user: str = Depends(verify_user)):
    if not payload.company:
        raise HTTPException(status_code=400, detail="Website name is required")
    website = db.find_website_by_name(payload.company)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    placement = shopify.sanitize_description_placement(payload.descriptionPlacement)
    sync_seo = payload.syncSeoFields if isinstance(payload.syncSeoFields, bool) else False
    new_token = payload.credentials.get("accessToken") or ""

    integration = db.get_integration(website, "shopify")
    if integration is None:
        integration = {
            "platform": "shopify",
            "credentials": {},
            "settings": {"autoPublish": False, "defaultStatus": "draft"},
        }
        website["platformIntegrations"].append(integration)

    existing_token = (integration.get("credentials") or {}).get("accessToken") or ""
    integration["enabled"] = bool(payload.enabled)
    integration["credentials"] = {
        "storeName": payload.credentials.get("storeName") or "",
        "accessToken": existing_token if payload.keepExistingToken and not new_token else new_token,
    }
    integration_settings = integration.setdefault("settings", {})
    integration_settings["descriptionPlacement"] = placement
    integration_settings["syncSeoFields"] = sync_seo

    db.save_website(website)
    PRODUCT_CACHE.invalidate(payload.company)
    if not integration["enabled"]:
        logger.info("Shopify integration disabled for %s", payload.company)

    saved = {
        **integration,
        "credentials": {
            "storeName": integration["credentials"]["storeName"],
            "accessToken": MASKED_TOKEN if integration["credentials"]["accessToken"] else "",
        },
    }
    return {"success": True, "savedSettings": saved}


@router.get("/test")
def test_connection(company: Optional[str] = None, user: str = Depends(verify_user)):
    if not company:
        raise HTTPException(status_code=400, detail="Company name is required")
    website = db.find_website_by_name(company)
    if website is None:
        return {"connected": False}
    store = store_for(website)
    if store is None:
        return {"connected": False}
    return {"connected": shopify.test_connection(store)}


# ------------------------------------------------------------------------------
# Pending and published descriptions
# ------------------------------------------------------------------------------

@router.post("/pending")
def save_pending(payload: PendingRequest, user: str = Depends(verify_user)):
    if not payload.productId or not payload.company or payload.newDescription is None:
        raise HTTPException(status_code=400, detail="Missing required fields")
    total = db.save_pending_description(
        payload.company,
        payload.productId,
        payload.model_dump(exclude={"productId", "company"}),
    )
    logger.info("Saved pending description for %s/%s", payload.company, payload.productId)
    return {
        "success": True,
        "message": "Pending description saved",
        "productId": payload.productId,
        "totalPending": total,
    }


@router.get("/pending")
def get_pending(company: Optional[str] = None, productId: Optional[str] = None,
                user: str = Depends(verify_user)):
    if not company:
        raise HTTPException(status_code=400, detail="Company name is required")
    if productId:
        rows = db.list_pending_descriptions(company, productId)
        return {"pendingDescription": rows[0] if rows else None}
    return {"pendingDescriptions": db.list_pending_descriptions(company)}


@router.delete("/pending")
def delete_pending(company: Optional[str] = None, productId: Optional[str] = None,
                   user: str = Depends(verify_user)):
    if not company or not productId:
        raise HTTPException(status_code=400, detail="Company name and product ID are required")
    db.deactivate_pending_description(company, productId)
    return {"success": True}


@router.post("/published")
def set_published(payload: PublishedRequest, user: str = Depends(verify_user)):
    if not payload.productId or not payload.company:
        raise HTTPException(status_code=400, detail="Product ID and company are required")
    if payload.isPublished:
        db.upsert_published_product(payload.company, payload.productId, payload.publishedAt)
    else:
        db.deactivate_published_product(payload.company, payload.productId)
    return {"success": True, "productId": payload.productId, "isPublished": payload.isPublished}


@router.get("/published")
def get_published(company: Optional[str] = None, productId: Optional[str] = None,
                  user: str = Depends(verify_user)):
    if not company:
        raise HTTPException(status_code=400, detail="Company name is required")
    if productId:
        rows = db.list_published_products(company, productId)
        return {"publishedProduct": rows[0] if rows else None}
    return {"publishedProducts": db.list_published_products(company)}


@router.delete("/published")
def delete_published(company: Optional[str] = None, productId: Optional[str] = None,
                     user: str = Depends(verify_user)):
    if not company or not productId:
        raise HTTPException(status_code=400, detail="Company name and product ID are required")
    db.deactivate_published_product(company, productId)
    return {"success": True}


# ------------------------------------------------------------------------------
# Collections
# ------------------------------------------------------------------------------

@router.get("/collections")
def list_collections(company: Optional[str] = None, user: str = Depends(verify_user)):
    website = _require_company(company)
    store = _require_store(website)
    try:
        custom_total = shopify.count_collections(store, "custom")
        smart_total = shopify.count_collections(store, "smart")
        custom = shopify.list_collections(store, "custom")
        smart = shopify.list_collections(store, "smart")
    except shopify.ShopifyError as exc:
        logger.error("Failed to fetch collections for %s: %s", company, exc)
        return error_response(_upstream_status(exc), "Failed to fetch collections", details=str(exc))

    collections = sorted(custom + smart, key=lambda c: (c.get("title") or "").lower())
    if len(collections) != custom_total + smart_total:
        logger.warning("Fetched %d collections but Shopify reports %d", len(collections), custom_total + smart_total)
    return {
        "collections": collections,
        "total": len(collections),
        "expectedTotal": custom_total + smart_total,
        "breakdown": {"custom": len(custom), "smart": len(smart)},
    }


@router.get("/collections/pending")
def get_collection_pending(company: Optional[str] = None, collectionId: Optional[str] = None,
                           user: str = Depends(verify_user)):
    website = _require_company(company)
    pending = website.get("pendingCollectionDescriptions") or []
    if collectionId:
        match = next((p for p in pending if str(p.get("collectionId")) == str(collectionId)), None)
        return {"pendingDescription": match}
    return {"pendingDescriptions": pending}


@router.post("/collections/pending")
def save_collection_pending(payload: CollectionPendingRequest, user: str = Depends(verify_user)):
    if not payload.collectionId or not payload.company or not payload.newDescription:
        raise HTTPException(status_code=400, detail="Missing required fields")
    website = _require_company(payload.company)
    entry = {
        "collectionId": payload.collectionId,
        "newDescription": extraction.strip_code_fences(payload.newDescription),
        "oldDescription": payload.oldDescription or "",
        "generatedAt": db.utcnow_iso(),
    }
    pending = [
        p for p in website.get("pendingCollectionDescriptions") or []
        if str(p.get("collectionId")) != str(payload.collectionId)
    ]
    pending.append(entry)
    website["pendingCollectionDescriptions"] = pending
    db.save_website(website)
    return {"success": True, "pendingDescription": entry}


@router.get("/collections/{collection_id}/products")
def list_collection_products(collection_id: str, company: Optional[str] = None,
                             user: str = Depends(verify_user)):
    website = _require_company(company)
    store = _require_store(website)
    try:
        products = shopify.list_collection_products(store, collection_id)
    except shopify.ShopifyError as exc:
        logger.error("Failed to fetch products for collection %s: %s", collection_id, exc)
        return error_response(_upstream_status(exc), "Failed to fetch collection products", details=str(exc))
    return {"products": products}


def parse_outline_sections(outline: str) -> List[dict]:
    """Group ``H2:``/``H3:`` outline lines into sections with subsections."""
    sections: List[dict] = []
    for line in outline.splitlines():
        line = line.strip()
        h2 = re.match(r"^H2:\s*(.+)$", line)
        if h2:
            sections.append({"title": h2.group(1).strip(), "subsections": []})
            continue
        h3 = re.match(r"^H3:\s*(.+)$", line)
        if h3 and sections:
            sections[-1]["subsections"].append(h3.group(1).strip())
    return sections


def _generate_part(system: str, payload: CollectionGenerateRequest, part: str, summary: str,
                   previous: str) -> str:
    text = llm.complete(
        [
            {"role": "system", "content": system},
            {
                "role": "user",
                "content": prompts.collection_section_prompt(
                    payload.title, part, summary, previous, payload.currentDescription
                ),
            },
        ],
        model=COLLECTION_MODEL,
    )
    return extraction.strip_code_fences(text)


@router.post("/collections/generate")
def generate_collection_description(payload: CollectionGenerateRequest, user: str = Depends(verify_user)):
    if not payload.title or not payload.company:
        raise HTTPException(status_code=400, detail="Title and company are required")
    _require_company(payload.company)

    try:
        outline = llm.complete(
            [
                {
                    "role": "system",
                    "content": prompts.outline_system_prompt(payload.language, payload.targetCountry, 1000, "collection"),
                },
                {"role": "user", "content": prompts.outline_user_prompt(payload.title, payload.title, "")},
            ],
            model=COLLECTION_MODEL,
        )
        sections = parse_outline_sections(outline)
        summary = prompts.summarize_products(payload.products)
        system = prompts.collection_system_prompt(payload.language, payload.targetCountry)

        parts = [_generate_part(system, payload, "introduction", summary, "")]
        for section in sections:
            focus = section["title"]
            if section["subsections"]:
                focus += " (covering: " + ", ".join(section["subsections"]) + ")"
            body = _generate_part(system, payload, f'section "{focus}"', summary, "\n".join(parts))
            parts.append(f"<h2>{section['title']}</h2>\n{body}")
        parts.append(_generate_part(system, payload, "conclusion", summary, "\n".join(parts)))
    except Exception as exc:
        logger.exception("Collection description generation failed: %s", exc)
        return error_response(500, "Failed to generate collection description", details=str(exc))

    return {"success": True, "outline": sections, "description": "\n".join(parts)}


@router.post("/collections/update")
def update_collection(payload: CollectionUpdateRequest, user: str = Depends(verify_user)):
    if not payload.collectionId or payload.description is None or not payload.company:
        raise HTTPException(status_code=400, detail="Collection ID, description and company are required")
    website = _require_company(payload.company)
    store = _require_store(website)
    try:
        collection, kind = shopify.update_collection(store, payload.collectionId, payload.description)
    except shopify.ShopifyError as exc:
        logger.error("Failed to update collection %s: %s", payload.collectionId, exc)
        status_code = 404 if "not found" in str(exc).lower() else 500
        return error_response(status_code, str(exc))
    return {"success": True, "collection": collection, "collectionType": kind}
