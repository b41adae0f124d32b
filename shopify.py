from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Tuple

import requests

logger = logging.getLogger("shopify")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0
COLLECTION_PAGE_DELAY = 0.5
LOW_CALL_BUDGET = 5
REQUEST_TIMEOUT = 30
PRODUCTS_PAGE_SIZE = 250

PLACEMENT_TYPES = {"single_line_text_field", "multi_line_text_field", "rich_text_editor"}

PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String) {
  products(first: $first, after: $after, sortKey: ID) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
        title
        bodyHtml
        vendor
        status
        seo {
          title
          description
        }
        images(first: 1) {
          edges {
            node {
              url
            }
          }
        }
      }
    }
  }
}
"""

PRODUCT_UPDATE_MUTATION = """
mutation UpdateProduct($input: ProductInput!) {
  productUpdate(input: $input) {
    product {
      id
      title
      bodyHtml
      seo {
        title
        description
      }
      %(metafield_selection)s
    }
    userErrors {
      field
      message
    }
  }
}
"""

METAFIELD_SELECTION = """metafield(namespace: "%(namespace)s", key: "%(key)s") {
        namespace
        key
        value
        type
      }"""


class ShopifyError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ShopifyStore:
    store_name: str
    access_token: str
    api_version: str = "2024-01"

    @property
    def base_url(self) -> str:
        return f"https://{format_store_name(self.store_name)}/admin/api/{self.api_version}"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }


def format_store_name(store_name: str) -> str:
    store_name = store_name.strip()
    if ".myshopify.com" in store_name:
        return store_name
    return f"{store_name}.myshopify.com"


def store_from_integration(integration: dict | None, api_version: str) -> ShopifyStore | None:
    if not integration or not integration.get("enabled"):
        return None
    credentials = integration.get("credentials") or {}
    store_name = credentials.get("storeName")
    access_token = credentials.get("accessToken")
    if not store_name or not access_token:
        return None
    return ShopifyStore(store_name=store_name, access_token=access_token, api_version=api_version)


def parse_call_limit(headers) -> Tuple[int, int]:
    raw = headers.get("X-Shopify-Shop-Api-Call-Limit")
    if not raw or "/" not in raw:
        return 0, 0
    used, _, limit = raw.partition("/")
    try:
        return int(used), int(limit)
    except ValueError:
        return 0, 0


def shopify_request(method: str, url: str, headers: Dict[str, str], retries: int = MAX_RETRIES,
                    base_delay: float = RETRY_BASE_DELAY, **kwargs) -> requests.Response:
    """Send a request to the Admin API, backing off on 429 and transport errors.

    Retry-After is honoured when present; otherwise the delay doubles from
    ``base_delay`` on every attempt. Other non-2xx responses raise ShopifyError.
    """
    kwargs.setdefault("timeout", REQUEST_TIMEOUT)
    attempt = 0
    while True:
        try:
            response = requests.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as exc:
            if attempt >= retries:
                raise ShopifyError(f"Request to Shopify failed: {exc}") from exc
            delay = base_delay * (2 ** attempt)
            logger.warning("Shopify request error (%s); retrying in %.1fs", exc, delay)
            time.sleep(delay)
            attempt += 1
            continue

        if response.status_code == 429 and attempt < retries:
            retry_after = response.headers.get("Retry-After")
            try:
                delay = float(retry_after) if retry_after else base_delay * (2 ** attempt)
            except ValueError:
                delay = base_delay * (2 ** attempt)
            logger.warning("Shopify rate limit hit; retrying in %.1fs (attempt %d)", delay, attempt + 1)
            time.sleep(delay)
            attempt += 1
            continue

        if not response.ok:
            raise ShopifyError(
                f"HTTP error! status: {response.status_code}, body: {response.text}",
                status_code=response.status_code,
            )

        used, limit = parse_call_limit(response.headers)
        if limit and limit - used < LOW_CALL_BUDGET:
            logger.info("Shopify call budget low (%d/%d); pausing", used, limit)
            time.sleep(base_delay)
        return response


def graphql(store: ShopifyStore, query: str, variables: dict) -> dict:
    response = shopify_request(
        "POST",
        f"{store.base_url}/graphql.json",
        store.headers,
        json={"query": query, "variables": variables},
    )
    payload = response.json()
    errors = payload.get("errors")
    if errors:
        if isinstance(errors, list):
            message = ", ".join(err.get("message", "") for err in errors if isinstance(err, dict))
        else:
            message = str(errors)
        raise ShopifyError(f"GraphQL errors: {message}")
    return payload.get("data") or {}


# ------------------------------------------------------------------------------
# Products
# ------------------------------------------------------------------------------

def get_product_count(store: ShopifyStore) -> int:
    response = shopify_request("GET", f"{store.base_url}/products/count.json", store.headers)
    return int(response.json().get("count", 0))


def map_product_node(node: dict) -> dict:
    image_edges = (node.get("images") or {}).get("edges") or []
    seo = node.get("seo") or {}
    return {
        "id": node.get("id"),
        "title": node.get("title") or "",
        "body_html": node.get("bodyHtml") or "",
        "vendor": node.get("vendor") or "",
        "status": node.get("status") or "",
        "images": [{"src": edge["node"]["url"]} for edge in image_edges if edge.get("node")],
        "seoTitle": seo.get("title") or "",
        "seoDescription": seo.get("description") or "",
    }


def fetch_products_page(store: ShopifyStore, cursor: str | None) -> Tuple[List[dict], dict]:
    data = graphql(store, PRODUCTS_QUERY, {"first": PRODUCTS_PAGE_SIZE, "after": cursor})
    products_data = data.get("products") or {}
    products = [map_product_node(edge["node"]) for edge in products_data.get("edges", [])]
    page_info = products_data.get("pageInfo") or {}
    return products, {
        "hasNextPage": bool(page_info.get("hasNextPage")),
        "endCursor": page_info.get("endCursor"),
    }


def extract_numeric_id(gid: str) -> str:
    match = re.search(r"(?:^|/)(\d+)$", str(gid).strip())
    if not match:
        raise ShopifyError("Invalid Shopify Global ID format", status_code=400)
    return match.group(1)


def build_product_gid(numeric_id: str) -> str:
    return f"gid://shopify/Product/{numeric_id}"


def normalize_description_placement(placement: dict | None) -> dict:
    if not placement or placement.get("mode") != "metafield":
        return {"mode": "body_html"}
    namespace = (placement.get("metafieldNamespace") or "").strip()
    key = (placement.get("metafieldKey") or "").strip()
    if not namespace or not key:
        return {"mode": "body_html"}
    metafield_type = placement.get("metafieldType")
    if metafield_type != "single_line_text_field":
        metafield_type = "multi_line_text_field"
    return {
        "mode": "metafield",
        "metafieldNamespace": namespace,
        "metafieldKey": key,
        "metafieldType": metafield_type,
    }


def sanitize_description_placement(placement: dict | None) -> dict:
    """Like normalize_description_placement but keeps rich_text_editor for stored settings."""
    if not placement or placement.get("mode") != "metafield":
        return {"mode": "body_html"}
    namespace = (placement.get("metafieldNamespace") or "").strip()
    key = (placement.get("metafieldKey") or "").strip()
    if not namespace or not key:
        return {"mode": "body_html"}
    metafield_type = placement.get("metafieldType")
    if metafield_type not in PLACEMENT_TYPES:
        metafield_type = "multi_line_text_field"
    return {
        "mode": "metafield",
        "metafieldNamespace": namespace,
        "metafieldKey": key,
        "metafieldType": metafield_type,
    }


def html_to_single_line(html: str) -> str:
    return re.sub(r"\s+", " ", html).strip()


def truncate_html(html: str, max_length: int = 1000) -> str:
    if len(html) <= max_length:
        return html
    return f"{html[:max_length - 3]}..."


def build_product_input(product_gid: str, description: str, placement: dict, sync_seo_fields: bool,
                        seo_title: str | None = None, seo_description: str | None = None,
                        summary_html: str | None = None) -> dict:
    product_input: dict = {"id": product_gid}
    if placement["mode"] == "body_html":
        product_input["bodyHtml"] = description
    else:
        value = description
        if placement["metafieldType"] == "single_line_text_field":
            value = html_to_single_line(description)
        product_input["metafields"] = [
            {
                "namespace": placement["metafieldNamespace"],
                "key": placement["metafieldKey"],
                "type": placement["metafieldType"],
                "value": value,
            }
        ]
        if summary_html:
            product_input["bodyHtml"] = truncate_html(summary_html, 1000)

    if sync_seo_fields:
        seo: Dict[str, str] = {}
        if isinstance(seo_title, str) and seo_title.strip():
            seo["title"] = seo_title.strip()
        if isinstance(seo_description, str) and seo_description.strip():
            seo["description"] = seo_description.strip()
        if seo:
            product_input["seo"] = seo
    return product_input


def update_product(store: ShopifyStore, product_id: str, description: str, placement: dict,
                   sync_seo_fields: bool = True, seo_title: str | None = None,
                   seo_description: str | None = None, summary_html: str | None = None) -> dict:
    product_gid = build_product_gid(extract_numeric_id(product_id))
    product_input = build_product_input(
        product_gid, description, placement, sync_seo_fields, seo_title, seo_description, summary_html
    )

    metafield_selection = ""
    if placement["mode"] == "metafield":
        metafield_selection = METAFIELD_SELECTION % {
            "namespace": placement["metafieldNamespace"],
            "key": placement["metafieldKey"],
        }
    mutation = PRODUCT_UPDATE_MUTATION % {"metafield_selection": metafield_selection}

    data = graphql(store, mutation, {"input": product_input})
    result = data.get("productUpdate") or {}
    user_errors = result.get("userErrors") or []
    if user_errors:
        messages = ", ".join(err.get("message") for err in user_errors if err.get("message"))
        raise ShopifyError(messages or "Shopify returned errors while updating the product")

    updated = result.get("product") or {}
    seo = updated.get("seo") or {}
    is_metafield = placement["mode"] == "metafield"
    product = {
        "id": updated.get("id") or product_id,
        "title": updated.get("title") or "",
        "body_html": updated.get("bodyHtml") or ("" if is_metafield else description),
        "seoTitle": seo.get("title") or seo_title or "",
        "seoDescription": seo.get("description") or seo_description or "",
        "descriptionSource": placement["mode"],
    }
    if is_metafield:
        metafield = updated.get("metafield") or {}
        product["metafield"] = {
            "namespace": placement["metafieldNamespace"],
            "key": placement["metafieldKey"],
            "value": metafield.get("value", description),
            "type": metafield.get("type") or placement["metafieldType"],
        }
    return product


def test_connection(store: ShopifyStore) -> bool:
    try:
        shopify_request("GET", f"{store.base_url}/shop.json", store.headers, retries=0)
    except ShopifyError as exc:
        logger.warning("Shopify connection test failed for %s: %s", store.store_name, exc)
        return False
    return True


# ------------------------------------------------------------------------------
# Collections
# ------------------------------------------------------------------------------

def count_collections(store: ShopifyStore, kind: str) -> int:
    response = shopify_request("GET", f"{store.base_url}/{kind}_collections/count.json", store.headers)
    return int(response.json().get("count", 0))


def list_collections(store: ShopifyStore, kind: str) -> List[dict]:
    url: str | None = f"{store.base_url}/{kind}_collections.json"
    params: dict | None = {"limit": 250}
    collections: List[dict] = []
    while url:
        response = shopify_request("GET", url, store.headers, params=params)
        for collection in response.json().get(f"{kind}_collections", []):
            collection["collection_type"] = kind
            collections.append(collection)
        next_link = response.links.get("next")
        url = next_link["url"] if next_link else None
        params = None
        if url:
            time.sleep(COLLECTION_PAGE_DELAY)
    return collections


def list_collection_products(store: ShopifyStore, collection_id: str) -> List[dict]:
    url: str | None = f"{store.base_url}/collections/{collection_id}/products.json"
    params: dict | None = {"limit": 250}
    products: List[dict] = []
    while url:
        response = shopify_request("GET", url, store.headers, params=params)
        for product in response.json().get("products", []):
            image = product.get("image")
            products.append(
                {
                    "id": product.get("id"),
                    "title": product.get("title"),
                    "body_html": product.get("body_html"),
                    "vendor": product.get("vendor"),
                    "status": product.get("status"),
                    "image": {"src": image.get("src"), "alt": image.get("alt")} if image else None,
                    "images": [
                        {"src": img.get("src"), "alt": img.get("alt")} for img in product.get("images") or []
                    ],
                }
            )
        next_link = response.links.get("next")
        url = next_link["url"] if next_link else None
        params = None
    return products


def fetch_collection(store: ShopifyStore, collection_id: str) -> Tuple[dict, str]:
    for kind in ("custom", "smart"):
        try:
            response = shopify_request(
                "GET", f"{store.base_url}/{kind}_collections/{collection_id}.json", store.headers
            )
        except ShopifyError as exc:
            if exc.status_code == 404:
                continue
            raise
        return response.json().get(f"{kind}_collection") or {}, kind
    raise ShopifyError("Collection not found", status_code=404)


def update_collection(store: ShopifyStore, collection_id: str, description: str) -> Tuple[dict, str]:
    current, kind = fetch_collection(store, collection_id)
    published_at = current.get("published_at") or datetime.now(timezone.utc).isoformat()
    payload = {
        f"{kind}_collection": {
            "id": int(collection_id) if str(collection_id).isdigit() else collection_id,
            "body_html": description,
            "published_at": published_at,
            "published_scope": "web",
        }
    }
    response = shopify_request(
        "PUT", f"{store.base_url}/{kind}_collections/{collection_id}.json", store.headers, json=payload
    )
    logger.info("Updated %s collection %s", kind, collection_id)
    return response.json().get(f"{kind}_collection") or {}, kind
