from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List

import requests
from requests.auth import HTTPBasicAuth

logger = logging.getLogger("wordpress")

REQUEST_TIMEOUT = 30
FIRST_IMAGE_RE = re.compile(r'<img[^>]+src="([^">]+)"', re.IGNORECASE)
BUILTIN_POST_TYPES = {
    "post", "page", "attachment", "nav_menu_item", "wp_block", "wp_template", "wp_template_part",
}


class WordPressError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass
class WordPressSite:
    api_url: str
    api_key: str
    username: str = "admin"

    @classmethod
    def from_credentials(cls, credentials: dict | None) -> "WordPressSite":
        credentials = credentials or {}
        api_url = (credentials.get("apiUrl") or "").strip()
        api_key = credentials.get("apiKey") or ""
        if not api_url or not api_key:
            raise WordPressError("WordPress credentials are incomplete", status_code=400)
        return cls(
            api_url=api_url.rstrip("/"),
            api_key=re.sub(r"\s+", "", api_key),
            username=(credentials.get("username") or "admin").strip() or "admin",
        )

    @property
    def auth(self) -> HTTPBasicAuth:
        return HTTPBasicAuth(self.username, self.api_key)

    def endpoint(self, path: str) -> str:
        return f"{self.api_url}/wp-json/wp/v2/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", REQUEST_TIMEOUT)
        response = requests.request(method, self.endpoint(path), auth=self.auth, **kwargs)
        if not response.ok:
            raise WordPressError(
                f"WordPress API error: {response.status_code} {response.reason}",
                status_code=response.status_code,
                body=response.text,
            )
        return response


def first_image_url(html: str) -> str | None:
    match = FIRST_IMAGE_RE.search(html or "")
    return match.group(1) if match else None


def resolve_featured_image(html: str, settings: dict) -> str | None:
    featured = settings.get("featuredImage") or {}
    if not featured.get("enabled"):
        return None
    if featured.get("useFirstImage"):
        return first_image_url(html)
    return featured.get("defaultImage") or None


def cast_custom_fields(fields: List[dict] | None) -> Dict[str, object]:
    meta: Dict[str, object] = {}
    for field in fields or []:
        key = field.get("key")
        if not key:
            continue
        value = field.get("value")
        if field.get("type") == "number":
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Custom field %s is not numeric: %r", key, value)
                continue
        elif field.get("type") == "boolean":
            value = str(value).lower() == "true"
        meta[key] = value
    return meta


def resolve_endpoint(settings: dict) -> str:
    post_type = settings.get("postType") or "post"
    if post_type == "page":
        return "pages"
    if post_type == "custom" and settings.get("customPostType"):
        return settings["customPostType"]
    return "posts"


def upload_featured_image(site: WordPressSite, image_url: str) -> int | None:
    try:
        response = site.request("POST", "media", json={"url": image_url})
    except (WordPressError, requests.RequestException) as exc:
        logger.warning("Failed to upload featured image %s: %s", image_url, exc)
        return None
    return response.json().get("id")


def publish_content(site: WordPressSite, title: str, html: str, status: str, settings: dict) -> dict:
    post_data: dict = {
        "title": {"raw": title},
        "content": {"raw": html},
        "status": status,
    }
    if settings.get("categories"):
        post_data["categories"] = settings["categories"]
    if settings.get("tags"):
        post_data["tags"] = settings["tags"]

    author = settings.get("author") or {}
    if author.get("useDefault") and author.get("defaultAuthorId"):
        post_data["author"] = author["defaultAuthorId"]

    image_url = resolve_featured_image(html, settings)
    if image_url:
        media_id = upload_featured_image(site, image_url)
        if media_id:
            post_data["featured_media"] = media_id

    meta = cast_custom_fields(settings.get("customFields"))
    if meta:
        post_data["meta"] = meta

    endpoint = resolve_endpoint(settings)
    logger.info("Publishing '%s' to %s (%s)", title, site.endpoint(endpoint), status)
    post = site.request("POST", endpoint, json=post_data).json()
    return {
        "success": True,
        "postId": post.get("id"),
        "postUrl": post.get("link"),
        "status": post.get("status"),
    }


def test_connection(site: WordPressSite) -> dict:
    return site.request("GET", "users/me").json()


def discover_api(site: WordPressSite) -> dict:
    return site.request("GET", "").json()


def get_categories(site: WordPressSite) -> List[dict]:
    return site.request("GET", "categories", params={"per_page": 100}).json()


def get_post_types(site: WordPressSite) -> List[dict]:
    types = site.request("GET", "types").json()
    result: List[dict] = []
    for slug, info in (types or {}).items():
        if slug in BUILTIN_POST_TYPES:
            continue
        result.append(
            {
                "slug": slug,
                "name": info.get("name", slug),
                "description": info.get("description", ""),
                "rest_base": info.get("rest_base", slug),
            }
        )
    return result
