from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping

logger = logging.getLogger("settings")


@dataclass
class AppConfig:
    openai_api_key: str
    gemini_keys: List[str]
    gemini_wait_for_available: float
    serper_api_key: str
    dataforseo_login: str
    dataforseo_password: str
    google_client_id: str
    google_client_secret: str
    oauth_state_secret: str
    app_url: str
    shopify_api_version: str
    product_cache_ttl: float
    product_cache_max_entries: int
    http_timeout: float
    sitemap_sampling_enabled: bool


def as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def as_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def parse_api_keys(value: str | None) -> List[str]:
    if not value:
        return []
    keys: List[str] = []
    for line in value.splitlines():
        for part in line.split(","):
            if part.strip():
                keys.append(part.strip())
    return keys


def build_app_config(config_map: Mapping[str, str]) -> AppConfig:
    requested_timeout = as_float(config_map.get("HTTP_TIMEOUT"), default=30.0)
    http_timeout = max(5.0, min(120.0, requested_timeout))
    if http_timeout != requested_timeout:
        logger.warning(
            "Clamping outbound HTTP timeout from %s to %s seconds",
            requested_timeout,
            http_timeout,
        )

    return AppConfig(
        openai_api_key=config_map.get("OPENAI_API_KEY", "").strip(),
        gemini_keys=parse_api_keys(config_map.get("GOOGLE_API_KEY")),
        gemini_wait_for_available=max(0.0, as_float(config_map.get("GEMINI_WAIT_FOR_AVAILABLE"), default=5.0)),
        serper_api_key=config_map.get("SERPER_API_KEY", "").strip(),
        dataforseo_login=config_map.get("DATAFORSEO_LOGIN", "").strip(),
        dataforseo_password=config_map.get("DATAFORSEO_PASSWORD", "").strip(),
        google_client_id=config_map.get("GOOGLE_CLIENT_ID", "").strip(),
        google_client_secret=config_map.get("GOOGLE_CLIENT_SECRET", "").strip(),
        oauth_state_secret=(
            config_map.get("OAUTH_STATE_SECRET", "").strip()
            or config_map.get("GOOGLE_CLIENT_SECRET", "").strip()
            or "dev-oauth-state-secret"
        ),
        app_url=config_map.get("APP_URL", "http://localhost:8000").rstrip("/"),
        shopify_api_version=config_map.get("SHOPIFY_API_VERSION", "2024-01").strip() or "2024-01",
        product_cache_ttl=max(0.0, as_float(config_map.get("PRODUCT_CACHE_TTL"), default=300.0)),
        product_cache_max_entries=max(1, as_int(config_map.get("PRODUCT_CACHE_MAX_ENTRIES"), default=10)),
        http_timeout=http_timeout,
        sitemap_sampling_enabled=as_bool(config_map.get("SITEMAP_SAMPLING_ENABLED"), default=True),
    )


def get_config() -> AppConfig:
    return build_app_config(os.environ)
