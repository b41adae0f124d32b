from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List

import requests

import extraction
from settings import AppConfig

logger = logging.getLogger("seo_research")

SERPER_ENDPOINT = "https://google.serper.dev/search"
DATAFORSEO_RELATED_ENDPOINT = "https://api.dataforseo.com/v3/dataforseo_labs/google/related_keywords/live"
COMPETITOR_COUNT = 4
REQUEST_TIMEOUT = 20

# DataForSEO language name and location code per UI language.
LANGUAGE_MAPPING: Dict[str, Dict[str, object]] = {
    "en": {"name": "English", "code": 2840},
    "en-gb": {"name": "English", "code": 2826},
    "es": {"name": "Spanish", "code": 2724},
    "fr": {"name": "French", "code": 2250},
    "de": {"name": "German", "code": 2276},
    "it": {"name": "Italian", "code": 2380},
    "pt": {"name": "Portuguese", "code": 2076},
    "ru": {"name": "Russian", "code": 2643},
    "ja": {"name": "Japanese", "code": 2392},
    "zh": {"name": "Chinese", "code": 2156},
    "nl": {"name": "Dutch", "code": 2528},
    "pl": {"name": "Polish", "code": 2616},
    "tr": {"name": "Turkish", "code": 2792},
    "ar": {"name": "Arabic", "code": 2682},
    "da": {"name": "Danish", "code": 2208},
}

SEARCH_KEYWORDS_TOOL = {
    "type": "function",
    "function": {
        "name": "search_keywords",
        "description": "Search for keyword data including search volume, competition, and related keywords",
        "parameters": {
            "type": "object",
            "properties": {
                "keywords": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of keywords to search for",
                },
                "min_search_volume": {
                    "type": "number",
                    "description": "Minimum monthly search volume to filter results",
                },
                "language_code": {
                    "type": "string",
                    "description": "Language code for the keyword search",
                },
            },
            "required": ["keywords", "language_code"],
        },
    },
}


# ------------------------------------------------------------------------------
# Competitor outlines
# ------------------------------------------------------------------------------

def _fetch_competitor_headings(result: dict) -> dict:
    url = result.get("link") or ""
    headings: List[str] = []
    if url:
        try:
            headings = extraction.extract_headings(extraction.fetch_html(url, timeout=REQUEST_TIMEOUT))
        except Exception as exc:
            logger.warning("Error fetching competitor %s: %s", url, exc)
    return {"title": result.get("title") or "", "url": url, "headings": headings}


def get_competitor_outlines(config: AppConfig, keyword: str, country: str | None) -> List[dict]:
    if not config.serper_api_key:
        logger.info("SERPER_API_KEY not set; outlining without competitor data")
        return []
    try:
        response = requests.post(
            SERPER_ENDPOINT,
            headers={"X-API-KEY": config.serper_api_key, "Content-Type": "application/json"},
            json={"q": keyword, "gl": (country or "US").lower(), "num": COMPETITOR_COUNT},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        organic = response.json().get("organic") or []
    except Exception as exc:
        logger.warning("Error fetching competitor content for %r: %s", keyword, exc)
        return []

    results = organic[:COMPETITOR_COUNT]
    if not results:
        return []
    with ThreadPoolExecutor(max_workers=len(results)) as pool:
        competitors = list(pool.map(_fetch_competitor_headings, results))
    return [comp for comp in competitors if comp["headings"]]


def format_competitor_analysis(competitors: List[dict]) -> str:
    blocks = []
    for index, comp in enumerate(competitors, start=1):
        headings = "\n".join(f"{i}. {heading}" for i, heading in enumerate(comp["headings"], start=1))
        blocks.append(
            f"Competitor {index}: {comp['title']}\nURL: {comp['url']}\nOutline Structure:\n{headings}"
        )
    return "\n\n".join(blocks)


# ------------------------------------------------------------------------------
# Keyword volumes
# ------------------------------------------------------------------------------

def _related_keywords(config: AppConfig, keyword: str, language: dict, min_search_volume: float) -> dict | None:
    post_data = {
        "keyword": keyword,
        "language_name": language["name"],
        "location_code": language["code"],
        "filters": [["keyword_data.keyword_info.search_volume", ">", min_search_volume]],
    }
    try:
        response = requests.post(
            DATAFORSEO_RELATED_ENDPOINT,
            auth=(config.dataforseo_login, config.dataforseo_password),
            json=[post_data],
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        tasks = response.json().get("tasks") or []
        result = (tasks[0].get("result") or [None])[0] if tasks else None
    except Exception as exc:
        logger.warning("Error fetching keyword data for %r: %s", keyword, exc)
        return None
    if not result:
        return None
    return {"seed_keyword": keyword, **result}


def search_keywords(config: AppConfig, keywords: List[str], language: str,
                    min_search_volume: float = 10) -> List[dict]:
    language_info = LANGUAGE_MAPPING.get((language or "en").lower(), LANGUAGE_MAPPING["en"])
    if not keywords:
        return []
    with ThreadPoolExecutor(max_workers=min(8, len(keywords))) as pool:
        results = pool.map(
            lambda kw: _related_keywords(config, kw, language_info, min_search_volume), keywords
        )
        return [result for result in results if result]


def format_ai_response(content: str) -> str:
    """Normalise spacing around markdown headings so sections render apart."""
    sections = re.split(r"\n(?=\*\*|#)", content)
    formatted = []
    for section in sections:
        if "\n-" in section or "\n•" in section:
            formatted.append(section.strip())
        elif section.startswith("**") or section.startswith("#"):
            formatted.append(f"\n{section.strip()}\n")
        else:
            formatted.append(section.strip())
    return "\n\n".join(formatted)
