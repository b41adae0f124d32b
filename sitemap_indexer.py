from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Tuple

import requests

import extraction
from cache import PageResultCache

logger = logging.getLogger("sitemap")

BATCH_SIZE = 100
MAX_URLS_TO_PROCESS = 4000
SAMPLING_RATE = 0.1
SUB_SITEMAP_BATCH_SIZE = 10
MAX_SITEMAP_DEPTH = 5
PAGE_WORKERS = 20
PAGE_FETCH_TIMEOUT = 10
SITEMAP_FETCH_TIMEOUT = 20

USER_AGENT = "SitemapIndexer/1.0 (Batch Processor)"
SITEMAP_HEADERS = {"User-Agent": USER_AGENT, "Accept": "text/xml, application/xml"}
PAGE_HEADERS = {"User-Agent": USER_AGENT, "Accept": "text/html"}

PAGE_RESULTS = PageResultCache()


class SitemapError(RuntimeError):
    pass


@dataclass
class CollectedUrls:
    urls: List[str] = field(default_factory=list)
    discovered: int = 0


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _child_locs(root: ET.Element, entry_name: str) -> List[str]:
    locs: List[str] = []
    for entry in root:
        if _local_name(entry.tag) != entry_name:
            continue
        loc = ""
        for child in entry:
            if _local_name(child.tag) == "loc":
                loc = (child.text or "").strip()
                break
        locs.append(loc)
    return locs


def fetch_and_parse_sitemap(url: str) -> Tuple[List[str], bool]:
    """Return the ``<loc>`` entries of a sitemap and whether it is a sitemap index."""
    response = requests.get(url, headers=SITEMAP_HEADERS, timeout=SITEMAP_FETCH_TIMEOUT)
    if not response.ok:
        raise SitemapError(f"Failed to fetch sitemap: {response.status_code} {response.reason}")

    try:
        root = ET.fromstring(response.content)
    except ET.ParseError as exc:
        raise SitemapError(f"Invalid sitemap XML: {exc}") from exc

    root_name = _local_name(root.tag)
    if root_name == "sitemapindex":
        return [loc for loc in _child_locs(root, "sitemap") if loc], True
    if root_name == "urlset":
        return _child_locs(root, "url"), False
    raise SitemapError("Invalid sitemap structure: expected <urlset> or <sitemapindex> root element")


def apply_url_sampling(urls: List[str], rate: float = SAMPLING_RATE, enabled: bool = True,
                       max_urls: int | None = None) -> List[str]:
    if max_urls is None:
        max_urls = MAX_URLS_TO_PROCESS
    if not enabled or len(urls) <= max_urls:
        return urls[:max_urls]

    step = max(1, round(1 / rate)) if rate > 0 else 1
    sampled: List[str] = []
    for index in range(0, len(urls), step):
        sampled.append(urls[index])
        if len(sampled) >= max_urls:
            break
    logger.info("Sampled %d URLs from %d total", len(sampled), len(urls))
    return sampled


def _fetch_sub_sitemap(url: str) -> Tuple[List[str], bool]:
    try:
        return fetch_and_parse_sitemap(url)
    except Exception as exc:
        logger.warning("Error processing sub-sitemap %s: %s", url, exc)
        return [], False


def collect_sitemap_urls(sitemap_url: str, rate: float = SAMPLING_RATE,
                         sampling_enabled: bool = True) -> CollectedUrls:
    """Walk a sitemap (or a tree of sitemap indexes) and collect unique page URLs.

    Indexes are followed breadth first, fetching ``SUB_SITEMAP_BATCH_SIZE``
    children at a time. Each sitemap URL is fetched at most once and nesting
    stops after ``MAX_SITEMAP_DEPTH`` levels.
    """
    locs, is_index = fetch_and_parse_sitemap(sitemap_url)
    if not is_index:
        unique = list(dict.fromkeys(locs))
        return CollectedUrls(urls=unique, discovered=len(unique))

    logger.info("Sitemap index %s lists %d sub-sitemaps", sitemap_url, len(locs))
    visited = {sitemap_url}
    pending: List[str] = []
    for loc in locs:
        if loc not in visited:
            visited.add(loc)
            pending.append(loc)

    collected: List[str] = []
    seen: set = set()
    discovered = 0
    depth = 1
    while pending:
        if depth > MAX_SITEMAP_DEPTH:
            logger.warning("Sitemap nesting deeper than %d levels under %s; ignoring %d sitemaps",
                           MAX_SITEMAP_DEPTH, sitemap_url, len(pending))
            break

        nested: List[str] = []
        for start in range(0, len(pending), SUB_SITEMAP_BATCH_SIZE):
            batch = pending[start:start + SUB_SITEMAP_BATCH_SIZE]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                results = list(pool.map(_fetch_sub_sitemap, batch))
            for sub_url, (urls, child_is_index) in zip(batch, results):
                if child_is_index:
                    logger.info("Following nested sitemap index %s (%d entries)", sub_url, len(urls))
                    for loc in urls:
                        if loc not in visited:
                            visited.add(loc)
                            nested.append(loc)
                    continue
                for url in urls:
                    if url in seen:
                        continue
                    seen.add(url)
                    discovered += 1
                    collected.append(url)

            if len(collected) > MAX_URLS_TO_PROCESS * 2:
                logger.info("Already collected %d URLs, applying early sampling", len(collected))
                collected = apply_url_sampling(collected, rate, sampling_enabled)

        pending = nested
        depth += 1

    return CollectedUrls(urls=collected, discovered=discovered)


def _error_result(url: str, status: str, error: str) -> dict:
    return {
        "url": url,
        "h1": None,
        "summary": "N/A",
        "toneOfVoice": "N/A",
        "status": status,
        "error": error,
    }


def process_page(url: str) -> dict:
    if not url or not url.strip():
        return _error_result("", "Missing URL in sitemap entry", "URL was malformed or empty")

    cached = PAGE_RESULTS.get(url)
    if cached is not None:
        return cached

    try:
        try:
            head = requests.head(url, headers=PAGE_HEADERS, timeout=PAGE_FETCH_TIMEOUT, allow_redirects=True)
        except requests.RequestException as exc:
            logger.debug("HEAD request failed for %s, falling back to GET: %s", url, exc)
            head = None

        if head is not None:
            if not head.ok:
                return _error_result(
                    url, "Error fetching page", f"HEAD request failed: {head.status_code} {head.reason}"
                )
            content_type = head.headers.get("Content-Type", "")
            if content_type and "text/html" not in content_type.lower():
                result = {
                    "url": url,
                    "h1": None,
                    "summary": f"Not HTML content ({content_type})",
                    "toneOfVoice": "N/A",
                    "status": "Processed",
                    "error": f"Skipped non-HTML content: {content_type}",
                }
                PAGE_RESULTS.set(url, result)
                return result

        response = requests.get(url, headers=PAGE_HEADERS, timeout=PAGE_FETCH_TIMEOUT)
        if not response.ok:
            return _error_result(
                url, "Error fetching page", f"Status: {response.status_code} - {response.reason}"
            )

        result = {
            "url": url,
            "h1": extraction.first_h1(response.text),
            "summary": f"Content from {url}",
            "toneOfVoice": "Not analyzed",
            "status": "Processed",
        }
    except requests.Timeout as exc:
        logger.warning("Timed out fetching %s", url)
        return _error_result(url, "Error fetching page", str(exc))
    except Exception as exc:
        logger.warning("Error processing page %s: %s", url, exc)
        return _error_result(url, "Error parsing page", str(exc))

    PAGE_RESULTS.set(url, result)
    return result


def process_pages(urls: List[str]) -> List[dict]:
    pages: List[dict] = []
    for start in range(0, len(urls), BATCH_SIZE):
        batch = urls[start:start + BATCH_SIZE]
        with ThreadPoolExecutor(max_workers=min(PAGE_WORKERS, len(batch))) as pool:
            pages.extend(pool.map(process_page, batch))
        logger.info("Processed %d/%d pages", len(pages), len(urls))
    return pages


def build_stats(pages: List[dict], original_count: int, sampled: bool) -> dict:
    success = sum(1 for page in pages if page.get("status") == "Processed")
    return {
        "total": len(pages),
        "success": success,
        "errors": len(pages) - success,
        "originalUrlCount": original_count,
        "sampled": sampled,
    }
