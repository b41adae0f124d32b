from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict

logger = logging.getLogger("cache")


@dataclass
class CachedEntry:
    value: Any
    stored_at: float


class ProductPageCache:
    """Short-lived cache of Shopify product pages keyed by company and cursor.

    Each company keeps at most ``max_entries`` pages; the oldest page is
    dropped when a new one would exceed the cap.
    """

    def __init__(self, ttl: float = 300.0, max_entries: int = 10) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries: Dict[str, "OrderedDict[str, CachedEntry]"] = {}
        self._lock = threading.Lock()

    @staticmethod
    def build_key(company: str, cursor: str | None) -> str:
        return f"{company}:{cursor or 'initial'}"

    def get(self, company: str, cursor: str | None) -> Any | None:
        key = self.build_key(company, cursor)
        with self._lock:
            pages = self._entries.get(company)
            if not pages or key not in pages:
                return None
            entry = pages[key]
            if time.time() - entry.stored_at > self.ttl:
                del pages[key]
                return None
            return entry.value

    def set(self, company: str, cursor: str | None, value: Any) -> None:
        key = self.build_key(company, cursor)
        with self._lock:
            pages = self._entries.setdefault(company, OrderedDict())
            pages.pop(key, None)
            pages[key] = CachedEntry(value=value, stored_at=time.time())
            while len(pages) > self.max_entries:
                evicted, _ = pages.popitem(last=False)
                logger.debug("Evicted cached product page %s", evicted)

    def invalidate(self, company: str) -> None:
        with self._lock:
            self._entries.pop(company, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class PageResultCache:
    """Per-URL results of sitemap page processing for the life of the process."""

    def __init__(self) -> None:
        self._results: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> dict | None:
        with self._lock:
            return self._results.get(url)

    def set(self, url: str, result: dict) -> None:
        with self._lock:
            self._results[url] = result

    def clear(self) -> None:
        with self._lock:
            self._results.clear()
