from __future__ import annotations

import html as html_lib
import logging
import re
from typing import Iterable, List

import requests
from bs4 import BeautifulSoup, Tag

import settings

logger = logging.getLogger("extraction")

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; ContentWriterAI-Bot/1.0)",
    "Accept": "text/html,application/xhtml+xml",
}

ARTICLE_CONTAINERS = (
    "article, main, .content, .main-content, #content, #main-content, .post-content, .entry-content"
)
CRAWL_CONTAINERS = "main, article, .content, #content, .main-content, #main-content"
CRAWL_ELEMENTS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "ul", "ol", "li", "blockquote"]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

FETCH_URL_NOISE = [
    "script", "style", "nav", "header", "footer", "iframe", "noscript", "svg",
    ".cookie-banner", "[class*='cookie']", "[class*='popup']", "[class*='modal']",
]
CRAWL_NOISE = ["script", "style", "nav", "header", "footer", "iframe", "noscript", "meta", "link"]
SUMMARY_NOISE = ["img", "iframe", "script", "style", "noscript"]
ANALYSIS_NOISE = [
    "script", "style", "nav", "footer", "header", "aside", "form", "noscript", "svg",
    "img", "picture", "video", "audio", "iframe", "canvas", "map", "object", "embed",
]

WHITESPACE_RE = re.compile(r"\s+")
CODE_FENCE_RE = re.compile(r"^```(?:html)?\s*|\s*```$", re.IGNORECASE)


def fetch_html(url: str, headers: dict | None = None, timeout: float | None = None) -> str:
    if timeout is None:
        timeout = settings.get_config().http_timeout
    response = requests.get(url, headers=headers or BROWSER_HEADERS, timeout=timeout)
    response.raise_for_status()
    return response.text


def remove_noise(soup: BeautifulSoup, selectors: Iterable[str]) -> None:
    for selector in selectors:
        for element in soup.select(selector):
            element.decompose()


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_RE.sub("", text.strip()).strip()


def html_to_article_html(raw_html: str) -> str:
    """Rebuild the main content of a page as simple article HTML.

    Headings become h2 (from h1) or h3, text blocks become paragraphs and
    lists keep their items. Site chrome such as navigation, cookie banners
    and modals is dropped.
    """
    soup = BeautifulSoup(raw_html, "html.parser")
    remove_noise(soup, FETCH_URL_NOISE)
    container = soup.select_one(ARTICLE_CONTAINERS) or soup.body or soup

    parts: List[str] = []
    block_tags = HEADING_TAGS + ["p", "div", "ul", "ol"]
    for element in container.find_all(block_tags):
        if element.find_parent(["ul", "ol"]) is not None:
            continue
        if element.find_parent(HEADING_TAGS) is not None:
            continue
        name = element.name
        if name in HEADING_TAGS:
            text = collapse_whitespace(element.get_text(" "))
            if text:
                level = "h2" if name == "h1" else "h3"
                parts.append(f"<{level}>{html_lib.escape(text, quote=False)}</{level}>")
        elif name in ("ul", "ol"):
            items = [collapse_whitespace(li.get_text(" ")) for li in element.find_all("li")]
            items = [item for item in items if item]
            if items:
                lines = [f"  <li>{html_lib.escape(item, quote=False)}</li>" for item in items]
                parts.append(f"<{name}>\n" + "\n".join(lines) + f"\n</{name}>")
        elif name == "div" and element.find(block_tags) is not None:
            continue
        elif name == "p" and element.find_parent("p") is not None:
            continue
        else:
            text = collapse_whitespace(element.get_text(" "))
            if text:
                parts.append(f"<p>{html_lib.escape(text, quote=False)}</p>")

    processed = "\n".join(parts).strip()
    if processed and not processed.startswith("<"):
        processed = f"<p>{processed}</p>"
    return processed


def extract_content_elements(raw_html: str, main_keyword: str | None = None) -> str:
    soup = BeautifulSoup(raw_html, "html.parser")
    remove_noise(soup, CRAWL_NOISE)

    containers = soup.select(CRAWL_CONTAINERS)
    if not containers:
        containers = [soup.body or soup]

    elements: List[Tag] = []
    for container in containers:
        for element in container.find_all(CRAWL_ELEMENTS):
            element.attrs.pop("style", None)
            element.attrs.pop("class", None)
            elements.append(element)

    if main_keyword:
        needle = main_keyword.lower()
        relevant = [el for el in elements if needle in el.get_text().lower()]
        if relevant:
            elements = relevant

    content = "\n".join(str(element) for element in elements)
    return re.sub(r"\n{3,}", "\n\n", content).strip()


def extract_summary_text(raw_html: str, limit: int = 3000) -> str:
    soup = BeautifulSoup(raw_html, "html.parser")
    remove_noise(soup, SUMMARY_NOISE)
    body = soup.body or soup
    return collapse_whitespace(body.get_text(" "))[:limit]


def extract_main_text(raw_html: str) -> str:
    soup = BeautifulSoup(raw_html, "html.parser")
    remove_noise(soup, ANALYSIS_NOISE)
    container = soup.find("main") or soup.find("article") or soup.body or soup
    return collapse_whitespace(container.get_text(" "))


def extract_headings(raw_html: str) -> List[str]:
    soup = BeautifulSoup(raw_html, "html.parser")
    remove_noise(soup, ["script", "style"])
    headings = [collapse_whitespace(el.get_text(" ")) for el in soup.find_all(["h1", "h2", "h3"])]
    return [heading for heading in headings if heading]


def first_h1(raw_html: str) -> str | None:
    soup = BeautifulSoup(raw_html, "html.parser")
    heading = soup.find("h1")
    if heading is None:
        return None
    text = collapse_whitespace(heading.get_text(" "))
    return text or None
