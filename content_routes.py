from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

import requests
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import db
import extraction
import llm
import prompts
from auth import verify_user
from errors import error_response
from streaming import DONE_EVENT, event_stream, sse_event

logger = logging.getLogger("content")

router = APIRouter(prefix="/api", tags=["content"])

ARTICLE_MODEL = "chatgpt-4o-latest"
REASONING_MODEL = "o3-mini-2025-01-31"
REWRITE_MODEL = "gpt-4o-mini"
CONTENT_STATUSES = {"Published", "Draft"}
CHAT_ERROR_MESSAGE = "Sorry, I encountered an error while processing your request. Please try again."


class GenerateContentRequest(BaseModel):
    keyword: Optional[str] = None
    title: Optional[str] = None
    outline: List[str] = []
    relatedKeywords: List[str] = []
    tone: Optional[Dict[str, Any]] = None
    language: str = "en-US"
    targetCountry: str = "US"
    companyInfo: Optional[Dict[str, Any]] = None


class SaveContentRequest(BaseModel):
    websiteId: Optional[str] = None
    title: Optional[str] = None
    html: Optional[str] = None
    status: Optional[str] = None
    contentType: Optional[str] = None
    mainKeyword: Optional[str] = None
    relatedKeywords: List[str] = []


class ContentFieldRequest(BaseModel):
    contentId: Optional[str] = None
    html: Optional[str] = None
    status: Optional[str] = None


class WebhookRequest(BaseModel):
    webhookUrl: Optional[str] = None
    content: Any = None


class UrlRequest(BaseModel):
    url: Optional[str] = None
    mainKeyword: Optional[str] = None


class AnalyzeContentRequest(BaseModel):
    content: Optional[str] = None
    mainKeyword: Optional[str] = None


class ChatRequest(BaseModel):
    messages: List[Dict[str, Any]] = []
    currentContent: str = ""


class RewriteRequest(BaseModel):
    content: Optional[str] = None
    mainKeyword: Optional[str] = None
    relatedKeywords: List[str] = []


class EnhanceTextRequest(BaseModel):
    text: Optional[str] = None
    action: Optional[str] = None
    focus: Optional[str] = None


# ------------------------------------------------------------------------------
# Article generation
# ------------------------------------------------------------------------------

def _stream_section(payload: GenerateContentRequest, section: str, previous: str,
                    is_introduction: bool) -> Iterator[str]:
    messages = [
        {
            "role": "system",
            "content": prompts.article_system_prompt(payload.language, payload.targetCountry, payload.companyInfo),
        },
        {
            "role": "user",
            "content": prompts.article_section_prompt(
                payload.keyword or "", section, payload.relatedKeywords, previous, is_introduction, payload.tone
            ),
        },
    ]
    return llm.stream_completion(messages, model=ARTICLE_MODEL, temperature=0.7)


def generate_article_events(payload: GenerateContentRequest) -> Iterator[str]:
    full_content = ""
    try:
        title_content = f"<h1>{payload.title}</h1>\n\n"
        full_content += title_content
        yield sse_event({"content": title_content, "section": "Title"})

        intro_header = "<h2>Introduction</h2>\n"
        full_content += intro_header
        yield sse_event({"content": intro_header, "section": "Introduction"})
        for delta in _stream_section(payload, "Introduction", "", True):
            full_content += delta
            yield sse_event({"content": delta, "section": "Introduction"})

        for section in payload.outline[1:-1]:
            header = f"\n<h2>{section}</h2>\n"
            full_content += header
            yield sse_event({"content": header, "section": section})
            for delta in _stream_section(payload, section, full_content, False):
                full_content += delta
                yield sse_event({"content": delta, "section": section})

        conclusion = payload.outline[-1] if len(payload.outline) > 1 else "Conclusion"
        header = f"\n<h2>{conclusion}</h2>\n"
        full_content += header
        yield sse_event({"content": header, "section": conclusion})
        for delta in _stream_section(payload, conclusion, full_content, False):
            full_content += delta
            yield sse_event({"content": delta, "section": conclusion})
    except Exception as exc:
        logger.exception("Article generation failed: %s", exc)
        yield sse_event({"error": "Failed to generate content"})
    yield DONE_EVENT


@router.post("/content")
def generate_content(payload: GenerateContentRequest, user: str = Depends(verify_user)):
    if not payload.keyword or not payload.title:
        raise HTTPException(status_code=400, detail="Keyword and title are required")
    return event_stream(generate_article_events(payload))


# ------------------------------------------------------------------------------
# Content CRUD
# ------------------------------------------------------------------------------

@router.post("/content/save")
def save_content(payload: SaveContentRequest, user: str = Depends(verify_user)) -> dict:
    if not payload.websiteId or not payload.title or not payload.html:
        raise HTTPException(status_code=400, detail="Missing required fields")
    website = db.get_website(payload.websiteId)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    item = {
        "_id": db.new_id(),
        "title": payload.title,
        "html": payload.html,
        "date": db.utcnow_iso(),
        "status": payload.status or "Draft",
        "contentType": payload.contentType or "Blog Post",
        "mainKeyword": payload.mainKeyword or "",
        "relatedKeywords": payload.relatedKeywords,
        "folderId": None,
        "platformPublishStatus": {},
    }
    website["content"].append(item)
    db.save_website(website)
    logger.info("Saved content %s to %s", item["_id"], website["name"])
    return {"success": True, "contentId": item["_id"]}


def _load_content(content_id: str):
    website, item = db.find_website_by_content_id(content_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Content not found")
    return website, item


@router.post("/content/update")
def update_content(payload: ContentFieldRequest, user: str = Depends(verify_user)) -> dict:
    if not payload.contentId or payload.html is None:
        raise HTTPException(status_code=400, detail="Missing required fields")
    website, item = _load_content(payload.contentId)
    item["html"] = payload.html
    db.save_website(website)
    return {"success": True}


@router.post("/content/update-status")
def update_content_status(payload: ContentFieldRequest, user: str = Depends(verify_user)) -> dict:
    if not payload.contentId or not payload.status:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if payload.status not in CONTENT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    website, item = _load_content(payload.contentId)
    item["status"] = payload.status
    db.save_website(website)
    return {"success": True}


@router.post("/content/delete")
def delete_content(payload: ContentFieldRequest, user: str = Depends(verify_user)) -> dict:
    if not payload.contentId:
        raise HTTPException(status_code=400, detail="Missing content ID")
    website, _ = _load_content(payload.contentId)
    website["content"] = [c for c in website["content"] if c.get("_id") != payload.contentId]
    db.save_website(website)
    return {"success": True}


@router.post("/content/webhook")
def send_to_webhook(payload: WebhookRequest, user: str = Depends(verify_user)):
    if not payload.webhookUrl:
        raise HTTPException(status_code=400, detail="Webhook URL is required")
    try:
        response = requests.post(payload.webhookUrl, json=payload.content, timeout=30)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.exception("Webhook delivery to %s failed: %s", payload.webhookUrl, exc)
        return error_response(500, "Failed to send content to webhook")
    return {"success": True}


# ------------------------------------------------------------------------------
# Import
# ------------------------------------------------------------------------------

@router.post("/content/fetch-url")
def fetch_url(payload: UrlRequest, user: str = Depends(verify_user)):
    if not payload.url:
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        html = extraction.fetch_html(payload.url)
        content = extraction.html_to_article_html(html)
    except Exception as exc:
        logger.exception("Error fetching URL %s: %s", payload.url, exc)
        return error_response(500, "Failed to fetch content from URL")
    return {"content": content, "contentType": "html"}


@router.post("/content/crawl")
def crawl(payload: UrlRequest, user: str = Depends(verify_user)):
    if not payload.url:
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        html = extraction.fetch_html(payload.url)
        content = extraction.extract_content_elements(html, payload.mainKeyword)
    except Exception as exc:
        logger.exception("Error crawling website %s: %s", payload.url, exc)
        return error_response(500, "Failed to crawl website")
    return {"content": content}


# ------------------------------------------------------------------------------
# Editing
# ------------------------------------------------------------------------------

@router.post("/content/analyze")
def analyze_content(payload: AnalyzeContentRequest, user: str = Depends(verify_user)):
    if not payload.content or not payload.mainKeyword:
        raise HTTPException(status_code=400, detail="Content and main keyword are required")
    try:
        raw = llm.complete(
            [
                {"role": "developer", "content": prompts.ANALYZE_CONTENT_SYSTEM},
                {"role": "user", "content": prompts.analyze_content_prompt(payload.content, payload.mainKeyword)},
            ],
            model=REASONING_MODEL,
            response_format={"type": "json_object"},
        )
        suggestions = json.loads(raw or "{}")
    except Exception as exc:
        logger.exception("Error analyzing content: %s", exc)
        return error_response(500, "Failed to analyze content")
    return {
        "headlines": suggestions.get("headlines", []),
        "sections": suggestions.get("sections", []),
        "improvements": suggestions.get("improvements", []),
    }


def chat_events(payload: ChatRequest) -> Iterator[str]:
    messages = [{"role": "developer", "content": prompts.chat_system_prompt(payload.currentContent)}]
    messages.extend(payload.messages)
    response_text = ""
    try:
        for delta in llm.stream_completion(messages, model=REASONING_MODEL):
            response_text += delta
            try:
                parsed = json.loads(response_text)
            except ValueError:
                yield sse_event({"type": "message", "content": response_text})
                continue
            updates = parsed.get("updates") if isinstance(parsed, dict) else None
            for update in updates or []:
                yield sse_event({"type": "content", "update": update})
                yield sse_event({"type": "message", "content": update.get("explanation", "")})
    except Exception as exc:
        logger.exception("Error in chat processing: %s", exc)
        yield sse_event({"type": "message", "content": CHAT_ERROR_MESSAGE})
        return
    yield DONE_EVENT


@router.post("/content/chat")
def chat(payload: ChatRequest, user: str = Depends(verify_user)):
    return event_stream(chat_events(payload))


def format_rewrite_buffer(buffer: str) -> str:
    processed = buffer.replace("\n\n", "</p><p>").replace("\n", "<br>")
    processed = re.sub(r"<p><h([23])", r"</p><h\1", processed)
    return re.sub(r"</h([23])></p>", r"</h\1><p>", processed)


def rewrite_events(payload: RewriteRequest) -> Iterator[str]:
    messages = [
        {"role": "system", "content": prompts.REWRITE_SYSTEM},
        {
            "role": "user",
            "content": prompts.rewrite_prompt(payload.content, payload.mainKeyword, payload.relatedKeywords),
        },
    ]
    buffer = ""
    try:
        for delta in llm.stream_completion(
            messages,
            model=REWRITE_MODEL,
            temperature=0.7,
            max_tokens=4000,
            presence_penalty=0.3,
            frequency_penalty=0.3,
        ):
            buffer += delta
            yield sse_event({"content": format_rewrite_buffer(buffer)})
    except Exception as exc:
        logger.exception("Rewrite failed: %s", exc)
        yield sse_event({"error": "Failed to rewrite content"})
    yield DONE_EVENT


@router.post("/content/rewrite")
def rewrite(payload: RewriteRequest, user: str = Depends(verify_user)):
    if not payload.content or not payload.mainKeyword:
        raise HTTPException(status_code=400, detail="Content and main keyword are required")
    return event_stream(rewrite_events(payload))


def enhance_events(payload: EnhanceTextRequest) -> Iterator[str]:
    messages = prompts.enhance_messages(payload.action, payload.text, payload.focus)
    try:
        for delta in llm.stream_completion(messages, model="gpt-4o-mini", temperature=0.7):
            yield sse_event({"content": delta})
    except Exception as exc:
        logger.exception("Text enhancement failed: %s", exc)
        yield sse_event({"error": "Failed to enhance text"})
    yield DONE_EVENT


@router.post("/enhance-text")
def enhance_text(payload: EnhanceTextRequest, user: str = Depends(verify_user)):
    if not payload.text:
        raise HTTPException(status_code=400, detail="Text is required")
    if payload.action not in prompts.ENHANCE_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action specified")
    return event_stream(enhance_events(payload))
