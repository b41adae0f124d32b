from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

import db
import extraction
import llm
import prompts
import seo_research
import settings
from auth import verify_user
from errors import error_response
from streaming import event_stream, sse_event

logger = logging.getLogger("ai")

router = APIRouter(prefix="/api", tags=["ai"])

ANALYSIS_USER_AGENT = "ContentWriterAI-Bot/1.0"
MAX_CHARS_PER_URL = 20000
MAX_TOTAL_CHARS = 100000
OUTLINE_MODEL = "gpt-4.1-mini"
KEYWORD_RESEARCH_MODEL = "gpt-4o-2024-08-06"

KEYWORD_RESEARCH_SYSTEM = """You are an expert keyword research assistant that helps users find the best keywords for their target audience.
You have access to real keyword data through the search_keywords function.
When asking questions, always put each question on its own line as a bullet point or numbered item.
Follow these steps:
1. Understand their target audience, products, or content goals
2. Generate relevant keyword ideas based on their input
3. Use the search_keywords function to get data about these keywords
4. Analyze the results: search volume, competition, commercial intent and related opportunities
Respond in the same language as the user's input."""


class UrlBody(BaseModel):
    url: Optional[str] = None


class SelectKeyUrlsRequest(BaseModel):
    urls: Any = None
    websiteId: Any = None
    model: Any = None


class AnalyzeUrlsRequest(BaseModel):
    keyUrls: Any = None
    websiteId: Any = None
    model: Any = None


class TextBody(BaseModel):
    text: Optional[str] = None


class GoogleRequest(BaseModel):
    prompt: Optional[str] = None
    systemInstruction: Optional[str] = None


class LanguageProfileRequest(BaseModel):
    language: Any = None


class TitleRequest(BaseModel):
    keyword: Optional[str] = None
    language: str = "en-US"
    targetCountry: str = "US"
    contentType: Optional[str] = None
    businessName: Optional[str] = None


class ToneRequest(BaseModel):
    sampleText: Optional[str] = None


class KeywordRequest(BaseModel):
    keyword: Optional[str] = None


class OutlineRequest(BaseModel):
    keyword: Optional[str] = None
    title: Optional[str] = None
    language: str = "en-US"
    targetCountry: str = "US"
    contentType: Optional[str] = None
    targetWordCount: int = 1000


class KeywordResearchRequest(BaseModel):
    messages: List[Dict[str, Any]] = []
    language: str = "en"


class DescriptionRequest(BaseModel):
    title: Optional[str] = None
    company: Optional[str] = None
    existingDescription: Optional[str] = None


def _ai_not_configured():
    return error_response(500, "AI service not configured.")


# ------------------------------------------------------------------------------
# Website analysis
# ------------------------------------------------------------------------------

@router.post("/analyze-website")
def analyze_website(payload: UrlBody, user: str = Depends(verify_user)):
    if not payload.url:
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        text = extraction.extract_summary_text(extraction.fetch_html(payload.url))
        summary = llm.complete(
            [
                {"role": "system", "content": prompts.WEBSITE_SUMMARY_SYSTEM},
                {"role": "user", "content": text},
            ],
            model="gpt-4o-mini",
        )
    except Exception as exc:
        logger.exception("Error analyzing website %s: %s", payload.url, exc)
        return error_response(500, "Failed to analyze website")
    return {"summary": summary}


@router.post("/ai/select-key-urls")
def select_key_urls(payload: SelectKeyUrlsRequest, user: str = Depends(verify_user)):
    if not isinstance(payload.urls, list) or not payload.urls:
        raise HTTPException(status_code=400, detail="Missing or invalid URLs list.")
    if not isinstance(payload.websiteId, str) or not payload.websiteId:
        raise HTTPException(status_code=400, detail="Missing or invalid websiteId.")
    if not isinstance(payload.model, str) or not payload.model:
        raise HTTPException(status_code=400, detail="Missing or invalid AI model name.")
    if not llm.is_configured():
        return _ai_not_configured()

    logger.info("Requesting %s for websiteId %s with %d URLs", payload.model, payload.websiteId, len(payload.urls))
    try:
        raw = llm.complete(
            [
                {"role": "developer", "content": prompts.SELECT_KEY_URLS_SYSTEM},
                {"role": "user", "content": prompts.select_key_urls_prompt([str(u) for u in payload.urls])},
            ],
            model=payload.model,
            response_format={"type": "json_object"},
        )
    except Exception as exc:
        logger.exception("Key URL selection failed: %s", exc)
        return error_response(500, "Failed to select key URLs.", details=str(exc))

    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.error("AI returned non-JSON key URL selection: %s", raw)
        return error_response(500, "Failed to parse AI response.", rawResponse=raw)

    if isinstance(parsed, dict) and isinstance(parsed.get("selectedUrls"), list):
        selected = parsed["selectedUrls"]
    elif isinstance(parsed, list):
        selected = parsed
    else:
        return error_response(500, "AI response was not in the expected format.", rawResponse=raw)
    if not all(isinstance(url, str) for url in selected):
        return error_response(500, "AI response was not in the expected format.", rawResponse=raw)

    logger.info("AI returned %d key URLs for %s", len(selected), payload.websiteId)
    return {"keyUrls": selected}


def crawl_for_analysis(urls: List[str]) -> Tuple[str, List[str], List[dict]]:
    combined = ""
    crawled: List[str] = []
    errors: List[dict] = []
    headers = {"User-Agent": ANALYSIS_USER_AGENT}
    for url in urls:
        if len(combined) >= MAX_TOTAL_CHARS:
            logger.info("Reached total content budget; skipping remaining URLs")
            break
        try:
            text = extraction.extract_main_text(extraction.fetch_html(url, headers=headers))
        except Exception as exc:
            logger.warning("Failed to extract %s: %s", url, exc)
            errors.append({"url": url, "error": str(exc)})
            continue
        if not text:
            errors.append({"url": url, "error": "No text content found"})
            continue
        if len(text) > MAX_CHARS_PER_URL:
            text = text[:MAX_CHARS_PER_URL] + "... [truncated]"
        block = f"Content from {url}:\n{text}\n\n---\n\n"
        remaining = MAX_TOTAL_CHARS - len(combined)
        combined += block[:remaining]
        crawled.append(url)
    return combined, crawled, errors


def _analyze_urls(payload: AnalyzeUrlsRequest, system_prompt: str, temperature: float):
    if not isinstance(payload.keyUrls, list) or not payload.keyUrls:
        raise HTTPException(status_code=400, detail="Missing or invalid keyUrls list.")
    if not isinstance(payload.websiteId, str) or not payload.websiteId:
        raise HTTPException(status_code=400, detail="Missing or invalid websiteId.")
    if not isinstance(payload.model, str) or not payload.model:
        raise HTTPException(status_code=400, detail="Missing or invalid AI model name.")
    if not llm.is_configured():
        return _ai_not_configured()

    combined, crawled, errors = crawl_for_analysis([str(url) for url in payload.keyUrls])
    if not crawled:
        return error_response(500, "Could not extract any content from the provided URLs.", details=errors)

    try:
        analysis = llm.complete(
            [
                {"role": "developer", "content": system_prompt},
                {"role": "user", "content": prompts.crawled_content_prompt(combined)},
            ],
            model=payload.model,
            temperature=temperature,
        )
    except Exception as exc:
        logger.exception("Analysis with %s failed: %s", payload.model, exc)
        return error_response(500, "Failed to analyze content.", details=str(exc))

    result = {"analysis": analysis, "crawledUrls": crawled}
    if errors:
        result["extractionErrors"] = errors
    return result


@router.post("/ai/analyze-business-from-urls")
def analyze_business(payload: AnalyzeUrlsRequest, user: str = Depends(verify_user)):
    return _analyze_urls(payload, prompts.BUSINESS_ANALYSIS_SYSTEM, 0.5)


@router.post("/ai/analyze-content-structure")
def analyze_content_structure(payload: AnalyzeUrlsRequest, user: str = Depends(verify_user)):
    return _analyze_urls(payload, prompts.CONTENT_STRUCTURE_SYSTEM, 0.3)


# ------------------------------------------------------------------------------
# Text helpers
# ------------------------------------------------------------------------------

@router.post("/ai/expand")
def expand_text(payload: TextBody, user: str = Depends(verify_user)):
    if not payload.text:
        raise HTTPException(status_code=400, detail="Text is required")
    try:
        expanded = llm.complete(
            [{"role": "system", "content": prompts.EXPAND_SYSTEM}, {"role": "user", "content": payload.text}],
            model="gpt-4o-mini",
            max_tokens=1000,
        )
    except Exception as exc:
        logger.exception("Expand failed: %s", exc)
        return error_response(500, "Failed to expand text")
    return {"expandedText": expanded}


@router.post("/ai/improve")
def improve_text(payload: TextBody, user: str = Depends(verify_user)):
    if not payload.text:
        raise HTTPException(status_code=400, detail="Text is required")
    try:
        improved = llm.complete(
            [{"role": "system", "content": prompts.IMPROVE_SYSTEM}, {"role": "user", "content": payload.text}],
            model="gpt-4o-mini",
            max_tokens=500,
        )
    except Exception as exc:
        logger.exception("Improve failed: %s", exc)
        return error_response(500, "Failed to improve text")
    return {"improvedText": improved}


@router.post("/ai/google")
def google_generate(payload: GoogleRequest, user: str = Depends(verify_user)):
    if not payload.prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")
    try:
        text = llm.generate_with_gemini(payload.prompt, payload.systemInstruction)
    except llm.LLMNotConfigured as exc:
        return error_response(500, str(exc))
    except Exception as exc:
        logger.exception("Gemini generation failed: %s", exc)
        return error_response(500, "Failed to generate content", details=str(exc))
    return {"text": text}


@router.post("/ai/language-profile")
def language_profile(payload: LanguageProfileRequest, user: str = Depends(verify_user)):
    if not isinstance(payload.language, str) or not payload.language.strip():
        raise HTTPException(status_code=400, detail="Language is required.")
    try:
        profile = llm.complete(
            [{"role": "user", "content": prompts.language_profile_prompt(payload.language.strip())}],
            model="gpt-4.1-mini-2025-04-14",
        )
    except Exception as exc:
        logger.exception("Language profile failed: %s", exc)
        return error_response(500, "Failed to generate language profile.")
    return {"profile": profile}


@router.post("/title")
def generate_title(payload: TitleRequest, user: str = Depends(verify_user)):
    if not payload.keyword:
        raise HTTPException(status_code=400, detail="Keyword is required")
    try:
        title = llm.complete(
            [
                {"role": "system", "content": "You are an SEO expert who writes compelling, click-worthy titles."},
                {
                    "role": "user",
                    "content": prompts.title_prompt(
                        payload.keyword, payload.language, payload.targetCountry,
                        payload.contentType or "blog post", payload.businessName,
                    ),
                },
            ],
            model="gpt-4o-mini",
            temperature=0.7,
        )
    except Exception as exc:
        logger.exception("Title generation failed: %s", exc)
        return error_response(500, "Failed to generate title")
    return {"title": title.strip().strip('"')}


def _two_pass_analysis(text: str, analysis_system: str, analysis_prompt: str, summary_system: str,
                       sections: List[str]) -> dict:
    detailed = llm.complete(
        [{"role": "system", "content": analysis_system}, {"role": "user", "content": analysis_prompt}],
        model="gpt-4o-mini",
        temperature=0.7,
        max_tokens=500,
    )
    summary = llm.complete(
        [
            {"role": "system", "content": summary_system},
            {"role": "user", "content": prompts.structured_summary_prompt(detailed, sections)},
        ],
        model="gpt-4o-mini",
        temperature=0.7,
        max_tokens=500,
    )
    return {"detailedAnalysis": detailed, **prompts.parse_bullet_sections(summary, sections)}


@router.post("/tone")
def analyze_tone(payload: ToneRequest, user: str = Depends(verify_user)):
    if not payload.sampleText:
        raise HTTPException(status_code=400, detail="Sample text is required")
    try:
        return _two_pass_analysis(
            payload.sampleText,
            prompts.TONE_ANALYSIS_SYSTEM,
            prompts.tone_analysis_prompt(payload.sampleText),
            prompts.TONE_SUMMARY_SYSTEM,
            prompts.TONE_SECTIONS,
        )
    except Exception as exc:
        logger.exception("Tone analysis failed: %s", exc)
        return error_response(500, "Failed to analyze tone")


@router.post("/analyze-target-audience")
def analyze_target_audience(payload: TextBody, user: str = Depends(verify_user)):
    if not payload.text:
        raise HTTPException(status_code=400, detail="Text is required")
    try:
        return _two_pass_analysis(
            payload.text,
            prompts.AUDIENCE_ANALYSIS_SYSTEM,
            prompts.audience_analysis_prompt(payload.text),
            prompts.AUDIENCE_SUMMARY_SYSTEM,
            prompts.AUDIENCE_SECTIONS,
        )
    except Exception as exc:
        logger.exception("Target audience analysis failed: %s", exc)
        return error_response(500, "Failed to analyze target audience")


@router.post("/keywords")
def related_keywords(payload: KeywordRequest, user: str = Depends(verify_user)):
    if not payload.keyword:
        raise HTTPException(status_code=400, detail="Keyword is required")
    try:
        raw = llm.complete(
            [{"role": "user", "content": prompts.keywords_prompt(payload.keyword)}],
            model="gpt-4o-mini",
            max_tokens=150,
        )
    except Exception as exc:
        logger.exception("Keyword generation failed: %s", exc)
        return error_response(500, "Failed to generate keywords")
    keywords = [kw.strip() for kw in raw.split(",") if kw.strip()]
    return {"keywords": keywords}


# ------------------------------------------------------------------------------
# Outline & research
# ------------------------------------------------------------------------------

@router.post("/outline")
def generate_outline(payload: OutlineRequest, user: str = Depends(verify_user)):
    if not payload.keyword or not payload.title:
        raise HTTPException(status_code=400, detail="Keyword and title are required")
    config = settings.get_config()
    competitors = seo_research.get_competitor_outlines(config, payload.keyword, payload.targetCountry)
    try:
        raw = llm.complete(
            [
                {
                    "role": "system",
                    "content": prompts.outline_system_prompt(
                        payload.language, payload.targetCountry, payload.targetWordCount, payload.contentType or ""
                    ),
                },
                {
                    "role": "user",
                    "content": prompts.outline_user_prompt(
                        payload.keyword, payload.title, seo_research.format_competitor_analysis(competitors)
                    ),
                },
            ],
            model=OUTLINE_MODEL,
            temperature=0.7,
        )
    except Exception as exc:
        logger.exception("Outline generation failed: %s", exc)
        return error_response(500, "Failed to generate outline")
    return {"outline": [line.strip() for line in raw.splitlines() if line.strip()]}


def keyword_research_events(payload: KeywordResearchRequest) -> Iterator[str]:
    config = settings.get_config()
    messages = [{"role": "system", "content": KEYWORD_RESEARCH_SYSTEM}, *payload.messages]
    try:
        yield sse_event({"type": "status", "content": {"message": "Analyzing your request..."}})
        message = llm.create_message(
            messages, KEYWORD_RESEARCH_MODEL, tools=[seo_research.SEARCH_KEYWORDS_TOOL], temperature=0.7
        )
        tool_calls = [call for call in (message.tool_calls or []) if call.function.name == "search_keywords"]
        if not tool_calls:
            yield sse_event(
                {
                    "type": "complete",
                    "content": {"message": seo_research.format_ai_response(message.content or ""), "keywords": []},
                }
            )
            return

        call = tool_calls[0]
        arguments = json.loads(call.function.arguments or "{}")
        keywords = arguments.get("keywords") or []
        min_volume = arguments.get("min_search_volume") or 10
        listing = "\n".join(f"• {kw}" for kw in keywords)
        yield sse_event({"type": "status", "content": {"message": f"Searching for keyword data for:\n{listing}"}})

        results = seo_research.search_keywords(config, keywords, payload.language, min_volume)
        yield sse_event({"type": "status", "content": {"message": "Processing keyword data..."}})

        assistant_message = {
            "role": "assistant",
            "content": message.content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
            ],
        }
        tool_message = {"role": "tool", "tool_call_id": call.id, "content": json.dumps(results)}
        analysis = llm.complete(
            [*messages, assistant_message, tool_message], model=KEYWORD_RESEARCH_MODEL, temperature=0.7
        )
        yield sse_event(
            {
                "type": "complete",
                "content": {"message": seo_research.format_ai_response(analysis), "keywords": results},
            }
        )
    except Exception as exc:
        logger.exception("Keyword research failed: %s", exc)
        yield sse_event(
            {"type": "error", "content": {"message": "An error occurred while researching keywords. Please try again."}}
        )


@router.post("/insight/keywords")
def keyword_research(payload: KeywordResearchRequest, user: str = Depends(verify_user)):
    return event_stream(keyword_research_events(payload))


@router.post("/generate/description")
def generate_description(payload: DescriptionRequest, user: str = Depends(verify_user)):
    if not payload.title or not payload.company:
        raise HTTPException(status_code=400, detail="Title and company are required")
    website = db.find_website_by_name(payload.company)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    try:
        description = llm.complete(
            [
                {
                    "role": "system",
                    "content": prompts.product_description_system(website, payload.title, payload.existingDescription),
                },
                {"role": "user", "content": prompts.product_description_user(payload.title)},
            ],
            model="gpt-4o-mini-2024-07-18",
            temperature=0.7,
        )
    except Exception as exc:
        logger.exception("Description generation failed: %s", exc)
        return error_response(500, str(exc))
    return {"success": True, "description": extraction.strip_code_fences(description)}
