from __future__ import annotations

import logging
import re
import time
from typing import Dict, Iterator, List, Tuple

from openai import OpenAI

import settings

logger = logging.getLogger("llm")

GEMINI_DEFAULT_MODEL = "gemini-2.0-flash"

GEMINI_KEY_COOLDOWNS: Dict[str, float] = {}
GEMINI_KEY_BACKOFF: Dict[str, float] = {}
GEMINI_MIN_COOLDOWN = 1.0
GEMINI_MAX_COOLDOWN = 60.0


class LLMNotConfigured(RuntimeError):
    pass


class GeminiUnavailable(RuntimeError):
    pass


# ------------------------------------------------------------------------------
# OpenAI
# ------------------------------------------------------------------------------

def get_openai_client() -> OpenAI:
    config = settings.get_config()
    if not config.openai_api_key:
        raise LLMNotConfigured("AI service not configured.")
    return OpenAI(api_key=config.openai_api_key)


def is_configured() -> bool:
    return bool(settings.get_config().openai_api_key)


def complete(messages: List[dict], model: str = "gpt-4o-mini", **kwargs) -> str:
    client = get_openai_client()
    start = time.time()
    response = client.chat.completions.create(model=model, messages=messages, **kwargs)
    logger.info("OpenAI %s completion took %.2fs", model, time.time() - start)
    content = response.choices[0].message.content if response.choices else None
    return content or ""


def create_message(messages: List[dict], model: str, **kwargs):
    """Return the raw assistant message so callers can inspect tool calls."""
    client = get_openai_client()
    response = client.chat.completions.create(model=model, messages=messages, **kwargs)
    return response.choices[0].message


def stream_completion(messages: List[dict], model: str = "gpt-4o-mini", **kwargs) -> Iterator[str]:
    client = get_openai_client()
    stream = client.chat.completions.create(model=model, messages=messages, stream=True, **kwargs)
    for chunk in stream:
        if not chunk.choices:
            continue
        delta = chunk.choices[0].delta.content
        if delta:
            yield delta


# ------------------------------------------------------------------------------
# Gemini
# ------------------------------------------------------------------------------

def _extract_retry_delay_seconds(exc: Exception) -> float | None:
    retry_delay = getattr(exc, "retry_delay", None)
    if retry_delay is not None:
        try:
            if hasattr(retry_delay, "total_seconds"):
                seconds = float(retry_delay.total_seconds())
            else:
                seconds = float(retry_delay)
            if seconds > 0:
                return seconds
        except (TypeError, ValueError):
            pass

    metadata = getattr(exc, "metadata", None)
    if isinstance(metadata, dict):
        for header in ("retry-after", "Retry-After"):
            if header in metadata:
                try:
                    return float(metadata[header])
                except (TypeError, ValueError):
                    continue

    message = str(exc)
    match = re.search(r"retry[-\s]?(?:after|delay)[^\d]*(\d+(?:\.\d+)?)", message, re.IGNORECASE)
    if match:
        seconds = float(match.group(1))
        if seconds > 0:
            return seconds
    return None


def _classify_gemini_exception(exc: Exception) -> Tuple[bool, float | None]:
    from google.api_core import exceptions as google_exceptions

    is_rate_limited = isinstance(
        exc, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)
    )
    if not is_rate_limited:
        if getattr(exc, "code", None) == 429:
            is_rate_limited = True
        else:
            message = str(exc).lower()
            if "429" in message or "rate limit" in message or "resource exhausted" in message:
                is_rate_limited = True

    retry_delay = _extract_retry_delay_seconds(exc) if is_rate_limited else None
    return is_rate_limited, retry_delay


def call_gemini(prompt: str, api_key: str, system_instruction: str | None = None,
                model: str = GEMINI_DEFAULT_MODEL) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    if system_instruction:
        generative_model = genai.GenerativeModel(model, system_instruction=system_instruction)
    else:
        generative_model = genai.GenerativeModel(model)

    start_time = time.time()
    response = generative_model.generate_content(prompt)
    logger.info("Gemini API call took %.2f seconds", time.time() - start_time)
    return response.text or ""


def generate_with_gemini(prompt: str, system_instruction: str | None = None,
                         model: str = GEMINI_DEFAULT_MODEL) -> str:
    """Generate text with Gemini, rotating across the configured keys.

    Rate-limited keys are put on a cooldown that doubles on each consecutive
    limit (capped at GEMINI_MAX_COOLDOWN). When every key is cooling down the
    call waits for the earliest one, up to ``gemini_wait_for_available``.
    """
    config = settings.get_config()
    if not config.gemini_keys:
        raise LLMNotConfigured("Google AI service not configured.")

    errors: List[str] = []
    total_waited = 0.0
    wait_budget = config.gemini_wait_for_available

    while True:
        ordered_keys = sorted(
            enumerate(config.gemini_keys, start=1),
            key=lambda item: GEMINI_KEY_COOLDOWNS.get(item[1], 0.0),
        )
        had_hard_error = False

        for idx, api_key in ordered_keys:
            if GEMINI_KEY_COOLDOWNS.get(api_key, 0.0) - time.time() > 0:
                continue

            GEMINI_KEY_BACKOFF.setdefault(api_key, GEMINI_MIN_COOLDOWN)
            try:
                result = call_gemini(prompt, api_key, system_instruction, model)
            except Exception as exc:
                is_rate_limited, retry_delay = _classify_gemini_exception(exc)
                if not is_rate_limited:
                    had_hard_error = True
                    GEMINI_KEY_BACKOFF[api_key] = GEMINI_MIN_COOLDOWN
                    logger.exception("Gemini generation failed with key %d: %s", idx, exc)
                    errors.append(f"Gemini[{idx}]: {exc}")
                    continue

                fallback_delay = GEMINI_KEY_BACKOFF.get(api_key, GEMINI_MIN_COOLDOWN)
                delay = max(retry_delay or 0.0, fallback_delay)
                delay = min(max(delay, GEMINI_MIN_COOLDOWN), GEMINI_MAX_COOLDOWN)
                GEMINI_KEY_COOLDOWNS[api_key] = time.time() + delay
                GEMINI_KEY_BACKOFF[api_key] = min(delay * 2, GEMINI_MAX_COOLDOWN)
                logger.warning("Gemini key %d hit rate limit; cooling down for %.2f seconds", idx, delay)
                errors.append(f"Gemini[{idx}]: rate limited (cooldown {delay:.1f}s)")
                continue

            GEMINI_KEY_COOLDOWNS.pop(api_key, None)
            GEMINI_KEY_BACKOFF[api_key] = GEMINI_MIN_COOLDOWN
            return result

        if had_hard_error:
            break

        remaining_budget = wait_budget - total_waited
        now = time.time()
        wait_candidates = [
            GEMINI_KEY_COOLDOWNS.get(api_key, 0.0) - now
            for api_key in config.gemini_keys
            if GEMINI_KEY_COOLDOWNS.get(api_key, 0.0) - now > 0
        ]
        if not wait_candidates or remaining_budget <= 0:
            break

        wait_for = min(min(wait_candidates), remaining_budget)
        logger.info("All Gemini keys are cooling down; waiting %.2f seconds for the earliest key", wait_for)
        time.sleep(wait_for)
        total_waited += wait_for

    raise GeminiUnavailable("; ".join(errors) or "All Gemini keys are cooling down")
