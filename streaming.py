from __future__ import annotations

import json
from typing import Iterable

from fastapi.responses import StreamingResponse

DONE_EVENT = "data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def sse_event(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def event_stream(events: Iterable[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)
