from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger("errors")


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    body = {"error": error}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request body for %s: %s", request.url.path, exc.errors())
    return error_response(400, "Invalid request body", details=exc.errors())
