from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

import ai_routes
import content_routes
import db
import searchconsole_routes
import shopify_routes
import sitemap_routes
import website_routes
import wordpress_routes
from errors import http_exception_handler, validation_exception_handler

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

app = FastAPI(title="Content Writer API")

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(website_routes.router)
app.include_router(sitemap_routes.router)
app.include_router(content_routes.router)
app.include_router(ai_routes.router)
app.include_router(shopify_routes.router)
app.include_router(wordpress_routes.router)
app.include_router(searchconsole_routes.router)


@app.on_event("startup")
def on_startup() -> None:
    init_db()


def init_db() -> None:
    db.init_db()
    logger.info("Database ready at %s", db.DB_PATH)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# expose ASGI app
application = app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
