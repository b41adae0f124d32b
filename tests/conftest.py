import pathlib
import sys

import pytest
import requests
from fastapi.testclient import TestClient

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

import app
import db
import shopify_routes
import sitemap_indexer

AUTH = ("admin@admin.com", "admin123")


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    shopify_routes.PRODUCT_CACHE.clear()
    sitemap_indexer.PAGE_RESULTS.clear()
    db.init_db()
    yield


@pytest.fixture
def client():
    with TestClient(app.app) as test_client:
        yield test_client


@pytest.fixture
def auth():
    return AUTH


@pytest.fixture
def website():
    return db.create_website(
        AUTH[0],
        {
            "name": "Acme",
            "website": "https://acme.example",
            "description": "Outdoor gear",
            "toneofvoice": "Friendly",
            "targetAudience": "Hikers",
        },
    )


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text="", headers=None, links=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.headers = headers or {}
        self.links = links or {}
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self):
        return self.status_code < 400

    @property
    def content(self):
        return self.text.encode()

    def json(self):
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")
