import pytest
import requests

import cache as cache_module
import db
import shopify
import shopify_routes
from cache import ProductPageCache
from conftest import FakeResponse


@pytest.fixture
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(shopify.time, "sleep", lambda seconds: sleeps.append(seconds))
    return sleeps


@pytest.fixture
def store_website(website):
    website["platformIntegrations"].append(
        {
            "platform": "shopify",
            "enabled": True,
            "credentials": {"storeName": "acme", "accessToken": "shpat_secret"},
            "settings": {"autoPublish": False, "defaultStatus": "draft"},
        }
    )
    return db.save_website(website)


def test_store_name_gets_suffix():
    assert shopify.format_store_name("acme") == "acme.myshopify.com"
    assert shopify.format_store_name("acme.myshopify.com") == "acme.myshopify.com"
    store = shopify.ShopifyStore("acme", "token", "2024-01")
    assert store.base_url == "https://acme.myshopify.com/admin/api/2024-01"


def test_rate_limit_honours_retry_after(monkeypatch, no_sleep):
    responses = [
        FakeResponse(status_code=429, headers={"Retry-After": "2"}),
        FakeResponse(status_code=429),
        FakeResponse(json_data={"count": 3}, headers={"X-Shopify-Shop-Api-Call-Limit": "10/40"}),
    ]
    monkeypatch.setattr(shopify.requests, "request", lambda *args, **kwargs: responses.pop(0))

    response = shopify.shopify_request("GET", "https://acme.myshopify.com/x", {})
    assert response.json() == {"count": 3}
    assert no_sleep == [2.0, 2.0]


def test_transport_errors_retry_then_fail(monkeypatch, no_sleep):
    def broken(*args, **kwargs):
        raise requests.ConnectionError("reset")

    monkeypatch.setattr(shopify.requests, "request", broken)
    with pytest.raises(shopify.ShopifyError):
        shopify.shopify_request("GET", "https://acme.myshopify.com/x", {})
    assert no_sleep == [1.0, 2.0, 4.0]


def test_other_errors_are_not_retried(monkeypatch, no_sleep):
    monkeypatch.setattr(
        shopify.requests, "request", lambda *args, **kwargs: FakeResponse(status_code=401, text="denied")
    )
    with pytest.raises(shopify.ShopifyError) as excinfo:
        shopify.shopify_request("GET", "https://acme.myshopify.com/x", {})
    assert str(excinfo.value) == "HTTP error! status: 401, body: denied"
    assert no_sleep == []


def test_low_call_budget_pauses(monkeypatch, no_sleep):
    monkeypatch.setattr(
        shopify.requests,
        "request",
        lambda *args, **kwargs: FakeResponse(json_data={}, headers={"X-Shopify-Shop-Api-Call-Limit": "38/40"}),
    )
    shopify.shopify_request("GET", "https://acme.myshopify.com/x", {})
    assert no_sleep == [1.0]


def test_extract_numeric_id():
    assert shopify.extract_numeric_id("gid://shopify/Product/123") == "123"
    assert shopify.extract_numeric_id("456") == "456"
    with pytest.raises(shopify.ShopifyError):
        shopify.extract_numeric_id("gid://shopify/Product/abc")


def test_placement_normalization():
    assert shopify.normalize_description_placement(None) == {"mode": "body_html"}
    assert shopify.normalize_description_placement({"mode": "metafield", "metafieldKey": "k"}) == {
        "mode": "body_html"
    }
    placement = {"mode": "metafield", "metafieldNamespace": " custom ", "metafieldKey": "desc",
                 "metafieldType": "rich_text_editor"}
    assert shopify.normalize_description_placement(placement)["metafieldType"] == "multi_line_text_field"
    assert shopify.sanitize_description_placement(placement)["metafieldType"] == "rich_text_editor"
    assert shopify.sanitize_description_placement(placement)["metafieldNamespace"] == "custom"


def test_build_product_input_metafield_single_line():
    placement = {"mode": "metafield", "metafieldNamespace": "custom", "metafieldKey": "desc",
                 "metafieldType": "single_line_text_field"}
    product_input = shopify.build_product_input(
        "gid://shopify/Product/1", "<p>Hello\n  world</p>", placement, True,
        seo_title="  Title ", seo_description=" ", summary_html="x" * 1200,
    )
    assert product_input["metafields"][0]["value"] == "<p>Hello world</p>"
    assert len(product_input["bodyHtml"]) == 1000
    assert product_input["bodyHtml"].endswith("...")
    assert product_input["seo"] == {"title": "Title"}


def test_build_product_input_skips_seo_when_disabled():
    product_input = shopify.build_product_input(
        "gid://shopify/Product/1", "<p>x</p>", {"mode": "body_html"}, False, seo_title="T"
    )
    assert product_input == {"id": "gid://shopify/Product/1", "bodyHtml": "<p>x</p>"}


def test_product_page_cache_eviction(monkeypatch):
    cache = ProductPageCache(ttl=300, max_entries=2)
    cache.set("acme", None, {"page": 0})
    cache.set("acme", "c1", {"page": 1})
    cache.set("acme", "c2", {"page": 2})
    assert cache.get("acme", None) is None
    assert cache.get("acme", "c2") == {"page": 2}

    now = cache_module.time.time()
    monkeypatch.setattr(cache_module.time, "time", lambda: now + 301)
    assert cache.get("acme", "c2") is None


def test_products_endpoint_uses_cache(client, auth, store_website, monkeypatch):
    calls = []
    monkeypatch.setattr(shopify, "get_product_count", lambda store: 2)

    def fake_page(store, cursor):
        calls.append(cursor)
        return [{"id": "gid://shopify/Product/1"}], {"hasNextPage": True, "endCursor": "abc"}

    monkeypatch.setattr(shopify, "fetch_products_page", fake_page)

    first = client.get("/api/platform/shopify/products?company=Acme", auth=auth)
    assert first.headers["X-Cache"] == "MISS"
    assert first.headers["Cache-Control"] == "no-store"
    assert first.json()["progress"] == {"current": 1, "total": 2, "percentage": 50.0}

    second = client.get("/api/platform/shopify/products?company=Acme", auth=auth)
    assert second.headers["X-Cache"] == "HIT"
    assert calls == [None]

    client.get("/api/platform/shopify/products?company=Acme&bypassCache=true", auth=auth)
    assert calls == [None, None]


def test_products_endpoint_errors(client, auth, website, monkeypatch):
    response = client.get("/api/platform/shopify/products", auth=auth)
    assert response.status_code == 400

    response = client.get("/api/platform/shopify/products?company=Nope", auth=auth)
    assert response.status_code == 404

    response = client.get("/api/platform/shopify/products?company=Acme", auth=auth)
    assert response.status_code == 400
    assert response.json()["error"] == "Shopify integration not properly configured"


def test_products_unauthorized_upstream(client, auth, store_website, monkeypatch):
    def denied(store):
        raise shopify.ShopifyError("HTTP error! status: 401, body: denied", status_code=401)

    monkeypatch.setattr(shopify, "get_product_count", denied)
    response = client.get("/api/platform/shopify/products?company=Acme", auth=auth)
    assert response.status_code == 401


def test_update_marks_product_published(client, auth, store_website, monkeypatch):
    captured = {}

    def fake_update(store, product_id, description, placement, **kwargs):
        captured.update(kwargs, placement=placement)
        return {"id": product_id, "title": "Boot", "body_html": description, "descriptionSource": "body_html"}

    monkeypatch.setattr(shopify, "update_product", fake_update)
    response = client.post(
        "/api/platform/shopify/update",
        json={"productId": "gid://shopify/Product/9", "description": "<p>New</p>", "company": "Acme"},
        auth=auth,
    )
    assert response.json()["success"] is True
    assert captured["sync_seo_fields"] is True
    assert captured["placement"] == {"mode": "body_html"}
    rows = db.list_published_products("Acme")
    assert [row["productId"] for row in rows] == ["gid://shopify/Product/9"]


def test_settings_mask_and_keep_token(client, auth, store_website):
    response = client.post(
        "/api/platform/shopify/settings",
        json={
            "company": "Acme",
            "credentials": {"storeName": "acme"},
            "enabled": True,
            "keepExistingToken": True,
            "descriptionPlacement": {"mode": "metafield", "metafieldNamespace": "custom",
                                     "metafieldKey": "desc", "metafieldType": "rich_text_editor"},
            "syncSeoFields": "yes",
        },
        auth=auth,
    )
    assert response.json()["savedSettings"]["credentials"]["accessToken"] == shopify_routes.MASKED_TOKEN
    integration = db.get_integration(db.find_website_by_name("Acme"), "shopify")
    assert integration["credentials"]["accessToken"] == "shpat_secret"
    assert integration["settings"]["syncSeoFields"] is False

    settings = client.get("/api/platform/shopify/settings?company=Acme", auth=auth).json()["settings"]
    assert settings["credentials"]["accessToken"] == "••••••••"
    assert settings["settings"]["descriptionPlacement"]["metafieldType"] == "rich_text_editor"


def test_settings_404_without_integration(client, auth, website):
    response = client.get("/api/platform/shopify/settings?company=Acme", auth=auth)
    assert response.status_code == 404


def test_connection_test_unknown_website(client, auth):
    response = client.get("/api/platform/shopify/test?company=Ghost", auth=auth)
    assert response.json() == {"connected": False}


def test_pending_versions(client, auth, website):
    for text in ("<p>v1</p>", "<p>v2</p>"):
        response = client.post(
            "/api/platform/shopify/pending",
            json={"productId": "p1", "company": "Acme", "newDescription": text},
            auth=auth,
        )
        assert response.json()["totalPending"] == 1

    pending = client.get("/api/platform/shopify/pending?company=Acme&productId=p1", auth=auth).json()
    assert pending["pendingDescription"]["newDescription"] == "<p>v2</p>"
    assert pending["pendingDescription"]["version"] == 2

    client.delete("/api/platform/shopify/pending?company=Acme&productId=p1", auth=auth)
    pending = client.get("/api/platform/shopify/pending?company=Acme", auth=auth).json()
    assert pending == {"pendingDescriptions": []}


def test_published_toggle(client, auth, website):
    client.post(
        "/api/platform/shopify/published",
        json={"productId": "p1", "company": "Acme", "isPublished": True, "publishedAt": "2024-05-01T00:00:00"},
        auth=auth,
    )
    published = client.get("/api/platform/shopify/published?company=Acme&productId=p1", auth=auth).json()
    assert published == {"publishedProduct": {"productId": "p1", "publishedAt": "2024-05-01T00:00:00"}}

    client.post(
        "/api/platform/shopify/published", json={"productId": "p1", "company": "Acme", "isPublished": False}, auth=auth
    )
    assert client.get("/api/platform/shopify/published?company=Acme", auth=auth).json() == {"publishedProducts": []}


def test_parse_outline_sections():
    outline = "H2: Why Boots\nH3: Grip\nH3: Comfort\nnoise\nH2: Care"
    assert shopify_routes.parse_outline_sections(outline) == [
        {"title": "Why Boots", "subsections": ["Grip", "Comfort"]},
        {"title": "Care", "subsections": []},
    ]


def test_collection_pending_replaces_entry(client, auth, website):
    for text in ("```html\n<p>one</p>\n```", "<p>two</p>"):
        client.post(
            "/api/platform/shopify/collections/pending",
            json={"collectionId": "77", "company": "Acme", "newDescription": text},
            auth=auth,
        )
    pending = client.get("/api/platform/shopify/collections/pending?company=Acme", auth=auth).json()
    assert len(pending["pendingDescriptions"]) == 1
    assert pending["pendingDescriptions"][0]["newDescription"] == "<p>two</p>"


def test_fetch_collection_falls_back_to_smart(monkeypatch, no_sleep):
    def fake_request(method, url, headers=None, **kwargs):
        if "custom_collections" in url:
            return FakeResponse(status_code=404, text="Not Found")
        return FakeResponse(json_data={"smart_collection": {"id": 5, "title": "Sale"}})

    monkeypatch.setattr(shopify.requests, "request", fake_request)
    collection, kind = shopify.fetch_collection(shopify.ShopifyStore("acme", "t"), "5")
    assert kind == "smart"
    assert collection["title"] == "Sale"


def test_update_collection_not_found(client, auth, store_website, monkeypatch, no_sleep):
    monkeypatch.setattr(
        shopify.requests, "request", lambda *args, **kwargs: FakeResponse(status_code=404, text="Not Found")
    )
    response = client.post(
        "/api/platform/shopify/collections/update",
        json={"collectionId": "5", "description": "<p>x</p>", "company": "Acme"},
        auth=auth,
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Collection not found"}


def test_list_collections_follows_next_links(client, auth, store_website, monkeypatch, no_sleep):
    base = "https://acme.myshopify.com/admin/api/2024-01"
    requested = []

    def fake_request(method, url, headers=None, params=None, **kwargs):
        requested.append((url, params))
        if url.endswith("/custom_collections/count.json"):
            return FakeResponse(json_data={"count": 3})
        if url.endswith("/smart_collections/count.json"):
            return FakeResponse(json_data={"count": 1})
        if url == f"{base}/custom_collections.json":
            return FakeResponse(
                json_data={"custom_collections": [{"id": 1, "title": "Boots"}, {"id": 2, "title": "axes"}]},
                links={"next": {"url": f"{base}/custom_collections.json?page_info=abc"}},
            )
        if url == f"{base}/custom_collections.json?page_info=abc":
            return FakeResponse(json_data={"custom_collections": [{"id": 3, "title": "Tents"}]})
        if url == f"{base}/smart_collections.json":
            return FakeResponse(json_data={"smart_collections": [{"id": 4, "title": "Sale"}]})
        raise AssertionError(f"unexpected url {url}")

    monkeypatch.setattr(shopify.requests, "request", fake_request)
    body = client.get("/api/platform/shopify/collections?company=Acme", auth=auth).json()

    assert [c["title"] for c in body["collections"]] == ["axes", "Boots", "Sale", "Tents"]
    assert [c["collection_type"] for c in body["collections"]] == ["custom", "custom", "smart", "custom"]
    assert body["total"] == 4
    assert body["expectedTotal"] == 4
    assert body["breakdown"] == {"custom": 3, "smart": 1}
    assert (f"{base}/custom_collections.json", {"limit": 250}) in requested
    assert (f"{base}/custom_collections.json?page_info=abc", None) in requested
    assert no_sleep == [shopify.COLLECTION_PAGE_DELAY]


def test_generate_collection_description(client, auth, website, monkeypatch):
    calls = []

    def fake_complete(messages, model="gpt-4o-mini", **kwargs):
        calls.append({"messages": messages, "model": model})
        if len(calls) == 1:
            return "H2: Why Boots\nH3: Grip\nH2: Care"
        if len(calls) == 5:
            return "```html\n<p>Shop now.</p>\n```"
        return f"<p>part {len(calls)}</p>"

    monkeypatch.setattr(shopify_routes.llm, "complete", fake_complete)
    response = client.post(
        "/api/platform/shopify/collections/generate",
        json={
            "title": "Boots",
            "company": "Acme",
            "products": [{"title": "Trail Boot", "product_type": "Footwear"}, {"title": "City Boot"}],
        },
        auth=auth,
    )
    body = response.json()

    assert body["success"] is True
    assert body["outline"] == [
        {"title": "Why Boots", "subsections": ["Grip"]},
        {"title": "Care", "subsections": []},
    ]
    assert body["description"] == (
        "<p>part 2</p>\n<h2>Why Boots</h2>\n<p>part 3</p>\n<h2>Care</h2>\n<p>part 4</p>\n<p>Shop now.</p>"
    )
    assert {call["model"] for call in calls} == {shopify_routes.COLLECTION_MODEL}
    section_prompt = calls[2]["messages"][1]["content"]
    assert 'section "Why Boots (covering: Grip)"' in section_prompt
    assert "Number of products: 2" in section_prompt
    assert "<p>part 2</p>" in section_prompt


def test_generate_collection_description_errors(client, auth, website, monkeypatch):
    response = client.post("/api/platform/shopify/collections/generate", json={"company": "Acme"}, auth=auth)
    assert response.status_code == 400

    def broken(messages, model="gpt-4o-mini", **kwargs):
        raise RuntimeError("model down")

    monkeypatch.setattr(shopify_routes.llm, "complete", broken)
    response = client.post(
        "/api/platform/shopify/collections/generate", json={"title": "Boots", "company": "Acme"}, auth=auth
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate collection description", "details": "model down"}
