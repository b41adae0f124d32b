import pytest

import db
import wordpress
from conftest import FakeResponse

CREDENTIALS = {"apiUrl": "https://blog.example/", "apiKey": "abcd efgh ijkl", "username": "editor"}


@pytest.fixture
def wp_website(website):
    website["content"].append(
        {"_id": "c1", "title": "Trail Guide", "html": '<p>Intro</p><img src="https://img.example/1.jpg">'}
    )
    website["platformIntegrations"].append(
        {
            "platform": "wordpress",
            "enabled": True,
            "credentials": CREDENTIALS,
            "settings": {
                "defaultStatus": "draft",
                "postType": "page",
                "featuredImage": {"enabled": True, "useFirstImage": True},
                "customFields": [
                    {"key": "rating", "value": "4.5", "type": "number"},
                    {"key": "featured", "value": "true", "type": "boolean"},
                ],
            },
        }
    )
    return db.save_website(website)


def test_site_from_credentials_normalizes():
    site = wordpress.WordPressSite.from_credentials(CREDENTIALS)
    assert site.api_url == "https://blog.example"
    assert site.api_key == "abcdefghijkl"
    assert site.endpoint("posts") == "https://blog.example/wp-json/wp/v2/posts"

    with pytest.raises(wordpress.WordPressError):
        wordpress.WordPressSite.from_credentials({"apiUrl": "https://blog.example"})


def test_cast_custom_fields():
    meta = wordpress.cast_custom_fields(
        [
            {"key": "n", "value": "3", "type": "number"},
            {"key": "b", "value": "false", "type": "boolean"},
            {"key": "t", "value": "text", "type": "text"},
        ]
    )
    assert meta == {"n": 3.0, "b": False, "t": "text"}


def test_publish_records_status(client, auth, wp_website, monkeypatch):
    requests_made = []

    def fake_request(method, url, auth=None, **kwargs):
        requests_made.append((method, url, kwargs.get("json")))
        if url.endswith("/media"):
            return FakeResponse(json_data={"id": 42})
        return FakeResponse(json_data={"id": 7, "link": "https://blog.example/trail-guide", "status": "publish"})

    monkeypatch.setattr(wordpress.requests, "request", fake_request)

    response = client.post(
        "/api/platform/wordpress/publish",
        json={"websiteName": "Acme", "contentId": "c1", "status": "publish", "credentials": CREDENTIALS},
        auth=auth,
    )
    assert response.json() == {
        "success": True,
        "postId": 7,
        "postUrl": "https://blog.example/trail-guide",
        "status": "publish",
    }

    media, post = requests_made
    assert media[2] == {"url": "https://img.example/1.jpg"}
    assert post[1] == "https://blog.example/wp-json/wp/v2/pages"
    assert post[2]["featured_media"] == 42
    assert post[2]["meta"] == {"rating": 4.5, "featured": True}

    item = db.find_website_by_name("Acme")["content"][0]
    assert item["platformPublishStatus"]["wordpress"]["published"] is True


def test_publish_skips_failed_image_upload(client, auth, wp_website, monkeypatch):
    def fake_request(method, url, auth=None, **kwargs):
        if url.endswith("/media"):
            return FakeResponse(status_code=500, text="upload failed")
        assert "featured_media" not in kwargs["json"]
        return FakeResponse(json_data={"id": 8, "link": "https://blog.example/p", "status": "draft"})

    monkeypatch.setattr(wordpress.requests, "request", fake_request)
    response = client.post(
        "/api/platform/wordpress/publish",
        json={"websiteName": "Acme", "contentId": "c1", "credentials": CREDENTIALS},
        auth=auth,
    )
    assert response.json()["status"] == "draft"


def test_publish_errors(client, auth, website):
    response = client.post(
        "/api/platform/wordpress/publish", json={"websiteName": "Acme", "contentId": "zzz"}, auth=auth
    )
    assert response.status_code == 404

    website["content"].append({"_id": "c2", "title": "T", "html": ""})
    db.save_website(website)
    response = client.post(
        "/api/platform/wordpress/publish", json={"websiteName": "Acme", "contentId": "c2"}, auth=auth
    )
    assert response.status_code == 400
    assert response.json() == {"error": "WordPress integration not configured"}


def test_save_settings_defaults(client, auth, website):
    response = client.post(
        "/api/platform/wordpress/settings",
        json={"websiteName": "Acme", "settings": {"enabled": True, "credentials": {"apiUrl": "https://b"}}},
        auth=auth,
    )
    saved = response.json()["savedSettings"]
    assert saved["credentials"]["username"] == "admin"
    assert saved["settings"] == {"autoPublish": False, "defaultStatus": "draft"}


def test_actions(client, auth, monkeypatch):
    def fake_request(method, url, auth=None, **kwargs):
        if url.endswith("/types"):
            return FakeResponse(
                json_data={
                    "post": {"name": "Posts"},
                    "recipe": {"name": "Recipes", "rest_base": "recipes"},
                }
            )
        return FakeResponse(json_data=[{"id": 1, "name": "News"}])

    monkeypatch.setattr(wordpress.requests, "request", fake_request)

    response = client.post(
        "/api/platform/wordpress",
        json={"action": "get-post-types", "websiteName": "Acme", "credentials": CREDENTIALS},
        auth=auth,
    )
    post_types = response.json()["postTypes"]
    assert [pt["slug"] for pt in post_types] == ["recipe"]

    response = client.post(
        "/api/platform/wordpress",
        json={"action": "get-categories", "websiteName": "Acme", "credentials": CREDENTIALS},
        auth=auth,
    )
    assert response.json() == {"categories": [{"id": 1, "name": "News"}]}

    response = client.post("/api/platform/wordpress", json={"action": "dance"}, auth=auth)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid action"}


def test_connection_failure(client, auth, monkeypatch):
    monkeypatch.setattr(
        wordpress.requests, "request", lambda method, url, **kwargs: FakeResponse(status_code=401, text="nope")
    )
    response = client.post("/api/platform/wordpress/test", json={"credentials": CREDENTIALS}, auth=auth)
    assert response.status_code == 400
    assert response.json()["error"] == "Connection test failed"
