import json

import requests

import content_routes
import db
import extraction
import llm
from conftest import FakeResponse


def parse_events(body: str):
    events = []
    for chunk in body.split("\n\n"):
        if not chunk.startswith("data: "):
            continue
        data = chunk[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


def test_generate_content_streams_sections(client, auth, monkeypatch):
    sections_seen = []

    def fake_stream(messages, model="gpt-4o-mini", **kwargs):
        sections_seen.append(messages[1]["content"])
        return iter(["<p>Body", "</p>"])

    monkeypatch.setattr(llm, "stream_completion", fake_stream)

    response = client.post(
        "/api/content",
        json={
            "keyword": "hiking boots",
            "title": "Best Hiking Boots",
            "outline": ["Introduction", "Choosing a Fit", "Care Tips", "Final Thoughts"],
        },
        auth=auth,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_events(response.text)
    assert events[0] == {"content": "<h1>Best Hiking Boots</h1>\n\n", "section": "Title"}
    assert events[-1] == "[DONE]"
    sections = [e["section"] for e in events[:-1]]
    assert sections.count("Choosing a Fit") == 3
    assert "Final Thoughts" in sections
    assert len(sections_seen) == 4


def test_generate_content_reports_failure_in_stream(client, auth, monkeypatch):
    def broken_stream(messages, model="gpt-4o-mini", **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(llm, "stream_completion", broken_stream)

    response = client.post("/api/content", json={"keyword": "k", "title": "T"}, auth=auth)
    events = parse_events(response.text)
    assert {"error": "Failed to generate content"} in events
    assert events[-1] == "[DONE]"


def test_generate_content_requires_keyword(client, auth):
    response = client.post("/api/content", json={"title": "T"}, auth=auth)
    assert response.status_code == 400
    assert response.json() == {"error": "Keyword and title are required"}


def test_content_crud(client, auth, website):
    response = client.post(
        "/api/content/save",
        json={"websiteId": website["_id"], "title": "Boots", "html": "<p>x</p>", "mainKeyword": "boots"},
        auth=auth,
    )
    content_id = response.json()["contentId"]
    item = db.get_website(website["_id"])["content"][0]
    assert item["_id"] == content_id
    assert item["status"] == "Draft"
    assert item["contentType"] == "Blog Post"

    client.post("/api/content/update", json={"contentId": content_id, "html": "<p>y</p>"}, auth=auth)
    client.post("/api/content/update-status", json={"contentId": content_id, "status": "Published"}, auth=auth)
    item = db.get_website(website["_id"])["content"][0]
    assert item["html"] == "<p>y</p>"
    assert item["status"] == "Published"

    response = client.post("/api/content/update-status", json={"contentId": content_id, "status": "Live"}, auth=auth)
    assert response.status_code == 400

    client.post("/api/content/delete", json={"contentId": content_id}, auth=auth)
    assert db.get_website(website["_id"])["content"] == []

    response = client.post("/api/content/delete", json={"contentId": content_id}, auth=auth)
    assert response.status_code == 404
    assert response.json() == {"error": "Content not found"}


def test_delete_requires_content_id(client, auth):
    response = client.post("/api/content/delete", json={}, auth=auth)
    assert response.status_code == 400
    assert response.json() == {"error": "Missing content ID"}


def test_webhook_failure(client, auth, monkeypatch):
    def fake_post(url, json=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(content_routes.requests, "post", fake_post)
    response = client.post(
        "/api/content/webhook", json={"webhookUrl": "https://hook.example", "content": {"a": 1}}, auth=auth
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to send content to webhook"}


def test_fetch_url_converts_article(client, auth, monkeypatch):
    page = """
    <html><body><nav>Menu</nav><article>
      <h1>Main</h1><h4>Sub</h4><p>First &amp; foremost</p>
      <ul><li>One</li><li>Two</li></ul>
    </article></body></html>
    """
    monkeypatch.setattr(extraction, "fetch_html", lambda url, **kwargs: page)

    response = client.post("/api/content/fetch-url", json={"url": "https://blog.example/post"}, auth=auth)
    content = response.json()["content"]
    assert "<h2>Main</h2>" in content
    assert "<h3>Sub</h3>" in content
    assert "<p>First &amp; foremost</p>" in content
    assert "<li>One</li>" in content
    assert "Menu" not in content


def test_analyze_content_parses_json(client, auth, monkeypatch):
    monkeypatch.setattr(
        llm, "complete", lambda messages, model="gpt-4o-mini", **kwargs: json.dumps({"headlines": ["A"]})
    )
    response = client.post("/api/content/analyze", json={"content": "text", "mainKeyword": "k"}, auth=auth)
    assert response.json() == {"headlines": ["A"], "sections": [], "improvements": []}


def test_chat_emits_updates(client, auth, monkeypatch):
    reply = json.dumps(
        {"updates": [{"type": "replace", "target": "a", "content": "b", "explanation": "Tightened"}]}
    )
    monkeypatch.setattr(
        llm, "stream_completion", lambda messages, model="gpt-4o-mini", **kwargs: iter([reply[:10], reply[10:]])
    )

    response = client.post("/api/content/chat", json={"messages": [], "currentContent": "a"}, auth=auth)
    events = parse_events(response.text)
    assert events[0] == {"type": "message", "content": reply[:10]}
    assert {"type": "content", "update": json.loads(reply)["updates"][0]} in events
    assert {"type": "message", "content": "Tightened"} in events
    assert events[-1] == "[DONE]"


def test_chat_error_has_no_done(client, auth, monkeypatch):
    def broken_stream(messages, model="gpt-4o-mini", **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(llm, "stream_completion", broken_stream)
    response = client.post("/api/content/chat", json={"messages": []}, auth=auth)
    events = parse_events(response.text)
    assert events == [{"type": "message", "content": content_routes.CHAT_ERROR_MESSAGE}]


def test_format_rewrite_buffer():
    assert content_routes.format_rewrite_buffer("a\n\nb\nc") == "a</p><p>b<br>c"
    assert content_routes.format_rewrite_buffer("x\n\n<h2>T</h2>\n\ny") == "x</p></p><h2>T</h2><p><p>y"


def test_enhance_text_validation(client, auth):
    response = client.post("/api/enhance-text", json={"text": "hi", "action": "shout"}, auth=auth)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid action specified"}

    response = client.post("/api/enhance-text", json={"action": "expand"}, auth=auth)
    assert response.json() == {"error": "Text is required"}


CRAWL_PAGE = (
    "<html><body><nav><p>boots menu</p></nav><main>"
    "<h2>Boots guide</h2><p style='color:red' class='lead'>Waterproof boots last.</p>"
    "<p>Unrelated tent text.</p></main></body></html>"
)


def test_crawl_filters_by_main_keyword(client, auth, monkeypatch):
    monkeypatch.setattr(extraction, "fetch_html", lambda url, headers=None, timeout=None: CRAWL_PAGE)

    response = client.post("/api/content/crawl", json={"url": "https://acme.example", "mainKeyword": "Boots"}, auth=auth)
    assert response.json() == {"content": "<h2>Boots guide</h2>\n<p>Waterproof boots last.</p>"}

    response = client.post("/api/content/crawl", json={"url": "https://acme.example"}, auth=auth)
    assert response.json()["content"].endswith("<p>Unrelated tent text.</p>")
    assert "menu" not in response.json()["content"]


def test_crawl_failure(client, auth, monkeypatch):
    def failing_fetch(url, headers=None, timeout=None):
        raise RuntimeError("refused")

    monkeypatch.setattr(extraction, "fetch_html", failing_fetch)
    response = client.post("/api/content/crawl", json={"url": "https://acme.example"}, auth=auth)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to crawl website"}
    assert client.post("/api/content/crawl", json={}, auth=auth).status_code == 400


def test_rewrite_streams_formatted_buffer(client, auth, monkeypatch):
    captured = {}

    def fake_stream(messages, model="gpt-4o-mini", **kwargs):
        captured.update(messages=messages, model=model, **kwargs)
        return iter(["Intro", "\n\nNext", "\n<h2>Head</h2>"])

    monkeypatch.setattr(llm, "stream_completion", fake_stream)
    response = client.post(
        "/api/content/rewrite",
        json={"content": "<p>Old</p>", "mainKeyword": "boots", "relatedKeywords": ["trail boots"]},
        auth=auth,
    )

    assert response.headers["content-type"].startswith("text/event-stream")
    assert parse_events(response.text) == [
        {"content": "Intro"},
        {"content": "Intro</p><p>Next"},
        {"content": "Intro</p><p>Next<br><h2>Head</h2>"},
        "[DONE]",
    ]
    assert captured["model"] == content_routes.REWRITE_MODEL
    assert captured["max_tokens"] == 4000
    assert "trail boots" in captured["messages"][1]["content"]


def test_rewrite_failure_and_validation(client, auth, monkeypatch):
    def broken_stream(messages, model="gpt-4o-mini", **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(llm, "stream_completion", broken_stream)
    response = client.post("/api/content/rewrite", json={"content": "x", "mainKeyword": "boots"}, auth=auth)
    assert parse_events(response.text) == [{"error": "Failed to rewrite content"}, "[DONE]"]

    response = client.post("/api/content/rewrite", json={"content": "x"}, auth=auth)
    assert response.status_code == 400
    assert response.json() == {"error": "Content and main keyword are required"}
