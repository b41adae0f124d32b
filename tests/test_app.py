def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_malformed_body_is_rejected(client, auth):
    response = client.post(
        "/api/website",
        content="{not json",
        headers={"Content-Type": "application/json"},
        auth=auth,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_errors_use_error_key(client, auth):
    response = client.get("/api/platform/shopify/products", auth=auth)
    assert response.status_code == 400
    assert response.json() == {"error": "Company name is required"}
