import threading

import db


def test_init_db_seeds_admin_once():
    db.init_db()
    conn = db.get_db()
    count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    conn.close()
    assert count == 1


def test_website_document_round_trip():
    website = db.create_website("owner@example.com", {"name": "Shop", "website": "https://shop.example"})
    assert website["userId"] == "owner@example.com"
    assert website["folders"] == []

    website["summary"] = "Sells shoes"
    db.save_website(website)
    stored = db.find_website_by_name("Shop")
    assert stored["summary"] == "Sells shoes"
    assert db.find_accessible_website("Shop", "stranger@example.com") is None

    stored["sharedUsers"].append("stranger@example.com")
    db.save_website(stored)
    assert db.find_accessible_website("Shop", "stranger@example.com")["_id"] == website["_id"]


def test_find_website_by_content_id():
    website = db.create_website("owner@example.com", {"name": "Shop", "content": [{"_id": "abc", "title": "T"}]})
    found, item = db.find_website_by_content_id("abc")
    assert found["_id"] == website["_id"]
    assert item["title"] == "T"
    assert db.find_website_by_content_id("missing") == (None, None)


def test_pending_versions_archive_previous():
    db.save_pending_description("Shop", "p1", {"newDescription": "one"})
    db.save_pending_description("Shop", "p1", {"newDescription": "two"})
    total = db.save_pending_description("Shop", "p2", {"newDescription": "other"})
    assert total == 2

    rows = db.list_pending_descriptions("Shop", "p1")
    assert [(row["newDescription"], row["version"]) for row in rows] == [("two", 2)]

    assert db.deactivate_pending_description("Shop", "p1") == 1
    assert db.list_pending_descriptions("Shop", "p1") == []


def test_concurrent_pending_saves_keep_one_active():
    threads = [
        threading.Thread(target=db.save_pending_description, args=("Shop", "p1", {"newDescription": f"v{i}"}))
        for i in range(5)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    rows = db.list_pending_descriptions("Shop", "p1")
    assert len(rows) == 1
    assert rows[0]["version"] == 5


def test_published_upsert_reactivates():
    db.upsert_published_product("Shop", "p1", "2024-01-01T00:00:00")
    db.deactivate_published_product("Shop", "p1")
    assert db.list_published_products("Shop") == []

    db.upsert_published_product("Shop", "p1", "2024-02-01T00:00:00")
    assert db.list_published_products("Shop") == [{"productId": "p1", "publishedAt": "2024-02-01T00:00:00"}]


def test_migrates_embedded_product_data():
    website = db.create_website(
        "owner@example.com",
        {
            "name": "Legacy",
            "pendingProductDescriptions": [
                {"productId": "p1", "newDescription": "<p>new</p>", "oldDescription": "<p>old</p>"},
                {"productId": "p2"},
            ],
            "publishedProducts": [{"productId": "p3", "publishedAt": "2023-05-05T00:00:00"}],
        },
    )

    conn = db.get_db()
    stats = db.migrate_embedded_product_data(conn)
    conn.close()

    assert stats == {"websites": 1, "pending": 1, "published": 1}
    stored = db.get_website(website["_id"])
    assert "pendingProductDescriptions" not in stored
    assert "publishedProducts" not in stored
    assert db.list_pending_descriptions("Legacy", "p1")[0]["oldDescription"] == "<p>old</p>"
    assert db.list_published_products("Legacy", "p3")[0]["publishedAt"] == "2023-05-05T00:00:00"

    conn = db.get_db()
    assert db.migrate_embedded_product_data(conn)["websites"] == 0
    conn.close()


def test_description_indexes_cover_website_lookups():
    conn = db.get_db()
    columns = {
        name: [row["name"] for row in conn.execute(f"PRAGMA index_info({name})").fetchall()]
        for name in ("idx_pending_site_product", "idx_pending_site_active", "idx_published_site_active")
    }
    conn.close()
    assert columns == {
        "idx_pending_site_product": ["website_name", "product_id"],
        "idx_pending_site_active": ["website_name", "is_active"],
        "idx_published_site_active": ["website_name", "is_active"],
    }


def test_user_lookup_ignores_email_case():
    db.create_user("Mixed@Example.com", "pw")
    assert db.get_user("mixed@example.COM")["email"] == "mixed@example.com"
    assert db.get_user("missing@example.com") is None
