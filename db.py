from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Tuple

logger = logging.getLogger("db")

DB_PATH = os.environ.get("DB_PATH", "content.db")

_PENDING_LOCKS: Dict[str, threading.Lock] = {}
_PENDING_LOCKS_GUARD = threading.Lock()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


# ------------------------------------------------------------------------------
# Connection & schema
# ------------------------------------------------------------------------------

def get_db() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    conn = get_db()
    c = conn.cursor()

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY,
            email TEXT UNIQUE,
            password_hash TEXT
        )
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS websites (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL UNIQUE,
            data TEXT NOT NULL,
            created_at TEXT,
            updated_at TEXT
        )
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS pending_product_descriptions (
            id INTEGER PRIMARY KEY,
            website_name TEXT NOT NULL,
            product_id TEXT NOT NULL,
            old_description TEXT DEFAULT '',
            new_description TEXT NOT NULL,
            old_seo_title TEXT DEFAULT '',
            new_seo_title TEXT DEFAULT '',
            old_seo_description TEXT DEFAULT '',
            new_seo_description TEXT DEFAULT '',
            summary_html TEXT DEFAULT '',
            generated_at TEXT,
            is_active INTEGER DEFAULT 1,
            version INTEGER DEFAULT 1,
            updated_at TEXT
        )
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS published_product_descriptions (
            id INTEGER PRIMARY KEY,
            website_name TEXT NOT NULL,
            product_id TEXT NOT NULL,
            published_at TEXT,
            is_active INTEGER DEFAULT 1,
            updated_at TEXT,
            UNIQUE (website_name, product_id)
        )
        """
    )

    c.execute("CREATE INDEX IF NOT EXISTS idx_websites_user ON websites (user_id)")
    c.execute(
        "CREATE INDEX IF NOT EXISTS idx_pending_site_product "
        "ON pending_product_descriptions (website_name, product_id)"
    )
    c.execute(
        "CREATE INDEX IF NOT EXISTS idx_pending_site_active "
        "ON pending_product_descriptions (website_name, is_active)"
    )
    c.execute(
        "CREATE INDEX IF NOT EXISTS idx_published_site_active "
        "ON published_product_descriptions (website_name, is_active)"
    )

    if c.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 0:
        admin_email = normalize_email(os.environ.get("ADMIN_EMAIL", "admin@admin.com"))
        admin_password = os.environ.get("ADMIN_PASSWORD", "admin123")
        password_hash = hashlib.sha256(admin_password.encode()).hexdigest()
        c.execute(
            "INSERT INTO users (email, password_hash) VALUES (?, ?)",
            (admin_email, password_hash),
        )

    conn.commit()
    migrate_embedded_product_data(conn)
    conn.close()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user(email: str) -> sqlite3.Row | None:
    conn = get_db()
    row = conn.execute(
        "SELECT email, password_hash FROM users WHERE lower(email) = ?", (normalize_email(email),)
    ).fetchone()
    conn.close()
    return row


def create_user(email: str, password: str) -> None:
    conn = get_db()
    conn.execute(
        "INSERT INTO users (email, password_hash) VALUES (?, ?)",
        (normalize_email(email), hashlib.sha256(password.encode()).hexdigest()),
    )
    conn.commit()
    conn.close()


# ------------------------------------------------------------------------------
# Website documents
# ------------------------------------------------------------------------------

WEBSITE_DEFAULTS = {
    "description": "",
    "summary": "",
    "toneofvoice": "",
    "targetAudience": "",
    "content": [],
    "folders": [],
    "sharedUsers": [],
    "platformIntegrations": [],
    "sitemapUrls": [],
    "keyUrls": [],
    "businessAnalysis": "",
    "contentStructureAnalysis": "",
    "pendingCollectionDescriptions": [],
}


def _row_to_website(row: sqlite3.Row) -> dict:
    website = json.loads(row["data"])
    for key, value in WEBSITE_DEFAULTS.items():
        website.setdefault(key, json.loads(json.dumps(value)))
    website["_id"] = row["id"]
    website["userId"] = row["user_id"]
    website["name"] = row["name"]
    website["createdAt"] = row["created_at"]
    website["updatedAt"] = row["updated_at"]
    return website


def _fetch_websites(query: str, params: tuple = ()) -> List[dict]:
    conn = get_db()
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return [_row_to_website(row) for row in rows]


def get_website(website_id: str) -> dict | None:
    found = _fetch_websites("SELECT * FROM websites WHERE id = ?", (website_id,))
    return found[0] if found else None


def find_website_by_name(name: str) -> dict | None:
    found = _fetch_websites("SELECT * FROM websites WHERE name = ?", (name,))
    return found[0] if found else None


def list_owned_websites(user_id: str) -> List[dict]:
    return _fetch_websites("SELECT * FROM websites WHERE user_id = ? ORDER BY created_at", (user_id,))


def list_shared_websites(email: str) -> List[dict]:
    email = normalize_email(email)
    websites = _fetch_websites("SELECT * FROM websites ORDER BY created_at")
    return [site for site in websites if email in site.get("sharedUsers", [])]


def find_accessible_website(name: str, user_id: str) -> dict | None:
    website = find_website_by_name(name)
    if website is None:
        return None
    if website["userId"] == user_id or normalize_email(user_id) in website.get("sharedUsers", []):
        return website
    return None


def find_website_by_content_id(content_id: str) -> Tuple[dict | None, dict | None]:
    for website in _fetch_websites("SELECT * FROM websites"):
        for item in website.get("content", []):
            if item.get("_id") == content_id:
                return website, item
    return None, None


def create_website(user_id: str, fields: dict) -> dict:
    website_id = new_id()
    now = utcnow_iso()
    document = json.loads(json.dumps(WEBSITE_DEFAULTS))
    document.update({key: value for key, value in fields.items() if value is not None})
    name = document.pop("name")
    conn = get_db()
    conn.execute(
        "INSERT INTO websites (id, user_id, name, data, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
        (website_id, user_id, name, json.dumps(document), now, now),
    )
    conn.commit()
    conn.close()
    logger.info("Created website %s for %s", name, user_id)
    return get_website(website_id)


def save_website(website: dict) -> dict:
    document = {
        key: value
        for key, value in website.items()
        if key not in {"_id", "userId", "name", "createdAt", "updatedAt"}
    }
    now = utcnow_iso()
    conn = get_db()
    conn.execute(
        "UPDATE websites SET name = ?, data = ?, updated_at = ? WHERE id = ?",
        (website["name"], json.dumps(document), now, website["_id"]),
    )
    conn.commit()
    conn.close()
    website["updatedAt"] = now
    return website


def delete_website(website_id: str) -> None:
    conn = get_db()
    conn.execute("DELETE FROM websites WHERE id = ?", (website_id,))
    conn.commit()
    conn.close()


def get_integration(website: dict, platform: str) -> dict | None:
    for integration in website.get("platformIntegrations", []):
        if integration.get("platform") == platform:
            return integration
    return None


# ------------------------------------------------------------------------------
# Product descriptions
# ------------------------------------------------------------------------------

def _pending_row_to_dict(row: sqlite3.Row) -> dict:
    return {
        "websiteName": row["website_name"],
        "productId": row["product_id"],
        "oldDescription": row["old_description"],
        "newDescription": row["new_description"],
        "oldSeoTitle": row["old_seo_title"],
        "newSeoTitle": row["new_seo_title"],
        "oldSeoDescription": row["old_seo_description"],
        "newSeoDescription": row["new_seo_description"],
        "summaryHtml": row["summary_html"],
        "generatedAt": row["generated_at"],
        "isActive": bool(row["is_active"]),
        "version": row["version"],
    }


def pending_lock(website_name: str, product_id: str) -> threading.Lock:
    key = f"{website_name}:{product_id}"
    with _PENDING_LOCKS_GUARD:
        lock = _PENDING_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _PENDING_LOCKS[key] = lock
        return lock


def save_pending_description(website_name: str, product_id: str, fields: dict) -> int:
    """Archive active rows for the product and insert a new active version.

    Returns the number of active pending descriptions for the website.
    """
    with pending_lock(website_name, product_id):
        conn = get_db()
        c = conn.cursor()
        now = utcnow_iso()
        max_version = c.execute(
            "SELECT MAX(version) FROM pending_product_descriptions "
            "WHERE website_name = ? AND product_id = ? AND is_active = 1",
            (website_name, product_id),
        ).fetchone()[0]
        c.execute(
            "UPDATE pending_product_descriptions SET is_active = 0, updated_at = ? "
            "WHERE website_name = ? AND product_id = ? AND is_active = 1",
            (now, website_name, product_id),
        )
        c.execute(
            """
            INSERT INTO pending_product_descriptions (
                website_name, product_id, old_description, new_description,
                old_seo_title, new_seo_title, old_seo_description, new_seo_description,
                summary_html, generated_at, is_active, version, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            """,
            (
                website_name,
                product_id,
                fields.get("oldDescription") or "",
                fields.get("newDescription") or "",
                fields.get("oldSeoTitle") or "",
                fields.get("newSeoTitle") or "",
                fields.get("oldSeoDescription") or "",
                fields.get("newSeoDescription") or "",
                fields.get("summaryHtml") or "",
                fields.get("generatedAt") or now,
                (max_version or 0) + 1,
                now,
            ),
        )
        total = c.execute(
            "SELECT COUNT(*) FROM pending_product_descriptions WHERE website_name = ? AND is_active = 1",
            (website_name,),
        ).fetchone()[0]
        conn.commit()
        conn.close()
    return total


def list_pending_descriptions(website_name: str, product_id: str | None = None) -> List[dict]:
    conn = get_db()
    if product_id is None:
        rows = conn.execute(
            "SELECT * FROM pending_product_descriptions WHERE website_name = ? AND is_active = 1 "
            "ORDER BY generated_at DESC",
            (website_name,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM pending_product_descriptions WHERE website_name = ? AND product_id = ? "
            "AND is_active = 1 ORDER BY version DESC",
            (website_name, product_id),
        ).fetchall()
    conn.close()
    return [_pending_row_to_dict(row) for row in rows]


def deactivate_pending_description(website_name: str, product_id: str) -> int:
    conn = get_db()
    cur = conn.execute(
        "UPDATE pending_product_descriptions SET is_active = 0, updated_at = ? "
        "WHERE website_name = ? AND product_id = ? AND is_active = 1",
        (utcnow_iso(), website_name, product_id),
    )
    conn.commit()
    conn.close()
    return cur.rowcount


def upsert_published_product(website_name: str, product_id: str, published_at: str | None = None) -> None:
    now = utcnow_iso()
    conn = get_db()
    conn.execute(
        """
        INSERT INTO published_product_descriptions (website_name, product_id, published_at, is_active, updated_at)
        VALUES (?, ?, ?, 1, ?)
        ON CONFLICT (website_name, product_id)
        DO UPDATE SET published_at = excluded.published_at, is_active = 1, updated_at = excluded.updated_at
        """,
        (website_name, product_id, published_at or now, now),
    )
    conn.commit()
    conn.close()


def deactivate_published_product(website_name: str, product_id: str) -> int:
    conn = get_db()
    cur = conn.execute(
        "UPDATE published_product_descriptions SET is_active = 0, updated_at = ? "
        "WHERE website_name = ? AND product_id = ? AND is_active = 1",
        (utcnow_iso(), website_name, product_id),
    )
    conn.commit()
    conn.close()
    return cur.rowcount


def list_published_products(website_name: str, product_id: str | None = None) -> List[dict]:
    conn = get_db()
    if product_id is None:
        rows = conn.execute(
            "SELECT product_id, published_at FROM published_product_descriptions "
            "WHERE website_name = ? AND is_active = 1 ORDER BY published_at DESC",
            (website_name,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT product_id, published_at FROM published_product_descriptions "
            "WHERE website_name = ? AND product_id = ? AND is_active = 1",
            (website_name, product_id),
        ).fetchall()
    conn.close()
    return [{"productId": row["product_id"], "publishedAt": row["published_at"]} for row in rows]


# ------------------------------------------------------------------------------
# Legacy data migration
# ------------------------------------------------------------------------------

def migrate_embedded_product_data(conn: sqlite3.Connection) -> Dict[str, int]:
    """Move embedded pendingProductDescriptions/publishedProducts arrays into tables.

    Safe to run repeatedly: existing active pending rows are kept and the
    embedded arrays are removed from the document once copied.
    """
    stats = {"websites": 0, "pending": 0, "published": 0}
    c = conn.cursor()
    rows = c.execute("SELECT id, name, data FROM websites").fetchall()
    for row in rows:
        document = json.loads(row["data"])
        pending = document.pop("pendingProductDescriptions", None)
        published = document.pop("publishedProducts", None)
        if pending is None and published is None:
            continue

        website_name = row["name"]
        now = utcnow_iso()
        for desc in pending or []:
            product_id = str(desc.get("productId") or "")
            if not product_id or not desc.get("newDescription"):
                logger.warning("Skipping malformed pending description on %s", website_name)
                continue
            existing = c.execute(
                "SELECT 1 FROM pending_product_descriptions "
                "WHERE website_name = ? AND product_id = ? AND is_active = 1",
                (website_name, product_id),
            ).fetchone()
            if existing:
                logger.info("Pending description for %s/%s already migrated", website_name, product_id)
                continue
            c.execute(
                """
                INSERT INTO pending_product_descriptions (
                    website_name, product_id, old_description, new_description,
                    old_seo_title, new_seo_title, old_seo_description, new_seo_description,
                    summary_html, generated_at, is_active, version, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, 1, ?)
                """,
                (
                    website_name,
                    product_id,
                    desc.get("oldDescription") or "",
                    desc["newDescription"],
                    desc.get("oldSeoTitle") or "",
                    desc.get("newSeoTitle") or "",
                    desc.get("oldSeoDescription") or "",
                    desc.get("newSeoDescription") or "",
                    desc.get("summaryHtml") or "",
                    desc.get("generatedAt") or now,
                    now,
                ),
            )
            stats["pending"] += 1

        for pub in published or []:
            product_id = str(pub.get("productId") or "")
            if not product_id:
                continue
            c.execute(
                """
                INSERT INTO published_product_descriptions (website_name, product_id, published_at, is_active, updated_at)
                VALUES (?, ?, ?, 1, ?)
                ON CONFLICT (website_name, product_id) DO NOTHING
                """,
                (website_name, product_id, pub.get("publishedAt") or now, now),
            )
            stats["published"] += 1

        c.execute("UPDATE websites SET data = ? WHERE id = ?", (json.dumps(document), row["id"]))
        stats["websites"] += 1

    conn.commit()
    if stats["websites"]:
        logger.info(
            "Migrated embedded product data: %d websites, %d pending, %d published",
            stats["websites"],
            stats["pending"],
            stats["published"],
        )
    return stats
