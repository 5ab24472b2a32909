from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from nexus_news.models import RelatedPost, TopicRef


class ContentStore:
    """SQLite archive of the organization's taxonomy and published posts."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS posts (
                    url TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    published_on TEXT NOT NULL,
                    excerpt TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'publish'
                );
                CREATE TABLE IF NOT EXISTS post_categories (
                    post_url TEXT NOT NULL,
                    category_id INTEGER NOT NULL,
                    PRIMARY KEY (post_url, category_id)
                );
                """
            )

    def upsert_category(self, category_id: int, name: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO categories (id, name) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET name=excluded.name
                """,
                (int(category_id), name),
            )

    def upsert_post(
        self,
        url: str,
        title: str,
        published_on: date,
        category_ids: Iterable[int],
        excerpt: str = "",
        status: str = "publish",
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO posts (url, title, published_on, excerpt, status)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    title=excluded.title,
                    published_on=excluded.published_on,
                    excerpt=excluded.excerpt,
                    status=excluded.status
                """,
                (url, title, published_on.isoformat(), excerpt, status),
            )
            conn.execute("DELETE FROM post_categories WHERE post_url = ?", (url,))
            conn.executemany(
                "INSERT OR IGNORE INTO post_categories (post_url, category_id) VALUES (?, ?)",
                [(url, int(cid)) for cid in category_ids],
            )

    def list_categories(self) -> List[TopicRef]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, name FROM categories ORDER BY name").fetchall()
        return [TopicRef(name=row["name"], id=int(row["id"])) for row in rows]

    def related_posts(
        self,
        category_ids: Iterable[int],
        limit: int = 5,
        since: Optional[date] = None,
    ) -> List[RelatedPost]:
        ids = sorted({int(cid) for cid in category_ids})
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        params: List[Any] = list(ids)
        date_clause = ""
        if since is not None:
            date_clause = "AND p.published_on >= ?"
            params.append(since.isoformat())
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT DISTINCT p.url, p.title, p.published_on, p.excerpt
                FROM posts p
                JOIN post_categories pc ON pc.post_url = p.url
                WHERE pc.category_id IN ({placeholders})
                  AND p.status = 'publish'
                  {date_clause}
                ORDER BY p.published_on DESC, p.title
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [
            RelatedPost(title=row["title"], url=row["url"], date=row["published_on"], excerpt=row["excerpt"])
            for row in rows
        ]


def load_yaml_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        content = yaml.safe_load(f) or {}
    return content


def import_archive(store: ContentStore, path: Path) -> Dict[str, int]:
    """Load categories and posts from a YAML seed file into the archive."""
    payload = load_yaml_file(path)
    categories = payload.get("categories", []) or []
    posts = payload.get("posts", []) or []

    for row in categories:
        store.upsert_category(int(row["id"]), str(row["name"]))

    imported_posts = 0
    for row in posts:
        url = str(row.get("url", "")).strip()
        title = str(row.get("title", "")).strip()
        if not url or not title:
            continue
        raw_date = row.get("date")
        published = raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date))
        store.upsert_post(
            url=url,
            title=title,
            published_on=published,
            category_ids=[int(x) for x in row.get("categories", []) or []],
            excerpt=str(row.get("excerpt", "") or ""),
            status=str(row.get("status", "publish")),
        )
        imported_posts += 1

    return {"categories": len(categories), "posts": imported_posts}
