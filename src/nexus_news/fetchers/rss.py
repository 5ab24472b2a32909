from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import feedparser
from dateutil import parser as date_parser

from nexus_news.content_store import load_yaml_file
from nexus_news.models import AnalysisRequest, NewsItem

log = logging.getLogger(__name__)


def _parse_date(entry: Any) -> Optional[datetime]:
    for key in ("published", "updated", "created"):
        raw = getattr(entry, key, None)
        if raw:
            try:
                return date_parser.parse(raw)
            except (ValueError, TypeError, OverflowError):
                continue
    return None


def _normalize_text(text: str, max_len: int = 220) -> str:
    compact = " ".join(text.split()).strip()
    if len(compact) <= max_len:
        return compact
    return compact[: max_len - 1].rstrip() + "…"


def _in_range(item: NewsItem, request: AnalysisRequest) -> bool:
    if item.published_at is None:
        return True
    day = item.published_at.date()
    return request.from_date <= day <= request.to_date


def _matches_query(item: NewsItem, query: str) -> bool:
    if not query:
        return True
    blob = f"{item.title} {item.description}".lower()
    return all(term in blob for term in query.lower().split())


class RssNewsSource:
    """Headlines from RSS feeds tagged with a news category in a YAML file.

    ``feeds.yaml``::

        rss:
          - name: Example Tech
            url: https://example.com/tech.xml
            category: technology
    """

    def __init__(self, feeds: list[dict[str, Any]]):
        self.feeds = feeds

    @classmethod
    def from_config(cls, path: Path) -> "RssNewsSource":
        return cls(list(load_yaml_file(path).get("rss", []) or []))

    def fetch(self, request: AnalysisRequest) -> list[NewsItem]:
        feeds = [f for f in self.feeds if f.get("url") and f.get("category", "general") in (request.category, "general")]
        per_feed_items: list[list[NewsItem]] = []
        for feed in feeds:
            parsed = feedparser.parse(feed["url"])
            source_name = feed.get("name") or feed["url"]
            bucket: list[NewsItem] = []
            for entry in parsed.entries:
                item = NewsItem(
                    title=_normalize_text(getattr(entry, "title", "(untitled)")),
                    url=getattr(entry, "link", "").strip(),
                    source=source_name,
                    description=_normalize_text(getattr(entry, "summary", ""), max_len=500),
                    published_at=_parse_date(entry),
                )
                if item.url and _in_range(item, request) and _matches_query(item, request.query):
                    bucket.append(item)
            if bucket:
                per_feed_items.append(bucket)

        # Round-robin merge so the first feed cannot take every slot.
        merged: list[NewsItem] = []
        while len(merged) < request.total:
            progressed = False
            for bucket in per_feed_items:
                if bucket:
                    merged.append(bucket.pop(0))
                    progressed = True
                    if len(merged) >= request.total:
                        break
            if not progressed:
                break

        log.info("RSS returned %d items from %d feeds for category=%s", len(merged), len(feeds), request.category)
        return merged
