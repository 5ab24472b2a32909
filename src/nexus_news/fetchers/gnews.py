from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from dateutil import parser as date_parser

from nexus_news.errors import NewsSourceError
from nexus_news.models import AnalysisRequest, NewsItem

log = logging.getLogger(__name__)

GNEWS_TOP_HEADLINES = "https://gnews.io/api/v4/top-headlines"


def _parse_article(article: dict[str, Any]) -> Optional[NewsItem]:
    title = str(article.get("title") or "").strip()
    url = str(article.get("url") or "").strip()
    if not title or not url:
        return None
    published_at = None
    raw_date = article.get("publishedAt")
    if raw_date:
        try:
            published_at = date_parser.parse(str(raw_date))
        except (ValueError, TypeError, OverflowError):
            published_at = None
    source = article.get("source") or {}
    return NewsItem(
        title=title,
        url=url,
        source=str(source.get("name") or "") if isinstance(source, dict) else str(source),
        description=str(article.get("description") or "").strip(),
        published_at=published_at,
    )


class GNewsSource:
    def __init__(self, api_key: Optional[str], lang: str = "en", country: str = "us", timeout: int = 15):
        self.api_key = api_key
        self.lang = lang
        self.country = country
        self.timeout = timeout

    def fetch(self, request: AnalysisRequest) -> list[NewsItem]:
        if not self.api_key:
            raise NewsSourceError("GNews API key is not configured")

        params = {
            "category": request.category,
            "lang": self.lang,
            "country": self.country,
            "max": request.total,
            "from": f"{request.from_date.isoformat()}T00:00:00Z",
            "to": f"{request.to_date.isoformat()}T23:59:59Z",
            "apikey": self.api_key,
        }
        if request.query:
            params["q"] = request.query

        # requests puts the full URL, apikey included, into its exception text.
        try:
            response = requests.get(GNEWS_TOP_HEADLINES, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NewsSourceError(f"GNews request failed: {type(exc).__name__}") from None
        if response.status_code != 200:
            raise NewsSourceError(f"GNews request failed: HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            raise NewsSourceError("GNews returned invalid JSON") from None

        items: list[NewsItem] = []
        articles = payload.get("articles") if isinstance(payload, dict) else None
        for article in articles if isinstance(articles, list) else []:
            if not isinstance(article, dict):
                continue
            item = _parse_article(article)
            if item:
                items.append(item)
        log.info("GNews returned %d articles for category=%s", len(items), request.category)
        return items[: request.total]
