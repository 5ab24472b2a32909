"""Trending news analysis: fetch → classify → enrich → judge → format.

Stages run strictly in order. Anything that goes wrong before judging aborts
the run with PipelineFatalError; judging is per story and a bad reply only
drops that story.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import date
from enum import Enum
from typing import Any, List, Optional, Protocol, Tuple
from urllib.parse import urlparse

from nexus_news.cache import (
    RELATED_POSTS_TTL,
    TOPIC_DICTIONARY_KEY,
    TOPIC_DICTIONARY_TTL,
    CacheClient,
    related_posts_key,
)
from nexus_news.content_store import ContentStore
from nexus_news.errors import NewsSourceError, PipelineFatalError
from nexus_news.fetchers.gnews import GNewsSource
from nexus_news.fetchers.rss import RssNewsSource
from nexus_news.llm import JudgementModel
from nexus_news.models import (
    AnalysisRequest,
    AnalysisResult,
    AnalyzedStory,
    ClassifiedStory,
    EnrichedStory,
    NewsItem,
    RelatedPost,
    StoryAngle,
    StoryLink,
    TopicRef,
)
from nexus_news.prompts import TRENDING_NEWS_FEATURE, PromptStrategy, classification_prompt, resolve_strategy
from nexus_news.reporting import render

log = logging.getLogger(__name__)

NO_NEWS_MESSAGE = "No trending news available"


class PipelineStage(str, Enum):
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    ENRICHING = "enriching"
    JUDGING = "judging"
    FORMATTING = "formatting"
    DONE = "done"


class NewsSource(Protocol):
    def fetch(self, request: AnalysisRequest) -> List[NewsItem]: ...


class ContentArchive(Protocol):
    def list_categories(self) -> List[TopicRef]: ...

    def related_posts(self, category_ids: List[int], limit: int = 5, since: Optional[date] = None) -> List[RelatedPost]: ...


class LanguageModel(Protocol):
    def generate_json(self, prompt: str, system: Optional[str] = None, temperature: float = 0.2) -> str: ...


def _log_stage(stage: PipelineStage, detail: str = "", *args: Any) -> None:
    log.info("Pipeline stage=%s" + detail, stage.value, *args, extra={"stage": stage.value})


def _strip_code_fence(text: str) -> str:
    content = (text or "").strip()
    if content.startswith("```"):
        lines = content.splitlines()
        if lines and lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines).strip()
    return content


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def title_from_url(url: str) -> str:
    parts = [p for p in urlparse(url).path.strip("/").split("/") if p]
    if not parts:
        return "View Report"
    return re.sub(r"[-_]+", " ", parts[-1]).title()


def _parse_links(raw_links: Any) -> Tuple[StoryLink, ...]:
    links: List[StoryLink] = []
    for raw in raw_links if isinstance(raw_links, list) else []:
        if isinstance(raw, dict) and raw.get("url"):
            url = str(raw["url"]).strip()
            links.append(StoryLink(title=str(raw.get("title") or title_from_url(url)).strip(), url=url))
        elif isinstance(raw, str) and raw.strip():
            links.append(StoryLink(title=title_from_url(raw.strip()), url=raw.strip()))
    return tuple(links)


def parse_analyzed_story(raw: str, story: EnrichedStory) -> Optional[AnalyzedStory]:
    """Decode one judge reply; None when it is not a usable analysis."""
    try:
        data = json.loads(_strip_code_fence(raw))
    except (json.JSONDecodeError, TypeError):
        log.warning("Failed to decode JSON for story: %s", story.title)
        return None

    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict) or not data:
        log.warning("Empty or malformed analysis for story: %s", story.title)
        return None

    angles: List[StoryAngle] = []
    raw_angles = data.get("angles", data.get("suggestions", []))
    for raw_angle in raw_angles if isinstance(raw_angles, list) else []:
        if not isinstance(raw_angle, dict):
            continue
        headline = str(raw_angle.get("headline") or "").strip()
        if not headline:
            continue
        angles.append(
            StoryAngle(
                headline=headline,
                angle=str(raw_angle.get("angle") or "").strip(),
                links=_parse_links(raw_angle.get("links")),
            )
        )
    if not angles:
        log.info("No story angles suggested for: %s", story.title)
        return None

    item = story.story.item
    return AnalyzedStory(
        title=str(data.get("title") or item.title).strip(),
        summary=str(data.get("summary") or item.description).strip(),
        source=str(data.get("source") or item.url).strip(),
        angles=tuple(angles),
    )


class TrendingNewsPipeline:
    def __init__(
        self,
        news_source: NewsSource,
        model: LanguageModel,
        archive: ContentArchive,
        cache: CacheClient,
        strategy: PromptStrategy,
        organization: str = "our research team",
        related_limit: int = 5,
        current_year_only: bool = True,
    ):
        self.news_source = news_source
        self.model = model
        self.archive = archive
        self.cache = cache
        self.strategy = strategy
        self.organization = organization
        self.related_limit = related_limit
        self.current_year_only = current_year_only

    def run(self, request: AnalysisRequest) -> AnalysisResult:
        _log_stage(PipelineStage.FETCHING, " category=%s total=%d", request.category, request.total)
        news = self.fetch(request)

        _log_stage(PipelineStage.CLASSIFYING, " stories=%d", len(news))
        classified = self.classify(news, self.topic_dictionary())

        _log_stage(PipelineStage.ENRICHING, " stories=%d", len(classified))
        enriched, dropped = self.enrich(classified)

        _log_stage(PipelineStage.JUDGING, " stories=%d dropped_unrelated=%d", len(enriched), dropped)
        analyzed, failed = self.judge(enriched)

        _log_stage(PipelineStage.FORMATTING, " analyzed=%d failed=%d", len(analyzed), failed)
        response = render(analyzed, request.output_format)

        _log_stage(PipelineStage.DONE)
        return AnalysisResult(stories=analyzed, response=response, dropped_unrelated=dropped, failed_judgement=failed)

    def fetch(self, request: AnalysisRequest) -> List[NewsItem]:
        try:
            news = self.news_source.fetch(request)
        except NewsSourceError as exc:
            log.error("News fetch failed: %s", exc)
            raise PipelineFatalError(NO_NEWS_MESSAGE) from exc
        if not news:
            raise PipelineFatalError(NO_NEWS_MESSAGE)
        return news

    def topic_dictionary(self) -> List[TopicRef]:
        cached = self.cache.get(TOPIC_DICTIONARY_KEY)
        if cached is not None:
            log.debug("Using cached topic dictionary")
            return [TopicRef(name=row["name"], id=int(row["id"])) for row in cached]

        topics = self.archive.list_categories()
        self.cache.set(TOPIC_DICTIONARY_KEY, [{"name": t.name, "id": t.id} for t in topics], TOPIC_DICTIONARY_TTL)
        log.info("Topic dictionary cached for 24 hours (%d topics)", len(topics))
        return topics

    def classify(self, news: List[NewsItem], dictionary: List[TopicRef]) -> List[ClassifiedStory]:
        prompt = classification_prompt(
            [{"name": t.name, "id": t.id} for t in dictionary],
            [item.as_dict() for item in news],
        )
        try:
            raw = self.model.generate_json(prompt, temperature=0.2)
        except Exception as exc:
            raise PipelineFatalError(f"Story classification failed: {exc}") from exc

        try:
            parsed = json.loads(_strip_code_fence(raw))
        except (json.JSONDecodeError, TypeError) as exc:
            raise PipelineFatalError("Failed to parse story classification") from exc
        if isinstance(parsed, dict):
            parsed = parsed.get("stories")
        if not isinstance(parsed, list):
            raise PipelineFatalError("Failed to parse story classification")

        known = {t.id: t for t in dictionary}
        by_url = {item.url: item for item in news}
        stories: List[ClassifiedStory] = []
        for idx, row in enumerate(parsed):
            if not isinstance(row, dict):
                continue
            item = by_url.get(str(row.get("url") or "").strip())
            if item is None and idx < len(news):
                item = news[idx]
            if item is None:
                continue

            topics: List[TopicRef] = []
            raw_topics = row.get("categories")
            for ref in raw_topics if isinstance(raw_topics, list) else []:
                if not isinstance(ref, dict):
                    continue
                topic_id = _to_int(ref.get("id", ref.get("term_id")))
                if topic_id in known and known[topic_id] not in topics:
                    topics.append(known[topic_id])
            stories.append(ClassifiedStory(item=item, topics=topics))
        return stories

    def related_posts(self, category_ids: List[int]) -> List[RelatedPost]:
        if not category_ids:
            return []
        key = related_posts_key(category_ids, self.related_limit)
        cached = self.cache.get(key)
        if cached is not None:
            log.debug("Using cached related posts for categories: %s", category_ids)
            return [RelatedPost(**row) for row in cached]

        since = date(date.today().year, 1, 1) if self.current_year_only else None
        posts = self.archive.related_posts(category_ids, limit=self.related_limit, since=since)
        self.cache.set(
            key,
            [{"title": p.title, "url": p.url, "date": p.date, "excerpt": p.excerpt} for p in posts],
            RELATED_POSTS_TTL,
        )
        return posts

    def enrich(self, stories: List[ClassifiedStory]) -> Tuple[List[EnrichedStory], int]:
        enriched: List[EnrichedStory] = []
        dropped = 0
        for story in stories:
            posts = self.related_posts(story.topic_ids)
            if not posts:
                dropped += 1
                log.info("Skipping story %r - no related posts found", story.item.title)
                continue
            enriched.append(EnrichedStory(story=story, related_posts=posts))
        return enriched, dropped

    def judge_story(self, story: EnrichedStory) -> Optional[AnalyzedStory]:
        prompt = self.strategy.story_prompt(story.as_prompt_payload(), self.organization)
        try:
            raw = self.model.generate_json(
                prompt,
                system=self.strategy.system_instruction,
                temperature=self.strategy.temperature,
            )
        except Exception as exc:
            log.warning("Error processing story %r: %s", story.title, exc)
            return None
        return parse_analyzed_story(raw, story)

    def judge(self, stories: List[EnrichedStory]) -> Tuple[List[AnalyzedStory], int]:
        analyzed: List[AnalyzedStory] = []
        failed = 0
        for idx, story in enumerate(stories, start=1):
            log.info("Processing story %d of %d", idx, len(stories))
            result = self.judge_story(story)
            if result is None:
                failed += 1
                continue
            analyzed.append(result)
        return analyzed, failed


def build_news_source(settings: Any) -> NewsSource:
    provider = str(settings.news_provider).lower()
    if provider == "rss":
        return RssNewsSource.from_config(settings.rss_config_path)
    if provider == "gnews":
        return GNewsSource(
            api_key=settings.gnews_api_key,
            lang=settings.gnews_lang,
            country=settings.gnews_country,
            timeout=settings.request_timeout_sec,
        )
    raise ValueError(f"Unknown news provider: {settings.news_provider}")


def build_pipeline(settings: Any, cache: CacheClient) -> TrendingNewsPipeline:
    return TrendingNewsPipeline(
        news_source=build_news_source(settings),
        model=JudgementModel.from_settings(settings),
        archive=ContentStore(settings.content_db_path),
        cache=cache,
        strategy=resolve_strategy(TRENDING_NEWS_FEATURE, settings.organization_name),
        organization=settings.organization_name,
        related_limit=settings.related_posts_limit,
        current_year_only=settings.related_posts_current_year_only,
    )
