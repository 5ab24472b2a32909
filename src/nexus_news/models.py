from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Optional

CATEGORIES = (
    "general",
    "world",
    "nation",
    "business",
    "technology",
    "entertainment",
    "sports",
    "science",
    "health",
)
OUTPUT_FORMATS = ("markdown", "json")


@dataclass(frozen=True)
class AnalysisRequest:
    category: str
    total: int
    from_date: date
    to_date: date
    query: str = ""
    output_format: str = "markdown"

    def with_format(self, output_format: str) -> "AnalysisRequest":
        return replace(self, output_format=output_format)

    def as_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "total": self.total,
            "from": self.from_date.isoformat(),
            "to": self.to_date.isoformat(),
            "query": self.query,
            "output_format": self.output_format,
        }


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    channel_id: str
    user_name: str = ""
    response_url: str = ""
    team_id: str = ""


@dataclass
class NewsItem:
    title: str
    url: str
    source: str
    description: str = ""
    published_at: Optional[datetime] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "source": self.source,
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }


@dataclass(frozen=True)
class TopicRef:
    name: str
    id: int


@dataclass
class ClassifiedStory:
    item: NewsItem
    topics: list[TopicRef] = field(default_factory=list)

    @property
    def topic_ids(self) -> list[int]:
        return sorted({topic.id for topic in self.topics})


@dataclass(frozen=True)
class RelatedPost:
    title: str
    url: str
    date: str = ""
    excerpt: str = ""


@dataclass
class EnrichedStory:
    story: ClassifiedStory
    related_posts: list[RelatedPost] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.story.item.title

    def as_prompt_payload(self) -> dict[str, Any]:
        payload = self.story.item.as_dict()
        payload["categories"] = [{"name": t.name, "id": t.id} for t in self.story.topics]
        payload["related_posts"] = [
            {"title": p.title, "date": p.date, "url": p.url, "excerpt": p.excerpt} for p in self.related_posts
        ]
        return payload


@dataclass(frozen=True)
class StoryLink:
    title: str
    url: str


@dataclass(frozen=True)
class StoryAngle:
    headline: str
    angle: str
    links: tuple[StoryLink, ...] = ()


@dataclass(frozen=True)
class AnalyzedStory:
    title: str
    summary: str
    source: str
    angles: tuple[StoryAngle, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "source": self.source,
            "angles": [
                {
                    "headline": a.headline,
                    "angle": a.angle,
                    "links": [{"title": link.title, "url": link.url} for link in a.links],
                }
                for a in self.angles
            ],
        }


@dataclass(frozen=True)
class Job:
    request: AnalysisRequest
    context: RequestContext
    job_id: str = ""


@dataclass
class AnalysisResult:
    stories: list[AnalyzedStory]
    response: str
    dropped_unrelated: int = 0
    failed_judgement: int = 0


@dataclass(frozen=True)
class DeliveryOutcome:
    ok: bool
    ts: Optional[str] = None
    error: str = ""


@dataclass
class DeliveryReport:
    summaries_posted: int = 0
    thread_replies: int = 0
    fallback_used: bool = False
    fallback_delivered: bool = False
    completion_sent: bool = False
