from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import urlparse

from nexus_news.errors import ValidationError
from nexus_news.formatter import format_acknowledgement
from nexus_news.models import CATEGORIES, OUTPUT_FORMATS, AnalysisRequest, RequestContext
from nexus_news.ratelimit import RateLimiter

log = logging.getLogger(__name__)

DEFAULT_CATEGORY = "nation"
DEFAULT_TOTAL = 5
MIN_TOTAL = 1
MAX_TOTAL = 100
DEFAULT_OUTPUT_FORMAT = "markdown"

USER_ID_RE = re.compile(r"^[UW][A-Z0-9]{8,}$")
CHANNEL_ID_RE = re.compile(r"^[CDG][A-Z0-9]{8,}$")
# key:value where the value runs across words until the next key: token.
KEY_VALUE_RE = re.compile(r"(\w+):([^\s]+(?:\s+(?!\w+:)[^\s]+)*)")
_TAG_RE = re.compile(r"<[^>]*>")

_KEY_ALIASES = {
    "category": "category",
    "total": "total",
    "articles": "total",
    "number": "total",
    "from": "from",
    "to": "to",
    "query": "query",
    "search": "query",
    "format": "output_format",
    "output_format": "output_format",
}


class JobScheduler(Protocol):
    def schedule(self, request: AnalysisRequest, context: RequestContext) -> str: ...


def _sanitize(value: Any) -> str:
    text = _TAG_RE.sub("", str(value or ""))
    return " ".join(text.split()).strip()


def validate_user_id(user_id: str) -> str:
    if not USER_ID_RE.match(user_id or ""):
        raise ValidationError("Invalid user ID format.")
    return user_id


def validate_channel_id(channel_id: str) -> str:
    if not CHANNEL_ID_RE.match(channel_id or ""):
        raise ValidationError("Invalid channel ID format.")
    return channel_id


def validate_response_url(response_url: str, allowed_host: str) -> str:
    if not response_url:
        return ""
    parsed = urlparse(response_url)
    if parsed.scheme != "https" or (parsed.hostname or "").lower() != allowed_host.lower():
        raise ValidationError("Invalid response URL.")
    return response_url


def clamp_total(value: Any) -> int:
    try:
        total = int(str(value).strip())
    except (TypeError, ValueError):
        return DEFAULT_TOTAL
    return min(MAX_TOTAL, max(MIN_TOTAL, total))


def _parse_date(value: str, field_name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field_name} date `{value}`, expected YYYY-MM-DD.")


def build_request(
    category: Optional[str] = None,
    total: Any = DEFAULT_TOTAL,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
    query: Optional[str] = None,
    output_format: Optional[str] = None,
    today: Optional[date] = None,
) -> AnalysisRequest:
    today = today or date.today()
    category_value = _sanitize(category).lower() or DEFAULT_CATEGORY
    if category_value not in CATEGORIES:
        raise ValidationError(f"Unknown category `{category_value}`. Try one of: {', '.join(CATEGORIES)}.")

    start = _parse_date(from_date, "from") if from_date else today - timedelta(days=1)
    end = _parse_date(to_date, "to") if to_date else today
    if start > end:
        raise ValidationError("The `from` date must be on or before the `to` date.")

    fmt = (output_format or "").strip().lower()
    return AnalysisRequest(
        category=category_value,
        total=clamp_total(total),
        from_date=start,
        to_date=end,
        query=_sanitize(query),
        output_format=fmt if fmt in OUTPUT_FORMATS else DEFAULT_OUTPUT_FORMAT,
    )


def parse_command_text(text: str, max_chars: int = 1000, today: Optional[date] = None) -> AnalysisRequest:
    raw = (text or "")[:max_chars]
    values: dict[str, str] = {}
    for key, value in KEY_VALUE_RE.findall(raw):
        field_name = _KEY_ALIASES.get(key.lower())
        if field_name:
            values[field_name] = value.strip()

    return build_request(
        category=values.get("category"),
        total=values.get("total", DEFAULT_TOTAL),
        from_date=values.get("from"),
        to_date=values.get("to"),
        query=values.get("query"),
        output_format=values.get("output_format"),
        today=today,
    )


def command_text_for(request: AnalysisRequest) -> str:
    parts = [
        f"category:{request.category}",
        f"total:{request.total}",
        f"from:{request.from_date.isoformat()}",
        f"to:{request.to_date.isoformat()}",
        f"format:{request.output_format}",
    ]
    if request.query:
        parts.append(f"query:{request.query}")
    return " ".join(parts)


def format_args_for_display(request: AnalysisRequest) -> str:
    return ", ".join(f"`{key}: {value}`" for key, value in request.as_dict().items() if value)


def accept_command(
    params: Mapping[str, str],
    settings: Any,
    rate_limiter: RateLimiter,
    scheduler: JobScheduler,
    today: Optional[date] = None,
) -> dict[str, Any]:
    """Validate a slash command, schedule its job and build the immediate ack.

    Raises ValidationError or RateLimitedError; neither leaves side effects.
    """
    user_id = validate_user_id(_sanitize(params.get("user_id")))
    channel_id = validate_channel_id(_sanitize(params.get("channel_id")))
    response_url = validate_response_url(str(params.get("response_url") or "").strip(), settings.slack_callback_host)

    rate_limiter.check(user_id)
    request = parse_command_text(str(params.get("text") or ""), max_chars=settings.command_max_chars, today=today)
    context = RequestContext(
        user_id=user_id,
        channel_id=channel_id,
        user_name=_sanitize(params.get("user_name")),
        response_url=response_url,
        team_id=_sanitize(params.get("team_id")),
    )

    job_id = scheduler.schedule(request, context)
    rate_limiter.record(user_id)
    log.info("Scheduled job %s for %s in %s: %s", job_id, user_id, channel_id, request.as_dict())
    return format_acknowledgement(job_id, request, format_args_for_display(request))
