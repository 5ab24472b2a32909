"""Slack Block Kit payloads for acknowledgements, stories, notices and errors."""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse

from nexus_news.models import AnalysisRequest, AnalyzedStory, RequestContext

NUMBER_EMOJIS = {
    1: "1️⃣",
    2: "2️⃣",
    3: "3️⃣",
    4: "4️⃣",
    5: "5️⃣",
    6: "6️⃣",
    7: "7️⃣",
    8: "8️⃣",
    9: "9️⃣",
    10: "🔟",
}
SLACK_BLOCK_TEXT_LIMIT = 3000
RERUN_ACTION_ID = "rerun_analysis"


def _section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _context(text: str) -> dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def _header(text: str) -> dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


def number_emoji(number: int) -> str:
    return NUMBER_EMOJIS.get(number, f"{number}.")


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    # Models sometimes emit escaped control sequences literally.
    cleaned = text.replace("\\n", " ").replace("\\r", " ").replace("\\t", " ")
    return re.sub(r"\s+", " ", cleaned).strip()


def extract_domain(url: str) -> str:
    host = urlparse(url).hostname or url
    return re.sub(r"^www\.", "", host)


def ephemeral(text: str) -> dict[str, Any]:
    return {"response_type": "ephemeral", "text": text}


def format_acknowledgement(job_id: str, request: AnalysisRequest, display_args: str) -> dict[str, Any]:
    text = "🌀 Analyzing trending news, you will be notified here when the analysis is complete."
    return {
        "response_type": "in_channel",
        "text": text,
        "blocks": [
            _section("🌀 *Analyzing trending news*  You will be notified here when the analysis is complete."),
            _context(f"(Job ID: `{job_id}`) Parameters: {display_args}"),
        ],
    }


def format_story_summary(story: AnalyzedStory, index: int) -> dict[str, Any]:
    number = number_emoji(index + 1)
    title = clean_text(story.title) or "Untitled"
    headline = f"{number} <{story.source}|*{title}*>" if story.source else f"{number} *{title}*"
    return {
        "blocks": [
            _section(headline),
            _context("👇 _Open the thread below for the full trending news analysis_"),
        ],
        "text": f"{number} {title}",
    }


def format_story_thread(story: AnalyzedStory, index: int, organization: str = "our research team") -> dict[str, Any]:
    number = number_emoji(index + 1)
    title = clean_text(story.title) or "Untitled"
    summary = clean_text(story.summary)

    blocks: list[dict[str, Any]] = [_section(f"{number} *{title}*")]
    if summary:
        blocks.append(_section(f"*📝 Summary* {summary}"))
    if story.source:
        blocks.append(_context(f"🔗 *Source:* <{story.source}|{extract_domain(story.source)}>"))

    angles = [a for a in story.angles if clean_text(a.headline)]
    if angles:
        blocks.append(_section(f"*💡 Story angles for {organization}:*"))
    for idx, angle in enumerate(angles):
        arrow = f"→ *Angle {idx + 1}:*" if len(angles) > 1 else "→"
        blocks.append(_section(f"{arrow}\n_{clean_text(angle.headline)}_"))
        if clean_text(angle.angle):
            blocks.append(_section(f"*How to use:* {clean_text(angle.angle)}"))
        link_lines = [f"• <{link.url}|{link.title}>" for link in angle.links if link.url and link.title]
        if link_lines:
            blocks.append(_context("*📊 Related research:*\n" + "\n".join(link_lines)))
        if idx < len(angles) - 1:
            blocks.append({"type": "divider"})

    return {"blocks": blocks, "text": f"{number} {title}"}


def format_completion_notice(context: RequestContext, dropped: int = 0) -> dict[str, Any]:
    mention = f"<@{context.user_id}>" if context.user_id else "there"
    text = f"👋 {mention}, 🌀 your trending news analysis is ready for review 👆"
    blocks = [_section(text)]
    if dropped:
        noun = "story was" if dropped == 1 else "stories were"
        blocks.append(_context(f"ℹ️ {dropped} trending {noun} left out because no related published content was found."))
    return {"text": text, "blocks": blocks}


def split_markdown_content(content: str, max_length: int = SLACK_BLOCK_TEXT_LIMIT) -> list[str]:
    chunks: list[str] = []
    current = ""
    for section in re.split(r"\n\n", content or ""):
        if len(current) + len(section) + 2 > max_length:
            if current:
                chunks.append(current.strip())
                current = ""
            while len(section) > max_length:
                chunks.append(section[: max_length - 20] + "... [continued]")
                section = "[continued] " + section[max_length - 20 :]
            current = section
        else:
            current = f"{current}\n\n{section}" if current else section
    if current.strip():
        chunks.append(current.strip())
    return chunks


def format_fallback_response(markdown_text: str, request: AnalysisRequest, context: RequestContext) -> dict[str, Any]:
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    blocks: list[dict[str, Any]] = [
        _header("📰 Trending News Analysis Complete"),
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Requested by:*\n{context.user_name or context.user_id or 'Unknown user'}"},
                {"type": "mrkdwn", "text": f"*Category:*\n{request.category}"},
                {"type": "mrkdwn", "text": f"*Total:*\n{request.total}"},
                {"type": "mrkdwn", "text": f"*Date:*\n{generated} UTC"},
            ],
        },
        {"type": "divider"},
    ]
    blocks.extend(_section(chunk) for chunk in split_markdown_content(markdown_text))
    return {
        "response_type": "in_channel",
        "text": "📰 Trending News Analysis Complete",
        "blocks": blocks,
    }


def format_error_response(
    error_message: str,
    request: Optional[AnalysisRequest],
    context: RequestContext,
    rerun_text: str = "",
) -> dict[str, Any]:
    params = json.dumps(request.as_dict(), ensure_ascii=False) if request else "{}"
    blocks: list[dict[str, Any]] = [
        _header("❌ Analysis Failed"),
        _section(
            f"*Error:*\n```{error_message}```\n\n"
            f"*Requested by:* {context.user_name or context.user_id or 'Unknown user'}\n*Parameters:* {params}"
        ),
        _context(
            "💡 *Troubleshooting tips:*\n• Check your category name\n• Verify date format (YYYY-MM-DD)\n"
            "• Ensure article count is between 1-100\n• Try again in a few moments"
        ),
    ]
    if rerun_text:
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "action_id": RERUN_ACTION_ID,
                        "text": {"type": "plain_text", "text": "🔁 Run again", "emoji": True},
                        "value": json.dumps({"text": rerun_text}),
                    }
                ],
            }
        )
    return {"response_type": "ephemeral", "text": f"❌ Analysis failed: {error_message}", "blocks": blocks}
