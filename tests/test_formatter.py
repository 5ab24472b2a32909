import json
from datetime import date

from nexus_news.formatter import (
    RERUN_ACTION_ID,
    clean_text,
    extract_domain,
    format_completion_notice,
    format_error_response,
    format_fallback_response,
    format_story_summary,
    format_story_thread,
    number_emoji,
    split_markdown_content,
)
from nexus_news.models import AnalysisRequest, AnalyzedStory, RequestContext, StoryAngle, StoryLink

CONTEXT = RequestContext(user_id="U12345678", channel_id="C12345678", user_name="ana")
REQUEST = AnalysisRequest(category="technology", total=3, from_date=date(2025, 6, 9), to_date=date(2025, 6, 10))


def _story() -> AnalyzedStory:
    return AnalyzedStory(
        title="Chip rules\\n tighten",
        summary="New export limits.",
        source="https://www.news.example.com/chips",
        angles=(
            StoryAngle("Views of China trade", "Use survey", (StoryLink("Trade views", "https://r.example.org/t"),)),
            StoryAngle("Tech worries", "Compare trend"),
        ),
    )


def _texts(payload) -> str:
    return json.dumps(payload["blocks"], ensure_ascii=False)


def test_small_helpers() -> None:
    assert number_emoji(1) == "1️⃣"
    assert number_emoji(12) == "12."
    assert clean_text("a\\nb   c") == "a b c"
    assert clean_text(None) == ""
    assert extract_domain("https://www.news.example.com/x") == "news.example.com"


def test_story_summary_links_title_and_points_to_thread() -> None:
    payload = format_story_summary(_story(), 1)
    assert payload["text"] == "2️⃣ Chip rules tighten"
    assert payload["blocks"][0]["text"]["text"] == "2️⃣ <https://www.news.example.com/chips|*Chip rules tighten*>"
    assert "thread" in payload["blocks"][1]["elements"][0]["text"]


def test_story_thread_lists_angles_and_research() -> None:
    blocks = _texts(format_story_thread(_story(), 0, organization="Example Research"))
    assert "Story angles for Example Research" in blocks
    assert "→ *Angle 1:*" in blocks and "→ *Angle 2:*" in blocks
    assert "<https://r.example.org/t|Trade views>" in blocks
    assert "news.example.com>" in blocks


def test_completion_notice_mentions_user_and_dropped_count() -> None:
    plain = format_completion_notice(CONTEXT)
    assert "<@U12345678>" in plain["text"]
    assert len(plain["blocks"]) == 1

    partial = format_completion_notice(CONTEXT, dropped=2)
    assert "2 trending stories were left out" in _texts(partial)


def test_split_markdown_content_respects_block_limit() -> None:
    sections = ["para %d " % i + "x" * 900 for i in range(6)]
    chunks = split_markdown_content("\n\n".join(sections), max_length=3000)
    assert len(chunks) > 1
    assert all(len(c) <= 3000 for c in chunks)

    long_chunks = split_markdown_content("y" * 7000, max_length=3000)
    assert all(len(c) <= 3000 for c in long_chunks)
    assert long_chunks[0].endswith("... [continued]")


def test_fallback_response_carries_request_fields() -> None:
    payload = format_fallback_response("## **Story**\n\nbody", REQUEST, CONTEXT)
    assert payload["response_type"] == "in_channel"
    assert payload["blocks"][0]["type"] == "header"
    fields = payload["blocks"][1]["fields"]
    assert fields[0]["text"].endswith("ana")
    assert fields[1]["text"].endswith("technology")
    assert payload["blocks"][-1]["text"]["text"] == "## **Story**\n\nbody"


def test_error_response_is_ephemeral_with_rerun_button() -> None:
    payload = format_error_response("No trending news available", REQUEST, CONTEXT, rerun_text="category:technology")
    assert payload["response_type"] == "ephemeral"
    assert "No trending news available" in payload["text"]
    button = payload["blocks"][-1]["elements"][0]
    assert button["action_id"] == RERUN_ACTION_ID
    assert json.loads(button["value"]) == {"text": "category:technology"}

    no_button = format_error_response("boom", None, CONTEXT)
    assert all(block["type"] != "actions" for block in no_button["blocks"])
