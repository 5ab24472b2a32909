from __future__ import annotations

import json
from typing import List

from nexus_news.models import AnalyzedStory

EMPTY_ANALYSIS_TEXT = "No trending news analysis available."


def build_markdown(stories: List[AnalyzedStory]) -> str:
    if not stories:
        return EMPTY_ANALYSIS_TEXT

    lines: List[str] = []
    for story in stories:
        lines.append(f"## **{story.title}**")
        lines.append("")
        source_text = f" [Source]({story.source})" if story.source else ""
        lines.append(f"*{story.summary}{source_text}*")
        lines.append("")

        for idx, angle in enumerate(story.angles, start=1):
            lines.append(f"• **HEADLINE {idx}:** {angle.headline}")
            lines.append(f"  - **ANGLE {idx}:** {angle.angle}")
            for link_idx, link in enumerate(angle.links, start=1):
                lines.append(f"  - **REPORT LINK {link_idx}:** [{link.title}]({link.url})")
            lines.append("")

        lines.append("---")
        lines.append("")

    return "\n".join(lines)


def build_json_payload(stories: List[AnalyzedStory]) -> str:
    return json.dumps([story.as_dict() for story in stories], ensure_ascii=False)


def render(stories: List[AnalyzedStory], output_format: str) -> str:
    if output_format == "markdown":
        return build_markdown(stories)
    return build_json_payload(stories)
