"""Prompt templates, keyed by the feature that uses them."""
from __future__ import annotations

import json
from dataclasses import dataclass

TRENDING_NEWS_FEATURE = "trending-news-analysis"

ANALYSIS_SHAPE = {
    "title": "The title of the trending news item",
    "summary": "1 sentence summary of the news item",
    "source": "link to the original source of this trending news item",
    "angles": [
        {
            "headline": (
                "A story headline showing how {organization} would connect its research to the news, "
                "adding explanatory context or showing how people feel about the topic. The headline should "
                "tie the current news peg to the research, like: \"As the tariff is delayed, here's how "
                "Americans feel about the government's role in setting tariffs\""
            ),
            "angle": "How {organization} reporters would use the research to connect to the news article",
            "links": [
                {
                    "title": "Title of the related published report",
                    "url": "URL of the related report, taken from related_posts",
                }
            ],
        }
    ],
}

_TRENDING_NEWS_INSTRUCTIONS = """You are a news analysis assistant for {organization} staff.

Your task: assess whether a trending news story has a strong connection to the provided published content, and suggest story angles that connect that research to current news.

CRITICAL OUTPUT REQUIREMENTS:
- Return ONLY a valid JSON object matching this exact structure: {shape}
- Do not include explanatory text, markdown formatting, or commentary
- Do not wrap the JSON in code blocks or backticks

For the trending news story:
1. Evaluate whether the related published content is a close enough match to support a story
2. If it is, suggest exactly two story angles that connect the news to the research
3. Headlines should be specific and connect the news peg to the research
4. For links, use the title and url of entries in related_posts: {{"title": "Report Title", "url": "https://..."}}"""

CLASSIFICATION_PROMPT = """Analyze these news stories and assign each one the relevant categories from our topic dictionary.
Only use categories that appear in the dictionary, referenced by their id.
Return a JSON object {{"stories": [...]}} where every story has the properties
{{title, description, date, url, categories: [{{name, id}}]}}.

TOPIC DICTIONARY: {dictionary}

TRENDING NEWS: {news}"""

STORY_PROMPT = """You have been provided with a trending news story and related content published by {organization}. Transform this data into the required analysis format.

INPUT DATA: {story}

Evaluate whether the related posts are strong enough matches to support story suggestions. If they are, provide exactly two story angles that connect the news to the research."""


@dataclass(frozen=True)
class PromptStrategy:
    feature: str
    system_instruction: str
    temperature: float = 0.3

    def story_prompt(self, story_payload: dict, organization: str) -> str:
        return STORY_PROMPT.format(organization=organization, story=json.dumps(story_payload, ensure_ascii=False))


def _trending_news_strategy(organization: str) -> PromptStrategy:
    shape = json.dumps(ANALYSIS_SHAPE).replace("{organization}", organization)
    return PromptStrategy(
        feature=TRENDING_NEWS_FEATURE,
        system_instruction=_TRENDING_NEWS_INSTRUCTIONS.format(organization=organization, shape=shape),
        temperature=0.3,
    )


PROMPT_STRATEGIES = {
    TRENDING_NEWS_FEATURE: _trending_news_strategy,
}


def resolve_strategy(feature: str, organization: str) -> PromptStrategy:
    try:
        factory = PROMPT_STRATEGIES[feature]
    except KeyError:
        raise ValueError(f"No prompt strategy registered for feature '{feature}'")
    return factory(organization)


def classification_prompt(dictionary: list[dict], news: list[dict]) -> str:
    return CLASSIFICATION_PROMPT.format(
        dictionary=json.dumps(dictionary, ensure_ascii=False),
        news=json.dumps(news, ensure_ascii=False),
    )
