from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Union

from nexus_news.formatter import (
    format_completion_notice,
    format_fallback_response,
    format_story_summary,
    format_story_thread,
)
from nexus_news.models import (
    AnalysisRequest,
    AnalyzedStory,
    DeliveryOutcome,
    DeliveryReport,
    RequestContext,
)
from nexus_news.reporting import build_markdown
from nexus_news.slack import SlackClient, post_to_response_url

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelDelivery:
    """Post into a channel, optionally as a reply in an existing thread."""

    client: SlackClient
    channel_id: str
    thread_ts: Optional[str] = None

    def in_thread(self, thread_ts: str) -> "ChannelDelivery":
        return replace(self, thread_ts=thread_ts)

    def deliver(self, payload: dict[str, Any]) -> DeliveryOutcome:
        body = self.client.post_message(
            self.channel_id,
            payload.get("blocks", []),
            payload.get("text", ""),
            thread_ts=self.thread_ts,
        )
        if body is None:
            return DeliveryOutcome(ok=False, error="chat.postMessage failed")
        return DeliveryOutcome(ok=True, ts=body.get("ts"))


@dataclass(frozen=True)
class CallbackDelivery:
    """One-shot POST to the command's response_url; failures are only logged."""

    response_url: str
    timeout: int = 15

    def deliver(self, payload: dict[str, Any]) -> DeliveryOutcome:
        data = post_to_response_url(self.response_url, payload, timeout=self.timeout)
        if data is None:
            return DeliveryOutcome(ok=False, error="response_url delivery failed")
        return DeliveryOutcome(ok=True)


Delivery = Union[ChannelDelivery, CallbackDelivery]


def deliver_stories(
    stories: List[AnalyzedStory],
    request: AnalysisRequest,
    context: RequestContext,
    channel: ChannelDelivery,
    callback: CallbackDelivery,
    delay: float = 1.0,
    dropped: int = 0,
    organization: str = "our research team",
    sleep: Callable[[float], None] = time.sleep,
) -> DeliveryReport:
    """Post each story as a channel summary with its full analysis in the thread.

    When no thread reply lands (bot not in the channel, private DM, ...) the
    whole analysis goes to the response_url once as flat markdown instead.
    """
    report = DeliveryReport()

    for index, story in enumerate(stories):
        summary = channel.deliver(format_story_summary(story, index))
        if summary.ok:
            report.summaries_posted += 1
            if summary.ts:
                reply = channel.in_thread(summary.ts).deliver(format_story_thread(story, index, organization))
                if reply.ok:
                    report.thread_replies += 1
                else:
                    log.warning("Thread reply for story %d failed: %s", index + 1, reply.error)
        else:
            log.warning("Summary for story %d failed: %s", index + 1, summary.error)

        if index < len(stories) - 1:
            sleep(delay)

    if report.thread_replies == 0:
        log.info("No stories reached channel %s; falling back to response_url", context.channel_id)
        report.fallback_used = True
        outcome = callback.deliver(format_fallback_response(build_markdown(stories), request, context))
        report.fallback_delivered = outcome.ok
        if not outcome.ok:
            log.error("Fallback delivery failed for channel %s; user gets no results", context.channel_id)
        return report

    notice = channel.deliver(format_completion_notice(context, dropped=dropped))
    report.completion_sent = notice.ok
    return report
