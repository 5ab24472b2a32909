from __future__ import annotations

import logging
from typing import Any, Optional

import requests

log = logging.getLogger(__name__)


class SlackClient:
    """Minimal Slack Web API client for posting (threaded) channel messages."""

    def __init__(self, bot_token: Optional[str], api_base: str = "https://slack.com/api", timeout: int = 15):
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def post_message(
        self,
        channel_id: str,
        blocks: list[dict[str, Any]],
        text: str = "",
        thread_ts: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        if not self.bot_token:
            log.warning("Slack bot token missing; cannot post to %s", channel_id)
            return None

        payload: dict[str, Any] = {
            "channel": channel_id,
            "blocks": blocks,
            "text": text,
            "unfurl_links": False,
            "unfurl_media": False,
        }
        if thread_ts:
            payload["thread_ts"] = thread_ts

        try:
            resp = requests.post(
                f"{self.api_base}/chat.postMessage",
                json=payload,
                headers={"Authorization": f"Bearer {self.bot_token}"},
                timeout=self.timeout,
            )
            body = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("chat.postMessage to %s failed: %s", channel_id, exc)
            return None

        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else "invalid response"
            log.warning("chat.postMessage to %s rejected: %s", channel_id, error)
            return None
        return body


def post_to_response_url(response_url: str, payload: dict[str, Any], timeout: int = 15) -> Optional[dict[str, Any]]:
    """One-shot POST to a slash command's response_url. Never raises."""
    if not response_url:
        log.warning("No response_url to deliver to")
        return None
    try:
        resp = requests.post(response_url, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        log.warning("response_url delivery failed: %s", exc)
        return None
    if resp.status_code != 200:
        log.warning("response_url delivery returned HTTP %s", resp.status_code)
        return None
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
