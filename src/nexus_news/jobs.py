from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from nexus_news.cache import CacheClient
from nexus_news.commands import command_text_for
from nexus_news.delivery import CallbackDelivery, ChannelDelivery, deliver_stories
from nexus_news.errors import PipelineFatalError
from nexus_news.formatter import format_error_response
from nexus_news.models import DeliveryReport, Job
from nexus_news.pipeline import TrendingNewsPipeline, build_pipeline
from nexus_news.slack import SlackClient

log = logging.getLogger(__name__)

NO_MATCHES_MESSAGE = "No trending stories could be connected to published content"


def _log_context(job: Job) -> dict[str, str]:
    return {"job_id": job.job_id, "user_id": job.context.user_id, "channel_id": job.context.channel_id}


def _send_error(callback: CallbackDelivery, message: str, job: Job, extra: dict[str, str]) -> None:
    payload = format_error_response(message, job.request, job.context, rerun_text=command_text_for(job.request))
    outcome = callback.deliver(payload)
    if not outcome.ok:
        log.error("Could not report failure of job %s: %s", job.job_id, outcome.error, extra=extra)


def run_analysis_job(
    job: Job,
    pipeline: TrendingNewsPipeline,
    slack_client: SlackClient,
    settings: Any,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[DeliveryReport]:
    """Run the pipeline for one scheduled command and deliver the results.

    Returns the delivery report, or None when the job aborted and an error
    was sent to the response_url instead.
    """
    callback = CallbackDelivery(job.context.response_url, timeout=settings.request_timeout_sec)
    extra = _log_context(job)
    log.info("Job %s started for %s", job.job_id, job.context.user_id, extra=extra)
    try:
        result = pipeline.run(job.request.with_format("json"))
        if not result.stories:
            raise PipelineFatalError(NO_MATCHES_MESSAGE)

        report = deliver_stories(
            result.stories,
            job.request,
            job.context,
            channel=ChannelDelivery(slack_client, job.context.channel_id),
            callback=callback,
            delay=settings.slack_post_delay_sec,
            dropped=result.dropped_unrelated,
            organization=settings.organization_name,
            sleep=sleep,
        )
    except PipelineFatalError as exc:
        log.warning("Job %s aborted: %s", job.job_id, exc, extra=extra)
        _send_error(callback, str(exc), job, extra)
        return None
    except Exception as exc:
        log.exception("Job %s failed unexpectedly", job.job_id, extra=extra)
        _send_error(callback, f"An unexpected error occurred: {exc}", job, extra)
        return None

    log.info(
        "Job %s finished: summaries=%d threads=%d fallback=%s",
        job.job_id,
        report.summaries_posted,
        report.thread_replies,
        report.fallback_used,
        extra=extra,
    )
    return report


def make_job_runner(settings: Any, cache: CacheClient) -> Callable[[Job], Optional[DeliveryReport]]:
    pipeline = build_pipeline(settings, cache)
    slack_client = SlackClient(settings.slack_bot_token, api_base=settings.slack_api_base, timeout=settings.request_timeout_sec)

    def _run(job: Job) -> Optional[DeliveryReport]:
        return run_analysis_job(job, pipeline, slack_client, settings)

    return _run
