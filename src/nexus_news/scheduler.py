from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from nexus_news.models import AnalysisRequest, Job, RequestContext

log = logging.getLogger(__name__)


class JobScheduler:
    """Runs each accepted command once, right away, on a background thread pool.

    Jobs are fire and forget: there is no status record and no retry.
    """

    def __init__(
        self,
        runner: Callable[[Job], Any],
        max_workers: int = 4,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.runner = runner
        self._scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults={"coalesce": False, "misfire_grace_time": None},
        )

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            log.info("Background job scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            log.info("Background job scheduler stopped")

    def schedule(self, request: AnalysisRequest, context: RequestContext) -> str:
        job_id = uuid.uuid4().hex[:12]
        job = Job(request=request, context=context, job_id=job_id)
        self._scheduler.add_job(self.runner, trigger="date", args=[job], id=job_id, name="trending_news_analysis")
        return job_id
