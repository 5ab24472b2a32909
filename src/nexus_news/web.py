from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional
from urllib.parse import parse_qs

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from nexus_news.cache import CacheClient, build_cache
from nexus_news.commands import JobScheduler as SchedulerLike
from nexus_news.commands import accept_command
from nexus_news.config import Settings
from nexus_news.errors import RateLimitedError, SecurityError, ValidationError
from nexus_news.formatter import RERUN_ACTION_ID, ephemeral
from nexus_news.jobs import make_job_runner
from nexus_news.ratelimit import RateLimiter
from nexus_news.scheduler import JobScheduler
from nexus_news.security import verify_request

log = logging.getLogger(__name__)


def _form_params(body: bytes) -> dict[str, str]:
    parsed = parse_qs(body.decode("utf-8", errors="replace"), keep_blank_values=True)
    return {key: values[-1] for key, values in parsed.items()}


def _nested(payload: Any, *keys: str) -> str:
    for key in keys:
        if not isinstance(payload, dict):
            return ""
        payload = payload.get(key)
    return str(payload or "")


def _team_id(params: Mapping[str, str]) -> str:
    if params.get("team_id"):
        return params["team_id"]
    try:
        payload = json.loads(params.get("payload") or "{}")
    except ValueError:
        return ""
    return _nested(payload, "team", "id")


def create_app(
    settings: Settings,
    scheduler: Optional[SchedulerLike] = None,
    cache: Optional[CacheClient] = None,
) -> FastAPI:
    cache = cache or build_cache(settings)
    owns_scheduler = scheduler is None
    if scheduler is None:
        scheduler = JobScheduler(make_job_runner(settings, cache))
    rate_limiter = RateLimiter(cache, limit=settings.slack_rate_limit)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if owns_scheduler:
            scheduler.start()
        yield
        if owns_scheduler:
            scheduler.shutdown()

    app = FastAPI(title="Trending News Desk", lifespan=lifespan)

    @app.exception_handler(SecurityError)
    async def security_error(_request: Request, exc: SecurityError):
        log.warning("Rejected Slack request: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    def _authorize(headers: Mapping[str, str], body: bytes, params: Mapping[str, str]) -> None:
        if not settings.slack_ready:
            raise SecurityError("Slack integration is not enabled", status_code=403)
        if not verify_request(headers, body, settings.slack_signing_secret):
            raise SecurityError("Invalid Slack signature", status_code=401)
        allowlist = settings.workspace_allowlist
        if allowlist and _team_id(params) not in allowlist:
            raise SecurityError("Request from unauthorized workspace", status_code=403)

    def _accept_sync(params: Mapping[str, str]) -> JSONResponse:
        try:
            payload = accept_command(params, settings, rate_limiter, scheduler)
        except (ValidationError, RateLimitedError) as exc:
            return JSONResponse(ephemeral(f"⚠️ {exc}"))
        return JSONResponse(payload)

    async def _accept(params: Mapping[str, str]) -> JSONResponse:
        # accept_command may block on SQLite, so it runs on the worker threadpool.
        return await run_in_threadpool(_accept_sync, params)

    @app.post("/slack/trending-news")
    async def trending_news_command(request: Request):
        body = await request.body()
        params = _form_params(body)
        _authorize(request.headers, body, params)
        return await _accept(params)

    @app.post("/slack/interactive")
    async def interactive_action(request: Request):
        body = await request.body()
        params = _form_params(body)
        _authorize(request.headers, body, params)

        try:
            payload = json.loads(params.get("payload") or "{}")
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            return JSONResponse({"text": "❌ Invalid request format"})

        actions = payload.get("actions") or []
        action = actions[0] if actions and isinstance(actions[0], dict) else {}
        if action.get("action_id") != RERUN_ACTION_ID:
            return JSONResponse({"text": "❌ Unknown action"})

        try:
            value = json.loads(action.get("value") or "{}")
        except ValueError:
            value = {}
        command = {
            "user_id": _nested(payload, "user", "id"),
            "user_name": _nested(payload, "user", "username") or _nested(payload, "user", "name"),
            "channel_id": _nested(payload, "channel", "id"),
            "response_url": str(payload.get("response_url") or ""),
            "team_id": _nested(payload, "team", "id"),
            "text": str(value.get("text") or "") if isinstance(value, dict) else "",
        }
        return await _accept(command)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app
