from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    data_dir: Path = Field(default=Path("data"))
    content_db_path: Path = Field(default=Path("data/archive.db"))
    cache_backend: str = Field(default="memory")
    cache_db_path: Path = Field(default=Path("data/cache.db"))

    slack_enabled: bool = Field(default=False)
    slack_signing_secret: Optional[str] = None
    slack_bot_token: Optional[str] = None
    # Comma separated team ids; empty accepts every workspace.
    slack_workspace_ids: str = Field(default="")
    slack_rate_limit: int = Field(default=10)
    slack_callback_host: str = Field(default="hooks.slack.com")
    slack_api_base: str = Field(default="https://slack.com/api")
    slack_post_delay_sec: float = Field(default=1.0)
    command_max_chars: int = Field(default=1000)

    news_provider: str = Field(default="gnews")
    gnews_api_key: Optional[str] = None
    gnews_lang: str = Field(default="en")
    gnews_country: str = Field(default="us")
    rss_config_path: Path = Field(default=Path("config/feeds.yaml"))

    analysis_provider: str = Field(default="openai")
    openai_api_key: Optional[str] = None
    openai_model: str = Field(default="gpt-4o-mini")
    deepseek_api_key: Optional[str] = None
    deepseek_model: str = Field(default="deepseek-chat")
    deepseek_base_url: str = Field(default="https://api.deepseek.com")
    deepseek_strict_model: bool = Field(default=True)
    organization_name: str = Field(default="our research team")

    related_posts_limit: int = Field(default=5)
    related_posts_current_year_only: bool = Field(default=True)
    request_timeout_sec: int = Field(default=15)

    log_level: str = Field(default="INFO")
    log_json: Optional[bool] = None

    @property
    def workspace_allowlist(self) -> set[str]:
        return {part.strip() for part in self.slack_workspace_ids.split(",") if part.strip()}

    @property
    def slack_ready(self) -> bool:
        return bool(self.slack_enabled and self.slack_signing_secret and self.slack_bot_token)


def get_settings() -> Settings:
    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.content_db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.cache_backend == "sqlite":
        settings.cache_db_path.parent.mkdir(parents=True, exist_ok=True)
    return settings
