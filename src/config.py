"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All configuration values for Kickoff, sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Telegram credentials
    # TELEGRAM_TOKEN is still accepted for older deployments
    telegram_bot_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("TELEGRAM_BOT_TOKEN", "TELEGRAM_TOKEN"),
    )
    super_admin_id: int

    # Jenkins job trigger; checked when /restart runs, not at startup
    jenkins_url: str = ""
    jenkins_user: str = ""
    jenkins_token: str = ""
    jenkins_job: str = ""

    # Forwards the bot token to the job as BOT_TOKEN so it can report back.
    # This leaks the token to Jenkins; disable once the job has its own.
    jenkins_send_bot_token: bool = True

    authorized_users_file: Path = Path("data/authorized_users.json")

    # "polling" long-polls Telegram; "webhook" serves the FastAPI app
    telegram_mode: Literal["polling", "webhook"] = "polling"
    telegram_webhook_url: str = ""
    telegram_webhook_secret: str = ""

    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def jenkins_configured(self) -> bool:
        """Return True if every value needed to trigger the job is set."""
        return all(
            (self.jenkins_url, self.jenkins_user, self.jenkins_token, self.jenkins_job)
        )


@lru_cache
def get_settings() -> Settings:
    """Return a cached singleton of Settings."""
    return Settings()
