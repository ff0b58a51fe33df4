"""Configuration models for the wiki synchronization system."""

from typing import Literal

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_SYNC_PERIOD_SECONDS = 60


class WikiConfig(BaseModel):
    """Connection settings for one MediaWiki instance."""

    location: HttpUrl = Field(default=..., description="Wiki base URL, e.g. https://en.wikipedia.org")
    scripts: str = Field(default="/w", description="Script path holding api.php")
    username: str = Field(default=..., description="Account used to log in")
    password: str = Field(default=..., description="Password or bot password")
    feed: Literal["watchlist", "recentchanges"] = Field(
        default="watchlist",
        description="Change feed used when this wiki is the source",
    )

    @property
    def api_url(self) -> str:
        """Full URL of the Action API endpoint."""
        base = str(self.location).rstrip("/")
        scripts = "/" + self.scripts.strip("/") if self.scripts.strip("/") else ""
        return f"{base}{scripts}/api.php"


class SyncSettings(BaseModel):
    """Settings that govern synchronization passes."""

    period: int = Field(
        default=..., ge=MIN_SYNC_PERIOD_SECONDS, description="Seconds between passes"
    )
    root: str = Field(default=".", description="Directory holding checkpoint and state files")
    include_automated: bool = Field(
        default=True, description="Include bot edits when listing changes"
    )
    lookback_hours: float = Field(
        default=24.0, gt=0, description="Lookback window used when no checkpoint exists"
    )
    pass_deadline_seconds: float | None = Field(
        default=None, gt=0, description="Optional wall-clock budget for one pass"
    )
    http_timeout: float = Field(default=30.0, gt=0, description="Timeout per HTTP request")


class RegexRewriteConfig(BaseModel):
    """A single regex substitution applied to page text in transit."""

    pattern: str = Field(default=..., min_length=1)
    replacement: str = Field(default="")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )
    max_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Size in bytes at which the log file is rotated",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of rotated log files to keep",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    Loaded from a YAML file by ``ConfigLoader``; any field can also be set
    through environment variables with the MWSYNC_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="MWSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    source: WikiConfig
    target: WikiConfig
    sync: SyncSettings
    transforms: list[RegexRewriteConfig] = Field(default_factory=list)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
