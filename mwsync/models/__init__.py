"""Data models for the wiki synchronization system."""

from mwsync.models.config import (
    AppConfig,
    LoggingConfig,
    RegexRewriteConfig,
    SyncSettings,
    WikiConfig,
)
from mwsync.models.revision import (
    ChangeRecord,
    RevisionMeta,
    SyncTask,
    TransformContext,
    ensure_utc,
)

__all__ = [
    "AppConfig",
    "LoggingConfig",
    "RegexRewriteConfig",
    "SyncSettings",
    "WikiConfig",
    "ChangeRecord",
    "RevisionMeta",
    "SyncTask",
    "TransformContext",
    "ensure_utc",
]
