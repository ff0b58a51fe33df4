"""Pydantic models for wiki revisions and per-page units of work."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from mwsync.wiki.base import WikiClient


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC, treating naive values as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ChangeRecord(BaseModel):
    """One observed modification on the source wiki."""

    title: str = Field(default=..., min_length=1, description="Page title")
    revid: int = Field(default=..., ge=0, description="Revision identifier")
    author: str = Field(default="", description="User who made the revision")
    summary: str = Field(default="", description="Edit summary")
    timestamp: datetime = Field(default=..., description="When the revision was made")
    automated: bool = Field(default=False, description="True for bot edits")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Reelin",
                "revid": 512345678,
                "author": "ProteinBoxBot",
                "summary": "Updated infobox",
                "timestamp": "2024-01-15T14:30:00Z",
                "automated": True,
            }
        }
    }


class RevisionMeta(BaseModel):
    """Metadata for the top (current) revision of a page."""

    revid: int = Field(default=..., ge=0)
    author: str = Field(default="")
    summary: str = Field(default="")
    timestamp: datetime | None = Field(default=None)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class SyncTask(BaseModel):
    """A single page on its way from the source to the target."""

    title: str = Field(default=..., min_length=1)
    text: str = Field(default=..., description="Fetched page text")
    revision: RevisionMeta


class TransformContext(BaseModel):
    """Read-only context handed to every transformer for one page."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    title: str
    source: Any = Field(default=..., description="Source WikiClient")
    target: Any = Field(default=..., description="Target WikiClient")
    original_text: str = Field(default="", description="Text as fetched, before any transformer")

    @classmethod
    def for_task(
        cls, task: SyncTask, source: "WikiClient", target: "WikiClient"
    ) -> "TransformContext":
        return cls(title=task.title, source=source, target=target, original_text=task.text)
