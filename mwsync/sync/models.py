"""Data models for synchronization operations."""

from datetime import datetime
from typing import Iterable, Literal

from pydantic import BaseModel, Field, field_validator

from mwsync.models.revision import ChangeRecord

PassKind = Literal["scheduled", "backfill", "targeted"]


class ChangeSet(BaseModel):
    """Unique page titles changed on the source during one window."""

    titles: list[str] = Field(
        default_factory=list, description="Changed page titles, first-seen order, no duplicates"
    )
    records_seen: int = Field(
        default=0, ge=0, description="Number of change records the titles were derived from"
    )

    @field_validator("titles")
    @classmethod
    def validate_unique_titles(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("ChangeSet titles must be unique")
        return v

    @classmethod
    def from_records(cls, records: Iterable[ChangeRecord]) -> "ChangeSet":
        """Collapse change records to one entry per title, keeping first-seen order."""
        seen: dict[str, None] = {}
        count = 0
        for record in records:
            count += 1
            seen.setdefault(record.title, None)
        return cls(titles=list(seen), records_seen=count)

    @classmethod
    def from_titles(cls, titles: Iterable[str]) -> "ChangeSet":
        titles = list(titles)
        return cls(titles=list(dict.fromkeys(titles)), records_seen=len(titles))

    @property
    def has_changes(self) -> bool:
        return bool(self.titles)

    @property
    def total_changes(self) -> int:
        return len(self.titles)


class ItemResult(BaseModel):
    """Outcome of synchronizing a single page."""

    title: str
    success: bool
    revid: int | None = Field(default=None, description="Source revision that was written")
    error: str | None = Field(default=None)


class SyncReport(BaseModel):
    """Report of one synchronization pass."""

    kind: PassKind = Field(..., description="How the pass was triggered")
    watermark: datetime | None = Field(
        default=None, description="Lower bound of the change window (None for targeted passes)"
    )
    checkpoint_saved: datetime | None = Field(
        default=None, description="Checkpoint persisted at the end of the pass, if any"
    )
    items_found: int = Field(default=0, ge=0)
    items_written: int = Field(default=0, ge=0)
    failed_items: list[str] = Field(default_factory=list)
    aborted: bool = Field(default=False, description="True if the pass stopped before processing")
    start_time: datetime = Field(..., description="Pass start timestamp")
    end_time: datetime = Field(..., description="Pass end timestamp")
    duration_seconds: float = Field(default=0.0, ge=0.0)
    errors: list[str] = Field(
        default_factory=list, description="List of errors encountered during the pass"
    )

    @property
    def items_failed(self) -> int:
        return len(self.failed_items)

    @property
    def success(self) -> bool:
        """Check if the pass completed without errors."""
        return not self.aborted and len(self.errors) == 0
