"""Shared pytest fixtures: in-memory wiki collaborators and a fixed clock."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from mwsync.errors import WikiAPIError
from mwsync.models.config import SyncSettings
from mwsync.models.revision import ChangeRecord, RevisionMeta
from mwsync.sync.checkpoint_store import CheckpointStore
from mwsync.wiki.base import WikiClient

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class StubWiki(WikiClient):
    """In-memory wiki that serves fixed pages and records every write."""

    def __init__(self, pages: dict[str, str] | None = None):
        self.pages: dict[str, str] = dict(pages or {})
        self.revisions: dict[str, RevisionMeta] = {
            title: RevisionMeta(revid=index + 1, author="TestUser", summary="TestSummary")
            for index, title in enumerate(self.pages)
        }
        self.changes: list[ChangeRecord] = []
        self.list_changes_error: Exception | None = None
        self.failing_fetches: set[str] = set()
        self.failing_writes: set[str] = set()
        self.list_changes_calls: list[dict] = []
        self.writes: list[dict] = []
        self.logins: list[tuple[str, str]] = []

    def login(self, username: str, password: str) -> None:
        self.logins.append((username, password))

    def list_changes(self, since, include_automated=True, until=None):
        self.list_changes_calls.append(
            {"since": since, "include_automated": include_automated, "until": until}
        )
        if self.list_changes_error is not None:
            raise self.list_changes_error
        return list(self.changes)

    def get_page_text(self, title: str) -> str:
        if title in self.failing_fetches or title not in self.pages:
            raise WikiAPIError(f"Page {title!r} does not exist", code="missingtitle")
        return self.pages[title]

    def get_top_revision(self, title: str) -> RevisionMeta:
        if title in self.failing_fetches or title not in self.revisions:
            raise WikiAPIError(f"Page {title!r} does not exist", code="missingtitle")
        return self.revisions[title]

    def write_page(self, title: str, text: str, summary: str, minor: bool = False) -> None:
        if title in self.failing_writes:
            raise WikiAPIError("protectedpage: This page has been protected", code="protectedpage")
        self.writes.append({"title": title, "text": text, "summary": summary, "minor": minor})

    def add_change(self, title: str, minutes_ago: int = 5, revid: int = 1, automated: bool = False):
        self.changes.append(
            ChangeRecord(
                title=title,
                revid=revid,
                author="TestUser",
                summary="TestSummary",
                timestamp=NOW - timedelta(minutes=minutes_ago),
                automated=automated,
            )
        )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def source() -> StubWiki:
    wiki = StubWiki(
        {
            "TestRevision1": "Sample Page Text",
            "TestRevision2": "Sample Page Text",
            "TestRevision3": "Sample Page Text",
        }
    )
    for index, title in enumerate(wiki.pages, start=1):
        wiki.add_change(title, minutes_ago=10 * index, revid=index)
    return wiki


@pytest.fixture
def target() -> StubWiki:
    return StubWiki()


@pytest.fixture
def settings(tmp_path) -> SyncSettings:
    return SyncSettings(period=1000, root=str(tmp_path))


@pytest.fixture
def checkpoint_store(tmp_path) -> CheckpointStore:
    return CheckpointStore(tmp_path)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo any logging configuration a test installed."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for handler in list(logging.root.handlers):
        logging.root.removeHandler(handler)
        handler.close()
