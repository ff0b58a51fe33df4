"""Change resolution: which pages changed on the source since a watermark."""

from datetime import datetime, timezone

import structlog

from mwsync.errors import ResolutionError
from mwsync.models.revision import ChangeRecord, ensure_utc
from mwsync.sync.models import ChangeSet
from mwsync.wiki.base import WikiClient

log = structlog.stdlib.get_logger()


class ChangeResolver:
    """Turns the source wiki's change feed into a deduplicated ChangeSet."""

    def __init__(self, source: WikiClient, include_automated: bool = True):
        """
        Args:
            source: Wiki client to read the change feed from
            include_automated: Whether bot edits count as changes
        """
        self._source = source
        self._include_automated = include_automated

    def resolve(self, since: datetime, until: datetime | None = None) -> ChangeSet:
        """
        Resolve the pages changed in ``[since, until)``.

        Only titles are kept; page content is fetched again per page so the
        write always reflects the current top revision.

        Args:
            since: Inclusive lower bound (the checkpoint)
            until: Exclusive upper bound, defaults to now

        Returns:
            ChangeSet with one entry per changed title (possibly empty)

        Raises:
            ResolutionError: If the change feed cannot be read
        """
        since = ensure_utc(since)
        until = ensure_utc(until) if until is not None else datetime.now(timezone.utc)

        log.info(
            "resolving_changes",
            since=since.isoformat(),
            until=until.isoformat(),
            include_automated=self._include_automated,
        )

        try:
            records = self._source.list_changes(
                since, include_automated=self._include_automated, until=until
            )
        except Exception as e:
            log.error("change_resolution_failed", since=since.isoformat(), error=str(e))
            raise ResolutionError(f"Failed to list changes since {since.isoformat()}: {e}") from e

        in_window = [record for record in records if self._in_window(record, since, until)]
        change_set = ChangeSet.from_records(in_window)

        log.info(
            "changes_resolved",
            records=len(records),
            records_in_window=len(in_window),
            unique_pages=change_set.total_changes,
        )
        return change_set

    def _in_window(self, record: ChangeRecord, since: datetime, until: datetime) -> bool:
        if not self._include_automated and record.automated:
            return False
        return since <= record.timestamp < until
