"""Synchronization coordinator for replicating source wiki changes to a target wiki."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

import structlog

from mwsync.errors import ItemError, PersistenceError, ResolutionError
from mwsync.models.config import MIN_SYNC_PERIOD_SECONDS, SyncSettings
from mwsync.models.revision import SyncTask, TransformContext, ensure_utc
from mwsync.sync.change_resolver import ChangeResolver
from mwsync.sync.checkpoint_store import CheckpointStore
from mwsync.sync.models import ChangeSet, ItemResult, PassKind, SyncReport
from mwsync.sync.provenance import format_provenance
from mwsync.transforms.base import RewriteFunction, Transformer
from mwsync.transforms.pipeline import TransformPipeline
from mwsync.wiki.base import WikiClient

log = structlog.stdlib.get_logger()

PASS_DEADLINE_EXCEEDED = "pass deadline exceeded"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncCoordinator:
    """Orchestrates synchronization passes from a source wiki to a target wiki.

    A pass loads the checkpoint, resolves the pages changed since then,
    pushes each page through fetch, transform, annotate and write, and
    finally advances the checkpoint to the instant the pass started.

    The checkpoint is only advanced after every page has been attempted.
    If the process dies mid-pass the next pass re-resolves the same window,
    so pages are delivered at least once (a repeated write of identical
    text is a no-op on the target). Pages that fail inside a pass are not
    retried unless they change again.
    """

    def __init__(
        self,
        source: WikiClient,
        target: WikiClient,
        settings: SyncSettings,
        checkpoint_store: CheckpointStore | None = None,
        pipeline: TransformPipeline | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize sync coordinator.

        Args:
            source: Wiki to pull changes from
            target: Wiki to write pages to
            settings: Sync settings (period, state root, lookback, deadline)
            checkpoint_store: Optional store (defaults to one under settings.root)
            pipeline: Optional transform pipeline (defaults to an empty one)
            clock: Optional function returning the current UTC time

        Raises:
            ValueError: If source or target is None, or the period is below 60 seconds
        """
        if source is None or target is None:
            raise ValueError("Source/target wiki clients cannot be None")
        if settings is None:
            raise ValueError("settings is required")
        if settings.period < MIN_SYNC_PERIOD_SECONDS:
            raise ValueError(f"Minimum sync period is {MIN_SYNC_PERIOD_SECONDS} seconds")

        self._source: WikiClient = source
        self._target: WikiClient = target
        self._settings: SyncSettings = settings
        self._checkpoint_store: CheckpointStore = checkpoint_store or CheckpointStore(settings.root)
        self._pipeline: TransformPipeline = pipeline if pipeline is not None else TransformPipeline()
        self._clock: Callable[[], datetime] = clock or utc_now
        self._resolver = ChangeResolver(source, include_automated=settings.include_automated)
        self._pass_lock = threading.Lock()

        log.info(
            "sync_coordinator_initialized",
            period=settings.period,
            root=settings.root,
            include_automated=settings.include_automated,
            transformers=len(self._pipeline),
        )

    @property
    def source(self) -> WikiClient:
        return self._source

    @property
    def target(self) -> WikiClient:
        return self._target

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    @property
    def period(self) -> int:
        return self._settings.period

    @property
    def pipeline(self) -> TransformPipeline:
        return self._pipeline

    @property
    def checkpoint_store(self) -> CheckpointStore:
        return self._checkpoint_store

    def add_transformer(self, transformer: Transformer | RewriteFunction) -> None:
        """Append a transformer to the pipeline applied before each write."""
        self._pipeline.register(transformer)

    def run_pass(self) -> SyncReport:
        """
        Run one scheduled pass from the stored checkpoint.

        Without a checkpoint the pass looks back ``settings.lookback_hours``.
        Never raises; failures are logged and reflected in the report.
        """
        return self._guarded("scheduled", self._scheduled_pass)

    def run_backfill(self, lookback: timedelta) -> SyncReport:
        """
        Run one pass over the changes made within ``lookback`` of now.

        The stored checkpoint is ignored as a watermark but still advanced
        afterwards if the pass reaches later than it.
        """
        if lookback <= timedelta(0):
            raise ValueError("lookback must be positive")
        return self._guarded("backfill", self._backfill_pass, lookback)

    def run_changes_from_hours_ago(self, hours: float) -> SyncReport:
        """Backfill the changes made in the last ``hours`` hours."""
        return self.run_backfill(timedelta(hours=hours))

    def run_for_pages(self, titles: Iterable[str]) -> SyncReport:
        """Resync the given pages, bypassing change resolution and the checkpoint."""
        return self._guarded("targeted", self._targeted_pass, list(titles))

    def process_item(self, title: str) -> ItemResult:
        """
        Fetch, transform, annotate and write a single page.

        Returns:
            ItemResult describing the outcome; never raises
        """
        try:
            task = self._fetch_task(title)
            context = TransformContext.for_task(task, self._source, self._target)
            text = self._pipeline.apply(task.text, context)
            summary = format_provenance(
                task.revision.author, task.revision.revid, task.revision.summary
            )
            self._write(title, text, summary)
        except Exception as e:
            cause = e.__cause__ if isinstance(e, ItemError) and e.__cause__ else e
            log.error(
                "item_sync_failed",
                title=title,
                error=str(e),
                error_type=type(cause).__name__,
            )
            return ItemResult(title=title, success=False, error=str(e))

        log.info("item_synced", title=title, revid=task.revision.revid, author=task.revision.author)
        return ItemResult(title=title, success=True, revid=task.revision.revid)

    def _fetch_task(self, title: str) -> SyncTask:
        try:
            text = self._source.get_page_text(title)
            revision = self._source.get_top_revision(title)
        except Exception as e:
            raise ItemError(title, f"fetch failed: {e}") from e
        return SyncTask(title=title, text=text, revision=revision)

    def _write(self, title: str, text: str, summary: str) -> None:
        try:
            self._target.write_page(title, text, summary, minor=False)
        except Exception as e:
            raise ItemError(title, f"write failed: {e}") from e

    def _guarded(self, kind: PassKind, run: Callable[..., SyncReport], *args) -> SyncReport:
        """Run a pass under the re-entrancy lock, containing any unexpected error."""
        # Revision timestamps have whole-second precision; window bounds must too.
        start = ensure_utc(self._clock()).replace(microsecond=0)

        if not self._pass_lock.acquire(blocking=False):
            log.warning("sync_pass_skipped_already_running", kind=kind)
            return self._build_report(
                kind, start, aborted=True, errors=["another pass is already running"]
            )

        try:
            with structlog.contextvars.bound_contextvars(sync_pass=kind):
                return run(start, *args)
        except Exception as e:
            log.exception("sync_pass_crashed", kind=kind, error=str(e))
            return self._build_report(kind, start, aborted=True, errors=[f"Sync failed: {e}"])
        finally:
            self._pass_lock.release()

    def _scheduled_pass(self, start: datetime) -> SyncReport:
        stored = self._load_checkpoint()
        if stored is None:
            watermark = start - timedelta(hours=self._settings.lookback_hours)
            log.info(
                "using_default_lookback",
                lookback_hours=self._settings.lookback_hours,
                watermark=watermark.isoformat(),
            )
        else:
            watermark = stored
        return self._incremental_pass("scheduled", start, watermark, stored)

    def _backfill_pass(self, start: datetime, lookback: timedelta) -> SyncReport:
        stored = self._load_checkpoint()
        return self._incremental_pass("backfill", start, start - lookback, stored)

    def _targeted_pass(self, start: datetime, titles: list[str]) -> SyncReport:
        change_set = ChangeSet.from_titles(titles)
        log.info("sync_pass_started", kind="targeted", items=change_set.total_changes)

        results = self._process_all(change_set.titles, start)
        report = self._build_report("targeted", start, change_set=change_set, results=results)
        self._log_completion(report)
        return report

    def _incremental_pass(
        self,
        kind: PassKind,
        start: datetime,
        watermark: datetime,
        stored: datetime | None,
    ) -> SyncReport:
        log.info("sync_pass_started", kind=kind, watermark=watermark.isoformat())

        try:
            change_set = self._resolver.resolve(watermark, until=start)
        except ResolutionError as e:
            log.error(
                "sync_pass_aborted",
                kind=kind,
                watermark=watermark.isoformat(),
                error=str(e),
            )
            return self._build_report(
                kind, start, watermark=watermark, aborted=True, errors=[str(e)]
            )

        log.info(
            "changed_pages_found",
            kind=kind,
            watermark=watermark.isoformat(),
            items_found=change_set.total_changes,
            records_seen=change_set.records_seen,
        )

        results = self._process_all(change_set.titles, start)

        errors: list[str] = []
        checkpoint_saved = None
        new_checkpoint = max(start, watermark)
        if stored is not None and new_checkpoint <= stored:
            log.info(
                "checkpoint_not_advanced",
                stored=stored.isoformat(),
                candidate=new_checkpoint.isoformat(),
            )
        else:
            try:
                self._checkpoint_store.save(new_checkpoint)
                checkpoint_saved = new_checkpoint
            except PersistenceError as e:
                # The next pass will reuse the old watermark and rewrite these pages.
                log.error(
                    "checkpoint_save_failed",
                    checkpoint=new_checkpoint.isoformat(),
                    path=str(self._checkpoint_store.path),
                    error=str(e),
                )
                errors.append(str(e))

        report = self._build_report(
            kind,
            start,
            watermark=watermark,
            change_set=change_set,
            results=results,
            checkpoint_saved=checkpoint_saved,
            errors=errors,
        )
        self._log_completion(report)
        return report

    def _load_checkpoint(self) -> datetime | None:
        try:
            return self._checkpoint_store.load()
        except PersistenceError as e:
            log.error(
                "checkpoint_load_failed",
                path=str(self._checkpoint_store.path),
                error=str(e),
            )
            return None

    def _process_all(self, titles: list[str], start: datetime) -> list[ItemResult]:
        """Process pages one at a time; stop starting new ones past the deadline."""
        deadline = None
        if self._settings.pass_deadline_seconds is not None:
            deadline = start + timedelta(seconds=self._settings.pass_deadline_seconds)

        results: list[ItemResult] = []
        for index, title in enumerate(titles):
            if deadline is not None and ensure_utc(self._clock()) >= deadline:
                remaining = titles[index:]
                log.error(
                    "pass_deadline_exceeded",
                    deadline=deadline.isoformat(),
                    items_skipped=len(remaining),
                )
                results.extend(
                    ItemResult(title=skipped, success=False, error=PASS_DEADLINE_EXCEEDED)
                    for skipped in remaining
                )
                break
            results.append(self.process_item(title))
        return results

    def _build_report(
        self,
        kind: PassKind,
        start: datetime,
        *,
        watermark: datetime | None = None,
        change_set: ChangeSet | None = None,
        results: list[ItemResult] | None = None,
        checkpoint_saved: datetime | None = None,
        aborted: bool = False,
        errors: list[str] | None = None,
    ) -> SyncReport:
        results = results or []
        end = ensure_utc(self._clock())
        failed = [result for result in results if not result.success]

        return SyncReport(
            kind=kind,
            watermark=watermark,
            checkpoint_saved=checkpoint_saved,
            items_found=change_set.total_changes if change_set is not None else 0,
            items_written=sum(1 for result in results if result.success),
            failed_items=[result.title for result in failed],
            aborted=aborted,
            start_time=start,
            end_time=end,
            duration_seconds=max((end - start).total_seconds(), 0.0),
            errors=list(errors or []) + [f"{r.title}: {r.error}" for r in failed],
        )

    def _log_completion(self, report: SyncReport) -> None:
        log.info(
            "sync_pass_completed",
            kind=report.kind,
            watermark=report.watermark.isoformat() if report.watermark else None,
            items_found=report.items_found,
            items_written=report.items_written,
            items_failed=report.items_failed,
            checkpoint_saved=(
                report.checkpoint_saved.isoformat() if report.checkpoint_saved else None
            ),
            duration_seconds=report.duration_seconds,
            success=report.success,
        )
