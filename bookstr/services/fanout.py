from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from loguru import logger

from bookstr.config import settings
from bookstr.errors import SourceFailure
from bookstr.models.records import ContentRecord, FilterDescriptor
from bookstr.services.logger import log_source_failure
from bookstr.services.result_set import Provenance
from bookstr.tools.sources import Source, SourceRegistry

DELETION_KIND = 5

RecordCallback = Callable[[ContentRecord, str], None]
SourceCompleteCallback = Callable[[str, SourceFailure | None], None]
AllCompleteCallback = Callable[[], None]


@dataclass(slots=True)
class ContentFilter:
    """Drops deleted records and records by muted authors before delivery.

    Deletions name record ids in ``e`` tags and addressable records as
    ``kind:author:d`` in ``a`` tags; an address is only honoured when the
    deletion comes from the same author.
    """

    deleted_ids: set[str] = field(default_factory=set)
    deleted_addresses: set[str] = field(default_factory=set)
    muted_authors: set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls) -> ContentFilter:
        return cls(muted_authors=set(settings.muted_author_list))

    def observe(self, record: ContentRecord) -> None:
        if record.kind != DELETION_KIND:
            return
        self.deleted_ids.update(record.tag_values("e"))
        for address in record.tag_values("a"):
            if address.split(":")[1:2] == [record.author]:
                self.deleted_addresses.add(address)

    def allows(self, record: ContentRecord) -> bool:
        if record.kind == DELETION_KIND:
            return False
        if record.author in self.muted_authors:
            return False
        if record.id in self.deleted_ids:
            return False
        identifier = record.identifier
        if identifier and f"{record.kind}:{record.author}:{identifier}" in self.deleted_addresses:
            return False
        return True


def deletion_filter(kinds: Iterable[int]) -> FilterDescriptor:
    """Filter for deletions that target records of ``kinds``."""
    return FilterDescriptor(kinds=(DELETION_KIND,), tags=(("k", tuple(str(k) for k in kinds)),))


class QueryHandle:
    """One fan-out: which sources were asked, which finished, and cancellation."""

    def __init__(
        self,
        filters: Sequence[FilterDescriptor],
        on_record: RecordCallback,
        on_source_complete: SourceCompleteCallback | None,
        on_all_complete: AllCompleteCallback | None,
    ):
        self.filters = tuple(filters)
        self.provenance = Provenance()
        self.queried: list[str] = []
        self.completed: set[str] = set()
        self.failures: dict[str, SourceFailure] = {}
        self.cancelled = False
        self.all_complete = False
        self._on_record = on_record
        self._on_source_complete = on_source_complete
        self._on_all_complete = on_all_complete
        self._tasks: dict[str, asyncio.Task] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self._done = asyncio.Event()

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.all_complete

    def has_queried(self, source_id: str) -> bool:
        return source_id in self._tasks

    def cancel(self) -> None:
        """Stop delivery. Safe to call repeatedly and after completion."""
        if self.cancelled:
            return
        self.cancelled = True
        self._detach()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._done.set()

    async def wait(self) -> None:
        """Return once every queried source completed or the query was cancelled."""
        await self._done.wait()

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _deliver(self, record: ContentRecord, source_id: str) -> None:
        if self.cancelled:
            return
        self.provenance.add(record.id, source_id)
        try:
            self._on_record(record, source_id)
        except Exception as e:
            logger.error(f"on_record failed for {record.id} from {source_id}: {e}")

    def _complete_source(self, source_id: str, error: SourceFailure | None) -> None:
        if self.cancelled or source_id in self.completed:
            return
        self.completed.add(source_id)
        if error is not None:
            self.failures[source_id] = error
        if self._on_source_complete is not None:
            try:
                self._on_source_complete(source_id, error)
            except Exception as e:
                logger.error(f"on_source_complete failed for {source_id}: {e}")
        self._check_all_complete()

    def _check_all_complete(self) -> None:
        if self.cancelled or self.all_complete:
            return
        if len(self.completed) < len(self.queried):
            return
        self.all_complete = True
        self._detach()
        self._done.set()
        if self._on_all_complete is not None:
            try:
                self._on_all_complete()
            except Exception as e:
                logger.error(f"on_all_complete failed: {e}")


class FanoutOrchestrator:
    """Submits filters to every known source and tracks per-source completion."""

    def __init__(
        self,
        registry: SourceRegistry,
        *,
        source_timeout_s: float | None = None,
        content_filter: ContentFilter | None = None,
    ):
        self.registry = registry
        self.source_timeout_s = source_timeout_s or settings.source_timeout_s
        self.content_filter = content_filter if content_filter is not None else ContentFilter.from_settings()

    def query(
        self,
        filters: Sequence[FilterDescriptor],
        sources: Iterable[Source] | None = None,
        on_record: RecordCallback | None = None,
        on_source_complete: SourceCompleteCallback | None = None,
        on_all_complete: AllCompleteCallback | None = None,
    ) -> QueryHandle:
        """Start querying. Sources added to the registry later join while the query is open."""
        handle = QueryHandle(filters, on_record or (lambda record, source_id: None), on_source_complete, on_all_complete)
        initial = list(sources) if sources is not None else self.registry.sources()

        handle._unsubscribe = self.registry.subscribe(lambda source: self._start_source(handle, source))
        for source in initial:
            self._start_source(handle, source)

        if not handle.queried:
            asyncio.get_running_loop().call_soon(handle._check_all_complete)
        return handle

    def _start_source(self, handle: QueryHandle, source: Source) -> None:
        if not handle.active or handle.has_queried(source.source_id):
            return
        if self.registry.is_blocked(source.source_id):
            return
        handle.queried.append(source.source_id)
        handle._tasks[source.source_id] = asyncio.create_task(self._run_source(handle, source))

    async def _run_source(self, handle: QueryHandle, source: Source) -> None:
        source_id = source.source_id
        error: SourceFailure | None = None
        try:
            async with asyncio.timeout(self.source_timeout_s):
                async for record in source.query(handle.filters):
                    if handle.cancelled:
                        return
                    self.content_filter.observe(record)
                    if self.content_filter.allows(record):
                        handle._deliver(record, source_id)
        except TimeoutError:
            error = SourceFailure(source_id, f"timed out after {self.source_timeout_s}s")
        except Exception as e:
            error = SourceFailure(source_id, str(e) or type(e).__name__)

        if handle.cancelled:
            return
        if error is None:
            self.registry.mark_success(source_id)
        else:
            self.registry.mark_failure(source_id)
            log_source_failure(source_id, error)
        handle._complete_source(source_id, error)
