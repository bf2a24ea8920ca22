from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, AsyncIterator, Callable, Mapping

from loguru import logger

from bookstr.books.compiler import compile_filters, describe_filter
from bookstr.books.matcher import matches
from bookstr.books.parser import parse
from bookstr.config import settings
from bookstr.models.events import EventType, SearchEvent
from bookstr.models.records import ContentRecord, ParsedQuery
from bookstr.services import streaming
from bookstr.services.cache_gate import CacheGate
from bookstr.services.debounce import TrailingDebouncer
from bookstr.services.fanout import ContentFilter, FanoutOrchestrator, QueryHandle, deletion_filter
from bookstr.services.logger import log_event, log_query_step
from bookstr.services.ranking import StaticTrustScores, TrustScoreProvider, rank
from bookstr.services.result_set import Provenance, ResultSet
from bookstr.services.verification import IdentityVerifier
from bookstr.tools.cache_store import ContentCacheStore, category_for_kind
from bookstr.tools.sources import SourceRegistry

CACHE_SOURCE_ID = "cache"

EventListener = Callable[[SearchEvent], None]


class SearchState(StrEnum):
    IDLE = "idle"
    SEARCHING = "searching"
    AWAITING_COMPLETION = "awaiting_completion"
    SATISFIED = "satisfied"
    VERSION_FALLBACK = "version_fallback"
    RANKED = "ranked"


@dataclass(slots=True)
class QueryAttempt:
    attempt_id: str
    parsed_query: ParsedQuery
    book_type: str
    check_version: bool = True
    started_at: float = field(default_factory=time.time)
    sources_queried: list[str] = field(default_factory=list)
    sources_completed: int = 0
    version_not_found: bool = False
    result_set: ResultSet = field(default_factory=ResultSet)
    provenance: Provenance = field(default_factory=Provenance)
    skipped: int = 0
    handle: QueryHandle | None = None
    debouncer: TrailingDebouncer | None = None

    def cancel(self) -> None:
        if self.debouncer is not None:
            self.debouncer.cancel()
        if self.handle is not None:
            self.handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self.handle is not None and self.handle.cancelled


@dataclass(slots=True)
class SearchOutcome:
    query: str
    book_type: str
    parsed_query: ParsedQuery | None
    results: list[ContentRecord] = field(default_factory=list)
    state: SearchState = SearchState.RANKED
    version_not_found: bool = False
    fallback_used: bool = False
    sources_queried: list[str] = field(default_factory=list)
    sources_completed: int = 0
    skipped: int = 0
    cancelled: bool = False
    parse_failed: bool = False
    verified: dict[str, bool] = field(default_factory=dict)
    provenance: dict[str, list[str]] = field(default_factory=dict)
    runtime_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "book_type": self.book_type,
            "parsed_query": streaming.parsed_query_to_dict(self.parsed_query, self.book_type),
            "results": [
                streaming.record_to_dict(record, self.provenance.get(record.id, []))
                for record in self.results
            ],
            "state": self.state.value,
            "version_not_found": self.version_not_found,
            "fallback_used": self.fallback_used,
            "sources_queried": list(self.sources_queried),
            "sources_completed": self.sources_completed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "parse_failed": self.parse_failed,
            "verified": dict(self.verified),
            "runtime_ms": self.runtime_ms,
        }


class BookSearch:
    """Runs citation searches: parse, cache, fan-out, validate, fall back, rank.

    One instance serves one caller. Starting a search cancels the previous one
    and nothing from a cancelled attempt is delivered afterwards.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        *,
        cache_store: ContentCacheStore | None = None,
        trust: TrustScoreProvider | None = None,
        orchestrator: FanoutOrchestrator | None = None,
        content_filter: ContentFilter | None = None,
        verifier: IdentityVerifier | None = None,
        identities: Mapping[str, str] | None = None,
        debounce_ms: int | None = None,
        on_event: EventListener | None = None,
    ):
        self.registry = registry
        self.cache_store = cache_store if cache_store is not None else ContentCacheStore()
        self.cache_gate = CacheGate(self.cache_store)
        self.trust = trust if trust is not None else StaticTrustScores()
        self.orchestrator = orchestrator or FanoutOrchestrator(registry, content_filter=content_filter)
        self.content_filter = self.orchestrator.content_filter
        self.verifier = verifier
        self.identities = identities or {}
        self.debounce_s = (settings.debounce_ms if debounce_ms is None else debounce_ms) / 1000
        self.state = SearchState.IDLE
        self._listeners: list[EventListener] = [on_event] if on_event else []
        self._active: QueryAttempt | None = None
        self._generation = 0

    # -- events -----------------------------------------------------------

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, event: SearchEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event.event.value}: {e}")

    # -- lifecycle --------------------------------------------------------

    def cancel(self) -> None:
        """Cancel the in-flight attempt, if any."""
        self._generation += 1
        if self._active is not None:
            log_query_step(self._active.attempt_id, "cancel", "cancelled")
            self._active.cancel()
            self._active = None

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def search(self, raw: str, book_type: str | None = None) -> SearchOutcome:
        self.cancel()
        generation = self._generation
        book_type = (book_type or settings.default_book_type).lower()
        started = time.perf_counter()

        parsed = parse(raw, book_type)
        if parsed is not None and parsed.book_type:
            book_type = parsed.book_type
        attempt_id = uuid.uuid4().hex[:12]
        self.state = SearchState.SEARCHING
        self._emit(streaming.search_started(attempt_id, raw, book_type, parsed))

        if parsed is None:
            log_event("parse_failed", f"No citation found in {raw!r}", book_type=book_type)
            outcome = SearchOutcome(query=raw, book_type=book_type, parsed_query=None, parse_failed=True)
            self.state = SearchState.RANKED
            self._emit(streaming.search_complete(outcome))
            return outcome

        attempt = QueryAttempt(attempt_id=attempt_id, parsed_query=parsed, book_type=book_type)
        await self._run_attempt(attempt, generation)
        if not self._is_current(generation):
            return self._cancelled_outcome(raw, attempt)

        final = attempt
        fallback_used = False
        if len(attempt.result_set) == 0 and parsed.has_version_constraint:
            attempt.version_not_found = True
            self.state = SearchState.VERSION_FALLBACK
            log_event(
                "version_fallback",
                f"No results for {sorted(parsed.requested_versions)}, retrying without version",
                attempt_id=attempt.attempt_id,
            )
            self._emit(streaming.version_fallback(attempt.attempt_id, parsed))

            final = QueryAttempt(
                attempt_id=uuid.uuid4().hex[:12],
                parsed_query=parsed.without_version(),
                book_type=book_type,
                check_version=False,
            )
            fallback_used = True
            await self._run_attempt(final, generation)
            if not self._is_current(generation):
                return self._cancelled_outcome(raw, final)
        else:
            self.state = SearchState.SATISFIED

        ranked = rank(final.result_set.snapshot(), self.trust)
        self.state = SearchState.RANKED
        self._write_back(final, ranked)
        verified = await self._verify_authors(ranked)
        if not self._is_current(generation):
            return self._cancelled_outcome(raw, final)

        outcome = SearchOutcome(
            query=raw,
            book_type=book_type,
            parsed_query=parsed,
            results=ranked,
            state=self.state,
            version_not_found=attempt.version_not_found,
            fallback_used=fallback_used,
            sources_queried=list(final.sources_queried),
            sources_completed=final.sources_completed,
            skipped=attempt.skipped + (final.skipped if final is not attempt else 0),
            verified=verified,
            provenance=final.provenance.to_dict(),
            runtime_ms=int((time.perf_counter() - started) * 1000),
        )
        self._active = None
        log_query_step(
            final.attempt_id,
            "complete",
            "success",
            {"results": len(ranked), "fallback": fallback_used, "skipped": outcome.skipped},
        )
        self._emit(streaming.search_complete(outcome))
        return outcome

    async def stream(self, raw: str, book_type: str | None = None) -> AsyncIterator[SearchEvent]:
        """Run a search and yield its events as they happen."""
        queue: asyncio.Queue[SearchEvent | None] = asyncio.Queue()
        remove = self.add_listener(queue.put_nowait)
        task = asyncio.create_task(self.search(raw, book_type))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
                if event.event == EventType.SEARCH_COMPLETE:
                    break
            await task
        except Exception as e:
            logger.exception(f"Search stream failed: {e}")
            yield streaming.error(str(e))
        finally:
            remove()
            if not task.done():
                self.cancel()
                task.cancel()

    # -- attempts ---------------------------------------------------------

    def _cancelled_outcome(self, raw: str, attempt: QueryAttempt) -> SearchOutcome:
        return SearchOutcome(
            query=raw,
            book_type=attempt.book_type,
            parsed_query=attempt.parsed_query,
            state=self.state,
            sources_queried=list(attempt.sources_queried),
            sources_completed=attempt.sources_completed,
            cancelled=True,
        )

    def _accept(self, attempt: QueryAttempt, record: ContentRecord, source_id: str) -> bool:
        """Validate and merge one record. Returns True if the result set changed."""
        if attempt is not self._active:
            return False
        if not matches(record, attempt.parsed_query, attempt.book_type, check_version=attempt.check_version):
            attempt.skipped += 1
            return False
        attempt.provenance.add(record.id, source_id)
        return attempt.result_set.insert_if_newer(record)

    def _publish(self, attempt: QueryAttempt) -> None:
        if attempt is not self._active:
            return
        self._emit(streaming.results_updated(attempt.attempt_id, attempt.result_set.snapshot()))

    def _categories(self) -> list[str]:
        return list(dict.fromkeys(category_for_kind(kind) for kind in settings.book_kinds))

    async def _run_attempt(self, attempt: QueryAttempt, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._active = attempt
        parsed = attempt.parsed_query
        attempt.debouncer = TrailingDebouncer(lambda: self._publish(attempt), self.debounce_s)

        filters = compile_filters(parsed.references, attempt.book_type, parsed.version, parsed.versions)
        if settings.track_deletions:
            filters.append(deletion_filter(settings.book_kinds))
        log_query_step(
            attempt.attempt_id,
            "compile",
            "success",
            {"filters": [describe_filter(f) for f in filters], "check_version": attempt.check_version},
        )

        def predicate(record: ContentRecord) -> bool:
            return matches(record, parsed, attempt.book_type, check_version=attempt.check_version)

        hits = 0
        for category in self._categories():
            for record, source_ids in await self.cache_gate.lookup(category, predicate):
                if not self._is_current(generation):
                    return
                if not self.content_filter.allows(record):
                    continue
                changed = False
                for source_id in source_ids or (CACHE_SOURCE_ID,):
                    changed = self._accept(attempt, record, source_id) or changed
                hits += 1
                if changed:
                    attempt.debouncer.trigger()
        if hits:
            self._emit(streaming.cache_hit(attempt.attempt_id, hits))
            attempt.debouncer.flush()

        def on_record(record: ContentRecord, source_id: str) -> None:
            if self._accept(attempt, record, source_id) and attempt.debouncer is not None:
                attempt.debouncer.trigger()

        def on_source_complete(source_id: str, error: Exception | None) -> None:
            if attempt is not self._active:
                return
            attempt.sources_completed += 1
            self._emit(
                streaming.source_completed(
                    attempt.attempt_id,
                    source_id,
                    completed=attempt.sources_completed,
                    total=len(attempt.sources_queried),
                    error=str(error) if error else None,
                )
            )

        handle = self.orchestrator.query(
            filters,
            on_record=on_record,
            on_source_complete=on_source_complete,
        )
        attempt.handle = handle
        attempt.sources_queried = handle.queried
        self.state = SearchState.AWAITING_COMPLETION

        try:
            await handle.wait()
        except asyncio.CancelledError:
            attempt.cancel()
            raise

        if handle.cancelled or not self._is_current(generation):
            attempt.cancel()
            return
        # Deletions can arrive after the records they remove.
        dropped = attempt.result_set.retain(self.content_filter.allows)
        if dropped:
            logger.debug(f"Dropped {dropped} deleted or muted records from attempt {attempt.attempt_id}")
            attempt.debouncer.trigger()
        attempt.debouncer.flush()
        attempt.debouncer.cancel()
        log_query_step(
            attempt.attempt_id,
            "fanout",
            "complete",
            {
                "sources": len(handle.queried),
                "failed": sorted(handle.failures),
                "results": len(attempt.result_set),
                "skipped": attempt.skipped,
            },
        )

    def _write_back(self, attempt: QueryAttempt, records: list[ContentRecord]) -> None:
        by_category: dict[str, list[tuple[ContentRecord, frozenset[str]]]] = {}
        for record in records:
            sources = attempt.provenance.sources_for(record.id) - {CACHE_SOURCE_ID}
            if not sources:
                continue
            by_category.setdefault(category_for_kind(record.kind), []).append((record, sources))
        for category, items in by_category.items():
            stored = self.cache_gate.write_back(category, items)
            if stored:
                logger.debug(f"Cached {stored} records in {category}")

    async def _verify_authors(self, records: list[ContentRecord]) -> dict[str, bool]:
        if self.verifier is None or not self.identities:
            return {}
        authors = [a for a in dict.fromkeys(r.author for r in records) if a in self.identities]
        checks = await asyncio.gather(
            *(self.verifier.verify(self.identities[a], a) for a in authors)
        )
        return dict(zip(authors, checks))
