from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, Protocol, Sequence

import httpx
from loguru import logger

from bookstr.config import settings
from bookstr.models.records import ContentRecord, FilterDescriptor

# Consecutive failures after which a source sorts behind healthy ones.
UNHEALTHY_AFTER = 3


class Source(Protocol):
    source_id: str

    def query(self, filters: Sequence[FilterDescriptor]) -> AsyncIterator[ContentRecord]:
        """Yield matching records; returning ends the stream for this source."""
        ...


class StaticSource:
    """In-memory source. Used for fixtures, the CLI and tests."""

    def __init__(
        self,
        source_id: str,
        records: Iterable[ContentRecord] = (),
        *,
        delay_s: float = 0.0,
        fail_with: Exception | None = None,
    ):
        self.source_id = source_id
        self.records = list(records)
        self.delay_s = delay_s
        self.fail_with = fail_with

    async def query(self, filters: Sequence[FilterDescriptor]) -> AsyncIterator[ContentRecord]:
        for record in self.records:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            if not filters or any(f.accepts(record) for f in filters):
                yield record
        if self.fail_with is not None:
            raise self.fail_with


class HttpSource:
    """Source reached over HTTP.

    POSTs ``{"filters": [...]}`` to ``{base_url}/query`` and reads one JSON record
    per line until the response ends or an ``{"eose": true}`` line arrives.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.source_id = self.base_url
        self.timeout_s = timeout_s or settings.source_timeout_s
        self.transport = transport

    async def query(self, filters: Sequence[FilterDescriptor]) -> AsyncIterator[ContentRecord]:
        payload = {"filters": [f.to_dict() for f in filters]}
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
            async with client.stream(
                "POST",
                f"{self.base_url}/query",
                json=payload,
                headers={"Accept": "application/x-ndjson"},
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    item = json.loads(line)
                    if item.get("eose"):
                        return
                    yield ContentRecord.from_dict(item)


@dataclass(slots=True)
class SourceHealth:
    last_seen: float = 0.0
    failures: int = 0

    @property
    def healthy(self) -> bool:
        return self.failures < UNHEALTHY_AFTER


SourceListener = Callable[[Source], None]


class SourceRegistry:
    """Live set of known sources.

    Listeners are told about every source added after they subscribe, which is
    how in-flight queries pick up sources discovered mid-query.
    """

    def __init__(self, sources: Iterable[Source] = (), *, blocked: Iterable[str] = ()):
        self._sources: dict[str, Source] = {}
        self._health: dict[str, SourceHealth] = {}
        self._blocked: set[str] = set(blocked)
        self._listeners: list[SourceListener] = []
        for source in sources:
            self.add(source)

    @classmethod
    def from_settings(cls) -> SourceRegistry:
        return cls(
            [HttpSource(url) for url in settings.source_url_list],
            blocked=settings.blocked_source_list,
        )

    def add(self, source: Source) -> bool:
        if source.source_id in self._blocked:
            logger.debug(f"Ignoring blocked source {source.source_id}")
            return False
        if source.source_id in self._sources:
            return False
        self._sources[source.source_id] = source
        self._health.setdefault(source.source_id, SourceHealth())
        for listener in list(self._listeners):
            try:
                listener(source)
            except Exception as e:
                logger.error(f"Source listener failed for {source.source_id}: {e}")
        return True

    def remove(self, source_id: str) -> None:
        self._sources.pop(source_id, None)

    def block(self, source_id: str) -> None:
        self._blocked.add(source_id)
        self.remove(source_id)
        logger.info(f"Blocked source {source_id}")

    def is_blocked(self, source_id: str) -> bool:
        return source_id in self._blocked

    def get(self, source_id: str) -> Source | None:
        return self._sources.get(source_id)

    def known_sources(self) -> list[str]:
        """Source ids, healthy ones first, otherwise in insertion order."""
        return sorted(self._sources, key=lambda sid: not self._health[sid].healthy)

    def sources(self) -> list[Source]:
        return [self._sources[sid] for sid in self.known_sources()]

    def subscribe(self, listener: SourceListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def mark_success(self, source_id: str) -> None:
        health = self._health.setdefault(source_id, SourceHealth())
        health.last_seen = time.time()
        health.failures = 0

    def mark_failure(self, source_id: str) -> None:
        health = self._health.setdefault(source_id, SourceHealth())
        health.failures += 1
        if health.failures == UNHEALTHY_AFTER:
            logger.warning(f"Source {source_id} marked unhealthy after {health.failures} failures")

    def health(self, source_id: str) -> SourceHealth | None:
        return self._health.get(source_id)

    def __len__(self) -> int:
        return len(self._sources)
