from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    SEARCH_STARTED = "search_started"
    CACHE_HIT = "cache_hit"
    RESULTS_UPDATED = "results_updated"
    SOURCE_COMPLETED = "source_completed"
    VERSION_FALLBACK = "version_fallback"
    SEARCH_COMPLETE = "search_complete"
    ERROR = "error"


@dataclass
class SearchEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"
