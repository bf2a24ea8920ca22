from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Mapping, Protocol

from loguru import logger

from bookstr.models.records import ContentRecord

FOLLOWS_DEGRADE = 10
AUTHORS_DEGRADE = 6
START_SCORE = 30


class TrustScoreProvider(Protocol):
    def score(self, author: str) -> float: ...


class StaticTrustScores:
    """Trust scores held in memory. Unknown authors score 0."""

    def __init__(self, scores: Mapping[str, float] | None = None):
        self._scores: dict[str, float] = dict(scores or {})

    def score(self, author: str) -> float:
        return self._scores.get(author, 0)

    def update(self, scores: Mapping[str, float]) -> None:
        self._scores.update(scores)

    def replace(self, scores: Mapping[str, float]) -> None:
        self._scores = dict(scores)

    def __len__(self) -> int:
        return len(self._scores)


def rank(records: Iterable[ContentRecord], trust: TrustScoreProvider) -> list[ContentRecord]:
    """Order by descending trust score; equal scores keep their relative order."""
    scores: dict[str, float] = {}
    records = list(records)
    for record in records:
        if record.author not in scores:
            scores[record.author] = trust.score(record.author)
    return sorted(records, key=lambda record: scores[record.author], reverse=True)


async def compute_web_of_trust(
    root: str,
    fetch_follows: Callable[[str], Awaitable[Iterable[str]]],
    *,
    degrade: float = FOLLOWS_DEGRADE,
    start_score: float = START_SCORE,
    scoremap: dict[str, float] | None = None,
) -> dict[str, float]:
    """Spread trust outward from ``root`` along follow lists.

    Every visit adds the current score to the author; the score drops by
    ``degrade`` per hop and the walk stops once it is no longer above ``degrade``.
    Several walks can accumulate into one ``scoremap``.
    """
    scores = scoremap if scoremap is not None else {}

    async def recurse(author: str, score: float) -> None:
        scores[author] = scores.get(author, 0) + score
        if score <= degrade:
            return
        try:
            follows = list(await fetch_follows(author))
        except Exception as e:
            logger.warning(f"Could not load follows for {author}: {e}")
            return
        await asyncio.gather(*(recurse(follow, score - degrade) for follow in follows))

    await recurse(root, start_score)
    return scores
