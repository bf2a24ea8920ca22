from __future__ import annotations

import pytest

from bookstr.models.records import ContentRecord
from bookstr.services.ranking import StaticTrustScores, compute_web_of_trust, rank


def _by(author: str, record_id: str) -> ContentRecord:
    return ContentRecord(id=record_id, author=author, created_at=1, kind=30041)


def test_rank_is_stable_descending_by_trust():
    records = [_by("nobody", "a"), _by("alice", "b"), _by("nobody", "c"), _by("bob", "d"), _by("alice", "e")]
    trust = StaticTrustScores({"alice": 5, "bob": 9})

    assert [r.id for r in rank(records, trust)] == ["d", "b", "e", "a", "c"]


def test_unknown_authors_score_zero_and_updates_apply():
    trust = StaticTrustScores()
    assert trust.score("anyone") == 0

    trust.update({"anyone": 3})
    assert trust.score("anyone") == 3


@pytest.mark.asyncio
async def test_web_of_trust_degrades_per_hop():
    follows = {"root": ["a", "b"], "a": ["c"], "b": ["c"], "c": ["d"]}

    async def fetch(author: str) -> list[str]:
        return follows.get(author, [])

    scores = await compute_web_of_trust("root", fetch, degrade=10, start_score=30)

    assert scores == {"root": 30, "a": 20, "b": 20, "c": 20}


@pytest.mark.asyncio
async def test_web_of_trust_survives_fetch_errors_and_accumulates():
    async def fetch(author: str) -> list[str]:
        if author == "root":
            return ["a"]
        raise ConnectionError("no relay")

    scores = await compute_web_of_trust("root", fetch, degrade=10, start_score=30)
    scores = await compute_web_of_trust("root", fetch, degrade=6, start_score=30, scoremap=scores)

    assert scores == {"root": 60, "a": 44}
