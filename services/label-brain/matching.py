"""Similarity matching of an extraction against the owner's inventory.

Additive point scoring, case-insensitive:

- name: exact +3, else substring either way +2, else Levenshtein similarity
  above 0.7 +1 (at most one tier)
- producer (both present): exact +2, else substring either way +1
- vintage: string-equal +1

A record needs 2 points to be suggested. Exact-name matches sort first,
otherwise discovery order is kept, and at most three records are returned.
Only the name is fuzzy-matched.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from config import settings
from models import ExtractedFields, WineRecord
from stores import InventoryStore

logger = logging.getLogger(__name__)

NAME_EXACT_POINTS = 3
NAME_SUBSTRING_POINTS = 2
NAME_FUZZY_POINTS = 1
NAME_FUZZY_THRESHOLD = 0.7
PRODUCER_EXACT_POINTS = 2
PRODUCER_SUBSTRING_POINTS = 1
VINTAGE_POINTS = 1
MIN_CANDIDATE_SCORE = 2


@dataclass(frozen=True)
class ScoredCandidate:
    record: WineRecord
    score: int
    exact_name: bool


class Matcher(Protocol):
    """Finds inventory records that may be the wine on a scanned label."""

    async def find_candidates(self, fields: ExtractedFields, owner_id: str) -> list[WineRecord]: ...


class LinearScanMatcher:
    """Scores a bounded page of the owner's inventory in memory."""

    def __init__(
        self,
        inventory: InventoryStore,
        pool_limit: int | None = None,
        max_results: int | None = None,
    ):
        self._inventory = inventory
        self._pool_limit = pool_limit if pool_limit is not None else settings.MATCH_POOL_LIMIT
        self._max_results = max_results if max_results is not None else settings.MAX_SUGGESTED_MATCHES

    async def find_candidates(self, fields: ExtractedFields, owner_id: str) -> list[WineRecord]:
        if fields.name is None:
            return []

        pool = await self._inventory.query_by_owner(owner_id, limit=self._pool_limit)
        matches = rank_candidates(fields, pool, self._max_results)
        logger.info("Matched %d of %d inventory records", len(matches), len(pool))
        return [m.record for m in matches]


def rank_candidates(
    fields: ExtractedFields,
    records: list[WineRecord],
    max_results: int = 3,
) -> list[ScoredCandidate]:
    """Score, filter and order records. Pure; no I/O."""
    if fields.name is None:
        return []

    # A nameless record would substring-match every extraction
    named = [r for r in records if r.name.strip()]
    scored = [score_candidate(fields, record) for record in named]
    qualified = [c for c in scored if c.score >= MIN_CANDIDATE_SCORE]
    # sorted() is stable, so ties keep discovery order
    qualified = sorted(qualified, key=lambda c: 1 if c.exact_name else 0, reverse=True)
    return qualified[:max_results]


def score_candidate(fields: ExtractedFields, record: WineRecord) -> ScoredCandidate:
    """Compute the additive match score of one inventory record."""
    score = 0
    exact_name = False

    if fields.name is not None:
        extracted_name = fields.name.value.lower()
        record_name = record.name.lower()
        if record_name == extracted_name:
            score += NAME_EXACT_POINTS
            exact_name = True
        elif _contains_either(record_name, extracted_name):
            score += NAME_SUBSTRING_POINTS
        elif levenshtein_similarity(record_name, extracted_name) > NAME_FUZZY_THRESHOLD:
            score += NAME_FUZZY_POINTS

    if fields.producer is not None and record.producer:
        extracted_producer = fields.producer.value.lower()
        record_producer = record.producer.lower()
        if extracted_producer:
            if record_producer == extracted_producer:
                score += PRODUCER_EXACT_POINTS
            elif _contains_either(record_producer, extracted_producer):
                score += PRODUCER_SUBSTRING_POINTS

    if fields.vintage is not None and record.vintage is not None:
        if str(record.vintage) == fields.vintage.value:
            score += VINTAGE_POINTS

    return ScoredCandidate(record=record, score=score, exact_name=exact_name)


def _contains_either(a: str, b: str) -> bool:
    return a in b or b in a


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance; insertion, deletion and substitution cost 1."""
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / max length. Equal strings give 1, one empty string gives 0."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))
