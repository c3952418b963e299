"""Weighted Reciprocal Rank Fusion over independently ranked candidate lists."""

from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

RRF_K = 60
DEDUP_PREFIX_CHARS = 120

VECTOR = "vector"
LEXICAL = "lexical"
TRIGRAM = "trigram"


@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk row as returned by one of the candidate searches."""
    content: str
    title: str
    url: str
    chunk_id: Optional[int] = None
    chunk_index: Optional[int] = None


@dataclass
class RankedCandidate:
    """A fused candidate and the per-signal contributions to its score."""
    chunk: RetrievedChunk
    score: float = 0.0
    contributions: Dict[str, float] = field(default_factory=dict)


def candidate_key(chunk: RetrievedChunk, prefix_chars: int = DEDUP_PREFIX_CHARS) -> Hashable:
    """Identity of the underlying chunk across signals.

    ``chunk_index`` is part of the key so two chunks of one post that
    happen to share a long opening prefix are not merged.
    """
    return (chunk.url, chunk.title, chunk.chunk_index, chunk.content[:prefix_chars])


def rrf_contribution(rank: int, weight: float, k: int = RRF_K) -> float:
    """Score contribution of a 1-based ``rank`` in a list weighted ``weight``."""
    return weight * (1.0 / (k + rank))


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Tuple[str, Sequence[RetrievedChunk], float]],
    k: int = RRF_K,
    prefix_chars: int = DEDUP_PREFIX_CHARS,
) -> List[RankedCandidate]:
    """Fuse ``(signal, rows, weight)`` lists into one ranking.

    A candidate's score is the sum of ``weight / (k + rank)`` over every list
    it appears in. The result is sorted by score descending; equal scores keep
    the order in which candidates were first seen.
    """
    fused: Dict[Hashable, RankedCandidate] = {}

    for signal, rows, weight in ranked_lists:
        for idx, row in enumerate(rows):
            key = candidate_key(row, prefix_chars)
            contribution = rrf_contribution(idx + 1, weight, k)
            candidate = fused.get(key)
            if candidate is None:
                candidate = RankedCandidate(chunk=row)
                fused[key] = candidate
            candidate.score += contribution
            candidate.contributions[signal] = candidate.contributions.get(signal, 0.0) + contribution

    # dicts keep insertion order and sorted() is stable
    return sorted(fused.values(), key=lambda c: c.score, reverse=True)
