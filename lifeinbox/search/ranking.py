"""
Result ranking - merges per-strategy candidates into one ordered result list.
"""

from typing import Dict, List, Sequence

from ..core.schema import MATCH_PRIORITY, MatchCandidate, RankedResult


def _beats(candidate: MatchCandidate, incumbent: MatchCandidate) -> bool:
    if candidate.score != incumbent.score:
        return candidate.score > incumbent.score
    return MATCH_PRIORITY[candidate.strategy] < MATCH_PRIORITY[incumbent.strategy]


def merge(lexical_candidates: Sequence[MatchCandidate],
          semantic_candidates: Sequence[MatchCandidate]) -> List[RankedResult]:
    """Deduplicate candidates by record id into ranked results.

    A record keeps its best candidate: highest score, ties going to
    semantic, then lexical, then phonetic. Results are sorted by score
    descending; equal scores keep the order in which records were first
    seen (lexical list first), so the same input always renders the same
    pages.
    """
    best: Dict[str, MatchCandidate] = {}
    discovery: List[str] = []

    for candidate in list(lexical_candidates) + list(semantic_candidates):
        record_id = candidate.record.id
        incumbent = best.get(record_id)
        if incumbent is None:
            discovery.append(record_id)
            best[record_id] = candidate
        elif _beats(candidate, incumbent):
            best[record_id] = candidate

    ranked = [
        RankedResult(
            record=best[record_id].record,
            score=min(1.0, max(0.0, best[record_id].score)),
            match_type=best[record_id].strategy,
        )
        for record_id in discovery
    ]
    # sorted() is stable: discovery order survives among equal scores
    return sorted(ranked, key=lambda r: r.score, reverse=True)
