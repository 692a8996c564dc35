"""
Embedding index - vector lifecycle over canonical records.
Embeds text, compares vectors, answers nearest-neighbour queries and backfills missing vectors.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

import numpy as np

from .embeddings import EmbeddingUnavailable, IEmbeddingProvider
from ..core import config
from ..core.schema import MatchCandidate, MatchType, Record, SearchFilters
from ..util.logging import logger


@dataclass
class ReindexReport:
    """Outcome of one re-indexing pass."""
    scanned: int = 0
    embedded: int = 0
    failed: int = 0
    failed_ids: List[str] = field(default_factory=list)

    def absorb(self, other: "ReindexReport") -> None:
        self.scanned += other.scanned
        self.embedded += other.embedded
        self.failed += other.failed
        self.failed_ids.extend(other.failed_ids)

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "embedded": self.embedded,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
        }


class EmbeddingIndex:
    """Semantic side of hybrid retrieval.

    Vectors are only ever compared when they come from the same model version
    and have the index dimension; anything else is treated as missing and
    picked up by ``reindex_batch``.
    """

    def __init__(self, store, provider: Optional[IEmbeddingProvider], model_version: str = None,
                 dimension: int = None):
        self.store = store
        self.provider = provider
        self.model_version = model_version or config.EMBEDDING_MODEL_VERSION or (
            provider.model_id if provider is not None else "none")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            if self.provider is None:
                raise EmbeddingUnavailable("No embedding model loaded")
            self._dimension = self.provider.get_dimension()
        return self._dimension

    def embed(self, text: str) -> List[float]:
        """Embed text into a vector of the index dimension. Raises EmbeddingUnavailable on any failure."""
        if not text or not text.strip():
            raise EmbeddingUnavailable("Cannot embed empty text")
        if self.provider is None:
            raise EmbeddingUnavailable("No embedding model loaded")

        try:
            vector = self.provider.embed_text(text)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"Embedding provider failed: {e}") from e

        if len(vector) != self.dimension:
            raise EmbeddingUnavailable(
                f"Provider returned dimension {len(vector)}, index expects {self.dimension}"
            )
        return [float(v) for v in vector]

    @staticmethod
    def similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
        """Cosine similarity in [-1, 1]; 0 when either vector has zero magnitude."""
        a = np.asarray(vector_a, dtype=np.float64)
        b = np.asarray(vector_b, dtype=np.float64)
        if a.shape != b.shape:
            raise ValueError("Vectors must have the same dimensions")

        norm_a = np.linalg.norm(a)
        norm_b = np.linalg.norm(b)
        if norm_a == 0 or norm_b == 0:
            return 0.0

        score = float(np.dot(a, b) / (norm_a * norm_b))
        return max(-1.0, min(1.0, score))

    def search(self, user_id: str, text: str, filters: SearchFilters = None, top_k: int = None,
               min_similarity: float = None) -> List[MatchCandidate]:
        """Semantic candidates for a query. EmbeddingUnavailable propagates so the caller can degrade."""
        top_k = config.SEMANTIC_TOP_K if top_k is None else top_k
        min_similarity = config.SEMANTIC_MIN_SIMILARITY if min_similarity is None else min_similarity

        query_vector = self.embed(text)
        neighbours = self.store.top_k(user_id, query_vector, top_k, self.model_version, filters)

        candidates = []
        for record, score in neighbours:
            if score < min_similarity:
                continue
            candidates.append(MatchCandidate(
                record=record,
                score=max(0.0, min(1.0, score)),
                strategy=MatchType.SEMANTIC,
            ))
        return candidates

    def text_for(self, record: Record) -> str:
        """Text that represents a record in vector space."""
        return record.summary or record.raw_text

    def index_record(self, record: Record) -> bool:
        """Embed and persist one record. A failure leaves the record for backfill."""
        try:
            vector = self.embed(self.text_for(record))
        except EmbeddingUnavailable as e:
            logger.log_vector_operation("index", record.id, {"error": str(e)}, status="failed")
            return False

        self.store.save_embedding(record.id, vector, self.model_version)
        logger.log_vector_operation("index", record.id, {"model": self.model_version})
        return True

    def reindex_batch(self, batch_size: int = None, exclude_ids: Iterable[str] = ()) -> ReindexReport:
        """Embed up to ``batch_size`` records lacking a current vector. Safe to call repeatedly."""
        batch_size = batch_size or config.REINDEX_BATCH_SIZE
        report = ReindexReport()

        try:
            dimension = self.dimension
        except EmbeddingUnavailable as e:
            logger.log_vector_operation("reindex", "*", {"error": str(e)}, status="failed")
            return report

        pending = self.store.records_missing_embedding(self.model_version, dimension, batch_size, exclude_ids)
        report.scanned = len(pending)

        for record in pending:
            if self.index_record(record):
                report.embedded += 1
            else:
                report.failed += 1
                report.failed_ids.append(record.id)

        if pending:
            logger.log_vector_operation("reindex", "*", {
                "scanned": report.scanned,
                "embedded": report.embedded,
                "failed": report.failed,
            })
        return report

    def backfill(self, batch_size: int = None, max_batches: int = None) -> ReindexReport:
        """Run batches until nothing is left to embed. Records that fail are not retried in the same run."""
        total = ReindexReport()
        batches = 0

        while max_batches is None or batches < max_batches:
            report = self.reindex_batch(batch_size, exclude_ids=total.failed_ids)
            total.absorb(report)
            batches += 1
            if report.scanned == 0:
                break

        return total

    def coverage(self) -> dict:
        """Share of records carrying a vector from the current model version."""
        stats = self.store.embedding_stats(self.model_version)
        stats["model_version"] = self.model_version
        return stats
