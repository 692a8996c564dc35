"""
Record store - exact, range and nearest-neighbour access to captured records.
Vectors live next to their record as float32 blobs; similarity is computed with numpy.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from . import config
from .db import DatastoreUnavailable, get_db, init_db
from .schema import Record, SearchFilters
from ..util.logging import logger

_RECORD_COLUMNS = ("id, user_id, raw_text, summary, category, content_type, created_at, "
                   "embedding, embedding_dim, embedding_model")


def _vector_to_blob(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def _blob_to_vector(blob: Optional[bytes]) -> Optional[List[float]]:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32).tolist()


def _row_to_record(row) -> Record:
    (record_id, user_id, raw_text, summary, category, content_type,
     created_at, embedding, _dim, embedding_model) = row
    return Record(
        id=record_id,
        user_id=user_id,
        raw_text=raw_text,
        summary=summary,
        category=category,
        content_type=content_type,
        created_at=datetime.fromisoformat(created_at),
        embedding=_blob_to_vector(embedding),
        embedding_model=embedding_model,
    )


def _filter_clauses(filters: Optional[SearchFilters]) -> Tuple[str, list]:
    """Translate search filters into a SQL fragment (leading AND) and its parameters."""
    if filters is None or filters.is_empty():
        return "", []

    clauses = []
    params: list = []

    if filters.content_types:
        clauses.append(f"content_type IN ({', '.join('?' * len(filters.content_types))})")
        params.extend(filters.content_types)

    if filters.categories:
        clauses.append(f"LOWER(category) IN ({', '.join('?' * len(filters.categories))})")
        params.extend(c.lower() for c in filters.categories)

    if filters.date_from:
        clauses.append("created_at >= ?")
        params.append(filters.date_from.isoformat())

    if filters.date_to:
        # date_to is inclusive: everything before the following midnight
        clauses.append("created_at < ?")
        params.append((filters.date_to + timedelta(days=1)).isoformat())

    return " AND " + " AND ".join(clauses), params


class RecordStore:
    """SQLite-backed datastore collaborator for the retrieval core."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.DB_PATH
        init_db(self.db_path)

    @contextmanager
    def _connect(self):
        with get_db(self.db_path) as conn:
            try:
                yield conn
            except sqlite3.Error as e:
                logger.error(f"Record store query failed: {e}")
                raise DatastoreUnavailable(f"Record store query failed: {e}") from e

    def add_record(self, user_id: str, raw_text: str, summary: str = None, category: str = None,
                   content_type: str = "text", created_at: datetime = None) -> Record:
        """Persist a new record (without an embedding) and return it."""
        record = Record(
            id=uuid.uuid4().hex,
            user_id=user_id,
            raw_text=raw_text,
            summary=summary,
            category=category,
            content_type=content_type,
            created_at=created_at or datetime.now(),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO records (id, user_id, raw_text, summary, category, content_type, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (record.id, record.user_id, record.raw_text, record.summary, record.category,
                 record.content_type, record.created_at.isoformat()),
            )
            conn.commit()
        return record

    def get_record(self, record_id: str) -> Optional[Record]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM records WHERE id = ?", (record_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def list_records(self, user_id: str, filters: SearchFilters = None,
                     limit: int = None) -> List[Record]:
        """Newest-first records for a user, restricted by filters. This is the lexical candidate pool."""
        where, params = _filter_clauses(filters)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM records WHERE user_id = ?{where} "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                [user_id, *params, limit or config.CANDIDATE_POOL_LIMIT],
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def count_records(self, user_id: str = None) -> int:
        with self._connect() as conn:
            if user_id is None:
                return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]
            return conn.execute("SELECT COUNT(*) FROM records WHERE user_id = ?", (user_id,)).fetchone()[0]

    def recent_categories(self, user_id: str, sample: int = 10) -> List[str]:
        """Distinct categories among the user's most recent records, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT category FROM records WHERE user_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, sample),
            ).fetchall()

        categories: List[str] = []
        for (category,) in rows:
            if category and category not in categories:
                categories.append(category)
        return categories

    def records_missing_embedding(self, model_version: str, dimension: int, limit: int,
                                  exclude_ids: Iterable[str] = ()) -> List[Record]:
        """Records with no vector, or a vector from another model version or dimension."""
        excluded = list(exclude_ids)
        exclude_sql = f" AND id NOT IN ({', '.join('?' * len(excluded))})" if excluded else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM records "
                "WHERE (embedding IS NULL OR embedding_model IS NOT ? OR embedding_dim IS NOT ?)"
                f"{exclude_sql} ORDER BY created_at DESC, rowid DESC LIMIT ?",
                [model_version, dimension, *excluded, limit],
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def save_embedding(self, record_id: str, vector: Sequence[float], model_version: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE records SET embedding = ?, embedding_dim = ?, embedding_model = ? WHERE id = ?",
                (_vector_to_blob(vector), len(vector), model_version, record_id),
            )
            conn.commit()

    def top_k(self, user_id: str, vector: Sequence[float], k: int, model_version: str,
              filters: SearchFilters = None) -> List[Tuple[Record, float]]:
        """Nearest neighbours by cosine similarity among the user's current-version vectors."""
        query = np.asarray(vector, dtype=np.float32)
        where, params = _filter_clauses(filters)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM records WHERE user_id = ? AND embedding IS NOT NULL "
                f"AND embedding_model = ? AND embedding_dim = ?{where} ORDER BY created_at DESC, rowid DESC",
                [user_id, model_version, len(query), *params],
            ).fetchall()

        if not rows or k <= 0:
            return []

        records = [_row_to_record(row) for row in rows]
        matrix = np.vstack([np.asarray(r.embedding, dtype=np.float32) for r in records])

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        order = np.argsort(-scores, kind="stable")[:k]
        return [(records[i], float(scores[i])) for i in order]

    def embedding_stats(self, model_version: str) -> dict:
        """Vector coverage across all records for monitoring."""
        with self._connect() as conn:
            total, with_vectors = conn.execute(
                "SELECT COUNT(*), SUM(CASE WHEN embedding IS NOT NULL AND embedding_model = ? THEN 1 ELSE 0 END) "
                "FROM records",
                (model_version,),
            ).fetchone()

        total = total or 0
        with_vectors = with_vectors or 0
        return {
            "total_records": total,
            "records_with_vectors": with_vectors,
            "vector_coverage": (with_vectors / total) * 100 if total else 0.0,
        }
