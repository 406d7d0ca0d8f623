"""
SQLite-backed storage for analysis records.

Schema
──────
table: analyses
  id            TEXT PRIMARY KEY          (UUID4)
  text          TEXT NOT NULL
  summary       TEXT NOT NULL
  metadata      TEXT NOT NULL             (AnalysisMetadata serialised as JSON)
  confidence    REAL NOT NULL
  created_at    TEXT NOT NULL             (ISO-8601 UTC)
  processing_ms INTEGER NOT NULL

indexes: idx_created_at (created_at), idx_confidence (confidence)

Records are append-only: there is no update or delete. Topic and keyword
filters are plain substring matches against the stored columns, so a keyword
may match inside any metadata field.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from core.errors import PersistenceError
from core.models import AnalysisMetadata, AnalysisRecord, AnalysisStats, SearchQuery

logger = logging.getLogger(__name__)

_COLUMNS = "id, text, summary, metadata, confidence, created_at, processing_ms"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS analyses (
    id            TEXT PRIMARY KEY,
    text          TEXT NOT NULL,
    summary       TEXT NOT NULL,
    metadata      TEXT NOT NULL,
    confidence    REAL NOT NULL,
    created_at    TEXT NOT NULL,
    processing_ms INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_created_at ON analyses(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_confidence ON analyses(confidence);
"""


class AnalysisStore:
    """Append-only store of ``AnalysisRecord`` rows.

    A fresh connection is opened per operation, so one instance may be used
    from several threads at once; SQLite serialises the writes.
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = Path(db_path)

    @contextmanager
    def _connect(self):
        """Yield a connected sqlite3.Connection, creating the file/dir if needed.

        Any ``sqlite3.Error`` raised inside the block is re-raised as
        ``PersistenceError``.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"failed to open database: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the analyses table and its indexes if they don't exist yet."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        logger.info("Analysis DB initialised at %s", self.db_path)

    def save(self, record: AnalysisRecord) -> None:
        """Insert *record* as a new row.

        Raises:
            PersistenceError: On serialisation or storage failure, including a
                duplicate ``id``.
        """
        try:
            metadata_json = record.metadata.model_dump_json()
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"failed to serialise metadata: {exc}") from exc

        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO analyses ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.text,
                    record.summary,
                    metadata_json,
                    record.confidence,
                    record.created_at.isoformat(),
                    record.processing_ms,
                ),
            )

        logger.info(
            "Saved analysis id=%s confidence=%.2f processing_ms=%d",
            record.id, record.confidence, record.processing_ms,
        )

    def get_by_id(self, record_id: str) -> Optional[AnalysisRecord]:
        """Fetch a single record by its id, or None if not found."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM analyses WHERE id = ?",
                (record_id,),
            ).fetchone()

        if row is None:
            return None
        return _row_to_record(row)

    def search(self, query: SearchQuery) -> list[AnalysisRecord]:
        """Return records matching *query*, newest first.

        ``topic`` matches when the quoted topic occurs in the metadata JSON;
        ``keyword`` matches when it occurs in the text, the summary or the
        metadata JSON. Both filters combine with AND. ``limit`` and ``offset``
        apply after filtering and ordering.

        Args:
            query: Filters and pagination, already resolved by ``SearchQuery``.

        Returns:
            A list of AnalysisRecord objects.
        """
        conditions: list[str] = []
        args: list[object] = []

        if query.topic:
            conditions.append("metadata LIKE ?")
            args.append(f'%"{query.topic}"%')

        if query.keyword:
            conditions.append("(text LIKE ? OR summary LIKE ? OR metadata LIKE ?)")
            pattern = f"%{query.keyword}%"
            args.extend([pattern, pattern, pattern])

        sql = f"SELECT {_COLUMNS} FROM analyses"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        args.extend([query.limit, query.offset])

        with self._connect() as conn:
            rows = conn.execute(sql, args).fetchall()

        return [_row_to_record(row) for row in rows]

    def recent(self, limit: int = 50) -> list[AnalysisRecord]:
        """Return the most recent *limit* records (newest first)."""
        return self.search(SearchQuery(limit=limit))

    def stats(self) -> AnalysisStats:
        """Aggregate counts and averages over every stored record."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total, AVG(confidence) AS avg_confidence, "
                "AVG(processing_ms) AS avg_processing, MAX(created_at) AS last "
                "FROM analyses"
            ).fetchone()

        return AnalysisStats(
            total_analyses=row["total"],
            average_confidence=row["avg_confidence"] or 0.0,
            average_processing_ms=row["avg_processing"] or 0.0,
            last_analysis=datetime.fromisoformat(row["last"]) if row["last"] else None,
        )


def _row_to_record(row: sqlite3.Row) -> AnalysisRecord:
    try:
        metadata = AnalysisMetadata.model_validate_json(row["metadata"])
        return AnalysisRecord(
            id=row["id"],
            text=row["text"],
            summary=row["summary"],
            metadata=metadata,
            confidence=row["confidence"],
            created_at=datetime.fromisoformat(row["created_at"]),
            processing_ms=row["processing_ms"],
        )
    except ValidationError as exc:
        raise PersistenceError(f"corrupt analysis id={row['id']}: {exc}") from exc
