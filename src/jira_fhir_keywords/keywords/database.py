"""SQLite database management for the keyword index."""

import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from jira_fhir_keywords.keywords.models import (
    Bm25Config,
    Comment,
    CorpusKeyword,
    DocumentStats,
    Issue,
    IssueKeyword,
    KeywordType,
    TotalFrequency,
)

# Issue store. Owned by the ingestion side; created here only when missing so
# the index can run against a fresh database.
ISSUE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS issues (
    id                      INTEGER PRIMARY KEY,
    key                     TEXT NOT NULL DEFAULT '',
    title                   TEXT,
    description             TEXT,
    summary                 TEXT,
    resolution_description  TEXT,
    status                  TEXT,
    priority                TEXT,
    resolution              TEXT,
    work_group              TEXT
);

CREATE TABLE IF NOT EXISTS comments (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id    INTEGER NOT NULL,
    body        TEXT,
    author      TEXT,
    created_at  TEXT
);

CREATE INDEX IF NOT EXISTS idx_comments_issue ON comments(issue_id);
"""

KEYWORD_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS issue_keywords (
    issue_id      INTEGER NOT NULL,
    keyword       TEXT NOT NULL,
    keyword_type  TEXT NOT NULL,
    count         INTEGER NOT NULL CHECK (count >= 1),
    bm25_score    REAL,
    PRIMARY KEY (issue_id, keyword, keyword_type)
);

CREATE INDEX IF NOT EXISTS idx_issue_keywords_keyword ON issue_keywords(keyword);
CREATE INDEX IF NOT EXISTS idx_issue_keywords_type ON issue_keywords(keyword_type, issue_id);

CREATE TABLE IF NOT EXISTS corpus_keywords (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    keyword       TEXT NOT NULL,
    keyword_type  TEXT NOT NULL,
    count         INTEGER NOT NULL,
    idf           REAL,
    UNIQUE (keyword, keyword_type)
);

CREATE INDEX IF NOT EXISTS idx_corpus_keywords_idf ON corpus_keywords(idf DESC, count DESC);

CREATE TABLE IF NOT EXISTS total_frequencies (
    id                          INTEGER PRIMARY KEY AUTOINCREMENT,
    issue_id                    INTEGER UNIQUE,
    total_words                 INTEGER NOT NULL DEFAULT 0,
    total_stop_words            INTEGER NOT NULL DEFAULT 0,
    total_lemma_words           INTEGER NOT NULL DEFAULT 0,
    total_fhir_element_paths    INTEGER NOT NULL DEFAULT 0,
    total_fhir_operation_names  INTEGER NOT NULL DEFAULT 0
);
"""

SCORE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS bm25_config (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    k1            REAL NOT NULL,
    b             REAL NOT NULL,
    last_updated  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS document_stats (
    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
    average_document_length  REAL NOT NULL,
    total_document_count     INTEGER NOT NULL,
    last_calculated          TEXT NOT NULL
);
"""

KEYWORD_TABLES = ("issue_keywords", "corpus_keywords", "total_frequencies")
SCORE_TABLES = ("bm25_config", "document_stats")

ScoreKey = tuple[int, str, KeywordType]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """SQLite database holding issues and their keyword index."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._local.conn = sqlite3.connect(str(self.db_path))
            self._local.conn.row_factory = sqlite3.Row
        return self._local.conn

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for write operations with locking.

        Everything executed on the cursor commits as one transaction, or
        rolls back if the block raises.
        """
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def initialize(self) -> None:
        """Create any missing tables."""
        with self._write_cursor() as cursor:
            cursor.executescript(ISSUE_SCHEMA_SQL + KEYWORD_SCHEMA_SQL + SCORE_SCHEMA_SQL)

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    def reset_keyword_tables(self) -> None:
        """Drop and recreate the keyword and frequency tables (full rebuild)."""
        with self._write_cursor() as cursor:
            for table in KEYWORD_TABLES:
                cursor.execute(f"DROP TABLE IF EXISTS {table}")
            cursor.executescript(KEYWORD_SCHEMA_SQL)

    def reset_score_tables(self) -> None:
        """Drop and recreate the BM25 config and document stats tables."""
        with self._write_cursor() as cursor:
            for table in SCORE_TABLES:
                cursor.execute(f"DROP TABLE IF EXISTS {table}")
            cursor.executescript(SCORE_SCHEMA_SQL)

    # Issue operations

    def insert_issues(self, issues: Iterable[Issue]) -> None:
        """Insert or replace issues."""
        with self._write_cursor() as cursor:
            cursor.executemany(
                """INSERT OR REPLACE INTO issues
                (id, key, title, description, summary, resolution_description,
                 status, priority, resolution, work_group)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        issue.id,
                        issue.key,
                        issue.title,
                        issue.description,
                        issue.summary,
                        issue.resolution_description,
                        issue.status,
                        issue.priority,
                        issue.resolution,
                        issue.work_group,
                    )
                    for issue in issues
                ],
            )

    def insert_comments(self, comments: Iterable[Comment]) -> None:
        """Insert comments."""
        with self._write_cursor() as cursor:
            cursor.executemany(
                """INSERT INTO comments (issue_id, body, author, created_at)
                VALUES (?, ?, ?, ?)""",
                [(c.issue_id, c.body, c.author, c.created_at) for c in comments],
            )

    def list_issues(self) -> list[Issue]:
        """List all issues ordered by id."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM issues ORDER BY id")
            return [self._row_to_issue(row) for row in cursor.fetchall()]

    def list_issue_ids(self) -> list[int]:
        """List all issue ids in order."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT id FROM issues ORDER BY id")
            return [row["id"] for row in cursor.fetchall()]

    def get_issue(self, issue_id: int) -> Issue | None:
        """Get an issue by id."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM issues WHERE id = ?", (issue_id,))
            row = cursor.fetchone()
            return self._row_to_issue(row) if row else None

    def list_comments(self, issue_id: int) -> list[Comment]:
        """List the comments of an issue in insertion order."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM comments WHERE issue_id = ? ORDER BY id",
                (issue_id,),
            )
            return [
                Comment(
                    id=row["id"],
                    issue_id=row["issue_id"],
                    body=row["body"] or "",
                    author=row["author"],
                    created_at=row["created_at"],
                )
                for row in cursor.fetchall()
            ]

    def _row_to_issue(self, row: sqlite3.Row) -> Issue:
        """Convert a database row to an Issue."""
        return Issue(
            id=row["id"],
            key=row["key"],
            title=row["title"],
            description=row["description"],
            summary=row["summary"],
            resolution_description=row["resolution_description"],
            status=row["status"],
            priority=row["priority"],
            resolution=row["resolution"],
            work_group=row["work_group"],
        )

    # Frequency table loads

    def insert_keyword_index(
        self,
        issue_keywords: Iterable[IssueKeyword],
        corpus_keywords: Iterable[CorpusKeyword],
        total_frequencies: Iterable[TotalFrequency],
    ) -> None:
        """Load the output of an extraction run in a single transaction."""
        with self._write_cursor() as cursor:
            cursor.executemany(
                """INSERT INTO issue_keywords
                (issue_id, keyword, keyword_type, count, bm25_score)
                VALUES (?, ?, ?, ?, ?)""",
                [
                    (ik.issue_id, ik.keyword, ik.keyword_type.value, ik.count, ik.bm25_score)
                    for ik in issue_keywords
                ],
            )
            cursor.executemany(
                """INSERT INTO corpus_keywords (keyword, keyword_type, count, idf)
                VALUES (?, ?, ?, ?)""",
                [
                    (ck.keyword, ck.keyword_type.value, ck.count, ck.idf)
                    for ck in corpus_keywords
                ],
            )
            cursor.executemany(
                """INSERT INTO total_frequencies
                (issue_id, total_words, total_stop_words, total_lemma_words,
                 total_fhir_element_paths, total_fhir_operation_names)
                VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (
                        tf.issue_id,
                        tf.total_words,
                        tf.total_stop_words,
                        tf.total_lemma_words,
                        tf.total_fhir_element_paths,
                        tf.total_fhir_operation_names,
                    )
                    for tf in total_frequencies
                ],
            )

    # Issue keyword operations

    def count_issue_keywords(self) -> int:
        """Count issue keyword rows."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS n FROM issue_keywords")
            return cursor.fetchone()["n"]

    def list_issue_keywords_with_idf(
        self, issue_id: int
    ) -> list[tuple[IssueKeyword, float | None]]:
        """List an issue's keywords together with the matching corpus IDF."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT ik.*, ck.idf AS idf FROM issue_keywords ik
                LEFT JOIN corpus_keywords ck
                    ON ck.keyword = ik.keyword AND ck.keyword_type = ik.keyword_type
                WHERE ik.issue_id = ?
                ORDER BY ik.keyword, ik.keyword_type""",
                (issue_id,),
            )
            return [
                (self._row_to_issue_keyword(row), row["idf"])
                for row in cursor.fetchall()
            ]

    def update_issue_keyword_scores(self, issue_keywords: Iterable[IssueKeyword]) -> None:
        """Persist BM25 scores row by row."""
        with self._write_cursor() as cursor:
            cursor.executemany(
                """UPDATE issue_keywords SET bm25_score = ?
                WHERE issue_id = ? AND keyword = ? AND keyword_type = ?""",
                [
                    (ik.bm25_score, ik.issue_id, ik.keyword, ik.keyword_type.value)
                    for ik in issue_keywords
                ],
            )

    def bulk_update_bm25_scores(self, scores: dict[ScoreKey, float]) -> None:
        """
        Apply many BM25 scores with a single multi-row CASE update.

        The statement is executed in one transaction; on failure the whole
        batch rolls back and earlier batches stay committed.
        """
        if not scores:
            return

        case_params: list = []
        where_params: list = []

        for (issue_id, keyword, keyword_type), score in scores.items():
            case_params.extend([issue_id, keyword, keyword_type.value, score])
            where_params.extend([issue_id, keyword, keyword_type.value])

        # One row-value IN test; an OR chain nests per row past SQLITE_MAX_EXPR_DEPTH
        sql = (
            "UPDATE issue_keywords SET bm25_score = CASE "
            + " ".join(
                ["WHEN issue_id = ? AND keyword = ? AND keyword_type = ? THEN ?"] * len(scores)
            )
            + " ELSE bm25_score END"
            + " WHERE (issue_id, keyword, keyword_type) IN (VALUES "
            + ", ".join(["(?, ?, ?)"] * len(scores))
            + ")"
        )

        with self._write_cursor() as cursor:
            cursor.execute(sql, case_params + where_params)

    def find_scored_keyword_matches(self, keyword: str) -> list[IssueKeyword]:
        """Rows for a keyword (any type) with a positive BM25 score."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT * FROM issue_keywords
                WHERE keyword = ? AND bm25_score IS NOT NULL AND bm25_score > 0
                ORDER BY bm25_score DESC""",
                (keyword,),
            )
            return [self._row_to_issue_keyword(row) for row in cursor.fetchall()]

    def sum_scores_by_keyword_type(
        self, keyword_type: KeywordType, limit: int
    ) -> list[tuple[int, float]]:
        """Per-issue sum of positive BM25 scores for one keyword type."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT issue_id, SUM(bm25_score) AS total_score
                FROM issue_keywords
                WHERE keyword_type = ? AND bm25_score IS NOT NULL AND bm25_score > 0
                GROUP BY issue_id
                ORDER BY total_score DESC
                LIMIT ?""",
                (keyword_type.value, limit),
            )
            return [(row["issue_id"], row["total_score"]) for row in cursor.fetchall()]

    def _row_to_issue_keyword(self, row: sqlite3.Row) -> IssueKeyword:
        return IssueKeyword(
            issue_id=row["issue_id"],
            keyword=row["keyword"],
            keyword_type=KeywordType(row["keyword_type"]),
            count=row["count"],
            bm25_score=row["bm25_score"],
        )

    # Corpus keyword operations

    def count_corpus_keywords(self) -> int:
        """Count corpus keyword rows."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS n FROM corpus_keywords")
            return cursor.fetchone()["n"]

    def count_scored_corpus_keywords(self) -> int:
        """Count corpus keywords that have an IDF value."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS n FROM corpus_keywords WHERE idf IS NOT NULL")
            return cursor.fetchone()["n"]

    def list_corpus_keywords(
        self, limit: int | None = None, offset: int = 0
    ) -> list[CorpusKeyword]:
        """List corpus keywords in id order, optionally one page at a time."""
        query = "SELECT * FROM corpus_keywords ORDER BY id"
        params: list = []
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        with self._read_cursor() as cursor:
            cursor.execute(query, params)
            return [self._row_to_corpus_keyword(row) for row in cursor.fetchall()]

    def count_documents_with_keyword(self, keyword: str, keyword_type: KeywordType) -> int:
        """Number of distinct issues containing a keyword of a given type."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT COUNT(DISTINCT issue_id) AS n FROM issue_keywords
                WHERE keyword = ? AND keyword_type = ?""",
                (keyword, keyword_type.value),
            )
            return cursor.fetchone()["n"]

    def update_corpus_idf(self, corpus_keywords: Iterable[CorpusKeyword]) -> None:
        """Persist IDF values for a batch of corpus keywords in one transaction."""
        with self._write_cursor() as cursor:
            cursor.executemany(
                """UPDATE corpus_keywords SET idf = ?
                WHERE keyword = ? AND keyword_type = ?""",
                [(ck.idf, ck.keyword, ck.keyword_type.value) for ck in corpus_keywords],
            )

    def top_corpus_keywords(
        self, keyword_type: KeywordType | None, limit: int
    ) -> list[CorpusKeyword]:
        """Corpus keywords with an IDF, most distinctive first."""
        query = "SELECT * FROM corpus_keywords WHERE idf IS NOT NULL"
        params: list = []
        if keyword_type is not None:
            query += " AND keyword_type = ?"
            params.append(keyword_type.value)
        query += " ORDER BY idf DESC, count DESC LIMIT ?"
        params.append(limit)

        with self._read_cursor() as cursor:
            cursor.execute(query, params)
            return [self._row_to_corpus_keyword(row) for row in cursor.fetchall()]

    def _row_to_corpus_keyword(self, row: sqlite3.Row) -> CorpusKeyword:
        return CorpusKeyword(
            keyword=row["keyword"],
            keyword_type=KeywordType(row["keyword_type"]),
            count=row["count"],
            idf=row["idf"],
        )

    # Total frequency operations

    def get_total_frequency(self, issue_id: int | None) -> TotalFrequency | None:
        """Get the counters of an issue, or the corpus row for None."""
        with self._read_cursor() as cursor:
            if issue_id is None:
                cursor.execute("SELECT * FROM total_frequencies WHERE issue_id IS NULL")
            else:
                cursor.execute(
                    "SELECT * FROM total_frequencies WHERE issue_id = ?", (issue_id,)
                )
            row = cursor.fetchone()
            if row is None:
                return None
            return TotalFrequency(
                issue_id=row["issue_id"],
                total_words=row["total_words"],
                total_stop_words=row["total_stop_words"],
                total_lemma_words=row["total_lemma_words"],
                total_fhir_element_paths=row["total_fhir_element_paths"],
                total_fhir_operation_names=row["total_fhir_operation_names"],
            )

    def count_documents(self) -> int:
        """Number of per-issue frequency rows (the corpus size N)."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT COUNT(*) AS n FROM total_frequencies WHERE issue_id IS NOT NULL"
            )
            return cursor.fetchone()["n"]

    def sum_document_lengths(self) -> int:
        """Sum of total words over per-issue frequency rows."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT COALESCE(SUM(total_words), 0) AS n FROM total_frequencies
                WHERE issue_id IS NOT NULL"""
            )
            return cursor.fetchone()["n"]

    # BM25 config and document stats

    def get_bm25_config(self) -> Bm25Config | None:
        """Get the most recently updated BM25 configuration."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM bm25_config ORDER BY last_updated DESC, id DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return Bm25Config(
                id=row["id"],
                k1=row["k1"],
                b=row["b"],
                last_updated=datetime.fromisoformat(row["last_updated"]),
            )

    def save_bm25_config(self, k1: float, b: float) -> Bm25Config:
        """Update the latest BM25 config row in place, or insert one."""
        existing = self.get_bm25_config()
        now = _utcnow()
        with self._write_cursor() as cursor:
            if existing is not None:
                cursor.execute(
                    "UPDATE bm25_config SET k1 = ?, b = ?, last_updated = ? WHERE id = ?",
                    (k1, b, now.isoformat(), existing.id),
                )
                config_id = existing.id
            else:
                cursor.execute(
                    "INSERT INTO bm25_config (k1, b, last_updated) VALUES (?, ?, ?)",
                    (k1, b, now.isoformat()),
                )
                config_id = cursor.lastrowid
        return Bm25Config(k1=k1, b=b, last_updated=now, id=config_id)

    def get_document_stats(self) -> DocumentStats | None:
        """Get the cached document statistics."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM document_stats ORDER BY last_calculated DESC, id DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return DocumentStats(
                id=row["id"],
                average_document_length=row["average_document_length"],
                total_document_count=row["total_document_count"],
                last_calculated=datetime.fromisoformat(row["last_calculated"]),
            )

    def save_document_stats(
        self, average_document_length: float, total_document_count: int
    ) -> DocumentStats:
        """Update the document stats row in place, or insert one."""
        existing = self.get_document_stats()
        now = _utcnow()
        with self._write_cursor() as cursor:
            if existing is not None:
                cursor.execute(
                    """UPDATE document_stats
                    SET average_document_length = ?, total_document_count = ?,
                        last_calculated = ?
                    WHERE id = ?""",
                    (average_document_length, total_document_count, now.isoformat(), existing.id),
                )
                stats_id = existing.id
            else:
                cursor.execute(
                    """INSERT INTO document_stats
                    (average_document_length, total_document_count, last_calculated)
                    VALUES (?, ?, ?)""",
                    (average_document_length, total_document_count, now.isoformat()),
                )
                stats_id = cursor.lastrowid
        return DocumentStats(
            average_document_length=average_document_length,
            total_document_count=total_document_count,
            last_calculated=now,
            id=stats_id,
        )
