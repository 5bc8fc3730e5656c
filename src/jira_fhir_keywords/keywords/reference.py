"""Loading of the reference lookups used by the classifier.

Three read-only stores feed the classifier:

- the auxiliary keyword database (``stop_words`` and ``lemmas`` tables),
- an optional flat stop-word file (one word per line),
- the FHIR specification database (``Elements`` and ``Operations`` tables).

A missing store is not an error: a warning is logged and the store
contributes nothing.
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path

from jira_fhir_keywords.keywords.models import ReferenceData
from jira_fhir_keywords.keywords.tokenizer import MIN_KEYWORD_LENGTH, sanitize_as_keyword

logger = logging.getLogger(__name__)


def _connect_read_only(db_path: Path) -> sqlite3.Connection:
    """Open an existing SQLite file without creating it."""
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def _store_exists(db_path: Path | None, description: str) -> bool:
    if db_path is None:
        logger.warning("%s not configured, skipping", description)
        return False
    if not db_path.is_file():
        logger.warning("%s '%s' does not exist, skipping", description, db_path)
        return False
    return True


def _sanitized_values(conn: sqlite3.Connection, query: str) -> set[str]:
    """Run a single-column query and sanitize each non-null value."""
    values: set[str] = set()
    for row in conn.execute(query):
        sanitized = sanitize_as_keyword(row[0])
        if sanitized.has_letter:
            values.add(sanitized.keyword)
    return values


def load_stop_words(keyword_db: Path | None, stopword_file: Path | None = None) -> frozenset[str]:
    """Load stop words from the auxiliary database and/or a flat file."""
    words: set[str] = set()

    if _store_exists(keyword_db, "Keyword database"):
        with closing(_connect_read_only(keyword_db)) as conn:
            words |= _sanitized_values(
                conn, "SELECT DISTINCT word FROM stop_words WHERE word IS NOT NULL"
            )

    if stopword_file is not None:
        if stopword_file.is_file():
            for line in stopword_file.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                sanitized = sanitize_as_keyword(line)
                if sanitized.has_letter:
                    words.add(sanitized.keyword)
        else:
            logger.warning("Stop-word file '%s' does not exist, skipping", stopword_file)

    return frozenset(words)


def load_lemmas(keyword_db: Path | None) -> dict[str, str]:
    """
    Load the inflection -> lemma lookup.

    Inflections and lemmas are both sanitized. The first row for a given
    sanitized inflection wins; inflections shorter than MIN_KEYWORD_LENGTH
    and rows whose lemma sanitizes to nothing are dropped.
    """
    lemmas: dict[str, str] = {}
    if not _store_exists(keyword_db, "Keyword database"):
        return lemmas

    with closing(_connect_read_only(keyword_db)) as conn:
        cursor = conn.execute(
            "SELECT inflection, lemma FROM lemmas "
            "WHERE inflection IS NOT NULL AND lemma IS NOT NULL ORDER BY rowid"
        )
        for row in cursor:
            inflection = sanitize_as_keyword(row["inflection"])
            if (
                not inflection.has_letter
                or len(inflection.keyword) < MIN_KEYWORD_LENGTH
                or inflection.keyword in lemmas
            ):
                continue

            lemma = sanitize_as_keyword(row["lemma"])
            if not lemma.has_letter:
                continue

            lemmas[inflection.keyword] = lemma.keyword

    return lemmas


def load_fhir_spec_content(fhir_spec_db: Path | None) -> tuple[frozenset[str], frozenset[str]]:
    """Load sanitized FHIR element paths and operation codes."""
    if not _store_exists(fhir_spec_db, "FHIR spec database"):
        return frozenset(), frozenset()

    # Paths are not filtered by FHIR version
    with closing(_connect_read_only(fhir_spec_db)) as conn:
        paths = _sanitized_values(
            conn, "SELECT DISTINCT Path FROM Elements WHERE Path IS NOT NULL"
        )
        operations = _sanitized_values(
            conn, "SELECT DISTINCT Code FROM Operations WHERE Code IS NOT NULL"
        )

    return frozenset(paths), frozenset(operations)


def load_reference_data(
    keyword_db: Path | None,
    fhir_spec_db: Path | None,
    stopword_file: Path | None = None,
) -> ReferenceData:
    """Load every reference lookup once for a run."""
    stop_words = load_stop_words(keyword_db, stopword_file)
    logger.info("Loaded %d stop words", len(stop_words))

    lemmas = load_lemmas(keyword_db)
    logger.info("Loaded %d lemmas", len(lemmas))

    element_paths, operation_names = load_fhir_spec_content(fhir_spec_db)
    logger.info("Loaded %d FHIR element paths", len(element_paths))
    logger.info("Loaded %d FHIR operation names", len(operation_names))

    return ReferenceData(
        stop_words=stop_words,
        lemmas=lemmas,
        fhir_element_paths=element_paths,
        fhir_operation_names=operation_names,
    )
