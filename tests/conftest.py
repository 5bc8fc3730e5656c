"""Shared fixtures: a small FHIR issue corpus and its reference stores."""

import sqlite3
from contextlib import closing
from pathlib import Path

import pytest

from jira_fhir_keywords.keywords import (
    Comment,
    Database,
    Issue,
    IssueKeyword,
    KeywordIndexer,
    ReferenceData,
)

STOP_WORDS = ["the", "and", "for", "with", "has"]

LEMMAS = [
    ("patients", "patient"),
    ("running", "run"),
    ("searches", "search"),
    ("conditions", "condition"),
    ("condition", "condition"),
    ("has", "have"),
]

ELEMENT_PATHS = ["Patient", "Patient.name", "Observation", "Condition"]
OPERATIONS = ["everything", "validate"]

ISSUES = [
    Issue(
        id=1,
        key="FHIR-1",
        title="Patient search fails",
        description="The <b>search</b> for Patient.name returns nothing",
        status="Triaged",
        priority="Medium",
        work_group="FHIR-I",
    ),
    Issue(
        id=2,
        key="FHIR-2",
        title="Observation value missing",
        description="Observation value is empty for the patients",
        status="Resolved - change required",
        priority="High",
        work_group="OO",
    ),
    Issue(
        id=3,
        key="FHIR-3",
        title="Running $validate on Condition",
        description="condition resources fail validation",
        status="Triaged",
        priority="Low",
        work_group="PC",
    ),
    Issue(id=4, key="FHIR-4", status="Submitted"),
]

COMMENTS = [
    Comment(issue_id=1, body="Use $everything instead", author="alice"),
    Comment(issue_id=2, body="Confirmed the value is missing", author="bob"),
]


def create_keyword_db(path: Path, stop_words=STOP_WORDS, lemmas=LEMMAS) -> Path:
    """Write an auxiliary keyword database with stop words and lemmas."""
    with closing(sqlite3.connect(path)) as conn, conn:
        conn.execute("CREATE TABLE stop_words (word TEXT)")
        conn.execute("CREATE TABLE lemmas (inflection TEXT, category TEXT, lemma TEXT)")
        conn.executemany("INSERT INTO stop_words (word) VALUES (?)", [(w,) for w in stop_words])
        conn.executemany(
            "INSERT INTO lemmas (inflection, category, lemma) VALUES (?, 'x', ?)", lemmas
        )
    return path


def create_fhir_spec_db(path: Path, paths=ELEMENT_PATHS, operations=OPERATIONS) -> Path:
    """Write a FHIR specification database with element paths and operations."""
    with closing(sqlite3.connect(path)) as conn, conn:
        conn.execute("CREATE TABLE Elements (Id INTEGER PRIMARY KEY, Path TEXT)")
        conn.execute("CREATE TABLE Operations (Id INTEGER PRIMARY KEY, Code TEXT)")
        conn.executemany("INSERT INTO Elements (Path) VALUES (?)", [(p,) for p in paths])
        conn.executemany("INSERT INTO Operations (Code) VALUES (?)", [(o,) for o in operations])
    return path


@pytest.fixture
def reference() -> ReferenceData:
    """Reference lookups matching the fixture stores, already sanitized."""
    return ReferenceData(
        stop_words=frozenset(STOP_WORDS),
        lemmas=dict(LEMMAS),
        fhir_element_paths=frozenset({"patient", "patientname", "observation", "condition"}),
        fhir_operation_names=frozenset(OPERATIONS),
    )


@pytest.fixture
def keyword_db(tmp_path) -> Path:
    return create_keyword_db(tmp_path / "keywords.sqlite")


@pytest.fixture
def fhir_spec_db(tmp_path) -> Path:
    return create_fhir_spec_db(tmp_path / "fhir_spec.sqlite")


@pytest.fixture
def issue_db_path(tmp_path) -> Path:
    """An issue database holding the fixture corpus."""
    db_path = tmp_path / "issues.sqlite"
    db = Database(db_path)
    db.initialize()
    db.insert_issues(ISSUES)
    db.insert_comments(COMMENTS)
    db.close()
    return db_path


@pytest.fixture
def indexer(issue_db_path, keyword_db, fhir_spec_db):
    """An initialized indexer over the fixture corpus, not yet extracted."""
    idx = KeywordIndexer(issue_db_path, keyword_db=keyword_db, fhir_spec_db=fhir_spec_db)
    idx.initialize()
    yield idx
    idx.close()


@pytest.fixture
def extracted_indexer(indexer):
    """The fixture indexer after a full extraction with default parameters."""
    indexer.extract_keywords()
    return indexer


@pytest.fixture
def make_keyword_db(tmp_path):
    """Factory for keyword databases with custom stop words or lemmas."""

    def make(stop_words=STOP_WORDS, lemmas=LEMMAS) -> Path:
        return create_keyword_db(tmp_path / "custom_keywords.sqlite", stop_words, lemmas)

    return make


@pytest.fixture
def read_issue_keywords():
    """Reader for issue keyword rows, optionally for one issue, in identity order."""

    def read(db: Database, issue_id: int | None = None) -> list[IssueKeyword]:
        query = "SELECT * FROM issue_keywords"
        params: list = []
        if issue_id is not None:
            query += " WHERE issue_id = ?"
            params.append(issue_id)
        query += " ORDER BY issue_id, keyword, keyword_type"

        with db._read_cursor() as cursor:
            cursor.execute(query, params)
            return [db._row_to_issue_keyword(row) for row in cursor.fetchall()]

    return read
