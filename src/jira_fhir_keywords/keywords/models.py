"""Data models for the keyword index."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class KeywordType(str, Enum):
    """Classification of an extracted keyword, persisted by name."""

    WORD = "Word"
    STOP_WORD = "StopWord"
    FHIR_ELEMENT_PATH = "FhirElementPath"
    FHIR_OPERATION_NAME = "FhirOperationName"

    @classmethod
    def parse(cls, value: "str | KeywordType") -> "KeywordType":
        """Parse a keyword type from its name, case-insensitively.

        Accepts the persisted value ("FhirElementPath") as well as the
        Python member name ("FHIR_ELEMENT_PATH").

        Raises:
            ValueError: If the value does not name a keyword type.
        """
        if isinstance(value, KeywordType):
            return value

        normalized = value.strip().replace("_", "").replace("-", "").lower()
        for member in cls:
            if normalized == member.value.lower():
                return member

        valid = ", ".join(member.value for member in cls)
        raise ValueError(f"Invalid keyword type '{value}'. Valid types: {valid}")


@dataclass
class Issue:
    """An issue from the tracker export (owned by the ingestion side)."""

    id: int
    key: str = ""
    title: str | None = None
    description: str | None = None
    summary: str | None = None
    resolution_description: str | None = None
    status: str | None = None
    priority: str | None = None
    resolution: str | None = None
    work_group: str | None = None

    def text_fields(self) -> list[str | None]:
        """Free-text fields that feed keyword extraction, in processing order."""
        return [self.title, self.description, self.summary, self.resolution_description]


@dataclass
class Comment:
    """A comment on an issue."""

    id: int | None = None
    issue_id: int = 0
    body: str = ""
    author: str | None = None
    created_at: str | None = None


@dataclass
class IssueKeyword:
    """Occurrences of one keyword in one issue."""

    issue_id: int
    keyword: str
    keyword_type: KeywordType
    count: int = 1
    bm25_score: float | None = None


@dataclass
class CorpusKeyword:
    """Occurrences of one keyword across the whole corpus."""

    keyword: str
    keyword_type: KeywordType
    count: int = 1
    idf: float | None = None


@dataclass
class TotalFrequency:
    """Token counters for one issue, or for the corpus when issue_id is None."""

    issue_id: int | None = None
    total_words: int = 0
    total_stop_words: int = 0
    total_lemma_words: int = 0
    total_fhir_element_paths: int = 0
    total_fhir_operation_names: int = 0

    def add(self, other: "TotalFrequency") -> None:
        """Accumulate another row's counters into this one."""
        self.total_words += other.total_words
        self.total_stop_words += other.total_stop_words
        self.total_lemma_words += other.total_lemma_words
        self.total_fhir_element_paths += other.total_fhir_element_paths
        self.total_fhir_operation_names += other.total_fhir_operation_names


@dataclass
class Bm25Config:
    """BM25 parameters that produced the persisted scores."""

    k1: float = 1.2
    b: float = 0.75
    last_updated: datetime | None = None
    id: int | None = None


@dataclass
class DocumentStats:
    """Cached corpus statistics used for length normalisation."""

    average_document_length: float = 0.0
    total_document_count: int = 0
    last_calculated: datetime | None = None
    id: int | None = None


@dataclass
class SearchResult:
    """An issue matched by a keyword search, with its aggregate score."""

    issue_id: int
    score: float = 0.0
    matching_terms: list[str] = field(default_factory=list)
    issue: Issue | None = None


@dataclass(frozen=True)
class ReferenceData:
    """Immutable lookups used to classify keywords.

    All keys are already sanitized (lower-case letters and digits only).
    """

    stop_words: frozenset[str] = frozenset()
    lemmas: dict[str, str] = field(default_factory=dict)
    fhir_element_paths: frozenset[str] = frozenset()
    fhir_operation_names: frozenset[str] = frozenset()
