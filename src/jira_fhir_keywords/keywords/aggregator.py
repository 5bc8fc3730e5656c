"""Per-issue and corpus-wide keyword frequency aggregation."""

import logging
from dataclasses import dataclass, field

from jira_fhir_keywords.keywords.models import (
    Comment,
    CorpusKeyword,
    Issue,
    IssueKeyword,
    KeywordType,
    ReferenceData,
    TotalFrequency,
)
from jira_fhir_keywords.keywords.tokenizer import classify_word, split_words, strip_html

logger = logging.getLogger(__name__)

KeywordKey = tuple[str, KeywordType]


@dataclass
class IssueFrequencies:
    """Keyword counts and token counters for a single issue."""

    issue_id: int
    keywords: dict[KeywordKey, IssueKeyword] = field(default_factory=dict)
    totals: TotalFrequency | None = None

    def __post_init__(self) -> None:
        if self.totals is None:
            self.totals = TotalFrequency(issue_id=self.issue_id)


class FrequencyAggregator:
    """
    Accumulates keyword frequencies over an extraction run.

    Each issue is counted into its own IssueFrequencies first and merged into
    the corpus structures only once the whole issue has been processed, so an
    issue that fails half-way leaves no trace in the corpus counts.
    """

    def __init__(self, reference: ReferenceData):
        self.reference = reference
        self.issues: dict[int, IssueFrequencies] = {}
        self.corpus_keywords: dict[KeywordKey, CorpusKeyword] = {}
        self.corpus_totals = TotalFrequency(issue_id=None)

    def count_text(self, frequencies: IssueFrequencies, text: str | None) -> None:
        """Tokenize one field value and count it into an issue's frequencies."""
        stripped = strip_html(text)
        if not stripped:
            return

        totals = frequencies.totals
        for word in split_words(stripped):
            classified = classify_word(word, self.reference)
            if classified is None:
                continue

            totals.total_words += 1

            if classified.keyword_type is KeywordType.STOP_WORD:
                # stop words are counted but never indexed
                totals.total_stop_words += 1
                continue

            if classified.keyword_type is KeywordType.FHIR_ELEMENT_PATH:
                totals.total_fhir_element_paths += 1
            elif classified.keyword_type is KeywordType.FHIR_OPERATION_NAME:
                totals.total_fhir_operation_names += 1
            elif classified.from_lemma:
                totals.total_lemma_words += 1

            key = (classified.keyword, classified.keyword_type)
            entry = frequencies.keywords.get(key)
            if entry is None:
                frequencies.keywords[key] = IssueKeyword(
                    issue_id=frequencies.issue_id,
                    keyword=classified.keyword,
                    keyword_type=classified.keyword_type,
                    count=1,
                )
            else:
                entry.count += 1

    def count_issue(self, issue: Issue, comments: list[Comment]) -> IssueFrequencies:
        """Count every text field and comment of an issue, without merging.

        Fields are tokenized independently so words never fuse across field
        boundaries.
        """
        frequencies = IssueFrequencies(issue_id=issue.id)

        for text in issue.text_fields():
            self.count_text(frequencies, text)

        for comment in comments:
            self.count_text(frequencies, comment.body)

        return frequencies

    def add(self, frequencies: IssueFrequencies) -> None:
        """Merge a fully processed issue into the corpus structures."""
        self.issues[frequencies.issue_id] = frequencies
        self.corpus_totals.add(frequencies.totals)

        for key, issue_keyword in frequencies.keywords.items():
            corpus_keyword = self.corpus_keywords.get(key)
            if corpus_keyword is None:
                self.corpus_keywords[key] = CorpusKeyword(
                    keyword=issue_keyword.keyword,
                    keyword_type=issue_keyword.keyword_type,
                    count=issue_keyword.count,
                )
            else:
                corpus_keyword.count += issue_keyword.count

    def process_issue(self, issue: Issue, comments: list[Comment]) -> IssueFrequencies:
        """Count an issue and merge it into the corpus."""
        frequencies = self.count_issue(issue, comments)
        self.add(frequencies)
        return frequencies

    def issue_keyword_rows(self) -> list[IssueKeyword]:
        """All per-issue keyword rows."""
        return [
            issue_keyword
            for frequencies in self.issues.values()
            for issue_keyword in frequencies.keywords.values()
        ]

    def corpus_keyword_rows(self) -> list[CorpusKeyword]:
        """All corpus keyword rows."""
        return list(self.corpus_keywords.values())

    def total_frequency_rows(self) -> list[TotalFrequency]:
        """Per-issue counter rows followed by the corpus sentinel row."""
        rows = [frequencies.totals for frequencies in self.issues.values()]
        rows.append(self.corpus_totals)
        return rows
