"""Ranked keyword search over precomputed BM25 scores."""

import logging
from collections import Counter
from dataclasses import dataclass, field

from jira_fhir_keywords.keywords.database import Database
from jira_fhir_keywords.keywords.models import (
    CorpusKeyword,
    KeywordType,
    ReferenceData,
    SearchResult,
)
from jira_fhir_keywords.keywords.tokenizer import classify_word, split_words

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 20
DEFAULT_TOP_KEYWORDS = 50


@dataclass
class SearchStatistics:
    """Summary of a result list."""

    max_score: float
    min_score: float
    average_score: float
    status_counts: dict[str, int] = field(default_factory=dict)


class Bm25SearchEngine:
    """
    Search engine over the keyword index.

    Queries go through the same classifier as documents, so a query term is
    looked up under the keyword it would have been indexed as (lemma, element
    path, ...). Issue scores are the sum of the BM25 scores of every matched
    query term; there is no normalisation by query length.
    """

    def __init__(self, db: Database, reference: ReferenceData):
        self.db = db
        self.reference = reference

    def has_scores(self) -> bool:
        """Whether a scoring pass has produced IDF values."""
        count = self.db.count_scored_corpus_keywords()
        logger.debug("Found %d keywords with IDF values", count)
        return count > 0

    def parse_query(self, query: str) -> list[str]:
        """Turn a query into distinct index keywords, in first-seen order.

        Stop words, letterless tokens and tokens shorter than the minimum
        keyword length are dropped.
        """
        terms: list[str] = []
        for word in split_words(query):
            classified = classify_word(word, self.reference)
            if classified is None or classified.keyword_type is KeywordType.STOP_WORD:
                continue
            terms.append(classified.keyword)

        return list(dict.fromkeys(terms))

    def search_issues(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[SearchResult]:
        """
        Rank issues for a free-text query.

        Returns at most top_k results in descending score order. Empty and
        stop-word-only queries return an empty list.
        """
        if not query or query.isspace() or top_k <= 0:
            return []

        terms = self.parse_query(query)
        logger.debug("Query terms for '%s': %s", query, ", ".join(terms))

        if not terms:
            logger.info("No valid query terms found in '%s'", query)
            return []

        issue_scores: dict[int, SearchResult] = {}
        for term in terms:
            for match in self.db.find_scored_keyword_matches(term):
                result = issue_scores.get(match.issue_id)
                if result is None:
                    result = SearchResult(issue_id=match.issue_id)
                    issue_scores[match.issue_id] = result

                result.score += match.bm25_score
                if term not in result.matching_terms:
                    result.matching_terms.append(term)

        results = sorted(
            (r for r in issue_scores.values() if r.score > 0),
            key=lambda r: r.score,
            reverse=True,
        )[:top_k]

        self._load_issue_details(results)
        logger.info("Found %d matching issues for '%s'", len(results), query)
        return results

    def search_by_keyword_type(
        self, keyword_type: KeywordType | str, top_k: int = DEFAULT_TOP_K
    ) -> list[SearchResult]:
        """Rank issues by the summed scores of their keywords of one type."""
        keyword_type = KeywordType.parse(keyword_type)
        if top_k <= 0:
            return []

        results = [
            SearchResult(issue_id=issue_id, score=score)
            for issue_id, score in self.db.sum_scores_by_keyword_type(keyword_type, top_k)
        ]

        self._load_issue_details(results)
        logger.info("Found %d issues with %s keywords", len(results), keyword_type.value)
        return results

    def get_top_keywords(
        self,
        keyword_type: KeywordType | str | None = None,
        top_k: int = DEFAULT_TOP_KEYWORDS,
    ) -> list[CorpusKeyword]:
        """Most distinctive corpus keywords: highest IDF, then highest count."""
        if keyword_type is not None:
            keyword_type = KeywordType.parse(keyword_type)
        if top_k <= 0:
            return []
        return self.db.top_corpus_keywords(keyword_type, top_k)

    def _load_issue_details(self, results: list[SearchResult]) -> None:
        for result in results:
            result.issue = self.db.get_issue(result.issue_id)


def compute_search_statistics(results: list[SearchResult]) -> SearchStatistics | None:
    """Score spread and status distribution of a result list."""
    if not results:
        return None

    scores = [r.score for r in results]
    status_counts = Counter(
        (r.issue.status or "Unknown") for r in results if r.issue is not None
    )

    return SearchStatistics(
        max_score=max(scores),
        min_score=min(scores),
        average_score=sum(scores) / len(scores),
        status_counts=dict(status_counts.most_common()),
    )


def format_search_results(results: list[SearchResult]) -> str:
    """Render results as plain text for the console."""
    if not results:
        return "No results found."

    lines = [f"Top {len(results)} search results:", "=" * 80]
    for rank, result in enumerate(results, start=1):
        lines.append(f"{rank:02d}. Issue {result.issue_id} (Score: {result.score:.4f})")
        if result.issue is not None:
            lines.append(f"    Key: {result.issue.key or 'N/A'}")
            lines.append(f"    Title: {result.issue.title or 'N/A'}")
            lines.append(f"    Status: {result.issue.status or 'N/A'}")
            lines.append(f"    Priority: {result.issue.priority or 'N/A'}")
        if result.matching_terms:
            lines.append(f"    Matching terms: {', '.join(result.matching_terms)}")
        lines.append("")

    return "\n".join(lines)
