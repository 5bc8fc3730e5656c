"""
IDF and BM25 scoring over the persisted keyword frequencies.

Formulas:
    idf(N, n) = ln((N - n + 0.5) / (n + 0.5))

    bm25(tf, dl) = idf × tf × (k1 + 1) / (tf + k1 × (1 - b + b × dl/avgdl))

Where:
    N = number of issues with a frequency row
    n = number of issues containing the keyword (same keyword type)
    tf = occurrences of the keyword in the issue
    dl = total qualifying words in the issue
    avgdl = average dl over the corpus

Two modes share these formulas:
- compute_all_scores: full recompute right after extraction; drops and
  recreates the config and stats tables.
- recalculate_all_scores: incremental "fix scores" pass over existing
  frequency tables, batched and transaction-bounded, for new k1/b values.
"""

import logging
import math
from collections.abc import Callable

from jira_fhir_keywords.keywords.database import Database, ScoreKey

logger = logging.getLogger(__name__)

DEFAULT_K1 = 1.2
DEFAULT_B = 0.75

# Corpus keywords per IDF batch (one transaction each)
IDF_BATCH_SIZE = 5000

# Buffered BM25 updates per bulk CASE statement
BM25_FLUSH_SIZE = 500

PROGRESS_INTERVAL = 100

ProgressCallback = Callable[[str], None]


class MissingKeywordDataError(RuntimeError):
    """Scoring was requested before keyword extraction populated the tables."""


def _report(progress: ProgressCallback | None, message: str) -> None:
    if progress is not None:
        progress(message)


class Bm25Calculator:
    """Computes and persists IDF values and BM25 scores."""

    def __init__(self, db: Database, k1: float = DEFAULT_K1, b: float = DEFAULT_B):
        """
        Args:
            db: Database holding the keyword tables
            k1: Term frequency saturation. Must be >= 0.
            b: Length normalization, within [0, 1].
        """
        if k1 < 0:
            raise ValueError(f"k1 must be >= 0, got {k1}")
        if not 0 <= b <= 1:
            raise ValueError(f"b must be between 0 and 1, got {b}")

        self.db = db
        self.k1 = k1
        self.b = b

    # Formulas

    def calculate_idf(self, total_documents: int, documents_containing_term: int) -> float:
        """Inverse document frequency; 0.0 for empty corpora or unseen terms."""
        if documents_containing_term <= 0 or total_documents <= 0:
            return 0.0

        return math.log(
            (total_documents - documents_containing_term + 0.5)
            / (documents_containing_term + 0.5)
        )

    def calculate_bm25_score(
        self,
        term_frequency: float,
        idf: float,
        document_length: int,
        average_document_length: float,
    ) -> float:
        """BM25 score of one term in one document; 0.0 for tf <= 0 or avgdl <= 0."""
        if term_frequency <= 0 or average_document_length <= 0:
            return 0.0

        normalized_tf = (term_frequency * (self.k1 + 1)) / (
            term_frequency
            + self.k1
            * (1 - self.b + self.b * document_length / average_document_length)
        )
        return idf * normalized_tf

    def calculate_average_document_length(self) -> float:
        """Mean total words over per-issue frequency rows; 0.0 when empty."""
        document_count = self.db.count_documents()
        if document_count == 0:
            return 0.0
        return self.db.sum_document_lengths() / document_count

    # Full recompute

    def calculate_corpus_idf(self, progress: ProgressCallback | None = None) -> None:
        """Compute IDF for every corpus keyword and persist them together."""
        total_documents = self.db.count_documents()
        _report(progress, f"Total documents: {total_documents}")

        if total_documents <= 0:
            logger.warning("No documents found, cannot calculate IDF values")
            return

        corpus_keywords = self.db.list_corpus_keywords()
        _report(progress, f"Calculating IDF for {len(corpus_keywords)} corpus keywords...")

        for processed, keyword in enumerate(corpus_keywords, start=1):
            containing = self.db.count_documents_with_keyword(
                keyword.keyword, keyword.keyword_type
            )
            keyword.idf = self.calculate_idf(total_documents, containing)

            if processed % 1000 == 0:
                _report(progress, f"  Processed {processed}/{len(corpus_keywords)} keywords...")

        self.db.update_corpus_idf(corpus_keywords)
        _report(progress, "IDF calculation completed.")

    def calculate_document_bm25_scores(self, progress: ProgressCallback | None = None) -> None:
        """Compute BM25 for every issue keyword using the current IDF values.

        Keywords whose corpus IDF is missing get a score of 0.0.
        """
        average_length = self.calculate_average_document_length()
        _report(progress, f"Average document length: {average_length:.2f}")

        if average_length <= 0:
            logger.warning("Average document length is 0, cannot calculate BM25 scores")
            return

        issue_ids = self.db.list_issue_ids()
        _report(progress, f"Processing BM25 scores for {len(issue_ids)} issues...")

        for processed, issue_id in enumerate(issue_ids, start=1):
            if processed % PROGRESS_INTERVAL == 0:
                _report(progress, f"  Processing issue {processed}/{len(issue_ids)}...")

            issue_stats = self.db.get_total_frequency(issue_id)
            if issue_stats is None:
                logger.warning("No frequency stats found for issue %d", issue_id)
                continue

            scored = []
            for issue_keyword, idf in self.db.list_issue_keywords_with_idf(issue_id):
                if idf is None:
                    issue_keyword.bm25_score = 0.0
                else:
                    issue_keyword.bm25_score = self.calculate_bm25_score(
                        issue_keyword.count,
                        idf,
                        issue_stats.total_words,
                        average_length,
                    )
                scored.append(issue_keyword)

            self.db.update_issue_keyword_scores(scored)

        _report(progress, "BM25 score calculation completed.")

    def store_document_stats(self) -> None:
        """Persist the current average document length and document count."""
        average_length = self.calculate_average_document_length()
        total_documents = self.db.count_documents()
        self.db.save_document_stats(average_length, total_documents)
        logger.info(
            "Stored document stats: %d documents, avg length: %.2f",
            total_documents,
            average_length,
        )

    def compute_all_scores(self, progress: ProgressCallback | None = None) -> None:
        """Full IDF and BM25 recompute following an extraction run."""
        _report(progress, "Calculating IDF values for corpus keywords...")
        self.calculate_corpus_idf(progress)

        _report(progress, "Calculating BM25 scores for all issue keywords...")
        self.calculate_document_bm25_scores(progress)

        self.db.reset_score_tables()
        self.store_document_stats()
        self.db.save_bm25_config(self.k1, self.b)
        logger.info("Stored BM25 config: k1=%s, b=%s", self.k1, self.b)

    # Incremental update

    def _require_keyword_data(self) -> None:
        if self.db.count_corpus_keywords() == 0:
            raise MissingKeywordDataError(
                "Corpus keywords table is empty. "
                "Run extract-keywords first to populate frequency data."
            )
        if self.db.count_issue_keywords() == 0:
            raise MissingKeywordDataError(
                "Issue keywords table is empty. "
                "Run extract-keywords first to populate frequency data."
            )

    def update_corpus_idf(self, progress: ProgressCallback | None = None) -> None:
        """Recompute IDF values in batches without dropping tables."""
        _report(progress, "Starting IDF update for corpus keywords...")

        if self.db.count_corpus_keywords() == 0:
            raise MissingKeywordDataError("No corpus keywords found. Cannot update IDF values.")

        total_documents = self.db.count_documents()
        _report(progress, f"Total documents: {total_documents}")
        if total_documents <= 0:
            raise MissingKeywordDataError("No documents found. Cannot calculate IDF values.")

        keyword_count = self.db.count_corpus_keywords()
        _report(progress, f"Updating IDF for {keyword_count} corpus keywords...")

        processed = 0
        for offset in range(0, keyword_count, IDF_BATCH_SIZE):
            batch = self.db.list_corpus_keywords(limit=IDF_BATCH_SIZE, offset=offset)

            for keyword in batch:
                containing = self.db.count_documents_with_keyword(
                    keyword.keyword, keyword.keyword_type
                )
                keyword.idf = self.calculate_idf(total_documents, containing)
                processed += 1

            self.db.update_corpus_idf(batch)
            _report(
                progress,
                f"Processed {processed}/{keyword_count} keywords "
                f"({processed / keyword_count * 100:.1f}%)",
            )

        _report(progress, "IDF update completed successfully.")

    def update_issue_bm25_scores(self, progress: ProgressCallback | None = None) -> None:
        """Recompute BM25 scores, flushing buffered updates as bulk statements.

        Keywords whose corpus IDF is missing keep their current score.
        """
        _report(progress, "Starting BM25 score update for issue keywords...")

        if self.db.count_issue_keywords() == 0:
            raise MissingKeywordDataError("No issue keywords found. Cannot update BM25 scores.")
        if self.db.count_corpus_keywords() == 0:
            raise MissingKeywordDataError(
                "No corpus keywords found. Cannot calculate BM25 scores without IDF values."
            )

        average_length = self.calculate_average_document_length()
        _report(progress, f"Average document length: {average_length:.2f}")
        if average_length <= 0:
            raise MissingKeywordDataError(
                "Average document length is 0. Cannot calculate BM25 scores."
            )

        issue_ids = self.db.list_issue_ids()
        _report(progress, f"Processing BM25 scores for {len(issue_ids)} issues...")

        pending: dict[ScoreKey, float] = {}
        for processed, issue_id in enumerate(issue_ids, start=1):
            self._collect_issue_updates(issue_id, average_length, pending)

            if processed % PROGRESS_INTERVAL == 0:
                _report(
                    progress,
                    f"Processing issue {processed}/{len(issue_ids)} "
                    f"({processed / len(issue_ids) * 100:.1f}%)",
                )

        if pending:
            self.db.bulk_update_bm25_scores(pending)

        _report(progress, "BM25 score update completed successfully.")

    def _collect_issue_updates(
        self,
        issue_id: int,
        average_length: float,
        pending: dict[ScoreKey, float],
    ) -> None:
        """Buffer an issue's scores, flushing whenever BM25_FLUSH_SIZE is reached."""
        issue_stats = self.db.get_total_frequency(issue_id)
        if issue_stats is None:
            return

        for issue_keyword, idf in self.db.list_issue_keywords_with_idf(issue_id):
            if idf is None:
                continue
            pending[(issue_id, issue_keyword.keyword, issue_keyword.keyword_type)] = (
                self.calculate_bm25_score(
                    issue_keyword.count,
                    idf,
                    issue_stats.total_words,
                    average_length,
                )
            )

            if len(pending) >= BM25_FLUSH_SIZE:
                self.db.bulk_update_bm25_scores(pending)
                pending.clear()

    def recalculate_all_scores(self, progress: ProgressCallback | None = None) -> None:
        """Incremental IDF and BM25 recompute from existing frequency tables.

        Raises:
            MissingKeywordDataError: If extraction has not been run.
        """
        _report(progress, "Starting complete score recalculation...")
        _report(progress, "Validating required data exists...")
        self._require_keyword_data()

        _report(progress, "Phase 1/3: Updating IDF values...")
        self.update_corpus_idf(progress)

        _report(progress, "Phase 2/3: Updating BM25 scores...")
        self.update_issue_bm25_scores(progress)

        _report(progress, "Phase 3/3: Updating statistics and configuration...")
        self.db.save_document_stats(
            self.calculate_average_document_length(), self.db.count_documents()
        )
        self.db.save_bm25_config(self.k1, self.b)

        _report(progress, "Score recalculation completed successfully!")


def load_bm25_config(db: Database) -> tuple[float, float]:
    """(k1, b) of the most recent scoring run, or the defaults."""
    config = db.get_bm25_config()
    if config is None:
        return DEFAULT_K1, DEFAULT_B
    return config.k1, config.b
