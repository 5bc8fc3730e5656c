"""Main indexer that coordinates keyword extraction, scoring and search."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from jira_fhir_keywords.keywords.aggregator import FrequencyAggregator
from jira_fhir_keywords.keywords.database import Database
from jira_fhir_keywords.keywords.models import (
    CorpusKeyword,
    KeywordType,
    ReferenceData,
    SearchResult,
)
from jira_fhir_keywords.keywords.reference import load_reference_data
from jira_fhir_keywords.keywords.scorer import (
    DEFAULT_B,
    DEFAULT_K1,
    Bm25Calculator,
    MissingKeywordDataError,
    ProgressCallback,
)
from jira_fhir_keywords.keywords.search import (
    DEFAULT_TOP_K,
    DEFAULT_TOP_KEYWORDS,
    Bm25SearchEngine,
)

logger = logging.getLogger(__name__)


@dataclass
class ExtractionSummary:
    """Outcome of a full keyword extraction run."""

    issues_processed: int = 0
    issues_failed: int = 0
    unique_keywords: int = 0
    total_words: int = 0


class KeywordIndexer:
    """
    Builds and queries the keyword index of an issue database.

    The issue and comment tables are the source of truth. The keyword,
    frequency and score tables are derived and can be rebuilt at any time.

    Thread Safety:
        extract_keywords and fix_scores are serialised by a lock: a full
        extraction truncates the tables an incremental pass relies on, so the
        two must never overlap. Read operations can run from any thread as the
        Database uses thread-local connections.
    """

    def __init__(
        self,
        db_path: Path,
        keyword_db: Path | None = None,
        fhir_spec_db: Path | None = None,
        stopword_file: Path | None = None,
        reference: ReferenceData | None = None,
    ):
        """
        Initialize the indexer.

        Args:
            db_path: Path to the SQLite database with issues and the index
            keyword_db: Auxiliary database with stop words and lemmas
            fhir_spec_db: FHIR specification database with element paths
                and operation codes
            stopword_file: Optional flat file of extra stop words
            reference: Preloaded reference data; skips loading from the stores
        """
        self.db = Database(db_path)
        self.keyword_db = keyword_db
        self.fhir_spec_db = fhir_spec_db
        self.stopword_file = stopword_file
        self._reference = reference
        self._initialized = False
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        """Initialize the database schema."""
        self.db.initialize()
        self._initialized = True

    def close(self) -> None:
        """Close database connections."""
        self.db.close()

    def _ensure_initialized(self) -> None:
        """Ensure the database is initialized."""
        if not self._initialized:
            self.initialize()

    @property
    def reference(self) -> ReferenceData:
        """Reference lookups, loaded on first use."""
        if self._reference is None:
            self._reference = load_reference_data(
                self.keyword_db, self.fhir_spec_db, self.stopword_file
            )
        return self._reference

    def extract_keywords(
        self,
        k1: float = DEFAULT_K1,
        b: float = DEFAULT_B,
        progress: ProgressCallback | None = None,
    ) -> ExtractionSummary:
        """
        Full rebuild: tokenize every issue, reload the keyword tables, then
        compute IDF and BM25 once.

        An issue that fails to process is logged and skipped.
        """
        self._ensure_initialized()
        calculator = Bm25Calculator(self.db, k1=k1, b=b)
        reference = self.reference

        with self._write_lock:
            logger.info("Starting keyword extraction from %s", self.db.db_path)

            self.db.reset_keyword_tables()

            aggregator = FrequencyAggregator(reference)
            summary = ExtractionSummary()

            issues = self.db.list_issues()
            logger.info("Found %d issues", len(issues))

            for index, issue in enumerate(issues, start=1):
                if index % 100 == 0:
                    logger.info(
                        "Processing issue %d of %d, total unique keywords: %d",
                        index,
                        len(issues),
                        len(aggregator.corpus_keywords),
                    )

                try:
                    comments = self.db.list_comments(issue.id)
                    aggregator.process_issue(issue, comments)
                    summary.issues_processed += 1
                except Exception as e:
                    logger.warning("Skipping issue %s (%s): %s", issue.id, issue.key, e)
                    summary.issues_failed += 1

            self.db.insert_keyword_index(
                aggregator.issue_keyword_rows(),
                aggregator.corpus_keyword_rows(),
                aggregator.total_frequency_rows(),
            )

            summary.unique_keywords = len(aggregator.corpus_keywords)
            summary.total_words = aggregator.corpus_totals.total_words

            calculator.compute_all_scores(progress)

            logger.info(
                "Keyword extraction complete: %d issues, %d failed, %d unique keywords",
                summary.issues_processed,
                summary.issues_failed,
                summary.unique_keywords,
            )
            return summary

    def fix_scores(
        self,
        k1: float = DEFAULT_K1,
        b: float = DEFAULT_B,
        progress: ProgressCallback | None = None,
    ) -> None:
        """
        Recompute IDF and BM25 from the existing frequency tables.

        Raises:
            MissingKeywordDataError: If extract_keywords has not been run.
        """
        self._ensure_initialized()
        calculator = Bm25Calculator(self.db, k1=k1, b=b)

        with self._write_lock:
            logger.info("Starting score fix with k1=%s, b=%s", k1, b)
            try:
                calculator.recalculate_all_scores(progress)
            except MissingKeywordDataError as e:
                logger.error("Score fix aborted: %s", e)
                raise
            logger.info("Score fix completed")

    # Query methods

    def _search_engine(self) -> Bm25SearchEngine:
        self._ensure_initialized()
        return Bm25SearchEngine(self.db, self.reference)

    def has_scores(self) -> bool:
        """Whether the index has been scored and can serve searches."""
        return self._search_engine().has_scores()

    def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[SearchResult]:
        """Ranked search for a free-text query."""
        return self._search_engine().search_issues(query, top_k=top_k)

    def search_by_keyword_type(
        self, keyword_type: KeywordType | str, top_k: int = DEFAULT_TOP_K
    ) -> list[SearchResult]:
        """Rank issues by keywords of a single type."""
        return self._search_engine().search_by_keyword_type(keyword_type, top_k=top_k)

    def top_keywords(
        self,
        keyword_type: KeywordType | str | None = None,
        top_k: int = DEFAULT_TOP_KEYWORDS,
    ) -> list[CorpusKeyword]:
        """Most distinctive keywords by IDF."""
        return self._search_engine().get_top_keywords(keyword_type, top_k=top_k)
