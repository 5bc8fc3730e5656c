"""Tests for ranked keyword search."""

import pytest

from jira_fhir_keywords.keywords.database import Database
from jira_fhir_keywords.keywords.models import (
    CorpusKeyword,
    Issue,
    IssueKeyword,
    KeywordType,
    ReferenceData,
    SearchResult,
)
from jira_fhir_keywords.keywords.search import (
    Bm25SearchEngine,
    compute_search_statistics,
    format_search_results,
)


@pytest.fixture
def scored_db(tmp_path):
    """A database with hand-set BM25 scores."""
    db = Database(tmp_path / "search.db")
    db.initialize()
    db.insert_issues(
        [
            Issue(id=10, key="FHIR-10", title="Ten", status="Triaged"),
            Issue(id=11, key="FHIR-11", title="Eleven", status="Triaged"),
            Issue(id=12, key="FHIR-12", title="Twelve", status="Published"),
        ]
    )
    db.insert_keyword_index(
        [
            IssueKeyword(10, "fhir", KeywordType.WORD, bm25_score=1.2),
            IssueKeyword(10, "resource", KeywordType.WORD, bm25_score=0.8),
            IssueKeyword(11, "fhir", KeywordType.WORD, bm25_score=0.5),
            IssueKeyword(12, "fhir", KeywordType.WORD, bm25_score=0.0),
            IssueKeyword(12, "obsolete", KeywordType.WORD, bm25_score=-0.3),
        ],
        [
            CorpusKeyword("fhir", KeywordType.WORD, count=3, idf=0.1),
            CorpusKeyword("resource", KeywordType.WORD, count=1, idf=0.9),
            CorpusKeyword("obsolete", KeywordType.WORD, count=1, idf=-0.3),
        ],
        [],
    )
    yield db
    db.close()


@pytest.fixture
def engine(scored_db) -> Bm25SearchEngine:
    return Bm25SearchEngine(scored_db, ReferenceData(stop_words=frozenset({"the", "and"})))


class TestParseQuery:
    def test_drops_stop_words_and_duplicates(self, engine):
        assert engine.parse_query("the Fhir and resource fhir") == ["fhir", "resource"]

    def test_uses_classifier(self, reference, scored_db):
        engine = Bm25SearchEngine(scored_db, reference)
        assert engine.parse_query("Running patients $everything Patient.name") == [
            "run",
            "patient",
            "everything",
            "patientname",
        ]


class TestSearchIssues:
    def test_scores_are_summed_over_terms(self, engine):
        results = engine.search_issues("fhir resource")

        assert [r.issue_id for r in results] == [10, 11]
        assert results[0].score == pytest.approx(2.0)
        assert results[0].matching_terms == ["fhir", "resource"]
        assert results[1].score == pytest.approx(0.5)
        assert results[1].matching_terms == ["fhir"]

    def test_repeated_term_counts_once(self, engine):
        results = engine.search_issues("fhir fhir")
        assert results[0].score == pytest.approx(1.2)

    def test_results_include_issue_details(self, engine):
        results = engine.search_issues("fhir")
        assert results[0].issue.key == "FHIR-10"
        assert results[0].issue.status == "Triaged"

    def test_top_k_bounds_results(self, engine):
        assert len(engine.search_issues("fhir", top_k=1)) == 1
        assert engine.search_issues("fhir", top_k=0) == []

    def test_non_positive_scores_never_match(self, engine):
        assert 12 not in {r.issue_id for r in engine.search_issues("fhir obsolete")}

    @pytest.mark.parametrize("query", ["", "   ", "the and", "a b", "12 34"])
    def test_queries_without_terms(self, engine, query):
        assert engine.search_issues(query) == []

    def test_unknown_term(self, engine):
        assert engine.search_issues("omega") == []

    def test_case_insensitive(self, engine):
        assert [r.issue_id for r in engine.search_issues("FHIR")] == [10, 11]


class TestSearchByKeywordType:
    def test_sums_positive_scores(self, engine):
        results = engine.search_by_keyword_type(KeywordType.WORD)

        assert [r.issue_id for r in results] == [10, 11]
        assert results[0].score == pytest.approx(2.0)
        assert results[0].issue.title == "Ten"

    def test_accepts_type_names(self, engine):
        assert len(engine.search_by_keyword_type("word", top_k=1)) == 1

    def test_invalid_type(self, engine):
        with pytest.raises(ValueError, match="Invalid keyword type"):
            engine.search_by_keyword_type("Noun")

    def test_no_keywords_of_type(self, engine):
        assert engine.search_by_keyword_type(KeywordType.FHIR_OPERATION_NAME) == []


class TestTopKeywords:
    def test_ordered_by_idf(self, engine):
        keywords = engine.get_top_keywords()
        assert [k.keyword for k in keywords] == ["resource", "fhir", "obsolete"]

    def test_filter_and_limit(self, engine):
        assert [k.keyword for k in engine.get_top_keywords("Word", top_k=1)] == ["resource"]
        assert engine.get_top_keywords(KeywordType.FHIR_ELEMENT_PATH) == []


class TestHasScores:
    def test_false_before_scoring(self, tmp_path):
        db = Database(tmp_path / "empty.db")
        db.initialize()
        assert not Bm25SearchEngine(db, ReferenceData()).has_scores()

    def test_true_with_idf_values(self, engine):
        assert engine.has_scores()


class TestOnExtractedCorpus:
    def test_element_path_query(self, extracted_indexer):
        results = extracted_indexer.search("Patient.name")
        assert [r.issue_id for r in results] == [1]
        assert results[0].matching_terms == ["patientname"]

    def test_term_matches_across_keyword_types(self, extracted_indexer):
        # "patient" is an element path in FHIR-1 and a lemma word in FHIR-2
        results = extracted_indexer.search("patient")
        assert {r.issue_id for r in results} == {1, 2}

    def test_lemma_query(self, extracted_indexer):
        assert [r.issue_id for r in extracted_indexer.search("runs running")] == [3]

    def test_operation_query(self, extracted_indexer):
        results = extracted_indexer.search_by_keyword_type("FhirOperationName")
        assert {r.issue_id for r in results} == {1, 3}

    def test_multi_term_ranking(self, extracted_indexer):
        results = extracted_indexer.search("value missing Observation")
        assert results[0].issue_id == 2
        assert results[0].matching_terms == ["value", "missing", "observation"]


class TestReporting:
    def test_statistics(self):
        results = [
            SearchResult(1, 3.0, issue=Issue(id=1, status="Triaged")),
            SearchResult(2, 1.0, issue=Issue(id=2, status="Triaged")),
            SearchResult(3, 2.0, issue=Issue(id=3)),
        ]

        stats = compute_search_statistics(results)

        assert stats.max_score == 3.0
        assert stats.min_score == 1.0
        assert stats.average_score == pytest.approx(2.0)
        assert stats.status_counts == {"Triaged": 2, "Unknown": 1}

    def test_statistics_empty(self):
        assert compute_search_statistics([]) is None

    def test_format_results(self):
        text = format_search_results(
            [SearchResult(7, 1.23456, ["fhir"], Issue(id=7, key="FHIR-7", title="T"))]
        )
        assert "01. Issue 7 (Score: 1.2346)" in text
        assert "Key: FHIR-7" in text
        assert "Matching terms: fhir" in text

    def test_format_empty(self):
        assert format_search_results([]) == "No results found."
