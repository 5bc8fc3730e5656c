"""Tests for the KeywordIndexer class."""

import logging

import pytest

from jira_fhir_keywords.keywords import KeywordIndexer, KeywordType, MissingKeywordDataError
from jira_fhir_keywords.keywords.models import ReferenceData


def _snapshot(indexer: KeywordIndexer, read_issue_keywords):
    db = indexer.db
    return (
        read_issue_keywords(db),
        db.list_corpus_keywords(),
        [db.get_total_frequency(i) for i in db.list_issue_ids()],
        db.get_total_frequency(None),
    )


class TestExtractKeywords:
    def test_summary(self, indexer: KeywordIndexer):
        summary = indexer.extract_keywords()

        assert summary.issues_processed == 4
        assert summary.issues_failed == 0
        assert summary.unique_keywords == 22
        assert summary.total_words == 32

    def test_corpus_totals_row(self, extracted_indexer: KeywordIndexer):
        totals = extracted_indexer.db.get_total_frequency(None)

        assert totals.total_words == 32
        assert totals.total_stop_words == 5
        assert totals.total_lemma_words == 3
        assert totals.total_fhir_element_paths == 5
        assert totals.total_fhir_operation_names == 2

    def test_issue_without_text_gets_a_row(self, extracted_indexer: KeywordIndexer):
        totals = extracted_indexer.db.get_total_frequency(4)
        assert totals is not None
        assert totals.total_words == 0
        assert extracted_indexer.db.count_documents() == 4

    def test_corpus_counts_match_issue_counts(
        self, extracted_indexer: KeywordIndexer, read_issue_keywords
    ):
        db = extracted_indexer.db
        per_issue: dict = {}
        for ik in read_issue_keywords(db):
            key = (ik.keyword, ik.keyword_type)
            per_issue[key] = per_issue.get(key, 0) + ik.count

        corpus = {(ck.keyword, ck.keyword_type): ck.count for ck in db.list_corpus_keywords()}
        assert corpus == per_issue

    def test_no_stop_words_indexed(self, extracted_indexer: KeywordIndexer, read_issue_keywords):
        types = {ik.keyword_type for ik in read_issue_keywords(extracted_indexer.db)}
        assert KeywordType.STOP_WORD not in types

    def test_idempotent(self, indexer: KeywordIndexer, read_issue_keywords):
        indexer.extract_keywords()
        first = _snapshot(indexer, read_issue_keywords)

        indexer.extract_keywords()

        assert _snapshot(indexer, read_issue_keywords) == first

    def test_failed_issue_is_skipped(
        self, indexer: KeywordIndexer, monkeypatch, caplog, read_issue_keywords
    ):
        original = indexer.db.list_comments

        def failing_list_comments(issue_id):
            if issue_id == 2:
                raise RuntimeError("corrupt comment")
            return original(issue_id)

        monkeypatch.setattr(indexer.db, "list_comments", failing_list_comments)

        with caplog.at_level(logging.WARNING):
            summary = indexer.extract_keywords()

        assert summary.issues_processed == 3
        assert summary.issues_failed == 1
        assert any("Skipping issue 2" in r.message for r in caplog.records)

        db = indexer.db
        assert read_issue_keywords(db, 2) == []
        assert db.get_total_frequency(2) is None
        assert ("value", KeywordType.WORD) not in {
            (ck.keyword, ck.keyword_type) for ck in db.list_corpus_keywords()
        }
        assert db.count_documents() == 3
        assert db.get_document_stats().total_document_count == 3

    def test_custom_parameters_stored(self, indexer: KeywordIndexer):
        indexer.extract_keywords(k1=1.6, b=0.5)
        config = indexer.db.get_bm25_config()
        assert (config.k1, config.b) == (1.6, 0.5)

    def test_invalid_parameters(self, indexer: KeywordIndexer):
        with pytest.raises(ValueError):
            indexer.extract_keywords(k1=-1.0)
        assert indexer.db.count_issue_keywords() == 0

    def test_progress_callback(self, indexer: KeywordIndexer):
        messages = []
        indexer.extract_keywords(progress=messages.append)
        assert "Calculating IDF values for corpus keywords..." in messages
        assert "BM25 score calculation completed." in messages


class TestFixScores:
    def test_requires_extraction(self, indexer: KeywordIndexer, caplog):
        with caplog.at_level(logging.ERROR), pytest.raises(MissingKeywordDataError):
            indexer.fix_scores()
        assert any("Score fix aborted" in r.message for r in caplog.records)

    def test_keeps_keyword_tables(self, extracted_indexer: KeywordIndexer):
        before = extracted_indexer.db.count_issue_keywords()
        extracted_indexer.fix_scores(k1=2.0, b=0.5)

        assert extracted_indexer.db.count_issue_keywords() == before
        config = extracted_indexer.db.get_bm25_config()
        assert (config.k1, config.b) == (2.0, 0.5)


class TestQueries:
    def test_has_scores(self, indexer: KeywordIndexer):
        assert not indexer.has_scores()
        indexer.extract_keywords()
        assert indexer.has_scores()

    def test_top_keywords(self, extracted_indexer: KeywordIndexer):
        keywords = extracted_indexer.top_keywords("FhirOperationName")
        assert {k.keyword for k in keywords} == {"everything", "validate"}

    def test_preloaded_reference(self, issue_db_path, read_issue_keywords):
        idx = KeywordIndexer(issue_db_path, reference=ReferenceData())
        try:
            idx.extract_keywords()
            # without reference data every keyword is a plain word
            types = {ik.keyword_type for ik in read_issue_keywords(idx.db)}
            assert types == {KeywordType.WORD}
        finally:
            idx.close()

    def test_missing_reference_stores(self, issue_db_path, tmp_path, caplog):
        idx = KeywordIndexer(
            issue_db_path,
            keyword_db=tmp_path / "nope.sqlite",
            fhir_spec_db=tmp_path / "nope2.sqlite",
        )
        try:
            with caplog.at_level(logging.WARNING):
                summary = idx.extract_keywords()
            assert summary.issues_processed == 4
            assert any("does not exist" in r.message for r in caplog.records)
        finally:
            idx.close()
