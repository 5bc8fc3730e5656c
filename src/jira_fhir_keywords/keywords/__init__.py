"""
Keyword index for jira-fhir-keywords.

This module extracts classified keywords from issue text, scores them with
BM25 and serves ranked keyword search from the precomputed scores.
"""

from jira_fhir_keywords.keywords.aggregator import FrequencyAggregator, IssueFrequencies
from jira_fhir_keywords.keywords.database import Database
from jira_fhir_keywords.keywords.indexer import ExtractionSummary, KeywordIndexer
from jira_fhir_keywords.keywords.models import (
    Bm25Config,
    Comment,
    CorpusKeyword,
    DocumentStats,
    Issue,
    IssueKeyword,
    KeywordType,
    ReferenceData,
    SearchResult,
    TotalFrequency,
)
from jira_fhir_keywords.keywords.reference import load_reference_data
from jira_fhir_keywords.keywords.scorer import (
    Bm25Calculator,
    MissingKeywordDataError,
    load_bm25_config,
)
from jira_fhir_keywords.keywords.search import Bm25SearchEngine
from jira_fhir_keywords.keywords.tokenizer import classify_word, sanitize_as_keyword

__all__ = [
    "Bm25Calculator",
    "Bm25Config",
    "Bm25SearchEngine",
    "Comment",
    "CorpusKeyword",
    "Database",
    "DocumentStats",
    "ExtractionSummary",
    "FrequencyAggregator",
    "Issue",
    "IssueFrequencies",
    "IssueKeyword",
    "KeywordIndexer",
    "KeywordType",
    "MissingKeywordDataError",
    "ReferenceData",
    "SearchResult",
    "TotalFrequency",
    "classify_word",
    "load_bm25_config",
    "load_reference_data",
    "sanitize_as_keyword",
]
