"""MCP tools for the jira-fhir-keywords server.

This module defines the tools exposed by the MCP server:
- search_issues_bm25: Ranked keyword search over precomputed BM25 scores
- search_issues_by_keyword_type: Issues ranked by one class of keywords
- list_top_keywords: Most distinctive keywords of the corpus by IDF
"""

from fastmcp import FastMCP

from jira_fhir_keywords.keywords import CorpusKeyword, KeywordIndexer, KeywordType, SearchResult

MAX_LIMIT = 1000


def _validate_limit(limit: int) -> None:
    if limit <= 0:
        raise ValueError("Limit must be greater than 0")
    if limit > MAX_LIMIT:
        raise ValueError(f"Limit cannot exceed {MAX_LIMIT}")


def _result_to_dict(result: SearchResult) -> dict:
    issue = result.issue
    return {
        "issue_id": result.issue_id,
        "key": issue.key if issue else None,
        "title": issue.title if issue else None,
        "status": issue.status if issue else None,
        "priority": issue.priority if issue else None,
        "work_group": issue.work_group if issue else None,
        "matching_terms": result.matching_terms,
        "score": round(result.score, 4),
    }


def _keyword_to_dict(keyword: CorpusKeyword) -> dict:
    return {
        "keyword": keyword.keyword,
        "keyword_type": keyword.keyword_type.value,
        "count": keyword.count,
        "idf": round(keyword.idf, 6) if keyword.idf is not None else None,
    }


def search_issues(indexer: KeywordIndexer, query: str, limit: int = 20) -> list[dict]:
    """Run a ranked keyword search and shape the results for MCP clients."""
    if not query or not query.strip():
        raise ValueError("Query parameter is required and cannot be empty")
    _validate_limit(limit)

    return [_result_to_dict(r) for r in indexer.search(query, top_k=limit)]


def search_issues_by_type(
    indexer: KeywordIndexer, keyword_type: str, limit: int = 20
) -> list[dict]:
    """Rank issues by one keyword type and shape the results for MCP clients."""
    _validate_limit(limit)
    parsed = KeywordType.parse(keyword_type)

    return [_result_to_dict(r) for r in indexer.search_by_keyword_type(parsed, top_k=limit)]


def top_keywords(
    indexer: KeywordIndexer, keyword_type: str | None = None, limit: int = 50
) -> list[dict]:
    """List the most distinctive keywords for MCP clients."""
    _validate_limit(limit)
    parsed = KeywordType.parse(keyword_type) if keyword_type else None

    return [_keyword_to_dict(k) for k in indexer.top_keywords(parsed, top_k=limit)]


def register_tools(mcp: FastMCP, indexer: KeywordIndexer) -> None:
    """Register all search tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        indexer: Keyword indexer serving the queries
    """

    @mcp.tool()
    def search_issues_bm25(query: str, limit: int = 20) -> list[dict]:
        """Search issues by keywords, ranked by BM25 relevance.

        The query is tokenized like the indexed issues: stop words are
        dropped, inflected words are reduced to their lemma, and FHIR element
        paths (e.g. "Patient.name") and operations (e.g. "$everything") are
        matched as FHIR identifiers.

        Args:
            query: Free-text query
            limit: Maximum number of results to return (1-1000, default: 20)

        Returns:
            List of issues with:
            - issue_id, key, title, status, priority, work_group
            - matching_terms: Query keywords found in the issue
            - score: Sum of the BM25 scores of the matching terms
        """
        return search_issues(indexer, query, limit)

    @mcp.tool()
    def search_issues_by_keyword_type(keyword_type: str, limit: int = 20) -> list[dict]:
        """Rank issues by the total BM25 score of one class of keywords.

        Args:
            keyword_type: Word, FhirElementPath or FhirOperationName
            limit: Maximum number of results to return (1-1000, default: 20)

        Returns:
            List of issues with their summed score for that keyword type.
        """
        return search_issues_by_type(indexer, keyword_type, limit)

    @mcp.tool()
    def list_top_keywords(keyword_type: str | None = None, limit: int = 50) -> list[dict]:
        """List the most distinctive keywords of the corpus.

        Keywords are ordered by IDF (rarest first), then by occurrence count.

        Args:
            keyword_type: Optional filter (Word, FhirElementPath, FhirOperationName)
            limit: Maximum number of keywords to return (1-1000, default: 50)

        Returns:
            List of keywords with keyword, keyword_type, count and idf.
        """
        return top_keywords(indexer, keyword_type, limit)
