"""Main entry point for jira-fhir-keywords."""

import argparse
import dataclasses
import logging
import sys

from fastmcp import FastMCP

from jira_fhir_keywords.config import Config
from jira_fhir_keywords.keywords import KeywordIndexer, MissingKeywordDataError, load_bm25_config
from jira_fhir_keywords.keywords.search import compute_search_statistics, format_search_results
from jira_fhir_keywords.tools import register_tools

logger = logging.getLogger(__name__)


def create_indexer(config: Config) -> KeywordIndexer:
    """Create an initialized indexer from configuration."""
    indexer = KeywordIndexer(
        config.db_path,
        keyword_db=config.keyword_db,
        fhir_spec_db=config.fhir_spec_db,
        stopword_file=config.stopword_file,
    )
    indexer.initialize()
    return indexer


def create_server(config: Config) -> FastMCP:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.
    """
    mcp = FastMCP(
        name="jiraFhirKeywords",
        instructions=(
            "jiraFhirKeywords provides BM25 keyword search over FHIR issue-tracker "
            "tickets. FHIR element paths (Patient.name) and operations ($everything) "
            "are indexed as identifiers distinct from ordinary words."
        ),
    )

    logger.info("Initializing database at %s", config.db_path)
    indexer = create_indexer(config)

    if indexer.has_scores():
        k1, b = load_bm25_config(indexer.db)
        logger.info("Index scored with k1=%s, b=%s", k1, b)
    else:
        logger.warning(
            "BM25 data not found, run 'extract-keywords' before searching"
        )

    logger.info("Registering search tools...")
    register_tools(mcp, indexer)

    logger.info("Server configured successfully")
    return mcp


def _print_results(results) -> None:
    print(format_search_results(results))

    stats = compute_search_statistics(results)
    if stats is None:
        return

    print("\nSearch Statistics:")
    print(f"  Max Score: {stats.max_score:.4f}")
    print(f"  Min Score: {stats.min_score:.4f}")
    print(f"  Avg Score: {stats.average_score:.4f}")

    if stats.status_counts:
        print("\nStatus Distribution:")
        for status, count in stats.status_counts.items():
            print(f"  {status}: {count}")


def _require_scores(indexer: KeywordIndexer) -> bool:
    if indexer.has_scores():
        return True
    logger.error("BM25 data not found. Please run 'extract-keywords' first.")
    return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="jira-fhir-keywords - BM25 keyword index for FHIR issue trackers"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser(
        "extract-keywords",
        help="Rebuild keyword tables from all issues, then compute IDF and BM25",
    )
    fix = subparsers.add_parser(
        "fix-scores",
        help="Recompute IDF and BM25 from existing keyword tables",
    )
    for sub in (extract, fix):
        sub.add_argument("--k1", type=float, help="BM25 term frequency saturation")
        sub.add_argument("--b", type=float, help="BM25 length normalization")

    search = subparsers.add_parser("search", help="Ranked keyword search")
    search.add_argument("query", help="Free-text query")
    search.add_argument("--top-k", type=int, help="Maximum number of results")

    search_type = subparsers.add_parser(
        "search-type", help="Rank issues by one keyword type"
    )
    search_type.add_argument(
        "keyword_type", help="Word, StopWord, FhirElementPath or FhirOperationName"
    )
    search_type.add_argument("--top-k", type=int, help="Maximum number of results")

    top = subparsers.add_parser("top-keywords", help="Most distinctive keywords by IDF")
    top.add_argument("--keyword-type", help="Only keywords of this type")
    top.add_argument("--top-k", type=int, default=50, help="Maximum number of keywords")

    subparsers.add_parser("serve", help="Run the MCP server (SSE transport)")

    return parser


def run(args: argparse.Namespace, config: Config) -> int:
    """Execute a parsed command, returning the process exit code."""
    if getattr(args, "k1", None) is not None:
        config = dataclasses.replace(config, bm25_k1=args.k1)
    if getattr(args, "b", None) is not None:
        config = dataclasses.replace(config, bm25_b=args.b)
    if getattr(args, "top_k", None) is not None and args.command != "top-keywords":
        config = dataclasses.replace(config, search_top_k=args.top_k)

    if args.command == "serve":
        mcp = create_server(config)
        logger.info("Starting MCP server on port %s...", config.mcp_port)
        mcp.run(transport="sse", host="0.0.0.0", port=config.mcp_port)
        return 0

    indexer = create_indexer(config)
    try:
        if args.command == "extract-keywords":
            summary = indexer.extract_keywords(
                k1=config.bm25_k1, b=config.bm25_b, progress=logger.info
            )
            logger.info(
                "Extraction finished: %d issues processed, %d skipped, "
                "%d unique keywords, %d words",
                summary.issues_processed,
                summary.issues_failed,
                summary.unique_keywords,
                summary.total_words,
            )
            return 0

        if args.command == "fix-scores":
            try:
                indexer.fix_scores(k1=config.bm25_k1, b=config.bm25_b, progress=logger.info)
            except MissingKeywordDataError as e:
                logger.error("%s", e)
                return 1
            logger.info("Score fix process completed successfully!")
            return 0

        if not _require_scores(indexer):
            return 1

        if args.command == "search":
            results = indexer.search(args.query, top_k=config.search_top_k)
            _print_results(results)
            return 0

        if args.command == "search-type":
            try:
                results = indexer.search_by_keyword_type(
                    args.keyword_type, top_k=config.search_top_k
                )
            except ValueError as e:
                logger.error("%s", e)
                return 1
            _print_results(results)
            return 0

        if args.command == "top-keywords":
            try:
                keywords = indexer.top_keywords(args.keyword_type, top_k=args.top_k)
            except ValueError as e:
                logger.error("%s", e)
                return 1
            if not keywords:
                print("No keywords found.")
                return 0
            print(f"Top {len(keywords)} keywords:")
            print("=" * 60)
            for rank, keyword in enumerate(keywords, start=1):
                print(
                    f"{rank:02d}. {keyword.keyword:<30} "
                    f"{keyword.keyword_type.value:<18} (IDF: {keyword.idf:.6f})"
                )
            return 0
    finally:
        indexer.close()

    return 1


def main() -> None:
    """Main function - parses the command line and runs it."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = build_parser().parse_args()

    try:
        config = Config.from_env()
    except ValueError:
        logger.exception("Invalid configuration")
        sys.exit(1)

    logger.info("=" * 50)
    logger.info("jira-fhir-keywords %s", args.command)
    logger.info("  JIRA_DB:           %s", config.db_path)
    logger.info("  JIRA_KEYWORD_DB:   %s", config.keyword_db)
    logger.info("  JIRA_FHIR_SPEC_DB: %s", config.fhir_spec_db)
    logger.info("=" * 50)

    try:
        sys.exit(run(args, config))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        sys.exit(0)
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
