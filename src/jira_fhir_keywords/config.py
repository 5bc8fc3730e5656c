"""Configuration module for jira-fhir-keywords.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path


def _optional_path(name: str) -> Path | None:
    value = os.getenv(name)
    if not value:
        return None
    return Path(value).expanduser()


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{raw}': {e}") from e


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{raw}': {e}") from e


@dataclass
class Config:
    """Application configuration."""

    db_path: Path
    keyword_db: Path | None
    fhir_spec_db: Path | None
    stopword_file: Path | None
    bm25_k1: float
    bm25_b: float
    search_top_k: int
    mcp_port: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path = Path(os.getenv("JIRA_DB", "jira_issues.sqlite")).expanduser()

        bm25_k1 = _float_env("JIRA_BM25_K1", "1.2")
        if bm25_k1 < 0:
            raise ValueError(f"Invalid JIRA_BM25_K1 value '{bm25_k1}': k1 must be >= 0")

        bm25_b = _float_env("JIRA_BM25_B", "0.75")
        if not 0 <= bm25_b <= 1:
            raise ValueError(
                f"Invalid JIRA_BM25_B value '{bm25_b}': b must be between 0 and 1"
            )

        search_top_k = _int_env("JIRA_SEARCH_TOP_K", "20")
        if search_top_k < 1:
            raise ValueError(
                f"Invalid JIRA_SEARCH_TOP_K value '{search_top_k}': must be >= 1"
            )

        mcp_port = _int_env("JIRA_MCP_PORT", "8080")
        if not 1 <= mcp_port <= 65535:
            raise ValueError(
                f"Invalid JIRA_MCP_PORT value '{mcp_port}': "
                "port must be between 1 and 65535"
            )

        return cls(
            db_path=db_path,
            keyword_db=_optional_path("JIRA_KEYWORD_DB"),
            fhir_spec_db=_optional_path("JIRA_FHIR_SPEC_DB"),
            stopword_file=_optional_path("JIRA_STOPWORD_FILE"),
            bm25_k1=bm25_k1,
            bm25_b=bm25_b,
            search_top_k=search_top_k,
            mcp_port=mcp_port,
        )
