"""
jira-fhir-keywords - keyword relevance index for FHIR issue trackers.

Extracts keywords from issue titles, descriptions, resolutions and comments,
classifies FHIR element paths and operation names apart from ordinary words,
scores them with BM25 and serves ranked keyword search.

Stack:
- Python + FastMCP (search tools for AI agents)
- SQLite (issues and the derived keyword index)
"""

__version__ = "0.1.0"
