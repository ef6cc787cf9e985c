import logging
import sqlite3
from typing import Iterable, Optional

from ..database.manager import DatabaseManager
from ..errors import InvalidInputError
from ..models.document import SearchFacets, SearchPage
from .query import translate_query

logger = logging.getLogger(__name__)

# sqlite3.OperationalError messages that come from a malformed MATCH expression
_FTS_SYNTAX_MARKERS = ("fts5", "syntax error", "no such column", "unterminated string")


def _is_query_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _FTS_SYNTAX_MARKERS)


def _normalize_values(values: Optional[Iterable[str]], lower: bool = False) -> list:
    result = []
    for value in values or ():
        value = value.strip()
        if lower:
            value = value.lstrip("#").lower()
        if value and value not in result:
            result.append(value)
    return result


class SearchService:
    """Faceted BM25 search over the documents_fts table."""

    def __init__(self, db: DatabaseManager, snippet_tokens: int = 30, default_limit: int = 20):
        self.db = db
        self.snippet_tokens = snippet_tokens
        self.default_limit = default_limit

    def search(
        self,
        query: str,
        tags: Optional[Iterable[str]] = None,
        topics: Optional[Iterable[str]] = None,
        content_type: Optional[str] = None,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> SearchPage:
        """
        Perform full-text search with structural filters.

        Ranking uses weighted bm25 (title 10, content 1, tags 5, topics 2).
        Lower score is more relevant; ties go to the most recently modified
        document, then to path order.

        Args:
            query: user search string, translated with translate_query
            tags: every tag must be present on the document (exact match)
            topics: every topic must be present on the document (exact match)
            content_type: exact content type
            date_from: inclusive lower bound on modified_at (millis)
            date_to: inclusive upper bound on modified_at (millis)
            limit: page size, defaults to the configured default_limit
            offset: number of ranked results to skip

        Returns:
            SearchPage whose total counts every match, independent of paging
        """
        if query is None or not query.strip():
            raise InvalidInputError("Search query is required")
        limit = self.default_limit if limit is None else limit
        if limit < 1:
            raise InvalidInputError("limit must be at least 1")
        if offset < 0:
            raise InvalidInputError("offset must not be negative")
        if date_from is not None and date_to is not None and date_from > date_to:
            raise InvalidInputError("dateFrom must not be later than dateTo")

        facets = SearchFacets(
            tags=_normalize_values(tags, lower=True),
            topics=_normalize_values(topics, lower=True),
            content_type=content_type.strip() if content_type and content_type.strip() else None,
            date_from=date_from,
            date_to=date_to,
        )
        fts_query = translate_query(query)
        logger.debug(f"FTS query: {fts_query!r} facets={facets}")

        try:
            hits, total = self.db.search(
                fts_query,
                facets,
                limit=limit,
                offset=offset,
                snippet_tokens=self.snippet_tokens,
            )
        except sqlite3.OperationalError as e:
            if _is_query_error(e):
                raise InvalidInputError(f"Invalid search query: {query!r} ({e})")
            raise

        return SearchPage(query=query, total=total, results=hits)
