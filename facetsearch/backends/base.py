"""Base search backend interface."""

from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import ExecutionError, QueryError
from ..predicates import Predicate
from ..requests import CompiledQuery
from ..results import RawSearchResult

__all__ = ["ExecutionError", "QueryError", "SearchBackend"]


class SearchBackend(ABC):
    """Abstract interface for search backends."""

    @abstractmethod
    def execute(
        self, compiled: CompiledQuery, timeout: float | None = None
    ) -> RawSearchResult:
        """Execute a compiled query.

        Args:
            compiled: Backend-independent compiled query
            timeout: Seconds to wait for the backend; None for its default

        Returns:
            Raw hits, aggregations and spelling suggestions

        Raises:
            QueryError: If the backend cannot express the query
            ExecutionError: If the backend fails or times out
        """
        pass

    def suggest(
        self, field: str, prefix: str, limit: int, source_fields: list[str] | None = None
    ) -> list[dict[str, Any]]:
        """Complete a prefix against a completion field (optional feature).

        Raises:
            NotImplementedError: If backend doesn't support this feature
        """
        raise NotImplementedError("Backend doesn't support suggestions")

    def autocomplete(
        self,
        field: str,
        prefix_field: str,
        q: str | None,
        filter: Predicate | None = None,
        offset: int = 0,
        limit: int = 5,
        source_fields: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Match documents against an autocomplete field (optional feature).

        Args:
            field: Autocomplete (edge n-gram) field to match
            prefix_field: Plain field boosted when it starts with the term
            q: Term typed so far; empty matches everything
            filter: Compiled filters the matches must satisfy
            offset: Number of matches to skip
            limit: Maximum number of matches
            source_fields: Fields to return per match

        Raises:
            NotImplementedError: If backend doesn't support this feature
        """
        raise NotImplementedError("Backend doesn't support autocomplete")
