"""Search service tying compilation, execution and normalization together."""

import logging
import time
from collections.abc import Iterable
from typing import Any

from .backends.base import SearchBackend
from .catalog import FieldCatalog
from .compiler import QueryCompiler
from .config import SearchSettings
from .normalizer import HitMapper, ResponseNormalizer
from .parameters import SearchParameter
from .planner import FacetPlanner
from .predicates import all_of
from .requests import CompiledQuery, FacetedSearchRequest, SearchRequest, SearchRequestBuilder
from .results import RawHit, SearchResponse

logger = logging.getLogger(__name__)


def source_mapper(hit: RawHit) -> dict[str, Any]:
    """Default hit mapper: the hit's source with its id."""
    return {"id": hit.id, **hit.source}


class SearchService:
    """Compiles requests, executes them on a backend and normalizes results.

    Compilation errors (bad filter values, unsupported shapes, oversized
    facets) are raised before the backend is called.
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        backend: SearchBackend,
        settings: SearchSettings | None = None,
    ):
        """Initialize the service.

        Args:
            catalog: Field catalog of the searched index
            backend: Backend executing compiled queries
            settings: Request limits (default: SearchSettings())
        """
        self.catalog = catalog
        self.backend = backend
        self.settings = settings or SearchSettings()
        self.compiler = QueryCompiler(catalog)
        self.planner = FacetPlanner(catalog, self.compiler, self.settings.facet_size_ceiling)
        self.builder = SearchRequestBuilder(catalog, self.settings, self.compiler, self.planner)
        self.normalizer = ResponseNormalizer(catalog)

    def compile(self, request: SearchRequest) -> CompiledQuery:
        """Compile a request without executing it."""
        return self.builder.build(request)

    def search(
        self,
        request: SearchRequest,
        hit_mapper: HitMapper = source_mapper,
        timeout: float | None = None,
    ) -> SearchResponse:
        """Execute a search and normalize its result.

        Args:
            request: Plain or faceted search request
            hit_mapper: Converts each raw hit into a result object
            timeout: Seconds the backend may take

        Returns:
            Uniform search response

        Raises:
            InvalidFilterValueError: If a filter value cannot be parsed
            UnsupportedShapeError: If a spatial filter is not supported
            FacetTooLargeError: If a facet window exceeds the ceiling
            ExecutionError: If the backend fails
        """
        compiled = self.compile(request)

        start_time = time.time()
        raw = self.backend.execute(compiled, timeout=timeout)
        logger.debug(
            "Executed search in %d ms: %d hits",
            int((time.time() - start_time) * 1000),
            raw.total,
        )

        return self.normalizer.normalize(raw, request, hit_mapper, limit=compiled.limit)

    def faceted_search(
        self,
        request: FacetedSearchRequest,
        hit_mapper: HitMapper = source_mapper,
        timeout: float | None = None,
    ) -> SearchResponse:
        """Execute a faceted search; see :meth:`search`."""
        return self.search(request, hit_mapper, timeout)

    def suggest(
        self, parameter: SearchParameter, prefix: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Complete a prefix for a parameter's field.

        Unmapped parameters have no suggestions.
        """
        field = self.catalog.field_for(parameter)
        if field is None:
            logger.debug("No suggestions for unmapped parameter %s", parameter)
            return []
        return self.backend.suggest(
            field,
            prefix,
            limit or self.settings.suggest_limit,
            self.catalog.suggest_fields_for(parameter),
        )

    def autocomplete(
        self,
        parameter: SearchParameter,
        q: str | None,
        filters: dict[SearchParameter, Iterable[str]] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Find documents whose autocomplete field matches the typed text."""
        field = self.catalog.field_for(parameter)
        if field is None:
            logger.debug("No autocomplete for unmapped parameter %s", parameter)
            return []

        filter_predicate = all_of(self.compiler.compile_filters(filters or {}))

        return self.backend.autocomplete(
            self.catalog.autocomplete_field_for(parameter),
            field,
            q,
            filter_predicate,
            offset,
            limit or self.settings.suggest_limit,
            self.catalog.suggest_fields_for(parameter),
        )
