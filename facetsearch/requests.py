"""Search requests and their compiled, backend-ready form."""

import logging
from dataclasses import dataclass, field

from .catalog import FieldCatalog, SortDirection
from .compiler import QueryCompiler
from .config import SearchSettings
from .fulltext import MATCH_ALL_QUERY
from .parameters import SearchParameter
from .planner import DEFAULT_FACET_LIMIT, AggregationPlan, FacetPlanner, group_filters
from .predicates import MatchAll, Predicate, all_of

logger = logging.getLogger(__name__)

__all__ = [
    "CompiledQuery",
    "FacetedSearchRequest",
    "SearchRequest",
    "SearchRequestBuilder",
    "SortDirection",
]


@dataclass
class SearchRequest:
    """Free-text search with filters, paging, sorting and highlighting."""

    q: str | None = None
    filters: dict[SearchParameter, set[str]] = field(default_factory=dict)
    offset: int = 0
    limit: int = 20
    highlight: bool = False
    sort: list[tuple[str, SortDirection]] = field(default_factory=list)
    spellcheck: bool = False
    spellcheck_count: int = 4

    def __post_init__(self):
        """Clamp paging to non-negative values."""
        self.offset = max(0, self.offset)
        self.limit = max(0, self.limit)

    def add_filter(self, parameter: SearchParameter, *values: str) -> "SearchRequest":
        """Add filter values for a parameter."""
        self.filters.setdefault(parameter, set()).update(values)
        return self


@dataclass
class FacetedSearchRequest(SearchRequest):
    """Search request that also asks for facet counts."""

    facets: list[SearchParameter] = field(default_factory=list)
    multi_select: bool = False
    facet_min_count: int | None = None
    facets_only: bool = False
    facet_offset: int = 0
    facet_limit: int = DEFAULT_FACET_LIMIT
    facet_pages: dict[SearchParameter, tuple[int, int]] = field(default_factory=dict)

    def __post_init__(self):
        super().__post_init__()
        self.facet_offset = max(0, self.facet_offset)
        self.facet_limit = max(0, self.facet_limit)
        self.facet_pages = {
            parameter: (max(0, offset), max(0, limit))
            for parameter, (offset, limit) in self.facet_pages.items()
        }

    def add_facet(self, *parameters: SearchParameter) -> "FacetedSearchRequest":
        for parameter in parameters:
            if parameter not in self.facets:
                self.facets.append(parameter)
        return self

    def set_facet_page(
        self, parameter: SearchParameter, offset: int, limit: int
    ) -> "FacetedSearchRequest":
        """Override the bucket window of one facet."""
        self.facet_pages[parameter] = (max(0, offset), max(0, limit))
        return self

    def facet_page(self, parameter: SearchParameter) -> tuple[int, int]:
        """Bucket window (offset, limit) requested for a facet."""
        return self.facet_pages.get(parameter, (self.facet_offset, self.facet_limit))


@dataclass(frozen=True)
class CompiledQuery:
    """Backend-independent query ready for execution.

    ``query`` is None when the request has no constraints at all; backends
    then match every document.
    """

    query: Predicate | None = None
    post_filter: Predicate | None = None
    aggregations: AggregationPlan | None = None
    offset: int = 0
    limit: int = 20
    sort: tuple[tuple[str, SortDirection], ...] = ()
    highlight: bool = False
    highlight_fields: tuple[str, ...] = ()
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    q: str | None = None
    spellcheck: bool = False
    spellcheck_count: int = 4

    @property
    def sort_by_relevance(self) -> bool:
        return not self.sort


class SearchRequestBuilder:
    """Compiles search requests into CompiledQuery objects."""

    def __init__(
        self,
        catalog: FieldCatalog,
        settings: SearchSettings | None = None,
        compiler: QueryCompiler | None = None,
        planner: FacetPlanner | None = None,
    ):
        self.catalog = catalog
        self.settings = settings or SearchSettings()
        self.compiler = compiler or QueryCompiler(catalog)
        self.planner = planner or FacetPlanner(
            catalog, self.compiler, self.settings.facet_size_ceiling
        )

    def build(self, request: SearchRequest) -> CompiledQuery:
        """Compile a plain or faceted search request.

        Raises:
            InvalidFilterValueError: If a filter value cannot be parsed
            UnsupportedShapeError: If a spatial filter is not supported
            FacetTooLargeError: If a facet window exceeds the ceiling
        """
        if isinstance(request, FacetedSearchRequest):
            return self._build_faceted(request)
        return self._compiled(
            request,
            query=self.compiler.compile(request.filters, request.q),
            limit=self._limit(request.limit),
        )

    def _build_faceted(self, request: FacetedSearchRequest) -> CompiledQuery:
        grouped = group_filters(request.filters, request.facets, request.multi_select)
        query = self.compiler.compile(grouped.query_params, request.q)

        # the match-all sentinel drops every filter, post-filters included
        filters = {} if isinstance(query, MatchAll) else request.filters
        post_filter = None
        if filters and grouped.post_filter_params:
            post_filter = all_of(self.compiler.compile_filters(grouped.post_filter_params))

        aggregations = self.planner.plan(
            request.facets,
            filters,
            multi_select=request.multi_select,
            min_count=request.facet_min_count,
            facet_offset=request.facet_offset,
            facet_limit=request.facet_limit,
            facet_pages=request.facet_pages,
        )

        limit = 0 if request.facets_only else self._limit(request.limit)
        return self._compiled(
            request,
            query=query,
            post_filter=post_filter,
            aggregations=aggregations,
            limit=limit,
        )

    def _compiled(self, request: SearchRequest, **kwargs) -> CompiledQuery:
        has_text = bool((request.q or "").strip())
        if request.sort:
            sort = tuple(request.sort)
        elif has_text:
            sort = ()
        else:
            sort = tuple(self.catalog.default_sort_order())

        highlight = request.highlight and has_text and (request.q or "").strip() != MATCH_ALL_QUERY

        return CompiledQuery(
            offset=request.offset,
            sort=sort,
            highlight=highlight,
            highlight_fields=self._highlight_fields() if highlight else (),
            includes=tuple(self.catalog.included_result_fields()),
            excludes=tuple(self.catalog.excluded_result_fields()),
            q=request.q,
            spellcheck=request.spellcheck,
            spellcheck_count=request.spellcheck_count,
            **kwargs,
        )

    def _highlight_fields(self) -> tuple[str, ...]:
        """Catalog highlight fields followed by those of the full-text table."""
        fields = self.catalog.highlight_fields()
        fields += self.compiler.full_text.highlighted_fields
        return tuple(dict.fromkeys(fields))

    def _limit(self, limit: int) -> int:
        if limit > self.settings.max_limit:
            logger.debug("Capping limit %d to %d", limit, self.settings.max_limit)
            return self.settings.max_limit
        return limit
