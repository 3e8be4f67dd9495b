"""Facet aggregation planning.

Facets are computed either as plain terms aggregations over the main query
(:class:`SimplePlan`) or, for multi-select facets, as terms aggregations
nested in a filter that applies every other selected facet value
(:class:`MultiSelectPlan`). The filters of facets that are also selected
move out of the main query into a post-filter, so hits still honour the
whole selection while each facet keeps counting its own unselected values.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .catalog import FieldCatalog
from .compiler import Filters, QueryCompiler
from .exceptions import FacetTooLargeError
from .parameters import SearchParameter
from .predicates import Predicate, all_of

logger = logging.getLogger(__name__)

DEFAULT_FACET_SIZE_CEILING = 1_200_000
DEFAULT_FACET_LIMIT = 10
FILTERED_PREFIX = "filtered_"


@dataclass(frozen=True)
class TermsAggregation:
    """Terms aggregation counting the values of one facet field."""

    parameter: SearchParameter
    field: str
    size: int
    min_count: int | None = None

    @property
    def name(self) -> str:
        return self.field


@dataclass(frozen=True)
class FilteredTermsAggregation(TermsAggregation):
    """Terms aggregation nested in a filter excluding the facet's own selection.

    ``exclusion_filter`` is the AND of the post-filter predicates of every
    other facet; None when no other facet is selected.
    """

    exclusion_filter: Predicate | None = None

    @property
    def filtered_name(self) -> str:
        return FILTERED_PREFIX + self.field


@dataclass(frozen=True)
class SimplePlan:
    aggregations: tuple[TermsAggregation, ...]


@dataclass(frozen=True)
class MultiSelectPlan:
    aggregations: tuple[FilteredTermsAggregation, ...]


AggregationPlan = SimplePlan | MultiSelectPlan


@dataclass(frozen=True)
class GroupedFilters:
    """Filters split between the main query and the hit post-filter."""

    query_params: dict[SearchParameter, list[str]] = field(default_factory=dict)
    post_filter_params: dict[SearchParameter, list[str]] = field(default_factory=dict)


def group_filters(
    filters: Filters | None,
    facets: Iterable[SearchParameter],
    multi_select: bool,
) -> GroupedFilters:
    """Split filters into query and post-filter parameters.

    Only multi-select requests with facets post-filter anything: the
    parameters that are also requested facets. Everything else stays in the
    main query.
    """
    facets = set(facets)
    query_params: dict[SearchParameter, list[str]] = {}
    post_filter_params: dict[SearchParameter, list[str]] = {}

    for parameter, values in (filters or {}).items():
        if multi_select and parameter in facets:
            post_filter_params[parameter] = list(values)
        else:
            query_params[parameter] = list(values)

    return GroupedFilters(query_params, post_filter_params)


class FacetPlanner:
    """Builds aggregation plans and bounds facet sizes."""

    def __init__(
        self,
        catalog: FieldCatalog,
        compiler: QueryCompiler | None = None,
        size_ceiling: int = DEFAULT_FACET_SIZE_CEILING,
    ):
        self.catalog = catalog
        self.compiler = compiler or QueryCompiler(catalog)
        self.size_ceiling = size_ceiling

    def plan(
        self,
        facets: Iterable[SearchParameter],
        filters: Filters | None = None,
        multi_select: bool = False,
        min_count: int | None = None,
        facet_offset: int = 0,
        facet_limit: int = DEFAULT_FACET_LIMIT,
        facet_pages: Mapping[SearchParameter, tuple[int, int]] | None = None,
    ) -> AggregationPlan | None:
        """Plan the aggregations of a faceted request.

        Args:
            facets: Requested facet parameters
            filters: Active filters of the request
            multi_select: Whether multi-select facet semantics apply
            min_count: Minimum bucket count of every facet
            facet_offset: Default number of buckets to skip per facet
            facet_limit: Default number of buckets to return per facet
            facet_pages: Per-facet (offset, limit) overrides

        Returns:
            None without facets, otherwise a SimplePlan or MultiSelectPlan

        Raises:
            FacetTooLargeError: If a facet window exceeds the size ceiling
        """
        facets = list(dict.fromkeys(facets))
        if not facets:
            return None

        facet_pages = facet_pages or {}
        post_filter_params = group_filters(filters, facets, multi_select).post_filter_params

        mapped = []
        for parameter in facets:
            field_name = self.catalog.field_for(parameter)
            if field_name is None:
                logger.debug("Skipping facet on unmapped parameter %s", parameter)
                continue
            offset, limit = facet_pages.get(parameter, (facet_offset, facet_limit))
            mapped.append((parameter, field_name, self.facet_size(field_name, offset, limit)))

        if not mapped:
            return None

        if not multi_select or len(facets) == 1 or not post_filter_params:
            return SimplePlan(
                tuple(
                    TermsAggregation(parameter, field_name, size, min_count)
                    for parameter, field_name, size in mapped
                )
            )

        compiled = {
            parameter: self.compiler.compile_parameter(parameter, values)
            for parameter, values in post_filter_params.items()
        }

        aggregations = []
        for parameter, field_name, size in mapped:
            exclusion = all_of(
                [
                    predicate
                    for other, predicate in compiled.items()
                    if other != parameter and predicate is not None
                ]
            )
            aggregations.append(
                FilteredTermsAggregation(parameter, field_name, size, min_count, exclusion)
            )
        return MultiSelectPlan(tuple(aggregations))

    def facet_size(self, field_name: str, offset: int, limit: int) -> int:
        """Number of buckets to request for a facet window.

        Raises:
            FacetTooLargeError: If the bounded window exceeds the ceiling
        """
        size = max(0, offset) + max(0, limit)
        cardinality = self.catalog.cardinality_of(field_name)
        if cardinality is not None:
            size = min(size, cardinality)
        if size > self.size_ceiling:
            raise FacetTooLargeError(self.size_ceiling)
        return size
