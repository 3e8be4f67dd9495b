"""Normalization of raw backend results into uniform responses."""

import logging
from collections.abc import Callable, Iterable

from msgspec import structs

from .catalog import FieldCatalog
from .hits import highlighted_source
from .planner import DEFAULT_FACET_LIMIT, FILTERED_PREFIX
from .requests import FacetedSearchRequest, SearchRequest
from .results import (
    Facet,
    FacetCount,
    RawAggregation,
    RawHit,
    RawSearchResult,
    RawSpellSuggestion,
    SearchResponse,
    SpellCheckResponse,
    Suggestion,
)

logger = logging.getLogger(__name__)

HitMapper = Callable[[RawHit], object]


def aggregation_field(name: str) -> str:
    """Field name of an aggregation, without the multi-select wrapper prefix."""
    if name.startswith(FILTERED_PREFIX):
        return name[len(FILTERED_PREFIX) :]
    return name


def merge_spelling(suggestions: Iterable[RawSpellSuggestion]) -> SpellCheckResponse:
    """Merge spelling suggestions by the token sequence they correct.

    Collated suggestions replace per-term ones whenever any are present.
    Entries for the same text accumulate their distinct alternatives and
    keep the highest hit count.
    """
    suggestions = list(suggestions)
    collated = [s for s in suggestions if s.collated]
    if collated:
        suggestions = collated

    merged: dict[str, Suggestion] = {}
    for suggestion in suggestions:
        if not suggestion.alternatives:
            continue
        existing = merged.get(suggestion.text)
        if existing is None:
            merged[suggestion.text] = Suggestion(
                suggestion.text,
                tuple(dict.fromkeys(suggestion.alternatives)),
                suggestion.num_found,
            )
        else:
            merged[suggestion.text] = Suggestion(
                suggestion.text,
                tuple(dict.fromkeys(existing.alternatives + suggestion.alternatives)),
                max(existing.num_found, suggestion.num_found),
            )
    return SpellCheckResponse(merged)


class ResponseNormalizer:
    """Builds SearchResponse objects from raw results."""

    def __init__(self, catalog: FieldCatalog):
        self.catalog = catalog

    def normalize(
        self,
        raw: RawSearchResult,
        request: SearchRequest,
        hit_mapper: HitMapper,
        limit: int | None = None,
    ) -> SearchResponse:
        """Convert a raw result into the uniform response.

        Args:
            raw: Result returned by the backend
            request: The request that produced the result
            hit_mapper: Converts one raw hit into a caller-side result
            limit: Effective limit used for the query, when it differs from
                the request's

        Returns:
            The uniform response; hits keep the backend's order
        """
        hits = raw.hits
        if request.highlight:
            hits = tuple(
                structs.replace(hit, source=highlighted_source(hit))
                if hit.highlight
                else hit
                for hit in hits
            )

        spell_check = None
        if request.spellcheck:
            spell_check = merge_spelling(raw.spelling)

        facets: tuple[Facet, ...] = ()
        if isinstance(request, FacetedSearchRequest):
            facets = self.normalize_facets(raw.aggregations, request)

        return SearchResponse(
            offset=request.offset,
            limit=request.limit if limit is None else limit,
            total=max(0, raw.total),
            results=tuple(hit_mapper(hit) for hit in hits),
            facets=facets,
            spell_check=spell_check,
        )

    def normalize_facets(
        self,
        aggregations: dict[str, RawAggregation],
        request: FacetedSearchRequest | None = None,
    ) -> tuple[Facet, ...]:
        """Convert aggregations into facets, honouring each facet's window."""
        facets = []
        for name, aggregation in aggregations.items():
            parameter = self.catalog.parameter_for(aggregation_field(name))
            if parameter is None:
                logger.warning("Skipping aggregation %s with no mapped parameter", name)
                continue

            if request is not None:
                offset, limit = request.facet_page(parameter)
            else:
                offset, limit = 0, DEFAULT_FACET_LIMIT

            counts = tuple(
                FacetCount(
                    self.catalog.parse_indexed_value(bucket.key, parameter),
                    bucket.doc_count,
                )
                for bucket in aggregation.buckets[offset : offset + limit]
            )
            facets.append(Facet(parameter, counts))
        return tuple(facets)
