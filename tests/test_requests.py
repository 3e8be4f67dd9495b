"""Tests for search requests and their compilation."""

import pytest

from conftest import OccurrenceParameter as P
from facetsearch.catalog import FieldCatalog
from facetsearch.config import SearchSettings
from facetsearch.exceptions import FacetTooLargeError, InvalidFilterValueError
from facetsearch.fulltext import FullTextField
from facetsearch.planner import MultiSelectPlan, SimplePlan
from facetsearch.predicates import Bool, Equality, MatchAll
from facetsearch.requests import (
    FacetedSearchRequest,
    SearchRequest,
    SearchRequestBuilder,
    SortDirection,
)


@pytest.fixture
def builder(catalog):
    return SearchRequestBuilder(catalog, SearchSettings(max_limit=100))


class TestSearchRequest:
    """Test request construction."""

    def test_negative_paging_is_clamped(self):
        request = SearchRequest(offset=-5, limit=-1)
        assert request.offset == 0
        assert request.limit == 0

    def test_add_filter_accumulates(self):
        request = SearchRequest().add_filter(P.COUNTRY, "DK").add_filter(P.COUNTRY, "ES")
        assert request.filters == {P.COUNTRY: {"DK", "ES"}}

    def test_facet_pages(self):
        request = FacetedSearchRequest(facet_offset=5, facet_limit=15)
        request.add_facet(P.COUNTRY, P.YEAR, P.COUNTRY)
        request.set_facet_page(P.YEAR, -1, 3)

        assert request.facets == [P.COUNTRY, P.YEAR]
        assert request.facet_page(P.COUNTRY) == (5, 15)
        assert request.facet_page(P.YEAR) == (0, 3)

    def test_constructor_facet_pages_are_clamped(self):
        request = FacetedSearchRequest(facet_pages={P.YEAR: (-2, -1), P.COUNTRY: (1, 3)})

        assert request.facet_page(P.YEAR) == (0, 0)
        assert request.facet_page(P.COUNTRY) == (1, 3)


class TestBuild:
    """Test compilation of plain requests."""

    def test_limit_is_capped(self, builder):
        assert builder.build(SearchRequest(limit=5000)).limit == 100
        assert builder.build(SearchRequest(limit=50)).limit == 50

    def test_empty_request(self, builder):
        compiled = builder.build(SearchRequest())

        assert compiled.query is None
        assert compiled.post_filter is None
        assert compiled.aggregations is None

    def test_default_sort_without_text(self, builder):
        compiled = builder.build(SearchRequest())
        assert compiled.sort == (("year", SortDirection.DESC),)

    def test_relevance_sort_with_text(self, builder):
        compiled = builder.build(SearchRequest(q="fox"))
        assert compiled.sort_by_relevance

    def test_explicit_sort_wins(self, builder):
        compiled = builder.build(SearchRequest(q="fox", sort=[("title", SortDirection.ASC)]))
        assert compiled.sort == (("title", SortDirection.ASC),)

    def test_highlight_needs_text(self, builder):
        assert not builder.build(SearchRequest(highlight=True)).highlight
        assert not builder.build(SearchRequest(q="*", highlight=True)).highlight

        compiled = builder.build(SearchRequest(q="fox", highlight=True))
        assert compiled.highlight
        assert compiled.highlight_fields == ("title", "description")

    def test_full_text_highlight_fields_are_added(self):
        catalog = (
            FieldCatalog.builder()
            .highlight("title")
            .full_text(
                FullTextField("title", highlight_field="title_hl"),
                FullTextField("notes"),
            )
            .build()
        )
        builder = SearchRequestBuilder(catalog)

        compiled = builder.build(SearchRequest(q="fox", highlight=True))

        assert compiled.highlight_fields == ("title", "title_hl", "notes")

    def test_result_fields(self, builder):
        assert builder.build(SearchRequest()).excludes == ("internal",)

    def test_invalid_filter_fails(self, builder):
        with pytest.raises(InvalidFilterValueError):
            builder.build(SearchRequest(filters={P.YEAR: {"soon"}}))


class TestBuildFaceted:
    """Test compilation of faceted requests."""

    def test_simple_facets_keep_filters_in_query(self, builder):
        compiled = builder.build(
            FacetedSearchRequest(filters={P.COUNTRY: {"DK"}}, facets=[P.COUNTRY])
        )

        assert compiled.query == Bool(filter=(Equality("country", "DENMARK"),))
        assert compiled.post_filter is None
        assert isinstance(compiled.aggregations, SimplePlan)

    def test_multi_select_moves_faceted_filters_to_post_filter(self, builder):
        compiled = builder.build(
            FacetedSearchRequest(
                filters={
                    P.COUNTRY: {"DK"},
                    P.BASIS_OF_RECORD: {"PRESERVED_SPECIMEN"},
                    P.YEAR: {"2011"},
                },
                facets=[P.COUNTRY, P.BASIS_OF_RECORD],
                multi_select=True,
            )
        )

        assert compiled.query == Bool(filter=(Equality("year", 2011),))
        assert compiled.post_filter == Bool(
            filter=(
                Equality("country", "DENMARK"),
                Equality("basisOfRecord", "PRESERVED_SPECIMEN"),
            )
        )
        assert isinstance(compiled.aggregations, MultiSelectPlan)

    def test_match_all_sentinel_drops_post_filter(self, builder):
        compiled = builder.build(
            FacetedSearchRequest(
                q="*",
                filters={P.COUNTRY: {"DK"}, P.BASIS_OF_RECORD: {"FOSSIL_SPECIMEN"}},
                facets=[P.COUNTRY, P.BASIS_OF_RECORD],
                multi_select=True,
            )
        )

        assert compiled.query == MatchAll()
        assert compiled.post_filter is None
        assert isinstance(compiled.aggregations, SimplePlan)

    def test_facets_only(self, builder):
        compiled = builder.build(
            FacetedSearchRequest(facets=[P.COUNTRY], facets_only=True, limit=20)
        )
        assert compiled.limit == 0

    def test_facet_paging(self, builder):
        request = FacetedSearchRequest(facets=[P.COUNTRY, P.YEAR], facet_limit=5)
        request.set_facet_page(P.YEAR, 10, 10)

        compiled = builder.build(request)

        assert [a.size for a in compiled.aggregations.aggregations] == [5, 20]

    def test_facet_ceiling_from_settings(self, catalog):
        builder = SearchRequestBuilder(catalog, SearchSettings(facet_size_ceiling=50))

        with pytest.raises(FacetTooLargeError):
            builder.build(FacetedSearchRequest(facets=[P.RECORDED_BY], facet_limit=51))
