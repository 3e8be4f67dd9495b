"""Tests for the in-memory backend."""

import pytest

from conftest import DENMARK_WKT
from conftest import OccurrenceParameter as P
from facetsearch.backends.memory import MemoryBackend
from facetsearch.catalog import SortDirection
from facetsearch.compiler import QueryCompiler
from facetsearch.exceptions import QueryError
from facetsearch.planner import (
    FilteredTermsAggregation,
    MultiSelectPlan,
    SimplePlan,
    TermsAggregation,
)
from facetsearch.predicates import (
    AnyOf,
    Bool,
    Equality,
    MatchAll,
    MultiEquality,
    Not,
    Predicate,
    Range,
    Spatial,
)
from facetsearch.requests import CompiledQuery


class Unknown(Predicate, frozen=True, tag="unknown"):
    pass


def ids(raw):
    return [hit.id for hit in raw.hits]


class TestIndexing:
    """Test document storage."""

    def test_index_batch_uses_id_field(self, memory_backend):
        assert sorted(memory_backend.documents) == ["1", "2", "3", "4", "5", "6"]

    def test_documents_without_id_are_skipped(self):
        backend = MemoryBackend()
        backend.index_batch([{"title": "no id"}, {"key": 7, "title": "x"}], id_field="key")
        assert list(backend.documents) == ["7"]

    def test_delete_and_clear(self, memory_backend):
        assert memory_backend.delete("1")
        assert not memory_backend.delete("1")

        memory_backend.clear()
        assert memory_backend.documents == {}


class TestMatches:
    """Test evaluation of predicates against documents."""

    @pytest.fixture
    def document(self, occurrences):
        return occurrences[0]

    def test_equality_coerces_stored_values(self, memory_backend, document):
        assert memory_backend.matches(Equality("year", 2010), document)
        assert memory_backend.matches(Equality("year", 2010.0), document)
        assert memory_backend.matches(Equality("hasCoordinate", True), document)
        assert not memory_backend.matches(Equality("hasCoordinate", False), document)

    def test_multi_valued_fields(self, memory_backend, document):
        assert memory_backend.matches(Equality("recordedBy", "Bo"), document)
        assert memory_backend.matches(MultiEquality("recordedBy", ("Zed", "Ana")), document)

    def test_ranges(self, memory_backend, document):
        assert memory_backend.matches(Range("elevation", lte=100.0), document)
        assert not memory_backend.matches(Range("elevation", gte=100.0), document)
        assert memory_backend.matches(Range("elevation"), document)
        assert not memory_backend.matches(Range("missing", gte=1), document)

    def test_spatial(self, memory_backend, document, occurrences):
        assert memory_backend.matches(Spatial("coordinates", DENMARK_WKT), document)
        assert not memory_backend.matches(Spatial("coordinates", DENMARK_WKT), occurrences[2])

    def test_point_pairs_and_lat_lon(self, memory_backend):
        shape = Spatial("location", DENMARK_WKT)
        assert memory_backend.matches(shape, {"location": [10, 56]})
        assert memory_backend.matches(shape, {"location": {"lat": 56, "lon": 10}})
        assert not memory_backend.matches(shape, {"location": "not a shape"})

    def test_composition(self, memory_backend, document):
        assert memory_backend.matches(MatchAll(), document)
        assert memory_backend.matches(Not(Equality("country", "SPAIN")), document)
        assert memory_backend.matches(
            AnyOf((Equality("year", 1999), Equality("year", 2010))), document
        )
        assert not memory_backend.matches(
            Bool(filter=(Equality("year", 2010), Equality("country", "SPAIN"))), document
        )

    def test_unknown_predicate(self, memory_backend, document):
        with pytest.raises(QueryError):
            memory_backend.matches(Unknown(), document)


class TestExecute:
    """Test execution of compiled queries."""

    def test_match_everything(self, memory_backend):
        raw = memory_backend.execute(CompiledQuery(limit=10))

        assert raw.total == 6
        assert len(raw.hits) == 6

    def test_paging(self, memory_backend):
        raw = memory_backend.execute(CompiledQuery(offset=4, limit=10))

        assert raw.total == 6
        assert ids(raw) == ["5", "6"]

    def test_zero_limit(self, memory_backend):
        raw = memory_backend.execute(CompiledQuery(limit=0))
        assert raw.total == 6
        assert raw.hits == ()

    def test_sort_with_missing_values_last(self, memory_backend):
        memory_backend.index("7", {"title": "Undated"})

        raw = memory_backend.execute(
            CompiledQuery(limit=10, sort=(("year", SortDirection.DESC),))
        )

        assert ids(raw) == ["6", "4", "2", "1", "3", "5", "7"]

    def test_source_filtering(self, memory_backend):
        raw = memory_backend.execute(
            CompiledQuery(limit=1, includes=("title", "internal"), excludes=("internal",))
        )
        assert raw.hits[0].source == {"title": "Red fox sighting"}

    def test_simple_aggregations(self, memory_backend):
        plan = SimplePlan((TermsAggregation(P.RECORDED_BY, "recordedBy", 3),))

        raw = memory_backend.execute(CompiledQuery(aggregations=plan))

        assert [(b.key, b.doc_count) for b in raw.aggregations["recordedBy"].buckets] == [
            ("Bo", 2),
            ("Carmen", 2),
            ("Didier", 2),
        ]

    def test_min_count(self, memory_backend):
        plan = SimplePlan((TermsAggregation(P.YEAR, "year", 10, min_count=2),))

        raw = memory_backend.execute(CompiledQuery(aggregations=plan))

        assert [(b.key, b.doc_count) for b in raw.aggregations["year"].buckets] == [
            ("2010", 3)
        ]

    def test_boolean_bucket_keys(self, memory_backend):
        plan = SimplePlan((TermsAggregation(P.HAS_COORDINATE, "hasCoordinate", 2),))

        raw = memory_backend.execute(CompiledQuery(aggregations=plan))

        assert [(b.key, b.doc_count) for b in raw.aggregations["hasCoordinate"].buckets] == [
            ("true", 5),
            ("false", 1),
        ]

    def test_aggregations_ignore_post_filter(self, memory_backend):
        plan = MultiSelectPlan(
            (
                FilteredTermsAggregation(
                    P.COUNTRY, "country", 10, exclusion_filter=Equality("year", 2010)
                ),
            )
        )

        raw = memory_backend.execute(
            CompiledQuery(
                aggregations=plan,
                post_filter=Equality("country", "SPAIN"),
                limit=10,
            )
        )

        assert raw.total == 2
        assert [(b.key, b.doc_count) for b in raw.aggregations["filtered_country"].buckets] == [
            ("DENMARK", 1),
            ("FRANCE", 1),
            ("SPAIN", 1),
        ]

    def test_highlights(self, memory_backend, catalog):
        query = QueryCompiler(catalog).compile({}, "fox")
        raw = memory_backend.execute(
            CompiledQuery(
                query=query,
                limit=10,
                highlight=True,
                highlight_fields=("title", "description"),
            )
        )

        highlights = {hit.id: hit.highlight for hit in raw.hits}
        assert highlights["1"] == {"title": ['Red <em class="gbifHl">fox</em> sighting']}
        assert highlights["3"] == {
            "description": ['Seen near a <em class="gbifHl">fox</em> den']
        }
        assert highlights["5"] == {"title": ['<em class="gbifHl">Fox</em> fossil']}
