"""OpenSearch backend.

:class:`QuerySerializer` renders compiled queries as OpenSearch query DSL
(which Elasticsearch also understands), :func:`parse_response` reads search
responses back into :class:`~facetsearch.results.RawSearchResult`, and
:class:`OpenSearchBackend` sends the requests through an
``opensearchpy.OpenSearch`` client.
"""

import logging
from datetime import date
from enum import Enum
from typing import Any

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from ..catalog import FieldCatalog, SortDirection
from ..config import DEFAULT_HIGHLIGHT_POST_TAG, DEFAULT_HIGHLIGHT_PRE_TAG
from ..exceptions import ExecutionError, QueryError
from ..fulltext import DEFAULT_FULL_TEXT_FIELD, MATCH_ALL_QUERY, FullTextQueryBuilder
from ..planner import AggregationPlan, MultiSelectPlan, TermsAggregation
from ..predicates import (
    AnyOf,
    Bool,
    Equality,
    FieldMatch,
    FullText,
    MatchAll,
    MultiEquality,
    Not,
    Predicate,
    Range,
    Spatial,
    WildcardPadding,
)
from ..requests import CompiledQuery
from ..results import (
    RawAggregation,
    RawBucket,
    RawHit,
    RawSearchResult,
    RawSpellSuggestion,
)
from .base import SearchBackend

logger = logging.getLogger(__name__)

SPELLCHECK_TERM = "spellcheck_term"
SPELLCHECK_PHRASE = "spellcheck_phrase"
PREFIX_BOOST = 100
PREFIX_END = 3


class FullTextMode(Enum):
    """How free text is rendered in the query DSL."""

    MATCH = "match"  # boosted match / wildcard clauses
    QUERY_STRING = "query_string"  # legacy boosted query expression


def _value(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


class QuerySerializer:
    """Renders compiled queries as OpenSearch request bodies."""

    def __init__(
        self,
        catalog: FieldCatalog,
        mode: FullTextMode = FullTextMode.MATCH,
        pre_tag: str = DEFAULT_HIGHLIGHT_PRE_TAG,
        post_tag: str = DEFAULT_HIGHLIGHT_POST_TAG,
        full_text: FullTextQueryBuilder | None = None,
    ):
        self.catalog = catalog
        self.mode = mode
        self.pre_tag = pre_tag
        self.post_tag = post_tag
        self.full_text = full_text or FullTextQueryBuilder(catalog.full_text_fields())

    def request_body(self, compiled: CompiledQuery) -> dict[str, Any]:
        """Build the search request body of a compiled query."""
        body: dict[str, Any] = {
            "from": compiled.offset,
            "size": compiled.limit,
            "track_total_hits": True,
            "query": self.predicate(compiled.query or MatchAll()),
            "sort": self.sort(compiled.sort),
        }

        source = self.source(compiled.includes, compiled.excludes)
        if source:
            body["_source"] = source
        if compiled.post_filter is not None:
            body["post_filter"] = self.predicate(compiled.post_filter)
        if compiled.aggregations is not None:
            body["aggs"] = self.aggregations(compiled.aggregations)
        if compiled.highlight:
            body["highlight"] = self.highlight(compiled.highlight_fields)

        text = (compiled.q or "").strip()
        if (
            self.mode == FullTextMode.QUERY_STRING
            and compiled.spellcheck
            and text
            and text != MATCH_ALL_QUERY
        ):
            body["suggest"] = self.spelling(text, compiled.spellcheck_count)

        return body

    def predicate(self, predicate: Predicate) -> dict[str, Any]:
        """Render one predicate tree as a query clause.

        Raises:
            QueryError: If the predicate variant is unknown
        """
        if isinstance(predicate, MatchAll):
            return {"match_all": {}}
        if isinstance(predicate, Equality):
            return {"term": {predicate.field: _value(predicate.value)}}
        if isinstance(predicate, MultiEquality):
            return {"terms": {predicate.field: [_value(v) for v in predicate.values]}}
        if isinstance(predicate, Range):
            bounds = {}
            if predicate.gte is not None:
                bounds["gte"] = _value(predicate.gte)
            if predicate.lte is not None:
                bounds["lte"] = _value(predicate.lte)
            return {"range": {predicate.field: bounds}}
        if isinstance(predicate, Spatial):
            return {
                "geo_shape": {
                    predicate.field: {"shape": predicate.shape, "relation": "within"}
                }
            }
        if isinstance(predicate, FullText):
            return self._full_text(predicate)
        if isinstance(predicate, Not):
            return {"bool": {"must_not": [self.predicate(predicate.clause)]}}
        if isinstance(predicate, AnyOf):
            return {
                "bool": {
                    "should": [self.predicate(c) for c in predicate.clauses],
                    "minimum_should_match": 1,
                }
            }
        if isinstance(predicate, Bool):
            bool_query: dict[str, Any] = {}
            if predicate.must:
                bool_query["must"] = [self.predicate(c) for c in predicate.must]
            if predicate.filter:
                bool_query["filter"] = [self.predicate(c) for c in predicate.filter]
            return {"bool": bool_query}
        raise QueryError(f"Unsupported predicate: {type(predicate).__name__}")

    def _full_text(self, predicate: FullText) -> dict[str, Any]:
        if self.mode == FullTextMode.QUERY_STRING:
            query_string: dict[str, Any] = {
                "query": self.full_text.query_string(predicate.text)
            }
            if not self.full_text.fields:
                query_string["default_field"] = DEFAULT_FULL_TEXT_FIELD
            return {"query_string": query_string}

        phrase = " " in predicate.text
        clauses = [self._field_match(c, predicate.text, phrase) for c in predicate.clauses]
        if len(clauses) == 1:
            return clauses[0]
        return {"bool": {"should": clauses, "minimum_should_match": 1}}

    @staticmethod
    def _field_match(clause: FieldMatch, text: str, phrase: bool) -> dict[str, Any]:
        if clause.padding != WildcardPadding.NONE:
            return {
                "wildcard": {
                    clause.field: {
                        "value": clause.padding.pad(text.lower()),
                        "boost": clause.boost,
                        "case_insensitive": True,
                    }
                }
            }
        query_type = "match_phrase" if phrase else "match"
        return {query_type: {clause.field: {"query": text, "boost": clause.boost}}}

    def aggregations(self, plan: AggregationPlan) -> dict[str, Any]:
        """Render an aggregation plan, keyed by facet field."""
        aggs: dict[str, Any] = {}
        for aggregation in plan.aggregations:
            terms = self._terms(aggregation)
            if isinstance(plan, MultiSelectPlan):
                exclusion = aggregation.exclusion_filter or MatchAll()
                aggs[aggregation.name] = {
                    "filter": self.predicate(exclusion),
                    "aggs": {aggregation.filtered_name: terms},
                }
            else:
                aggs[aggregation.name] = terms
        return aggs

    @staticmethod
    def _terms(aggregation: TermsAggregation) -> dict[str, Any]:
        terms: dict[str, Any] = {"field": aggregation.field, "size": aggregation.size}
        if aggregation.min_count is not None:
            terms["min_doc_count"] = aggregation.min_count
        return {"terms": terms}

    def highlight(self, fields: tuple[str, ...] | list[str]) -> dict[str, Any]:
        return {
            "pre_tags": [self.pre_tag],
            "post_tags": [self.post_tag],
            "type": "unified",
            "encoder": "html",
            "number_of_fragments": 0,
            "require_field_match": False,
            "fields": {field: {} for field in fields},
        }

    @staticmethod
    def sort(sort: tuple[tuple[str, SortDirection], ...]) -> list[dict[str, Any]]:
        """Sort clauses; relevance when no explicit order is given."""
        if not sort:
            return [{"_score": {"order": "desc"}}]
        return [{field: {"order": direction.value}} for field, direction in sort]

    @staticmethod
    def source(
        includes: tuple[str, ...] | list[str], excludes: tuple[str, ...] | list[str]
    ) -> dict[str, list[str]]:
        source = {}
        if includes:
            source["includes"] = list(includes)
        if excludes:
            source["excludes"] = list(excludes)
        return source

    @staticmethod
    def spelling(text: str, count: int) -> dict[str, Any]:
        """Term and collated phrase suggesters over the catch-all field."""
        return {
            "text": text,
            SPELLCHECK_TERM: {
                "term": {"field": DEFAULT_FULL_TEXT_FIELD, "size": count}
            },
            SPELLCHECK_PHRASE: {
                "phrase": {
                    "field": DEFAULT_FULL_TEXT_FIELD,
                    "size": count,
                    "collate": {
                        "query": {
                            "source": {"match": {"{{field_name}}": "{{suggestion}}"}}
                        },
                        "params": {"field_name": DEFAULT_FULL_TEXT_FIELD},
                        "prune": True,
                    },
                }
            },
        }

    def autocomplete_body(
        self,
        field: str,
        prefix_field: str,
        q: str | None,
        filter: Predicate | None = None,
        offset: int = 0,
        limit: int = 5,
        source_fields: list[str] | None = None,
    ) -> dict[str, Any]:
        """Request body matching an autocomplete field.

        Terms longer than two characters also boost documents whose plain
        field starts with the term.
        """
        bool_query: dict[str, Any] = {}
        text = (q or "").strip()
        if text:
            should = [{"match": {field: {"query": text, "operator": "and"}}}]
            if len(text) > 2:
                should.append(
                    {
                        "span_first": {
                            "match": {
                                "span_multi": {
                                    "match": {"prefix": {prefix_field: {"value": text.lower()}}}
                                }
                            },
                            "end": PREFIX_END,
                            "boost": PREFIX_BOOST,
                        }
                    }
                )
            bool_query["should"] = should
            bool_query["minimum_should_match"] = 1
        else:
            bool_query["must"] = [{"match_all": {}}]

        if filter is not None:
            bool_query.setdefault("must", []).append(self.predicate(filter))

        body: dict[str, Any] = {
            "from": max(0, offset),
            "size": limit,
            "query": {"bool": bool_query},
        }
        source = self.source(source_fields or [], self.catalog.excluded_result_fields())
        if source:
            body["_source"] = source
        return body

    def suggest_body(
        self, field: str, prefix: str, limit: int, source_fields: list[str] | None = None
    ) -> dict[str, Any]:
        """Request body of a completion suggester named after the field."""
        body: dict[str, Any] = {
            "suggest": {
                field: {
                    "prefix": prefix,
                    "completion": {
                        "field": field,
                        "size": limit,
                        "skip_duplicates": True,
                    },
                }
            }
        }
        source = self.source(source_fields or [], self.catalog.excluded_result_fields())
        if source:
            body["_source"] = source
        return body


def _bucket_key(bucket: dict[str, Any]) -> str:
    if "key_as_string" in bucket:
        return str(bucket["key_as_string"])
    key = bucket.get("key")
    if isinstance(key, float) and key.is_integer():
        return str(int(key))
    return str(key)


def _parse_aggregation(aggregation: dict[str, Any]) -> RawAggregation:
    return RawAggregation(
        tuple(
            RawBucket(_bucket_key(bucket), int(bucket.get("doc_count", 0)))
            for bucket in aggregation.get("buckets", ())
        )
    )


def _parse_spelling(suggest: dict[str, Any]) -> tuple[RawSpellSuggestion, ...]:
    suggestions = []
    for entry in suggest.get(SPELLCHECK_TERM, ()):
        options = entry.get("options") or []
        if options:
            suggestions.append(
                RawSpellSuggestion(
                    text=entry["text"],
                    alternatives=tuple(o["text"] for o in options),
                    num_found=max(int(o.get("freq", 0)) for o in options),
                )
            )
    for entry in suggest.get(SPELLCHECK_PHRASE, ()):
        options = [o for o in entry.get("options") or [] if o.get("collate_match", True)]
        if options:
            suggestions.append(
                RawSpellSuggestion(
                    text=entry["text"],
                    alternatives=tuple(o["text"] for o in options),
                    collated=True,
                )
            )
    return tuple(suggestions)


def parse_response(body: dict[str, Any]) -> RawSearchResult:
    """Read a search response into a RawSearchResult.

    Aggregations wrapped in a multi-select filter are lifted to their inner
    ``filtered_<field>`` terms aggregation.
    """
    hits_section = body.get("hits") or {}
    total = hits_section.get("total", 0)
    if isinstance(total, dict):
        total = total.get("value", 0)

    hits = tuple(
        RawHit(
            id=str(hit.get("_id")),
            score=hit.get("_score"),
            source=hit.get("_source") or {},
            highlight=hit.get("highlight") or {},
        )
        for hit in hits_section.get("hits", ())
    )

    aggregations = {}
    for name, aggregation in (body.get("aggregations") or {}).items():
        if "buckets" in aggregation:
            aggregations[name] = _parse_aggregation(aggregation)
            continue
        for inner_name, inner in aggregation.items():
            if isinstance(inner, dict) and "buckets" in inner:
                aggregations[inner_name] = _parse_aggregation(inner)

    return RawSearchResult(
        total=int(total),
        hits=hits,
        aggregations=aggregations,
        spelling=_parse_spelling(body.get("suggest") or {}),
        took_ms=body.get("took"),
    )


class OpenSearchBackend(SearchBackend):
    """Executes compiled queries against an OpenSearch index."""

    def __init__(
        self,
        client: OpenSearch,
        index: str,
        serializer: QuerySerializer,
    ):
        self.client = client
        self.index = index
        self.serializer = serializer

    @classmethod
    def connect(
        cls,
        hosts: list[str] | str,
        index: str,
        serializer: QuerySerializer,
        **client_options: Any,
    ) -> "OpenSearchBackend":
        """Create a backend with a new client for the given hosts."""
        return cls(OpenSearch(hosts=hosts, **client_options), index, serializer)

    def execute(
        self, compiled: CompiledQuery, timeout: float | None = None
    ) -> RawSearchResult:
        """Run a compiled query and parse the response."""
        body = self.serializer.request_body(compiled)
        return parse_response(self._search(body, timeout))

    def suggest(
        self, field: str, prefix: str, limit: int, source_fields: list[str] | None = None
    ) -> list[dict[str, Any]]:
        """Complete a prefix with the field's completion suggester."""
        body = self.serializer.suggest_body(field, prefix, limit, source_fields)
        response = self._search(body, None)
        results = []
        for entry in (response.get("suggest") or {}).get(field, ()):
            for option in entry.get("options", ()):
                results.append(option.get("_source") or {field: option.get("text")})
        return results

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
        """Return the sources of documents matching the autocomplete field."""
        body = self.serializer.autocomplete_body(
            field, prefix_field, q, filter, offset, limit, source_fields
        )
        return [hit.source for hit in parse_response(self._search(body, None)).hits]

    def _search(self, body: dict[str, Any], timeout: float | None) -> dict[str, Any]:
        logger.debug("Searching index %s: %s", self.index, body)
        params = {}
        if timeout is not None:
            params["request_timeout"] = timeout
        try:
            return self.client.search(index=self.index, body=body, **params)
        except OpenSearchException as e:
            logger.error("Search on index %s failed: %s", self.index, e)
            raise ExecutionError(f"Search on index {self.index} failed: {e}") from e
