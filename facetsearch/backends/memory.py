"""In-memory search backend for testing and lightweight scenarios.

Documents are plain dictionaries. Every predicate variant is evaluated
directly against them, aggregations follow the same naming as the
OpenSearch serializer, and highlights use the configured tags.
"""

import fnmatch
import re
import time
from collections import defaultdict
from datetime import date, datetime
from typing import Any

from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from ..catalog import SortDirection
from ..config import DEFAULT_HIGHLIGHT_POST_TAG, DEFAULT_HIGHLIGHT_PRE_TAG
from ..exceptions import QueryError
from ..fulltext import DEFAULT_FULL_TEXT_FIELD
from ..hits import get_value
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
from ..results import RawAggregation, RawBucket, RawHit, RawSearchResult
from .base import SearchBackend

_TOKEN = re.compile(r"\w+")


def _tokens(text: str) -> list[str]:
    return _TOKEN.findall(text.lower())


def _flatten(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [item for item in value if item is not None]
    return [value]


def _text_values(document: dict[str, Any]) -> list[str]:
    """Every string value of a document, nested ones included."""
    values = []
    for value in document.values():
        if isinstance(value, dict):
            values.extend(_text_values(value))
        else:
            values.extend(str(v) for v in _flatten(value) if isinstance(v, str))
    return values


def _bucket_key(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _sort_key(value: Any) -> tuple:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, _bucket_key(value))


def _comparable(document_value: Any, target: Any) -> Any:
    """Coerce a stored value to the type of a query value, or None."""
    try:
        if isinstance(target, bool):
            if isinstance(document_value, str):
                return document_value.lower() == "true"
            return bool(document_value)
        if isinstance(target, (date, datetime)):
            if isinstance(document_value, datetime):
                return document_value.date()
            if isinstance(document_value, date):
                return document_value
            return date.fromisoformat(str(document_value)[:10])
        if isinstance(target, (int, float)):
            return float(document_value)
        return str(document_value)
    except (TypeError, ValueError):
        return None


def _normalized_target(target: Any) -> Any:
    if isinstance(target, datetime):
        return target.date()
    if isinstance(target, (int, float)) and not isinstance(target, bool):
        return float(target)
    return target


def _geometry(value: Any) -> BaseGeometry | None:
    """Read a stored geometry: WKT, [lon, lat] or {"lat", "lon"}."""
    try:
        if isinstance(value, str):
            return wkt.loads(value)
        if isinstance(value, dict) and "lat" in value and "lon" in value:
            return Point(float(value["lon"]), float(value["lat"]))
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return Point(float(value[0]), float(value[1]))
    except (ShapelyError, TypeError, ValueError):
        return None
    return None


class MemoryBackend(SearchBackend):
    """In-memory search backend implementation."""

    def __init__(
        self,
        pre_tag: str = DEFAULT_HIGHLIGHT_PRE_TAG,
        post_tag: str = DEFAULT_HIGHLIGHT_POST_TAG,
    ):
        self.documents: dict[str, dict[str, Any]] = {}
        self.pre_tag = pre_tag
        self.post_tag = post_tag

    def index(self, doc_id: str, fields: dict[str, Any]) -> None:
        """Index a single document in memory."""
        self.documents[doc_id] = dict(fields)

    def index_batch(self, documents: list[dict[str, Any]], id_field: str = "id") -> None:
        """Index multiple documents, keyed by their id field."""
        for document in documents:
            if id_field in document:
                self.index(str(document[id_field]), document)

    def delete(self, doc_id: str) -> bool:
        """Delete document; False if it was not indexed."""
        return self.documents.pop(doc_id, None) is not None

    def clear(self) -> None:
        self.documents.clear()

    def execute(
        self, compiled: CompiledQuery, timeout: float | None = None
    ) -> RawSearchResult:
        """Evaluate a compiled query over the indexed documents."""
        start_time = time.time()
        query = compiled.query or MatchAll()

        matches = [
            (doc_id, document, self._score(query, document))
            for doc_id, document in self.documents.items()
            if self.matches(query, document)
        ]

        aggregations = {}
        if compiled.aggregations is not None:
            aggregations = self._aggregate(
                compiled.aggregations, [document for _, document, _ in matches]
            )

        if compiled.post_filter is not None:
            matches = [m for m in matches if self.matches(compiled.post_filter, m[1])]

        matches = self._sort(matches, compiled)
        page = matches[compiled.offset : compiled.offset + compiled.limit]

        terms = self._query_terms(query)
        hits = []
        for doc_id, document, score in page:
            highlight = {}
            if compiled.highlight:
                highlight = self._highlights(document, compiled.highlight_fields, terms)
            hits.append(
                RawHit(
                    id=doc_id,
                    score=score,
                    source=self._source(document, compiled),
                    highlight=highlight,
                )
            )

        return RawSearchResult(
            total=len(matches),
            hits=tuple(hits),
            aggregations=aggregations,
            took_ms=int((time.time() - start_time) * 1000),
        )

    def matches(self, predicate: Predicate, document: dict[str, Any]) -> bool:
        """Check whether a document satisfies a predicate.

        Raises:
            QueryError: If the predicate variant is unknown
        """
        if isinstance(predicate, MatchAll):
            return True
        if isinstance(predicate, Equality):
            return self._equals(document, predicate.field, [predicate.value])
        if isinstance(predicate, MultiEquality):
            return self._equals(document, predicate.field, list(predicate.values))
        if isinstance(predicate, Range):
            return self._in_range(document, predicate)
        if isinstance(predicate, Spatial):
            return self._within(document, predicate)
        if isinstance(predicate, FullText):
            return self._full_text_score(predicate, document) > 0
        if isinstance(predicate, Not):
            return not self.matches(predicate.clause, document)
        if isinstance(predicate, AnyOf):
            return any(self.matches(c, document) for c in predicate.clauses)
        if isinstance(predicate, Bool):
            return all(self.matches(c, document) for c in predicate.must + predicate.filter)
        raise QueryError(f"Unsupported predicate: {type(predicate).__name__}")

    def suggest(
        self, field: str, prefix: str, limit: int, source_fields: list[str] | None = None
    ) -> list[dict[str, Any]]:
        """Suggest distinct field values starting with the prefix."""
        suggestions = []
        seen = set()
        prefix_lower = prefix.lower()

        for document in self.documents.values():
            for value in _flatten(get_value(document, field)):
                if not isinstance(value, str) or value in seen:
                    continue
                if value.lower().startswith(prefix_lower):
                    seen.add(value)
                    suggestions.append(self._pick(document, source_fields, field, value))
                    if len(suggestions) >= limit:
                        return suggestions
        return suggestions

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
        """Match documents whose field tokens start with every typed token.

        Documents whose plain field starts with the typed text come first.
        """
        terms = _tokens(q or "")
        text = (q or "").strip().lower()
        matches = []

        for document in self.documents.values():
            if filter is not None and not self.matches(filter, document):
                continue
            value = get_value(document, field)
            if value is None:
                value = get_value(document, prefix_field)
            tokens = [t for v in _flatten(value) for t in _tokens(str(v))]
            if all(any(token.startswith(term) for token in tokens) for term in terms):
                plain = " ".join(str(v) for v in _flatten(get_value(document, prefix_field)))
                boosted = len(text) > 2 and plain.lower().startswith(text)
                matches.append((not boosted, document))

        matches.sort(key=lambda m: m[0])
        page = matches[max(0, offset) : max(0, offset) + limit]
        return [self._pick(document, source_fields) for _, document in page]

    def _equals(self, document: dict[str, Any], field: str, targets: list[Any]) -> bool:
        for value in _flatten(get_value(document, field)):
            for target in targets:
                if _comparable(value, target) == _normalized_target(target):
                    return True
        return False

    def _in_range(self, document: dict[str, Any], predicate: Range) -> bool:
        reference = predicate.gte if predicate.gte is not None else predicate.lte
        for value in _flatten(get_value(document, predicate.field)):
            if reference is None:
                return True
            comparable = _comparable(value, reference)
            if comparable is None:
                continue
            if predicate.gte is not None and comparable < _normalized_target(predicate.gte):
                continue
            if predicate.lte is not None and comparable > _normalized_target(predicate.lte):
                continue
            return True
        return False

    def _within(self, document: dict[str, Any], predicate: Spatial) -> bool:
        shape = wkt.loads(predicate.shape)
        for value in _flatten_geometries(get_value(document, predicate.field)):
            geometry = _geometry(value)
            if geometry is not None and geometry.within(shape):
                return True
        return False

    def _full_text_score(self, predicate: FullText, document: dict[str, Any]) -> float:
        terms = _tokens(predicate.text)
        if not terms:
            return 0.0
        phrase = " ".join(terms)

        score = 0.0
        for clause in predicate.clauses:
            if self._field_matches(clause, document, terms, phrase):
                score += clause.boost
        return score

    def _field_matches(
        self, clause: FieldMatch, document: dict[str, Any], terms: list[str], phrase: str
    ) -> bool:
        if clause.field == DEFAULT_FULL_TEXT_FIELD and clause.field not in document:
            values = _text_values(document)
        else:
            values = [str(v) for v in _flatten(get_value(document, clause.field))]

        for value in values:
            tokens = _tokens(value)
            if clause.padding != WildcardPadding.NONE:
                pattern = clause.padding.pad(phrase)
                if any(fnmatch.fnmatchcase(token, pattern) for token in tokens):
                    return True
            elif len(terms) > 1:
                if phrase in " ".join(tokens):
                    return True
            elif terms[0] in tokens:
                return True
        return False

    def _score(self, predicate: Predicate, document: dict[str, Any]) -> float:
        if isinstance(predicate, FullText):
            return self._full_text_score(predicate, document)
        if isinstance(predicate, Bool):
            return sum(self._score(c, document) for c in predicate.must)
        return 1.0

    def _sort(
        self, matches: list[tuple[str, dict[str, Any], float]], compiled: CompiledQuery
    ) -> list[tuple[str, dict[str, Any], float]]:
        if compiled.sort_by_relevance:
            return sorted(matches, key=lambda m: m[2], reverse=True)

        ordered = list(matches)
        for field, direction in reversed(compiled.sort):
            present = [m for m in ordered if get_value(m[1], field) is not None]
            missing = [m for m in ordered if get_value(m[1], field) is None]
            present.sort(
                key=lambda m: _sort_key(get_value(m[1], field)),
                reverse=direction == SortDirection.DESC,
            )
            ordered = present + missing
        return ordered

    def _aggregate(
        self, plan: AggregationPlan, documents: list[dict[str, Any]]
    ) -> dict[str, RawAggregation]:
        aggregations = {}
        for aggregation in plan.aggregations:
            if isinstance(plan, MultiSelectPlan):
                exclusion = aggregation.exclusion_filter
                scope = [
                    d for d in documents if exclusion is None or self.matches(exclusion, d)
                ]
                aggregations[aggregation.filtered_name] = self._terms(aggregation, scope)
            else:
                aggregations[aggregation.name] = self._terms(aggregation, documents)
        return aggregations

    @staticmethod
    def _terms(
        aggregation: TermsAggregation, documents: list[dict[str, Any]]
    ) -> RawAggregation:
        counts: dict[str, int] = defaultdict(int)
        for document in documents:
            keys = {_bucket_key(v) for v in _flatten(get_value(document, aggregation.field))}
            for key in keys:
                counts[key] += 1

        min_count = 1 if aggregation.min_count is None else aggregation.min_count
        buckets = sorted(
            (key, count) for key, count in counts.items() if count >= min_count
        )
        buckets.sort(key=lambda b: b[1], reverse=True)
        return RawAggregation(
            tuple(RawBucket(key, count) for key, count in buckets[: aggregation.size])
        )

    def _query_terms(self, predicate: Predicate) -> list[str]:
        if isinstance(predicate, FullText):
            return _tokens(predicate.text)
        if isinstance(predicate, Bool):
            return [t for c in predicate.must for t in self._query_terms(c)]
        return []

    def _highlights(
        self, document: dict[str, Any], fields: tuple[str, ...], terms: list[str]
    ) -> dict[str, list[str]]:
        highlights = {}
        if not terms:
            return highlights
        pattern = re.compile(
            r"\b(" + "|".join(re.escape(t) for t in terms) + r")\b", re.IGNORECASE
        )
        for field in fields:
            value = get_value(document, field)
            if not isinstance(value, str):
                continue
            highlighted = pattern.sub(
                lambda m: f"{self.pre_tag}{m.group(0)}{self.post_tag}", value
            )
            if highlighted != value:
                highlights[field] = [highlighted]
        return highlights

    @staticmethod
    def _source(document: dict[str, Any], compiled: CompiledQuery) -> dict[str, Any]:
        source = {}
        for key, value in document.items():
            if compiled.includes and key not in compiled.includes:
                continue
            if key in compiled.excludes:
                continue
            source[key] = value
        return source

    @staticmethod
    def _pick(
        document: dict[str, Any],
        source_fields: list[str] | None,
        field: str | None = None,
        value: Any = None,
    ) -> dict[str, Any]:
        if source_fields:
            return {k: document[k] for k in source_fields if k in document}
        if field is not None:
            return {field: value}
        return dict(document)


def _flatten_geometries(value: Any) -> list[Any]:
    """Stored geometries; a [lon, lat] pair counts as one point."""
    if isinstance(value, (list, tuple)) and len(value) == 2 and all(
        isinstance(v, (int, float)) for v in value
    ):
        return [value]
    return _flatten(value)
