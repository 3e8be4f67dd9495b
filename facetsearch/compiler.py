"""Compilation of filters and free text into a predicate tree."""

import logging
from collections.abc import Iterable, Mapping

from .catalog import FieldCatalog
from .fulltext import MATCH_ALL_QUERY, FullTextQueryBuilder
from .geometry import GeometryNormalizer
from .parameters import SearchParameter
from .predicates import (
    Bool,
    Equality,
    MatchAll,
    MultiEquality,
    Not,
    Predicate,
    Range,
    Spatial,
    all_of,
    any_of,
)
from .values import NEGATION_PREFIX, RangeBounds, ValueParser

logger = logging.getLogger(__name__)

Filters = Mapping[SearchParameter, Iterable[str]]


def ordered_values(values: Iterable[str]) -> list[str]:
    """Distinct values in a stable order (sets are sorted, sequences kept)."""
    if isinstance(values, (set, frozenset)):
        return sorted(values)
    return list(dict.fromkeys(values))


class QueryCompiler:
    """Turns a parameter to values map and a free-text term into a predicate."""

    def __init__(
        self,
        catalog: FieldCatalog,
        full_text: FullTextQueryBuilder | None = None,
        value_parser: ValueParser | None = None,
        geometry: GeometryNormalizer | None = None,
    ):
        self.catalog = catalog
        self.full_text = full_text or FullTextQueryBuilder(catalog.full_text_fields())
        self.value_parser = value_parser or ValueParser()
        self.geometry = geometry or GeometryNormalizer()

    def compile(self, filters: Filters | None, q: str | None = None) -> Predicate | None:
        """Compile filters and free text into one predicate.

        The match-all free-text sentinel wins over everything else: the
        result is a plain MatchAll and any filters are dropped.

        Args:
            filters: Raw filter values per parameter
            q: Free-text term

        Returns:
            MatchAll for the sentinel, None when nothing compiles, otherwise
            a Bool with the full-text clause as MUST and filters as FILTER

        Raises:
            InvalidFilterValueError: If a filter value cannot be parsed
            UnsupportedShapeError: If a spatial filter is not a supported shape
        """
        text = (q or "").strip()
        if text == MATCH_ALL_QUERY:
            return MatchAll()

        clauses = self.compile_filters(filters or {})
        must = (self.full_text.build(text),) if text else ()

        if not must and not clauses:
            return None
        return Bool(must=must, filter=tuple(clauses))

    def compile_filters(self, filters: Filters) -> list[Predicate]:
        """Compile each parameter's values into one predicate per parameter."""
        clauses = []
        for parameter, values in filters.items():
            clause = self.compile_parameter(parameter, values)
            if clause is not None:
                clauses.append(clause)
        return clauses

    def compile_parameter(
        self, parameter: SearchParameter, values: Iterable[str]
    ) -> Predicate | None:
        """Compile the values of one parameter.

        Scalar values form an OR group (a single Equality for one value),
        ranges are OR-ed alongside, negated values are AND-ed as NOT clauses.
        Unmapped parameters compile to None.
        """
        field = self.catalog.field_for(parameter)
        if field is None:
            logger.debug("Skipping filter on unmapped parameter %s", parameter)
            return None

        raw_values = ordered_values(values)
        if not raw_values:
            return None

        if self.catalog.is_spatial_parameter(parameter):
            return self._compile_spatial(field, raw_values)

        date_field = self.catalog.is_date_field(field)
        scalars = []
        ranges: list[Predicate] = []
        negated: list[Predicate] = []

        for raw in raw_values:
            parsed = self.value_parser.parse_filter(raw, parameter, date_field)
            if parsed.negated:
                negated.append(Not(self._value_predicate(field, parsed.value)))
            elif parsed.is_range:
                ranges.append(self._value_predicate(field, parsed.value))
            else:
                scalars.append(parsed.value)

        scalars = list(dict.fromkeys(scalars))
        positive: list[Predicate] = []
        if len(scalars) == 1:
            positive.append(Equality(field, scalars[0]))
        elif scalars:
            positive.append(MultiEquality(field, tuple(scalars)))
        positive.extend(ranges)

        return self._combine(positive, negated)

    def _compile_spatial(self, field: str, raw_values: list[str]) -> Predicate | None:
        shapes: list[Predicate] = []
        negated: list[Predicate] = []
        for raw in raw_values:
            if raw.startswith(NEGATION_PREFIX):
                shape = self.geometry.normalize(raw[len(NEGATION_PREFIX) :])
                negated.append(Not(Spatial(field, shape)))
            else:
                shapes.append(Spatial(field, self.geometry.normalize(raw)))
        return self._combine(shapes, negated)

    @staticmethod
    def _combine(positive: list[Predicate], negated: list[Predicate]) -> Predicate | None:
        group = any_of(positive)
        return all_of(([group] if group is not None else []) + negated)

    @staticmethod
    def _value_predicate(field: str, value) -> Predicate:
        if isinstance(value, RangeBounds):
            return Range(field, gte=value.lower, lte=value.upper)
        return Equality(field, value)
