"""Backend-independent predicate tree.

Compiled queries are trees of immutable, tagged msgspec structs. Backend
serializers walk the tree and translate each variant into their own query
language, so the decision logic lives in one place.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

import msgspec

TypedValue = str | int | float | bool | date | datetime


class WildcardPadding(Enum):
    """Wildcard padding applied to a partial full-text match."""

    BOTH = "both"  # *pattern*
    LEFT = "left"  # *pattern
    RIGHT = "right"  # pattern*
    NONE = "none"  # exact match

    def pad(self, pattern: str) -> str:
        """Apply the padding to a search pattern."""
        if self == WildcardPadding.BOTH:
            return f"*{pattern}*"
        if self == WildcardPadding.LEFT:
            return f"*{pattern}"
        if self == WildcardPadding.RIGHT:
            return f"{pattern}*"
        return pattern


class Predicate(msgspec.Struct, frozen=True, tag_field="kind"):
    """Base class of every predicate variant."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-shaped builtins for inspection and logging.

        Tuples become lists, dates ISO strings and enums their values.
        """
        return msgspec.json.decode(msgspec.json.encode(self))


class MatchAll(Predicate, frozen=True, tag="match_all"):
    """Matches every document."""


class Equality(Predicate, frozen=True, tag="equality"):
    """Field equals a single typed value."""

    field: str
    value: Any


class MultiEquality(Predicate, frozen=True, tag="multi_equality"):
    """Field equals any of several typed values (an OR group of equalities)."""

    field: str
    values: tuple[Any, ...]


class Range(Predicate, frozen=True, tag="range"):
    """Field lies within inclusive bounds; a missing bound is open."""

    field: str
    gte: Any = None
    lte: Any = None


class Spatial(Predicate, frozen=True, tag="spatial"):
    """Field geometry lies within a normalized WKT shape."""

    field: str
    shape: str


class FieldMatch(msgspec.Struct, frozen=True):
    """One boosted field of a full-text clause."""

    field: str
    boost: float = 1.0
    padding: WildcardPadding = WildcardPadding.NONE


class FullText(Predicate, frozen=True, tag="full_text"):
    """Free-text relevance clause over a set of boosted fields."""

    text: str
    clauses: tuple[FieldMatch, ...] = ()


class Not(Predicate, frozen=True, tag="not"):
    """Negation of a single clause."""

    clause: Predicate


class AnyOf(Predicate, frozen=True, tag="any_of"):
    """Disjunction of clauses."""

    clauses: tuple[Predicate, ...]


class Bool(Predicate, frozen=True, tag="bool"):
    """Conjunction of scoring (must) and non-scoring (filter) clauses."""

    must: tuple[Predicate, ...] = ()
    filter: tuple[Predicate, ...] = ()


def any_of(clauses: list[Predicate]) -> Predicate | None:
    """OR the clauses together, without wrapping a single clause."""
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return AnyOf(tuple(clauses))


def all_of(clauses: list[Predicate]) -> Predicate | None:
    """AND the clauses together as filters, without wrapping a single clause."""
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return Bool(filter=tuple(clauses))
