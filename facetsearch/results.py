"""Search result types.

Backends return a :class:`RawSearchResult`, a backend-independent view of
hits, aggregation buckets and spelling suggestions. The normalizer turns it
into the uniform :class:`SearchResponse` handed to callers.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import msgspec

from .parameters import SearchParameter

T = TypeVar("T")


class RawHit(msgspec.Struct, frozen=True, kw_only=True):
    """One document returned by a backend."""

    id: str
    score: float | None = None
    source: dict[str, Any] = {}
    highlight: dict[str, list[str]] = {}


class RawBucket(msgspec.Struct, frozen=True):
    """Terms aggregation bucket; keys are always text."""

    key: str
    doc_count: int


class RawAggregation(msgspec.Struct, frozen=True):
    buckets: tuple[RawBucket, ...] = ()


class RawSpellSuggestion(msgspec.Struct, frozen=True, kw_only=True):
    """Correction proposed for a token or token sequence.

    Collated suggestions have been verified to match at least one document.
    """

    text: str
    alternatives: tuple[str, ...] = ()
    num_found: int = 0
    collated: bool = False


class RawSearchResult(msgspec.Struct, frozen=True, kw_only=True):
    """Backend-independent raw result of one executed query."""

    total: int = 0
    hits: tuple[RawHit, ...] = ()
    aggregations: dict[str, RawAggregation] = {}
    spelling: tuple[RawSpellSuggestion, ...] = ()
    took_ms: int | None = None


@dataclass(frozen=True)
class FacetCount:
    """Value of a facet and the number of matching documents."""

    name: str
    count: int

    def __str__(self) -> str:
        return f"{self.name} ({self.count})"


@dataclass(frozen=True)
class Facet:
    """Ordered counts of one facet parameter."""

    parameter: SearchParameter
    counts: tuple[FacetCount, ...] = ()

    def get_count(self, name: str) -> int:
        """Get count for a specific facet value."""
        for facet_count in self.counts:
            if facet_count.name == name:
                return facet_count.count
        return 0


@dataclass(frozen=True)
class Suggestion:
    """Merged spelling correction of one token sequence."""

    original: str
    alternatives: tuple[str, ...]
    num_found: int


@dataclass(frozen=True)
class SpellCheckResponse:
    suggestions: dict[str, Suggestion] = field(default_factory=dict)

    @property
    def correctly_spelled(self) -> bool:
        return not self.suggestions


@dataclass(frozen=True)
class SearchResponse(Generic[T]):
    """Uniform response of a search, independent of the backend."""

    offset: int
    limit: int
    total: int
    results: tuple[T, ...] = ()
    facets: tuple[Facet, ...] = ()
    spell_check: SpellCheckResponse | None = None

    @property
    def end_of_records(self) -> bool:
        return self.offset + len(self.results) >= self.total

    def facet(self, parameter: SearchParameter) -> Facet | None:
        """Get the facet of a parameter, if it was computed."""
        for facet in self.facets:
            if facet.parameter == parameter:
                return facet
        return None
