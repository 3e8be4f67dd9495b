"""Field catalog mapping search parameters to backend fields.

The catalog is built once at startup, either through
:class:`FieldCatalogBuilder` or from a configuration mapping, and is
read-only afterwards. All lookups are plain reads of immutable containers,
so a single catalog can be shared by concurrent requests.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from .exceptions import CatalogError
from .fulltext import FullTextField, WildcardPadding
from .parameters import SearchParameter, ValueType

logger = logging.getLogger(__name__)


class SortDirection(Enum):
    """Sort direction of a result ordering."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class FieldMapping:
    """Backend field backing one search parameter."""

    parameter: SearchParameter
    field: str
    cardinality: int | None = None
    date: bool = False
    spatial: bool = False
    autocomplete_field: str | None = None
    suggest_fields: tuple[str, ...] = ()


class FieldCatalog:
    """Resolves search parameters to backend fields and back."""

    AUTOCOMPLETE_SUFFIX = "Autocomplete"

    def __init__(
        self,
        mappings: list[FieldMapping] | tuple[FieldMapping, ...] = (),
        included_fields: tuple[str, ...] = (),
        excluded_fields: tuple[str, ...] = (),
        sort_order: tuple[tuple[str, SortDirection], ...] = (),
        highlight_fields: tuple[str, ...] = (),
        full_text_fields: tuple[FullTextField, ...] = (),
    ):
        """Initialize the catalog.

        Args:
            mappings: Parameter to field mappings
            included_fields: Fields returned in result payloads (empty: all)
            excluded_fields: Fields never returned in result payloads
            sort_order: Default result ordering as (field, direction) pairs
            highlight_fields: Fields highlighted in results
            full_text_fields: Full-text scoring table

        Raises:
            CatalogError: If a parameter or field is mapped twice
        """
        by_parameter: dict[SearchParameter, FieldMapping] = {}
        by_field: dict[str, FieldMapping] = {}

        for mapping in mappings:
            if mapping.parameter in by_parameter:
                raise CatalogError(f"Parameter {mapping.parameter} is mapped twice")
            if mapping.field in by_field:
                raise CatalogError(f"Field {mapping.field} is mapped twice")
            by_parameter[mapping.parameter] = mapping
            by_field[mapping.field] = mapping

        self._by_parameter = MappingProxyType(by_parameter)
        self._by_field = MappingProxyType(by_field)
        self._included_fields = tuple(included_fields)
        self._excluded_fields = tuple(excluded_fields)
        self._sort_order = tuple(sort_order)
        self._highlight_fields = tuple(highlight_fields)
        self._full_text_fields = tuple(full_text_fields)

    @classmethod
    def builder(cls) -> "FieldCatalogBuilder":
        """Start building a catalog."""
        return FieldCatalogBuilder()

    @property
    def mappings(self) -> tuple[FieldMapping, ...]:
        return tuple(self._by_parameter.values())

    def field_for(self, parameter: SearchParameter) -> str | None:
        """Backend field mapped to a parameter, if any."""
        mapping = self._by_parameter.get(parameter)
        return mapping.field if mapping else None

    def parameter_for(self, field: str) -> SearchParameter | None:
        """Parameter mapped to a backend field, if any."""
        mapping = self._by_field.get(field)
        return mapping.parameter if mapping else None

    def cardinality_of(self, field: str) -> int | None:
        """Estimated number of distinct values of a field; None if unknown."""
        mapping = self._by_field.get(field)
        return mapping.cardinality if mapping else None

    def is_date_field(self, field: str) -> bool:
        mapping = self._by_field.get(field)
        if mapping is None:
            return False
        return mapping.date or mapping.parameter.value_type == ValueType.DATE

    def is_spatial_parameter(self, parameter: SearchParameter) -> bool:
        mapping = self._by_parameter.get(parameter)
        if mapping is None:
            return parameter.value_type == ValueType.GEOMETRY
        return mapping.spatial or parameter.value_type == ValueType.GEOMETRY

    def excluded_result_fields(self) -> list[str]:
        return list(self._excluded_fields)

    def included_result_fields(self) -> list[str]:
        """Fields to include in result payloads; empty means all fields."""
        return list(self._included_fields)

    def default_sort_order(self) -> list[tuple[str, SortDirection]]:
        return list(self._sort_order)

    def autocomplete_field_for(self, parameter: SearchParameter) -> str | None:
        """Autocomplete field of a parameter (mapped field + suffix by default)."""
        mapping = self._by_parameter.get(parameter)
        if mapping is None:
            return None
        return mapping.autocomplete_field or mapping.field + self.AUTOCOMPLETE_SUFFIX

    def suggest_fields_for(self, parameter: SearchParameter) -> list[str]:
        """Fields returned in suggest responses; only the mapped field by default."""
        mapping = self._by_parameter.get(parameter)
        if mapping is None:
            return []
        return list(mapping.suggest_fields) or [mapping.field]

    def highlight_fields(self) -> list[str]:
        return list(self._highlight_fields)

    def full_text_fields(self) -> tuple[FullTextField, ...]:
        return self._full_text_fields

    def parse_indexed_value(self, value: str, parameter: SearchParameter) -> str:
        """Convert an indexed value into the value returned to callers.

        ENUM parameters are indexed by member name or ordinal; both are
        resolved to the canonical member name. Other values pass through.
        """
        vocabulary = parameter.vocabulary
        if parameter.value_type != ValueType.ENUM or vocabulary is None:
            return value

        members = list(vocabulary)
        if value.isdigit() and int(value) < len(members):
            return members[int(value)].name
        for member in members:
            if member.name.lower() == value.lower():
                return member.name
        return value

    @classmethod
    def from_config(
        cls, config: dict[str, Any], parameters: type[SearchParameter]
    ) -> "FieldCatalog":
        """Build a catalog from a configuration mapping.

        Args:
            config: The ``catalog`` section of a configuration file
            parameters: Parameter enumeration the mappings refer to

        Returns:
            The built catalog

        Raises:
            CatalogError: If the configuration refers to unknown parameters
                or contains invalid values
        """
        builder = FieldCatalogBuilder()

        for name, settings in (config.get("mappings") or {}).items():
            parameter = parameters.lookup(name)
            if parameter is None:
                raise CatalogError(f"Unknown search parameter: {name}")
            if isinstance(settings, str):
                settings = {"field": settings}
            try:
                builder.map(
                    parameter,
                    settings["field"],
                    cardinality=settings.get("cardinality"),
                    date=settings.get("date", False),
                    spatial=settings.get("spatial", False),
                    autocomplete_field=settings.get("autocomplete_field"),
                    suggest_fields=tuple(settings.get("suggest_fields", ())),
                )
            except KeyError:
                raise CatalogError(f"Mapping of {name} has no field")

        builder.include(*config.get("include", ()))
        builder.exclude(*config.get("exclude", ()))
        builder.highlight(*config.get("highlight", ()))

        for sort in config.get("sort", ()):
            if "field" not in sort:
                raise CatalogError("Sort entry has no field")
            try:
                direction = SortDirection(str(sort.get("order", "asc")).lower())
            except ValueError:
                raise CatalogError(f"Invalid sort order: {sort.get('order')}")
            builder.sort_by(sort["field"], direction)

        for settings in config.get("full_text", ()):
            if "field" not in settings:
                raise CatalogError("Full-text entry has no field")
            try:
                padding = WildcardPadding(str(settings.get("partial", "none")).lower())
            except ValueError:
                raise CatalogError(f"Invalid wildcard padding: {settings.get('partial')}")
            builder.full_text(
                FullTextField(
                    field=settings["field"],
                    exact_match_boost=float(settings.get("boost", 1.0)),
                    exact_match_field=settings.get("exact_field"),
                    partial_matching=padding,
                    partial_match_boost=float(settings.get("partial_boost", 0.5)),
                    highlight_field=settings.get("highlight_field"),
                )
            )

        catalog = builder.build()
        logger.debug("Built field catalog with %d mappings", len(catalog.mappings))
        return catalog


class FieldCatalogBuilder:
    """Accumulates catalog settings and builds an immutable FieldCatalog."""

    def __init__(self):
        self._mappings: list[FieldMapping] = []
        self._included: list[str] = []
        self._excluded: list[str] = []
        self._sort_order: list[tuple[str, SortDirection]] = []
        self._highlight: list[str] = []
        self._full_text: list[FullTextField] = []

    def map(
        self,
        parameter: SearchParameter,
        field: str,
        cardinality: int | None = None,
        date: bool = False,
        spatial: bool = False,
        autocomplete_field: str | None = None,
        suggest_fields: tuple[str, ...] = (),
    ) -> "FieldCatalogBuilder":
        """Map a parameter to a backend field."""
        self._mappings.append(
            FieldMapping(
                parameter=parameter,
                field=field,
                cardinality=cardinality,
                date=date,
                spatial=spatial,
                autocomplete_field=autocomplete_field,
                suggest_fields=suggest_fields,
            )
        )
        return self

    def include(self, *fields: str) -> "FieldCatalogBuilder":
        self._included.extend(fields)
        return self

    def exclude(self, *fields: str) -> "FieldCatalogBuilder":
        self._excluded.extend(fields)
        return self

    def sort_by(
        self, field: str, direction: SortDirection = SortDirection.ASC
    ) -> "FieldCatalogBuilder":
        self._sort_order.append((field, direction))
        return self

    def highlight(self, *fields: str) -> "FieldCatalogBuilder":
        self._highlight.extend(fields)
        return self

    def full_text(self, *fields: FullTextField) -> "FieldCatalogBuilder":
        self._full_text.extend(fields)
        return self

    def build(self) -> FieldCatalog:
        """Build the catalog."""
        return FieldCatalog(
            mappings=tuple(self._mappings),
            included_fields=tuple(self._included),
            excluded_fields=tuple(self._excluded),
            sort_order=tuple(self._sort_order),
            highlight_fields=tuple(self._highlight),
            full_text_fields=tuple(self._full_text),
        )
