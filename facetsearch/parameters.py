"""Typed search parameters.

Applications declare their search dimensions once by subclassing
:class:`SearchParameter`::

    class DatasetParameter(SearchParameter):
        COUNTRY = ("country", ValueType.ENUM, Country)
        YEAR = ("year", ValueType.INTEGER)
        GEOMETRY = ("geometry", ValueType.GEOMETRY)

Each member carries its wire name and the value type that drives filter
value parsing.
"""

from enum import Enum


class ValueType(Enum):
    """Value types a search parameter can declare."""

    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    DOUBLE = "double"
    FLOAT = "float"
    BOOLEAN = "boolean"
    ENUM = "enum"
    DATE = "date"
    UUID = "uuid"
    GEOMETRY = "geometry"

    @property
    def is_numeric(self) -> bool:
        """Whether values of this type are numbers."""
        return self in (
            ValueType.INTEGER,
            ValueType.LONG,
            ValueType.DOUBLE,
            ValueType.FLOAT,
        )


class SearchParameter(Enum):
    """Base class for application search parameter enumerations."""

    def __init__(
        self,
        key: str,
        value_type: ValueType = ValueType.STRING,
        vocabulary: type[Enum] | None = None,
    ):
        self.key = key
        self.value_type = value_type
        self.vocabulary = vocabulary

    def __str__(self) -> str:
        return self.name

    @classmethod
    def lookup(cls, name: str) -> "SearchParameter | None":
        """Find a member by name or wire key, ignoring case."""
        normalized = name.strip()
        for member in cls:
            if member.name.lower() == normalized.lower() or member.key == normalized:
                return member
        return None


def create_parameter_enum(
    name: str, definitions: dict[str, dict]
) -> type[SearchParameter]:
    """Create a parameter enumeration from configuration.

    Args:
        name: Name of the generated enum class
        definitions: Mapping of member name to ``{"key", "type", "values"}``,
            where ``values`` lists the vocabulary of ENUM parameters

    Returns:
        A new SearchParameter subclass
    """
    members = []
    for member_name, definition in definitions.items():
        definition = definition or {}
        value_type = ValueType(definition.get("type", "string"))
        vocabulary = None
        if value_type == ValueType.ENUM:
            values = definition.get("values") or []
            vocabulary = Enum(f"{member_name.title()}Vocabulary", list(values))
        key = definition.get("key", member_name.lower())
        members.append((member_name.upper(), (key, value_type, vocabulary)))

    return SearchParameter(name, members)
