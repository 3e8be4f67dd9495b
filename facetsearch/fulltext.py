"""Full-text clause construction.

A small declarative table of :class:`FullTextField` entries describes, per
field, how exact and partial (wildcard) matches are boosted. The
:class:`FullTextQueryBuilder` compiles the table once into clause templates
and produces either a :class:`~facetsearch.predicates.FullText` predicate or,
for query-string based backends, a boosted query expression.
"""

import logging
import re
from dataclasses import dataclass

from .predicates import FieldMatch, FullText, WildcardPadding

logger = logging.getLogger(__name__)

MATCH_ALL_QUERY = "*"
DEFAULT_QUERY_STRING = "*:*"
DEFAULT_FULL_TEXT_FIELD = "all"
QUERY_PLACEHOLDER = "$q"

_RESERVED_WORDS = {"AND", "OR", "NOT"}
_SPECIAL_CHARS = re.compile(r'([\\+\-!():^\[\]"{}~*?|&;/])')
_BLANKS = re.compile(r"\s+")

__all__ = [
    "DEFAULT_FULL_TEXT_FIELD",
    "FullTextField",
    "FullTextQueryBuilder",
    "MATCH_ALL_QUERY",
    "WildcardPadding",
    "escape_query",
    "parse_query_value",
]


@dataclass(frozen=True)
class FullTextField:
    """Scoring settings of one full-text searchable field."""

    field: str
    exact_match_boost: float = 1.0
    exact_match_field: str | None = None
    partial_matching: WildcardPadding = WildcardPadding.NONE
    partial_match_boost: float = 0.5
    highlight_field: str | None = None

    @property
    def exact_field(self) -> str:
        """Field used for exact token matches."""
        return self.exact_match_field or self.field


def escape_query(value: str) -> str:
    """Escape query syntax characters; reserved words become phrases."""
    escaped = _SPECIAL_CHARS.sub(r"\\\1", value)
    if value in _RESERVED_WORDS:
        return f'"{escaped}"'
    return escaped


def parse_query_value(q: str | None) -> str:
    """Normalize a free-text value for use inside a query expression.

    Empty values become the match-all query, consecutive blanks collapse,
    special characters are escaped and multi-word values turn into phrases.
    """
    value = (q or "").strip()
    if not value:
        return MATCH_ALL_QUERY
    if value == MATCH_ALL_QUERY:
        return value

    value = _BLANKS.sub(" ", value)
    if " " in value:
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return escape_query(value)


def _component(field: str, pattern: str, boost: float) -> str:
    return f"{field}:{pattern}^{boost}"


class FullTextQueryBuilder:
    """Builds boosted full-text clauses from a field table."""

    def __init__(self, fields: tuple[FullTextField, ...] | list[FullTextField] = ()):
        """Compile the field table into term and phrase templates.

        Args:
            fields: Full-text field settings; an empty table searches the
                default catch-all field
        """
        self.fields = tuple(fields)
        self.highlighted_fields: list[str] = []
        self._term_clauses: list[FieldMatch] = []
        self._phrase_clauses: list[FieldMatch] = []
        self._init_templates()
        logger.info(
            "Query patterns generated for simple / phrase searches : %s / %s",
            self.query_template,
            self.phrase_query_template,
        )

    def _init_templates(self) -> None:
        term_components: list[str] = []
        phrase_components: list[str] = []

        for field in self.fields:
            exact = FieldMatch(field.exact_field, field.exact_match_boost)
            self._term_clauses.append(exact)
            self._phrase_clauses.append(exact)
            component = _component(
                field.exact_field, QUERY_PLACEHOLDER, field.exact_match_boost
            )
            term_components.append(component)
            phrase_components.append(component)

            if field.partial_matching != WildcardPadding.NONE:
                self._term_clauses.append(
                    FieldMatch(
                        field.field, field.partial_match_boost, field.partial_matching
                    )
                )
                term_components.append(
                    _component(
                        field.field,
                        field.partial_matching.pad(QUERY_PLACEHOLDER),
                        field.partial_match_boost,
                    )
                )
                if field.exact_field != field.field:
                    self._phrase_clauses.append(
                        FieldMatch(field.field, field.partial_match_boost)
                    )
                    phrase_components.append(
                        _component(
                            field.field, QUERY_PLACEHOLDER, field.partial_match_boost
                        )
                    )

            self.highlighted_fields.append(field.highlight_field or field.field)

        self.query_template = self._expression(term_components)
        self.phrase_query_template = self._expression(phrase_components)

    @staticmethod
    def _expression(components: list[str]) -> str:
        if not components:
            return QUERY_PLACEHOLDER
        return "(" + " OR ".join(components) + ")"

    def build(self, q: str) -> FullText:
        """Build the full-text predicate for a free-text term."""
        text = _BLANKS.sub(" ", q.strip())
        if not self.fields:
            return FullText(text, (FieldMatch(DEFAULT_FULL_TEXT_FIELD),))
        clauses = self._phrase_clauses if " " in text else self._term_clauses
        return FullText(text, tuple(clauses))

    def query_string(self, q: str | None) -> str:
        """Build the boosted query expression for a free-text term."""
        value = parse_query_value(q)
        if value == MATCH_ALL_QUERY:
            template = DEFAULT_QUERY_STRING
        elif " " in value:
            template = self.phrase_query_template
        else:
            template = self.query_template

        generated = template.replace(QUERY_PLACEHOLDER, value)
        logger.debug("Query generated for full text search: %s", generated)
        return generated
