"""Search backend implementations."""

from .base import ExecutionError, QueryError, SearchBackend
from .memory import MemoryBackend
from .opensearch import (
    FullTextMode,
    OpenSearchBackend,
    QuerySerializer,
    parse_response,
)

__all__ = [
    "ExecutionError",
    "FullTextMode",
    "MemoryBackend",
    "OpenSearchBackend",
    "QueryError",
    "QuerySerializer",
    "SearchBackend",
    "parse_response",
]
