"""Faceted search query compilation.

Compiles backend-agnostic search requests (free text, typed filters,
facets, paging, highlighting, spatial constraints) into a predicate tree
and aggregation plan, runs them on a backend and normalizes the results.

Main components:
- QueryCompiler: filters and free text to predicates
- FacetPlanner: simple and multi-select facet aggregation plans
- ResponseNormalizer: raw backend results to uniform responses
- SearchService: the compile, execute and normalize pipeline
- Backends: OpenSearch and in-memory
"""

__version__ = "0.1.0"

from .catalog import FieldCatalog, FieldCatalogBuilder, FieldMapping, SortDirection
from .compiler import QueryCompiler
from .config import SearchSettings, load_search_config
from .exceptions import (
    CatalogError,
    ConfigurationError,
    ExecutionError,
    FacetTooLargeError,
    InvalidFilterValueError,
    QueryError,
    SearchError,
    UnsupportedShapeError,
)
from .fulltext import FullTextField, FullTextQueryBuilder, WildcardPadding
from .geometry import GeometryNormalizer
from .normalizer import ResponseNormalizer
from .parameters import SearchParameter, ValueType, create_parameter_enum
from .planner import FacetPlanner, MultiSelectPlan, SimplePlan
from .requests import CompiledQuery, FacetedSearchRequest, SearchRequest
from .results import Facet, FacetCount, SearchResponse
from .service import SearchService
from .values import RangeBounds, ValueParser

__all__ = [
    "CatalogError",
    "CompiledQuery",
    "ConfigurationError",
    "ExecutionError",
    "Facet",
    "FacetCount",
    "FacetPlanner",
    "FacetTooLargeError",
    "FacetedSearchRequest",
    "FieldCatalog",
    "FieldCatalogBuilder",
    "FieldMapping",
    "FullTextField",
    "FullTextQueryBuilder",
    "GeometryNormalizer",
    "InvalidFilterValueError",
    "MultiSelectPlan",
    "QueryCompiler",
    "QueryError",
    "RangeBounds",
    "ResponseNormalizer",
    "SearchError",
    "SearchParameter",
    "SearchRequest",
    "SearchResponse",
    "SearchService",
    "SearchSettings",
    "SimplePlan",
    "SortDirection",
    "UnsupportedShapeError",
    "ValueParser",
    "ValueType",
    "WildcardPadding",
    "create_parameter_enum",
    "load_search_config",
]
