"""Exception classes for query compilation and execution."""


class SearchError(Exception):
    """Base exception for search-related errors."""

    pass


class InvalidFilterValueError(SearchError, ValueError):
    """Raised when a filter value cannot be parsed as its parameter's type."""

    def __init__(self, parameter: str, value: str, reason: str | None = None):
        """Initialize with parameter name, offending value and reason."""
        self.parameter = parameter
        self.value = value
        message = f"Invalid value '{value}' for parameter {parameter}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnsupportedShapeError(SearchError, ValueError):
    """Raised when a spatial filter is not a supported or valid WKT shape."""

    pass


class FacetTooLargeError(SearchError, ValueError):
    """Raised when a facet paging window exceeds the aggregation ceiling."""

    def __init__(self, ceiling: int):
        """Initialize with the ceiling that was exceeded."""
        self.ceiling = ceiling
        super().__init__(f"Facets paging is only supported up to {ceiling} elements")


class CatalogError(SearchError, ValueError):
    """Raised when a field catalog is built with conflicting mappings."""

    pass


class ConfigurationError(SearchError, ValueError):
    """Raised when a configuration file cannot be loaded or is invalid."""

    pass


class QueryError(SearchError):
    """Raised when a backend cannot express a compiled query."""

    pass


class ExecutionError(SearchError):
    """Raised when a backend fails to execute a compiled query."""

    pass
