"""SQL SELECT building, pagination, model helpers and array column types."""

__version__ = "0.1.0"
__all__ = ["model", "paginator", "query", "slices"]