"""Observability helpers: diagnostic export of retry delays."""

from .export import HEADER, export_retry_data, read_retry_data

__all__ = ["HEADER", "export_retry_data", "read_retry_data"]
