"""Error taxonomy shared by the loader, store and dashboard."""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error raised by call_dashboard."""


class ConfigError(DashboardError):
    pass


class SourceLoadError(DashboardError):
    """A whole source could not be fetched, decoded or tokenized."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.reason = message


class RowProcessingError(DashboardError):
    """A single row raised while being normalised; the row is skipped."""

    def __init__(self, source: str, row_number: int, message: str) -> None:
        super().__init__(f"{source} row {row_number}: {message}")
        self.source = source
        self.row_number = row_number


class FilterValidationError(DashboardError):
    """Filter criteria were rejected before being applied."""
