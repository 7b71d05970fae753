from __future__ import annotations


class DashboardError(Exception):
    """Base class for failures surfaced to API callers."""


class UpstreamQueryError(DashboardError):
    """The row source rejected or failed a query."""

    def __init__(self, message: str, *, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class DatasetNotFoundError(DashboardError):
    pass


class ExportSerializationError(DashboardError):
    """An export target could not be produced."""
