from __future__ import annotations


class SearchError(Exception):
    """Base class for failures surfaced by a search."""

    http_status = 500


class SearchArgumentError(SearchError, ValueError):
    """Invalid query sequence, corpus selection or options.

    Raised before any process is spawned when validation fails, and when the
    search binary exits with status 1.
    """

    http_status = 400


class SearchInternalError(SearchError, RuntimeError):
    """The search binary crashed or the infrastructure failed.

    Exit statuses 2, 3, 4 and 255 end up here, as does anything else that is
    not 0 or 1. Of concern to operators only.
    """

    http_status = 500

    def __init__(self, status: int, message: str) -> None:
        super().__init__(status, message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return f"{self.status}, {self.message}"
