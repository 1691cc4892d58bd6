"""Search execution and result interpretation for BLAST+ binaries."""

from .errors import SearchArgumentError, SearchError, SearchInternalError
from .hyperlinks import HitContext, HyperlinkOverrides, resolve_hit_line
from .params import SearchRequest
from .report import Hit, Query, SearchResult, parse_report
from .service import SearchService, build_service
from .settings import CorpusEntry, Settings

__all__ = [
    "CorpusEntry",
    "Hit",
    "HitContext",
    "HyperlinkOverrides",
    "Query",
    "SearchArgumentError",
    "SearchError",
    "SearchInternalError",
    "SearchRequest",
    "SearchResult",
    "SearchService",
    "Settings",
    "build_service",
    "parse_report",
    "resolve_hit_line",
]
