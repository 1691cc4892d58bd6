from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

NOISE_RE = re.compile(r"^</?(?:HTML|BODY|PRE)\b[^>]*>\s*$", re.IGNORECASE)
SCRIPT_RE = re.compile(r'^<script src="blastResult\.js"></script>')
QUERY_RE = re.compile(r"^<b>Query=</b>\s*(.*)")
SUMMARY_RE = re.compile(r"^  Database: ")
HIT_RE = re.compile(r"^>")
POSITION_ROW_RE = re.compile(r"\b(?:Query|Sbjct)\b")
TAG_RE = re.compile(r"</?[^>]*>")
HEADER_RE = re.compile(r"^>\s?(\S+)\s*(.*)")
# With -parse_seqids the id precedes the anchor; without it the anchor comes
# straight after '>' and wraps an internal ordinal id.
LINKABLE_ID_RE = re.compile(r"^>\s?([^<\s]+)\s*<a\b")

# Evaluated top to bottom; the first kind that applies wins.
LINE_KINDS = (
    "noise",
    "summary",
    "query",
    "summary_start",
    "reference",
    "hit",
    "preamble",
    "alignment",
)


@dataclass
class Hit:
    id: str
    meta: str = ""
    header: str = ""
    linkable_id: Optional[str] = None
    alignment_lines: List[str] = field(default_factory=list)
    coordinates: List[Tuple[int, int]] = field(default_factory=list)

    def add_positions(self, *positions: int) -> None:
        low = min(positions)
        high = max(positions)
        if self.coordinates:
            known_low, known_high = self.coordinates[0]
            low = min(low, known_low)
            high = max(high, known_high)
        self.coordinates[:] = [(low, high)]


@dataclass
class Query:
    id: str
    preamble: List[str] = field(default_factory=list)
    hits: Dict[str, Hit] = field(default_factory=dict)


@dataclass
class SearchResult:
    command_line: str = ""
    raw_lines: List[str] = field(default_factory=list)
    queries: Dict[str, Query] = field(default_factory=dict)
    summary_text: str = ""
    reference_text: str = ""

    def iter_hits(self) -> Iterator[Tuple[Query, Hit]]:
        for query in self.queries.values():
            for hit in query.hits.values():
                yield query, hit

    def hit_ids(self) -> List[str]:
        return [hit.id for _, hit in self.iter_hits()]

    def linkable_ids(self) -> List[str]:
        seen: Dict[str, None] = {}
        for _, hit in self.iter_hits():
            if hit.linkable_id:
                seen.setdefault(hit.linkable_id, None)
        return list(seen)


@dataclass
class _ParseState:
    query_id: Optional[str] = None
    hit_id: Optional[str] = None
    in_summary: bool = False


def parse_sequence_id(line: str) -> Optional[str]:
    match = LINKABLE_ID_RE.match(line)
    if match is None:
        return None
    return match.group(1)


def parse_hit_header(line: str) -> Tuple[Optional[str], str]:
    header = TAG_RE.sub("", line).rstrip("\n")
    match = HEADER_RE.match(header)
    if match is None:
        return None, ""
    return match.group(1), match.group(2).strip()


def parse_positions(line: str) -> Optional[Tuple[int, int]]:
    numbers = [int(token) for token in line.split() if token.isdigit()]
    if not numbers:
        return None
    return numbers[0], numbers[-1]


def classify_line(line: str, state: _ParseState) -> str:
    if NOISE_RE.match(line) or (SCRIPT_RE.match(line) and not SCRIPT_RE.sub("", line).strip()):
        return "noise"
    if state.in_summary:
        return "summary"
    if QUERY_RE.match(line):
        return "query"
    if SUMMARY_RE.match(line):
        return "summary_start"
    if state.query_id is None:
        return "reference"
    if HIT_RE.match(line):
        return "hit"
    if state.hit_id is None:
        return "preamble"
    return "alignment"


def parse_report(lines: Iterable[str], *, command_line: str = "") -> SearchResult:
    """Build a :class:`SearchResult` from the HTML report of a search binary.

    A single forward pass. Text before the first query marker is kept as the
    reference block and everything from the database summary onwards as the
    summary. Output without any query marker gives a result with no queries.
    """

    raw_lines = list(lines)
    result = SearchResult(command_line=command_line, raw_lines=raw_lines)
    state = _ParseState()
    reference: List[str] = []
    summary: List[str] = []

    for raw_line in raw_lines:
        kind = classify_line(raw_line, state)
        if kind == "noise":
            continue
        line = SCRIPT_RE.sub("", raw_line)

        if kind == "summary":
            summary.append(line)
        elif kind == "query":
            match = QUERY_RE.match(line)
            query_id = match.group(1).strip() if match else ""
            query_id = query_id or f"Query_{len(result.queries) + 1}"
            result.queries[query_id] = Query(id=query_id)
            state.query_id = query_id
            state.hit_id = None
        elif kind == "summary_start":
            state.query_id = None
            state.hit_id = None
            state.in_summary = True
            summary.append(line)
        elif kind == "reference":
            reference.append(line)
        elif kind == "hit":
            query = result.queries[state.query_id]
            hit_id, meta = parse_hit_header(line)
            hit_id = hit_id or f"hit_{len(query.hits) + 1}"
            query.hits[hit_id] = Hit(
                id=hit_id,
                meta=meta,
                header=line,
                linkable_id=parse_sequence_id(line),
            )
            state.hit_id = hit_id
        elif kind == "preamble":
            result.queries[state.query_id].preamble.append(line)
        else:
            hit = result.queries[state.query_id].hits[state.hit_id]
            hit.alignment_lines.append(line)
            if POSITION_ROW_RE.search(line):
                positions = parse_positions(line)
                if positions is not None:
                    hit.add_positions(*positions)

    result.reference_text = "".join(reference)
    result.summary_text = "".join(summary)
    return result
