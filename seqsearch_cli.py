#!/usr/bin/env python3
"""Command line front end for running a sequence similarity search.

Reads the query sequence(s) from a FASTA file (or stdin with ``-``), runs the
chosen BLAST+ algorithm against one or more configured corpora and prints the
hits per query, or the full structured result as JSON.

Corpora and binaries are discovered the same way as for the web service, from
the SEQSEARCH_* environment variables.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Sequence

from seqsearch.errors import SearchArgumentError, SearchInternalError
from seqsearch.log import configure_logging
from seqsearch.params import SearchRequest
from seqsearch.report import SearchResult
from seqsearch.service import SearchService, build_service


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a BLAST+ search and summarise the hits.")
    parser.add_argument("algorithm", nargs="?", help="Search algorithm (blastn, blastp, blastx, tblastn, tblastx)")
    parser.add_argument("query", nargs="?", help="FASTA file with the query sequence(s), or '-' for stdin")
    parser.add_argument(
        "--corpus",
        action="append",
        default=[],
        help="Corpus id or storage name to search; repeat for several",
    )
    parser.add_argument("--options", default="", help="Extra options passed to the search binary")
    parser.add_argument("--json", action="store_true", help="Print the structured result as JSON")
    parser.add_argument("--list-corpora", action="store_true", help="List known corpora and exit")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args(argv)
    if not args.list_corpora and (not args.algorithm or not args.query):
        parser.error("algorithm and query are required unless --list-corpora is given")
    return args


def read_query(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def resolve_corpus_ids(service: SearchService, names: Sequence[str]) -> List[str]:
    by_storage_name = {entry.storage_name: entry.id for entry in service.corpora().values()}
    return [by_storage_name.get(name, name) for name in names]


def format_summary(result: SearchResult) -> str:
    lines: List[str] = []
    if not result.queries:
        lines.append("No queries found in the search output.")
    for query in result.queries.values():
        lines.append(f"Query: {query.id} ({len(query.hits)} hit(s))")
        for hit in query.hits.values():
            span = ""
            if hit.coordinates:
                low, high = hit.coordinates[0]
                span = f" [{low}-{high}]"
            lines.append(f"  {hit.id}{span} {hit.meta}".rstrip())
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        configure_logging(args.log_level)
        service = build_service()
    except (RuntimeError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.list_corpora:
        for entry in service.corpora().values():
            print(f"{entry.id}\t{entry.kind}\t{entry.storage_name}\t{entry.title}")
        return 0

    corpus_ids = resolve_corpus_ids(service, args.corpus)
    request = SearchRequest(
        algorithm=args.algorithm,
        sequence_text=read_query(args.query),
        corpus_ids=tuple(corpus_ids),
        option_string=args.options.strip(),
    )
    try:
        result = service.run(request)
    except SearchArgumentError as exc:
        print(f"Invalid search: {exc}", file=sys.stderr)
        return 1
    except SearchInternalError as exc:
        print(f"Search failed (status {exc.status}): {exc.message.strip()}", file=sys.stderr)
        return 3

    if args.json:
        print(json.dumps(service.result_payload(result, corpus_ids), indent=2))
    else:
        print(format_summary(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
