from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from .compiler import compile_search
from .errors import SearchArgumentError, SearchInternalError
from .hyperlinks import (
    DEFAULT_OVERRIDES,
    HyperlinkOverrides,
    load_overrides,
    resolve_hit_line,
    retrieval_link_for_all,
)
from .params import SearchRequest
from .report import Hit, SearchResult, parse_report
from .runner import ArgumentFailure, InternalFailure, run_command, scratch_file
from .settings import CorpusEntry, Settings

logger = logging.getLogger(__name__)

ENTRY_TIMEOUT_SECONDS = 60


@dataclass(frozen=True)
class EntryBatch:
    text: str
    requested: List[str]
    found: int

    @property
    def complete(self) -> bool:
        return self.found == len(self.requested)


class SearchService:
    """Run searches against the configured corpora.

    One instance serves any number of concurrent requests: it only reads the
    settings registries, and every search gets its own scratch files.
    """

    def __init__(self, settings: Settings, overrides: HyperlinkOverrides = DEFAULT_OVERRIDES) -> None:
        self.settings = settings
        self.overrides = overrides

    def algorithms(self) -> List[str]:
        return list(self.settings.binaries)

    def corpora(self) -> Mapping[str, CorpusEntry]:
        return self.settings.corpora

    def submit(
        self,
        algorithm: str,
        sequence_text: str,
        corpus_ids: Sequence[str],
        option_string: str = "",
    ) -> SearchResult:
        request = SearchRequest(
            algorithm=algorithm,
            sequence_text=sequence_text,
            corpus_ids=tuple(corpus_ids),
            option_string=option_string or "",
        )
        return self.run(request)

    def run(self, request: SearchRequest) -> SearchResult:
        logger.debug("algorithm : %s", request.algorithm)
        logger.debug("sequence  : %s", request.sequence_text)
        logger.debug("corpora   : %s", list(request.corpus_ids))
        logger.debug("options   : %s", request.option_string)

        with scratch_file("seqsearch_query_", ".fa") as query_path:
            command = compile_search(request, self.settings, query_path=query_path)
            outcome = run_command(command.args, timeout=self.settings.timeout_seconds)

        if isinstance(outcome, ArgumentFailure):
            raise SearchArgumentError(outcome.message)
        if isinstance(outcome, InternalFailure):
            raise SearchInternalError(outcome.status, outcome.message)
        return parse_report(outcome.lines, command_line=command.command_line)

    def resolve_hit(self, hit: Hit, corpus_ids: Sequence[str]) -> str:
        return resolve_hit_line(
            hit.header,
            hit.linkable_id,
            corpus_ids,
            hit.coordinates,
            self.overrides,
            url_prefix=self.settings.url_prefix,
        )

    def result_payload(self, result: SearchResult, corpus_ids: Sequence[str]) -> Dict[str, object]:
        all_link = retrieval_link_for_all(result, corpus_ids)
        return {
            "command": result.command_line,
            "queries": [
                {
                    "id": query.id,
                    "preamble": "".join(query.preamble),
                    "hits": [
                        {
                            "id": hit.id,
                            "meta": hit.meta,
                            "linkable_id": hit.linkable_id,
                            "header": self.resolve_hit(hit, corpus_ids),
                            "alignment": "".join(hit.alignment_lines),
                            "coordinates": [list(pair) for pair in hit.coordinates],
                        }
                        for hit in query.hits.values()
                    ],
                }
                for query in result.queries.values()
            ],
            "summary": result.summary_text,
            "reference": result.reference_text.strip(),
            "retrieval_link": f"{self.settings.url_prefix}{all_link}" if all_link else None,
            "retrievable_count": len(result.linkable_ids()),
        }

    def fetch_entries(self, sequence_ids: Sequence[str], corpus_ids: Sequence[str]) -> EntryBatch:
        """Retrieve FASTA records for ``sequence_ids`` from the given corpora.

        The search binary does not say which corpus a hit came from, so all
        corpora of the search are queried.
        """

        requested = list(dict.fromkeys(item for item in sequence_ids if item))
        if not requested:
            raise SearchArgumentError("At least one sequence id is required.")
        unknown = [corpus_id for corpus_id in corpus_ids if corpus_id not in self.settings.corpora]
        if not corpus_ids or unknown:
            raise SearchArgumentError(
                f"Databases should be a list of one or more of the following ids: {', '.join(self.settings.corpora)}."
            )
        if not self.settings.retrieval_binary:
            raise SearchInternalError(127, "Entry retrieval is not configured")

        storage_names = " ".join(self.settings.corpora[corpus_id].storage_name for corpus_id in corpus_ids)
        args = [self.settings.retrieval_binary, "-db", storage_names, "-entry", " ".join(requested)]
        logger.info("Searching for: '%s' in '%s'", ", ".join(requested), ", ".join(corpus_ids))
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=ENTRY_TIMEOUT_SECONDS,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise SearchInternalError(124, "Entry retrieval timed out") from exc
        except OSError as exc:
            raise SearchInternalError(127, str(exc)) from exc

        text = completed.stdout or ""
        found = text.count(">")
        batch = EntryBatch(text=text, requested=requested, found=found)
        if not batch.complete:
            logger.warning(
                "Expected %d sequence(s) for %s but found %d. Corpora may be incorrectly formatted.",
                len(requested),
                ", ".join(requested),
                found,
            )
        return batch


def build_service(settings: Optional[Settings] = None, overrides: Optional[HyperlinkOverrides] = None) -> SearchService:
    settings = settings or Settings.from_env()
    if overrides is None:
        overrides = load_overrides(settings.hyperlinks) if settings.hyperlinks else DEFAULT_OVERRIDES
    return SearchService(settings, overrides)
