from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .errors import SearchArgumentError
from .params import SearchRequest
from .settings import Settings

logger = logging.getLogger(__name__)

OPTION_CHARACTERS_RE = re.compile(r"[a-z0-9\-_. ']*", re.IGNORECASE)
# Flags the engine controls itself; "-out" also covers "-outfmt".
DISALLOWED_OPTIONS = ("-out", "-html", "-outfmt", "-db", "-query")


@dataclass(frozen=True)
class CompiledCommand:
    args: Tuple[str, ...]
    query_path: Path

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)


def validate_algorithm(request: SearchRequest, settings: Settings) -> None:
    if request.algorithm not in settings.binaries:
        raise SearchArgumentError(
            f"Search algorithm should be one of: {', '.join(settings.binaries)}."
        )


def validate_sequence(request: SearchRequest) -> None:
    if not request.sequence_text.strip():
        raise SearchArgumentError("Sequences should be a non-empty string.")


def validate_corpora(request: SearchRequest, settings: Settings) -> None:
    unknown = [corpus_id for corpus_id in request.corpus_ids if corpus_id not in settings.corpora]
    if not request.corpus_ids or unknown:
        raise SearchArgumentError(
            "Databases should be a list of one or more of the following ids: "
            f"{', '.join(settings.corpora)}."
        )


def split_options(option_string: str) -> List[str]:
    try:
        return shlex.split(option_string)
    except ValueError as exc:
        raise SearchArgumentError(f"Could not parse options: {exc}.") from exc


def validate_options(option_string: str) -> List[str]:
    """Check ``option_string`` and return it split into arguments.

    Disallowed flags are looked for in the unquoted arguments, since those are
    what the search binary receives: ``-o''ut`` arrives as ``-out``.
    """

    if not option_string:
        return []
    if OPTION_CHARACTERS_RE.fullmatch(option_string) is None:
        raise SearchArgumentError("Invalid characters detected in options.")
    user_options = split_options(option_string)
    for token in user_options:
        lowered = token.lower()
        for option in DISALLOWED_OPTIONS:
            if option in lowered:
                raise SearchArgumentError(f'Option "{option}" is prohibited.')
    return user_options


def validate_request(request: SearchRequest, settings: Settings) -> List[str]:
    validate_algorithm(request, settings)
    validate_sequence(request)
    validate_corpora(request, settings)
    return validate_options(request.option_string)


def default_options(request: SearchRequest, user_options: List[str], num_threads: int) -> List[str]:
    defaults = ["-html"]
    # blastn means blastn, not megablast, unless the caller picked a task.
    if request.algorithm == "blastn" and not any("task" in option.lower() for option in user_options):
        defaults.extend(["-task", "blastn"])
    if not any(option.lower() == "-num_threads" for option in user_options):
        defaults.extend(["-num_threads", str(num_threads)])
    return defaults


def compile_search(request: SearchRequest, settings: Settings, *, query_path: Path) -> CompiledCommand:
    """Validate ``request`` and build the argument vector for the search binary.

    The query sequence is written to ``query_path``, which the caller owns and
    removes. Corpus ids resolve to storage names passed as one space-joined
    ``-db`` argument, the form the search binary expects for multiple corpora.
    Nothing is spawned here and no shell is involved downstream.
    """

    user_options = validate_request(request, settings)

    query_path.write_text(request.sequence_text.rstrip("\n") + "\n", encoding="utf-8")

    storage_names = " ".join(settings.corpora[corpus_id].storage_name for corpus_id in request.corpus_ids)
    args: List[str] = [
        settings.binaries[request.algorithm],
        "-db",
        storage_names,
        "-query",
        str(query_path),
        *user_options,
        *default_options(request, user_options, settings.num_threads),
    ]
    compiled = CompiledCommand(args=tuple(args), query_path=query_path)
    logger.info("Compiled search command: %s", compiled.command_line)
    return compiled
