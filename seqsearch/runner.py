from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# BLAST+ exit statuses, see https://www.ncbi.nlm.nih.gov/books/NBK279684/
ARGUMENT_STATUS = 1
INTERNAL_STATUSES = {2, 3, 4, 255}
SPAWN_FAILED_STATUS = 127
TIMED_OUT_STATUS = 124

ERROR_LINE_RE = re.compile(r"\(CArgException.*\)\s(.*)")


@dataclass(frozen=True)
class Success:
    lines: List[str]


@dataclass(frozen=True)
class ArgumentFailure:
    message: str


@dataclass(frozen=True)
class InternalFailure:
    status: int
    message: str


ProcessOutcome = Union[Success, ArgumentFailure, InternalFailure]


@contextmanager
def scratch_file(prefix: str, suffix: str = "") -> Iterator[Path]:
    """Yield a fresh temporary file path, deleted when the block exits."""

    handle, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    os.close(handle)
    path = Path(name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


def extract_argument_error(stderr: str) -> str:
    # BLAST+ usually wraps the useful part in a verbose CArgException line, but
    # sometimes prints the exact message, which is then used as is.
    for line in stderr.splitlines():
        match = ERROR_LINE_RE.search(line)
        if match:
            return match.group(1).strip()
    return stderr


def classify_exit(status: int, stdout_path: Path, stderr_path: Path) -> ProcessOutcome:
    if status == 0:
        with stdout_path.open("r", encoding="utf-8", errors="replace") as handle:
            return Success(lines=handle.readlines())

    stderr = stderr_path.read_text(encoding="utf-8", errors="replace")
    if status == ARGUMENT_STATUS:
        return ArgumentFailure(message=extract_argument_error(stderr))
    if status not in INTERNAL_STATUSES:
        logger.warning("Search exited with undocumented status %s", status)
    return InternalFailure(status=status, message=stderr)


def run_command(args: Sequence[str], *, timeout: Optional[float] = None) -> ProcessOutcome:
    """Run the search binary and classify how it ended.

    stdout and stderr are captured into scratch files that are removed on every
    path out of this function. On timeout the child is killed before the
    scratch files go away.
    """

    command_line = shlex.join(args)
    with scratch_file("seqsearch_result_") as stdout_path, scratch_file("seqsearch_error_") as stderr_path:
        try:
            with stdout_path.open("wb") as stdout_handle, stderr_path.open("wb") as stderr_handle:
                completed = subprocess.run(
                    list(args),
                    stdout=stdout_handle,
                    stderr=stderr_handle,
                    timeout=timeout,
                    check=False,
                )
        except subprocess.TimeoutExpired:
            outcome: ProcessOutcome = InternalFailure(
                status=TIMED_OUT_STATUS,
                message=f"Search timed out after {timeout} seconds",
            )
        except OSError as exc:
            outcome = InternalFailure(status=SPAWN_FAILED_STATUS, message=str(exc))
        else:
            outcome = classify_exit(completed.returncode, stdout_path, stderr_path)

    if isinstance(outcome, InternalFailure):
        logger.error(
            "Search failed with status %s. Command: %s. Error: %s",
            outcome.status,
            command_line,
            outcome.message.strip(),
        )
    elif isinstance(outcome, ArgumentFailure):
        logger.info("Search rejected its arguments: %s", outcome.message.strip())
    return outcome
