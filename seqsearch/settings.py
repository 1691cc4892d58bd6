from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence

from .params import to_float, to_int

logger = logging.getLogger(__name__)

SEARCH_ALGORITHMS = ("blastn", "blastp", "blastx", "tblastn", "tblastx")
RETRIEVAL_BINARY = "blastdbcmd"
CORPUS_KINDS = {"nucleotide", "protein"}

_MULTIPART_VOLUME_RE = re.compile(r".+/\S+\d{2}$")


@dataclass(frozen=True)
class CorpusEntry:
    id: str
    storage_name: str
    title: str
    kind: str

    @classmethod
    def from_storage_name(cls, storage_name: str, title: str, kind: str) -> "CorpusEntry":
        normalized = kind.strip().lower()
        if normalized not in CORPUS_KINDS:
            raise ValueError(f"Unknown corpus kind '{kind}' for {storage_name}")
        digest = hashlib.md5(storage_name.encode("utf-8")).hexdigest()
        return cls(id=digest, storage_name=storage_name, title=title or Path(storage_name).name, kind=normalized)


@dataclass(frozen=True)
class Settings:
    binaries: Mapping[str, str]
    corpora: Mapping[str, CorpusEntry]
    retrieval_binary: Optional[str] = None
    num_threads: int = 1
    timeout_seconds: Optional[float] = None
    log_level: str = "INFO"
    url_prefix: str = field(default="")
    # "package.module:attribute" naming the hyperlink overrides to install.
    hyperlinks: Optional[str] = None

    def __post_init__(self) -> None:
        # Registries are shared by concurrent searches; freeze them here.
        object.__setattr__(self, "binaries", MappingProxyType(dict(self.binaries)))
        object.__setattr__(self, "corpora", MappingProxyType(dict(self.corpora)))
        if self.num_threads <= 0:
            raise ValueError("num_threads must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        database_dir = str(env.get("SEQSEARCH_DATABASE_DIR", "")).strip()
        if not database_dir:
            raise ValueError("SEQSEARCH_DATABASE_DIR is required")
        bin_dir = str(env.get("SEQSEARCH_BIN_DIR", "")).strip() or None

        binaries = find_binaries(bin_dir)
        retrieval_binary = find_binary(RETRIEVAL_BINARY, bin_dir)
        corpora = scan_corpora(retrieval_binary, Path(database_dir).expanduser())

        timeout_text = str(env.get("SEQSEARCH_TIMEOUT", "")).strip()
        return cls(
            binaries=binaries,
            corpora=corpora,
            retrieval_binary=retrieval_binary,
            num_threads=to_int(env.get("SEQSEARCH_NUM_THREADS", 1), positive=True, name="SEQSEARCH_NUM_THREADS"),
            timeout_seconds=to_float(timeout_text, positive=True, name="SEQSEARCH_TIMEOUT") if timeout_text else None,
            log_level=str(env.get("SEQSEARCH_LOG_LEVEL", "INFO")).strip().upper() or "INFO",
            url_prefix=str(env.get("SEQSEARCH_URL_PREFIX", "")).rstrip("/"),
            hyperlinks=str(env.get("SEQSEARCH_HYPERLINKS", "")).strip() or None,
        )

    def corpus_ids_by_kind(self, kind: str) -> List[str]:
        return [corpus_id for corpus_id, entry in self.corpora.items() if entry.kind == kind]


def find_binary(name: str, bin_dir: Optional[str] = None) -> str:
    candidate = os.path.join(bin_dir, name) if bin_dir else name
    path = shutil.which(candidate)
    if not path:
        raise RuntimeError(
            f"Required command '{name}' is not installed or not on PATH. "
            "Download BLAST+ from https://blast.ncbi.nlm.nih.gov/ or set SEQSEARCH_BIN_DIR."
        )
    logger.info("Found %s at %s.", name, path)
    return path


def find_binaries(bin_dir: Optional[str] = None, names: Sequence[str] = SEARCH_ALGORITHMS) -> Dict[str, str]:
    return {name: find_binary(name, bin_dir) for name in names}


def is_multipart_volume(storage_name: str) -> bool:
    return _MULTIPART_VOLUME_RE.match(storage_name) is not None


def parse_corpus_listing(text: str) -> Dict[str, CorpusEntry]:
    """Parse ``blastdbcmd -list ... -list_outfmt "%p %f %t"`` output.

    Each line holds the molecule type, the storage path and a free-text title.
    Volumes of multi-part databases (``nr.00``, ``nr.01``) are skipped so only
    their alias entry is searchable.
    """

    if "BLAST Database error" in text:
        raise RuntimeError(f"Error listing search corpora: {text.strip()}")

    corpora: Dict[str, CorpusEntry] = {}
    for raw_line in text.splitlines():
        parts = raw_line.split()
        if len(parts) < 2:
            continue
        kind, storage_name, *title = parts
        if is_multipart_volume(storage_name):
            logger.info("Found a multi-part database volume at %s - ignoring it.", storage_name)
            continue
        entry = CorpusEntry.from_storage_name(storage_name, " ".join(title), kind)
        logger.info("Found %s corpus '%s' at %s.", entry.kind, entry.title, entry.storage_name)
        corpora[entry.id] = entry
    return corpora


def scan_corpora(blastdbcmd: str, database_dir: Path) -> Dict[str, CorpusEntry]:
    args = [blastdbcmd, "-recursive", "-list", str(database_dir), "-list_outfmt", "%p %f %t"]
    completed = subprocess.run(args, capture_output=True, text=True, check=False)
    listing = (completed.stdout or "") + (completed.stderr or "")
    corpora = parse_corpus_listing(listing)
    if not corpora:
        raise RuntimeError(f"No formatted search corpora found in '{database_dir}'.")
    return corpora
