from __future__ import annotations

import re
from collections import Counter
from typing import List, Optional

_NON_LETTER_RE = re.compile(r"[^A-Z]", re.IGNORECASE)
_AMBIGUOUS_RE = re.compile(r"[NX]", re.IGNORECASE)
_DEFINITION_LINE_RE = re.compile(r"^>.*$", re.MULTILINE)

MIN_GUESS_LENGTH = 10
NUCLEOTIDE_FRACTION = 0.9


def guess_sequence_type(sequence: str) -> Optional[str]:
    """Return ``"nucleotide"``, ``"protein"`` or None when there is too little to go on.

    Non-letters and the ambiguity codes N/X are ignored. More than 90% ACGTU
    counts as nucleotide.
    """

    cleaned = _AMBIGUOUS_RE.sub("", _NON_LETTER_RE.sub("", sequence))
    if len(cleaned) < MIN_GUESS_LENGTH:
        return None

    composition = Counter(cleaned.upper())
    nucleotide_count = sum(composition[base] for base in "ACGTU")
    if nucleotide_count > NUCLEOTIDE_FRACTION * len(cleaned):
        return "nucleotide"
    return "protein"


def split_fasta(text: str) -> List[str]:
    # The first sequence does not need a definition line.
    return [chunk for chunk in _DEFINITION_LINE_RE.split(text) if chunk.strip()]


def type_of_sequences(text: str) -> Optional[str]:
    kinds = {kind for kind in (guess_sequence_type(chunk) for chunk in split_fasta(text)) if kind}
    if not kinds:
        return None
    if len(kinds) > 1:
        raise ValueError("Query sequences mix nucleotide and protein input; submit one kind at a time.")
    return kinds.pop()
