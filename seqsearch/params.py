from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Tuple

_CORPUS_SEPARATOR_RE = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class SearchRequest:
    algorithm: str
    sequence_text: str
    corpus_ids: Tuple[str, ...] = ()
    option_string: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SearchRequest":
        return cls(
            algorithm=to_text(payload.get("algorithm", payload.get("method"))).strip(),
            sequence_text=to_text(payload.get("sequence", payload.get("sequences"))),
            corpus_ids=parse_corpus_ids(payload.get("corpus_ids", payload.get("databases"))),
            option_string=to_text(payload.get("options")).strip(),
        )


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def parse_corpus_ids(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part for part in _CORPUS_SEPARATOR_RE.split(value.strip()) if part)
    if isinstance(value, (list, tuple)):
        return tuple(str(item).strip() for item in value if str(item).strip())
    raise ValueError("corpus_ids must be a list or a whitespace separated string")


def to_float(value: Any, *, name: str, positive: bool = False) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number") from exc
    if positive and parsed <= 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def to_int(value: Any, *, name: str, positive: bool = False) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a whole number") from exc
    if positive and parsed <= 0:
        raise ValueError(f"{name} must be positive")
    return parsed


def to_bool(value: object, *, default: bool = False, name: str = "value") -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in {0, 1}:
            return bool(value)
        raise ValueError(f"{name} must be a boolean")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "y", "on"}:
            return True
        if normalized in {"false", "0", "no", "n", "off", ""}:
            return False
    raise ValueError(f"{name} must be a boolean")
