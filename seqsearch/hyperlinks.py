"""Cross-reference links for search hits.

Operators customise how hits are linked by configuring a
:class:`HyperlinkOverrides` with one or both builders:

``line_builder(context) -> Optional[str]``
    Builds the whole display fragment for the hit line. Returning None falls
    through to the link builders.

``link_builder(context) -> Optional[str]``
    Builds only the link target, which is wrapped in the standard fragment.
    Returning None leaves the hit line unlinked.

Without overrides every hit with a linkable id points at the entry retrieval
endpoint.
"""
from __future__ import annotations

import html
import importlib
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple
from urllib.parse import quote_plus

from .report import SearchResult

logger = logging.getLogger(__name__)

ENTRIES_PATH = "/entries"
# Common in sequence ids (lcl|..., gi|..., scaffold1:100-200) and harmless in a query string.
_SAFE_ID_CHARACTERS = "|:"


@dataclass(frozen=True)
class HitContext:
    sequence_id: str
    corpus_ids: Tuple[str, ...]
    coordinates: Tuple[Tuple[int, int], ...]


LineBuilder = Callable[[HitContext], Optional[str]]
LinkBuilder = Callable[[HitContext], Optional[str]]


@dataclass(frozen=True)
class HyperlinkOverrides:
    line_builder: Optional[LineBuilder] = None
    link_builder: Optional[LinkBuilder] = None


DEFAULT_OVERRIDES = HyperlinkOverrides()


def entries_link(sequence_ids: Sequence[str], corpus_ids: Sequence[str]) -> str:
    # Ids and corpus ids never contain whitespace; a single space, sent as "+", separates them.
    ids = quote_plus(" ".join(sequence_ids), safe=_SAFE_ID_CHARACTERS)
    corpora = quote_plus(" ".join(corpus_ids), safe="")
    return f"{ENTRIES_PATH}?id={ids}&corpus={corpora}"


def standard_link(context: HitContext) -> str:
    return entries_link([context.sequence_id], context.corpus_ids)


def link_fragment(sequence_id: str, link: str, url_prefix: str = "") -> str:
    href = html.escape(f"{url_prefix}{link}", quote=True)
    return f"><a href='{href}'>{html.escape(sequence_id)}</a> \n"


def resolve_hit_line(
    line: str,
    sequence_id: Optional[str],
    corpus_ids: Sequence[str],
    coordinates: Sequence[Tuple[int, int]] = (),
    overrides: HyperlinkOverrides = DEFAULT_OVERRIDES,
    *,
    url_prefix: str = "",
) -> str:
    if not sequence_id:
        logger.debug("No linkable id in hit line %r", line)
        return line

    context = HitContext(
        sequence_id=sequence_id,
        corpus_ids=tuple(corpus_ids),
        coordinates=tuple(tuple(pair) for pair in coordinates),
    )

    if overrides.line_builder is not None:
        logger.debug("Using custom hit line builder for %s", context)
        fragment = overrides.line_builder(context)
        if fragment is not None:
            return fragment

    if overrides.link_builder is not None:
        logger.debug("Using custom link builder for %s", context)
        link = overrides.link_builder(context)
    else:
        logger.debug("Using standard link builder for %s", context)
        link = standard_link(context)

    if link is None:
        logger.debug("No link added for %s", sequence_id)
        return line
    logger.debug("Added link for %s: %s", sequence_id, link)
    return link_fragment(sequence_id, link, url_prefix)


def retrieval_link_for_all(result: SearchResult, corpus_ids: Sequence[str]) -> Optional[str]:
    ids = result.linkable_ids()
    if not ids:
        return None
    return entries_link(ids, corpus_ids)


def load_overrides(reference: str) -> HyperlinkOverrides:
    """Load overrides named by ``"package.module:attribute"``.

    The attribute is either a :class:`HyperlinkOverrides` or a callable
    returning one. Failing to load it is a configuration error.
    """

    module_path, _, attribute = reference.partition(":")
    if not module_path or not attribute:
        raise ValueError(f"Hyperlink overrides must be given as 'module:attribute', not '{reference}'")
    try:
        module = importlib.import_module(module_path)
        target = getattr(module, attribute)
    except (ImportError, AttributeError) as exc:
        raise RuntimeError(f"Could not load hyperlink overrides '{reference}': {exc}") from exc

    overrides = target() if callable(target) else target
    if not isinstance(overrides, HyperlinkOverrides):
        raise RuntimeError(f"'{reference}' does not provide HyperlinkOverrides")
    logger.info("Loaded hyperlink overrides from %s.", reference)
    return overrides
