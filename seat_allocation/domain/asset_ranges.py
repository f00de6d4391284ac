"""Parsing and formatting of operator-authored asset-ID range strings.

Asset-ID ranges such as ``"12-18, 20"`` or ``"Admin/WS/F-5/112-123"`` are
recorded for audit and display only. Merging is plain concatenation, so a
merged string may repeat or overlap earlier fragments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from seat_allocation.domain.exceptions import ValidationError


RANGE_SEPARATOR = ", "
DEFAULT_MAX_IDS = 10_000

_NUMBER_PART = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+)\s*)?$")
_LEGACY_TO = re.compile(r"\s+to\s+", re.IGNORECASE)


@dataclass(frozen=True)
class _RangeToken:
    prefix: str
    start: int
    end: int


def _split_prefix(token: str) -> tuple[str, str]:
    if "/" not in token:
        return "", token
    prefix, _, number_part = token.rpartition("/")
    return prefix.strip(), number_part


def _parse_token(token: str) -> Optional[_RangeToken]:
    prefix, number_part = _split_prefix(token)
    match = _NUMBER_PART.match(number_part)
    if match is None:
        return None
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) is not None else start
    if end < start:
        return None
    return _RangeToken(prefix=prefix, start=start, end=end)


def _parse_legacy(text: str) -> Optional[_RangeToken]:
    """Handle the older ``"prefix/001 to prefix/098"`` notation."""
    parts = _LEGACY_TO.split(text.strip())
    if len(parts) != 2:
        return None
    start_token = _parse_token(parts[0])
    end_token = _parse_token(parts[1])
    if start_token is None or end_token is None:
        return None
    if start_token.start != start_token.end or end_token.start != end_token.end:
        return None
    if end_token.start < start_token.start:
        return None
    return _RangeToken(prefix=start_token.prefix, start=start_token.start, end=end_token.start)


def _iter_tokens(text: Optional[str], strict: bool) -> Iterator[_RangeToken]:
    if text is None or not text.strip():
        return

    if _LEGACY_TO.search(text):
        legacy = _parse_legacy(text)
        if legacy is not None:
            yield legacy
            return

    for raw_token in text.split(","):
        if not raw_token.strip():
            continue
        token = _parse_token(raw_token)
        if token is None:
            if strict:
                raise ValidationError(f"malformed asset-ID token: '{raw_token.strip()}'")
            continue
        yield token


def _iter_bounded(
    text: Optional[str],
    strict: bool,
    max_ids: int,
) -> Iterator[_RangeToken]:
    """Yield tokens while their combined size stays within ``max_ids``."""
    total = 0
    for token in _iter_tokens(text, strict):
        size = token.end - token.start + 1
        if total + size > max_ids:
            if strict:
                raise ValidationError(
                    f"asset-ID range {token.start}-{token.end} exceeds the limit "
                    f"of {max_ids} ids"
                )
            continue
        total += size
        yield token


def iter_asset_ids(
    text: Optional[str],
    strict: bool = False,
    max_ids: int = DEFAULT_MAX_IDS,
) -> Iterator[int]:
    """Lazily yield asset IDs in input order."""
    for token in _iter_bounded(text, strict, max_ids):
        yield from range(token.start, token.end + 1)


def parse_asset_id_range(
    text: Optional[str],
    strict: bool = False,
    max_ids: int = DEFAULT_MAX_IDS,
) -> list[int]:
    """Expand ``"N"``, ``"N-M"`` and ``"prefix/N-M"`` tokens into integers.

    Order follows the input. Malformed tokens, and tokens that would push the
    total past ``max_ids``, are skipped unless ``strict`` is set, in which
    case the first one raises ``ValidationError``.
    """
    return list(iter_asset_ids(text, strict, max_ids))


def expand_asset_id_tags(
    text: Optional[str],
    pad_width: int = 3,
    strict: bool = False,
    max_ids: int = DEFAULT_MAX_IDS,
) -> list[str]:
    """Expand a range string into display tags, keeping each token's prefix."""
    tags: list[str] = []
    for token in _iter_bounded(text, strict, max_ids):
        for number in range(token.start, token.end + 1):
            padded = str(number).zfill(pad_width)
            tags.append(f"{token.prefix}/{padded}" if token.prefix else padded)
    return tags


def format_asset_id_ranges(asset_ids: Iterable[int]) -> str:
    """Collapse integers into the canonical ``"12-15, 20"`` form."""
    ordered = sorted(set(int(asset_id) for asset_id in asset_ids))
    if not ordered:
        return ""

    spans: list[str] = []
    span_start = previous = ordered[0]
    for current in ordered[1:]:
        if current == previous + 1:
            previous = current
            continue
        spans.append(_format_span(span_start, previous))
        span_start = previous = current
    spans.append(_format_span(span_start, previous))
    return RANGE_SEPARATOR.join(spans)


def _format_span(start: int, end: int) -> str:
    return str(start) if start == end else f"{start}-{end}"


def merge_asset_id_ranges(*fragments: Optional[str]) -> str:
    """Concatenate non-empty fragments; no interval union is attempted."""
    return RANGE_SEPARATOR.join(
        fragment.strip() for fragment in fragments if fragment and fragment.strip()
    )
