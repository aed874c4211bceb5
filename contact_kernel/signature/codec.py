"""
Stealth Signature Codec — hides a contact identifier in signature separators.

A signature template is an ordered list of literal chunks. Between each pair
of chunks sits one separator symbol; the six symbols below look alike when
rendered but are distinct code points, so each slot carries one base-6 digit.

    chunks:  [" Ann Lee ", " acme.io ", " 555-0100 ", " "]
    id 42 -> " Ann Lee " + "¦" + " acme.io " + "¦" + " 555-0100 " + "|" + " "

Capacity of a template is 6 ** (len(chunks) - 1). Identifiers outside that
range are rejected, never wrapped.
"""

import re
from itertools import product
from typing import Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from contact_kernel.core.config import DEFAULT_SIGNATURE_CHUNKS
from contact_kernel.core.errors import DecodeError, SignatureOverflowError, ValidationError

SEPARATORS: Tuple[str, ...] = (
    "|",   # 0  U+007C VERTICAL LINE
    "¦",   # 1  BROKEN BAR
    "ǀ",   # 2  LATIN LETTER DENTAL CLICK
    "｜",   # 3  FULLWIDTH VERTICAL LINE
    "┃",   # 4  BOX DRAWINGS HEAVY VERTICAL
    "║",   # 5  BOX DRAWINGS DOUBLE VERTICAL
)

BASE = len(SEPARATORS)

_DIGIT_OF = {sep: digit for digit, sep in enumerate(SEPARATORS)}
_TRAILING_NUMBER = re.compile(r"(\d+)$")


class DecodeResult(BaseModel):
    """Outcome of a single decode attempt against one chunk layout."""

    ok: bool
    value: Optional[int] = None
    error: Optional[str] = None


class MatchOutcome(BaseModel):
    """Matched(numeric_id) when ``matched`` is set, otherwise Exhausted."""

    matched: bool
    numeric_id: Optional[int] = None
    chunks: Optional[List[str]] = None
    attempts: int = 0

    @classmethod
    def exhausted(cls, attempts: int) -> "MatchOutcome":
        return cls(matched=False, attempts=attempts)


def capacity(chunks: Sequence[str]) -> int:
    """Number of distinct identifiers a template can carry."""
    return BASE ** (len(chunks) - 1)


def _to_digits(number: int, width: int) -> List[int]:
    """Fixed-width base-6 digits, most significant first, zero padded."""
    digits = [0] * width
    for i in range(width - 1, -1, -1):
        number, digits[i] = divmod(number, BASE)
    return digits


def encode(numeric_id: int, chunks: Sequence[str]) -> str:
    """
    Interleave ``chunks`` with the separators encoding ``numeric_id``.

    Raises SignatureOverflowError if the id is negative or does not fit.
    """
    if not chunks:
        raise ValidationError("A signature template needs at least one chunk")

    slots = len(chunks) - 1
    limit = capacity(chunks)
    if numeric_id < 0 or numeric_id >= limit:
        raise SignatureOverflowError(numeric_id, slots, limit)

    digits = _to_digits(numeric_id, slots)
    parts = []
    for i, chunk in enumerate(chunks):
        parts.append(chunk)
        if i < slots:
            parts.append(SEPARATORS[digits[i]])
    return "".join(parts)


def separator_offsets(chunks: Sequence[str]) -> List[int]:
    """Character offset of each separator slot for a chunk layout."""
    offsets = []
    position = 0
    for chunk in chunks[:-1]:
        position += len(chunk)
        offsets.append(position)
        position += 1
    return offsets


def decode(text: str, chunks: Sequence[str]) -> int:
    """
    Recover the identifier from ``text`` laid out as ``chunks``.

    Only the separator positions are read; chunk text is not compared.
    Raises DecodeError on a short text or a non-separator character.
    """
    value = 0
    for slot, offset in enumerate(separator_offsets(chunks)):
        if offset >= len(text):
            raise DecodeError(
                f"Separator slot {slot} at offset {offset} is past the end "
                f"of the text (length {len(text)})"
            )
        char = text[offset]
        digit = _DIGIT_OF.get(char)
        if digit is None:
            raise DecodeError(
                f"Character {char!r} at offset {offset} is not a separator"
            )
        value = value * BASE + digit
    return value


def decode_attempt(text: str, chunks: Sequence[str]) -> DecodeResult:
    """decode() as a value: failures come back as ``ok=False``."""
    try:
        return DecodeResult(ok=True, value=decode(text, chunks))
    except DecodeError as e:
        return DecodeResult(ok=False, error=str(e))


def _chunk_forms(chunk: str) -> List[str]:
    forms = [chunk, chunk.lstrip(), chunk.rstrip(), chunk.strip()]
    unique = []
    for form in forms:
        if form not in unique:
            unique.append(form)
    return unique


def chunk_variants(chunks: Sequence[str]) -> List[List[str]]:
    """
    Whitespace variants of a template that mail clients commonly produce.

    Every chunk may lose its leading and/or trailing whitespace. Variants
    that put the separators at the same offsets decode identically, so only
    the first of each offset layout is kept. The template itself comes first.
    """
    variants: List[List[str]] = []
    seen = set()
    for combo in product(*(_chunk_forms(c) for c in chunks)):
        layout = tuple(separator_offsets(combo))
        if layout in seen:
            continue
        seen.add(layout)
        variants.append(list(combo))
    return variants


def _candidate_windows(text: str, chunks: Sequence[str]) -> List[str]:
    """
    The text itself, then the text from each occurrence of the first chunk's
    visible core (signatures quoted inside a longer reply body).
    """
    windows = [text]
    core = chunks[0].strip() if chunks else ""
    if not core:
        return windows
    start = text.find(core)
    while start != -1:
        window = text[start:]
        if window not in windows:
            windows.append(window)
        start = text.find(core, start + 1)
    return windows


def robust_decode(
    text: str,
    known_ids: Iterable[int],
    chunks: Optional[Sequence[str]] = None,
) -> MatchOutcome:
    """
    Best-effort decode tolerant to chunk-boundary whitespace changes.

    Returns the first decode, in window then variant order, whose value is
    one of ``known_ids``. Not sound against arbitrary reformatting.
    ``chunks`` defaults to the standard signature template.
    """
    chunks = list(chunks) if chunks is not None else list(DEFAULT_SIGNATURE_CHUNKS)
    wanted = set(known_ids)
    attempts = 0
    if not wanted:
        return MatchOutcome.exhausted(attempts)

    variants = chunk_variants(chunks)
    for window in _candidate_windows(text, chunks):
        for variant in variants:
            attempts += 1
            result = decode_attempt(window, variant)
            if result.ok and result.value in wanted:
                return MatchOutcome(
                    matched=True,
                    numeric_id=result.value,
                    chunks=variant,
                    attempts=attempts,
                )
    return MatchOutcome.exhausted(attempts)


def contact_numeric_id(contact_id: str) -> int:
    """Numeric part of a contact id, e.g. ``contact_42`` -> 42."""
    match = _TRAILING_NUMBER.search(contact_id)
    if not match:
        raise ValidationError(f"Contact id {contact_id!r} has no numeric suffix")
    return int(match.group(1))
