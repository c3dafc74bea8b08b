"""Text normalization applied before phonemization.

Grammar entries and hypotheses go through the same function so that their
phoneme sequences are comparable.
"""

from __future__ import annotations

import re
from typing import Iterable

_DISALLOWED_CHARS = re.compile(r"[^a-zA-Z0-9 ]")
_SPACE_RUNS = re.compile(r" +")


def normalize_text(text: str) -> str:
    """Canonicalize a raw string.

    Removes every character outside ``[a-zA-Z0-9 ]``, lowercases, collapses
    runs of spaces and trims the ends. ``"I'm  done!"`` becomes ``"im done"``.

    Args:
        text: Raw grammar entry or recognizer hypothesis

    Returns:
        Normalized string, possibly empty
    """
    cleaned = _DISALLOWED_CHARS.sub("", text)
    cleaned = _SPACE_RUNS.sub(" ", cleaned)
    return cleaned.strip().lower()


def normalize(text: str) -> list[str]:
    """Normalize a raw string into word tokens.

    Args:
        text: Raw text

    Returns:
        List of lowercase tokens (empty if nothing survives)
    """
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def filter_entries(raw_entries: Iterable[str]) -> list[tuple[str, str]]:
    """Pair each raw entry with its normalized form, dropping empty ones.

    Filtering happens on a fresh list before anything is indexed, so the
    position of a pair in the result is the index its phonemes will get.

    Args:
        raw_entries: Raw strings in their original order

    Returns:
        ``(raw, normalized)`` pairs in input order
    """
    pairs = []
    for raw in raw_entries:
        normalized = normalize_text(raw)
        if normalized:
            pairs.append((raw, normalized))
    return pairs
