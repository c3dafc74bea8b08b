"""Edit distance over phoneme sequences."""

from __future__ import annotations

from typing import Sequence


def levenshtein_distance(a: Sequence[str], b: Sequence[str]) -> int:
    """Calculate Levenshtein (edit) distance between two phoneme sequences.

    Works on whole phoneme symbols, so ``["AY", "M"]`` and ``["AA", "M"]``
    differ by one substitution regardless of how the symbols are spelled.

    Args:
        a: First phoneme sequence
        b: Second phoneme sequence

    Returns:
        Minimum number of insertions, deletions and substitutions
    """
    # Keep the shorter sequence along the row
    if len(a) < len(b):
        a, b = b, a

    if len(b) == 0:
        return len(a)

    previous_row = list(range(len(b) + 1))
    current_row = [0] * (len(b) + 1)

    for i, token_a in enumerate(a):
        current_row[0] = i + 1

        for j, token_b in enumerate(b):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (token_a != token_b)

            current_row[j + 1] = min(insertions, deletions, substitutions)

        previous_row, current_row = current_row, previous_row

    return previous_row[len(b)]
