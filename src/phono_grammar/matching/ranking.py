"""Ranking of grammar entries against recognizer hypotheses.

Every hypothesis is compared with every grammar entry by phoneme edit
distance. The pairs are stable-sorted by distance, so equal distances keep
hypothesis-major, grammar-index order and the first k survive.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Sequence

from phono_grammar.logging import get_logger
from phono_grammar.phonemes.cache import GrammarEntry, PhonemeDatabase
from phono_grammar.phonemes.distance import levenshtein_distance
from phono_grammar.phonemes.normalizer import normalize, normalize_text
from phono_grammar.phonemes.oracle import PhonemeOracle

logger = get_logger(__name__)


@dataclass(frozen=True)
class Hypothesis:
    """A recognizer hypothesis after normalization and phonemization."""

    raw_text: str
    tokens: tuple[str, ...]
    phonemes: tuple[str, ...]

    @property
    def normalized_text(self) -> str:
        return " ".join(self.tokens)


@dataclass(frozen=True)
class MatchCandidate:
    """Distance between one hypothesis and one grammar entry."""

    grammar_index: int
    distance: int
    hypothesis_index: int = 0


def candidate_sort_key(candidate: MatchCandidate) -> int:
    """Sort key for ranking; ties are left to the stable sort."""
    return candidate.distance


@dataclass
class MatchResult:
    """Outcome of matching a hypothesis set against a grammar.

    Attributes:
        matches: Display text of the selected entries, best first
        raw_text: Original text of the best entry
        confidence: Confidence of the best entry (0.0 when nothing matched)
        candidates: The selected candidates, best first
        hypothesis_phonemes: Phonemes of the hypothesis behind the best match
        reference_phonemes: Phonemes of the best grammar entry
    """

    matches: list[str] = field(default_factory=list)
    raw_text: str = ""
    confidence: float = 0.0
    candidates: list[MatchCandidate] = field(default_factory=list)
    hypothesis_phonemes: str = ""
    reference_phonemes: str = ""

    @property
    def best(self) -> str | None:
        """Best display text, or None if nothing matched."""
        return self.matches[0] if self.matches else None

    @property
    def is_empty(self) -> bool:
        return not self.matches

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "matches": list(self.matches),
            "raw_text": self.raw_text,
            "confidence": self.confidence,
            "candidates": [
                {
                    "grammar_index": c.grammar_index,
                    "distance": c.distance,
                    "hypothesis_index": c.hypothesis_index,
                }
                for c in self.candidates
            ],
            "hypothesis_phonemes": self.hypothesis_phonemes,
            "reference_phonemes": self.reference_phonemes,
        }


def phonemize_hypotheses(texts: Sequence[str], oracle: PhonemeOracle) -> list[Hypothesis]:
    """Normalize and phonemize recognizer hypotheses.

    Hypotheses that normalize to nothing or get no phonemes are skipped.
    Oracle failures are not caught: a hypothesis that cannot be phonemized
    fails the whole request.

    Args:
        texts: Raw hypotheses, best first
        oracle: Grapheme-to-phoneme oracle

    Returns:
        Phonemized hypotheses in input order

    Raises:
        OracleUnavailable: If the oracle cannot be invoked
    """
    hypotheses = []
    for text in texts:
        tokens = normalize(text)
        if not tokens:
            continue

        phonemes = oracle.phoneticize(" ".join(tokens))
        if not phonemes:
            logger.debug("Skipping hypothesis without phonemes", extra={"hypothesis": text})
            continue

        hypotheses.append(
            Hypothesis(raw_text=text, tokens=tuple(tokens), phonemes=tuple(phonemes))
        )
    return hypotheses


def rank(
    hypothesis_phoneme_sets: Sequence[Sequence[str]],
    grammar: PhonemeDatabase,
    k: int = 1,
    workers: int = 1,
) -> list[MatchCandidate]:
    """Rank grammar entries against a set of hypothesis phoneme sequences.

    Args:
        hypothesis_phoneme_sets: One phoneme sequence per hypothesis
        grammar: Phoneme database to match against
        k: Maximum number of candidates to return
        workers: Threads used to score grammar entries (1 = serial)

    Returns:
        Up to k candidates in non-decreasing distance order

    Raises:
        ValueError: If k is smaller than 1
    """
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")

    logger.debug(
        "Ranking hypotheses",
        extra={"hypotheses": len(hypothesis_phoneme_sets), "grammar_size": len(grammar)},
    )

    candidates: list[MatchCandidate] = []

    if workers > 1 and len(grammar) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for h_index, phonemes in enumerate(hypothesis_phoneme_sets):
                distances = executor.map(
                    lambda entry, phonemes=phonemes: levenshtein_distance(phonemes, entry.phonemes),
                    grammar.entries,
                )
                candidates.extend(
                    MatchCandidate(grammar_index=g_index, distance=distance, hypothesis_index=h_index)
                    for g_index, distance in enumerate(distances)
                )
    else:
        for h_index, phonemes in enumerate(hypothesis_phoneme_sets):
            for g_index, entry in enumerate(grammar.entries):
                candidates.append(
                    MatchCandidate(
                        grammar_index=g_index,
                        distance=levenshtein_distance(phonemes, entry.phonemes),
                        hypothesis_index=h_index,
                    )
                )

    candidates.sort(key=candidate_sort_key)
    return candidates[:k]


def compute_confidence(distance: int, entry: GrammarEntry) -> float:
    """Confidence of a match, relative to the matched entry's length.

    Args:
        distance: Edit distance to the entry
        entry: Matched grammar entry

    Returns:
        ``1 - distance / len(entry.phonemes)`` clamped to [0, 1]
    """
    confidence = 1.0 - distance / len(entry.phonemes)
    return min(1.0, max(0.0, confidence))


def assemble_result(
    candidates: Sequence[MatchCandidate],
    grammar: PhonemeDatabase,
    hypotheses: Sequence[Hypothesis] = (),
) -> MatchResult:
    """Turn ranked candidates into a MatchResult.

    Args:
        candidates: Ranked candidates, best first
        grammar: Database the candidates index into
        hypotheses: Hypotheses the candidates' ``hypothesis_index`` refers to

    Returns:
        MatchResult (empty when there are no candidates)
    """
    if not candidates:
        return MatchResult()

    best = candidates[0]
    best_entry = grammar[best.grammar_index]

    hypothesis_phonemes = ""
    if 0 <= best.hypothesis_index < len(hypotheses):
        hypothesis_phonemes = " ".join(hypotheses[best.hypothesis_index].phonemes)

    return MatchResult(
        matches=[grammar[c.grammar_index].display_text for c in candidates],
        raw_text=best_entry.raw_text,
        confidence=compute_confidence(best.distance, best_entry),
        candidates=list(candidates),
        hypothesis_phonemes=hypothesis_phonemes,
        reference_phonemes=" ".join(best_entry.phonemes),
    )


def match_hypotheses(
    texts: Sequence[str],
    grammar: PhonemeDatabase,
    oracle: PhonemeOracle,
    k: int = 1,
    workers: int = 1,
) -> MatchResult:
    """Match raw hypotheses against a grammar.

    Args:
        texts: Raw recognizer hypotheses, best first
        grammar: Phoneme database
        oracle: Oracle used for the hypotheses
        k: Number of results to return
        workers: Threads used to score grammar entries

    Returns:
        MatchResult; empty if the grammar or the usable hypotheses are empty

    Raises:
        OracleUnavailable: If a hypothesis cannot be phonemized
    """
    hypotheses = phonemize_hypotheses(texts, oracle)
    candidates = rank([h.phonemes for h in hypotheses], grammar, k=k, workers=workers)
    return assemble_result(candidates, grammar, hypotheses)


def calculate_against(
    text: str,
    references: Sequence[str],
    oracle: PhonemeOracle,
) -> list[int]:
    """Phoneme edit distance from one input to each reference string.

    References that normalize to nothing count as empty phoneme sequences,
    so the output always lines up with ``references``.

    Args:
        text: Input sentence
        references: Reference sentences
        oracle: Grapheme-to-phoneme oracle

    Returns:
        One distance per reference, in order
    """

    def phonemes_for(value: str) -> list[str]:
        normalized = normalize_text(value)
        return oracle.phoneticize(normalized) if normalized else []

    input_phonemes = phonemes_for(text)
    return [levenshtein_distance(phonemes_for(ref), input_phonemes) for ref in references]
