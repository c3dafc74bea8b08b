"""Recognizers: the post-processing variants behind one interface.

``SentenceListRecognizer`` picks whole grammar entries, ``WordListRecognizer``
rebuilds the best hypothesis from a word list. ``create_recognizer`` chooses
between them from ``MatcherSettings``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from phono_grammar.config import MatcherSettings
from phono_grammar.errors import ErrorContext
from phono_grammar.logging import get_logger
from phono_grammar.matching.ranking import (
    MatchResult,
    compute_confidence,
    match_hypotheses,
    phonemize_hypotheses,
    rank,
)
from phono_grammar.phonemes.cache import PhonemeCache, PhonemeDatabase
from phono_grammar.phonemes.oracle import PhonemeOracle, create_oracle

logger = get_logger(__name__)


class Recognizer(ABC):
    """Abstract base class for grammar-constrained post-processors."""

    name: str = "recognizer"

    def __init__(self, database: PhonemeDatabase, oracle: PhonemeOracle):
        self.database = database
        self.oracle = oracle

    @abstractmethod
    def recognize(self, hypotheses: Sequence[str]) -> MatchResult:
        """Match an n-best list against the grammar.

        Args:
            hypotheses: Recognizer hypotheses, best first

        Returns:
            MatchResult

        Raises:
            OracleUnavailable: If a hypothesis cannot be phonemized
        """
        pass


class SentenceListRecognizer(Recognizer):
    """Matches the n-best list against a list of expected sentences."""

    name = "sentences"

    def __init__(
        self,
        database: PhonemeDatabase,
        oracle: PhonemeOracle,
        k: int = 1,
        workers: int = 1,
    ):
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        super().__init__(database, oracle)
        self.k = k
        self.workers = workers

    def recognize(self, hypotheses: Sequence[str]) -> MatchResult:
        result = match_hypotheses(
            hypotheses,
            self.database,
            self.oracle,
            k=self.k,
            workers=self.workers,
        )
        logger.info(
            "Sentence match",
            extra={"best": result.best, "confidence": round(result.confidence, 3)},
        )
        return result


def match_word_by_word(
    hypothesis: str,
    word_grammar: PhonemeDatabase,
    oracle: PhonemeOracle,
) -> MatchResult:
    """Replace every word of a hypothesis with its closest grammar word.

    Each word is ranked on its own (k=1); there is no joint scoring across
    words. Words with no phonemes are skipped.

    Args:
        hypothesis: Best recognizer hypothesis
        word_grammar: Database of single words
        oracle: Grapheme-to-phoneme oracle

    Returns:
        MatchResult with one space-joined match and the mean word confidence

    Raises:
        OracleUnavailable: If a word cannot be phonemized
    """
    display_words: list[str] = []
    raw_words: list[str] = []
    confidences: list[float] = []
    candidates = []

    for word in hypothesis.split():
        phonemized = phonemize_hypotheses([word], oracle)
        if not phonemized:
            continue

        ranked = rank([phonemized[0].phonemes], word_grammar, k=1)
        if not ranked:
            break  # empty grammar

        candidate = ranked[0]
        entry = word_grammar[candidate.grammar_index]
        display_words.append(entry.display_text)
        raw_words.append(entry.raw_text)
        confidences.append(compute_confidence(candidate.distance, entry))
        candidates.append(candidate)

    if not display_words:
        return MatchResult()

    return MatchResult(
        matches=[" ".join(display_words)],
        raw_text=" ".join(raw_words),
        confidence=sum(confidences) / len(confidences),
        candidates=candidates,
    )


class WordListRecognizer(Recognizer):
    """Corrects the best hypothesis word by word against a word list."""

    name = "words"

    def recognize(self, hypotheses: Sequence[str]) -> MatchResult:
        if not hypotheses:
            return MatchResult()

        result = match_word_by_word(hypotheses[0], self.database, self.oracle)
        logger.info(
            "Word-list match",
            extra={"best": result.best, "confidence": round(result.confidence, 3)},
        )
        return result


def create_recognizer(
    settings: MatcherSettings | None = None,
    grammar_path: Path | str | None = None,
    entries: Sequence[str] | None = None,
    oracle: PhonemeOracle | None = None,
    cache: PhonemeCache | None = None,
) -> Recognizer:
    """Build the recognizer described by ``settings``.

    Exactly one of ``grammar_path`` (cached, persisted) and ``entries``
    (in-memory) must be given.

    Args:
        settings: Matcher settings (defaults if omitted)
        grammar_path: Grammar file, one entry per line
        entries: In-memory grammar entries
        oracle: Oracle to use instead of the configured one
        cache: Shared cache to use instead of a new one

    Returns:
        Recognizer instance

    Raises:
        ValueError: If neither or both grammar sources are given
        OracleUnavailable: If the grammar could not be phonemized at all
    """
    if (grammar_path is None) == (entries is None):
        raise ValueError("Pass exactly one of grammar_path or entries")

    settings = settings or MatcherSettings()
    if cache is None:
        cache = PhonemeCache(
            oracle or create_oracle(settings.oracle),
            cache_dir=settings.cache_dir,
            persist=settings.persist,
        )
    oracle = oracle or cache.oracle

    with ErrorContext(
        "load grammar",
        context={"grammar": str(grammar_path or "<memory>")},
        level=logging.DEBUG,
    ):
        if grammar_path is not None:
            database = cache.load_or_build_file(grammar_path)
        else:
            database = cache.load_or_build(None, entries)

    if database.is_empty:
        logger.warning("Grammar is empty after normalization", extra={"source_id": database.source_id})

    if settings.recognizer == "words":
        return WordListRecognizer(database, oracle)
    return SentenceListRecognizer(database, oracle, k=settings.k, workers=settings.workers)
