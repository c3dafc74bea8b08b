"""Matching of recognizer hypotheses against phonemized grammars."""

from phono_grammar.matching.ranking import (
    Hypothesis,
    MatchCandidate,
    MatchResult,
    assemble_result,
    calculate_against,
    candidate_sort_key,
    compute_confidence,
    match_hypotheses,
    phonemize_hypotheses,
    rank,
)
from phono_grammar.matching.recognizers import (
    Recognizer,
    SentenceListRecognizer,
    WordListRecognizer,
    create_recognizer,
    match_word_by_word,
)

__all__ = [
    "Hypothesis",
    "MatchCandidate",
    "MatchResult",
    "assemble_result",
    "calculate_against",
    "candidate_sort_key",
    "compute_confidence",
    "match_hypotheses",
    "phonemize_hypotheses",
    "rank",
    "Recognizer",
    "SentenceListRecognizer",
    "WordListRecognizer",
    "create_recognizer",
    "match_word_by_word",
]
