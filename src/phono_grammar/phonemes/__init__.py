"""Phoneme layer: normalization, G2P oracles, edit distance and caching."""

from phono_grammar.phonemes.cache import (
    GrammarEntry,
    PhonemeCache,
    PhonemeDatabase,
    PhonemeSnapshot,
    build_database,
)
from phono_grammar.phonemes.distance import levenshtein_distance
from phono_grammar.phonemes.normalizer import filter_entries, normalize, normalize_text
from phono_grammar.phonemes.oracle import (
    CmuDictOracle,
    G2pEnOracle,
    LexiconOracle,
    PhonemeOracle,
    create_oracle,
)

__all__ = [
    "GrammarEntry",
    "PhonemeCache",
    "PhonemeDatabase",
    "PhonemeSnapshot",
    "build_database",
    "levenshtein_distance",
    "filter_entries",
    "normalize",
    "normalize_text",
    "CmuDictOracle",
    "G2pEnOracle",
    "LexiconOracle",
    "PhonemeOracle",
    "create_oracle",
]
