"""Shared fixtures: a small deterministic pronunciation lexicon."""

import pytest

from phono_grammar.phonemes.oracle import LexiconOracle

PRONUNCIATIONS = {
    "no": ["N", "OW1"],
    "yes": ["Y", "EH1", "S"],
    "done": ["D", "AH1", "N"],
    "maybe": ["M", "EY1", "B", "IY0"],
    "oh": ["OW1"],
    "definitely": ["D", "EH1", "F", "AH0", "N", "AH0", "T", "L", "IY0"],
    "im": ["AY1", "M"],
    "i": ["AY1"],
    "sir": ["S", "ER1"],
    "yesss": ["Y", "EH1", "S", "S"],
    "gone": ["G", "AO1", "N"],
}


@pytest.fixture
def oracle():
    """Lexicon oracle without fallback."""
    return LexiconOracle(PRONUNCIATIONS)


@pytest.fixture
def lexicon_file(tmp_path):
    """The fixture lexicon written in CMU dictionary format."""
    path = tmp_path / "lexicon.dict"
    lines = [";;; test lexicon"]
    for word, phonemes in PRONUNCIATIONS.items():
        lines.append(f"{word.upper()}  {' '.join(phonemes)}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def grammar_file(tmp_path):
    """A sentence grammar with a blank and an all-punctuation line."""
    path = tmp_path / "answers.txt"
    path.write_text("Yes\nNo\n\n?!\nMaybe\nI'm done\n", encoding="utf-8")
    return path
