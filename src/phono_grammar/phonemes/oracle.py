"""Grapheme-to-phoneme oracles.

An oracle turns normalized text into an ARPAbet phoneme sequence. The
matching code only depends on ``PhonemeOracle.phoneticize``; the adapters
here wrap the CMU Pronouncing Dictionary (``pronouncing``), the ``g2p_en``
neural model, and plain pronunciation files.
"""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Sequence

import pronouncing

from phono_grammar.config import OracleSettings
from phono_grammar.errors import ConfigurationError, OracleUnavailable
from phono_grammar.logging import get_logger

logger = get_logger(__name__)

_STRESS_DIGIT = re.compile(r"\d$")
_PHONEME_TOKEN = re.compile(r"^[A-Z]{1,3}[0-2]?$")
_VARIANT_SUFFIX = re.compile(r"\(\d+\)$")


def strip_stress(phoneme: str) -> str:
    """Remove a trailing stress digit (``"EH1"`` -> ``"EH"``)."""
    return _STRESS_DIGIT.sub("", phoneme)


class PhonemeOracle(ABC):
    """Abstract base class for grapheme-to-phoneme converters.

    Implementations must return an empty list for input they cannot
    phonemize and raise ``OracleUnavailable`` when the underlying model
    cannot be used at all.
    """

    def __init__(self, strip_stress: bool = True):
        self.strip_stress = strip_stress

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier recorded in phoneme snapshots."""
        pass

    @abstractmethod
    def phoneticize(self, text: str) -> list[str]:
        """Convert normalized text to a phoneme sequence.

        Args:
            text: Normalized text (lowercase words separated by single spaces)

        Returns:
            Phoneme symbols in order, or an empty list

        Raises:
            OracleUnavailable: If the model cannot be invoked
        """
        pass

    def _clean(self, phonemes: Sequence[str]) -> list[str]:
        if self.strip_stress:
            return [strip_stress(p) for p in phonemes]
        return list(phonemes)


class WordLookupOracle(PhonemeOracle):
    """Oracle that phonemizes text one dictionary word at a time.

    Words missing from the dictionary go to ``fallback``. Without a fallback,
    or when the fallback has nothing either, the whole input is treated as
    unphonemizable.
    """

    def __init__(self, fallback: PhonemeOracle | None = None, strip_stress: bool = True):
        super().__init__(strip_stress=strip_stress)
        self.fallback = fallback

    @abstractmethod
    def lookup(self, word: str) -> list[str] | None:
        """Return the first pronunciation of ``word`` or None if unknown."""
        pass

    def phoneticize(self, text: str) -> list[str]:
        phonemes: list[str] = []
        for word in text.split():
            pronunciation = self.lookup(word)

            if pronunciation is None and self.fallback is not None:
                pronunciation = self.fallback.phoneticize(word) or None

            if pronunciation is None:
                logger.debug(
                    "No pronunciation found",
                    extra={"oracle": self.name, "word": word},
                )
                return []

            phonemes.extend(self._clean(pronunciation))
        return phonemes


class CmuDictOracle(WordLookupOracle):
    """Looks words up in the CMU Pronouncing Dictionary via ``pronouncing``."""

    def __init__(self, fallback: PhonemeOracle | None = None, strip_stress: bool = True):
        super().__init__(fallback=fallback, strip_stress=strip_stress)
        self._loaded = False
        self._load_lock = threading.Lock()

    @property
    def name(self) -> str:
        if self.fallback is not None:
            return f"cmudict+{self.fallback.name}"
        return "cmudict"

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._load_lock:
            if self._loaded:
                return
            try:
                pronouncing.init_cmu()
            except Exception as e:
                raise OracleUnavailable(
                    f"CMU Pronouncing Dictionary could not be loaded: {e}",
                    context={"oracle": "cmudict"},
                ) from e
            self._loaded = True

    def lookup(self, word: str) -> list[str] | None:
        self._ensure_loaded()
        pronunciations = pronouncing.phones_for_word(word)
        if not pronunciations:
            return None
        return pronunciations[0].split()


class LexiconOracle(WordLookupOracle):
    """Dictionary-backed oracle for custom vocabularies.

    Example:
        oracle = LexiconOracle({"docks": ["D", "AA1", "K", "S"]})
        oracle.phoneticize("docks")  # ["D", "AA", "K", "S"]
    """

    def __init__(
        self,
        pronunciations: Mapping[str, Sequence[str]],
        fallback: PhonemeOracle | None = None,
        strip_stress: bool = True,
    ):
        super().__init__(fallback=fallback, strip_stress=strip_stress)
        self._pronunciations = {
            word.lower(): list(phonemes) for word, phonemes in pronunciations.items()
        }

    @property
    def name(self) -> str:
        if self.fallback is not None:
            return f"lexicon+{self.fallback.name}"
        return "lexicon"

    def lookup(self, word: str) -> list[str] | None:
        return self._pronunciations.get(word.lower())

    @classmethod
    def from_file(
        cls,
        path: Path | str,
        fallback: PhonemeOracle | None = None,
        strip_stress: bool = True,
    ) -> "LexiconOracle":
        """Load a CMU-format pronunciation file.

        Each line is ``WORD  PH1 PH2 ...``. Lines starting with ``;;;`` are
        comments and alternate pronunciations (``WORD(2)``) are ignored.

        Args:
            path: Pronunciation file
            fallback: Oracle for words not in the file
            strip_stress: Drop stress digits

        Returns:
            LexiconOracle instance

        Raises:
            ConfigurationError: If the file cannot be read
        """
        path = Path(path)
        pronunciations: dict[str, list[str]] = {}

        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    entry = line.strip()
                    if not entry or entry.startswith(";;;"):
                        continue

                    parts = entry.split()
                    if len(parts) < 2 or _VARIANT_SUFFIX.search(parts[0]):
                        continue

                    word = parts[0].lower()
                    if word not in pronunciations:
                        pronunciations[word] = parts[1:]
        except OSError as e:
            raise ConfigurationError(f"Cannot read lexicon {path}: {e}") from e

        logger.info(
            "Loaded pronunciation lexicon",
            extra={"path": str(path), "words": len(pronunciations)},
        )
        return cls(pronunciations, fallback=fallback, strip_stress=strip_stress)


class G2pEnOracle(PhonemeOracle):
    """Neural grapheme-to-phoneme conversion with ``g2p_en``.

    The model is loaded on first use. ``g2p_en`` is an optional dependency
    (``pip install phono-grammar[g2p]``); when it is missing every call
    raises ``OracleUnavailable``.
    """

    def __init__(self, strip_stress: bool = True):
        super().__init__(strip_stress=strip_stress)
        self._model = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "g2p_en"

    def _get_model(self):
        if self._model is None:
            try:
                from g2p_en import G2p
            except ImportError as e:
                raise OracleUnavailable(
                    "g2p_en is not installed (pip install phono-grammar[g2p])",
                    context={"oracle": self.name},
                ) from e

            try:
                self._model = G2p()
            except Exception as e:
                raise OracleUnavailable(
                    f"g2p_en model failed to load: {e}",
                    context={"oracle": self.name},
                ) from e

            logger.info("Loaded g2p_en model")
        return self._model

    def phoneticize(self, text: str) -> list[str]:
        if not text:
            return []

        with self._lock:
            model = self._get_model()
            try:
                tokens = model(text)
            except Exception as e:
                raise OracleUnavailable(
                    f"g2p_en failed on {text!r}: {e}",
                    context={"oracle": self.name},
                ) from e

        # g2p_en mixes word-boundary spaces and punctuation into its output
        return self._clean([t for t in tokens if _PHONEME_TOKEN.match(t)])


def create_oracle(settings: OracleSettings | None = None) -> PhonemeOracle:
    """Build the oracle chain described by ``settings``.

    Args:
        settings: Oracle settings (defaults: CMU dictionary without fallback)

    Returns:
        Configured oracle

    Raises:
        ConfigurationError: If a lexicon oracle has no lexicon path
    """
    settings = settings or OracleSettings()

    if settings.kind == "g2p_en":
        return G2pEnOracle(strip_stress=settings.strip_stress)

    fallback = None
    if settings.fallback == "g2p_en":
        fallback = G2pEnOracle(strip_stress=settings.strip_stress)

    if settings.kind == "lexicon":
        if settings.lexicon_path is None:
            raise ConfigurationError("Oracle kind 'lexicon' requires lexicon_path")
        return LexiconOracle.from_file(
            settings.lexicon_path,
            fallback=fallback,
            strip_stress=settings.strip_stress,
        )

    return CmuDictOracle(fallback=fallback, strip_stress=settings.strip_stress)
