"""Configuration loading and management for phono-grammar.

Settings are pydantic models loaded from a JSON file, with a small set of
``PHONO_GRAMMAR_*`` environment variables layered on top.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from phono_grammar.errors import ConfigurationError
from phono_grammar.storage import atomic_write_json

ENV_PREFIX = "PHONO_GRAMMAR_"


class OracleSettings(BaseModel):
    """Grapheme-to-phoneme oracle settings."""

    # "cmudict" (pronouncing), "g2p_en" (neural model) or "lexicon" (file)
    kind: Literal["cmudict", "g2p_en", "lexicon"] = "cmudict"
    # Oracle consulted for words the primary one does not know; "g2p_en"
    # needs the g2p extra, None leaves unknown words unphonemizable
    fallback: Literal["g2p_en"] | None = None
    # CMU-format pronunciation file, required for kind="lexicon"
    lexicon_path: Path | None = None
    # Drop vowel stress digits so EH1 and EH0 compare equal
    strip_stress: bool = True


class MatcherSettings(BaseModel):
    """Settings for building a recognizer."""

    # "sentences" ranks whole entries, "words" corrects word by word
    recognizer: Literal["sentences", "words"] = "sentences"
    # Number of ranked results to return
    k: int = Field(default=1, ge=1)
    # Where phoneme snapshots go; None = next to the grammar file
    cache_dir: Path | None = None
    # Persist phoneme snapshots for file grammars
    persist: bool = True
    # Threads used to score grammar entries (1 = serial)
    workers: int = Field(default=1, ge=1)
    oracle: OracleSettings = Field(default_factory=OracleSettings)


def apply_env_overrides(settings: MatcherSettings, environ: dict[str, str] | None = None) -> MatcherSettings:
    """Return a copy of ``settings`` with environment overrides applied.

    Args:
        settings: Base settings
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        New settings object

    Raises:
        ConfigurationError: If an override holds an invalid value
    """
    environ = os.environ if environ is None else environ
    data = settings.model_dump()

    overrides = {
        "recognizer": environ.get(f"{ENV_PREFIX}RECOGNIZER"),
        "k": environ.get(f"{ENV_PREFIX}K"),
        "cache_dir": environ.get(f"{ENV_PREFIX}CACHE_DIR"),
        "workers": environ.get(f"{ENV_PREFIX}WORKERS"),
    }
    for key, value in overrides.items():
        if value:
            data[key] = value

    oracle_kind = environ.get(f"{ENV_PREFIX}ORACLE")
    if oracle_kind:
        data["oracle"]["kind"] = oracle_kind

    try:
        return MatcherSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid environment override: {e}") from e


def load_settings(path: Path | str | None = None, use_env: bool = True) -> MatcherSettings:
    """Load matcher settings from a JSON file.

    Args:
        path: Settings file; defaults are used when omitted
        use_env: Apply ``PHONO_GRAMMAR_*`` environment overrides

    Returns:
        MatcherSettings object

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    if path is None:
        settings = MatcherSettings()
    else:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Settings file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            settings = MatcherSettings.model_validate(data)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Settings file is not valid JSON: {path}: {e}") from e
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}: {e}") from e

    if use_env:
        settings = apply_env_overrides(settings)
    return settings


def save_settings(path: Path | str, settings: MatcherSettings) -> Path:
    """Save matcher settings to JSON file with atomic write.

    Args:
        path: Target file
        settings: Settings to save

    Returns:
        Path to the saved settings file
    """
    path = Path(path)
    atomic_write_json(path, settings.model_dump(mode="json"))
    return path
