"""Phoneme database construction and snapshot caching.

A grammar (a list of expected sentences or words) is phonemized once and the
result is kept in an immutable ``PhonemeDatabase``. For file grammars the
database is also persisted as a versioned JSON snapshot so later processes
skip the G2P step entirely.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from phono_grammar.errors import GrammarFileError, OracleUnavailable, SnapshotError
from phono_grammar.logging import (
    get_logger,
    log_operation_complete,
    log_operation_failed,
    log_operation_start,
)
from phono_grammar.phonemes.normalizer import filter_entries
from phono_grammar.phonemes.oracle import PhonemeOracle
from phono_grammar.storage import atomic_write_json, read_json

logger = get_logger(__name__)

SNAPSHOT_FORMAT_VERSION = 1
SNAPSHOT_SUFFIX = ".phonemes.json"


class GrammarEntry(BaseModel):
    """One phonemized grammar entry.

    ``display_text`` is the normalized form returned as the match,
    ``raw_text`` keeps the original casing and punctuation.
    """

    model_config = ConfigDict(frozen=True)

    raw_text: str
    display_text: str
    phonemes: tuple[str, ...] = Field(min_length=1)


class PhonemeSnapshot(BaseModel):
    """On-disk representation of a phoneme database."""

    format_version: int = SNAPSHOT_FORMAT_VERSION
    source_id: str
    oracle: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    entries: list[GrammarEntry] = Field(default_factory=list)


@dataclass(frozen=True)
class PhonemeDatabase:
    """Ordered, immutable collection of grammar entries.

    The position of an entry is its grammar index and the tie-break key
    during ranking.
    """

    entries: tuple[GrammarEntry, ...] = ()
    source_id: str | None = None
    oracle: str = ""

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[GrammarEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> GrammarEntry:
        return self.entries[index]

    @property
    def is_empty(self) -> bool:
        """True when no entry survived normalization and phonemization."""
        return not self.entries

    @property
    def display_texts(self) -> list[str]:
        """Normalized text of every entry, in grammar order."""
        return [entry.display_text for entry in self.entries]


def build_database(
    raw_entries: Iterable[str],
    oracle: PhonemeOracle,
    source_id: str | None = None,
) -> PhonemeDatabase:
    """Phonemize a grammar.

    Entries are normalized and filtered first; only the survivors are sent
    to the oracle, one call per entry. An entry whose oracle call fails or
    yields no phonemes is dropped on its own.

    Args:
        raw_entries: Grammar entries as written
        oracle: Grapheme-to-phoneme oracle
        source_id: Identifier recorded on the database

    Returns:
        PhonemeDatabase in input order

    Raises:
        OracleUnavailable: If the oracle failed for every entry
    """
    pairs = filter_entries(raw_entries)
    entries: list[GrammarEntry] = []
    unavailable = 0
    last_error: OracleUnavailable | None = None

    for raw, normalized in pairs:
        try:
            phonemes = oracle.phoneticize(normalized)
        except OracleUnavailable as e:
            unavailable += 1
            last_error = e
            logger.warning(
                f"Dropping grammar entry {raw!r}: {e.message}",
                extra={"source_id": source_id},
            )
            continue

        if not phonemes:
            logger.warning(
                f"Dropping grammar entry {raw!r}: no phonemes",
                extra={"source_id": source_id, "oracle": oracle.name},
            )
            continue

        entries.append(
            GrammarEntry(raw_text=raw, display_text=normalized, phonemes=tuple(phonemes))
        )

    if pairs and unavailable == len(pairs):
        raise OracleUnavailable(
            f"Oracle unavailable for all {len(pairs)} grammar entries",
            context={"source_id": source_id, "last_error": last_error.message if last_error else ""},
        )

    return PhonemeDatabase(entries=tuple(entries), source_id=source_id, oracle=oracle.name)


def iter_grammar_file(path: Path | str) -> Iterator[str]:
    """Yield the entries of a grammar file, one per non-blank line.

    Args:
        path: Grammar text file

    Yields:
        Entry text without line endings
    """
    with open(path, encoding="utf-8") as f:
        for line in f:
            entry = line.rstrip("\r\n")
            if entry.strip():
                yield entry


class PhonemeCache:
    """Builds, loads and persists phoneme databases.

    Each snapshot key is guarded by its own lock so concurrent first-time
    builds of the same grammar run the oracle once and write the snapshot
    once; all callers get the same database object back.

    Example:
        cache = PhonemeCache(oracle, cache_dir=Path(".phonemes"))
        database = cache.load_or_build_file("grammars/commands.txt")
    """

    def __init__(
        self,
        oracle: PhonemeOracle,
        cache_dir: Path | str | None = None,
        persist: bool = True,
    ):
        """Initialize the cache.

        Args:
            oracle: Oracle used for rebuilds
            cache_dir: Directory for snapshots; None puts them next to the grammar
            persist: Load and save snapshots; False keeps databases in memory only
        """
        self.oracle = oracle
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None
        self.persist = persist

        self._databases: dict[str, PhonemeDatabase] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def snapshot_path(self, source_id: str) -> Path:
        """Deterministic snapshot location for a source.

        Args:
            source_id: Grammar file path or other stable handle

        Returns:
            Path of the snapshot file
        """
        source = Path(source_id)
        if self.cache_dir is None:
            return source.with_name(source.name + SNAPSHOT_SUFFIX)

        digest = hashlib.sha1(str(source).encode("utf-8")).hexdigest()[:12]
        return self.cache_dir / f"{source.stem}-{digest}{SNAPSHOT_SUFFIX}"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def load_or_build(
        self,
        source_id: str | None,
        raw_entries: Iterable[str],
    ) -> PhonemeDatabase:
        """Return the phoneme database for a grammar source.

        Order of preference: the database already held by this cache, the
        persisted snapshot, a fresh build (which is then persisted). A
        snapshot that is missing, corrupt or of another format version is a
        cache miss. A failed save is logged and the built database is still
        returned.

        Args:
            source_id: Stable source identifier; None builds in memory every time
            raw_entries: Grammar entries, only consumed on a rebuild

        Returns:
            PhonemeDatabase

        Raises:
            OracleUnavailable: If a rebuild could not phonemize any entry
        """
        if source_id is None:
            return build_database(raw_entries, self.oracle)

        key = str(self.snapshot_path(source_id))

        with self._lock_for(key):
            database = self._databases.get(key)
            if database is not None:
                return database

            database = None
            if self.persist:
                try:
                    database = self.load_snapshot(source_id)
                    logger.info(
                        "Loaded phoneme snapshot",
                        extra={"snapshot": key, "entries": len(database)},
                    )
                except SnapshotError as e:
                    logger.info(
                        "Phoneme snapshot unusable, rebuilding",
                        extra={"snapshot": key, "reason": e.message},
                    )

            if database is None:
                database = self._build(source_id, raw_entries)
                if self.persist:
                    try:
                        self.save_snapshot(database)
                    except SnapshotError as e:
                        logger.warning(
                            f"Could not persist phoneme snapshot: {e.message}",
                            extra={"snapshot": key},
                        )

            self._databases[key] = database
            return database

    def load_or_build_file(self, path: Path | str) -> PhonemeDatabase:
        """Load or build the database for a grammar file.

        Args:
            path: Grammar text file, one entry per line

        Returns:
            PhonemeDatabase keyed by the resolved file path

        Raises:
            FileNotFoundError: If the grammar file doesn't exist
            GrammarFileError: If the path is not a readable UTF-8 text file
        """
        path = Path(path).resolve()
        if not path.exists():
            raise FileNotFoundError(f"Grammar file not found: {path}")
        if not path.is_file():
            raise GrammarFileError(f"Grammar path is not a file: {path}", context={"path": str(path)})

        try:
            entries = list(iter_grammar_file(path))
        except (OSError, UnicodeDecodeError) as e:
            raise GrammarFileError(
                f"Cannot read grammar file {path}: {e}",
                context={"path": str(path)},
            ) from e

        return self.load_or_build(str(path), entries)

    def _build(self, source_id: str, raw_entries: Iterable[str]) -> PhonemeDatabase:
        started = time.monotonic()
        log_operation_start(logger, "phoneme database build", source_id=source_id)
        try:
            database = build_database(raw_entries, self.oracle, source_id=source_id)
        except OracleUnavailable as e:
            log_operation_failed(
                logger, "phoneme database build", e, level=logging.DEBUG, source_id=source_id
            )
            raise
        log_operation_complete(
            logger,
            "phoneme database build",
            duration=time.monotonic() - started,
            source_id=source_id,
            entries=len(database),
        )
        return database

    def load_snapshot(self, source_id: str) -> PhonemeDatabase:
        """Read the persisted database for a source.

        Args:
            source_id: Source identifier

        Returns:
            Stored PhonemeDatabase

        Raises:
            SnapshotError: If the snapshot is missing, corrupt or another version
        """
        path = self.snapshot_path(source_id)
        data = read_json(path)

        if not isinstance(data, dict):
            raise SnapshotError(f"Snapshot is not a JSON object: {path}")

        version = data.get("format_version")
        if version != SNAPSHOT_FORMAT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot format version {version!r}",
                context={"path": str(path), "expected": SNAPSHOT_FORMAT_VERSION},
            )

        try:
            snapshot = PhonemeSnapshot.model_validate(data)
        except ValidationError as e:
            raise SnapshotError(f"Invalid snapshot {path}: {e}") from e

        return PhonemeDatabase(
            entries=tuple(snapshot.entries),
            source_id=snapshot.source_id,
            oracle=snapshot.oracle,
        )

    def save_snapshot(self, database: PhonemeDatabase) -> Path:
        """Persist a database under its source's snapshot path.

        Args:
            database: Database with a ``source_id``

        Returns:
            Path written

        Raises:
            SnapshotError: If the database has no source or the write fails
        """
        if database.source_id is None:
            raise SnapshotError("Cannot persist an in-memory grammar without a source id")

        path = self.snapshot_path(database.source_id)
        snapshot = PhonemeSnapshot(
            source_id=database.source_id,
            oracle=database.oracle,
            entries=list(database.entries),
        )
        atomic_write_json(path, snapshot.model_dump(mode="json"))
        logger.info(
            "Saved phoneme snapshot",
            extra={"snapshot": str(path), "entries": len(database)},
        )
        return path

    def invalidate(self, source_id: str) -> bool:
        """Forget a source's database and delete its snapshot.

        Args:
            source_id: Source identifier

        Returns:
            True if a snapshot file was removed
        """
        path = self.snapshot_path(source_id)
        with self._lock_for(str(path)):
            self._databases.pop(str(path), None)
            if path.exists():
                path.unlink()
                return True
        return False
