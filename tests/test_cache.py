"""Tests for phoneme database building and snapshot caching."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import pytest

from phono_grammar.errors import GrammarFileError, OracleUnavailable, SnapshotError
from phono_grammar.phonemes.cache import (
    SNAPSHOT_FORMAT_VERSION,
    SNAPSHOT_SUFFIX,
    GrammarEntry,
    PhonemeCache,
    PhonemeDatabase,
    build_database,
    iter_grammar_file,
)
from phono_grammar.phonemes.oracle import PhonemeOracle


class CountingOracle(PhonemeOracle):
    """Wraps another oracle and counts phoneticize calls."""

    def __init__(self, inner, fail_on=(), fail_all=False):
        super().__init__()
        self.inner = inner
        self.fail_on = set(fail_on)
        self.fail_all = fail_all
        self.calls = []
        self._lock = threading.Lock()

    @property
    def name(self):
        return "counting"

    def phoneticize(self, text):
        with self._lock:
            self.calls.append(text)
        if self.fail_all or text in self.fail_on:
            raise OracleUnavailable(f"cannot phonemize {text!r}")
        return self.inner.phoneticize(text)


class TestBuildDatabase:
    """Tests for build_database."""

    def test_builds_in_order(self, oracle):
        database = build_database(["Yes", "No", "I'm done"], oracle)

        assert len(database) == 3
        assert database.display_texts == ["yes", "no", "im done"]
        assert database[2].raw_text == "I'm done"
        assert database[2].phonemes == ("AY", "M", "D", "AH", "N")
        assert database.oracle == "lexicon"

    def test_empty_entries_dropped_before_oracle(self, oracle):
        """Test that entries normalizing to nothing never reach the oracle."""
        counting = CountingOracle(oracle)
        database = build_database(["", "Yes", "?!", "No"], counting)

        assert database.display_texts == ["yes", "no"]
        assert counting.calls == ["yes", "no"]

    def test_unphonemizable_entry_dropped(self, oracle):
        database = build_database(["Yes", "Banana", "No"], oracle)
        assert database.display_texts == ["yes", "no"]

    def test_failing_entry_dropped(self, oracle):
        """Test that one oracle failure only drops that entry."""
        counting = CountingOracle(oracle, fail_on={"maybe"})
        database = build_database(["Yes", "Maybe", "No"], counting)

        assert database.display_texts == ["yes", "no"]

    def test_total_failure_raises(self, oracle):
        counting = CountingOracle(oracle, fail_all=True)

        with pytest.raises(OracleUnavailable):
            build_database(["Yes", "No"], counting)

    def test_empty_grammar(self, oracle):
        database = build_database([], oracle)

        assert database.is_empty
        assert len(database) == 0


class TestGrammarEntry:
    """Tests for GrammarEntry validation."""

    def test_requires_phonemes(self):
        with pytest.raises(ValueError):
            GrammarEntry(raw_text="Yes", display_text="yes", phonemes=())

    def test_frozen(self):
        entry = GrammarEntry(raw_text="Yes", display_text="yes", phonemes=("Y", "EH", "S"))
        with pytest.raises(ValueError):
            entry.raw_text = "No"


class TestIterGrammarFile:
    """Tests for iter_grammar_file."""

    def test_skips_blank_lines(self, grammar_file):
        assert list(iter_grammar_file(grammar_file)) == ["Yes", "No", "?!", "Maybe", "I'm done"]

    def test_crlf_line_endings(self, tmp_path):
        path = tmp_path / "crlf.txt"
        path.write_bytes(b"Yes\r\nNo\r\n")
        assert list(iter_grammar_file(path)) == ["Yes", "No"]


class TestSnapshotPath:
    """Tests for PhonemeCache.snapshot_path."""

    def test_next_to_grammar(self, oracle, grammar_file):
        cache = PhonemeCache(oracle)
        path = cache.snapshot_path(str(grammar_file))

        assert path == grammar_file.with_name("answers.txt" + SNAPSHOT_SUFFIX)

    def test_cache_dir(self, oracle, tmp_path, grammar_file):
        cache = PhonemeCache(oracle, cache_dir=tmp_path / "snapshots")
        path = cache.snapshot_path(str(grammar_file))

        assert path.parent == tmp_path / "snapshots"
        assert path.name.startswith("answers-")
        assert path.name.endswith(SNAPSHOT_SUFFIX)
        assert path == cache.snapshot_path(str(grammar_file))

    def test_cache_dir_distinguishes_sources(self, oracle, tmp_path):
        cache = PhonemeCache(oracle, cache_dir=tmp_path)

        first = cache.snapshot_path(str(tmp_path / "a" / "answers.txt"))
        second = cache.snapshot_path(str(tmp_path / "b" / "answers.txt"))

        assert first != second


class TestPhonemeCache:
    """Tests for PhonemeCache load-or-build."""

    def test_build_writes_snapshot(self, oracle, grammar_file):
        cache = PhonemeCache(oracle)
        database = cache.load_or_build_file(grammar_file)

        snapshot = cache.snapshot_path(str(grammar_file.resolve()))
        assert snapshot.exists()

        data = json.loads(snapshot.read_text(encoding="utf-8"))
        assert data["format_version"] == SNAPSHOT_FORMAT_VERSION
        assert data["oracle"] == "lexicon"
        assert [e["display_text"] for e in data["entries"]] == database.display_texts

    def test_snapshot_reused_without_oracle(self, oracle, grammar_file):
        """Test that a second process loads the snapshot instead of rebuilding."""
        first = PhonemeCache(oracle).load_or_build_file(grammar_file)

        failing = Mock(spec=PhonemeOracle)
        failing.name = "unused"
        failing.phoneticize.side_effect = AssertionError("oracle must not be called")

        second = PhonemeCache(failing).load_or_build_file(grammar_file)

        assert second.entries == first.entries
        failing.phoneticize.assert_not_called()

    def test_memoized_within_cache(self, oracle, grammar_file):
        cache = PhonemeCache(oracle)

        first = cache.load_or_build_file(grammar_file)
        second = cache.load_or_build_file(grammar_file)

        assert first is second

    def test_corrupt_snapshot_rebuilt(self, oracle, grammar_file):
        cache = PhonemeCache(oracle)
        snapshot = cache.snapshot_path(str(grammar_file.resolve()))
        snapshot.write_text("{not json", encoding="utf-8")

        database = cache.load_or_build_file(grammar_file)

        assert database.display_texts == ["yes", "no", "maybe", "im done"]
        assert json.loads(snapshot.read_text(encoding="utf-8"))["format_version"] == SNAPSHOT_FORMAT_VERSION

    def test_other_version_rebuilt(self, oracle, grammar_file):
        """Test that a snapshot of another format version is a cache miss."""
        cache = PhonemeCache(oracle)
        snapshot = cache.snapshot_path(str(grammar_file.resolve()))
        snapshot.write_text(
            json.dumps({"format_version": 99, "source_id": "x", "entries": []}),
            encoding="utf-8",
        )
        counting = CountingOracle(oracle)

        database = PhonemeCache(counting).load_or_build_file(grammar_file)

        assert len(database) == 4
        assert len(counting.calls) == 4

    def test_invalid_entries_rebuilt(self, oracle, grammar_file):
        cache = PhonemeCache(oracle)
        snapshot = cache.snapshot_path(str(grammar_file.resolve()))
        snapshot.write_text(
            json.dumps(
                {
                    "format_version": SNAPSHOT_FORMAT_VERSION,
                    "source_id": str(grammar_file),
                    "entries": [{"raw_text": "Yes", "display_text": "yes", "phonemes": []}],
                }
            ),
            encoding="utf-8",
        )

        assert len(cache.load_or_build_file(grammar_file)) == 4

    def test_load_snapshot_errors(self, oracle, grammar_file):
        cache = PhonemeCache(oracle)

        with pytest.raises(SnapshotError):
            cache.load_snapshot(str(grammar_file))

    def test_save_failure_still_returns(self, oracle, grammar_file):
        """Test that a failed snapshot write does not fail the build."""
        cache = PhonemeCache(oracle)

        with patch(
            "phono_grammar.phonemes.cache.atomic_write_json",
            side_effect=SnapshotError("disk full"),
        ):
            database = cache.load_or_build_file(grammar_file)

        assert len(database) == 4
        assert not cache.snapshot_path(str(grammar_file.resolve())).exists()

    def test_persist_disabled(self, oracle, grammar_file):
        cache = PhonemeCache(oracle, persist=False)
        cache.load_or_build_file(grammar_file)

        assert not cache.snapshot_path(str(grammar_file.resolve())).exists()

    def test_in_memory_source(self, oracle, tmp_path):
        """Test that a None source id builds without touching disk."""
        cache = PhonemeCache(oracle, cache_dir=tmp_path / "snapshots")
        database = cache.load_or_build(None, ["Yes", "No"])

        assert database.source_id is None
        assert database.display_texts == ["yes", "no"]
        assert not (tmp_path / "snapshots").exists()

    def test_save_without_source_id(self, oracle):
        cache = PhonemeCache(oracle)

        with pytest.raises(SnapshotError):
            cache.save_snapshot(PhonemeDatabase())

    def test_missing_grammar_file(self, oracle, tmp_path):
        with pytest.raises(FileNotFoundError):
            PhonemeCache(oracle).load_or_build_file(tmp_path / "missing.txt")

    def test_grammar_path_is_directory(self, oracle, tmp_path):
        with pytest.raises(GrammarFileError):
            PhonemeCache(oracle).load_or_build_file(tmp_path)

    def test_grammar_file_not_utf8(self, oracle, tmp_path):
        """Test that undecodable grammar text raises a library error."""
        path = tmp_path / "latin1.txt"
        path.write_bytes("Caf\u00e9\nYes\n".encode("latin-1"))

        with pytest.raises(GrammarFileError) as exc_info:
            PhonemeCache(oracle).load_or_build_file(path)

        assert exc_info.value.context == {"path": str(path.resolve())}

    def test_total_failure_propagates(self, oracle, grammar_file):
        cache = PhonemeCache(CountingOracle(oracle, fail_all=True))

        with pytest.raises(OracleUnavailable):
            cache.load_or_build_file(grammar_file)

        assert not cache.snapshot_path(str(grammar_file.resolve())).exists()

    def test_concurrent_first_build(self, oracle, grammar_file):
        """Test that concurrent callers share one build."""
        counting = CountingOracle(oracle)
        cache = PhonemeCache(counting)

        with ThreadPoolExecutor(max_workers=8) as executor:
            databases = list(executor.map(lambda _: cache.load_or_build_file(grammar_file), range(16)))

        assert len(counting.calls) == 4
        assert all(database is databases[0] for database in databases)

    def test_invalidate(self, oracle, grammar_file):
        counting = CountingOracle(oracle)
        cache = PhonemeCache(counting)
        cache.load_or_build_file(grammar_file)
        source_id = str(grammar_file.resolve())

        assert cache.invalidate(source_id) is True
        assert cache.invalidate(source_id) is False

        cache.load_or_build_file(grammar_file)
        assert len(counting.calls) == 8
