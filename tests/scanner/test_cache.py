"""Tests for the incremental scan cache."""

from __future__ import annotations

import json

from redactyl.scanner.cache import CACHE_FILE_NAME, EMPTY_DIGEST, CacheDB, fast_hash


class TestFastHash:
    """Tests for fast_hash."""

    def test_empty_input(self):
        """Test empty content has the all-zero digest."""
        assert fast_hash(b"") == EMPTY_DIGEST == "0000000000000000"

    def test_format(self):
        """Test digests are 16 lowercase hex characters."""
        digest = fast_hash(b"hello world")

        assert len(digest) == 16
        assert digest == digest.lower()
        int(digest, 16)

    def test_deterministic(self):
        """Test equal content hashes equally and different content differs."""
        assert fast_hash(b"abc") == fast_hash(b"abc")
        assert fast_hash(b"abc") != fast_hash(b"abd")


class TestCacheDB:
    """Tests for CacheDB persistence."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test loading without a cache file gives an empty cache."""
        assert CacheDB.load(tmp_path).entries == {}

    def test_malformed_file_is_empty(self, tmp_path):
        """Test corrupt JSON is ignored."""
        (tmp_path / CACHE_FILE_NAME).write_text("{not json")

        assert CacheDB.load(tmp_path).entries == {}

    def test_wrong_version_is_empty(self, tmp_path):
        """Test a cache from another format version is ignored."""
        (tmp_path / CACHE_FILE_NAME).write_text(json.dumps({"version": 99, "entries": {"a": "b"}}))

        assert CacheDB.load(tmp_path).entries == {}

    def test_updates_buffered_until_save(self, tmp_path):
        """Test record() does not change lookups until the cache is reloaded."""
        cache = CacheDB()
        cache.record("a.txt", "1234")

        assert not cache.unchanged("a.txt", "1234")
        assert not (tmp_path / CACHE_FILE_NAME).exists()

        assert cache.save(tmp_path)
        assert CacheDB.load(tmp_path).unchanged("a.txt", "1234")

    def test_save_merges_existing(self, tmp_path):
        """Test entries not touched this run survive the write-back."""
        first = CacheDB()
        first.record("a.txt", "aaaa")
        first.save(tmp_path)

        second = CacheDB.load(tmp_path)
        second.record("b.txt", "bbbb")
        second.save(tmp_path)

        assert CacheDB.load(tmp_path).entries == {"a.txt": "aaaa", "b.txt": "bbbb"}

    def test_findings_round_trip(self, tmp_path, make_finding):
        """Test recorded raw findings are stored and replayed."""
        finding = make_finding(path="a.txt", line=3)
        cache = CacheDB()
        cache.record("a.txt", "aaaa", [finding])
        cache.save(tmp_path)

        assert CacheDB.load(tmp_path).cached_findings("a.txt") == [finding]

    def test_record_without_findings_clears_stored(self, tmp_path, make_finding):
        """Test a digest recorded without findings drops older stored findings."""
        first = CacheDB()
        first.record("a.txt", "aaaa", [make_finding(path="a.txt")])
        first.save(tmp_path)

        second = CacheDB.load(tmp_path)
        second.record("a.txt", "bbbb")
        second.save(tmp_path)

        reloaded = CacheDB.load(tmp_path)
        assert reloaded.digest("a.txt") == "bbbb"
        assert reloaded.cached_findings("a.txt") == []

    def test_save_failure_is_ignored(self, tmp_path):
        """Test an unwritable root returns False rather than raising."""
        cache = CacheDB()
        cache.record("a.txt", "aaaa")

        assert cache.save(tmp_path / "missing" / "dir") is False
