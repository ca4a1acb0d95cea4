"""Tests for the file-backed result cache."""

import json
from pathlib import Path

import pytest

from ghostbrowse.research.cache import ResultCache


class _Clock:
    def __init__(self, now_ms: float = 1_700_000_000_000.0):
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def cache(tmp_path, clock):
    return ResultCache(tmp_path / "cache", clock=clock)


URL = "https://example.com/article"
DATA = {"url": URL, "title": "Example", "content": "Body text"}


class TestRoundTrip:

    def test_get_returns_data_with_from_cache(self, cache):
        cache.set(URL, DATA)
        assert cache.get(URL, ttl_ms=60_000) == {**DATA, "from_cache": True}

    def test_fetched_at_not_exposed(self, cache):
        cache.set(URL, DATA)
        assert "fetched_at" not in cache.get(URL, ttl_ms=60_000)

    def test_miss_returns_none(self, cache):
        assert cache.get("https://nowhere.example", ttl_ms=60_000) is None

    def test_overwrite_replaces_entry(self, cache):
        cache.set(URL, DATA)
        cache.set(URL, {**DATA, "title": "Updated"})
        assert cache.get(URL, ttl_ms=60_000)["title"] == "Updated"

    def test_file_named_by_sha256(self, cache):
        cache.set(URL, DATA)
        key = ResultCache.key_for(URL)
        assert len(key) == 64
        assert (cache.cache_dir / f"{key}.json").exists()

    def test_no_temp_files_left_behind(self, cache):
        cache.set(URL, DATA)
        assert list(cache.cache_dir.glob("*.tmp")) == []

    def test_record_on_disk_is_flat(self, cache, clock):
        cache.set(URL, DATA)
        path = cache.cache_dir / f"{ResultCache.key_for(URL)}.json"
        record = json.loads(path.read_text(encoding="utf-8"))
        assert record == {**DATA, "fetched_at": clock.now_ms}


class TestExpiry:

    def test_entry_valid_at_exact_ttl(self, cache, clock):
        cache.set(URL, DATA)
        clock.now_ms += 60_000
        assert cache.get(URL, ttl_ms=60_000) is not None

    def test_expired_entry_is_deleted(self, cache, clock):
        cache.set(URL, DATA)
        clock.now_ms += 60_001
        assert cache.get(URL, ttl_ms=60_000) is None
        assert cache.stats()["entries"] == 0

    def test_expired_entry_undeletable_is_still_a_miss(self, cache, clock, monkeypatch):
        cache.set(URL, DATA)
        clock.now_ms += 60_001

        def refuse(self):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(Path, "unlink", refuse)

        assert cache.get(URL, ttl_ms=60_000) is None
        assert cache.clear() == 0

    def test_ttl_is_per_call(self, cache, clock):
        cache.set(URL, DATA)
        clock.now_ms += 5_000
        assert cache.get(URL, ttl_ms=10_000) is not None
        assert cache.get(URL, ttl_ms=1_000) is None


class TestCorruption:

    def test_corrupt_file_is_a_miss(self, cache):
        cache.cache_dir.mkdir(parents=True)
        path = cache.cache_dir / f"{ResultCache.key_for(URL)}.json"
        path.write_text("{not json", encoding="utf-8")
        assert cache.get(URL, ttl_ms=60_000) is None

    def test_missing_timestamp_is_a_miss(self, cache):
        cache.cache_dir.mkdir(parents=True)
        path = cache.cache_dir / f"{ResultCache.key_for(URL)}.json"
        path.write_text(json.dumps({"url": URL, "title": "x"}), encoding="utf-8")
        assert cache.get(URL, ttl_ms=60_000) is None


class TestMaintenance:

    def test_stats_empty_when_directory_missing(self, cache):
        assert cache.stats() == {"entries": 0, "total_size_bytes": 0, "size_kb": 0}

    def test_stats_counts_entries(self, cache):
        cache.set(URL, DATA)
        cache.set(URL + "?2", DATA)
        stats = cache.stats()
        assert stats["entries"] == 2
        assert stats["total_size_bytes"] > 0

    def test_clear_returns_removed_count(self, cache):
        cache.set(URL, DATA)
        cache.set(URL + "?2", DATA)
        assert cache.clear() == 2
        assert cache.get(URL, ttl_ms=60_000) is None
        assert cache.clear() == 0
