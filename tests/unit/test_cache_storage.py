"""Tests for FileCacheStorage."""

import json
import time
from datetime import timezone

import pytest

from lfm_curator.cache.eviction import SyncEviction
from lfm_curator.cache.storage import CacheEntry, FileCacheStorage
from lfm_curator.errors import ValidationError

KEY = "a" * 64
OTHER = "b" * 64


class TestStoreRetrieve:
    """Round trip and validation."""

    def test_round_trip(self, storage):
        payload = json.dumps({"toptracks": {"track": [{"name": "Karma Police"}]}})
        assert storage.store(KEY, payload) is True
        assert storage.retrieve(KEY) == payload
        assert storage.exists(KEY) is True

    def test_round_trip_unicode(self, storage):
        payload = '{"artist": "きゃりーぱみゅぱみゅ", "note": "Sigur Rós"}'
        assert storage.store(KEY, payload)
        assert storage.retrieve(KEY) == payload

    def test_bytes_payload_decoded(self, storage):
        assert storage.store(KEY, b'{"a": 1}')
        assert storage.retrieve(KEY) == '{"a": 1}'

    def test_missing_key_is_miss(self, storage):
        assert storage.retrieve(KEY) is None
        assert storage.exists(KEY) is False

    def test_overwrite_last_writer_wins(self, storage):
        storage.store(KEY, "first")
        storage.store(KEY, "second")
        assert storage.retrieve(KEY) == "second"

    @pytest.mark.parametrize("key", ["", "   ", None])
    def test_empty_key_rejected(self, storage, key):
        with pytest.raises(ValidationError):
            storage.store(key, "payload")

    def test_unsafe_key_rejected(self, storage):
        with pytest.raises(ValidationError):
            storage.store("../escape", "payload")

    def test_none_payload_rejected(self, storage):
        with pytest.raises(ValidationError):
            storage.store(KEY, None)

    def test_negative_expiry_rejected(self, storage):
        with pytest.raises(ValidationError):
            storage.store(KEY, "payload", expiry_minutes=-1)

    def test_invalid_key_reads_are_misses(self, storage):
        assert storage.retrieve("../etc/passwd") is None
        assert storage.exists("") is False
        assert storage.remove("a/b") is False

    def test_metadata_written(self, storage, clock):
        storage.store(KEY, "12345", expiry_minutes=10)
        meta = json.loads((storage.cache_dir / f"{KEY}.meta").read_text(encoding="utf-8"))
        assert meta["key"] == KEY
        assert meta["sizeBytes"] == 5
        entry = CacheEntry.from_dict(meta)
        assert entry.created_at == clock.now
        assert (entry.expires_at - entry.created_at).total_seconds() == 600
        assert entry.created_at.tzinfo is not None
        assert entry.created_at.utcoffset() == timezone.utc.utcoffset(None)


class TestExpiry:
    """An entry is never returned once expired."""

    def test_hit_until_expiry_boundary(self, storage, clock):
        storage.store(KEY, "payload", expiry_minutes=10)
        clock.advance(minutes=10)
        assert storage.retrieve(KEY) == "payload"  # now == expiresAt is still valid
        clock.advance(microseconds=1)
        assert storage.retrieve(KEY) is None

    def test_exists_and_retrieve_agree(self, storage, clock):
        storage.store(KEY, "payload", expiry_minutes=1)
        assert storage.exists(KEY) is (storage.retrieve(KEY) is not None)
        clock.advance(minutes=2)
        assert storage.exists(KEY) is False
        assert storage.retrieve(KEY) is None

    def test_expired_read_evicts_entry(self, storage, clock):
        storage.store(KEY, "payload", expiry_minutes=1)
        clock.advance(minutes=5)
        assert storage.retrieve(KEY) is None
        assert not (storage.cache_dir / f"{KEY}.json").exists()
        assert not (storage.cache_dir / f"{KEY}.meta").exists()

    def test_one_millisecond_ttl_real_clock(self, tmp_path):
        """TTL of 1ms with the real clock is a miss after a short delay."""
        real = FileCacheStorage(tmp_path / "real", eviction=SyncEviction())
        assert real.store(KEY, "payload", expiry_minutes=1 / 60000)
        time.sleep(0.05)
        assert real.retrieve(KEY) is None
        assert real.exists(KEY) is False

    def test_eviction_failure_does_not_affect_miss(self, tmp_path, clock):
        class ExplodingEviction:
            def submit(self, key, action):
                raise RuntimeError("worker gone")

            def close(self):
                pass

        broken = FileCacheStorage(tmp_path / "c", clock=clock, eviction=ExplodingEviction())
        broken.store(KEY, "payload", expiry_minutes=1)
        clock.advance(minutes=2)
        assert broken.retrieve(KEY) is None
        assert broken.exists(KEY) is False


class TestCorruption:
    """Both artifacts must exist and agree; I/O problems are misses."""

    def test_missing_payload_is_miss(self, storage):
        storage.store(KEY, "payload")
        (storage.cache_dir / f"{KEY}.json").unlink()
        assert storage.retrieve(KEY) is None
        assert storage.exists(KEY) is False

    def test_missing_metadata_is_miss(self, storage):
        storage.store(KEY, "payload")
        (storage.cache_dir / f"{KEY}.meta").unlink()
        assert storage.retrieve(KEY) is None
        assert storage.exists(KEY) is False

    def test_corrupt_metadata_is_miss(self, storage):
        storage.store(KEY, "payload")
        (storage.cache_dir / f"{KEY}.meta").write_text("{not json", encoding="utf-8")
        assert storage.retrieve(KEY) is None

    def test_mismatched_metadata_key_is_miss(self, storage):
        storage.store(KEY, "payload")
        storage.store(OTHER, "other")
        meta = (storage.cache_dir / f"{OTHER}.meta").read_text(encoding="utf-8")
        (storage.cache_dir / f"{KEY}.meta").write_text(meta, encoding="utf-8")
        assert storage.retrieve(KEY) is None
        assert storage.exists(KEY) is False

    def test_partial_write_reports_failure(self, storage, monkeypatch):
        """Metadata write failure removes the payload and returns False."""
        original = storage._atomic_write

        def failing_write(path, text):
            if path.suffix == ".meta":
                raise OSError("disk full")
            original(path, text)

        monkeypatch.setattr(storage, "_atomic_write", failing_write)
        assert storage.store(KEY, "payload") is False
        assert not (storage.cache_dir / f"{KEY}.json").exists()
        assert storage.retrieve(KEY) is None

    def test_no_temp_files_left_behind(self, storage):
        storage.store(KEY, "payload")
        assert not list(storage.cache_dir.glob("*.tmp"))


class TestMaintenance:
    """remove, cleanup_expired, clear_all and statistics."""

    def test_remove(self, storage):
        storage.store(KEY, "payload")
        assert storage.remove(KEY) is True
        assert storage.retrieve(KEY) is None
        assert storage.remove(KEY) is False

    def test_cleanup_expired_counts_removed(self, storage, clock):
        storage.store(KEY, "old", expiry_minutes=1)
        storage.store(OTHER, "fresh", expiry_minutes=60)
        clock.advance(minutes=5)
        assert storage.cleanup_expired() == 1
        assert storage.retrieve(OTHER) == "fresh"
        assert storage.cleanup_expired() == 0

    def test_cleanup_skips_corrupt_metadata(self, storage, clock):
        storage.store(KEY, "old", expiry_minutes=1)
        (storage.cache_dir / ("c" * 64 + ".meta")).write_text("garbage", encoding="utf-8")
        clock.advance(minutes=5)
        assert storage.cleanup_expired() == 1
        assert (storage.cache_dir / ("c" * 64 + ".meta")).exists()

    def test_clear_all(self, storage):
        storage.store(KEY, "one")
        storage.store(OTHER, "two")
        (storage.cache_dir / "unrelated.txt").write_text("keep me", encoding="utf-8")
        assert storage.clear_all() is True
        assert storage.statistics().total_entries == 0
        assert (storage.cache_dir / "unrelated.txt").exists()

    def test_statistics(self, storage, clock):
        storage.store(KEY, "12345", expiry_minutes=1)
        first_created = clock.now
        clock.advance(minutes=3)
        storage.store(OTHER, "1234567890", expiry_minutes=10)

        stats = storage.statistics()
        assert stats.total_entries == 2
        assert stats.total_files == 4
        assert stats.expired_entries == 1
        assert stats.valid_entries == 1
        assert stats.oldest_entry == first_created
        assert stats.newest_entry == clock.now
        assert stats.total_size_bytes > 15
        assert stats.cache_directory == str(storage.cache_dir)

    def test_statistics_does_not_mutate(self, storage, clock):
        storage.store(KEY, "x", expiry_minutes=1)
        clock.advance(minutes=5)
        assert storage.statistics().expired_entries == 1
        assert storage.statistics().expired_entries == 1
        assert (storage.cache_dir / f"{KEY}.json").exists()

        storage.cleanup_expired()
        assert storage.statistics().expired_entries == 0

    def test_statistics_counts_corrupt(self, storage):
        (storage.cache_dir / ("d" * 64 + ".meta")).write_text("[]", encoding="utf-8")
        stats = storage.statistics()
        assert stats.corrupt_entries == 1
        assert stats.total_entries == 0

    def test_empty_statistics(self, storage):
        stats = storage.statistics()
        assert stats.total_entries == 0
        assert stats.oldest_entry is None
        assert stats.to_dict()["newestEntry"] is None


class TestUnavailableDirectory:
    """A broken cache directory degrades to misses."""

    def test_directory_is_a_file(self, tmp_path, clock):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory", encoding="utf-8")
        broken = FileCacheStorage(blocker, clock=clock, eviction=SyncEviction())

        assert broken.store(KEY, "payload") is False
        assert broken.retrieve(KEY) is None
        assert broken.exists(KEY) is False
        assert broken.cleanup_expired() == 0
        assert broken.clear_all() is False
