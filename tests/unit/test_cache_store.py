"""Unit tests for the disk cache store and retention sweep."""

import os
import time

import pytest

from imgserve.storage.cache_store import (
    SECONDS_PER_DAY,
    DiskCacheStore,
    cache_key,
)


def _age(path, days, now):
    """Backdate a file's mtime by `days` relative to `now`."""
    ts = now - days * SECONDS_PER_DAY
    os.utime(path, (ts, ts))


class TestCacheKey:
    """Tests for cache_key()."""

    def test_deterministic(self):
        assert cache_key("5/photo.jpg", 300, 200, "cover", 1700000000.0) == \
            cache_key("5/photo.jpg", 300, 200, "cover", 1700000000.0)

    def test_hex_digest(self):
        key = cache_key("5/photo.jpg", 300, None, "contain", 1.0)
        assert len(key) == 32
        int(key, 16)

    @pytest.mark.parametrize("changed", [
        ("5/other.jpg", 300, 200, "cover", 1700000000.0),
        ("5/photo.jpg", 301, 200, "cover", 1700000000.0),
        ("5/photo.jpg", 300, 201, "cover", 1700000000.0),
        ("5/photo.jpg", 300, 200, "fill", 1700000000.0),
        ("5/photo.jpg", 300, 200, "cover", 1700000001.0),
        ("5/photo.jpg", 300, 200, "cover", 1700000000.5),
    ])
    def test_every_component_changes_key(self, changed):
        base = cache_key("5/photo.jpg", 300, 200, "cover", 1700000000.0)
        assert cache_key(*changed) != base

    def test_width_only_differs_from_height_only(self):
        assert cache_key("a.jpg", 300, None, "contain", 1.0) != \
            cache_key("a.jpg", None, 300, "contain", 1.0)


class TestDiskCacheStore:
    """Tests for DiskCacheStore get/put and layout."""

    def test_flat_layout(self, cache_dir):
        store = DiskCacheStore(cache_dir)
        key = cache_key("a.jpg", 10, 10, "fill", 1.0)
        assert store.path_for(key) == cache_dir / f"{key}.jpg"

    def test_sharded_layout(self, cache_dir):
        store = DiskCacheStore(cache_dir, shard_depth=2)
        key = "abcdef0123456789abcdef0123456789"
        assert store.path_for(key) == cache_dir / "ab" / "cd" / f"{key}.jpg"

    def test_put_creates_directory(self, cache_dir):
        store = DiskCacheStore(cache_dir)
        assert not cache_dir.exists()

        path = store.put("k" * 32, b"jpeg-bytes")

        assert path.read_bytes() == b"jpeg-bytes"
        assert store.get("k" * 32) == b"jpeg-bytes"

    def test_put_leaves_no_temp_files(self, cache_dir):
        store = DiskCacheStore(cache_dir, shard_depth=1)
        store.put("ab" * 16, b"x")
        store.put("ab" * 16, b"y")

        assert [p.name for p in store.iter_entries()] == [f"{'ab' * 16}.jpg"]
        assert store.get("ab" * 16) == b"y"

    def test_get_missing_is_miss(self, cache_dir):
        assert DiskCacheStore(cache_dir).get("0" * 32) is None

    def test_get_unreadable_entry_is_miss(self, cache_dir):
        store = DiskCacheStore(cache_dir)
        store.path_for("d" * 32).mkdir(parents=True)

        assert store.get("d" * 32) is None

    def test_get_permission_error_is_miss(self, cache_dir, mocker):
        store = DiskCacheStore(cache_dir)
        store.put("e" * 32, b"data")
        mocker.patch.object(type(cache_dir), "read_bytes", side_effect=PermissionError("denied"))

        assert store.get("e" * 32) is None

    def test_put_failure_raises_oserror(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_bytes(b"")
        store = DiskCacheStore(blocker / "cache")

        with pytest.raises(OSError):
            store.put("1" * 32, b"data")

    def test_stats(self, cache_dir):
        store = DiskCacheStore(cache_dir, shard_depth=1)
        store.put("a" * 32, b"12345")
        store.put("b" * 32, b"123")

        stats = store.stats()

        assert stats.entries == 2
        assert stats.total_bytes == 8


class TestSweep:
    """Tests for the age-based retention sweep."""

    def test_deletes_only_entries_older_than_window(self, cache_dir):
        store = DiskCacheStore(cache_dir)
        now = time.time()
        old = store.put("a" * 32, b"o" * 1234)
        fresh = store.put("b" * 32, b"f" * 99)
        _age(old, 31, now)
        _age(fresh, 10, now)

        report = store.sweep(days=30, now=now)

        assert report.deleted_count == 1
        assert report.bytes_freed == 1234
        assert report.failed_count == 0
        assert not old.exists()
        assert fresh.exists()

    def test_second_run_is_noop(self, cache_dir):
        store = DiskCacheStore(cache_dir)
        now = time.time()
        _age(store.put("a" * 32, b"old"), 45, now)

        first = store.sweep(days=30, now=now)
        second = store.sweep(days=30, now=now)

        assert first.deleted_count == 1
        assert second.deleted_count == 0
        assert second.bytes_freed == 0

    def test_walks_shard_directories(self, cache_dir):
        store = DiskCacheStore(cache_dir, shard_depth=2)
        now = time.time()
        for key in ("a" * 32, "b" * 32, "c" * 32):
            _age(store.put(key, b"12"), 60, now)

        report = store.sweep(days=30, now=now)

        assert report.deleted_count == 3
        assert report.bytes_freed == 6

    def test_missing_cache_dir(self, cache_dir):
        report = DiskCacheStore(cache_dir).sweep(days=30)

        assert report.cache_dir_exists is False
        assert report.deleted_count == 0

    def test_negative_days_rejected(self, cache_dir):
        with pytest.raises(ValueError):
            DiskCacheStore(cache_dir).sweep(days=-1)

    def test_per_entry_failure_is_skipped(self, cache_dir, mocker):
        store = DiskCacheStore(cache_dir)
        now = time.time()
        first = store.put("a" * 32, b"aaaa")
        second = store.put("b" * 32, b"bb")
        _age(first, 40, now)
        _age(second, 40, now)

        real_unlink = type(first).unlink

        def flaky_unlink(path, *args, **kwargs):
            if path.name == first.name:
                raise PermissionError("read-only")
            return real_unlink(path, *args, **kwargs)

        mocker.patch.object(type(first), "unlink", flaky_unlink)

        report = store.sweep(days=30, now=now)

        assert report.failed_count == 1
        assert report.deleted_count == 1
        assert report.bytes_freed == 2
        assert first.exists()
        assert not second.exists()

    def test_clear_removes_everything(self, cache_dir):
        store = DiskCacheStore(cache_dir)
        store.put("a" * 32, b"123")
        store.put("b" * 32, b"4567")

        report = store.clear()

        assert report.deleted_count == 2
        assert report.bytes_freed == 7
        assert store.stats().entries == 0
