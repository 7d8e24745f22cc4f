"""Unit tests for the two-tier render cache."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from docs_preview.rendering import CacheEntry, RenderCache, diagram_key


class TestRenderCache:
    """Test RenderCache."""

    @pytest.mark.asyncio
    async def test_should_return_none_for_missing_key(self, cache_dir: Path) -> None:
        """Should report a miss for an unknown key."""
        cache = RenderCache(cache_dir)

        assert await cache.lookup(diagram_key("missing")) is None

    @pytest.mark.asyncio
    async def test_should_store_and_lookup(self, cache_dir: Path) -> None:
        """Should return exactly the stored bytes."""
        cache = RenderCache(cache_dir)
        key = diagram_key("flowchart\nA-->B")

        assert await cache.store(key, b"image-bytes") is True
        entry = await cache.lookup(key)

        assert entry == CacheEntry(key=key, data=b"image-bytes")

    @pytest.mark.asyncio
    async def test_should_name_durable_files_by_key(self, cache_dir: Path) -> None:
        """Durable file is <hex-digest>.png and holds the image."""
        cache = RenderCache(cache_dir)
        key = diagram_key("flowchart\nA-->B")

        await cache.store(key, b"image-bytes")

        assert cache.path_for(key) == cache_dir / f"{key}.png"
        assert (cache_dir / f"{key}.png").read_bytes() == b"image-bytes"
        assert sorted(p.name for p in cache_dir.iterdir()) == [f"{key}.png"]

    @pytest.mark.asyncio
    async def test_should_survive_restart(self, cache_dir: Path) -> None:
        """A new cache on the same directory finds earlier entries."""
        key = diagram_key("flowchart\nA-->B")
        await RenderCache(cache_dir).store(key, b"persisted")

        restarted = RenderCache(cache_dir)
        assert restarted.peek(key) is None

        entry = await restarted.lookup(key)

        assert entry is not None
        assert entry.data == b"persisted"
        # Durable hit warms the memory tier
        assert restarted.peek(key) == entry

    @pytest.mark.asyncio
    async def test_should_ignore_empty_durable_file(self, cache_dir: Path) -> None:
        """Zero-length files are not valid entries."""
        cache = RenderCache(cache_dir)
        key = diagram_key("empty")
        cache.path_for(key).write_bytes(b"")

        assert await cache.lookup(key) is None

    @pytest.mark.asyncio
    async def test_should_evict_least_recently_used_from_memory(self, cache_dir: Path) -> None:
        """Memory tier is bounded; durable tier keeps everything."""
        cache = RenderCache(cache_dir, max_memory_entries=2)
        keys = [diagram_key(str(i)) for i in range(3)]

        await cache.store(keys[0], b"0")
        await cache.store(keys[1], b"1")
        cache.peek(keys[0])  # keys[1] is now least recently used
        await cache.store(keys[2], b"2")

        assert cache.peek(keys[1]) is None
        assert cache.peek(keys[0]) is not None
        assert cache.stats() == {"memory_entries": 2, "durable_entries": 3}
        entry = await cache.lookup(keys[1])
        assert entry is not None and entry.data == b"1"

    @pytest.mark.asyncio
    async def test_failed_durable_write_keeps_memory_entry(self, cache_dir: Path) -> None:
        """Persistence failure is logged, not raised, and memory still serves."""
        cache = RenderCache(cache_dir, write_attempts=2)
        key = diagram_key("flowchart\nA-->B")

        with patch("docs_preview.rendering.cache.os.replace", side_effect=OSError("disk full")):
            stored = await cache.store(key, b"image-bytes")

        assert stored is False
        assert not cache.path_for(key).exists()
        assert list(cache_dir.iterdir()) == []
        entry = await cache.lookup(key)
        assert entry is not None and entry.data == b"image-bytes"

    @pytest.mark.asyncio
    async def test_should_retry_transient_write_failure(self, cache_dir: Path) -> None:
        """A write that fails once and then succeeds is persisted."""
        cache = RenderCache(cache_dir, write_attempts=3)
        key = diagram_key("flowchart\nA-->B")
        real_replace = os.replace
        calls = 0

        def flaky_replace(src, dst):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OSError("busy")
            return real_replace(src, dst)

        with patch("docs_preview.rendering.cache.os.replace", side_effect=flaky_replace):
            stored = await cache.store(key, b"image-bytes")

        assert stored is True
        assert calls == 2
        assert cache.path_for(key).read_bytes() == b"image-bytes"

    @pytest.mark.asyncio
    async def test_missing_directory_is_not_fatal(self, tmp_path: Path) -> None:
        """Store without a cache directory still fills the memory tier."""
        cache = RenderCache(tmp_path / "absent", write_attempts=1)
        key = diagram_key("x")

        assert await cache.store(key, b"x") is False
        assert cache.peek(key) is not None


class TestAtomicPersistence:
    """Interrupted writes never expose a partial file."""

    def test_crash_before_rename_leaves_no_final_file(self, cache_dir: Path) -> None:
        """Simulated crash between temp write and rename."""
        cache = RenderCache(cache_dir, write_attempts=1)
        key = diagram_key("flowchart\nA-->B")

        with patch(
            "docs_preview.rendering.cache.os.replace", side_effect=KeyboardInterrupt
        ), pytest.raises(KeyboardInterrupt):
            cache._write_file(key, b"partial image")

        assert not cache.path_for(key).exists()

    @pytest.mark.asyncio
    async def test_leftover_temp_file_is_a_miss_and_cleaned_on_startup(
        self, cache_dir: Path
    ) -> None:
        """A temp file from a killed process is invisible and removed at startup."""
        key = diagram_key("flowchart\nA-->B")
        leftover = cache_dir / f"{key}.abc123.tmp"
        leftover.write_bytes(b"half an ima")

        cache = RenderCache(cache_dir)
        assert await cache.lookup(key) is None

        cache.startup()

        assert not leftover.exists()
        assert await cache.lookup(key) is None


def test_startup_creates_directory(tmp_path: Path) -> None:
    """Startup creates the cache directory."""
    cache = RenderCache(tmp_path / "nested" / "cache")

    cache.startup()

    assert cache.cache_dir.is_dir()
    assert cache.is_writable()
