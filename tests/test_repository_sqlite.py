# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for SqlitePatternRepository: persistent storage backend."""

from __future__ import annotations

import aiosqlite
import pytest

from taxonomap.errors import PersistenceError
from taxonomap.repository import PatternRepositoryProtocol
from taxonomap.repository_sqlite import SqlitePatternRepository

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def repo(tmp_path):
    """Create a SqlitePatternRepository in a temp directory, yield, then close."""
    r = await SqlitePatternRepository.create(tmp_path / "test.db")
    yield r
    await r.close()


LEARNING = {
    "successful_strategies": ["NavigationPatternStrategy"],
    "navigation_selectors": {"shopify-dropdown": [".site-nav > li:nth-of-type(2)"]},
    "element_count": 18,
    "confidence": 0.8,
}


# ---------------------------------------------------------------------------
# TestCreate
# ---------------------------------------------------------------------------


class TestCreate:
    async def test_db_file_created(self, tmp_path):
        db_path = tmp_path / "data" / "taxonomap.db"
        repo = await SqlitePatternRepository.create(db_path)
        try:
            assert db_path.exists()
        finally:
            await repo.close()

    async def test_satisfies_protocol(self, repo):
        assert isinstance(repo, PatternRepositoryProtocol)

    async def test_schema_version_set(self, tmp_path):
        db_path = tmp_path / "v.db"
        repo = await SqlitePatternRepository.create(db_path)
        await repo.close()
        async with aiosqlite.connect(str(db_path)) as db:
            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
        assert row[0] == 1

    async def test_wal_mode(self, tmp_path):
        db_path = tmp_path / "wal.db"
        repo = await SqlitePatternRepository.create(db_path)
        await repo.close()
        async with aiosqlite.connect(str(db_path)) as db:
            cursor = await db.execute("PRAGMA journal_mode")
            row = await cursor.fetchone()
        assert row[0] == "wal"

    async def test_newer_schema_rejected(self, tmp_path):
        db_path = tmp_path / "future.db"
        async with aiosqlite.connect(str(db_path)) as db:
            await db.execute("PRAGMA user_version = 99")
            await db.commit()
        with pytest.raises(ValueError, match="newer"):
            await SqlitePatternRepository.create(db_path)

    async def test_reopen_keeps_data(self, tmp_path):
        db_path = tmp_path / "reopen.db"
        repo = await SqlitePatternRepository.create(db_path)
        await repo.store_navigation_patterns("shop.example.com", LEARNING)
        await repo.close()

        repo2 = await SqlitePatternRepository.create(db_path)
        try:
            record = await repo2.get_site_patterns("shop.example.com")
            assert record["strategy_priority"] == ["NavigationPatternStrategy"]
        finally:
            await repo2.close()


# ---------------------------------------------------------------------------
# TestSitePatterns
# ---------------------------------------------------------------------------


class TestSitePatterns:
    async def test_missing(self, repo):
        assert await repo.get_site_patterns("nope.example.com") is None

    async def test_round_trip(self, repo):
        await repo.store_navigation_patterns("shop.example.com", LEARNING)
        record = await repo.get_site_patterns("shop.example.com")
        assert record["element_count"] == 18
        assert record["navigation_selectors"]["shopify-dropdown"] == [".site-nav > li:nth-of-type(2)"]
        assert "timestamp" in record

    async def test_replace(self, repo):
        await repo.store_navigation_patterns("d", LEARNING)
        await repo.store_navigation_patterns("d", {**LEARNING, "successful_strategies": ["HoverMenuStrategy"]})
        record = await repo.get_site_patterns("d")
        assert record["strategy_priority"] == ["HoverMenuStrategy"]

    async def test_invalid_payload(self, repo):
        with pytest.raises(PersistenceError):
            await repo.store_navigation_patterns("d", {"confidence": 7})


# ---------------------------------------------------------------------------
# TestDiscoveriesAndTaxonomies
# ---------------------------------------------------------------------------


class TestDiscoveriesAndTaxonomies:
    async def test_discovery_round_trip(self, repo):
        payload = {"navigation_map": {"main_sections": [{"name": "Men"}]}, "discovery_metadata": {"confidence": 0.7}}
        await repo.store_discovery("shop.example.com", payload)
        assert await repo.get_discovery("shop.example.com") == payload

    async def test_taxonomy_round_trip(self, repo):
        payload = {"base_url": "https://shop.example.com/", "records": [{"slug": "men"}]}
        await repo.store_taxonomy("https://shop.example.com/", payload)
        assert await repo.get_taxonomy("https://shop.example.com/") == payload

    async def test_unicode_payload(self, repo):
        await repo.store_taxonomy("u", {"name": "Damen – Schuhe"})
        assert (await repo.get_taxonomy("u"))["name"] == "Damen – Schuhe"

    async def test_corrupt_json(self, repo, tmp_path):
        await repo._db.execute(
            "INSERT INTO discoveries (domain, payload, updated_at) VALUES (?, ?, ?)", ("bad", "{not json", 0.0)
        )
        await repo._db.commit()
        with pytest.raises(PersistenceError):
            await repo.get_discovery("bad")


class TestClose:
    async def test_close_idempotent(self, tmp_path):
        repo = await SqlitePatternRepository.create(tmp_path / "c.db")
        await repo.close()
        await repo.close()
