# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SQLite-backed repository: persistent learned patterns and taxonomies.

Uses ``aiosqlite`` with a single long-lived connection.  WAL journal mode
enables concurrent reads with serialized writes; ``INSERT OR REPLACE`` gives
last-writer-wins semantics per key.  Schema versioned via ``PRAGMA user_version``.
Payloads are stored as JSON text.
"""

from __future__ import annotations

import json
import time
from contextlib import suppress
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import ValidationError

from .errors import PersistenceError
from .repository import site_patterns_from_learning

_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_CREATE_SITE_PATTERNS = """
CREATE TABLE IF NOT EXISTS site_patterns (
    domain     TEXT PRIMARY KEY,
    payload    TEXT NOT NULL,
    updated_at REAL NOT NULL
)
"""

_CREATE_DISCOVERIES = """
CREATE TABLE IF NOT EXISTS discoveries (
    domain     TEXT PRIMARY KEY,
    payload    TEXT NOT NULL,
    updated_at REAL NOT NULL
)
"""

_CREATE_TAXONOMIES = """
CREATE TABLE IF NOT EXISTS taxonomies (
    url        TEXT PRIMARY KEY,
    payload    TEXT NOT NULL,
    updated_at REAL NOT NULL
)
"""


def _loads(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Corrupt JSON payload: {exc}") from exc
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# SqlitePatternRepository
# ---------------------------------------------------------------------------


class SqlitePatternRepository:
    """SQLite-backed repository implementing ``PatternRepositoryProtocol``.

    Use the ``create()`` async classmethod factory; never instantiate directly.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def create(cls, db_path: str | Path) -> SqlitePatternRepository:
        """Open (or create) a SQLite database and initialise the schema.

        Resolves ``~`` and creates parent directories automatically.

        Raises:
            ValueError: If the existing database has a newer schema version.
        """
        path = Path(db_path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(str(path))
        try:
            await db.execute("PRAGMA journal_mode = WAL")

            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > _SCHEMA_VERSION:
                raise ValueError(
                    f"Database schema version {current_version} is newer than supported version {_SCHEMA_VERSION}"
                )

            if current_version < _SCHEMA_VERSION:
                await db.execute(_CREATE_SITE_PATTERNS)
                await db.execute(_CREATE_DISCOVERIES)
                await db.execute(_CREATE_TAXONOMIES)
                await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
                await db.commit()
        except BaseException:
            await db.close()
            raise

        return cls(db)

    async def _get(self, table: str, key_column: str, key: str) -> dict[str, Any] | None:
        cursor = await self._db.execute(f"SELECT payload FROM {table} WHERE {key_column} = ?", (key,))
        row = await cursor.fetchone()
        return _loads(row[0]) if row else None

    async def _put(self, table: str, key_column: str, key: str, payload: dict[str, Any]) -> None:
        try:
            encoded = json.dumps(payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Payload for {key!r} is not JSON-serializable: {exc}") from exc
        await self._db.execute(
            f"INSERT OR REPLACE INTO {table} ({key_column}, payload, updated_at) VALUES (?, ?, ?)",
            (key, encoded, time.time()),
        )
        await self._db.commit()

    # ── PatternRepositoryProtocol methods ─────────────────────────

    async def get_site_patterns(self, domain: str) -> dict[str, Any] | None:
        """Learned site patterns (including ``strategy_priority``) or ``None``."""
        return await self._get("site_patterns", "domain", domain)

    async def store_navigation_patterns(self, domain: str, patterns: dict[str, Any]) -> None:
        """Validate and persist a learning payload, deriving ``strategy_priority``."""
        try:
            record = site_patterns_from_learning(patterns)
        except ValidationError as exc:
            raise PersistenceError(f"Invalid navigation patterns for {domain}: {exc}") from exc
        await self._put("site_patterns", "domain", domain, record)

    async def get_discovery(self, domain: str) -> dict[str, Any] | None:
        return await self._get("discoveries", "domain", domain)

    async def store_discovery(self, domain: str, discovery: dict[str, Any]) -> None:
        await self._put("discoveries", "domain", domain, discovery)

    async def store_taxonomy(self, url: str, result: dict[str, Any]) -> None:
        await self._put("taxonomies", "url", url, result)

    async def get_taxonomy(self, url: str) -> dict[str, Any] | None:
        """Read back a stored taxonomy (not part of Protocol)."""
        return await self._get("taxonomies", "url", url)

    async def close(self) -> None:
        """Close the database connection. Idempotent."""
        with suppress(Exception):
            await self._db.close()
