# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Repository abstraction: learned navigation patterns and cached taxonomies.

Defines ``PatternRepositoryProtocol`` for the cross-run state the core reads
and writes (strategy priority, selector pools, cached discoveries, finished
taxonomies) and ``InMemoryPatternRepository`` for tests and single-process use.

The core never holds this state itself: pipeline and orchestrator receive a
repository at construction and treat every call as fallible.
"""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Stored payloads
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class LearnedPatterns(BaseModel):
    """What a successful discovery teaches about a domain."""

    successful_strategies: list[str] = Field(default_factory=list)
    navigation_selectors: dict[str, list[str]] = Field(default_factory=dict)
    element_count: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    timestamp: str = Field(default_factory=_utc_now)


def site_patterns_from_learning(patterns: dict[str, Any]) -> dict[str, Any]:
    """Validate a learning payload and derive the stored site-pattern record."""
    learned = LearnedPatterns.model_validate(patterns)
    record = learned.model_dump()
    record["strategy_priority"] = list(learned.successful_strategies)
    return record


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class PatternRepositoryProtocol(Protocol):
    """Interface for persistent storage, in-memory or SQLite."""

    async def get_site_patterns(self, domain: str) -> dict[str, Any] | None: ...

    async def store_navigation_patterns(self, domain: str, patterns: dict[str, Any]) -> None: ...

    async def get_discovery(self, domain: str) -> dict[str, Any] | None: ...

    async def store_discovery(self, domain: str, discovery: dict[str, Any]) -> None: ...

    async def store_taxonomy(self, url: str, result: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryPatternRepository:
    """Dict-backed repository. Last writer wins; values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._site_patterns: dict[str, dict[str, Any]] = {}
        self._discoveries: dict[str, dict[str, Any]] = {}
        self._taxonomies: dict[str, dict[str, Any]] = {}

    async def get_site_patterns(self, domain: str) -> dict[str, Any] | None:
        record = self._site_patterns.get(domain)
        return copy.deepcopy(record) if record is not None else None

    async def store_navigation_patterns(self, domain: str, patterns: dict[str, Any]) -> None:
        self._site_patterns[domain] = site_patterns_from_learning(patterns)

    async def get_discovery(self, domain: str) -> dict[str, Any] | None:
        record = self._discoveries.get(domain)
        return copy.deepcopy(record) if record is not None else None

    async def store_discovery(self, domain: str, discovery: dict[str, Any]) -> None:
        self._discoveries[domain] = copy.deepcopy(discovery)

    async def store_taxonomy(self, url: str, result: dict[str, Any]) -> None:
        self._taxonomies[url] = copy.deepcopy(result)

    async def close(self) -> None:
        """No-op for in-memory repository."""

    # ── Convenience accessors (not part of Protocol) ──────────────

    @property
    def taxonomies(self) -> dict[str, dict[str, Any]]:
        """Stored taxonomy results keyed by base URL (testing/debugging)."""
        return self._taxonomies
