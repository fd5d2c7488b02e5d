# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Navigation discovery strategies.

A strategy is any object with a ``name`` and an async ``execute(page)``
returning a ``StrategyResult``.  The pipeline only relies on that contract,
so strategies need no common base class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from playwright.async_api import Page

from .. import NavigationCandidate


@dataclass
class StrategyResult:
    """Candidates proposed by one strategy execution."""

    items: list[NavigationCandidate] = field(default_factory=list)
    confidence: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, strategy: str, reason: str) -> StrategyResult:
        return cls(items=[], confidence=0.0, metadata={"strategy": strategy, "error": reason})


@runtime_checkable
class NavigationStrategy(Protocol):
    name: str

    async def execute(self, page: Page) -> StrategyResult: ...


def strategy_name(strategy: object) -> str:
    """Display name used for metrics and learned priority lists."""
    return getattr(strategy, "name", "") or type(strategy).__name__


def default_strategies() -> list[NavigationStrategy]:
    """Pattern → hover → fallback, the registration order used by ``TaxonomyDiscovery``."""
    from .fallback import FallbackLinkStrategy
    from .hover import HoverMenuStrategy
    from .pattern import NavigationPatternStrategy

    return [NavigationPatternStrategy(), HoverMenuStrategy(), FallbackLinkStrategy()]


__all__ = ["NavigationStrategy", "StrategyResult", "default_strategies", "strategy_name"]
