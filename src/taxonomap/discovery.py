# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Multi-strategy navigation discovery.

Runs registered strategies against one page, merges their candidates into a
``NavigationMap`` (URL-deduplicated, first discoverer wins) and scores the
overall result.  Strategies are ordered by the per-domain priority list the
repository learned from earlier runs; a confident run feeds the ranking back.

Strategy failures and timeouts never abort a run.  They are recorded in
``DiscoveryMetadata.metrics`` with ``success=False`` and an ``error``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Page

from . import NavigationCandidate
from .config import DiscoveryConfig
from .errors import ConfigurationError, StrategyError, StrategyTimeoutError
from .repository import PatternRepositoryProtocol
from .strategies import NavigationStrategy, StrategyResult, strategy_name
from .urls import canonicalize_url, domain_of

logger = logging.getLogger(__name__)

# Early-exit thresholds
_EARLY_EXIT_MAIN_ITEMS = 10
_EARLY_EXIT_TOTAL_ITEMS = 100
_EARLY_EXIT_CONFIDENCE = 0.9

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class DropdownMenu:
    """A dropdown container: its trigger element and the links inside it."""

    trigger: NavigationCandidate | None
    selector: str = ""
    items: list[NavigationCandidate] = field(default_factory=list)
    discovered_by: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger.to_dict() if self.trigger else None,
            "selector": self.selector,
            "items": [i.to_dict() for i in self.items],
            "discovered_by": self.discovered_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DropdownMenu:
        trigger = data.get("trigger")
        return cls(
            trigger=NavigationCandidate.from_dict(trigger) if isinstance(trigger, dict) else None,
            selector=str(data.get("selector") or ""),
            items=[NavigationCandidate.from_dict(i) for i in data.get("items", []) if isinstance(i, dict)],
            discovered_by=str(data.get("discovered_by") or ""),
        )


@dataclass
class NavigationMap:
    """Merged navigation candidates, bucketed by role."""

    main_sections: list[NavigationCandidate] = field(default_factory=list)
    dropdown_menus: dict[str, DropdownMenu] = field(default_factory=dict)
    clickable_elements: list[NavigationCandidate] = field(default_factory=list)
    sidebar_navigation: list[NavigationCandidate] = field(default_factory=list)
    breadcrumb_patterns: list[NavigationCandidate] = field(default_factory=list)
    navigation_selectors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total_items(self) -> int:
        return (
            len(self.main_sections)
            + sum(len(d.items) for d in self.dropdown_menus.values())
            + len(self.clickable_elements)
            + len(self.sidebar_navigation)
            + len(self.breadcrumb_patterns)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "main_sections": [c.to_dict() for c in self.main_sections],
            "dropdown_menus": {k: v.to_dict() for k, v in self.dropdown_menus.items()},
            "clickable_elements": [c.to_dict() for c in self.clickable_elements],
            "sidebar_navigation": [c.to_dict() for c in self.sidebar_navigation],
            "breadcrumb_patterns": [c.to_dict() for c in self.breadcrumb_patterns],
            "navigation_selectors": {k: list(v) for k, v in self.navigation_selectors.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NavigationMap:
        def _items(key: str) -> list[NavigationCandidate]:
            return [NavigationCandidate.from_dict(c) for c in data.get(key, []) if isinstance(c, dict)]

        menus = data.get("dropdown_menus") or {}
        return cls(
            main_sections=_items("main_sections"),
            dropdown_menus={str(k): DropdownMenu.from_dict(v) for k, v in menus.items() if isinstance(v, dict)},
            clickable_elements=_items("clickable_elements"),
            sidebar_navigation=_items("sidebar_navigation"),
            breadcrumb_patterns=_items("breadcrumb_patterns"),
            navigation_selectors={
                str(k): [str(s) for s in v] for k, v in (data.get("navigation_selectors") or {}).items()
            },
        )


@dataclass
class StrategyMetrics:
    duration_ms: float = 0.0
    items_found: int = 0
    confidence: float = 0.0
    success: bool = False
    error: str = ""


@dataclass
class DiscoveryMetadata:
    domain: str = ""
    strategies_used: list[str] = field(default_factory=list)
    total_strategies: int = 0
    confidence: float = 0.0
    confidence_scores: dict[str, float] = field(default_factory=dict)
    metrics: dict[str, StrategyMetrics] = field(default_factory=dict)
    total_discovered: int = 0
    discovery_time_ms: float = 0.0
    early_exit: bool = False
    from_cache: bool = False


@dataclass
class DiscoveryResult:
    navigation_map: NavigationMap
    metadata: DiscoveryMetadata

    @property
    def confidence(self) -> float:
        return self.metadata.confidence

    def to_dict(self) -> dict[str, Any]:
        meta = self.metadata
        return {
            "navigation_map": self.navigation_map.to_dict(),
            "discovery_metadata": {
                "domain": meta.domain,
                "strategies_used": list(meta.strategies_used),
                "total_strategies": meta.total_strategies,
                "confidence": meta.confidence,
                "confidence_scores": dict(meta.confidence_scores),
                "metrics": {
                    name: {
                        "duration_ms": m.duration_ms,
                        "items_found": m.items_found,
                        "confidence": m.confidence,
                        "success": m.success,
                        "error": m.error,
                    }
                    for name, m in meta.metrics.items()
                },
                "total_discovered": meta.total_discovered,
                "discovery_time_ms": meta.discovery_time_ms,
                "early_exit": meta.early_exit,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiscoveryResult:
        raw_meta = data.get("discovery_metadata") or {}
        metrics = {
            str(name): StrategyMetrics(
                duration_ms=float(m.get("duration_ms", 0.0)),
                items_found=int(m.get("items_found", 0)),
                confidence=float(m.get("confidence", 0.0)),
                success=bool(m.get("success", False)),
                error=str(m.get("error") or ""),
            )
            for name, m in (raw_meta.get("metrics") or {}).items()
            if isinstance(m, dict)
        }
        meta = DiscoveryMetadata(
            domain=str(raw_meta.get("domain") or ""),
            strategies_used=[str(s) for s in raw_meta.get("strategies_used", [])],
            total_strategies=int(raw_meta.get("total_strategies", 0)),
            confidence=float(raw_meta.get("confidence", 0.0)),
            confidence_scores={str(k): float(v) for k, v in (raw_meta.get("confidence_scores") or {}).items()},
            metrics=metrics,
            total_discovered=int(raw_meta.get("total_discovered", 0)),
            discovery_time_ms=float(raw_meta.get("discovery_time_ms", 0.0)),
            early_exit=bool(raw_meta.get("early_exit", False)),
        )
        return cls(navigation_map=NavigationMap.from_dict(data.get("navigation_map") or {}), metadata=meta)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def order_strategies(strategies: list[NavigationStrategy], priority: list[str]) -> list[NavigationStrategy]:
    """Ranked strategies first (in ``priority`` order), then the rest in registration order."""
    rank = {name: i for i, name in enumerate(priority)}
    ranked = sorted(
        (s for s in strategies if strategy_name(s) in rank),
        key=lambda s: rank[strategy_name(s)],
    )
    return ranked + [s for s in strategies if strategy_name(s) not in rank]


def should_exit_early(discovered: list[tuple[str, StrategyResult]], min_confidence: float) -> bool:
    """Enough navigation found: many main items, many items, or very high confidence."""
    if not discovered:
        return False
    total_items = sum(len(r.items) for _, r in discovered)
    main_items = sum(1 for _, r in discovered for i in r.items if i.item_type == "main_section")
    avg_confidence = sum(r.confidence for _, r in discovered) / len(discovered)
    return (
        (main_items >= _EARLY_EXIT_MAIN_ITEMS and avg_confidence >= min_confidence)
        or total_items >= _EARLY_EXIT_TOTAL_ITEMS
        or avg_confidence >= _EARLY_EXIT_CONFIDENCE
    )


def merge_results(discovered: list[tuple[str, StrategyResult]]) -> NavigationMap:
    """Merge strategy outputs in execution order; a URL is kept once, attributed to its first discoverer."""
    nav = NavigationMap()
    seen_urls: set[str] = set()
    seen_selectors: set[str] = set()

    for name, result in discovered:
        for item in result.items:
            if item.selector and item.selector not in seen_selectors:
                seen_selectors.add(item.selector)
                nav.navigation_selectors.setdefault(item.selector_category or "general", []).append(item.selector)

            key = canonicalize_url(item.url) if item.url else ""
            if key and key in seen_urls:
                continue

            if item.item_type == "dropdown":
                if key:
                    seen_urls.add(key)
                menu_id = f"dropdown_{len(nav.dropdown_menus)}"
                nav.dropdown_menus[menu_id] = DropdownMenu(
                    trigger=_attributed(item, name, keep_children=False),
                    selector=item.selector,
                    items=list(item.children),
                    discovered_by=name,
                )
                continue

            if not key:
                continue
            seen_urls.add(key)
            attributed = _attributed(item, name)
            if item.item_type == "main_section":
                nav.main_sections.append(attributed)
            elif item.item_type == "breadcrumb":
                nav.breadcrumb_patterns.append(attributed)
            elif item.item_type == "sidebar":
                nav.sidebar_navigation.append(attributed)
            else:
                nav.clickable_elements.append(attributed)

    return nav


def _attributed(item: NavigationCandidate, strategy: str, *, keep_children: bool = True) -> NavigationCandidate:
    return NavigationCandidate(
        name=item.name,
        url=item.url,
        selector=item.selector,
        element_type=item.element_type,
        has_dropdown=item.has_dropdown,
        discovered_by=item.discovered_by or strategy,
        item_type=item.item_type,
        page_purpose=item.page_purpose,
        selector_category=item.selector_category,
        children=list(item.children) if keep_children else [],
    )


def score_navigation(nav: NavigationMap, metrics: dict[str, StrategyMetrics]) -> float:
    """Overall confidence in [0, 1] from section/dropdown presence, volume and strategy success."""
    confidence = 0.0
    if nav.main_sections:
        confidence += 0.3
    if nav.dropdown_menus:
        confidence += 0.2
    confidence += min(len(nav.main_sections) / 10, 1.0) * 0.2
    if metrics:
        successful = sum(1 for m in metrics.values() if m.success and m.items_found > 0)
        confidence += successful / len(metrics) * 0.3
    return round(min(confidence, 1.0), 4)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class NavigationDiscoveryPipeline:
    """Ordered, bounded execution of navigation strategies against one page."""

    def __init__(
        self,
        strategies: list[NavigationStrategy] | None = None,
        *,
        config: DiscoveryConfig | None = None,
        repository: PatternRepositoryProtocol | None = None,
    ) -> None:
        self._config = config or DiscoveryConfig()
        self._repository = repository
        self._strategies: list[NavigationStrategy] = []
        # Timed-out strategy tasks, held until they finish on their own.
        self._abandoned: set[asyncio.Task[StrategyResult]] = set()
        if strategies:
            self.add_strategies(strategies)

    @property
    def strategies(self) -> list[NavigationStrategy]:
        return list(self._strategies)

    def add_strategy(self, strategy: NavigationStrategy) -> None:
        if not callable(getattr(strategy, "execute", None)):
            raise ConfigurationError(f"Strategy {strategy!r} has no callable execute(page)")
        self._strategies.append(strategy)

    def add_strategies(self, strategies: list[NavigationStrategy]) -> None:
        for strategy in strategies:
            self.add_strategy(strategy)

    async def discover(self, page: Page, config: DiscoveryConfig | None = None) -> DiscoveryResult:
        """Run strategies against *page* and return the merged navigation map.

        Raises:
            ConfigurationError: If *page* is missing.
        """
        if page is None:
            raise ConfigurationError("discover() requires a page")
        cfg = config or self._config
        start = time.monotonic()
        domain = domain_of(page.url)

        ordered = order_strategies(self._strategies, await self._strategy_priority(domain))
        selected = ordered[: cfg.max_strategies]
        logger.info("Starting navigation discovery on %s with %d strategies", domain, len(selected))

        metrics: dict[str, StrategyMetrics] = {}
        if cfg.parallel:
            discovered, early_exit = await self._run_parallel(page, selected, cfg, metrics), False
        else:
            discovered, early_exit = await self._run_sequential(page, selected, cfg, metrics, start)

        nav = merge_results(discovered)
        confidence = score_navigation(nav, metrics)
        metadata = DiscoveryMetadata(
            domain=domain,
            strategies_used=[name for name, _ in discovered],
            total_strategies=len(self._strategies),
            confidence=confidence,
            confidence_scores={name: r.confidence for name, r in discovered},
            metrics=metrics,
            total_discovered=nav.total_items,
            discovery_time_ms=round((time.monotonic() - start) * 1000, 1),
            early_exit=early_exit,
        )
        logger.info(
            "Navigation discovery finished: %d main sections, %d dropdowns, confidence %.2f",
            len(nav.main_sections),
            len(nav.dropdown_menus),
            confidence,
        )

        if confidence > cfg.learning_threshold:
            await self._learn(domain, nav, metrics, confidence)
        return DiscoveryResult(navigation_map=nav, metadata=metadata)

    # ── Execution modes ──────────────────────────────────────────

    async def _run_sequential(
        self,
        page: Page,
        strategies: list[NavigationStrategy],
        cfg: DiscoveryConfig,
        metrics: dict[str, StrategyMetrics],
        start: float,
    ) -> tuple[list[tuple[str, StrategyResult]], bool]:
        discovered: list[tuple[str, StrategyResult]] = []
        deadline = start + cfg.timeout_s
        for strategy in strategies:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Discovery budget of %.1fs exhausted; skipping remaining strategies", cfg.timeout_s)
                break
            result = await self._execute(page, strategy, min(cfg.strategy_timeout_s, remaining), metrics)
            if result is not None and result.items:
                discovered.append((strategy_name(strategy), result))
            if cfg.early_exit and should_exit_early(discovered, cfg.min_confidence):
                logger.info("Early exit after %s", strategy_name(strategy))
                return discovered, True
        return discovered, False

    async def _run_parallel(
        self,
        page: Page,
        strategies: list[NavigationStrategy],
        cfg: DiscoveryConfig,
        metrics: dict[str, StrategyMetrics],
    ) -> list[tuple[str, StrategyResult]]:
        timeout = min(cfg.strategy_timeout_s, cfg.timeout_s)
        outcomes = await asyncio.gather(
            *(self._execute(page, s, timeout, metrics) for s in strategies),
            return_exceptions=True,
        )
        discovered: list[tuple[str, StrategyResult]] = []
        for strategy, outcome in zip(strategies, outcomes, strict=True):
            if isinstance(outcome, StrategyResult) and outcome.items:
                discovered.append((strategy_name(strategy), outcome))
        return discovered

    async def _execute(
        self,
        page: Page,
        strategy: NavigationStrategy,
        timeout_s: float,
        metrics: dict[str, StrategyMetrics],
    ) -> StrategyResult | None:
        name = strategy_name(strategy)
        started = time.monotonic()
        try:
            result = await self._race(page, strategy, timeout_s)
        except Exception as exc:
            metrics[name] = StrategyMetrics(
                duration_ms=round((time.monotonic() - started) * 1000, 1),
                error=str(exc) or type(exc).__name__,
            )
            logger.warning("Strategy %s failed: %s", name, exc)
            return None

        metrics[name] = StrategyMetrics(
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            items_found=len(result.items),
            confidence=result.confidence,
            success=True,
            error=str(result.metadata.get("error") or ""),
        )
        logger.debug("Strategy %s found %d items (confidence %.2f)", name, len(result.items), result.confidence)
        return result

    async def _race(self, page: Page, strategy: NavigationStrategy, timeout_s: float) -> StrategyResult:
        """Await ``strategy.execute`` up to *timeout_s*; on timeout abandon the task without cancelling it."""
        name = strategy_name(strategy)
        task = asyncio.ensure_future(strategy.execute(page))
        done, _ = await asyncio.wait({task}, timeout=timeout_s)
        if not done:
            self._abandoned.add(task)
            task.add_done_callback(self._reap)
            raise StrategyTimeoutError(
                f"Strategy {name} exceeded {timeout_s:.1f}s", strategy=name, timeout_s=timeout_s
            )
        result = task.result()
        if not isinstance(result, StrategyResult):
            raise StrategyError(f"Strategy {name} returned {type(result).__name__}", strategy=name)
        return result

    def _reap(self, task: asyncio.Task[StrategyResult]) -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Abandoned strategy task finished with error: %s", task.exception())

    # ── Learning ─────────────────────────────────────────────────

    async def _strategy_priority(self, domain: str) -> list[str]:
        if self._repository is None:
            return []
        try:
            patterns = await self._repository.get_site_patterns(domain)
        except Exception as exc:
            logger.warning("Could not read site patterns for %s: %s", domain, exc)
            return []
        priority = (patterns or {}).get("strategy_priority") or []
        return [str(p) for p in priority]

    async def _learn(
        self,
        domain: str,
        nav: NavigationMap,
        metrics: dict[str, StrategyMetrics],
        confidence: float,
    ) -> None:
        if self._repository is None:
            return
        payload = {
            "successful_strategies": [n for n, m in metrics.items() if m.success and m.items_found > 0],
            "navigation_selectors": nav.navigation_selectors,
            "element_count": nav.total_items,
            "confidence": confidence,
        }
        try:
            await self._repository.store_navigation_patterns(domain, payload)
        except Exception as exc:
            logger.warning("Failed to store navigation patterns for %s: %s", domain, exc)
