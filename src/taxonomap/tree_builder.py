# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Category tree builder: bounded priority-BFS over category pages.

Seeds come from a discovered ``NavigationMap``.  Each dequeued item becomes
a ``CategoryNode``; its children are either the dropdown links already known
for it (no page visit) or the sidebar/category/filter links scraped from a
fresh page opened through the injected ``page_factory``.

A canonical-URL visited set makes every URL a node at most once, so link
cycles cannot loop.  Depth, per-level queue width and total node count are
capped by ``TreeBuilderOptions``; page visits are serialized and paced.
"""

from __future__ import annotations

import asyncio
import gc
import heapq
import itertools
import logging
import re
import time
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from playwright.async_api import Page

from . import Category, CategoryNode, NavigationCandidate
from .config import TreeBuilderOptions
from .discovery import NavigationMap
from .errors import ConfigurationError, VisitError
from .urls import canonicalize_url, is_navigable_url, resolve_url

logger = logging.getLogger(__name__)

PageFactory = Callable[[], Awaitable[Page]]
FlushHook = Callable[["TreeBuildStats"], Awaitable[None]]

_PROGRESS_EVERY = 10

_CHILD_LINKS_JS = """\
() => {
  const SELECTORS = [
    ".sidebar nav a", ".sidebar a[href]", "[class*='sidebar'] a", "aside nav a", "aside a[href]",
    ".category-nav a", ".subcategory-list a", ".category-menu a", "[class*='category'] a",
    ".refinement a", ".filter-options a", "[class*='filter'] a", "[class*='refine'] a",
    ".left-nav a", ".left-navigation a", "[class*='left-nav'] a",
    "nav.secondary a", ".nav-secondary a", ".subnav a"
  ];
  const seen = new Set();
  const out = [];
  for (const sel of SELECTORS) {
    let found;
    try { found = document.querySelectorAll(sel); } catch (e) { continue; }
    for (const a of found) {
      const text = (a.textContent || "").replace(/\\s+/g, " ").trim();
      const href = a.href || "";
      if (!text || !href || seen.has(href)) continue;
      seen.add(href);
      out.push({name: text.slice(0, 120), url: href, selector: sel});
    }
  }
  return out;
}"""

_CHILD_SKIP_RE = re.compile(
    r"\b(?:sign in|sign up|log in|login|register|cart|bag|checkout|wishlist|help|support|contact|about|"
    r"account|profile|settings|facebook|twitter|instagram|pinterest|privacy|terms|cookies|policy|"
    r"store locator|gift card|email|download|app|mobile)\b",
    re.IGNORECASE,
)

_PRIORITY_TERMS_RE = re.compile(
    r"\b(?:women|men|kids|baby|girls|boys|clothing|shoes|accessories|home|beauty|jewelry|handbags|"
    r"furniture|electronics|sports|outdoor|health|books|toys|products|services|solutions|industries|"
    r"categories|departments|collections|new|sale|clearance|featured)s?\b",
    re.IGNORECASE,
)
_PLAIN_LABEL_RE = re.compile(r"^[a-zA-Z\s&]{2,30}$")
_CATEGORY_WORD_RE = re.compile(r"collection|category|department", re.IGNORECASE)


def should_explore(candidate: NavigationCandidate) -> bool:
    """Admission filter: named, and either a known category term or a short plain label."""
    name = candidate.name.strip()
    if not name:
        return False
    return bool(
        _PRIORITY_TERMS_RE.search(name) or _PLAIN_LABEL_RE.match(name) or _CATEGORY_WORD_RE.search(name)
    )


def node_type_for_depth(depth: int) -> str:
    if depth == 1:
        return "main_category"
    if depth == 2:
        return "subcategory"
    if depth == 3:
        return "sub_subcategory"
    return "deep_category"


def extract_seeds(navigation: NavigationMap) -> list[NavigationCandidate]:
    """Main sections, dropdown menus and navigation-purpose clickables, deduplicated by URL (or name)."""
    seeds: list[NavigationCandidate] = list(navigation.main_sections)

    for menu in navigation.dropdown_menus.values():
        # A trigger without a followable URL never becomes a node; its items seed directly.
        if menu.trigger is not None and menu.trigger.name and resolve_url(menu.trigger.url, menu.trigger.url):
            trigger = menu.trigger
            seeds.append(
                NavigationCandidate(
                    name=trigger.name,
                    url=trigger.url,
                    selector=trigger.selector,
                    element_type=trigger.element_type,
                    has_dropdown=True,
                    discovered_by=trigger.discovered_by or menu.discovered_by,
                    item_type="dropdown",
                    children=list(menu.items),
                )
            )
        else:
            seeds.extend(menu.items)

    seeds.extend(
        el
        for el in navigation.clickable_elements
        if el.page_purpose in ("navigation", "category") or "nav" in el.selector
    )

    seen: set[str] = set()
    unique: list[NavigationCandidate] = []
    for seed in seeds:
        key = canonicalize_url(seed.url) if seed.url else seed.name
        if key in seen:
            continue
        seen.add(key)
        unique.append(seed)
    return unique


def flatten_tree(root: CategoryNode) -> list[Category]:
    """All non-root nodes as ``Category`` records, breadth-first."""
    flat: list[Category] = []
    pending: deque[tuple[CategoryNode, str]] = deque((child, "") for child in root.children)
    while pending:
        node, parent = pending.popleft()
        flat.append(
            Category(
                name=node.name,
                url=node.url,
                depth=node.depth,
                parent=parent,
                source=str(node.metadata.get("discovery_method", "")),
            )
        )
        pending.extend((child, node.name) for child in node.children)
    return flat


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass
class TreeBuildStats:
    total_categories: int = 0
    main_categories: int = 0
    subcategories: int = 0
    deep_categories: int = 0
    skipped_duplicates: int = 0
    failed_visits: int = 0
    level_limited: int = 0  # enqueue attempts rejected by the per-level cap
    page_visits: int = 0
    discovery_time_ms: float = 0.0

    def record(self, depth: int) -> None:
        self.total_categories += 1
        if depth == 1:
            self.main_categories += 1
        elif depth == 2:
            self.subcategories += 1
        else:
            self.deep_categories += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(order=True)
class _QueueEntry:
    priority: int
    depth: int
    seq: int
    url: str = field(compare=False)
    candidate: NavigationCandidate = field(compare=False)
    parent: CategoryNode = field(compare=False)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class CategoryTreeBuilder:
    """Priority-BFS taxonomy explorer.  One build at a time per instance."""

    def __init__(
        self,
        page_factory: PageFactory,
        *,
        options: TreeBuilderOptions | None = None,
        on_flush: FlushHook | None = None,
    ) -> None:
        self._page_factory = page_factory
        self._options = options or TreeBuilderOptions()
        self._on_flush = on_flush
        self._reset(self._options, "")

    def _reset(self, options: TreeBuilderOptions, base_url: str) -> None:
        self._run_options = options
        self._base_url = base_url
        self._visited: set[str] = set()
        self._queue: list[_QueueEntry] = []
        self._queued_per_depth: Counter[int] = Counter()
        self._seq = itertools.count()
        self._processed = 0
        self.stats = TreeBuildStats()

    async def build_category_tree(
        self,
        base_url: str,
        navigation: NavigationMap,
        options: TreeBuilderOptions | None = None,
    ) -> CategoryNode:
        """Explore the site from *navigation* seeds and return the root node.

        Raises:
            ConfigurationError: If *base_url* or *navigation* is missing.
        """
        if not base_url:
            raise ConfigurationError("build_category_tree() requires a base URL")
        if navigation is None:
            raise ConfigurationError("build_category_tree() requires seed navigation")

        start = time.monotonic()
        root_url = canonicalize_url(base_url)
        self._reset(options or self._options, base_url)
        self._visited.add(root_url)
        logger.info("Building category tree for %s", root_url)

        root = CategoryNode(
            name="Root",
            url=root_url,
            type="root",
            depth=0,
            metadata={
                "discovered_at": datetime.now(UTC).isoformat(),
                "discovery_method": "category_tree_builder",
            },
        )

        seeds = extract_seeds(navigation)
        logger.info("Found %d main sections to explore", len(seeds))
        for seed in seeds:
            self._enqueue(seed, depth=1, priority=1, parent=root)

        await self._process_queue()

        self.stats.discovery_time_ms = round((time.monotonic() - start) * 1000, 1)
        root.metadata["total_categories"] = self.stats.total_categories
        root.metadata["max_depth_reached"] = max((n.depth for n in root.iter_nodes()), default=0)
        root.metadata["discovery_stats"] = self.stats.to_dict()
        logger.info(
            "Category tree built in %.0fms: %d categories (%d main), max depth %d",
            self.stats.discovery_time_ms,
            self.stats.total_categories,
            self.stats.main_categories,
            root.metadata["max_depth_reached"],
        )
        return root

    def get_stats(self) -> dict[str, Any]:
        return {
            **self.stats.to_dict(),
            "queue_size": len(self._queue),
            "visited_urls": len(self._visited),
            "processed_count": self._processed,
        }

    # ── Queue ────────────────────────────────────────────────────

    def _enqueue(self, candidate: NavigationCandidate, *, depth: int, priority: int, parent: CategoryNode) -> bool:
        opts = self._run_options
        url = resolve_url(candidate.url, self._base_url)
        if not url or url in self._visited:
            return False
        if depth > opts.max_depth:
            return False
        if self._queued_per_depth[depth] >= opts.max_categories_per_level:
            self.stats.level_limited += 1
            logger.debug("Level limit reached at depth %d; dropping %r", depth, candidate.name)
            return False
        if not should_explore(candidate):
            return False
        heapq.heappush(self._queue, _QueueEntry(priority, depth, next(self._seq), url, candidate, parent))
        self._queued_per_depth[depth] += 1
        return True

    async def _process_queue(self) -> None:
        opts = self._run_options
        while self._queue and self.stats.total_categories < opts.max_total_categories:
            entry = heapq.heappop(self._queue)
            self._queued_per_depth[entry.depth] -= 1

            if entry.url in self._visited:
                self.stats.skipped_duplicates += 1
                continue
            self._visited.add(entry.url)

            node = await self._process_entry(entry)
            entry.parent.children.append(node)
            self.stats.record(entry.depth)
            self._processed += 1

            if self.stats.total_categories % opts.memory_flush_threshold == 0:
                await self._memory_flush()
            if self._processed % _PROGRESS_EVERY == 0:
                logger.info(
                    "Progress: %d processed, %d queued, %d categories",
                    self._processed,
                    len(self._queue),
                    self.stats.total_categories,
                )

    async def _process_entry(self, entry: _QueueEntry) -> CategoryNode:
        candidate, depth = entry.candidate, entry.depth
        node = CategoryNode(
            name=candidate.name,
            url=entry.url,
            type=node_type_for_depth(depth),
            depth=depth,
            selector=candidate.selector,
            metadata={
                "discovered_at": datetime.now(UTC).isoformat(),
                "discovery_method": candidate.discovered_by or "category_tree_builder",
                "has_dropdown": candidate.has_dropdown,
            },
        )

        if candidate.children:
            children = candidate.children
        elif depth < self._run_options.max_depth and is_navigable_url(entry.url, self._base_url):
            children = await self._discover_children(entry.url)
        else:
            children = []

        for child in children:
            self._enqueue(child, depth=depth + 1, priority=depth + 1, parent=node)
        return node

    # ── Page visits ──────────────────────────────────────────────

    async def _discover_children(self, url: str) -> list[NavigationCandidate]:
        if self.stats.page_visits > 0 and self._run_options.request_delay_s > 0:
            await asyncio.sleep(self._run_options.request_delay_s)
        self.stats.page_visits += 1
        try:
            raw = await self._visit(url)
        except VisitError as exc:
            self.stats.failed_visits += 1
            logger.warning("Child discovery failed for %s: %s", exc.url, exc)
            return []

        children: list[NavigationCandidate] = []
        for link in raw:
            if not isinstance(link, dict):
                continue
            name = str(link.get("name") or "").strip()
            href = resolve_url(str(link.get("url") or ""), url)
            if len(name) <= 1 or not href or _CHILD_SKIP_RE.search(name):
                continue
            if not is_navigable_url(href, self._base_url):
                continue
            children.append(
                NavigationCandidate(
                    name=name,
                    url=href,
                    selector=str(link.get("selector") or ""),
                    discovered_by="category_tree_builder",
                    item_type="sidebar",
                    page_purpose="category",
                )
            )
        logger.debug("Found %d child categories at %s", len(children), url)
        return children

    async def _visit(self, url: str) -> list[Any]:
        opts = self._run_options
        page: Page | None = None
        try:
            page = await self._page_factory()
            await page.goto(url, wait_until="domcontentloaded", timeout=opts.visit_timeout_s * 1000)
            if opts.settle_s > 0:
                await page.wait_for_timeout(opts.settle_s * 1000)
            raw = await page.evaluate(_CHILD_LINKS_JS)
        except Exception as exc:
            raise VisitError(str(exc) or type(exc).__name__, url=url) from exc
        finally:
            if page is not None:
                with suppress(Exception):
                    await page.close()
        return raw if isinstance(raw, list) else []

    async def _memory_flush(self) -> None:
        logger.debug("Memory flush at %d categories", self.stats.total_categories)
        gc.collect()
        if self._on_flush is None:
            return
        try:
            await self._on_flush(self.stats)
        except Exception as exc:
            logger.warning("Flush hook failed: %s", exc)
