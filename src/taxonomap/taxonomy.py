# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""End-to-end taxonomy discovery: pipeline → classifier → tree → dedup.

``TaxonomyDiscovery.run`` takes a page already on the shop's home page and
returns the classified navigation, the category tree and one deduplication
record per discovered category.  Repository reads and writes are best
effort: a failing repository is logged and never fails the run.
"""

from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Page

from . import CategoryNode, ClassifiedItem, Tier
from .browser import BrowserConfig, open_browser_context
from .classifier import StructuralNavigationClassifier
from .config import Settings
from .deduplicator import CategoryDeduplicator, DeduplicationRecord
from .discovery import DiscoveryResult, NavigationDiscoveryPipeline, NavigationMap
from .errors import ConfigurationError
from .logging_config import bound_context
from .repository import InMemoryPatternRepository, PatternRepositoryProtocol
from .strategies import NavigationStrategy, default_strategies
from .tree_builder import CategoryTreeBuilder, FlushHook, PageFactory, flatten_tree
from .urls import canonicalize_url, domain_of

logger = logging.getLogger(__name__)


@dataclass
class TaxonomyResult:
    base_url: str
    discovery: DiscoveryResult
    classified: list[ClassifiedItem]
    tree: CategoryNode
    records: list[DeduplicationRecord]
    stats: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "discovery": self.discovery.to_dict(),
            "classified": [
                {"name": c.name, "url": c.url, "tier": str(c.tier), "score": c.score, "fallback": c.fallback}
                for c in self.classified
            ],
            "tree": self.tree.to_dict(),
            "records": [r.to_dict() for r in self.records],
            "stats": self.stats,
        }


def tiered_navigation(navigation: NavigationMap, classified: list[ClassifiedItem]) -> NavigationMap:
    """Rebuild *navigation* from classifier tiers; utility items are dropped."""
    main: list = []
    clickable: list = []
    for item in classified:
        if item.tier is Tier.MAIN_SECTION:
            main.append(dataclasses.replace(item.candidate, item_type="main_section"))
        elif item.tier is Tier.CATEGORY:
            clickable.append(dataclasses.replace(item.candidate, page_purpose="category"))
        elif item.tier is Tier.SUBCATEGORY:
            clickable.append(dataclasses.replace(item.candidate, page_purpose="subcategory"))
    return NavigationMap(
        main_sections=main,
        dropdown_menus=dict(navigation.dropdown_menus),
        clickable_elements=clickable,
        sidebar_navigation=[],
        breadcrumb_patterns=list(navigation.breadcrumb_patterns),
        navigation_selectors={k: list(v) for k, v in navigation.navigation_selectors.items()},
    )


class TaxonomyDiscovery:
    """Runs the four stages against one site with shared settings and repository."""

    def __init__(
        self,
        page_factory: PageFactory,
        *,
        settings: Settings | None = None,
        strategies: list[NavigationStrategy] | None = None,
        repository: PatternRepositoryProtocol | None = None,
        on_flush: FlushHook | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._repository = repository
        self._pipeline = NavigationDiscoveryPipeline(
            strategies if strategies is not None else default_strategies(),
            config=self._settings.discovery,
            repository=repository,
        )
        self._classifier = StructuralNavigationClassifier(self._settings.classifier)
        self._builder = CategoryTreeBuilder(page_factory, options=self._settings.tree, on_flush=on_flush)
        self._deduplicator = CategoryDeduplicator(self._settings.dedup)

    @property
    def pipeline(self) -> NavigationDiscoveryPipeline:
        return self._pipeline

    async def run(
        self,
        page: Page,
        *,
        base_url: str | None = None,
        product_samples: Mapping[str, list[str]] | None = None,
        use_cache: bool = True,
    ) -> TaxonomyResult:
        """Discover, classify, explore and deduplicate the taxonomy of the site on *page*.

        Args:
            page: Page already navigated to the site (usually its home page).
            base_url: Root of the tree; defaults to ``page.url``.
            product_samples: Known product URLs per category URL.
            use_cache: Reuse a stored discovery for this domain when present.

        Raises:
            ConfigurationError: If *page* is missing.
        """
        if page is None:
            raise ConfigurationError("run() requires a page")
        root_url = base_url or page.url
        domain = domain_of(root_url)
        start = time.monotonic()

        with bound_context(domain=domain, run_id=uuid.uuid4().hex[:12]):
            discovery = await self._discover(page, domain, use_cache)
            nav = discovery.navigation_map

            candidates = [*nav.main_sections, *nav.clickable_elements, *nav.sidebar_navigation]
            classified = await self._classifier.classify(candidates, page)
            tiered = tiered_navigation(nav, classified)

            tree = await self._builder.build_category_tree(root_url, tiered, self._settings.tree)

            categories = flatten_tree(tree)
            if product_samples:
                samples = {canonicalize_url(url): list(products) for url, products in product_samples.items()}
                for category in categories:
                    category.products = samples.get(category.url, [])
            records = self._deduplicator.deduplicate(categories)

            stats = {
                "domain": domain,
                "discovery_confidence": discovery.confidence,
                "from_cache": discovery.metadata.from_cache,
                "classification": dataclasses.asdict(self._classifier.last_summary),
                "tree": self._builder.get_stats(),
                "deduplication": self._deduplicator.get_stats(records),
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            }
            result = TaxonomyResult(
                base_url=root_url,
                discovery=discovery,
                classified=classified,
                tree=tree,
                records=records,
                stats=stats,
            )
            await self._store_taxonomy(root_url, result)
            logger.info(
                "Taxonomy discovery complete: %d categories, %d to crawl",
                len(records),
                stats["deduplication"]["products"],
            )
            return result

    async def _discover(self, page: Page, domain: str, use_cache: bool) -> DiscoveryResult:
        if use_cache and self._repository is not None:
            try:
                cached = await self._repository.get_discovery(domain)
            except Exception as exc:
                logger.warning("Could not read cached discovery for %s: %s", domain, exc)
                cached = None
            if cached:
                logger.info("Reusing cached navigation discovery for %s", domain)
                result = DiscoveryResult.from_dict(cached)
                result.metadata.from_cache = True
                return result

        result = await self._pipeline.discover(page)
        if self._repository is not None and result.confidence > self._settings.discovery.learning_threshold:
            try:
                await self._repository.store_discovery(domain, result.to_dict())
            except Exception as exc:
                logger.warning("Failed to store discovery for %s: %s", domain, exc)
        return result

    async def _store_taxonomy(self, url: str, result: TaxonomyResult) -> None:
        if self._repository is None:
            return
        try:
            await self._repository.store_taxonomy(url, result.to_dict())
        except Exception as exc:
            logger.warning("Failed to store taxonomy for %s: %s", url, exc)


async def discover_site(
    url: str,
    settings: Settings | None = None,
    *,
    repository: PatternRepositoryProtocol | None = None,
    browser_config: BrowserConfig | None = None,
) -> TaxonomyResult:
    """Launch a browser, open *url* and run the full taxonomy discovery.

    Without an explicit *repository*, uses ``settings.db_path`` (SQLite) when
    set, else an in-memory repository.
    """
    cfg = settings or Settings()
    owned = repository is None
    if repository is None:
        if cfg.db_path:
            from .repository_sqlite import SqlitePatternRepository

            repository = await SqlitePatternRepository.create(cfg.db_path)
        else:
            repository = InMemoryPatternRepository()

    try:
        async with open_browser_context(browser_config) as context:
            page = await context.new_page()
            await page.goto(url, wait_until=(browser_config or BrowserConfig()).wait_until)
            discovery = TaxonomyDiscovery(context.new_page, settings=cfg, repository=repository)
            return await discovery.run(page, base_url=url)
    finally:
        if owned:
            await repository.close()
