# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Non-interactive navigation link collection.

Reads every link under broad navigation selectors in a single
``page.evaluate`` call, optionally including links inside hidden
containers (collapsed mega-menus, mobile drawers).  Filtering, department
promotion and ordering happen in Python so they can be tested without a
browser.  No hovering or clicking, so this is the safe last resort.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any

from playwright.async_api import Page

from .. import NavigationCandidate
from . import StrategyResult
from ._dom import ELEMENT_TEXT_FN, UNIQUE_SELECTOR_FN

logger = logging.getLogger(__name__)

NAVIGATION_LINK_SELECTORS: tuple[str, ...] = (
    "nav a",
    "header a",
    '[role="navigation"] a',
    ".navigation a",
    ".nav a",
    ".menu a",
    ".navbar a",
    ".main-nav a",
    ".primary-nav a",
    ".site-nav a",
    ".global-nav a",
    '[class*="nav"] a',
    '[class*="menu"] a',
    '[class*="Nav"] a',
    '[class*="Menu"] a',
    ".nav-link",
    '[data-testid*="nav"] a',
    '[aria-label*="navigation"] a',
    '[role="menuitem"]',
    'a[href*="/shop/"]',
    'a[href*="/browse/"]',
    'a[href*="/category/"]',
    'a[href*="/collections/"]',
    'a[href*="/department/"]',
    'a[href*="/c/"]',
    'a[class*="department"]',
)

HIDDEN_CONTAINER_SELECTORS: tuple[str, ...] = (
    ".dropdown",
    ".dropdown-menu",
    ".mega-menu",
    ".submenu",
    '[class*="menu"][style*="none"]',
    ".mobile-nav",
    ".mobile-menu",
    ".off-canvas",
)

SKIP_TEXT_PATTERNS: tuple[str, ...] = (
    "sign in",
    "sign up",
    "login",
    "log in",
    "logout",
    "cart",
    "bag",
    "basket",
    "checkout",
    "account",
    "profile",
    "wishlist",
    "favorites",
    "help",
    "support",
    "contact",
    "customer service",
    "store locator",
    "find a store",
    "facebook",
    "twitter",
    "instagram",
    "youtube",
    "pinterest",
    "tiktok",
    "snapchat",
    "privacy",
    "terms",
    "cookie",
    "legal",
    "copyright",
    "accessibility",
    "sitemap",
)

DEPARTMENT_TERMS: tuple[str, ...] = (
    "women",
    "men",
    "girls",
    "boys",
    "baby",
    "kids",
    "toddler",
    "home",
    "beauty",
    "shoes",
    "jewelry",
    "handbags",
    "accessories",
    "electronics",
    "furniture",
    "sports",
    "toys",
    "books",
    "clothing",
    "apparel",
    "fashion",
)

_SKIP_RE = re.compile(r"\b(?:" + "|".join(re.escape(p) for p in SKIP_TEXT_PATTERNS) + r")\b", re.IGNORECASE)
_DEPARTMENT_RE = re.compile(r"\b(?:" + "|".join(DEPARTMENT_TERMS) + r")\b", re.IGNORECASE)
_BAD_SCHEMES = ("javascript:", "mailto:", "tel:")

_COLLECT_LINKS_JS = (
    "(args) => {\n"
    + UNIQUE_SELECTOR_FN
    + ELEMENT_TEXT_FN
    + """\
  const isHidden = (el) => {
    const st = getComputedStyle(el);
    const r = el.getBoundingClientRect();
    return st.display === "none" || st.visibility === "hidden" ||
      parseFloat(st.opacity) === 0 || r.width === 0 || r.height === 0;
  };
  const seen = new Set();
  const links = [];
  const push = (a, via, hidden) => {
    const url = a.href || "";
    if (!url || seen.has(url)) return;
    seen.add(url);
    const box = a.closest('nav, header, [role="navigation"]');
    links.push({
      name: elementText(a).slice(0, 200),
      url: url,
      selector: uniqueSelector(a),
      visible: !hidden,
      via: via,
      container: box ? box.localName : ""
    });
  };
  for (const sel of args.linkSelectors) {
    let found;
    try { found = document.querySelectorAll(sel); } catch (e) { continue; }
    for (const a of found) {
      if (links.length >= args.scanLimit) break;
      const hidden = isHidden(a);
      if (hidden && !args.includeHidden) continue;
      push(a, sel, hidden);
    }
  }
  if (args.includeHidden) {
    for (const sel of args.hiddenSelectors) {
      let found;
      try { found = document.querySelectorAll(sel); } catch (e) { continue; }
      for (const box of found) {
        if (!isHidden(box)) continue;
        for (const a of box.querySelectorAll("a[href]")) {
          if (links.length >= args.scanLimit) break;
          push(a, sel, true);
        }
      }
    }
  }
  return links;
}"""
)


def should_skip_link(name: str, url: str) -> bool:
    """True for empty, utility, social or legal links and non-navigable hrefs."""
    if not name or not url:
        return True
    lowered = url.lower()
    if lowered.startswith(_BAD_SCHEMES) or "#" in url:
        return True
    return bool(_SKIP_RE.search(name))


def is_department(name: str) -> bool:
    return bool(_DEPARTMENT_RE.search(name))


class FallbackLinkStrategy:
    """Broad, interaction-free link sweep of navigation areas."""

    name = "FallbackLinkStrategy"

    def __init__(self, *, include_hidden: bool = True, max_links: int = 500) -> None:
        self._include_hidden = include_hidden
        self._max_links = max_links

    async def execute(self, page: Page) -> StrategyResult:
        start = time.monotonic()
        try:
            raw = await page.evaluate(
                _COLLECT_LINKS_JS,
                {
                    "linkSelectors": list(NAVIGATION_LINK_SELECTORS),
                    "hiddenSelectors": list(HIDDEN_CONTAINER_SELECTORS),
                    "includeHidden": self._include_hidden,
                    "scanLimit": self._max_links * 4,
                },
            )
        except Exception as exc:
            logger.warning("Fallback link collection failed on %s: %s", page.url, exc)
            return StrategyResult.empty(self.name, str(exc))

        items, stats = self.process_links(raw if isinstance(raw, list) else [])
        confidence = self.confidence_for(len(items), stats)
        logger.info("Fallback collected %d navigation links (%d departments)", len(items), stats["department_links"])
        return StrategyResult(
            items=items,
            confidence=confidence,
            metadata={
                "strategy": self.name,
                "item_count": len(items),
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
                **stats,
            },
        )

    def process_links(self, raw_links: list[Any]) -> tuple[list[NavigationCandidate], dict[str, int]]:
        """Filter, dedupe, promote departments and order: departments, then visible, then hidden."""
        seen: set[str] = set()
        rows: list[tuple[bool, bool, NavigationCandidate]] = []
        for link in raw_links:
            if not isinstance(link, dict):
                continue
            name = str(link.get("name") or "").strip()
            url = str(link.get("url") or "")
            if url in seen or should_skip_link(name, url):
                continue
            seen.add(url)
            department = is_department(name)
            visible = bool(link.get("visible", True))
            rows.append(
                (
                    department,
                    visible,
                    NavigationCandidate(
                        name=name,
                        url=url,
                        selector=str(link.get("selector") or ""),
                        element_type="a",
                        discovered_by=self.name,
                        item_type="main_section" if department else "navigation",
                        selector_category="hidden" if not visible else "navigation",
                    ),
                )
            )

        # Stable sort keeps document order inside each bucket.
        rows.sort(key=lambda r: (not r[0], not r[1]))
        kept = rows[: self._max_links]
        stats = {
            "total_links_found": len(rows),
            "visible_links": sum(1 for r in kept if r[1]),
            "hidden_links": sum(1 for r in kept if not r[1]),
            "department_links": sum(1 for r in kept if r[0]),
        }
        return [r[2] for r in kept], stats

    @staticmethod
    def confidence_for(item_count: int, stats: dict[str, int]) -> float:
        confidence = 0.3
        if item_count > 100:
            confidence += 0.3
        elif item_count > 50:
            confidence += 0.2
        elif item_count > 20:
            confidence += 0.1
        elif item_count < 5:
            confidence -= 0.1

        departments = stats.get("department_links", 0)
        if departments > 5:
            confidence += 0.2
        elif departments > 2:
            confidence += 0.1

        if stats.get("visible_links", 0) > 0 and stats.get("hidden_links", 0) > 0:
            confidence += 0.1

        return max(0.1, min(0.8, round(confidence, 4)))
