# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pattern-matching strategy over well-known dropdown / mega-menu markups.

Each ``NavPattern`` names a container (one per top-level entry), a trigger
inside it (the visible label) and a dropdown panel whose links are the
entry's children.  Panels are read straight from the DOM, hidden or not, so
no hover interaction is needed.  Patterns are tried in a per-site order and
the first one that matches at least ``min_containers`` entries wins.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from playwright.async_api import Page

from .. import NavigationCandidate
from ..urls import domain_of
from . import StrategyResult
from ._dom import ELEMENT_TEXT_FN, UNIQUE_SELECTOR_FN

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NavPattern:
    name: str
    container: str
    trigger: str
    dropdown: str
    interaction: str = "hover"  # how a human opens the panel; informational only


NAVIGATION_PATTERNS: tuple[NavPattern, ...] = (
    NavPattern("shopify-dropdown", "li.dropdown-toggle", "p.dropdown-title, a", ".dropdown-content"),
    NavPattern("bootstrap-dropdown", "nav .dropdown", ".dropdown-toggle", ".dropdown-menu"),
    NavPattern("mega-menu", "nav li[class*='mega']", "a", "[class*='mega-menu'], [class*='megamenu']"),
    NavPattern("simple-nav-ul", "nav > ul > li", "a", "ul"),
    NavPattern("amazon-nav", "#nav-main .nav-item", "a", ".nav-panel"),
    NavPattern("semantic-ui-dropdown", ".ui.dropdown", ".text", ".menu"),
    NavPattern("foundation-dropdown", ".dropdown-pane", "[data-toggle='dropdown']", ".dropdown-content"),
    NavPattern("material-nav", ".mdc-menu-surface--anchor", "button", ".mdc-menu", interaction="click"),
)

_PATTERNS_BY_NAME = {p.name: p for p in NAVIGATION_PATTERNS}

# Domains with a known-good pattern order; everything else uses registry order.
SITE_PATTERN_MAP: dict[str, tuple[str, ...]] = {
    "glasswingshop.com": ("shopify-dropdown",),
    "amazon.com": ("amazon-nav", "simple-nav-ul"),
    "nordstrom.com": ("bootstrap-dropdown", "simple-nav-ul"),
    "target.com": ("bootstrap-dropdown", "simple-nav-ul"),
    "walmart.com": ("simple-nav-ul", "bootstrap-dropdown"),
    "homedepot.com": ("bootstrap-dropdown", "simple-nav-ul"),
}


def patterns_for_site(url: str) -> list[NavPattern]:
    """Patterns to try for *url*: site-preferred first, then the rest in registry order."""
    host = domain_of(url).lower()
    if host.startswith("www."):
        host = host[4:]
    preferred: list[NavPattern] = []
    for domain, names in SITE_PATTERN_MAP.items():
        if host == domain or host.endswith("." + domain):
            preferred = [_PATTERNS_BY_NAME[n] for n in names]
            break
    rest = [p for p in NAVIGATION_PATTERNS if p not in preferred]
    return preferred + rest


_EXTRACT_PATTERN_JS = (
    "(args) => {\n"
    + UNIQUE_SELECTOR_FN
    + ELEMENT_TEXT_FN
    + """\
  let containers;
  try { containers = Array.from(document.querySelectorAll(args.container)); }
  catch (e) { return {error: "invalid_selector", containerCount: 0, items: []}; }
  const items = [];
  for (const c of containers.slice(0, args.maxContainers)) {
    let trig = null;
    try { trig = c.querySelector(args.trigger); } catch (e) {}
    trig = trig || c;
    const name = elementText(trig).slice(0, 120);
    if (!name || name.length > args.maxNameLength) continue;
    let href = trig.href || "";
    if (!href) {
      const a = c.querySelector("a[href]");
      href = a ? a.href : "";
    }
    const children = [];
    let panel = null;
    try { panel = c.querySelector(args.dropdown); } catch (e) {}
    if (panel) {
      for (const a of panel.querySelectorAll("a[href]")) {
        const t = elementText(a) || (a.getAttribute("aria-label") || "").trim();
        if (t && a.href && a.href !== href) children.push({name: t, url: a.href});
        if (children.length >= args.maxChildren) break;
      }
    }
    items.push({
      name: name,
      url: href,
      selector: uniqueSelector(trig.localName === "a" ? trig : (c.querySelector("a[href]") || trig)),
      elementType: trig.localName || "a",
      children: children
    });
  }
  return {containerCount: containers.length, items: items};
}"""
)


class NavigationPatternStrategy:
    """Known-markup dropdown extraction (no interaction)."""

    name = "NavigationPatternStrategy"

    def __init__(
        self,
        *,
        min_containers: int = 2,
        max_containers: int = 40,
        max_children: int = 200,
        max_name_length: int = 60,
    ) -> None:
        self._min_containers = min_containers
        self._max_containers = max_containers
        self._max_children = max_children
        self._max_name_length = max_name_length

    async def execute(self, page: Page) -> StrategyResult:
        start = time.monotonic()
        url = page.url
        for pattern in patterns_for_site(url):
            try:
                raw = await page.evaluate(
                    _EXTRACT_PATTERN_JS,
                    {
                        "container": pattern.container,
                        "trigger": pattern.trigger,
                        "dropdown": pattern.dropdown,
                        "maxContainers": self._max_containers,
                        "maxChildren": self._max_children,
                        "maxNameLength": self._max_name_length,
                    },
                )
            except Exception as exc:
                logger.warning("Pattern %s evaluation failed on %s: %s", pattern.name, url, exc)
                return StrategyResult.empty(self.name, f"evaluate_failed: {exc}")

            items = self._to_candidates(raw, pattern)
            if len(items) >= self._min_containers:
                total = sum(1 + len(i.children) for i in items)
                logger.info("Pattern %s matched %d sections (%d items) on %s", pattern.name, len(items), total, url)
                return StrategyResult(
                    items=items,
                    confidence=self.confidence_for(total),
                    metadata={
                        "strategy": self.name,
                        "pattern": pattern.name,
                        "container_count": raw.get("containerCount", 0) if isinstance(raw, dict) else 0,
                        "total_items": total,
                        "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    },
                )

        logger.debug("No navigation pattern matched on %s", url)
        return StrategyResult.empty(self.name, "no_pattern_matched")

    @staticmethod
    def confidence_for(total_items: int) -> float:
        if total_items > 50:
            return 0.95
        if total_items > 10:
            return 0.8
        return 0.6

    def _to_candidates(self, raw: object, pattern: NavPattern) -> list[NavigationCandidate]:
        if not isinstance(raw, dict):
            return []
        candidates: list[NavigationCandidate] = []
        for entry in raw.get("items", []):
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            children = [
                NavigationCandidate(
                    name=str(child.get("name", "")),
                    url=str(child.get("url", "")),
                    discovered_by=self.name,
                    item_type="dropdown_item",
                )
                for child in entry.get("children", [])
                if isinstance(child, dict) and child.get("name") and child.get("url")
            ]
            candidates.append(
                NavigationCandidate(
                    name=str(entry["name"]),
                    url=str(entry.get("url", "")),
                    selector=str(entry.get("selector", "")),
                    element_type=str(entry.get("elementType", "a")),
                    has_dropdown=bool(children),
                    discovered_by=self.name,
                    item_type="main_section",
                    selector_category=pattern.name,
                    children=children,
                )
            )
        return candidates
