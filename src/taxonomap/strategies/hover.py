# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Hover-driven dropdown discovery.

Finds likely dropdown triggers (ARIA popup attributes, has-dropdown class
conventions, top-level nav list items), hovers each one in turn, reads the
links of the panel that became visible, then moves the mouse away so the
next trigger starts from a closed state.  Interactive and therefore slower
than the other strategies; bounded by ``max_triggers``.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import suppress
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .. import NavigationCandidate
from . import StrategyResult
from ._dom import ELEMENT_TEXT_FN, UNIQUE_SELECTOR_FN

logger = logging.getLogger(__name__)

_HOVER_TIMEOUT_MS = 1000
_SETTLE_MS = 500

_SKIP_TRIGGER_RE = re.compile(r"\b(?:sign in|log in|login|cart|bag|search|account|help)\b", re.IGNORECASE)

_FIND_TRIGGERS_JS = (
    "(limit) => {\n"
    + UNIQUE_SELECTOR_FN
    + ELEMENT_TEXT_FN
    + """\
  const SELECTORS = [
    "nav > ul > li > a", "nav > ul > li > button",
    "[role='navigation'] > ul > li > a",
    "a[aria-haspopup='true']", "button[aria-haspopup='true']",
    "a[aria-expanded]", "button[aria-expanded]",
    ".has-dropdown > a", ".has-submenu > a", ".dropdown-toggle",
    ".menu-item-has-children > a", ".nav-item > a", "header nav a"
  ];
  const seen = new Set();
  const out = [];
  for (const sel of SELECTORS) {
    let found;
    try { found = document.querySelectorAll(sel); } catch (e) { continue; }
    for (const el of found) {
      if (out.length >= limit) return out;
      const text = elementText(el);
      if (!text || text.length > 60) continue;
      const key = text + "|" + (el.href || "");
      if (seen.has(key)) continue;
      seen.add(key);
      const li = el.closest("li, .nav-item, .menu-item");
      const hasPopup = el.getAttribute("aria-haspopup") === "true" ||
        el.getAttribute("aria-expanded") !== null ||
        (li && (li.classList.contains("has-dropdown") || li.classList.contains("has-submenu") ||
          !!li.querySelector(".dropdown, .submenu, .mega-menu, [class*='dropdown']")));
      if (!hasPopup) continue;
      out.push({name: text, url: el.href || "", selector: uniqueSelector(el), elementType: el.localName});
    }
  }
  return out;
}"""
)

_READ_MENU_JS = (
    "(triggerSelector) => {\n"
    + ELEMENT_TEXT_FN
    + """\
  const PANELS = [".mega-menu", "[class*='megamenu']", ".dropdown-menu", ".submenu",
    "[class*='dropdown']", "[class*='submenu']", "[role='menu']", ".menu-panel"];
  const shown = (el) => {
    const r = el.getBoundingClientRect();
    const st = getComputedStyle(el);
    return r.width > 0 && r.height > 0 && st.visibility !== "hidden" && st.display !== "none";
  };
  let panel = null;
  let trigger = null;
  try { trigger = document.querySelector(triggerSelector); } catch (e) {}
  const li = trigger ? trigger.closest("li, .nav-item, .menu-item") : null;
  if (li) {
    for (const sel of PANELS) {
      const p = li.querySelector(sel);
      if (p && shown(p)) { panel = p; break; }
    }
  }
  if (!panel) {
    outer: for (const sel of PANELS) {
      for (const p of document.querySelectorAll(sel)) {
        if (shown(p) && p.querySelector("a[href]")) { panel = p; break outer; }
      }
    }
  }
  if (!panel) return null;
  const items = [];
  for (const a of panel.querySelectorAll("a[href]")) {
    const t = elementText(a);
    if (t && a.href) items.push({name: t, url: a.href});
  }
  const cls = (typeof panel.className === "string" ? panel.className : "").toLowerCase();
  return {items: items, menuType: cls.includes("mega") ? "mega-menu" : "dropdown"};
}"""
)


class HoverMenuStrategy:
    """Hover each dropdown trigger and read the panel it reveals."""

    name = "HoverMenuStrategy"

    def __init__(self, *, max_triggers: int = 12, settle_ms: int = _SETTLE_MS) -> None:
        self._max_triggers = max_triggers
        self._settle_ms = settle_ms

    async def execute(self, page: Page) -> StrategyResult:
        start = time.monotonic()
        try:
            triggers = await page.evaluate(_FIND_TRIGGERS_JS, self._max_triggers * 2)
        except Exception as exc:
            logger.warning("Dropdown trigger scan failed on %s: %s", page.url, exc)
            return StrategyResult.empty(self.name, str(exc))

        triggers = [
            t
            for t in (triggers if isinstance(triggers, list) else [])
            if isinstance(t, dict) and t.get("name") and not _SKIP_TRIGGER_RE.search(str(t["name"]))
        ][: self._max_triggers]
        logger.debug("Found %d dropdown triggers", len(triggers))

        menus: list[dict[str, Any]] = []
        for trigger in triggers:
            menu = await self._open_menu(page, trigger)
            if menu and menu.get("items"):
                menus.append({"trigger": trigger, **menu})

        items = [self._to_candidate(m) for m in menus]
        link_count = sum(len(m["items"]) for m in menus)
        logger.info("Hover discovery found %d menus with %d links", len(menus), link_count)
        if not menus:
            result = StrategyResult.empty(self.name, "no_menus_opened")
            result.metadata["triggers_tried"] = len(triggers)
            return result
        return StrategyResult(
            items=items,
            confidence=self.confidence_for(menus),
            metadata={
                "strategy": self.name,
                "triggers_tried": len(triggers),
                "menus_found": len(menus),
                "total_items": link_count,
                "duration_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )

    async def _open_menu(self, page: Page, trigger: dict[str, Any]) -> dict[str, Any] | None:
        selector = str(trigger.get("selector") or "")
        if not selector:
            return None
        try:
            locator = page.locator(selector).first
            if not await locator.is_visible():
                return None
            await locator.hover(timeout=_HOVER_TIMEOUT_MS)
            await page.wait_for_timeout(self._settle_ms)
            data = await page.evaluate(_READ_MENU_JS, selector)
        except PlaywrightError as exc:
            logger.debug("Hover on %r failed: %s", trigger.get("name"), exc)
            return None
        finally:
            with suppress(PlaywrightError):
                await page.mouse.move(10, 10)
        return data if isinstance(data, dict) else None

    def _to_candidate(self, menu: dict[str, Any]) -> NavigationCandidate:
        trigger = menu["trigger"]
        children = [
            NavigationCandidate(
                name=str(link["name"]),
                url=str(link["url"]),
                discovered_by=self.name,
                item_type="dropdown_item",
            )
            for link in menu["items"]
            if isinstance(link, dict) and link.get("name") and link.get("url")
        ]
        return NavigationCandidate(
            name=str(trigger["name"]),
            url=str(trigger.get("url") or ""),
            selector=str(trigger.get("selector") or ""),
            element_type=str(trigger.get("elementType") or "a"),
            has_dropdown=True,
            discovered_by=self.name,
            item_type="dropdown",
            selector_category=str(menu.get("menuType") or "dropdown"),
            children=children,
        )

    @staticmethod
    def confidence_for(menus: list[dict[str, Any]]) -> float:
        if not menus:
            return 0.0
        link_count = sum(len(m.get("items", [])) for m in menus)
        confidence = 0.3
        confidence += 0.2 if len(menus) >= 3 else len(menus) * 0.06
        if any(m.get("menuType") == "mega-menu" for m in menus):
            confidence += 0.2
        confidence += 0.3 if link_count >= 20 else link_count * 0.015
        return round(min(confidence, 1.0), 4)
