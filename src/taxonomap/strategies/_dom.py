# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""JS fragments shared by strategies that read navigation from the DOM."""

from __future__ import annotations

# Function declaration spliced into page scripts: stable CSS selector for an element.
# Preference: #id → test attributes → unique a[href] → nth-of-type path.
UNIQUE_SELECTOR_FN = """\
function uniqueSelector(el) {
  if (!el || el.nodeType !== 1) return "";
  if (el.id) return "#" + CSS.escape(el.id);
  const TA = ["data-testid", "data-test-id", "data-cy", "data-test"];
  for (const a of TA) {
    const v = el.getAttribute(a);
    if (v) return "[" + a + '="' + CSS.escape(v) + '"]';
  }
  if (el.localName === "a") {
    const hr = el.getAttribute("href");
    if (hr) {
      const s = 'a[href="' + CSS.escape(hr) + '"]';
      try { if (document.querySelectorAll(s).length === 1) return s; } catch (e) {}
    }
  }
  const path = [];
  let cur = el;
  while (cur && cur.nodeType === 1 && cur !== document.body) {
    let seg = cur.localName;
    if (cur.id) { path.unshift("#" + CSS.escape(cur.id)); break; }
    const parent = cur.parentElement;
    if (parent) {
      const sibs = Array.from(parent.children).filter(s => s.localName === cur.localName);
      if (sibs.length > 1) seg += ":nth-of-type(" + (sibs.indexOf(cur) + 1) + ")";
    }
    path.unshift(seg);
    cur = cur.parentElement;
  }
  return path.join(" > ");
}
"""

# Normalised visible text of an element (collapsed whitespace).
ELEMENT_TEXT_FN = """\
function elementText(el) {
  return ((el && (el.innerText || el.textContent)) || "").replace(/\\s+/g, " ").trim();
}
"""
