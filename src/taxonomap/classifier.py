# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Structural navigation classifier: tiers candidates from DOM geometry.

Each candidate with a selector gets one in-page feature snapshot (position,
containing landmarks, sibling group, typography, depth, text).  Six
independently bounded subscores are combined with configurable weights,
penalised for utility wording and icon-sized text, then mapped onto the
tier ladder.  Scoring and tiering are pure functions of the snapshot and
the ``ClassifierConfig``.

Candidates without a usable selector, or whose snapshot fails, are tiered
by ``classify_without_selector`` from their name and URL alone.
"""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlsplit

from playwright.async_api import Page

from . import ClassifiedItem, NavigationCandidate, Tier
from .config import ClassifierConfig
from .errors import ConfigurationError, FeatureExtractionError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# In-page feature snapshot
# ---------------------------------------------------------------------------

_FEATURES_JS = """\
(selector) => {
  try {
    const el = document.querySelector(selector);
    if (!el) return {elementFound: false};
    const rect = el.getBoundingClientRect();
    const vh = window.innerHeight, vw = window.innerWidth;
    const cx = rect.left + rect.width / 2;
    const parent = el.parentElement;
    let siblings = null;
    if (parent) {
      const group = Array.from(parent.children).filter(c =>
        c.tagName === el.tagName && (c.matches("a[href]") || c.querySelector("a[href]")));
      const n = group.length;
      siblings = {
        count: n,
        position: group.indexOf(el),
        isInGroup: n >= 3 && n <= 15,
        avgTextLength: n ? group.reduce((s, c) => s + (c.textContent || "").trim().length, 0) / n : 0
      };
    }
    const st = getComputedStyle(el);
    const text = (el.textContent || "").replace(/\\s+/g, " ").trim();
    const bg = st.backgroundColor;
    let depth = 0;
    for (let cur = el; cur && cur !== document.body; cur = cur.parentElement) depth++;
    return {
      elementFound: true,
      domPosition: {
        top: rect.top,
        isAboveFold: rect.top < vh,
        isInTopQuarter: rect.top < vh * 0.25,
        isRightAligned: cx > vw * 0.8
      },
      containment: {
        isInNav: !!el.closest("nav"),
        isInHeader: !!el.closest("header"),
        hasNavRole: !!el.closest('[role="navigation"], [role="menubar"]'),
        hasNavClass: !!el.closest('[class*="nav"]')
      },
      siblings: siblings,
      visualProminence: {
        fontSize: parseFloat(st.fontSize) || 0,
        isBold: st.fontWeight === "bold" || parseInt(st.fontWeight, 10) >= 600,
        isUppercase: /[a-z]/i.test(text) && text === text.toUpperCase(),
        hasBackgroundColor: bg !== "rgba(0, 0, 0, 0)" && bg !== "transparent"
      },
      depthFromBody: depth,
      textContent: {length: text.length, text: text.slice(0, 200)}
    };
  } catch (e) {
    return {error: String(e && e.message || e)};
  }
}"""


@dataclass(frozen=True, slots=True)
class DomPosition:
    top: float = 0.0
    is_above_fold: bool = False
    is_in_top_quarter: bool = False
    is_right_aligned: bool = False


@dataclass(frozen=True, slots=True)
class Containment:
    is_in_nav: bool = False
    is_in_header: bool = False
    has_nav_role: bool = False
    has_nav_class: bool = False


@dataclass(frozen=True, slots=True)
class Siblings:
    count: int = 0
    position: int = -1
    is_in_group: bool = False  # 3-15 link-bearing siblings
    avg_text_length: float = 0.0


@dataclass(frozen=True, slots=True)
class VisualProminence:
    font_size: float = 0.0
    is_bold: bool = False
    is_uppercase: bool = False
    has_background_color: bool = False


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str = ""
    length: int = 0
    is_short: bool = False


@dataclass(frozen=True, slots=True)
class NavigationFeatures:
    """Structural snapshot of one navigation element."""

    dom_position: DomPosition
    containment: Containment
    siblings: Siblings | None
    visual_prominence: VisualProminence
    depth_from_body: int
    text_content: TextContent
    url: str = ""

    @classmethod
    def from_raw(cls, raw: Any, url: str = "", *, short_text_max_len: int = 3) -> NavigationFeatures:
        """Parse the page snapshot.

        Raises:
            FeatureExtractionError: If the snapshot is missing or malformed,
                reports an error, or the element was not found.
        """
        if not isinstance(raw, dict):
            raise FeatureExtractionError(f"Unexpected feature payload: {type(raw).__name__}")
        if raw.get("error"):
            raise FeatureExtractionError(str(raw["error"]))
        if not raw.get("elementFound"):
            raise FeatureExtractionError("Element not found")

        try:
            pos = raw.get("domPosition") or {}
            cont = raw.get("containment") or {}
            sib = raw.get("siblings")
            vis = raw.get("visualProminence") or {}
            txt = raw.get("textContent") or {}
            text = str(txt.get("text") or "")
            length = int(txt.get("length", len(text)))
            return cls(
                dom_position=DomPosition(
                    top=float(pos.get("top", 0.0)),
                    is_above_fold=bool(pos.get("isAboveFold")),
                    is_in_top_quarter=bool(pos.get("isInTopQuarter")),
                    is_right_aligned=bool(pos.get("isRightAligned")),
                ),
                containment=Containment(
                    is_in_nav=bool(cont.get("isInNav")),
                    is_in_header=bool(cont.get("isInHeader")),
                    has_nav_role=bool(cont.get("hasNavRole")),
                    has_nav_class=bool(cont.get("hasNavClass")),
                ),
                siblings=(
                    Siblings(
                        count=int(sib.get("count", 0)),
                        position=int(sib.get("position", -1)),
                        is_in_group=bool(sib.get("isInGroup")),
                        avg_text_length=float(sib.get("avgTextLength", 0.0)),
                    )
                    if isinstance(sib, dict)
                    else None
                ),
                visual_prominence=VisualProminence(
                    font_size=float(vis.get("fontSize", 0.0)),
                    is_bold=bool(vis.get("isBold")),
                    is_uppercase=bool(vis.get("isUppercase")),
                    has_background_color=bool(vis.get("hasBackgroundColor")),
                ),
                depth_from_body=int(raw.get("depthFromBody", 0)),
                text_content=TextContent(text=text, length=length, is_short=length <= short_text_max_len),
                url=url,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise FeatureExtractionError(f"Malformed feature payload: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Pure scoring
# ---------------------------------------------------------------------------


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@functools.lru_cache(maxsize=32)
def _keyword_regex(keywords: tuple[str, ...]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


def matches_keyword(text: str, keywords: tuple[str, ...]) -> bool:
    """Whole-word, case-insensitive keyword match ("handbags" does not match "bag")."""
    if not text or not keywords:
        return False
    return _keyword_regex(keywords).search(text) is not None


_CATEGORY_PATH_HINTS = ("/collections/", "/category/", "/categories/", "/c/", "/shop/", "/dept/", "/department/")
_UTILITY_PATH_HINTS = ("/account", "/cart", "/checkout", "/login", "/signin", "/help", "/wishlist", "/search")


def url_heuristic_score(url: str) -> float:
    """Shallow category-looking paths score high; utility paths score zero."""
    if not url:
        return 0.0
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return 0.0
    if any(path.startswith(p) for p in _UTILITY_PATH_HINTS):
        return 0.0
    segments = [s for s in path.split("/") if s]
    score = {0: 0.6, 1: 0.6, 2: 0.4, 3: 0.2}.get(len(segments), 0.0)
    probe = path if path.endswith("/") else path + "/"
    if any(hint in probe for hint in _CATEGORY_PATH_HINTS):
        score += 0.4
    return _clamp(score)


def feature_subscores(features: NavigationFeatures) -> dict[str, float]:
    """Six subscores, each bounded to [0, 1], keyed like ``ClassifierWeights`` fields."""
    pos = features.dom_position
    position = 0.5 * pos.is_above_fold + 0.5 * pos.is_in_top_quarter - 0.3 * pos.is_right_aligned

    cont = features.containment
    containment = 0.4 * cont.is_in_nav + 0.3 * cont.is_in_header + 0.2 * cont.has_nav_role + 0.1 * cont.has_nav_class

    sibling = 0.0
    sib = features.siblings
    if sib is not None:
        if sib.is_in_group:
            sibling = 0.8
        elif sib.count >= 2:
            sibling = 0.4
        if 0 <= sib.position < sib.count / 2:
            sibling += 0.2

    vis = features.visual_prominence
    relative_size = vis.font_size / 16
    prominence = (
        0.3 * (relative_size >= 1.1)
        + 0.2 * (relative_size >= 1.3)
        + 0.2 * vis.is_bold
        + 0.1 * vis.is_uppercase
        + 0.2 * vis.has_background_color
    )

    depth = features.depth_from_body
    depth_score = 1 - (depth - 3) / 10 if depth > 0 else 0.0

    return {
        "dom_position": _clamp(position),
        "containment": _clamp(containment),
        "sibling_count": _clamp(sibling),
        "visual_prominence": _clamp(prominence),
        "depth_from_body": _clamp(depth_score),
        "url_heuristics": url_heuristic_score(features.url),
    }


def score_features(features: NavigationFeatures, config: ClassifierConfig) -> float:
    """Weighted structural score in [0, 1] after utility and short-text penalties."""
    subscores = feature_subscores(features)
    weights = config.weights
    score = sum(getattr(weights, name) * value for name, value in subscores.items())

    text = features.text_content
    if text.text and matches_keyword(text.text, config.utility_keywords):
        score *= config.utility_penalty
    if text.text and text.is_short:
        score *= config.short_text_penalty
    return round(_clamp(score), 6)


def determine_tier(score: float, features: NavigationFeatures, config: ClassifierConfig) -> Tier:
    text = features.text_content
    if matches_keyword(text.text, config.utility_keywords):
        return Tier.UTILITY
    if features.dom_position.is_right_aligned and text.is_short:
        return Tier.UTILITY

    t = config.thresholds
    if score >= t.main_section:
        return Tier.MAIN_SECTION
    if score >= t.category:
        return Tier.CATEGORY
    if score >= t.subcategory:
        return Tier.SUBCATEGORY
    return Tier.UTILITY


# ---------------------------------------------------------------------------
# DOM-free fallback
# ---------------------------------------------------------------------------

_FALLBACK_URL_CONTAINERS = ("/collections/", "/categories/", "/category/", "/dept/", "/department/")
_FALLBACK_URL_SEGMENTS = frozenset(
    {"men", "mens", "man", "women", "womens", "woman", "clothing", "shoes", "home", "sale", "new", "brands"}
)
_FALLBACK_TEXT_TERMS = frozenset(
    {
        # demographic
        "men", "man", "mens", "women", "woman", "womens", "unisex",
        "kids", "children", "baby", "girls", "boys",
        # departmental
        "clothing", "shoes", "accessories", "bags", "jewelry",
        "home", "bath", "body", "beauty", "fragrance",
        # commercial
        "sale", "clearance", "new", "featured", "collection", "collections", "all",
        "designer", "designers", "brand", "brands", "seasonal",
        "spring", "summer", "fall", "winter",
    }
)  # fmt: skip
_TOKEN_RE = re.compile(r"[a-z0-9]+")

FALLBACK_SCORES: dict[Tier, float] = {
    Tier.MAIN_SECTION: 0.8,
    Tier.CATEGORY: 0.6,
    Tier.SUBCATEGORY: 0.4,
    Tier.UTILITY: 0.2,
}


def _url_path(url: str) -> str:
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return url.lower()


def classify_without_selector(candidate: NavigationCandidate, config: ClassifierConfig) -> Tier:
    """Tier from name and URL only.  Deterministic for a given name/URL pair."""
    text = candidate.name.strip().lower()
    url = candidate.url.strip()
    if not text and not url:
        return Tier.UTILITY
    if matches_keyword(text, config.utility_keywords):
        return Tier.UTILITY

    path = _url_path(url) if url else ""
    if path:
        probe = path if path.endswith("/") else path + "/"
        if any(c in probe for c in _FALLBACK_URL_CONTAINERS):
            return Tier.MAIN_SECTION
        for segment in filter(None, path.split("/")):
            if segment in _FALLBACK_URL_SEGMENTS or segment.split("-")[0] in _FALLBACK_URL_SEGMENTS:
                return Tier.MAIN_SECTION

    for token in _TOKEN_RE.findall(text.replace("'", "")):
        if token in _FALLBACK_TEXT_TERMS or (token.endswith("s") and token[:-1] in _FALLBACK_TEXT_TERMS):
            return Tier.MAIN_SECTION

    if url and 2 < len(text) < 50:
        return Tier.CATEGORY
    return Tier.UTILITY


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClassificationSummary:
    total: int = 0
    main_sections: int = 0
    categories: int = 0
    subcategories: int = 0
    utilities: int = 0
    fallback: int = 0

    @classmethod
    def from_items(cls, items: list[ClassifiedItem]) -> ClassificationSummary:
        tiers = [i.tier for i in items]
        return cls(
            total=len(items),
            main_sections=tiers.count(Tier.MAIN_SECTION),
            categories=tiers.count(Tier.CATEGORY),
            subcategories=tiers.count(Tier.SUBCATEGORY),
            utilities=tiers.count(Tier.UTILITY),
            fallback=sum(1 for i in items if i.fallback),
        )


class StructuralNavigationClassifier:
    """Tier navigation candidates using one feature snapshot per item."""

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self._config = config or ClassifierConfig()
        self.last_summary = ClassificationSummary()

    @property
    def config(self) -> ClassifierConfig:
        return self._config

    async def classify(self, items: list[NavigationCandidate], page: Page) -> list[ClassifiedItem]:
        """Classify *items* in order.  Snapshots are taken one at a time.

        Raises:
            ConfigurationError: If *page* is missing.
        """
        if page is None:
            raise ConfigurationError("classify() requires a page")
        logger.info("Classifying %d navigation items", len(items))

        results: list[ClassifiedItem] = []
        for candidate in items:
            try:
                features = await self.collect_features(candidate, page)
            except FeatureExtractionError as exc:
                logger.debug("Fallback classification for %r: %s", candidate.name, exc)
                results.append(self.classify_fallback(candidate))
                continue
            score = score_features(features, self._config)
            results.append(
                ClassifiedItem(
                    candidate=candidate,
                    tier=determine_tier(score, features, self._config),
                    score=score,
                    features=features.to_dict(),
                )
            )

        summary = ClassificationSummary.from_items(results)
        self.last_summary = summary
        logger.info(
            "Classification results: %d main sections, %d categories, %d subcategories, %d utilities (%d fallback)",
            summary.main_sections,
            summary.categories,
            summary.subcategories,
            summary.utilities,
            summary.fallback,
        )
        if results and summary.main_sections == 0:
            top = sorted(results, key=lambda r: r.score, reverse=True)[:5]
            for rank, item in enumerate(top, 1):
                logger.warning(
                    "No main sections found; top %d: %r score=%.3f tier=%s selector=%r",
                    rank,
                    item.name,
                    item.score,
                    item.tier,
                    item.candidate.selector or "MISSING",
                )
        return results

    async def collect_features(self, candidate: NavigationCandidate, page: Page) -> NavigationFeatures:
        """Snapshot *candidate*'s element.

        Raises:
            FeatureExtractionError: No selector, stale selector or evaluation failure.
        """
        if not candidate.selector:
            raise FeatureExtractionError("No selector")
        try:
            raw = await page.evaluate(_FEATURES_JS, candidate.selector)
        except Exception as exc:
            raise FeatureExtractionError(f"Feature evaluation failed: {exc}") from exc
        return NavigationFeatures.from_raw(raw, candidate.url, short_text_max_len=self._config.short_text_max_len)

    def classify_fallback(self, candidate: NavigationCandidate) -> ClassifiedItem:
        tier = classify_without_selector(candidate, self._config)
        return ClassifiedItem(
            candidate=candidate,
            tier=tier,
            score=FALLBACK_SCORES[tier],
            features={"fallback": True, "fallback_tier": str(tier)},
            fallback=True,
        )
