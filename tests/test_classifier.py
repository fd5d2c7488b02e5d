# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the structural navigation classifier.

Scoring and tiering are pure functions of a feature snapshot; the async
``classify`` path is exercised with a mocked ``page.evaluate`` keyed by
selector.
"""

from __future__ import annotations

import logging

import pytest
from playwright.async_api import Error as PlaywrightError

from taxonomap import NavigationCandidate, Tier
from taxonomap.classifier import (
    FALLBACK_SCORES,
    NavigationFeatures,
    StructuralNavigationClassifier,
    classify_without_selector,
    determine_tier,
    feature_subscores,
    matches_keyword,
    score_features,
    url_heuristic_score,
)
from taxonomap.config import ClassifierConfig, ClassifierThresholds
from taxonomap.errors import ConfigurationError, FeatureExtractionError
from tests._fakes import make_page

BASE = "https://shop.example.com"
CONFIG = ClassifierConfig()


def _raw(text: str = "Women", **overrides) -> dict:
    """Snapshot of a prominent top-bar navigation link; override any top-level key."""
    raw = {
        "elementFound": True,
        "domPosition": {"top": 80, "isAboveFold": True, "isInTopQuarter": True, "isRightAligned": False},
        "containment": {"isInNav": True, "isInHeader": True, "hasNavRole": False, "hasNavClass": True},
        "siblings": {"count": 8, "position": 1, "isInGroup": True, "avgTextLength": 6},
        "visualProminence": {"fontSize": 18, "isBold": True, "isUppercase": True, "hasBackgroundColor": False},
        "depthFromBody": 5,
        "textContent": {"length": len(text), "text": text},
    }
    raw.update(overrides)
    return raw


def _features(text: str = "Women", url: str = f"{BASE}/women", **overrides) -> NavigationFeatures:
    return NavigationFeatures.from_raw(_raw(text, **overrides), url)


MID_LEVEL = {
    "domPosition": {"top": 600, "isAboveFold": True, "isInTopQuarter": False, "isRightAligned": False},
    "containment": {"isInNav": True, "isInHeader": False, "hasNavRole": False, "hasNavClass": False},
    "siblings": {"count": 3, "position": 2, "isInGroup": False, "avgTextLength": 9},
    "visualProminence": {"fontSize": 14, "isBold": False, "isUppercase": False, "hasBackgroundColor": False},
    "depthFromBody": 8,
}

FOOTER = {
    "domPosition": {"top": 3000, "isAboveFold": False, "isInTopQuarter": False, "isRightAligned": False},
    "containment": {"isInNav": False, "isInHeader": False, "hasNavRole": False, "hasNavClass": False},
    "siblings": None,
    "visualProminence": {"fontSize": 12, "isBold": False, "isUppercase": False, "hasBackgroundColor": False},
    "depthFromBody": 14,
}


# =========================================================================
# Snapshot parsing
# =========================================================================


class TestNavigationFeatures:
    def test_parses_snapshot(self):
        f = _features()
        assert f.dom_position.is_above_fold
        assert f.containment.is_in_nav
        assert f.siblings.count == 8
        assert f.visual_prominence.font_size == 18
        assert f.depth_from_body == 5
        assert f.text_content.text == "Women"
        assert f.text_content.is_short is False

    def test_short_text(self):
        assert _features("Men").text_content.is_short is True

    def test_missing_siblings(self):
        assert _features(siblings=None).siblings is None

    @pytest.mark.parametrize(
        "raw",
        [None, "oops", {"error": "Invalid selector"}, {"elementFound": False}, {}],
    )
    def test_unusable_snapshot(self, raw):
        with pytest.raises(FeatureExtractionError):
            NavigationFeatures.from_raw(raw)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"textContent": {"text": "Men", "length": None}},
            {"depthFromBody": "deep"},
            {"domPosition": {"top": None}},
            {"siblings": {"count": "many"}},
            {"visualProminence": ["bold"]},
        ],
    )
    def test_malformed_values(self, overrides):
        with pytest.raises(FeatureExtractionError, match="Malformed"):
            NavigationFeatures.from_raw(_raw("Men", **overrides))

    def test_to_dict(self):
        data = _features().to_dict()
        assert data["containment"]["is_in_nav"] is True
        assert data["url"] == f"{BASE}/women"


# =========================================================================
# Pure scoring
# =========================================================================


class TestMatchesKeyword:
    def test_whole_word(self):
        assert not matches_keyword("Handbags", ("bag",))
        assert matches_keyword("Shopping Bag", ("bag",))

    def test_multi_word_keyword(self):
        assert matches_keyword("Store Locator", CONFIG.utility_keywords)
        assert matches_keyword("My ACCOUNT", CONFIG.utility_keywords)

    def test_empty(self):
        assert not matches_keyword("", CONFIG.utility_keywords)
        assert not matches_keyword("Cart", ())


class TestUrlHeuristicScore:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("", 0.0),
            (f"{BASE}/", 0.6),
            (f"{BASE}/women", 0.6),
            (f"{BASE}/women/dresses", 0.4),
            (f"{BASE}/collections/dresses", 0.8),
            (f"{BASE}/shop", 1.0),
            (f"{BASE}/a/b/c", 0.2),
            (f"{BASE}/a/b/c/d", 0.0),
            (f"{BASE}/cart", 0.0),
            (f"{BASE}/account/orders", 0.0),
        ],
    )
    def test_scores(self, url, expected):
        assert url_heuristic_score(url) == pytest.approx(expected)


class TestScoreFeatures:
    def test_subscores_bounded(self):
        for name, value in feature_subscores(_features()).items():
            assert 0.0 <= value <= 1.0, name

    def test_prominent_nav_link(self):
        subs = feature_subscores(_features())
        assert subs["dom_position"] == 1.0
        assert subs["containment"] == pytest.approx(0.8)
        assert subs["sibling_count"] == 1.0
        assert subs["visual_prominence"] == pytest.approx(0.6)
        assert subs["depth_from_body"] == pytest.approx(0.8)
        assert subs["url_heuristics"] == pytest.approx(0.6)
        assert score_features(_features(), CONFIG) == pytest.approx(0.84)

    def test_short_text_penalty(self):
        assert score_features(_features("Men", f"{BASE}/men"), CONFIG) == pytest.approx(0.84 * 0.7)

    def test_utility_penalty(self):
        assert score_features(_features("Cart", f"{BASE}/women"), CONFIG) == pytest.approx(0.84 * 0.3)

    def test_mid_level_link(self):
        f = _features("Dresses", f"{BASE}/women/dresses", **MID_LEVEL)
        assert score_features(f, CONFIG) == pytest.approx(0.375)

    def test_footer_link(self):
        f = _features("Careers", f"{BASE}/about/careers/jobs", **FOOTER)
        assert score_features(f, CONFIG) == pytest.approx(0.02)

    def test_score_in_unit_interval(self):
        f = _features(
            domPosition={"top": 0, "isAboveFold": False, "isInTopQuarter": False, "isRightAligned": True},
        )
        assert 0.0 <= score_features(f, CONFIG) <= 1.0

    def test_deterministic(self):
        assert score_features(_features(), CONFIG) == score_features(_features(), CONFIG)


class TestDetermineTier:
    def test_main_section(self):
        f = _features()
        assert determine_tier(score_features(f, CONFIG), f, CONFIG) is Tier.MAIN_SECTION

    def test_category(self):
        f = _features("Dresses", f"{BASE}/women/dresses", **MID_LEVEL)
        assert determine_tier(score_features(f, CONFIG), f, CONFIG) is Tier.CATEGORY

    def test_utility_keyword_overrides_score(self):
        f = _features("Sign In")
        assert determine_tier(0.99, f, CONFIG) is Tier.UTILITY

    def test_right_aligned_short_text(self):
        f = _features(
            "US",
            domPosition={"top": 10, "isAboveFold": True, "isInTopQuarter": True, "isRightAligned": True},
        )
        assert determine_tier(0.9, f, CONFIG) is Tier.UTILITY

    @pytest.mark.parametrize(
        "score, tier",
        [(0.40, Tier.MAIN_SECTION), (0.39, Tier.CATEGORY), (0.25, Tier.CATEGORY), (0.2, Tier.SUBCATEGORY),
         (0.15, Tier.SUBCATEGORY), (0.1, Tier.UTILITY)],
    )  # fmt: skip
    def test_threshold_ladder(self, score, tier):
        assert determine_tier(score, _features("Dresses"), CONFIG) is tier

    def test_custom_thresholds(self):
        cfg = ClassifierConfig(thresholds=ClassifierThresholds(main_section=0.7, category=0.5, subcategory=0.3))
        f = _features("Dresses", f"{BASE}/women/dresses", **MID_LEVEL)
        assert determine_tier(score_features(f, cfg), f, cfg) is Tier.SUBCATEGORY


# =========================================================================
# DOM-free fallback
# =========================================================================


def _candidate(name: str, path: str | None = None) -> NavigationCandidate:
    return NavigationCandidate(name=name, url=f"{BASE}{path}" if path else "")


class TestClassifyWithoutSelector:
    @pytest.mark.parametrize(
        "name, path, tier",
        [
            ("Cart", "/cart", Tier.UTILITY),
            ("My Account", "/account", Tier.UTILITY),
            ("Dresses", "/collections/dresses", Tier.MAIN_SECTION),
            ("Explore", "/womens-shoes", Tier.MAIN_SECTION),
            ("Women's", None, Tier.MAIN_SECTION),
            ("Sales", None, Tier.MAIN_SECTION),
            ("Designers", None, Tier.MAIN_SECTION),
            ("Gift Cards", "/gifts", Tier.CATEGORY),
            ("Ok", "/ok", Tier.UTILITY),
            ("Lookbook", None, Tier.UTILITY),
            ("", None, Tier.UTILITY),
        ],
    )
    def test_tiers(self, name, path, tier):
        assert classify_without_selector(_candidate(name, path), CONFIG) is tier

    def test_whole_word_utility(self):
        assert classify_without_selector(_candidate("Handbags", "/handbags"), CONFIG) is Tier.CATEGORY


# =========================================================================
# Classifier (async, mocked page)
# =========================================================================


def _page_with_snapshots(snapshots: dict[str, object]):
    async def evaluate(script, selector):
        value = snapshots[selector]
        if isinstance(value, Exception):
            raise value
        return value

    return make_page(evaluate_side_effect=evaluate)


class TestStructuralNavigationClassifier:
    async def test_requires_page(self):
        with pytest.raises(ConfigurationError):
            await StructuralNavigationClassifier().classify([], None)

    async def test_mixed_items(self):
        page = _page_with_snapshots(
            {
                "#women": _raw("Women"),
                "#cart": _raw("Cart"),
                "#gone": {"elementFound": False},
                "#boom": PlaywrightError("Execution context was destroyed"),
            }
        )
        items = [
            NavigationCandidate("Women", f"{BASE}/women", selector="#women"),
            NavigationCandidate("Cart", f"{BASE}/cart", selector="#cart"),
            NavigationCandidate("Dresses", f"{BASE}/collections/dresses"),
            NavigationCandidate("Shoes", f"{BASE}/shoes", selector="#gone"),
            NavigationCandidate("Lookbook", f"{BASE}/lookbook", selector="#boom"),
        ]
        classifier = StructuralNavigationClassifier()
        results = await classifier.classify(items, page)

        assert [r.name for r in results] == ["Women", "Cart", "Dresses", "Shoes", "Lookbook"]
        assert [r.tier for r in results] == [
            Tier.MAIN_SECTION,
            Tier.UTILITY,
            Tier.MAIN_SECTION,
            Tier.MAIN_SECTION,
            Tier.CATEGORY,
        ]
        assert [r.fallback for r in results] == [False, False, True, True, True]
        assert results[0].score == pytest.approx(0.84)
        assert results[0].features["containment"]["is_in_nav"] is True
        assert results[2].score == FALLBACK_SCORES[Tier.MAIN_SECTION]
        assert results[4].features == {"fallback": True, "fallback_tier": "CATEGORY"}

        summary = classifier.last_summary
        assert (summary.total, summary.main_sections, summary.categories, summary.utilities) == (5, 3, 1, 1)
        assert summary.fallback == 3
        assert page.evaluate.await_count == 4

    async def test_malformed_snapshot_falls_back_without_aborting(self):
        page = _page_with_snapshots(
            {
                "#men": {"elementFound": True, "textContent": {"text": "Men", "length": None}},
                "#women": _raw("Women"),
            }
        )
        items = [
            NavigationCandidate("Men", f"{BASE}/men", selector="#men"),
            NavigationCandidate("Women", f"{BASE}/women", selector="#women"),
        ]
        results = await StructuralNavigationClassifier().classify(items, page)

        assert [r.name for r in results] == ["Men", "Women"]
        assert results[0].fallback is True
        assert results[0].tier is Tier.MAIN_SECTION
        assert results[1].fallback is False
        assert results[1].tier is Tier.MAIN_SECTION

    async def test_deterministic(self):
        page = _page_with_snapshots({"#women": _raw("Women"), "#mid": _raw("Dresses", **MID_LEVEL)})
        items = [
            NavigationCandidate("Women", f"{BASE}/women", selector="#women"),
            NavigationCandidate("Dresses", f"{BASE}/women/dresses", selector="#mid"),
            NavigationCandidate("Sale", f"{BASE}/sale"),
        ]
        classifier = StructuralNavigationClassifier()
        first = await classifier.classify(items, page)
        second = await classifier.classify(items, page)
        assert [(r.tier, r.score) for r in first] == [(r.tier, r.score) for r in second]

    async def test_warns_when_no_main_sections(self, caplog):
        page = _page_with_snapshots({"#careers": _raw("Careers", **FOOTER)})
        items = [NavigationCandidate("Careers", f"{BASE}/about/careers/jobs", selector="#careers")]

        with caplog.at_level(logging.WARNING, logger="taxonomap.classifier"):
            results = await StructuralNavigationClassifier().classify(items, page)

        assert results[0].tier is Tier.UTILITY
        assert any("No main sections found" in r.getMessage() for r in caplog.records)

    async def test_collect_features_without_selector(self):
        with pytest.raises(FeatureExtractionError, match="No selector"):
            await StructuralNavigationClassifier().collect_features(NavigationCandidate("Men"), make_page())

    async def test_empty_input(self):
        classifier = StructuralNavigationClassifier()
        assert await classifier.classify([], make_page()) == []
        assert classifier.last_summary.total == 0
