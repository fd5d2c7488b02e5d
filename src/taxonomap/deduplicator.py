# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Taxonomy-preserving category deduplication.

Categories are grouped by a qualifier-free slug ("Men's Tops" and "Tops"
share ``tops``).  Inside a group, gender/age-specific categories are always
crawled; a generic category is crawled, skipped as an alias, or kept as a
structural placeholder depending on how much of its sampled inventory the
specific siblings already cover (Jaccard overlap of normalised product
URLs).  Without samples the decision falls back to names alone.

Every input category yields exactly one ``DeduplicationRecord``, in input
order.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from . import Category, CrawlMode
from .config import DeduplicationConfig
from .urls import normalize_product_url, url_identity_key

logger = logging.getLogger(__name__)

# Ordered: the first token found decides.
_GENDER_TOKENS: tuple[tuple[str, str], ...] = (
    ("men", "men"),
    ("mens", "men"),
    ("women", "women"),
    ("womens", "women"),
    ("boys", "men"),
    ("girls", "women"),
    ("kids", "unisex"),
    ("unisex", "unisex"),
)
_AGE_TOKENS: tuple[tuple[str, str], ...] = (
    ("kids", "kids"),
    ("boys", "kids"),
    ("girls", "kids"),
    ("baby", "baby"),
    ("toddler", "baby"),
    ("youth", "kids"),
    ("junior", "kids"),
    ("adult", "adult"),
)
_QUALIFIER_WORDS = frozenset(t for t, _ in _GENDER_TOKENS) | frozenset(t for t, _ in _AGE_TOKENS)

_APOSTROPHES_RE = re.compile(r"['‘’`]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_GENERIC_INDICATOR_RE = re.compile(r"\b(?:all|shop|browse|clothing)\b")
_GENDERED_SEGMENTS = frozenset({"men", "mens", "women", "womens", "kids", "boys", "girls"})
_REPRESENTATIVE_GENERIC_RE = re.compile(r"\b(?:all|new|shop|browse)\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Qualifiers:
    gender: str = "unisex"  # men, women, unisex
    age_group: str = "adult"  # adult, kids, baby


@dataclass(frozen=True, slots=True)
class OverlapMetrics:
    max_overlap: float = 0.0
    avg_overlap: float = 0.0
    combined_overlap: float = 0.0
    best_match: str = ""


@dataclass
class DeduplicationRecord:
    category: Category
    slug: str
    qualifiers: Qualifiers
    crawl_mode: CrawlMode
    reason: str
    normalized_name: str = ""
    alias_of: str = ""
    children: list[str] = field(default_factory=list)
    overlap: OverlapMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.category.name,
            "url": self.category.url,
            "slug": self.slug,
            "qualifiers": {"gender": self.qualifiers.gender, "age_group": self.qualifiers.age_group},
            "crawl_mode": str(self.crawl_mode),
            "reason": self.reason,
        }
        if self.alias_of:
            data["alias_of"] = self.alias_of
        if self.children:
            data["children"] = list(self.children)
        if self.overlap is not None:
            data["overlap"] = {
                "max_overlap": self.overlap.max_overlap,
                "avg_overlap": self.overlap.avg_overlap,
                "combined_overlap": self.overlap.combined_overlap,
                "best_match": self.overlap.best_match,
            }
        return data


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def _words(text: str) -> list[str]:
    cleaned = _APOSTROPHES_RE.sub("", text.lower())
    return [w for w in _NON_ALNUM_RE.split(cleaned) if w]


def normalize_name(name: str) -> str:
    return " ".join(_words(name))


def extract_slug(name: str) -> str:
    """Lowercase, punctuation-free, qualifier-free slug joined with underscores."""
    kept = [w for w in _words(name) if w not in _QUALIFIER_WORDS]
    return "_".join(kept) or "unknown"


def _url_path(url: str) -> str:
    if not url:
        return ""
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return url.lower()


def extract_qualifiers(name: str, url: str = "") -> Qualifiers:
    """Gender and age group from the name and the URL path (never the host)."""
    words = set(_words(f"{name} {_url_path(url)}"))
    gender = next((g for token, g in _GENDER_TOKENS if token in words), "unisex")
    age = next((a for token, a in _AGE_TOKENS if token in words), "adult")
    return Qualifiers(gender=gender, age_group=age)


def has_gendered_path(url: str) -> bool:
    return any(segment in _GENDERED_SEGMENTS for segment in _url_path(url).split("/"))


def is_generic(name: str, url: str, qualifiers: Qualifiers) -> bool:
    """Unisex + adult, and either a generic word in name/path or no gendered path segment."""
    if qualifiers.gender != "unisex" or qualifiers.age_group != "adult":
        return False
    haystack = f"{normalize_name(name)} {' '.join(_words(_url_path(url)))}"
    return bool(_GENERIC_INDICATOR_RE.search(haystack)) or not has_gendered_path(url)


def jaccard(a: set[str], b: set[str]) -> float:
    """|A∩B| / |A∪B|; zero when either set is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


# ---------------------------------------------------------------------------
# Deduplicator
# ---------------------------------------------------------------------------


@dataclass
class _Normalized:
    index: int
    category: Category
    slug: str
    qualifiers: Qualifiers
    normalized_name: str
    sample: set[str]
    generic: bool


class CategoryDeduplicator:
    """Assigns one crawl mode to every category in a batch."""

    def __init__(self, config: DeduplicationConfig | None = None) -> None:
        self._config = config or DeduplicationConfig()

    def normalize(self, index: int, category: Category) -> _Normalized:
        qualifiers = extract_qualifiers(category.name, category.url)
        sample = {
            normalize_product_url(p, self._config.tracking_params)
            for p in category.products[: self._config.sample_size]
            if p
        }
        return _Normalized(
            index=index,
            category=category,
            slug=extract_slug(category.name),
            qualifiers=qualifiers,
            normalized_name=normalize_name(category.name),
            sample=sample,
            generic=is_generic(category.name, category.url, qualifiers),
        )

    def deduplicate(self, categories: list[Category]) -> list[DeduplicationRecord]:
        logger.info("Starting category deduplication of %d categories", len(categories))
        normalized = [self.normalize(i, c) for i, c in enumerate(categories)]

        groups: dict[str, list[_Normalized]] = {}
        for item in normalized:
            groups.setdefault(item.slug, []).append(item)

        records: dict[int, DeduplicationRecord] = {}
        for slug, group in groups.items():
            if len(group) == 1:
                records[group[0].index] = self._record(group[0], CrawlMode.PRODUCTS, "single_category")
                continue
            logger.debug("Slug group %s: %s", slug, [g.category.name for g in group])
            if all(not g.sample for g in group):
                decided = self._name_based(group)
            else:
                decided = self._sample_based(group)
            for record_index, record in decided:
                records[record_index] = record

        result = [records[i] for i in range(len(normalized))]
        stats = self.get_stats(result)
        logger.info(
            "Category deduplication complete: %d products, %d structural-only, %d aliases",
            stats["products"],
            stats["structural_only"],
            stats["aliases"],
        )
        return result

    def _record(self, item: _Normalized, mode: CrawlMode, reason: str, **extra: Any) -> DeduplicationRecord:
        return DeduplicationRecord(
            category=item.category,
            slug=item.slug,
            qualifiers=item.qualifiers,
            crawl_mode=mode,
            reason=reason,
            normalized_name=item.normalized_name,
            **extra,
        )

    def _name_based(self, group: list[_Normalized]) -> list[tuple[int, DeduplicationRecord]]:
        specific = [g for g in group if not g.generic]
        out = [(s.index, self._record(s, CrawlMode.PRODUCTS, "specific_category")) for s in specific]
        children = [s.category.name for s in specific]
        for g in group:
            if not g.generic:
                continue
            if specific:
                record = self._record(
                    g, CrawlMode.STRUCTURAL_ONLY, "generic_with_specific_variants", children=list(children)
                )
            else:
                record = self._record(g, CrawlMode.PRODUCTS, "only_generic_available")
            out.append((g.index, record))
        return out

    def _sample_based(self, group: list[_Normalized]) -> list[tuple[int, DeduplicationRecord]]:
        cfg = self._config
        specific = [g for g in group if not g.generic]
        out = [(s.index, self._record(s, CrawlMode.PRODUCTS, "specific_taxonomy_preserved")) for s in specific]
        specific_union: set[str] = set().union(*(s.sample for s in specific)) if specific else set()

        for g in group:
            if not g.generic:
                continue
            if not specific:
                out.append((g.index, self._record(g, CrawlMode.PRODUCTS, "no_specific_variants")))
                continue

            overlaps = [(jaccard(g.sample, s.sample), s) for s in specific]
            max_overlap = max(o for o, _ in overlaps)
            best = next(s for o, s in overlaps if o == max_overlap)
            combined_overlap = jaccard(g.sample, specific_union)
            # Rounded for the record only; decisions use the raw ratios.
            metrics = OverlapMetrics(
                max_overlap=round(max_overlap, 4),
                avg_overlap=round(sum(o for o, _ in overlaps) / len(overlaps), 4),
                combined_overlap=round(combined_overlap, 4),
                best_match=best.category.name,
            )
            logger.debug("Overlap for %r: %s", g.category.name, metrics)

            if max_overlap >= cfg.alias_threshold:
                record = self._record(
                    g, CrawlMode.ALIAS, "high_overlap_alias", alias_of=best.category.name, overlap=metrics
                )
            elif combined_overlap >= cfg.superset_threshold:
                record = self._record(
                    g,
                    CrawlMode.STRUCTURAL_ONLY,
                    "superset_minimal_value",
                    children=[s.category.name for s in specific],
                    overlap=metrics,
                )
            else:
                record = self._record(g, CrawlMode.PRODUCTS, "significant_unique_products", overlap=metrics)
            out.append((g.index, record))
        return out

    @staticmethod
    def get_stats(records: list[DeduplicationRecord]) -> dict[str, Any]:
        modes = Counter(r.crawl_mode for r in records)
        return {
            "total": len(records),
            "products": modes[CrawlMode.PRODUCTS],
            "structural_only": modes[CrawlMode.STRUCTURAL_ONLY],
            "aliases": modes[CrawlMode.ALIAS],
            "by_gender": dict(Counter(r.qualifiers.gender for r in records)),
            "by_age_group": dict(Counter(r.qualifiers.age_group for r in records)),
            "reason_counts": dict(Counter(r.reason for r in records)),
        }


# ---------------------------------------------------------------------------
# URL-level collapse
# ---------------------------------------------------------------------------


def collapse_url_duplicates(categories: list[Category]) -> list[Category]:
    """Keep one category per URL identity, recording the others.

    The representative prefers names without generic words (all/new/shop/
    browse), then shorter names.  Its metadata gains ``sources`` and
    ``duplicate_names``.  Categories without a URL are never merged.
    """
    groups: dict[str, list[Category]] = {}
    order: list[str] = []
    for i, category in enumerate(categories):
        key = url_identity_key(category.url) or f"\x00{i}"
        if key not in groups:
            groups[key] = []
            order.append(key)
        groups[key].append(category)

    collapsed: list[Category] = []
    for key in order:
        group = groups[key]
        ranked = sorted(group, key=lambda c: (bool(_REPRESENTATIVE_GENERIC_RE.search(c.name)), len(c.name)))
        rep = ranked[0]
        sources = list(dict.fromkeys(c.source or "unknown" for c in group))
        collapsed.append(
            Category(
                name=rep.name,
                url=rep.url,
                products=list(rep.products),
                depth=rep.depth,
                parent=rep.parent,
                source=rep.source,
                metadata={**rep.metadata, "sources": sources, "duplicate_names": [c.name for c in ranked[1:]]},
            )
        )
    removed = len(categories) - len(collapsed)
    if removed:
        logger.info("URL-level collapse removed %d duplicate categories", removed)
    return collapsed
