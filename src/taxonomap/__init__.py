# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Taxonomap: generic e-commerce taxonomy discovery.

Discovers the department/category/subcategory structure of an unseen shop
and collapses overlapping categories into a crawl-ready set:
- discovery: multi-strategy navigation candidate collection
- classifier: structural tiering of candidates (no hardcoded site text)
- tree_builder: bounded priority-BFS over category pages
- deduplicator: slug grouping + product-sample Jaccard overlap
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Tier(StrEnum):
    """Coarse navigation tier assigned by the classifier."""

    MAIN_SECTION = "MAIN_SECTION"
    CATEGORY = "CATEGORY"
    SUBCATEGORY = "SUBCATEGORY"
    UTILITY = "UTILITY"


class CrawlMode(StrEnum):
    """Disposition of a category after deduplication."""

    PRODUCTS = "products"
    ALIAS = "alias"
    STRUCTURAL_ONLY = "structural-only"


@dataclass
class NavigationCandidate:
    """A navigation element proposed by a discovery strategy (page-scoped)."""

    name: str
    url: str = ""
    selector: str = ""  # CSS selector for feature extraction (may be stale)
    element_type: str = "a"  # a, button, li, ...
    has_dropdown: bool = False
    discovered_by: str = ""
    item_type: str = "navigation"  # main_section, dropdown, sidebar, breadcrumb, navigation
    page_purpose: str = "navigation"  # navigation, category, subcategory
    selector_category: str = "general"
    children: list[NavigationCandidate] = field(default_factory=list)  # known dropdown items

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "url": self.url,
            "selector": self.selector,
            "element_type": self.element_type,
            "has_dropdown": self.has_dropdown,
            "discovered_by": self.discovered_by,
            "item_type": self.item_type,
            "page_purpose": self.page_purpose,
            "selector_category": self.selector_category,
        }
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NavigationCandidate:
        return cls(
            name=str(data.get("name") or data.get("text") or ""),
            url=str(data.get("url") or ""),
            selector=str(data.get("selector") or ""),
            element_type=str(data.get("element_type") or "a"),
            has_dropdown=bool(data.get("has_dropdown", False)),
            discovered_by=str(data.get("discovered_by") or ""),
            item_type=str(data.get("item_type") or "navigation"),
            page_purpose=str(data.get("page_purpose") or "navigation"),
            selector_category=str(data.get("selector_category") or "general"),
            children=[cls.from_dict(c) for c in data.get("children", []) if isinstance(c, dict)],
        )


@dataclass
class ClassifiedItem:
    """A candidate with its structural tier, score and the features behind it."""

    candidate: NavigationCandidate
    tier: Tier
    score: float  # [0, 1]
    features: dict[str, Any] = field(default_factory=dict)
    fallback: bool = False  # True when classified without DOM access

    @property
    def name(self) -> str:
        return self.candidate.name

    @property
    def url(self) -> str:
        return self.candidate.url


@dataclass
class CategoryNode:
    """A node in the discovered category tree. Root has depth 0."""

    name: str
    url: str
    type: str  # root, main_category, subcategory, sub_subcategory, deep_category
    depth: int
    selector: str = ""
    children: list[CategoryNode] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "type": self.type,
            "depth": self.depth,
            "selector": self.selector,
            "children": [c.to_dict() for c in self.children],
            "metadata": dict(self.metadata),
        }

    def iter_nodes(self):
        """Breadth-first iteration over this node and all descendants."""
        pending = [self]
        while pending:
            node = pending.pop(0)
            yield node
            pending.extend(node.children)


@dataclass
class Category:
    """Flat category record fed to the deduplicator."""

    name: str
    url: str = ""
    products: list[str] = field(default_factory=list)  # known product URLs (sampled)
    depth: int = 0
    parent: str = ""
    source: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "Category",
    "CategoryNode",
    "ClassifiedItem",
    "CrawlMode",
    "NavigationCandidate",
    "Tier",
]
