# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Configuration value objects for every stage, plus the environment loader.

All classes are frozen so a run's behaviour is fully described by the
objects passed at construction.  Validation happens in ``__post_init__``
and raises ``ConfigurationError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields

from .errors import ConfigurationError
from .urls import DEFAULT_TRACKING_PARAMS

# ---------------------------------------------------------------------------
# Discovery pipeline
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
    """Options for ``NavigationDiscoveryPipeline.discover``."""

    max_strategies: int = 10
    min_confidence: float = 0.3
    parallel: bool = False
    timeout_s: float = 30.0  # wall-clock budget for the whole discovery
    strategy_timeout_s: float = 5.0  # per-strategy cap (never above remaining budget)
    early_exit: bool = True
    learning_threshold: float = 0.5  # store learned patterns above this confidence

    def __post_init__(self) -> None:
        if self.max_strategies < 1:
            raise ConfigurationError("max_strategies must be >= 1")
        if self.timeout_s <= 0 or self.strategy_timeout_s <= 0:
            raise ConfigurationError("discovery timeouts must be positive")
        for name in ("min_confidence", "learning_threshold"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1]")


# ---------------------------------------------------------------------------
# Structural classifier
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClassifierWeights:
    """Per-factor weights for the structural score."""

    dom_position: float = 0.25
    containment: float = 0.20
    sibling_count: float = 0.20
    visual_prominence: float = 0.15
    depth_from_body: float = 0.10
    url_heuristics: float = 0.10

    def __post_init__(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ConfigurationError(f"classifier weight {f.name} must be non-negative")


@dataclass(frozen=True, slots=True)
class ClassifierThresholds:
    """Score ladder: >= main_section, >= category, >= subcategory, else utility.

    Operative defaults are the lowered values (0.40/0.25/0.15), not the
    earlier 0.70/0.50/0.30 baseline.  Recalibrate against labelled sites
    before trusting absolute tier boundaries.
    """

    main_section: float = 0.40
    category: float = 0.25
    subcategory: float = 0.15

    def __post_init__(self) -> None:
        if not 1.0 >= self.main_section > self.category > self.subcategory >= 0.0:
            raise ConfigurationError("classifier thresholds must be strictly descending within [0, 1]")


DEFAULT_UTILITY_KEYWORDS: tuple[str, ...] = (
    "cart",
    "bag",
    "basket",
    "checkout",
    "login",
    "log in",
    "sign in",
    "account",
    "profile",
    "wishlist",
    "favorites",
    "search",
    "help",
    "support",
    "contact",
    "store locator",
)


@dataclass(frozen=True, slots=True)
class ClassifierConfig:
    weights: ClassifierWeights = field(default_factory=ClassifierWeights)
    thresholds: ClassifierThresholds = field(default_factory=ClassifierThresholds)
    utility_keywords: tuple[str, ...] = DEFAULT_UTILITY_KEYWORDS
    utility_penalty: float = 0.3
    short_text_penalty: float = 0.7
    short_text_max_len: int = 3

    def __post_init__(self) -> None:
        for name in ("utility_penalty", "short_text_penalty"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1]")


# ---------------------------------------------------------------------------
# Category tree builder
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TreeBuilderOptions:
    max_depth: int = 4
    max_total_categories: int = 1000
    max_categories_per_level: int = 50
    memory_flush_threshold: int = 200
    request_delay_s: float = 1.0  # pause between consecutive page visits
    visit_timeout_s: float = 15.0
    settle_s: float = 2.0  # wait after DOMContentLoaded before scraping

    def __post_init__(self) -> None:
        for name in ("max_depth", "max_total_categories", "max_categories_per_level", "memory_flush_threshold"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1")
        for name in ("request_delay_s", "visit_timeout_s", "settle_s"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")


# ---------------------------------------------------------------------------
# Deduplicator
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DeduplicationConfig:
    sample_size: int = 40
    alias_threshold: float = 0.9  # Jaccard vs best specific sibling
    superset_threshold: float = 0.8  # Jaccard vs union of specific siblings
    tracking_params: tuple[str, ...] = DEFAULT_TRACKING_PARAMS

    def __post_init__(self) -> None:
        if self.sample_size < 1:
            raise ConfigurationError("sample_size must be >= 1")
        for name in ("alias_threshold", "superset_threshold"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1]")


# ---------------------------------------------------------------------------
# Aggregate settings + environment loader
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Settings:
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    tree: TreeBuilderOptions = field(default_factory=TreeBuilderOptions)
    dedup: DeduplicationConfig = field(default_factory=DeduplicationConfig)
    log_level: str = "INFO"
    json_logs: bool = False
    db_path: str = ""  # empty → in-memory repository


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env_number(environ: Mapping[str, str], name: str, cast: type, default):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a {cast.__name__}, got {raw!r}") from None


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in _TRUE_VALUES


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from ``TAXONOMAP_*`` environment variables."""
    env = os.environ if environ is None else environ
    d_disc, d_tree, d_dedup = DiscoveryConfig(), TreeBuilderOptions(), DeduplicationConfig()

    discovery = DiscoveryConfig(
        parallel=_env_flag(env, "TAXONOMAP_PARALLEL", d_disc.parallel),
        min_confidence=_env_number(env, "TAXONOMAP_MIN_CONFIDENCE", float, d_disc.min_confidence),
        timeout_s=_env_number(env, "TAXONOMAP_DISCOVERY_TIMEOUT", float, d_disc.timeout_s),
    )
    tree = TreeBuilderOptions(
        max_depth=_env_number(env, "TAXONOMAP_MAX_DEPTH", int, d_tree.max_depth),
        max_total_categories=_env_number(env, "TAXONOMAP_MAX_TOTAL_CATEGORIES", int, d_tree.max_total_categories),
        max_categories_per_level=_env_number(env, "TAXONOMAP_MAX_PER_LEVEL", int, d_tree.max_categories_per_level),
        request_delay_s=_env_number(env, "TAXONOMAP_REQUEST_DELAY", float, d_tree.request_delay_s),
    )
    dedup = DeduplicationConfig(
        sample_size=_env_number(env, "TAXONOMAP_SAMPLE_SIZE", int, d_dedup.sample_size),
        alias_threshold=_env_number(env, "TAXONOMAP_ALIAS_THRESHOLD", float, d_dedup.alias_threshold),
        superset_threshold=_env_number(env, "TAXONOMAP_SUPERSET_THRESHOLD", float, d_dedup.superset_threshold),
    )
    return Settings(
        discovery=discovery,
        tree=tree,
        dedup=dedup,
        log_level=env.get("TAXONOMAP_LOG_LEVEL", "").strip() or "INFO",
        json_logs=_env_flag(env, "TAXONOMAP_JSON_LOGS", False),
        db_path=env.get("TAXONOMAP_DB_PATH", "").strip(),
    )
