# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Taxonomap exception hierarchy.

All Taxonomap-specific errors inherit from TaxonomapError.  Only
ConfigurationError escapes the public entry points; the other classes mark
soft failures that are recovered locally and surfaced through statistics.
"""

from __future__ import annotations


class TaxonomapError(Exception):
    """Base exception for all Taxonomap errors."""


class ConfigurationError(TaxonomapError):
    """Invalid configuration or missing required call arguments (programmer error)."""


class StrategyError(TaxonomapError):
    """A discovery strategy raised or returned an unusable result."""

    def __init__(self, message: str, *, strategy: str = "") -> None:
        super().__init__(message)
        self.strategy = strategy


class StrategyTimeoutError(StrategyError):
    """A discovery strategy exceeded its time budget and was abandoned."""

    def __init__(self, message: str, *, strategy: str = "", timeout_s: float = 0.0) -> None:
        super().__init__(message, strategy=strategy)
        self.timeout_s = timeout_s


class FeatureExtractionError(TaxonomapError):
    """Structural feature snapshot could not be taken for a navigation item."""


class VisitError(TaxonomapError):
    """A category page could not be opened or parsed."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message)
        self.url = url


class BrowserError(TaxonomapError):
    """Browser could not be launched for a standalone discovery run."""


class PersistenceError(TaxonomapError):
    """The pattern/taxonomy repository failed to read or write."""
