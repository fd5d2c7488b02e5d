# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Minimal Playwright context launcher for standalone discovery runs.

Callers that already own a browser pass their page and a page factory to
``TaxonomyDiscovery`` directly; this module only serves ``discover_site``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass

from playwright.async_api import BrowserContext, async_playwright

from .errors import BrowserError

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


@dataclass(frozen=True, slots=True)
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    locale: str = DEFAULT_LOCALE
    viewport_width: int = 1920  # wide enough for desktop mega-menus
    viewport_height: int = 1080
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout_s: float = 30.0
    wait_until: str = "domcontentloaded"


def accept_language(locale: str) -> str:
    """``Accept-Language`` value for *locale*, e.g. ``de-DE`` -> ``de-DE,de;q=0.9``."""
    language = locale.split("-", 1)[0]
    return locale if language == locale else f"{locale},{language};q=0.9"


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    return [
        "--disable-blink-features=AutomationControlled",
        f"--lang={config.locale}",
        "--disable-extensions",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--no-first-run",
        "--no-sandbox",
    ]


@asynccontextmanager
async def open_browser_context(config: BrowserConfig | None = None) -> AsyncGenerator[BrowserContext, None]:
    """Launch Chromium and yield a fresh context; everything is closed on exit.

    Raises:
        BrowserError: If Chromium cannot be launched.
    """
    cfg = config or BrowserConfig()
    async with async_playwright() as pw:
        try:
            browser = await pw.chromium.launch(headless=cfg.headless, args=chromium_launch_args(cfg))
        except Exception as exc:
            if "executable doesn't exist" in str(exc).lower():
                raise BrowserError("Chromium is not installed. Please run: playwright install chromium") from exc
            raise BrowserError(f"Browser launch failed: {exc}") from exc
        try:
            context = await browser.new_context(
                viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
                locale=cfg.locale,
                user_agent=cfg.user_agent,
                service_workers="block",
                accept_downloads=False,
                extra_http_headers={"Accept-Language": accept_language(cfg.locale)},
            )
            context.set_default_navigation_timeout(cfg.navigation_timeout_s * 1000)
            logger.info("Browser context started (headless=%s)", cfg.headless)
            try:
                yield context
            finally:
                with suppress(Exception):
                    await context.close()
        finally:
            with suppress(Exception):
                await browser.close()
