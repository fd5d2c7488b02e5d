# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import taxonomap  # noqa: F401
except ImportError:
    raise ImportError("taxonomap is not installed. Run: pip install -e '.[dev]'") from None

import pytest
import structlog

from tests._fakes import make_page


@pytest.fixture
def page():
    return make_page()


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Chromium launches in unit tests.

    Tests that need a browser context should patch
    ``taxonomap.browser.open_browser_context`` (or ``async_playwright``)
    explicitly; that patch takes priority over this fixture.
    """
    if "allow_real_browser" in request.keywords:
        return

    def _no_real_playwright():
        raise RuntimeError("Test tried to launch a real browser. Patch 'taxonomap.browser.async_playwright'.")

    monkeypatch.setattr("taxonomap.browser.async_playwright", _no_real_playwright)


@pytest.fixture(autouse=True)
def _reset_structlog_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
