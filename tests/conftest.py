"""Shared fixtures for pwtoken tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_page():
    """A mock Playwright Page that starts open."""
    page = AsyncMock()
    page.on = MagicMock()
    page.remove_listener = MagicMock()
    page.is_closed = MagicMock(return_value=False)
    return page


@pytest.fixture
def scratch_page():
    """A second mock Page, handed out for isolated fetches."""
    page = AsyncMock()
    page.on = MagicMock()
    page.remove_listener = MagicMock()
    page.is_closed = MagicMock(return_value=False)
    return page


@pytest.fixture
def mock_context(mock_page):  # pylint: disable=redefined-outer-name
    """A mock Playwright BrowserContext with one page."""
    context = AsyncMock()
    context.pages = [mock_page]
    context.new_page = AsyncMock(return_value=mock_page)
    context.clear_cookies = AsyncMock()
    context.add_cookies = AsyncMock()
    context.close = AsyncMock()
    return context


@pytest.fixture
def mock_browser(mock_context):  # pylint: disable=redefined-outer-name
    """A mock Playwright Browser that reports itself connected."""
    browser = AsyncMock()
    browser.new_context = AsyncMock(return_value=mock_context)
    browser.is_connected = MagicMock(return_value=True)
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def mock_playwright(mock_browser):  # pylint: disable=redefined-outer-name
    """A mock Playwright instance."""
    pw = AsyncMock()
    pw.chromium.launch = AsyncMock(return_value=mock_browser)
    pw.stop = AsyncMock()
    return pw


@pytest.fixture
def mock_async_playwright(mock_playwright):  # pylint: disable=redefined-outer-name
    """Patch target for async_playwright() returning mock_playwright."""
    cm = AsyncMock()
    cm.__aenter__ = AsyncMock(return_value=mock_playwright)
    cm.__aexit__ = AsyncMock(return_value=None)
    cm.start = AsyncMock(return_value=mock_playwright)
    return cm

