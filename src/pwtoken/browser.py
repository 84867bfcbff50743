"""
BrowsingSession
===============
Owns one Playwright-driven Chromium process, one browser context and one
long-lived page kept warm on the provider's root URL.

Nothing is launched until the first ``ensure()``. Every ``ensure()`` checks
that the process is still connected and the context still answers; if not,
the session is torn down and relaunched before returning.
After ``close()`` the session is terminal: ``ensure()`` raises instead of
launching again.

Usage::

    async with BrowsingSession(BrowserConfig.from_env()) as session:
        context = await session.ensure()
        page = session.persistent_page

Launch strategies:

    DEFAULT  — plain Playwright.
    STEALTH  — Playwright wrapped by playwright-stealth.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from enum import Enum
from types import TracebackType
from typing import Any, Self

from playwright.async_api import Browser as PWBrowser
from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
from playwright_stealth import Stealth

from .browser_config import BrowserConfig
from .browser_type import BrowserType
from .errors import SessionLaunchError
from .provider import SPOTIFY, Provider


class SessionState(str, Enum):
    ABSENT = "absent"
    READY = "ready"
    BROKEN = "broken"
    CLOSED = "closed"


class BrowsingSession:
    def __init__(self, config: BrowserConfig | None = None, provider: Provider = SPOTIFY):
        self.config = config or BrowserConfig()
        self.provider = provider
        self.state = SessionState.ABSENT
        self._playwright: Playwright | None = None
        self._browser: PWBrowser | None = None
        self._exit_stack: AsyncExitStack | None = None
        self._warmup: asyncio.Task | None = None
        self._closed = False
        self.context: BrowserContext | None = None
        self.persistent_page: Page | None = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def ensure(self) -> BrowserContext:
        """Return a live browser context, launching or relaunching as needed. Raises once the session is closed."""
        if self._closed:
            raise SessionLaunchError("Browser session is closed.")
        if self.state == SessionState.READY and not self._is_alive():
            self.state = SessionState.BROKEN
        if self.state == SessionState.BROKEN:
            self.logger.warning("Browser session is broken, relaunching")
            await self._teardown()
            return await self.ensure()
        if self.state == SessionState.ABSENT:
            await self._launch()
        if self.context is None:
            raise RuntimeError("Browser context is not available after launch.")
        return self.context

    def _is_alive(self) -> bool:
        if self._browser is None or self.context is None:
            return False
        if not self._browser.is_connected():
            self.logger.warning("Browser is not connected")
            return False
        try:
            _ = self.context.pages
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.warning("Browser context is unusable: %s", exc)
            return False
        return True

    async def _launch(self) -> None:
        self.logger.info("Launching browser in %s mode", self.config.type)
        try:
            match self.config.type:
                case BrowserType.STEALTH:
                    await self._launch_stealth()
                case BrowserType.DEFAULT:
                    await self._launch_default()
                case _:
                    raise ValueError(f"Unsupported BrowserType: {self.config.type}")
            w, h = self.config.viewport
            self.context = await self._browser.new_context(
                user_agent=self.config.user_agent,
                viewport={"width": w, "height": h},
            )
            self.persistent_page = await self.context.new_page()
        except Exception as exc:
            self.logger.error("Failed to launch browser or context: %s", exc)
            await self._teardown()
            raise SessionLaunchError(f"Failed to launch browser: {exc}") from exc
        if self._closed:
            # close() ran while the launch was awaiting
            await self._teardown()
            raise SessionLaunchError("Browser session was closed during launch.")
        self._warmup = asyncio.create_task(self._prenavigate(self.persistent_page))
        self.state = SessionState.READY

    def _launch_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"headless": self.config.headless, "args": self.config.args}
        if self.config.executable_path:
            options["executable_path"] = str(self.config.executable_path)
        return options

    async def _launch_default(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(**self._launch_options())

    async def _launch_stealth(self) -> None:
        self._exit_stack = AsyncExitStack()
        self._playwright = await self._exit_stack.enter_async_context(Stealth().use_async(async_playwright()))
        self._browser = await self._playwright.chromium.launch(**self._launch_options())

    async def _prenavigate(self, page: Page) -> None:
        try:
            await page.goto(self.provider.root_url)
            self.logger.info("Persistent page navigated to %s", self.provider.root_url)
        except Exception as exc:  # pylint: disable=broad-except
            # A fetch navigating the same page interrupts this one; the page stays usable.
            self.logger.debug("Persistent page warm-up did not finish: %s", exc)

    async def new_page(self) -> Page:
        """Open a scratch page in the current context. The caller owns and closes it."""
        context = await self.ensure()
        return await context.new_page()

    async def close(self) -> None:
        """Idempotent, safe to call even if the browser was never launched. The session cannot be relaunched afterwards."""
        if self._closed:
            return
        self._closed = True
        self.logger.info("Closing browser session")
        await self._teardown()

    async def _teardown(self) -> None:
        if self._warmup and not self._warmup.done():
            self._warmup.cancel()
        self._warmup = None
        try:
            if self.persistent_page and not self.persistent_page.is_closed():
                await self.persistent_page.close()
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.debug("Persistent page close failed: %s", exc)
        finally:
            try:
                if self.context:
                    await self.context.close()
            except Exception as exc:  # pylint: disable=broad-except
                self.logger.debug("Context close failed: %s", exc)
            finally:
                try:
                    if self._browser:
                        await self._browser.close()
                except Exception as exc:  # pylint: disable=broad-except
                    self.logger.debug("Browser close failed: %s", exc)
                finally:
                    exit_stack, playwright = self._exit_stack, self._playwright
                    self.persistent_page = None
                    self.context = None
                    self._browser = None
                    self._playwright = None
                    self._exit_stack = None
                    self.state = SessionState.CLOSED if self._closed else SessionState.ABSENT
                    try:
                        if exit_stack:
                            await exit_stack.aclose()
                        elif playwright:
                            await playwright.stop()
                    except Exception as exc:  # pylint: disable=broad-except
                        self.logger.debug("Playwright driver stop failed: %s", exc)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
