"""
CredentialFetcher
=================
Mints a credential by loading the provider's root page and capturing the
token response the page's own scripts request.

Each fetch:

1. acquires the browsing session and picks a page: the warm persistent
   page, or a scratch page when borrowed cookies are injected (so they
   never leak into the shared page) or the persistent page is gone;
2. clears the context's cookies and installs any borrowed ones;
3. blocks requests that cannot carry the token (images, fonts, trackers…);
4. waits for the first response from the kind's token endpoint while the
   root page loads, bounded by a deadline.

A fetch ends with exactly one credential or one ``FetchError``. The
listener and request filter are removed and any scratch page is closed on
every exit path.
"""

import asyncio
import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import BrowserContext, Page, Route

from .browser import BrowsingSession
from .credential import ClientCredential, Credential, CredentialKind, parse_credential
from .errors import DeadlineExceeded, NavigationError, PageSetupError
from .response_waiter import ResponseWaiter

FETCH_TIMEOUT_MS = 15_000


class CredentialFetcher:
    def __init__(self, session: BrowsingSession, timeout_ms: int = FETCH_TIMEOUT_MS):
        self.session = session
        self.provider = session.provider
        self.timeout_ms = timeout_ms
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def fetch_primary(self, cookies: list[tuple[str, str]] | None = None) -> Credential:
        return await self.fetch(CredentialKind.PRIMARY, cookies)

    async def fetch_client(self, cookies: list[tuple[str, str]] | None = None) -> ClientCredential:
        credential = await self.fetch(CredentialKind.CLIENT, cookies)
        if not isinstance(credential, ClientCredential):
            raise TypeError(f"Expected a ClientCredential, got {type(credential).__name__}")
        return credential

    async def fetch(self, kind: CredentialKind, cookies: list[tuple[str, str]] | None = None) -> Credential:
        """Run one observation cycle for ``kind``, optionally under borrowed session cookies."""
        cookies = list(cookies or [])
        context = await self.session.ensure()
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            page, scratch = await self._acquire_page(bool(cookies))
        except PlaywrightError as exc:
            raise PageSetupError(f"Could not open a page for the {kind.value} token fetch: {exc}") from exc
        waiter = ResponseWaiter(
            page,
            self.provider.endpoint_for(kind),
            lambda body: parse_credential(kind, body),
            self.provider.diagnostic_field,
        )
        navigation: asyncio.Task | None = None
        try:
            async with asyncio.timeout_at(started + self.timeout_ms / 1000):
                await self._prepare(context, page, cookies)
                waiter.start()
                navigation = asyncio.create_task(self._navigate(page, waiter))
                credential = await waiter.wait()
        except TimeoutError as exc:
            self.logger.error("%s token fetch exceeded %dms deadline", kind.value, self.timeout_ms)
            raise DeadlineExceeded(f"{kind.value} token fetch exceeded {self.timeout_ms}ms deadline") from exc
        finally:
            waiter.stop()
            if navigation is not None and not navigation.done():
                navigation.cancel()
            await self._release_page(page, scratch)
        self.logger.info("Fetched %s token in %dms", kind.value, (loop.time() - started) * 1000)
        return credential

    async def _prepare(self, context: BrowserContext, page: Page, cookies: list[tuple[str, str]]) -> None:
        try:
            await context.clear_cookies()
            if cookies:
                await context.add_cookies(self.provider.session_cookies(cookies))
                self.logger.info("Borrowed cookies installed: %s", ", ".join(name for name, _ in cookies))
            await page.route("**/*", self._filter_route)
        except PlaywrightError as exc:
            raise PageSetupError(f"Failed to prepare page: {exc}") from exc

    async def _acquire_page(self, isolate: bool) -> tuple[Page, bool]:
        page = self.session.persistent_page
        if isolate or page is None or page.is_closed():
            return await self.session.new_page(), True
        return page, False

    async def _release_page(self, page: Page, scratch: bool) -> None:
        try:
            if scratch:
                if not page.is_closed():
                    await page.close()
            else:
                await page.unroute("**/*", self._filter_route)
        except PlaywrightError as exc:
            self.logger.debug("Page cleanup failed: %s", exc)

    async def _navigate(self, page: Page, waiter: ResponseWaiter) -> None:
        try:
            await page.goto(self.provider.root_url)
        except Exception as exc:  # pylint: disable=broad-except
            if waiter.fail(NavigationError(f"Navigation failed: {exc}")):
                self.logger.error("Navigation to %s failed: %s", self.provider.root_url, exc)

    async def _filter_route(self, route: Route) -> None:
        request = route.request
        if self.provider.should_block(request.resource_type, request.url):
            await route.abort()
        else:
            await route.fallback()
