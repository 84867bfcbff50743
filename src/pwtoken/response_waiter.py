"""
ResponseWaiter
==============
One-shot listener for the first page response whose URL contains a given
fragment. The matched body is decoded, stripped of the provider's
diagnostic field and handed to a parser; the parsed value (or the typed
failure) settles a future that ``wait()`` returns.

Usage::

    waiter = ResponseWaiter(page, "/api/token", Credential.from_payload)
    waiter.start()
    try:
        await page.goto("https://open.spotify.com/")
        credential = await waiter.wait()
    finally:
        waiter.stop()

Responses arriving after the outcome is settled, or after ``stop()``, are
ignored.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Generic, TypeVar

from playwright.async_api import Page, Response

from .errors import FetchError, InvalidUpstreamResponse, ParseError

T = TypeVar("T")


class ResponseWaiter(Generic[T]):
    def __init__(
        self,
        page: Page,
        url_contains: str,
        parse: Callable[[Any], T],
        diagnostic_field: str | None = None,
    ):
        self.url_contains = url_contains
        self._page = page
        self._parse = parse
        self._diagnostic_field = diagnostic_field
        self._future: asyncio.Future[T] | None = None
        self._matched = False
        self._listening = False
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def matched(self) -> bool:
        return self._matched

    def start(self) -> None:
        """Begin listening for responses on the page."""
        if self._listening:
            return
        self._future = asyncio.get_running_loop().create_future()
        self._page.on("response", self._handle_response)
        self._listening = True

    def stop(self) -> None:
        """Stop listening. Safe to call if the waiter was never started."""
        if not self._listening:
            return
        self._page.remove_listener("response", self._handle_response)
        self._listening = False

    def fail(self, exc: FetchError) -> bool:
        """Settle with ``exc`` unless a matching response was already seen. Returns whether it applied."""
        if self._matched:
            return False
        return self._settle(exc=exc)

    async def wait(self) -> T:
        """Wait for the outcome. The caller is responsible for bounding the wait."""
        if self._future is None:
            raise RuntimeError("Waiter not started. Call start() first.")
        return await self._future

    def _settle(self, result: T | None = None, exc: BaseException | None = None) -> bool:
        if self._future is None or self._future.done():
            return False
        if exc is not None:
            self._future.set_exception(exc)
        else:
            self._future.set_result(result)
        return True

    async def _handle_response(self, response: Response) -> None:
        if not self._listening or self._matched or self.url_contains not in response.url:
            return
        self._matched = True
        self.logger.debug("Matched token response %s (%s)", response.url, response.status)
        try:
            result = await self._process(response)
        except FetchError as exc:
            applied = self._settle(exc=exc)
        except Exception as exc:  # pylint: disable=broad-except
            applied = self._settle(exc=FetchError(f"Failed to process token response: {exc}"))
        else:
            applied = self._settle(result)
        if not applied:
            self.logger.debug("Discarding late token response from %s", response.url)

    async def _process(self, response: Response) -> T:
        if not response.ok:
            raise InvalidUpstreamResponse(response.status, response.url)
        text = await response.text()
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Failed to parse token response JSON: {exc}") from exc
        if self._diagnostic_field and isinstance(body, dict):
            body.pop(self._diagnostic_field, None)
        return self._parse(body)
