"""
RefreshCoordinator
==================
Caches one credential per kind and keeps them fresh.

Concurrency rules:

* One ``asyncio.Lock`` (the gate) serializes every fetch across *all*
  kinds. Both kinds are minted through the same browser context, and each
  fetch rewrites its cookies, so two fetches must never overlap.
* Reads of a valid cached credential never touch the gate.
* Requests carrying borrowed cookies always fetch, under the gate, and
  never read or write the cached slots.
* Each kind has at most one pending renewal timer. When it fires the
  credential is refetched under the gate and the timer is rescheduled,
  whether the fetch succeeded or not.

Usage::

    session = BrowsingSession(BrowserConfig.from_env())
    async with RefreshCoordinator(CredentialFetcher(session)) as coordinator:
        credential = await coordinator.get_or_refresh(CredentialKind.PRIMARY)
"""

import asyncio
import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Callable, Self

from .credential import STALENESS_MARGIN_MS, Credential, CredentialKind, now_ms
from .errors import ShutdownError
from .fetcher import FETCH_TIMEOUT_MS, CredentialFetcher


@dataclass
class RefreshPolicy:
    fetch_timeout_ms: int = FETCH_TIMEOUT_MS
    staleness_margin_ms: int = STALENESS_MARGIN_MS
    renewal_slack_ms: int = 100
    startup_attempts: int = 3
    startup_backoff_ms: int = 2000


@dataclass
class CachedSlot:
    credential: Credential | None = None
    generation: int = 0

    def store(self, credential: Credential) -> None:
        self.credential = credential
        self.generation += 1


class RenewalScheduler:
    """Holds at most one pending timer per kind; scheduling replaces the previous one."""

    def __init__(self) -> None:
        self._timers: dict[CredentialKind, asyncio.TimerHandle] = {}

    def schedule(self, kind: CredentialKind, delay_ms: int, callback: Callable[[], object]) -> None:
        self.cancel(kind)
        loop = asyncio.get_running_loop()
        self._timers[kind] = loop.call_later(delay_ms / 1000, callback)

    def cancel(self, kind: CredentialKind) -> None:
        handle = self._timers.pop(kind, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for kind in list(self._timers):
            self.cancel(kind)

    def pending(self, kind: CredentialKind) -> bool:
        handle = self._timers.get(kind)
        return handle is not None and not handle.cancelled()


class RefreshCoordinator:
    def __init__(
        self,
        fetcher: CredentialFetcher,
        policy: RefreshPolicy | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.fetcher = fetcher
        self.policy = policy or RefreshPolicy()
        self.fetcher.timeout_ms = self.policy.fetch_timeout_ms
        self._clock = clock
        self._gate = asyncio.Lock()
        self._slots = {kind: CachedSlot() for kind in CredentialKind}
        self.scheduler = RenewalScheduler()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def cached(self, kind: CredentialKind) -> Credential | None:
        return self._slots[kind].credential

    def _fresh(self, kind: CredentialKind) -> Credential | None:
        credential = self._slots[kind].credential
        if credential is not None and credential.is_valid(self._clock(), self.policy.staleness_margin_ms):
            return credential
        return None

    async def get_or_refresh(
        self,
        kind: CredentialKind,
        cookies: list[tuple[str, str]] | None = None,
        force: bool = False,
    ) -> Credential:
        """Return a valid credential for ``kind``, fetching one if the cache cannot serve it."""
        self._check_open(kind)
        if cookies:
            async with self._gate:
                self._check_open(kind)
                return await self.fetcher.fetch(kind, cookies)

        if not force:
            credential = self._fresh(kind)
            if credential is not None:
                return credential

        slot = self._slots[kind]
        arrived_at = slot.generation
        async with self._gate:
            self._check_open(kind)
            credential = self._fresh(kind)
            if credential is not None and (not force or slot.generation != arrived_at):
                return credential
            return await self._refresh_locked(kind)

    def _check_open(self, kind: CredentialKind) -> None:
        if self._closed:
            raise ShutdownError(f"Cannot serve {kind.value} token, coordinator is closed.")

    async def _refresh_locked(self, kind: CredentialKind) -> Credential:
        self._check_open(kind)
        credential = await self.fetcher.fetch(kind)
        self._slots[kind].store(credential)
        self.schedule_renewal(kind)
        return credential

    def renewal_delay_ms(self, kind: CredentialKind) -> int | None:
        credential = self._slots[kind].credential
        if credential is None:
            return None
        return max(credential.renewal_reference_ms - self._clock() + self.policy.renewal_slack_ms, 0)

    def schedule_renewal(self, kind: CredentialKind) -> None:
        """Replace the pending renewal timer for ``kind`` using the cached credential's reference time."""
        self.scheduler.cancel(kind)
        if self._closed:
            return
        delay = self.renewal_delay_ms(kind)
        if delay is None:
            return
        self.logger.debug("Next %s renewal in %dms", kind.value, delay)
        self.scheduler.schedule(kind, delay, lambda: self._spawn(self._renew(kind)))

    async def _renew(self, kind: CredentialKind) -> None:
        try:
            async with self._gate:
                credential = await self.fetcher.fetch(kind)
                self._slots[kind].store(credential)
            self.logger.info("%s token auto-refreshed", kind.value)
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.warning("Failed to auto-refresh %s token: %s", kind.value, exc)
        self.schedule_renewal(kind)

    async def warm_up(self, kind: CredentialKind) -> Credential | None:
        """Initial fetch with a fixed number of attempts. Leaves the slot empty if all fail."""
        started = self._clock()
        for attempt in range(1, self.policy.startup_attempts + 1):
            try:
                async with self._gate:
                    credential = await self._refresh_locked(kind)
            except Exception as exc:  # pylint: disable=broad-except
                self.logger.warning("Failed to fetch initial %s token (attempt %d): %s", kind.value, attempt, exc)
                if attempt < self.policy.startup_attempts:
                    await asyncio.sleep(self.policy.startup_backoff_ms * attempt / 1000)
                continue
            self.logger.info("Initial %s token fetched in %dms", kind.value, self._clock() - started)
            return credential
        self.logger.error("Giving up on initial %s token after %d attempts", kind.value, self.policy.startup_attempts)
        return None

    def start(self) -> None:
        """Kick off warm-up for every kind in the background."""
        for kind in CredentialKind:
            self._spawn(self.warm_up(kind))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        """Stop background work and close the browsing session."""
        self._closed = True
        self.scheduler.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.fetcher.session.close()

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
