"""
RequestArbiter
==============
Entry point for credential reads. Decides per request whether the cache
can answer, a refresh is needed, or borrowed cookies require a dedicated
fetch, and turns every failure into the same opaque result.

Usage::

    arbiter = RequestArbiter(coordinator)
    result = await arbiter.handle(CredentialKind.PRIMARY, force=False, cookies=[("sp_dc", "...")])
    if result.ok:
        token = result.body["accessToken"]
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .coordinator import RefreshCoordinator
from .credential import CredentialKind


@dataclass(frozen=True)
class ArbiterResponse:
    ok: bool
    status: int
    body: dict[str, Any] = field(default_factory=dict)


class RequestArbiter:
    def __init__(self, coordinator: RefreshCoordinator):
        self.coordinator = coordinator
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def handle(
        self,
        kind: CredentialKind,
        force: bool = False,
        cookies: list[tuple[str, str]] | None = None,
    ) -> ArbiterResponse:
        """Serve one read. Never raises; failures come back as an opaque 500."""
        start = time.monotonic()
        try:
            credential = await self.coordinator.get_or_refresh(kind, cookies=cookies, force=force)
            response = ArbiterResponse(ok=True, status=200, body=credential.to_dict())
        except Exception:  # pylint: disable=broad-except
            self.logger.exception("Failed to serve %s token", kind.value)
            response = ArbiterResponse(ok=False, status=500)
        self.logger.info(
            "Handled %s token request (force: %s, cookies: %s) -> %d in %dms",
            kind.value,
            force,
            bool(cookies),
            response.status,
            (time.monotonic() - start) * 1000,
        )
        return response
