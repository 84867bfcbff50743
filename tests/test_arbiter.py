"""Tests for RequestArbiter — request policy and opaque failures."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from pwtoken import (
    ClientCredential,
    Credential,
    CredentialKind,
    InvalidUpstreamResponse,
    RefreshCoordinator,
    RequestArbiter,
    SessionLaunchError,
)

pytestmark = pytest.mark.asyncio

NOW = 1_700_000_000_000


# ── Helpers ──────────────────────────────────────────────────────────────────


def make_arbiter(*outcomes) -> tuple[RequestArbiter, MagicMock]:
    """Arbiter over a real coordinator whose fetcher yields ``outcomes`` in order."""
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(side_effect=list(outcomes))
    fetcher.session.close = AsyncMock()
    coordinator = RefreshCoordinator(fetcher, clock=lambda: NOW)
    return RequestArbiter(coordinator), fetcher


def primary(token: str) -> Credential:
    return Credential.from_payload({"accessToken": token, "accessTokenExpirationTimestampMs": NOW + 3_600_000})


# ── Success ──────────────────────────────────────────────────────────────────


class TestServe:
    """Tests for successful reads."""

    async def test_returns_credential_payload(self):
        arbiter, _ = make_arbiter(primary("BQD"))
        result = await arbiter.handle(CredentialKind.PRIMARY)
        assert result.ok
        assert result.status == 200
        assert result.body == {"accessToken": "BQD", "accessTokenExpirationTimestampMs": NOW + 3_600_000}
        await arbiter.coordinator.close()

    async def test_client_returns_raw_envelope(self):
        envelope = {"response_type": "RESPONSE_GRANTED_TOKEN_RESPONSE", "granted_token": {"token": "AAC", "expires_after_seconds": 60}}
        arbiter, _ = make_arbiter(ClientCredential.from_envelope(envelope, now=NOW))
        result = await arbiter.handle(CredentialKind.CLIENT)
        assert result.body == envelope
        await arbiter.coordinator.close()

    async def test_cached_read_skips_fetch(self):
        arbiter, fetcher = make_arbiter(primary("first"))
        await arbiter.handle(CredentialKind.PRIMARY)
        result = await arbiter.handle(CredentialKind.PRIMARY)
        assert result.body["accessToken"] == "first"
        fetcher.fetch.assert_called_once()
        await arbiter.coordinator.close()

    async def test_force_refreshes(self):
        arbiter, fetcher = make_arbiter(primary("first"), primary("second"))
        await arbiter.handle(CredentialKind.PRIMARY)
        result = await arbiter.handle(CredentialKind.PRIMARY, force=True)
        assert result.body["accessToken"] == "second"
        assert fetcher.fetch.call_count == 2
        await arbiter.coordinator.close()

    async def test_cookie_request_fetches_with_cookies(self):
        arbiter, fetcher = make_arbiter(primary("ambient"), primary("mine"))
        await arbiter.handle(CredentialKind.PRIMARY)
        result = await arbiter.handle(CredentialKind.PRIMARY, cookies=[("sp_dc", "AQB")])
        assert result.body["accessToken"] == "mine"
        fetcher.fetch.assert_called_with(CredentialKind.PRIMARY, [("sp_dc", "AQB")])
        assert arbiter.coordinator.cached(CredentialKind.PRIMARY).access_token == "ambient"
        await arbiter.coordinator.close()


# ── Failures ─────────────────────────────────────────────────────────────────


class TestFailures:
    """Tests for the opaque failure mapping."""

    @pytest.mark.parametrize(
        "error",
        [
            InvalidUpstreamResponse(429, "https://open.spotify.com/api/token"),
            SessionLaunchError("Executable doesn't exist at /opt/chrome"),
            RuntimeError("unexpected"),
        ],
    )
    async def test_failures_are_opaque(self, error):
        arbiter, _ = make_arbiter(error)
        result = await arbiter.handle(CredentialKind.PRIMARY)
        assert not result.ok
        assert result.status == 500
        assert result.body == {}
        await arbiter.coordinator.close()

    async def test_cookie_failure_is_opaque(self):
        arbiter, _ = make_arbiter(InvalidUpstreamResponse(401))
        result = await arbiter.handle(CredentialKind.PRIMARY, cookies=[("sp_dc", "expired")])
        assert (result.ok, result.status, result.body) == (False, 500, {})
        await arbiter.coordinator.close()

    async def test_failure_logged_with_detail(self, caplog):
        arbiter, _ = make_arbiter(InvalidUpstreamResponse(503, "https://open.spotify.com/api/token"))
        with caplog.at_level(logging.ERROR, logger="pwtoken.arbiter"):
            await arbiter.handle(CredentialKind.PRIMARY)
        record = next(r for r in caplog.records if r.levelno == logging.ERROR)
        assert record.exc_info is not None
        assert "503" in str(record.exc_info[1])
        await arbiter.coordinator.close()
