"""
Credential
==========
Bearer tokens captured from the provider's web client.

Two kinds exist:

    PRIMARY  — the web player access token (``/api/token``). The provider
               returns an absolute expiry in ms since epoch.
    CLIENT   — the client token (``/v1/clienttoken``). The provider returns
               relative ``expires_after_seconds`` / ``refresh_after_seconds``
               offsets which are turned into absolute timestamps on capture.

Usage::

    credential = Credential.from_payload(body)
    if credential.is_valid():
        session = credential.to_session()
        session.get("https://api.spotify.com/v1/me")
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import requests

from .errors import MissingGrant, ParseError

STALENESS_MARGIN_MS = 10_000


def now_ms() -> int:
    return int(time.time() * 1000)


class CredentialKind(str, Enum):
    PRIMARY = "primary"
    CLIENT = "client"


@dataclass
class Credential:
    access_token: str
    expires_at_ms: int
    client_id: str | None = None
    is_anonymous: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    kind = CredentialKind.PRIMARY

    @classmethod
    def from_payload(cls, body: Any) -> "Credential":
        """Build a primary credential from the ``/api/token`` JSON body."""
        if not isinstance(body, dict):
            raise ParseError(f"Expected a JSON object, got {type(body).__name__}")
        token = body.get("accessToken")
        expires = body.get("accessTokenExpirationTimestampMs")
        if not isinstance(token, str) or not token:
            raise ParseError("Token payload has no accessToken")
        if isinstance(expires, bool) or not isinstance(expires, (int, float)):
            raise ParseError("Token payload has no accessTokenExpirationTimestampMs")
        known = {"accessToken", "accessTokenExpirationTimestampMs", "clientId", "isAnonymous"}
        return cls(
            access_token=token,
            expires_at_ms=int(expires),
            client_id=body.get("clientId"),
            is_anonymous=body.get("isAnonymous"),
            extra={k: v for k, v in body.items() if k not in known},
            raw=dict(body),
        )

    @property
    def renewal_reference_ms(self) -> int:
        """Timestamp background renewal is scheduled against."""
        return self.expires_at_ms

    def is_valid(self, now: int | None = None, margin_ms: int = STALENESS_MARGIN_MS) -> bool:
        """True while ``now`` is strictly before ``expires_at_ms - margin_ms``."""
        now = now_ms() if now is None else now
        return now < self.expires_at_ms - margin_ms

    def to_dict(self) -> dict[str, Any]:
        """The payload handed to callers. Reproduces the provider body when captured from one."""
        if self.raw:
            return dict(self.raw)
        data: dict[str, Any] = {
            "accessToken": self.access_token,
            "accessTokenExpirationTimestampMs": self.expires_at_ms,
        }
        if self.client_id is not None:
            data["clientId"] = self.client_id
        if self.is_anonymous is not None:
            data["isAnonymous"] = self.is_anonymous
        data.update(self.extra)
        return data

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def to_session(self) -> requests.Session:
        """Build a ``requests.Session`` that authorizes downstream API calls with this credential."""
        session = requests.Session()
        session.headers.update(self.auth_headers())
        return session


@dataclass
class ClientCredential(Credential):
    refresh_after_ms: int | None = None

    kind = CredentialKind.CLIENT

    @classmethod
    def from_envelope(cls, body: Any, now: int | None = None) -> "ClientCredential":
        """Build a client credential from the ``{"granted_token": {...}}`` envelope."""
        if not isinstance(body, dict):
            raise ParseError(f"Expected a JSON object, got {type(body).__name__}")
        granted = body.get("granted_token")
        if not isinstance(granted, dict):
            raise MissingGrant("Client token response has no granted_token")
        token = granted.get("token")
        if not isinstance(token, str) or not token:
            raise ParseError("granted_token has no token")
        try:
            expires_after = float(granted.get("expires_after_seconds") or 0)
            refresh_after = float(granted.get("refresh_after_seconds") or 0)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"granted_token has non-numeric offsets: {exc}") from exc
        now = now_ms() if now is None else now
        return cls(
            access_token=token,
            expires_at_ms=now + int(expires_after * 1000),
            refresh_after_ms=now + int(refresh_after * 1000) if refresh_after > 0 else None,
            raw=dict(body),
        )

    @property
    def renewal_reference_ms(self) -> int:
        if self.refresh_after_ms is not None:
            return self.refresh_after_ms
        return self.expires_at_ms

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        granted: dict[str, Any] = {"token": self.access_token}
        return {"granted_token": granted, **self.extra}

    def auth_headers(self) -> dict[str, str]:
        return {"client-token": self.access_token}


def parse_credential(kind: CredentialKind, body: Any, now: int | None = None) -> Credential:
    """Dispatch a decoded token response body to the parser for ``kind``."""
    if kind == CredentialKind.CLIENT:
        return ClientCredential.from_envelope(body, now)
    return Credential.from_payload(body)
