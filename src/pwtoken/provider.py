"""
Provider
========
Everything pwtoken knows about the site it mints credentials from: the page
to load, which of the page's own network calls carry the tokens, where
borrowed cookies are scoped, and which requests are noise.

``SPOTIFY`` is the default profile.
"""

from dataclasses import dataclass, field

from .credential import CredentialKind


@dataclass(frozen=True)
class Provider:
    root_url: str
    cookie_domain: str
    endpoints: dict[CredentialKind, str]
    diagnostic_field: str = "_notes"
    blocked_resource_types: frozenset[str] = frozenset(
        {"image", "stylesheet", "font", "media", "websocket", "other"}
    )
    blocked_url_patterns: tuple[str, ...] = field(default_factory=tuple)

    def endpoint_for(self, kind: CredentialKind) -> str:
        """URL fragment identifying the response that carries ``kind``."""
        try:
            return self.endpoints[kind]
        except KeyError:
            raise ValueError(f"Provider has no endpoint for {kind}") from None

    def should_block(self, resource_type: str, url: str) -> bool:
        """True if the request is not needed to observe the token calls."""
        return resource_type in self.blocked_resource_types or any(p in url for p in self.blocked_url_patterns)

    def session_cookies(self, cookies: list[tuple[str, str]]) -> list[dict]:
        """Shape borrowed ``(name, value)`` pairs the way the provider's page reads them."""
        return [
            {
                "name": name,
                "value": value,
                "domain": self.cookie_domain,
                "path": "/",
                "httpOnly": False,
                "secure": True,
                "sameSite": "Lax",
            }
            for name, value in cookies
        ]


SPOTIFY = Provider(
    root_url="https://open.spotify.com/",
    cookie_domain=".spotify.com",
    endpoints={
        CredentialKind.PRIMARY: "/api/token",
        CredentialKind.CLIENT: "clienttoken.spotify.com/v1/clienttoken",
    },
    blocked_url_patterns=(
        "google-analytics",
        "doubleclick.net",
        "googletagmanager.com",
        "https://open.spotifycdn.com/cdn/images/",
        "https://encore.scdn.co/fonts/",
    ),
)
