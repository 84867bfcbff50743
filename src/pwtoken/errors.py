"""Typed failures raised while minting credentials.

Everything below ``FetchError`` is the outcome of a single observation
cycle; ``SessionLaunchError`` means no browser could be started at all, and
``ShutdownError`` that the coordinator was already closed.
"""


class CredentialError(Exception):
    """Base class for all pwtoken failures."""


class SessionLaunchError(CredentialError):
    """The browser process or its context could not be started."""


class FetchError(CredentialError):
    """One fetch cycle ended without a credential."""


class NavigationError(FetchError):
    """Navigating to the provider root failed before a token response arrived."""


class DeadlineExceeded(FetchError):
    """No matching token response arrived before the fetch deadline."""


class InvalidUpstreamResponse(FetchError):
    """The matched token response had a non-2xx status."""

    def __init__(self, status: int, url: str = ""):
        self.status = status
        self.url = url
        super().__init__(f"Token endpoint answered {status}" + (f" ({url})" if url else ""))


class ParseError(FetchError):
    """The matched token response body was not a usable JSON object."""


class MissingGrant(FetchError):
    """The client-token envelope carried no ``granted_token``."""


class PageSetupError(FetchError):
    """The page or context could not be prepared for a fetch, usually because it was closed."""


class ShutdownError(CredentialError):
    """The coordinator was closed before the request could be served."""
