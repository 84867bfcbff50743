"""pwtoken — browser-minted bearer credentials with single-flight refresh."""

from .arbiter import ArbiterResponse, RequestArbiter
from .browser import BrowsingSession, SessionState
from .browser_config import BrowserConfig
from .browser_type import BrowserType
from .coordinator import RefreshCoordinator, RefreshPolicy
from .credential import ClientCredential, Credential, CredentialKind
from .errors import (
    CredentialError,
    DeadlineExceeded,
    FetchError,
    InvalidUpstreamResponse,
    MissingGrant,
    NavigationError,
    PageSetupError,
    ParseError,
    SessionLaunchError,
    ShutdownError,
)
from .fetcher import CredentialFetcher
from .provider import SPOTIFY, Provider

__all__ = [
    "ArbiterResponse",
    "BrowserConfig",
    "BrowserType",
    "BrowsingSession",
    "ClientCredential",
    "Credential",
    "CredentialError",
    "CredentialFetcher",
    "CredentialKind",
    "DeadlineExceeded",
    "FetchError",
    "InvalidUpstreamResponse",
    "MissingGrant",
    "NavigationError",
    "PageSetupError",
    "ParseError",
    "Provider",
    "RefreshCoordinator",
    "RefreshPolicy",
    "RequestArbiter",
    "SPOTIFY",
    "SessionLaunchError",
    "SessionState",
    "ShutdownError",
]
