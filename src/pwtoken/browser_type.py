from enum import Enum


class BrowserType(str, Enum):
    """Browser launch strategy for ``BrowsingSession``."""

    DEFAULT = "default"  # Pure Playwright, no extras
    STEALTH = "stealth"  # Wrapped by playwright-stealth, recommended for production
