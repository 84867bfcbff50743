"""
BrowserConfig
=============
Launch settings for ``BrowsingSession``.

``from_env()`` reads the optional overrides from the process environment
(and a ``.env`` file, if present):

    BROWSER_PATH      Chromium-compatible executable to launch instead of
                      the Playwright-managed build. Blank means no override.
    BROWSER_TYPE      ``default`` or ``stealth``.
    BROWSER_HEADLESS  ``1``/``true``/``yes`` (default) or anything else.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .browser_type import BrowserType

_TRUTHY = {"1", "true", "yes"}


@dataclass
class BrowserConfig:
    type: BrowserType = BrowserType.DEFAULT
    headless: bool = True
    executable_path: Path | None = None
    viewport: tuple[int, int] = (1920, 1080)
    user_agent: str = (
        "Mozilla/5.0 (Linux; Android 6.0; Nexus 5 Build/MRA58N) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/125.0.0.0 Mobile Safari/537.36"
    )
    args: list[str] = field(
        default_factory=lambda: [
            "--disable-gpu",
            "--disable-dev-shm-usage",
            "--disable-setuid-sandbox",
            "--no-sandbox",
            "--no-zygote",
            "--disable-extensions",
            "--disable-background-timer-throttling",
            "--disable-blink-features=AutomationControlled",
            "--disable-backgrounding-occluded-windows",
            "--disable-renderer-backgrounding",
            "--window-size=1920,1080",
        ]
    )

    @classmethod
    def from_env(cls, dotenv_path: str | Path | None = None) -> "BrowserConfig":
        load_dotenv(dotenv_path)
        raw_path = os.getenv("BROWSER_PATH", "").strip()
        raw_type = os.getenv("BROWSER_TYPE", BrowserType.DEFAULT.value).strip().lower()
        try:
            browser_type = BrowserType(raw_type)
        except ValueError:
            raise ValueError(f"Unsupported BROWSER_TYPE: {raw_type!r}") from None
        headless = os.getenv("BROWSER_HEADLESS", "true").strip().lower() in _TRUTHY
        return cls(
            type=browser_type,
            headless=headless,
            executable_path=Path(raw_path) if raw_path else None,
        )
