"""
Mint one credential and print it as JSON.

Usage::

    python -m pwtoken                       # primary token
    python -m pwtoken --kind client         # client token envelope
    python -m pwtoken --cookie sp_dc=...    # token for a borrowed session
"""

import argparse
import asyncio
import json
import logging
import sys

from .arbiter import RequestArbiter
from .browser import BrowsingSession
from .browser_config import BrowserConfig
from .browser_type import BrowserType
from .coordinator import RefreshCoordinator
from .credential import CredentialKind
from .fetcher import CredentialFetcher


def _cookie(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not name or not sep:
        raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {raw!r}")
    return name.strip(), value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pwtoken", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--kind", choices=[k.value for k in CredentialKind], default=CredentialKind.PRIMARY.value)
    parser.add_argument("--cookie", dest="cookies", action="append", type=_cookie, default=[], metavar="NAME=VALUE")
    parser.add_argument("--stealth", action="store_true", help="launch through playwright-stealth")
    parser.add_argument("--headed", action="store_true", help="show the browser window")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


async def run(args: argparse.Namespace) -> int:
    config = BrowserConfig.from_env()
    if args.stealth:
        config.type = BrowserType.STEALTH
    if args.headed:
        config.headless = False
    coordinator = RefreshCoordinator(CredentialFetcher(BrowsingSession(config)))
    try:
        result = await RequestArbiter(coordinator).handle(CredentialKind(args.kind), cookies=args.cookies)
    finally:
        await coordinator.close()
    if not result.ok:
        return 1
    print(json.dumps(result.body, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
