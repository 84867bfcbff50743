"""Builders for mock Playwright responses shared across test modules."""

import json
from unittest.mock import AsyncMock, MagicMock


def make_response(url: str, body=None, status: int = 200, text: str | None = None) -> MagicMock:
    """Build a mock Playwright Response."""
    response = MagicMock()
    response.url = url
    response.status = status
    response.ok = 200 <= status < 300
    response.text = AsyncMock(return_value=text if text is not None else json.dumps(body))
    return response


def emit_on_goto(page, *responses, goto_error: Exception | None = None) -> list:
    """Make ``page.goto`` deliver ``responses`` to every registered response listener.

    Returns the listener list so tests can fire late responses by hand.
    """
    listeners: list = []
    page.on = MagicMock(side_effect=lambda _event, handler: listeners.append(handler))

    async def goto(_url, **_kwargs):
        for response in responses:
            for handler in list(listeners):
                await handler(response)
        if goto_error is not None:
            raise goto_error

    page.goto = AsyncMock(side_effect=goto)
    return listeners
