"""Navigation helpers for pages that never reach the ``load`` state."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

LOGGER = logging.getLogger(__name__)

FALLBACK_STATE = "domcontentloaded"

T = TypeVar("T")


async def _with_load_fallback(
    step: Callable[[str], Awaitable[T]],
    wait_until: str,
    what: str,
    logger: Optional[logging.Logger],
) -> T:
    try:
        return await step(wait_until)
    except PlaywrightTimeoutError:
        if wait_until != "load":
            raise
        (logger or LOGGER).debug(
            "%s timed out waiting for load, retrying with %s", what, FALLBACK_STATE
        )
        return await step(FALLBACK_STATE)


async def safe_goto(
    page: Page,
    url: str,
    *,
    wait_until: str = "load",
    timeout_ms: int = 20000,
    logger: Optional[logging.Logger] = None,
):
    return await _with_load_fallback(
        lambda state: page.goto(url, wait_until=state, timeout=timeout_ms),
        wait_until,
        f"Navigation to {url}",
        logger,
    )


async def wait_for_page_ready(
    page: Page,
    *,
    wait_until: str = "load",
    timeout_ms: int = 20000,
    logger: Optional[logging.Logger] = None,
) -> None:
    await _with_load_fallback(
        lambda state: page.wait_for_load_state(state, timeout=timeout_ms),
        wait_until,
        "Page readiness",
        logger,
    )


__all__ = ["safe_goto", "wait_for_page_ready"]
