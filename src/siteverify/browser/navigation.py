"""Page navigation with bounded waits and typed failures.

Wraps Playwright's ``page.goto`` / ``page.go_back`` / ``expect_navigation``
so every navigation either settles within its budget or raises
``NavigationError``. Network failures that retrying cannot fix (DNS,
refused connections, bad certificates) are reported with a short reason
instead of the raw driver message.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Literal

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeout

from siteverify.exceptions import NavigationError

logger = logging.getLogger(__name__)

# Playwright error substrings that indicate the page cannot be reached at all.
_NON_RETRYABLE_ERRORS: tuple[str, ...] = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_SSL_PROTOCOL_ERROR",
    "ERR_CERT_AUTHORITY_INVALID",
    "ERR_CERT_COMMON_NAME_INVALID",
    "ERR_ADDRESS_UNREACHABLE",
)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]


def _unreachable_reason(exc: PlaywrightError) -> str | None:
    error_msg = str(exc)
    for pattern in _NON_RETRYABLE_ERRORS:
        if pattern in error_msg:
            return pattern.replace("ERR_", "").replace("_", " ").lower()
    return None


async def goto(
    page: Page,
    url: str,
    *,
    timeout_ms: int = 60_000,
    wait_until: WaitUntil = "networkidle",
) -> Response | None:
    """Navigate to *url* and wait for the *wait_until* settle condition.

    Returns:
        The main-frame ``Response``, or ``None`` if the page produced none.

    Raises:
        NavigationError: On timeout or an unreachable host.
        PlaywrightError: For any other driver error.
    """
    logger.info("Navigating to %s...", url)
    logger.debug("goto %s (wait_until=%s, timeout=%dms)", url, wait_until, timeout_ms)
    try:
        return await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
    except PlaywrightTimeout as exc:
        raise NavigationError(url, f"timed out after {timeout_ms}ms waiting for {wait_until}") from exc
    except PlaywrightError as exc:
        reason = _unreachable_reason(exc)
        if reason is None:
            raise
        logger.warning("Navigation to %s failed (unreachable): %s", url, reason)
        raise NavigationError(url, reason) from exc


async def go_back(
    page: Page,
    *,
    timeout_ms: int = 30_000,
    wait_until: WaitUntil = "load",
) -> Response | None:
    """Navigate back in history.

    Raises:
        NavigationError: If the previous page does not settle in time.
    """
    try:
        return await page.go_back(wait_until=wait_until, timeout=timeout_ms)
    except PlaywrightTimeout as exc:
        raise NavigationError(page.url, f"go back timed out after {timeout_ms}ms") from exc


async def wait_for_document_complete(page: Page, *, timeout_ms: int = 10_000) -> None:
    """Block until ``document.readyState`` is ``complete``.

    Raises:
        NavigationError: If the document is still loading after *timeout_ms*.
    """
    try:
        await page.wait_for_function("() => document.readyState === 'complete'", timeout=timeout_ms)
    except PlaywrightTimeout as exc:
        raise NavigationError(page.url, f"document not complete after {timeout_ms}ms") from exc


async def trigger_with_navigation(
    page: Page,
    trigger: Callable[[], Awaitable[object]],
    *,
    timeout_ms: int = 10_000,
    wait_until: WaitUntil = "load",
    best_effort: bool = True,
) -> bool:
    """Run *trigger* while concurrently awaiting the navigation it may cause.

    *trigger* must not raise ``PlaywrightTimeout`` itself; callers convert
    their own lookup timeouts into ``ElementNotFoundError`` first so they
    are not mistaken for "no navigation happened".

    Args:
        page: Playwright page.
        trigger: Coroutine function performing the click / key press.
        timeout_ms: Budget for the navigation to settle.
        wait_until: Settle condition for the navigation.
        best_effort: When ``True`` a missing navigation is logged and
            swallowed, since some submissions update the page in place.

    Returns:
        ``True`` if a navigation settled, ``False`` if it timed out in
        best-effort mode.

    Raises:
        NavigationError: If no navigation settles and ``best_effort`` is ``False``.
    """
    try:
        async with page.expect_navigation(wait_until=wait_until, timeout=timeout_ms):
            await trigger()
    except PlaywrightTimeout as exc:
        if not best_effort:
            raise NavigationError(page.url, f"no navigation within {timeout_ms}ms") from exc
        logger.info("Navigation timeout - continuing anyway")
        return False
    return True
