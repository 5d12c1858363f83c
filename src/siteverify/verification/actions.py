"""Registry of named custom actions for ``custom`` interaction steps.

Targets stay pure data: a site that needs a bespoke pre-login step names a
registered action (``{"action": "custom", "name": "dismiss_overlays"}``)
instead of carrying code. Register new actions with the decorator::

    @register_action("accept_terms")
    async def accept_terms(page, step):
        await page.check("#terms")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from playwright.async_api import TimeoutError as PlaywrightTimeout

from siteverify.exceptions import ElementNotFoundError
from siteverify.models.target import InteractionStep

logger = logging.getLogger(__name__)

CustomAction = Callable[[object, InteractionStep], Awaitable[None]]

_REGISTRY: dict[str, CustomAction] = {}

# Common cookie / consent banner buttons.
DEFAULT_OVERLAY_SELECTORS: tuple[str, ...] = (
    "#onetrust-accept-btn-handler",
    "button[id*='accept']",
    "button[aria-label*='Accept']",
    "button[aria-label*='Close']",
    ".cookie-banner button",
)


def register_action(name: str) -> Callable[[CustomAction], CustomAction]:
    """Decorator registering *func* under *name*; re-registration replaces."""

    def decorator(func: CustomAction) -> CustomAction:
        if name in _REGISTRY:
            logger.debug("Replacing custom action %s", name)
        _REGISTRY[name] = func
        return func

    return decorator


def get_action(name: str) -> CustomAction | None:
    return _REGISTRY.get(name)


def registered_actions() -> list[str]:
    return sorted(_REGISTRY)


@register_action("dismiss_overlays")
async def dismiss_overlays(page, step: InteractionStep) -> None:
    """Click the first present overlay-close button, if any."""
    for selector in step.selectors or DEFAULT_OVERLAY_SELECTORS:
        handle = await page.query_selector(selector)
        if handle is None:
            continue
        await handle.click(timeout=step.timeout_ms)
        logger.info("Dismissed overlay via %s", selector)
        return
    logger.debug("No overlay to dismiss")


@register_action("wait_for_selector")
async def wait_for_selector(page, step: InteractionStep) -> None:
    """Block until ``step.selector`` is visible."""
    try:
        await page.wait_for_selector(step.selector, state="visible", timeout=step.timeout_ms)
    except PlaywrightTimeout as exc:
        raise ElementNotFoundError(step.selector, step.timeout_ms) from exc
