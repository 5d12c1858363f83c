"""Interaction sequencer — run a target's steps in order against a page.

Each step is dispatched to a Playwright call bounded by the step's own
``timeout_ms``. The first failing step aborts the remaining sequence and
the error propagates to the run orchestrator, which turns it into a failed
result for that target only.

Features:

* **Human pacing**: a random pause separates consecutive steps.
* **Checkpoints**: ``submit`` captures a ``before-submit`` screenshot and
  ``checkpoint`` steps capture on demand.
* **Template resolution**: ``{credentials.*}`` and ``{env.*}`` placeholders
  in ``fill`` values are expanded from the target; secrets never reach
  the log.
* **Search flow**: a composite query, inspect results, open first result,
  read (scroll) and go back sequence.
"""

from __future__ import annotations

import logging
import os
import re

from playwright.async_api import TimeoutError as PlaywrightTimeout

from siteverify.browser.artifacts import ArtifactCapture
from siteverify.browser.navigation import go_back, goto, trigger_with_navigation, wait_for_document_complete
from siteverify.browser.pacing import HumanPacer
from siteverify.exceptions import ElementNotFoundError, SiteVerifyError, StepError
from siteverify.models.target import InteractionStep, StepType, TargetSpec
from siteverify.verification.actions import get_action

logger = logging.getLogger(__name__)

# Regex for template variables: {credentials.username}, {env.SITE_PASSWORD}, etc.
_TEMPLATE_RE = re.compile(r"\{(\w+(?:\.\w+)*)\}")
_SECRET_KEYS = ("credentials.password",)

DEFAULT_SEARCH_INPUTS: tuple[str, ...] = ('textarea[name="q"]', 'input[name="q"]')

# Search-flow pauses, (min_ms, max_ms)
_AFTER_TYPING = (800, 1500)
_AFTER_RESULTS = (2000, 3000)
_READING = (3000, 5000)
_BETWEEN_SCROLLS = (1000, 2000)
_AFTER_BACK = (2000, 3000)


def resolve_template(template: str, target: TargetSpec) -> str:
    """Resolve template variables in a step value.

    Supported namespaces:

    * ``{credentials.username}`` / ``{credentials.password}`` — from
      ``target.credentials``
    * ``{env.NAME}`` — the ``NAME`` environment variable

    Unresolved placeholders are left as-is and logged as warnings.
    """
    if "{" not in template:
        return template

    creds = target.credentials

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)

        if key == "credentials.username" and creds is not None:
            return creds.username
        if key == "credentials.password" and creds is not None:
            return creds.password.get_secret_value()

        if key.startswith("env."):
            value = os.environ.get(key[len("env."):])
            if value is not None:
                return value

        logger.warning("Unresolved template variable: %s", key)
        return match.group(0)

    return _TEMPLATE_RE.sub(_replace, template)


def _display_value(template: str) -> str:
    """What to log for a typed value: secrets and env lookups are masked."""
    if any(f"{{{k}}}" in template for k in _SECRET_KEYS) or "{env." in template:
        return "********"
    return template


class InteractionSequencer:
    """Executes a target's interaction steps sequentially.

    Args:
        artifacts: Checkpoint capture used by ``submit``, ``checkpoint``
            and the search flow.
        pacer: Human-pacing controller.
        step_pause_ms: ``(min, max)`` pause between consecutive steps.
        typing_delay_ms: Per-keystroke delay when typing.
    """

    def __init__(
        self,
        artifacts: ArtifactCapture,
        pacer: HumanPacer,
        *,
        step_pause_ms: tuple[int, int] = (800, 1500),
        typing_delay_ms: int = 100,
    ) -> None:
        self._artifacts = artifacts
        self._pacer = pacer
        self._step_pause = step_pause_ms
        self._typing_delay = typing_delay_ms

    async def run(self, page, target: TargetSpec) -> None:
        """Run every step of *target* in order.

        Raises:
            NavigationError: A navigation did not settle in time.
            ElementNotFoundError: A required selector never appeared.
            StepError: Any other step failure (wrapped driver errors,
                unknown custom actions).
        """
        steps = target.steps
        for idx, step in enumerate(steps, 1):
            desc = f" ({step.description})" if step.description else ""
            logger.info("%s: step %d/%d %s%s", target.name, idx, len(steps), step.action.value, desc)
            try:
                await self._dispatch(idx, page, target, step)
            except SiteVerifyError:
                raise
            except Exception as exc:
                raise StepError(idx, step.action.value, str(exc)) from exc

            if idx < len(steps):
                await self._pacer.wait(*self._step_pause)

    # ------------------------------------------------------------------
    # Step dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, index: int, page, target: TargetSpec, step: InteractionStep) -> None:
        action = step.action

        if action == StepType.NAVIGATE:
            await goto(page, step.url, timeout_ms=step.timeout_ms, wait_until=step.wait_until)
            return

        if action == StepType.FILL:
            await self._wait_for(page, step.selector, step.timeout_ms)
            value = resolve_template(step.value, target)
            await self._type_into(page, step.selector, value, step.timeout_ms)
            logger.info("Filled %s with %s", step.selector, _display_value(step.value))
            return

        if action == StepType.CLICK:
            await self._wait_for(page, step.selector, step.timeout_ms)
            await self._click(page, step.selector, step.timeout_ms)
            return

        if action == StepType.PRESS:
            await page.keyboard.press(step.key)
            return

        if action == StepType.SUBMIT:
            await self._submit(page, target, step)
            return

        if action == StepType.CHECKPOINT:
            await self._artifacts.capture_quietly(page, f"{target.slug}-{step.name}")
            return

        if action == StepType.PAUSE:
            await self._pacer.wait(step.min_ms, step.max_ms)
            return

        if action == StepType.SCROLL:
            await page.evaluate("(px) => window.scrollBy(0, px)", step.pixels)
            return

        if action == StepType.CUSTOM:
            custom = get_action(step.name)
            if custom is None:
                raise StepError(index, action.value, f"unknown custom action {step.name!r}")
            await custom(page, step)
            return

        if action == StepType.SEARCH_FLOW:
            await self._search_flow(page, target, step)
            return

        raise StepError(index, str(action), "unsupported action")

    async def _submit(self, page, target: TargetSpec, step: InteractionStep) -> None:
        await self._artifacts.capture_quietly(page, f"{target.slug}-before-submit")

        if step.selector:
            await self._wait_for(page, step.selector, step.timeout_ms)

            async def _trigger() -> None:
                await self._click(page, step.selector, step.timeout_ms)
        else:

            async def _trigger() -> None:
                await page.keyboard.press(step.key)

        logger.info("Submitting form...")
        await trigger_with_navigation(
            page,
            _trigger,
            timeout_ms=step.navigation_timeout_ms,
            wait_until=step.wait_until,
            best_effort=True,
        )

    # ------------------------------------------------------------------
    # Composite search flow
    # ------------------------------------------------------------------

    async def _search_flow(self, page, target: TargetSpec, step: InteractionStep) -> None:
        """Query, inspect results, open the first one, read it, and go back.

        An ``error`` checkpoint is captured before any failure propagates.
        """
        logger.info("Starting search flow on %s", step.url)
        try:
            await self._search_flow_steps(page, target, step)
        except Exception as exc:
            logger.error("Search flow failed: %s", exc)
            await self._artifacts.capture_quietly(page, f"{target.slug}-search-error")
            raise

    async def _search_flow_steps(self, page, target: TargetSpec, step: InteractionStep) -> None:
        slug = target.slug
        await goto(page, step.url, timeout_ms=step.timeout_ms, wait_until=step.wait_until)

        candidates = step.selectors or DEFAULT_SEARCH_INPUTS
        input_selector = await self._first_present(page, candidates)
        if input_selector is None:
            raise ElementNotFoundError(" or ".join(candidates))

        logger.info('Performing search for: "%s"', step.query)
        await self._type_into(page, input_selector, step.query, step.timeout_ms)
        await self._pacer.wait(*_AFTER_TYPING)
        await self._artifacts.capture_quietly(page, f"{slug}-search-query")

        logger.info("Pressing %s to search...", step.key)
        await trigger_with_navigation(
            page,
            lambda: page.keyboard.press(step.key),
            timeout_ms=step.navigation_timeout_ms,
            wait_until="load",
        )
        await wait_for_document_complete(page, timeout_ms=step.navigation_timeout_ms)
        await self._pacer.wait(*_AFTER_RESULTS)
        await self._artifacts.capture_quietly(page, f"{slug}-search-results")

        titles = await page.evaluate(
            "([sel, n]) => Array.from(document.querySelectorAll(sel)).slice(0, n).map(e => e.textContent)",
            [step.result_selector, step.max_results],
        )
        logger.info("Top search results:")
        for i, title in enumerate(titles, 1):
            if title:
                logger.info("%d. %s", i, title.strip())

        link = await page.query_selector(step.link_selector)
        if link is None:
            logger.info("No search result link found to click")
            return

        logger.info("Clicking on first search result...")

        async def _open_result() -> None:
            try:
                await link.click(timeout=step.timeout_ms)
            except PlaywrightTimeout as exc:
                raise ElementNotFoundError(step.link_selector, step.timeout_ms) from exc

        await trigger_with_navigation(
            page,
            _open_result,
            timeout_ms=step.timeout_ms,
            wait_until="load",
            best_effort=False,
        )
        await self._pacer.wait(*_READING)

        logger.info('Landed on page: "%s"', await page.title())
        logger.info("URL: %s", page.url)
        await self._artifacts.capture_quietly(page, f"{slug}-search-result-page")

        logger.info("Scrolling down page...")
        for i in range(step.scroll_count):
            await page.evaluate("(px) => window.scrollBy(0, px)", step.pixels)
            await self._pacer.wait(*(_BETWEEN_SCROLLS if i < step.scroll_count - 1 else _READING))

        logger.info("Going back to search results...")
        await go_back(page, timeout_ms=step.timeout_ms)
        await self._pacer.wait(*_AFTER_BACK)
        logger.info("Search flow completed")

    # ------------------------------------------------------------------
    # Driver helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _wait_for(page, selector: str, timeout_ms: int) -> None:
        try:
            await page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeout as exc:
            raise ElementNotFoundError(selector, timeout_ms) from exc

    @staticmethod
    async def _click(page, selector: str, timeout_ms: int) -> None:
        try:
            await page.click(selector, timeout=timeout_ms)
        except PlaywrightTimeout as exc:
            raise ElementNotFoundError(selector, timeout_ms) from exc

    @staticmethod
    async def _first_present(page, selectors: tuple[str, ...]) -> str | None:
        """Return the first of *selectors* currently in the DOM (no waiting)."""
        for selector in selectors:
            if await page.query_selector(selector) is not None:
                return selector
        return None

    async def _type_into(self, page, selector: str, value: str, timeout_ms: int) -> None:
        """Clear the field, then type *value* key by key."""
        field = page.locator(selector)
        await field.fill("", timeout=timeout_ms)
        await field.press_sequentially(value, delay=self._typing_delay, timeout=timeout_ms)
