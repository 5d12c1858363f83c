"""Outcome arbiter — race completion signals and settle on one verdict.

After the last interaction step a remote page may navigate, inject a
class, or simply stop showing a spinner. No single wait strategy covers
all of them, so the arbiter:

1. Starts a bounded ``wait_for_selector`` for the success signal and, when
   one is defined, for the failure signal, as concurrent tasks.
2. Returns as soon as either wait *resolves*. A wait that merely times out
   is not a winner; the race continues on whatever is still pending.
   Losers are abandoned rather than cancelled and their late outcome is
   discarded.
3. If nothing resolves within the budget, polls the success selector once
   without waiting: present → lower-confidence success, absent →
   inconclusive.
4. Converts any other error raised while racing or polling into an
   inconclusive verdict carrying the error text.
"""

from __future__ import annotations

import asyncio
import logging

from playwright.async_api import TimeoutError as PlaywrightTimeout

from siteverify.exceptions import ArbiterError
from siteverify.models.results import SignalRaceResult
from siteverify.models.target import CompletionSignal, SignalKind

logger = logging.getLogger(__name__)

# Slack on top of the per-signal timeout before the race itself gives up.
_RACE_GRACE_SEC = 1.0


def _as_signal(signal: CompletionSignal | str, kind: SignalKind) -> CompletionSignal:
    if isinstance(signal, CompletionSignal):
        return signal
    return CompletionSignal(kind=kind, selector=signal)


def _discard_outcome(task: asyncio.Task) -> None:
    """Done-callback for abandoned waits: retrieve and drop the result."""
    if not task.cancelled():
        task.exception()


class OutcomeArbiter:
    """Resolves a single ``SignalRaceResult`` from racing page signals."""

    async def resolve(
        self,
        page,
        success: CompletionSignal | str,
        failure: CompletionSignal | str | None = None,
        timeout_ms: int = 10_000,
        *,
        label: str = "Verification",
    ) -> SignalRaceResult:
        """Race *success* against *failure* for up to *timeout_ms*.

        Args:
            page: Playwright page to observe.
            success: Signal (or bare selector) indicating success.
            failure: Optional signal (or bare selector) indicating failure.
            timeout_ms: Budget for each signal wait.
            label: Prefix for verdict messages (``"Login"`` → ``"Login successful"``).

        Returns:
            Never raises; errors become ``inconclusive`` verdicts.
        """
        success_sig = _as_signal(success, SignalKind.SUCCESS)
        failure_sig = _as_signal(failure, SignalKind.FAILURE) if failure else None

        logger.info("Checking %s result...", label.lower())
        try:
            verdict = await self._race(page, success_sig, failure_sig, timeout_ms, label)
            if verdict is not None:
                return verdict
            return await self._poll(page, success_sig, label)
        except Exception as exc:
            err = ArbiterError(f"Error checking {label.lower()} status: {exc}")
            logger.warning("%s", err)
            return SignalRaceResult.inconclusive(str(err))

    async def _race(
        self,
        page,
        success: CompletionSignal,
        failure: CompletionSignal | None,
        timeout_ms: int,
        label: str,
    ) -> SignalRaceResult | None:
        """Return the first resolved signal's verdict, or ``None`` if all timed out."""
        waits: dict[asyncio.Task, SignalKind] = {
            asyncio.ensure_future(self._wait(page, success, timeout_ms)): SignalKind.SUCCESS,
        }
        if failure is not None:
            waits[asyncio.ensure_future(self._wait(page, failure, timeout_ms))] = SignalKind.FAILURE

        pending = set(waits)
        try:
            while pending:
                done, pending = await asyncio.wait(
                    pending,
                    timeout=timeout_ms / 1000 + _RACE_GRACE_SEC,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if not done:
                    logger.debug("Signal race budget exhausted with %d wait(s) pending", len(pending))
                    return None
                # Insertion order: success wins a same-tick tie.
                for task in (t for t in waits if t in done):
                    exc = task.exception()
                    if exc is None:
                        return self._verdict(waits[task], label)
                    if not isinstance(exc, PlaywrightTimeout):
                        raise exc
            logger.debug("No completion signal within %dms", timeout_ms)
            return None
        finally:
            for task in waits:
                task.add_done_callback(_discard_outcome)

    @staticmethod
    async def _wait(page, signal: CompletionSignal, timeout_ms: int):
        return await page.wait_for_selector(signal.selector, state=signal.state, timeout=timeout_ms)

    @staticmethod
    def _verdict(kind: SignalKind, label: str) -> SignalRaceResult:
        if kind == SignalKind.SUCCESS:
            return SignalRaceResult.success(f"{label} successful")
        return SignalRaceResult.failure(f"{label} failed - failure indicator detected")

    @staticmethod
    async def _poll(page, success: CompletionSignal, label: str) -> SignalRaceResult:
        """Single non-waiting existence check after the race came up empty."""
        if await page.query_selector(success.selector) is not None:
            return SignalRaceResult.success(f"{label} appears successful", fallback=True)
        return SignalRaceResult.inconclusive(
            f"{label} status unclear - could not find success indicator",
            fallback=True,
        )
