"""Run orchestrator — verify targets one after another with isolated failures.

Targets run strictly sequentially, one live session at a time. Each
target gets its own session, released in a ``finally`` block whatever
happens. Any error is turned into a failed ``VerificationResult`` so the
loop always reaches the next target.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from siteverify.browser.artifacts import ArtifactCapture
from siteverify.browser.navigation import goto
from siteverify.browser.pacing import HumanPacer
from siteverify.browser.provisioner import SessionCapabilities, SessionProvisioner, build_provisioner
from siteverify.exceptions import ProvisioningError
from siteverify.models.results import ArtifactRef, VerificationResult
from siteverify.models.target import CheckKind, TargetSpec
from siteverify.settings.config import Settings
from siteverify.verification.arbiter import OutcomeArbiter
from siteverify.verification.sequencer import InteractionSequencer

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Drives provisioning, interaction, arbitration and cleanup per target.

    Args:
        provisioner: Source of browser sessions.
        sequencer: Runs each target's interaction steps.
        arbiter: Resolves the verdict after the steps.
        artifacts: Checkpoint capture (shared with the sequencer).
        pacer: Human-pacing controller for the pause between targets.
        capabilities: Flags every session is requested with.
        between_targets_ms: ``(min, max)`` pause between consecutive targets.
    """

    def __init__(
        self,
        provisioner: SessionProvisioner,
        sequencer: InteractionSequencer,
        arbiter: OutcomeArbiter,
        artifacts: ArtifactCapture,
        pacer: HumanPacer,
        *,
        capabilities: SessionCapabilities | None = None,
        between_targets_ms: tuple[int, int] = (3000, 6000),
    ) -> None:
        self._provisioner = provisioner
        self._sequencer = sequencer
        self._arbiter = arbiter
        self._artifacts = artifacts
        self._pacer = pacer
        self._capabilities = capabilities or SessionCapabilities()
        self._between_targets = between_targets_ms

    async def run_all(self, targets: Sequence[TargetSpec]) -> list[VerificationResult]:
        """Verify *targets* in order; exactly one result per target."""
        logger.info("Starting verification of %d target(s)...", len(targets))
        results: list[VerificationResult] = []

        for index, target in enumerate(targets):
            try:
                result = await self.run_target(target)
            except Exception as exc:
                logger.exception("Failed to verify %s", target.name)
                result = VerificationResult(
                    target=target.name,
                    success=False,
                    message=f"Error verifying {target.name}: {exc}",
                )
            results.append(result)

            if index < len(targets) - 1:
                await self._pacer.wait(*self._between_targets)

        passed = sum(1 for r in results if r.success)
        logger.info("Verification completed: %d/%d target(s) passed", passed, len(results))
        return results

    async def run_target(self, target: TargetSpec) -> VerificationResult:
        """Verify one target inside its own failure boundary."""
        started_at = datetime.now(timezone.utc)
        first_artifact = len(self._artifacts.captured)
        logger.info("Testing %s (%s)...", target.name, target.url)
        if target.description:
            logger.info("Description: %s", target.description)

        try:
            session = await self._provisioner.acquire(self._capabilities)
        except ProvisioningError as exc:
            logger.error("%s: %s", target.name, exc)
            return self._finish(
                target, False, f"Error provisioning session: {exc}", None, first_artifact, "", started_at,
            )

        page = None
        final_ref: ArtifactRef | None = None
        try:
            page = await session.open_page()
            await goto(
                page,
                target.url,
                timeout_ms=target.navigation_timeout_ms,
                wait_until=target.wait_until,
            )
            if target.check == CheckKind.REACHABILITY:
                logger.info("Page title: %s", await page.title())
                logger.info("Current URL: %s", page.url)
            await self._sequencer.run(page, target)

            verdict = await self._arbiter.resolve(
                page,
                target.success_signal,
                target.failure_signal,
                target.signal_timeout_ms,
                label=target.check.label,
            )
            await self._artifacts.capture_quietly(page, f"{target.slug}-{verdict.outcome.value}")
            final_ref = await self._artifacts.capture_quietly(page, f"{target.slug}-final")
            success, message = verdict.succeeded, verdict.message
        except Exception as exc:
            success = False
            message = f"Error verifying {target.check.label.lower()}: {exc}"
            logger.error("%s: %s", target.name, message)
            if page is not None:
                final_ref = await self._artifacts.capture_quietly(page, f"{target.slug}-error")
        finally:
            await session.close()

        return self._finish(
            target,
            success,
            message,
            final_ref.path if final_ref else None,
            first_artifact,
            session.inspect_url,
            started_at,
        )

    def _finish(
        self,
        target: TargetSpec,
        success: bool,
        message: str,
        artifact_path: str | None,
        first_artifact: int,
        session_url: str,
        started_at: datetime,
    ) -> VerificationResult:
        result = VerificationResult(
            target=target.name,
            success=success,
            message=message,
            artifact_path=artifact_path,
            artifacts=tuple(ref.path for ref in self._artifacts.captured[first_artifact:]),
            session_url=session_url,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        log = logger.info if success else logger.warning
        log("%s test for %s: %s - %s", target.check.label, target.name, "PASSED" if success else "FAILED", message)
        return result

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        local: bool = False,
        output_dir: Path | None = None,
    ) -> "RunOrchestrator":
        """Wire an orchestrator from resolved settings.

        Args:
            settings: Resolved siteverify settings.
            local: Force a local Chromium instead of the configured provider.
            output_dir: Override ``settings.artifacts.output_dir``.
        """
        pacing = settings.pacing
        pacer = HumanPacer()
        artifacts = ArtifactCapture(
            output_dir or settings.artifacts.output_dir,
            full_page=settings.artifacts.full_page,
        )
        sequencer = InteractionSequencer(
            artifacts,
            pacer,
            step_pause_ms=(pacing.step_min_ms, pacing.step_max_ms),
            typing_delay_ms=pacing.typing_delay_ms,
        )
        return cls(
            build_provisioner(settings, local=local),
            sequencer,
            OutcomeArbiter(),
            artifacts,
            pacer,
            capabilities=SessionCapabilities.from_settings(settings.session),
            between_targets_ms=(pacing.target_min_ms, pacing.target_max_ms),
        )
