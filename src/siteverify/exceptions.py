"""siteverify exception hierarchy.

Per-target errors (provisioning, navigation, missing elements, step
failures) are caught by the run orchestrator and turned into failed
``VerificationResult`` records. ``ConfigurationError`` and
``TargetFileError`` are the only errors that abort a whole run, and they
are raised before any target starts.
"""

from __future__ import annotations


class SiteVerifyError(Exception):
    """Base exception for all siteverify errors."""


class ConfigurationError(SiteVerifyError):
    """Raised at startup when required settings (e.g. provider credentials) are missing."""


class TargetFileError(SiteVerifyError):
    """Raised when a targets file cannot be read or fails validation.

    Attributes:
        path: The offending file.
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid targets file {path}: {reason}")


class ProvisioningError(SiteVerifyError):
    """Raised when a remote browser session cannot be created or connected."""


class NavigationError(SiteVerifyError):
    """Raised when a page does not settle within its navigation budget.

    Attributes:
        url: The URL being navigated to.
        reason: Short human-readable cause (``"timed out after 30000ms"``,
            ``"name not resolved"``...).
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}")


class ElementNotFoundError(SiteVerifyError):
    """Raised when a required selector never appears within its budget."""

    def __init__(self, selector: str, timeout_ms: int | None = None) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        if timeout_ms is None:
            super().__init__(f"Element not found: {selector}")
        else:
            super().__init__(f"Element not found within {timeout_ms}ms: {selector}")


class StepError(SiteVerifyError):
    """Raised when an interaction step fails for a reason other than navigation or lookup.

    Attributes:
        index: One-based position of the step in its target's sequence.
        action: The step's action name.
    """

    def __init__(self, index: int, action: str, reason: str) -> None:
        self.index = index
        self.action = action
        self.reason = reason
        super().__init__(f"Step {index} ({action}) failed: {reason}")


class ArbiterError(SiteVerifyError):
    """Raised inside the outcome arbiter when a signal race itself throws.

    Never escapes ``OutcomeArbiter.resolve``; it is downgraded to an
    inconclusive verdict.
    """


class ArtifactCaptureError(SiteVerifyError):
    """Raised when a checkpoint screenshot cannot be written."""
