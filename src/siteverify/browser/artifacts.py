"""Checkpoint screenshots with collision-free timestamped filenames."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from siteverify.exceptions import ArtifactCaptureError
from siteverify.models.results import ArtifactRef
from siteverify.models.target import slugify

logger = logging.getLogger(__name__)


def _format_timestamp(instant: datetime) -> str:
    """ISO-8601 instant made filename-safe (``2024-05-01T10-02-03-123456Z``)."""
    return instant.strftime("%Y-%m-%dT%H:%M:%S.%fZ").replace(":", "-").replace(".", "-")


class ArtifactCapture:
    """Writes page screenshots as ``{name}-{timestamp}.png`` under *output_dir*.

    Timestamps are strictly increasing for the lifetime of the instance, so
    two captures with the same logical name never share a filename.

    Args:
        output_dir: Destination directory, created on first capture.
        full_page: Capture the full scrollable page instead of the viewport.
    """

    def __init__(self, output_dir: Path | str, *, full_page: bool = True) -> None:
        self.output_dir = Path(output_dir)
        self.full_page = full_page
        self._last_instant: datetime | None = None
        self.captured: list[ArtifactRef] = []

    def _next_instant(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_instant is not None and now <= self._last_instant:
            now = self._last_instant + timedelta(microseconds=1)
        self._last_instant = now
        return now

    def build_path(self, logical_name: str) -> tuple[Path, datetime]:
        """Reserve a unique artifact path for *logical_name*."""
        instant = self._next_instant()
        filename = f"{slugify(logical_name)}-{_format_timestamp(instant)}.png"
        return self.output_dir / filename, instant

    async def capture(self, page, logical_name: str) -> ArtifactRef:
        """Screenshot *page* and return a reference to the stored file.

        Raises:
            ArtifactCaptureError: If the directory cannot be created or the
                driver fails to take the screenshot.
        """
        path, instant = self.build_path(logical_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=self.full_page)
        except Exception as exc:
            raise ArtifactCaptureError(f"Could not capture {logical_name!r}: {exc}") from exc

        ref = ArtifactRef(path=str(path), name=logical_name, captured_at=instant)
        self.captured.append(ref)
        logger.info("Screenshot saved to: %s", path)
        return ref

    async def capture_quietly(self, page, logical_name: str) -> ArtifactRef | None:
        """Error-path capture: log and return ``None`` instead of raising."""
        try:
            return await self.capture(page, logical_name)
        except Exception as exc:
            logger.error("Failed to take %s screenshot: %s", logical_name, exc)
            return None
