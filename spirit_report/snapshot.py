"""Raster snapshot export, delegated to an external rendering collaborator."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from spirit_report.errors import SnapshotUnavailableError, UpstreamError
from spirit_report.models import AnalysisResult, Subject

logger = logging.getLogger("spirit_report")


class SnapshotRenderer(Protocol):
    async def render(self, subject: Subject, result: AnalysisResult) -> bytes:
        """Return PNG bytes of the rendered result panel."""
        ...


async def export_snapshot(
    renderer: Optional[SnapshotRenderer],
    subject: Subject,
    result: AnalysisResult,
) -> bytes:
    if renderer is None:
        raise SnapshotUnavailableError("Snapshot rendering is not configured")
    try:
        image = await renderer.render(subject, result)
    except Exception as e:
        logger.warning("Snapshot renderer failed error_type=%s error=%s", type(e).__name__, e)
        raise UpstreamError("Snapshot rendering failed") from e
    if not image:
        raise UpstreamError("Snapshot renderer returned no image")
    return bytes(image)
