"""Visual snapshot providers.

A snapshot is a base64-encoded image of the rendered canvas. Capture is
best-effort: providers return None when there is nothing to show.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class SnapshotProvider(Protocol):
    async def capture(self) -> str | None: ...


class FileSnapshotProvider:
    """Reads the image an external renderer keeps writing to ``path``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def capture(self) -> str | None:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            logger.debug("No snapshot at %s", self.path)
            return None
        if not data:
            return None
        return base64.b64encode(data).decode("ascii")


__all__ = ["FileSnapshotProvider", "SnapshotProvider"]
