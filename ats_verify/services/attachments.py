from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    """Strip directories and characters that do not belong in a stored file name."""

    name = Path(filename or "").name
    name = _UNSAFE_CHARS_RE.sub("_", name).strip("._")
    return name or "attachment"


@dataclass(slots=True)
class AttachmentStorage:
    """Writes uploaded ticket files to disk and returns their public URLs."""

    root_dir: Path
    base_url: str

    async def save(self, ticket_id: str, filename: str, content: bytes) -> str:
        stored_name = f"{uuid4().hex}_{safe_filename(filename)}"
        target = self.root_dir / ticket_id / stored_name
        await asyncio.to_thread(self._write, target, content)
        logger.debug("Stored attachment %s (%d bytes)", target, len(content))
        return f"{self.base_url.rstrip('/')}/{ticket_id}/{stored_name}"

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
