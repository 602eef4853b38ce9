"""Source reader for a checkout on the local filesystem."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalSourceReader:
    """Reads files from a working tree.

    The tree is assumed to be checked out at the revision under test, so the
    ``revision`` argument is accepted and ignored.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    async def read_file(self, path: str, revision: str) -> str | None:
        """Read a file relative to the checkout root."""
        candidate = (self.root / path.lstrip("/")).resolve()

        # Paths escaping the checkout are treated as missing
        if not candidate.is_relative_to(self.root):
            logger.debug("local_path_outside_root: path=%s", path)
            return None
        if not candidate.is_file():
            return None

        try:
            return candidate.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("local_read_failed: path=%s, error=%s", path, str(e))
            return None
