"""
BillArchive -- filesystem storage for rendered delivery bills.

Filenames are whitelisted (letters, digits, ``_`` and ``-`` followed by
``.pdf``) and the resolved path must stay strictly inside the archive
root.  Anything else raises UnsafeBillPathError before the filesystem is
touched.
"""

from __future__ import annotations

import re
from pathlib import Path

from produce_kernel.exceptions import UnsafeBillPathError
from produce_kernel.logging_config import get_logger

logger = get_logger("batch.bill_archive")

_FILENAME_RE = re.compile(r"^[A-Za-z0-9_-]+\.pdf$")


class BillArchive:
    def __init__(self, root: Path | str):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def safe_path(self, filename: str) -> Path:
        """Absolute path for ``filename`` inside the archive root."""
        if not filename or not isinstance(filename, str):
            raise UnsafeBillPathError(filename)
        if not _FILENAME_RE.fullmatch(filename):
            raise UnsafeBillPathError(filename)

        root = self._root.resolve()
        path = (root / filename).resolve()
        if path == root or root not in path.parents:
            raise UnsafeBillPathError(filename)
        return path

    def save(self, filename: str, data: bytes) -> Path:
        path = self.safe_path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("bill_stored", extra={"bill_file": filename, "size": len(data)})
        return path

    def read(self, filename: str) -> bytes:
        """
        Raises:
            UnsafeBillPathError: Filename rejected.
            FileNotFoundError: No such bill.
        """
        return self.safe_path(filename).read_bytes()

    def exists(self, filename: str) -> bool:
        return self.safe_path(filename).is_file()
