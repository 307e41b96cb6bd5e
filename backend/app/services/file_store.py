from __future__ import annotations
import os
import uuid
import logging
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

logger = logging.getLogger(__name__)

# Default: backend/var/uploads (override with env UPLOAD_DIR)
_DEFAULT_DIR = Path(__file__).resolve().parents[2] / "var" / "uploads"
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(_DEFAULT_DIR)))

class FileTooLargeError(Exception):
    def __init__(self, limit: int):
        super().__init__(f"file exceeds the {limit} byte limit")
        self.limit = limit

class LocalFileStore:
    """Attachment bytes on the local filesystem, addressed by a generated name."""

    def __init__(self, base_dir: Path | str = UPLOAD_DIR):
        self.base_dir = Path(base_dir)

    def _ensure_dir(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path(self, stored_name: str) -> Path:
        # stored names are generated by save(); refuse anything that walks out of base_dir
        if Path(stored_name).name != stored_name:
            raise ValueError("Invalid file name")
        return self.base_dir / stored_name

    def save(self, stream: BinaryIO, original_name: str, max_size: Optional[int] = None) -> Tuple[str, int]:
        """Copy `stream` in chunks; a partial file is removed if the copy fails or passes max_size."""
        self._ensure_dir()
        ext = Path(original_name or "").suffix[:16]
        stored = f"file-{uuid.uuid4().hex}{ext}"
        fp = self.path(stored)
        size = 0
        try:
            with fp.open("wb") as fh:
                while True:
                    chunk = stream.read(1024 * 1024)
                    if not chunk:
                        break
                    size += len(chunk)
                    if max_size is not None and size > max_size:
                        raise FileTooLargeError(max_size)
                    fh.write(chunk)
        except Exception:
            fp.unlink(missing_ok=True)
            raise
        return stored, size

    def delete(self, stored_name: str) -> bool:
        fp = self.path(stored_name)
        try:
            fp.unlink()
            return True
        except FileNotFoundError:
            logger.warning("attachment not found on filesystem: %s", fp)
            return False

    def exists(self, stored_name: str) -> bool:
        return self.path(stored_name).is_file()
