"""Local storage for uploaded datasets and worker artifacts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from datagate.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
_DEFAULT_SUFFIX = ".csv"


@dataclass(slots=True, frozen=True)
class StoredFile:
    path: str
    original_name: str
    size_bytes: int


class FileStorage:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    async def save_upload(self, upload: UploadFile) -> StoredFile:
        original_name = Path(upload.filename or "").name or "upload"
        suffix = Path(original_name).suffix or _DEFAULT_SUFFIX
        self._root.mkdir(parents=True, exist_ok=True)
        target = self._root / f"{uuid4()}{suffix}"

        size = 0
        try:
            with target.open("wb") as handle:
                while chunk := await upload.read(_CHUNK_SIZE):
                    await run_in_threadpool(handle.write, chunk)
                    size += len(chunk)
        except Exception:
            # No partial uploads left behind.
            target.unlink(missing_ok=True)
            raise

        logger.info("files.stored path=%s size_bytes=%s", safe_log_identifier(target, prefix="file"), size)
        return StoredFile(path=str(target), original_name=original_name, size_bytes=size)

    @staticmethod
    def exists(path: str | None) -> bool:
        return bool(path) and Path(path).is_file()

    @staticmethod
    def remove(path: str | None) -> bool:
        """Best-effort delete; an already missing file is not an error."""
        if not path:
            return False
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning(
                "files.remove_failed path=%s reason=%s",
                safe_log_identifier(path, prefix="file"),
                type(exc).__name__,
            )
            return False
        return True
