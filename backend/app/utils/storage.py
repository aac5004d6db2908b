"""Filesystem helpers and the per-session chunk staging area."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


COPY_BUFFER_SIZE = 1024 * 1024


def ensure_dir_exists(path: Path) -> Path:
    """Ensure that the given directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_quietly(path: Path) -> None:
    """Delete a file or directory tree, logging instead of raising on failure."""
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove %s: %s", path, exc)


class ChunkStagingArea:
    """Local directories holding raw chunks until the worker merges them.

    Each upload session owns ``<root>/<session id>/`` and each received chunk
    is stored as ``<index>.part`` inside it, so parallel writes of different
    indices never touch the same file.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def session_dir(self, session_id: str) -> Path:
        return self.root / session_id

    def create(self, session_id: str) -> Path:
        return ensure_dir_exists(self.session_dir(session_id))

    def chunk_path(self, session_id: str, index: int) -> Path:
        return self.session_dir(session_id) / f"{index}.part"

    def write_chunk(self, session_id: str, index: int, data: bytes) -> Path:
        """Write (or overwrite) the chunk at ``index``.

        The bytes land in a temporary sibling first and are renamed into
        place, so a reader never observes a half-written ``.part`` file.
        """
        target = self.chunk_path(session_id, index)
        ensure_dir_exists(target.parent)
        tmp = target.with_name(f"{target.name}.{uuid.uuid4().hex}.tmp")
        tmp.write_bytes(data)
        tmp.replace(target)
        return target

    def missing_chunks(self, session_id: str, total_chunks: int) -> list[int]:
        """Indices in ``[0, total_chunks)`` with no chunk file on disk."""
        return [i for i in range(total_chunks) if not self.chunk_path(session_id, i).is_file()]

    def merge(self, session_id: str, total_chunks: int, destination: Path) -> Path:
        """Concatenate chunks ``0..total_chunks-1`` in index order into ``destination``."""
        with open(destination, "wb") as out:
            for index in range(total_chunks):
                with open(self.chunk_path(session_id, index), "rb") as part:
                    shutil.copyfileobj(part, out, COPY_BUFFER_SIZE)
        logger.debug("Merged %d chunks of session %s into %s", total_chunks, session_id, destination)
        return destination

    def discard(self, session_id: str) -> None:
        remove_quietly(self.session_dir(session_id))
