"""Content-addressed blob storage.

Bytes are written once per distinct SHA-256 digest under
``<root>/<first two hex chars>/<digest>``; an :class:`~app.models.blob.AudioBlob`
row maps each logical filename upload onto its digest.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from sqlalchemy.orm import sessionmaker

from app.models.blob import AudioBlob
from app.utils.storage import ensure_dir_exists, remove_quietly

logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 64 * 1024


class BlobStore:
    """Named streamed uploads and ranged streamed downloads."""

    def __init__(self, root: Path, session_factory: sessionmaker) -> None:
        self.root = Path(root)
        self.session_factory = session_factory

    def _object_path(self, digest: str) -> Path:
        return self.root / digest[:2] / digest

    def put_stream(
        self,
        filename: str,
        stream: BinaryIO,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None,
    ) -> AudioBlob:
        """Copy ``stream`` into the store and record it under ``filename``."""
        incoming = ensure_dir_exists(self.root / ".incoming") / uuid.uuid4().hex
        hasher = hashlib.sha256()
        length = 0
        try:
            with open(incoming, "wb") as out:
                while True:
                    block = stream.read(READ_BLOCK_SIZE)
                    if not block:
                        break
                    hasher.update(block)
                    out.write(block)
                    length += len(block)
            digest = hasher.hexdigest()
            target = self._object_path(digest)
            if target.exists():
                incoming.unlink()
            else:
                ensure_dir_exists(target.parent)
                incoming.replace(target)
        except Exception:
            remove_quietly(incoming)
            raise

        blob = AudioBlob(
            filename=filename,
            digest=digest,
            length=length,
            content_type=content_type,
            blob_metadata=metadata or {},
        )
        with self.session_factory() as db:
            db.add(blob)
            db.commit()
        logger.info("Stored blob %s (%d bytes, sha256=%s)", filename, length, digest)
        return blob

    def put_file(
        self,
        filename: str,
        source: Path,
        content_type: str = "application/octet-stream",
        metadata: Optional[dict] = None,
    ) -> AudioBlob:
        with open(source, "rb") as stream:
            return self.put_stream(filename, stream, content_type=content_type, metadata=metadata)

    def find_latest(self, filename: str) -> Optional[AudioBlob]:
        """Most recently uploaded blob stored under ``filename``."""
        with self.session_factory() as db:
            return (
                db.query(AudioBlob)
                .filter(AudioBlob.filename == filename)
                .order_by(AudioBlob.upload_date.desc(), AudioBlob.id.desc())
                .first()
            )

    def exists(self, blob: AudioBlob) -> bool:
        return self._object_path(blob.digest).is_file()

    def iter_range(self, blob: AudioBlob, start: int, end: int) -> Iterator[bytes]:
        """Yield bytes ``start..end`` (both inclusive) of ``blob``.

        The object file is opened before this returns, so a missing file
        raises :class:`FileNotFoundError` here rather than mid-response.
        """
        fh = open(self._object_path(blob.digest), "rb")
        fh.seek(start)
        return self._read_window(fh, end - start + 1)

    @staticmethod
    def _read_window(fh: BinaryIO, remaining: int) -> Iterator[bytes]:
        with fh:
            while remaining > 0:
                block = fh.read(min(READ_BLOCK_SIZE, remaining))
                if not block:
                    break
                remaining -= len(block)
                yield block
