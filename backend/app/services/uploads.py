"""Chunked upload sessions: create, accept chunks, complete.

The manager validates every request against the persisted session, writes
chunk bytes to the staging area and hands completed uploads over to the
transcode queue by creating a QUEUED :class:`~app.models.job.AudioAsset`.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Optional

from app.db.base import utcnow
from app.db.stores import AssetStore, UploadSessionStore
from app.exceptions import (
    BadRequest,
    Conflict,
    Forbidden,
    NotFound,
    PayloadTooLarge,
    UnsupportedMediaType,
)
from app.models.audio import UPLOADING_TTL, UploadSession, UploadStatus
from app.models.job import AssetStatus, AudioAsset
from app.utils.roles import CurrentUser
from app.utils.storage import ChunkStagingArea

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
OCTET_STREAM = "application/octet-stream"
MAX_REPORTED_MISSING = 10


@dataclass(frozen=True)
class CreatedUpload:
    upload_id: str
    chunk_size: int
    total_chunks: int
    max_bytes: int


@dataclass(frozen=True)
class ChunkReceipt:
    upload_id: str
    index: int
    received_chunks: int
    total_chunks: int


@dataclass(frozen=True)
class CompletedUpload:
    asset_id: str
    status: str


class UploadSessionManager:
    def __init__(
        self,
        sessions: UploadSessionStore,
        assets: AssetStore,
        staging: ChunkStagingArea,
        max_bytes: int,
        chunk_size: int,
    ) -> None:
        self.sessions = sessions
        self.assets = assets
        self.staging = staging
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size

    def create_session(
        self,
        user: CurrentUser,
        file_name: str,
        size_bytes: int,
        mime_type: Optional[str] = None,
    ) -> CreatedUpload:
        if not user.is_publisher:
            raise Forbidden("only publishers can upload audio")
        if size_bytes > self.max_bytes:
            raise PayloadTooLarge(f"file too large, max allowed is {self.max_bytes} bytes")

        upload_id = str(uuid.uuid4())
        total_chunks = max(1, math.ceil(size_bytes / self.chunk_size))
        chunks_dir = self.staging.create(upload_id)
        now = utcnow()

        self.sessions.insert(
            UploadSession(
                id=upload_id,
                uploader_id=user.user_id,
                file_name=file_name,
                mime_type=mime_type or DEFAULT_MIME_TYPE,
                size_bytes=size_bytes,
                chunk_size=self.chunk_size,
                total_chunks=total_chunks,
                status=UploadStatus.UPLOADING,
                chunks_dir=str(chunks_dir),
                created_at=now,
                updated_at=now,
                expires_at=now + UPLOADING_TTL,
            )
        )
        logger.info(
            "Upload session %s created by %s: file=%r size=%d chunks=%d",
            upload_id,
            user.user_id,
            file_name,
            size_bytes,
            total_chunks,
        )
        return CreatedUpload(upload_id, self.chunk_size, total_chunks, self.max_bytes)

    def _owned_session(self, user: CurrentUser, upload_id: str) -> UploadSession:
        if not user.is_publisher:
            raise Forbidden("only publishers can upload audio")
        session = self.sessions.get(upload_id)
        if session is None:
            raise NotFound("upload session not found")
        if session.uploader_id != user.user_id:
            raise Forbidden("upload session belongs to another user")
        return session

    def validate_chunk_target(
        self,
        user: CurrentUser,
        upload_id: str,
        index: int,
        content_type: Optional[str] = None,
    ) -> UploadSession:
        """Every chunk check that does not need the body.

        Run before the request body is read so refused callers cannot make
        the server buffer their payload.
        """
        session = self._owned_session(user, upload_id)
        if session.status != UploadStatus.UPLOADING:
            raise Conflict("upload session is not accepting chunks")
        if index < 0 or index >= session.total_chunks:
            raise BadRequest("chunk index out of bounds")
        if content_type and OCTET_STREAM not in content_type.lower():
            raise UnsupportedMediaType("content-type must be application/octet-stream")
        return session

    def accept_chunk(
        self,
        user: CurrentUser,
        upload_id: str,
        index: int,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> ChunkReceipt:
        session = self.validate_chunk_target(user, upload_id, index, content_type)
        if not data:
            raise BadRequest("chunk body is empty")
        expected = session.expected_chunk_size(index)
        if len(data) != expected:
            raise BadRequest(f"invalid chunk size for index {index}, expected {expected} bytes")

        self.staging.write_chunk(session.id, index, data)
        received = self.sessions.add_received_chunk(session.id, index)
        logger.debug("Session %s: chunk %d stored (%d/%d)", session.id, index, received, session.total_chunks)
        return ChunkReceipt(session.id, index, received, session.total_chunks)

    def complete(self, user: CurrentUser, upload_id: str) -> CompletedUpload:
        session = self._owned_session(user, upload_id)

        existing = self._existing_asset(session)
        if existing is not None:
            return existing

        if session.status != UploadStatus.UPLOADING:
            raise Conflict("upload session cannot be completed in current state")

        # Trust the disk, not the received set: a crash may sit between the two.
        missing = self.staging.missing_chunks(session.id, session.total_chunks)
        if missing:
            listed = ", ".join(str(i) for i in missing[:MAX_REPORTED_MISSING])
            raise BadRequest(f"missing uploaded chunks ({listed})")

        asset = AudioAsset(
            id=str(uuid.uuid4()),
            upload_id=session.id,
            uploader_id=session.uploader_id,
            original_file_name=session.file_name,
            original_mime_type=session.mime_type,
            size_bytes=session.size_bytes,
            status=AssetStatus.QUEUED,
        )
        if not self.sessions.link_asset(session.id, asset):
            # A concurrent completion got there first.
            refreshed = self.sessions.get(session.id, include_expired=True)
            existing = self._existing_asset(refreshed) if refreshed else None
            if existing is not None:
                return existing
            raise Conflict("upload session cannot be completed in current state")

        logger.info("Upload session %s completed; asset %s queued", session.id, asset.id)
        return CompletedUpload(asset.id, AssetStatus.QUEUED.value)

    def _existing_asset(self, session: UploadSession) -> Optional[CompletedUpload]:
        if not session.asset_id:
            return None
        asset = self.assets.get(session.asset_id)
        if asset is None:
            return None
        return CompletedUpload(asset.id, asset.status_str)
