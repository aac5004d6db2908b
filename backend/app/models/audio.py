"""SQLAlchemy models for chunked audio upload sessions."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String

from app.db.base import Base, utcnow

UPLOADING_TTL = timedelta(hours=24)
QUEUED_TTL = timedelta(days=7)
READY_TTL = timedelta(days=30)


class UploadStatus(str, Enum):
    """Lifecycle of an upload session. Only UPLOADING accepts chunk writes."""

    UPLOADING = "uploading"
    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class UploadSession(Base):
    """
    One chunked-upload attempt.

    ``total_chunks`` is fixed when the row is inserted and never recomputed.
    ``asset_id`` is written at most once, by the first successful completion.
    Rows past ``expires_at`` are treated as gone by the store.
    """

    __tablename__ = "audio_upload_sessions"
    __table_args__ = (
        Index("uploader_created_idx", "uploader_id", "created_at"),
        Index("status_updated_idx", "status", "updated_at"),
    )

    id = Column(String(36), primary_key=True, comment="Opaque, caller-visible upload id.")
    uploader_id = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    mime_type = Column(String(128), nullable=False, default="application/octet-stream")
    size_bytes = Column(BigInteger, nullable=False)
    chunk_size = Column(BigInteger, nullable=False)
    total_chunks = Column(Integer, nullable=False)
    status = Column(SAEnum(UploadStatus), nullable=False, default=UploadStatus.UPLOADING)
    asset_id = Column(String(36), nullable=True, unique=True)
    chunks_dir = Column(String(1024), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    def expected_chunk_size(self, index: int) -> int:
        """Byte length a chunk at ``index`` must have."""
        if index != self.total_chunks - 1:
            return self.chunk_size
        remaining = self.size_bytes - self.chunk_size * (self.total_chunks - 1)
        return remaining if remaining > 0 else self.chunk_size

    @property
    def status_str(self) -> str:
        return self.status.value if isinstance(self.status, UploadStatus) else str(self.status)


class UploadChunk(Base):
    """Membership row of a session's received-chunk set."""

    __tablename__ = "audio_upload_chunks"

    session_id = Column(String(36), ForeignKey("audio_upload_sessions.id"), primary_key=True)
    chunk_index = Column(Integer, primary_key=True, autoincrement=False)
    received_at = Column(DateTime, nullable=False, default=utcnow)
