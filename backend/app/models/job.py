"""SQLAlchemy model & helpers for audio transcoding jobs.

An :class:`AudioAsset` is created when an upload completes and is then only
touched by the transcode worker.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Column, DateTime, Enum as SAEnum, Index, String, Text

from app.db.base import Base, utcnow


class AssetStatus(str, Enum):
    """Enum representing the lifecycle of a transcoding job. READY and FAILED are terminal."""

    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class StorageDescriptor:
    """Where the transcoded artifact of a READY asset lives in the blob store."""

    filename: str
    content_type: str
    size_bytes: int


class AudioAsset(Base):
    """Persistent representation of a transcoding job and its artifact."""

    __tablename__ = "audio_assets"
    __table_args__ = (
        Index("asset_uploader_created_idx", "uploader_id", "created_at"),
        Index("asset_status_updated_idx", "status", "updated_at"),
    )

    id = Column(String(36), primary_key=True)
    upload_id = Column(String(36), nullable=False, unique=True)
    uploader_id = Column(String(255), nullable=False)
    original_file_name = Column(String(255), nullable=False)
    original_mime_type = Column(String(128), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    status = Column(SAEnum(AssetStatus), nullable=False, default=AssetStatus.QUEUED)
    error_message = Column(Text, nullable=True)
    storage_filename = Column(String(255), nullable=True, index=True)
    storage_content_type = Column(String(128), nullable=True)
    storage_size_bytes = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def storage(self) -> Optional[StorageDescriptor]:
        if not self.storage_filename:
            return None
        return StorageDescriptor(
            filename=self.storage_filename,
            content_type=self.storage_content_type or "application/octet-stream",
            size_bytes=self.storage_size_bytes or 0,
        )

    # Helper to convert enum to plain string for JSON responses
    @property
    def status_str(self) -> str:
        return self.status.value if isinstance(self.status, AssetStatus) else str(self.status)
