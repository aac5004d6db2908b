"""Keyed persistence for upload sessions and audio assets.

Every state transition is a single conditional ``UPDATE ... WHERE status = ...``
whose affected-row count tells the caller whether it won.  No in-process locks
are involved, so the guarantees hold across worker processes sharing one
database.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.db.base import utcnow
from app.models.audio import QUEUED_TTL, READY_TTL, UploadChunk, UploadSession, UploadStatus
from app.models.job import AssetStatus, AudioAsset, StorageDescriptor

logger = logging.getLogger(__name__)


class UploadSessionStore:
    """Upload sessions plus their received-chunk sets."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def insert(self, session: UploadSession) -> UploadSession:
        with self.session_factory() as db:
            db.add(session)
            db.commit()
        return session

    def get(self, session_id: str, include_expired: bool = False) -> Optional[UploadSession]:
        """Return the session, hiding rows whose ``expires_at`` has passed."""
        with self.session_factory() as db:
            query = db.query(UploadSession).filter(UploadSession.id == session_id)
            if not include_expired:
                query = query.filter(UploadSession.expires_at > utcnow())
            return query.first()

    def add_received_chunk(self, session_id: str, index: int) -> int:
        """Add ``index`` to the received set and return the set's new size.

        Adding an index that is already present is a no-op.
        """
        with self.session_factory() as db:
            try:
                db.add(UploadChunk(session_id=session_id, chunk_index=index))
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.debug("Chunk %d of session %s was already recorded", index, session_id)
            db.execute(
                update(UploadSession)
                .where(UploadSession.id == session_id)
                .values(updated_at=utcnow())
            )
            db.commit()
            return self._count_chunks(db, session_id)

    def received_chunks(self, session_id: str) -> set[int]:
        with self.session_factory() as db:
            rows = db.query(UploadChunk.chunk_index).filter(UploadChunk.session_id == session_id).all()
            return {row[0] for row in rows}

    @staticmethod
    def _count_chunks(db, session_id: str) -> int:
        return (
            db.query(func.count(UploadChunk.chunk_index))
            .filter(UploadChunk.session_id == session_id)
            .scalar()
        )

    def link_asset(self, session_id: str, asset: AudioAsset) -> bool:
        """Move an uploading session to QUEUED and insert its asset, atomically.

        Returns ``False`` without writing anything when another completion
        already linked an asset or the session left UPLOADING.
        """
        now = utcnow()
        with self.session_factory() as db:
            result = db.execute(
                update(UploadSession)
                .where(
                    UploadSession.id == session_id,
                    UploadSession.status == UploadStatus.UPLOADING,
                    UploadSession.asset_id.is_(None),
                )
                .values(
                    status=UploadStatus.QUEUED,
                    asset_id=asset.id,
                    completed_at=now,
                    updated_at=now,
                    expires_at=now + QUEUED_TTL,
                )
            )
            if result.rowcount != 1:
                db.rollback()
                return False
            asset.created_at = asset.created_at or now
            asset.updated_at = now
            db.add(asset)
            db.commit()
        return True

    def set_status(
        self,
        session_id: str,
        status: UploadStatus,
        ttl: Optional[timedelta] = None,
    ) -> None:
        values: dict = {"status": status, "updated_at": utcnow()}
        if ttl is not None:
            values["expires_at"] = values["updated_at"] + ttl
        with self.session_factory() as db:
            db.execute(update(UploadSession).where(UploadSession.id == session_id).values(**values))
            db.commit()

    def mark_processing(self, session_id: str) -> None:
        self.set_status(session_id, UploadStatus.PROCESSING)

    def mark_ready(self, session_id: str) -> None:
        self.set_status(session_id, UploadStatus.READY, ttl=READY_TTL)

    def mark_failed_for_asset(self, asset_id: str) -> None:
        with self.session_factory() as db:
            db.execute(
                update(UploadSession)
                .where(UploadSession.asset_id == asset_id)
                .values(status=UploadStatus.FAILED, updated_at=utcnow())
            )
            db.commit()

    def purge_expired(self, now: Optional[datetime] = None) -> list[str]:
        """Delete sessions past their expiry and return their ids."""
        now = now or utcnow()
        with self.session_factory() as db:
            expired = [
                row[0]
                for row in db.query(UploadSession.id).filter(UploadSession.expires_at <= now).all()
            ]
            if expired:
                db.query(UploadChunk).filter(UploadChunk.session_id.in_(expired)).delete(
                    synchronize_session=False
                )
                db.query(UploadSession).filter(UploadSession.id.in_(expired)).delete(
                    synchronize_session=False
                )
                db.commit()
        return expired


class AssetStore:
    """Transcoding jobs and their artifact descriptors."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def get(self, asset_id: str) -> Optional[AudioAsset]:
        with self.session_factory() as db:
            return db.query(AudioAsset).filter(AudioAsset.id == asset_id).first()

    def claim_next_queued(self) -> Optional[AudioAsset]:
        """Flip the oldest QUEUED asset to PROCESSING.

        Returns ``None`` when nothing is queued or when a concurrent claimant
        won the race for the oldest candidate.
        """
        with self.session_factory() as db:
            candidate = (
                db.query(AudioAsset)
                .filter(AudioAsset.status == AssetStatus.QUEUED)
                .order_by(AudioAsset.created_at.asc())
                .first()
            )
            if candidate is None:
                return None
            now = utcnow()
            result = db.execute(
                update(AudioAsset)
                .where(AudioAsset.id == candidate.id, AudioAsset.status == AssetStatus.QUEUED)
                .values(status=AssetStatus.PROCESSING, updated_at=now, error_message=None)
            )
            db.commit()
            if result.rowcount != 1:
                logger.debug("Lost claim race for asset %s", candidate.id)
                return None
        candidate.status = AssetStatus.PROCESSING
        candidate.updated_at = now
        candidate.error_message = None
        return candidate

    def mark_ready(self, asset_id: str, storage: StorageDescriptor) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(AudioAsset)
                .where(AudioAsset.id == asset_id, AudioAsset.status == AssetStatus.PROCESSING)
                .values(
                    status=AssetStatus.READY,
                    storage_filename=storage.filename,
                    storage_content_type=storage.content_type,
                    storage_size_bytes=storage.size_bytes,
                    error_message=None,
                    updated_at=utcnow(),
                )
            )
            db.commit()
            return result.rowcount == 1

    def mark_failed(self, asset_id: str, message: str) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(AudioAsset)
                .where(
                    AudioAsset.id == asset_id,
                    AudioAsset.status.in_([AssetStatus.QUEUED, AssetStatus.PROCESSING]),
                )
                .values(status=AssetStatus.FAILED, error_message=message, updated_at=utcnow())
            )
            db.commit()
            return result.rowcount == 1
