"""Wire stores, managers and the worker from :class:`app.config.Settings`."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from app.config import Settings
from app.db.stores import AssetStore, UploadSessionStore
from app.services.playback import PlaybackStreamer
from app.services.uploads import UploadSessionManager
from app.utils.blobs import BlobStore
from app.utils.storage import ChunkStagingArea
from app.workers.transcode_worker import TranscodeWorker


@dataclass
class AudioServices:
    sessions: UploadSessionStore
    assets: AssetStore
    staging: ChunkStagingArea
    blobs: BlobStore
    uploads: UploadSessionManager
    playback: PlaybackStreamer
    worker: TranscodeWorker


def build_services(settings: Settings, session_factory: sessionmaker) -> AudioServices:
    sessions = UploadSessionStore(session_factory)
    assets = AssetStore(session_factory)
    staging = ChunkStagingArea(settings.AUDIO_UPLOAD_TMP_DIR)
    blobs = BlobStore(settings.AUDIO_BLOB_DIR, session_factory)
    return AudioServices(
        sessions=sessions,
        assets=assets,
        staging=staging,
        blobs=blobs,
        uploads=UploadSessionManager(
            sessions,
            assets,
            staging,
            max_bytes=settings.AUDIO_UPLOAD_MAX_BYTES,
            chunk_size=settings.AUDIO_UPLOAD_CHUNK_BYTES,
        ),
        playback=PlaybackStreamer(assets, blobs, settings.PUBLIC_BASE_URL),
        worker=TranscodeWorker(
            sessions,
            assets,
            staging,
            blobs,
            poll_interval=settings.worker_poll_seconds,
            ffmpeg_candidates=settings.ffmpeg_candidates,
        ),
    )
