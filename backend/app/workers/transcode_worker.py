"""Polling worker that turns queued uploads into stored MP3 artifacts.

Each tick claims queued assets one at a time, oldest first, until none is
left.  A claim is a conditional status flip in the database, so several
worker processes may poll the same tables and still never process one asset
twice.  Overlapping ticks on one worker instance are skipped, not queued.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from app.db.stores import AssetStore, UploadSessionStore
from app.models.job import AudioAsset, StorageDescriptor
from app.services.audio_processing import OUTPUT_CONTENT_TYPE, transcode_to_mp3
from app.utils.blobs import BlobStore
from app.utils.storage import ChunkStagingArea, remove_quietly

logger = logging.getLogger(__name__)

Transcoder = Callable[[Path, Path], Path]


class TranscodeWorker:
    def __init__(
        self,
        sessions: UploadSessionStore,
        assets: AssetStore,
        staging: ChunkStagingArea,
        blobs: BlobStore,
        poll_interval: float,
        ffmpeg_candidates: Optional[list[str]] = None,
        transcoder: Optional[Transcoder] = None,
    ) -> None:
        self.sessions = sessions
        self.assets = assets
        self.staging = staging
        self.blobs = blobs
        self.poll_interval = poll_interval
        self.ffmpeg_candidates = list(ffmpeg_candidates or ["ffmpeg"])
        self.transcoder = transcoder or partial(transcode_to_mp3, candidates=self.ffmpeg_candidates)

        self._tick_guard = threading.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Begin polling on the running event loop. Calling twice is a no-op."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.info("Audio worker started (poll=%.3fs)", self.poll_interval)

    async def stop(self) -> None:
        """Stop the timer and wait for any tick that is still running."""
        if self._loop_task is None:
            return
        self._stop_event.set()
        await self._loop_task
        if self._tick_tasks:
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        self._loop_task = None
        logger.info("Audio worker stopped")

    async def _poll_loop(self) -> None:
        await asyncio.to_thread(self.purge_expired)
        while not self._stop_event.is_set():
            # Ticks run in a thread; a new one is fired even if the last is
            # still busy and the guard in tick() makes it return at once.
            task = asyncio.create_task(asyncio.to_thread(self.tick))
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    def tick(self) -> int:
        """Drain the queue once. Returns how many assets were processed."""
        if not self._tick_guard.acquire(blocking=False):
            logger.debug("Previous tick still running; skipping")
            return 0
        processed = 0
        try:
            while True:
                asset = self.assets.claim_next_queued()
                if asset is None:
                    break
                self.process(asset)
                processed += 1
        except Exception as exc:
            logger.exception("Audio worker tick failed: %s", exc)
        finally:
            self._tick_guard.release()
        return processed

    def process(self, asset: AudioAsset) -> None:
        """Merge, transcode and publish one claimed asset; always clean up."""
        session = self.sessions.get(asset.upload_id, include_expired=True)
        if session is None:
            logger.error("Asset %s has no upload session %s", asset.id, asset.upload_id)
            self.assets.mark_failed(asset.id, "upload session not found")
            self.sessions.mark_failed_for_asset(asset.id)
            self.staging.discard(asset.upload_id)
            return

        self.sessions.mark_processing(session.id)

        work_dir = self.staging.session_dir(session.id)
        merged_path = work_dir / f"{asset.id}.source"
        output_path = work_dir / f"{asset.id}.mp3"
        try:
            self.staging.merge(session.id, session.total_chunks, merged_path)
            self.transcoder(merged_path, output_path)
            storage = self._publish(asset, output_path)

            if self.assets.mark_ready(asset.id, storage):
                self.sessions.mark_ready(session.id)
                logger.info("Audio ready: %s (%d bytes)", asset.id, storage.size_bytes)
            else:
                logger.warning(
                    "Asset %s left PROCESSING before it could be marked ready; session %s unchanged",
                    asset.id,
                    session.id,
                )
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Audio failed: %s %s", asset.id, message, exc_info=True)
            self.assets.mark_failed(asset.id, message)
            self.sessions.mark_failed_for_asset(asset.id)
        finally:
            remove_quietly(merged_path)
            remove_quietly(output_path)
            self.staging.discard(session.id)

    def _publish(self, asset: AudioAsset, output_path: Path) -> StorageDescriptor:
        blob = self.blobs.put_file(
            f"{asset.id}.mp3",
            output_path,
            content_type=OUTPUT_CONTENT_TYPE,
            metadata={
                "assetId": asset.id,
                "uploadId": asset.upload_id,
                "uploaderId": asset.uploader_id,
                "contentType": OUTPUT_CONTENT_TYPE,
            },
        )
        return StorageDescriptor(filename=blob.filename, content_type=blob.content_type, size_bytes=blob.length)

    def purge_expired(self) -> list[str]:
        """Delete expired sessions and their staging directories."""
        try:
            expired = self.sessions.purge_expired()
        except Exception as exc:
            logger.exception("Purging expired upload sessions failed: %s", exc)
            return []
        for session_id in expired:
            self.staging.discard(session_id)
        if expired:
            logger.info("Purged %d expired upload sessions", len(expired))
        return expired
