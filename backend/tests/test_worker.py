import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from app.models.audio import UploadStatus
from app.models.job import AssetStatus
from app.services.uploads import UploadSessionManager
from app.workers.transcode_worker import TranscodeWorker

PAYLOAD = b"0123456789"


def queue_upload(services, user, data=PAYLOAD) -> tuple[str, str]:
    """Create, fill and complete an upload; return ``(upload_id, asset_id)``."""
    uploads = services.uploads
    created = uploads.create_session(user, "episode.wav", len(data), "audio/wav")
    size = created.chunk_size
    for index in range(created.total_chunks):
        uploads.accept_chunk(user, created.upload_id, index, data[index * size:(index + 1) * size])
    completed = uploads.complete(user, created.upload_id)
    return created.upload_id, completed.asset_id


def test_tick_publishes_ready_asset(services, publisher):
    upload_id, asset_id = queue_upload(services, publisher)

    assert services.worker.tick() == 1

    asset = services.assets.get(asset_id)
    assert asset.status == AssetStatus.READY
    assert asset.storage_filename == f"{asset_id}.mp3"
    assert asset.storage_content_type == "audio/mpeg"
    assert asset.storage_size_bytes == len(PAYLOAD)
    assert services.sessions.get(upload_id).status == UploadStatus.READY
    assert not services.staging.session_dir(upload_id).exists()

    blob = services.blobs.find_latest(f"{asset_id}.mp3")
    assert b"".join(services.blobs.iter_range(blob, 0, blob.length - 1)) == PAYLOAD
    assert blob.blob_metadata["assetId"] == asset_id
    assert blob.blob_metadata["uploaderId"] == publisher.user_id


def test_single_chunk_upload_with_default_chunk_size(services, publisher):
    services.uploads = UploadSessionManager(
        services.sessions,
        services.assets,
        services.staging,
        max_bytes=500 * 1024 * 1024,
        chunk_size=5 * 1024 * 1024,
    )
    upload_id, asset_id = queue_upload(services, publisher)

    assert services.sessions.get(upload_id).total_chunks == 1
    services.worker.tick()
    assert services.assets.get(asset_id).status == AssetStatus.READY


def test_tick_with_empty_queue_does_nothing(services):
    assert services.worker.tick() == 0


def test_unavailable_ffmpeg_fails_the_asset(services, publisher):
    worker = TranscodeWorker(
        services.sessions,
        services.assets,
        services.staging,
        services.blobs,
        poll_interval=0.05,
        ffmpeg_candidates=["/nonexistent/bin/ffmpeg", "ffmpeg-not-installed-here"],
    )
    upload_id, asset_id = queue_upload(services, publisher)

    assert worker.tick() == 1

    asset = services.assets.get(asset_id)
    assert asset.status == AssetStatus.FAILED
    assert "/nonexistent/bin/ffmpeg" in asset.error_message
    assert "ffmpeg-not-installed-here" in asset.error_message
    assert services.sessions.get(upload_id).status == UploadStatus.FAILED
    assert not services.staging.session_dir(upload_id).exists()
    assert services.blobs.find_latest(f"{asset_id}.mp3") is None


def test_failing_transcoder_message_is_recorded(services, publisher):
    def broken(_input, _output):
        raise RuntimeError("decoder exploded")

    services.worker.transcoder = broken
    _, asset_id = queue_upload(services, publisher)
    services.worker.tick()

    asset = services.assets.get(asset_id)
    assert asset.status == AssetStatus.FAILED
    assert asset.error_message == "decoder exploded"


def test_asset_without_session_fails(services, publisher, session_factory):
    upload_id, asset_id = queue_upload(services, publisher)
    services.sessions.purge_expired(now=services.sessions.get(upload_id).expires_at + timedelta(seconds=1))

    services.worker.tick()

    asset = services.assets.get(asset_id)
    assert asset.status == AssetStatus.FAILED
    assert asset.error_message == "upload session not found"
    assert not services.staging.session_dir(upload_id).exists()


def test_overlapping_tick_is_skipped(services, publisher):
    _, asset_id = queue_upload(services, publisher)

    services.worker._tick_guard.acquire()
    try:
        assert services.worker.tick() == 0
    finally:
        services.worker._tick_guard.release()

    assert services.assets.get(asset_id).status == AssetStatus.QUEUED
    assert services.worker.tick() == 1


def test_purge_expired_removes_staging(services, publisher):
    created = services.uploads.create_session(publisher, "a.wav", 10)
    services.sessions.set_status(created.upload_id, UploadStatus.UPLOADING, ttl=timedelta(seconds=-1))

    assert services.worker.purge_expired() == [created.upload_id]
    assert not services.staging.session_dir(created.upload_id).exists()


@pytest.mark.asyncio
async def test_worker_polls_until_stopped(services, publisher):
    _, asset_id = queue_upload(services, publisher)
    worker = services.worker

    worker.start()
    worker.start()
    assert worker.running
    try:
        for _ in range(100):
            if services.assets.get(asset_id).status == AssetStatus.READY:
                break
            await asyncio.sleep(0.05)
    finally:
        await worker.stop()

    assert not worker.running
    assert services.assets.get(asset_id).status == AssetStatus.READY


def test_reverse_order_upload_merges_to_the_original(services, publisher):
    created = services.uploads.create_session(publisher, "episode.wav", len(PAYLOAD))
    size = created.chunk_size
    for index in reversed(range(created.total_chunks)):
        services.uploads.accept_chunk(publisher, created.upload_id, index, PAYLOAD[index * size:(index + 1) * size])
    completed = services.uploads.complete(publisher, created.upload_id)

    seen = {}

    def capture(input_path, output_path):
        seen["source"] = input_path.read_bytes()
        output_path.write_bytes(b"mp3")
        return output_path

    services.worker.transcoder = capture
    services.worker.tick()

    assert seen["source"] == PAYLOAD
    assert services.assets.get(completed.asset_id).status == AssetStatus.READY


def test_session_not_marked_ready_when_asset_update_loses(services, publisher):
    upload_id, asset_id = queue_upload(services, publisher)

    with patch.object(services.assets, "mark_ready", return_value=False) as mark_ready:
        services.worker.tick()

    mark_ready.assert_called_once()
    assert services.sessions.get(upload_id, include_expired=True).status == UploadStatus.PROCESSING
    assert not services.staging.session_dir(upload_id).exists()
