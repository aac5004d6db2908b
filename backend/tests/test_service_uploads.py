import pytest

from app.exceptions import BadRequest, Conflict, Forbidden, NotFound, PayloadTooLarge, UnsupportedMediaType
from app.models.audio import UploadStatus
from app.services.uploads import UploadSessionManager
from app.utils.roles import CurrentUser

PAYLOAD = b"0123456789"  # 10 bytes -> chunks of 4, 4, 2


def chunks_of(data: bytes, size: int = 4) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


@pytest.fixture
def uploads(services) -> UploadSessionManager:
    return services.uploads


def upload_all(uploads, user, upload_id, data=PAYLOAD, order=None):
    parts = chunks_of(data)
    for index in order or range(len(parts)):
        uploads.accept_chunk(user, upload_id, index, parts[index], "application/octet-stream")


def test_create_session_computes_chunk_layout(uploads, services, publisher):
    created = uploads.create_session(publisher, "episode.wav", len(PAYLOAD), "audio/wav")

    assert created.chunk_size == 4
    assert created.total_chunks == 3
    assert created.max_bytes == 1000
    session = services.sessions.get(created.upload_id)
    assert session.status == UploadStatus.UPLOADING
    assert session.uploader_id == "editor-1"
    assert services.staging.session_dir(created.upload_id).is_dir()


def test_create_session_defaults_mime_type(uploads, services, publisher):
    created = uploads.create_session(publisher, "episode.bin", 3)

    assert created.total_chunks == 1
    assert services.sessions.get(created.upload_id).mime_type == "application/octet-stream"


def test_last_chunk_size_is_the_remainder(services, publisher):
    manager = UploadSessionManager(
        services.sessions,
        services.assets,
        services.staging,
        max_bytes=500 * 1024 * 1024,
        chunk_size=5_000_000,
    )
    created = manager.create_session(publisher, "long.wav", 12_000_000)

    assert created.total_chunks == 3
    session = services.sessions.get(created.upload_id)
    assert session.expected_chunk_size(0) == 5_000_000
    assert session.expected_chunk_size(2) == 2_000_000
    with pytest.raises(BadRequest) as exc_info:
        manager.accept_chunk(publisher, created.upload_id, 2, b"x" * 5_000_000)
    assert "expected 2000000 bytes" in exc_info.value.detail


def test_non_publishers_cannot_upload(uploads, publisher):
    listener = CurrentUser(user_id="listener-1", role="user")
    with pytest.raises(Forbidden):
        uploads.create_session(listener, "a.wav", 10)

    created = uploads.create_session(publisher, "a.wav", 10)
    with pytest.raises(Forbidden):
        uploads.accept_chunk(listener, created.upload_id, 0, b"0123")
    with pytest.raises(Forbidden):
        uploads.complete(listener, created.upload_id)


def test_oversized_upload_is_rejected(uploads, publisher):
    with pytest.raises(PayloadTooLarge) as exc_info:
        uploads.create_session(publisher, "huge.wav", 1001)
    assert "1000" in exc_info.value.detail


def test_other_publishers_cannot_touch_a_session(uploads, publisher):
    created = uploads.create_session(publisher, "a.wav", 10)
    other = CurrentUser(user_id="editor-2", role="editor")

    with pytest.raises(Forbidden):
        uploads.accept_chunk(other, created.upload_id, 0, b"0123")


def test_unknown_session_is_not_found(uploads, publisher):
    with pytest.raises(NotFound):
        uploads.accept_chunk(publisher, "does-not-exist", 0, b"0123")
    with pytest.raises(NotFound):
        uploads.complete(publisher, "does-not-exist")


@pytest.mark.parametrize(
    "index, data, content_type, error",
    [
        (-1, b"0123", None, BadRequest),
        (3, b"0123", None, BadRequest),
        (0, b"0123", "text/plain", UnsupportedMediaType),
        (0, b"", None, BadRequest),
        (0, b"012", None, BadRequest),
        (2, b"0123", None, BadRequest),
    ],
)
def test_invalid_chunks_are_rejected(uploads, publisher, index, data, content_type, error):
    created = uploads.create_session(publisher, "a.wav", 10)
    with pytest.raises(error):
        uploads.accept_chunk(publisher, created.upload_id, index, data, content_type)


def test_chunk_upload_is_idempotent(uploads, publisher, services):
    created = uploads.create_session(publisher, "a.wav", 10)

    first = uploads.accept_chunk(publisher, created.upload_id, 1, b"4567")
    again = uploads.accept_chunk(publisher, created.upload_id, 1, b"4567")

    assert first.received_chunks == again.received_chunks == 1
    assert again.total_chunks == 3
    assert services.staging.chunk_path(created.upload_id, 1).read_bytes() == b"4567"


def test_complete_requires_every_chunk(uploads, publisher):
    created = uploads.create_session(publisher, "a.wav", 10)
    uploads.accept_chunk(publisher, created.upload_id, 1, b"4567")

    with pytest.raises(BadRequest) as exc_info:
        uploads.complete(publisher, created.upload_id)
    assert exc_info.value.detail == "missing uploaded chunks (0, 2)"


def test_complete_checks_the_disk_not_the_received_set(uploads, publisher, services):
    created = uploads.create_session(publisher, "a.wav", 10)
    upload_all(uploads, publisher, created.upload_id)
    services.staging.chunk_path(created.upload_id, 1).unlink()

    with pytest.raises(BadRequest) as exc_info:
        uploads.complete(publisher, created.upload_id)
    assert "(1)" in exc_info.value.detail


def test_complete_queues_an_asset_and_is_idempotent(uploads, publisher, services):
    created = uploads.create_session(publisher, "a.wav", 10, "audio/wav")
    upload_all(uploads, publisher, created.upload_id)

    completed = uploads.complete(publisher, created.upload_id)
    repeated = uploads.complete(publisher, created.upload_id)

    assert completed.status == "queued"
    assert repeated.asset_id == completed.asset_id
    asset = services.assets.get(completed.asset_id)
    assert asset.upload_id == created.upload_id
    assert asset.original_file_name == "a.wav"
    assert asset.original_mime_type == "audio/wav"
    assert services.sessions.get(created.upload_id).status == UploadStatus.QUEUED


def test_chunks_are_refused_after_completion(uploads, publisher):
    created = uploads.create_session(publisher, "a.wav", 10)
    upload_all(uploads, publisher, created.upload_id)
    uploads.complete(publisher, created.upload_id)

    with pytest.raises(Conflict):
        uploads.accept_chunk(publisher, created.upload_id, 0, b"0123")


def test_out_of_order_chunks_merge_in_index_order(uploads, publisher, services, tmp_path):
    created = uploads.create_session(publisher, "a.wav", 10)
    upload_all(uploads, publisher, created.upload_id, order=[2, 1, 0])

    merged = services.staging.merge(created.upload_id, 3, tmp_path / "merged.bin")
    assert merged.read_bytes() == PAYLOAD


def test_validate_chunk_target_needs_no_body(uploads, publisher):
    created = uploads.create_session(publisher, "a.wav", 10)

    session = uploads.validate_chunk_target(publisher, created.upload_id, 2, "application/octet-stream")
    assert session.expected_chunk_size(2) == 2
    with pytest.raises(UnsupportedMediaType):
        uploads.validate_chunk_target(publisher, created.upload_id, 0, "audio/wav")
