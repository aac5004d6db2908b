"""Pytest configuration and fixtures for testing."""

import os
import shutil
import tempfile
from pathlib import Path

# Keep the import-time defaults (engine, log dir, data root) away from the
# developer's real data directory.
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="audio-tests-"))
os.environ.setdefault("DATA_ROOT", str(_TEST_ROOT / "data"))
os.environ.setdefault("LOG_DIR", str(_TEST_ROOT / "logs"))
os.environ.setdefault("AUDIO_WORKER_ENABLED", "0")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.config import Settings  # noqa: E402
from app.db.database import init_db, make_engine, make_session_factory  # noqa: E402
from app.main import create_app  # noqa: E402
from app.services.registry import build_services  # noqa: E402
from app.utils.roles import CurrentUser  # noqa: E402


def copy_transcoder(input_path: Path, output_path: Path) -> Path:
    """Stand-in for ffmpeg: the 'transcoded' file is the merged source."""
    shutil.copyfile(input_path, output_path)
    return output_path


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = make_engine(f"sqlite:///{tmp_path / 'audio.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    s = Settings()
    s.AUDIO_UPLOAD_TMP_DIR = tmp_path / "staging"
    s.AUDIO_BLOB_DIR = tmp_path / "blobs"
    s.AUDIO_UPLOAD_CHUNK_BYTES = 4
    s.AUDIO_UPLOAD_MAX_BYTES = 1000
    s.AUDIO_WORKER_POLL_MS = 50
    s.AUDIO_WORKER_ENABLED = False
    s.PUBLIC_BASE_URL = "http://media.test/"
    return s


@pytest.fixture
def services(test_settings: Settings, session_factory):
    built = build_services(test_settings, session_factory)
    built.worker.transcoder = copy_transcoder
    return built


@pytest.fixture
def publisher() -> CurrentUser:
    return CurrentUser(user_id="editor-1", role="editor")


@pytest.fixture
def client(test_settings: Settings, session_factory, services):
    app = create_app(settings=test_settings, session_factory=session_factory)
    app.state.audio = services
    with TestClient(app) as c:
        yield c


@pytest.fixture
def publisher_headers() -> dict:
    return {"X-User-Id": "editor-1", "X-User-Role": "editor"}
