"""Application-wide configuration loader.

Every option is read from the environment once, when the module is imported,
and exposed through the module-level :data:`settings` singleton.
"""

import os
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _default_data_root() -> Path:
    if os.getenv('DATA_ROOT'):
        return Path(os.environ['DATA_ROOT'])
    if Path('/data').exists():
        return Path('/data')
    return _PROJECT_ROOT / 'data'


def _flag(value: str) -> bool:
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    Rationale
    ---------
    When docker-compose injects an environment variable whose value is empty
    (e.g. ``AUDIO_UPLOAD_CHUNK_BYTES=""``) ``os.getenv(KEY, default)`` returns
    an empty string *not* ``None`` and ``int("")`` blows up at import time.
    Every setting therefore uses the idiom

        os.getenv(KEY) or DEFAULT

    so that *falsy* values ("", None) are replaced by the specified DEFAULT.
    """

    DATA_ROOT: Path = _default_data_root()
    DATABASE_URL: str = os.getenv('DATABASE_URL') or f"sqlite:///{DATA_ROOT / 'audio.db'}"
    DB_ECHO: bool = _flag(os.getenv('DB_ECHO') or '0')

    CELERY_BROKER_URL: str = os.getenv('CELERY_BROKER_URL') or 'redis://broker:6379/0'
    CELERY_RESULT_BACKEND: str = os.getenv('CELERY_RESULT_BACKEND') or 'redis://broker:6379/0'

    AUDIO_UPLOAD_MAX_BYTES: int = int(os.getenv('AUDIO_UPLOAD_MAX_BYTES') or '524288000')
    AUDIO_UPLOAD_CHUNK_BYTES: int = int(os.getenv('AUDIO_UPLOAD_CHUNK_BYTES') or '5242880')
    AUDIO_UPLOAD_TMP_DIR: Path = Path(os.getenv('AUDIO_UPLOAD_TMP_DIR') or DATA_ROOT / 'audio-staging')
    AUDIO_BLOB_DIR: Path = Path(os.getenv('AUDIO_BLOB_DIR') or DATA_ROOT / 'audio-blobs')
    AUDIO_WORKER_POLL_MS: int = int(os.getenv('AUDIO_WORKER_POLL_MS') or '3000')
    AUDIO_WORKER_ENABLED: bool = _flag(os.getenv('AUDIO_WORKER_ENABLED') or '1')

    FFMPEG_PATH: str = (os.getenv('FFMPEG_PATH') or '').strip()
    FFMPEG_BUNDLED_PATH: str = (os.getenv('FFMPEG_BUNDLED_PATH') or str(_PROJECT_ROOT / 'bin' / 'ffmpeg')).strip()

    PUBLIC_BASE_URL: str = os.getenv('PUBLIC_BASE_URL') or 'http://localhost:8000'

    LOG_DIR: str = os.getenv('LOG_DIR') or 'backend/logs'
    LOG_LEVEL: str = os.getenv('LOG_LEVEL') or 'INFO'

    @property
    def ffmpeg_candidates(self) -> list[str]:
        """Transcoder executables in the order they should be tried."""
        candidates = [self.FFMPEG_PATH, self.FFMPEG_BUNDLED_PATH, 'ffmpeg']
        # dict.fromkeys keeps the first occurrence and drops blanks below
        return [c for c in dict.fromkeys(candidates) if c]

    @property
    def worker_poll_seconds(self) -> float:
        return self.AUDIO_WORKER_POLL_MS / 1000.0


settings = Settings()
