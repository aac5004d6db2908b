"""Asset status lookups and HTTP range-aware streaming of ready audio."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, Optional

from app.db.stores import AssetStore
from app.exceptions import Conflict, Forbidden, NotFound, RangeNotSatisfiable
from app.models.job import AssetStatus
from app.utils.blobs import BlobStore
from app.utils.roles import CurrentUser

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$", re.IGNORECASE)

PLAYBACK_ROUTE = "/api/media/audio/assets/{asset_id}/mp3"
CACHE_CONTROL = "public, max-age=31536000, immutable"


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive
    partial: bool

    @property
    def length(self) -> int:
        return self.end - self.start + 1


def parse_range(header: Optional[str], total_size: int) -> Optional[ByteRange]:
    """Interpret a ``Range`` header against an object of ``total_size`` bytes.

    Supports ``bytes=a-b``, ``bytes=a-`` and the suffix form ``bytes=-n``.
    Returns ``None`` for anything unparseable or unsatisfiable; an absent
    header selects the whole object.
    """
    if not header:
        return ByteRange(0, total_size - 1, partial=False)

    match = _RANGE_RE.match(header.strip())
    if not match:
        return None
    start_raw, end_raw = match.groups()
    if not start_raw and not end_raw:
        return None

    if not start_raw:
        suffix = int(end_raw)
        if suffix <= 0:
            return None
        start, end = max(0, total_size - suffix), total_size - 1
    else:
        start = int(start_raw)
        end = int(end_raw) if end_raw else total_size - 1

    if start < 0 or end < 0 or start > end or end >= total_size:
        return None
    return ByteRange(start, end, partial=True)


@dataclass
class AudioStream:
    status_code: int
    headers: dict[str, str]
    body: Iterator[bytes]
    media_type: str = "audio/mpeg"


class PlaybackStreamer:
    def __init__(self, assets: AssetStore, blobs: BlobStore, public_base_url: str) -> None:
        self.assets = assets
        self.blobs = blobs
        self.public_base_url = public_base_url.rstrip("/")

    def playback_url(self, asset_id: str) -> str:
        return self.public_base_url + PLAYBACK_ROUTE.format(asset_id=asset_id)

    def get_status(self, user: CurrentUser, asset_id: str) -> dict:
        asset = self.assets.get(asset_id)
        if asset is None:
            raise NotFound("audio asset not found")
        if asset.uploader_id != user.user_id and not user.is_publisher:
            raise Forbidden("access denied for this audio asset")

        ready = asset.status == AssetStatus.READY
        return {
            "id": asset.id,
            "status": asset.status_str,
            "errorMessage": asset.error_message or None,
            "playbackUrl": self.playback_url(asset.id) if ready else None,
        }

    def open_stream(self, asset_id: str, range_header: Optional[str]) -> AudioStream:
        asset = self.assets.get(asset_id)
        if asset is None:
            raise NotFound("audio asset not found")
        if asset.status != AssetStatus.READY:
            raise Conflict("audio asset is not ready")

        filename = asset.storage_filename or f"{asset.id}.mp3"
        blob = self.blobs.find_latest(filename)
        if blob is None or not self.blobs.exists(blob):
            logger.error("Blob %s for ready asset %s is missing", filename, asset_id)
            raise NotFound("audio file not found")

        total = blob.length
        byte_range = parse_range(range_header, total)
        if byte_range is None:
            logger.info("Rejected range %r for asset %s (size %d)", range_header, asset_id, total)
            raise RangeNotSatisfiable(total)

        try:
            body = self.blobs.iter_range(blob, byte_range.start, byte_range.end)
        except FileNotFoundError:
            raise NotFound("audio file not found")

        headers = {
            "Accept-Ranges": "bytes",
            "Cache-Control": CACHE_CONTROL,
            "Content-Length": str(max(byte_range.length, 0)),
        }
        if byte_range.partial:
            headers["Content-Range"] = f"bytes {byte_range.start}-{byte_range.end}/{total}"

        return AudioStream(
            status_code=206 if byte_range.partial else 200,
            headers=headers,
            body=body,
            media_type=asset.storage_content_type or blob.content_type,
        )
