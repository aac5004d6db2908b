# Namespace for ORM models.
from .audio import UploadChunk, UploadSession, UploadStatus
from .blob import AudioBlob
from .job import AssetStatus, AudioAsset, StorageDescriptor

__all__ = [
    "AssetStatus",
    "AudioAsset",
    "AudioBlob",
    "StorageDescriptor",
    "UploadChunk",
    "UploadSession",
    "UploadStatus",
]
