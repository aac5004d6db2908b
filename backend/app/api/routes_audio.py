"""Audio upload and playback REST endpoints.

1. `POST /uploads`                           – open a chunked upload session.
2. `PUT  /uploads/{upload_id}/chunks/{index}` – send one raw chunk.
3. `POST /uploads/{upload_id}/complete`       – enqueue the upload for transcoding.
4. `GET  /assets/{asset_id}/status`           – poll the transcoding job.
5. `GET  /assets/{asset_id}/mp3`              – stream the MP3, honouring `Range`.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from ..exceptions import BadRequest
from ..services.registry import AudioServices
from ..utils.roles import CurrentUser
from .deps import get_current_user, get_services

router = APIRouter()
logger = logging.getLogger(__name__)


class UploadCreateRequest(BaseModel):
    fileName: str = Field(..., min_length=1, max_length=255)
    mimeType: Optional[str] = Field(None, min_length=1, max_length=128)
    sizeBytes: int = Field(..., gt=0)


class UploadCreateResponse(BaseModel):
    uploadId: str
    chunkSize: int
    totalChunks: int
    maxBytes: int


class ChunkResponse(BaseModel):
    uploadId: str
    index: int
    receivedChunks: int
    totalChunks: int


class CompleteResponse(BaseModel):
    assetId: str
    status: str


class AssetStatusResponse(BaseModel):
    id: str
    status: str
    errorMessage: Optional[str] = None
    playbackUrl: Optional[str] = None


async def read_body_limited(request: Request, limit: int) -> bytes:
    """Read the request body, refusing it as soon as it exceeds ``limit`` bytes."""
    received = bytearray()
    async for block in request.stream():
        received.extend(block)
        if len(received) > limit:
            raise BadRequest(f"chunk body exceeds the expected {limit} bytes")
    return bytes(received)


@router.post("/uploads", status_code=status.HTTP_201_CREATED, response_model=UploadCreateResponse)
async def create_upload(
    body: UploadCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: AudioServices = Depends(get_services),
) -> UploadCreateResponse:
    created = await run_in_threadpool(
        services.uploads.create_session,
        user,
        body.fileName,
        body.sizeBytes,
        body.mimeType,
    )
    return UploadCreateResponse(
        uploadId=created.upload_id,
        chunkSize=created.chunk_size,
        totalChunks=created.total_chunks,
        maxBytes=created.max_bytes,
    )


@router.put("/uploads/{upload_id}/chunks/{index}", response_model=ChunkResponse)
async def upload_chunk(
    upload_id: uuid.UUID,
    index: int,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    services: AudioServices = Depends(get_services),
) -> ChunkResponse:
    content_type = request.headers.get("content-type")
    # Ownership, state, index and content type are settled before any body byte is read.
    session = await run_in_threadpool(
        services.uploads.validate_chunk_target,
        user,
        str(upload_id),
        index,
        content_type,
    )
    data = await read_body_limited(request, session.expected_chunk_size(index))
    receipt = await run_in_threadpool(
        services.uploads.accept_chunk,
        user,
        str(upload_id),
        index,
        data,
        content_type,
    )
    return ChunkResponse(
        uploadId=receipt.upload_id,
        index=receipt.index,
        receivedChunks=receipt.received_chunks,
        totalChunks=receipt.total_chunks,
    )


@router.post(
    "/uploads/{upload_id}/complete",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CompleteResponse,
)
async def complete_upload(
    upload_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    services: AudioServices = Depends(get_services),
) -> CompleteResponse:
    completed = await run_in_threadpool(services.uploads.complete, user, str(upload_id))
    return CompleteResponse(assetId=completed.asset_id, status=completed.status)


@router.get(
    "/assets/{asset_id}/status",
    response_model=AssetStatusResponse,
    response_model_exclude_none=True,
)
async def get_asset_status(
    asset_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    services: AudioServices = Depends(get_services),
) -> AssetStatusResponse:
    info = await run_in_threadpool(services.playback.get_status, user, str(asset_id))
    return AssetStatusResponse(**info)


@router.get("/assets/{asset_id}/mp3")
async def stream_asset(
    asset_id: uuid.UUID,
    range_header: Optional[str] = Header(None, alias="Range"),
    services: AudioServices = Depends(get_services),
) -> StreamingResponse:
    audio = await run_in_threadpool(services.playback.open_stream, str(asset_id), range_header)
    return StreamingResponse(
        audio.body,
        status_code=audio.status_code,
        headers=audio.headers,
        media_type=audio.media_type,
    )
