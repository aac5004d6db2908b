# Router aggregator – import each route module here and expose ``api_router``
# for convenient inclusion in the FastAPI app.

from fastapi import APIRouter

from . import routes_audio


api_router = APIRouter()
api_router.include_router(routes_audio.router, prefix="/media/audio", tags=["audio"])
