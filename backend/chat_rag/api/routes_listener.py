"""DM listener control routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from chat_rag.api.dependencies import get_listener
from chat_rag.core.errors import InvalidAction
from chat_rag.core.logging import get_logger
from chat_rag.listener.dm_listener import DMListener
from chat_rag.models.dto import ErrorResponse, ListenRequest, ListenResponse, ListenerStatusResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/rag/listen",
    response_model=ListenResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Start or stop the DM listener",
)
async def control_listener(
    request: ListenRequest,
    listener: DMListener = Depends(get_listener),
):
    if request.action == "start":
        try:
            await listener.start()
        except Exception as exc:
            logger.exception("Failed to start listener")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to start listener", "details": str(exc)},
            )
        return ListenResponse(status="Listener started")
    if request.action == "stop":
        try:
            listener.stop()
        except Exception as exc:
            logger.exception("Failed to stop listener")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to stop listener", "details": str(exc)},
            )
        return ListenResponse(status="Listener stopped")
    raise InvalidAction(f"Invalid listener action: {request.action!r}")


@router.get("/rag/listen", response_model=ListenerStatusResponse, summary="Listener status")
async def listener_status(listener: DMListener = Depends(get_listener)) -> ListenerStatusResponse:
    return ListenerStatusResponse(**listener.status())
