"""Livestream API endpoints."""

import logging
import traceback
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel

from auth import Identity, get_current_user, get_optional_user, manager as auth_manager
from broadcast import ConnectionManager
from livestreams import (
    LivestreamManager, LivestreamError, LivestreamNotFoundError,
    LivestreamRejectedError, LivestreamForbiddenError,
    LivestreamAuthRequiredError, InsufficientTokensError
)
from ..dependencies import get_connection_manager, get_livestream_manager

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/livestreams",
    tags=["Livestreams"]
)

# WebSocket close codes
CLOSE_NOT_FOUND = 4004
CLOSE_REJECTED = 4003
CLOSE_INTERNAL_ERROR = 1011

# Model definitions
class CreateLivestreamRequest(BaseModel):
    """Request model for creating a livestream."""
    title: str
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    token_gate_amount: Optional[Decimal] = None

class TipRequest(BaseModel):
    """Request model for tipping during a livestream."""
    amount: Optional[Decimal] = None
    mint: Optional[str] = None
    transaction_signature: Optional[str] = None

class StreamKeyRequest(BaseModel):
    """Request model for validating an RTMP ingest key."""
    stream_key: str

def raise_http_error(e: LivestreamError):
    """Translate a livestream error into an HTTP error."""
    if isinstance(e, LivestreamNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, LivestreamAuthRequiredError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    if isinstance(e, InsufficientTokensError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": str(e),
                "required": str(e.required),
                "balance": str(e.balance),
                "token": e.token
            }
        )
    if isinstance(e, LivestreamForbiddenError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

def rtmp_credentials(livestream) -> dict:
    return {
        "rtmp_url": livestream.rtmp_url,
        "stream_key": livestream.stream_key,
        "full_url": f"{livestream.rtmp_url}/{livestream.stream_key}"
    }

""" Public Endpoints - No Authentication Required """
@router.post("/rtmp/validate")
async def validate_stream_key(
    request: StreamKeyRequest,
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Validate a stream key presented by the RTMP ingest server."""
    result = await manager.validate_stream_key(request.stream_key)
    if not result["valid"]:
        logger.info(f"Rejected RTMP stream key: {result['error']}")
    return result

@router.get("")
async def list_livestreams(
    active: bool = Query(False),
    upcoming: bool = Query(False),
    artist_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """List livestreams, latest start time first, with pagination metadata."""
    per_page = min(per_page, 100)
    livestreams, total = await manager.list_livestreams(
        active=active,
        upcoming=upcoming,
        artist_id=artist_id,
        page=page,
        per_page=per_page
    )
    return {
        "livestreams": [livestream.summary() for livestream in livestreams],
        "meta": {
            "current_page": page,
            "per_page": per_page,
            "total_count": total,
            "total_pages": (total + per_page - 1) // per_page
        }
    }

@router.get("/{livestream_id}")
async def get_livestream(
    livestream_id: int,
    user: Optional[Identity] = Depends(get_optional_user),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Get livestream details.

    Token-gated livestreams require a signed-in viewer holding enough of the
    artist's token. The owning artist also receives the ingest credentials.
    """
    try:
        livestream = await manager.get_livestream(livestream_id)
        await manager.check_access(livestream, user)
    except LivestreamError as e:
        raise_http_error(e)

    result = livestream.summary()
    result["duration"] = livestream.stream_duration()

    if user is not None:
        try:
            await manager.authorize_artist(livestream_id, user)
            result["rtmp_credentials"] = rtmp_credentials(livestream)
        except LivestreamForbiddenError:
            pass

    return {"livestream": result, "access_granted": True}

@router.get("/{livestream_id}/status")
async def get_livestream_status(
    livestream_id: int,
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Get the broadcast state. The HLS playlist is only exposed while live."""
    try:
        livestream = await manager.get_livestream(livestream_id)
    except LivestreamError as e:
        raise_http_error(e)

    return {
        "id": livestream.id,
        "status": livestream.status.value,
        "is_live": livestream.is_live,
        "viewer_count": livestream.viewer_count,
        "started_at": livestream.started_at.isoformat() if livestream.started_at else None,
        "duration": livestream.stream_duration(),
        "hls_url": livestream.hls_url if livestream.is_live else None
    }

@router.get("/{livestream_id}/messages")
async def get_messages(
    livestream_id: int,
    limit: int = Query(100, ge=1, le=100),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Get the most recent messages, newest first."""
    try:
        messages = await manager.list_messages(livestream_id, limit=limit)
    except LivestreamError as e:
        raise_http_error(e)
    return {"messages": [message.to_json() for message in messages]}

""" Protected Endpoints - Authentication Required """
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_livestream(
    request: CreateLivestreamRequest,
    user: Identity = Depends(get_current_user),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Create a livestream for the caller's artist profile."""
    try:
        artist_id = await manager.artist_id_for(user)
        livestream = await manager.create_livestream(
            artist_id=artist_id,
            title=request.title,
            description=request.description,
            start_time=request.start_time,
            token_gate_amount=request.token_gate_amount
        )
    except LivestreamError as e:
        raise_http_error(e)

    return {
        "livestream": livestream.summary(),
        "rtmp_credentials": rtmp_credentials(livestream),
        "message": "Livestream created successfully. Use the RTMP credentials in OBS."
    }

@router.post("/{livestream_id}/start")
async def start_livestream(
    livestream_id: int,
    user: Identity = Depends(get_current_user),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Go live. Only the livestream's artist may start it."""
    try:
        await manager.authorize_artist(livestream_id, user)
        livestream = await manager.start_livestream(livestream_id)
    except LivestreamError as e:
        raise_http_error(e)

    return {
        "livestream": livestream.summary(),
        "message": "Livestream started - you can now begin streaming in OBS"
    }

@router.post("/{livestream_id}/stop")
async def stop_livestream(
    livestream_id: int,
    user: Identity = Depends(get_current_user),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """End the broadcast. Only the livestream's artist may stop it."""
    try:
        await manager.authorize_artist(livestream_id, user)
        result = await manager.end_livestream(livestream_id)
    except LivestreamError as e:
        raise_http_error(e)

    stats = result["stats"]
    return {
        "livestream": result["livestream"].summary(),
        "message": "Livestream ended",
        "stats": {
            "duration": stats["duration"],
            "peak_viewers": stats["peak_viewers"],
            "total_tips": str(stats["total_tips"])
        }
    }

@router.post("/{livestream_id}/tip")
async def tip_livestream(
    livestream_id: int,
    request: TipRequest,
    user: Identity = Depends(get_current_user),
    manager: LivestreamManager = Depends(get_livestream_manager)
):
    """Send a tip to the artist during a livestream."""
    valid_amount = request.amount is not None and request.amount.is_finite() and request.amount > 0
    if not (valid_amount and request.mint and request.transaction_signature):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid tip parameters"
        )

    try:
        await manager.get_livestream(livestream_id)
    except LivestreamError as e:
        raise_http_error(e)

    await manager.send_tip(
        livestream_id,
        user,
        request.amount,
        request.mint,
        request.transaction_signature
    )

    return {
        "message": "Tip sent successfully",
        "tip": {
            "amount": str(request.amount),
            "mint": request.mint
        }
    }

""" WebSocket Endpoints """
async def relay_viewer_actions(
    websocket: WebSocket,
    livestream_id: int,
    user: Optional[Identity],
    manager: LivestreamManager
):
    """Dispatch speak and tip actions until the viewer disconnects."""
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                logger.debug(f"Ignoring malformed frame on livestream {livestream_id}")
                continue

            if not isinstance(data, dict):
                continue

            action = data.get("action")
            if action == "speak":
                await manager.send_chat(livestream_id, user, data.get("message"))
            elif action == "tip":
                await manager.send_tip(
                    livestream_id,
                    user,
                    data.get("amount"),
                    data.get("mint"),
                    data.get("signature")
                )
            else:
                logger.debug(f"Ignoring unknown action {action!r} on livestream {livestream_id}")

    except WebSocketDisconnect:
        pass

    except Exception as e:
        logger.error(f"WebSocket error on livestream {livestream_id}: {e}")

@router.websocket("/{livestream_id}/ws")
async def livestream_socket(
    websocket: WebSocket,
    livestream_id: int,
    token: Optional[str] = Query(None),
    manager: LivestreamManager = Depends(get_livestream_manager),
    connections: ConnectionManager = Depends(get_connection_manager)
):
    """Join a live broadcast, then relay chat and tips until the viewer leaves."""
    await websocket.accept()
    user = await auth_manager.identify(token)

    subscriber = str(uuid4())
    connections.connect(subscriber, websocket)

    try:
        try:
            await manager.join(livestream_id, subscriber, user)
        except LivestreamNotFoundError as e:
            await websocket.close(code=CLOSE_NOT_FOUND, reason=str(e))
            return
        except LivestreamRejectedError as e:
            await websocket.close(code=CLOSE_REJECTED, reason=str(e))
            return
        except Exception as e:
            logger.error(f"Could not join livestream {livestream_id}: {e}")
            logger.error(traceback.format_exc())
            await websocket.close(code=CLOSE_INTERNAL_ERROR)
            return

        try:
            await relay_viewer_actions(websocket, livestream_id, user, manager)
        finally:
            try:
                await manager.leave(livestream_id, subscriber, user)
            except Exception as e:
                logger.error(f"Could not leave livestream {livestream_id}: {e}")
                logger.error(traceback.format_exc())

    finally:
        connections.disconnect(subscriber)
