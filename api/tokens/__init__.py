"""Artist token API endpoints."""

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from broadcast import ConnectionManager, trades_topic
from tokens import GraduationManager, GraduationError, TokenNotFoundError, bonding_curve_price
from ..dependencies import get_connection_manager, get_graduation_manager

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/tokens",
    tags=["Tokens"]
)

CLOSE_NOT_FOUND = 4004

@router.get("/{token_id}")
async def get_token(
    token_id: int,
    manager: GraduationManager = Depends(get_graduation_manager)
):
    """Get a token with its current curve price and liquidity pools."""
    token = await manager.store.get_token(token_id)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Token {token_id} not found"
        )

    pools = await manager.store.list_liquidity_pools(token_id)
    return {
        "token": token.to_json(),
        "bonding_curve_price": None if token.graduated else str(bonding_curve_price(token.supply or 0)),
        "graduation_threshold_usd": str(manager.threshold),
        "liquidity_pools": [pool.to_json() for pool in pools]
    }

@router.post("/{token_id}/graduation")
async def evaluate_graduation(
    token_id: int,
    manager: GraduationManager = Depends(get_graduation_manager)
):
    """Graduate the token now if its market cap has reached the threshold."""
    try:
        pool = await manager.evaluate_graduation(token_id)
    except TokenNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except GraduationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

    return {
        "graduated": pool is not None,
        "pool": pool.to_json() if pool else None
    }

@router.websocket("/{token_id}/trades")
async def trades_socket(
    websocket: WebSocket,
    token_id: int,
    manager: GraduationManager = Depends(get_graduation_manager),
    connections: ConnectionManager = Depends(get_connection_manager)
):
    """Stream trade and graduation events for a token."""
    await websocket.accept()

    if await manager.store.get_token(token_id) is None:
        await websocket.close(code=CLOSE_NOT_FOUND, reason=f"Token {token_id} not found")
        return

    subscriber = str(uuid4())
    connections.connect(subscriber, websocket)
    connections.subscribe(subscriber, trades_topic(token_id))

    try:
        while True:
            # Clients only listen; pings are answered so they can check the subscription
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error on trades for token {token_id}: {e}")
    finally:
        connections.disconnect(subscriber)
