# routers/websocket_router.py — Live board updates over WebSocket
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query, HTTPException

from auth import authenticate_token
from board_state import BoardState, get_board
from database import DataService, get_data_service
from routers.tasks import task_out

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("hextask.ws")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Tracks open board sockets, one per user"""

    def __init__(self):
        self._connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self._connections[user_id] = websocket
        logger.info(f"WS connected: user={user_id[:8]}")

    def disconnect(self, user_id: str):
        self._connections.pop(user_id, None)
        logger.info(f"WS disconnected: user={user_id[:8]}")

    async def broadcast(self, message: dict, exclude_user: Optional[str] = None):
        disconnected = []
        for uid, ws in self._connections.items():
            if uid == exclude_user:
                continue
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.warning(f"WS send failed for user={uid[:8]}: {e}")
                disconnected.append(uid)
        for uid in disconnected:
            self.disconnect(uid)

    def get_online_users(self) -> list:
        return list(self._connections.keys())

    def get_stats(self) -> dict:
        return {"total_connections": len(self._connections)}


# Global connection manager
manager = ConnectionManager()


async def relay_board_event(event: str, payload: Dict[str, Any]) -> None:
    await manager.broadcast({"type": event, "payload": payload, "timestamp": _now()})


async def relay_auth_event(event: str, session: Optional[Dict[str, Any]]) -> None:
    await manager.broadcast({"type": "auth.state", "event": event, "timestamp": _now()})


def board_snapshot(board: BoardState) -> dict:
    return {
        "type": "board.snapshot",
        "tasks": [task_out(t) for t in board.tasks],
        "users": [u.model_dump(mode="json") for u in board.users],
        "error": board.error,
        "timestamp": _now(),
    }


@router.websocket("/ws/board")
async def board_socket(
    websocket: WebSocket,
    token: str = Query(...),
    board: BoardState = Depends(get_board),
    data: DataService = Depends(get_data_service),
):
    """Board snapshot on connect, then every board and auth event"""
    try:
        user = await authenticate_token(token, data)
    except HTTPException:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    await manager.connect(websocket, user.id)
    await board.ensure_loaded(user.access_token)
    await websocket.send_json({
        "type": "connected",
        "user_id": user.id,
        "online_users": manager.get_online_users(),
        "timestamp": _now(),
    })
    await websocket.send_json(board_snapshot(board))

    try:
        while True:
            message = await websocket.receive_json()
            msg_type = message.get("type", "")

            if msg_type == "ping":
                await websocket.send_json({"type": "pong", "timestamp": _now()})

            elif msg_type == "snapshot":
                await websocket.send_json(board_snapshot(board))

            elif msg_type == "refresh":
                await board.refresh(user.access_token)

    except WebSocketDisconnect:
        manager.disconnect(user.id)
