"""Dashboard WebSocket — pushes live entity state and alarms to frontends.

Architecture:
    producers  →  /ws/position   →  pipeline ingests fix
                                         ↓
    FE         ←  /ws/dashboard  ←  hub broadcasts entity_update / alarm
"""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from safezone_core.services.subscribers import SubscriberHub


def create_dashboard_router(hub: SubscriberHub) -> APIRouter:
    """Factory that creates the dashboard WebSocket endpoint."""

    router = APIRouter()

    @router.websocket("/ws/dashboard")
    async def dashboard_ws(websocket: WebSocket) -> None:
        await websocket.accept()
        await hub.add(websocket)
        try:
            # FE just listens; answer pings to keep proxies happy
            while True:
                data = await websocket.receive_text()
                if data.strip().lower() == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            await hub.remove(websocket)

    return router
