import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from livequiz.realtime.hub import ConnectionHub, fast_dumps

logger = logging.getLogger(__name__)

router = APIRouter()

PONG = fast_dumps({"type": "pong"})


@router.websocket("/ws/quiz")
async def quiz_updates(websocket: WebSocket):
    """Viewer channel: receives every broadcast until it disconnects."""
    hub: ConnectionHub = websocket.app.state.hub
    await hub.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_text(PONG)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(websocket)
