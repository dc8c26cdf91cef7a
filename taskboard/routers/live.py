import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter()

logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    """Push de l'état complet: à la connexion puis à chaque changement du fichier"""
    broadcaster = websocket.app.state.broadcaster
    await broadcaster.connect(websocket)
    try:
        # les clients n'envoient rien d'utile, on lit juste jusqu'à la fermeture
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Live session disconnected by client")
    finally:
        broadcaster.disconnect(websocket)
