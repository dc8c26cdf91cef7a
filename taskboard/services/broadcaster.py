"""Sessions live (WebSocket): chaque push contient l'état complet, jamais un diff."""

import logging
from typing import Callable, List, Set

from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocket, WebSocketState

from taskboard.models.task import Task

logger = logging.getLogger(__name__)

FULL_STATE = "FULL_STATE"


def full_state_message(tasks: List[Task]) -> dict:
    return {
        "type": FULL_STATE,
        "tasks": [t.model_dump(mode="json", by_alias=True) for t in tasks],
    }


class Broadcaster:
    def __init__(self, snapshot: Callable[[], List[Task]]):
        # snapshot() lit le fichier: exécuté dans le threadpool
        self._snapshot = snapshot
        self._sessions: Set[WebSocket] = set()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def _payload(self) -> dict:
        tasks = await run_in_threadpool(self._snapshot)
        return full_state_message(tasks)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._sessions.add(websocket)
        logger.info("Live session connected (%d open)", len(self._sessions))
        # état courant tout de suite, pour cette session seulement
        if not await self._send(websocket, await self._payload()):
            self.disconnect(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._sessions:
            self._sessions.discard(websocket)
            logger.info("Live session closed (%d open)", len(self._sessions))

    async def broadcast(self) -> None:
        if not self._sessions:
            return
        payload = await self._payload()
        for websocket in list(self._sessions):
            if not await self._send(websocket, payload):
                self.disconnect(websocket)
        logger.debug("Full state pushed to %d session(s)", len(self._sessions))

    @staticmethod
    async def _send(websocket: WebSocket, payload: dict) -> bool:
        # une session fermée ou en erreur ne doit pas bloquer les autres
        if getattr(websocket, "application_state", WebSocketState.CONNECTED) != WebSocketState.CONNECTED:
            return False
        try:
            await websocket.send_json(payload)
        except Exception as e:
            logger.debug("Push to live session failed: %s", e)
            return False
        return True
