"""
Détection des changements du fichier de tâches.

Deux sources alimentent le même chemin:
- watchdog, pour les écritures de n'importe quel processus (CLI, serveur MCP...)
- poke(), appelé par le store après une écriture dans ce processus

Chaque événement réarme un timer sur la boucle asyncio; la notification
part après une période de calme. Un hash du contenu évite de notifier
deux fois le même état.
"""

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from taskboard.core.errors import NotificationError

logger = logging.getLogger(__name__)

WRITE_EVENTS = {"created", "modified", "moved", "deleted", "closed"}


def file_digest(path: Path) -> Optional[str]:
    try:
        return hashlib.sha256(Path(path).read_bytes()).hexdigest()
    except FileNotFoundError:
        return None


class _TasksFileHandler(FileSystemEventHandler):
    """Filtre les événements du dossier sur le seul fichier surveillé"""

    def __init__(self, notifier: "ChangeNotifier"):
        self.notifier = notifier

    def _matches(self, raw_path) -> bool:
        if not raw_path:
            return False
        return os.path.realpath(os.fsdecode(raw_path)) == self.notifier.target

    def on_any_event(self, event):
        # les lectures (opened, closed_no_write) ne comptent pas, sinon le hash
        # relu par le notifier relancerait le timer en boucle
        if event.is_directory or event.event_type not in WRITE_EVENTS:
            return
        # écriture temp + rename: c'est dest_path qui vise notre fichier
        if self._matches(event.src_path) or self._matches(getattr(event, "dest_path", "")):
            self.notifier.poke()


class ChangeNotifier:
    def __init__(
        self,
        path: Path,
        on_change: Callable[[], Awaitable[None]],
        debounce_ms: int = 200,
        polling: bool = False,
    ):
        self.path = Path(path)
        self.target = os.path.realpath(self.path)
        self.on_change = on_change
        self.debounce = debounce_ms / 1000.0
        self.polling = polling
        self.available = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._digest: Optional[str] = None
        self._emit_lock: Optional[asyncio.Lock] = None
        self._pending: set = set()

    # ============ CYCLE DE VIE ============

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """À appeler depuis la boucle qui diffusera les notifications"""
        self._loop = loop or asyncio.get_running_loop()
        self._emit_lock = asyncio.Lock()
        self._digest = file_digest(self.path)

        try:
            self._observer = self._start_observer()
        except Exception as e:
            # pas de crash: le push live ne couvre plus que les écritures locales
            err = NotificationError(f"Cannot watch {self.path}: {e}")
            logger.error("Live notifications degraded: %s", err)
            self._observer = None
            self.available = False
            return

        self.available = True
        logger.info(
            "Watching %s (%s, debounce=%dms)",
            self.path, "polling" if self.polling else "native", int(self.debounce * 1000),
        )

    def _start_observer(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        observer = PollingObserver() if self.polling else Observer()
        observer.schedule(_TasksFileHandler(self), str(self.path.parent), recursive=False)
        observer.start()
        return observer

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self.available = False
        self._loop = None

    # ============ DEBOUNCE ============

    def poke(self) -> None:
        """Signale un changement possible. Utilisable depuis n'importe quel thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._arm)
        except RuntimeError:
            # boucle fermée entre-temps (arrêt du serveur)
            logger.debug("Event loop closed, change event dropped")

    def _arm(self) -> None:
        if self._loop is None:
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._loop is None:
            return
        task = self._loop.create_task(self._check_and_emit())
        # garder une référence tant que la tâche tourne
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _check_and_emit(self) -> None:
        async with self._emit_lock:
            try:
                digest = await asyncio.to_thread(file_digest, self.path)
            except OSError as e:
                logger.warning("Cannot read %s after change event: %s", self.path, e)
                return
            if digest == self._digest:
                logger.debug("Change event without new content, skipped")
                return
            self._digest = digest
            try:
                await self.on_change()
            except Exception:
                logger.exception("Change notification handler failed")
