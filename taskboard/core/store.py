"""Stockage JSON des tâches.

Chaque opération relit tout le fichier, modifie la collection en mémoire
puis réécrit tout le fichier avant de rendre la main. Un verrou par
processus donne un ordre total aux opérations; entre processus c'est le
dernier écrivain qui gagne.
"""

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pydantic
from dateutil.parser import isoparse

from taskboard.core.errors import StorageError, ValidationError
from taskboard.core.fileio import atomic_write_text
from taskboard.models.task import LogEntry, Subtask, Task, TaskStatus, Topic, now_iso
from taskboard.schemas.task import SubtaskPatch, TaskPatch

logger = logging.getLogger(__name__)


# ============ RÈGLES DÉRIVÉES ============

def percent_done(done: int, total: int) -> int:
    """round(100 * done / total), arrondi au demi supérieur (1/8 -> 13)"""
    return (200 * done + total) // (2 * total)


def recompute(task: Task) -> None:
    """Progression depuis les sous-tâches, puis passage auto à done.

    Le passage à done ne se fait que depuis in-progress: une tâche pending
    à 100% reste pending, et une progression qui redescend ne rouvre pas
    une tâche done.
    """
    if task.subtasks:
        done = sum(1 for s in task.subtasks if s.status == TaskStatus.DONE)
        task.progress = percent_done(done, len(task.subtasks))
    if task.progress == 100 and task.status == TaskStatus.IN_PROGRESS:
        task.status = TaskStatus.DONE


def touch(entity, timestamp: str) -> None:
    # updatedAt >= createdAt même si l'horloge recule
    try:
        if isoparse(timestamp) < isoparse(entity.created_at):
            timestamp = entity.created_at
    except (ValueError, TypeError):
        # horodatage hérité illisible ou sans fuseau: on garde le nouveau
        pass
    entity.updated_at = timestamp


class TaskStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._listeners: List[Callable[[], None]] = []

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Appelé après chaque écriture réussie"""
        self._listeners.append(listener)

    # ============ FICHIER ============

    def _read(self, strict: bool = False) -> List[Task]:
        if not self.path.exists():
            try:
                self._write([])
            except StorageError:
                if strict:
                    raise
                # lecture seule: on sert une liste vide, l'écriture suivante signalera l'erreur
                logger.error("Cannot create %s, serving an empty list", self.path)
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            if strict:
                # avant une écriture: ne pas écraser un fichier qu'on n'a pas pu lire
                raise StorageError(f"Cannot read {self.path}: {e}") from e
            logger.error("Cannot read %s, serving an empty list: %s", self.path, e)
            return []

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Unparseable task file %s, treating it as empty", self.path)
            return []
        if not isinstance(data, list):
            logger.warning("Task file %s does not hold a list, treating it as empty", self.path)
            return []

        tasks = []
        for item in data:
            try:
                tasks.append(Task.model_validate(item))
            except pydantic.ValidationError as e:
                logger.warning("Skipping malformed task record in %s: %s", self.path, e.errors()[:1])
        return tasks

    def _write(self, tasks: List[Task]) -> None:
        payload = json.dumps(
            [t.model_dump(mode="json", by_alias=True) for t in tasks],
            indent=2,
            ensure_ascii=False,
        )
        try:
            atomic_write_text(self.path, payload)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

        for listener in self._listeners:
            try:
                listener()
            except Exception:
                logger.exception("Store write listener failed")

    @staticmethod
    def _find(items, item_id: str):
        return next((i for i in items if i.id == item_id), None)

    # ============ LECTURE ============

    def list_all(self) -> List[Task]:
        with self._lock:
            return self._read()

    def get_by_id(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._find(self._read(), task_id)

    # ============ TÂCHES ============

    def create(
        self,
        title: str,
        description: str = "",
        github_repo: str = "",
        branch: str = "",
        topic: Optional[Topic] = None,
    ) -> Task:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required", field="title")

        ts = now_iso()
        task = Task(
            id=str(uuid.uuid4()),
            title=title,
            description=description or "",
            github_repo=github_repo or "",
            branch=branch or "",
            topic=topic or Topic.UNCLASSIFIED,
            created_at=ts,
            updated_at=ts,
            logs=[LogEntry(timestamp=ts, message=f"Task created: {title}")],
        )
        with self._lock:
            tasks = self._read(strict=True)
            tasks.append(task)
            self._write(tasks)
        logger.debug("Task created id=%s", task.id)
        return task

    def update(self, task_id: str, patch: TaskPatch) -> Optional[Task]:
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        with self._lock:
            tasks = self._read(strict=True)
            task = self._find(tasks, task_id)
            if task is None:
                return None
            for field, value in changes.items():
                setattr(task, field, value)
            touch(task, now_iso())
            recompute(task)
            self._write(tasks)
            return task

    def delete(self, task_id: str) -> bool:
        with self._lock:
            tasks = self._read(strict=True)
            task = self._find(tasks, task_id)
            if task is None:
                return False
            tasks.remove(task)
            self._write(tasks)
        logger.debug("Task deleted id=%s", task_id)
        return True

    # ============ SOUS-TÂCHES ============

    def add_subtask(self, task_id: str, title: str) -> Optional[Subtask]:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required", field="title")

        with self._lock:
            tasks = self._read(strict=True)
            task = self._find(tasks, task_id)
            if task is None:
                return None
            ts = now_iso()
            subtask = Subtask(
                id=str(uuid.uuid4()),
                title=title,
                created_at=ts,
                updated_at=ts,
                logs=[LogEntry(timestamp=ts, message=f"Subtask created: {title}")],
            )
            task.subtasks.append(subtask)
            touch(task, ts)
            # le dénominateur change: recalcul immédiat
            recompute(task)
            self._write(tasks)
            return subtask

    def update_subtask(self, task_id: str, subtask_id: str, patch: SubtaskPatch) -> Optional[Subtask]:
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        with self._lock:
            tasks = self._read(strict=True)
            task = self._find(tasks, task_id)
            if task is None:
                return None
            subtask = self._find(task.subtasks, subtask_id)
            if subtask is None:
                return None
            for field, value in changes.items():
                setattr(subtask, field, value)
            ts = now_iso()
            touch(subtask, ts)
            touch(task, ts)
            recompute(task)
            self._write(tasks)
            return subtask

    def delete_subtask(self, task_id: str, subtask_id: str) -> bool:
        with self._lock:
            tasks = self._read(strict=True)
            task = self._find(tasks, task_id)
            if task is None:
                return False
            subtask = self._find(task.subtasks, subtask_id)
            if subtask is None:
                return False
            task.subtasks.remove(subtask)
            touch(task, now_iso())
            # liste vide: la progression garde sa dernière valeur
            recompute(task)
            self._write(tasks)
            return True

    # ============ LOGS ============

    def append_log(self, task_id: str, message: str, subtask_id: Optional[str] = None) -> bool:
        with self._lock:
            tasks = self._read(strict=True)
            task = self._find(tasks, task_id)
            if task is None:
                return False
            ts = now_iso()
            entry = LogEntry(timestamp=ts, message=message)
            if subtask_id:
                subtask = self._find(task.subtasks, subtask_id)
                if subtask is None:
                    return False
                subtask.logs.append(entry)
                touch(subtask, ts)
            else:
                task.logs.append(entry)
            touch(task, ts)
            self._write(tasks)
            return True

    # ============ MAINTENANCE ============

    def upsert_many(self, incoming: Iterable[Task]) -> int:
        """Remplace les tâches de même id, ajoute les autres à la fin"""
        incoming = list(incoming)
        with self._lock:
            tasks = self._read(strict=True)
            index: Dict[str, int] = {t.id: i for i, t in enumerate(tasks)}
            for task in incoming:
                if task.id in index:
                    tasks[index[task.id]] = task
                else:
                    index[task.id] = len(tasks)
                    tasks.append(task)
            self._write(tasks)
        return len(incoming)

    def backfill_topics(self, classifier: Callable[[str, str], Topic]) -> List[Task]:
        """Classe les tâches sans topic et persiste le résultat si besoin"""
        with self._lock:
            tasks = self._read(strict=True)
            dirty = False
            for task in tasks:
                if task.topic == Topic.UNCLASSIFIED:
                    task.topic = classifier(task.title, task.description)
                    dirty = True
            if dirty:
                self._write(tasks)
            return tasks
