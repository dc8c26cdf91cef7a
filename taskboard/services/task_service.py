"""Task service

Point d'entrée unique des opérations: les routes HTTP, les outils MCP et
la CLI passent tous par ici, pour qu'une même entrée donne le même état.
"""

import logging
import re
from typing import List, Optional

from taskboard.core.errors import NotFoundError, ValidationError
from taskboard.core.specs import SpecRepository
from taskboard.core.store import TaskStore
from taskboard.models.task import Subtask, Task, now_iso
from taskboard.schemas.spec import BUNDLE_VERSION, ExportBundle, ExportedTask, Lesson
from taskboard.schemas.task import SubtaskPatch, TaskCreate, TaskPatch
from taskboard.services.nlp_service import classify

logger = logging.getLogger(__name__)

# sections "leçons" dans les specs
LESSON_SECTIONS = {
    "what_worked": "## ✅ What Worked",
    "what_didnt_work": "## ❌ What Didn't Work",
    "ai_agent_notes": "## 🧠 AI Agent Notes",
}


def extract_section(markdown: str, heading: str) -> Optional[str]:
    """Corps d'une section "## ..." jusqu'au titre suivant, None si absente"""
    match = re.search(re.escape(heading) + r"\n([\s\S]*?)(?=\n## |$)", markdown)
    if not match:
        return None
    return match.group(1).strip()


class TaskService:
    def __init__(self, store: TaskStore, specs: SpecRepository, backfill_topics: bool = False):
        self.store = store
        self.specs = specs
        self.backfill_topics = backfill_topics

    def _require_task(self, task_id: str) -> Task:
        task = self.store.get_by_id(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    # ============ TÂCHES ============

    def list_tasks(self) -> List[Task]:
        if self.backfill_topics:
            return self.store.backfill_topics(classify)
        return self.store.list_all()

    def get_task(self, task_id: str) -> Task:
        return self._require_task(task_id)

    def create_task(self, data: TaskCreate) -> Task:
        topic = data.topic or classify(data.title, data.description)
        task = self.store.create(
            title=data.title,
            description=data.description,
            github_repo=data.github_repo,
            branch=data.branch,
            topic=topic,
        )
        logger.info("Task created id=%s topic=%s", task.id, task.topic.value)
        return task

    def update_task(self, task_id: str, patch: TaskPatch) -> Task:
        task = self.store.update(task_id, patch)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def delete_task(self, task_id: str) -> None:
        if not self.store.delete(task_id):
            raise NotFoundError("Task", task_id)
        # le store ne connaît pas les specs
        self.specs.delete(task_id)
        logger.info("Task deleted id=%s", task_id)

    # ============ SOUS-TÂCHES ============

    def add_subtask(self, task_id: str, title: str) -> Subtask:
        subtask = self.store.add_subtask(task_id, title)
        if subtask is None:
            raise NotFoundError("Task", task_id)
        return subtask

    def update_subtask(self, task_id: str, subtask_id: str, patch: SubtaskPatch) -> Subtask:
        subtask = self.store.update_subtask(task_id, subtask_id, patch)
        if subtask is None:
            self._require_task(task_id)
            raise NotFoundError("Subtask", subtask_id)
        return subtask

    def delete_subtask(self, task_id: str, subtask_id: str) -> None:
        if not self.store.delete_subtask(task_id, subtask_id):
            self._require_task(task_id)
            raise NotFoundError("Subtask", subtask_id)

    def append_log(self, task_id: str, message: str, subtask_id: Optional[str] = None) -> Task:
        message = (message or "").strip()
        if not message:
            raise ValidationError("message must not be empty", field="message")
        if not self.store.append_log(task_id, message, subtask_id):
            self._require_task(task_id)
            raise NotFoundError("Subtask", subtask_id)
        return self._require_task(task_id)

    # ============ SPECS ============

    def get_spec(self, task_id: str) -> str:
        self._require_task(task_id)
        return self.specs.get(task_id)

    def put_spec(self, task_id: str, text: str) -> Task:
        task = self._require_task(task_id)
        self.specs.put(task_id, text or "")
        return task

    # ============ EXPORT / IMPORT ============

    def export_bundle(self) -> ExportBundle:
        tasks = [
            ExportedTask(**task.model_dump(), spec=self.specs.get(task.id))
            for task in self.store.list_all()
        ]
        return ExportBundle(exported_at=now_iso(), version=BUNDLE_VERSION, tasks=tasks)

    def import_bundle(self, bundle: ExportBundle) -> int:
        """Restaure un export: upsert par id, puis écrit les specs"""
        tasks = [Task(**item.model_dump(exclude={"spec"})) for item in bundle.tasks]
        # ids vérifiés avant d'écrire quoi que ce soit
        for task in tasks:
            self.specs.path_for(task.id)
        count = self.store.upsert_many(tasks)
        for item in bundle.tasks:
            if item.spec:
                self.specs.put(item.id, item.spec)
            else:
                self.specs.delete(item.id)
        logger.info("Imported %d task(s) from bundle version %s", count, bundle.version)
        return count

    # ============ LEÇONS ============

    def lessons(self) -> List[Lesson]:
        with_spec = set(self.specs.list_ids())
        out = []
        for task in self.store.list_all():
            if task.id not in with_spec:
                continue
            spec = self.specs.get(task.id)
            sections = {key: extract_section(spec, heading) for key, heading in LESSON_SECTIONS.items()}
            if all(v is None for v in sections.values()):
                continue
            out.append(
                Lesson(
                    task_id=task.id,
                    task_title=task.title,
                    status=task.status.value,
                    **{key: value or "" for key, value in sections.items()},
                )
            )
        return out
