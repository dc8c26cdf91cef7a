"""Serveur MCP (stdio) pour les agents de code.

Chaque outil = une opération du TaskService. Le serveur écrit directement
dans les fichiers de données: l'API HTTP n'a pas besoin de tourner, et
son watcher diffuse les changements aux navigateurs ouverts.
"""

import json
import logging
from typing import List, Optional

import pydantic
from fastmcp import FastMCP

from taskboard.core.config import Settings
from taskboard.core.errors import TaskboardError
from taskboard.core.logging_setup import setup_logging
from taskboard.core.specs import SpecRepository
from taskboard.core.store import TaskStore
from taskboard.models.task import TaskStatus
from taskboard.schemas.task import SubtaskPatch, TaskCreate, TaskPatch
from taskboard.services.task_service import TaskService

logger = logging.getLogger(__name__)

SERVER_NAME = "task-manager-control-tower"


def _dump(value) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _error(exc: Exception) -> str:
    if isinstance(exc, pydantic.ValidationError):
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        return f"Error: {field}: {first['msg']}"
    return f"Error: {exc}"


def _only_set(**fields) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


class TaskTools:
    """Outils exposés à l'agent. Retour texte: JSON, confirmation ou "Error: ..."."""

    def __init__(self, service: TaskService):
        self.service = service

    def list_tasks(self) -> str:
        """List all tasks. Returns ids, titles, status, progress, topic, done/total subtasks and timestamps."""
        try:
            tasks = self.service.list_tasks()
        except TaskboardError as e:
            return _error(e)
        summary = []
        for t in tasks:
            done = sum(1 for s in t.subtasks if s.status == TaskStatus.DONE)
            summary.append({
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "status": t.status.value,
                "progress": t.progress,
                "topic": t.topic.value,
                "subtasks": f"{done}/{len(t.subtasks)}",
                "createdAt": t.created_at,
                "updatedAt": t.updated_at,
            })
        return _dump(summary)

    def get_task(self, task_id: str) -> str:
        """Get one task with its subtasks and logs.

        Args:
            task_id: Task UUID
        """
        try:
            task = self.service.get_task(task_id)
        except TaskboardError as e:
            return _error(e)
        return _dump(task.model_dump(mode="json", by_alias=True))

    def create_task(
        self,
        title: str,
        description: str = "",
        github_repo: str = "",
        branch: str = "",
        topic: Optional[str] = None,
    ) -> str:
        """Create a task (status pending, progress 0). The topic is inferred when omitted.

        Args:
            title: Short task title
            description: Detailed task description
            github_repo: GitHub repository URL
            branch: Git branch name
            topic: frontend, backend, infra, testing, docs, bugfix, research or general
        """
        try:
            data = TaskCreate(**_only_set(
                title=title, description=description, github_repo=github_repo, branch=branch, topic=topic,
            ))
            task = self.service.create_task(data)
        except (TaskboardError, pydantic.ValidationError) as e:
            return _error(e)
        return "Task created\n\n" + _dump(task.model_dump(mode="json", by_alias=True))

    def update_task(
        self,
        task_id: str,
        status: Optional[str] = None,
        progress: Optional[int] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        topic: Optional[str] = None,
        github_repo: Optional[str] = None,
        branch: Optional[str] = None,
        pr_url: Optional[str] = None,
        associated_files: Optional[List[str]] = None,
    ) -> str:
        """Update task fields. Only the given fields change.

        Args:
            task_id: Task UUID
            status: pending, in-progress, done, failed or blocked
            progress: Progress percentage 0-100 (recomputed when the task has subtasks)
            title: New title
            description: New description
            topic: New topic
            github_repo: GitHub repository URL
            branch: Git branch name
            pr_url: Pull request URL
            associated_files: File paths touched by the task
        """
        try:
            patch = TaskPatch(**_only_set(
                status=status, progress=progress, title=title, description=description, topic=topic,
                github_repo=github_repo, branch=branch, pr_url=pr_url, associated_files=associated_files,
            ))
            task = self.service.update_task(task_id, patch)
        except (TaskboardError, pydantic.ValidationError) as e:
            return _error(e)
        return "Task updated\n\n" + _dump(task.model_dump(mode="json", by_alias=True))

    def add_subtask(self, task_id: str, title: str) -> str:
        """Add a subtask. The parent progress is recomputed.

        Args:
            task_id: Parent task UUID
            title: Subtask title
        """
        try:
            subtask = self.service.add_subtask(task_id, title)
            parent = self.service.get_task(task_id)
        except TaskboardError as e:
            return _error(e)
        return f"Subtask added\n\nID: {subtask.id}\nTitle: {subtask.title}\nParent: {parent.title}"

    def update_subtask(
        self,
        task_id: str,
        subtask_id: str,
        status: Optional[str] = None,
        progress: Optional[int] = None,
        title: Optional[str] = None,
    ) -> str:
        """Update a subtask status or progress. The parent progress is recomputed.

        Args:
            task_id: Parent task UUID
            subtask_id: Subtask UUID
            status: pending, in-progress, done, failed or blocked
            progress: Subtask progress 0-100
            title: New subtask title
        """
        try:
            patch = SubtaskPatch(**_only_set(status=status, progress=progress, title=title))
            self.service.update_subtask(task_id, subtask_id, patch)
            parent = self.service.get_task(task_id)
        except (TaskboardError, pydantic.ValidationError) as e:
            return _error(e)
        return f"Subtask updated. Parent progress: {parent.progress}% ({parent.status.value})"

    def log_task(self, task_id: str, message: str, subtask_id: Optional[str] = None) -> str:
        """Append a log entry to a task, or to one of its subtasks.

        Args:
            task_id: Task UUID
            message: Log message
            subtask_id: Optional subtask UUID to log against
        """
        try:
            task = self.service.append_log(task_id, message, subtask_id)
        except TaskboardError as e:
            return _error(e)
        return f'Log entry added to task "{task.title}"'

    def get_spec(self, task_id: str) -> str:
        """Read the Markdown spec document of a task.

        Args:
            task_id: Task UUID
        """
        try:
            spec = self.service.get_spec(task_id)
        except TaskboardError as e:
            return _error(e)
        return spec or "No spec exists for this task yet."

    def update_spec(self, task_id: str, spec: str) -> str:
        """Create or replace the Markdown spec document of a task.

        Args:
            task_id: Task UUID
            spec: Full Markdown content
        """
        try:
            task = self.service.put_spec(task_id, spec)
        except TaskboardError as e:
            return _error(e)
        return f'Spec updated for task "{task.title}"'

    def delete_task(self, task_id: str) -> str:
        """Delete a task with its subtasks, logs and spec.

        Args:
            task_id: Task UUID
        """
        try:
            title = self.service.get_task(task_id).title
            self.service.delete_task(task_id)
        except TaskboardError as e:
            return _error(e)
        return f'Task "{title}" deleted.'


TOOL_NAMES = (
    "list_tasks",
    "get_task",
    "create_task",
    "update_task",
    "add_subtask",
    "update_subtask",
    "log_task",
    "get_spec",
    "update_spec",
    "delete_task",
)


def build_server(service: TaskService) -> FastMCP:
    mcp = FastMCP(SERVER_NAME)
    tools = TaskTools(service)
    for name in TOOL_NAMES:
        mcp.tool(getattr(tools, name))
    return mcp


def run(settings: Settings) -> None:
    setup_logging(settings.LOG_LEVEL)
    service = TaskService(
        TaskStore(settings.TASKS_FILE),
        SpecRepository(settings.SPECS_DIR),
        backfill_topics=settings.BACKFILL_TOPICS,
    )
    logger.info("MCP server on stdio, data file %s", settings.TASKS_FILE)
    build_server(service).run(transport="stdio")
