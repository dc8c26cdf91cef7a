"""Task model (forme persistée dans tasks.json)"""

from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    FAILED = "failed"
    BLOCKED = "blocked"


class Topic(str, Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"
    INFRA = "infra"
    TESTING = "testing"
    DOCS = "docs"
    BUGFIX = "bugfix"
    RESEARCH = "research"
    GENERAL = "general"
    # tâches créées avant le classifieur
    UNCLASSIFIED = "unclassified"


def now_iso() -> str:
    # même format que Date.toISOString(): millisecondes + "Z"
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Attributs snake_case en Python, clés camelCase dans le JSON"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LogEntry(CamelModel):
    timestamp: str
    message: str

    model_config = ConfigDict(frozen=True)


class Subtask(CamelModel):
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    logs: List[LogEntry] = Field(default_factory=list)
    created_at: str
    updated_at: str


class Task(CamelModel):
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    topic: Topic = Topic.UNCLASSIFIED
    subtasks: List[Subtask] = Field(default_factory=list)
    github_repo: str = ""
    branch: str = ""
    pr_url: str = ""
    associated_files: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    logs: List[LogEntry] = Field(default_factory=list)

    @field_validator("topic", mode="before")
    @classmethod
    def unknown_topic_as_unclassified(cls, value):
        # topic absent ou libellé inconnu -> "unclassified" au lieu de rejeter la tâche
        if value in (None, ""):
            return Topic.UNCLASSIFIED
        try:
            return Topic(value)
        except ValueError:
            return Topic.UNCLASSIFIED

    @field_validator("description", "github_repo", "branch", "pr_url", mode="before")
    @classmethod
    def none_as_empty(cls, value):
        return "" if value is None else value
