"""Pydantic schemas for task request/response validation."""

from typing import List, Optional

from pydantic import Field, field_validator

from taskboard.models.task import CamelModel, TaskStatus, Topic


def _clean_title(value):
    if isinstance(value, str):
        value = value.strip()
    return value


class TaskCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    github_repo: str = ""
    branch: str = ""
    topic: Optional[Topic] = None  # None -> classé automatiquement

    strip_title = field_validator("title", mode="before")(_clean_title)


class TaskPatch(CamelModel):
    """Mise à jour partielle: seuls les champs envoyés sont appliqués.

    id et createdAt ne font pas partie du patch, ils ne sont donc jamais
    modifiables de l'extérieur.
    """

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    topic: Optional[Topic] = None
    github_repo: Optional[str] = None
    branch: Optional[str] = None
    pr_url: Optional[str] = None
    associated_files: Optional[List[str]] = None

    strip_title = field_validator("title", mode="before")(_clean_title)

    @field_validator("associated_files")
    @classmethod
    def unique_files(cls, value):
        # ensemble de chemins: doublons retirés, ordre conservé
        if value is None:
            return value
        return list(dict.fromkeys(value))


class SubtaskCreate(CamelModel):
    title: str = Field(min_length=1)

    strip_title = field_validator("title", mode="before")(_clean_title)


class SubtaskPatch(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    status: Optional[TaskStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)

    strip_title = field_validator("title", mode="before")(_clean_title)


class LogCreate(CamelModel):
    message: str = Field(min_length=1)
    subtask_id: Optional[str] = None


class SuccessResponse(CamelModel):
    success: bool = True
