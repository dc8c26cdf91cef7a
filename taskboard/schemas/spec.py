from typing import List

from pydantic import Field

from taskboard.models.task import CamelModel, Task

# Schemas specs / export

BUNDLE_VERSION = "1.0.0"


class SpecUpdate(CamelModel):
    spec: str = ""


class SpecResponse(CamelModel):
    task_id: str
    spec: str


class SpecWriteResponse(CamelModel):
    task_id: str
    success: bool = True


class ExportedTask(Task):
    """Tâche + texte de sa spec"""
    spec: str = ""


class ExportBundle(CamelModel):
    exported_at: str
    version: str = BUNDLE_VERSION
    tasks: List[ExportedTask] = Field(default_factory=list)


class ImportResponse(CamelModel):
    imported: int


class Lesson(CamelModel):
    task_id: str
    task_title: str
    status: str
    what_worked: str = ""
    what_didnt_work: str = ""
    ai_agent_notes: str = ""
