from fastapi import APIRouter, Depends, status
from typing import List

from taskboard.core.deps import get_service
from taskboard.models.task import Subtask, Task
from taskboard.schemas.task import (
    LogCreate,
    SubtaskCreate,
    SubtaskPatch,
    SuccessResponse,
    TaskCreate,
    TaskPatch,
)
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("", response_model=List[Task])
def list_tasks(service: TaskService = Depends(get_service)):
    return service.list_tasks()


@router.post("", response_model=Task, status_code=status.HTTP_201_CREATED)
def create_task(task_data: TaskCreate, service: TaskService = Depends(get_service)):
    return service.create_task(task_data)


@router.get("/{task_id}", response_model=Task)
def get_task(task_id: str, service: TaskService = Depends(get_service)):
    return service.get_task(task_id)


@router.patch("/{task_id}", response_model=Task)
def update_task(task_id: str, task_data: TaskPatch, service: TaskService = Depends(get_service)):
    return service.update_task(task_id, task_data)


@router.delete("/{task_id}", response_model=SuccessResponse)
def delete_task(task_id: str, service: TaskService = Depends(get_service)):
    # supprime aussi sous-tâches, logs et spec
    service.delete_task(task_id)
    return SuccessResponse()


# ============ SOUS-TÂCHES ============

@router.post("/{task_id}/subtasks", response_model=Subtask, status_code=status.HTTP_201_CREATED)
def add_subtask(task_id: str, subtask_data: SubtaskCreate, service: TaskService = Depends(get_service)):
    return service.add_subtask(task_id, subtask_data.title)


@router.patch("/{task_id}/subtasks/{subtask_id}", response_model=Subtask)
def update_subtask(
    task_id: str,
    subtask_id: str,
    subtask_data: SubtaskPatch,
    service: TaskService = Depends(get_service),
):
    return service.update_subtask(task_id, subtask_id, subtask_data)


@router.delete("/{task_id}/subtasks/{subtask_id}", response_model=SuccessResponse)
def delete_subtask(task_id: str, subtask_id: str, service: TaskService = Depends(get_service)):
    service.delete_subtask(task_id, subtask_id)
    return SuccessResponse()


@router.post("/{task_id}/logs", response_model=Task)
def append_log(task_id: str, log_data: LogCreate, service: TaskService = Depends(get_service)):
    return service.append_log(task_id, log_data.message, log_data.subtask_id)
