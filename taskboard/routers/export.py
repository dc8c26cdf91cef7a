from fastapi import APIRouter, Depends, Response
from typing import List

from taskboard.core.deps import get_service
from taskboard.schemas.spec import ExportBundle, ImportResponse, Lesson
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/api", tags=["export"])


@router.get("/export", response_model=ExportBundle)
def export_tasks(response: Response, service: TaskService = Depends(get_service)):
    response.headers["Content-Disposition"] = 'attachment; filename="task-manager-export.json"'
    return service.export_bundle()


@router.post("/import", response_model=ImportResponse)
def import_tasks(bundle: ExportBundle, service: TaskService = Depends(get_service)):
    return ImportResponse(imported=service.import_bundle(bundle))


@router.get("/lessons", response_model=List[Lesson])
def lessons(service: TaskService = Depends(get_service)):
    return service.lessons()
