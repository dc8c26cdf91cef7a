import pydantic
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from taskboard.core.deps import get_service
from taskboard.schemas.spec import SpecResponse, SpecUpdate, SpecWriteResponse
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/api/tasks", tags=["specs"])


@router.get("/{task_id}/spec", response_model=SpecResponse)
def get_spec(task_id: str, service: TaskService = Depends(get_service)):
    return SpecResponse(task_id=task_id, spec=service.get_spec(task_id))


@router.put("/{task_id}/spec", response_model=SpecWriteResponse)
async def put_spec(task_id: str, request: Request, service: TaskService = Depends(get_service)):
    """Accepte du Markdown brut (text/plain) ou du JSON {"spec": "..."}"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("text/plain"):
        try:
            content = (await request.body()).decode("utf-8")
        except UnicodeDecodeError:
            raise HTTPException(status_code=422, detail="Spec body must be UTF-8")
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=422, detail="Invalid JSON body")
        if isinstance(payload, str):
            content = payload
        else:
            try:
                content = SpecUpdate.model_validate(payload).spec
            except pydantic.ValidationError as e:
                raise HTTPException(
                    status_code=422,
                    detail=e.errors(include_url=False),
                )

    # écriture disque hors de la boucle
    await run_in_threadpool(service.put_spec, task_id, content)
    return SpecWriteResponse(task_id=task_id)
