from fastapi import Request

from taskboard.services.task_service import TaskService


def get_service(request: Request) -> TaskService:
    """Dépendance service (une instance par application)"""
    return request.app.state.service
