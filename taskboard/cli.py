"""CLI: serveur HTTP, serveur MCP et commandes rapides sur les tâches."""

from pathlib import Path
from typing import Optional

import click
import pydantic

from taskboard.core.config import Settings
from taskboard.core.errors import TaskboardError
from taskboard.core.logging_setup import setup_logging
from taskboard.core.specs import SpecRepository
from taskboard.core.store import TaskStore
from taskboard.models.task import TaskStatus
from taskboard.schemas.task import SubtaskPatch, TaskCreate, TaskPatch
from taskboard.services.task_service import TaskService

STATUSES = click.Choice([s.value for s in TaskStatus])


def _service(settings: Settings) -> TaskService:
    return TaskService(
        TaskStore(settings.TASKS_FILE),
        SpecRepository(settings.SPECS_DIR),
        backfill_topics=settings.BACKFILL_TOPICS,
    )


def _fail(exc: Exception) -> click.ClickException:
    if isinstance(exc, pydantic.ValidationError):
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        return click.ClickException(f"{field}: {first['msg']}")
    return click.ClickException(str(exc))


@click.group()
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Data directory (tasks.json + specs/). Defaults to TASK_MANAGER_DATA_DIR or ./data.")
@click.option("--log-level", default=None, help="Logging level (INFO, DEBUG...).")
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[Path], log_level: Optional[str]):
    """Task Manager Control Tower."""
    ctx.obj = Settings(data_dir=data_dir, log_level=log_level)


@cli.command()
@click.option("--host", default=None, help="Bind address.")
@click.option("--port", type=int, default=None, help="Bind port.")
@click.pass_obj
def serve(settings: Settings, host: Optional[str], port: Optional[int]):
    """Run the HTTP API, the live push channel and the web client."""
    import uvicorn

    from taskboard.main import create_app

    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=host or settings.HOST, port=port or settings.PORT)


@cli.command()
@click.pass_obj
def mcp(settings: Settings):
    """Run the MCP tool server on stdio."""
    from taskboard.mcp_server import run

    run(settings)


@cli.command()
@click.option("--title", required=True, help="Task title.")
@click.option("--desc", "description", default="", help="Task description.")
@click.option("--repo", "github_repo", default="", help="GitHub repository URL.")
@click.option("--branch", default="", help="Git branch.")
@click.pass_obj
def create(settings: Settings, title: str, description: str, github_repo: str, branch: str):
    """Create a task."""
    try:
        data = TaskCreate(title=title, description=description, github_repo=github_repo, branch=branch)
        task = _service(settings).create_task(data)
    except (TaskboardError, pydantic.ValidationError) as e:
        raise _fail(e)
    click.echo(f'Task created: {task.id} "{task.title}" [{task.topic.value}]')


@cli.command()
@click.option("--id", "task_id", required=True, help="Task id.")
@click.option("--status", type=STATUSES, default=None)
@click.option("--progress", type=click.IntRange(0, 100), default=None)
@click.option("--title", default=None)
@click.option("--desc", "description", default=None)
@click.option("--repo", "github_repo", default=None)
@click.option("--branch", default=None)
@click.option("--pr", "pr_url", default=None, help="Pull request URL.")
@click.option("--add-subtask", default=None, help="Append a subtask with this title.")
@click.option("--subtask-id", default=None, help="Apply --status/--progress/--title to this subtask.")
@click.pass_obj
def update(settings: Settings, task_id: str, add_subtask: Optional[str], subtask_id: Optional[str], **fields):
    """Update a task, add a subtask, or update a subtask."""
    service = _service(settings)
    fields = {k: v for k, v in fields.items() if v is not None}
    try:
        if add_subtask:
            subtask = service.add_subtask(task_id, add_subtask)
            click.echo(f"Subtask added: {subtask.id} \"{subtask.title}\"")
        elif subtask_id:
            patch = SubtaskPatch(**{k: v for k, v in fields.items() if k in ("status", "progress", "title")})
            subtask = service.update_subtask(task_id, subtask_id, patch)
            parent = service.get_task(task_id)
            click.echo(f"Subtask {subtask.id} is {subtask.status.value}, parent progress {parent.progress}%")
        else:
            if not fields:
                raise click.UsageError("nothing to update")
            task = service.update_task(task_id, TaskPatch(**fields))
            click.echo(f"Task {task.id} is {task.status.value} at {task.progress}%")
    except (TaskboardError, pydantic.ValidationError) as e:
        raise _fail(e)


@cli.command()
@click.option("--id", "task_id", required=True, help="Task id.")
@click.option("--msg", "message", required=True, help="Log message.")
@click.option("--subtask-id", default=None, help="Log against this subtask.")
@click.pass_obj
def log(settings: Settings, task_id: str, message: str, subtask_id: Optional[str]):
    """Append a log entry to a task or subtask."""
    try:
        task = _service(settings).append_log(task_id, message, subtask_id)
    except TaskboardError as e:
        raise _fail(e)
    click.echo(f'Log entry added to task "{task.title}"')


if __name__ == "__main__":
    cli()
