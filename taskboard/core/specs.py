"""Documents de spec (Markdown), un fichier par tâche: <specs_dir>/<task id>.md"""

import logging
import re
from pathlib import Path
from typing import List

from taskboard.core.errors import StorageError, ValidationError
from taskboard.core.fileio import atomic_write_text

logger = logging.getLogger(__name__)

# les ids sont des uuid; on refuse tout ce qui pourrait sortir du dossier
_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def is_safe_id(task_id: str) -> bool:
    return bool(task_id) and _SAFE_ID.match(task_id) is not None


class SpecRepository:
    def __init__(self, specs_dir: Path):
        self.specs_dir = Path(specs_dir)

    def path_for(self, task_id: str) -> Path:
        if not is_safe_id(task_id):
            raise ValidationError(f"invalid task id: {task_id!r}", field="taskId")
        return self.specs_dir / f"{task_id}.md"

    def get(self, task_id: str) -> str:
        # id hors format (tâche importée, ancien fichier): aucun document possible
        if not is_safe_id(task_id):
            return ""
        path = self.path_for(task_id)
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot read spec {path}: {e}") from e

    def put(self, task_id: str, text: str) -> None:
        path = self.path_for(task_id)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            raise StorageError(f"Cannot write spec {path}: {e}") from e
        logger.debug("Spec written task=%s (%d chars)", task_id, len(text))

    def delete(self, task_id: str) -> None:
        if not is_safe_id(task_id):
            return
        path = self.path_for(task_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Cannot delete spec {path}: {e}") from e
        logger.debug("Spec deleted task=%s", task_id)

    def list_ids(self) -> List[str]:
        if not self.specs_dir.is_dir():
            return []
        return sorted(p.stem for p in self.specs_dir.glob("*.md") if is_safe_id(p.stem))
