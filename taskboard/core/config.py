from os import getenv
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# .env local (ignoré par git), les variables déjà exportées gardent la priorité
load_dotenv(override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    """Réglages de l'application, lus depuis l'environnement.

    Les tests passent des overrides explicites (data_dir=tmp_path, ...)
    plutôt que de modifier os.environ.
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        tasks_file: Optional[Path] = None,
        specs_dir: Optional[Path] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        debounce_ms: Optional[int] = None,
        watch_polling: Optional[bool] = None,
        backfill_topics: Optional[bool] = None,
        client_dist: Optional[Path] = None,
        cors_origins: Optional[List[str]] = None,
        log_level: Optional[str] = None,
    ):
        self.DATA_DIR = Path(data_dir or getenv("TASK_MANAGER_DATA_DIR", "data")).expanduser()
        self.TASKS_FILE = Path(
            tasks_file or getenv("TASK_MANAGER_DATA_FILE") or self.DATA_DIR / "tasks.json"
        ).expanduser()
        self.SPECS_DIR = Path(
            specs_dir or getenv("TASK_MANAGER_SPECS_DIR") or self.DATA_DIR / "specs"
        ).expanduser()

        self.HOST = host or getenv("TASK_MANAGER_HOST", "127.0.0.1")
        self.PORT = port if port is not None else _env_int("TASK_MANAGER_PORT", 4567)

        # fenêtre de calme avant de notifier un changement du fichier
        self.DEBOUNCE_MS = debounce_ms if debounce_ms is not None else _env_int("TASK_MANAGER_DEBOUNCE_MS", 200)
        self.WATCH_POLLING = (
            watch_polling if watch_polling is not None else _env_bool("TASK_MANAGER_WATCH_POLLING", False)
        )
        # ancien comportement: classer + persister les topics manquants pendant un GET /api/tasks
        self.BACKFILL_TOPICS = (
            backfill_topics if backfill_topics is not None else _env_bool("TASK_MANAGER_BACKFILL_TOPICS", False)
        )

        self.CLIENT_DIST = Path(client_dist or getenv("TASK_MANAGER_CLIENT_DIST", "client/dist"))
        if cors_origins is not None:
            self.CORS_ORIGINS = cors_origins
        else:
            raw = getenv("TASK_MANAGER_CORS_ORIGINS", "*")
            self.CORS_ORIGINS = [o.strip() for o in raw.split(",") if o.strip()]
        self.LOG_LEVEL = (log_level or getenv("TASK_MANAGER_LOG_LEVEL", "INFO")).upper()


settings = Settings()
