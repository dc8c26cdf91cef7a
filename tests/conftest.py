import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi.testclient import TestClient

from taskboard.core.config import Settings
from taskboard.core.specs import SpecRepository
from taskboard.core.store import TaskStore
from taskboard.main import create_app
from taskboard.services.task_service import TaskService


@pytest.fixture
def settings(tmp_path):
    """Réglages isolés: chaque test a son propre dossier de données"""
    return Settings(
        data_dir=tmp_path / "data",
        tasks_file=tmp_path / "data" / "tasks.json",
        specs_dir=tmp_path / "data" / "specs",
        debounce_ms=50,
        backfill_topics=False,
        client_dist=tmp_path / "no-client",
        cors_origins=["*"],
        log_level="DEBUG",
    )


@pytest.fixture
def store(settings):
    return TaskStore(settings.TASKS_FILE)


@pytest.fixture
def specs(settings):
    return SpecRepository(settings.SPECS_DIR)


@pytest.fixture
def service(store, specs):
    return TaskService(store, specs)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Client de test FastAPI (lifespan lancé: notifier actif)"""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def task(client):
    """Crée une tâche via l'API et retourne son JSON"""
    response = client.post("/api/tasks", json={"title": "Fix bug", "description": "login crash"})
    assert response.status_code == 201
    return response.json()
