import json
import threading

import pytest

from taskboard.core.errors import StorageError, ValidationError
from taskboard.core.store import TaskStore, percent_done, recompute
from taskboard.models.task import Task, TaskStatus, Topic
from taskboard.schemas.task import SubtaskPatch, TaskPatch


# ========== CRÉATION / LECTURE ==========

def test_missing_file_is_created_empty(store):
    """Premier accès: le fichier est créé avec une liste vide"""
    assert store.list_all() == []
    assert json.loads(store.path.read_text()) == []


@pytest.mark.parametrize("title", ["Fix bug", "Écrire la doc", "a", "  padded title  "])
def test_create_then_get_defaults(store, title):
    """create puis get_by_id: pending, 0%, un seul log qui contient le titre"""
    created = store.create(title)
    task = store.get_by_id(created.id)

    assert task is not None
    assert task.status == TaskStatus.PENDING
    assert task.progress == 0
    assert len(task.logs) == 1
    assert title.strip() in task.logs[0].message
    assert task.created_at == task.updated_at


@pytest.mark.parametrize("title", ["", "   ", None])
def test_create_rejects_blank_title(store, title):
    """Titre vide: rien n'est écrit"""
    store.list_all()
    before = store.path.read_bytes()
    with pytest.raises(ValidationError) as exc:
        store.create(title)
    assert exc.value.field == "title"
    assert store.path.read_bytes() == before


def test_list_keeps_insertion_order(store):
    ids = [store.create(f"Task {i}").id for i in range(4)]
    assert [t.id for t in store.list_all()] == ids


def test_file_uses_camel_case_keys(store):
    store.create("Keys", github_repo="https://github.com/acme/app")
    raw = json.loads(store.path.read_text())[0]
    assert raw["githubRepo"] == "https://github.com/acme/app"
    assert "createdAt" in raw and "updatedAt" in raw
    assert "associatedFiles" in raw


# ========== FICHIER CORROMPU ==========

def test_unparseable_file_reads_as_empty(store):
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.list_all() == []

    # l'écriture suivante remplace le contenu illisible
    store.create("Recovered")
    assert [t.title for t in store.list_all()] == ["Recovered"]


def test_non_list_document_reads_as_empty(store):
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text('{"tasks": []}', encoding="utf-8")
    assert store.list_all() == []


def test_malformed_record_is_skipped(store):
    good = store.create("Good")
    data = json.loads(store.path.read_text())
    data.append({"title": "no id nor timestamps"})
    store.path.write_text(json.dumps(data), encoding="utf-8")

    assert [t.id for t in store.list_all()] == [good.id]


def test_legacy_record_without_topic_is_unclassified(store):
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text(json.dumps([{
        "id": "legacy-1",
        "title": "Old task",
        "description": None,
        "status": "pending",
        "progress": 0,
        "subtasks": [],
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-01T00:00:00.000Z",
        "logs": [],
    }]), encoding="utf-8")

    task = store.get_by_id("legacy-1")
    assert task.topic == Topic.UNCLASSIFIED
    assert task.description == ""


def test_list_never_fails_when_file_cannot_be_created(store, monkeypatch):
    """Dossier non inscriptible: la lecture rend une liste vide, l'écriture échoue"""
    def boom(path, text):
        raise OSError("read-only file system")

    monkeypatch.setattr("taskboard.core.store.atomic_write_text", boom)
    assert store.list_all() == []
    assert store.get_by_id("anything") is None
    with pytest.raises(StorageError):
        store.create("Needs a writable file")
    assert not store.path.exists()


def test_write_failure_raises_storage_error(store, monkeypatch):
    store.create("Before")

    def boom(path, text):
        raise OSError("disk full")

    monkeypatch.setattr("taskboard.core.store.atomic_write_text", boom)
    with pytest.raises(StorageError):
        store.create("After")
    monkeypatch.undo()

    assert [t.title for t in store.list_all()] == ["Before"]


def test_no_temp_files_left_behind(store):
    for i in range(3):
        store.create(f"Task {i}")
    leftovers = [p.name for p in store.path.parent.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


# ========== MISE À JOUR ==========

def test_update_merges_only_given_fields(store):
    task = store.create("Merge", description="keep me")
    updated = store.update(task.id, TaskPatch(branch="feature/x"))

    assert updated.branch == "feature/x"
    assert updated.description == "keep me"
    assert updated.title == "Merge"
    assert updated.id == task.id
    assert updated.created_at == task.created_at


def test_update_unknown_returns_none(store):
    assert store.update("missing", TaskPatch(status="done")) is None


def test_updated_at_never_before_created_at(store, monkeypatch):
    task = store.create("Clock")
    # horloge qui recule
    monkeypatch.setattr("taskboard.core.store.now_iso", lambda: "2000-01-01T00:00:00.000Z")
    updated = store.update(task.id, TaskPatch(description="later"))
    assert updated.updated_at == task.created_at


def test_progress_100_moves_in_progress_to_done(store):
    task = store.create("Ship")
    store.update(task.id, TaskPatch(status="in-progress"))
    updated = store.update(task.id, TaskPatch(progress=100))
    assert updated.status == TaskStatus.DONE


def test_progress_100_keeps_pending(store):
    """La transition auto ne part que de in-progress"""
    task = store.create("Stay pending")
    updated = store.update(task.id, TaskPatch(progress=100))
    assert updated.status == TaskStatus.PENDING


def test_done_is_idempotent_and_never_reverts(store):
    task = store.create("Idempotent")
    store.update(task.id, TaskPatch(status="in-progress", progress=100))
    again = store.update(task.id, TaskPatch(status="done"))
    assert again.status == TaskStatus.DONE
    assert again.progress == 100

    lowered = store.update(task.id, TaskPatch(progress=40))
    assert lowered.progress == 40
    assert lowered.status == TaskStatus.DONE


# ========== SOUS-TÂCHES ==========

@pytest.mark.parametrize("done,total,expected", [
    (1, 2, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (0, 5, 0), (5, 5, 100),
])
def test_percent_done_rounds_half_up(done, total, expected):
    assert percent_done(done, total) == expected


def test_progress_follows_subtasks(store):
    task = store.create("Parent")
    subs = [store.add_subtask(task.id, f"Step {i}") for i in range(3)]

    store.update_subtask(task.id, subs[0].id, SubtaskPatch(status="done"))
    assert store.get_by_id(task.id).progress == 33

    store.update_subtask(task.id, subs[1].id, SubtaskPatch(status="done"))
    assert store.get_by_id(task.id).progress == 67


def test_add_subtask_changes_denominator(store):
    task = store.create("Parent")
    first = store.add_subtask(task.id, "One")
    store.update_subtask(task.id, first.id, SubtaskPatch(status="done"))
    assert store.get_by_id(task.id).progress == 100

    store.add_subtask(task.id, "Two")
    assert store.get_by_id(task.id).progress == 50


def test_subtask_seed_log_and_parent_touch(store):
    task = store.create("Parent")
    sub = store.add_subtask(task.id, "Child")
    assert [log.message for log in sub.logs] == ["Subtask created: Child"]
    assert store.get_by_id(task.id).updated_at >= task.updated_at


def test_subtask_patch_ignores_parent_progress_field(store):
    """La progression de la tâche parente est recalculée, jamais fournie"""
    task = store.create("Parent")
    sub = store.add_subtask(task.id, "Child")
    store.update(task.id, TaskPatch(progress=90))
    assert store.get_by_id(task.id).progress == 0

    store.update_subtask(task.id, sub.id, SubtaskPatch(progress=80))
    assert store.get_by_id(task.id).progress == 0


def test_delete_last_subtask_keeps_progress(store):
    task = store.create("Parent")
    sub = store.add_subtask(task.id, "Only")
    store.update_subtask(task.id, sub.id, SubtaskPatch(status="done"))
    assert store.delete_subtask(task.id, sub.id) is True

    after = store.get_by_id(task.id)
    assert after.subtasks == []
    assert after.progress == 100


def test_subtask_unknown_ids(store):
    task = store.create("Parent")
    assert store.add_subtask("missing", "x") is None
    assert store.update_subtask(task.id, "missing", SubtaskPatch(status="done")) is None
    assert store.delete_subtask(task.id, "missing") is False


# ========== LOGS ==========

def test_append_log_to_task_and_subtask(store):
    task = store.create("Logged")
    sub = store.add_subtask(task.id, "Child")

    assert store.append_log(task.id, "task note") is True
    assert store.append_log(task.id, "sub note", subtask_id=sub.id) is True

    after = store.get_by_id(task.id)
    assert after.logs[-1].message == "task note"
    assert after.subtasks[0].logs[-1].message == "sub note"


def test_append_log_unknown(store):
    task = store.create("Logged")
    assert store.append_log("missing", "x") is False
    assert store.append_log(task.id, "x", subtask_id="missing") is False
    assert len(store.get_by_id(task.id).logs) == 1


# ========== SUPPRESSION ==========

def test_delete_unknown_leaves_file_unchanged(store):
    store.create("One")
    store.create("Two")
    before = store.path.read_bytes()

    assert store.delete("missing") is False
    assert store.path.read_bytes() == before


def test_delete_removes_task(store):
    keep = store.create("Keep")
    gone = store.create("Gone")
    store.add_subtask(gone.id, "Child")

    assert store.delete(gone.id) is True
    assert store.get_by_id(gone.id) is None
    assert [t.id for t in store.list_all()] == [keep.id]


# ========== CONCURRENCE ==========

def test_concurrent_updates_do_not_cross_contaminate(store):
    a = store.create("Task A")
    b = store.create("Task B")

    def work(task_id, branch):
        for i in range(10):
            store.update(task_id, TaskPatch(branch=f"{branch}-{i}", description=branch))

    threads = [threading.Thread(target=work, args=(a.id, "alpha")), threading.Thread(target=work, args=(b.id, "beta"))]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    after_a, after_b = store.get_by_id(a.id), store.get_by_id(b.id)
    assert (after_a.branch, after_a.description) == ("alpha-9", "alpha")
    assert (after_b.branch, after_b.description) == ("beta-9", "beta")


def test_two_store_instances_share_the_file(settings):
    """Deux processus = deux stores sur le même fichier"""
    writer = TaskStore(settings.TASKS_FILE)
    reader = TaskStore(settings.TASKS_FILE)
    task = writer.create("Shared")
    assert reader.get_by_id(task.id).title == "Shared"


# ========== LISTENERS / MAINTENANCE ==========

def test_listener_called_after_each_write(store):
    store.list_all()  # création du fichier vide, avant d'écouter
    calls = []
    store.add_listener(lambda: calls.append(1))
    task = store.create("Listen")
    store.update(task.id, TaskPatch(branch="main"))
    store.delete("missing")
    assert len(calls) == 2


def test_failing_listener_does_not_break_write(store):
    def broken():
        raise RuntimeError("listener down")

    store.add_listener(broken)
    task = store.create("Still saved")
    assert store.get_by_id(task.id) is not None


def test_upsert_many_replaces_and_appends(store):
    first = store.create("First")
    second = store.create("Second")
    replaced = first.model_copy(update={"title": "First v2"})
    new = Task(id="new-1", title="New", created_at=first.created_at, updated_at=first.created_at)

    assert store.upsert_many([replaced, new]) == 2
    assert [(t.id, t.title) for t in store.list_all()] == [
        (first.id, "First v2"), (second.id, "Second"), ("new-1", "New"),
    ]


def test_backfill_topics_classifies_and_persists(store):
    task = store.create("Write pytest fixtures")
    assert task.topic == Topic.UNCLASSIFIED

    tasks = store.backfill_topics(lambda title, description: Topic.TESTING)
    assert tasks[0].topic == Topic.TESTING
    assert store.get_by_id(task.id).topic == Topic.TESTING


def test_recompute_without_subtasks_keeps_progress():
    task = Task(id="t", title="t", progress=42, created_at="2024-01-01T00:00:00.000Z",
                updated_at="2024-01-01T00:00:00.000Z")
    recompute(task)
    assert task.progress == 42
