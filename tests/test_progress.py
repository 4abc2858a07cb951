import sqlite3
from pathlib import Path

import pytest

from crewtrainer.errors import PersistenceError, SessionNotFoundError
from crewtrainer.progress import SessionStore


def _store_with_schedule() -> tuple[SessionStore, int, int, int]:
    store = SessionStore(":memory:")
    trainee = store.create_employee("alice")
    trainer = store.create_employee("bob")
    schedule = store.schedule_training(trainee.id, trainer.id, "AIQ", "Fry Station", None, "2026-03-01")
    return store, trainee.id, trainer.id, schedule.id


def test_employees_round_trip() -> None:
    store = SessionStore(":memory:")
    store.create_employee("zed")
    alice = store.create_employee("alice")
    assert [employee.display_name for employee in store.list_employees()] == ["alice", "zed"]
    assert store.get_employee(alice.id) == alice
    assert store.get_employee(9999) is None


def test_duplicate_employee_name_raises() -> None:
    store = SessionStore(":memory:")
    store.create_employee("alice")
    with pytest.raises(sqlite3.IntegrityError):
        store.create_employee("alice")


def test_schedule_descriptor_includes_names() -> None:
    store, trainee_id, trainer_id, schedule_id = _store_with_schedule()
    schedule = store.get_schedule(schedule_id)
    assert schedule.trainee_id == trainee_id
    assert schedule.trainee_name == "alice"
    assert schedule.trainer_name == "bob"
    assert schedule.competency_type == "Fry Station"
    assert schedule.competency_phase is None
    assert schedule.status == "scheduled"
    assert [item.id for item in store.list_schedules()] == [schedule_id]


def test_get_missing_schedule_raises() -> None:
    store = SessionStore(":memory:")
    with pytest.raises(SessionNotFoundError):
        store.get_schedule(42)


def test_start_session_reuses_in_progress_session() -> None:
    store, _, trainer_id, schedule_id = _store_with_schedule()
    first = store.start_session(schedule_id, trainer_id)
    assert store.start_session(schedule_id, trainer_id) == first
    active = store.list_active_sessions(trainer_id)
    assert [session_id for session_id, _, _ in active] == [first]


def test_load_session_projects_requested_fields() -> None:
    store, trainee_id, trainer_id, schedule_id = _store_with_schedule()
    session_id = store.start_session(schedule_id, trainer_id)
    store.update_field(session_id, "fry_obs_1", True)
    store.update_field(session_id, "fry_obs_2", False)
    store.update_field(session_id, "unrelated", True)

    record = store.load_session(session_id, ["fry_obs_1", "fry_obs_2", "fry_obs_3"])
    assert record.trainee_id == trainee_id
    assert record.schedule_id == schedule_id
    assert record.fields == {"fry_obs_1": True, "fry_obs_2": False}
    assert record.status == "in_progress"
    assert store.load_session(session_id, []).fields == {}


def test_update_field_is_last_write_wins() -> None:
    store, _, trainer_id, schedule_id = _store_with_schedule()
    session_id = store.start_session(schedule_id, trainer_id)
    store.update_field(session_id, "fry_obs_1", True)
    store.update_field(session_id, "fry_obs_1", False)
    assert store.load_session(session_id, ["fry_obs_1"]).fields == {"fry_obs_1": False}


def test_update_field_for_missing_session_raises_persistence_error() -> None:
    store = SessionStore(":memory:")
    with pytest.raises(PersistenceError) as exc_info:
        store.update_field(999, "fry_obs_1", True)
    assert isinstance(exc_info.value.__cause__, sqlite3.Error)
    assert exc_info.value.context == {"session_id": 999, "field_name": "fry_obs_1"}


def test_load_missing_session_raises() -> None:
    store = SessionStore(":memory:")
    with pytest.raises(SessionNotFoundError):
        store.load_session(5, ["a"])


def test_record_completion_updates_session_and_schedule() -> None:
    store, _, trainer_id, schedule_id = _store_with_schedule()
    session_id = store.start_session(schedule_id, trainer_id)
    completed_at = store.record_completion(session_id, schedule_id)
    record = store.load_session(session_id, [])
    assert record.status == "completed"
    assert record.completed_at == completed_at
    assert store.get_schedule(schedule_id).status == "completed"
    assert store.list_schedules() == []
    assert store.list_active_sessions(trainer_id) == []


def test_delete_employee_cascades() -> None:
    store, trainee_id, trainer_id, schedule_id = _store_with_schedule()
    session_id = store.start_session(schedule_id, trainer_id)
    store.update_field(session_id, "fry_obs_1", True)

    assert store.delete_employee(trainee_id) is True
    assert store.list_schedules(None) == []
    with pytest.raises(SessionNotFoundError):
        store.load_session(session_id, ["fry_obs_1"])
    assert store.delete_employee(trainee_id) is False


def test_migration_sets_user_version_and_schema_history() -> None:
    store = SessionStore(":memory:")
    version = int(store._conn.execute("PRAGMA user_version").fetchone()[0])  # noqa: SLF001
    assert version == 1
    rows = store._conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()  # noqa: SLF001
    assert [int(row["version"]) for row in rows] == [1]


def test_newer_schema_version_is_rejected(tmp_path: Path) -> None:
    db_path = tmp_path / "future.db"
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA user_version = 99")
    conn.close()
    with pytest.raises(RuntimeError, match="newer than supported"):
        SessionStore(db_path)


def test_file_database_persists_between_stores(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "training.db"
    store = SessionStore(db_path)
    store.create_employee("alice")
    store.close()

    reopened = SessionStore(db_path)
    assert [employee.display_name for employee in reopened.list_employees()] == ["alice"]
    reopened.close()
