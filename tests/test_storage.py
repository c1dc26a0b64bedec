import threading
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from milguard.analysis.aggregator import aggregate_results
from milguard.auth import models as auth_models
from milguard.core.errors import NotFoundError, StorageError, ValidationError
from milguard.db.base import Base, describe_database, make_engine
from milguard.learning import models as learning_models
from milguard.learning.content import seed_default_modules
from milguard.schemas import NewAnalysis, ProgressPatch, ProviderResult, utcnow
from milguard.storage.memory import MemoryStorage
from milguard.storage.sql import SqlStorage

# Register tables on Base.metadata
from milguard.analysis import models as _analysis_models  # noqa: F401


def _sql_store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/storage.db")
    Base.metadata.create_all(bind=engine)
    return SqlStorage(sessionmaker(autocommit=False, autoflush=False, bind=engine))


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        store = MemoryStorage()
    else:
        store = _sql_store(tmp_path)
    seed_default_modules(store)
    return store


def _new_analysis(user_id, confidence=0.8):
    report = aggregate_results({"openai": ProviderResult(confidence=confidence, is_ai_generated=confidence > 0.5)})
    return NewAnalysis(
        user_id=user_id,
        content_type="text",
        content_text="some text",
        results=report,
        overall_confidence=report.overall.confidence,
        is_ai_generated=report.overall.is_ai_generated,
    )


def test_user_roundtrip(store):
    user = store.create_user("Someone@Example.com", "salt:hash", name="Someone")

    assert user.email == "someone@example.com"
    assert store.get_user(user.id).name == "Someone"
    assert store.get_user_by_email("SOMEONE@example.com").id == user.id
    assert store.get_user("missing") is None

    updated = store.update_user(user.id, name="Renamed", learning_progress={"lastModule": 2})
    assert updated.name == "Renamed"
    assert store.get_user(user.id).learning_progress == {"lastModule": 2}


def test_duplicate_email_rejected(store):
    store.create_user("dup@example.com", "a:b")
    with pytest.raises(ValidationError):
        store.create_user("DUP@example.com", "c:d")


def test_update_user_rejects_unknown_fields(store):
    user = store.create_user("u@example.com", "a:b")
    with pytest.raises(ValueError):
        store.update_user(user.id, email="other@example.com")


def test_analysis_stored_with_flat_results(store):
    user = store.create_user("a@example.com", "a:b")
    saved = store.create_analysis(_new_analysis(user.id))

    loaded = store.get_analysis(saved.id)

    assert loaded.user_id == user.id
    assert loaded.overall_confidence == pytest.approx(0.8)
    assert loaded.results.overall.is_ai_generated is True
    assert set(loaded.results.model_dump()) == {"openai", "overall"}
    assert store.get_analysis("missing") is None


def test_analyses_by_user_newest_first_with_limit(store):
    user = store.create_user("a@example.com", "a:b")
    other = store.create_user("b@example.com", "a:b")
    ids = [store.create_analysis(_new_analysis(user.id, c)).id for c in (0.1, 0.2, 0.3)]
    store.create_analysis(_new_analysis(other.id))

    rows = store.get_analyses_by_user(user.id, limit=2)

    assert [r.id for r in rows] == [ids[2], ids[1]]
    assert len(store.get_analyses_by_user(user.id, limit=None)) == 3
    assert store.count_analyses(user.id) == 3
    assert store.count_analyses(other.id) == 1


def test_modules_sorted_and_inactive_filtered(store):
    store.create_learning_module("Hidden", "draft", store.get_learning_modules()[0].content, order=10, is_active=False)

    active = store.get_learning_modules()
    everything = store.get_learning_modules(include_inactive=True)

    assert [m.order for m in active] == [1, 2, 3, 4]
    assert [m.order for m in everything] == [1, 2, 3, 4, 10]
    assert active[1].content.sections[1].type == "quiz"
    assert active[1].content.sections[1].questions[0].answer_index == 0


def test_duplicate_module_order_rejected(store):
    content = store.get_learning_modules()[0].content
    with pytest.raises(ValidationError):
        store.create_learning_module("Clash", "same order", content, order=2)


def test_upsert_progress_single_row_and_terminal_completion(store):
    user = store.create_user("p@example.com", "a:b")
    module = store.get_learning_modules()[0]

    row, was_completed = store.upsert_progress(user.id, module.id, ProgressPatch(progress=0.4))
    assert (row.progress, row.completed, was_completed) == (0.4, False, False)

    row, was_completed = store.upsert_progress(user.id, module.id, ProgressPatch(completed=True))
    assert (row.progress, row.completed, was_completed) == (1.0, True, False)

    row, was_completed = store.upsert_progress(user.id, module.id, ProgressPatch(progress=0.1))
    assert (row.progress, row.completed, was_completed) == (1.0, True, True)

    assert len(store.get_user_progress(user.id)) == 1
    assert store.get_progress(user.id, module.id).id == row.id


def test_upsert_progress_unknown_module(store):
    user = store.create_user("p@example.com", "a:b")
    with pytest.raises(NotFoundError):
        store.upsert_progress(user.id, "missing", ProgressPatch(progress=0.5))


def test_achievement_created_once_per_subject(store):
    user = store.create_user("w@example.com", "a:b")

    first = store.create_achievement_if_absent(user.id, "module_complete", "Module Complete", "done", subject_id="m1")
    again = store.create_achievement_if_absent(user.id, "module_complete", "Module Complete", "done", subject_id="m1")
    other = store.create_achievement_if_absent(user.id, "module_complete", "Module Complete", "done", subject_id="m2")

    assert first is not None
    assert again is None
    assert other is not None
    assert len(store.get_user_achievements(user.id)) == 2


def test_memory_concurrent_upserts_keep_one_row():
    store = MemoryStorage()
    seed_default_modules(store)
    user = store.create_user("race@example.com", "a:b")
    module = store.get_learning_modules()[0]

    def worker(value):
        store.upsert_progress(user.id, module.id, ProgressPatch(progress=value))

    threads = [threading.Thread(target=worker, args=(i / 20,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    rows = store.get_user_progress(user.id)
    assert len(rows) == 1
    assert 0.0 <= rows[0].progress < 1.0


def test_memory_concurrent_awards_single_achievement():
    store = MemoryStorage()
    user = store.create_user("race@example.com", "a:b")
    results = []

    def worker():
        results.append(store.create_achievement_if_absent(user.id, "first_analysis", "First Analysis", "x"))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r is not None) == 1


def test_analysis_times_filtered_by_since(store):
    user = store.create_user("t@example.com", "a:b")
    other = store.create_user("o@example.com", "a:b")
    for c in (0.2, 0.9):
        store.create_analysis(_new_analysis(user.id, c))
    store.create_analysis(_new_analysis(other.id))
    now = utcnow()

    assert len(store.get_analysis_times(user.id)) == 2
    assert len(store.get_analysis_times(user.id, since=now - timedelta(days=1))) == 2
    assert store.get_analysis_times(user.id, since=now + timedelta(days=1)) == []
    assert all(t.tzinfo is not None for t in store.get_analysis_times(user.id))


def test_memory_reads_during_concurrent_writes():
    store = MemoryStorage()
    seed_default_modules(store)
    module = store.get_learning_modules()[0]
    users = [store.create_user(f"rw{i}@example.com", "a:b") for i in range(40)]
    errors = []

    def writer(user):
        store.upsert_progress(user.id, module.id, ProgressPatch(progress=0.5))
        store.create_achievement_if_absent(user.id, "first_analysis", "First Analysis", "x")
        store.create_analysis(_new_analysis(user.id))

    def reader(user):
        try:
            for _ in range(50):
                store.get_user_progress(user.id)
                store.get_user_achievements(user.id)
                store.get_analysis_times(user.id)
                store.count_analyses(user.id)
        except RuntimeError as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(u,)) for u in users]
    threads += [threading.Thread(target=reader, args=(u,)) for u in users[:10]]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert all(len(store.get_user_progress(u.id)) == 1 for u in users)


def test_sql_upsert_retries_after_losing_insert_race(tmp_path, monkeypatch):
    store = _sql_store(tmp_path)
    seed_default_modules(store)
    user = store.create_user("race@example.com", "a:b")
    module = store.get_learning_modules()[0]
    original = SqlStorage._progress_row
    calls = []

    def racing_lookup(db, user_id, module_id, for_update=False):
        calls.append(for_update)
        if len(calls) == 1:
            # A concurrent request commits the same (user, module) row first
            with store._session_factory() as other:
                other.add(learning_models.UserProgress(
                    user_id=user_id, module_id=module_id, completed=True, progress=1.0, last_accessed=utcnow(),
                ))
                other.commit()
            return None
        return original(db, user_id, module_id, for_update)

    monkeypatch.setattr(SqlStorage, "_progress_row", staticmethod(racing_lookup))

    row, was_completed = store.upsert_progress(user.id, module.id, ProgressPatch(progress=0.2))

    assert len(calls) == 2
    assert (row.completed, row.progress, was_completed) == (True, 1.0, True)
    rows = store.get_user_progress(user.id)
    assert len(rows) == 1
    assert rows[0].id == row.id


def test_sql_upsert_gives_up_after_second_conflict(tmp_path, monkeypatch):
    store = _sql_store(tmp_path)
    seed_default_modules(store)
    user = store.create_user("race@example.com", "a:b")
    module = store.get_learning_modules()[0]
    store.upsert_progress(user.id, module.id, ProgressPatch(progress=0.3))
    # The lookup never sees the existing row, so every insert conflicts
    monkeypatch.setattr(SqlStorage, "_progress_row", staticmethod(lambda *args, **kwargs: None))

    with pytest.raises(StorageError):
        store.upsert_progress(user.id, module.id, ProgressPatch(progress=0.6))

    monkeypatch.undo()
    assert store.get_progress(user.id, module.id).progress == 0.3


def test_sql_duplicate_award_after_race_returns_none(tmp_path, monkeypatch):
    store = _sql_store(tmp_path)
    user = store.create_user("race@example.com", "a:b")
    first = store.create_achievement_if_absent(user.id, "first_analysis", "First Analysis", "x")
    # The other award lands between our existence check and our insert
    monkeypatch.setattr(SqlStorage, "_achievement_row", staticmethod(lambda *args: None))

    again = store.create_achievement_if_absent(user.id, "first_analysis", "First Analysis", "x")

    assert first is not None
    assert again is None
    with store._session_factory() as db:
        assert db.query(auth_models.Achievement).filter_by(user_id=user.id).count() == 1


def test_describe_sqlite_database(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/storage.db")
    Base.metadata.create_all(bind=engine)

    info = describe_database(engine)

    assert info["backend"] == "sqlite"
    assert info["sqlitePath"].endswith("storage.db")
    assert info["sqliteExists"] is True
    assert info["sqliteSizeBytes"] > 0
