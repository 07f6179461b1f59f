import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import Base
from app.errors import NotFoundError, OrderingError, PastDeadlineError, TransientIOError, ValidationError
from app.models.assignment import Assignment
from app.models.user import User
from app.services import assignments as store
from app.services.deadlines import to_storage

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()

    for username in ("alice", "bob"):
        session.add(User(id=username, username=username, email=f"{username}@example.com", password_hash="hashed"))
    session.commit()
    return session


def _data(subject="Essay", green=T0 + timedelta(days=1), yellow=T0 + timedelta(days=3), red=T0 + timedelta(days=5), **extra):
    data = {
        "subject": subject,
        "task": f"{subject} draft",
        "deadlines": {"green": green, "yellow": yellow, "red": red},
    }
    data.update(extra)
    return data


def test_create_trims_text_and_defaults_fields():
    db = _session()

    assignment = store.create_assignment(db, "alice", _data(subject="  Essay  ", tags=[" draft ", ""]), now=T0)

    assert assignment.subject == "Essay"
    assert assignment.status == "upcoming"
    assert assignment.priority == "medium"
    assert assignment.tag_list == ["draft"]
    assert assignment.completed_at is None
    assert not assignment.notified
    assert assignment.red_at == to_storage(T0 + timedelta(days=5))


def test_create_rejects_past_red_and_bad_text():
    db = _session()

    with pytest.raises(PastDeadlineError):
        store.create_assignment(db, "alice", _data(), now=T0 + timedelta(days=10))
    with pytest.raises(ValidationError, match="Subject is required"):
        store.create_assignment(db, "alice", _data(subject="   "), now=T0)
    with pytest.raises(ValidationError, match="Tag cannot exceed"):
        store.create_assignment(db, "alice", _data(tags=["x" * 31]), now=T0)
    with pytest.raises(ValidationError, match="All three deadlines"):
        store.create_assignment(db, "alice", {"subject": "A", "task": "B", "deadlines": {"green": T0}}, now=T0)

    assert db.query(Assignment).count() == 0


def test_completed_at_is_set_once_and_cleared():
    db = _session()
    assignment = store.create_assignment(db, "alice", _data(), now=T0)
    t1 = T0 + timedelta(hours=2)
    t2 = T0 + timedelta(hours=5)

    store.update_assignment(db, "alice", assignment.id, {"status": "completed"}, now=t1)
    assert assignment.completed_at == to_storage(t1)

    store.update_assignment(db, "alice", assignment.id, {"status": "completed"}, now=t2)
    assert assignment.completed_at == to_storage(t1)

    store.update_assignment(db, "alice", assignment.id, {"status": "upcoming"}, now=t2)
    assert assignment.completed_at is None


def test_partial_deadline_edit_is_ordered_but_may_be_past():
    db = _session()
    assignment = store.create_assignment(db, "alice", _data(), now=T0)

    with pytest.raises(OrderingError):
        store.update_assignment(
            db, "alice", assignment.id,
            {"deadlines": {"green": "2024-01-05T00:00:00", "yellow": "2024-01-03T00:00:00"}},
        )

    store.update_assignment(
        db, "alice", assignment.id,
        {"deadlines": {"red": "2024-01-04T00:00:00"}},
        now=T0 + timedelta(days=30),
    )
    assert assignment.deadlines.red == datetime(2024, 1, 4, tzinfo=timezone.utc)
    assert assignment.deadlines.green == T0 + timedelta(days=1)


def test_other_owner_sees_not_found():
    db = _session()
    assignment = store.create_assignment(db, "alice", _data(), now=T0)

    with pytest.raises(NotFoundError):
        store.get_assignment(db, "bob", assignment.id)
    with pytest.raises(NotFoundError):
        store.update_assignment(db, "bob", assignment.id, {"status": "completed"})
    with pytest.raises(NotFoundError):
        store.delete_assignment(db, "bob", assignment.id)

    assert store.get_assignment(db, "alice", assignment.id).status == "upcoming"


def test_bulk_complete_only_counts_owned_records():
    db = _session()
    mine = [store.create_assignment(db, "alice", _data(subject=f"Mine {i}"), now=T0) for i in range(2)]
    theirs = store.create_assignment(db, "bob", _data(subject="Theirs"), now=T0)

    modified = store.bulk_complete(db, "alice", [a.id for a in mine] + [theirs.id, "missing"], now=T0)

    assert modified == 2
    db.expire_all()
    assert [a.status for a in mine] == ["completed", "completed"]
    assert all(a.completed_at == to_storage(T0) for a in mine)
    assert theirs.status == "upcoming"
    assert store.bulk_complete(db, "alice", [a.id for a in mine], now=T0) == 0


def test_bulk_delete_only_removes_owned_records():
    db = _session()
    mine = store.create_assignment(db, "alice", _data(), now=T0)
    theirs = store.create_assignment(db, "bob", _data(), now=T0)

    assert store.bulk_delete(db, "alice", [mine.id, theirs.id]) == 1
    assert db.query(Assignment).count() == 1
    with pytest.raises(ValidationError):
        store.bulk_delete(db, "alice", [])


def test_list_filters_use_phase_thresholds():
    db = _session()
    overdue = store.create_assignment(
        db, "alice", _data(subject="Late", red=T0 + timedelta(days=5)), now=T0,
    )
    soon = store.create_assignment(
        db, "alice",
        _data(subject="Soon", green=T0 + timedelta(days=6), yellow=T0 + timedelta(days=6), red=T0 + timedelta(days=6, hours=12)),
        now=T0,
    )
    store.create_assignment(
        db, "alice",
        _data(subject="Later", green=T0 + timedelta(days=7), yellow=T0 + timedelta(days=8), red=T0 + timedelta(days=20)),
        now=T0,
    )
    store.create_assignment(db, "bob", _data(subject="Late for bob"), now=T0)
    now = T0 + timedelta(days=6)

    assert [a.id for a in store.list_assignments(db, "alice", overdue=True, now=now)] == [overdue.id]
    assert [a.id for a in store.list_assignments(db, "alice", upcoming_hours=24, now=now)] == [soon.id]
    assert [a.subject for a in store.list_assignments(db, "alice", search="late", now=now)] == ["Late", "Later"]
    assert [a.subject for a in store.list_assignments(db, "alice", limit=1, skip=1, now=now)] == ["Soon"]

    store.update_assignment(db, "alice", overdue.id, {"status": "completed"}, now=now)
    assert store.list_assignments(db, "alice", overdue=True, now=now) == []
    assert [a.id for a in store.list_assignments(db, "alice", status="completed", now=now)] == [overdue.id]


def test_stats_overview():
    db = _session()
    store.create_assignment(db, "alice", _data(subject="Late"), now=T0)
    store.create_assignment(
        db, "alice",
        _data(subject="Soon", green=T0 + timedelta(days=6), yellow=T0 + timedelta(days=6), red=T0 + timedelta(days=6, hours=1)),
        now=T0,
    )
    done = store.create_assignment(db, "alice", _data(subject="Done"), now=T0)
    store.update_assignment(db, "alice", done.id, {"status": "completed"}, now=T0)

    stats = store.get_stats(db, "alice", now=T0 + timedelta(days=6))

    assert stats == {"total": 3, "completed": 1, "pending": 2, "overdue": 1, "due_soon": 1}


def test_alert_targets_skip_completed_and_parse_lazily():
    db = _session()
    active = store.create_assignment(db, "alice", _data(subject="Active"), now=T0)
    done = store.create_assignment(db, "bob", _data(subject="Done"), now=T0)
    store.update_assignment(db, "bob", done.id, {"status": "completed"}, now=T0)
    broken = store.create_assignment(db, "bob", _data(subject="Broken"), now=T0)
    broken.yellow_at = "garbage"
    db.commit()

    targets = {t.id: t for t in store.load_alert_targets(db)}

    assert set(targets) == {active.id, broken.id}
    assert targets[active.id].deadlines == active.deadlines
    with pytest.raises(ValueError):
        targets[broken.id].deadlines


def test_mark_notified_sets_flag():
    db = _session()
    assignment = store.create_assignment(db, "alice", _data(), now=T0)

    store.mark_notified(db, assignment.id)
    db.expire_all()

    assert assignment.notified == 1


def test_database_failure_becomes_transient_error(monkeypatch):
    db = _session()

    def locked():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", locked)

    with pytest.raises(TransientIOError):
        store.create_assignment(db, "alice", _data(), now=T0)


def test_pending_assignments_are_not_paged():
    db = _session()
    for i in range(store.DEFAULT_LIST_LIMIT + 5):
        store.create_assignment(db, "alice", _data(subject=f"Task {i}"), now=T0)
    done = store.create_assignment(db, "alice", _data(subject="Done"), now=T0)
    store.update_assignment(db, "alice", done.id, {"status": "completed"}, now=T0)
    store.create_assignment(db, "bob", _data(subject="Theirs"), now=T0)

    pending = store.list_pending_assignments(db, "alice")

    assert len(pending) == store.DEFAULT_LIST_LIMIT + 5
    assert done.id not in {a.id for a in pending}
    assert len(store.list_assignments(db, "alice", now=T0)) == store.DEFAULT_LIST_LIMIT
