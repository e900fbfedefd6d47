from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from soundtrack import models
from soundtrack.errors import Conflict, InvalidArgument, NotFound
from soundtrack.scheduling import REPERTOIRE, TECHNIQUES, ReviewService

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


@pytest.fixture
def techniques(session):
    return ReviewService(session, TECHNIQUES)


@pytest.fixture
def repertoire(session):
    return ReviewService(session, REPERTOIRE)


def _technique(session, teacher_id, tonic):
    technique = models.Technique(tonic=tonic, mode="Ionian", type="Scale", teacher_id=teacher_id)
    session.add(technique)
    session.commit()
    session.refresh(technique)
    return technique.id


def test_assign_returns_item_fields_and_schedule(data, techniques):
    view = techniques.assign(data.student1_id, data.technique1_id, 7, now=NOW)
    assert view["id"] == data.technique1_id
    assert view["tonic"] == "C"
    assert view["mode"] == "Ionian"
    assert view["teacherId"] == data.teacher1_id
    assert view["reviewIntervalDays"] == 7
    assert view["completed"] is False
    assert view["lastReview"] is None
    assert view["nextReview"] == NOW


def test_assign_without_interval(data, repertoire):
    view = repertoire.assign(data.student1_id, data.piece1_id, now=NOW)
    assert view["name"] == "Piece1"
    assert view["sheetMusicUrl"] == "https://example.com/sheetmusic1"
    assert view["reviewIntervalDays"] is None
    assert view["nextReview"] == NOW


def test_assign_twice_conflicts(data, techniques):
    techniques.assign(data.student1_id, data.technique1_id)
    with pytest.raises(Conflict):
        techniques.assign(data.student1_id, data.technique1_id, 3)


@pytest.mark.parametrize("days", ["not a number", True, float("nan")])
def test_invalid_interval_writes_nothing(data, session, techniques, days):
    with pytest.raises(InvalidArgument):
        techniques.assign(data.student1_id, data.technique1_id, days)
    assert session.exec(select(models.StudentTechnique)).all() == []


def test_unknown_item_is_invalid_argument(data, techniques):
    with pytest.raises(InvalidArgument):
        techniques.assign(data.student1_id, 9999)


def test_unknown_student_is_invalid_argument(data, repertoire):
    with pytest.raises(InvalidArgument):
        repertoire.assign(9999, data.piece1_id)


def test_list_for_unknown_student(data, techniques):
    with pytest.raises(NotFound):
        techniques.list_assigned(9999)


def test_list_hides_items_not_due(data, session, techniques, add_assignment):
    add_assignment(student_id=data.student1_id, technique_id=data.technique1_id,
                   completed_at=NOW - DAY, reviewed_at=NOW - DAY, review_interval=7 * DAY)
    assert techniques.list_assigned(data.student1_id, now=NOW) == []
    listed = techniques.list_assigned(data.student1_id, include_completed=True, now=NOW)
    assert [v["id"] for v in listed] == [data.technique1_id]
    assert listed[0]["completed"] is True
    # a week later the same row is due again
    assert len(techniques.list_assigned(data.student1_id, now=NOW + 7 * DAY)) == 1


def test_list_orders_by_next_review_with_finished_items_last(data, session, techniques, add_assignment):
    t_a = _technique(session, data.teacher1_id, "A")
    t_b = _technique(session, data.teacher1_id, "B")
    t_e = _technique(session, data.teacher1_id, "E")
    # finished for good: no next review
    add_assignment(student_id=data.student1_id, technique_id=t_a, completed_at=NOW - DAY, reviewed_at=NOW - DAY)
    # open, reviewed two days ago, due again in five days
    add_assignment(student_id=data.student1_id, technique_id=t_b,
                   reviewed_at=NOW - 2 * DAY, review_interval=7 * DAY)
    # open, never reviewed, due now
    add_assignment(student_id=data.student1_id, technique_id=t_e, review_interval=3 * DAY)

    listed = techniques.list_assigned(data.student1_id, include_completed=True, now=NOW)
    assert [v["id"] for v in listed] == [t_e, t_b, t_a]
    assert listed[0]["nextReview"] == NOW
    assert listed[1]["nextReview"] == NOW + 5 * DAY
    assert listed[2]["nextReview"] is None

    due = techniques.list_assigned(data.student1_id, now=NOW)
    assert [v["id"] for v in due] == [t_e, t_b]


def test_only_own_student_assignments_are_listed(data, techniques):
    techniques.assign(data.student1_id, data.technique1_id)
    techniques.assign(data.student2_id, data.technique2_id)
    listed = techniques.list_assigned(data.student2_id)
    assert [v["id"] for v in listed] == [data.technique2_id]


def test_unassign(data, techniques):
    techniques.assign(data.student1_id, data.technique1_id)
    techniques.unassign(data.student1_id, data.technique1_id)
    assert techniques.list_assigned(data.student1_id, include_completed=True) == []


def test_unassign_missing_pair(data, techniques):
    with pytest.raises(NotFound, match=f"Technique with id {data.technique1_id} has not been assigned"):
        techniques.unassign(data.student1_id, data.technique1_id)


def test_deleting_material_removes_assignments(data, session, repertoire):
    repertoire.assign(data.student1_id, data.piece1_id)
    session.delete(session.get(models.Repertoire, data.piece1_id))
    session.commit()
    assert repertoire.list_assigned(data.student1_id, include_completed=True) == []
