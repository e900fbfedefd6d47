"""Review scheduling for assigned techniques and repertoire.

An assignment row carries `completed_at`, `reviewed_at` and an optional
`review_interval`. From those three values `compute_schedule` derives:

- `completed`: `completed_at` is set.
- `last_review`: `reviewed_at` (None if never reviewed).
- `next_review`:
    * None for a completed item without an interval (finished for good);
    * `now` when the item was never reviewed, or has no interval but is
      still open (due immediately);
    * otherwise `reviewed_at + review_interval`.
- `is_due`: `completed_at` is unset OR `reviewed_at + review_interval <= now`.
  The two conditions are independent, so a completed item whose review
  date has lapsed shows up as due again.

Everything is evaluated against `now` at call time; nothing is cached,
so the same row moves in and out of the due list as time passes.
`ReviewService` applies this to a student's assignments for one kind of
material (`TECHNIQUES` or `REPERTOIRE`).
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic.alias_generators import to_camel
from sqlmodel import Session

from . import models
from .errors import InvalidArgument, NotFound
from .models import as_utc, utcnow
from .repositories import AssignmentRepository

logger = logging.getLogger("soundtrack.scheduling")

SECONDS_PER_DAY = 24 * 60 * 60
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
LATEST = datetime.max.replace(tzinfo=timezone.utc)
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Schedule:
    completed: bool
    last_review: Optional[datetime]
    next_review: Optional[datetime]
    is_due: bool


def compute_schedule(assignment, now: Optional[datetime] = None) -> Schedule:
    """Derive the review state of `assignment` at `now` (default: current UTC time).

    `assignment` is anything exposing `completed_at`, `reviewed_at` and
    `review_interval`.
    """
    now = as_utc(now) if now is not None else utcnow()
    completed_at = as_utc(assignment.completed_at)
    reviewed_at = as_utc(assignment.reviewed_at)
    interval = assignment.review_interval

    completed = completed_at is not None
    scheduled = _add_interval(reviewed_at, interval) if reviewed_at is not None and interval is not None else None

    if completed and interval is None:
        next_review = None
    elif scheduled is None:
        next_review = now
    else:
        next_review = scheduled

    is_due = completed_at is None or (scheduled is not None and scheduled <= now)
    return Schedule(completed=completed, last_review=reviewed_at, next_review=next_review, is_due=is_due)


def _add_interval(start: datetime, interval: timedelta) -> datetime:
    # clamp to the representable range instead of failing the whole listing
    try:
        return start + interval
    except OverflowError:
        return LATEST if interval > timedelta(0) else EARLIEST


def review_interval_from_days(days) -> Optional[timedelta]:
    """Convert `reviewIntervalDays` to a `timedelta`; None stays None.

    Anything but a finite int/float (bools included) is rejected with
    `InvalidArgument`, as is an interval that, added to today or to the
    epoch the store counts intervals from, leaves the datetime range.
    """
    if days is None:
        return None
    if isinstance(days, bool) or not isinstance(days, (int, float)) or not math.isfinite(days):
        raise InvalidArgument("'reviewIntervalDays' must be a number")
    try:
        interval = timedelta(days=days)
        for start in (utcnow(), EPOCH):
            start + interval
    except OverflowError:
        raise InvalidArgument("'reviewIntervalDays' is out of range")
    return interval


def mark_reviewed(assignment, reviewed_at: datetime, completed: bool = False):
    """Record a review on `assignment`; `completed_at` is only ever set once.

    `reviewed_at` never moves backwards: a review logged for an older
    lesson leaves a later review date in place.
    """
    reviewed_at = as_utc(reviewed_at)
    last = as_utc(assignment.reviewed_at)
    if last is None or reviewed_at > last:
        assignment.reviewed_at = reviewed_at
    if completed and assignment.completed_at is None:
        assignment.completed_at = reviewed_at
    return assignment


def _next_review_order(view: Dict[str, Any]) -> Tuple:
    # ascending by nextReview, rows without one last
    next_review = view["nextReview"]
    return (next_review is None, next_review or datetime.min, view["assignmentId"])


@dataclass(frozen=True)
class AssignmentKind:
    """Describes one kind of assignable material."""
    label: str
    model: Any
    item_model: Any
    item_column: str
    fields: Tuple[str, ...]


TECHNIQUES = AssignmentKind(
    label="Technique",
    model=models.StudentTechnique,
    item_model=models.Technique,
    item_column="technique_id",
    fields=("tonic", "mode", "type", "description", "skill_level_id", "teacher_id"),
)

REPERTOIRE = AssignmentKind(
    label="Repertoire",
    model=models.StudentRepertoire,
    item_model=models.Repertoire,
    item_column="repertoire_id",
    fields=("name", "composer", "arranger", "genre", "sheet_music_url", "description", "skill_level_id", "teacher_id"),
)


class ReviewService:
    """Assign, list and remove review items of one kind for a student."""
    def __init__(self, session: Session, kind: AssignmentKind):
        self.session = session
        self.kind = kind
        self.repo = AssignmentRepository(session, kind.model, kind.item_model, kind.item_column)

    def view(self, assignment, item, schedule: Schedule) -> Dict[str, Any]:
        """Combine the item's descriptive fields with the assignment's schedule."""
        out = {"id": item.id, "assignmentId": assignment.id}
        for field in self.kind.fields:
            out[to_camel(field)] = getattr(item, field)
        interval = assignment.review_interval
        out.update({
            "dateAdded": as_utc(assignment.date_added),
            "reviewIntervalDays": interval.total_seconds() / SECONDS_PER_DAY if interval is not None else None,
            "completed": schedule.completed,
            "lastReview": schedule.last_review,
            "nextReview": schedule.next_review,
        })
        return out

    def assign(self, student_id: int, item_id: int, review_interval_days=None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Assign `item_id` to `student_id`.

        The interval is validated before anything is written. A repeated
        pair fails with `Conflict`, unknown student/item ids with
        `InvalidArgument`; both come from the store's constraints.
        """
        interval = review_interval_from_days(review_interval_days)
        assignment = self.kind.model(
            student_id=student_id,
            review_interval=interval,
            **{self.kind.item_column: item_id},
        )
        assignment = self.repo.create(assignment)
        item = self.session.get(self.kind.item_model, item_id)
        logger.info("assigned %s %s to student %s", self.kind.label.lower(), item_id, student_id)
        return self.view(assignment, item, compute_schedule(assignment, now))

    def list_assigned(self, student_id: int, include_completed: bool = False,
                      now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """List a student's items ordered by next review (None last).

        Without `include_completed` only due items are returned.
        """
        if self.session.get(models.Student, student_id) is None:
            raise NotFound(f"No student found with id: {student_id}")
        now = as_utc(now) if now is not None else utcnow()
        views = []
        for assignment, item in self.repo.list_with_items(student_id):
            schedule = compute_schedule(assignment, now)
            if include_completed or schedule.is_due:
                views.append(self.view(assignment, item, schedule))
        views.sort(key=_next_review_order)
        return views

    def unassign(self, student_id: int, item_id: int) -> None:
        if not self.repo.delete_pair(student_id, item_id):
            raise NotFound(
                f"{self.kind.label} with id {item_id} has not been assigned to student with id {student_id}"
            )
        logger.info("unassigned %s %s from student %s", self.kind.label.lower(), item_id, student_id)
