"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table (teachers,
students, techniques, ...). Repositories return SQLModel objects, or
`None` when a row does not exist, and perform commits/refreshes where
appropriate. Constraint violations raised on commit are translated by
`store_errors` into `Conflict` / `InvalidArgument`.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from . import models
from .errors import InvalidArgument
from .utils.db_errors import store_errors


class _TableRepository:
    """Primary-key CRUD shared by the entity repositories."""
    model = None

    def __init__(self, session: Session):
        self.session = session

    def get(self, obj_id):
        """Fetch a row by primary key."""
        return self.session.get(self.model, obj_id)

    def create(self, obj):
        """Persist a new row and return the managed instance."""
        with store_errors(self.session):
            self.session.add(obj)
            self.session.commit()
        self.session.refresh(obj)
        return obj

    def update(self, obj_id, values: Dict[str, Any]):
        """Apply `{column: value}` to the row `obj_id`; returns None if it does not exist.

        `values` normally comes from `resolve_partial_update`, so only the
        supplied columns are touched. Unknown column names are rejected
        before anything is written.
        """
        unknown = [column for column in values if column not in self.model.__table__.columns]
        if unknown:
            raise InvalidArgument(f"Unknown field: {', '.join(unknown)}")
        obj = self.get(obj_id)
        if obj is None:
            return None
        for column, value in values.items():
            setattr(obj, column, value)
        with store_errors(self.session):
            self.session.add(obj)
            self.session.commit()
        self.session.refresh(obj)
        return obj

    def delete(self, obj_id) -> bool:
        """Delete the row `obj_id`; returns False if there was nothing to delete."""
        obj = self.get(obj_id)
        if obj is None:
            return False
        self.session.delete(obj)
        self.session.commit()
        return True


class TeacherRepository(_TableRepository):
    model = models.Teacher

    def get_by_email(self, email: str) -> Optional[models.Teacher]:
        """Return a `Teacher` by email or `None` if not found."""
        stmt = select(models.Teacher).where(models.Teacher.email == email)
        return self.session.exec(stmt).first()

    def list(self) -> List[models.Teacher]:
        stmt = select(models.Teacher).order_by(models.Teacher.date_added)
        return self.session.exec(stmt).all()


class SkillLevelRepository(_TableRepository):
    model = models.SkillLevel

    def list(self) -> List[models.SkillLevel]:
        return self.session.exec(select(models.SkillLevel).order_by(models.SkillLevel.id)).all()


class StudentRepository(_TableRepository):
    model = models.Student

    def list(self, teacher_id: Optional[str] = None, name: Optional[str] = None,
             skill_level_id: Optional[int] = None) -> List[models.Student]:
        """Return students matching every filter given; `name` is a case-insensitive substring."""
        stmt = select(models.Student)
        if teacher_id is not None:
            stmt = stmt.where(models.Student.teacher_id == teacher_id)
        if name:
            stmt = stmt.where(models.Student.name.ilike(f"%{name}%"))
        if skill_level_id is not None:
            stmt = stmt.where(models.Student.skill_level_id == skill_level_id)
        return self.session.exec(stmt.order_by(models.Student.id)).all()


class TechniqueRepository(_TableRepository):
    model = models.Technique

    def list(self, teacher_id: Optional[str] = None) -> List[models.Technique]:
        stmt = select(models.Technique)
        if teacher_id is not None:
            stmt = stmt.where(models.Technique.teacher_id == teacher_id)
        return self.session.exec(stmt.order_by(models.Technique.date_added.desc(), models.Technique.id)).all()


class RepertoireRepository(_TableRepository):
    model = models.Repertoire

    def list(self, teacher_id: Optional[str] = None) -> List[models.Repertoire]:
        stmt = select(models.Repertoire)
        if teacher_id is not None:
            stmt = stmt.where(models.Repertoire.teacher_id == teacher_id)
        return self.session.exec(stmt.order_by(models.Repertoire.name, models.Repertoire.id)).all()


class LessonRepository(_TableRepository):
    model = models.Lesson

    def get_with_names(self, lesson_id: int) -> Optional[Tuple[models.Lesson, str, Optional[str]]]:
        """Return `(lesson, student_name, teacher_name)`; the teacher may have been deleted."""
        stmt = (
            select(models.Lesson, models.Student.name, models.Teacher.name)
            .join(models.Student, models.Student.id == models.Lesson.student_id)
            .join(models.Teacher, models.Teacher.id == models.Lesson.teacher_id, isouter=True)
            .where(models.Lesson.id == lesson_id)
        )
        return self.session.exec(stmt).first()

    def list_for_teacher(self, teacher_id: str, since: Optional[datetime] = None) -> List[Tuple[models.Lesson, str]]:
        """Return `(lesson, student_name)` pairs, newest first."""
        stmt = (
            select(models.Lesson, models.Student.name)
            .join(models.Student, models.Student.id == models.Lesson.student_id)
            .where(models.Lesson.teacher_id == teacher_id)
        )
        if since is not None:
            stmt = stmt.where(models.Lesson.date > since)
        return self.session.exec(stmt.order_by(models.Lesson.date.desc())).all()

    def list_for_student(self, student_id: int, since: Optional[datetime] = None) -> List[Tuple[models.Lesson, Optional[str]]]:
        """Return `(lesson, teacher_name)` pairs, newest first."""
        stmt = (
            select(models.Lesson, models.Teacher.name)
            .join(models.Teacher, models.Teacher.id == models.Lesson.teacher_id, isouter=True)
            .where(models.Lesson.student_id == student_id)
        )
        if since is not None:
            stmt = stmt.where(models.Lesson.date > since)
        return self.session.exec(stmt.order_by(models.Lesson.date.desc())).all()


class AssignmentRepository:
    """Rows joining a student to a technique or repertoire piece.

    `model` is `StudentTechnique` or `StudentRepertoire`; `item_model` the
    table the assignment points at and `item_column` the column holding
    that reference.
    """
    def __init__(self, session: Session, model, item_model, item_column: str):
        self.session = session
        self.model = model
        self.item_model = item_model
        self.item_column = item_column

    def _item_ref(self):
        return getattr(self.model, self.item_column)

    def get(self, assignment_id: int):
        return self.session.get(self.model, assignment_id)

    def get_pair(self, student_id: int, item_id: int):
        """Return the assignment of `item_id` to `student_id`, if any."""
        stmt = select(self.model).where(self.model.student_id == student_id, self._item_ref() == item_id)
        return self.session.exec(stmt).first()

    def create(self, assignment):
        """Insert an assignment; duplicates and dangling ids fail in the store."""
        with store_errors(self.session):
            self.session.add(assignment)
            self.session.commit()
        self.session.refresh(assignment)
        return assignment

    def list_with_items(self, student_id: int) -> List[Tuple[Any, Any]]:
        """Return `(assignment, item)` pairs for one student, unordered."""
        stmt = (
            select(self.model, self.item_model)
            .join(self.item_model, self._item_ref() == self.item_model.id)
            .where(self.model.student_id == student_id)
        )
        return self.session.exec(stmt).all()

    def delete_pair(self, student_id: int, item_id: int) -> bool:
        assignment = self.get_pair(student_id, item_id)
        if assignment is None:
            return False
        self.session.delete(assignment)
        self.session.commit()
        return True


class LessonReviewRepository:
    """Per-lesson review records (`LessonTechnique`, `LessonRepertoire`)."""
    def __init__(self, session: Session):
        self.session = session

    def record(self, review, assignment):
        """Store `review` together with the updated `assignment` in one commit."""
        with store_errors(self.session):
            self.session.add(review)
            self.session.add(assignment)
            self.session.commit()
        self.session.refresh(review)
        self.session.refresh(assignment)
        return review

    def techniques_for_lesson(self, lesson_id: int) -> List[Tuple[models.LessonTechnique, models.Technique]]:
        stmt = (
            select(models.LessonTechnique, models.Technique)
            .join(models.StudentTechnique, models.StudentTechnique.id == models.LessonTechnique.student_technique_id)
            .join(models.Technique, models.Technique.id == models.StudentTechnique.technique_id)
            .where(models.LessonTechnique.lesson_id == lesson_id)
            .order_by(models.LessonTechnique.id)
        )
        return self.session.exec(stmt).all()

    def repertoire_for_lesson(self, lesson_id: int) -> List[Tuple[models.LessonRepertoire, models.Repertoire]]:
        stmt = (
            select(models.LessonRepertoire, models.Repertoire)
            .join(models.StudentRepertoire, models.StudentRepertoire.id == models.LessonRepertoire.student_repertoire_id)
            .join(models.Repertoire, models.Repertoire.id == models.StudentRepertoire.repertoire_id)
            .where(models.LessonRepertoire.lesson_id == lesson_id)
            .order_by(models.LessonRepertoire.id)
        )
        return self.session.exec(stmt).all()
