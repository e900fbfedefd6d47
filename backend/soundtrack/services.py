"""Business logic services used by HTTP controllers.

Services validate input, enforce ownership rules for the calling
teacher and persist through repositories. They take camelCase field
maps for partial updates, exactly as the API receives them, and return
plain dicts ready to be serialised.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories, schemas
from .auth import Identity, create_token, ensure_correct_teacher_or_admin
from .config import settings
from .errors import InvalidArgument, NotFound, Unauthorized
from .models import as_utc, utcnow
from .scheduling import REPERTOIRE, TECHNIQUES, ReviewService, compute_schedule, mark_reviewed
from .utils.partial_update import resolve_partial_update

logger = logging.getLogger("soundtrack.services")

PWD_CTX = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__rounds=settings.PASSWORD_HASH_ROUNDS,
)

DEFAULT_DAYS_AGO = 30


def _dump(schema, obj) -> Dict[str, Any]:
    return schema.model_validate(obj).model_dump(by_alias=True)


def _since(days_ago: Optional[int]) -> Optional[datetime]:
    # 0 / None means "no cut-off"
    if not days_ago:
        return None
    return utcnow() - timedelta(days=days_ago)


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.teacher_repo = repositories.TeacherRepository(session)

    def register(self, email: str, password: str, name: str, description: Optional[str] = None,
                 is_admin: bool = False) -> models.Teacher:
        """Create a new teacher with a hashed password.

        A duplicate email fails with `Conflict` from the unique constraint.
        """
        teacher = models.Teacher(
            email=email,
            password_hash=PWD_CTX.hash(password),
            name=name,
            description=description,
            is_admin=is_admin,
        )
        teacher = self.teacher_repo.create(teacher)
        logger.info("registered teacher %s (admin=%s)", teacher.id, teacher.is_admin)
        return teacher

    def authenticate(self, email: str, password: str) -> str:
        """Verify credentials and return a signed JWT token.

        Unknown emails and wrong passwords fail the same way.
        """
        teacher = self.teacher_repo.get_by_email(email)
        if teacher is None or not PWD_CTX.verify(password, teacher.password_hash):
            raise Unauthorized("Invalid email or password")
        return create_token(teacher)


class TeacherService:
    """Teacher accounts and the material/lessons they own."""
    ALIASES = {"isAdmin": "is_admin", "password": "password_hash"}

    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.TeacherRepository(session)

    def _require(self, teacher_id: str) -> models.Teacher:
        teacher = self.repo.get(teacher_id)
        if teacher is None:
            raise NotFound(f"No teacher found with id: {teacher_id}")
        return teacher

    def create(self, email: str, password: str, name: str, description: Optional[str] = None,
               is_admin: bool = False) -> Dict[str, Any]:
        """Admin path for adding teachers; unlike registration it may grant admin."""
        teacher = AuthService(self.session).register(email, password, name, description, is_admin=is_admin)
        return _dump(schemas.TeacherOut, teacher)

    def list(self) -> List[Dict[str, Any]]:
        return [_dump(schemas.TeacherOut, t) for t in self.repo.list()]

    def get(self, teacher_id: str) -> Dict[str, Any]:
        return _dump(schemas.TeacherOut, self._require(teacher_id))

    def update(self, teacher_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Partial update; a new password is hashed before it is stored.

        WARNING: this can make a teacher an admin. Callers must decide who
        may send `isAdmin`.
        """
        data = dict(data)
        if "password" in data:
            if data["password"] is None:
                raise InvalidArgument("'password' is required")
            data["password"] = PWD_CTX.hash(data["password"])
        teacher = self.repo.update(teacher_id, resolve_partial_update(data, self.ALIASES))
        if teacher is None:
            raise NotFound(f"No teacher found with id: {teacher_id}")
        return _dump(schemas.TeacherOut, teacher)

    def delete(self, teacher_id: str) -> None:
        if not self.repo.delete(teacher_id):
            raise NotFound(f"No teacher found with id: {teacher_id}")
        logger.info("deleted teacher %s", teacher_id)

    def lessons(self, teacher_id: str, days_ago: Optional[int] = DEFAULT_DAYS_AGO) -> List[Dict[str, Any]]:
        """Lessons given by the teacher in the last `days_ago` days, newest first."""
        self._require(teacher_id)
        rows = repositories.LessonRepository(self.session).list_for_teacher(teacher_id, _since(days_ago))
        return [
            {"id": lesson.id, "studentId": lesson.student_id, "studentName": student_name, "date": as_utc(lesson.date)}
            for lesson, student_name in rows
        ]

    def techniques(self, teacher_id: str) -> List[Dict[str, Any]]:
        self._require(teacher_id)
        return [_dump(schemas.TechniqueOut, t) for t in repositories.TechniqueRepository(self.session).list(teacher_id)]

    def repertoire(self, teacher_id: str) -> List[Dict[str, Any]]:
        self._require(teacher_id)
        return [_dump(schemas.RepertoireOut, r) for r in repositories.RepertoireRepository(self.session).list(teacher_id)]


class SkillLevelService:
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.SkillLevelRepository(session)

    def create(self, name: str) -> Dict[str, Any]:
        return _dump(schemas.SkillLevelOut, self.repo.create(models.SkillLevel(name=name)))

    def list(self) -> List[Dict[str, Any]]:
        return [_dump(schemas.SkillLevelOut, s) for s in self.repo.list()]

    def get(self, skill_level_id: int) -> Dict[str, Any]:
        skill_level = self.repo.get(skill_level_id)
        if skill_level is None:
            raise NotFound(f"No skillLevel found with id: {skill_level_id}")
        return _dump(schemas.SkillLevelOut, skill_level)

    def delete(self, skill_level_id: int) -> None:
        """Delete a skill level; students and material referencing it keep existing with no level."""
        if not self.repo.delete(skill_level_id):
            raise NotFound(f"No skillLevel found with id: {skill_level_id}")


class StudentService:
    """Students, scoped to the calling teacher.

    Methods taking an `identity` only let admins and the student's own
    teacher through; pass `identity=None` for trusted internal calls.
    """
    ALIASES = {"teacherId": "teacher_id", "skillLevelId": "skill_level_id"}

    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.StudentRepository(session)

    def _require(self, student_id: int, identity: Optional[Identity] = None) -> models.Student:
        student = self.repo.get(student_id)
        if student is None:
            raise NotFound(f"No student found with id: {student_id}")
        if identity is not None:
            ensure_correct_teacher_or_admin(identity, student.teacher_id)
        return student

    def create(self, name: str, email: str, teacher_id: Optional[str] = None, description: Optional[str] = None,
               skill_level_id: Optional[int] = None) -> Dict[str, Any]:
        """Create a student; unknown `teacher_id`/`skill_level_id` fail with `InvalidArgument`."""
        student = models.Student(
            name=name,
            email=email,
            teacher_id=teacher_id,
            description=description,
            skill_level_id=skill_level_id,
        )
        return _dump(schemas.StudentOut, self.repo.create(student))

    def list(self, teacher_id: Optional[str] = None, name: Optional[str] = None,
             skill_level_id: Optional[int] = None) -> List[Dict[str, Any]]:
        students = self.repo.list(teacher_id=teacher_id, name=name, skill_level_id=skill_level_id)
        return [_dump(schemas.StudentOut, s) for s in students]

    def get(self, student_id: int, identity: Optional[Identity] = None) -> Dict[str, Any]:
        return _dump(schemas.StudentOut, self._require(student_id, identity))

    def update(self, student_id: int, data: Mapping[str, Any], identity: Optional[Identity] = None) -> Dict[str, Any]:
        """Partial update of a student.

        Non-admin callers may not hand a student over to another teacher.
        """
        values = resolve_partial_update(data, self.ALIASES)
        self._require(student_id, identity)
        if identity is not None and not identity.is_admin and "teacher_id" in values:
            if values["teacher_id"] != identity.id:
                raise Unauthorized()
        student = self.repo.update(student_id, values)
        if student is None:
            raise NotFound(f"No student found with id: {student_id}")
        return _dump(schemas.StudentOut, student)

    def delete(self, student_id: int, identity: Optional[Identity] = None) -> None:
        """Delete a student together with their lessons and assignments."""
        self._require(student_id, identity)
        self.repo.delete(student_id)
        logger.info("deleted student %s", student_id)

    def lessons(self, student_id: int, days_ago: Optional[int] = DEFAULT_DAYS_AGO,
                identity: Optional[Identity] = None) -> List[Dict[str, Any]]:
        self._require(student_id, identity)
        rows = repositories.LessonRepository(self.session).list_for_student(student_id, _since(days_ago))
        return [
            {"id": lesson.id, "teacherId": lesson.teacher_id, "teacherName": teacher_name, "date": as_utc(lesson.date)}
            for lesson, teacher_name in rows
        ]


class _MaterialService:
    """Techniques and repertoire share one shape: teacher-owned catalogue rows."""
    repo_class = None
    out_schema = None
    label = None
    ALIASES: Dict[str, str] = {}

    def __init__(self, session: Session):
        self.session = session
        self.repo = self.repo_class(session)

    def _require(self, obj_id: int, identity: Optional[Identity] = None):
        obj = self.repo.get(obj_id)
        if obj is None:
            raise NotFound(f"No {self.label} found with id: {obj_id}")
        if identity is not None:
            ensure_correct_teacher_or_admin(identity, obj.teacher_id)
        return obj

    def create(self, **fields) -> Dict[str, Any]:
        if not fields.get("teacher_id"):
            raise InvalidArgument("teacherId is required")
        obj = self.repo.create(self.repo.model(**fields))
        return _dump(self.out_schema, obj)

    def list(self, teacher_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [_dump(self.out_schema, obj) for obj in self.repo.list(teacher_id)]

    def get(self, obj_id: int) -> Dict[str, Any]:
        return _dump(self.out_schema, self._require(obj_id))

    def update(self, obj_id: int, data: Mapping[str, Any], identity: Optional[Identity] = None) -> Dict[str, Any]:
        values = resolve_partial_update(data, self.ALIASES)
        self._require(obj_id, identity)
        return _dump(self.out_schema, self.repo.update(obj_id, values))

    def delete(self, obj_id: int, identity: Optional[Identity] = None) -> None:
        """Delete the row; it disappears from every student's assignments as well."""
        self._require(obj_id, identity)
        self.repo.delete(obj_id)


class TechniqueService(_MaterialService):
    """Techniques are unique per teacher on (tonic, mode, type)."""
    repo_class = repositories.TechniqueRepository
    out_schema = schemas.TechniqueOut
    label = "technique"
    ALIASES = {"skillLevelId": "skill_level_id"}


class RepertoireService(_MaterialService):
    repo_class = repositories.RepertoireRepository
    out_schema = schemas.RepertoireOut
    label = "repertoire item"
    ALIASES = {"skillLevelId": "skill_level_id", "sheetMusicUrl": "sheet_music_url"}


class LessonService:
    """Lessons and the reviews recorded during them.

    Recording a review stamps the assignment's `reviewed_at` with the
    lesson date, which is what moves its next review forward.
    """
    ALIASES = {"teacherId": "teacher_id", "studentId": "student_id"}

    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.LessonRepository(session)
        self.review_repo = repositories.LessonReviewRepository(session)

    def _require(self, lesson_id: int, identity: Optional[Identity] = None) -> models.Lesson:
        lesson = self.repo.get(lesson_id)
        if lesson is None:
            raise NotFound(f"No lesson found with id: {lesson_id}")
        if identity is not None:
            ensure_correct_teacher_or_admin(identity, lesson.teacher_id)
        return lesson

    def _check_student(self, student_id, identity: Optional[Identity]) -> None:
        # unknown ids are left to the foreign key, which reports InvalidArgument
        if identity is None or identity.is_admin or student_id is None:
            return
        student = self.session.get(models.Student, student_id)
        if student is not None:
            ensure_correct_teacher_or_admin(identity, student.teacher_id)

    def create(self, student_id: int, teacher_id: str, notes: Optional[str] = None,
               date: Optional[datetime] = None, identity: Optional[Identity] = None) -> Dict[str, Any]:
        """Log a lesson; non-admin callers may only log lessons for their own students."""
        self._check_student(student_id, identity)
        lesson = models.Lesson(student_id=student_id, teacher_id=teacher_id, notes=notes)
        if date is not None:
            lesson.date = as_utc(date)
        return _dump(schemas.LessonOut, self.repo.create(lesson))

    def get(self, lesson_id: int, identity: Optional[Identity] = None) -> Dict[str, Any]:
        """Return the lesson with its student's and teacher's names."""
        self._require(lesson_id, identity)
        lesson, student_name, teacher_name = self.repo.get_with_names(lesson_id)
        out = _dump(schemas.LessonOut, lesson)
        out.update({"studentName": student_name, "teacherName": teacher_name})
        return out

    def update(self, lesson_id: int, data: Mapping[str, Any], identity: Optional[Identity] = None) -> Dict[str, Any]:
        """Partial update; non-admin callers may not move the lesson to another teacher or their student."""
        values = resolve_partial_update(data, self.ALIASES)
        self._require(lesson_id, identity)
        if identity is not None and not identity.is_admin and "teacher_id" in values:
            if values["teacher_id"] != identity.id:
                raise Unauthorized()
        if "student_id" in values:
            self._check_student(values["student_id"], identity)
        if values.get("date") is not None:
            values["date"] = as_utc(values["date"])
        return _dump(schemas.LessonOut, self.repo.update(lesson_id, values))

    def delete(self, lesson_id: int, identity: Optional[Identity] = None) -> None:
        self._require(lesson_id, identity)
        self.repo.delete(lesson_id)

    def _assignment_for(self, lesson: models.Lesson, model, assignment_id: int, field: str):
        assignment = self.session.get(model, assignment_id)
        if assignment is None or assignment.student_id != lesson.student_id:
            raise InvalidArgument(f"'{field}' is not assigned to the lesson's student")
        return assignment

    def record_technique_review(self, lesson_id: int, student_technique_id: int, rating: int = 0,
                                notes: Optional[str] = None, identity: Optional[Identity] = None) -> Dict[str, Any]:
        lesson = self._require(lesson_id, identity)
        assignment = self._assignment_for(lesson, models.StudentTechnique, student_technique_id, "studentTechniqueId")
        review = models.LessonTechnique(
            lesson_id=lesson.id, student_technique_id=assignment.id, rating=rating, notes=notes,
        )
        mark_reviewed(assignment, lesson.date)
        review = self.review_repo.record(review, assignment)
        item = self.session.get(models.Technique, assignment.technique_id)
        return self._review_view(review, ReviewService(self.session, TECHNIQUES), assignment, item)

    def record_repertoire_review(self, lesson_id: int, student_repertoire_id: int, rating: int = 0,
                                 notes: Optional[str] = None, completed: bool = False,
                                 identity: Optional[Identity] = None) -> Dict[str, Any]:
        """Like `record_technique_review`; `completed=True` also marks the piece as done."""
        lesson = self._require(lesson_id, identity)
        assignment = self._assignment_for(lesson, models.StudentRepertoire, student_repertoire_id, "studentRepertoireId")
        review = models.LessonRepertoire(
            lesson_id=lesson.id, student_repertoire_id=assignment.id, rating=rating, notes=notes, completed=completed,
        )
        mark_reviewed(assignment, lesson.date, completed=completed)
        review = self.review_repo.record(review, assignment)
        item = self.session.get(models.Repertoire, assignment.repertoire_id)
        out = self._review_view(review, ReviewService(self.session, REPERTOIRE), assignment, item)
        out["reviewCompleted"] = review.completed
        return out

    def _review_view(self, review, review_service: ReviewService, assignment, item) -> Dict[str, Any]:
        out = review_service.view(assignment, item, compute_schedule(assignment))
        out.update({"reviewId": review.id, "lessonId": review.lesson_id, "rating": review.rating, "notes": review.notes})
        return out

    def reviews(self, lesson_id: int, identity: Optional[Identity] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Everything reviewed during a lesson, grouped by kind."""
        self._require(lesson_id, identity)
        techniques = [
            {"reviewId": r.id, "studentTechniqueId": r.student_technique_id, "id": t.id,
             "tonic": t.tonic, "mode": t.mode, "type": t.type, "rating": r.rating, "notes": r.notes}
            for r, t in self.review_repo.techniques_for_lesson(lesson_id)
        ]
        repertoire = [
            {"reviewId": r.id, "studentRepertoireId": r.student_repertoire_id, "id": p.id,
             "name": p.name, "composer": p.composer, "rating": r.rating, "notes": r.notes, "completed": r.completed}
            for r, p in self.review_repo.repertoire_for_lesson(lesson_id)
        ]
        return {"techniques": techniques, "repertoire": repertoire}
