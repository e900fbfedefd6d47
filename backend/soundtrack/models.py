"""SQLModel data models.

Each class maps to one table. Attribute names are the storage names;
the API speaks camelCase and translates at the service boundary.
Referential actions are declared on the foreign keys and enforced by
the store (SQLite needs `PRAGMA foreign_keys=ON`, see `database`).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return `value` as an aware UTC datetime.

    SQLite hands back naive datetimes; everything stored here is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SkillLevel(SQLModel, table=True):
    """A named level ("Beginner 1", "Advanced 3") referenced by students and material."""
    __tablename__ = "skill_levels"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, nullable=False)


class Teacher(SQLModel, table=True):
    """A registered teacher.

    Fields:
    - `id`: opaque identifier (uuid hex), also the JWT subject
    - `password_hash`: hashed password string (never store plaintext)
    - `is_admin`: admins pass every ownership check
    """
    __tablename__ = "teachers"

    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    email: str = Field(index=True, unique=True, nullable=False)
    password_hash: str
    name: str = Field(max_length=50)
    description: Optional[str] = None
    is_admin: bool = False
    date_added: datetime = Field(default_factory=utcnow)


class Student(SQLModel, table=True):
    """A student, belonging to at most one teacher."""
    __tablename__ = "students"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=50)
    email: str = Field(index=True, unique=True, nullable=False)
    description: Optional[str] = None
    skill_level_id: Optional[int] = Field(default=None, foreign_key="skill_levels.id", ondelete="SET NULL")
    teacher_id: Optional[str] = Field(default=None, foreign_key="teachers.id", ondelete="SET NULL", index=True)


class Technique(SQLModel, table=True):
    """A scale, arpeggio or similar exercise, e.g. C / Ionian / Scale."""
    __tablename__ = "techniques"
    __table_args__ = (UniqueConstraint("tonic", "mode", "type", "teacher_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tonic: str = Field(max_length=2)
    mode: str
    type: str
    description: Optional[str] = None
    date_added: datetime = Field(default_factory=utcnow)
    skill_level_id: Optional[int] = Field(default=None, foreign_key="skill_levels.id", ondelete="SET NULL")
    teacher_id: Optional[str] = Field(default=None, foreign_key="teachers.id", ondelete="SET NULL", index=True)


class Repertoire(SQLModel, table=True):
    """A piece of music a teacher can assign."""
    __tablename__ = "repertoire"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    composer: str = Field(max_length=50)
    arranger: Optional[str] = Field(default=None, max_length=50)
    genre: str
    sheet_music_url: Optional[str] = None
    description: Optional[str] = None
    date_added: datetime = Field(default_factory=utcnow)
    skill_level_id: Optional[int] = Field(default=None, foreign_key="skill_levels.id", ondelete="SET NULL")
    teacher_id: Optional[str] = Field(default=None, foreign_key="teachers.id", ondelete="SET NULL", index=True)


class StudentTechnique(SQLModel, table=True):
    """A technique assigned to a student for spaced review."""
    __tablename__ = "student_techniques"
    __table_args__ = (UniqueConstraint("student_id", "technique_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", ondelete="CASCADE", index=True)
    technique_id: int = Field(foreign_key="techniques.id", ondelete="CASCADE")
    date_added: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    review_interval: Optional[timedelta] = None


class StudentRepertoire(SQLModel, table=True):
    """A repertoire piece assigned to a student for spaced review."""
    __tablename__ = "student_repertoire"
    __table_args__ = (UniqueConstraint("student_id", "repertoire_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", ondelete="CASCADE", index=True)
    repertoire_id: int = Field(foreign_key="repertoire.id", ondelete="CASCADE")
    date_added: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    review_interval: Optional[timedelta] = None


class Lesson(SQLModel, table=True):
    """A lesson given by a teacher to a student.

    Deleted with its student; `teacher_id` is cleared when the teacher goes.
    """
    __tablename__ = "lessons"

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", ondelete="CASCADE", index=True)
    teacher_id: Optional[str] = Field(default=None, foreign_key="teachers.id", ondelete="SET NULL", index=True)
    date: datetime = Field(default_factory=utcnow)
    notes: Optional[str] = None


class LessonTechnique(SQLModel, table=True):
    """Outcome of reviewing an assigned technique during a lesson."""
    __tablename__ = "lesson_techniques"

    id: Optional[int] = Field(default=None, primary_key=True)
    lesson_id: int = Field(foreign_key="lessons.id", ondelete="CASCADE", index=True)
    student_technique_id: int = Field(foreign_key="student_techniques.id", ondelete="CASCADE")
    rating: int = 0
    notes: Optional[str] = None


class LessonRepertoire(SQLModel, table=True):
    """Outcome of reviewing an assigned piece during a lesson."""
    __tablename__ = "lesson_repertoire"

    id: Optional[int] = Field(default=None, primary_key=True)
    lesson_id: int = Field(foreign_key="lessons.id", ondelete="CASCADE", index=True)
    student_repertoire_id: int = Field(foreign_key="student_repertoire.id", ondelete="CASCADE")
    completed: bool = False
    rating: int = 0
    notes: Optional[str] = None
