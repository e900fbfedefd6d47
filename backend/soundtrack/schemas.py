"""Pydantic request/response schemas used by the API.

The API speaks camelCase (`teacherId`, `reviewIntervalDays`); models
here use snake_case attributes with camelCase aliases. Request models
reject unknown keys, response models read straight from table rows.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from .models import as_utc

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def changes(self) -> dict:
        """Only the fields the client actually sent, keyed by their API names."""
        return self.model_dump(exclude_unset=True, by_alias=True)


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    @field_validator("*")
    @classmethod
    def _utc_datetimes(cls, value):
        return as_utc(value) if isinstance(value, datetime) else value


# -- auth / teachers --------------------------------------------------------

class TokenIn(RequestModel):
    """Payload for `POST /auth/token`."""
    email: str
    password: str


class RegisterIn(RequestModel):
    """Payload for self-registration; never grants admin."""
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8)
    name: str = Field(min_length=2, max_length=50)
    description: Optional[str] = None


class TeacherNewIn(RegisterIn):
    """Payload for admin-created teachers, which may be admins themselves."""
    is_admin: bool = False


class TeacherUpdateIn(RequestModel):
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=8)
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    description: Optional[str] = None
    is_admin: Optional[bool] = None

    @field_validator("email", "password", "name")
    @classmethod
    def _not_null(cls, value):
        # omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("may not be null")
        return value


class TeacherOut(ResponseModel):
    id: str
    email: str
    name: str
    description: Optional[str] = None
    is_admin: bool


# -- skill levels -----------------------------------------------------------

class SkillLevelIn(RequestModel):
    name: str = Field(min_length=1, max_length=50)


class SkillLevelOut(ResponseModel):
    id: int
    name: str


# -- students ---------------------------------------------------------------

class StudentNewIn(RequestModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    name: str = Field(min_length=2, max_length=50)
    description: Optional[str] = None
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None


class StudentUpdateIn(RequestModel):
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    description: Optional[str] = None
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None

    @field_validator("email", "name")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class StudentOut(ResponseModel):
    id: int
    name: str
    email: str
    description: Optional[str] = None
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None


# -- techniques / repertoire ------------------------------------------------

class TechniqueNewIn(RequestModel):
    tonic: str = Field(min_length=1, max_length=2)
    mode: str = Field(min_length=1)
    type: str = Field(min_length=1)
    description: Optional[str] = None
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None


class TechniqueUpdateIn(RequestModel):
    tonic: Optional[str] = Field(default=None, min_length=1, max_length=2)
    mode: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    skill_level_id: Optional[int] = None


class TechniqueOut(ResponseModel):
    id: int
    tonic: str
    mode: str
    type: str
    description: Optional[str] = None
    date_added: datetime
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None


class RepertoireNewIn(RequestModel):
    name: str = Field(min_length=1)
    composer: str = Field(min_length=1, max_length=50)
    arranger: Optional[str] = Field(default=None, max_length=50)
    genre: str = Field(min_length=1)
    sheet_music_url: Optional[str] = None
    description: Optional[str] = None
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None


class RepertoireUpdateIn(RequestModel):
    name: Optional[str] = None
    composer: Optional[str] = Field(default=None, max_length=50)
    arranger: Optional[str] = Field(default=None, max_length=50)
    genre: Optional[str] = None
    sheet_music_url: Optional[str] = None
    description: Optional[str] = None
    skill_level_id: Optional[int] = None


class RepertoireOut(ResponseModel):
    id: int
    name: str
    composer: str
    arranger: Optional[str] = None
    genre: str
    sheet_music_url: Optional[str] = None
    description: Optional[str] = None
    date_added: datetime
    skill_level_id: Optional[int] = None
    teacher_id: Optional[str] = None


# -- assignments ------------------------------------------------------------

class AssignTechniqueIn(RequestModel):
    """Assign a technique; `reviewIntervalDays` omitted means no repeat review."""
    technique_id: int
    review_interval_days: Optional[Union[StrictInt, StrictFloat]] = None


class AssignRepertoireIn(RequestModel):
    repertoire_id: int
    review_interval_days: Optional[Union[StrictInt, StrictFloat]] = None


# -- lessons ----------------------------------------------------------------

class LessonNewIn(RequestModel):
    teacher_id: str
    student_id: int
    notes: Optional[str] = None
    date: Optional[datetime] = None


class LessonUpdateIn(RequestModel):
    teacher_id: Optional[str] = None
    student_id: Optional[int] = None
    notes: Optional[str] = None
    date: Optional[datetime] = None


class LessonOut(ResponseModel):
    id: int
    date: datetime
    notes: Optional[str] = None
    student_id: int
    teacher_id: Optional[str] = None


class TechniqueReviewIn(RequestModel):
    """Outcome of reviewing one assigned technique in a lesson."""
    student_technique_id: int
    rating: int = Field(default=0, ge=0)
    notes: Optional[str] = None


class RepertoireReviewIn(RequestModel):
    student_repertoire_id: int
    rating: int = Field(default=0, ge=0)
    notes: Optional[str] = None
    completed: bool = False
