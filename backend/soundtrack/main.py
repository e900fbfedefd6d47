"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: they pick the guard for the route,
delegate to services, and return JSON bodies. Every `AppError` raised
below them is turned into `{"error": {"message", "status"}}` by a single
handler; request validation failures become 400s with the same shape.

Endpoints implemented:
- GET /health
- POST /auth/register, POST /auth/token
- /skill-levels
- /teachers, /teachers/{teacher_id}[/lessons|/techniques|/repertoire]
- /students, /students/{student_id}[/lessons|/techniques|/repertoire]
- /techniques, /repertoire
- /lessons, /lessons/{lesson_id}[/reviews|/techniques|/repertoire]
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import services
from .auth import Identity, admin, correct_teacher_or_admin, create_token, ensure_correct_teacher_or_admin, logged_in
from .config import settings
from .database import create_db_and_tables, create_db_engine, get_session
from .errors import AppError, Unauthorized
from .scheduling import REPERTOIRE, TECHNIQUES, ReviewService
from .schemas import (
    AssignRepertoireIn,
    AssignTechniqueIn,
    LessonNewIn,
    LessonUpdateIn,
    RegisterIn,
    RepertoireNewIn,
    RepertoireReviewIn,
    RepertoireUpdateIn,
    SkillLevelIn,
    StudentNewIn,
    StudentUpdateIn,
    TeacherNewIn,
    TeacherUpdateIn,
    TechniqueNewIn,
    TechniqueReviewIn,
    TechniqueUpdateIn,
    TokenIn,
)

logger = logging.getLogger("soundtrack.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store at startup and release it at shutdown."""
    engine = create_db_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)
    app.state.engine = engine
    try:
        yield
    finally:
        engine.dispose()


app = FastAPI(title="SoundTrack Academy API", lifespan=lifespan)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


def _error_body(message, status: int) -> dict:
    return {"error": {"message": message, "status": status}}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.status_code))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content=_error_body(messages, 400))


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


# -- auth -------------------------------------------------------------------

@app.post("/auth/token")
def login(payload: TokenIn, db: Session = Depends(get_session)):
    """Exchange email and password for a JWT."""
    token = services.AuthService(db).authenticate(payload.email, payload.password)
    return {"token": token}


@app.post("/auth/register", status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Self-registration. Never creates an admin; returns a JWT."""
    teacher = services.AuthService(db).register(**payload.model_dump())
    return {"token": create_token(teacher)}


# -- skill levels -----------------------------------------------------------

@app.get("/skill-levels")
def list_skill_levels(db: Session = Depends(get_session)):
    return {"skillLevels": services.SkillLevelService(db).list()}


@app.post("/skill-levels", status_code=201)
def create_skill_level(payload: SkillLevelIn, db: Session = Depends(get_session), _: Identity = Depends(admin)):
    return {"skillLevel": services.SkillLevelService(db).create(payload.name)}


@app.delete("/skill-levels/{skill_level_id}")
def delete_skill_level(skill_level_id: int, db: Session = Depends(get_session), _: Identity = Depends(admin)):
    services.SkillLevelService(db).delete(skill_level_id)
    return {"deleted": skill_level_id}


# -- teachers ---------------------------------------------------------------

@app.post("/teachers", status_code=201)
def create_teacher(payload: TeacherNewIn, db: Session = Depends(get_session), _: Identity = Depends(admin)):
    """Admin-only teacher creation; unlike registration it may grant admin."""
    svc = services.TeacherService(db)
    teacher = svc.create(**payload.model_dump())
    token = create_token(svc.repo.get(teacher["id"]))
    return {"teacher": teacher, "token": token}


@app.get("/teachers")
def list_teachers(db: Session = Depends(get_session), _: Identity = Depends(admin)):
    return {"teachers": services.TeacherService(db).list()}


@app.get("/teachers/{teacher_id}")
def get_teacher(teacher_id: str, db: Session = Depends(get_session),
                _: Identity = Depends(correct_teacher_or_admin(path_param="teacher_id"))):
    return {"teacher": services.TeacherService(db).get(teacher_id)}


@app.patch("/teachers/{teacher_id}")
def update_teacher(teacher_id: str, payload: TeacherUpdateIn, db: Session = Depends(get_session),
                   identity: Identity = Depends(correct_teacher_or_admin(path_param="teacher_id"))):
    """Partial update. Only admins may change `isAdmin`."""
    data = payload.changes()
    if "isAdmin" in data and not identity.is_admin:
        raise Unauthorized()
    return {"teacher": services.TeacherService(db).update(teacher_id, data)}


@app.delete("/teachers/{teacher_id}")
def delete_teacher(teacher_id: str, db: Session = Depends(get_session),
                   _: Identity = Depends(correct_teacher_or_admin(path_param="teacher_id"))):
    services.TeacherService(db).delete(teacher_id)
    return {"deleted": teacher_id}


@app.get("/teachers/{teacher_id}/lessons")
def teacher_lessons(teacher_id: str, days_ago: int = Query(30, alias="daysAgo", ge=0),
                    db: Session = Depends(get_session),
                    _: Identity = Depends(correct_teacher_or_admin(path_param="teacher_id"))):
    """Lessons from the last `daysAgo` days (0 = all), newest first."""
    return {"lessons": services.TeacherService(db).lessons(teacher_id, days_ago)}


@app.get("/teachers/{teacher_id}/techniques")
def teacher_techniques(teacher_id: str, db: Session = Depends(get_session),
                       _: Identity = Depends(correct_teacher_or_admin(path_param="teacher_id"))):
    return {"techniques": services.TeacherService(db).techniques(teacher_id)}


@app.get("/teachers/{teacher_id}/repertoire")
def teacher_repertoire(teacher_id: str, db: Session = Depends(get_session),
                       _: Identity = Depends(correct_teacher_or_admin(path_param="teacher_id"))):
    return {"repertoire": services.TeacherService(db).repertoire(teacher_id)}


# -- students ---------------------------------------------------------------

@app.get("/students")
def list_students(
    teacher_id: Optional[str] = Query(None, alias="teacherId"),
    name: Optional[str] = None,
    skill_level_id: Optional[int] = Query(None, alias="skillLevelId"),
    db: Session = Depends(get_session),
    identity: Identity = Depends(logged_in),
):
    """List students. Non-admins only ever see their own; without `teacherId` that is the default."""
    if teacher_id is None and not identity.is_admin:
        teacher_id = identity.id
    if teacher_id is not None:
        ensure_correct_teacher_or_admin(identity, teacher_id)
    students = services.StudentService(db).list(teacher_id=teacher_id, name=name, skill_level_id=skill_level_id)
    return {"students": students}


@app.post("/students", status_code=201)
def create_student(payload: StudentNewIn, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    """Create a student. Non-admins create students for themselves only."""
    data = payload.model_dump()
    if data["teacher_id"] is None and not identity.is_admin:
        data["teacher_id"] = identity.id
    if data["teacher_id"] is not None:
        ensure_correct_teacher_or_admin(identity, data["teacher_id"])
    return {"student": services.StudentService(db).create(**data)}


@app.get("/students/{student_id}")
def get_student(student_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    return {"student": services.StudentService(db).get(student_id, identity)}


@app.patch("/students/{student_id}")
def update_student(student_id: int, payload: StudentUpdateIn, db: Session = Depends(get_session),
                   identity: Identity = Depends(logged_in)):
    return {"student": services.StudentService(db).update(student_id, payload.changes(), identity)}


@app.delete("/students/{student_id}")
def delete_student(student_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    services.StudentService(db).delete(student_id, identity)
    return {"deleted": student_id}


@app.get("/students/{student_id}/lessons")
def student_lessons(student_id: int, days_ago: int = Query(30, alias="daysAgo", ge=0),
                    db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    return {"lessons": services.StudentService(db).lessons(student_id, days_ago, identity)}


@app.get("/students/{student_id}/techniques")
def student_techniques(student_id: int, include_completed: bool = Query(False, alias="includeCompleted"),
                       db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    """Assigned techniques ordered by next review; only due ones unless `includeCompleted`."""
    services.StudentService(db).get(student_id, identity)
    techniques = ReviewService(db, TECHNIQUES).list_assigned(student_id, include_completed)
    return {"techniques": techniques}


@app.post("/students/{student_id}/techniques", status_code=201)
def assign_technique(student_id: int, payload: AssignTechniqueIn, db: Session = Depends(get_session),
                     identity: Identity = Depends(logged_in)):
    services.StudentService(db).get(student_id, identity)
    technique = ReviewService(db, TECHNIQUES).assign(student_id, payload.technique_id, payload.review_interval_days)
    return {"technique": technique}


@app.delete("/students/{student_id}/techniques/{technique_id}")
def unassign_technique(student_id: int, technique_id: int, db: Session = Depends(get_session),
                       identity: Identity = Depends(logged_in)):
    services.StudentService(db).get(student_id, identity)
    ReviewService(db, TECHNIQUES).unassign(student_id, technique_id)
    return {"deleted": technique_id}


@app.get("/students/{student_id}/repertoire")
def student_repertoire(student_id: int, include_completed: bool = Query(False, alias="includeCompleted"),
                       db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    services.StudentService(db).get(student_id, identity)
    repertoire = ReviewService(db, REPERTOIRE).list_assigned(student_id, include_completed)
    return {"repertoire": repertoire}


@app.post("/students/{student_id}/repertoire", status_code=201)
def assign_repertoire(student_id: int, payload: AssignRepertoireIn, db: Session = Depends(get_session),
                      identity: Identity = Depends(logged_in)):
    services.StudentService(db).get(student_id, identity)
    repertoire = ReviewService(db, REPERTOIRE).assign(student_id, payload.repertoire_id, payload.review_interval_days)
    return {"repertoire": repertoire}


@app.delete("/students/{student_id}/repertoire/{repertoire_id}")
def unassign_repertoire(student_id: int, repertoire_id: int, db: Session = Depends(get_session),
                        identity: Identity = Depends(logged_in)):
    services.StudentService(db).get(student_id, identity)
    ReviewService(db, REPERTOIRE).unassign(student_id, repertoire_id)
    return {"deleted": repertoire_id}


# -- techniques / repertoire catalogue --------------------------------------

@app.get("/techniques")
def list_techniques(teacher_id: Optional[str] = Query(None, alias="teacherId"), db: Session = Depends(get_session),
                    _: Identity = Depends(correct_teacher_or_admin(query_param="teacherId"))):
    """Techniques of one teacher; admins may omit `teacherId` to list all."""
    return {"techniques": services.TechniqueService(db).list(teacher_id)}


@app.post("/techniques", status_code=201)
def create_technique(payload: TechniqueNewIn, db: Session = Depends(get_session),
                     identity: Identity = Depends(logged_in)):
    data = payload.model_dump()
    if data["teacher_id"] is None:
        data["teacher_id"] = identity.id
    ensure_correct_teacher_or_admin(identity, data["teacher_id"])
    return {"technique": services.TechniqueService(db).create(**data)}


@app.get("/techniques/{technique_id}")
def get_technique(technique_id: int, db: Session = Depends(get_session), _: Identity = Depends(logged_in)):
    return {"technique": services.TechniqueService(db).get(technique_id)}


@app.patch("/techniques/{technique_id}")
def update_technique(technique_id: int, payload: TechniqueUpdateIn, db: Session = Depends(get_session),
                     identity: Identity = Depends(logged_in)):
    return {"technique": services.TechniqueService(db).update(technique_id, payload.changes(), identity)}


@app.delete("/techniques/{technique_id}")
def delete_technique(technique_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    services.TechniqueService(db).delete(technique_id, identity)
    return {"deleted": technique_id}


@app.get("/repertoire")
def list_repertoire(teacher_id: Optional[str] = Query(None, alias="teacherId"), db: Session = Depends(get_session),
                    _: Identity = Depends(correct_teacher_or_admin(query_param="teacherId"))):
    return {"repertoire": services.RepertoireService(db).list(teacher_id)}


@app.post("/repertoire", status_code=201)
def create_repertoire(payload: RepertoireNewIn, db: Session = Depends(get_session),
                      identity: Identity = Depends(logged_in)):
    data = payload.model_dump()
    if data["teacher_id"] is None:
        data["teacher_id"] = identity.id
    ensure_correct_teacher_or_admin(identity, data["teacher_id"])
    return {"repertoire": services.RepertoireService(db).create(**data)}


@app.get("/repertoire/{repertoire_id}")
def get_repertoire(repertoire_id: int, db: Session = Depends(get_session), _: Identity = Depends(logged_in)):
    return {"repertoire": services.RepertoireService(db).get(repertoire_id)}


@app.patch("/repertoire/{repertoire_id}")
def update_repertoire(repertoire_id: int, payload: RepertoireUpdateIn, db: Session = Depends(get_session),
                      identity: Identity = Depends(logged_in)):
    return {"repertoire": services.RepertoireService(db).update(repertoire_id, payload.changes(), identity)}


@app.delete("/repertoire/{repertoire_id}")
def delete_repertoire(repertoire_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    services.RepertoireService(db).delete(repertoire_id, identity)
    return {"deleted": repertoire_id}


# -- lessons ----------------------------------------------------------------

@app.post("/lessons", status_code=201)
def create_lesson(payload: LessonNewIn, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    """Log a lesson. Non-admins log lessons as themselves, for their own students."""
    ensure_correct_teacher_or_admin(identity, payload.teacher_id)
    return {"lesson": services.LessonService(db).create(identity=identity, **payload.model_dump())}


@app.get("/lessons/{lesson_id}")
def get_lesson(lesson_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    return {"lesson": services.LessonService(db).get(lesson_id, identity)}


@app.patch("/lessons/{lesson_id}")
def update_lesson(lesson_id: int, payload: LessonUpdateIn, db: Session = Depends(get_session),
                  identity: Identity = Depends(logged_in)):
    return {"lesson": services.LessonService(db).update(lesson_id, payload.changes(), identity)}


@app.delete("/lessons/{lesson_id}")
def delete_lesson(lesson_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    services.LessonService(db).delete(lesson_id, identity)
    return {"deleted": lesson_id}


@app.get("/lessons/{lesson_id}/reviews")
def lesson_reviews(lesson_id: int, db: Session = Depends(get_session), identity: Identity = Depends(logged_in)):
    return services.LessonService(db).reviews(lesson_id, identity)


@app.post("/lessons/{lesson_id}/techniques", status_code=201)
def review_technique(lesson_id: int, payload: TechniqueReviewIn, db: Session = Depends(get_session),
                     identity: Identity = Depends(logged_in)):
    """Record how an assigned technique went; this resets its review clock."""
    review = services.LessonService(db).record_technique_review(lesson_id, identity=identity, **payload.model_dump())
    return {"review": review}


@app.post("/lessons/{lesson_id}/repertoire", status_code=201)
def review_repertoire(lesson_id: int, payload: RepertoireReviewIn, db: Session = Depends(get_session),
                      identity: Identity = Depends(logged_in)):
    review = services.LessonService(db).record_repertoire_review(lesson_id, identity=identity, **payload.model_dump())
    return {"review": review}
