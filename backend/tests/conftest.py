import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from soundtrack import models, services
from soundtrack.auth import create_token
from soundtrack.database import create_db_and_tables, create_db_engine, get_session
from soundtrack.main import app


@pytest.fixture
def engine():
    """A fresh in-memory database for every test."""
    engine = create_db_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def data(session):
    """Skill levels, an admin, two teachers with one student and one piece of material each."""
    levels = [services.SkillLevelService(session).create(name)["id"] for name in ("Beginner", "Intermediate", "Advanced")]
    auth = services.AuthService(session)
    admin = auth.register("admin@example.com", "password0", "Admin", is_admin=True)
    teacher1 = auth.register("teacher1@example.com", "password1", "Teacher1", "This is a description")
    teacher2 = auth.register("teacher2@example.com", "password2", "Teacher2", "This is another description")

    students = services.StudentService(session)
    student1 = students.create("Student1", "student1@example.com", teacher1.id, "This is a description", levels[0])
    student2 = students.create("Student2", "student2@example.com", teacher2.id, "This is another description", levels[1])

    techniques = services.TechniqueService(session)
    technique1 = techniques.create(tonic="C", mode="Ionian", type="Scale", description="This is a scale",
                                   skill_level_id=levels[0], teacher_id=teacher1.id)
    technique2 = techniques.create(tonic="D", mode="Dorian", type="Scale", description="This is another scale",
                                   skill_level_id=levels[1], teacher_id=teacher2.id)

    repertoire = services.RepertoireService(session)
    piece1 = repertoire.create(name="Piece1", composer="Composer1", arranger="Arranger1", genre="Classical",
                               sheet_music_url="https://example.com/sheetmusic1", skill_level_id=levels[0],
                               teacher_id=teacher1.id)
    piece2 = repertoire.create(name="Piece2", composer="Composer2", genre="Pop", skill_level_id=levels[1],
                               teacher_id=teacher2.id)

    return SimpleNamespace(
        skill_levels=levels,
        admin_id=admin.id,
        teacher1_id=teacher1.id,
        teacher2_id=teacher2.id,
        student1_id=student1["id"],
        student2_id=student2["id"],
        technique1_id=technique1["id"],
        technique2_id=technique2["id"],
        piece1_id=piece1["id"],
        piece2_id=piece2["id"],
        admin_token=create_token(admin),
        teacher1_token=create_token(teacher1),
        teacher2_token=create_token(teacher2),
    )


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(data):
    return SimpleNamespace(
        admin=auth_header(data.admin_token),
        teacher1=auth_header(data.teacher1_token),
        teacher2=auth_header(data.teacher2_token),
    )


@pytest.fixture
def add_assignment(session):
    """Insert assignment rows directly, bypassing `ReviewService.assign`."""
    def _add(model=models.StudentTechnique, **fields):
        row = model(**fields)
        session.add(row)
        session.commit()
        session.refresh(row)
        return row
    return _add
