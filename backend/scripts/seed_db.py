"""CLI script to seed a development database with demo data.
Usage: python scripts/seed_db.py [--reset]
"""
import sys
import argparse
import pathlib
from datetime import timedelta
# Ensure `backend/` is on sys.path so `soundtrack` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import SQLModel, Session
from soundtrack.config import settings
from soundtrack.database import create_db_and_tables, create_db_engine
from soundtrack.models import utcnow
from soundtrack import services
from soundtrack.scheduling import REPERTOIRE, TECHNIQUES, ReviewService

SKILL_LEVELS = [
    "Beginner 1", "Beginner 2", "Beginner 3",
    "Intermediate 1", "Intermediate 2", "Intermediate 3",
    "Advanced 1", "Advanced 2", "Advanced 3",
]

TEACHERS = [
    {"email": "johndoe@example.com", "name": "John Doe", "is_admin": True,
     "description": "Experienced piano teacher with over 10 years of teaching experience."},
    {"email": "janesmith@example.com", "name": "Jane Smith", "is_admin": False,
     "description": "Professional violinist and music teacher."},
    {"email": "davidlee@example.com", "name": "David Lee", "is_admin": False,
     "description": "Experienced guitar teacher and session musician."},
]


def main(reset: bool = False, password: str = "password"):
    """Populate skill levels, teachers, students, material and lessons.

    With `reset` every table is dropped first. Each teacher gets the same
    `password`, which is printed at the end for a quick login.
    """
    engine = create_db_engine(settings.DATABASE_URL)
    if reset:
        SQLModel.metadata.drop_all(engine)
    create_db_and_tables(engine)
    with Session(engine) as session:
        levels = [services.SkillLevelService(session).create(name) for name in SKILL_LEVELS]
        auth = services.AuthService(session)
        teachers = [auth.register(password=password, **t) for t in TEACHERS]

        students_svc = services.StudentService(session)
        students = [
            students_svc.create(name="Alice Johnson", email="alice@example.com", teacher_id=teachers[0].id,
                                skill_level_id=levels[1]["id"],
                                description="A 14-year-old beginner piano player who wants to learn classical music."),
            students_svc.create(name="Bob Smith", email="bob@example.com", teacher_id=teachers[1].id,
                                skill_level_id=levels[4]["id"],
                                description="An adult violinist returning to lessons after a long break."),
            students_svc.create(name="Carol White", email="carol@example.com", teacher_id=teachers[2].id,
                                skill_level_id=levels[6]["id"],
                                description="Gigging guitarist working on jazz vocabulary."),
        ]

        technique = services.TechniqueService(session).create(
            tonic="C", mode="Ionian", type="Scale", teacher_id=teachers[0].id, skill_level_id=levels[0]["id"],
            description="Two octaves, hands together.")
        piece = services.RepertoireService(session).create(
            name="Für Elise", composer="Beethoven", genre="Classical", teacher_id=teachers[0].id,
            skill_level_id=levels[2]["id"])
        ReviewService(session, TECHNIQUES).assign(students[0]["id"], technique["id"], 7)
        ReviewService(session, REPERTOIRE).assign(students[0]["id"], piece["id"], 14)

        lessons = services.LessonService(session)
        for student, teacher in zip(students, teachers):
            for weeks_ago in (2, 1):
                lessons.create(student_id=student["id"], teacher_id=teacher.id,
                               date=utcnow() - timedelta(weeks=weeks_ago),
                               notes=f"Weekly lesson with {student['name']}")
    engine.dispose()
    print(f'Seeded {len(levels)} skill levels, {len(teachers)} teachers, {len(students)} students')
    print(f'Log in as {TEACHERS[0]["email"]} / {password} (admin)')

if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--reset', action='store_true', help='Drop all tables before seeding')
    parser.add_argument('--password', default='password', help='Password given to every seeded teacher')
    args = parser.parse_args()
    main(reset=args.reset, password=args.password)
