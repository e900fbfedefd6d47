"""Create the SoundTrack tables in the database named by DATABASE_URL.

Usage: python init_db.py
"""
from soundtrack.config import settings
from soundtrack.database import create_db_and_tables, create_db_engine


def run():
    """Create every table from the SQLModel metadata.

    Existing tables are left alone, so the script is safe to re-run
    against a development database.
    """
    print("Using database:", settings.DATABASE_URL)
    engine = create_db_engine(settings.DATABASE_URL)
    try:
        create_db_and_tables(engine)
    finally:
        engine.dispose()
    print("Tables created.")

if __name__ == '__main__':
    run()
