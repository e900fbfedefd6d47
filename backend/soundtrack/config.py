"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    DATABASE_URL: str
    PASSWORD_HASH_ROUNDS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.DATABASE_URL = os.getenv("DATABASE_URL", self._default_database_url())
        # pbkdf2 rounds; tests only need a token amount of work
        default_rounds = "1000" if self.is_test else "29000"
        self.PASSWORD_HASH_ROUNDS = int(os.getenv("PASSWORD_HASH_ROUNDS", default_rounds))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    @property
    def is_test(self) -> bool:
        return self.ENV == "test"

    def _default_database_url(self) -> str:
        name = "soundtrack_test.db" if self.ENV == "test" else "soundtrack.db"
        return f"sqlite:///{BASE / name}"

    def _validate(self):
        if self.ENV not in ("dev", "test") and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.PASSWORD_HASH_ROUNDS < 1:
            raise RuntimeError("PASSWORD_HASH_ROUNDS must be a positive integer")


settings = Settings()
