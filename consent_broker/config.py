import os

from datetime import timedelta


def _bool_env(name, default="false"):
    return os.environ.get(name, default).lower() == "true"


class Config:
    """Settings read from the environment when the app is created."""

    def __init__(self):
        self.DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///consent_broker.db")
        self.JWT_SECRET_KEY = os.environ.get(
            "JWT_SECRET_KEY", "super-secret-key-change-in-production"
        )
        expires_minutes = os.environ.get("JWT_ACCESS_TOKEN_EXPIRES_MINUTES")
        # For development tokens never expire unless configured
        self.JWT_ACCESS_TOKEN_EXPIRES = (
            timedelta(minutes=int(expires_minutes)) if expires_minutes else False
        )
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
        self.LOG_JSON = _bool_env("LOG_JSON")
        self.FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "10"))
        self.CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    def as_dict(self):
        return {key: value for key, value in vars(self).items() if key.isupper()}
