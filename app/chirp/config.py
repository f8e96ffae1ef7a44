import os
from dataclasses import dataclass

MIN_COST_HASH_METHOD = "pbkdf2:sha256:1"


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    password_hash_method: str
    password_hash_min_cost: bool

    mail_backend: str
    mail_sender: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///chirp.db"),
        password_hash_method=_getenv("PASSWORD_HASH_METHOD", "scrypt"),
        password_hash_min_cost=_getenv("PASSWORD_HASH_MIN_COST", "0") == "1",
        mail_backend=_getenv("MAIL_BACKEND", "log"),
        mail_sender=_getenv("MAIL_SENDER", "noreply@example.com"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    # Fixtures and the test suite hash thousands of secrets; interactive logins use the real cost.
    min_cost = s.password_hash_min_cost or s.env == "test"
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "PASSWORD_HASH_METHOD": MIN_COST_HASH_METHOD if min_cost else s.password_hash_method,
        "PASSWORD_HASH_MIN_COST": min_cost,
        "MAIL_BACKEND": s.mail_backend,
        "MAIL_SENDER": s.mail_sender,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
    }
