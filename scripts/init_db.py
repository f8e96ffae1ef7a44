import sys
from pathlib import Path
import os
from datetime import datetime

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.chirp.config import load_config
from app.chirp.models import Account, Base
from app.chirp.security import CredentialStore


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    Base.metadata.create_all(bind=engine)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Create tables and seed one activated example account in an idempotent way.
    Does NOT overwrite an existing account's password.
    """
    config = load_config()
    seed_email = (os.environ.get("SEED_EMAIL") or "example@chirp.dev").strip().lower()
    seed_name = (os.environ.get("SEED_NAME") or "Example User").strip()
    seed_password = os.environ.get("SEED_PASSWORD") or "change-me"

    db_url = (database_url or config["DATABASE_URL"]).strip()
    credentials = CredentialStore.from_config(config)

    with _session_scope(db_url) as s:
        account = s.execute(select(Account).where(func.lower(Account.email) == seed_email)).scalar_one_or_none()
        if not account:
            now = datetime.utcnow()
            account = Account(
                name=seed_name,
                email=seed_email,
                password_digest=credentials.hash(seed_password),
                activated=True,
                activated_at=now,
                created_at=now,
                updated_at=now,
            )
            s.add(account)

    print("Initialized database (seed_only).")
    print(f"Seed email: {seed_email}")
    print("Seed password: (from SEED_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
