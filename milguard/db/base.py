import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


def build_database_url() -> str:
    """
    Determine the database URL.

    - Prefer DATABASE_URL from the environment (production).
    - Fallback to a local SQLite file for development.
    - Normalize legacy postgres:// URLs to SQLAlchemy's postgresql+psycopg2://.
    """
    url = os.getenv("DATABASE_URL", "sqlite:///./milguard.db").strip()

    if url.startswith("postgres://"):
        # SQLAlchemy 2.x expects a driver-qualified URL
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)

    return url


def make_engine(url: str, **kwargs):
    connect_args = {}
    if url.startswith("sqlite"):
        # Needed for SQLite when used with FastAPI in a single process
        connect_args = {"check_same_thread": False}
    return create_engine(url, connect_args=connect_args, future=True, **kwargs)


DATABASE_URL = build_database_url()

engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def describe_database(bind=engine) -> dict:
    """Backend, password-masked URL and (for SQLite) the file's location and size."""
    url = bind.url
    info = {
        "backend": url.get_backend_name(),
        "url": url.render_as_string(hide_password=True),
    }
    if info["backend"] == "sqlite":
        db_file = Path(url.database).resolve() if url.database else None
        exists = bool(db_file and db_file.exists())
        info.update({
            "sqlitePath": str(db_file) if db_file else ":memory:",
            "sqliteExists": exists,
            "sqliteSizeBytes": db_file.stat().st_size if exists else 0,
        })
    else:
        info.update({"host": url.host, "port": url.port, "database": url.database, "driver": url.drivername})
    return info


def log_db_diagnostics(bind=engine):
    """Print one line describing the database at startup."""
    try:
        info = describe_database(bind)
    except OSError as exc:
        print(f"[DB] could not inspect database file: {exc!r}", flush=True)
        return
    details = " ".join(f"{k}={v}" for k, v in info.items() if k != "backend")
    print(f"[DB] backend={info['backend']} {details}", flush=True)
