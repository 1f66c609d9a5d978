"""Database connection and initialization."""

import logging
from datetime import datetime, timezone

from sqlmodel import SQLModel, Session, create_engine, select

from gateway.config import settings

# Import all models so SQLModel registers them
import gateway.models  # noqa: F401
from gateway.models.user import User
from gateway.utils.security import hash_password

logger = logging.getLogger(__name__)

engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False},
)


def init_db() -> None:
    """Create all tables, enable WAL mode and seed the admin account."""
    SQLModel.metadata.create_all(engine)

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.commit()

    with Session(engine) as session:
        admin = session.exec(select(User).where(User.email == settings.admin_email)).first()
        if not admin:
            session.add(User(
                email=settings.admin_email,
                name=settings.admin_name,
                password_hash=hash_password(settings.admin_password),
                role="admin",
                approved_at=datetime.now(timezone.utc),
            ))
            session.commit()
            logger.info("Seeded admin account %s", settings.admin_email)


def get_session():
    """FastAPI dependency: yields a database session."""
    with Session(engine) as session:
        yield session
