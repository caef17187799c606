from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from courtside.core.config import settings


def build_engine(url: str, **kwargs):
    """Engine whose checkouts and statements are bounded by STORE_TIMEOUT_SECONDS."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        return create_engine(url, **kwargs)

    timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
    kwargs.setdefault("connect_args", {
        "connect_timeout": max(1, int(settings.STORE_TIMEOUT_SECONDS)),
        "options": f"-c statement_timeout={timeout_ms}",
    })
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=settings.STORE_TIMEOUT_SECONDS,
        **kwargs,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
