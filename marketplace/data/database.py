# marketplace/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from marketplace.utils.settings import DATABASE_URL, DB_CONNECT_TIMEOUT_SECONDS


def _connect_args(url: str) -> dict:
    if url.startswith("postgresql"):
        return {"connect_timeout": DB_CONNECT_TIMEOUT_SECONDS}
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(DATABASE_URL),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    #models have to be imported before create_all so they land in Base.metadata
    import marketplace.data.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
