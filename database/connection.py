import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

Base = declarative_base()


def make_session_factory(url: str) -> tuple[Engine, sessionmaker]:
    engine = create_engine(url)
    # Meetings handed to the poller outlive the session that loaded them.
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    return engine, factory


# Left unset without DATABASE_URL; entry points check for None and refuse to start.
engine: Engine | None = None
SessionLocal: sessionmaker | None = None

if DATABASE_URL:
    engine, SessionLocal = make_session_factory(DATABASE_URL)


def get_db():
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL not configured")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
