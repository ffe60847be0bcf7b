from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config import DATABASE_URL
from errors import PersistenceError

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine          = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal    = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base            = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit_or_rollback(db: Session, action: str):
    """Commit, or roll back and raise PersistenceError so the session stays usable."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to {action}: {e}") from e
