from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from .config import SETTINGS

DATABASE_URL = SETTINGS.database_url
IS_SQLITE = DATABASE_URL.startswith("sqlite")

connect_args = {"check_same_thread": False} if IS_SQLITE else {}
engine = create_engine(DATABASE_URL, echo=False, future=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()

if IS_SQLITE:
	@event.listens_for(engine, "connect")
	def _enable_foreign_keys(dbapi_connection, connection_record):
		cur = dbapi_connection.cursor()
		cur.execute("PRAGMA foreign_keys=ON;")
		cur.close()


def init_db(reset: bool = False) -> None:
	# Importing the models registers their tables on Base.metadata.
	from . import models  # noqa: F401

	if reset:
		Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


@contextmanager
def db_session_scope() -> Generator[Session, None, None]:
	"""Provide a transactional scope around a series of operations."""
	session = SessionLocal()
	try:
		yield session
		session.commit()
	except Exception:
		session.rollback()
		raise
	finally:
		session.close()
