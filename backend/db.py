# db.py
import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

import settings

os.makedirs(settings.DATA_DIR, exist_ok=True)

DB_URL = settings.DATABASE_URL
IS_SQLITE = DB_URL.startswith("sqlite")
connect_args = {"check_same_thread": False, "timeout": 15} if IS_SQLITE else {}

engine = create_engine(DB_URL, echo=False, future=True, connect_args=connect_args)

if IS_SQLITE:
    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        # WAL: readers never block on (or observe) an in-flight write
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.close()

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
Base = declarative_base()
