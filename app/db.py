from __future__ import annotations

import logging

from flask import Flask
from sqlalchemy import text

import db as db_
from schema import ensure_schema
from services.batch_status import get_system_user_id


def ping_db(engine) -> bool:
    if engine is None:
        return False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logging.getLogger("app").warning("database ping failed", exc_info=True)
        return False


def init_database(app: Flask) -> None:
    cfg = app.config["CFG"]
    engine = db_.init_engine(cfg.DATABASE_URL)
    ensure_schema(engine)
    app.extensions["db_engine"] = engine

    session = db_.SessionLocal()
    try:
        get_system_user_id(session, cfg.SYSTEM_USERNAME)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
