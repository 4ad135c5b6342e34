from __future__ import annotations

import logging
import threading
from typing import Optional

from services.batch_status import run_batch_status_job

_log = logging.getLogger("scheduler")
_thread: Optional[threading.Thread] = None
_stop = threading.Event()


def run_once(cfg) -> Optional[dict]:
    from db import SessionLocal

    db = None
    try:
        db = SessionLocal()
        out = run_batch_status_job(db, app_timezone=cfg.APP_TIMEZONE, system_username=cfg.SYSTEM_USERNAME)
        db.commit()
        _log.info(
            "BATCH_STATUS ok transitioned=%s reset=%s failed=%s",
            len(out["transitioned"]),
            len(out["reset"]),
            len(out["failed"]),
        )
        return out
    except Exception:
        if db is not None:
            db.rollback()
        _log.exception("BATCH_STATUS failed")
        return None
    finally:
        if db is not None:
            db.close()


def maybe_start_scheduler(cfg) -> bool:
    """
    In-process batch phase scheduler.

    Production recommendation: run one instance via cron calling
    `POST /api/v1/jobs/batch-status` with `X-Internal-Token` = `INTERNAL_CRON_TOKEN`,
    or `cloudlms-batch-status run`. With several gunicorn workers, enable
    ENABLE_SCHEDULER on exactly one process.
    """

    global _thread
    if not cfg.ENABLE_SCHEDULER:
        return False
    if _thread is not None and _thread.is_alive():
        return False

    interval = max(5, int(cfg.BATCH_STATUS_INTERVAL_SECONDS))
    _stop.clear()

    def _loop():
        while not _stop.wait(interval):
            run_once(cfg)

    _thread = threading.Thread(target=_loop, name="scheduler", daemon=True)
    _thread.start()
    _log.info("scheduler started interval_seconds=%s", interval)
    return True


def stop_scheduler(timeout: float = 5.0) -> None:
    global _thread
    _stop.set()
    if _thread is not None:
        _thread.join(timeout)
    _thread = None
