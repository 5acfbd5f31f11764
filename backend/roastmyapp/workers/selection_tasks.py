"""Celery tasks for the selection-window sweep."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from celery.utils.log import get_task_logger
from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from roastmyapp.workers.celery_app import celery_app
from roastmyapp.config import get_settings
from roastmyapp.models.base import engine_options
from roastmyapp.models.job import SelectionJob, SelectionJobState
from roastmyapp.models.roast_request import RoastRequest, RoastRequestStatus
from roastmyapp.services.errors import NotFound
from roastmyapp.services.selection import auto_select

logger = get_task_logger(__name__)

# Sync engine for Celery workers
settings = get_settings()
sync_engine = create_engine(settings.database_url_sync, **engine_options(settings.database_url_sync))
SessionLocal = sessionmaker(bind=sync_engine)


def _load_job(db, roast_request_id: int) -> Optional[SelectionJob]:
    return db.execute(
        select(SelectionJob).where(SelectionJob.roast_request_id == roast_request_id)
    ).scalar_one_or_none()


def sweep_request(roast_request_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Run auto-selection for one request in its own transaction."""
    now = now or datetime.utcnow()
    db = SessionLocal()
    try:
        job = _load_job(db, roast_request_id)
        if job is not None and job.state in (SelectionJobState.scheduled, SelectionJobState.running):
            job.state = SelectionJobState.running
            job.started_at = now
            db.commit()

        outcome = auto_select(db, roast_request_id, now)
        job = _load_job(db, roast_request_id)
        if job is not None:
            if not outcome.skipped:
                job.attempts = (job.attempts or 0) + 1
            elif job.state == SelectionJobState.running:
                # Nothing ran; the job waits for its deadline again
                job.state = SelectionJobState.scheduled
                job.started_at = None
        db.commit()
        return outcome.as_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def record_sweep_failure(roast_request_id: int, error: Exception, final: bool) -> None:
    db = SessionLocal()
    try:
        job = _load_job(db, roast_request_id)
        if job is None:
            return
        job.attempts = (job.attempts or 0) + 1
        job.last_error = str(error)[:2000]
        if final:
            job.state = SelectionJobState.failed
            job.finished_at = datetime.utcnow()
        elif job.state == SelectionJobState.running:
            job.state = SelectionJobState.scheduled
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("Could not record sweep failure for roast request %s: %s", roast_request_id, exc)
    finally:
        db.close()


def due_request_ids(now: datetime, limit: int) -> List[int]:
    db = SessionLocal()
    try:
        result = db.execute(
            select(RoastRequest.id)
            .where(
                RoastRequest.status == RoastRequestStatus.collecting_applications,
                RoastRequest.selection_processed_at.is_(None),
                RoastRequest.selection_deadline.is_not(None),
                RoastRequest.selection_deadline <= now,
            )
            .order_by(RoastRequest.selection_deadline.asc())
            .limit(limit)
        )
        return list(result.scalars().all())
    finally:
        db.close()


@celery_app.task(
    bind=True,
    name="roastmyapp.workers.selection_tasks.run_selection_sweep",
    max_retries=settings.selection_retry_max_attempts,
)
def run_selection_sweep(self, roast_request_id: int):
    """Auto-select roasters for a request whose selection window has lapsed."""
    try:
        return sweep_request(roast_request_id)
    except NotFound:
        logger.info("Roast request %s no longer exists, nothing to sweep", roast_request_id)
        return {"roast_request_id": roast_request_id, "skipped_reason": "not_found"}
    except OperationalError as exc:
        final = self.request.retries >= self.max_retries
        record_sweep_failure(roast_request_id, exc, final=final)
        logger.warning(
            "Selection sweep for roast request %s failed (attempt %s): %s",
            roast_request_id, self.request.retries + 1, exc,
        )
        if final:
            raise
        countdown = settings.selection_retry_backoff_seconds * (2 ** self.request.retries)
        raise self.retry(exc=exc, countdown=countdown)


@celery_app.task(name="roastmyapp.workers.selection_tasks.sweep_due_requests")
def sweep_due_requests(now: Optional[str] = None):
    """Periodic backstop: resolve every lapsed window, one transaction per request."""
    current = datetime.fromisoformat(now) if now else datetime.utcnow()
    summary: Dict[str, List[int]] = {"processed": [], "skipped": [], "failed": []}

    for roast_request_id in due_request_ids(current, settings.selection_sweep_batch_size):
        try:
            outcome = sweep_request(roast_request_id, current)
        except Exception as exc:
            # One broken request must not hold back the others
            logger.exception("Selection sweep failed for roast request %s", roast_request_id)
            record_sweep_failure(roast_request_id, exc, final=False)
            summary["failed"].append(roast_request_id)
            continue
        key = "skipped" if outcome.get("skipped_reason") else "processed"
        summary[key].append(roast_request_id)

    if summary["processed"] or summary["failed"]:
        logger.info(
            "Selection sweep: %s processed, %s skipped, %s failed",
            len(summary["processed"]), len(summary["skipped"]), len(summary["failed"]),
        )
    return summary


def schedule_selection_sweep(roast_request_id: int, run_at: datetime) -> bool:
    """Queue the sweep for the selection deadline. The periodic sweep covers a lost message."""
    try:
        run_selection_sweep.apply_async(args=[roast_request_id], eta=run_at)
    except BrokerError as exc:
        logger.warning(
            "Could not queue selection sweep for roast request %s, periodic sweep will pick it up: %s",
            roast_request_id, exc,
        )
        return False
    return True
