from celery import Celery
from roastmyapp.config import get_settings

settings = get_settings()

celery_app = Celery(
    "roastmyapp",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["roastmyapp.workers.selection_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=120,
    task_soft_time_limit=90,
    # Sweeps are idempotent; redeliver if a worker dies mid-run
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # ETA tasks wait in the broker up to the selection deadline
    broker_transport_options={"visibility_timeout": (settings.selection_window_hours + 1) * 3600},
    task_routes={
        "roastmyapp.workers.selection_tasks.run_selection_sweep": {"queue": "selection"},
        "roastmyapp.workers.selection_tasks.sweep_due_requests": {"queue": "selection"},
    },
    beat_schedule={
        "sweep-due-selection-windows": {
            "task": "roastmyapp.workers.selection_tasks.sweep_due_requests",
            "schedule": float(settings.selection_sweep_interval_seconds),
        },
    },
)
