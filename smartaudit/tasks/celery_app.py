# smartaudit/tasks/celery_app.py
import os
import logging
from celery import Celery

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def make_celery() -> Celery:
    """
    Base Celery instance for the audit worker.
    Checks the broker once at startup and logs the outcome.
    """
    celery_app = Celery("smartaudit")

    broker_url = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", broker_url)

    celery_app.conf.update(
        broker_url=broker_url,
        result_backend=result_backend,
        task_ignore_result=False,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=os.getenv("TZ", "UTC"),
        enable_utc=True,
        # a report can take minutes; one message per worker at a time
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        beat_schedule={
            "recover-stuck-audits": {
                "task": "audit.recover_stuck",
                "schedule": float(os.getenv("STUCK_SWEEP_SECONDS", "60")),
            },
        },
    )

    try:
        conn = celery_app.connection()
        conn.ensure_connection(max_retries=1)
        logger.info("Celery connected to broker: %s", broker_url)
    except Exception as e:
        logger.error("Could not connect to Celery broker (%s): %s", broker_url, e)

    return celery_app


celery = make_celery()


def _init_celery_with_flask():
    """Bind tasks to a Flask app so they run inside its app context."""
    from smartaudit import create_app
    config_name = os.getenv("FLASK_ENV", "development")
    flask_app = create_app(config_name)

    broker = flask_app.config.get("CELERY_BROKER_URL")
    backend = flask_app.config.get("CELERY_RESULT_BACKEND") or broker
    if broker:
        celery.conf.broker_url = broker
    if backend:
        celery.conf.result_backend = backend
    celery.conf.task_always_eager = bool(flask_app.config.get("CELERY_TASK_ALWAYS_EAGER"))

    TaskBase = celery.Task

    class ContextTask(TaskBase):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return TaskBase.__call__(self, *args, **kwargs)

    celery.Task = ContextTask
    celery.set_default()

    with flask_app.app_context():
        from smartaudit.tasks import audit_tasks  # noqa: F401  (registers the shared tasks)

    return flask_app


_flask_app = _init_celery_with_flask()
