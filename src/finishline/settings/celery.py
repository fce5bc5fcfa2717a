from celery.schedules import crontab
from decouple import config

from .base import DEBUG, TIME_ZONE

REDIS_HOST = config("REDIS_HOST", default="localhost")
CELERY_REDIS_DB = config("CELERY_REDIS_DB", default=0, cast=int)

# CELERY
CELERY_BROKER_URL = config("CELERY_BROKER_URL", default=f"redis://{REDIS_HOST}:6379/{CELERY_REDIS_DB}")
CELERY_ACCEPT_CONTENT = ["application/json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = config("CELERY_TASK_ALWAYS_EAGER", cast=bool, default=DEBUG)
CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True

# Task execution settings
CELERY_TASK_TIME_LIMIT = 300  # Hard limit: kill task after 5 minutes
CELERY_TASK_SOFT_TIME_LIMIT = 240  # Soft limit: raise exception after 4 minutes
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_ACKS_LATE = True

CELERY_BEAT_SCHEDULE = {
    "cleanup-expired-registrations": {
        "task": "events.tasks.cleanup_expired_registrations_task",
        "schedule": crontab(minute="*/10"),
    },
    "cleanup-expired-unverified-users": {
        "task": "accounts.tasks.cleanup_expired_unverified_users_task",
        "schedule": crontab(minute=15, hour="*/6"),
    },
    "run-billing-maintenance": {
        "task": "billing.tasks.run_billing_maintenance_task",
        "schedule": crontab(minute=5),
    },
    "flush-expired-tokens": {
        "task": "accounts.tasks.flush_expired_tokens",
        "schedule": crontab(minute=0, hour=3),
    },
}
