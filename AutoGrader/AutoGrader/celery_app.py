import os
from celery import Celery # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "AutoGrader.settings")

app = Celery("AutoGrader")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

app.conf.beat_schedule = {
    "process-email-outbox-every-minute": {
        "task": "notifications.tasks.process_email_outbox",
        "schedule": 60.0,
    },
}
