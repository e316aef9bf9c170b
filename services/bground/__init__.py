from celery import Celery
from celery.schedules import crontab

from config import ENV


class CeleryManager:
    def __init__(self):
        self.env = ENV()
        self.celery_app = Celery(
            "storefront",
            broker=self.env.CELERY_BROKER_URL,
            backend=self.env.CELERY_RESULT_BACKEND,
            include=["services.bground.tasks"]
        )

        self.celery_app.conf.update(
            task_serializer="json",
            result_serializer="json",
            accept_content=["json"],
            timezone=self.env.CELERY_TIMEZONE,
            worker_prefetch_multiplier=1,
            task_acks_late=True,
            broker_transport_options={"visibility_timeout": 3600},
            beat_schedule={
                "refresh-exchange-rate": {
                    "task": "currency.refresh_rate",
                    "schedule": float(self.env.EXCHANGE_RATE_TTL),
                },
                "reconcile-affiliate-ledgers": {
                    "task": "affiliate.reconcile_ledgers",
                    "schedule": crontab(hour=3, minute=0),
                },
            },
        )
