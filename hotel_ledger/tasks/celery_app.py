from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from hotel_ledger.core.config import settings


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "hotel_ledger",
    broker=_redis_url,
    backend=_redis_url,
    include=["hotel_ledger.tasks.jobs"],
)

celery.conf.timezone = settings.CELERY_TIMEZONE

celery.conf.beat_schedule = {
    "auto-checkout-hourly": {
        "task": "hotel_ledger.tasks.jobs.auto_checkout",
        "schedule": settings.AUTO_CHECKOUT_INTERVAL_SECONDS,
    },
    "process-email-queue-every-2-minutes": {
        "task": "hotel_ledger.tasks.jobs.process_email_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
}
