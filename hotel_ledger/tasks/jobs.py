from hotel_ledger.tasks.celery_app import celery
from hotel_ledger.tasks import worker_jobs


@celery.task(name="hotel_ledger.tasks.jobs.auto_checkout")
def auto_checkout():
    return worker_jobs.auto_checkout()


@celery.task(name="hotel_ledger.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
