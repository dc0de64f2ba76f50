from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from .models import (
    db,
    CareerApplication,
    ContactSubmission,
    NewsletterSubscription,
    PageFeedback,
    QuoteRequest,
)
from .observability import get_sink


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    error: str = ''

    @classmethod
    def ok(cls):
        return cls(success=True)

    @classmethod
    def failed(cls, error):
        return cls(success=False, error=str(error) or 'Unknown error')


def insert_record(model, payload):
    """Persist one row. Database errors come back as a failed result, never raised."""
    table = model.__tablename__
    sink = get_sink()
    try:
        record = model(**payload)
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        sink.report_error(exc, tags={'module': 'database', 'table': table})
        return SubmissionResult.failed(exc)
    sink.report_event('database_insert_success', level='info', extra={'table': table})
    return SubmissionResult.ok()


def submit_contact(payload):
    return insert_record(ContactSubmission, payload)


def submit_quote(payload):
    return insert_record(QuoteRequest, payload)


def submit_newsletter(payload):
    return insert_record(NewsletterSubscription, payload)


def submit_career_application(payload):
    return insert_record(CareerApplication, payload)


def submit_feedback(payload):
    return insert_record(PageFeedback, payload)
