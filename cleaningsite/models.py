from flask_sqlalchemy import SQLAlchemy

from .utils import utc_now_naive

db = SQLAlchemy()

NEWSLETTER_STATUS_ACTIVE = 'active'


class ContactSubmission(db.Model):
    __tablename__ = 'contact_submissions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False)
    company = db.Column(db.String(200))
    message = db.Column(db.Text, nullable=False)
    source_page = db.Column(db.String(500))
    ip_address = db.Column(db.String(255))
    user_agent = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class QuoteRequest(db.Model):
    __tablename__ = 'quote_requests'

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(200), nullable=False)
    contact_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False)
    facility_type = db.Column(db.String(40), nullable=False)
    square_footage = db.Column(db.String(40), nullable=False, default='')
    address = db.Column(db.String(300))
    services = db.Column(db.JSON, nullable=False, default=list)
    cleaning_frequency = db.Column(db.String(40), nullable=False)
    special_requirements = db.Column(db.Text)
    start_date = db.Column(db.String(20))
    source_page = db.Column(db.String(500))
    ip_address = db.Column(db.String(255))
    user_agent = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class NewsletterSubscription(db.Model):
    __tablename__ = 'newsletter_subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=NEWSLETTER_STATUS_ACTIVE)
    source_page = db.Column(db.String(500))
    ip_address = db.Column(db.String(255))
    user_agent = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class CareerApplication(db.Model):
    __tablename__ = 'career_applications'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False)
    position = db.Column(db.String(200), nullable=False)
    resume_filename = db.Column(db.String(255))
    cover_letter = db.Column(db.Text)
    source_page = db.Column(db.String(500))
    ip_address = db.Column(db.String(255))
    user_agent = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class PageFeedback(db.Model):
    __tablename__ = 'page_feedback'

    id = db.Column(db.Integer, primary_key=True)
    page_id = db.Column(db.String(200), nullable=False, index=True)
    vote = db.Column(db.String(3), nullable=False)
    feedback = db.Column(db.Text)
    source_page = db.Column(db.String(500))
    ip_address = db.Column(db.String(255))
    user_agent = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class RateLimitBucket(db.Model):
    __tablename__ = 'rate_limit_buckets'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(160), nullable=False, unique=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    reset_at = db.Column(db.BigInteger, nullable=False, index=True)  # epoch milliseconds
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class SecurityEvent(db.Model):
    __tablename__ = 'security_events'

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(40), nullable=False, index=True)  # rate_limited, honeypot_triggered
    scope = db.Column(db.String(80), nullable=False, index=True)       # contact_form, quote_form, etc.
    ip = db.Column(db.String(64), nullable=False, index=True)
    path = db.Column(db.String(255), nullable=False)
    method = db.Column(db.String(10), nullable=False)
    user_agent = db.Column(db.String(300))
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)

    __table_args__ = (
        db.Index('ix_security_event_scope_created_at', 'scope', 'created_at'),
    )
