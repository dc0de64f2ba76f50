from flask import Blueprint, current_app, render_template, request

from ..forms import (
    CLEANING_FREQUENCY_LABELS,
    FACILITY_TYPE_LABELS,
    HONEYPOT_FIELD,
    SERVICE_LABELS,
    CareerForm,
    ContactForm,
    FeedbackForm,
    NewsletterForm,
    QuoteForm,
)
from ..notifications import EmailDeliveryError, log_email_send, notification_recipients, send_email
from ..pipeline import (
    ParsedSubmission,
    RateLimitRule,
    SubmissionError,
    cors_preflight_response,
    handle_submission,
)
from ..sanitize import honeypot_field, sanitize_email, sanitize_object
from ..submissions import (
    submit_career_application,
    submit_contact,
    submit_feedback,
    submit_newsletter,
    submit_quote,
)
from ..uploads import UploadRejected, read_resume
from ..utils import clean_text, get_forwarded_ip, utc_now_naive

api_bp = Blueprint('api', __name__)

CONTACT_FORM_SCOPE = 'contact_form'
QUOTE_FORM_SCOPE = 'quote_form'
NEWSLETTER_FORM_SCOPE = 'newsletter_form'
CAREERS_FORM_SCOPE = 'careers_form'
FEEDBACK_FORM_SCOPE = 'feedback_form'

CONTACT_SUCCESS_MESSAGE = 'Thank you for contacting us! We will respond within 1 business day.'
QUOTE_SUCCESS_MESSAGE = 'Quote request submitted successfully. We will contact you within 30 minutes!'
NEWSLETTER_SUCCESS_MESSAGE = 'Thank you for subscribing! Check your email for a confirmation.'
CAREERS_SUCCESS_MESSAGE = (
    'Application submitted successfully! We will review your application and contact you soon.'
)
FEEDBACK_SUCCESS_MESSAGE = 'Thank you for your feedback!'

CAREER_FIELDS = ('first_name', 'last_name', 'email', 'phone', 'applying_for', 'message')


def request_metadata(default_page):
    return {
        'source_page': clean_text(request.headers.get('Referer'), 500) or default_page,
        'ip_address': get_forwarded_ip(),
        'user_agent': clean_text(request.headers.get('User-Agent'), 300) or None,
    }


def _render_notification(template, **context):
    context.setdefault('company_name', current_app.config.get('COMPANY_NAME') or 'Anderson Cleaning')
    html = render_template(f'emails/{template}.html', **context)
    text = render_template(f'emails/{template}.txt', **context).strip()
    return html, text


def deliver_notification(subject, html, text, reply_to=None, attachments=None):
    """Send an internal notification; delivery failures are logged, never raised."""
    recipients = notification_recipients()
    if not recipients:
        current_app.logger.info('NOTIFICATION_EMAIL is not configured; skipping notification.')
        return False
    try:
        result = send_email(
            to=recipients,
            subject=subject,
            html=html,
            text=text,
            reply_to=reply_to,
            attachments=attachments,
        )
    except EmailDeliveryError:
        current_app.logger.exception('Notification email delivery failed (subject=%s).', subject)
        return False
    log_email_send(recipients, subject, result)
    return result.success


# Contact

def store_contact(data, context):
    return submit_contact({
        'name': data['name'],
        'email': data['email'],
        'phone': data['phone'],
        'message': data['message'],
        **request_metadata('/contact'),
    })


def notify_contact(data, context):
    html, text = _render_notification('contact', data=data)
    deliver_notification(
        f"New Contact Form Submission from {data['name']}",
        html,
        text,
        reply_to=data['email'],
    )


# Quote

def store_quote(data, context):
    start_date = data.get('desired_start_date')
    return submit_quote({
        'company_name': data['company'],
        'contact_name': data['full_name'],
        'email': data['email'],
        'phone': data['phone'],
        'facility_type': data['facility_type'],
        'square_footage': str(data['square_footage']) if data.get('square_footage') else '',
        'address': f"{data['address']}, {data['city']}, {data['zip_code']}",
        'services': list(data['services']),
        'cleaning_frequency': data['cleaning_frequency'],
        'special_requirements': data.get('special_requests') or None,
        'start_date': start_date.isoformat() if start_date else None,
        **request_metadata('/quote'),
    })


def notify_quote(data, context):
    html, text = _render_notification(
        'quote',
        data=data,
        facility_type_labels=FACILITY_TYPE_LABELS,
        cleaning_frequency_labels=CLEANING_FREQUENCY_LABELS,
        service_labels=SERVICE_LABELS,
    )
    deliver_notification(
        f"New Quote Request from {data['full_name']} - {data['company']}",
        html,
        text,
        reply_to=data['email'],
    )


# Newsletter

def sanitize_newsletter(payload):
    return {'email': sanitize_email(payload.get('email') if isinstance(payload, dict) else '')}


def store_newsletter(data, context):
    return submit_newsletter({'email': data['email'], **request_metadata('/')})


def notify_newsletter(data, context):
    html, text = _render_notification('newsletter', data=data, subscribed_at=utc_now_naive())
    deliver_notification(f"New Newsletter Subscription: {data['email']}", html, text)


# Careers

def parse_career_application(req):
    payload = {name: req.form.get(name, '') for name in CAREER_FIELDS}
    fallback_name = 'resume_{}_{}.pdf'.format(
        clean_text(payload['first_name'], 50) or 'applicant',
        clean_text(payload['last_name'], 50) or 'unknown',
    )
    try:
        resume = read_resume(req.files.get('resume'), fallback_name=fallback_name)
    except UploadRejected as exc:
        raise SubmissionError(str(exc)) from exc
    return ParsedSubmission(payload=payload, extras={'resume': resume})


def store_career_application(data, context):
    resume = context.extras.get('resume')
    return submit_career_application({
        'name': f"{data['first_name']} {data['last_name']}",
        'email': data['email'],
        'phone': data['phone'],
        'position': data.get('applying_for') or 'General Application',
        'cover_letter': data.get('message') or None,
        'resume_filename': resume.filename if resume else None,
        **request_metadata('/apply'),
    })


def notify_career_application(data, context):
    resume = context.extras.get('resume')
    html, text = _render_notification('careers', data=data, has_resume=resume is not None)
    subject = f"New Job Application: {data['first_name']} {data['last_name']}"
    if data.get('applying_for'):
        subject = f"{subject} - {data['applying_for']}"
    deliver_notification(
        subject,
        html,
        text,
        reply_to=data['email'],
        attachments=[resume] if resume else None,
    )


# Feedback

def store_feedback(data, context):
    return submit_feedback({
        'page_id': data['page_id'],
        'vote': data['vote'],
        'feedback': data.get('feedback') or None,
        **request_metadata(data['page_id']),
    })


@api_bp.route('/api/contact', methods=['POST', 'OPTIONS'])
def contact():
    if request.method == 'OPTIONS':
        return cors_preflight_response()
    return handle_submission(
        schema=ContactForm,
        rate_limit=RateLimitRule.from_config(
            CONTACT_FORM_SCOPE, 'CONTACT_FORM_LIMIT', 'CONTACT_FORM_WINDOW_SECONDS', 5, 600,
        ),
        honeypot_check=honeypot_field(HONEYPOT_FIELD),
        sanitize=sanitize_object,
        store=store_contact,
        notify=notify_contact,
        success_message=CONTACT_SUCCESS_MESSAGE,
    )


@api_bp.route('/api/quote', methods=['POST', 'OPTIONS'])
def quote():
    if request.method == 'OPTIONS':
        return cors_preflight_response()
    return handle_submission(
        schema=QuoteForm,
        rate_limit=RateLimitRule.from_config(
            QUOTE_FORM_SCOPE, 'QUOTE_FORM_LIMIT', 'QUOTE_FORM_WINDOW_SECONDS', 3, 300,
        ),
        honeypot_check=honeypot_field(HONEYPOT_FIELD),
        sanitize=sanitize_object,
        store=store_quote,
        notify=notify_quote,
        success_message=QUOTE_SUCCESS_MESSAGE,
    )


@api_bp.route('/api/newsletter', methods=['POST', 'OPTIONS'])
def newsletter():
    if request.method == 'OPTIONS':
        return cors_preflight_response()
    return handle_submission(
        schema=NewsletterForm,
        rate_limit=RateLimitRule.from_config(
            NEWSLETTER_FORM_SCOPE, 'NEWSLETTER_FORM_LIMIT', 'NEWSLETTER_FORM_WINDOW_SECONDS', 3, 600,
        ),
        sanitize=sanitize_newsletter,
        store=store_newsletter,
        notify=notify_newsletter,
        success_message=NEWSLETTER_SUCCESS_MESSAGE,
    )


@api_bp.route('/api/careers', methods=['POST', 'OPTIONS'])
def careers():
    if request.method == 'OPTIONS':
        return cors_preflight_response()
    return handle_submission(
        schema=CareerForm,
        rate_limit=RateLimitRule.from_config(
            CAREERS_FORM_SCOPE, 'CAREERS_FORM_LIMIT', 'CAREERS_FORM_WINDOW_SECONDS', 2, 900,
        ),
        parse=parse_career_application,
        sanitize=sanitize_object,
        store=store_career_application,
        notify=notify_career_application,
        success_message=CAREERS_SUCCESS_MESSAGE,
    )


@api_bp.route('/api/feedback', methods=['POST', 'OPTIONS'])
def feedback():
    if request.method == 'OPTIONS':
        return cors_preflight_response()
    return handle_submission(
        schema=FeedbackForm,
        rate_limit=RateLimitRule.from_config(
            FEEDBACK_FORM_SCOPE, 'FEEDBACK_FORM_LIMIT', 'FEEDBACK_FORM_WINDOW_SECONDS', 10, 600,
        ),
        sanitize=sanitize_object,
        store=store_feedback,
        success_message=FEEDBACK_SUCCESS_MESSAGE,
    )
