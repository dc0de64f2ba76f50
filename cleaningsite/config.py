import os
from urllib.parse import urlparse

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_vercel_runtime():
    return bool(os.environ.get('VERCEL') or os.environ.get('VERCEL_ENV'))


def _is_managed_runtime():
    return bool(
        os.environ.get('RAILWAY_ENVIRONMENT')
        or os.environ.get('RAILWAY_PROJECT_ID')
        or os.environ.get('RENDER')
        or os.environ.get('RENDER_SERVICE_ID')
        or _is_vercel_runtime()
    )


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    if _is_vercel_runtime():
        return 'sqlite:////tmp/submissions.db'
    return 'sqlite:///' + os.path.join(basedir, 'submissions.db')


def _database_engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    options = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    parsed = urlparse(database_url)
    if parsed.scheme.startswith('postgresql'):
        connect_timeout_seconds = max(1, _as_int(os.environ.get('DB_CONNECT_TIMEOUT_SECONDS'), 5))
        statement_timeout_ms = max(1000, _as_int(os.environ.get('DB_STATEMENT_TIMEOUT_MS'), 8000))
        options['connect_args'] = {
            'connect_timeout': connect_timeout_seconds,
            'options': f'-c statement_timeout={statement_timeout_ms}',
        }
    return options


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024  # request body cap, resume included
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_managed_runtime())
    CORS_ALLOW_ORIGIN = (os.environ.get('CORS_ALLOW_ORIGIN') or os.environ.get('SITE_URL') or '*').strip()

    # 'memory' keeps buckets per process; 'database' shares them across instances.
    RATE_LIMIT_BACKEND = (os.environ.get('RATE_LIMIT_BACKEND') or 'memory').strip().lower()
    RATE_LIMIT_SWEEP_SECONDS = max(1, _as_int(os.environ.get('RATE_LIMIT_SWEEP_SECONDS'), 300))
    CONTACT_FORM_LIMIT = _as_int(os.environ.get('CONTACT_FORM_LIMIT'), 5)
    CONTACT_FORM_WINDOW_SECONDS = _as_int(os.environ.get('CONTACT_FORM_WINDOW_SECONDS'), 600)
    QUOTE_FORM_LIMIT = _as_int(os.environ.get('QUOTE_FORM_LIMIT'), 3)
    QUOTE_FORM_WINDOW_SECONDS = _as_int(os.environ.get('QUOTE_FORM_WINDOW_SECONDS'), 300)
    NEWSLETTER_FORM_LIMIT = _as_int(os.environ.get('NEWSLETTER_FORM_LIMIT'), 3)
    NEWSLETTER_FORM_WINDOW_SECONDS = _as_int(os.environ.get('NEWSLETTER_FORM_WINDOW_SECONDS'), 600)
    CAREERS_FORM_LIMIT = _as_int(os.environ.get('CAREERS_FORM_LIMIT'), 2)
    CAREERS_FORM_WINDOW_SECONDS = _as_int(os.environ.get('CAREERS_FORM_WINDOW_SECONDS'), 900)
    FEEDBACK_FORM_LIMIT = _as_int(os.environ.get('FEEDBACK_FORM_LIMIT'), 10)
    FEEDBACK_FORM_WINDOW_SECONDS = _as_int(os.environ.get('FEEDBACK_FORM_WINDOW_SECONDS'), 600)

    RESUME_MAX_BYTES = _as_int(os.environ.get('RESUME_MAX_BYTES'), 5 * 1024 * 1024)

    COMPANY_NAME = (os.environ.get('COMPANY_NAME') or 'Anderson Cleaning').strip()
    NOTIFICATION_EMAIL = os.environ.get('NOTIFICATION_EMAIL') or 'info@andersoncleaning.com'
    MAIL_FROM = (os.environ.get('MAIL_FROM') or 'noreply@andersoncleaning.com').strip()
    RESEND_API_KEY = (os.environ.get('RESEND_API_KEY') or '').strip()
    RESEND_API_URL = (os.environ.get('RESEND_API_URL') or 'https://api.resend.com/emails').strip()
    SMTP_HOST = (os.environ.get('SMTP_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('SMTP_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('SMTP_USERNAME') or '').strip()
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('SMTP_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('SMTP_USE_SSL'), False)

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
