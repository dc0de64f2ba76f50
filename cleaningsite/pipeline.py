"""Shared request pipeline behind every public form endpoint.

A submission goes through rate limiting, parsing, the honeypot guard,
sanitising, schema validation, persistence and notification, in that order.
Each stage may end the request early; the response body always has the
shape ``{"success": bool, "message" | "error": str[, "details": {...}]}``.
"""
import math
from dataclasses import dataclass, field
from types import MappingProxyType

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import HTTPException

from .forms import HONEYPOT_FIELD
from .models import SecurityEvent, db
from .observability import get_sink
from .ratelimit import get_rate_limiter
from .utils import clean_text, get_client_identifier

MODULE_TAG = 'submission-handler'
RATE_LIMITED_MESSAGE = 'Too many requests. Please try again later.'
INVALID_FORM_MESSAGE = 'Invalid form data'
STORE_FAILED_MESSAGE = 'Unable to save submission. Please try again later.'
INTERNAL_ERROR_MESSAGE = 'Internal server error. Please try again later.'


class SubmissionError(Exception):
    """A request problem that is safe to show to the client verbatim."""

    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


class SubmissionStoreError(Exception):
    pass


@dataclass(frozen=True)
class RateLimitRule:
    scope: str
    limit: int
    window_ms: int

    @classmethod
    def from_config(cls, scope, limit_key, window_key, default_limit, default_window_seconds):
        limit = int(current_app.config.get(limit_key, default_limit))
        window_seconds = int(current_app.config.get(window_key, default_window_seconds))
        return cls(scope=scope, limit=max(1, limit), window_ms=max(1, window_seconds) * 1000)


@dataclass
class ParsedSubmission:
    payload: dict
    extras: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SubmissionContext:
    request: object
    extras: dict = field(default_factory=dict)


def error_response(message, status, details=None, headers=None):
    body = {'success': False, 'error': message}
    if details:
        body['details'] = details
    response = jsonify(body)
    response.status_code = status
    for key, value in (headers or {}).items():
        response.headers[key] = value
    return response


def success_response(message, limit_result):
    response = jsonify({'success': True, 'message': message})
    response.status_code = 200
    response.headers.update(limit_result.headers())
    return response


def rate_limited_response(limit_result, now_ms):
    retry_after = max(1, math.ceil((limit_result.reset - now_ms) / 1000))
    headers = limit_result.headers()
    headers['Retry-After'] = str(retry_after)
    return error_response(RATE_LIMITED_MESSAGE, 429, headers=headers)


def cors_preflight_response():
    response = current_app.response_class(status=204)
    response.headers['Access-Control-Allow-Origin'] = current_app.config.get('CORS_ALLOW_ORIGIN') or '*'
    response.headers['Access-Control-Allow-Methods'] = 'POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


def parse_json_body(req):
    payload = req.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        raise SubmissionError('Invalid request body.')
    return ParsedSubmission(payload=payload)


def _formdata_value(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def as_formdata(payload):
    """Flatten a decoded JSON object into the MultiDict shape WTForms reads."""
    items = []
    for key, value in (payload or {}).items():
        if value is None or isinstance(value, dict):
            continue
        if isinstance(value, (list, tuple)):
            items.extend((key, _formdata_value(item)) for item in value if item is not None and not isinstance(item, dict))
        else:
            items.append((key, _formdata_value(value)))
    return MultiDict(items)


def validate_submission(schema, payload):
    """Run a form schema; returns ``(data, None)`` or ``(None, errors)``."""
    form = schema(formdata=as_formdata(payload))
    if not form.validate():
        return None, {name: list(messages) for name, messages in form.errors.items()}
    data = {name: value for name, value in form.data.items() if name != HONEYPOT_FIELD}
    return MappingProxyType(data), None


def record_security_event(event_type, scope, client_id, details=''):
    try:
        event = SecurityEvent(
            event_type=clean_text(event_type, 40),
            scope=clean_text(scope, 80),
            ip=clean_text(client_id, 64) or 'anonymous',
            path=clean_text(request.path, 255) or '/',
            method=clean_text(request.method, 10) or 'POST',
            user_agent=clean_text(request.headers.get('User-Agent', ''), 300),
            details=clean_text(details, 2000),
        )
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception('Failed to persist security event.')


def handle_submission(
    schema,
    rate_limit,
    store,
    success_message,
    parse=None,
    sanitize=None,
    honeypot_check=None,
    notify=None,
    sink=None,
    limiter=None,
):
    """Run one form submission through the pipeline and build the response.

    ``store(data, context)`` must return a ``SubmissionResult``; ``notify``
    receives the same arguments and is best-effort from the caller's point of
    view, but an exception escaping it still ends in a 500 because the
    catch-all below cannot tell it apart from any other failure.
    """
    sink = sink or get_sink()
    limiter = limiter or get_rate_limiter()
    try:
        client_id = get_client_identifier()
        limit_result = limiter.check(
            f'{rate_limit.scope}:{client_id}',
            limit=rate_limit.limit,
            window_ms=rate_limit.window_ms,
        )
        if not limit_result.success:
            record_security_event(
                'rate_limited',
                rate_limit.scope,
                client_id,
                f'limit={rate_limit.limit} window={rate_limit.window_ms // 1000}s',
            )
            sink.report_event(
                'submission_rate_limited',
                level='warning',
                extra={'scope': rate_limit.scope, 'client_id': client_id},
            )
            return rate_limited_response(limit_result, limiter.clock())

        parsed = (parse or parse_json_body)(request) or ParsedSubmission(payload={})
        payload = parsed.payload

        if honeypot_check is not None and not honeypot_check(payload):
            record_security_event('honeypot_triggered', rate_limit.scope, client_id)
            sink.report_event(
                'submission_honeypot_triggered',
                level='warning',
                extra={'scope': rate_limit.scope, 'client_id': client_id},
            )
            return success_response(success_message, limit_result)

        cleaned = sanitize(payload) if sanitize else payload
        data, errors = validate_submission(schema, cleaned)
        if errors:
            return error_response(INVALID_FORM_MESSAGE, 400, details=errors)

        context = SubmissionContext(request=request, extras=parsed.extras)
        result = store(data, context)
        if not result.success:
            sink.report_error(
                SubmissionStoreError(result.error),
                tags={'module': MODULE_TAG, 'scope': rate_limit.scope},
            )
            return error_response(STORE_FAILED_MESSAGE, 500)

        if notify is not None:
            notify(data, context)
        sink.report_event('submission_success', level='info', extra={'scope': rate_limit.scope})
        return success_response(success_message, limit_result)
    except SubmissionError as exc:
        return error_response(exc.message, exc.status)
    except HTTPException:
        raise
    except Exception as exc:
        sink.report_error(exc, tags={'module': MODULE_TAG, 'scope': rate_limit.scope})
        return error_response(INTERNAL_ERROR_MESSAGE, 500)
