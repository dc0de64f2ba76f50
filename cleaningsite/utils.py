"""Shared request and text helpers used across the submission modules."""
import ipaddress
import re
import time
from datetime import datetime, timezone

from flask import request

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ANONYMOUS_CLIENT = 'anonymous'


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis():
    return int(time.time() * 1000)


def clean_text(value, max_length=255):
    return (value or '').strip()[:max_length]


def is_valid_email(value):
    return bool(EMAIL_RE.match(value or ''))


def normalized_ip(value):
    candidate = (value or '').split(',', 1)[0].strip()
    if not candidate:
        return ''
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return ''


def get_forwarded_ip():
    """Raw forwarded address chain as sent by the edge, for audit columns."""
    forwarded = request.headers.get('X-Forwarded-For') or request.headers.get('X-Real-IP') or ''
    return clean_text(forwarded, 255) or None


def get_client_identifier():
    # request.remote_addr is proxy-aware when ProxyFix is enabled by app config.
    return normalized_ip(request.remote_addr) or ANONYMOUS_CLIENT
