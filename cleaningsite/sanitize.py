"""Input cleanup applied to raw submission payloads before validation."""
import re

_CONTROL_CHARS_RE = re.compile(r'[\x01-\x08\x0b\x0c\x0e-\x1f\x7f]')
_WHITESPACE_RE = re.compile(r'\s+')
_EMAIL_UNSAFE_RE = re.compile(r'[^a-z0-9@._+-]')
_PHONE_UNSAFE_RE = re.compile(r'[^\d+\s()-]')
_FILENAME_UNSAFE_RE = re.compile(r'[^a-zA-Z0-9._-]')
MAX_FILENAME_LENGTH = 255


def sanitize_string(value):
    if not isinstance(value, str) or not value:
        return ''
    cleaned = value.replace('\x00', '')
    cleaned = _CONTROL_CHARS_RE.sub('', cleaned)
    return _WHITESPACE_RE.sub(' ', cleaned.strip())


def sanitize_email(value):
    if not isinstance(value, str) or not value:
        return ''
    return _EMAIL_UNSAFE_RE.sub('', value.strip().lower())


def sanitize_phone(value):
    if not isinstance(value, str) or not value:
        return ''
    return _PHONE_UNSAFE_RE.sub('', value.strip())


def sanitize_filename(filename):
    if not isinstance(filename, str) or not filename:
        return 'file'
    name = re.sub(r'^.*[/\\]', '', filename)
    name = _FILENAME_UNSAFE_RE.sub('_', name)
    name = re.sub(r'_{2,}', '_', name)
    name = name.lstrip('.')
    if len(name) > MAX_FILENAME_LENGTH:
        stem, dot, ext = name.rpartition('.')
        if dot and len(ext) < 16:
            name = f"{stem[:MAX_FILENAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            name = name[:MAX_FILENAME_LENGTH]
    return name or 'file'


def sanitize_value(value):
    if isinstance(value, str):
        return sanitize_string(value)
    if isinstance(value, dict):
        return sanitize_object(value)
    if isinstance(value, (list, tuple)):
        return [sanitize_value(item) for item in value]
    return value


def sanitize_object(payload):
    if not isinstance(payload, dict):
        return {}
    return {key: sanitize_value(value) for key, value in payload.items()}


def validate_honeypot(value):
    """True when the hidden field was left empty, i.e. a human filled the form."""
    if value is None:
        return True
    return not str(value).strip()


def honeypot_field(field_name):
    def check(payload):
        if not isinstance(payload, dict):
            return True
        return validate_honeypot(payload.get(field_name))
    return check
