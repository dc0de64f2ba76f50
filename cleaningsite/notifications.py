import base64
import json
import smtplib
import urllib.error
import urllib.request
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid

from flask import current_app

from .utils import is_valid_email


class EmailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = 'application/octet-stream'


@dataclass(frozen=True)
class EmailSendResult:
    success: bool
    id: str = ''


def _safe_header_value(value, max_length=240):
    # Prevent header injection by stripping CR/LF and collapsing whitespace.
    cleaned = ' '.join((value or '').replace('\r', ' ').replace('\n', ' ').split())
    return cleaned[:max_length]


def _split_recipients(raw):
    recipients = []
    seen = set()
    for item in (raw or '').split(','):
        cleaned = _safe_header_value(item, max_length=320)
        normalized = cleaned.lower()
        if cleaned and normalized not in seen:
            recipients.append(cleaned)
            seen.add(normalized)
    return recipients


def notification_recipients():
    return _split_recipients(current_app.config.get('NOTIFICATION_EMAIL'))


def _send_via_resend(subject, html, text, recipients, mail_from, reply_to, attachments):
    """Send through the Resend HTTP API. Returns None when it is not configured."""
    api_key = (current_app.config.get('RESEND_API_KEY') or '').strip()
    if not api_key:
        return None

    body = {
        'from': mail_from,
        'to': recipients,
        'subject': subject,
        'html': html,
    }
    if text:
        body['text'] = text
    if reply_to:
        body['reply_to'] = reply_to
    if attachments:
        body['attachments'] = [
            {
                'filename': attachment.filename,
                'content': base64.b64encode(attachment.content).decode('ascii'),
            }
            for attachment in attachments
        ]

    req = urllib.request.Request(
        current_app.config.get('RESEND_API_URL') or 'https://api.resend.com/emails',
        data=json.dumps(body).encode('utf-8'),
        method='POST',
    )
    req.add_header('Content-Type', 'application/json')
    req.add_header('Authorization', f'Bearer {api_key}')

    try:
        with urllib.request.urlopen(req, timeout=15) as resp:  # nosec B310
            payload = json.loads(resp.read().decode('utf-8') or '{}')
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode('utf-8', errors='replace')
        raise EmailDeliveryError(f'Resend API error {exc.code}: {error_body}') from exc
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise EmailDeliveryError(f'Resend request failed: {exc}') from exc
    return EmailSendResult(success=True, id=str(payload.get('id') or ''))


def _send_via_smtp(subject, html, text, recipients, mail_from, reply_to, attachments):
    """Send via SMTP. Returns None when no host is configured."""
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        return None

    port = int(current_app.config.get('SMTP_PORT') or 587)
    username = current_app.config.get('SMTP_USERNAME') or ''
    password = current_app.config.get('SMTP_PASSWORD') or ''
    use_ssl = bool(current_app.config.get('SMTP_USE_SSL'))
    use_tls = bool(current_app.config.get('SMTP_USE_TLS'))

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = mail_from
    message['To'] = ', '.join(recipients)
    message['Message-ID'] = make_msgid()
    if reply_to:
        message['Reply-To'] = reply_to
    message.set_content(text or '')
    message.add_alternative(html, subtype='html')
    for attachment in attachments or []:
        maintype, _, subtype = (attachment.content_type or 'application/octet-stream').partition('/')
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or 'octet-stream',
            filename=attachment.filename,
        )

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=12)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=12)

        with smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f'SMTP delivery failed: {exc}') from exc
    return EmailSendResult(success=True, id=message['Message-ID'])


def send_email(to, subject, html, text=None, reply_to=None, attachments=None):
    """Send one message through the first configured provider.

    Raises ``EmailDeliveryError`` when a provider is configured but the
    transport fails; returns an unsuccessful result when none is configured.
    """
    recipients = [to] if isinstance(to, str) else list(to or [])
    recipients = [_safe_header_value(item, max_length=320) for item in recipients]
    if not recipients:
        raise EmailDeliveryError('No recipients given.')
    for address in recipients:
        if not is_valid_email(address):
            raise EmailDeliveryError(f'Invalid email address: {address}')

    mail_from = _safe_header_value(current_app.config.get('MAIL_FROM') or 'no-reply@localhost', max_length=254)
    safe_subject = _safe_header_value(subject, max_length=240)
    safe_reply_to = _safe_header_value(reply_to, max_length=320) if reply_to else None
    if safe_reply_to and not is_valid_email(safe_reply_to):
        safe_reply_to = None

    args = (safe_subject, html, text, recipients, mail_from, safe_reply_to, attachments)
    result = _send_via_resend(*args)
    if result is not None:
        return result

    result = _send_via_smtp(*args)
    if result is not None:
        return result

    current_app.logger.info('No email provider configured (set RESEND_API_KEY or SMTP_HOST).')
    return EmailSendResult(success=False)


def log_email_send(to, subject, result):
    recipients = [to] if isinstance(to, str) else list(to or [])
    if result.success:
        current_app.logger.info(
            'Email sent (to=%s, subject=%s, id=%s)',
            ', '.join(recipients),
            subject,
            result.id or 'n/a',
        )
    else:
        current_app.logger.warning('Email not sent (to=%s, subject=%s)', ', '.join(recipients), subject)
