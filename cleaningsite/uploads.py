from flask import current_app

from .notifications import EmailAttachment
from .sanitize import sanitize_filename

ALLOWED_RESUME_MIME_TYPES = {
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}
DEFAULT_RESUME_MAX_BYTES = 5 * 1024 * 1024
_EXECUTABLE_SIGNATURES = (
    b'MZ',                # Windows PE
    b'\x7fELF',           # ELF
    b'\xca\xfe\xba\xbe',  # Mach-O fat binary
    b'\xcf\xfa\xed\xfe',  # Mach-O 64-bit
    b'#!',                # shell script
)


class UploadRejected(ValueError):
    pass


def _max_resume_bytes():
    return int(current_app.config.get('RESUME_MAX_BYTES') or DEFAULT_RESUME_MAX_BYTES)


def _format_megabytes(size):
    if size < 1024 * 1024:
        return f"{max(1, size // 1024)}KB"
    megabytes = size / (1024 * 1024)
    return f"{megabytes:g}MB" if megabytes == int(megabytes) else f"{megabytes:.1f}MB"


def read_resume(file_storage, fallback_name='resume.pdf'):
    """Return an ``EmailAttachment`` for an uploaded resume, or None when no file was sent.

    Raises ``UploadRejected`` with a user-facing message when the file is not an
    allowed document type, is too large, or looks like an executable.
    """
    if file_storage is None or not (file_storage.filename or '').strip():
        return None

    content_type = (file_storage.mimetype or '').lower()
    if content_type not in ALLOWED_RESUME_MIME_TYPES:
        raise UploadRejected('Invalid file type. Please upload a PDF or Word document.')

    max_bytes = _max_resume_bytes()
    content = file_storage.stream.read(max_bytes + 1)
    if not content:
        return None
    if len(content) > max_bytes:
        raise UploadRejected(f'File too large. Maximum size is {_format_megabytes(max_bytes)}.')
    if content.startswith(_EXECUTABLE_SIGNATURES):
        raise UploadRejected('File rejected: executable content detected.')

    return EmailAttachment(
        filename=sanitize_filename(file_storage.filename or fallback_name),
        content=content,
        content_type=content_type,
    )
