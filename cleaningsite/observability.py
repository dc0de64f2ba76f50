"""Diagnostics sink for the submission pipeline.

Calls are fire-and-forget: a sink must never raise into the request that
reported to it.
"""
import logging

import sentry_sdk
from flask import current_app

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
}


class ObservabilitySink:
    def report_error(self, error, tags=None):
        raise NotImplementedError

    def report_event(self, name, level='info', extra=None):
        raise NotImplementedError


class SentrySink(ObservabilitySink):
    """Forwards to Sentry (a no-op until ``sentry_sdk.init`` runs) and mirrors to a logger."""

    def __init__(self, logger):
        self.logger = logger

    def report_error(self, error, tags=None):
        tags = dict(tags or {})
        try:
            self.logger.error(
                'Submission error reported: %s (tags=%s)',
                error,
                tags,
                exc_info=(type(error), error, error.__traceback__),
            )
            sentry_sdk.capture_exception(error, tags=tags)
        except Exception:
            self.logger.exception('Failed to report error to Sentry.')

    def report_event(self, name, level='info', extra=None):
        extra = dict(extra or {})
        try:
            self.logger.log(_LEVELS.get(level, logging.INFO), 'event=%s extra=%s', name, extra)
            sentry_sdk.capture_message(name, level=level, extras=extra)
        except Exception:
            self.logger.exception('Failed to report event to Sentry.')


class RecordingSink(ObservabilitySink):
    def __init__(self):
        self.errors = []
        self.events = []

    def report_error(self, error, tags=None):
        self.errors.append((error, dict(tags or {})))

    def report_event(self, name, level='info', extra=None):
        self.events.append((name, level, dict(extra or {})))

    def event_names(self):
        return [name for name, _, _ in self.events]


def get_sink():
    return current_app.extensions['observability_sink']
