"""Logging setup for the API process.

All module loggers live under the ``milicard`` namespace (``logging.getLogger(__name__)``),
which is also the name of ``app.logger``, so a single dictConfig covers both.
"""
from __future__ import annotations
import logging
import logging.config
import time
from flask import Flask, g, request

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def build_logging_config(level: str = 'INFO', log_file: str | None = None) -> dict:
    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
        }
    }
    if log_file:
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'default',
            'filename': log_file,
            'maxBytes': 5 * 1024 * 1024,
            'backupCount': 5,
            'encoding': 'utf-8',
        }
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {'default': {'format': LOG_FORMAT}},
        'handlers': handlers,
        'loggers': {
            'milicard': {
                'level': level.upper(),
                'handlers': list(handlers),
                'propagate': False,
            }
        },
    }


def configure_logging(app: Flask):
    logging.config.dictConfig(build_logging_config(app.config.get('LOG_LEVEL', 'INFO'), app.config.get('LOG_FILE')))
    access_logger = logging.getLogger('milicard.access')

    @app.before_request
    def _start_timer():
        g._request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):
        started = g.pop('_request_started', None)
        duration_ms = round((time.perf_counter() - started) * 1000, 1) if started else None
        access_logger.info('%s %s %s %sms', request.method, request.path, response.status_code, duration_ms)
        return response

    return app.logger
