"""
Logging setup for the API process, the RQ worker and the CLI.

LOG_FORMAT=json emits one JSON object per line; job-scoped records (see
job_logger) carry job_id so a whole run can be filtered out of the stream.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes copied into JSON output when present
_CONTEXT_FIELDS = ('job_id', 'row_id', 'tenant_id')

_TEXT_FORMAT = '[%(asctime)s] %(levelname)s %(name)s — %(message)s'

# Chatty at INFO: HTTP connection pools, RQ's per-job banner, SQL echo
_QUIET_LOGGERS = ('urllib3', 'requests', 'rq.worker', 'sqlalchemy.engine')


class JSONFormatter(logging.Formatter):

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def job_logger(logger, job_id, **context):
    """Adapter that stamps job_id (and any extra context) on every record."""
    return logging.LoggerAdapter(logger, {'job_id': job_id, **context})


def configure_logging(app=None):
    """
    Install a single stderr handler on the root logger.

    Reads LOG_LEVEL (default INFO, unknown names fall back to INFO) and
    LOG_FORMAT ("text" or "json") at call time, so workers pick up the
    environment they were started with.
    """
    level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if os.getenv('LOG_FORMAT', 'text').lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        # Flask's own logger goes through the root handler
        app.logger.handlers.clear()
        app.logger.setLevel(level)
