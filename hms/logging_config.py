"""
Logging setup for the HMS API.

`json` format emits one object per line for log shippers; `text` is for
local development. Request-scoped values (request id, user, timing) are
passed through `extra=` by the request middleware and error handlers.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from config.settings import AppSettings

REQUEST_FIELDS = ('request_id', 'user', 'method', 'endpoint', 'status_code',
                  'duration_ms', 'remote_addr')

TEXT_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ('werkzeug', 'flask_limiter', 'flask_cors')

_OWNED = '_hms_owned'


class JSONFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record):
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        entry.update({
            field: getattr(record, field) for field in REQUEST_FIELDS if hasattr(record, field)
        })
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _formatter(log_format: str) -> logging.Formatter:
    return JSONFormatter() if log_format == 'json' else logging.Formatter(TEXT_FORMAT)


def _own(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    setattr(handler, _OWNED, True)
    return handler


def configure_logging(settings: AppSettings, app=None) -> logging.Logger:
    """Install handlers on the root logger according to settings.

    Safe to call repeatedly (each app factory call in tests does): handlers
    installed by a previous call are replaced, foreign ones are left alone.

    Args:
        settings: Application settings (log_level, log_format, log_file)
        app: Flask app whose own logger should defer to the root logger.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    for handler in [h for h in root.handlers if getattr(h, _OWNED, False)]:
        root.removeHandler(handler)
        handler.close()

    root.addHandler(_own(logging.StreamHandler(), _formatter(settings.log_format)))
    if settings.log_file:
        # file output is always JSON, 10MB x 5
        root.addHandler(_own(
            RotatingFileHandler(settings.log_file, maxBytes=10 * 1024 * 1024, backupCount=5),
            JSONFormatter(),
        ))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if app is not None:
        app.logger.handlers.clear()
        app.logger.setLevel(level)

    return root
