import os
import logging
import json

_RESERVED_ATTRS = {
    'args', 'asctime', 'created', 'exc_info', 'exc_text', 'filename',
    'funcName', 'id', 'levelname', 'levelno', 'lineno', 'module',
    'msecs', 'message', 'msg', 'name', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName',
    'taskName'
}


def setup_logging(level=None, log_format=None):
    """
    Set up logging for the queue monitor.

    Args:
        level: Optional log level override (default: uses LOG_LEVEL env var or INFO)
        log_format: 'text' or 'json' (default: uses LOG_FORMAT env var, json under AWS)
    """
    if level is None:
        level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s [%(levelname)s] %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if log_format is None:
        log_format = os.environ.get('LOG_FORMAT')
        if log_format is None and os.environ.get('AWS_EXECUTION_ENV') is not None:
            log_format = 'json'

    # Structured output for log aggregators
    if (log_format or '').lower() == 'json':
        root_logger = logging.getLogger()
        for handler in root_logger.handlers:
            handler.setFormatter(JsonFormatter())

    # Silence noisy loggers
    logging.getLogger('pika').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    logging.debug("Logging initialized")


class JsonFormatter(logging.Formatter):
    """
    Format log records as single-line JSON objects.
    """

    def format(self, record):
        log_record = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'name': record.name,
            'message': record.getMessage(),
            'thread': record.threadName,
            'file': record.pathname,
            'line': record.lineno,
            'function': record.funcName
        }

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_record:
                log_record[key] = value

        return json.dumps(log_record, default=str)
