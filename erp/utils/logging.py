"""
erp/utils/logging.py
───────────────────
Configures rotating-file + stdout logging for the Flask app.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request


class RequestFormatter(logging.Formatter):
    """
    Formatter that injects the request URL and remote address
    when a request context is available.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
        else:
            record.url = None
            record.remote_addr = None
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging: <LOG_DIR>/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | remote addr | url | message
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    app.logger.addHandler(stream_handler)
    app.logger.setLevel(logging.INFO)

    if app.config.get('TESTING'):
        return

    log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, '..', 'logs')
    try:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=5 * 1024 * 1024,
            backupCount=5
        )
    except OSError as exc:
        # Read-only filesystem: stdout only
        app.logger.warning(f"File logging disabled ({exc}); using stdout only")
    else:
        file_handler.setFormatter(RequestFormatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | %(url)s | %(message)s'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

    app.logger.info("ERP sales service startup")
