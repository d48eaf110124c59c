"""
quickcart/utils/logging.py
──────────────────────────
Rotating file + stdout logging for the Flask app.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request, session


class RequestFormatter(logging.Formatter):
    """
    Injects request info (IP, URL, merchant id) into each record
    when a request context is active.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.merchant_id = session.get('merchant_id')
        else:
            record.url = None
            record.remote_addr = None
            record.merchant_id = None
        return super().format(record)


def setup_logging(app):
    """
    Configure logging on app.logger:
      - logs/app.log, max 5MB, 5 backups (skipped when LOG_TO_FILE is False)
      - stdout, for container / PaaS log collectors
    Format: timestamp | level | module | merchant | ip | url | message
    """
    if app.config.get('LOG_TO_FILE', True):
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
            app.logger.warning(f"File logging disabled: {exc}")
        else:
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | merchant=%(merchant_id)s | '
                '%(remote_addr)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(RequestFormatter(
        '%(asctime)s | %(levelname)s | merchant=%(merchant_id)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    app.logger.addHandler(stream_handler)

    app.logger.setLevel(logging.INFO)
    app.logger.info("QuickCart POS startup")
