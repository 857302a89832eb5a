# src/plugin_bundle/logging_setup.py
"""
Root logger setup for the ``plugin-bundle`` command.

Log records go to stderr (and optionally a rotating file) so that command
output on stdout, such as ``plugin-bundle list``, stays machine-readable.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List

from plugin_bundle.config import LoggingConfig


def setup_logging(log_settings: LoggingConfig) -> logging.Logger:
    root = logging.getLogger()
    level = log_settings.level.upper()
    root.setLevel(level)

    # Calling this again (one process, several commands) replaces our handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_settings.log_to_file:
        log_path = log_settings.resolved_log_file()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=log_settings.rotation_size_mb * 1024 * 1024,
                backupCount=log_settings.rotation_backup_count,
                encoding="utf-8",
            )
        )

    formatter = logging.Formatter(log_settings.format)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if log_settings.echo_sql else logging.WARNING)

    root.debug(f"Logging configured at {level}")
    return root
