"""
Logging setup and configuration for LDAP Reconcile.

Provides file logging with daily rotation, optional console output, scrubbing of
credentials from log messages, and a dedicated audit logger for account changes.
"""

import os
import re
import logging
import logging.handlers
from typing import Dict, Any, Optional


def _build_patterns(keywords):
    """Compile the substitutions that mask values of sensitive keys."""
    patterns = []
    for keyword in keywords:
        # key=value
        patterns.append((re.compile(rf'({keyword}\s*=\s*)[^\s,}}\]]+', re.IGNORECASE), r'\1****'))
        # "key": "value"
        patterns.append((re.compile(rf'("{keyword}"\s*:\s*")[^"]*(")', re.IGNORECASE), r'\1****\2'))
        # 'key': 'value' (repr of a dict)
        patterns.append((re.compile(rf"('{keyword}'\s*:\s*')[^']*(')", re.IGNORECASE), r'\1****\2'))
    patterns.append((re.compile(r'(Authorization:?\s*(?:Bearer|Basic)\s+)[^\s,}\]"]+', re.IGNORECASE), r'\1****'))
    return patterns


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub sensitive data from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'bind_password', 'token', 'secret', 'credential',
        'pwd', 'api_key', 'client_secret', 'access_token', 'refresh_token'
    ]

    def __init__(self, name: str = ''):
        super().__init__(name)
        self.patterns = _build_patterns(self.SENSITIVE_KEYWORDS)

    def filter(self, record):
        """Filter out sensitive data from log records."""
        if record.args:
            # Render lazily formatted messages so arguments are scrubbed too
            record.msg = record.getMessage()
            record.args = None

        msg = str(record.msg)
        for pattern, replacement in self.patterns:
            msg = pattern.sub(replacement, msg)
        record.msg = msg

        return True


class LoggingManager:
    """
    Manages logging configuration for the LDAP Reconcile application.

    Provides file-based logging with rotation and container-friendly console output.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Optional[Dict[str, Any]]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
        """
        if self.configured:
            return

        logging_config = config if config else {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        self._ensure_log_directory()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def _ensure_log_directory(self) -> None:
        """Ensure the log directory exists."""
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create appropriate file handler based on rotation setting.

        Args:
            rotation: Rotation setting ('daily', 'midnight', or 'none')

        Returns:
            Configured logging handler
        """
        log_file = os.path.join(self.log_dir or '.', 'app.log')

        if str(rotation).lower() in ['daily', 'midnight']:
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Optional[Dict[str, Any]]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


class SecurityAuditLogger:
    """Special logger for account-affecting events."""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_user_synced(self, login: str, signup_allowed: bool):
        self.logger.info(f"User synced from directory: user={login} signup_allowed={signup_allowed}")

    def log_user_disabled(self, login: str):
        self.logger.warning(f"User disabled, not found in directory: user={login}")

    def log_sync_refused(self, login: str, reason: str):
        self.logger.error(f"Sync refused: user={login} - {reason}")

    def log_configuration_reload(self, config_file: Optional[str], success: bool):
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Configuration reload {status}: {config_file or 'default'}")


# Global security logger instance
security_logger = SecurityAuditLogger()
