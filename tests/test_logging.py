#!/usr/bin/env python3
"""
Unit tests for logging infrastructure.

Covers sensitive data filtering, file and console handler setup and the
security audit logger.
"""

import os
import sys
import shutil
import logging
import tempfile
import unittest
from unittest.mock import patch

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_reconcile.logging_setup import LoggingManager, SecurityAuditLogger, SensitiveDataFilter


def make_record(msg, args=None):
    """Build a log record the way a logger call would."""
    return logging.LogRecord('test', logging.INFO, __file__, 1, msg, args, None)


class TestSensitiveDataFilter(unittest.TestCase):
    """Test cases for SensitiveDataFilter."""

    def setUp(self):
        """Set up test fixtures."""
        self.filter = SensitiveDataFilter()

    def scrub(self, msg, args=None):
        record = make_record(msg, args)
        self.assertTrue(self.filter.filter(record))
        return record.getMessage()

    def test_key_value(self):
        self.assertEqual(self.scrub('password=secret123'), 'password=****')
        self.assertEqual(self.scrub('token = abc123, user=ada'), 'token = ****, user=ada')

    def test_json(self):
        self.assertEqual(self.scrub('{"bind_password": "topsecret"}'), '{"bind_password": "****"}')

    def test_dict_repr(self):
        config = {'base_url': 'https://authz.example.com', 'token': 'abc123'}
        result = self.scrub(f"Store config: {config}")
        self.assertIn("'token': '****'", result)
        self.assertNotIn('abc123', result)
        self.assertIn('https://authz.example.com', result)

    def test_authorization_header(self):
        self.assertEqual(self.scrub('Authorization: Bearer abc123token'), 'Authorization: Bearer ****')
        self.assertEqual(self.scrub('Authorization: Basic c3ZjOnNlY3JldA=='), 'Authorization: Basic ****')

    def test_lazy_arguments_are_scrubbed(self):
        """Arguments of %-style messages are rendered before filtering."""
        result = self.scrub('Binding with password=%s to %s', ('hunter2', 'ldap.example.com'))
        self.assertEqual(result, 'Binding with password=**** to ldap.example.com')

    def test_normal_message(self):
        self.assertEqual(self.scrub('User synced: ada'), 'User synced: ada')


class TestLoggingManager(unittest.TestCase):
    """Test cases for LoggingManager."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp(prefix='ldap_reconcile_test_logs_')
        self.root_logger = logging.getLogger()
        self.saved_handlers = list(self.root_logger.handlers)
        self.saved_level = self.root_logger.level

    def tearDown(self):
        """Restore the root logger and remove log files."""
        for handler in self.root_logger.handlers:
            handler.close()
        self.root_logger.handlers[:] = self.saved_handlers
        self.root_logger.setLevel(self.saved_level)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_file_logging_is_scrubbed(self):
        """Messages reach app.log with credentials masked."""
        LoggingManager().setup_logging({
            'level': 'DEBUG',
            'log_dir': self.temp_dir,
            'console_output': False
        })

        logging.getLogger('ldap_reconcile.test').debug("bind_password=topsecret")
        for handler in self.root_logger.handlers:
            handler.flush()

        with open(os.path.join(self.temp_dir, 'app.log')) as f:
            content = f.read()
        self.assertIn('bind_password=****', content)
        self.assertNotIn('topsecret', content)

    def test_handlers(self):
        """Daily rotation uses a timed handler; console output adds a stream handler."""
        LoggingManager().setup_logging({
            'log_dir': self.temp_dir,
            'rotation': 'daily',
            'retention_days': 3,
            'console_level': 'ERROR'
        })

        handlers = self.root_logger.handlers
        self.assertEqual(len(handlers), 2)
        file_handler, console_handler = handlers
        self.assertIsInstance(file_handler, logging.handlers.TimedRotatingFileHandler)
        self.assertEqual(file_handler.backupCount, 3)
        self.assertEqual(console_handler.level, logging.ERROR)

    def test_no_rotation(self):
        LoggingManager().setup_logging({'log_dir': self.temp_dir, 'rotation': 'none', 'console_output': False})

        handlers = self.root_logger.handlers
        self.assertEqual(len(handlers), 1)
        self.assertIs(type(handlers[0]), logging.FileHandler)

    def test_setup_only_once(self):
        manager = LoggingManager()
        manager.setup_logging({'log_dir': self.temp_dir, 'console_output': False})
        manager.setup_logging({'log_dir': self.temp_dir, 'console_output': True})

        self.assertEqual(len(self.root_logger.handlers), 1)


class TestSecurityAuditLogger(unittest.TestCase):
    """Test cases for SecurityAuditLogger."""

    def setUp(self):
        """Set up test fixtures."""
        self.audit = SecurityAuditLogger()

    def test_events(self):
        with self.assertLogs('security', level='INFO') as logs:
            self.audit.log_user_synced('ada', True)
            self.audit.log_user_disabled('bob')
            self.audit.log_sync_refused('admin', 'it would be disabled')
            self.audit.log_configuration_reload('config.yaml', False)

        self.assertEqual([r.levelname for r in logs.records], ['INFO', 'WARNING', 'ERROR', 'INFO'])
        self.assertIn('user=ada signup_allowed=True', logs.output[0])
        self.assertIn('user=bob', logs.output[1])
        self.assertIn('Configuration reload FAILURE: config.yaml', logs.output[3])

    @patch('ldap_reconcile.logging_setup.logging.getLogger')
    def test_uses_security_logger(self, mock_get_logger):
        SecurityAuditLogger()
        mock_get_logger.assert_called_once_with('security')


if __name__ == '__main__':
    unittest.main()
