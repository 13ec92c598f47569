"""
Unit tests for logging configuration.
"""

import logging
import os
import tempfile
import unittest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ensemble_da.utils import logging_config
from ensemble_da.utils.logging_config import get_logger, setup_logging


class TestLoggingConfig(unittest.TestCase):
    """Test cases for setup_logging and get_logger."""

    def setUp(self):
        """Set up test fixtures."""
        root = logging.getLogger()
        self._handlers = list(root.handlers)
        self._level = root.level
        self._configured = logging_config._logging_configured
        logging_config._logging_configured = False
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self._handlers:
                handler.close()
        root.handlers[:] = self._handlers
        root.setLevel(self._level)
        logging_config._logging_configured = self._configured
        self.tmpdir.cleanup()

    def test_log_file_receives_records(self):
        log_file = os.path.join(self.tmpdir.name, "logs", "assimilation.log")
        setup_logging(level="DEBUG", log_file=log_file)

        get_logger("ensemble_da.test").info("Assimilating %d observations", 3)
        for handler in logging.getLogger().handlers:
            handler.flush()

        with open(log_file) as f:
            contents = f.read()
        self.assertIn("| INFO     | ensemble_da.test | Assimilating 3 observations", contents)

    def test_setup_runs_once(self):
        setup_logging(level="WARNING")
        setup_logging(level="DEBUG")
        self.assertEqual(logging.getLogger().level, logging.WARNING)

    def test_tensorflow_loggers_quietened(self):
        setup_logging(level="DEBUG")
        self.assertEqual(logging.getLogger("tensorflow").level, logging.WARNING)

    def test_get_logger_configures_on_first_use(self):
        logger = get_logger("ensemble_da.filters.enkf")
        self.assertEqual(logger.name, "ensemble_da.filters.enkf")
        self.assertTrue(logging_config._logging_configured)


if __name__ == '__main__':
    unittest.main()
