"""
Tests for the application logging configuration

Run with:
    python -m pytest tests/test_logging_config.py -v
"""

import logging
import os
import tempfile
import unittest
from unittest import mock

from logging_config import (
    DATE_FORMAT,
    LOG_FORMAT,
    PACKAGE_LOGGER,
    configure_logging,
    get_logger,
)


class TestLoggingConfig(unittest.TestCase):

    def setUp(self):
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        self.addCleanup(package_logger.setLevel, package_logger.level)

    @mock.patch("logging_config.logging.basicConfig")
    def test_configure_console_only(self, basic_config):
        configure_logging(level=logging.DEBUG)

        kwargs = basic_config.call_args.kwargs
        self.assertEqual(kwargs["level"], logging.DEBUG)
        self.assertEqual(kwargs["format"], LOG_FORMAT)
        self.assertEqual(kwargs["datefmt"], DATE_FORMAT)
        self.assertEqual(len(kwargs["handlers"]), 1)
        self.assertIsInstance(kwargs["handlers"][0], logging.StreamHandler)

    @mock.patch("logging_config.logging.basicConfig")
    def test_configure_with_log_file(self, basic_config):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "tracker.log")
            configure_logging(level=logging.INFO, log_file=path)

            handlers = basic_config.call_args.kwargs["handlers"]
            file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
            self.assertEqual(len(file_handlers), 1)
            self.assertEqual(file_handlers[0].baseFilename, os.path.abspath(path))
            for handler in file_handlers:
                handler.close()

    @mock.patch("logging_config.logging.basicConfig")
    def test_package_level_is_independent_of_root(self, basic_config):
        configure_logging(level=logging.WARNING, package_level=logging.DEBUG)

        self.assertEqual(basic_config.call_args.kwargs["level"], logging.WARNING)
        self.assertTrue(get_logger("orbit_tracker.tracker").isEnabledFor(logging.DEBUG))

        configure_logging(level=logging.WARNING)
        self.assertEqual(logging.getLogger(PACKAGE_LOGGER).level, logging.NOTSET)

    def test_get_logger_returns_named_logger(self):
        self.assertEqual(get_logger("orbit_tracker.passes").name, "orbit_tracker.passes")

    def test_get_logger_defaults_to_package(self):
        self.assertEqual(get_logger().name, "orbit_tracker")
        self.assertIs(get_logger("orbit_tracker.passes").parent, get_logger())


if __name__ == "__main__":
    unittest.main()
