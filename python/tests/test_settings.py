import unittest
from unittest.mock import patch
import json
import tempfile
import os
import sys
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from settings import Settings, _load_env_file


class TestSettings(unittest.TestCase):
    """Test suite for settings.py module."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.missing_env = os.path.join(self.temp_dir.name, "missing.env")

        # Keep TIMERS_* variables from the real environment out of the tests
        self.env_patch = patch.dict(
            os.environ,
            {k: v for k, v in os.environ.items() if not k.startswith("TIMERS_")},
            clear=True,
        )
        self.env_patch.start()

        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)
        self.env_patch.stop()
        self.temp_dir.cleanup()

    def write_json(self, data, name="timers.json"):
        path = os.path.join(self.temp_dir.name, name)
        with open(path, "w", encoding="utf-8") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)
        return path

    def test_defaults_when_file_missing(self):
        """A missing settings file should fall back to defaults."""
        settings = Settings(
            settings_file=os.path.join(self.temp_dir.name, "nope.json"),
            env_file=self.missing_env,
        )
        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.dispatcher_thread_name, "TimerDispatcher")
        self.assertTrue(settings.daemon)
        self.assertEqual(settings.max_wait_seconds, 1.0)
        self.assertEqual(settings.shutdown_timeout_seconds, 5.0)

    def test_values_from_file(self):
        """Values in the JSON file should override defaults."""
        path = self.write_json(
            {"log_level": "debug", "daemon": False, "max_wait_seconds": 0.25}
        )
        settings = Settings(settings_file=path, env_file=self.missing_env)
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertFalse(settings.daemon)
        self.assertEqual(settings.max_wait_seconds, 0.25)

    def test_environment_overrides_file(self):
        """TIMERS_* variables should win over the JSON file."""
        path = self.write_json({"dispatcher_thread_name": "FromFile"})
        with patch.dict(
            os.environ,
            {"TIMERS_DISPATCHER_THREAD_NAME": "FromEnv", "TIMERS_DAEMON": "no"},
        ):
            settings = Settings(settings_file=path, env_file=self.missing_env)
        self.assertEqual(settings.dispatcher_thread_name, "FromEnv")
        self.assertFalse(settings.daemon)

    def test_invalid_json_uses_defaults(self):
        """An unparsable file should log and fall back to defaults."""
        path = self.write_json("{not json")
        settings = Settings(settings_file=path, env_file=self.missing_env)
        self.assertEqual(settings.log_level, "INFO")

    def test_non_object_json_uses_defaults(self):
        """A JSON file that is not an object should be ignored."""
        path = self.write_json([1, 2, 3])
        settings = Settings(settings_file=path, env_file=self.missing_env)
        self.assertEqual(settings.max_wait_seconds, 1.0)

    def test_invalid_boolean_raises_error(self):
        """An unrecognized boolean should raise ValueError."""
        path = self.write_json({"daemon": "sometimes"})
        with self.assertRaises(ValueError):
            Settings(settings_file=path, env_file=self.missing_env)

    def test_non_positive_max_wait_raises_error(self):
        """max_wait_seconds must be positive."""
        path = self.write_json({"max_wait_seconds": 0})
        with self.assertRaises(ValueError) as cm:
            Settings(settings_file=path, env_file=self.missing_env)
        self.assertIn("max_wait_seconds", str(cm.exception))

    def test_negative_shutdown_timeout_raises_error(self):
        """shutdown_timeout_seconds cannot be negative."""
        path = self.write_json({"shutdown_timeout_seconds": -1})
        with self.assertRaises(ValueError):
            Settings(settings_file=path, env_file=self.missing_env)


class TestLoadEnvFile(unittest.TestCase):
    """Test the built-in .env parser."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.env_path = os.path.join(self.temp_dir.name, ".env")
        self.env_patch = patch.dict(os.environ, {})
        self.env_patch.start()

    def tearDown(self):
        self.env_patch.stop()
        self.temp_dir.cleanup()

    def write_env(self, content):
        with open(self.env_path, "w", encoding="utf-8") as f:
            f.write(content)

    def test_loads_key_value_pairs(self):
        """Plain and quoted values should be loaded."""
        self.write_env(
            "# comment\n"
            "TIMERS_TEST_PLAIN=plain\n"
            "\n"
            'TIMERS_TEST_QUOTED="quoted value"\n'
            "TIMERS_TEST_EQUALS=a=b\n"
        )
        _load_env_file(self.env_path)
        self.assertEqual(os.environ["TIMERS_TEST_PLAIN"], "plain")
        self.assertEqual(os.environ["TIMERS_TEST_QUOTED"], "quoted value")
        self.assertEqual(os.environ["TIMERS_TEST_EQUALS"], "a=b")

    def test_existing_variables_are_kept(self):
        """Variables already set in the process should not be replaced."""
        os.environ["TIMERS_TEST_KEEP"] = "process"
        self.write_env("TIMERS_TEST_KEEP=file\n")
        _load_env_file(self.env_path)
        self.assertEqual(os.environ["TIMERS_TEST_KEEP"], "process")

    def test_missing_file_is_ignored(self):
        """A missing .env file should not raise."""
        _load_env_file(os.path.join(self.temp_dir.name, "absent.env"))

    def test_env_file_feeds_settings(self):
        """Settings should read overrides loaded from the .env file."""
        self.write_env("TIMERS_LOG_LEVEL=trace\n")
        settings = Settings(
            settings_file=os.path.join(self.temp_dir.name, "none.json"),
            env_file=self.env_path,
        )
        self.assertEqual(settings.log_level, "TRACE")


if __name__ == "__main__":
    unittest.main()
