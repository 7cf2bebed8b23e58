"""
Unit tests for settings loading.
"""

import tempfile
import unittest
from pathlib import Path

import yaml

from py2phd2.config import ClientSettings, load_settings
from py2phd2.core.errors import ConfigurationError, ErrorCodes


class SettingsFileTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "phd2.yaml"

    def tearDown(self):
        self.temp_dir.cleanup()

    def write(self, text):
        self.path.write_text(text)
        return self.path


class TestLoadSettings(SettingsFileTestCase):

    def test_defaults_without_file(self):
        settings = load_settings(environ={})
        self.assertEqual(settings, ClientSettings())

    def test_missing_file_uses_defaults(self):
        settings = load_settings(self.path, environ={})
        self.assertEqual(settings.host, "localhost")
        self.assertEqual(settings.instance, 1)

    def test_values_from_file(self):
        self.write(
            "host: observatory.local\n"
            "instance: 2\n"
            "call_timeout: 15\n"
            "log_level: debug\n"
        )

        settings = load_settings(self.path, environ={})

        self.assertEqual(settings.host, "observatory.local")
        self.assertEqual(settings.instance, 2)
        self.assertEqual(settings.call_timeout, 15.0)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_empty_file(self):
        self.write("")
        self.assertEqual(load_settings(self.path, environ={}), ClientSettings())

    def test_unknown_keys_ignored(self):
        self.write("host: pi.local\ntheme: dark\n")
        self.assertEqual(load_settings(self.path, environ={}).host, "pi.local")

    def test_environment_overrides_file(self):
        self.write("host: observatory.local\ninstance: 2\n")

        settings = load_settings(self.path, environ={"PHD2_HOST": "10.0.0.5", "PHD2_INSTANCE": "3"})

        self.assertEqual(settings.host, "10.0.0.5")
        self.assertEqual(settings.instance, 3)


class TestInvalidSettings(SettingsFileTestCase):

    def test_non_mapping_file(self):
        self.write("- host\n- instance\n")
        with self.assertRaises(ConfigurationError):
            load_settings(self.path, environ={})

    def test_invalid_yaml(self):
        self.write("host: [unclosed\n")
        with self.assertRaises(ConfigurationError) as ctx:
            load_settings(self.path, environ={})

        error = ctx.exception
        self.assertIsInstance(error.cause, yaml.YAMLError)
        self.assertEqual(error.error_code, ErrorCodes.CONFIG_UNREADABLE)
        self.assertEqual(error.context['path'], str(self.path))
        self.assertEqual(error.context['category'], 'CONFIGURATION')

    def test_invalid_number(self):
        self.write("instance: first\n")
        with self.assertRaises(ConfigurationError) as ctx:
            load_settings(self.path, environ={})
        self.assertEqual(ctx.exception.context['setting'], 'instance')

    def test_boolean_rejected_for_number(self):
        self.write("call_timeout: yes\n")
        with self.assertRaises(ConfigurationError):
            load_settings(self.path, environ={})

    def test_invalid_log_level(self):
        self.write("log_level: chatty\n")
        with self.assertRaises(ConfigurationError):
            load_settings(self.path, environ={})

    def test_invalid_environment_instance(self):
        with self.assertRaises(ConfigurationError):
            load_settings(environ={"PHD2_INSTANCE": "two"})


class TestToConnectionConfig(unittest.TestCase):

    def test_builds_config(self):
        config = ClientSettings(host="pi.local", instance=2, call_timeout=5.0).to_connection_config()
        self.assertEqual(config.host, "pi.local")
        self.assertEqual(config.port, 4401)
        self.assertEqual(config.call_timeout, 5.0)

    def test_invalid_settings_raise(self):
        with self.assertRaises(ConfigurationError):
            ClientSettings(instance=0).to_connection_config()


if __name__ == '__main__':
    unittest.main()
