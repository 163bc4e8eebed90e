"""Tests of the configuration files"""

# pyright: basic

import logging
import os
import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from tutorchat.config.config import (
    ConfigSettings,
    LanguageModelSettings,
    LocalStorage,
    ServerSettings,
    create_default_config_file,
    load_settings,
)
from tutorchat.config.appchat import (
    ChatSettings,
    create_default_config_file as create_default_chat_config_file,
    load_settings as load_chat_settings,
)
from tutorchat.config.utils import (
    format_pydantic_error_message,
    serialize_settings,
)

test_content = '''
storage = ':memory:'

[database]
collection_name = 'test_chunks'

[major]
model = 'Debug/debug'

[transcripts]
storage = ':memory:'
'''


class TestConfigSettings(unittest.TestCase):

    def setUp(self):
        self.tempdir = tempfile.TemporaryDirectory()
        self.folder = Path(self.tempdir.name)

    def tearDown(self):
        self.tempdir.cleanup()

    def test_defaults(self):
        settings = ConfigSettings()
        self.assertEqual(settings.database.collection_name, "chunks")
        self.assertIsInstance(settings.storage, LocalStorage)
        self.assertEqual(settings.major.get_provider(), "OpenAI")

    def test_load_settings(self):
        file = self.folder / "config.toml"
        file.write_text(test_content, encoding="utf-8")

        settings = load_settings(file_name=file)
        self.assertIsNotNone(settings)
        self.assertEqual(settings.storage, ':memory:')
        self.assertEqual(settings.database.collection_name, "test_chunks")
        self.assertEqual(settings.major.get_model_name(), "debug")
        self.assertEqual(settings.transcripts.storage, ':memory:')

    def test_load_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_settings(file_name=self.folder / "none.toml")

    def test_invalid_settings_logged(self):
        file = self.folder / "config.toml"
        file.write_text("[major]\nmodel = 'Unknown/model'\n")

        logger = logging.getLogger("test_config")
        with self.assertLogs(logger, level="ERROR"):
            settings = load_settings(file_name=file, logger=logger)
        self.assertIsNone(settings)

    def test_invalid_settings_raised(self):
        file = self.folder / "config.toml"
        file.write_text("[major]\nmodel = 'no-provider'\n")
        with self.assertRaises(ValidationError):
            load_settings(file_name=file)

    def test_default_file_roundtrip(self):
        file = self.folder / "config.toml"
        create_default_config_file(file)
        self.assertTrue(file.exists())

        settings = load_settings(file_name=file)
        self.assertEqual(
            serialize_settings(settings),
            serialize_settings(ConfigSettings()),
        )

    def test_settings_frozen(self):
        settings = ConfigSettings()
        with self.assertRaises(ValidationError):
            settings.storage = ':memory:'  # type: ignore

    def test_env_override(self):
        os.environ["TUTORCHAT_DATABASE__COLLECTION_NAME"] = "from_env"
        try:
            settings = ConfigSettings()
        finally:
            del os.environ["TUTORCHAT_DATABASE__COLLECTION_NAME"]
        self.assertEqual(settings.database.collection_name, "from_env")


class TestServerSettings(unittest.TestCase):

    def test_defaults(self):
        server = ServerSettings()
        self.assertEqual((server.host, server.port), ("localhost", 61543))

    def test_unknown_field_refused(self):
        with self.assertRaises(ValidationError):
            ServerSettings(mode="local")  # type: ignore

    def test_invalid_port(self):
        with self.assertRaises(ValidationError):
            ServerSettings(port=80)


class TestLanguageModelSettings(unittest.TestCase):

    def test_model_name(self):
        settings = LanguageModelSettings(model="OpenAI/gpt-4o")
        self.assertEqual(settings.get_provider(), "OpenAI")
        self.assertEqual(settings.get_model_name(), "gpt-4o")

    def test_invalid_provider(self):
        with self.assertRaises(ValidationError) as cm:
            LanguageModelSettings(model="Nobody/model")
        self.assertIn("provider", format_pydantic_error_message(cm.exception))

    def test_missing_model_name(self):
        with self.assertRaises(ValidationError):
            LanguageModelSettings(model="OpenAI/")


class TestChatSettings(unittest.TestCase):

    def test_defaults(self):
        settings = ChatSettings()
        self.assertEqual(settings.top_k, 15)
        self.assertEqual(settings.history_window, 10)
        self.assertEqual(settings.chat_event, "chat response")
        for placeholder in ("{topic}", "{history}", "{input}"):
            self.assertIn(placeholder, settings.TUTOR_TEMPLATE)
        for placeholder in ("{context}", "{question}"):
            self.assertIn(placeholder, settings.QA_TEMPLATE)

    def test_default_file_roundtrip(self):
        with tempfile.TemporaryDirectory() as tempdir:
            file = Path(tempdir) / "appchat.toml"
            create_default_chat_config_file(file)
            settings = load_chat_settings(file_name=file)

        self.assertEqual(settings.TUTOR_TEMPLATE, ChatSettings().TUTOR_TEMPLATE)

    def test_file_overrides(self):
        with tempfile.TemporaryDirectory() as tempdir:
            file = Path(tempdir) / "appchat.toml"
            file.write_text("top_k = 5\n", encoding="utf-8")
            settings = load_chat_settings(file_name=file)
        self.assertEqual(settings.top_k, 5)


if __name__ == "__main__":
    unittest.main()
