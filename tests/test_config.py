"""
Tests for config loading and validation in `polybrain.core.configs`.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from polybrain.core.configs import (
    DEFAULT_HTTP_PORT,
    DEFAULT_TRUNCATE_LIMIT,
    is_debug_enabled,
    is_server_disabled,
    load_config,
    load_environment,
    parse_config,
    resolve_env_refs,
)
from polybrain.core.errors import ConfigError

YAML_CONFIG = """\
httpPort: 40123
truncateLimit: 100
logLevel: debug
models:
  - id: gpt
    modelName: openai/gpt-4o
    baseUrl: https://openrouter.ai/api/v1
    apiKey: ${OPENROUTER_KEY}
    provider: openrouter
  - id: local
    modelName: qwen
    baseUrl: http://localhost:1234/v1
    apiKey: none
"""


class TestLoadConfig(unittest.TestCase):
    """Test cases for configuration loading."""

    def setUp(self):
        """Set up isolated cwd and home directories."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.cwd = self.temp_dir / "project"
        self.home = self.temp_dir / "home"
        self.cwd.mkdir()
        self.home.mkdir()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _load(self, env):
        return load_config(env=env, cwd=self.cwd, home=self.home)

    def test_simple_env_config(self):
        config = self._load({
            "POLYBRAIN_BASE_URL": "https://api.example.com/v1",
            "POLYBRAIN_API_KEY": "key",
            "POLYBRAIN_MODEL_NAME": "gpt-4o-mini",
        })

        self.assertEqual(len(config.models), 1)
        model = config.default_model
        self.assertEqual(model.id, "gpt-4o-mini")
        self.assertEqual(model.model_name, "gpt-4o-mini")
        self.assertEqual(config.http_port, DEFAULT_HTTP_PORT)
        self.assertEqual(config.truncate_limit, DEFAULT_TRUNCATE_LIMIT)
        self.assertEqual(config.log_level, "info")

    def test_simple_env_config_overrides(self):
        config = self._load({
            "POLYBRAIN_BASE_URL": "https://api.example.com/v1",
            "POLYBRAIN_API_KEY": "key",
            "POLYBRAIN_MODEL_NAME": "m",
            "POLYBRAIN_HTTP_PORT": "40000",
            "POLYBRAIN_TRUNCATE_LIMIT": "20",
            "POLYBRAIN_LOG_LEVEL": "WARN",
        })
        self.assertEqual(config.http_port, 40000)
        self.assertEqual(config.truncate_limit, 20)
        self.assertEqual(config.log_level, "warn")

    def test_simple_env_config_takes_precedence_over_yaml(self):
        (self.cwd / ".polybrain.yaml").write_text(YAML_CONFIG)
        config = self._load({
            "POLYBRAIN_BASE_URL": "https://api.example.com/v1",
            "POLYBRAIN_API_KEY": "key",
            "POLYBRAIN_MODEL_NAME": "m",
        })
        self.assertEqual(config.source, "environment")

    def test_yaml_config_in_cwd(self):
        (self.cwd / ".polybrain.yaml").write_text(YAML_CONFIG)
        config = self._load({"OPENROUTER_KEY": "sk-or"})

        self.assertEqual(config.http_port, 40123)
        self.assertEqual(config.truncate_limit, 100)
        self.assertEqual(config.log_level, "debug")
        self.assertEqual([m.id for m in config.models], ["gpt", "local"])
        self.assertEqual(config.get_model("gpt").api_key, "sk-or")
        self.assertEqual(config.get_model("gpt").provider, "openrouter")
        self.assertIsNone(config.get_model("local").provider)
        self.assertIsNone(config.get_model("missing"))

    def test_yaml_config_in_home(self):
        (self.home / ".polybrain.yaml").write_text(YAML_CONFIG)
        config = self._load({"OPENROUTER_KEY": "sk-or"})
        self.assertEqual(config.source, str(self.home / ".polybrain.yaml"))

    def test_config_path_env_wins(self):
        custom = self.temp_dir / "custom.yaml"
        custom.write_text(YAML_CONFIG.replace("40123", "40999"))
        (self.cwd / ".polybrain.yaml").write_text(YAML_CONFIG)

        config = self._load({"OPENROUTER_KEY": "x", "POLYBRAIN_CONFIG_PATH": str(custom)})
        self.assertEqual(config.http_port, 40999)

    def test_missing_env_reference_raises(self):
        (self.cwd / ".polybrain.yaml").write_text(YAML_CONFIG)
        with self.assertRaises(ConfigError) as context:
            self._load({})
        self.assertIn("OPENROUTER_KEY", str(context.exception))

    def test_invalid_yaml_raises(self):
        (self.cwd / ".polybrain.yaml").write_text("models: [unclosed")
        with self.assertRaises(ConfigError):
            self._load({})

    def test_no_config_raises(self):
        with self.assertRaises(ConfigError) as context:
            self._load({})
        self.assertIn("No configuration found", str(context.exception))

    def test_missing_config_path_file_raises(self):
        with self.assertRaises(ConfigError):
            self._load({"POLYBRAIN_CONFIG_PATH": str(self.temp_dir / "nope.yaml")})


class TestParseConfig(unittest.TestCase):
    """Validation of parsed config documents."""

    def _model(self, **overrides):
        model = {"id": "a", "modelName": "m", "baseUrl": "http://x/v1", "apiKey": "k"}
        model.update(overrides)
        return model

    def test_defaults_applied(self):
        config = parse_config({"models": [self._model()]})
        self.assertEqual(config.http_port, DEFAULT_HTTP_PORT)
        self.assertEqual(config.truncate_limit, DEFAULT_TRUNCATE_LIMIT)

    def test_empty_models_raises(self):
        with self.assertRaises(ConfigError):
            parse_config({"models": []})
        with self.assertRaises(ConfigError):
            parse_config({})

    def test_missing_model_fields_raise(self):
        for field in ("id", "modelName", "baseUrl", "apiKey"):
            model = self._model()
            del model[field]
            with self.assertRaises(ConfigError) as context:
                parse_config({"models": [model]})
            self.assertIn(field, str(context.exception))

    def test_invalid_provider_raises(self):
        with self.assertRaises(ConfigError):
            parse_config({"models": [self._model(provider="anthropic")]})

    def test_duplicate_model_ids_raise(self):
        with self.assertRaises(ConfigError):
            parse_config({"models": [self._model(), self._model()]})

    def test_invalid_settings_raise(self):
        invalid = [
            {"httpPort": "abc"},
            {"httpPort": 70000},
            {"truncateLimit": -1},
            {"logLevel": "verbose"},
        ]
        for settings in invalid:
            with self.assertRaises(ConfigError, msg=str(settings)):
                parse_config({"models": [self._model()], **settings})

    def test_truncate_limit_zero_allowed(self):
        config = parse_config({"models": [self._model()], "truncateLimit": 0})
        self.assertEqual(config.truncate_limit, 0)

    def test_public_info_hides_api_key(self):
        config = parse_config({"models": [self._model()]})
        info = config.default_model.public_info()
        self.assertEqual(info, {"id": "a", "modelName": "m", "baseUrl": "http://x/v1"})


class TestEnvironmentHelpers(unittest.TestCase):
    """Env var resolution and flags."""

    def test_resolve_env_refs_nested(self):
        raw = {"a": ["${X}-suffix", {"b": "${Y}"}], "n": 3}
        resolved = resolve_env_refs(raw, {"X": "one", "Y": "two"})
        self.assertEqual(resolved, {"a": ["one-suffix", {"b": "two"}], "n": 3})

    def test_load_environment_reads_dotenv(self):
        temp_dir = Path(tempfile.mkdtemp())
        try:
            (temp_dir / ".env").write_text("POLYBRAIN_TEST_DOTENV_ONLY=from-dotenv\nPATH=ignored\n")
            env = load_environment(temp_dir)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        self.assertEqual(env["POLYBRAIN_TEST_DOTENV_ONLY"], "from-dotenv")
        # Real environment wins over .env
        self.assertEqual(env["PATH"], os.environ["PATH"])

    def test_boolean_flags(self):
        self.assertTrue(is_debug_enabled({"POLYBRAIN_DEBUG": "true"}))
        self.assertFalse(is_debug_enabled({"POLYBRAIN_DEBUG": "no"}))
        self.assertFalse(is_debug_enabled({}))
        self.assertTrue(is_server_disabled({"POLYBRAIN_NO_SERVER": "1"}))

        with patch.dict(os.environ, {"POLYBRAIN_DEBUG": "yes"}):
            self.assertTrue(is_debug_enabled())


if __name__ == "__main__":
    unittest.main()
