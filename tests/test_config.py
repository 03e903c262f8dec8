import os
import tempfile
import textwrap
import unittest
from pathlib import Path
from unittest.mock import patch

from crosstalk.config import Activation, load_config, parse_config
from crosstalk.core.errors import ConfigurationError
from crosstalk.core.keybindings import MetaAction

CLEAN_ENV = {
    key: value
    for key, value in os.environ.items()
    if key
    not in (
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "ANTHROPIC_API_KEY",
        "OLLAMA_HOST",
        "CROSSTALK_CONFIG",
        "CROSSTALK_DEFAULT_MODEL",
        "VISUAL",
        "EDITOR",
    )
}


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        env = patch.dict(os.environ, CLEAN_ENV, clear=True)
        env.start()
        self.addCleanup(env.stop)

    def write(self, text):
        path = Path(self.tmp.name) / "config.yaml"
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    def test_full_file(self):
        path = self.write(
            """
            default_model: gpt-4o-mini
            editor: nvim
            system_prompt: Answer briefly.
            keybindings:
              c-q: null
              escape q: quit
            providers:
              openai:
                api_key: sk-file
                models: [gpt-4o-mini]
              ollama:
                activate: disabled
              anthropic:
                activate: enabled
                api_key: sk-ant
                max_tokens: 1024
            """
        )

        config = load_config(path)

        self.assertEqual(config.default_model, "gpt-4o-mini")
        self.assertEqual(config.editor, "nvim")
        self.assertEqual(config.system_prompt, "Answer briefly.")
        self.assertIsNone(config.keybindings.action_for("c-q"))
        self.assertEqual(config.keybindings.action_for("escape", "q"), MetaAction.QUIT)
        self.assertEqual(config.providers.openai.models, ["gpt-4o-mini"])
        self.assertIs(config.providers.ollama.activate, Activation.DISABLED)
        self.assertIs(config.providers.anthropic.activate, Activation.ENABLED)
        self.assertEqual(config.providers.anthropic.max_tokens, 1024)

    def test_environment_fills_gaps(self):
        path = self.write("providers:\n  openai:\n    api_key: sk-file\n")
        env = {
            "OPENAI_API_KEY": "sk-env",
            "ANTHROPIC_API_KEY": "sk-ant-env",
            "OLLAMA_HOST": "gpu-box:11434",
            "CROSSTALK_DEFAULT_MODEL": "llama3",
            "EDITOR": "vim",
        }
        with patch.dict(os.environ, env):
            config = load_config(path)

        self.assertEqual(config.providers.openai.api_key, "sk-file")
        self.assertEqual(config.providers.anthropic.api_key, "sk-ant-env")
        self.assertEqual(config.providers.ollama.host, "http://gpu-box:11434")
        self.assertEqual(config.default_model, "llama3")
        self.assertEqual(config.editor, "vim")

    def test_missing_explicit_path(self):
        with self.assertRaises(ConfigurationError):
            load_config(Path(self.tmp.name) / "absent.yaml")

    def test_missing_default_path_uses_defaults(self):
        with patch("crosstalk.config.default_config_path", return_value=Path(self.tmp.name) / "absent.yaml"):
            config = load_config()
        self.assertIsNone(config.default_model)
        self.assertIs(config.providers.openai.activate, Activation.AUTO)

    def test_config_path_from_environment(self):
        path = self.write("default_model: o3\n")
        with patch.dict(os.environ, {"CROSSTALK_CONFIG": str(path)}):
            self.assertEqual(load_config().default_model, "o3")

    def test_invalid_yaml(self):
        path = self.write("providers: [unclosed\n")
        with self.assertRaises(ConfigurationError):
            load_config(path)

    def test_top_level_must_be_mapping(self):
        path = self.write("- just\n- a list\n")
        with self.assertRaises(ConfigurationError):
            load_config(path)

    def test_empty_file(self):
        self.assertIsNone(load_config(self.write("")).default_model)


class TestParseConfig(unittest.TestCase):
    def test_invalid_values(self):
        cases = [
            {"providers": {"cohere": {}}},
            {"providers": {"openai": {"activate": "sometimes"}}},
            {"providers": {"openai": {"models": "gpt-4o"}}},
            {"providers": {"ollama": {"timeout": "fast"}}},
            {"providers": {"openai": []}},
            {"default_model": 42},
            {"keybindings": ["c-q"]},
            {"keybindings": {"c-q": "explode"}},
        ]
        for data in cases:
            with self.subTest(data=data):
                with self.assertRaises(ConfigurationError):
                    parse_config(data)

    def test_unknown_keys_warn(self):
        with self.assertLogs("crosstalk.config", level="WARNING") as logs:
            parse_config({"colour": "blue", "providers": {"openai": {"temperature": 0.2}}})
        self.assertEqual(len(logs.output), 2)
