"""
Config テスト: 環境変数と CLI 上書きによる設定読み込み
"""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest

from pagescript.config import (
    BrowserConfig,
    InterpreterConfig,
    _parse_bool,
    apply_overrides,
    load_browser_config_from_env,
    load_config_from_env,
)


class TestDefaults:
    def test_interpreter_defaults(self):
        config = InterpreterConfig()
        assert config.mode == "auto"
        assert config.log_host_calls is True
        assert config.max_call_depth == 100
        assert config.host_name == "page"

    def test_browser_defaults(self):
        config = BrowserConfig()
        assert config.headed is False
        assert (config.viewport_width, config.viewport_height) == (1280, 720)
        assert config.start_url is None


class TestParseBool:
    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes"])
    def test_truthy(self, value):
        assert _parse_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "0", "no", ""])
    def test_falsy(self, value):
        assert _parse_bool(value) is False


class TestLoadConfigFromEnv:
    """load_config_from_env() のテスト。"""

    def test_reads_all_variables(self):
        env = {
            "PAGESCRIPT_MODE": "fragment",
            "PAGESCRIPT_LOG_HOST_CALLS": "false",
            "PAGESCRIPT_MAX_CALL_DEPTH": "25",
            "PAGESCRIPT_HOST_NAME": "tab",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config_from_env()
        assert config == InterpreterConfig(mode="fragment", log_host_calls=False, max_call_depth=25, host_name="tab")

    def test_empty_environment_uses_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            assert load_config_from_env() == InterpreterConfig()

    @pytest.mark.parametrize(
        "key, value",
        [
            ("PAGESCRIPT_MODE", "turbo"),
            ("PAGESCRIPT_MAX_CALL_DEPTH", "deep"),
            ("PAGESCRIPT_MAX_CALL_DEPTH", "-3"),
            ("PAGESCRIPT_HOST_NAME", "not a name"),
        ],
    )
    def test_invalid_values_warn_and_keep_default(self, key, value, caplog):
        with patch.dict(os.environ, {key: value}, clear=True):
            with caplog.at_level(logging.WARNING, logger="pagescript.config"):
                config = load_config_from_env()
        assert config == InterpreterConfig()
        assert key in caplog.text


class TestLoadBrowserConfigFromEnv:
    def test_reads_variables(self):
        env = {
            "PAGESCRIPT_HEADED": "1",
            "PAGESCRIPT_VIEWPORT_WIDTH": "1920",
            "PAGESCRIPT_VIEWPORT_HEIGHT": "1080",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_browser_config_from_env()
        assert config == BrowserConfig(headed=True, viewport_width=1920, viewport_height=1080)

    def test_invalid_viewport_ignored(self):
        with patch.dict(os.environ, {"PAGESCRIPT_VIEWPORT_WIDTH": "0"}, clear=True):
            assert load_browser_config_from_env().viewport_width == 1280


class TestApplyOverrides:
    def test_none_values_are_skipped(self):
        config = apply_overrides(BrowserConfig(headed=True), headed=None, start_url="https://example.com")
        assert config.headed is True
        assert config.start_url == "https://example.com"

    def test_returns_same_object(self):
        config = InterpreterConfig()
        assert apply_overrides(config, mode="program") is config
        assert config.mode == "program"

    def test_unknown_name_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="pagescript.config"):
            config = apply_overrides(InterpreterConfig(), colour="blue")
        assert not hasattr(config, "colour")
        assert "colour" in caplog.text
