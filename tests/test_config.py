"""Tests for environment-driven settings."""

import json
import logging

import pytest
from pydantic import ValidationError

from cellpad.config import Settings, get_settings
from cellpad.logging_config import configure_logging


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("CELLPAD_INTERPRETERS", "CELLPAD_EXECUTION_TIMEOUT", "CELLPAD_TEMP_DIR"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.interpreters == {"python": ["python3"]}
        assert settings.default_language == "python"
        assert settings.execution_timeout is None
        assert settings.temp_dir is None

    def test_interpreters_from_env(self, monkeypatch):
        monkeypatch.setenv("CELLPAD_INTERPRETERS", json.dumps({"python": ["/opt/py/bin/python", "-u"]}))
        assert Settings().interpreter_for("python") == ["/opt/py/bin/python", "-u"]

    def test_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("CELLPAD_EXECUTION_TIMEOUT", "2.5")
        assert Settings().execution_timeout == 2.5

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(execution_timeout=0)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestInterpreterFor:

    def test_missing_language_uses_default(self):
        settings = Settings(interpreters={"python": ["python3"]}, default_language="python")
        assert settings.interpreter_for(None) == ["python3"]

    def test_case_insensitive(self):
        assert Settings(interpreters={"python": ["python3"]}).interpreter_for("Python") == ["python3"]

    def test_unconfigured(self):
        assert Settings(interpreters={"python": ["python3"]}).interpreter_for("julia") is None

    def test_returns_a_copy(self):
        settings = Settings(interpreters={"python": ["python3"]})
        settings.interpreter_for("python").append("x")
        assert settings.interpreters["python"] == ["python3"]


class TestConfigureLogging:

    def test_string_level(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))
        configure_logging("debug")
        assert calls["level"] == logging.DEBUG

    def test_unknown_level_falls_back(self, monkeypatch):
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.update(kw))
        configure_logging("chatty")
        assert calls["level"] == logging.WARNING
