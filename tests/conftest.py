"""Pytest fixtures shared across all test modules."""

import json
from pathlib import Path

import pytest

from cellpad.config import Settings, get_settings
from cellpad.kernel import CommandResult, ExecutionEngine
from cellpad.session import SessionRegistry


class FakeRunner:
    """
    Stands in for CommandRunner.

    ``responses`` are consumed one per run: a CommandResult is returned,
    an exception is raised, and a callable is called with the staged
    program text and must return a CommandResult.
    """

    def __init__(self):
        self.responses = []
        self.calls = []
        self.programs = []

    async def run(self, argv):
        self.calls.append(list(argv))
        program = Path(argv[-1]).read_text(encoding="utf-8")
        self.programs.append(program)
        response = self.responses.pop(0) if self.responses else CommandResult(output="", returncode=0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(program)
        return response


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    staging = tmp_path / "staging"
    staging.mkdir()
    return Settings(interpreters={"python": ["python3"]}, temp_dir=str(staging))


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def engine(fake_runner, settings):
    return ExecutionEngine(runner=fake_runner, settings=settings)


@pytest.fixture
def registry(engine):
    return SessionRegistry(engine=engine)


@pytest.fixture
def sample_nb_dict():
    return {
        "cells": [
            {
                "cell_type": "markdown",
                "id": "intro",
                "metadata": {"tags": ["header"]},
                "source": ["# Title\n", "\n", "Some text."],
            },
            {
                "cell_type": "code",
                "execution_count": 3,
                "id": "code-1",
                "metadata": {"collapsed": False},
                "outputs": [
                    {"name": "stdout", "output_type": "stream", "text": ["hello\n", "world\n"]},
                    {
                        "data": {"text/plain": ["42"]},
                        "execution_count": 3,
                        "metadata": {},
                        "output_type": "execute_result",
                    },
                ],
                "source": "print('hello')\nprint('world')\n",
            },
            {
                "cell_type": "raw",
                "metadata": {},
                "source": [],
            },
        ],
        "metadata": {
            "kernelspec": {"display_name": "Python 3", "language": "python", "name": "python3"},
            "custom": {"b": 2, "a": 1},
        },
        "nbformat": 4,
        "nbformat_minor": 4,
    }


@pytest.fixture
def sample_nb_path(tmp_path, sample_nb_dict):
    path = tmp_path / "sample.ipynb"
    path.write_text(json.dumps(sample_nb_dict), encoding="utf-8")
    return path


@pytest.fixture
def web_app(registry, fake_runner):
    """Flask test client over a registry backed by the fake runner."""
    from cellpad.web import create_app
    app = create_app(registry)
    app.config["TESTING"] = True
    return app.test_client(), registry, fake_runner
