import os
from unittest import mock

import pytest

from drynn.dotenv import load_dotfiles

NAMES = ("DRYNN_DOTENV_A", "DRYNN_DOTENV_B")


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with mock.patch.dict(os.environ):
        for name in NAMES:
            os.environ.pop(name, None)
        yield tmp_path


def test_earlier_files_take_priority(workdir):
    (workdir / ".env.development.local").write_text("DRYNN_DOTENV_A=local\n")
    (workdir / ".env").write_text("DRYNN_DOTENV_A=base\nDRYNN_DOTENV_B=base\n")

    result = load_dotfiles("development")

    assert result is None
    assert os.environ["DRYNN_DOTENV_A"] == "local"
    assert os.environ["DRYNN_DOTENV_B"] == "base"


def test_env_local_beats_env_specific_file(workdir):
    (workdir / ".env.local").write_text("DRYNN_DOTENV_A=local\n")
    (workdir / ".env.development").write_text("DRYNN_DOTENV_A=development\n")

    result = load_dotfiles("development")

    assert result is None
    assert os.environ["DRYNN_DOTENV_A"] == "local"


def test_test_environment_skips_env_local(workdir):
    (workdir / ".env.local").write_text("DRYNN_DOTENV_A=local\n")
    (workdir / ".env.test").write_text("DRYNN_DOTENV_A=test\n")

    result = load_dotfiles("test")

    assert result is None
    assert os.environ["DRYNN_DOTENV_A"] == "test"


def test_existing_environment_is_not_overridden(workdir):
    os.environ["DRYNN_DOTENV_A"] = "process"
    (workdir / ".env").write_text("DRYNN_DOTENV_A=file\n")

    result = load_dotfiles("production")

    assert result is None
    assert os.environ["DRYNN_DOTENV_A"] == "process"


def test_directories_are_skipped(workdir):
    (workdir / ".env").mkdir()
    (workdir / ".env.production").write_text("DRYNN_DOTENV_B=prod\n")

    result = load_dotfiles("production")

    assert result is None
    assert os.environ["DRYNN_DOTENV_B"] == "prod"


def test_no_files_leaves_environment_unchanged(workdir):
    result = load_dotfiles("development")

    assert result is None
    assert "DRYNN_DOTENV_A" not in os.environ
    assert "DRYNN_DOTENV_B" not in os.environ


def test_missing_environment_rejected(workdir):
    with pytest.raises(ValueError, match="missing environment"):
        load_dotfiles("")


def test_unknown_environment_rejected(workdir):
    with pytest.raises(ValueError, match="unknown environment"):
        load_dotfiles("staging")