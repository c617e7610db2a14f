"""
Tests for environment-driven configuration.
"""
import os

import pytest

from jobdance.config import MAX_QUESTIONS, get_config

ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "JOBDANCE_MAX_QUESTIONS", "JOBDANCE_WORKDIR",
            "JOBDANCE_PROFILE", "JOBDANCE_LOG_LEVEL")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "demo-project")


class TestGetConfig:

    def test_defaults(self):
        config = get_config()

        assert config.google_cloud_project == "demo-project"
        assert config.max_questions == MAX_QUESTIONS
        assert config.validate_answers is False

    def test_placeholder_project_rejected(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT")

        with pytest.raises(ValueError, match="GOOGLE_CLOUD_PROJECT"):
            get_config()

    def test_max_questions_from_env(self, monkeypatch):
        monkeypatch.setenv("JOBDANCE_MAX_QUESTIONS", "3")

        assert get_config().max_questions == 3

    @pytest.mark.parametrize("value", ["three", "0", "-2"])
    def test_bad_max_questions(self, monkeypatch, value):
        monkeypatch.setenv("JOBDANCE_MAX_QUESTIONS", value)

        with pytest.raises(ValueError, match="JOBDANCE_MAX_QUESTIONS"):
            get_config()

    def test_workdir_drives_paths(self, monkeypatch, tmp_path):
        monkeypatch.setenv("JOBDANCE_WORKDIR", str(tmp_path))

        config = get_config()

        assert config.sessions_dir == os.path.join(str(tmp_path), "sessions")
        assert config.log_file == os.path.join(str(tmp_path), "interview.log")

    def test_profile_and_log_level(self, monkeypatch):
        monkeypatch.setenv("JOBDANCE_PROFILE", "/tmp/profile.json")
        monkeypatch.setenv("JOBDANCE_LOG_LEVEL", "DEBUG")

        config = get_config()

        assert config.profile_path == "/tmp/profile.json"
        assert config.log_level == "DEBUG"
