"""Unit tests for settings loading."""

import pytest

from catalog_sync.config import Settings, load_settings, parse_delete_policy
from catalog_sync.diff import DeletePolicy
from catalog_sync.errors import ConfigurationError

ENV_NAMES = (
    "CATALOG_PART_DELETE_POLICY",
    "CATALOG_MAX_FILE_SIZE_MB",
    "CATALOG_HISTORY_RETENTION",
    "CATALOG_IMPORTED_BY",
)


@pytest.fixture
def env(monkeypatch):
    # setenv first so values load_dotenv writes are undone after the test
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def env_file(tmp_path):
    return tmp_path / ".env"


class TestDefaults:

    def test_settings_defaults(self):
        settings = Settings()
        assert settings.part_delete_policy == DeletePolicy.ABSENCE_IMPLIES_DELETE
        assert settings.max_file_size_mb == 50
        assert settings.max_file_size_bytes == 50 * 1024 * 1024
        assert settings.history_retention == 3

    def test_load_without_variables(self, env, env_file):
        assert load_settings(env_file) == Settings()


class TestLoadSettings:

    def test_environment_variables(self, env, env_file):
        env.setenv("CATALOG_PART_DELETE_POLICY", "Explicit_Only")
        env.setenv("CATALOG_MAX_FILE_SIZE_MB", "10")
        env.setenv("CATALOG_HISTORY_RETENTION", "5")
        env.setenv("CATALOG_IMPORTED_BY", "nightly-sync")

        settings = load_settings(env_file)

        assert settings.part_delete_policy == DeletePolicy.EXPLICIT_ONLY
        assert settings.max_file_size_mb == 10
        assert settings.history_retention == 5
        assert settings.imported_by == "nightly-sync"

    def test_env_file(self, env, env_file):
        env_file.write_text("CATALOG_HISTORY_RETENTION=7\n")

        assert load_settings(env_file).history_retention == 7

    def test_environment_beats_env_file(self, env, env_file):
        env_file.write_text("CATALOG_MAX_FILE_SIZE_MB=99\n")
        env.setenv("CATALOG_MAX_FILE_SIZE_MB", "20")

        assert load_settings(env_file).max_file_size_mb == 20

    @pytest.mark.parametrize("raw", ["ten", "0", "-1"])
    def test_bad_integers(self, env, env_file, raw):
        env.setenv("CATALOG_HISTORY_RETENTION", raw)
        with pytest.raises(ConfigurationError, match="CATALOG_HISTORY_RETENTION"):
            load_settings(env_file)

    def test_bad_policy(self, env, env_file):
        env.setenv("CATALOG_PART_DELETE_POLICY", "sometimes")
        with pytest.raises(ConfigurationError, match="sometimes"):
            load_settings(env_file)


class TestParseDeletePolicy:

    @pytest.mark.parametrize("name,expected", [
        ("absence", DeletePolicy.ABSENCE_IMPLIES_DELETE),
        (" ABSENCE_IMPLIES_DELETE ", DeletePolicy.ABSENCE_IMPLIES_DELETE),
        ("explicit", DeletePolicy.EXPLICIT_ONLY),
        (DeletePolicy.EXPLICIT_ONLY, DeletePolicy.EXPLICIT_ONLY),
    ])
    def test_names(self, name, expected):
        assert parse_delete_policy(name) == expected

    def test_configuration_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_delete_policy("never")
