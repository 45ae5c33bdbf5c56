"""
Tests for the config module.

Tests configuration loading, validation, and generation functionality
including YAML parsing, error handling, and file operations.
"""

import pytest
import yaml

from wa_group_sync.config.generator import generate_default_config, save_config_file
from wa_group_sync.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from wa_group_sync.config.sync_config import (
    DEFAULT_SYNC_COOLDOWN,
    SyncConfig,
    SyncConfigError,
    load_config,
)
from wa_group_sync.sync.fetcher import DEFAULT_PASS_PLAN, PassConfig


@pytest.fixture
def loader(tmp_path):
    return ConfigLoader(config_dir=tmp_path)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


class TestConfigLoaderInitialization:
    """Tests for ConfigLoader initialization."""

    def test_explicit_dir(self, tmp_path):
        loader = ConfigLoader(config_dir=tmp_path)

        assert loader.config_dir == tmp_path.resolve()
        assert loader.config_file == DEFAULT_CONFIG_FILE

    def test_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WA_GROUP_SYNC_CONFIG_DIR", str(tmp_path))

        assert ConfigLoader().config_dir == tmp_path.resolve()


class TestConfigLoading:
    """Tests for configuration file loading."""

    def test_missing_file_returns_empty_dict(self, loader):
        assert loader.load() == {}

    def test_load_valid_yaml(self, loader, tmp_path):
        _write(tmp_path / "config.yaml", "verbose: true\nprotection_threshold: 0.6\n")

        assert loader.load() == {"verbose": True, "protection_threshold": 0.6}

    def test_comments_only_returns_empty_dict(self, loader, tmp_path):
        path = _write(tmp_path / "config.yaml", "# nothing here\n")

        assert loader.load_from_file(path) == {}

    def test_invalid_yaml(self, loader, tmp_path):
        path = _write(tmp_path / "config.yaml", "passes: [unclosed\n")

        with pytest.raises(ConfigError, match="parse"):
            loader.load_from_file(path)

    def test_non_dict_yaml(self, loader, tmp_path):
        path = _write(tmp_path / "config.yaml", "- a\n- b\n")

        with pytest.raises(ConfigError, match="dictionary"):
            loader.load_from_file(path)


class TestConfigValidation:
    """Tests for ConfigLoader.validate()."""

    def test_empty_config(self, loader):
        loader.validate({})

    def test_unknown_keys_ignored(self, loader):
        loader.validate({"favorite_color": "green"})

    @pytest.mark.parametrize(
        "config",
        [
            {"verbose": "yes"},
            {"gateway_timeout": "30"},
            {"api_max_retries": 2.5},
            {"cache_max_retries": True},
            {"passes": {"batch_size": 50}},
            {"country_code": 972},
        ],
    )
    def test_wrong_types(self, loader, config):
        with pytest.raises(ConfigError, match="Invalid type"):
            loader.validate(config)

    @pytest.mark.parametrize("threshold", [0, 0.0, -0.5, 1.5])
    def test_threshold_range(self, loader, threshold):
        with pytest.raises(ConfigError, match="protection_threshold"):
            loader.validate({"protection_threshold": threshold})

    def test_threshold_one_allowed(self, loader):
        loader.validate({"protection_threshold": 1})

    def test_country_code_digits(self, loader):
        with pytest.raises(ConfigError, match="digits"):
            loader.validate({"country_code": "+972"})

    @pytest.mark.parametrize(
        "key", ["gateway_timeout", "cache_ttl_seconds", "api_initial_retry_delay"]
    )
    def test_positive_values(self, loader, key):
        with pytest.raises(ConfigError, match=key):
            loader.validate({key: 0})

    def test_negative_backoff(self, loader):
        with pytest.raises(ConfigError, match="network_backoff_seconds"):
            loader.validate({"network_backoff_seconds": -1})

    def test_valid_passes(self, loader):
        loader.validate(
            {
                "passes": [
                    {"batch_size": 50, "max_calls": 12, "delay_seconds": 2.2},
                    {"batch_size": 100, "max_calls": 8, "startup_delay_seconds": 5},
                ]
            }
        )

    @pytest.mark.parametrize(
        "passes,message",
        [
            ([], "at least one"),
            (["fast"], "dictionary"),
            ([{"batch_size": 50}], "missing 'max_calls'"),
            ([{"batch_size": 50, "max_calls": 2, "speed": 1}], "unknown key"),
            ([{"batch_size": 0, "max_calls": 2}], "must be >= 1"),
            ([{"batch_size": 50, "max_calls": 2, "delay_seconds": -1}], ">= 0"),
        ],
    )
    def test_invalid_passes(self, loader, passes, message):
        with pytest.raises(ConfigError, match=message):
            loader.validate({"passes": passes})

    def test_load_and_validate(self, loader, tmp_path):
        _write(tmp_path / "config.yaml", "sync_cooldown_seconds: -5\n")

        with pytest.raises(ConfigError):
            loader.load_and_validate()


class TestSyncConfig:
    """Tests for the SyncConfig dataclass."""

    def test_defaults(self):
        config = SyncConfig()

        assert config.passes == list(DEFAULT_PASS_PLAN)
        assert config.protection_threshold == 0.5
        assert config.sync_cooldown_seconds == DEFAULT_SYNC_COOLDOWN == 60.0
        assert config.cache_ttl_seconds == 300.0
        assert config.country_code == "972"
        assert config.fetch_group_details is True

    def test_from_none(self):
        assert SyncConfig.from_dict(None) == SyncConfig()

    def test_from_dict(self):
        config = SyncConfig.from_dict(
            {
                "protection_threshold": 0.7,
                "verbose": True,
                "passes": [{"batch_size": 25, "max_calls": 2}],
            }
        )

        assert config.protection_threshold == 0.7
        assert config.passes == [
            PassConfig(batch_size=25, delay_seconds=0.0, max_calls=2)
        ]

    def test_from_dict_rejects_non_dict(self):
        with pytest.raises(SyncConfigError):
            SyncConfig.from_dict(["a"])

    def test_from_dict_bad_pass(self):
        with pytest.raises(SyncConfigError, match="missing"):
            SyncConfig.from_dict({"passes": [{"batch_size": 25}]})

    def test_from_dict_bad_threshold(self):
        with pytest.raises(SyncConfigError, match="protection_threshold"):
            SyncConfig.from_dict({"protection_threshold": 2})

    def test_sync_config_error_is_config_error(self):
        assert issubclass(SyncConfigError, ConfigError)

    def test_to_dict_round_trip(self):
        config = SyncConfig(sync_cooldown_seconds=5.0)

        assert SyncConfig.from_dict(config.to_dict()) == config

    def test_repr(self):
        assert "passes=4" in repr(SyncConfig())


class TestLoadConfig:
    """Tests for load_config()."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path) == SyncConfig()

    def test_reads_config_dir(self, tmp_path):
        _write(
            tmp_path / "config.yaml",
            "country_code: '1'\nfetch_group_details: false\n",
        )

        config = load_config(tmp_path)

        assert config.country_code == "1"
        assert config.fetch_group_details is False

    def test_invalid_file_raises(self, tmp_path):
        _write(tmp_path / "config.yaml", "protection_threshold: high\n")

        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_custom_file_name(self, tmp_path):
        _write(tmp_path / "alt.yaml", "sync_cooldown_seconds: 0\n")

        assert load_config(tmp_path, "alt.yaml").sync_cooldown_seconds == 0


class TestGenerator:
    """Tests for the default config generator."""

    def test_generated_yaml_loads_as_defaults(self, tmp_path):
        # Every option is commented out
        assert yaml.safe_load(generate_default_config()) is None

    def test_uncommented_options_validate(self, loader):
        lines = [
            line[2:]
            for line in generate_default_config().splitlines()
            if line.startswith("# ")
            and ":" in line
            and not line.startswith("# Default")
            and line[2:3].islower()
            and not line[2:].startswith(("-", " "))
        ]
        options = {}
        for line in lines:
            try:
                parsed = yaml.safe_load(line)
            except yaml.YAMLError:
                continue
            if isinstance(parsed, dict):
                options.update(
                    {key: value for key, value in parsed.items() if value is not None}
                )

        assert "protection_threshold" in options
        loader.validate(options)

    def test_save_creates_file(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"

        success, error = save_config_file(path)

        assert success and error is None
        assert path.read_text(encoding="utf-8") == generate_default_config()
        assert path.stat().st_mode & 0o777 == 0o600

    def test_save_refuses_overwrite(self, tmp_path):
        path = _write(tmp_path / "config.yaml", "verbose: true\n")

        success, error = save_config_file(path)

        assert not success
        assert "already exists" in error
        assert path.read_text(encoding="utf-8") == "verbose: true\n"

    def test_save_overwrite(self, tmp_path):
        path = _write(tmp_path / "config.yaml", "verbose: true\n")

        success, _ = save_config_file(path, overwrite=True)

        assert success
        assert "protection_threshold" in path.read_text(encoding="utf-8")
