import pytest
from pydantic import ValidationError

from streamgrab.exceptions import ConfigurationError
from streamgrab.models.config import EngineConfig
from streamgrab.storage.config_manager import ConfigManager


def test_defaults():
    config = EngineConfig()

    assert config.concurrency == 3
    assert config.failure_budget == 5
    assert config.max_track_duration == 7200
    assert config.preferred_quality == "highest"


@pytest.mark.parametrize(
    "field, value",
    [
        ("concurrency", 0),
        ("concurrency", 33),
        ("failure_budget", -1),
        ("max_track_duration", 10),
        ("preferred_quality", "best"),
    ],
)
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        EngineConfig(**{field: value})


def test_connect_timeout_cannot_exceed_read_timeout():
    with pytest.raises(ValidationError):
        EngineConfig(connect_timeout=30, read_timeout=10)


def test_blacklisted_domains_are_normalized():
    config = EngineConfig(blacklisted_domains=[" Ads.Example ", "", "cdn.bad"])

    assert config.blacklisted_domains == ["ads.example", "cdn.bad"]


def test_missing_file_uses_defaults(tmp_path):
    config = ConfigManager(tmp_path / "config.ini").load_config()

    assert config.concurrency == 3
    assert config.config_path == str(tmp_path)


def test_saved_config_round_trips(tmp_path):
    path = tmp_path / "streamgrab" / "config.ini"
    manager = ConfigManager(path)

    manager.save_new_config(
        {"output_dir": "/media", "blacklisted_domains": ["ads.example", "x.example"]}
    )
    config = ConfigManager(path).load_config()

    assert config.output_dir == "/media"
    assert config.blacklisted_domains == ["ads.example", "x.example"]
    assert config.concurrency == 3


def test_cli_options_override_file_and_none_is_ignored(tmp_path):
    path = tmp_path / "config.ini"
    ConfigManager(path).save_new_config({"concurrency": 4, "output_dir": "/media"})

    config = ConfigManager(path).load_config(
        {"concurrency": 8, "output_dir": None}
    )

    assert config.concurrency == 8
    assert config.output_dir == "/media"


def test_missing_keys_are_migrated(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nconcurrency = 6\n", encoding="utf-8")

    config = ConfigManager(path).load_config()

    assert config.concurrency == 6
    text = path.read_text(encoding="utf-8")
    assert "failure_budget = 5" in text
    assert "min_size = 102400" in text


def test_unparsable_value_is_a_configuration_error(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nconcurrency = many\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()


def test_invalid_value_is_a_configuration_error(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nconcurrency = 99\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()
