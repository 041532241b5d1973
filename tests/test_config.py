import json

import pytest

from ixfeed.config import DEFAULTS, load_config, validate_config
from ixfeed.errors import ConfigError


def _write(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return str(path)


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(str(tmp_path / "nope.json")) == DEFAULTS


def test_file_values_override_defaults(tmp_path):
    config = load_config(_write(tmp_path, {"max_batch_size": 500, "download_delay": 0.5}))
    assert config["max_batch_size"] == 500
    assert config["download_delay"] == 0.5
    assert config["timeout"] == DEFAULTS["timeout"]


def test_invalid_json_raises_config_error(tmp_path):
    with pytest.raises(ConfigError, match="Error decoding JSON"):
        load_config(_write(tmp_path, "{not json"))


@pytest.mark.parametrize("data", [{"max_batch_size": 0}, {"timeout": "30"}, {"log_level": "LOUD"}, []])
def test_invalid_values_raise_config_error(tmp_path, data):
    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_config(_write(tmp_path, data))


def test_validate_config():
    assert validate_config({})
    assert validate_config({"unknown_key": 1})
    assert not validate_config([])
    assert not validate_config({"db_path": ""})
    assert not validate_config({"max_retries": -1})
