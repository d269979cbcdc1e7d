import pytest

from common.config import DEFAULT_ENDPOINT, DEFAULT_RECONNECT_DELAY, ChatConfig, load_config
from common.errors import ConfigError
from common.message import DEFAULT_USERNAME


def test_defaults_without_file_or_env(tmp_path):
    config = load_config(tmp_path / "missing.yaml", env={})

    assert config == ChatConfig()
    assert config.endpoint == DEFAULT_ENDPOINT
    assert config.username == DEFAULT_USERNAME
    assert config.reconnect_delay == DEFAULT_RECONNECT_DELAY


def test_yaml_values_are_loaded(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "endpoint: ws://127.0.0.1:9000/ws\n"
        "username: Alice\n"
        "reconnect_delay: 2\n"
        "ping_interval: null\n"
    )

    config = load_config(path, env={})

    assert config.endpoint == "ws://127.0.0.1:9000/ws"
    assert config.username == "Alice"
    assert config.reconnect_delay == 2.0
    assert config.ping_interval is None


def test_env_overrides_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("username: Alice\nreconnect_delay: 2\n")

    config = load_config(path, env={"WSCHAT_USERNAME": "Bob", "WSCHAT_RECONNECT_DELAY": "0.5"})

    assert config.username == "Bob"
    assert config.reconnect_delay == 0.5


def test_unknown_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text("username: Alice\nroom: lobby\n")

    config = load_config(path, env={})

    assert config.username == "Alice"
    assert "room" in caplog.text


@pytest.mark.parametrize("content", ["- just\n- a list\n", "username: [unclosed\n"])
def test_unusable_file_falls_back_to_defaults(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content)

    assert load_config(path, env={}) == ChatConfig()


def test_non_numeric_delay_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml", env={"WSCHAT_RECONNECT_DELAY": "soon"})


def test_negative_delay_is_rejected():
    with pytest.raises(ConfigError):
        ChatConfig().merged(reconnect_delay=-1)


def test_merged_skips_none_and_defaults_blank_username():
    config = ChatConfig(username="Alice").merged(endpoint=None, username="  ")

    assert config.endpoint == DEFAULT_ENDPOINT
    assert config.username == DEFAULT_USERNAME
