import json
import logging

import pytest

from demokit.config import (
    ChannelConfig,
    Config,
    ConfigError,
    PluginConfig,
    TeamConfig,
    UserConfig,
    load_config,
    save_config,
    validate_config,
)

PASSWORD = "password"


def _sample_dict():
    return {
        "environment": "local",
        "server": "http://localhost:8065",
        "admin_username": "sysadmin",
        "admin_password": PASSWORD,
        "default_team": "alpha",
        "users": [
            {
                "username": "alice",
                "email": "alice@example.com",
                "password": PASSWORD,
                "firstname": "Alice",
                "isSystemAdmin": True,
                "teams": ["alpha"],
            }
        ],
        "teams": {
            "alpha": {
                "name": "alpha",
                "displayName": "Alpha",
                "channels": [
                    {
                        "name": "ops",
                        "displayName": "Ops",
                        "type": "P",
                        "members": ["alice"],
                        "commands": ["/weather London"],
                    }
                ],
            }
        },
        "plugins": [
            {"name": "Playbooks", "github_repo": "owner/repo", "plugin-id": "playbooks"}
        ],
        "ldap": {"host": "openldap"},
    }


def _minimal(**kwargs):
    password = PASSWORD
    return Config(server="http://localhost:8065", admin_username="sysadmin",
                  admin_password=password, **kwargs)


def test_from_dict_reads_fields():
    config = Config.from_dict(_sample_dict())
    assert config.environment == "local"
    assert config.users[0].first_name == "Alice"
    assert config.users[0].is_system_admin is True
    assert config.teams["alpha"].channels[0].type == "P"
    assert config.plugins[0].repo == "owner/repo"
    assert config.plugins[0].plugin_id == "playbooks"
    assert config.ldap == {"host": "openldap"}


def test_round_trip_through_dict():
    config = Config.from_dict(_sample_dict())
    assert Config.from_dict(config.to_dict()) == config


def test_to_dict_omits_empty_optional_fields():
    out = _minimal().to_dict()
    assert "environment" not in out
    assert "users" not in out
    assert "teams" not in out
    assert out["admin_username"] == "sysadmin"


def test_from_dict_rejects_wrong_types():
    data = _sample_dict()
    data["server"] = 5
    with pytest.raises(ConfigError):
        Config.from_dict(data)


@pytest.mark.parametrize(
    "field_name, message",
    [
        ("server", "server URL is required in config"),
        ("admin_username", "admin_username is required in config"),
        ("admin_password", "admin_password is required in config"),
    ],
)
def test_validate_requires_admin_fields(field_name, message):
    config = _minimal()
    setattr(config, field_name, "")
    with pytest.raises(ConfigError, match=message):
        validate_config(config)


def test_validate_user_missing_username():
    config = _minimal(users=[UserConfig(email="a@example.com")])
    with pytest.raises(ConfigError, match="user at index 0 is missing username"):
        validate_config(config)


def test_validate_user_missing_email():
    config = _minimal(users=[UserConfig(username="bob")])
    with pytest.raises(ConfigError, match="user 'bob' is missing email"):
        validate_config(config)


def test_validate_team_missing_display_name():
    config = _minimal(teams={"t": TeamConfig(name="t")})
    with pytest.raises(ConfigError, match="team 't' is missing displayName"):
        validate_config(config)


def test_validate_channel_invalid_type():
    team = TeamConfig(name="t", display_name="T",
                      channels=[ChannelConfig(name="c", display_name="C", type="X")])
    with pytest.raises(ConfigError, match="invalid type 'X'"):
        validate_config(_minimal(teams={"t": team}))


def test_validate_command_must_start_with_slash():
    team = TeamConfig(name="t", display_name="T",
                      channels=[ChannelConfig(name="c", display_name="C", commands=["weather x"])])
    with pytest.raises(ConfigError, match="must start with /"):
        validate_config(_minimal(teams={"t": team}))


def test_validate_empty_command():
    team = TeamConfig(name="t", display_name="T",
                      channels=[ChannelConfig(name="c", display_name="C", commands=[""])])
    with pytest.raises(ConfigError, match="command at index 0 for channel 'c'"):
        validate_config(_minimal(teams={"t": team}))


def test_validate_warns_for_unknown_member_and_command(caplog):
    team = TeamConfig(name="t", display_name="T",
                      channels=[ChannelConfig(name="c", display_name="C",
                                              members=["ghost"], commands=["/dance now"])])
    with caplog.at_level(logging.WARNING):
        validate_config(_minimal(teams={"t": team}))
    text = caplog.text
    assert "Member in channel is not defined in users section" in text
    assert "ghost" in text
    assert "Command type may not be supported" in text


def test_load_config_from_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(_sample_dict()), encoding="utf-8")
    config = load_config(path)
    assert config == Config.from_dict(_sample_dict())


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="config file not found at"):
        load_config(tmp_path / "absent.json")


def test_load_config_bad_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="failed to parse config JSON"):
        load_config(path)


def test_load_config_searches_parent_directory(tmp_path, monkeypatch):
    (tmp_path / "config.json").write_text(json.dumps(_sample_dict()), encoding="utf-8")
    child = tmp_path / "child"
    child.mkdir()
    monkeypatch.chdir(child)
    assert load_config(None).server == "http://localhost:8065"


def test_load_config_nothing_found(tmp_path, monkeypatch):
    child = tmp_path / "a"
    child.mkdir()
    monkeypatch.chdir(child)
    with pytest.raises(ConfigError, match="config file not found. Tried"):
        load_config("")


def test_save_config_creates_directory_and_round_trips(tmp_path):
    config = Config.from_dict(_sample_dict())
    path = tmp_path / "nested" / "dir" / "config.json"
    save_config(config, path)
    assert path.exists()
    assert load_config(path) == config


def test_save_config_validates_first(tmp_path):
    config = _minimal()
    config.server = ""
    path = tmp_path / "config.json"
    with pytest.raises(ConfigError):
        save_config(config, path)
    assert not path.exists()


def test_save_config_default_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = _minimal(plugins=[PluginConfig(name="p", repo="o/r", plugin_id="pid")])
    save_config(config, None)
    assert load_config(tmp_path / "config.json") == config