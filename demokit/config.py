"""Loading, validating and saving the setup configuration file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
SEARCH_PATHS = ("config.json", "../config.json")
SUPPORTED_COMMANDS = ("weather", "flights", "mission")

# Top-level string fields of the config file, in file order; the JSON keys
# match the attribute names of Config.
_CONFIG_STRING_FIELDS = (
    "environment",
    "server",
    "admin_username",
    "admin_password",
    "default_team",
)
_CONFIG_REQUIRED_FIELDS = frozenset({"server", "admin_username", "admin_password"})

# (JSON key, attribute name) pairs for the string fields of a user entry.
_USER_STRING_FIELDS = (
    ("username", "username"),
    ("email", "email"),
    ("password", "password"),
    ("nickname", "nickname"),
    ("firstname", "first_name"),
    ("lastname", "last_name"),
    ("position", "position"),
)
_USER_REQUIRED_KEYS = frozenset({"username", "email", "password"})


class ConfigError(ValueError):
    """Raised when the configuration cannot be read, parsed or validated."""


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"field '{key}' must be a string")
    return value


def _bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"field '{key}' must be a boolean")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"field '{key}' must be a list of strings")
    return list(value)


def _object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{what} must be a JSON object")
    return value


def _objects(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"field '{key}' must be a list")
    return [_object(item, f"entry of '{key}'") for item in value]


@dataclass
class UserConfig:
    """A user to create on the server."""

    username: str = ""
    email: str = ""
    password: str = ""
    nickname: str = ""
    first_name: str = ""
    last_name: str = ""
    position: str = ""
    is_system_admin: bool = False
    teams: list[str] = field(default_factory=list)


@dataclass
class ChannelConfig:
    """A channel to create within a team."""

    name: str = ""
    display_name: str = ""
    purpose: str = ""
    header: str = ""
    type: str = ""
    members: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    category: str = ""


@dataclass
class TeamConfig:
    """A team and the channels it should hold."""

    name: str = ""
    display_name: str = ""
    description: str = ""
    type: str = ""
    channels: list[ChannelConfig] = field(default_factory=list)


@dataclass
class PluginConfig:
    """A plugin to download from a GitHub repository."""

    name: str = ""
    repo: str = ""
    plugin_id: str = ""


def _user_from_dict(data: dict[str, Any]) -> UserConfig:
    strings = {attr: _str(data, key) for key, attr in _USER_STRING_FIELDS}
    return UserConfig(
        **strings,
        is_system_admin=_bool(data, "isSystemAdmin"),
        teams=_str_list(data, "teams"),
    )


def _user_to_dict(user: UserConfig) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, attr in _USER_STRING_FIELDS:
        value = getattr(user, attr)
        if value or key in _USER_REQUIRED_KEYS:
            out[key] = value
    out["isSystemAdmin"] = user.is_system_admin
    out["teams"] = list(user.teams)
    return out


def _channel_from_dict(data: dict[str, Any]) -> ChannelConfig:
    return ChannelConfig(
        name=_str(data, "name"),
        display_name=_str(data, "displayName"),
        purpose=_str(data, "purpose"),
        header=_str(data, "header"),
        type=_str(data, "type"),
        members=_str_list(data, "members"),
        commands=_str_list(data, "commands"),
        category=_str(data, "category"),
    )


def _channel_to_dict(channel: ChannelConfig) -> dict[str, Any]:
    out: dict[str, Any] = {"name": channel.name, "displayName": channel.display_name}
    optional = {
        "purpose": channel.purpose,
        "header": channel.header,
        "type": channel.type,
        "members": list(channel.members),
        "commands": list(channel.commands),
        "category": channel.category,
    }
    out.update({key: value for key, value in optional.items() if value})
    return out


def _team_from_dict(data: dict[str, Any]) -> TeamConfig:
    return TeamConfig(
        name=_str(data, "name"),
        display_name=_str(data, "displayName"),
        description=_str(data, "description"),
        type=_str(data, "type"),
        channels=[_channel_from_dict(item) for item in _objects(data, "channels")],
    )


def _team_to_dict(team: TeamConfig) -> dict[str, Any]:
    out: dict[str, Any] = {"name": team.name, "displayName": team.display_name}
    if team.description:
        out["description"] = team.description
    if team.type:
        out["type"] = team.type
    if team.channels:
        out["channels"] = [_channel_to_dict(channel) for channel in team.channels]
    return out


def _plugin_from_dict(data: dict[str, Any]) -> PluginConfig:
    return PluginConfig(
        name=_str(data, "name"),
        repo=_str(data, "github_repo"),
        plugin_id=_str(data, "plugin-id"),
    )


def _plugin_to_dict(plugin: PluginConfig) -> dict[str, Any]:
    return {"name": plugin.name, "github_repo": plugin.repo, "plugin-id": plugin.plugin_id}


@dataclass
class Config:
    """The main configuration for a setup run."""

    server: str = ""
    admin_username: str = ""
    admin_password: str = ""
    environment: str = ""
    default_team: str = ""
    users: list[UserConfig] = field(default_factory=list)
    teams: dict[str, TeamConfig] = field(default_factory=dict)
    plugins: list[PluginConfig] = field(default_factory=list)
    ldap: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        """Build a configuration from decoded JSON."""
        data = _object(data, "config")
        raw_teams = data.get("teams")
        teams: dict[str, TeamConfig] = {}
        if raw_teams is not None:
            for key, value in _object(raw_teams, "field 'teams'").items():
                teams[key] = _team_from_dict(_object(value, f"team '{key}'"))
        raw_ldap = data.get("ldap")
        ldap = {} if raw_ldap is None else dict(_object(raw_ldap, "field 'ldap'"))
        strings = {key: _str(data, key) for key in _CONFIG_STRING_FIELDS}
        return cls(
            **strings,
            users=[_user_from_dict(item) for item in _objects(data, "users")],
            teams=teams,
            plugins=[_plugin_from_dict(item) for item in _objects(data, "plugins")],
            ldap=ldap,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration in its JSON file layout."""
        out: dict[str, Any] = {}
        for key in _CONFIG_STRING_FIELDS:
            value = getattr(self, key)
            if value or key in _CONFIG_REQUIRED_FIELDS:
                out[key] = value
        if self.users:
            out["users"] = [_user_to_dict(user) for user in self.users]
        if self.teams:
            out["teams"] = {key: _team_to_dict(team) for key, team in self.teams.items()}
        if self.plugins:
            out["plugins"] = [_plugin_to_dict(plugin) for plugin in self.plugins]
        out["ldap"] = dict(self.ldap)
        return out


def load_config(path: str | os.PathLike[str] | None = None) -> Config:
    """Read, parse and validate a configuration file.

    Without a path, ``config.json`` and ``../config.json`` are tried in turn.
    """
    if not path:
        found = next((p for p in SEARCH_PATHS if os.path.exists(p)), None)
        if found is None:
            raise ConfigError(f"config file not found. Tried: {list(SEARCH_PATHS)}")
        path = found

    if not os.path.exists(path):
        raise ConfigError(f"config file not found at {os.fspath(path)}")

    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc

    try:
        config = Config.from_dict(json.loads(text))
    except (json.JSONDecodeError, ConfigError) as exc:
        raise ConfigError(f"failed to parse config JSON: {exc}") from exc

    validate_config(config)
    return config


def _validate_commands(channel: ChannelConfig, team_key: str) -> None:
    for index, command in enumerate(channel.commands):
        if command == "":
            raise ConfigError(
                f"command at index {index} for channel '{channel.name}' in team '{team_key}' is empty"
            )
        if not command.startswith("/"):
            raise ConfigError(
                f"command '{command}' for channel '{channel.name}' in team '{team_key}' must start with /"
            )
        parts = command.split()
        if not parts:
            raise ConfigError(
                f"command '{command}' for channel '{channel.name}' in team '{team_key}' is invalid"
            )
        name = parts[0].removeprefix("/")
        if name not in SUPPORTED_COMMANDS:
            log.warning(
                "⚠️ Command type may not be supported (command_type=%s channel=%s team=%s supported_types=%s)",
                name,
                channel.name,
                team_key,
                list(SUPPORTED_COMMANDS),
            )


def validate_config(config: Config) -> None:
    """Check required fields; raise ConfigError on the first problem found."""
    if not config.server:
        raise ConfigError("server URL is required in config")
    if not config.admin_username:
        raise ConfigError("admin_username is required in config")
    if not config.admin_password:
        raise ConfigError("admin_password is required in config")

    for index, user in enumerate(config.users):
        if not user.username:
            raise ConfigError(f"user at index {index} is missing username")
        if not user.email:
            raise ConfigError(f"user '{user.username}' is missing email")
        if not user.password:
            raise ConfigError(f"user '{user.username}' is missing password")

    known_users = {user.username for user in config.users}

    for key, team in config.teams.items():
        if not team.name:
            raise ConfigError(f"team '{key}' is missing name field")
        if not team.display_name:
            raise ConfigError(f"team '{key}' is missing displayName")

        for index, channel in enumerate(team.channels):
            if not channel.name:
                raise ConfigError(f"channel at index {index} for team '{key}' is missing name")
            if not channel.display_name:
                raise ConfigError(
                    f"channel '{channel.name}' for team '{key}' is missing displayName"
                )
            if channel.type not in ("", "O", "P"):
                raise ConfigError(
                    f"channel '{channel.name}' for team '{key}' has invalid type '{channel.type}', "
                    "must be 'O' for public or 'P' for private"
                )
            for member in channel.members:
                if member not in known_users:
                    log.warning(
                        "⚠️ Member in channel is not defined in users section (member=%s channel=%s team=%s)",
                        member,
                        channel.name,
                        key,
                    )
            _validate_commands(channel, key)


def save_config(config: Config, path: str | os.PathLike[str] | None = None) -> None:
    """Validate the configuration and write it as indented JSON."""
    if not path:
        path = DEFAULT_CONFIG_PATH

    directory = os.path.dirname(os.fspath(path)) or "."
    try:
        os.makedirs(directory, mode=0o755, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"failed to create config directory: {exc}") from exc

    validate_config(config)

    data = json.dumps(config.to_dict(), indent=2, ensure_ascii=False)
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(data)
    except OSError as exc:
        raise ConfigError(f"failed to write config file: {exc}") from exc