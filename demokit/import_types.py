"""Record types found in bulk import JSONL files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _require_object(data: Any, what: str = "entry") -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field '{key}' must be a string")
    return value


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field '{key}' must be an integer")
    return value


def _bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field '{key}' must be a boolean")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"field '{key}' must be a list of strings")
    return list(value)


def _str_map(data: dict[str, Any], key: str) -> dict[str, str]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(isinstance(v, str) for v in value.values()):
        raise ValueError(f"field '{key}' must be an object of strings")
    return dict(value)


def _sub_object(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    return _require_object(value, f"field '{key}'")


@dataclass
class BulkImportLine:
    """One line of a bulk import file, with its decoded JSON kept as ``raw``."""

    type: str = ""
    version: int = 0
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> BulkImportLine:
        data = _require_object(data)
        return cls(type=_str(data, "type"), version=_int(data, "version"), raw=data)


@dataclass
class ChannelCategoryImport:
    """Assigns channels of a team to a sidebar category."""

    type: str = ""
    category: str = ""
    team: str = ""
    channels: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ChannelCategoryImport:
        data = _require_object(data)
        return cls(
            type=_str(data, "type"),
            category=_str(data, "category"),
            team=_str(data, "team"),
            channels=_str_list(data, "channels"),
        )


@dataclass
class CommandSpec:
    """A slash command to run in a channel."""

    team: str = ""
    channel: str = ""
    text: str = ""


@dataclass
class CommandImport:
    """A ``command`` entry."""

    type: str = ""
    command: CommandSpec = field(default_factory=CommandSpec)

    @classmethod
    def from_dict(cls, data: Any) -> CommandImport:
        data = _require_object(data)
        spec = _sub_object(data, "command")
        return cls(
            type=_str(data, "type"),
            command=CommandSpec(
                team=_str(spec, "team"),
                channel=_str(spec, "channel"),
                text=_str(spec, "text"),
            ),
        )


@dataclass
class BannerSpec:
    """Banner settings for a channel."""

    team: str = ""
    channel: str = ""
    text: str = ""
    background_color: str = ""
    enabled: bool = False


@dataclass
class ChannelBannerImport:
    """A ``channel-banner`` entry."""

    type: str = ""
    banner: BannerSpec = field(default_factory=BannerSpec)

    @classmethod
    def from_dict(cls, data: Any) -> ChannelBannerImport:
        data = _require_object(data)
        spec = _sub_object(data, "banner")
        return cls(
            type=_str(data, "type"),
            banner=BannerSpec(
                team=_str(spec, "team"),
                channel=_str(spec, "channel"),
                text=_str(spec, "text"),
                background_color=_str(spec, "background_color"),
                enabled=_bool(spec, "enabled"),
            ),
        )


@dataclass
class PluginSpec:
    """Where a plugin comes from and how to install it."""

    source: str = ""
    github_repo: str = ""
    path: str = ""
    plugin_id: str = ""
    name: str = ""
    force_install: bool = False


@dataclass
class PluginImport:
    """A ``plugin`` entry."""

    type: str = ""
    plugin: PluginSpec = field(default_factory=PluginSpec)

    @classmethod
    def from_dict(cls, data: Any) -> PluginImport:
        data = _require_object(data)
        spec = _sub_object(data, "plugin")
        return cls(
            type=_str(data, "type"),
            plugin=PluginSpec(
                source=_str(spec, "source"),
                github_repo=_str(spec, "github_repo"),
                path=_str(spec, "path"),
                plugin_id=_str(spec, "plugin_id"),
                name=_str(spec, "name"),
                force_install=_bool(spec, "force_install"),
            ),
        )


@dataclass
class UserRank:
    """Military rank of a user; a higher level is more senior."""

    username: str = ""
    rank: str = ""
    level: int = 0
    unit: str = ""


@dataclass
class ChannelContext:
    """Conversation context for a channel."""

    name: str = ""
    topics: list[str] = field(default_factory=list)
    formality: str = ""
    message_type: str = ""


@dataclass
class UserAttributeImport:
    """A ``user-attribute`` entry; the attribute definition is kept as decoded JSON."""

    type: str = ""
    attribute: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> UserAttributeImport:
        data = _require_object(data)
        return cls(type=_str(data, "type"), attribute=dict(_sub_object(data, "attribute")))


@dataclass
class UserProfileImport:
    """A ``user-profile`` entry mapping attribute names to values for one user."""

    type: str = ""
    user: str = ""
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> UserProfileImport:
        data = _require_object(data)
        return cls(
            type=_str(data, "type"),
            user=_str(data, "user"),
            attributes=_str_map(data, "attributes"),
        )


@dataclass
class GroupConfig:
    """A user group and its members."""

    name: str = ""
    id: str = ""
    members: list[str] = field(default_factory=list)
    allow_reference: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> GroupConfig:
        data = _require_object(data)
        return cls(
            name=_str(data, "name"),
            id=_str(data, "id"),
            members=_str_list(data, "members"),
            allow_reference=_bool(data, "allow_reference"),
        )


@dataclass
class UserGroupImport:
    """A ``user-groups`` entry."""

    type: str = ""
    group: GroupConfig = field(default_factory=GroupConfig)

    @classmethod
    def from_dict(cls, data: Any) -> UserGroupImport:
        data = _require_object(data)
        return cls(type=_str(data, "type"), group=GroupConfig.from_dict(_sub_object(data, "group")))


@dataclass
class BulkTeam:
    """A team as described in a bulk import file."""

    name: str = ""
    display_name: str = ""
    type: str = ""
    description: str = ""


@dataclass
class BulkUser:
    """A user as described in a bulk import file."""

    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    nickname: str = ""
    position: str = ""


@dataclass
class BulkImportData:
    """Teams and users gathered from a bulk import file."""

    teams: list[BulkTeam] = field(default_factory=list)
    users: list[BulkUser] = field(default_factory=list)


def _bulk_team(data: dict[str, Any]) -> BulkTeam:
    return BulkTeam(
        name=_str(data, "name"),
        display_name=_str(data, "display_name"),
        type=_str(data, "type"),
        description=_str(data, "description"),
    )


def _bulk_user(data: dict[str, Any]) -> BulkUser:
    return BulkUser(
        username=_str(data, "username"),
        email=_str(data, "email"),
        first_name=_str(data, "first_name"),
        last_name=_str(data, "last_name"),
        nickname=_str(data, "nickname"),
        position=_str(data, "position"),
    )


@dataclass
class ResetImportLine:
    """A bulk import line read for reset: a team, a user, or neither."""

    type: str = ""
    team: BulkTeam | None = None
    user: BulkUser | None = None

    @classmethod
    def from_dict(cls, data: Any) -> ResetImportLine:
        data = _require_object(data)
        team = data.get("team")
        user = data.get("user")
        return cls(
            type=_str(data, "type"),
            team=None if team is None else _bulk_team(_require_object(team, "field 'team'")),
            user=None if user is None else _bulk_user(_require_object(user, "field 'user'")),
        )


@dataclass
class CustomProfileField:
    """Definition of a custom profile field."""

    id: str = ""
    name: str = ""
    display_name: str = ""
    type: str = ""
    options: list[str] = field(default_factory=list)


@dataclass
class UserCustomProfileFields:
    """A user's custom profile field values."""

    fields: dict[str, str] = field(default_factory=dict)