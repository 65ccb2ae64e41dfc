"""Rewriting bulk import JSONL lines before they are sent to the server."""

from __future__ import annotations

import json
import logging
import os
import time
import zipfile
from dataclasses import dataclass, field
from typing import Any, Iterable, TextIO

from demokit.import_types import BulkImportLine

log = logging.getLogger(__name__)

BULK_IMPORT_SEARCH_PATHS = ("bulk_import.jsonl", "../bulk_import.jsonl")
ZIP_ENTRY_NAME = "import.jsonl"
VERSION_LINE = '{"type": "version", "version": 1}\n'
RECENT_POST_AGE_MS = 5 * 60 * 1000
POST_TYPE_MARKER = '"type": "post"'

DEFAULT_CHANNELS = (
    {"name": "town-square", "roles": "channel_user"},
    {"name": "off-topic", "roles": "channel_user"},
)

# Entry types handled through the API rather than the server's bulk import.
CUSTOM_TYPES = frozenset(
    {
        "channel-category",
        "channel-banner",
        "command",
        "plugin",
        "user-attribute",
        "user-profile",
        "user-groups",
    }
)


class ImportLineError(ValueError):
    """Raised when an import line or file cannot be processed."""


@dataclass
class ImportState:
    """Data gathered while import files are processed."""

    channel_memberships: dict[str, list[str]] = field(default_factory=dict)
    imported_teams: list[str] = field(default_factory=list)
    channel_categories: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    current_import_path: str = ""
    timestamp_offset: int = 0
    offset_calculated: bool = False


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_nested_string(data: dict[str, Any], *keys: str) -> str:
    """Follow ``keys`` through nested objects; return the string found or ``""``."""
    if not keys:
        return ""
    current: Any = data
    for key in keys[:-1]:
        current = current.get(key) if isinstance(current, dict) else None
        if not isinstance(current, dict):
            return ""
    value = current.get(keys[-1])
    return value if isinstance(value, str) else ""


def _user_teams(data: dict[str, Any]) -> list[dict[str, Any]]:
    user = data.get("user")
    if not isinstance(user, dict):
        return []
    teams = user.get("teams")
    if not isinstance(teams, list):
        return []
    return [team for team in teams if isinstance(team, dict)]


def extract_all_channel_names(data: dict[str, Any]) -> list[str]:
    """Return every channel name listed under the user's teams."""
    names: list[str] = []
    for team in _user_teams(data):
        channels = team.get("channels")
        if not isinstance(channels, list):
            continue
        names.extend(
            channel["name"]
            for channel in channels
            if isinstance(channel, dict) and isinstance(channel.get("name"), str)
        )
    return names


def set_default_channels(data: dict[str, Any]) -> None:
    """Replace each team's channel list with the default channels."""
    for team in _user_teams(data):
        team["channels"] = [dict(channel) for channel in DEFAULT_CHANNELS]


def extract_channel_memberships(user_line: str, state: ImportState) -> str:
    """Record a user's channels in ``state`` and return the line with default channels."""
    try:
        data = json.loads(user_line)
    except json.JSONDecodeError as exc:
        raise ImportLineError(f"failed to parse user JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ImportLineError("failed to parse user JSON: not an object")

    username = get_nested_string(data, "user", "username")
    if not username:
        raise ImportLineError("missing username")

    channels = extract_all_channel_names(data)
    if channels:
        state.channel_memberships[username] = channels

    set_default_channels(data)
    log.debug("✅ Extracted and cleaned user (username=%s channels_stored=%d)", username, len(channels))
    return _dumps(data)


def _adjust_field(obj: dict[str, Any], name: str, offset: int) -> None:
    value = obj.get(name)
    if _is_number(value):
        obj[name] = int(value) + offset


def adjust_all_timestamps(data: dict[str, Any], offset: int) -> None:
    """Shift the post, reply and call timestamps of a post entry by ``offset``."""
    post = data.get("post")
    if not isinstance(post, dict):
        return
    _adjust_field(post, "create_at", offset)
    replies = post.get("replies")
    if isinstance(replies, list):
        for reply in replies:
            if isinstance(reply, dict):
                _adjust_field(reply, "create_at", offset)
    props = post.get("props")
    if isinstance(props, dict):
        _adjust_field(props, "start_at", offset)
        _adjust_field(props, "end_at", offset)


def _timestamp(obj: dict[str, Any], name: str) -> int:
    value = obj.get(name)
    return int(value) if _is_number(value) else 0


def extract_all_timestamps_from_post(data: dict[str, Any]) -> list[int]:
    """Return the positive timestamps of a post, its replies and its call props."""
    post = data.get("post")
    if not isinstance(post, dict):
        return []
    candidates = [_timestamp(post, "create_at")]
    replies = post.get("replies")
    if isinstance(replies, list):
        candidates.extend(_timestamp(reply, "create_at") for reply in replies if isinstance(reply, dict))
    props = post.get("props")
    if isinstance(props, dict):
        candidates.append(_timestamp(props, "start_at"))
        candidates.append(_timestamp(props, "end_at"))
    return [ts for ts in candidates if ts > 0]


def find_latest_timestamp(path: str | os.PathLike[str]) -> int:
    """Return the newest post timestamp in a bulk import file."""
    latest = 0
    with open(path, encoding="utf-8") as handle:
        for raw in handle:
            line = raw.strip()
            if POST_TYPE_MARKER not in line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue
            latest = max([latest, *extract_all_timestamps_from_post(data)])
    if latest == 0:
        raise ImportLineError("no post timestamps found")
    return latest


def calculate_timestamp_offset(latest: int, now_ms: int | None = None) -> int:
    """Return the shift that puts ``latest`` five minutes before ``now_ms``."""
    if now_ms is None:
        now_ms = int(time.time()) * 1000
    return now_ms - RECENT_POST_AGE_MS - latest


def adjust_post_timestamps(post_line: str, state: ImportState) -> str:
    """Return the post line with its timestamps moved to the recent past.

    The offset is worked out once per state from the newest post in the import
    file; if that fails the line is returned unchanged.
    """
    if not state.offset_calculated:
        try:
            path = state.current_import_path or find_bulk_import_path()
            state.timestamp_offset = calculate_timestamp_offset(find_latest_timestamp(path))
        except (OSError, ImportLineError) as exc:
            log.warning("⚠️ Failed to calculate timestamp offset (error=%s)", exc)
            return post_line
        state.offset_calculated = True
        log.info(
            "📅 Calculated timestamp offset for recent posts (offset_hours=%d)",
            int(state.timestamp_offset / (1000 * 60 * 60)),
        )

    try:
        data = json.loads(post_line)
    except json.JSONDecodeError as exc:
        raise ImportLineError(f"failed to parse post JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ImportLineError("failed to parse post JSON: not an object")

    adjust_all_timestamps(data, state.timestamp_offset)
    return _dumps(data)


def find_bulk_import_path() -> str:
    """Find ``bulk_import.jsonl`` in the current or the parent directory."""
    for path in BULK_IMPORT_SEARCH_PATHS:
        if os.path.exists(path):
            return path
    raise FileNotFoundError("bulk_import.jsonl not found in current directory or parent directory")


def create_zip_file(jsonl_path: str | os.PathLike[str], zip_path: str | os.PathLike[str]) -> None:
    """Write a ZIP archive holding the JSONL file as ``import.jsonl``."""
    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.write(jsonl_path, arcname=ZIP_ENTRY_NAME)


def _record_team(decoded: dict[str, Any], state: ImportState) -> None:
    team_name = get_nested_string(decoded, "team", "name")
    if team_name and team_name not in state.imported_teams:
        state.imported_teams.append(team_name)
        log.debug("📋 Stored team name for channel membership processing (team_name=%s)", team_name)


def _transform(line: str, line_type: str, decoded: dict[str, Any], state: ImportState) -> str:
    if line_type == "team":
        _record_team(decoded, state)
    elif line_type == "user":
        try:
            return extract_channel_memberships(line, state)
        except ImportLineError as exc:
            log.warning(
                "⚠️ Failed to extract channel memberships from user, using original line (error=%s)", exc
            )
    elif line_type == "post":
        try:
            return adjust_post_timestamps(line, state)
        except ImportLineError as exc:
            log.warning("⚠️ Failed to adjust post timestamps, using original (error=%s)", exc)
    return line


def write_filtered_import(
    bulk_import_path: str | os.PathLike[str],
    line_types: Iterable[str],
    state: ImportState,
    destination: TextIO,
) -> int:
    """Write a version line and the entries of the given types to ``destination``.

    Teams are recorded, users have their channel memberships extracted and posts
    have their timestamps adjusted. Returns the number of entries written.
    """
    state.current_import_path = os.fspath(bulk_import_path)
    wanted = set(line_types)
    destination.write(VERSION_LINE)

    count = 0
    with open(bulk_import_path, encoding="utf-8") as source:
        for raw in source:
            line = raw.strip()
            if not line:
                continue
            try:
                decoded = json.loads(line)
            except json.JSONDecodeError:
                decoded = None
            if not isinstance(decoded, dict) or not isinstance(decoded.get("type", ""), (str, type(None))):
                log.warning("⚠️ Failed to parse type from line, skipping (line=%s)", line)
                continue
            if decoded.get("type") in CUSTOM_TYPES:
                continue
            try:
                entry = BulkImportLine.from_dict(decoded)
            except ValueError:
                log.warning("⚠️ Failed to parse standard import line, skipping (line=%s)", line)
                continue
            if entry.type not in wanted:
                continue
            destination.write(_transform(line, entry.type, decoded, state) + "\n")
            count += 1
    return count