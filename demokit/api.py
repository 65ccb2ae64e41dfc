"""Mattermost REST access and the setup operations built on it."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from typing import Any, BinaryIO, Iterator, TypeVar

import requests

from demokit.config import Config
from demokit.import_transform import ImportState
from demokit.import_types import ChannelBannerImport, ChannelCategoryImport, CommandImport

log = logging.getLogger(__name__)

API_PREFIX = "/api/v4"
CHANNEL_PAGE_SIZE = 1000
PLAYBOOKS_ACTIONS_PATH = "/plugins/playbooks/api/v0/actions/channels/{}"
DEFAULT_USER_EMAIL = "user@example.com"
ADMIN_ROLES = "system_admin system_user"

_T = TypeVar("_T")


class APIError(RuntimeError):
    """Raised when the server refuses a request or reports an unusable state."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AlreadyCategorized(Exception):
    """Raised when a channel already carries a categorization action."""


def format_api_error(operation: str, error: Any, status_code: int | None = None) -> str:
    """Describe a failed operation, with the HTTP status when one is known."""
    if status_code is not None:
        return f"{operation}: {error} (status code: {status_code})"
    return f"{operation}: {error}"


def _wrap(operation: str, exc: APIError) -> APIError:
    return APIError(format_api_error(operation, exc, exc.status_code), exc.status_code)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return response.text or response.reason or f"HTTP {response.status_code}"


def _decode(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class MattermostAPI:
    """A thin client for the server's REST interface."""

    def __init__(
        self,
        server_url: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token = ""

    def _send(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
        data: Any = None,
    ) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            return self.session.request(
                method,
                self.server_url + path,
                json=json_body,
                params=params,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise APIError(f"request to {path} failed: {exc}") from exc

    @staticmethod
    def _checked(response: requests.Response) -> Any:
        if not response.ok:
            raise APIError(_error_message(response), response.status_code)
        return _decode(response)

    def request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Call an API path below ``/api/v4`` and return the decoded body."""
        return self._checked(
            self._send(method, API_PREFIX + path, json_body=json_body, params=params)
        )

    def login(self, username: str, password: str) -> dict[str, Any]:
        """Log in, keep the session token and return the user."""
        response = self._send(
            "POST",
            f"{API_PREFIX}/users/login",
            json_body={"login_id": username, "password": password},
        )
        user = self._checked(response)
        self.token = response.headers.get("Token", "")
        return user

    def update_user_roles(self, user_id: str, roles: str) -> Any:
        return self.request("PUT", f"/users/{user_id}/roles", {"roles": roles})

    def get_client_license(self) -> Any:
        return self.request("GET", "/license/client", params={"format": "old"})

    def get_config(self) -> Any:
        return self.request("GET", "/config")

    def get_team_by_name(self, name: str) -> Any:
        return self.request("GET", f"/teams/name/{name}")

    def get_public_channels_for_team(self, team_id: str, page: int, per_page: int) -> Any:
        return self.request(
            "GET", f"/teams/{team_id}/channels", params={"page": page, "per_page": per_page}
        )

    def get_private_channels_for_team(self, team_id: str, page: int, per_page: int) -> Any:
        return self.request(
            "GET",
            f"/teams/{team_id}/channels/private",
            params={"page": page, "per_page": per_page},
        )

    def patch_channel(self, channel_id: str, patch: dict[str, Any]) -> Any:
        return self.request("PUT", f"/channels/{channel_id}/patch", patch)

    def execute_command(self, channel_id: str, command: str) -> Any:
        return self.request(
            "POST", "/commands/execute", {"channel_id": channel_id, "command": command}
        )

    def get_me(self) -> Any:
        return self.request("GET", "/users/me")

    def create_upload(self, session: dict[str, Any]) -> Any:
        return self.request("POST", "/uploads", session)

    def upload_data(self, upload_id: str, stream: BinaryIO | bytes) -> Any:
        return self._checked(self._send("POST", f"{API_PREFIX}/uploads/{upload_id}", data=stream))

    def create_job(self, job: dict[str, Any]) -> Any:
        return self.request("POST", "/jobs", job)

    def get_job(self, job_id: str) -> Any:
        return self.request("GET", f"/jobs/{job_id}")

    def get_user_by_username(self, username: str) -> Any:
        return self.request("GET", f"/users/username/{username}")

    def get_channel_by_name(self, channel_name: str, team_id: str) -> Any:
        return self.request("GET", f"/teams/{team_id}/channels/name/{channel_name}")

    def add_channel_member(self, channel_id: str, user_id: str) -> Any:
        return self.request("POST", f"/channels/{channel_id}/members", {"user_id": user_id})

    def get_users(self, page: int, per_page: int) -> Any:
        return self.request("GET", "/users", params={"page": page, "per_page": per_page})

    def get_team_member(self, team_id: str, user_id: str) -> Any:
        return self.request("GET", f"/teams/{team_id}/members/{user_id}")

    def get_channel_members_for_user(self, user_id: str, team_id: str) -> Any:
        return self.request("GET", f"/users/{user_id}/teams/{team_id}/channels/members")

    def create_sidebar_category(
        self, user_id: str, team_id: str, category: dict[str, Any]
    ) -> Any:
        return self.request(
            "POST", f"/users/{user_id}/teams/{team_id}/channels/categories", category
        )


def _json_lines(path: str | os.PathLike[str]) -> Iterator[dict[str, Any]]:
    with open(path, encoding="utf-8") as handle:
        for raw in handle:
            line = raw.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                yield data


def _parse(cls: type[_T], data: dict[str, Any]) -> _T | None:
    try:
        return cls.from_dict(data)  # type: ignore[attr-defined]
    except ValueError:
        return None


_STEP_ERRORS = (APIError, LookupError, ValueError)


class Client:
    """Setup operations against one server, logged in as the admin user."""

    def __init__(
        self,
        server_url: str,
        admin_user: str,
        admin_pass: str,
        config: Config | None = None,
        api: MattermostAPI | None = None,
        bulk_import_path: str = "",
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.admin_user = admin_user
        self.admin_pass = admin_pass
        self.config = config
        self.api = api or MattermostAPI(self.server_url)
        self.bulk_import_path = bulk_import_path

    def login(self) -> None:
        """Log in as the admin, creating the user locally if needed, and ensure admin rights."""
        try:
            user = self.api.login(self.admin_user, self.admin_pass)
        except APIError as exc:
            local = self.config is not None and self.config.environment == "local"
            if not (local and exc.status_code == 401):
                raise _wrap(
                    f"login failed for user '{self.admin_user}' with password '{self.admin_pass}'",
                    exc,
                ) from exc
            log.info(
                "Default user not found in local environment, attempting to create... (username=%s)",
                self.admin_user,
            )
            try:
                self.create_default_user()
            except RuntimeError as create_exc:
                raise _wrap(
                    f"login failed for user '{self.admin_user}' with password "
                    f"'{self.admin_pass}', and failed to create user",
                    exc,
                ) from create_exc
            try:
                user = self.api.login(self.admin_user, self.admin_pass)
            except APIError as retry_exc:
                raise _wrap(
                    f"login failed even after creating user '{self.admin_user}'", retry_exc
                ) from retry_exc

        user = user if isinstance(user, dict) else {}
        if "system_admin" not in str(user.get("roles", "")):
            try:
                self.api.update_user_roles(str(user.get("id", "")), ADMIN_ROLES)
            except APIError as exc:
                raise APIError(
                    f"failed to assign system_admin role to user '{self.admin_user}': {exc}",
                    exc.status_code,
                ) from exc
            log.info("✅ Assigned system_admin role to user (user_name=%s)", self.admin_user)

    def create_default_user(self) -> None:
        """Create the admin user inside the local server container."""
        command = [
            "docker", "exec", "mattermost", "mmctl", "user", "create",
            "--email", DEFAULT_USER_EMAIL,
            "--username", self.admin_user,
            "--password", self.admin_pass,
            "--system-admin",
            "--email-verified",
            "--local",
        ]
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise RuntimeError(f"failed to create default user via docker: {exc}\nOutput: ") from exc

        output = result.stdout or ""
        if result.returncode != 0:
            if "already exists" in output or "duplicate key" in output:
                log.info("User already exists, proceeding with login (username=%s)", self.admin_user)
                return
            raise RuntimeError(
                f"failed to create default user via docker: exit status {result.returncode}\n"
                f"Output: {output}"
            )
        log.info("✅ Created default sysadmin user via docker (username=%s)", self.admin_user)

    def check_license(self) -> None:
        """Raise APIError unless the server reports a valid licence."""
        try:
            license_info = self.api.get_client_license()
        except APIError as exc:
            raise _wrap("failed to get license", exc) from exc
        if not isinstance(license_info, dict):
            raise APIError("❌ No valid license found on the server")
        is_licensed = license_info.get("IsLicensed", "")
        if is_licensed != "true":
            raise APIError(
                "❌ Mattermost server is not licensed. This setup tool requires a licensed "
                f"Mattermost Enterprise server (IsLicensed: {is_licensed})"
            )
        if "Id" in license_info:
            log.info("✅ Server is licensed (license_id=%s)", license_info["Id"])
        else:
            log.info("✅ Server is licensed")

    def check_deletion_settings(self) -> None:
        """Raise APIError unless user and team deletion through the API are enabled."""
        try:
            server_config = self.api.get_config()
        except APIError as exc:
            raise _wrap("failed to get server config", exc) from exc
        settings = (server_config or {}).get("ServiceSettings") or {}
        for name in ("EnableAPIUserDeletion", "EnableAPITeamDeletion"):
            if settings.get(name) is not True:
                raise APIError(
                    f"ServiceSettings.{name} is not enabled. Please enable it in the server "
                    "configuration to use the reset command"
                )
        log.info("✅ API deletion settings are enabled")

    def team_channels(self, team_name: str) -> list[dict[str, Any]]:
        """Return the public and private channels of a team."""
        try:
            team = self.api.get_team_by_name(team_name)
        except APIError as exc:
            raise _wrap(f"failed to get team '{team_name}'", exc) from exc
        channels: list[dict[str, Any]] = []
        for fetch in (self.api.get_public_channels_for_team, self.api.get_private_channels_for_team):
            try:
                found = fetch(team["id"], 0, CHANNEL_PAGE_SIZE)
            except APIError:
                continue
            if isinstance(found, list):
                channels.extend(item for item in found if isinstance(item, dict))
        return channels

    def _find_channel(self, team_name: str, channel_name: str) -> dict[str, Any]:
        for channel in self.team_channels(team_name):
            if channel.get("name") == channel_name:
                return channel
        raise LookupError(f"channel '{channel_name}' not found in team '{team_name}'")

    def categorize_channel_api(self, channel_id: str, channel_name: str, category_name: str) -> None:
        """Add a playbooks action that puts the channel in a category for new members."""
        if not channel_id or not category_name:
            raise ValueError("channel ID and category name are required")

        path = PLAYBOOKS_ACTIONS_PATH.format(channel_id)
        try:
            existing = self.api._send("GET", path)
        except APIError as exc:
            raise APIError(f"failed to check existing actions: {exc}") from exc
        if existing.status_code == 200 and "categorize_channel" in existing.text:
            raise AlreadyCategorized(f"channel '{channel_name}' is already categorized")

        log.debug("📋 Categorizing %s into %s (channel_id=%s)", channel_name, category_name, channel_id)
        payload = {
            "enabled": True,
            "payload": {"category_name": category_name},
            "channel_id": channel_id,
            "action_type": "categorize_channel",
            "trigger_type": "new_member_joins",
        }
        try:
            response = self.api._send("POST", path, json_body=payload)
        except APIError as exc:
            raise APIError(f"failed to send categorize request: {exc}") from exc
        if response.status_code not in (200, 201):
            raise APIError(
                f"categorize request failed with status {response.status_code}: {response.text}",
                response.status_code,
            )
        log.info("✅ Successfully categorized %s into %s (channel_id=%s)", channel_name, category_name, channel_id)

    def set_channel_banner_api(
        self,
        channel_id: str,
        channel_name: str,
        text: str,
        background_color: str,
        enabled: bool,
    ) -> None:
        """Set the banner of a channel."""
        if not channel_id:
            raise ValueError("channel ID is required")
        log.debug("🎯 Setting banner for %s: %s (channel_id=%s)", channel_name, text, channel_id)
        patch = {
            "banner_info": {
                "text": text,
                "background_color": background_color,
                "enabled": enabled,
            }
        }
        try:
            self.api.patch_channel(channel_id, patch)
        except APIError as exc:
            raise _wrap(f"failed to set banner for channel '{channel_name}'", exc) from exc
        log.info("✅ Successfully set banner for %s (channel_id=%s)", channel_name, channel_id)

    def categorize_channel(self, team_name: str, channel_name: str, category_name: str) -> None:
        channel = self._find_channel(team_name, channel_name)
        self.categorize_channel_api(channel["id"], channel["name"], category_name)

    def set_channel_banner(
        self,
        team_name: str,
        channel_name: str,
        text: str,
        background_color: str,
        enabled: bool,
    ) -> None:
        channel = self._find_channel(team_name, channel_name)
        self.set_channel_banner_api(channel["id"], channel["name"], text, background_color, enabled)

    def execute_command(self, team_name: str, channel_name: str, command_text: str) -> None:
        channel = self._find_channel(team_name, channel_name)
        try:
            self.api.execute_command(channel["id"], command_text)
        except APIError as exc:
            raise _wrap(f"failed to execute command '{command_text}'", exc) from exc

    def process_channel_categories(
        self, bulk_import_path: str | os.PathLike[str], state: ImportState | None = None
    ) -> tuple[int, int]:
        """Categorize channels from ``channel-category`` entries.

        The categories are recorded in ``state`` for sidebar creation later.
        Returns the number of channels categorized and the number that failed.
        """
        log.info("📋 Processing channel categories (file_path=%s)", bulk_import_path)
        categorized = errors = 0
        for data in _json_lines(bulk_import_path):
            entry = _parse(ChannelCategoryImport, data)
            if entry is None or entry.type != "channel-category":
                continue
            if state is not None:
                state.channel_categories.setdefault(entry.team, {})[entry.category] = list(entry.channels)
            for channel_name in entry.channels:
                try:
                    self.categorize_channel(entry.team, channel_name, entry.category)
                except AlreadyCategorized:
                    continue
                except _STEP_ERRORS as exc:
                    log.warning(
                        "⚠️ Failed to categorize channel (channel_name=%s team_name=%s category=%s error=%s)",
                        channel_name, entry.team, entry.category, exc,
                    )
                    errors += 1
                else:
                    categorized += 1

        if categorized or errors:
            log.info(
                "✅ Channel categorization complete (categorized_count=%d error_count=%d)",
                categorized, errors,
            )
        else:
            log.info("✅ All channels already properly categorized")
        return categorized, errors

    def process_channel_banners(self, bulk_import_path: str | os.PathLike[str]) -> tuple[int, int]:
        """Apply ``channel-banner`` entries; return counts of banners set and failures."""
        log.info("🎯 Processing channel banners (file_path=%s)", bulk_import_path)
        done = errors = 0
        for data in _json_lines(bulk_import_path):
            entry = _parse(ChannelBannerImport, data)
            if entry is None or entry.type != "channel-banner":
                continue
            banner = entry.banner
            try:
                self.set_channel_banner(
                    banner.team, banner.channel, banner.text, banner.background_color, banner.enabled
                )
            except _STEP_ERRORS as exc:
                log.warning(
                    "⚠️ Failed to set channel banner (channel_name=%s team_name=%s error=%s)",
                    banner.channel, banner.team, exc,
                )
                errors += 1
            else:
                done += 1

        if done or errors:
            log.info("✅ Channel banner setup complete (banners_count=%d error_count=%d)", done, errors)
        else:
            log.info("✅ No channel banners to process")
        return done, errors

    def process_commands(self, bulk_import_path: str | os.PathLike[str]) -> tuple[int, int]:
        """Run ``command`` entries; return counts of commands run and failures."""
        log.info("📋 Processing commands (file_path=%s)", bulk_import_path)
        done = errors = 0
        for data in _json_lines(bulk_import_path):
            entry = _parse(CommandImport, data)
            if entry is None or entry.type != "command":
                continue
            spec = entry.command
            try:
                self.execute_command(spec.team, spec.channel, spec.text)
            except _STEP_ERRORS as exc:
                log.warning(
                    "⚠️ Failed to execute command (team_name=%s channel_name=%s command_text=%s error=%s)",
                    spec.team, spec.channel, spec.text, exc,
                )
                errors += 1
            else:
                done += 1
        return done, errors