"""Posting the weather bot's replies through the plugin host."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

log = logging.getLogger(__name__)

RESPONSE_TYPE_EPHEMERAL = "ephemeral"


class PluginHost(Protocol):
    """The server services the plugin uses. Methods raise an exception on failure."""

    def send_ephemeral_post(self, user_id: str, post: Post) -> Any:
        """Show ``post`` to one user only."""

    def create_post(self, post: Post) -> Any:
        """Publish ``post`` in its channel."""

    def get_channel(self, channel_id: str) -> dict[str, Any]:
        """Return the channel with keys ``id``, ``name`` and ``display_name``."""

    def get_direct_channel(self, user_id: str, other_user_id: str) -> dict[str, Any]:
        """Return (creating if needed) the direct channel between two users."""

    def kv_get(self, key: str) -> bytes | None:
        """Return the stored value for ``key``, or None when unset."""

    def kv_set(self, key: str, value: bytes) -> Any:
        """Store ``value`` under ``key``."""

    def get_bundle_path(self) -> str:
        """Return the directory the plugin bundle was unpacked into."""

    def ensure_bot(
        self, username: str, display_name: str, description: str, profile_image_path: str
    ) -> str:
        """Create the bot account if needed and return its user id."""

    def register_command(self, command: dict[str, Any]) -> Any:
        """Register a slash command."""


@dataclass
class Post:
    """A message in a channel."""

    channel_id: str = ""
    message: str = ""
    user_id: str = ""
    props: dict[str, Any] = field(default_factory=dict)


@dataclass
class CommandArgs:
    """Who ran a slash command, where, and what was typed."""

    channel_id: str = ""
    user_id: str = ""
    command: str = ""
    team_id: str = ""


@dataclass
class CommandResponse:
    """The immediate reply to a slash command."""

    response_type: str = RESPONSE_TYPE_EPHEMERAL
    text: str = ""


class MessageService:
    """Sends posts as the bot user."""

    def __init__(self, host: PluginHost, bot_user_id: str) -> None:
        self.host = host
        self.bot_user_id = bot_user_id

    def send_ephemeral_response(self, args: CommandArgs, message: str) -> CommandResponse:
        """Show ``message`` only to the user who ran the command."""
        post = Post(channel_id=args.channel_id, message=message)
        return self._send_response(post, args.user_id, ephemeral=True)

    def send_public_response(self, args: CommandArgs, post: Post) -> CommandResponse:
        """Publish ``post`` in its channel as the bot."""
        return self._send_response(post, args.user_id, ephemeral=False)

    def _send_response(self, post: Post, user_id: str, ephemeral: bool) -> CommandResponse:
        self._send_bot_post(post, user_id, ephemeral)
        return CommandResponse(response_type=RESPONSE_TYPE_EPHEMERAL, text="")

    def _send_bot_post(self, post: Post, user_id: str, ephemeral: bool) -> Post:
        post.user_id = self.bot_user_id
        if ephemeral:
            self.host.send_ephemeral_post(user_id, post)
            return post
        try:
            self.host.create_post(post)
        except Exception as exc:  # the host's failure is not the caller's concern
            log.debug("Could not create bot post in %s: %s", post.channel_id, exc)
        return post