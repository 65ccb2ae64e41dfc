"""The /weather slash command: current weather, help and subscriptions."""

from __future__ import annotations

import functools
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from demokit.weather.formatter import format_as_attachment
from demokit.weather.messages import CommandArgs, CommandResponse, MessageService, PluginHost
from demokit.weather.models import Subscription
from demokit.weather.parser import CommandParseError, parse_subscribe_command
from demokit.weather.service import WeatherDataError, WeatherService
from demokit.weather.subscriptions import SubscriptionManager

log = logging.getLogger(__name__)

TRIGGER = "weather"

HELP_TEXT = (
    "**Weather Bot Commands**\n\n"
    "**Basic Commands:**\n"
    "- `/weather <location>` - Get current weather for a location\n"
    "- `/weather help` - Show this help message\n"
    "- `/weather list` - List active subscriptions in this channel\n"
    "- `/weather list --all` - List all subscriptions on the server\n\n"
    "**Subscription Commands:**\n"
    "- `/weather subscribe --location <location> --frequency <frequency>` - Subscribe to weather updates\n"
    "- `/weather unsubscribe <subscription_id>` - Unsubscribe from specific weather updates\n\n"
    "**Parameters:**\n"
    "- `location` - Any location name (returns random weather data)\n"
    "- `frequency` - How often to send updates in milliseconds (e.g., 3600000 for hourly) "
    "or duration (e.g., 1h, 30m)\n\n"
    "**Examples:**\n"
    "- `/weather London` - Get current weather for London\n"
    "- `/weather subscribe --location Tokyo --frequency 1h` - Get hourly weather updates for Tokyo\n"
    "- `/weather subscribe --location \"New York\" --frequency 30m` - Get updates every 30 minutes for New York"
)

MISSING_LOCATION_TEXT = (
    "Please provide a location. Example: `/weather New York` or use `/weather help` for more commands."
)
SUBSCRIBE_USAGE_TEXT = (
    "Usage: `/weather subscribe --location <location> --frequency <frequency>` or "
    "`/weather subscribe <location> <frequency>`. Example: "
    "`/weather subscribe --location \"New York\" --frequency 1h`"
)
UNSUBSCRIBE_USAGE_TEXT = (
    "Usage: `/weather unsubscribe <subscription_id>`. Use `/weather list` to see your subscriptions."
)

COMMAND_DEFINITION: dict[str, Any] = {
    "trigger": TRIGGER,
    "description": "Weather Bot Commands",
    "display_name": "Weather",
    "auto_complete": True,
    "auto_complete_desc": "Get weather data and manage subscriptions",
    "auto_complete_hint": "[location] or [command]",
    "autocomplete_data": {
        "trigger": TRIGGER,
        "help_text": "Weather Bot Commands",
        "sub_commands": [
            {"trigger": "help", "help_text": "Show help information"},
            {
                "trigger": "list",
                "help_text": "List active subscriptions in this channel",
                "arguments": [
                    {
                        "type": "StaticList",
                        "data": {
                            "possible_arguments": [
                                {"item": "--all", "help_text": "Show all subscriptions on the server"}
                            ]
                        },
                        "help_text": "Optional: show all subscriptions on server",
                        "required": False,
                    }
                ],
            },
            {
                "trigger": "subscribe",
                "help_text": "Subscribe to weather updates",
                "arguments": [
                    {
                        "type": "TextInput",
                        "data": {"hint": "[location]"},
                        "name": "location",
                        "help_text": "Location for weather updates",
                        "required": True,
                    },
                    {
                        "type": "TextInput",
                        "data": {"hint": "[frequency in ms or duration like 1h, 30m]"},
                        "name": "frequency",
                        "help_text": "Update frequency",
                        "required": True,
                    },
                ],
            },
            {
                "trigger": "unsubscribe",
                "help_text": "Unsubscribe from weather updates",
                "arguments": [
                    {
                        "type": "TextInput",
                        "data": {"hint": "[subscription-id]"},
                        "name": "id",
                        "help_text": "Subscription ID",
                        "required": True,
                    }
                ],
            },
        ],
    },
}

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _rfc1123(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    zone = moment.tzname() or "UTC"
    return (
        f"{_DAYS[moment.weekday()]}, {moment.day:02d} {_MONTHS[moment.month - 1]} {moment.year} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d} {zone}"
    )


def _start_thread(target: Callable[[], Any]) -> None:
    threading.Thread(target=target, daemon=True).start()


class CommandHandler:
    """Dispatches /weather commands and replies through the bot."""

    def __init__(
        self,
        host: PluginHost,
        weather_service: WeatherService,
        subscription_manager: SubscriptionManager,
        message_service: MessageService,
        *,
        spawn: Callable[[Callable[[], Any]], Any] = _start_thread,
    ) -> None:
        self.host = host
        self.weather_service = weather_service
        self.subscription_manager = subscription_manager
        self.message_service = message_service
        self._spawn = spawn
        try:
            host.register_command(COMMAND_DEFINITION)
        except Exception as exc:  # registration failure is logged, the handler still works
            log.error("Failed to register weather command: %s", exc)

    def handle(self, args: CommandArgs) -> CommandResponse:
        """Run the command typed in ``args.command``."""
        words = args.command.split()
        if len(words) < 2:
            return self.execute_help(args)

        command = words[1]
        if command in ("help", "--help"):
            return self.execute_help(args)
        if command == "list":
            return self.execute_list(args, len(words) > 2 and words[2] == "--all")
        if command == "subscribe":
            return self.execute_subscribe(args, words)
        if command == "unsubscribe":
            return self.execute_unsubscribe(args, words[2] if len(words) >= 3 else "")
        return self.execute_weather(args, " ".join(words[1:]))

    def execute_help(self, args: CommandArgs) -> CommandResponse:
        """Show the help text to the caller."""
        return self.message_service.send_ephemeral_response(args, HELP_TEXT)

    def execute_weather(self, args: CommandArgs, location: str) -> CommandResponse:
        """Post the current weather for ``location`` in the channel."""
        if not location:
            return self.message_service.send_ephemeral_response(args, MISSING_LOCATION_TEXT)
        try:
            data = self.weather_service.get_weather_data(location)
        except WeatherDataError as exc:
            return self.message_service.send_ephemeral_response(
                args, f"Error fetching weather data: {exc}"
            )
        post = format_as_attachment(data, args.channel_id, self.message_service.bot_user_id)
        return self.message_service.send_public_response(args, post)

    def _channel_name(self, channel_id: str) -> str:
        try:
            channel = self.host.get_channel(channel_id)
        except Exception:  # unknown channels are shown by id
            return channel_id
        return channel.get("display_name") or channel.get("name") or ""

    def execute_list(self, args: CommandArgs, show_all: bool) -> CommandResponse:
        """Show the subscriptions of this channel, or of the whole server."""
        if show_all:
            subs = self.subscription_manager.all_subscriptions()
            title = "**All Weather Subscriptions on Server:**"
        else:
            subs = self.subscription_manager.subscriptions_for_channel(args.channel_id)
            title = "**Active Weather Subscriptions in this Channel:**"

        if not subs:
            where = " on this server." if show_all else " in this channel."
            return self.message_service.send_ephemeral_response(
                args, "No active weather subscriptions found" + where
            )

        lines = [title, ""]
        if show_all:
            lines.append("| ID | Location | Channel | Frequency | Last Updated |")
            lines.append("|---|---------|---------|-----------|-------------|")
            lines.extend(
                f"| `{sub.id}` | {sub.location} | {self._channel_name(sub.channel_id)} | "
                f"{sub.update_frequency} ms | {_rfc1123(sub.last_updated)} |"
                for sub in subs
            )
        else:
            lines.append("| ID | Location | Frequency | Last Updated |")
            lines.append("|---|---------|-----------|-------------|")
            lines.extend(
                f"| `{sub.id}` | {sub.location} | {sub.update_frequency} ms | "
                f"{_rfc1123(sub.last_updated)} |"
                for sub in subs
            )
        text = "\n".join(lines) + "\n\nTo unsubscribe, use: `/weather unsubscribe SUBSCRIPTION_ID`"
        return self.message_service.send_ephemeral_response(args, text)

    def execute_subscribe(self, args: CommandArgs, fields: Sequence[str]) -> CommandResponse:
        """Create a subscription from the command words and start its update loop."""
        try:
            parsed = parse_subscribe_command(fields)
        except CommandParseError:
            return self.message_service.send_ephemeral_response(args, SUBSCRIBE_USAGE_TEXT)

        sub_id = f"sub_{time.time_ns()}"
        subscription = Subscription(
            id=sub_id,
            location=parsed.location,
            channel_id=args.channel_id,
            user_id=args.user_id,
            update_frequency=parsed.update_frequency,
            last_updated=datetime.now(timezone.utc),
        )
        self.subscription_manager.add_subscription(subscription)
        self._spawn(functools.partial(self.subscription_manager.start_subscription, subscription))

        message = (
            f"✅ Subscribed to weather updates for **{parsed.location}**. Updates will be sent "
            f"every {parsed.update_frequency} ms (ID: `{sub_id}`)."
        )
        return self.message_service.send_ephemeral_response(args, message)

    def execute_unsubscribe(self, args: CommandArgs, subscription_id: str) -> CommandResponse:
        """Remove a subscription by id."""
        if not subscription_id:
            return self.message_service.send_ephemeral_response(args, UNSUBSCRIBE_USAGE_TEXT)

        sub = self.subscription_manager.get_subscription(subscription_id)
        if sub is not None and self.subscription_manager.remove_subscription(subscription_id):
            return self.message_service.send_ephemeral_response(
                args,
                f"✅ Unsubscribed from weather updates for **{sub.location}** (ID: `{subscription_id}`).",
            )
        return self.message_service.send_ephemeral_response(
            args, f"No subscription found with ID: {subscription_id}"
        )