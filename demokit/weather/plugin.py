"""The weather bot plugin: activation, command dispatch and configuration."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping

from demokit.weather.commands import CommandHandler, _start_thread
from demokit.weather.messages import (
    RESPONSE_TYPE_EPHEMERAL,
    CommandArgs,
    CommandResponse,
    MessageService,
    PluginHost,
)
from demokit.weather.service import WeatherService
from demokit.weather.subscriptions import SubscriptionManager

log = logging.getLogger(__name__)

MANIFEST: dict[str, Any] = {
    "id": "com.coltoneshaw.weather",
    "name": "Weather Bot",
    "description": (
        "Weather plugin for getting current weather and subscribing to weather updates. "
        "Creates a bot user named 'Weather Bot' (@weatherbot) to post weather information."
    ),
    "icon_path": "assets/bot.png",
    "version": "0.1.0",
    "min_server_version": "10.7.0",
    "server": {
        "executables": {
            "darwin-amd64": "server/dist/plugin-darwin-amd64",
            "darwin-arm64": "server/dist/plugin-darwin-arm64",
            "linux-amd64": "server/dist/plugin-linux-amd64",
            "linux-arm64": "server/dist/plugin-linux-arm64",
        },
        "executable": "",
    },
    "settings_schema": {
        "header": "Configure the Weather plugin.",
        "footer": (
            "Use this plugin to get weather data and manage weather subscriptions. The plugin "
            "will create a bot user named 'Weather Bot' (@weatherbot) to post weather information."
        ),
        "settings": [],
        "sections": None,
    },
}

BOT_USERNAME = "weatherbot"
BOT_DISPLAY_NAME = "Weather Bot"
BOT_DESCRIPTION = "A bot that provides weather information and updates"
BOT_PROFILE_IMAGE = "/assets/bot.png"
NOT_ACTIVE_TEXT = "The weather plugin is not active."


class WeatherPlugin:
    """Wires the weather services together when the server activates the plugin."""

    def __init__(
        self,
        host: PluginHost,
        *,
        spawn: Callable[[Callable[[], Any]], Any] = _start_thread,
    ) -> None:
        self.host = host
        self._spawn = spawn
        self._config_lock = threading.RLock()
        self.configuration: dict[str, Any] = {}
        self.bot_user_id = ""
        self.weather_service: WeatherService | None = None
        self.message_service: MessageService | None = None
        self.subscription_manager: SubscriptionManager | None = None
        self.command_handler: CommandHandler | None = None

    def on_activate(self) -> None:
        """Create the bot account and start the services."""
        try:
            bundle_path = self.host.get_bundle_path()
        except Exception as exc:  # host failures are reported as activation errors
            raise RuntimeError(f"failed to get bundle path: {exc}") from exc

        try:
            bot_id = self.host.ensure_bot(
                BOT_USERNAME, BOT_DISPLAY_NAME, BOT_DESCRIPTION, BOT_PROFILE_IMAGE
            )
        except Exception as exc:  # host failures are reported as activation errors
            raise RuntimeError(f"failed to ensure bot user: {exc}") from exc
        log.info("Weather bot ensured (bot_id=%s)", bot_id)
        self.bot_user_id = bot_id

        self.weather_service = WeatherService(bundle_path)
        self.message_service = MessageService(self.host, bot_id)
        self.subscription_manager = SubscriptionManager(
            self.host, self.weather_service, self.message_service, spawn=self._spawn
        )
        self.command_handler = CommandHandler(
            self.host,
            self.weather_service,
            self.subscription_manager,
            self.message_service,
            spawn=self._spawn,
        )
        log.info("Weather plugin activated (bundle_path=%s bot_user_id=%s)", bundle_path, bot_id)

    def on_deactivate(self) -> None:
        """Stop every running subscription loop."""
        if self.subscription_manager is not None:
            self.subscription_manager.stop_all()

    def execute_command(self, args: CommandArgs) -> CommandResponse:
        """Run a slash command; failures come back as an ephemeral reply."""
        if self.command_handler is None:
            return CommandResponse(response_type=RESPONSE_TYPE_EPHEMERAL, text=NOT_ACTIVE_TEXT)
        try:
            return self.command_handler.handle(args)
        except Exception as exc:  # any failure is shown to the user instead of crashing
            log.error("Error executing command: %s", exc)
            return CommandResponse(response_type=RESPONSE_TYPE_EPHEMERAL, text=str(exc))

    def on_configuration_change(self, configuration: Mapping[str, Any] | None) -> None:
        """Store a copy of the plugin configuration."""
        if configuration is None:
            configuration = {}
        if not isinstance(configuration, Mapping):
            raise TypeError("failed to load plugin configuration: expected a mapping")
        with self._config_lock:
            self.configuration = dict(configuration)