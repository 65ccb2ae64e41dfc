"""Periodic weather updates for channels, persisted in the plugin key-value store."""

from __future__ import annotations

import functools
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from demokit.weather.formatter import format_as_attachment
from demokit.weather.messages import CommandArgs, MessageService, PluginHost, Post
from demokit.weather.models import Subscription
from demokit.weather.service import WeatherDataError, WeatherService

log = logging.getLogger(__name__)

STORE_KEY = "weather_subscriptions"
MAX_CONSECUTIVE_FAILURES = 5
CHANNEL_GONE = "channel no longer exists"


def _start_thread(target: Callable[[], Any]) -> None:
    threading.Thread(target=target, daemon=True).start()


class SubscriptionManager:
    """Keeps the subscriptions, runs their update loops and saves them."""

    def __init__(
        self,
        host: PluginHost,
        weather_service: WeatherService,
        message_service: MessageService,
        *,
        spawn: Callable[[Callable[[], Any]], Any] = _start_thread,
        autoload: bool = True,
    ) -> None:
        self.host = host
        self.weather_service = weather_service
        self.message_service = message_service
        self._spawn = spawn
        self._subscriptions: dict[str, Subscription] = {}
        self._jobs: dict[str, threading.Event] = {}
        self._lock = threading.RLock()
        if autoload:
            self.load_subscriptions()

    def add_subscription(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions[sub.id] = sub
            self._save()

    def remove_subscription(self, sub_id: str) -> bool:
        """Stop and forget a subscription; return whether it existed."""
        with self._lock:
            if sub_id not in self._subscriptions:
                return False
            self._stop_job(sub_id)
            del self._subscriptions[sub_id]
            self._save()
            return True

    def get_subscription(self, sub_id: str) -> Subscription | None:
        with self._lock:
            return self._subscriptions.get(sub_id)

    def subscriptions_for_channel(self, channel_id: str) -> list[Subscription]:
        with self._lock:
            return [sub for sub in self._subscriptions.values() if sub.channel_id == channel_id]

    def all_subscriptions(self) -> list[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def _stop_job(self, sub_id: str) -> None:
        stop = self._jobs.pop(sub_id, None)
        if stop is not None:
            stop.set()

    def stop_all(self) -> None:
        """Signal every running update loop to stop."""
        with self._lock:
            for sub_id in list(self._jobs):
                self._stop_job(sub_id)

    def _post_update(self, sub: Subscription, args: CommandArgs, data: Any) -> None:
        post = format_as_attachment(data, sub.channel_id, self.message_service.bot_user_id)
        self.message_service.send_public_response(args, post)

    def start_subscription(self, sub: Subscription) -> None:
        """Post updates for ``sub`` until it is stopped; blocks the calling thread."""
        if not self._channel_exists(sub.channel_id):
            log.info(
                "Channel no longer exists, removing subscription (channel_id=%s subscription_id=%s)",
                sub.channel_id, sub.id,
            )
            self._cleanup(sub, CHANNEL_GONE)
            return
        if sub.update_frequency <= 0:
            raise ValueError(f"non-positive update frequency for subscription {sub.id}")

        stop = threading.Event()
        with self._lock:
            self._jobs[sub.id] = stop

        args = CommandArgs(channel_id=sub.channel_id, user_id=sub.user_id)
        try:
            data = self.weather_service.get_weather_data(sub.location)
        except WeatherDataError as exc:
            log.error("Error fetching initial weather data for subscription %s: %s", sub.id, exc)
            self.message_service.send_ephemeral_response(
                args,
                f"⚠️ Could not fetch weather data for subscription to **{sub.location}** "
                f"(ID: `{sub.id}`): {exc}",
            )
        else:
            self._post_update(sub, args, data)

        base_interval = sub.update_frequency / 1000
        interval = base_interval
        failures = 0
        while not stop.wait(interval):
            try:
                data = self.weather_service.get_weather_data(sub.location)
            except WeatherDataError as exc:
                failures += 1
                log.error(
                    "Error fetching weather data for subscription %s (failures=%d): %s",
                    sub.id, failures, exc,
                )
                if failures in (1, MAX_CONSECUTIVE_FAILURES):
                    self.message_service.send_ephemeral_response(
                        args, f"⚠️ Error updating weather for **{sub.location}**: {exc}"
                    )
                if failures >= MAX_CONSECUTIVE_FAILURES:
                    interval = base_interval * 2
                continue

            if failures:
                log.info(
                    "Successfully recovered subscription %s after %d failures", sub.id, failures
                )
                failures = 0
                interval = base_interval

            if not self._channel_exists(sub.channel_id):
                log.info(
                    "Channel no longer exists during update, removing subscription "
                    "(channel_id=%s subscription_id=%s)",
                    sub.channel_id, sub.id,
                )
                self._cleanup(sub, CHANNEL_GONE)
                return

            self._post_update(sub, args, data)
            sub.last_updated = datetime.now(timezone.utc)

        log.info("Stopping subscription %s", sub.id)

    def _save(self) -> None:
        try:
            data = json.dumps(
                {sub_id: sub.to_dict() for sub_id, sub in self._subscriptions.items()},
                sort_keys=True,
                separators=(",", ":"),
                ensure_ascii=False,
            ).encode("utf-8")
        except (TypeError, ValueError) as exc:
            log.error("Failed to marshal subscriptions: %s", exc)
            return
        try:
            self.host.kv_set(STORE_KEY, data)
        except Exception as exc:  # storage failures are logged, not raised
            log.error("Failed to save subscriptions: %s", exc)

    def load_subscriptions(self) -> int:
        """Restore saved subscriptions and start their update loops; return how many."""
        try:
            data = self.host.kv_get(STORE_KEY)
        except Exception as exc:  # storage failures are logged, not raised
            log.warning("Failed to load subscriptions: %s", exc)
            return 0
        if data is None:
            log.debug("No existing subscriptions found")
            return 0
        try:
            decoded = json.loads(data)
            if not isinstance(decoded, dict):
                raise ValueError("expected a JSON object")
            loaded = {key: Subscription.from_dict(value) for key, value in decoded.items()}
        except ValueError as exc:
            log.error("Failed to unmarshal subscriptions: %s", exc)
            return 0

        with self._lock:
            self._subscriptions = loaded
        for sub in loaded.values():
            self._spawn(functools.partial(self.start_subscription, sub))
        log.info("Loaded subscriptions (count=%d)", len(loaded))
        return len(loaded)

    def _channel_exists(self, channel_id: str) -> bool:
        try:
            self.host.get_channel(channel_id)
        except Exception:  # any lookup failure means the channel is unusable
            return False
        return True

    def _cleanup(self, sub: Subscription, reason: str) -> None:
        log.info(
            "Cleaning up invalid subscription (subscription_id=%s channel_id=%s location=%s reason=%s)",
            sub.id, sub.channel_id, sub.location, reason,
        )
        self.remove_subscription(sub.id)
        self._notify_user_of_cleanup(sub, reason)

    def _notify_user_of_cleanup(self, sub: Subscription, reason: str) -> None:
        bot_id = self.message_service.bot_user_id
        try:
            channel = self.host.get_direct_channel(bot_id, sub.user_id)
        except Exception as exc:  # notification is best effort
            log.debug("Could not create DM channel for cleanup notification (user_id=%s): %s", sub.user_id, exc)
            return
        message = (
            "🧹 **Weather Subscription Cleanup**\n\n"
            f"Your weather subscription for **{sub.location}** (ID: `{sub.id}`) has been "
            f"automatically removed because {reason}.\n\n"
            "If you need weather updates, please set up a new subscription in an active channel."
        )
        try:
            self.host.create_post(Post(channel_id=channel["id"], message=message, user_id=bot_id))
        except Exception as exc:  # notification is best effort
            log.debug("Could not send cleanup notification (user_id=%s): %s", sub.user_id, exc)