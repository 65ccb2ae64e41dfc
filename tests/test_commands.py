import json
from datetime import datetime, timezone

import pytest

from demokit.weather.commands import (
    HELP_TEXT,
    MISSING_LOCATION_TEXT,
    SUBSCRIBE_USAGE_TEXT,
    UNSUBSCRIBE_USAGE_TEXT,
    CommandHandler,
)
from demokit.weather.messages import CommandArgs, MessageService
from demokit.weather.models import Subscription
from demokit.weather.service import WeatherService
from demokit.weather.subscriptions import SubscriptionManager


class FakeHost:
    def __init__(self):
        self.ephemeral = []
        self.posts = []
        self.commands = []
        self.store = {}
        self.channels = {"chan1": {"id": "chan1", "name": "town", "display_name": "Town Square"}}

    def send_ephemeral_post(self, user_id, post):
        self.ephemeral.append((user_id, post))

    def create_post(self, post):
        self.posts.append(post)

    def get_channel(self, channel_id):
        if channel_id not in self.channels:
            raise LookupError("missing channel")
        return self.channels[channel_id]

    def get_direct_channel(self, user_id, other_user_id):
        return {"id": "dm"}

    def kv_get(self, key):
        return self.store.get(key)

    def kv_set(self, key, value):
        self.store[key] = value

    def get_bundle_path(self):
        return ""

    def ensure_bot(self, username, display_name, description, profile_image_path):
        return "bot1"

    def register_command(self, command):
        self.commands.append(command)


SAMPLE = {
    "temperature": 20.5,
    "temperatureApparent": 19.0,
    "humidity": 40,
    "precipitationProbability": 10,
    "rainIntensity": 0,
    "windSpeed": 5.0,
    "windGust": 7.0,
    "windDirection": 90,
    "cloudCover": 20,
    "weatherCode": 1000,
}


@pytest.fixture
def env(tmp_path):
    assets = tmp_path / "assets"
    assets.mkdir()
    (assets / "weather.json").write_text(json.dumps([SAMPLE]), encoding="utf-8")
    host = FakeHost()
    service = WeatherService(tmp_path)
    messages = MessageService(host, "bot1")
    manager = SubscriptionManager(host, service, messages, spawn=lambda fn: None)
    spawned = []
    handler = CommandHandler(host, service, manager, messages, spawn=spawned.append)
    return host, handler, manager, spawned


def run(handler, text):
    return handler.handle(CommandArgs(channel_id="chan1", user_id="user1", command=text))


def last_message(host):
    return host.ephemeral[-1][1].message


def test_registers_weather_command(env):
    host, *_ = env
    assert host.commands[0]["trigger"] == "weather"


@pytest.mark.parametrize("text", ["/weather", "/weather help", "/weather --help"])
def test_help(env, text):
    host, handler, _, _ = env
    response = run(handler, text)
    assert response.text == ""
    assert last_message(host) == HELP_TEXT
    assert host.ephemeral[-1][0] == "user1"


def test_weather_for_location_posts_attachment(env):
    host, handler, _, _ = env
    run(handler, "/weather New York")
    assert len(host.posts) == 1
    post = host.posts[0]
    assert post.user_id == "bot1"
    assert post.channel_id == "chan1"
    assert post.props["attachments"][0]["title"] == "🌤️ Weather for New York"


def test_weather_empty_location(env):
    host, handler, _, _ = env
    handler.execute_weather(CommandArgs(channel_id="chan1", user_id="user1"), "")
    assert last_message(host) == MISSING_LOCATION_TEXT


def test_weather_without_data(tmp_path):
    host = FakeHost()
    service = WeatherService(tmp_path)
    messages = MessageService(host, "bot1")
    manager = SubscriptionManager(host, service, messages, spawn=lambda fn: None)
    handler = CommandHandler(host, service, manager, messages)
    run(handler, "/weather Paris")
    assert last_message(host).startswith("Error fetching weather data:")
    assert host.posts == []


def test_list_empty(env):
    host, handler, _, _ = env
    run(handler, "/weather list")
    assert last_message(host) == "No active weather subscriptions found in this channel."
    run(handler, "/weather list --all")
    assert last_message(host) == "No active weather subscriptions found on this server."


def test_subscribe_adds_and_spawns(env):
    host, handler, manager, spawned = env
    run(handler, "/weather subscribe --location Tokyo --frequency 1h")
    subs = manager.all_subscriptions()
    assert len(subs) == 1
    assert subs[0].location == "Tokyo"
    assert subs[0].update_frequency == 3600000
    assert subs[0].channel_id == "chan1"
    assert len(spawned) == 1
    assert f"(ID: `{subs[0].id}`)" in last_message(host)
    assert "every 3600000 ms" in last_message(host)


def test_subscribe_bad_arguments(env):
    host, handler, manager, spawned = env
    run(handler, "/weather subscribe Tokyo 10")
    assert last_message(host) == SUBSCRIBE_USAGE_TEXT
    assert manager.all_subscriptions() == []
    assert spawned == []


def test_unsubscribe(env):
    host, handler, manager, _ = env
    run(handler, "/weather unsubscribe")
    assert last_message(host) == UNSUBSCRIBE_USAGE_TEXT
    run(handler, "/weather unsubscribe nope")
    assert last_message(host) == "No subscription found with ID: nope"
    manager.add_subscription(Subscription(id="s1", location="Oslo", channel_id="chan1"))
    run(handler, "/weather unsubscribe s1")
    assert "**Oslo**" in last_message(host)
    assert manager.get_subscription("s1") is None


def test_list_formats_table(env):
    host, handler, manager, _ = env
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    manager.add_subscription(
        Subscription(id="s1", location="Oslo", channel_id="chan1", update_frequency=60000, last_updated=moment)
    )
    manager.add_subscription(Subscription(id="s2", location="Rome", channel_id="gone", last_updated=moment))
    run(handler, "/weather list")
    text = last_message(host)
    assert "| `s1` | Oslo | 60000 ms | Tue, 02 Jan 2024 03:04:05 UTC |" in text
    assert "Rome" not in text
    run(handler, "/weather list --all")
    text = last_message(host)
    assert "| Town Square |" in text
    assert "| `s2` | Rome | gone |" in text
    assert text.endswith("`/weather unsubscribe SUBSCRIPTION_ID`")