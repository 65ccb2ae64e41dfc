import json
import threading

import pytest

from demokit.weather.messages import CommandArgs
from demokit.weather.plugin import NOT_ACTIVE_TEXT, WeatherPlugin

SAMPLE = {"temperature": 10.0, "weatherCode": 4001, "humidity": 80}


class FakeHost:
    def __init__(self, bundle_path, fail_bundle=False, fail_bot=False, fail_ephemeral=False):
        self.bundle_path = bundle_path
        self.fail_bundle = fail_bundle
        self.fail_bot = fail_bot
        self.fail_ephemeral = fail_ephemeral
        self.ephemeral = []
        self.posts = []
        self.bots = []
        self.store = {}

    def send_ephemeral_post(self, user_id, post):
        if self.fail_ephemeral:
            raise RuntimeError("boom")
        self.ephemeral.append((user_id, post))

    def create_post(self, post):
        self.posts.append(post)

    def get_channel(self, channel_id):
        return {"id": channel_id, "name": "c", "display_name": "C"}

    def get_direct_channel(self, user_id, other_user_id):
        return {"id": "dm"}

    def kv_get(self, key):
        return self.store.get(key)

    def kv_set(self, key, value):
        self.store[key] = value

    def get_bundle_path(self):
        if self.fail_bundle:
            raise OSError("no bundle")
        return self.bundle_path

    def ensure_bot(self, username, display_name, description, profile_image_path):
        if self.fail_bot:
            raise RuntimeError("no bot")
        self.bots.append((username, display_name, profile_image_path))
        return "bot42"

    def register_command(self, command):
        pass


@pytest.fixture
def bundle(tmp_path):
    assets = tmp_path / "assets"
    assets.mkdir()
    (assets / "weather.json").write_text(json.dumps([SAMPLE]), encoding="utf-8")
    return str(tmp_path)


def test_activate_and_run_command(bundle):
    host = FakeHost(bundle)
    plugin = WeatherPlugin(host, spawn=lambda fn: None)
    plugin.on_activate()
    assert host.bots == [("weatherbot", "Weather Bot", "/assets/bot.png")]
    assert plugin.bot_user_id == "bot42"
    plugin.execute_command(CommandArgs(channel_id="c1", user_id="u1", command="/weather Lima"))
    assert host.posts[0].user_id == "bot42"
    assert host.posts[0].props["attachments"][0]["title"] == "🌤️ Weather for Lima"


def test_execute_before_activation(bundle):
    plugin = WeatherPlugin(FakeHost(bundle))
    response = plugin.execute_command(CommandArgs(command="/weather help"))
    assert response.text == NOT_ACTIVE_TEXT


def test_bundle_path_failure(bundle):
    plugin = WeatherPlugin(FakeHost(bundle, fail_bundle=True))
    with pytest.raises(RuntimeError, match="failed to get bundle path"):
        plugin.on_activate()


def test_bot_failure(bundle):
    plugin = WeatherPlugin(FakeHost(bundle, fail_bot=True))
    with pytest.raises(RuntimeError, match="failed to ensure bot user"):
        plugin.on_activate()


def test_command_error_becomes_response(bundle):
    host = FakeHost(bundle, fail_ephemeral=True)
    plugin = WeatherPlugin(host, spawn=lambda fn: None)
    plugin.on_activate()
    response = plugin.execute_command(CommandArgs(channel_id="c1", user_id="u1", command="/weather help"))
    assert response.text == "boom"
    assert response.response_type == "ephemeral"


def test_deactivate_stops_subscription_loops(bundle):
    host = FakeHost(bundle)
    threads = []

    def spawn(fn):
        thread = threading.Thread(target=fn, daemon=True)
        threads.append(thread)
        thread.start()

    plugin = WeatherPlugin(host, spawn=spawn)
    plugin.on_activate()
    plugin.execute_command(
        CommandArgs(channel_id="c1", user_id="u1", command="/weather subscribe Lima 30s")
    )
    assert len(threads) == 1
    for _ in range(200):
        if host.posts:
            break
        threads[0].join(timeout=0.01)
    plugin.on_deactivate()
    threads[0].join(timeout=5)
    assert not threads[0].is_alive()
    assert len(host.posts) == 1


def test_configuration_change(bundle):
    plugin = WeatherPlugin(FakeHost(bundle))
    source = {"units": "metric"}
    plugin.on_configuration_change(source)
    source["units"] = "imperial"
    assert plugin.configuration == {"units": "metric"}
    plugin.on_configuration_change(None)
    assert plugin.configuration == {}
    with pytest.raises(TypeError):
        plugin.on_configuration_change(["not", "a", "mapping"])