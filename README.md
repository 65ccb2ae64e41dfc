# demokit

A library for preparing a Mattermost server as a demo environment, and a
weather bot that answers `/weather` slash commands with sample data.

## Modules

- `demokit.config`: loads, validates and saves the JSON setup file
  (`load_config`, `validate_config`, `save_config`, the `Config`,
  `UserConfig`, `TeamConfig`, `ChannelConfig` and `PluginConfig`
  dataclasses, and `ConfigError`).
- `demokit.import_types`: dataclasses for the line types of a bulk-import
  JSONL file, including the custom ones (`channel-category`,
  `channel-banner`, `command`, `plugin`, `user-attribute`, `user-profile`,
  `user-groups`), each with a `from_dict` constructor where it is read from
  JSON.
- `demokit.import_transform`: helpers that rewrite import lines. They pull
  channel memberships out of user records (replacing them with
  `town-square` and `off-topic`), shift post timestamps so the newest post
  lands five minutes in the past, filter a file down to chosen line types
  (`write_filtered_import`) and pack a JSONL file into a zip archive
  (`create_zip_file`). Gathered data is kept in an `ImportState`.
- `demokit.api`: `MattermostAPI`, a thin REST client built on `requests`,
  and `Client`, which logs in as the admin (creating the user with
  `docker exec mattermost mmctl ...` in a `local` environment when login
  returns 401), checks the licence and the API deletion settings,
  categorises channels through the Playbooks actions endpoint, sets channel
  banners and runs slash commands, including in bulk from an import file.
- `demokit.weather`: the weather bot: sample data (`service`), message
  formatting (`formatter`), the subscribe argument parser (`parser`),
  messages and the host interface (`messages`), recurring subscriptions
  (`subscriptions`), the command handler (`commands`) and the plugin
  object (`plugin`).

## The setup file

```json
{
  "environment": "local",
  "server": "http://localhost:8065",
  "admin_username": "sysadmin",
  "admin_password": "password",
  "default_team": "demo",
  "users": [
    {
      "username": "alice",
      "email": "alice@example.com",
      "password": "password",
      "isSystemAdmin": false,
      "teams": ["demo"]
    }
  ]
}
```

`server`, `admin_username` and `admin_password` are required. Every user
needs a username, e-mail address and password. Every team needs `name` and
`displayName`; channel types must be `O` (public) or `P` (private), and
channel commands must start with `/`. Called without a path, `load_config`
tries `config.json` and then `../config.json`.

```python
from demokit.config import ConfigError, load_config

try:
    config = load_config("config.json")
except ConfigError as exc:
    print(f"bad setup file: {exc}")
else:
    print(config.server, config.admin_username)
```

## Talking to the server

```python
from demokit.api import APIError, Client
from demokit.config import load_config
from demokit.import_transform import ImportState

config = load_config("config.json")
client = Client(config.server, config.admin_username, config.admin_password, config=config)

try:
    client.login()
    client.check_license()
    state = ImportState()
    categorized, failed = client.process_channel_categories("bulk_import.jsonl", state)
    client.process_channel_banners("bulk_import.jsonl")
    client.process_commands("bulk_import.jsonl")
except APIError as exc:
    print(f"server said no: {exc}")
```

The `process_*` methods return a pair of counts: entries applied and
entries that failed.

## Preparing import data

```python
from demokit.import_transform import ImportState, create_zip_file, write_filtered_import

state = ImportState()
with open("users.jsonl", "w", encoding="utf-8") as out:
    count = write_filtered_import("bulk_import.jsonl", ["user"], state, out)

create_zip_file("users.jsonl", "users.zip")
print(count, state.channel_memberships)
```

The archive always holds a single entry named `import.jsonl`.

## The weather bot

```python
from demokit.weather.formatter import attachment_color, weather_description, wind_direction
from demokit.weather.parser import CommandParseError, parse_subscribe_command

print(wind_direction(200))          # SSW
print(weather_description(4001))    # Rain
print(attachment_color(8000))       # #ff4444

args = parse_subscribe_command(
    ["/weather", "subscribe", "--location", "New", "York", "--frequency", "1h"]
)
print(args.location, args.update_frequency)  # New York 3600000

try:
    parse_subscribe_command(["/weather", "subscribe", "Tokyo", "10s"])
except CommandParseError as exc:
    print(exc)  # frequencies under 30 seconds are refused
```

Frequencies are given in milliseconds (`60000`) or as a duration (`30s`,
`5m`, `1h`).

`WeatherPlugin` takes an object implementing the `PluginHost` protocol
from `demokit.weather.messages` (posting, channel lookup, key-value
storage, bot creation, command registration). `on_activate` reads sample
readings from `assets/weather.json` in the bundle directory and wires up
the services; `execute_command` handles:

- `/weather <location>`: a random sample reading labelled with the location
- `/weather help`: usage information
- `/weather list` and `/weather list --all`: active subscriptions
- `/weather subscribe --location <location> --frequency <frequency>` (or
  `/weather subscribe <location> <frequency>`)
- `/weather unsubscribe <subscription_id>`

Subscriptions are saved under the key `weather_subscriptions` and restarted
when the plugin is activated again.

## What it does not do

- There is no command-line tool; everything is called from Python.
- There is no end-to-end bulk import run. The package filters and
  rewrites import files and `MattermostAPI` exposes the upload and job
  calls, but nothing here uploads an archive, waits for the import job,
  joins users to their channels or creates sidebar categories.
- Plugin installation, LDAP and user attribute handling are not included;
  their entries are only parsed by `demokit.import_types`.
- No `PluginHost` implementation for a real server is included; the
  weather bot runs against whatever host object you supply.