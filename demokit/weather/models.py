"""Weather data and subscription records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

WEATHER_CODE_DESCRIPTIONS: dict[int, str] = {
    1000: "Clear",
    1100: "Mostly Clear",
    1101: "Partly Cloudy",
    1102: "Mostly Cloudy",
    1001: "Cloudy",
    2000: "Fog",
    2100: "Light Fog",
    4000: "Drizzle",
    4001: "Rain",
    4200: "Light Rain",
    4201: "Heavy Rain",
    5000: "Snow",
    5001: "Flurries",
    5100: "Light Snow",
    5101: "Heavy Snow",
    6000: "Freezing Drizzle",
    6001: "Freezing Rain",
    6200: "Light Freezing Rain",
    6201: "Heavy Freezing Rain",
    7000: "Ice Pellets",
    7101: "Heavy Ice Pellets",
    7102: "Light Ice Pellets",
    8000: "Thunderstorm",
}

_TIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})$"
)


def _float(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field '{key}' must be a number")
    return float(value)


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field '{key}' must be an integer")
    return value


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field '{key}' must be a string")
    return value


def _parse_time(text: str) -> datetime:
    match = _TIME_RE.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "").ljust(6, "0")[:6])
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz
    )


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass
class WeatherValues:
    """One set of weather readings."""

    temperature: float = 0.0
    temperature_apparent: float = 0.0
    humidity: int = 0
    precipitation_probability: int = 0
    rain_intensity: float = 0.0
    wind_speed: float = 0.0
    wind_gust: float = 0.0
    wind_direction: int = 0
    cloud_cover: int = 0
    weather_code: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> WeatherValues:
        """Build readings from a decoded JSON object with camel-case keys."""
        if not isinstance(data, dict):
            raise ValueError("weather entry must be a JSON object")
        return cls(
            temperature=_float(data, "temperature"),
            temperature_apparent=_float(data, "temperatureApparent"),
            humidity=_int(data, "humidity"),
            precipitation_probability=_int(data, "precipitationProbability"),
            rain_intensity=_float(data, "rainIntensity"),
            wind_speed=_float(data, "windSpeed"),
            wind_gust=_float(data, "windGust"),
            wind_direction=_int(data, "windDirection"),
            cloud_cover=_int(data, "cloudCover"),
            weather_code=_int(data, "weatherCode"),
        )


@dataclass
class Location:
    """Where a weather report applies."""

    lat: float = 0.0
    lon: float = 0.0
    name: str = ""
    type: str = ""


@dataclass
class WeatherResponse:
    """A weather report for a location at a time."""

    time: str = ""
    values: WeatherValues = field(default_factory=WeatherValues)
    location: Location = field(default_factory=Location)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Subscription:
    """Periodic weather updates posted to a channel."""

    id: str = ""
    location: str = ""
    channel_id: str = ""
    user_id: str = ""
    update_frequency: int = 0
    last_updated: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        """Return the subscription in its stored JSON layout."""
        return {
            "id": self.id,
            "location": self.location,
            "channel_id": self.channel_id,
            "user_id": self.user_id,
            "update_frequency": self.update_frequency,
            "last_updated": _format_time(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Subscription:
        """Build a subscription from its stored JSON layout."""
        if not isinstance(data, dict):
            raise ValueError("subscription must be a JSON object")
        raw_time = data.get("last_updated")
        if raw_time is None:
            last_updated = datetime(1, 1, 1, tzinfo=timezone.utc)
        elif isinstance(raw_time, str):
            last_updated = _parse_time(raw_time)
        else:
            raise ValueError("field 'last_updated' must be a string")
        return cls(
            id=_str(data, "id"),
            location=_str(data, "location"),
            channel_id=_str(data, "channel_id"),
            user_id=_str(data, "user_id"),
            update_frequency=_int(data, "update_frequency"),
            last_updated=last_updated,
        )