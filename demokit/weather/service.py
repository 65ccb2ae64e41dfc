"""Weather readings served from a bundled sample file."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import random
from datetime import datetime

from demokit.weather.models import Location, WeatherResponse, WeatherValues

log = logging.getLogger(__name__)

WEATHER_FILE = os.path.join("assets", "weather.json")
LOCATION_TYPE = "city"


class WeatherDataError(RuntimeError):
    """Raised when weather samples cannot be read or none are available."""


def _rfc3339(moment: datetime) -> str:
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


class WeatherService:
    """Hands out randomly chosen sample readings for any requested location."""

    def __init__(self, bundle_path: str | os.PathLike[str], rng: random.Random | None = None) -> None:
        self.bundle_path = os.fspath(bundle_path)
        self.weather_data: list[WeatherValues] = []
        self._random = rng or random.Random()
        try:
            self.load_weather_data()
        except WeatherDataError as exc:
            log.warning("Weather samples not loaded: %s", exc)

    @property
    def weather_file(self) -> str:
        return os.path.join(self.bundle_path, WEATHER_FILE)

    def load_weather_data(self) -> list[WeatherValues]:
        """Read the sample file into ``weather_data`` and return it."""
        try:
            with open(self.weather_file, encoding="utf-8") as handle:
                raw = handle.read()
        except OSError as exc:
            raise WeatherDataError(f"failed to read weather.json: {exc}") from exc
        try:
            decoded = json.loads(raw)
            if decoded is None:
                entries: list[WeatherValues] = []
            elif isinstance(decoded, list):
                entries = [WeatherValues.from_dict(item) for item in decoded]
            else:
                raise ValueError("expected a JSON array")
        except ValueError as exc:
            raise WeatherDataError(f"failed to parse weather.json: {exc}") from exc
        self.weather_data = entries
        return entries

    def get_weather_data(self, location: str) -> WeatherResponse:
        """Return a random sample reading labelled with ``location``."""
        if not self.weather_data:
            try:
                self.load_weather_data()
            except WeatherDataError as exc:
                raise WeatherDataError(f"no weather data available: {exc}") from exc
            if not self.weather_data:
                raise WeatherDataError("no weather data available: weather.json holds no entries")

        values = dataclasses.replace(self._random.choice(self.weather_data))
        return WeatherResponse(
            time=_rfc3339(datetime.now().astimezone()),
            values=values,
            location=Location(lat=0.0, lon=0.0, name=location, type=LOCATION_TYPE),
        )