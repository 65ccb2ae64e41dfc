"""Rendering weather reports as message text and attachments."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from demokit.weather.messages import Post
from demokit.weather.models import WEATHER_CODE_DESCRIPTIONS, WeatherResponse

COMPASS_POINTS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)

# Lower bound of a weather code range and the attachment colour for it.
_COLOUR_BANDS = (
    (8000, "#ff4444"),
    (6000, "#8844ff"),
    (5000, "#4488ff"),
    (4000, "#4488aa"),
    (2000, "#888888"),
    (1100, "#aaaaaa"),
)
CLEAR_COLOUR = "#36a64f"
ATTACHMENT_FOOTER = "Weather Bot"


def _rfc3339(moment: datetime) -> str:
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def wind_direction(degrees: int) -> str:
    """Return the 16-point compass name for a wind bearing in degrees."""
    return COMPASS_POINTS[int((degrees + 11.25) / 22.5) % 16]


def weather_description(code: int) -> str:
    """Return the description of a weather code, or ``"Unknown"``."""
    return WEATHER_CODE_DESCRIPTIONS.get(code, "Unknown")


def location_display(response: WeatherResponse) -> str:
    """Return the location name, or its coordinates when it has none."""
    if response.location.name:
        return response.location.name
    return f"{response.location.lat:.2f},{response.location.lon:.2f}"


def attachment_color(code: int) -> str:
    """Return the attachment colour for a weather code."""
    for lower_bound, colour in _COLOUR_BANDS:
        if code >= lower_bound:
            return colour
    return CLEAR_COLOUR


def format_as_text(response: WeatherResponse) -> str:
    """Render a weather report as Markdown text."""
    values = response.values
    lines = [
        f"🌤️ **Weather for {location_display(response)}**",
        "",
        f"**Condition:** {weather_description(values.weather_code)}",
        f"**Temperature:** {values.temperature:.1f}°C (feels like {values.temperature_apparent:.1f}°C)",
        f"**Humidity:** {values.humidity}%",
        f"**Wind:** {values.wind_speed:.1f} km/h {wind_direction(values.wind_direction)} "
        f"(gusts up to {values.wind_gust:.1f} km/h)",
        f"**Cloud Cover:** {values.cloud_cover}%",
        f"**Precipitation Chance:** {values.precipitation_probability}%",
    ]
    if values.rain_intensity > 0:
        lines.append(f"**Rain Intensity:** {values.rain_intensity:.1f} mm/h")
    return "\n".join(lines).strip()


def _field(title: str, value: str) -> dict[str, Any]:
    return {"title": title, "value": value, "short": True}


def format_as_attachment(
    response: WeatherResponse,
    channel_id: str,
    bot_user_id: str,
    now: datetime | None = None,
) -> Post:
    """Build a bot post carrying the weather report as a message attachment."""
    values = response.values
    fields = [
        _field(
            "Temperature",
            f"{values.temperature:.1f}°C (feels like {values.temperature_apparent:.1f}°C)",
        ),
        _field("Condition", weather_description(values.weather_code)),
        _field("Humidity", f"{values.humidity}%"),
        _field("Wind", f"{values.wind_speed:.1f} km/h {wind_direction(values.wind_direction)}"),
        _field("Cloud Cover", f"{values.cloud_cover}%"),
        _field("Precipitation Chance", f"{values.precipitation_probability}%"),
    ]
    if values.rain_intensity > 0:
        fields.append(_field("Rain Intensity", f"{values.rain_intensity:.1f} mm/h"))
    if values.wind_gust > 0:
        fields.append(_field("Wind Gusts", f"{values.wind_gust:.1f} km/h"))

    moment = now if now is not None else datetime.now().astimezone()
    attachment = {
        "title": f"🌤️ Weather for {location_display(response)}",
        "color": attachment_color(values.weather_code),
        "fields": fields,
        "footer": ATTACHMENT_FOOTER,
        "timestamp": _rfc3339(moment),
    }
    return Post(channel_id=channel_id, user_id=bot_user_id, props={"attachments": [attachment]})