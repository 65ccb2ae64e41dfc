import json
import random
from datetime import datetime

import pytest

from demokit.weather.models import WeatherValues
from demokit.weather.service import WeatherDataError, WeatherService

SAMPLES = [
    {"temperature": 21.5, "humidity": 40, "weatherCode": 1000, "windDirection": 90},
    {"temperature": -3.0, "humidity": 85, "weatherCode": 5000, "rainIntensity": 0.5},
]


def write_samples(bundle, samples):
    assets = bundle / "assets"
    assets.mkdir(exist_ok=True)
    (assets / "weather.json").write_text(json.dumps(samples), encoding="utf-8")


def test_loads_samples_from_bundle(tmp_path):
    write_samples(tmp_path, SAMPLES)
    service = WeatherService(tmp_path)
    assert service.weather_data == [WeatherValues.from_dict(item) for item in SAMPLES]


def test_response_carries_requested_location(tmp_path):
    write_samples(tmp_path, SAMPLES)
    service = WeatherService(tmp_path, rng=random.Random(1))
    response = service.get_weather_data("Reykjavik")
    assert response.location.name == "Reykjavik"
    assert response.location.type == "city"
    assert (response.location.lat, response.location.lon) == (0.0, 0.0)
    assert response.values in service.weather_data


def test_single_sample_is_always_chosen(tmp_path):
    write_samples(tmp_path, SAMPLES[:1])
    service = WeatherService(tmp_path)
    for _ in range(5):
        assert service.get_weather_data("x").values == WeatherValues.from_dict(SAMPLES[0])


def test_response_values_are_copies(tmp_path):
    write_samples(tmp_path, SAMPLES[:1])
    service = WeatherService(tmp_path)
    response = service.get_weather_data("x")
    response.values.temperature = 99.0
    assert service.weather_data[0].temperature == SAMPLES[0]["temperature"]


def test_response_time_is_rfc3339(tmp_path):
    write_samples(tmp_path, SAMPLES)
    response = WeatherService(tmp_path).get_weather_data("x")
    parsed = datetime.fromisoformat(response.time.replace("Z", "+00:00"))
    assert parsed.tzinfo is not None
    assert parsed.microsecond == 0


def test_missing_file_does_not_break_construction(tmp_path):
    service = WeatherService(tmp_path)
    assert service.weather_data == []
    with pytest.raises(WeatherDataError, match="no weather data available"):
        service.get_weather_data("x")


def test_reloads_when_file_appears_later(tmp_path):
    service = WeatherService(tmp_path)
    write_samples(tmp_path, SAMPLES[:1])
    assert service.get_weather_data("x").values == WeatherValues.from_dict(SAMPLES[0])


def test_invalid_json_raises(tmp_path):
    assets = tmp_path / "assets"
    assets.mkdir()
    (assets / "weather.json").write_text("{not json", encoding="utf-8")
    service = WeatherService(tmp_path)
    with pytest.raises(WeatherDataError, match="failed to parse weather.json"):
        service.load_weather_data()


def test_wrong_field_type_raises(tmp_path):
    write_samples(tmp_path, [{"humidity": "wet"}])
    with pytest.raises(WeatherDataError, match="failed to parse"):
        WeatherService(tmp_path).load_weather_data()


def test_empty_sample_list_raises_on_request(tmp_path):
    write_samples(tmp_path, [])
    with pytest.raises(WeatherDataError, match="no weather data available"):
        WeatherService(tmp_path).get_weather_data("x")