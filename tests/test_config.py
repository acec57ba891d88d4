import json

from birdroute import config


def test_load_planner_config_missing_file(tmp_path):
    assert config.load_planner_config(str(tmp_path / "nope.json")) is False


def test_load_planner_config_updates_globals(tmp_path, monkeypatch):
    for name in (
        "START",
        "END",
        "DEFAULT_MAX_STOPS",
        "DEFAULT_POLICY",
        "TRIP_START_HOUR",
        "GEOCODE_MAX_CONCURRENT",
        "GEOCODE_MIN_INTERVAL_MS",
        "ADDRESS_CACHE_TTL_DAYS",
        "OSRM_BASE_URL",
    ):
        monkeypatch.setattr(config, name, getattr(config, name))

    path = tmp_path / "planner_config.json"
    path.write_text(
        json.dumps(
            {
                "start": {"name": "Cabin", "lat": 38.9, "lon": -74.9},
                "max_stops": 8,
                "policy": "Species",
                "trip_start_hour": 5,
                "geocode": {"max_concurrent": 1, "min_interval_ms": 1000},
                "cache": {"ttl_days": 7},
                "osrm": {"base_url": "http://localhost:5000/"},
            }
        ),
        encoding="utf-8",
    )

    assert config.load_planner_config(str(path)) is True
    assert config.START == {"lat": 38.9, "lng": -74.9, "name": "Cabin", "address": None}
    assert config.END is None
    assert config.DEFAULT_MAX_STOPS == 8
    assert config.DEFAULT_POLICY == "species"
    assert config.TRIP_START_HOUR == 5
    assert config.GEOCODE_MAX_CONCURRENT == 1
    assert config.GEOCODE_MIN_INTERVAL_MS == 1000
    assert config.ADDRESS_CACHE_TTL_DAYS == 7.0
    assert config.OSRM_BASE_URL == "http://localhost:5000"
