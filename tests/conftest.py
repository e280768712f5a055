"""Shared pytest fixtures: fake HTTP layer and fake gateway, no network."""

from datetime import date, timedelta

import pytest
import requests

from sentinel_monitor.data_fetch.cache_store import InMemoryCacheStore


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text="", content=b"", headers=None, reason="OK"):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.content = content
        self.headers = headers or {}
        self.reason = reason

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")


class FakeHttpSession:
    """Stands in for ``requests.Session``; replays queued responses and records calls."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.headers = {}

    def _next(self, method, url, kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}")
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)


def stats_payload(observations, output_id="index", bands=("B0",)):
    """Build a statistics API body from ``(date, [mean per band])`` pairs."""
    data = []
    for day, means in observations:
        band_stats = {}
        for band, mean in zip(bands, means):
            if mean is None:
                band_stats[band] = {"stats": {"mean": None, "sampleCount": 0}}
            else:
                band_stats[band] = {"stats": {"mean": mean, "sampleCount": 100}}
        data.append({
            "interval": {"from": f"{day}T00:00:00Z", "to": f"{day}T23:59:59Z"},
            "outputs": {output_id: {"bands": band_stats}},
        })
    return {"data": data}


class FakeGateway:
    """
    Stands in for ``GatewaySession``.

    ``statistics`` maps a collection name to a function
    ``(bbox, start, end) -> payload`` or to a fixed payload.
    """

    def __init__(self, statistics=None, weather=None, image=None, errors=None):
        self.statistics = statistics or {}
        self.weather = weather or {}
        self.image = image
        self.errors = errors or {}
        self.stat_calls = []
        self.weather_calls = []
        self.image_calls = []

    def fetch_statistics(self, bbox, start, end, evalscript, collection, processing=None):
        self.stat_calls.append({
            "bbox": bbox, "start": start, "end": end,
            "collection": collection, "processing": processing,
        })
        if "statistics" in self.errors:
            raise self.errors["statistics"]
        source = self.statistics.get(collection, {"data": []})
        return source(bbox, start, end) if callable(source) else source

    def fetch_weather(self, lat, lon, start, end):
        self.weather_calls.append((lat, lon, start, end))
        if "weather" in self.errors:
            raise self.errors["weather"]
        return dict(self.weather)

    def fetch_image(self, bbox, start, end, evalscript, max_cloud_coverage=40, size_px=512):
        self.image_calls.append({"bbox": bbox, "start": start, "end": end,
                                 "max_cloud_coverage": max_cloud_coverage, "size_px": size_px})
        if "image" in self.errors:
            raise self.errors["image"]
        return self.image


@pytest.fixture
def today():
    return date(2025, 6, 30)


@pytest.fixture
def window_start(today):
    return today - timedelta(days=30)


@pytest.fixture
def store():
    return InMemoryCacheStore()


@pytest.fixture
def point_cell():
    return {"cell_id": "lake_0", "station_id": "lake_0", "bbox": (8.0, 45.0, 8.01, 45.01)}


@pytest.fixture(autouse=True)
def _log_dir(tmp_path, monkeypatch):
    """Keep rotating log files out of the working tree."""
    import sentinel_monitor.config.logging_config as logging_config
    monkeypatch.setattr(logging_config, "LOG_DIR", str(tmp_path / "logs"))
