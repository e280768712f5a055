"""End-to-end tests for data_fetch/data_pipeline.py with a fake gateway and in-memory caches."""

from datetime import date

import numpy as np
import pytest
import requests

from conftest import FakeGateway, FakeHttpSession, FakeResponse, stats_payload
from sentinel_monitor.config.constants import COPERNICUS_TOKEN_URL
from sentinel_monitor.config.projects import ProjectConfigError
from sentinel_monitor.data_fetch.cache_store import InMemoryCacheStore
from sentinel_monitor.data_fetch.copernicus_client import AuthError, GatewayError, GatewaySession
from sentinel_monitor.data_fetch.data_pipeline import DataPipeline
from sentinel_monitor.data_fetch.weather_client import WeatherClient

TODAY = date(2025, 6, 5)
WEATHER = {f"2025-06-0{d}": 20.0 for d in range(1, 6)}

PROJECTS = {
    "lake": {
        "id": "lake",
        "name": "Test Lake",
        "kind": "water-quality",
        "description": "",
        "lookback_days": 4,
        "stations": [
            {"id": "lake_a", "name": "Pt. A", "lat": 45.9, "lon": 8.6},
            {"id": "lake_b", "name": "Pt. B", "lat": 45.95, "lon": 8.65},
        ],
    },
    "vines": {
        "id": "vines",
        "name": "Test Vineyard",
        "kind": "vineyard",
        "description": "",
        "lookback_days": 4,
        "stations": [
            {"id": "v0", "name": "Row 0", "lat": 43.6, "lon": 11.4},
            {"id": "block", "name": "Block", "lat": 43.505, "lon": 11.31,
             "bbox": [11.3, 43.5, 11.32, 43.51], "grid_shape": [2, 1]},
        ],
    },
    "snow": {
        "id": "snow",
        "name": "Test Snow",
        "kind": "snow",
        "description": "",
        "lookback_days": 4,
        "stations": [{"id": "peak", "name": "Peak", "lat": 45.97, "lon": 7.65}],
    },
}


def _lake_statistics(bbox, start, end):
    return stats_payload([("2025-06-01", [0.2]), ("2025-06-05", [0.6])])


def _vine_optical(bbox, start, end):
    if bbox[0] == 11.3:  # block_0
        return stats_payload([("2025-06-01", [0.6, 0.0])], output_id="INDICES", bands=("B0", "B1"))
    if bbox[0] > 11.39:  # v0
        return stats_payload([("2025-06-01", [0.8, 0.2]), ("2025-06-05", [0.8, -0.1])],
                             output_id="INDICES", bands=("B0", "B1"))
    return {"data": []}


def _vine_radar(bbox, start, end):
    return stats_payload([("2025-06-03", [-12.0])])


def _pipeline(gateway, optical=None, radar=None):
    return DataPipeline(
        session=gateway,
        optical_store=optical or InMemoryCacheStore(),
        radar_store=radar or InMemoryCacheStore(),
        projects=PROJECTS,
        radar_delay_s=0.0,
    )


def _station(daily, station_id):
    return daily[daily["station_id"] == station_id].reset_index(drop=True)


# ---------------------------------------------------------------------------
# Water quality
# ---------------------------------------------------------------------------

def test_lake_end_to_end():
    gateway = FakeGateway(statistics={"sentinel-2-l2a": _lake_statistics}, weather=WEATHER)
    result = _pipeline(gateway).fetch_project("lake", TODAY)

    daily = result["daily"]
    assert len(daily) == 10
    a = _station(daily, "lake_a")
    assert a["index_value"].tolist() == pytest.approx([0.2, 0.3, 0.4, 0.5, 0.6])
    assert a["is_interpolated"].tolist() == [False, True, True, True, False]
    assert a["temperature"].tolist() == [20.0] * 5
    assert a["bloom_probability"].iloc[2] == pytest.approx(61.54, abs=0.01)

    assert result["window"] == {"start": "2025-06-01", "end": "2025-06-05"}
    assert len(gateway.weather_calls) == 1
    assert gateway.weather_calls[0][:2] == (45.9, 8.6)
    assert result["data_quality"]["errors"] == {}
    assert result["data_quality"]["cells"] == 2


def test_lake_aggregate_and_kpis():
    gateway = FakeGateway(statistics={"sentinel-2-l2a": _lake_statistics}, weather=WEATHER)
    result = _pipeline(gateway).fetch_project("lake", TODAY)

    agg = result["aggregate"]
    assert agg["index_value"].tolist() == pytest.approx([0.2, 0.3, 0.4, 0.5, 0.6])
    assert agg["spatial_coverage"].tolist() == [100.0, 0.0, 0.0, 0.0, 100.0]
    assert result["aggregate_kpi"]["latest_index_value"] == pytest.approx(0.6)
    assert [k["status"] for k in result["kpis"]] == ["strong_bloom", "strong_bloom"]


def test_second_run_within_freshness_makes_no_statistics_calls():
    gateway = FakeGateway(statistics={"sentinel-2-l2a": _lake_statistics}, weather=WEATHER)
    optical = InMemoryCacheStore()
    pipeline = _pipeline(gateway, optical=optical)

    first = pipeline.fetch_project("lake", TODAY)
    calls = len(gateway.stat_calls)
    second = pipeline.fetch_project("lake", TODAY)

    assert calls == 2
    assert len(gateway.stat_calls) == calls
    assert optical.write_count == 1
    assert second["daily"]["index_value"].tolist() == pytest.approx(first["daily"]["index_value"].tolist())


def test_weather_failure_is_recorded_not_fatal():
    gateway = FakeGateway(statistics={"sentinel-2-l2a": _lake_statistics},
                          errors={"weather": requests.ConnectionError("down")})
    result = _pipeline(gateway).fetch_project("lake", TODAY)

    assert "weather" in result["data_quality"]["errors"]
    assert result["daily"]["temperature"].isna().all()
    assert result["daily"]["bloom_probability"].isna().all()
    assert result["daily"]["index_value"].notna().all()


class _ArchiveBackedGateway(FakeGateway):
    """Fake statistics, real ``WeatherClient`` over a canned HTTP session."""

    def __init__(self, weather_body, **kwargs):
        super().__init__(**kwargs)
        self.weather_client = WeatherClient(session=FakeHttpSession([FakeResponse(json_data=weather_body)]))

    def fetch_weather(self, lat, lon, start, end):
        return self.weather_client.get_daily_mean_temperature(lat, lon, start, end)


@pytest.mark.parametrize("body", [
    {"daily": None},
    {"daily": {"time": ["2025-06-01"], "temperature_2m_mean": ["warm"]}},
])
def test_malformed_weather_body_is_recorded_not_fatal(body):
    gateway = _ArchiveBackedGateway(body, statistics={"sentinel-2-l2a": _lake_statistics})
    result = _pipeline(gateway).fetch_project("lake", TODAY)

    assert "weather" in result["data_quality"]["errors"]
    assert result["daily"]["temperature"].isna().all()
    assert result["daily"]["index_value"].notna().all()


def test_statistics_failure_falls_back_to_cache():
    optical = InMemoryCacheStore({"lake_a": [{"date": "2025-05-20", "value": 0.1, "secondary_value": None}]})
    gateway = FakeGateway(errors={"statistics": GatewayError("503")}, weather=WEATHER)
    result = _pipeline(gateway, optical=optical).fetch_project("lake", TODAY)

    assert len(result["daily"]) == 10
    assert result["daily"]["index_value"].isna().all()
    assert optical.write_count == 0


# ---------------------------------------------------------------------------
# Vineyard
# ---------------------------------------------------------------------------

def test_vineyard_water_stress_radar_and_grid():
    gateway = FakeGateway(
        statistics={"sentinel-2-l2a": _vine_optical, "sentinel-1-grd": _vine_radar},
        weather=WEATHER,
    )
    result = _pipeline(gateway).fetch_project("vines", TODAY)
    daily = result["daily"]

    v0 = _station(daily, "v0")
    assert v0["ndmi_value"].tolist() == pytest.approx([0.2, 0.125, 0.05, -0.025, -0.1])
    assert v0["water_stress"].tolist() == pytest.approx([0.0, 25.0, 50.0, 75.0, 100.0])
    assert np.isnan(v0["radar_value"].iloc[0])
    assert v0["radar_value"].iloc[2:].tolist() == [-12.0, -12.0, -12.0]

    block = _station(daily, "block")
    assert len(block) == 5
    assert block["cell_id"].unique().tolist() == ["block"]
    assert block["index_value"].iloc[0] == pytest.approx(0.6)
    assert block["water_stress"].iloc[0] == pytest.approx(66.67, abs=0.01)
    assert block["spatial_coverage"].iloc[0] == 50.0

    collections = [c["collection"] for c in gateway.stat_calls]
    assert collections.count("sentinel-2-l2a") == 3
    assert collections.count("sentinel-1-grd") == 3
    assert result["data_quality"]["cells"] == 3
    assert result["aggregate"] is None
    assert result["kpis"][0]["latest_ndmi_value"] == pytest.approx(-0.1)


def test_snow_has_no_aggregate_or_radar():
    gateway = FakeGateway(weather=WEATHER)
    result = _pipeline(gateway).fetch_project("snow", TODAY)

    assert result["aggregate"] is None
    assert result["aggregate_kpi"] is None
    assert {c["collection"] for c in gateway.stat_calls} == {"sentinel-2-l2a"}
    assert result["kpis"][0]["status"] == "missing"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def _auth_failing_pipeline():
    optical = InMemoryCacheStore({"lake_a": [{"date": "2025-06-02", "value": 0.3, "secondary_value": None}]})
    gateway = FakeGateway(errors={"statistics": AuthError("invalid_client")}, weather=WEATHER)
    return _pipeline(gateway, optical=optical), gateway


def test_auth_error_aborts_fetch_project():
    pipeline, _ = _auth_failing_pipeline()
    with pytest.raises(AuthError):
        pipeline.fetch_project("lake", TODAY)


def test_fetch_project_safe_serves_cache_on_auth_error():
    pipeline, gateway = _auth_failing_pipeline()
    result = pipeline.fetch_project_safe("lake", TODAY)

    assert result["data_quality"]["offline"] is True
    assert "invalid_client" in result["data_quality"]["errors"]["auth"]
    assert result["kpis"][0]["latest_index_value"] == pytest.approx(0.3)
    assert result["kpis"][1]["latest_index_value"] is None
    assert len(gateway.stat_calls) == 1


def test_rejected_credentials_request_one_token_per_run():
    stations = [{"id": f"pt{i}", "name": f"Pt. {i}", "lat": 45.9 + i * 0.01, "lon": 8.6} for i in range(6)]
    projects = {"six": dict(PROJECTS["lake"], id="six", stations=stations)}
    http = FakeHttpSession([FakeResponse(401, text="invalid_client", reason="Unauthorized")] * 6)
    weather = WeatherClient(session=FakeHttpSession([
        FakeResponse(json_data={"daily": {"time": ["2025-06-01"], "temperature_2m_mean": [20.0]}}),
    ]))
    gateway = GatewaySession("id", "bad", session=http, weather_client=weather)
    pipeline = DataPipeline(session=gateway, optical_store=InMemoryCacheStore(),
                            radar_store=InMemoryCacheStore(), projects=projects)

    with pytest.raises(AuthError, match="401"):
        pipeline.fetch_project("six", TODAY)
    assert [c["url"] for c in http.calls] == [COPERNICUS_TOKEN_URL]


# ---------------------------------------------------------------------------
# Latest visual & configuration
# ---------------------------------------------------------------------------

def test_latest_visual_is_data_uri():
    gateway = FakeGateway(image=b"png-bytes")
    uri = _pipeline(gateway).get_latest_visual("lake_a", TODAY)

    assert uri == "data:image/png;base64,cG5nLWJ5dGVz"
    call = gateway.image_calls[0]
    assert call["start"] == date(2025, 4, 6)
    assert call["max_cloud_coverage"] == 40
    assert call["size_px"] == 512


def test_latest_visual_none_without_scene():
    assert _pipeline(FakeGateway(image=None)).get_latest_visual("lake_a", TODAY) is None


def test_latest_visual_none_on_gateway_error():
    gateway = FakeGateway(errors={"image": GatewayError("500")})
    assert _pipeline(gateway).get_latest_visual("lake_a", TODAY) is None


def test_latest_visual_auth_error_propagates():
    gateway = FakeGateway(errors={"image": AuthError("expired")})
    with pytest.raises(AuthError):
        _pipeline(gateway).get_latest_visual("lake_a", TODAY)


def test_unknown_ids_rejected():
    pipeline = _pipeline(FakeGateway())
    with pytest.raises(ProjectConfigError):
        pipeline.fetch_project("atlantis", TODAY)
    with pytest.raises(ProjectConfigError):
        pipeline.get_latest_visual("nowhere", TODAY)


def test_invalid_configuration_rejected_on_construction():
    broken = {"x": {"id": "x", "name": "X", "kind": "desert", "stations": []}}
    with pytest.raises(ProjectConfigError):
        DataPipeline(session=FakeGateway(), optical_store=InMemoryCacheStore(),
                     radar_store=InMemoryCacheStore(), projects=broken)
