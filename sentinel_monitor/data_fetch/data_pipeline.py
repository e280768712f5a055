"""
Sentinel Monitor — Project Pipeline Orchestrator

Runs one project end to end and returns a unified dict:
  1. Weather for the representative station
  2. Optical statistics sync for every analysis cell (radar too for vineyards)
  3. Per-station daily series: combine grid cells, normalise, join weather,
     gap-fill, derive risk layers
  4. Project-wide aggregate (water quality) and KPI summaries

Failures of one source are recorded in ``data_quality["errors"]`` and the
run continues; only an ``AuthError`` aborts ``fetch_project``.
"""

import base64
import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from sentinel_monitor.analysis.kpi_summary import aggregate_kpi, aggregate_project, station_kpis
from sentinel_monitor.config.constants import (
    CACHE_DIR,
    DEFAULT_LOOKBACK_DAYS,
    FRESHNESS_DAYS,
    PROJECT_KINDS,
    RADAR_REQUEST_DELAY_S,
    SENSOR_DOMAINS,
    SYNC_MAX_WORKERS,
    VISUAL,
)
from sentinel_monitor.config.evalscripts import TRUE_COLOR
from sentinel_monitor.config.logging_config import setup_logging
from sentinel_monitor.config.projects import PROJECTS, ProjectConfigError, get_project, validate_projects
from sentinel_monitor.data_fetch.cache_store import CacheStore, JsonFileCacheStore
from sentinel_monitor.data_fetch.copernicus_client import AuthError, GatewayError, GatewaySession
from sentinel_monitor.data_fetch.geo_cells import point_bbox, resolve_project_cells
from sentinel_monitor.data_fetch.sync_engine import CellSynchronizer, Throttle
from sentinel_monitor.features.daily_series import DAILY_COLUMNS, combine_cell_observations, fill_gaps, normalize
from sentinel_monitor.features.feature_pipeline import apply_derived_indices
from sentinel_monitor.features.weather_join import join_weather

logger = logging.getLogger(__name__)


class DataPipeline:
    """
    Parameters
    ----------
    session : GatewaySession, optional
        Gateway for statistics, images and weather. Built from the
        environment credentials when omitted.
    optical_store, radar_store : CacheStore, optional
        Observation caches; JSON files under ``cache_dir`` by default.
    projects : dict, optional
        Project configuration, validated on construction.
    """

    def __init__(
        self,
        session: GatewaySession = None,
        optical_store: CacheStore = None,
        radar_store: CacheStore = None,
        projects: Dict = None,
        cache_dir: str = None,
        freshness_days: int = FRESHNESS_DAYS,
        max_workers: int = SYNC_MAX_WORKERS,
        radar_delay_s: float = RADAR_REQUEST_DELAY_S,
    ):
        setup_logging("sentinel_monitor")

        self.projects = projects if projects is not None else PROJECTS
        validate_projects(self.projects)

        cache_dir = Path(cache_dir or CACHE_DIR)
        self.session = session or GatewaySession()
        self.stores = {
            "optical": optical_store or JsonFileCacheStore(cache_dir / SENSOR_DOMAINS["optical"]["cache_file"]),
            "radar": radar_store or JsonFileCacheStore(cache_dir / SENSOR_DOMAINS["radar"]["cache_file"]),
        }
        self.freshness_days = freshness_days
        self.max_workers = max_workers
        self.radar_throttle = Throttle(radar_delay_s)

    # ------------------------------------------------------------------
    # Project run
    # ------------------------------------------------------------------
    def fetch_project(self, project_id: str, today: date = None, offline: bool = False) -> Dict:
        """
        Build the daily frame, aggregate and KPIs of one project.

        Parameters
        ----------
        project_id : str
            Key of the project configuration.
        today : date, optional
            End of the analysis window; defaults to the current date.
        offline : bool
            Serve cached observations only; no gateway calls.

        Returns
        -------
        dict with keys: project, window, daily, aggregate, kpis,
                        aggregate_kpi, fetched_at, data_quality
        """
        project = get_project(project_id, self.projects)
        kind = PROJECT_KINDS[project["kind"]]
        today = today or date.today()
        window_start = today - timedelta(days=project.get("lookback_days", DEFAULT_LOOKBACK_DAYS))
        errors = {}

        logger.info("Running %s (%s) for %s .. %s%s", project_id, project["kind"],
                    window_start, today, " [offline]" if offline else "")

        weather = {}
        if not offline:
            weather = self._fetch_weather(project, window_start, today, errors)

        all_cells = resolve_project_cells(project)
        cells_by_station = {
            s["id"]: [c for c in all_cells if c["station_id"] == s["id"]] for s in project["stations"]
        }

        optical, optical_errors = self._synchronizer("optical", kind["index"], offline).sync_cells(
            all_cells, today, window_start, self.max_workers
        )
        errors.update({f"optical:{k}": v for k, v in optical_errors.items()})

        radar = {}
        if kind["radar"]:
            radar, radar_errors = self._synchronizer("radar", "RADAR", offline).sync_cells(
                all_cells, today, window_start, self.max_workers
            )
            errors.update({f"radar:{k}": v for k, v in radar_errors.items()})

        frames = [
            self._station_frame(station, cells_by_station[station["id"]], optical, radar,
                                weather, window_start, today, project["kind"])
            for station in project["stations"]
        ]
        daily = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=DAILY_COLUMNS)

        aggregate = aggregate_project(daily, project) if kind["aggregate"] else None

        observed = int((~daily["is_interpolated"]).sum()) if not daily.empty else 0
        return {
            "project": {"id": project["id"], "name": project["name"], "kind": project["kind"]},
            "window": {"start": window_start.isoformat(), "end": today.isoformat()},
            "daily": daily,
            "aggregate": aggregate,
            "kpis": station_kpis(daily, project),
            "aggregate_kpi": aggregate_kpi(aggregate, project),
            "fetched_at": datetime.now().isoformat(),
            "data_quality": {
                "offline": offline,
                "cells": len(all_cells),
                "observed_days": observed,
                "weather_days": len(weather),
                "errors": errors,
            },
        }

    def fetch_project_safe(self, project_id: str, today: date = None) -> Dict:
        """``fetch_project``, degrading to cached data when authentication fails."""
        try:
            return self.fetch_project(project_id, today)
        except AuthError as e:
            logger.error("Authentication failed, serving cached data for %s: %s", project_id, e)
            result = self.fetch_project(project_id, today, offline=True)
            result["data_quality"]["errors"]["auth"] = str(e)
            return result

    # ------------------------------------------------------------------
    # Latest true-colour image
    # ------------------------------------------------------------------
    def get_latest_visual(self, station_id: str, today: date = None) -> Optional[str]:
        """
        Base64 PNG data URI of the newest cloud-filtered scene around a
        station, or ``None`` when no scene is available.
        """
        station = self._find_station(station_id)
        today = today or date.today()
        start = today - timedelta(days=VISUAL["lookback_days"])
        bbox = point_bbox(station["lat"], station["lon"], VISUAL["buffer_km"])

        try:
            image = self.session.fetch_image(
                bbox, start, today, TRUE_COLOR,
                max_cloud_coverage=VISUAL["max_cloud_coverage"],
                size_px=VISUAL["size_px"],
            )
        except GatewayError as e:
            logger.error("Failed to fetch latest image for %s: %s", station_id, e)
            return None

        if image is None:
            return None
        return "data:image/png;base64," + base64.b64encode(image).decode("ascii")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _synchronizer(self, domain: str, index_name: str, offline: bool) -> CellSynchronizer:
        return CellSynchronizer(
            self.session,
            self.stores[domain],
            domain,
            index_name,
            freshness_days=self.freshness_days,
            offline=offline,
            throttle=self.radar_throttle if domain == "radar" else None,
        )

    def _fetch_weather(self, project: Dict, start: date, end: date, errors: Dict) -> Dict[str, float]:
        representative = project["stations"][0]
        try:
            return self.session.fetch_weather(representative["lat"], representative["lon"], start, end)
        except Exception as e:
            logger.error("Weather fetch failed for %s: %s", project["id"], e)
            errors["weather"] = str(e)
            return {}

    @staticmethod
    def _station_frame(station, cells, optical, radar, weather, window_start, today, kind) -> pd.DataFrame:
        coverage = None
        if len(cells) == 1:
            cell_id = cells[0]["cell_id"]
            observations = optical.get(cell_id, [])
            radar_observations = radar.get(cell_id, [])
        else:
            cell_id = station["id"]
            observations, coverage = combine_cell_observations(
                {c["cell_id"]: optical.get(c["cell_id"], []) for c in cells}
            )
            radar_observations, _ = combine_cell_observations(
                {c["cell_id"]: radar.get(c["cell_id"], []) for c in cells}
            )

        frame = normalize(observations, window_start, today, station["id"], cell_id,
                          radar=radar_observations, coverage=coverage)
        frame = join_weather(frame, weather)
        frame = fill_gaps(frame, ["temperature"])
        return apply_derived_indices(frame, kind)

    def _find_station(self, station_id: str) -> Dict:
        for project in self.projects.values():
            for station in project["stations"]:
                if station["id"] == station_id:
                    return station
        raise ProjectConfigError(f"Unknown station '{station_id}'")
