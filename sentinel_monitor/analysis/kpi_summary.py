"""
Sentinel Monitor — KPI Summaries & Project-Wide Aggregate

Reduces a project's daily frame to what the dashboard headline cards show:
the latest real (non-interpolated) reading per station, and for
water-quality projects one lake-wide average series with its spatial
coverage.

Only real observations feed a KPI or an aggregate mean; interpolated rows
are display filler and never count as a measurement.
"""

import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from sentinel_monitor.analysis.index_classes import classify_index_value
from sentinel_monitor.config.constants import PROJECT_KINDS
from sentinel_monitor.features.daily_series import DAILY_COLUMNS, fill_gaps
from sentinel_monitor.features.feature_pipeline import apply_derived_indices

AGGREGATE_NAMES = {
    "water-quality": "Lake-Wide Average",
}


def aggregate_station_id(project: Dict) -> str:
    return f"{project['id']}-average"


# ----------------------------------------------------------------------
# Per-station KPIs
# ----------------------------------------------------------------------
def station_kpis(daily: pd.DataFrame, project: Dict) -> List[Dict]:
    """
    Latest real reading per station, in the project's station order.

    Parameters
    ----------
    daily : DataFrame
        Daily frame of the whole project (``DAILY_COLUMNS``).
    project : dict
        Project configuration.

    Returns
    -------
    list of dict
        ``station_id``, ``name``, ``latest_index_value``, ``latest_date``,
        ``status`` and, for vineyards, ``latest_ndmi_value``. Values are
        ``None`` for a station without any real observation.
    """
    kind = project["kind"]
    index_name = PROJECT_KINDS[kind]["index"]

    kpis = []
    for station in project["stations"]:
        rows = daily[daily["station_id"] == station["id"]] if not daily.empty else daily
        kpi = _latest_reading(rows, index_name, with_ndmi=kind == "vineyard")
        kpi.update({"station_id": station["id"], "name": station["name"]})
        kpis.append(kpi)
    return kpis


def aggregate_kpi(aggregate: pd.DataFrame, project: Dict) -> Optional[Dict]:
    """KPI of the project-wide aggregate, with its spatial coverage on that day."""
    if aggregate is None:
        return None

    index_name = PROJECT_KINDS[project["kind"]]["index"]
    kpi = _latest_reading(aggregate, index_name, with_coverage=True)
    kpi.update({
        "station_id": aggregate_station_id(project),
        "name": AGGREGATE_NAMES.get(project["kind"], "Project-Wide Average"),
    })
    return kpi


def _latest_reading(
    rows: pd.DataFrame,
    index_name: str,
    with_ndmi: bool = False,
    with_coverage: bool = False,
) -> Dict:
    real = rows[~rows["is_interpolated"] & rows["index_value"].notna()] if not rows.empty else rows
    latest = real.sort_values("date").iloc[-1] if not real.empty else None

    value = _none_if_nan(latest["index_value"]) if latest is not None else None
    kpi = {
        "latest_index_value": value,
        "latest_date": latest["date"].strftime("%Y-%m-%d") if latest is not None else None,
        "status": classify_index_value(index_name, value),
    }
    if with_ndmi:
        kpi["latest_ndmi_value"] = _none_if_nan(latest["ndmi_value"]) if latest is not None else None
    if with_coverage:
        kpi["spatial_coverage"] = _none_if_nan(latest["spatial_coverage"]) if latest is not None else None
    return kpi


# ----------------------------------------------------------------------
# Project-wide aggregate
# ----------------------------------------------------------------------
def aggregate_project(daily: pd.DataFrame, project: Dict) -> pd.DataFrame:
    """
    One daily series averaging every station of ``project``.

    Per day:
      - ``index_value``: mean of the stations with a real observation
      - ``spatial_coverage``: share of stations observed, in percent
      - ``temperature``: the representative (first) station's temperature
      - ``is_interpolated``: True when no station was observed

    Null days are filled with the shared gap-fill policy, then the kind's
    derived index is recomputed.
    """
    total_stations = len(project["stations"])
    station_id = aggregate_station_id(project)

    if daily.empty:
        return pd.DataFrame(columns=DAILY_COLUMNS)

    days = pd.DatetimeIndex(sorted(daily["date"].unique()))
    real = daily[~daily["is_interpolated"] & daily["index_value"].notna()]
    per_day = real.groupby("date").agg(
        index_value=("index_value", "mean"),
        ndmi_value=("ndmi_value", "mean"),
        observed=("station_id", "nunique"),
    ).reindex(days)

    representative = project["stations"][0]["id"]
    temperature = (
        daily[daily["station_id"] == representative]
        .set_index("date")["temperature"]
        .reindex(days)
    )

    observed = per_day["observed"].fillna(0).to_numpy(dtype=float)
    aggregate = pd.DataFrame({
        "date": days,
        "station_id": station_id,
        "cell_id": station_id,
        "index_value": per_day["index_value"].to_numpy(dtype=float),
        "is_interpolated": per_day["index_value"].isna().to_numpy(),
        "ndmi_value": per_day["ndmi_value"].to_numpy(dtype=float),
        "radar_value": np.nan,
        "temperature": temperature.to_numpy(dtype=float),
        "bloom_probability": np.nan,
        "water_stress": np.nan,
        "spatial_coverage": observed / total_stations * 100.0 if total_stations else 0.0,
    }, columns=DAILY_COLUMNS)

    aggregate = fill_gaps(aggregate, ["index_value", "ndmi_value", "temperature"])
    return apply_derived_indices(aggregate, project["kind"])


def _none_if_nan(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value
