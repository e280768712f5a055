"""
Sentinel Monitor — Daily Series Normalisation

Expands sparse, cloud-masked observations into one row per calendar day
over a fixed lookback window, then fills the gaps.

Gap-fill policy (applied to every value column, everywhere):
  - interior gaps: linear interpolation in time between the nearest real
    values before and after the gap
  - trailing gap (after the last real value): forward-filled with it
  - leading gap (before the first real value): left null
  - no real value at all: stays null

``is_interpolated`` only reflects the primary index: it is False exactly on
days with a real, non-null primary observation.
"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

DAILY_COLUMNS = [
    "date",
    "station_id",
    "cell_id",
    "index_value",
    "is_interpolated",
    "ndmi_value",
    "radar_value",
    "temperature",
    "bloom_probability",
    "water_stress",
    "spatial_coverage",
]

VALUE_COLUMNS = ["index_value", "ndmi_value", "radar_value", "temperature"]


def expand_daily(
    sparse: List[Dict],
    window_start: date,
    window_end: date,
    station_id: str,
    cell_id: Optional[str] = None,
    radar: Optional[List[Dict]] = None,
    coverage: Optional[Dict[str, float]] = None,
) -> pd.DataFrame:
    """
    One row per day in ``[window_start, window_end]``, values looked up by
    exact date; no gap filling.

    Parameters
    ----------
    sparse : list of dict
        Raw observations (``date``, ``value``, ``secondary_value``).
    radar : list of dict, optional
        Raw radar observations; their ``value`` becomes ``radar_value``.
    coverage : dict, optional
        Percent of grid cells observed, keyed by ``YYYY-MM-DD``.
    """
    days = pd.date_range(pd.Timestamp(window_start), pd.Timestamp(window_end), freq="D")
    by_date = {o["date"][:10]: o for o in sparse}
    radar_by_date = {o["date"][:10]: o.get("value") for o in (radar or [])}

    rows = []
    for day in days:
        key = day.strftime("%Y-%m-%d")
        obs = by_date.get(key) or {}
        value = obs.get("value")
        rows.append({
            "date": day,
            "station_id": station_id,
            "cell_id": cell_id or station_id,
            "index_value": value,
            "is_interpolated": value is None,
            "ndmi_value": obs.get("secondary_value"),
            "radar_value": radar_by_date.get(key),
            "temperature": None,
            "bloom_probability": None,
            "water_stress": None,
            "spatial_coverage": coverage.get(key, 0.0) if coverage is not None else None,
        })

    frame = pd.DataFrame(rows, columns=DAILY_COLUMNS)
    return _coerce_types(frame)


def fill_gaps(frame: pd.DataFrame, columns: Sequence[str] = VALUE_COLUMNS) -> pd.DataFrame:
    """Apply the gap-fill policy to each column independently."""
    filled = frame.copy()
    index = pd.DatetimeIndex(filled["date"])

    for col in columns:
        if col not in filled.columns:
            continue
        series = pd.Series(filled[col].to_numpy(dtype=float), index=index)
        if series.notna().sum() == 0:
            continue
        series = series.interpolate(method="time", limit_area="inside").ffill()
        filled[col] = series.to_numpy()
    return filled


def normalize(
    sparse: List[Dict],
    window_start: date,
    window_end: date,
    station_id: str,
    cell_id: Optional[str] = None,
    radar: Optional[List[Dict]] = None,
    coverage: Optional[Dict[str, float]] = None,
) -> pd.DataFrame:
    """
    Sparse observations -> complete daily series with gaps filled.

    Always returns ``(window_end - window_start).days + 1`` rows, even for
    an empty input. Temperature is joined and filled separately by the
    pipeline (see ``features.weather_join``).
    """
    frame = expand_daily(sparse, window_start, window_end, station_id, cell_id, radar, coverage)
    return fill_gaps(frame, ["index_value", "ndmi_value", "radar_value"])


def combine_cell_observations(series_by_cell: Dict[str, List[Dict]]) -> Tuple[List[Dict], Dict[str, float]]:
    """
    Area-average the cells of a grid station.

    Per day: mean of the cells that have a value (primary and secondary
    independently), plus the percentage of cells with a primary value.

    Returns
    -------
    (observations, coverage_by_date)
    """
    total_cells = len(series_by_cell)
    records = [
        {"date": o["date"][:10], "value": o.get("value"), "secondary_value": o.get("secondary_value")}
        for observations in series_by_cell.values()
        for o in observations
    ]
    if not records or total_cells == 0:
        return [], {}

    df = pd.DataFrame(records)
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    df["secondary_value"] = pd.to_numeric(df["secondary_value"], errors="coerce")
    grouped = df.groupby("date").agg(
        value=("value", "mean"),
        secondary_value=("secondary_value", "mean"),
        observed=("value", "count"),
    ).sort_index()

    observations = []
    coverage = {}
    for day, row in grouped.iterrows():
        observations.append({
            "date": day,
            "value": _none_if_nan(row["value"]),
            "secondary_value": _none_if_nan(row["secondary_value"]),
        })
        coverage[day] = float(row["observed"]) / total_cells * 100.0
    return observations, coverage


def _coerce_types(frame: pd.DataFrame) -> pd.DataFrame:
    for col in ("index_value", "ndmi_value", "radar_value", "temperature",
                "bloom_probability", "water_stress", "spatial_coverage"):
        frame[col] = pd.to_numeric(frame[col], errors="coerce").astype(float)
    frame["is_interpolated"] = frame["is_interpolated"].astype(bool)
    return frame


def _none_if_nan(value) -> Optional[float]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return float(value)
