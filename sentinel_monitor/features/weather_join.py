"""
Sentinel Monitor — Weather / Index Temporal Join

Aligns a daily temperature map onto a daily index frame by calendar day.
Pure: days missing from the weather map keep ``temperature = NaN``; the
pipeline gap-fills temperature afterwards with the shared policy.

One representative station (the first of a project) supplies the weather
for every station of that project. Stations of one project lie within a
few kilometres of each other, well below the ~9–11 km grid of the
reanalysis behind the archive API, so this trades nothing measurable for
one request per project instead of one per station.
"""

from typing import Dict

import pandas as pd


def join_weather(frame: pd.DataFrame, weather_by_date: Dict[str, float]) -> pd.DataFrame:
    """
    Fill ``temperature`` from ``weather_by_date`` (``YYYY-MM-DD`` -> °C).

    Returns a new frame; the input is not modified.
    """
    joined = frame.copy()
    keys = pd.to_datetime(joined["date"]).dt.strftime("%Y-%m-%d")
    joined["temperature"] = keys.map(lambda k: weather_by_date.get(k)).astype(float)
    return joined
