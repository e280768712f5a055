"""
Sentinel Monitor — Open-Meteo Weather Client

Fetches daily mean air temperature from the Open-Meteo historical archive.
- No API key required
- Archive reaches back to 1940, recent days lag by a few days
"""

from datetime import date
from typing import Dict

import requests

from sentinel_monitor.config.constants import OPEN_METEO_HISTORICAL, HTTP_TIMEOUT_S


class WeatherClient:
    """Client for the Open-Meteo archive API."""

    HISTORICAL_URL = OPEN_METEO_HISTORICAL

    def __init__(self, session: requests.Session = None, timeout: float = HTTP_TIMEOUT_S):
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
        })
        self.timeout = timeout

    def get_daily_mean_temperature(
        self, lat: float, lon: float, start: date, end: date
    ) -> Dict[str, float]:
        """
        Daily mean 2 m temperature keyed by ``YYYY-MM-DD``.

        Days the archive reports as null are left out, so the caller sees
        them as missing. Raises ``requests.RequestException`` on HTTP or
        network failure.
        """
        params = {
            "latitude": round(lat, 4),
            "longitude": round(lon, 4),
            "start_date": start.strftime("%Y-%m-%d"),
            "end_date": end.strftime("%Y-%m-%d"),
            "daily": "temperature_2m_mean",
            "timezone": "auto",
        }

        resp = self.session.get(self.HISTORICAL_URL, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()

        daily = data.get("daily", {})
        times = daily.get("time", [])
        temps = daily.get("temperature_2m_mean", [])

        return {
            day: float(temp)
            for day, temp in zip(times, temps)
            if temp is not None
        }
