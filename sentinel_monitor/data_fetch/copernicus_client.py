"""
Sentinel Monitor — Copernicus Data Space Gateway

Talks to the Sentinel Hub APIs hosted by the Copernicus Data Space:
1. OAuth2 token endpoint — client-credentials grant, token memoised
2. Statistics API — per-day aggregate band statistics for a bbox
3. Process API — a single rendered true-colour PNG

``GatewaySession`` is the one object the pipeline is handed; it also
forwards weather requests so tests can swap every external source with
one fake.
"""

import logging
import math
import threading
import time
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import requests

from sentinel_monitor.config.constants import (
    COPERNICUS_CLIENT_ID,
    COPERNICUS_CLIENT_SECRET,
    COPERNICUS_PROCESS_URL,
    COPERNICUS_STATS_URL,
    COPERNICUS_TOKEN_URL,
    HTTP_TIMEOUT_S,
    TOKEN_EXPIRY_BUFFER_S,
)
from sentinel_monitor.data_fetch.weather_client import WeatherClient

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A statistics or image request failed; callers fall back to cached data."""


class AuthError(Exception):
    """No token could be obtained; fatal for the current pipeline run."""


class TokenProvider:
    """
    Process-wide funnel for access tokens.

    The first caller fetches a token under the lock; concurrent callers
    wait and reuse it. Tokens are dropped ``TOKEN_EXPIRY_BUFFER_S`` early.
    A failed grant is remembered and re-raised without another request.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        session: requests.Session,
        token_url: str = COPERNICUS_TOKEN_URL,
        timeout: float = HTTP_TIMEOUT_S,
        clock=time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session
        self.token_url = token_url
        self.timeout = timeout
        self.clock = clock
        self._token = None
        self._expires_at = 0.0
        self._failure = None
        self._lock = threading.Lock()

    def get_token(self) -> str:
        with self._lock:
            if self._failure is not None:
                raise self._failure
            if self._token is not None and self.clock() < self._expires_at:
                return self._token
            try:
                self._token, self._expires_at = self._request_token()
            except AuthError as e:
                # sticky for the lifetime of this provider
                self._failure = e
                raise
            return self._token

    def _request_token(self) -> Tuple[str, float]:
        if not self.client_id or not self.client_secret:
            raise AuthError("Copernicus client ID or secret not configured.")

        try:
            resp = self.session.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Token endpoint unreachable: {e}") from e

        if not resp.ok:
            raise AuthError(
                f"Failed to get Copernicus auth token: {resp.status_code} {resp.reason} - {resp.text}"
            )

        try:
            payload = resp.json()
            token = payload["access_token"]
            expires_in = float(payload.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(f"Malformed token response: {e}") from e

        logger.info("Obtained Copernicus access token (expires in %.0fs)", expires_in)
        return token, self.clock() + expires_in - TOKEN_EXPIRY_BUFFER_S


class GatewaySession:
    """Statistics, image and weather gateways sharing one token holder."""

    STATS_URL = COPERNICUS_STATS_URL
    PROCESS_URL = COPERNICUS_PROCESS_URL

    def __init__(
        self,
        client_id: str = None,
        client_secret: str = None,
        session: requests.Session = None,
        weather_client: WeatherClient = None,
        token_provider: TokenProvider = None,
        timeout: float = HTTP_TIMEOUT_S,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.tokens = token_provider or TokenProvider(
            client_id if client_id is not None else COPERNICUS_CLIENT_ID,
            client_secret if client_secret is not None else COPERNICUS_CLIENT_SECRET,
            self.session,
            timeout=timeout,
        )
        self.weather = weather_client or WeatherClient(timeout=timeout)

    # ------------------------------------------------------------------
    # Statistics API
    # ------------------------------------------------------------------
    def fetch_statistics(
        self,
        bbox: Sequence[float],
        start: date,
        end: date,
        evalscript: str,
        collection: str,
        processing: Optional[Dict] = None,
    ) -> Dict:
        """
        One aggregate per calendar day for ``bbox`` over ``[start, end]``.

        Returns the decoded JSON body. Raises ``GatewayError`` on any
        non-success response and ``AuthError`` if no token is available.
        """
        time_range = {"from": _day_start(start), "to": _day_end(end)}
        data_source = {"type": collection, "dataFilter": {"timeRange": time_range}}
        if processing:
            data_source["processing"] = processing

        body = {
            "input": {
                "bounds": {"bbox": list(bbox)},
                "data": [data_source],
            },
            "aggregation": {
                "evalscript": evalscript,
                "timeRange": time_range,
                "aggregationInterval": {"of": "P1D"},
                "width": 1,
                "height": 1,
            },
        }

        resp = self._post(self.STATS_URL, body, accept="application/json")
        if not resp.ok:
            raise GatewayError(f"Statistics request failed: {resp.status_code} {resp.reason} - {resp.text}")
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(f"Statistics response is not JSON: {e}") from e

    # ------------------------------------------------------------------
    # Process API (true-colour image)
    # ------------------------------------------------------------------
    def fetch_image(
        self,
        bbox: Sequence[float],
        start: date,
        end: date,
        evalscript: str,
        max_cloud_coverage: int = 40,
        size_px: int = 512,
    ) -> Optional[bytes]:
        """
        PNG bytes of the most recent acceptable scene, or ``None`` when the
        API reports that no scene matches.
        """
        body = {
            "input": {
                "bounds": {"bbox": list(bbox)},
                "data": [{
                    "type": "sentinel-2-l2a",
                    "dataFilter": {
                        "timeRange": {"from": _day_start(start), "to": _day_end(end)},
                        "maxCloudCoverage": max_cloud_coverage,
                    },
                }],
            },
            "output": {
                "width": size_px,
                "height": size_px,
                "responses": [{"identifier": "default", "format": {"type": "image/png"}}],
            },
            "evalscript": evalscript,
        }

        resp = self._post(self.PROCESS_URL, body, accept="image/png")
        content_type = resp.headers.get("Content-Type", "")
        if resp.ok and content_type.startswith("image/png"):
            return resp.content

        if "No data found" in resp.text:
            logger.warning("No cloud-free scene for bbox %s between %s and %s", list(bbox), start, end)
            return None
        if resp.ok:
            raise GatewayError(f"Process API returned unexpected content type '{content_type}': {resp.text}")
        raise GatewayError(f"Process request failed: {resp.status_code} {resp.reason} - {resp.text}")

    # ------------------------------------------------------------------
    # Weather (delegated)
    # ------------------------------------------------------------------
    def fetch_weather(self, lat: float, lon: float, start: date, end: date) -> Dict[str, float]:
        return self.weather.get_daily_mean_temperature(lat, lon, start, end)

    def _post(self, url: str, body: Dict, accept: str) -> requests.Response:
        token = self.tokens.get_token()
        try:
            return self.session.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Accept": accept,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"Request to {url} failed: {e}") from e


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------
def parse_daily_statistics(
    payload: Dict,
    output_id: str,
    bands: Sequence[str],
    value_range: Optional[Tuple[float, float]] = (-1.0, 1.0),
) -> List[Dict]:
    """
    Convert a statistics response into raw observations.

    Parameters
    ----------
    payload : dict
        Decoded statistics API body.
    output_id : str
        Evalscript output holding the index bands (``index`` / ``INDICES``).
    bands : sequence of str
        Band keys; the first is the primary value, the second (if any) the
        secondary value.
    value_range : (low, high) or None
        Legal range; valid means are clipped into it.

    Returns
    -------
    list of dict with keys: date, value, secondary_value
        Intervals with no usable band are left out.
    """
    observations = []
    for item in payload.get("data") or []:
        interval_from = (item.get("interval") or {}).get("from")
        if not interval_from:
            continue
        band_stats = ((item.get("outputs") or {}).get(output_id) or {}).get("bands") or {}

        values = [_band_mean(band_stats.get(b), value_range) for b in bands]
        primary = values[0]
        secondary = values[1] if len(values) > 1 else None
        if primary is None and secondary is None:
            continue

        observations.append({
            "date": interval_from[:10],
            "value": primary,
            "secondary_value": secondary,
        })
    return observations


def _band_mean(band: Optional[Dict], value_range) -> Optional[float]:
    stats = (band or {}).get("stats")
    if not stats or not stats.get("sampleCount"):
        return None
    try:
        mean = float(stats.get("mean"))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(mean):
        return None
    if value_range is not None:
        mean = float(np.clip(mean, value_range[0], value_range[1]))
    return mean


def _day_start(day: date) -> str:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _day_end(day: date) -> str:
    return datetime(day.year, day.month, day.day, 23, 59, 59, tzinfo=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
