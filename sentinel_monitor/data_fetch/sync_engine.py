"""
Sentinel Monitor — Incremental Fetch-and-Merge Engine

Keeps each cell's cached observation series current with as few
statistics requests as possible:
  1. Fresh cache (newest observation < FRESHNESS_DAYS old) -> no request
  2. Stale cache -> fetch only the days after the newest observation
  3. Empty cache -> fetch the whole lookback window
  4. Merge by calendar day, newest response wins
  5. Persist once per batch, and only if something changed

A failing cell never takes its siblings down; only an ``AuthError``
aborts the batch: cells not yet started are cancelled and the finished
ones are persisted before it propagates.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sentinel_monitor.config.constants import (
    FRESHNESS_DAYS,
    INDEX_OUTPUTS,
    SENSOR_DOMAINS,
    SYNC_MAX_WORKERS,
)
from sentinel_monitor.config.evalscripts import EVALSCRIPTS
from sentinel_monitor.data_fetch.cache_store import CacheStore
from sentinel_monitor.data_fetch.copernicus_client import (
    AuthError,
    GatewayError,
    GatewaySession,
    parse_daily_statistics,
)

logger = logging.getLogger(__name__)


class Throttle:
    """Fixed minimum interval between consecutive requests, shared across threads."""

    def __init__(self, interval_s: float, sleep=time.sleep, clock=time.monotonic):
        self.interval_s = interval_s
        self.sleep = sleep
        self.clock = clock
        self._last = None
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            if self._last is not None:
                remaining = self.interval_s - (self.clock() - self._last)
                if remaining > 0:
                    self.sleep(remaining)
            self._last = self.clock()


def compute_fetch_start(
    cached: List[Dict],
    today: date,
    window_start: date,
    freshness_days: int = FRESHNESS_DAYS,
) -> Optional[date]:
    """
    First day to request, or ``None`` when the cache is fresh enough.

    ``cached`` must be sorted ascending by date.
    """
    if not cached:
        return window_start

    last_date = date.fromisoformat(cached[-1]["date"])
    if (today - last_date).days < freshness_days:
        return None
    return max(last_date + timedelta(days=1), window_start)


def merge_observations(cached: List[Dict], new: List[Dict]) -> List[Dict]:
    """
    Merge by calendar day; an entry in ``new`` replaces the cached entry
    for the same day. Result is sorted ascending with no duplicate dates.
    """
    by_date = {}
    for obs in list(cached) + list(new):
        if obs.get("value") is None and obs.get("secondary_value") is None:
            continue
        by_date[obs["date"][:10]] = {
            "date": obs["date"][:10],
            "value": obs.get("value"),
            "secondary_value": obs.get("secondary_value"),
        }
    return [by_date[d] for d in sorted(by_date)]


class CellSynchronizer:
    """
    Syncs cells of one sensor domain (optical or radar) against one store.

    Parameters
    ----------
    session : GatewaySession or None
        Statistics gateway. ``None`` (or ``offline=True``) serves cache only.
    store : CacheStore
        Observation cache for this domain.
    domain : str
        Key of ``SENSOR_DOMAINS``.
    index_name : str
        Key of ``INDEX_OUTPUTS`` / ``EVALSCRIPTS`` (``RADAR`` for radar).
    throttle : Throttle, optional
        Applied before every statistics request.
    """

    def __init__(
        self,
        session: Optional[GatewaySession],
        store: CacheStore,
        domain: str,
        index_name: str,
        freshness_days: int = FRESHNESS_DAYS,
        offline: bool = False,
        throttle: Optional[Throttle] = None,
    ):
        if domain not in SENSOR_DOMAINS:
            raise ValueError(f"Unknown sensor domain '{domain}'")
        if index_name not in INDEX_OUTPUTS or index_name not in EVALSCRIPTS:
            raise ValueError(f"No statistics configuration for index '{index_name}'")

        self.session = session
        self.store = store
        self.domain = domain
        self.index_name = index_name
        self.freshness_days = freshness_days
        self.offline = offline or session is None
        self.throttle = throttle

        self._domain_cfg = SENSOR_DOMAINS[domain]
        self._outputs = INDEX_OUTPUTS[index_name]
        self._evalscript = EVALSCRIPTS[index_name]

    # ------------------------------------------------------------------
    # Single cell
    # ------------------------------------------------------------------
    def sync_cell(self, cell: Dict, today: date, window_start: date) -> Tuple[List[Dict], bool]:
        """
        Bring one cell's cached series up to date.

        Returns
        -------
        (observations, changed)
            The full merged series for the cell and whether it differs
            from what was cached. Nothing is persisted here.
        """
        cell_id = cell["cell_id"]
        # sorted, one entry per day, all-null entries dropped
        cached = merge_observations(self.store.get(cell_id), [])

        fetch_from = compute_fetch_start(cached, today, window_start, self.freshness_days)
        if fetch_from is None:
            logger.info("Data for %s (%s) is recent. Using cache.", cell_id, self.domain)
            return cached, False
        if self.offline:
            logger.info("Offline: serving cached %s data for %s.", self.domain, cell_id)
            return cached, False
        if fetch_from >= today:
            return cached, False

        if cached:
            logger.info("Fetching %s delta for %s from %s", self.domain, cell_id, fetch_from)
        else:
            logger.info("Cache empty for %s (%s). Fetching from %s.", cell_id, self.domain, fetch_from)

        if self.throttle is not None:
            self.throttle.wait()

        try:
            payload = self.session.fetch_statistics(
                cell["bbox"],
                fetch_from,
                today,
                self._evalscript,
                self._domain_cfg["collection"],
                self._domain_cfg["processing"],
            )
        except GatewayError as e:
            logger.error("Failed to fetch %s data for %s: %s", self.domain, cell_id, e)
            return cached, False

        new_observations = parse_daily_statistics(
            payload,
            self._outputs["output"],
            self._outputs["bands"],
            self._outputs["value_range"],
        )
        if not new_observations:
            logger.info("No new %s observations for %s.", self.domain, cell_id)
            return cached, False

        merged = merge_observations(cached, new_observations)
        return merged, merged != cached

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------
    def sync_cells(
        self,
        cells: List[Dict],
        today: date,
        window_start: date,
        max_workers: int = SYNC_MAX_WORKERS,
    ) -> Tuple[Dict[str, List[Dict]], Dict[str, str]]:
        """
        Sync a batch of cells and persist the changed ones in one write.

        Returns
        -------
        (series_by_cell, errors_by_cell)
        """
        series = {}
        errors = {}
        changed = {}
        auth_error = None

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            futures = {
                pool.submit(self.sync_cell, cell, today, window_start): cell
                for cell in cells
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                cell_id = futures[future]["cell_id"]
                try:
                    observations, did_change = future.result()
                except AuthError as e:
                    if auth_error is None:
                        auth_error = e
                        for pending in futures:
                            pending.cancel()
                    continue
                except Exception as e:
                    logger.exception("Sync of %s (%s) failed", cell_id, self.domain)
                    errors[cell_id] = str(e)
                    series[cell_id] = self.store.get(cell_id)
                    continue

                series[cell_id] = observations
                if did_change:
                    changed[cell_id] = observations

        if changed:
            self.store.put_all(changed)
        if auth_error is not None:
            raise auth_error
        return series, errors
