"""
Sentinel Monitor — Geo-Cell Resolver

Turns a monitoring station into the bounding box(es) used as the spatial
query unit for the statistics API.

Point mode: the station coordinate buffered into a small square.
Degrees = buffer_km / 111.32 on both axes. No cos(latitude) correction is
applied to longitude, so cells are slightly narrower in km away from the
equator; the cached series were aggregated with exactly these boxes.

Grid mode: an explicit outer box split into cols × rows equal sub-boxes,
``cell_id = {station_id}_{row * cols + col}``, row 0 on the southern edge.
"""

from typing import Dict, List, Tuple

import numpy as np

from sentinel_monitor.config.constants import KM_PER_DEGREE
from sentinel_monitor.config.projects import project_kind

BBox = Tuple[float, float, float, float]


def point_bbox(lat: float, lon: float, buffer_km: float) -> BBox:
    """(min_lon, min_lat, max_lon, max_lat) square around a point."""
    buffer = buffer_km / KM_PER_DEGREE
    return (lon - buffer, lat - buffer, lon + buffer, lat + buffer)


def grid_cells(station_id: str, bbox: BBox, grid_shape: Tuple[int, int]) -> List[Dict]:
    """
    Partition an outer box into equal sub-boxes.

    Edges come from ``np.linspace`` so neighbouring cells share identical
    edges and the outermost edges equal the input box exactly.
    """
    cols, rows = grid_shape
    min_lon, min_lat, max_lon, max_lat = bbox
    lon_edges = np.linspace(min_lon, max_lon, cols + 1)
    lat_edges = np.linspace(min_lat, max_lat, rows + 1)

    cells = []
    for row in range(rows):
        for col in range(cols):
            cells.append({
                "cell_id": f"{station_id}_{row * cols + col}",
                "station_id": station_id,
                "bbox": (
                    float(lon_edges[col]),
                    float(lat_edges[row]),
                    float(lon_edges[col + 1]),
                    float(lat_edges[row + 1]),
                ),
            })
    return cells


def resolve_cells(station: Dict, project: Dict) -> List[Dict]:
    """
    Resolve the analysis cells of one station.

    Parameters
    ----------
    station : dict
        Station config (``id``, ``lat``, ``lon``, optional ``bbox`` and
        ``grid_shape``).
    project : dict
        Owning project; its kind sets the point buffer.

    Returns
    -------
    list of dict with keys: cell_id, station_id, bbox
    """
    if station.get("bbox") is not None and station.get("grid_shape") is not None:
        return grid_cells(station["id"], tuple(station["bbox"]), tuple(station["grid_shape"]))

    buffer_km = project_kind(project)["buffer_km"]
    return [{
        "cell_id": station["id"],
        "station_id": station["id"],
        "bbox": point_bbox(station["lat"], station["lon"], buffer_km),
    }]


def resolve_project_cells(project: Dict) -> List[Dict]:
    cells = []
    for station in project["stations"]:
        cells.extend(resolve_cells(station, project))
    return cells
