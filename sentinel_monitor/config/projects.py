"""
Sentinel Monitor — Project & Station Configurations

Five monitoring projects across three project kinds:
1. Alpine Snow Watch — NDSI at three altitude bands around Zermatt
2. Lake Maggiore / Lake Śniardwy — NDCI chlorophyll points across each lake
3. Chianti Classico / Saint-Émilion — NDVI & NDMI vineyard points

A station may carry an explicit ``bbox`` and ``grid_shape`` (cols, rows)
to be analysed as an area average instead of a buffered point.
"""

from typing import Dict, List

from sentinel_monitor.config.constants import PROJECT_KINDS, INDEX_OUTPUTS
from sentinel_monitor.config.evalscripts import EVALSCRIPTS


class ProjectConfigError(ValueError):
    """Static project configuration is invalid or an unknown id was requested."""


def _stations(prefix: str, label: str, coords: List[tuple]) -> List[Dict]:
    return [
        {"id": f"{prefix}_{i}", "name": f"{label} Pt. {i + 1}", "lat": lat, "lon": lon}
        for i, (lat, lon) in enumerate(coords)
    ]


PROJECTS = {
    "snow-watch": {
        "id": "snow-watch",
        "name": "Alpine Snow Watch",
        "kind": "snow",
        "description": "Monitoring snow cover in high-altitude regions. (CH/IT)",
        "stations": [
            {"id": "zermatt", "name": "Valley (Zermatt)", "lat": 46.0207, "lon": 7.7491},
            {"id": "theodul", "name": "Glacier (Theodul)", "lat": 45.9500, "lon": 7.7100},
            {"id": "matterhorn", "name": "Summit (Matterhorn)", "lat": 45.9766, "lon": 7.6585},
        ],
    },
    "maggiore-lake": {
        "id": "maggiore-lake",
        "name": "Lake Maggiore (IT/CH)",
        "kind": "water-quality",
        "description": "8-point analysis of chlorophyll concentration (NDCI) in Lake Maggiore.",
        "stations": _stations("maggiore", "Maggiore", [
            (45.965, 8.634), (45.910, 8.560), (45.935, 8.610), (46.010, 8.680),
            (45.985, 8.650), (45.820, 8.580), (45.885, 8.545), (46.050, 8.730),
        ]),
    },
    "sniardwy-lake": {
        "id": "sniardwy-lake",
        "name": "Lake Śniardwy (PL)",
        "kind": "water-quality",
        "description": "10-point analysis of chlorophyll concentration (NDCI) in Lake Śniardwy.",
        "stations": _stations("sniardwy", "Śniardwy", [
            (53.755, 21.725), (53.740, 21.780), (53.725, 21.680), (53.770, 21.650),
            (53.785, 21.750), (53.710, 21.730), (53.735, 21.840), (53.765, 21.810),
            (53.695, 21.760), (53.750, 21.690),
        ]),
    },
    "tuscany-vineyard": {
        "id": "tuscany-vineyard",
        "name": "Tuscany (Chianti Classico)",
        "kind": "vineyard",
        "description": "NDVI & NDMI analysis for vineyards in the Chianti Classico region.",
        "stations": _stations("tuscany", "Chianti", [
            (43.535, 11.310), (43.538, 11.315), (43.532, 11.308), (43.540, 11.320),
            (43.530, 11.305), (43.542, 11.312), (43.536, 11.302), (43.545, 11.318),
            (43.528, 11.300), (43.533, 11.322),
        ]),
    },
    "bordeaux-vineyard": {
        "id": "bordeaux-vineyard",
        "name": "Bordeaux (Saint-Émilion)",
        "kind": "vineyard",
        "description": "NDVI & NDMI analysis for vineyards in the Saint-Émilion appellation.",
        "stations": _stations("bordeaux", "St-Émilion", [
            (44.915, -0.135), (44.918, -0.130), (44.912, -0.138), (44.920, -0.125),
            (44.910, -0.140), (44.922, -0.132), (44.908, -0.128), (44.925, -0.136),
            (44.905, -0.142), (44.916, -0.122),
        ]),
    },
}


def get_project(project_id: str, projects: Dict = None) -> Dict:
    """Look up a project by id, failing loudly on unknown ids."""
    projects = PROJECTS if projects is None else projects
    try:
        return projects[project_id]
    except KeyError:
        raise ProjectConfigError(
            f"Unknown project '{project_id}'. Known: {', '.join(sorted(projects))}"
        ) from None


def project_kind(project: Dict) -> Dict:
    kind = project.get("kind")
    if kind not in PROJECT_KINDS:
        raise ProjectConfigError(f"Project '{project.get('id')}' has unknown kind '{kind}'")
    return PROJECT_KINDS[kind]


def validate_projects(projects: Dict = None) -> None:
    """
    Check the static configuration once at startup.

    Raises
    ------
    ProjectConfigError
        On unknown kinds, indices without an evalscript, duplicate or
        malformed stations, or inconsistent grid definitions.
    """
    projects = PROJECTS if projects is None else projects

    for key, project in projects.items():
        if project.get("id") != key:
            raise ProjectConfigError(f"Project key '{key}' does not match its id '{project.get('id')}'")

        kind = project_kind(project)
        index_name = kind["index"]
        if index_name not in EVALSCRIPTS or index_name not in INDEX_OUTPUTS:
            raise ProjectConfigError(f"No evalscript configured for index '{index_name}'")

        stations = project.get("stations") or []
        if not stations:
            raise ProjectConfigError(f"Project '{key}' has no stations")

        seen = set()
        for station in stations:
            _validate_station(key, station)
            if station["id"] in seen:
                raise ProjectConfigError(f"Duplicate station id '{station['id']}' in '{key}'")
            seen.add(station["id"])

        lookback = project.get("lookback_days", 365)
        if not isinstance(lookback, int) or lookback < 1:
            raise ProjectConfigError(f"Project '{key}' has invalid lookback_days {lookback!r}")


def _validate_station(project_id: str, station: Dict) -> None:
    for field in ("id", "name", "lat", "lon"):
        if field not in station:
            raise ProjectConfigError(f"Station in '{project_id}' is missing '{field}'")

    if not -90.0 <= station["lat"] <= 90.0 or not -180.0 <= station["lon"] <= 180.0:
        raise ProjectConfigError(f"Station '{station['id']}' has out-of-range coordinates")

    has_bbox = station.get("bbox") is not None
    has_shape = station.get("grid_shape") is not None
    if has_bbox != has_shape:
        raise ProjectConfigError(
            f"Station '{station['id']}' needs both bbox and grid_shape for grid analysis"
        )
    if has_bbox:
        bbox = station["bbox"]
        if len(bbox) != 4 or not (bbox[0] < bbox[2] and bbox[1] < bbox[3]):
            raise ProjectConfigError(f"Station '{station['id']}' has a malformed bbox {bbox!r}")
        shape = station["grid_shape"]
        if len(shape) != 2 or any(not isinstance(n, int) or n < 1 for n in shape):
            raise ProjectConfigError(f"Station '{station['id']}' has a malformed grid_shape {shape!r}")
