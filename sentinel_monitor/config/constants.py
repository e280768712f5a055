"""
Sentinel Monitor — Constants and Thresholds

Index thresholds follow the dashboard legends and the published ranges
for the Sentinel-2 normalised-difference indices:
- NDSI snow mapping: Hall et al. (1995), Dozier (1989)
- NDCI chlorophyll-a index: Mishra & Mishra (2012)
- NDVI / NDMI vine vigour and canopy moisture: Gao (1996)

Runtime settings can be overridden through environment variables.
"""

import os

# =============================================================================
# API Endpoints
# =============================================================================
COPERNICUS_TOKEN_URL = (
    "https://identity.dataspace.copernicus.eu/auth/realms/CDSE/protocol/openid-connect/token"
)
COPERNICUS_STATS_URL = "https://sh.dataspace.copernicus.eu/api/v1/statistics"
COPERNICUS_PROCESS_URL = "https://sh.dataspace.copernicus.eu/api/v1/process"
OPEN_METEO_HISTORICAL = "https://archive-api.open-meteo.com/v1/archive"

COPERNICUS_CLIENT_ID = os.environ.get("COPERNICUS_CLIENT_ID", "")
COPERNICUS_CLIENT_SECRET = os.environ.get("COPERNICUS_CLIENT_SECRET", "")

# Tokens are treated as expired this many seconds before the server says so
TOKEN_EXPIRY_BUFFER_S = 60

HTTP_TIMEOUT_S = float(os.environ.get("SENTINEL_HTTP_TIMEOUT_S", "60"))

# =============================================================================
# Cache & Sync Settings
# =============================================================================
CACHE_DIR = os.environ.get("SENTINEL_CACHE_DIR", os.getcwd())
LOG_DIR = os.environ.get("SENTINEL_LOG_DIR", os.path.join(os.getcwd(), "logs"))

# A cell whose newest cached observation is younger than this is not re-fetched
FRESHNESS_DAYS = int(os.environ.get("SENTINEL_FRESHNESS_DAYS", "7"))

SYNC_MAX_WORKERS = int(os.environ.get("SENTINEL_SYNC_MAX_WORKERS", "4"))

# Delay before each secondary-source (radar) request for a cell, upstream quota
RADAR_REQUEST_DELAY_S = 0.25

DEFAULT_LOOKBACK_DAYS = 365

# =============================================================================
# Sensor Domains: one cache file per domain
# =============================================================================
SENSOR_DOMAINS = {
    "optical": {
        "collection": "sentinel-2-l2a",
        "cache_file": "data_cache.json",
        "processing": {},
    },
    "radar": {
        "collection": "sentinel-1-grd",
        "cache_file": "radar_cache.json",
        "processing": {"backCoeff": "GAMMA0_TERRAIN", "orthorectify": True},
    },
}

# =============================================================================
# Index Outputs
# output: evalscript output id, bands: [primary, secondary?]
# value_range: legal numeric range, None for unbounded (radar dB)
# =============================================================================
INDEX_OUTPUTS = {
    "NDSI":      {"output": "index",   "bands": ["B0"],       "value_range": (-1.0, 1.0)},
    "NDCI":      {"output": "index",   "bands": ["B0"],       "value_range": (-1.0, 1.0)},
    "NDVI/NDMI": {"output": "INDICES", "bands": ["B0", "B1"], "value_range": (-1.0, 1.0)},
    "RADAR":     {"output": "index",   "bands": ["B0"],       "value_range": None},
}

# =============================================================================
# Project Kinds: which index, cell size and derived layers apply
# =============================================================================
PROJECT_KINDS = {
    "snow": {
        "index": "NDSI",
        "buffer_km": 0.5,        # ~1x1 km cell
        "derived": None,
        "radar": False,
        "aggregate": False,
    },
    "water-quality": {
        "index": "NDCI",
        "buffer_km": 1.0,        # ~2x2 km, matches statistics aggregation limits on lakes
        "derived": "bloom_probability",
        "radar": False,
        "aggregate": True,
    },
    "vineyard": {
        "index": "NDVI/NDMI",
        "buffer_km": 0.5,
        "derived": "water_stress",
        "radar": True,
        "aggregate": False,
    },
}

# Approximate length of one degree of latitude
KM_PER_DEGREE = 111.32

# =============================================================================
# Bloom Probability (NDCI x temperature)
# =============================================================================
BLOOM_THERMAL = {
    "min_c": 12.0,           # °C, no bloom growth below
    "max_c": 25.0,           # °C, full thermal factor above
}

BLOOM_BIOMASS = {
    "min_ndci": 0.0,         # no chlorophyll signal at or below
    "saturation_ndci": 0.4,  # full biomass factor above
}

# =============================================================================
# Water Stress (NDVI x NDMI)
# =============================================================================
WATER_STRESS = {
    "dormant_ndvi": 0.5,     # canopy below this is dormant, no stress reported
    "no_stress_ndmi": 0.2,   # 0% stress at or above
    "ndmi_span": 0.3,        # 100% stress at no_stress_ndmi - span (-0.1)
}

# =============================================================================
# Legend Classes (upper bounds are inclusive unless noted)
# =============================================================================
INDEX_CLASSES = {
    "NDSI": [
        ("no_snow", 0.2, False),        # < 0.2
        ("patchy_snow", 0.5, True),     # 0.2 - 0.5
        ("deep_snow", None, True),
    ],
    "NDCI": [
        ("clean", 0.0, False),          # < 0.0
        ("turbid", 0.1, True),          # 0.0 - 0.1
        ("bloom_risk", 0.2, True),      # 0.1 - 0.2
        ("strong_bloom", None, True),
    ],
    "NDVI/NDMI": [
        ("dormant", 0.5, False),
        ("active", None, True),
    ],
}

# =============================================================================
# Latest Visual
# =============================================================================
VISUAL = {
    "lookback_days": 60,
    "max_cloud_coverage": 40,
    "size_px": 512,
    "buffer_km": 0.5,
}
