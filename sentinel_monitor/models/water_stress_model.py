"""
Sentinel Monitor — Vineyard Water Stress

Divergence between canopy vigour (NDVI) and canopy moisture (NDMI).
Dormant canopy (NDVI < 0.5) reports no stress: bare soil and winter
vines dry out without being stressed.

  stress % = clip((0.2 - NDMI) / 0.3 × 100, 0, 100)
           = 100% at NDMI <= -0.1, 0% at NDMI >= 0.2

Source: Gao (1996) NDWI/NDMI — Remote Sensing of Environment 58(3)
"""

from typing import Optional

import numpy as np

from sentinel_monitor.config.constants import WATER_STRESS


def compute_water_stress(ndvi: Optional[float], ndmi: Optional[float]) -> Optional[float]:
    """Water stress risk in percent (0–100), or ``None`` if an input is missing."""
    if ndvi is None or ndmi is None:
        return None
    if ndvi < WATER_STRESS["dormant_ndvi"]:
        return 0.0

    stress = (WATER_STRESS["no_stress_ndmi"] - ndmi) / WATER_STRESS["ndmi_span"] * 100.0
    return float(np.clip(stress, 0.0, 100.0))
