"""
Sentinel Monitor — Feature Pipeline

Adds the derived risk layers of a project kind to a gap-filled daily frame.
Runs after every fill pass, so interpolated index or temperature values
produce derived values too.
"""

from typing import Optional

import numpy as np
import pandas as pd

from sentinel_monitor.config.constants import PROJECT_KINDS
from sentinel_monitor.models.bloom_probability_model import compute_bloom_probability
from sentinel_monitor.models.water_stress_model import compute_water_stress


def apply_derived_indices(frame: pd.DataFrame, kind: str) -> pd.DataFrame:
    """Recompute ``bloom_probability`` / ``water_stress`` for ``kind``.

    Parameters
    ----------
    frame : DataFrame
        Daily frame with ``index_value``, ``ndmi_value`` and ``temperature``.
    kind : str
        Project kind (``snow``, ``water-quality``, ``vineyard``).

    Returns
    -------
    DataFrame
        A copy with the derived column of that kind filled in.
    """
    if kind not in PROJECT_KINDS:
        raise ValueError(f"Unknown project kind '{kind}'")

    derived = PROJECT_KINDS[kind]["derived"]
    out = frame.copy()

    if derived == "bloom_probability":
        out["bloom_probability"] = [
            compute_bloom_probability(_opt(ndci), _opt(temp))
            for ndci, temp in zip(out["index_value"], out["temperature"])
        ]
        out["bloom_probability"] = out["bloom_probability"].astype(float)
    elif derived == "water_stress":
        out["water_stress"] = [
            compute_water_stress(_opt(ndvi), _opt(ndmi))
            for ndvi, ndmi in zip(out["index_value"], out["ndmi_value"])
        ]
        out["water_stress"] = out["water_stress"].astype(float)

    return out


def _opt(value) -> Optional[float]:
    """NaN -> None, everything else -> float."""
    if value is None or np.isnan(value):
        return None
    return float(value)
