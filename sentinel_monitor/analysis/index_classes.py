"""
Sentinel Monitor — Index Legend Classes

Maps an index value to the legend class the dashboard map colours by.
"""

import math
from typing import Optional

from sentinel_monitor.config.constants import INDEX_CLASSES


def classify_index_value(index_name: str, value: Optional[float]) -> str:
    """
    Legend class for ``value`` under ``index_name``'s thresholds.

    Returns ``"missing"`` for null/NaN and ``"unclassified"`` for indices
    without a legend.
    """
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "missing"

    classes = INDEX_CLASSES.get(index_name)
    if not classes:
        return "unclassified"

    for label, upper, inclusive in classes:
        if upper is None:
            return label
        if value < upper or (inclusive and value == upper):
            return label
    return classes[-1][0]
