"""
Sentinel Monitor — Algal Bloom Probability

Piecewise-linear product of a thermal factor and a biomass factor:

  thermal  = 0 below 12°C, (T - 12) / 13 between 12–25°C, 1 above 25°C
  biomass  = 0 at NDCI <= 0, NDCI / 0.4 up to 0.4, 1 above 0.4
  bloom %  = thermal × biomass × 100

Either factor at zero collapses the probability: warm clear water and cold
green water are both low risk.

Sources:
  Paerl & Huisman (2008) "Blooms Like It Hot" — Science 320(5872)
  Mishra & Mishra (2012) NDCI for chlorophyll-a in turbid waters
"""

from typing import Optional

from sentinel_monitor.config.constants import BLOOM_BIOMASS, BLOOM_THERMAL


def compute_bloom_probability(ndci: Optional[float], temperature: Optional[float]) -> Optional[float]:
    """
    Bloom probability in percent (0–100), or ``None`` if an input is missing.

    Parameters
    ----------
    ndci : float or None
        Normalised Difference Chlorophyll Index.
    temperature : float or None
        Daily mean air temperature in °C.
    """
    if ndci is None or temperature is None:
        return None
    return thermal_factor(temperature) * biomass_factor(ndci) * 100.0


def thermal_factor(temperature: float) -> float:
    t_min = BLOOM_THERMAL["min_c"]
    t_max = BLOOM_THERMAL["max_c"]
    if temperature < t_min:
        return 0.0
    if temperature <= t_max:
        return (temperature - t_min) / (t_max - t_min)
    return 1.0


def biomass_factor(ndci: float) -> float:
    floor = BLOOM_BIOMASS["min_ndci"]
    saturation = BLOOM_BIOMASS["saturation_ndci"]
    if ndci <= floor:
        return 0.0
    if ndci <= saturation:
        return (ndci - floor) / (saturation - floor)
    return 1.0
