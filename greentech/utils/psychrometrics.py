"""
Psychrometric Calculations
==========================

Pure utility functions for air-science derived metrics used in greenhouse
analytics.

Functions:
- calculate_svp_kpa: Saturation vapor pressure (Tetens)
- calculate_vpd_kpa: Vapor Pressure Deficit
- calculate_dew_point_c: Dew point temperature
- calculate_heat_index_c: Greenhouse heat index (humidity-adjusted temperature)

These are stateless scalar calculations; callers are responsible for
sanitising inputs (see ``greentech.domain.agronomics``).
"""
from __future__ import annotations

import math
from typing import Optional

# Tetens / Magnus constants
_SVP_COEFFICIENT_KPA = 0.61078
_MAGNUS_A = 17.27
_MAGNUS_B = 237.3
_DEW_POINT_B = 237.7

# Greenhouse heat index: humidity shifts the felt temperature above 20°C
_HEAT_INDEX_MIN_C = 20.0
_HEAT_INDEX_NEUTRAL_RH = 50.0
_HEAT_INDEX_RH_FACTOR = 0.02


def calculate_svp_kpa(temperature_c: float) -> float:
    """
    Calculate Saturation Vapor Pressure (SVP) in kPa using the Tetens formula.

    SVP = 0.61078 × exp(17.27 × T / (T + 237.3))

    Args:
        temperature_c: Temperature in Celsius

    Returns:
        Saturation vapor pressure in kPa
    """
    return _SVP_COEFFICIENT_KPA * math.exp((_MAGNUS_A * temperature_c) / (temperature_c + _MAGNUS_B))


def calculate_actual_vapor_pressure_kpa(temperature_c: float, relative_humidity: float) -> float:
    """Actual vapor pressure: the saturation pressure scaled by relative humidity."""
    return calculate_svp_kpa(temperature_c) * (relative_humidity / 100.0)


def calculate_vpd_kpa(temperature_c: Optional[float], relative_humidity: Optional[float]) -> Optional[float]:
    """
    Calculate Vapor Pressure Deficit (VPD) in kPa.

    VPD = SVP - AVP = SVP × (1 - RH/100)

    Optimal greenhouse VPD sits roughly between 0.6 and 1.0 kPa; below 0.4 the
    air is too saturated for transpiration, above 1.2 plants start to close
    their stomata.

    Args:
        temperature_c: Temperature in Celsius
        relative_humidity: Relative humidity percentage (0-100)

    Returns:
        VPD in kPa, or None if inputs are None
    """
    if temperature_c is None or relative_humidity is None:
        return None

    temp_c = float(temperature_c)
    humidity = float(relative_humidity)
    return calculate_svp_kpa(temp_c) - calculate_actual_vapor_pressure_kpa(temp_c, humidity)


def calculate_dew_point_c(temperature_c: Optional[float], relative_humidity: Optional[float]) -> Optional[float]:
    """
    Dew point in Celsius (Magnus approximation).

        alpha = (a * T) / (b + T) + ln(RH/100)
        Td = (b * alpha) / (a - alpha)

    with a = 17.27 and b = 237.7. Returns None for missing inputs or when
    humidity is not positive (the logarithm is undefined).
    """
    if temperature_c is None or relative_humidity is None:
        return None

    temp_c = float(temperature_c)
    humidity = float(relative_humidity)

    if humidity <= 0:
        return None
    humidity = min(humidity, 100.0)

    alpha = (_MAGNUS_A * temp_c) / (_DEW_POINT_B + temp_c) + math.log(humidity / 100.0)
    dew_point = (_DEW_POINT_B * alpha) / (_MAGNUS_A - alpha)

    return round(dew_point, 2)


def calculate_heat_index_c(temperature_c: Optional[float], relative_humidity: Optional[float]) -> Optional[float]:
    """
    Greenhouse heat index ("feels-like" for plants) in Celsius.

    Below 20°C the air temperature is returned unchanged; above it every
    percentage point of humidity over 50 % adds 0.02°C (and every point under
    50 % takes 0.02°C away).

    Returns:
        Heat index in Celsius, or None if inputs are None
    """
    if temperature_c is None or relative_humidity is None:
        return None

    temp_c = float(temperature_c)
    if temp_c < _HEAT_INDEX_MIN_C:
        return round(temp_c, 2)

    humidity = float(relative_humidity)
    return round(temp_c + (humidity - _HEAT_INDEX_NEUTRAL_RH) * _HEAT_INDEX_RH_FACTOR, 2)
