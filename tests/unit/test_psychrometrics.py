"""
Unit tests for greentech.utils.psychrometrics module.

Tests the air-science derived metric calculations:
- SVP (Saturation Vapor Pressure)
- VPD (Vapor Pressure Deficit)
- Dew Point
- Heat Index
"""

import pytest

from greentech.utils.psychrometrics import (
    calculate_dew_point_c,
    calculate_heat_index_c,
    calculate_svp_kpa,
    calculate_vpd_kpa,
)


class TestSaturationVaporPressure:
    """Test saturation vapor pressure calculation (Tetens formula)."""

    def test_svp_at_0c(self):
        """SVP at 0°C equals the Tetens coefficient."""
        assert calculate_svp_kpa(0) == pytest.approx(0.61078)

    def test_svp_at_20c(self):
        """SVP at 20°C should be approximately 2.34 kPa."""
        svp = calculate_svp_kpa(20)
        assert 2.3 < svp < 2.4

    def test_svp_at_25c(self):
        """SVP at 25°C should be approximately 3.17 kPa."""
        svp = calculate_svp_kpa(25)
        assert 3.1 < svp < 3.2


class TestVPD:
    """Test Vapor Pressure Deficit calculation."""

    def test_vpd_100_percent_humidity_is_zero(self):
        """At 100% RH, VPD should be 0."""
        vpd = calculate_vpd_kpa(25, 100)
        assert vpd == pytest.approx(0, abs=0.01)

    def test_vpd_0_percent_humidity_equals_svp(self):
        """At 0% RH, VPD should equal SVP."""
        temp = 25
        vpd = calculate_vpd_kpa(temp, 0)
        svp = calculate_svp_kpa(temp)
        assert vpd == pytest.approx(svp, rel=0.01)

    def test_vpd_typical_grow_room_conditions(self):
        """25°C at 60% RH should give VPD around 1.27 kPa."""
        vpd = calculate_vpd_kpa(25, 60)
        assert 1.2 < vpd < 1.4

    def test_vpd_none_inputs(self):
        assert calculate_vpd_kpa(None, 50) is None


class TestDewPoint:
    """Test dew point calculation."""

    def test_dew_point_100_percent_humidity_equals_temp(self):
        """At 100% RH, dew point should equal air temperature."""
        temp = 25
        dew_point = calculate_dew_point_c(temp, 100)
        assert dew_point == pytest.approx(temp, abs=0.5)

    def test_dew_point_lower_than_temp(self):
        """Dew point should always be <= air temperature."""
        dew_point = calculate_dew_point_c(25, 60)
        assert dew_point < 25

    def test_dew_point_undefined_for_dry_air(self):
        assert calculate_dew_point_c(25, 0) is None


class TestHeatIndex:
    """Test the greenhouse heat index."""

    @pytest.mark.parametrize("humidity", [0, 50, 95])
    def test_below_20c_returns_temperature(self, humidity):
        assert calculate_heat_index_c(19, humidity) == 19

    @pytest.mark.parametrize(
        "temp, humidity, expected",
        [
            (20, 50, 20.0),
            (25, 80, 25.6),
            (35, 85, 35.7),
            (30, 60, 30.2),
            (30, 20, 29.4),
        ],
    )
    def test_humidity_shifts_felt_temperature(self, temp, humidity, expected):
        assert calculate_heat_index_c(temp, humidity) == pytest.approx(expected)

    def test_none_inputs(self):
        assert calculate_heat_index_c(None, 50) is None


def test_dew_point_uses_greenhouse_constant():
    # b = 237.7 gives 16.68°C at 25°C / 60 % RH (237.3 would give 16.70)
    assert calculate_dew_point_c(25, 60) == pytest.approx(16.68, abs=0.005)
