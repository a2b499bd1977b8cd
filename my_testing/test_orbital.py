"""Unit tests for the closed-form orbital mechanics."""

import math

import numpy as np
import pytest

from payloadCalculator import orbital
from payloadCalculator.bodies import CelestialBody


def test_vis_viva_circular_speed():
    """On a circular orbit vis-viva reduces to sqrt(mu / r)."""
    mu, r = 3.5316e12, 680000.0
    assert orbital.periapsis_speed(mu, r, r) == pytest.approx(orbital.circular_speed(mu, r))
    assert orbital.eccentricity(r, r) == 0.0


def test_model_a_for_low_circular_orbit():
    """A low circular orbit uses the energy-optimal single-burn bound."""
    mu, r0, r = 1.0, 1000.0, 1200.0
    ideal = orbital.ideal_dv_from_surface(mu, r0, r, r)

    assert ideal.uses_model_a
    expected = math.sqrt(2.0 * mu * (1.0 / r0 - 1.0 / (2.0 * r)))
    assert ideal.total == expected
    assert ideal.burn1 == ideal.total
    assert ideal.burn2 == 0.0 and ideal.burn3 == 0.0


def test_model_selection_boundary_uses_hohmann():
    """alpha of exactly 1.5 with eccentricity of exactly 0.1 falls to the Hohmann model."""
    mu, r0, r_pe, r_ap = 1.0, 1000.0, 1350.0, 1650.0
    assert (r_pe + r_ap) * 0.5 / r0 == 1.5
    assert orbital.eccentricity(r_pe, r_ap) == 0.1

    ideal = orbital.ideal_dv_from_surface(mu, r0, r_pe, r_ap)
    assert not ideal.uses_model_a

    burn1 = math.sqrt(mu / r0) * math.sqrt(2.0 * r_pe / (r0 + r_pe))
    burn2 = math.sqrt(mu / r_pe) * (1.0 - math.sqrt(2.0 * r0 / (r0 + r_pe)))
    burn3 = math.sqrt(2.0 * mu * r_ap / (r_pe * (r_pe + r_ap))) - math.sqrt(mu / r_pe)
    np.testing.assert_allclose([ideal.burn1, ideal.burn2, ideal.burn3], [burn1, burn2, burn3])
    assert ideal.total == pytest.approx(burn1 + burn2 + burn3)


def test_model_selection_rules():
    assert orbital.uses_energy_optimal_model(1.49, 0.9)
    assert orbital.uses_energy_optimal_model(2.0, 0.05)
    assert not orbital.uses_energy_optimal_model(2.0, 0.1)
    assert not orbital.uses_energy_optimal_model(2.01, 0.0)


def test_high_circular_orbit_has_no_third_burn():
    ideal = orbital.ideal_dv_from_surface(1.0, 1000.0, 3000.0, 3000.0)
    assert not ideal.uses_model_a
    assert ideal.burn3 == 0.0
    assert ideal.total > 0.0


def test_degenerate_geometry_is_zero():
    """Orbits below the surface or inverted apsides give no delta-v."""
    assert orbital.ideal_dv_from_surface(1.0, 1000.0, 900.0, 1200.0).total == 0.0
    assert orbital.ideal_dv_from_surface(1.0, 1000.0, 1300.0, 1200.0).total == 0.0
    assert orbital.ideal_dv_from_surface(0.0, 1000.0, 1200.0, 1200.0).total == 0.0


def test_plane_change_needed_above_inclination():
    plane = orbital.plane_change_for(45.0, 0.0)
    assert plane.required
    assert plane.launch_inclination == 45.0
    assert plane.angle == 45.0


def test_plane_change_tolerance_and_retrograde():
    """Latitude within half a degree of the inclination needs no plane change."""
    assert not orbital.plane_change_for(28.4, 28.0).required
    assert orbital.plane_change_for(28.6, 28.0).required

    retro = orbital.plane_change_for(-30.0, 170.0)
    assert retro.required
    assert retro.launch_inclination == pytest.approx(150.0)
    assert retro.angle == pytest.approx(20.0)


def test_plane_change_dv():
    assert orbital.plane_change_dv(2000.0, 0.0) == 0.0
    assert orbital.plane_change_dv(2000.0, 60.0) == pytest.approx(2000.0)


def test_rotation_assist_and_penalty():
    """At the equator a prograde launch gains exactly the surface speed; retrograde pays it."""
    body = CelestialBody(name="Spin", radius=600000.0, mu=3.5316e12, gee_asl=1.0, rotation_period=21549.425)
    v_eq = body.equatorial_speed
    ideal = 3400.0

    assert orbital.rotation_adjusted_dv(body, ideal, 0.0, 0.0) == pytest.approx(ideal - v_eq)
    assert orbital.rotation_adjusted_dv(body, ideal, 0.0, 180.0) == pytest.approx(ideal + v_eq)


def test_no_rotation_keeps_ideal():
    body = CelestialBody(name="Still", radius=600000.0, mu=3.5316e12, gee_asl=1.0)
    assert orbital.rotation_adjusted_dv(body, 3400.0, 30.0, 30.0) == 3400.0
