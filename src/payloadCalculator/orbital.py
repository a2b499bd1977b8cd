# Licensed under the PolyForm Noncommercial License 1.0.0
"""Closed-form orbital mechanics for surface-to-orbit delta-v budgets."""

from dataclasses import dataclass
import math

try:
    from .models import IdealDv
    from .bodies import CelestialBody
except ImportError:
    from models import IdealDv
    from bodies import CelestialBody

# Tolerance (deg) before a latitude counts as above the target inclination
PLANE_CHANGE_TOLERANCE_DEG = 0.5
CIRCULAR_TOLERANCE = 1.0e-6


def semi_major_axis(r_pe: float, r_ap: float) -> float:
    return 0.5 * (r_pe + r_ap)


def eccentricity(r_pe: float, r_ap: float) -> float:
    """Eccentricity of the ellipse with the given apsis radii (0 for circular)."""
    a = semi_major_axis(r_pe, r_ap)
    return (r_ap - r_pe) / (r_ap + r_pe) if a > 0.0 else 0.0


def orbital_speed(mu: float, r: float, a: float) -> float:
    """Vis-viva speed at radius r on an orbit of semi-major axis a."""
    return math.sqrt(mu * (2.0 / r - 1.0 / a))


def periapsis_speed(mu: float, r_pe: float, r_ap: float) -> float:
    return orbital_speed(mu, r_pe, semi_major_axis(r_pe, r_ap))


def circular_speed(mu: float, r: float) -> float:
    return math.sqrt(mu / r)


def uses_energy_optimal_model(alpha: float, ecc: float) -> bool:
    """
    Select the ideal delta-v model.

    Low and near-circular orbits (alpha < 1.5, or alpha <= 2 with
    eccentricity < 0.1) use the energy-optimal single-burn bound (model A);
    everything else uses the Hohmann-structured sequence (model B).
    """
    return alpha < 1.5 or (alpha <= 2.0 and ecc < 0.1)


def ideal_dv_from_surface(mu: float, r0: float, r_pe: float, r_ap: float) -> IdealDv:
    """
    Ideal delta-v from the surface (radius r0) to an orbit with apsis radii r_pe, r_ap.

    Args:
        mu: Gravitational parameter (m^3 s^-2)
        r0: Body radius (m)
        r_pe: Periapsis radius (m)
        r_ap: Apoapsis radius (m)

    Returns:
        IdealDv with the total, the model used and the individual burns.
        All zero for degenerate geometry.
    """
    if mu <= 0.0 or r0 <= 0.0 or r_pe < r0 or r_ap < r_pe:
        return IdealDv()

    radius_sum = r_pe + r_ap
    if radius_sum <= 0.0:
        return IdealDv()

    alpha = radius_sum * 0.5 / r0
    ecc = (r_ap - r_pe) / radius_sum

    if uses_energy_optimal_model(alpha, ecc):
        dv_sq = 2.0 * mu * ((1.0 / r0) - (1.0 / radius_sum))
        total = math.sqrt(max(0.0, dv_sq))
        return IdealDv(total=total, uses_model_a=True, burn1=total)

    # Hohmann transfer from the surface to periapsis, then raise apoapsis
    burn1 = math.sqrt(mu / r0) * math.sqrt(2.0 * r_pe / (r0 + r_pe))
    burn2 = max(0.0, math.sqrt(mu / r_pe) * (1.0 - math.sqrt(2.0 * r0 / (r0 + r_pe))))
    if abs(r_ap - r_pe) < CIRCULAR_TOLERANCE * radius_sum:
        burn3 = 0.0
    else:
        burn3 = max(0.0, math.sqrt(2.0 * mu * r_ap / (r_pe * radius_sum)) - math.sqrt(mu / r_pe))
    return IdealDv(total=burn1 + burn2 + burn3, uses_model_a=False, burn1=burn1, burn2=burn2, burn3=burn3)


def effective_inclination(inclination_deg: float) -> float:
    """Reflect retrograde inclinations into [0, 90]."""
    return 180.0 - inclination_deg if inclination_deg > 90.0 else inclination_deg


@dataclass(frozen=True)
class PlaneChange:
    """Whether the launch latitude forces a plane change, and by how much."""
    required: bool
    launch_inclination: float
    angle: float


def plane_change_for(latitude_deg: float, inclination_deg: float) -> PlaneChange:
    """
    Work out the plane change needed when the launch latitude exceeds the target inclination.

    A launch can only reach inclinations at least as large as its latitude; the
    vehicle then launches into the lowest reachable inclination (prograde or
    retrograde, matching the target) and changes plane in orbit.

    Args:
        latitude_deg: Launch latitude (deg)
        inclination_deg: Target inclination (deg, 0-180)

    Returns:
        PlaneChange with the launch inclination actually flown and the angle (deg) to remove in orbit
    """
    abs_lat = abs(latitude_deg)
    eff_inc = effective_inclination(inclination_deg)
    if not eff_inc + PLANE_CHANGE_TOLERANCE_DEG < abs_lat:
        return PlaneChange(required=False, launch_inclination=inclination_deg, angle=0.0)
    launch_inc = 180.0 - abs_lat if inclination_deg > 90.0 else abs_lat
    return PlaneChange(required=True, launch_inclination=launch_inc, angle=abs_lat - eff_inc)


def plane_change_dv(speed: float, angle_deg: float) -> float:
    """Delta-v to rotate an orbit plane by angle_deg at the given speed."""
    return 2.0 * speed * math.sin(math.radians(angle_deg) * 0.5)


def rotation_adjusted_dv(body: CelestialBody, ideal_dv: float, latitude_deg: float,
                         launch_inclination_deg: float) -> float:
    """
    Inertial delta-v once the surface rotation of the launch site is accounted for.

    Combines the ideal delta-v with the equatorial rotation speed along the
    launch azimuth implied by the inclination (law of cosines). The result is
    below ideal_dv for prograde launches (assist) and above it for retrograde
    ones (penalty).
    """
    if body.rotation_period <= 0.0:
        return ideal_dv
    equatorial = body.equatorial_speed
    surface = equatorial * abs(math.cos(math.radians(latitude_deg)))
    cos_inc = math.cos(math.radians(launch_inclination_deg))
    dv_sq = ideal_dv * ideal_dv - 2.0 * ideal_dv * equatorial * cos_inc + surface * surface
    return math.sqrt(max(0.0, dv_sq))
