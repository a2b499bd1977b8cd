# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Ascent loss model: gravity, drag and steering losses of a gravity-turn ascent.

The vehicle is flown as a point mass along its flight path with a prescribed
pitch program: straight up until it is both fast and high enough, then a
power-law pitch-over towards the target altitude. Gravity and drag losses are
integrated over the trajectory; steering losses use an empirical closed form.
Vehicles without usable propulsion data get a purely empirical estimate.
"""

from typing import Dict, NamedTuple, Optional
import logging
import math
import numpy as np

try:
    from .models import (
        g0, ONE_ATM_KPA, AIR_R_SPECIFIC, KERBIN_ATMO_DEPTH, KERBIN_RADIUS,
        EstimateMode, LossEstimate, LossModelConfig, OrbitTargets, VesselStats,
    )
    from .bodies import CelestialBody
    from .staging import bottom_stage_sea_level_twr
except ImportError:
    from models import (
        g0, ONE_ATM_KPA, AIR_R_SPECIFIC, KERBIN_ATMO_DEPTH, KERBIN_RADIUS,
        EstimateMode, LossEstimate, LossModelConfig, OrbitTargets, VesselStats,
    )
    from bodies import CelestialBody
    from staging import bottom_stage_sea_level_twr

logger = logging.getLogger(__name__)

ASCENT_DT = 1.0  # s
ASCENT_MAX_TIME = 900.0  # s
MIN_FLIGHT_PATH_ANGLE = 0.02  # rad
TURN_SPEED_LIMITS = (40.0, 220.0)  # m/s


class BodyScales(NamedTuple):
    """Body properties normalised against the reference body."""
    gravity: float
    pressure: float
    depth: float
    radius: float


class TurnParams(NamedTuple):
    speed: float
    altitude: float


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _by_mode(mode: EstimateMode, optimistic: float, normal: float, pessimistic: float) -> float:
    if mode == EstimateMode.OPTIMISTIC:
        return optimistic
    if mode == EstimateMode.PESSIMISTIC:
        return pessimistic
    return normal


def cd_for_mode(mode: EstimateMode) -> float:
    """Default drag-area coefficient of the mode."""
    return _by_mode(mode, 0.50, 1.0, 1.5)


def base_turn_speed_for_mode(mode: EstimateMode) -> float:
    return _by_mode(mode, 55.0, 80.0, 95.0)


def twr_reference_for_mode(mode: EstimateMode) -> float:
    return _by_mode(mode, 1.4, 1.5, 1.6)


def turn_exponent_bottom_from_speed(turn_start_speed: float) -> float:
    """Pitch-program exponent for the staged bottom-stage simulation. Linear in speed through 55->0.40 and 95->0.65."""
    if turn_start_speed <= 0.0:
        return 0.58
    exponent = 0.05625 + 0.00625 * _clamp(turn_start_speed, *TURN_SPEED_LIMITS)
    return _clamp(exponent, 0.30, 0.90)


def turn_exponent_full_from_speed(turn_start_speed: float) -> float:
    """Pitch-program exponent for the full-ascent loss simulation. Linear in speed through 55->0.45 and 95->0.80."""
    if turn_start_speed <= 0.0:
        return 0.70
    exponent = -0.03125 + 0.00875 * _clamp(turn_start_speed, *TURN_SPEED_LIMITS)
    return _clamp(exponent, 0.30, 0.90)


def normalized_body_scales(body: Optional[CelestialBody]) -> BodyScales:
    """
    Normalise surface gravity, sea-level pressure, atmosphere depth and radius.

    Each value is divided by its reference-body counterpart and clamped to a
    sane range so that extreme bodies do not blow up the empirical fits.
    """
    if body is None:
        return BodyScales(1.0, 1.0, 1.0, 1.0)
    pressure = body.atmosphere_pressure_sea_level if body.atmosphere else 0.0
    depth = body.atmosphere_depth if body.atmosphere else 0.0
    return BodyScales(
        gravity=_clamp(body.gee_asl, 0.05, 4.0),
        pressure=_clamp(pressure / ONE_ATM_KPA, 0.0, 15.0),
        depth=_clamp(depth / KERBIN_ATMO_DEPTH, 0.0, 12.0),
        radius=_clamp(body.radius / KERBIN_RADIUS, 0.2, 15.0),
    )


def resolve_turn_params(body: Optional[CelestialBody], mode: EstimateMode,
                        user_turn_start_speed: float = -1.0,
                        user_turn_start_altitude: float = -1.0,
                        stats: Optional[VesselStats] = None) -> TurnParams:
    """
    Resolve the gravity-turn start speed and altitude.

    Manual values win when positive. Otherwise the speed scales the mode's base
    speed with the body's gravity, pressure and atmosphere depth and, when
    vessel stats are given and the liftoff TWR is moderate, with the TWR; the
    altitude follows from the atmosphere depth and the speed.

    Args:
        body: Launch body
        mode: Estimate mode
        user_turn_start_speed: Manual speed (m/s), or -1
        user_turn_start_altitude: Manual altitude (m), or -1
        stats: Vessel stats used for the TWR correction, or None to skip it

    Returns:
        TurnParams(speed, altitude)
    """
    if body is None:
        return TurnParams(70.0, 840.0)

    scales = normalized_body_scales(body)
    base_turn = base_turn_speed_for_mode(mode)
    if user_turn_start_speed > 0.0:
        speed = user_turn_start_speed
    else:
        auto_turn = base_turn * scales.gravity ** 0.25 * (
            0.92 + 0.18 * math.log(1.0 + scales.pressure) + 0.12 * scales.depth ** 0.3)
        speed = _clamp(auto_turn, *TURN_SPEED_LIMITS)
    if not math.isfinite(speed):
        speed = base_turn

    if user_turn_start_speed <= 0.0 and stats is not None:
        twr = bottom_stage_sea_level_twr(stats, body)
        if 1.05 <= twr <= 3.0:
            speed = _clamp(speed * math.sqrt(twr_reference_for_mode(mode) / twr), *TURN_SPEED_LIMITS)

    speed_ratio = speed / 80.0
    if user_turn_start_altitude > 0.0:
        altitude = user_turn_start_altitude
    elif body.has_atmosphere:
        altitude = _clamp(body.atmosphere_depth * (0.010 + 0.004 * math.log(1.0 + scales.pressure)),
                          800.0, 22000.0) * speed_ratio
    else:
        altitude = 300.0 * speed_ratio
    return TurnParams(speed, altitude)


def _attitude_loss_simulated(body: CelestialBody, scales: BodyScales, mode: EstimateMode,
                             inclination: float, latitude: float) -> float:
    raw_inc_factor = _clamp(inclination / 90.0, 0.0, 1.0)
    lat_scale = abs(math.cos(math.radians(latitude)))
    inc_factor = raw_inc_factor * lat_scale
    g, p, d, r = scales
    if body.atmosphere:
        base_a0 = _by_mode(mode, 13.0, 20.0, 25.0)
        base_b0 = _by_mode(mode, 13.0, 20.0, 25.0)
        base_a = base_a0 * (0.90 + 0.15 * g ** 0.3 + 0.10 * d ** 0.25)
        base_b = base_b0 * (0.90 + 0.10 * math.log(1.0 + p) + 0.10 * g ** 0.25)
        base_loss = base_a + base_b * math.sqrt(max(0.01, p)) * g
        return base_loss * (1.0 + inc_factor)
    vac_a0 = _by_mode(mode, 1.8, 3.0, 4.0)
    vac_b0 = _by_mode(mode, 3.0, 5.0, 6.0)
    vac_a = vac_a0 * (0.90 + 0.20 * g ** 0.3)
    vac_b = vac_b0 * (0.90 + 0.15 * g ** 0.25 + 0.10 * r ** 0.2)
    return (vac_a + vac_b * g) * (1.0 + inc_factor)


def _simulate_ascent(body: CelestialBody, stats: VesselStats, target: OrbitTargets,
                     config: LossModelConfig, result: LossEstimate,
                     extra_payload_tons: float = 0.0, record: bool = False) -> Optional[Dict[str, np.ndarray]]:
    """
    Fly the whole vehicle as one stage and integrate gravity and drag losses.

    Fills the loss and used-parameter fields of result in place.

    Returns:
        Trajectory arrays when record is True, otherwise None
    """
    mode = config.mode
    scales = normalized_body_scales(body)
    turn = resolve_turn_params(body, mode, config.turn_start_speed, config.turn_start_altitude, stats)
    result.used_turn_start_speed = turn.speed
    result.used_turn_start_speed_manual = config.turn_start_speed > 0.0

    mass = (stats.wet_mass + extra_payload_tons) * 1000.0
    dry_mass = (stats.dry_mass + extra_payload_tons) * 1000.0
    thrust_vac = stats.thrust * 1000.0
    vac_isp = stats.vacuum_isp
    sea_isp = stats.sea_level_isp if stats.sea_level_isp > 0.0 else vac_isp

    total_wet_tons = stats.wet_mass + extra_payload_tons
    coefficient = config.cda_coefficient if config.cda_coefficient > 0.0 else cd_for_mode(mode)
    cda = coefficient * total_wet_tons ** 0.5
    if cda <= 0.0:
        cda = cd_for_mode(mode) * total_wet_tons ** 0.5
    result.used_cda = cda
    result.used_cda_coefficient = coefficient
    result.used_cda_manual = config.cda_coefficient > 0.0

    has_atmo = body.has_atmosphere
    atmo_height = body.atmosphere_depth if has_atmo else 0.0
    result.used_turn_start_altitude = turn.altitude
    result.used_turn_start_altitude_manual = config.turn_start_altitude > 0.0
    result.used_turn_start_altitude_derived_from_speed = (
        config.turn_start_altitude <= 0.0 and config.turn_start_speed > 0.0)

    target_alt = target.periapsis
    turn_end_alt = max(turn.altitude + 1000.0, target_alt)
    turn_exponent = turn_exponent_full_from_speed(turn.speed)
    result.used_turn_exponent_full = turn_exponent
    result.used_turn_exponent_full_manual = False

    altitude = 0.0
    velocity = 0.1
    gamma = math.pi / 2.0
    gravity_loss = 0.0
    drag_loss = 0.0
    turn_started = False
    trace = {key: [] for key in ("t", "altitude", "velocity", "gamma", "mass", "drag",
                                 "gravity_loss", "drag_loss")} if record else None

    dt = ASCENT_DT
    for step in range(int(ASCENT_MAX_TIME / dt)):
        if altitude >= target_alt or mass <= dry_mass:
            break

        g = body.gravity(altitude)

        density = 0.0
        pressure_atm = 0.0
        temp_k = 0.0
        if has_atmo and altitude < atmo_height:
            p_kpa = body.pressure(altitude)
            temp_k = body.temperature(altitude)
            pressure_atm = p_kpa / ONE_ATM_KPA
            if temp_k > 0.0 and p_kpa > 0.0:
                density = p_kpa * 1000.0 / (AIR_R_SPECIFIC * temp_k)

        isp = max(1.0, vac_isp + (sea_isp - vac_isp) * _clamp(pressure_atm, 0.0, 15.0))
        thrust = thrust_vac * (isp / vac_isp)

        mach_mult = 1.0
        if temp_k > 0.0 and velocity > 1.0:
            sound_speed = math.sqrt(1.4 * AIR_R_SPECIFIC * temp_k)
            if sound_speed > 0.0:
                dm = velocity / sound_speed - 1.05
                mach_mult = 1.0 + 1.4 * math.exp(-10.0 * dm * dm)

        drag = 0.5 * density * velocity * velocity * cda * mach_mult
        sin_g = math.sin(gamma)

        gravity_loss += g * sin_g * dt
        if mass > 0.0:
            drag_loss += (drag / mass) * dt

        accel = (thrust - drag) / mass - g * sin_g
        velocity = max(0.1, velocity + accel * dt)
        altitude = max(0.0, altitude + velocity * sin_g * dt)

        if not turn_started and velocity > turn.speed and altitude > turn.altitude:
            turn_started = True

        if turn_started:
            progress = _clamp((altitude - turn.altitude) / (turn_end_alt - turn.altitude), 0.0, 1.0)
            gamma = max(MIN_FLIGHT_PATH_ANGLE, (math.pi / 2.0) * (1.0 - progress ** turn_exponent))

        mass -= thrust / (isp * g0) * dt

        if record:
            trace["t"].append((step + 1) * dt)
            trace["altitude"].append(altitude)
            trace["velocity"].append(velocity)
            trace["gamma"].append(gamma)
            trace["mass"].append(mass)
            trace["drag"].append(drag)
            trace["gravity_loss"].append(gravity_loss)
            trace["drag_loss"].append(drag_loss)

    result.gravity_loss = gravity_loss
    result.atmospheric_loss = drag_loss
    result.attitude_loss = _attitude_loss_simulated(body, scales, mode, target.inclination, target.latitude)

    if record:
        return {key: np.asarray(values) for key, values in trace.items()}
    return None


def fallback_estimate(body: CelestialBody, inclination: float, latitude: float,
                      result: LossEstimate, mode: EstimateMode):
    """Empirical losses for vehicles without usable thrust or Isp data."""
    g, p, d, r = normalized_body_scales(body)

    grav_coeff = _by_mode(mode, 700.0, 900.0, 1050.0) * r ** 0.30 * g ** 0.30
    grav_min = _by_mode(mode, 280.0, 400.0, 500.0) * r ** 0.25 * g ** 0.20
    grav_max = 2200.0 * r ** 0.30
    result.gravity_loss = _clamp(grav_coeff, grav_min, grav_max)

    result.atmospheric_loss = 0.0
    if body.atmosphere:
        atmo_a = _by_mode(mode, 55.0, 80.0, 100.0) * max(0.05, d) ** 0.30
        atmo_b = (_by_mode(mode, 75.0, 100.0, 120.0) * max(0.01, p) ** 0.60
                  * max(0.05, d) ** 0.20)
        atmo_max = 800.0 * r ** 0.30 * max(1.0, p) ** 0.20
        result.atmospheric_loss = _clamp(atmo_a + atmo_b, 30.0, atmo_max)

    lat_scale = abs(math.cos(math.radians(latitude)))
    inc_prefix = 0.2 * (0.95 + 0.08 * min(1.5, math.log(1.0 + r)))
    inc_factor = inc_prefix * min(1.0, inclination / 90.0) * lat_scale
    att_a = _by_mode(mode, 22.0, 35.0, 45.0) * (0.90 + 0.20 * g ** 0.30 + 0.10 * r ** 0.20)
    att_b = _by_mode(mode, 36.0, 55.0, 70.0) * (0.90 + 0.20 * g ** 0.25)
    result.attitude_loss = att_a + att_b * inc_factor


def _apply_overrides(estimate: LossEstimate, config: LossModelConfig) -> LossEstimate:
    if config.override_gravity_loss:
        estimate.gravity_loss = config.manual_gravity_loss
    if config.override_atmospheric_loss:
        estimate.atmospheric_loss = config.manual_atmospheric_loss
    if config.override_attitude_loss:
        estimate.attitude_loss = config.manual_attitude_loss
    estimate.total = estimate.gravity_loss + estimate.atmospheric_loss + estimate.attitude_loss
    return estimate


def estimate_losses(body: Optional[CelestialBody], target: OrbitTargets, config: LossModelConfig,
                    stats: Optional[VesselStats], extra_payload_tons: float = 0.0) -> LossEstimate:
    """
    Estimate the ascent losses for a vehicle carrying extra_payload_tons on top.

    Args:
        body: Launch body; without one only manual overrides contribute
        target: Target orbit (periapsis altitude, inclination, latitude)
        config: Loss model configuration
        stats: Vessel stats; the ascent is simulated when they carry thrust, Isp and mass
        extra_payload_tons: Payload added to the vehicle (t)

    Returns:
        LossEstimate with overrides applied and the total filled in
    """
    estimate = LossEstimate(used_estimate_mode=config.mode)
    if body is not None:
        if stats is not None and stats.can_simulate:
            _simulate_ascent(body, stats, target, config, estimate, extra_payload_tons)
        else:
            fallback_estimate(body, target.inclination, target.latitude, estimate, config.mode)
    _apply_overrides(estimate, config)
    logger.debug("Losses at %.3f t payload: gravity=%.1f drag=%.1f attitude=%.1f total=%.1f m/s",
                 extra_payload_tons, estimate.gravity_loss, estimate.atmospheric_loss,
                 estimate.attitude_loss, estimate.total)
    return estimate


def simulate_ascent_trace(body: CelestialBody, target: OrbitTargets, config: LossModelConfig,
                          stats: VesselStats, extra_payload_tons: float = 0.0) -> Dict[str, np.ndarray]:
    """
    Run the loss simulation and return its trajectory.

    Returns:
        Dictionary of arrays: 't', 'altitude', 'velocity', 'gamma', 'mass',
        'drag', 'gravity_loss' and 'drag_loss' (cumulative), plus the
        LossEstimate under 'estimate'

    Raises:
        ValueError: If the vessel lacks the propulsion data the simulation needs
    """
    if not stats.can_simulate:
        raise ValueError("Vessel has no thrust, Isp or mass data to simulate an ascent")
    estimate = LossEstimate(used_estimate_mode=config.mode)
    trace = _simulate_ascent(body, stats, target, config, estimate, extra_payload_tons, record=True)
    trace["estimate"] = _apply_overrides(estimate, config)
    return trace
