# Licensed under the PolyForm Noncommercial License 1.0.0
"""Core payload calculation: how much a staged vehicle can put into a target orbit."""

from dataclasses import replace
from typing import Optional
import logging
import math

try:
    from .models import (
        CalculationError, ErrorKind, LossModelConfig, OrbitTargets,
        PayloadCalculationResult, VesselStats,
    )
    from .losses import cd_for_mode, estimate_losses, resolve_turn_params, turn_exponent_bottom_from_speed
    from .staging import StagedDeltaV
    from . import orbital
except ImportError:
    from models import (
        CalculationError, ErrorKind, LossModelConfig, OrbitTargets,
        PayloadCalculationResult, VesselStats,
    )
    from losses import cd_for_mode, estimate_losses, resolve_turn_params, turn_exponent_bottom_from_speed
    from staging import StagedDeltaV
    import orbital

logger = logging.getLogger(__name__)


class PayloadCalculator:
    """
    Estimates the largest payload a vehicle can deliver to a target orbit.

    Required delta-v is the rotation-adjusted ideal delta-v plus ascent losses
    plus any plane change; available delta-v comes from the staged rocket
    equation with the launch stage flown through the atmosphere. Because drag
    losses grow with payload, the two are refined against each other over a
    fixed number of passes, each pass bisecting for the payload at which
    available and required delta-v meet.
    """

    FIXED_POINT_PASSES = 4
    SEARCH_ITERATIONS = 64
    SEARCH_UPPER_FACTOR = 5.0

    def __init__(self, use_cache: bool = True):
        """
        Initialize the calculator.

        Args:
            use_cache: Memoise launch-stage simulations within a calculation
        """
        self.use_cache = use_cache

    def compute(self, stats: Optional[VesselStats], targets: Optional[OrbitTargets],
                loss_config: Optional[LossModelConfig] = None) -> PayloadCalculationResult:
        """
        Run the payload calculation.

        Never raises for bad input: failures come back as a result with
        success False and error set.

        Args:
            stats: Vessel snapshot
            targets: Launch site and target orbit; not modified
            loss_config: Loss model configuration, defaults to Normal mode

        Returns:
            PayloadCalculationResult
        """
        result = PayloadCalculationResult()
        try:
            self._compute(stats, targets, loss_config or LossModelConfig(), result)
        except CalculationError as e:
            logger.warning("Payload calculation failed: %s", e)
            result.success = False
            result.error = e.kind
        return result

    def _validate(self, stats: Optional[VesselStats], targets: Optional[OrbitTargets]) -> OrbitTargets:
        if stats is None or not stats.has_vessel:
            raise CalculationError(ErrorKind.NO_VESSEL, "No vessel loaded")
        if targets is None or targets.body is None:
            raise CalculationError(ErrorKind.NO_BODY, "No launch body selected")

        aggregates = (stats.wet_mass, stats.dry_mass, stats.thrust, stats.vacuum_isp, stats.sea_level_isp)
        if not all(math.isfinite(v) and v >= 0.0 for v in aggregates):
            raise CalculationError(ErrorKind.ZERO_AVAILABLE_DV, f"Invalid vessel mass or propulsion {aggregates}")

        values = (targets.latitude, targets.periapsis, targets.apoapsis, targets.inclination)
        if not all(math.isfinite(v) for v in values):
            raise CalculationError(ErrorKind.ORBIT_GEOMETRY_INVALID, f"Non-finite orbit target {values}")

        clamped = replace(targets)
        clamped.clamp_latitude()
        altitude_error = clamped.clamp_altitudes()
        clamped.clamp_inclination()
        if altitude_error is not None:
            raise CalculationError(altitude_error, "Target orbit extends beyond the sphere of influence")
        return clamped

    def _compute(self, stats: VesselStats, targets: OrbitTargets, loss_config: LossModelConfig,
                 result: PayloadCalculationResult):
        targets = self._validate(stats, targets)
        body = targets.body

        plane = orbital.plane_change_for(targets.latitude, targets.inclination)
        if plane.required:
            result.warning = ErrorKind.INCLINATION_BELOW_LATITUDE
            logger.warning("Inclination %.1f deg is below launch latitude %.1f deg; adding a %.1f deg plane change",
                           targets.inclination, targets.latitude, plane.angle)

        r_pe = body.radius + targets.periapsis
        r_ap = body.radius + targets.apoapsis
        orbital_speed = orbital.periapsis_speed(body.mu, r_pe, r_ap)
        ideal = orbital.ideal_dv_from_surface(body.mu, body.radius, r_pe, r_ap)
        plane_change_dv = orbital.plane_change_dv(orbital_speed, plane.angle) if plane.required else 0.0
        inertial_dv = orbital.rotation_adjusted_dv(body, ideal.total, targets.latitude, plane.launch_inclination)

        mode = loss_config.mode
        turn = resolve_turn_params(body, mode, loss_config.turn_start_speed, loss_config.turn_start_altitude)
        cda_coefficient = loss_config.cda_coefficient if loss_config.cda_coefficient > 0.0 else cd_for_mode(mode)
        turn_exponent_bottom = turn_exponent_bottom_from_speed(turn.speed)

        staged = StagedDeltaV(body, turn.speed, turn.altitude, cda_coefficient, turn_exponent_bottom,
                              use_cache=self.use_cache)
        staged.clear_cache()

        if stats.stages:
            staged_dv = staged.compute(stats)
            available_dv = staged_dv.total
            max_prop_stage = staged_dv.max_prop_stage
            result.active_stages = staged_dv.stages
            result.available_dv_sea_level = staged.compute_for_display(stats, use_sea_level_isp=True)
            result.available_dv_vacuum = staged.compute_for_display(stats, use_sea_level_isp=False)
        else:
            available_dv = staged.simple_dv(stats)
            max_prop_stage = -1
            result.available_dv_sea_level = staged.simple_dv_for_display(stats, use_sea_level_isp=True)
            result.available_dv_vacuum = staged.simple_dv_for_display(stats, use_sea_level_isp=False)

        if available_dv <= 0.0:
            raise CalculationError(ErrorKind.ZERO_AVAILABLE_DV, "Vessel has no usable delta-v")

        payload = 0.0
        losses = None
        required_dv = 0.0
        for pass_index in range(self.FIXED_POINT_PASSES):
            losses = estimate_losses(body, targets, loss_config, stats, payload)
            required_dv = max(0.0, inertial_dv + losses.total + plane_change_dv)
            previous = payload
            payload = self.estimate_payload(staged, stats, required_dv, max_prop_stage)
            logger.debug("Pass %d: required %.1f m/s, payload %.4f t (change %.4f t)",
                         pass_index + 1, required_dv, payload, payload - previous)

        losses.used_turn_exponent_bottom = turn_exponent_bottom
        losses.used_turn_exponent_bottom_manual = False

        result.success = True
        result.required_dv = required_dv
        result.available_dv = available_dv
        result.estimated_payload = payload
        result.orbital_speed = orbital_speed
        result.rotation_dv = inertial_dv - ideal.total
        result.plane_change_dv = plane_change_dv
        result.ideal_dv = ideal
        result.periapsis = targets.periapsis
        result.apoapsis = targets.apoapsis
        result.eccentricity = orbital.eccentricity(r_pe, r_ap)
        result.inclination = targets.inclination
        result.losses = losses

    def estimate_payload(self, staged: StagedDeltaV, stats: VesselStats, required_dv: float,
                         max_prop_stage: int = -1) -> float:
        """
        Bisect for the largest extra payload whose available delta-v still covers required_dv.

        Args:
            staged: Delta-v calculator bound to the launch body
            stats: Vessel stats
            required_dv: Delta-v the vehicle must deliver (m/s)
            max_prop_stage: Launch stage number

        Returns:
            Payload in tons; 0 when even an empty vehicle falls short
        """
        if stats.stages:
            def available(extra):
                return staged.compute(stats, extra, max_prop_stage).total
        else:
            def available(extra):
                return staged.simple_dv(stats, extra)

        if available(0.0) < required_dv:
            return 0.0

        lo, hi = 0.0, stats.wet_mass * self.SEARCH_UPPER_FACTOR
        for _ in range(self.SEARCH_ITERATIONS):
            mid = (lo + hi) * 0.5
            if available(mid) >= required_dv:
                lo = mid
            else:
                hi = mid
        return lo
