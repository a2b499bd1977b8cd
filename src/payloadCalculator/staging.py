# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Staged delta-v evaluation.

Stages are walked from the top (stage 0, fires last) down to the launch stage,
each carrying the residual mass of everything above it. Upper stages use the
rocket equation with vacuum Isp; the launch stage is flown through the
atmosphere engine by engine so that pressure-dependent Isp, solid thrust
curves, propellant sharing and booster separation all count.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import logging
import math
import numpy as np

try:
    from .models import g0, ONE_ATM_KPA, AIR_R_SPECIFIC, KERBIN_ATMO_DEPTH, EngineEntry, EngineRole, StageInfo, StageResult, VesselStats
    from .bodies import CelestialBody
except ImportError:
    from models import g0, ONE_ATM_KPA, AIR_R_SPECIFIC, KERBIN_ATMO_DEPTH, EngineEntry, EngineRole, StageInfo, StageResult, VesselStats
    from bodies import CelestialBody

logger = logging.getLogger(__name__)

BOTTOM_DT = 0.5  # s
BOTTOM_MAX_TIME = 600.0  # s
CACHE_CAPACITY = 128
MAX_ALLOCATION_PASSES = 6
FALLBACK_POOL = "__fallback_liquid__"
DEFAULT_CDA_COEFFICIENT = 0.6
DEFAULT_TURN_EXPONENT_BOTTOM = 0.58


def sorted_stages(stats: VesselStats) -> List[StageInfo]:
    return sorted(stats.stages, key=lambda s: s.stage_number)


def max_prop_stage_number(stages: List[StageInfo]) -> int:
    """Stage number of the launch stage: the highest stage with delta-v engines and propellant, or -1."""
    numbers = [s.stage_number for s in stages if s.has_dv_engines and s.propellant_mass > 0.0]
    return max(numbers) if numbers else -1


def bottom_stage_sea_level_twr(stats: VesselStats, body: Optional[CelestialBody]) -> float:
    """
    Sea-level thrust-to-weight ratio of the fully fuelled vehicle at liftoff.

    Args:
        stats: Vessel stats
        body: Launch body (surface gravity)

    Returns:
        TWR, or 0 when the vehicle or body gives no meaningful value
    """
    if stats is None or body is None or stats.wet_mass <= 0.0:
        return 0.0
    surface_g = body.surface_gravity
    if surface_g <= 0.0:
        return 0.0

    bottom_number = max_prop_stage_number(stats.stages)
    if bottom_number >= 0:
        bottom = next(s for s in stats.stages if s.stage_number == bottom_number)
        thrust = 0.0
        for e in bottom.engines:
            if e.role.participates_in_dv and e.vacuum_isp > 0.0:
                thrust += e.thrust * (e.sea_level_isp / e.vacuum_isp)
    elif stats.vacuum_isp > 0.0:
        thrust = stats.thrust * (stats.sea_level_isp / stats.vacuum_isp)
    else:
        thrust = 0.0
    return thrust / (stats.wet_mass * surface_g)


@dataclass
class StagedDv:
    """Total delta-v of a staged vehicle and the stages that produced it."""
    total: float
    max_prop_stage: int
    stages: List[StageResult] = field(default_factory=list)


@dataclass
class BottomStageSimulation:
    """Outcome of flying the launch stage; trace holds per-step arrays when recorded."""
    delta_v: float
    trace: Optional[Dict[str, np.ndarray]] = None


class _EngineRuntime:
    """Per-engine propellant bookkeeping during a bottom-stage simulation."""
    __slots__ = ("entry", "initial_prop", "remaining_prop", "exhausted")

    def __init__(self, entry: EngineEntry):
        self.entry = entry
        self.initial_prop = 0.0
        self.remaining_prop = 0.0
        self.exhausted = False

    def output(self, pressure_atm: float) -> Tuple[float, float]:
        """Return (thrust N, mass flow kg/s) at the given pressure."""
        e = self.entry
        isp = e.isp_at_pressure(pressure_atm)
        if isp <= 0.0:
            isp = e.vacuum_isp
        if isp <= 0.0:
            return 0.0, 0.0
        vac_isp = e.vacuum_isp if e.vacuum_isp > 0.0 else isp
        thrust = e.thrust * 1000.0 * (isp / vac_isp)
        if e.role == EngineRole.SOLID and self.initial_prop > 0.0:
            thrust *= e.thrust_multiplier(1.0 - self.remaining_prop / self.initial_prop)
        return thrust, thrust / (isp * g0)


def _uses_pool(entry: EngineEntry, pool: str) -> bool:
    if pool == FALLBACK_POOL:
        return True
    return any(name.lower() == pool for name in entry.propellant_names)


def _allocate_propellant(stage: StageInfo, runtimes: List[_EngineRuntime], liquid_kg: float):
    """
    Split the stage's liquid propellant pools among its liquid engines by thrust share.

    Solid engines keep their own part-contained propellant; their mass is taken
    out of any pool they share a resource name with. A separation group holding
    liquid propellant feeds its own liquid engines from it alone, so they run
    dry and separate before the core; that mass leaves the shared pools.
    """
    pools: Dict[str, float] = {}
    for name, tons in stage.propellant_by_name.items():
        key = name.lower()
        pools[key] = pools.get(key, 0.0) + max(0.0, tons * 1000.0)
    if not pools and liquid_kg > 0.0:
        pools[FALLBACK_POOL] = liquid_kg

    for rt in runtimes:
        if rt.entry.role != EngineRole.SOLID or rt.initial_prop <= 0.0:
            continue
        for name in rt.entry.propellant_names:
            key = name.lower()
            if key in pools:
                pools[key] = max(0.0, pools[key] - rt.initial_prop)

    fed_by_group = set()
    for group in stage.separation_groups:
        available = sum(pools.values())
        group_kg = min(max(0.0, group.liquid_propellant_mass * 1000.0), available)
        own = [runtimes[i] for i in sorted(group.engine_indices)
               if 0 <= i < len(runtimes) and not runtimes[i].exhausted
               and runtimes[i].entry.role != EngineRole.SOLID and runtimes[i] not in fed_by_group]
        group_thrust = sum(rt.entry.thrust for rt in own)
        if group_kg <= 1e-6 or group_thrust <= 1e-9:
            continue
        for rt in own:
            share = group_kg * rt.entry.thrust / group_thrust
            rt.initial_prop += share
            rt.remaining_prop += share
            fed_by_group.add(rt)
        scale = 1.0 - group_kg / available
        for pool in pools:
            pools[pool] *= scale

    for _ in range(MAX_ALLOCATION_PASSES):
        allocated = False
        for pool in list(pools):
            remaining = pools[pool]
            if remaining <= 1e-6:
                continue
            consumers = [rt for rt in runtimes
                         if not rt.exhausted and rt.entry.role != EngineRole.SOLID and rt not in fed_by_group
                         and _uses_pool(rt.entry, pool)]
            compatible_thrust = sum(rt.entry.thrust for rt in consumers)
            if compatible_thrust <= 1e-9:
                continue
            allocated = True
            for rt in consumers:
                share = remaining * rt.entry.thrust / compatible_thrust
                rt.initial_prop += share
                rt.remaining_prop += share
            pools[pool] = 0.0
        if not allocated:
            break


class StagedDeltaV:
    """
    Delta-v calculator for one vehicle on one body.

    Holds the resolved gravity-turn parameters and the memoisation cache of
    bottom-stage simulations. Create one per payload calculation; the cache is
    keyed on the exact inputs and must not outlive the calculation.
    """

    def __init__(self, body: Optional[CelestialBody], turn_start_speed: float = -1.0,
                 turn_start_altitude: float = -1.0, cda_coefficient: float = DEFAULT_CDA_COEFFICIENT,
                 turn_exponent_bottom: float = DEFAULT_TURN_EXPONENT_BOTTOM, use_cache: bool = True):
        """
        Initialize the calculator.

        Args:
            body: Launch body; None means no atmosphere and standard gravity
            turn_start_speed: Gravity-turn start speed (m/s), -1 for the simulator default
            turn_start_altitude: Gravity-turn start altitude (m), -1 for the simulator default
            cda_coefficient: Drag-area coefficient, multiplied by sqrt(wet tons)
            turn_exponent_bottom: Pitch-program exponent of the launch stage
            use_cache: Memoise bottom-stage simulations
        """
        self.body = body
        self.turn_start_speed = turn_start_speed
        self.turn_start_altitude = turn_start_altitude
        self.cda_coefficient = cda_coefficient
        self.turn_exponent_bottom = turn_exponent_bottom
        self.use_cache = use_cache
        self._cache: Dict[tuple, float] = {}
        self._blend_factors: Dict[str, float] = {}

    def clear_cache(self):
        self._cache.clear()

    # ------------------------------------------------------------------
    # Stage walking
    # ------------------------------------------------------------------

    def compute(self, stats: VesselStats, extra_payload: float = 0.0,
                max_prop_stage: Optional[int] = None) -> StagedDv:
        """
        Total delta-v of the stack with extra_payload tons mounted on top.

        Args:
            stats: Vessel stats with at least one stage
            extra_payload: Payload added above stage 0 (t)
            max_prop_stage: Launch stage number; found from the stages when None

        Returns:
            StagedDv with the total and one StageResult per stage that burned
        """
        stages = sorted_stages(stats)
        if max_prop_stage is None:
            max_prop_stage = max_prop_stage_number(stages)
        surface_g = self.body.surface_gravity if self.body is not None else g0

        total = 0.0
        mass_above = extra_payload
        results = []
        for stage in stages:
            if not stage.has_dv_engines or stage.propellant_mass <= 0.0:
                mass_above += stage.residual_mass
                continue

            wet = stage.wet_mass + mass_above
            dry = wet - stage.propellant_mass
            if dry <= 0.0 or wet <= dry:
                mass_above += stage.wet_mass
                continue

            is_bottom = stage.stage_number == max_prop_stage
            dv, effective_isp = self.stage_dv(stage, wet, dry, is_bottom)
            if dv <= 0.0:
                mass_above += stage.wet_mass
                continue

            sl_thrust = (stage.thrust * (stage.sea_level_isp / stage.vacuum_isp)
                         if stage.vacuum_isp > 0.0 else stage.thrust)
            results.append(StageResult(
                stage_number=stage.stage_number,
                delta_v=dv,
                effective_isp=effective_isp,
                used_sea_level_isp=(is_bottom and self.body is not None and self.body.atmosphere
                                    and effective_isp + 1e-6 < stage.vacuum_isp),
                mass_at_ignition=wet,
                mass_after_burn=dry,
                twr_at_ignition=sl_thrust / (wet * surface_g) if wet > 0.0 and surface_g > 0.0 else 0.0,
            ))
            total += dv
            mass_above += stage.residual_mass

        return StagedDv(total=total, max_prop_stage=max_prop_stage, stages=results)

    def compute_for_display(self, stats: VesselStats, use_sea_level_isp: bool) -> float:
        """
        Staged delta-v using sea-level or vacuum Isp throughout, rocket equation only.

        Args:
            stats: Vessel stats
            use_sea_level_isp: Use sea-level Isp (only on bodies with an atmosphere)

        Returns:
            Total delta-v (m/s)
        """
        stages = sorted_stages(stats)
        max_prop_stage = max_prop_stage_number(stages)
        sea_level = use_sea_level_isp and self.body is not None and self.body.atmosphere

        total = 0.0
        mass_above = 0.0
        for stage in stages:
            if not stage.has_dv_engines or stage.propellant_mass <= 0.0:
                mass_above += stage.residual_mass
                continue

            isp = stage.sea_level_isp if sea_level else stage.vacuum_isp
            wet = stage.wet_mass + mass_above
            dry = wet - stage.propellant_mass
            if stage.stage_number == max_prop_stage:
                dry -= stage.separation_dry_mass
            if stage.fairing_mass > 0.0:
                wet = max(0.001, wet - stage.fairing_mass)
                dry = max(0.001, dry - stage.fairing_mass)

            if isp <= 0.0 or dry <= 0.0 or wet <= dry:
                mass_above += stage.wet_mass
                continue

            total += isp * g0 * math.log(wet / dry)
            mass_above += stage.residual_mass
        return total

    def simple_dv(self, stats: VesselStats, extra_payload: float = 0.0) -> float:
        """Delta-v of a vehicle without stage data, flown as a single launch stage."""
        wet = stats.wet_mass + extra_payload
        dry = stats.dry_mass + extra_payload
        if wet <= 0.0 or dry <= 0.0 or wet <= dry:
            return 0.0
        stage = StageInfo(
            stage_number=0,
            wet_mass=stats.wet_mass,
            dry_mass=stats.dry_mass,
            propellant_mass=stats.wet_mass - stats.dry_mass,
            vacuum_isp=stats.vacuum_isp,
            sea_level_isp=stats.sea_level_isp,
            thrust=stats.thrust,
        )
        dv, _ = self.stage_dv(stage, wet, dry, is_bottom=True)
        return dv

    def simple_dv_for_display(self, stats: VesselStats, use_sea_level_isp: bool) -> float:
        sea_level = use_sea_level_isp and self.body is not None and self.body.atmosphere
        isp = stats.sea_level_isp if sea_level else stats.vacuum_isp
        if isp <= 0.0 or stats.wet_mass <= 0.0 or stats.dry_mass <= 0.0 or stats.wet_mass <= stats.dry_mass:
            return 0.0
        return isp * g0 * math.log(stats.wet_mass / stats.dry_mass)

    def stage_dv(self, stage: StageInfo, wet: float, dry: float, is_bottom: bool) -> Tuple[float, float]:
        """
        Delta-v of one stage burning from wet to dry tons.

        The fairing is dropped before the burn. The launch stage on a body with
        an atmosphere is simulated; every other stage uses the rocket equation.

        Returns:
            (delta-v m/s, effective Isp s); (0, 0) when the stage cannot burn
        """
        if stage.fairing_mass > 0.0:
            wet = max(0.001, wet - stage.fairing_mass)
            dry = max(0.001, dry - stage.fairing_mass)
        if wet <= dry or dry <= 0.0:
            return 0.0, 0.0

        final_dry = dry
        if is_bottom and stage.separation_groups:
            final_dry = max(0.01, dry - stage.separation_dry_mass)
        if wet <= final_dry:
            return 0.0, 0.0
        ln_mass_ratio = math.log(wet / final_dry)
        if ln_mass_ratio <= 0.0:
            return 0.0, 0.0

        body = self.body
        if (is_bottom and body is not None and body.has_atmosphere
                and stage.vacuum_isp > 0.0 and stage.thrust > 0.0):
            dynamic_dv = self.simulate_bottom_stage(stage, wet, dry).delta_v
            if dynamic_dv > 0.0:
                return dynamic_dv, dynamic_dv / (g0 * ln_mass_ratio)

        isp = self.effective_isp(stage.vacuum_isp, stage.sea_level_isp, is_bottom)
        if isp <= 0.0:
            return 0.0, 0.0
        return isp * g0 * ln_mass_ratio, isp

    # ------------------------------------------------------------------
    # Isp blending
    # ------------------------------------------------------------------

    def effective_isp(self, vacuum_isp: float, sea_level_isp: float, is_bottom: bool) -> float:
        """Vacuum Isp, except for a launch stage in an atmosphere which blends in sea-level Isp."""
        if self.body is None or not self.body.atmosphere or not is_bottom:
            return vacuum_isp
        f = self.atmosphere_blend_factor()
        return vacuum_isp * (1.0 - f) + sea_level_isp * f

    def atmosphere_blend_factor(self) -> float:
        """
        Share of sea-level Isp in the launch stage's effective Isp.

        Samples the pressure curve at 21 altitudes up to the top of the
        atmosphere, weighting low altitudes more since the vehicle spends more
        of its burn there. Cached per body name.
        """
        body = self.body
        if body is None or not body.has_atmosphere:
            return 0.0
        cached = self._blend_factors.get(body.name)
        if cached is not None:
            return cached

        sea_p = body.atmosphere_pressure_sea_level if body.atmosphere_pressure_sea_level > 0.0 else ONE_ATM_KPA
        n = 20
        heights = body.atmosphere_depth * np.arange(n + 1) / n
        fractions = np.clip([body.pressure(h) / sea_p for h in heights], 0.0, 1.0)
        weights = 1.0 - 0.5 * np.arange(n + 1) / n
        factor = min(0.5, float(np.sum(fractions * weights) / np.sum(weights)))
        if not math.isfinite(factor):
            factor = self.default_blend_factor()
        self._blend_factors[body.name] = factor
        return factor

    def default_blend_factor(self) -> float:
        body = self.body
        if body is None or not body.has_atmosphere:
            return 0.0
        p = max(0.0, min(15.0, body.atmosphere_pressure_sea_level / ONE_ATM_KPA))
        d = max(0.0, min(12.0, body.atmosphere_depth / KERBIN_ATMO_DEPTH))
        raw = 0.18 + 0.10 * math.log(1.0 + p) + 0.06 * d ** 0.35
        return max(0.12, min(0.55, raw))

    # ------------------------------------------------------------------
    # Launch stage simulation
    # ------------------------------------------------------------------

    def _cache_key(self, wet: float, dry: float, turn_speed: float, turn_alt: float) -> tuple:
        # Exact inputs: a hit must return what a fresh simulation would
        return (wet, dry, turn_speed, turn_alt, self.cda_coefficient, self.turn_exponent_bottom)

    def simulate_bottom_stage(self, stage: StageInfo, wet: float, dry: float,
                              record: bool = False) -> BottomStageSimulation:
        """
        Fly the launch stage from wet to dry tons through the atmosphere.

        Every delta-v engine runs on its own Isp table and, for solids, its
        thrust curve. Liquid propellant is shared out by thrust, and a
        separation group's dry mass leaves the stack as soon as all its engines
        run dry. Delta-v is the integrated thrust acceleration.

        Args:
            stage: Launch stage
            wet: Mass at ignition, stack above included (t)
            dry: Mass at burnout before any separation (t)
            record: Return per-step trace arrays (bypasses the cache)

        Returns:
            BottomStageSimulation with delta-v (m/s) and the optional trace
        """
        body = self.body
        mass = wet * 1000.0
        dry_mass = dry * 1000.0
        if mass <= dry_mass or stage.thrust <= 0.0:
            return BottomStageSimulation(0.0)

        turn_speed = self.turn_start_speed if self.turn_start_speed > 0.0 else 70.0
        turn_alt = (self.turn_start_altitude if self.turn_start_altitude > 0.0
                    else max(600.0, min(18000.0, body.atmosphere_depth * 0.012)))
        key = self._cache_key(wet, dry, turn_speed, turn_alt)
        if self.use_cache and not record:
            cached = self._cache.get(key)
            if cached is not None:
                return BottomStageSimulation(cached)
            if len(self._cache) >= CACHE_CAPACITY:
                logger.debug("Bottom-stage cache full, clearing %d entries", len(self._cache))
                self._cache.clear()

        sea_p = body.atmosphere_pressure_sea_level if body.atmosphere_pressure_sea_level > 0.0 else ONE_ATM_KPA
        per_engine = len(stage.engines) > 0
        fallback_vac = stage.vacuum_isp if stage.vacuum_isp > 0.0 else stage.sea_level_isp
        fallback_sea = stage.sea_level_isp if stage.sea_level_isp > 0.0 else fallback_vac

        runtimes: List[_EngineRuntime] = []
        if per_engine:
            total_thrust = 0.0
            solid_prop = 0.0
            for e in stage.engines:
                rt = _EngineRuntime(e)
                runtimes.append(rt)
                if not e.role.participates_in_dv:
                    rt.exhausted = True
                    continue
                total_thrust += e.thrust * 1000.0
                if e.role == EngineRole.SOLID and e.propellant_mass > 0.0:
                    rt.initial_prop = e.propellant_mass * 1000.0
                    rt.remaining_prop = rt.initial_prop
                    solid_prop += rt.initial_prop
            liquid_kg = max(0.0, (wet - dry) * 1000.0 - solid_prop)
            _allocate_propellant(stage, runtimes, liquid_kg)
            for rt in runtimes:
                if rt.initial_prop <= 1e-6:
                    rt.exhausted = True
        else:
            total_thrust = stage.thrust * 1000.0

        if total_thrust <= 0.0 and fallback_vac <= 0.0:
            return BottomStageSimulation(0.0)

        altitude = 0.0
        velocity = 0.1
        gamma = math.pi * 0.5
        turn_started = False
        turn_end_alt = max(turn_alt + 1000.0, body.atmosphere_depth * 0.85)
        total_dv = 0.0
        cda = self.cda_coefficient * math.sqrt(max(0.01, wet))
        groups = stage.separation_groups
        dropped = set()
        trace = {key: [] for key in ("t", "altitude", "velocity", "gamma", "mass", "thrust",
                                     "mass_flow", "step", "acceleration", "dropped_mass")} if record else None

        dt = BOTTOM_DT
        for index in range(int(BOTTOM_MAX_TIME / dt)):
            if mass <= dry_mass:
                break
            p_kpa = 0.0
            temp_k = 0.0
            if altitude < body.atmosphere_depth:
                p_kpa = body.pressure(altitude)
                temp_k = body.temperature(altitude)
            pressure_atm = max(0.0, min(1.0, p_kpa / sea_p))

            thrust = 0.0
            mass_flow = 0.0
            flows = []
            if per_engine:
                for rt in runtimes:
                    if rt.exhausted:
                        continue
                    engine_thrust, engine_flow = rt.output(pressure_atm)
                    thrust += engine_thrust
                    mass_flow += engine_flow
                    flows.append((rt, engine_flow))
            else:
                isp = fallback_vac + (fallback_sea - fallback_vac) * pressure_atm
                if isp <= 0.0:
                    isp = fallback_vac
                thrust = total_thrust * (isp / fallback_vac)
                mass_flow = thrust / (isp * g0)

            if thrust <= 0.0 or mass_flow <= 0.0:
                break
            step = min(dt, (mass - dry_mass) / mass_flow)
            if step <= 0.0:
                break

            total_dv += (thrust / mass) * step

            g = body.gravity(altitude)
            density = 0.0
            if temp_k > 0.0 and p_kpa > 0.0:
                density = p_kpa * 1000.0 / (AIR_R_SPECIFIC * temp_k)
            mach_mult = 1.0
            if temp_k > 0.0 and velocity > 1.0:
                sound_speed = math.sqrt(1.4 * AIR_R_SPECIFIC * temp_k)
                if sound_speed > 0.0:
                    dm = velocity / sound_speed - 1.05
                    mach_mult = 1.0 + 1.4 * math.exp(-10.0 * dm * dm)
            drag = 0.5 * density * velocity * velocity * cda * mach_mult
            sin_g = math.sin(gamma)
            accel = (thrust - drag) / mass - g * sin_g

            if record:
                trace["t"].append(index * dt)
                trace["altitude"].append(altitude)
                trace["velocity"].append(velocity)
                trace["gamma"].append(gamma)
                trace["mass"].append(mass)
                trace["thrust"].append(thrust)
                trace["mass_flow"].append(mass_flow)
                trace["step"].append(step)
                trace["acceleration"].append(accel)

            velocity = max(0.1, velocity + accel * step)
            altitude = max(0.0, altitude + velocity * sin_g * step)

            if not turn_started and velocity > turn_speed and altitude > turn_alt:
                turn_started = True
            if turn_started:
                progress = max(0.0, min(1.0, (altitude - turn_alt) / (turn_end_alt - turn_alt)))
                gamma = max(0.02, (math.pi * 0.5) * (1.0 - progress ** self.turn_exponent_bottom))

            dropped_now = 0.0
            if per_engine:
                for rt, engine_flow in flows:
                    consumed = engine_flow * step
                    if consumed >= rt.remaining_prop:
                        consumed = rt.remaining_prop
                        rt.exhausted = True
                    rt.remaining_prop -= consumed

                for gi, group in enumerate(groups):
                    if gi in dropped or group.dry_mass <= 0.0:
                        continue
                    if all(0 <= i < len(runtimes) and runtimes[i].exhausted for i in group.engine_indices):
                        drop = group.dry_mass * 1000.0
                        mass -= drop
                        dry_mass -= drop
                        dropped_now += drop
                        dropped.add(gi)
                        logger.debug("Separation group %d dropped %.0f kg at t=%.1f s", gi, drop, index * dt)

            if record:
                trace["dropped_mass"].append(dropped_now)

            mass = max(dry_mass, mass - mass_flow * step)

        if self.use_cache and not record:
            self._cache[key] = total_dv
        if record:
            return BottomStageSimulation(total_dv, {k: np.asarray(v) for k, v in trace.items()})
        return BottomStageSimulation(total_dv)
