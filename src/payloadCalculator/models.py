# Licensed under the PolyForm Noncommercial License 1.0.0
"""Data models and constants for the payload calculator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional, Sequence
import math
import numpy as np

if TYPE_CHECKING:
    from .bodies import CelestialBody

# Physical constants
g0 = 9.80665  # Standard gravity (m/s^2)
ONE_ATM_KPA = 101.325  # Standard atmosphere (kPa)
AIR_R_SPECIFIC = 287.058  # Specific gas constant of dry air (J kg^-1 K^-1)

# Reference body used to normalise gravity, pressure, atmosphere depth and radius
KERBIN_ATMO_DEPTH = 70000.0  # m
KERBIN_RADIUS = 600000.0  # m


class EstimateMode(Enum):
    """Loss estimate preset: best case, typical, worst case."""
    OPTIMISTIC = 0
    NORMAL = 1
    PESSIMISTIC = 2

    @classmethod
    def parse(cls, value) -> "EstimateMode":
        """Accept an EstimateMode, its name (any case) or its integer value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown estimate mode {value!r}") from None
        return cls(int(value))


class EngineRole(Enum):
    MAIN = 0
    SOLID = 1
    ELECTRIC = 2
    RETRO = 3
    SETTLING = 4
    ESCAPE_TOWER = 5

    @property
    def participates_in_dv(self) -> bool:
        """Only main, solid and electric engines count towards ascent delta-v."""
        return self in (EngineRole.MAIN, EngineRole.SOLID, EngineRole.ELECTRIC)


class ErrorKind(Enum):
    """Failure and warning conditions reported by the payload calculation.

    Values are the message keys used by the user interface.
    """
    NO_VESSEL = "#LOC_OPC_NoVessel"
    NO_BODY = "#LOC_OPC_NoBody"
    ORBIT_GEOMETRY_INVALID = "#LOC_OPC_ApoapsisExceedsSOI"
    ZERO_AVAILABLE_DV = "#LOC_OPC_ZeroDv"
    INCLINATION_BELOW_LATITUDE = "#LOC_OPC_InclinationBelowLatitudeWarning"


class CalculationError(ValueError):
    """Raised inside the calculator when an input makes the computation impossible."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        super().__init__(message or kind.name)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


@dataclass
class EngineEntry:
    """Propulsion data for a single engine.

    Attributes:
        thrust: Vacuum thrust (kN)
        vacuum_isp: Vacuum specific impulse (s)
        sea_level_isp: Sea-level specific impulse (s)
        role: Engine role; only MAIN, SOLID and ELECTRIC produce ascent delta-v
        propellant_mass: Part-contained propellant (t), solids only
        propellant_names: Resource names the engine burns
        part_dry_mass: Dry mass of the part holding the engine (t)
        part_id: Identifier of the owning part
        pressure_samples: Pressures (atm) of the Isp table, ascending
        isp_samples: Isp (s) at each pressure sample
        thrust_curve_fractions: Burn fractions of the thrust curve, ascending
        thrust_curve_multipliers: Thrust multiplier at each burn fraction
    """
    thrust: float
    vacuum_isp: float
    sea_level_isp: float
    role: EngineRole = EngineRole.MAIN
    propellant_mass: float = 0.0
    propellant_names: List[str] = field(default_factory=list)
    part_dry_mass: float = 0.0
    part_id: int = -1
    pressure_samples: Optional[Sequence[float]] = None
    isp_samples: Optional[Sequence[float]] = None
    thrust_curve_fractions: Optional[Sequence[float]] = None
    thrust_curve_multipliers: Optional[Sequence[float]] = None

    def __post_init__(self):
        if self.thrust < 0 or self.propellant_mass < 0:
            raise ValueError("Engine thrust and propellant mass must be non-negative")
        for name in ("pressure_samples", "isp_samples", "thrust_curve_fractions", "thrust_curve_multipliers"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, tuple(float(v) for v in value))
        if len(self.pressure_samples or ()) != len(self.isp_samples or ()):
            raise ValueError("pressure_samples and isp_samples must have the same length")
        if len(self.thrust_curve_fractions or ()) != len(self.thrust_curve_multipliers or ()):
            raise ValueError("thrust curve fractions and multipliers must have the same length")

    @property
    def is_solid(self) -> bool:
        return self.role == EngineRole.SOLID

    def isp_at_pressure(self, pressure_atm: float) -> float:
        """
        Specific impulse at the given ambient pressure.

        Uses the sampled table when present (linear, clamped at both ends),
        otherwise blends vacuum and sea-level Isp.

        Args:
            pressure_atm: Ambient pressure in atmospheres

        Returns:
            Isp in seconds
        """
        if not self.pressure_samples:
            return self.vacuum_isp + (self.sea_level_isp - self.vacuum_isp) * _clamp(pressure_atm, 0.0, 1.0)
        return float(np.interp(pressure_atm, self.pressure_samples, self.isp_samples))

    def thrust_multiplier(self, burn_fraction: float) -> float:
        """Thrust multiplier at the given fraction of propellant burned (1.0 without a curve)."""
        if not self.thrust_curve_fractions:
            return 1.0
        return float(np.interp(_clamp(burn_fraction, 0.0, 1.0),
                               self.thrust_curve_fractions, self.thrust_curve_multipliers))


@dataclass
class SeparationGroup:
    """Engines that separate together, with the dry mass dropped once all of them exhaust.

    Attributes:
        engine_indices: Indices into the owning stage's engine list
        dry_mass: Dry mass of the separated parts (t)
        liquid_propellant_mass: Liquid propellant held in the separated parts (t).
            The group's liquid engines burn it before the shared stage pool.
            Zero when it was drained through crossfeed before separation
    """
    engine_indices: FrozenSet[int]
    dry_mass: float
    liquid_propellant_mass: float = 0.0

    def __post_init__(self):
        self.engine_indices = frozenset(self.engine_indices)


@dataclass
class StageInfo:
    """
    Mass and propulsion summary of one stage.

    Stage numbers ascend in firing order from the top: stage 0 fires last
    (circularisation), the highest number lifts off.

    Attributes:
        stage_number: Stage index
        wet_mass: Mass with propellant (t)
        dry_mass: Mass without propellant (t)
        propellant_mass: Propellant usable by the stage's engines (t)
        vacuum_isp: Thrust-weighted vacuum Isp (s)
        sea_level_isp: Thrust-weighted sea-level Isp (s)
        thrust: Total vacuum thrust of delta-v engines (kN)
        has_solid_fuel: True if any engine is a solid
        engines: Engines mounted on the stage
        separation_groups: Booster groups dropped when exhausted
        fairing_mass: Fairing mass jettisoned at ignition (t)
        propellant_by_name: Propellant mass (t) per resource name
    """
    stage_number: int
    wet_mass: float
    dry_mass: float
    propellant_mass: float
    vacuum_isp: float = 0.0
    sea_level_isp: float = 0.0
    thrust: float = 0.0
    has_solid_fuel: bool = False
    engines: List[EngineEntry] = field(default_factory=list)
    separation_groups: List[SeparationGroup] = field(default_factory=list)
    fairing_mass: float = 0.0
    propellant_by_name: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("wet_mass", "dry_mass", "propellant_mass", "fairing_mass"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative number, got {value}")

    @classmethod
    def from_engines(cls, stage_number: int, wet_mass: float, propellant_mass: float,
                     engines: List[EngineEntry], **kwargs) -> "StageInfo":
        """
        Build a stage whose thrust and Isp are blended from its delta-v engines.

        Args:
            stage_number: Stage index
            wet_mass: Stage wet mass (t)
            propellant_mass: Stage propellant (t)
            engines: Engines mounted on the stage
            **kwargs: Remaining StageInfo fields

        Returns:
            StageInfo with thrust-weighted vacuum and sea-level Isp
        """
        thrust = sum(e.thrust for e in engines if e.role.participates_in_dv)
        vac = sum(e.thrust * e.vacuum_isp for e in engines if e.role.participates_in_dv)
        sea = sum(e.thrust * e.sea_level_isp for e in engines if e.role.participates_in_dv)
        return cls(
            stage_number=stage_number,
            wet_mass=wet_mass,
            dry_mass=max(0.0, wet_mass - propellant_mass),
            propellant_mass=propellant_mass,
            vacuum_isp=vac / thrust if thrust > 0 else 0.0,
            sea_level_isp=sea / thrust if thrust > 0 else 0.0,
            thrust=thrust,
            has_solid_fuel=any(e.is_solid for e in engines),
            engines=list(engines),
            **kwargs
        )

    @property
    def has_dv_engines(self) -> bool:
        return any(e.role.participates_in_dv for e in self.engines)

    @property
    def residual_mass(self) -> float:
        """Mass left after the stage fires: propellant burned and fairing jettisoned."""
        return max(0.001, self.wet_mass - self.propellant_mass - self.fairing_mass)

    @property
    def separation_dry_mass(self) -> float:
        return sum(g.dry_mass for g in self.separation_groups if g.dry_mass > 0)


@dataclass(frozen=True)
class StageResult:
    """Delta-v contribution of one active stage."""
    stage_number: int
    delta_v: float
    effective_isp: float
    used_sea_level_isp: bool
    mass_at_ignition: float
    mass_after_burn: float
    twr_at_ignition: float


@dataclass
class VesselStats:
    """
    Snapshot of a vehicle: its stages plus aggregate mass and propulsion.

    Attributes:
        name: Vessel identity
        has_vessel: False when no vehicle is loaded
        stages: Stages in any order; the calculator sorts by stage number
        wet_mass: Total wet mass (t)
        dry_mass: Total mass without propellant (t)
        thrust: Total vacuum thrust (kN)
        vacuum_isp: Thrust-weighted vacuum Isp (s)
        sea_level_isp: Thrust-weighted sea-level Isp (s)
    """
    name: str = ""
    has_vessel: bool = True
    stages: List[StageInfo] = field(default_factory=list)
    wet_mass: float = 0.0
    dry_mass: float = 0.0
    thrust: float = 0.0
    vacuum_isp: float = 0.0
    sea_level_isp: float = 0.0

    @classmethod
    def from_stages(cls, stages: List[StageInfo], name: str = "") -> "VesselStats":
        """Aggregate a list of stages into vehicle-level stats."""
        wet = sum(s.wet_mass for s in stages)
        propellant = sum(s.propellant_mass for s in stages)
        thrust = sum(s.thrust for s in stages)
        vac = sum(s.thrust * s.vacuum_isp for s in stages)
        sea = sum(s.thrust * s.sea_level_isp for s in stages)
        return cls(
            name=name,
            has_vessel=len(stages) > 0,
            stages=sorted(stages, key=lambda s: s.stage_number),
            wet_mass=wet,
            dry_mass=max(0.01, wet - propellant),
            thrust=thrust,
            vacuum_isp=vac / thrust if thrust > 0 else 0.0,
            sea_level_isp=sea / thrust if thrust > 0 else 0.0,
        )

    @property
    def can_simulate(self) -> bool:
        """True when the aggregate propulsion data supports an ascent simulation."""
        return (self.has_vessel and self.thrust > 0 and self.vacuum_isp > 0
                and self.wet_mass > 0 and self.dry_mass > 0)


@dataclass
class OrbitTargets:
    """
    Launch site and target orbit.

    Attributes:
        body: Launch body
        latitude: Launch latitude (deg)
        periapsis: Periapsis altitude (m)
        apoapsis: Apoapsis altitude (m)
        inclination: Target inclination (deg)
    """
    body: Optional["CelestialBody"] = None
    latitude: float = 0.0
    periapsis: float = 100000.0
    apoapsis: float = 100000.0
    inclination: float = 0.0

    ATMOSPHERE_PADDING = 10000.0
    VACUUM_DEFAULT_ORBIT = 100000.0

    @classmethod
    def default_orbit_altitude(cls, body: Optional["CelestialBody"]) -> float:
        """Lowest sensible circular orbit: just above the atmosphere, or 100 km in vacuum."""
        if body is not None and body.has_atmosphere:
            return body.atmosphere_depth + cls.ATMOSPHERE_PADDING
        return cls.VACUUM_DEFAULT_ORBIT

    def apply_default_altitudes(self, body: Optional["CelestialBody"] = None):
        altitude = self.default_orbit_altitude(body if body is not None else self.body)
        self.periapsis = altitude
        self.apoapsis = altitude

    def clamp_latitude(self) -> float:
        self.latitude = _clamp(self.latitude, -90.0, 90.0)
        return self.latitude

    def clamp_inclination(self) -> float:
        self.inclination = _clamp(self.inclination, 0.0, 180.0)
        return self.inclination

    def clamp_altitudes(self) -> Optional[ErrorKind]:
        """
        Order and clamp the apsides in place.

        Returns:
            ErrorKind.ORBIT_GEOMETRY_INVALID if either apsis lies beyond the
            sphere of influence, otherwise None
        """
        if self.body is not None:
            soi_limit = self.body.sphere_of_influence - self.body.radius
            if self.apoapsis >= soi_limit or self.periapsis >= soi_limit:
                return ErrorKind.ORBIT_GEOMETRY_INVALID
            max_altitude = max(soi_limit - 1000.0, 1000.0)
        else:
            max_altitude = 1e12

        if self.periapsis > self.apoapsis:
            self.periapsis, self.apoapsis = self.apoapsis, self.periapsis

        self.periapsis = max(1000.0, min(self.periapsis, max_altitude))
        self.apoapsis = max(self.periapsis, min(self.apoapsis, max_altitude))
        return None


@dataclass
class LossModelConfig:
    """
    Loss model settings. Any of the three losses may be replaced by a manual
    value; turn start speed, turn start altitude and the drag-area coefficient
    are derived automatically while left at -1.
    """
    mode: EstimateMode = EstimateMode.NORMAL
    override_gravity_loss: bool = False
    override_atmospheric_loss: bool = False
    override_attitude_loss: bool = False
    manual_gravity_loss: float = 0.0
    manual_atmospheric_loss: float = 0.0
    manual_attitude_loss: float = 0.0
    turn_start_speed: float = -1.0
    turn_start_altitude: float = -1.0
    cda_coefficient: float = -1.0

    def __post_init__(self):
        self.mode = EstimateMode.parse(self.mode)


@dataclass
class LossEstimate:
    """Delta-v losses of an ascent plus the parameters used to derive them (-1 when not applicable)."""
    gravity_loss: float = 0.0
    atmospheric_loss: float = 0.0
    attitude_loss: float = 0.0
    total: float = 0.0
    used_estimate_mode: EstimateMode = EstimateMode.NORMAL
    used_turn_start_speed: float = -1.0
    used_turn_start_speed_manual: bool = False
    used_turn_start_altitude: float = -1.0
    used_turn_start_altitude_manual: bool = False
    used_turn_start_altitude_derived_from_speed: bool = False
    used_turn_exponent_full: float = -1.0
    used_turn_exponent_full_manual: bool = False
    used_turn_exponent_bottom: float = -1.0
    used_turn_exponent_bottom_manual: bool = False
    used_cda: float = -1.0
    used_cda_coefficient: float = -1.0
    used_cda_manual: bool = False


@dataclass(frozen=True)
class IdealDv:
    """Ideal surface-to-orbit delta-v and the burns it is made of."""
    total: float = 0.0
    uses_model_a: bool = False
    burn1: float = 0.0
    burn2: float = 0.0
    burn3: float = 0.0


@dataclass
class PayloadCalculationResult:
    """Everything the payload calculation produced, successful or not."""
    success: bool = False
    error: Optional[ErrorKind] = None
    warning: Optional[ErrorKind] = None
    required_dv: float = 0.0
    available_dv: float = 0.0
    available_dv_sea_level: float = 0.0
    available_dv_vacuum: float = 0.0
    estimated_payload: float = 0.0
    orbital_speed: float = 0.0
    rotation_dv: float = 0.0
    plane_change_dv: float = 0.0
    ideal_dv: IdealDv = field(default_factory=IdealDv)
    periapsis: float = 0.0
    apoapsis: float = 0.0
    eccentricity: float = 0.0
    inclination: float = 0.0
    losses: LossEstimate = field(default_factory=LossEstimate)
    active_stages: List[StageResult] = field(default_factory=list)

    @property
    def error_key(self) -> str:
        return self.error.value if self.error is not None else ""

    @property
    def warning_key(self) -> str:
        return self.warning.value if self.warning is not None else ""
