# Licensed under the PolyForm Noncommercial License 1.0.0
"""Engine role classification from thrust direction and propellant layout."""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
import numpy as np

try:
    from .models import EngineRole
except ImportError:
    from models import EngineRole

# Engines below this share of total thrust can be settling motors
SETTLING_THRUST_FRACTION = 0.01
SETTLING_ALIGNMENT = 0.9
RETRO_ALIGNMENT = 0.8
UP = np.array([0.0, 1.0, 0.0])


@dataclass
class EngineRecord:
    """
    Raw engine data before classification.

    Attributes:
        stage_number: Stage the engine fires in
        thrust: Vacuum thrust (kN)
        propellant_names: Resources the engine burns
        self_contained: Engine carries its own propellant (solid motors, towers)
        has_abort_action: Engine fires on abort
        direction: Thrust direction in vehicle coordinates
    """
    stage_number: int
    thrust: float
    propellant_names: List[str] = field(default_factory=list)
    self_contained: bool = False
    has_abort_action: bool = False
    direction: Tuple[float, float, float] = (0.0, 1.0, 0.0)

    @property
    def unit_direction(self) -> np.ndarray:
        d = np.asarray(self.direction, dtype=float)
        norm = np.linalg.norm(d)
        if norm <= 1e-6:
            return UP
        return d / norm


def bottom_main_direction(records: Sequence[EngineRecord], roles: Sequence[EngineRole]) -> np.ndarray:
    """Thrust axis of the strongest engine in the highest-numbered stage, ignoring electric engines and towers."""
    candidates = [r for r, role in zip(records, roles)
                  if role not in (EngineRole.ELECTRIC, EngineRole.ESCAPE_TOWER)]
    if not candidates:
        return UP
    bottom = max(candidates, key=lambda r: (r.stage_number, r.thrust))
    return bottom.unit_direction


def classify_engines(records: Sequence[EngineRecord]) -> List[EngineRole]:
    """
    Assign a role to every engine.

    Rules, applied in order:
        - burns ElectricCharge: ELECTRIC
        - self-contained with an abort action: ESCAPE_TOWER
        - self-contained, weak (under 1% of total thrust) and aligned with the
          main thrust axis: SETTLING
        - pointing more than ~37 degrees off the main thrust axis: RETRO
        - otherwise SOLID when self-contained, else MAIN

    Args:
        records: Engines of the whole vehicle

    Returns:
        List of roles, one per record
    """
    roles = [EngineRole.MAIN] * len(records)
    if not records:
        return roles

    for i, r in enumerate(records):
        if any(name.lower() == "electriccharge" for name in r.propellant_names):
            roles[i] = EngineRole.ELECTRIC
        elif r.self_contained and r.has_abort_action:
            roles[i] = EngineRole.ESCAPE_TOWER

    total_thrust = sum(r.thrust for r, role in zip(records, roles)
                       if role not in (EngineRole.ELECTRIC, EngineRole.ESCAPE_TOWER))
    settling_threshold = max(0.1, total_thrust * SETTLING_THRUST_FRACTION)
    axis = bottom_main_direction(records, roles)

    for i, r in enumerate(records):
        if roles[i] in (EngineRole.ELECTRIC, EngineRole.ESCAPE_TOWER):
            continue
        alignment = float(np.dot(r.unit_direction, axis))
        if r.self_contained and r.thrust < settling_threshold and alignment > SETTLING_ALIGNMENT:
            roles[i] = EngineRole.SETTLING
        elif alignment < RETRO_ALIGNMENT:
            roles[i] = EngineRole.RETRO
        else:
            roles[i] = EngineRole.SOLID if r.self_contained else EngineRole.MAIN
    return roles
