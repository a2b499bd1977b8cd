# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Scenario files.

A scenario is a YAML document describing the launch body, the target orbit,
the loss model settings and the vehicle::

    body: kerbin
    target: {periapsis: 80000, apoapsis: 80000, inclination: 0, latitude: 0}
    losses: {mode: normal, turn_start_speed: -1}
    vessel:
      name: Demo
      stages:
        - number: 1
          wet_mass: 20.0
          propellant: {LiquidFuel: 7.2, Oxidizer: 8.8}
          engines:
            - {thrust: 215, vacuum_isp: 320, sea_level_isp: 250, propellants: [LiquidFuel, Oxidizer]}
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

import yaml

try:
    from .models import EngineEntry, EngineRole, LossModelConfig, OrbitTargets, SeparationGroup, StageInfo, VesselStats
    from .bodies import CelestialBody, get_body
    from .roles import EngineRecord, classify_engines
except ImportError:
    from models import EngineEntry, EngineRole, LossModelConfig, OrbitTargets, SeparationGroup, StageInfo, VesselStats
    from bodies import CelestialBody, get_body
    from roles import EngineRecord, classify_engines

logger = logging.getLogger(__name__)


class ScenarioError(ValueError):
    """A scenario file is malformed."""


@dataclass
class Scenario:
    stats: VesselStats
    targets: OrbitTargets
    loss_config: LossModelConfig


def _require(mapping: Dict[str, Any], key: str, where: str):
    try:
        return mapping[key]
    except KeyError:
        raise ScenarioError(f"{where}: missing required key {key!r}") from None


def parse_body(data: Union[str, Dict[str, Any]]) -> CelestialBody:
    """Build a body from a preset name or an inline mapping."""
    if isinstance(data, str):
        return get_body(data)
    if not isinstance(data, dict):
        raise ScenarioError(f"body must be a name or a mapping, got {type(data).__name__}")

    common = dict(
        name=data.get("name", "Custom"),
        radius=float(_require(data, "radius", "body")),
        mu=float(_require(data, "mu", "body")),
        gee_asl=float(_require(data, "gee_asl", "body")),
        rotation_period=float(data.get("rotation_period", 0.0)),
        sphere_of_influence=float(data.get("sphere_of_influence", float("inf"))),
    )
    atmosphere = data.get("atmosphere")
    if not atmosphere:
        return CelestialBody(**common)
    if "altitudes" in atmosphere:
        return CelestialBody.from_samples(
            altitudes=atmosphere["altitudes"],
            pressures=_require(atmosphere, "pressures", "body.atmosphere"),
            temperatures=_require(atmosphere, "temperatures", "body.atmosphere"),
            **common)
    return CelestialBody.exponential(
        sea_level_pressure=float(_require(atmosphere, "sea_level_pressure", "body.atmosphere")),
        scale_height=float(_require(atmosphere, "scale_height", "body.atmosphere")),
        atmosphere_depth=float(_require(atmosphere, "depth", "body.atmosphere")),
        surface_temperature=float(atmosphere.get("surface_temperature", 288.15)),
        lapse_rate=float(atmosphere.get("lapse_rate", 0.0)),
        **common)


def parse_loss_config(data: Optional[Dict[str, Any]]) -> LossModelConfig:
    data = data or {}
    overrides = data.get("overrides", {}) or {}
    config = LossModelConfig(
        mode=data.get("mode", "normal"),
        turn_start_speed=float(data.get("turn_start_speed", -1.0)),
        turn_start_altitude=float(data.get("turn_start_altitude", -1.0)),
        cda_coefficient=float(data.get("cda_coefficient", -1.0)),
    )
    if "gravity" in overrides:
        config.override_gravity_loss = True
        config.manual_gravity_loss = float(overrides["gravity"])
    if "atmospheric" in overrides:
        config.override_atmospheric_loss = True
        config.manual_atmospheric_loss = float(overrides["atmospheric"])
    if "attitude" in overrides:
        config.override_attitude_loss = True
        config.manual_attitude_loss = float(overrides["attitude"])
    return config


def parse_targets(data: Optional[Dict[str, Any]], body: CelestialBody) -> OrbitTargets:
    """Target orbit; apsides default to the lowest orbit clear of the atmosphere."""
    data = data or {}
    targets = OrbitTargets(body=body)
    targets.apply_default_altitudes()
    targets.latitude = float(data.get("latitude", 0.0))
    targets.inclination = float(data.get("inclination", 0.0))
    if "periapsis" in data:
        targets.periapsis = float(data["periapsis"])
        targets.apoapsis = float(data.get("apoapsis", targets.periapsis))
    elif "apoapsis" in data:
        targets.apoapsis = float(data["apoapsis"])
    return targets


def _curve(points, where: str):
    if points is None:
        return None, None
    try:
        xs, ys = zip(*((float(x), float(y)) for x, y in points))
    except (TypeError, ValueError):
        raise ScenarioError(f"{where}: expected a list of [x, y] pairs") from None
    return list(xs), list(ys)


def _parse_engine(data: Dict[str, Any], where: str) -> EngineEntry:
    pressures, isps = _curve(data.get("isp_curve"), f"{where}.isp_curve")
    fractions, multipliers = _curve(data.get("thrust_curve"), f"{where}.thrust_curve")
    role = data.get("role")
    return EngineEntry(
        thrust=float(_require(data, "thrust", where)),
        vacuum_isp=float(_require(data, "vacuum_isp", where)),
        sea_level_isp=float(data.get("sea_level_isp", data["vacuum_isp"])),
        role=EngineRole[role.strip().upper()] if role else EngineRole.MAIN,
        propellant_mass=float(data.get("propellant_mass", 0.0)),
        propellant_names=list(data.get("propellants", [])),
        part_dry_mass=float(data.get("part_dry_mass", 0.0)),
        part_id=int(data.get("part_id", -1)),
        pressure_samples=pressures,
        isp_samples=isps,
        thrust_curve_fractions=fractions,
        thrust_curve_multipliers=multipliers,
    )


def _classify_missing_roles(stage_entries: List[Dict[str, Any]], stages: List[StageInfo]):
    """Classify engines whose role the scenario leaves out, using their direction and propellant layout."""
    records = []
    engines = []
    for stage_data, stage in zip(stage_entries, stages):
        for engine_data, engine in zip(stage_data.get("engines", []), stage.engines):
            records.append(EngineRecord(
                stage_number=stage.stage_number,
                thrust=engine.thrust,
                propellant_names=engine.propellant_names,
                self_contained=bool(engine_data.get("self_contained", engine.propellant_mass > 0.0)),
                has_abort_action=bool(engine_data.get("abort", False)),
                direction=tuple(engine_data.get("direction", (0.0, 1.0, 0.0))),
            ))
            engines.append((engine_data, engine))
    for (engine_data, engine), role in zip(engines, classify_engines(records)):
        if not engine_data.get("role"):
            engine.role = role


def parse_vessel(data: Dict[str, Any]) -> VesselStats:
    stage_entries = _require(data, "stages", "vessel")
    stages = []
    for index, stage_data in enumerate(stage_entries):
        where = f"vessel.stages[{index}]"
        engines = [_parse_engine(e, f"{where}.engines[{i}]") for i, e in enumerate(stage_data.get("engines", []))]
        by_name = {str(k): float(v) for k, v in (stage_data.get("propellant") or {}).items()}
        propellant = float(stage_data.get("propellant_mass", sum(by_name.values())))
        groups = [SeparationGroup(engine_indices=g.get("engines", []),
                                  dry_mass=float(_require(g, "dry_mass", f"{where}.separation_groups")),
                                  liquid_propellant_mass=float(g.get("liquid_propellant_mass", 0.0)))
                  for g in stage_data.get("separation_groups", [])]
        stages.append(StageInfo.from_engines(
            stage_number=int(stage_data.get("number", index)),
            wet_mass=float(_require(stage_data, "wet_mass", where)),
            propellant_mass=propellant,
            engines=engines,
            separation_groups=groups,
            fairing_mass=float(stage_data.get("fairing_mass", 0.0)),
            propellant_by_name=by_name,
        ))

    _classify_missing_roles(stage_entries, stages)
    # Roles may have changed, so blend thrust and Isp again
    stages = [StageInfo.from_engines(
        stage_number=s.stage_number, wet_mass=s.wet_mass, propellant_mass=s.propellant_mass,
        engines=s.engines, separation_groups=s.separation_groups, fairing_mass=s.fairing_mass,
        propellant_by_name=s.propellant_by_name) for s in stages]
    return VesselStats.from_stages(stages, name=data.get("name", ""))


def parse_scenario(document: Dict[str, Any]) -> Scenario:
    if not isinstance(document, dict):
        raise ScenarioError("Scenario must be a mapping")
    body = parse_body(_require(document, "body", "scenario"))
    return Scenario(
        stats=parse_vessel(_require(document, "vessel", "scenario")),
        targets=parse_targets(document.get("target"), body),
        loss_config=parse_loss_config(document.get("losses")),
    )


def load_scenario(path: Union[str, Path]) -> Scenario:
    """
    Load a scenario from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Scenario with vessel stats, orbit targets and loss configuration

    Raises:
        ScenarioError: If the document is malformed
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        document = yaml.safe_load(f)
    logger.debug("Loaded scenario %s", path)
    try:
        return parse_scenario(document)
    except ScenarioError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise ScenarioError(f"{path}: {e}") from e
