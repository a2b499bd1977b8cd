"""Unit tests for YAML scenario loading."""

from pathlib import Path

import pytest
import yaml

from payloadCalculator import EngineRole, EstimateMode, PayloadCalculator, ScenarioError, load_scenario
from payloadCalculator.config import parse_body, parse_scenario

SCENARIO_DIR = Path(__file__).resolve().parent.parent / "scenarios"


def _document():
    return {
        "body": "kerbin",
        "target": {"periapsis": 90000, "inclination": 10, "latitude": 5},
        "losses": {"mode": "Optimistic", "overrides": {"attitude": 25.0}},
        "vessel": {
            "name": "Test",
            "stages": [
                {"number": 0, "wet_mass": 5.0, "propellant": {"LiquidFuel": 1.8, "Oxidizer": 2.2},
                 "engines": [{"thrust": 60, "vacuum_isp": 345, "sea_level_isp": 85,
                              "propellants": ["LiquidFuel", "Oxidizer"]}]},
                {"number": 1, "wet_mass": 30.0, "propellant_mass": 24.0,
                 "engines": [
                     {"thrust": 400, "vacuum_isp": 310, "sea_level_isp": 270,
                      "isp_curve": [[0, 310], [1, 270]]},
                     {"thrust": 2, "vacuum_isp": 200, "self_contained": True, "propellant_mass": 0.01,
                      "direction": [0, -1, 0]},
                 ],
                 "separation_groups": [{"engines": [1], "dry_mass": 0.2, "liquid_propellant_mass": 0.5}]},
            ],
        },
    }


def test_parse_scenario():
    scenario = parse_scenario(_document())

    assert scenario.targets.body.name == "Kerbin"
    assert scenario.targets.periapsis == 90000.0
    assert scenario.targets.apoapsis == 90000.0
    assert scenario.targets.inclination == 10.0
    assert scenario.loss_config.mode is EstimateMode.OPTIMISTIC
    assert scenario.loss_config.override_attitude_loss
    assert scenario.loss_config.manual_attitude_loss == 25.0
    assert not scenario.loss_config.override_gravity_loss

    stats = scenario.stats
    assert stats.name == "Test"
    assert [s.stage_number for s in stats.stages] == [0, 1]
    assert stats.stages[0].propellant_mass == pytest.approx(4.0)
    assert stats.stages[0].propellant_by_name == {"LiquidFuel": 1.8, "Oxidizer": 2.2}
    launch = stats.stages[1]
    assert launch.engines[0].pressure_samples == (0.0, 1.0)
    # The backwards-facing motor is classified as a retro and left out of the stage thrust
    assert launch.engines[1].role is EngineRole.RETRO
    assert launch.thrust == 400.0
    assert launch.separation_groups[0].engine_indices == frozenset({1})
    assert launch.separation_groups[0].liquid_propellant_mass == 0.5


def test_targets_default_above_atmosphere():
    document = _document()
    del document["target"]
    scenario = parse_scenario(document)
    assert scenario.targets.periapsis == 80000.0
    assert scenario.targets.apoapsis == 80000.0


def test_explicit_role_is_kept():
    document = _document()
    document["vessel"]["stages"][1]["engines"][1]["role"] = "settling"
    scenario = parse_scenario(document)
    assert scenario.stats.stages[1].engines[1].role is EngineRole.SETTLING


def test_inline_bodies():
    airless = parse_body({"name": "Rock", "radius": 100000, "mu": 1.0e10, "gee_asl": 0.1})
    assert not airless.has_atmosphere

    sampled = parse_body({"name": "Haze", "radius": 300000, "mu": 1.0e11, "gee_asl": 0.5,
                          "atmosphere": {"altitudes": [0, 10000, 20000], "pressures": [50, 10, 0],
                                         "temperatures": [250, 220, 200]}})
    assert sampled.atmosphere_depth == 20000.0
    assert sampled.pressure(0.0) == pytest.approx(50.0)

    exponential = parse_body({"radius": 300000, "mu": 1.0e11, "gee_asl": 0.5,
                              "atmosphere": {"sea_level_pressure": 20, "scale_height": 4000, "depth": 40000}})
    assert exponential.name == "Custom"
    assert exponential.atmosphere_depth == 40000.0


def test_malformed_documents():
    with pytest.raises(ScenarioError):
        parse_scenario([])
    document = _document()
    del document["vessel"]["stages"][0]["wet_mass"]
    with pytest.raises(ScenarioError):
        parse_scenario(document)
    with pytest.raises(ScenarioError):
        parse_body({"radius": 1.0})


def test_load_scenario_file(tmp_path):
    path = tmp_path / "scenario.yaml"
    path.write_text(yaml.safe_dump(_document()), encoding="utf-8")
    scenario = load_scenario(path)
    assert scenario.stats.name == "Test"


def test_unknown_body_in_file(tmp_path):
    document = _document()
    document["body"] = "Vulcan"
    path = tmp_path / "scenario.yaml"
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    with pytest.raises(ScenarioError):
        load_scenario(path)


def test_bundled_scenario_runs():
    scenario = load_scenario(SCENARIO_DIR / "kerbin_two_stage.yaml")
    launch = scenario.stats.stages[-1]
    assert [e.role for e in launch.engines] == [EngineRole.MAIN, EngineRole.SOLID, EngineRole.SOLID]
    assert launch.separation_dry_mass == pytest.approx(1.5)

    result = PayloadCalculator().compute(scenario.stats, scenario.targets, scenario.loss_config)
    assert result.success
    assert result.estimated_payload > 0.0
