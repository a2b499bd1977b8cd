"""Shared fixtures for the payload calculator tests."""

import matplotlib
matplotlib.use("Agg")

import pytest

from payloadCalculator import EngineEntry, EngineRole, SeparationGroup, StageInfo, VesselStats, get_body


def liquid_engine(thrust=215.0, vac=320.0, sea=280.0):
    return EngineEntry(thrust=thrust, vacuum_isp=vac, sea_level_isp=sea,
                       propellant_names=["LiquidFuel", "Oxidizer"])


def solid_engine(thrust=160.0, propellant=2.0, vac=210.0, sea=195.0):
    return EngineEntry(thrust=thrust, vacuum_isp=vac, sea_level_isp=sea, role=EngineRole.SOLID,
                       propellant_mass=propellant, propellant_names=["SolidFuel"])


@pytest.fixture
def kerbin():
    return get_body("kerbin")


@pytest.fixture
def mun():
    return get_body("mun")


@pytest.fixture
def upper_stage():
    return StageInfo.from_engines(
        stage_number=0, wet_mass=6.0, propellant_mass=4.0,
        engines=[liquid_engine(thrust=60.0, vac=345.0, sea=85.0)],
        propellant_by_name={"LiquidFuel": 1.8, "Oxidizer": 2.2})


@pytest.fixture
def launch_stage():
    return StageInfo.from_engines(
        stage_number=1, wet_mass=36.0, propellant_mass=28.0,
        engines=[liquid_engine(thrust=700.0)],
        propellant_by_name={"LiquidFuel": 12.6, "Oxidizer": 15.4})


@pytest.fixture
def two_stage(upper_stage, launch_stage):
    return VesselStats.from_stages([upper_stage, launch_stage], name="Two Stage")


def booster_stage(group_dry_mass):
    """Launch stage with one liquid core and a solid booster that separates on burnout."""
    return StageInfo.from_engines(
        stage_number=1, wet_mass=30.0, propellant_mass=12.0,
        engines=[liquid_engine(thrust=200.0, vac=300.0, sea=270.0), solid_engine(thrust=200.0, propellant=2.0)],
        propellant_by_name={"LiquidFuel": 4.5, "Oxidizer": 5.5},
        separation_groups=[SeparationGroup(engine_indices=[1], dry_mass=group_dry_mass)])
