"""Unit tests for staged delta-v and the launch-stage simulation."""

from dataclasses import replace
import math

import numpy as np
import pytest

from payloadCalculator import EngineEntry, EngineRole, SeparationGroup, StageInfo, StagedDeltaV, VesselStats, g0
from payloadCalculator.staging import bottom_stage_sea_level_twr, max_prop_stage_number

from conftest import booster_stage, liquid_engine


def _vacuum_calculator(mun):
    return StagedDeltaV(mun, use_cache=False)


def test_upper_stages_use_rocket_equation(mun, two_stage):
    """Without an atmosphere every stage is a plain rocket-equation burn."""
    staged = _vacuum_calculator(mun)
    result = staged.compute(two_stage)

    upper, launch = two_stage.stages
    upper_dv = upper.vacuum_isp * g0 * math.log(6.0 / 2.0)
    above = upper.residual_mass
    launch_dv = launch.vacuum_isp * g0 * math.log((36.0 + above) / (8.0 + above))

    assert result.max_prop_stage == 1
    assert [s.stage_number for s in result.stages] == [0, 1]
    np.testing.assert_allclose([s.delta_v for s in result.stages], [upper_dv, launch_dv])
    assert result.total == pytest.approx(upper_dv + launch_dv)


def test_mass_above_uses_residual_mass(mun, two_stage):
    """Each stage ignites carrying payload plus the residual mass of every stage above."""
    staged = _vacuum_calculator(mun)
    result = staged.compute(two_stage, extra_payload=2.0)

    upper_result, launch_result = result.stages
    assert upper_result.mass_at_ignition == pytest.approx(6.0 + 2.0)
    assert launch_result.mass_at_ignition - 36.0 == pytest.approx(2.0 + two_stage.stages[0].residual_mass)
    assert launch_result.mass_after_burn == pytest.approx(launch_result.mass_at_ignition - 28.0)


def test_mass_above_is_sum_of_residuals(mun):
    """For every burning stage, ignition mass minus its own wet mass is payload plus residuals above."""
    stages = [
        StageInfo.from_engines(stage_number=0, wet_mass=4.0, propellant_mass=2.0,
                               engines=[liquid_engine(vac=340.0)], fairing_mass=0.3),
        StageInfo(stage_number=1, wet_mass=1.0, dry_mass=1.0, propellant_mass=0.0),
        StageInfo.from_engines(stage_number=2, wet_mass=12.0, propellant_mass=8.0, engines=[liquid_engine()]),
        StageInfo.from_engines(stage_number=3, wet_mass=40.0, propellant_mass=30.0,
                               engines=[liquid_engine(thrust=600.0)]),
    ]
    stats = VesselStats.from_stages(stages)
    payload = 1.5
    result = _vacuum_calculator(mun).compute(stats, extra_payload=payload)

    assert [s.stage_number for s in result.stages] == [0, 2, 3]
    by_number = {s.stage_number: s for s in stats.stages}
    for burned in result.stages:
        above = sum(s.residual_mass for s in stats.stages if s.stage_number < burned.stage_number)
        own = by_number[burned.stage_number].wet_mass
        assert burned.mass_at_ignition - own == pytest.approx(payload + above)

    # Residual, not wet: the fairing and burned propellant of stage 0 are gone
    assert result.stages[1].mass_at_ignition == pytest.approx(12.0 + payload + 1.7 + 1.0)


def test_inert_stage_is_carried_as_cargo(mun, two_stage):
    """A stage without delta-v engines only adds its mass to the stack."""
    inert = StageInfo(stage_number=2, wet_mass=3.0, dry_mass=3.0, propellant_mass=0.0)
    fairing_stage = StageInfo(stage_number=-1, wet_mass=0.5, dry_mass=0.5, propellant_mass=0.0)
    stats = VesselStats.from_stages(two_stage.stages + [inert, fairing_stage])

    staged = _vacuum_calculator(mun)
    with_cargo = staged.compute(stats)
    without = staged.compute(two_stage)

    assert [s.stage_number for s in with_cargo.stages] == [0, 1]
    assert with_cargo.stages[0].mass_at_ignition == pytest.approx(6.0 + 0.5)
    assert with_cargo.total < without.total


def test_fairing_dropped_before_burn(mun):
    stage = StageInfo.from_engines(stage_number=0, wet_mass=10.0, propellant_mass=5.0,
                                   engines=[liquid_engine(vac=300.0)], fairing_mass=1.0)
    stats = VesselStats.from_stages([stage])
    result = _vacuum_calculator(mun).compute(stats)
    assert result.total == pytest.approx(300.0 * g0 * math.log(9.0 / 4.0))


def test_more_payload_means_less_delta_v(kerbin, mun, upper_stage, launch_stage):
    """Available delta-v never grows as payload is added."""
    vehicles = [
        VesselStats.from_stages([launch_stage]),
        VesselStats.from_stages([upper_stage, launch_stage]),
        VesselStats.from_stages([upper_stage, launch_stage, replace(booster_stage(1.0), stage_number=2)]),
    ]
    for body in (kerbin, mun):
        staged = StagedDeltaV(body, 80.0, 1000.0, 1.0, 0.58)
        for stats in vehicles:
            totals = [staged.compute(stats, payload).total for payload in (0.0, 0.5, 2.0, 8.0, 20.0)]
            assert all(a > b for a, b in zip(totals, totals[1:]))


def test_launch_stage_is_simulated_in_atmosphere(kerbin, two_stage):
    """Pressure losses put the launch stage's effective Isp between sea-level and vacuum values."""
    staged = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=False)
    result = staged.compute(two_stage)

    launch = result.stages[-1]
    stage = two_stage.stages[-1]
    assert launch.used_sea_level_isp
    assert stage.sea_level_isp < launch.effective_isp < stage.vacuum_isp
    assert result.stages[0].effective_isp == pytest.approx(two_stage.stages[0].vacuum_isp)


def test_cache_does_not_change_results(kerbin, two_stage):
    cached = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=True)
    uncached = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=False)

    first = cached.compute(two_stage, 1.0).total
    again = cached.compute(two_stage, 1.0).total
    assert first == again
    assert first == uncached.compute(two_stage, 1.0).total

    # A nearby mass is a different vehicle, not a cache hit
    assert cached.compute(two_stage, 1.01).total == uncached.compute(two_stage, 1.01).total

    cached.clear_cache()
    assert cached.compute(two_stage, 1.0).total == first


def test_separation_group_drops_mass(kerbin):
    """When the booster burns out its dry mass leaves the stack."""
    heavy = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=False)
    with_drop = heavy.simulate_bottom_stage(booster_stage(5.0), 30.0, 18.0, record=True)
    no_drop = heavy.simulate_bottom_stage(booster_stage(0.0), 30.0, 18.0, record=True)

    dropped = with_drop.trace['dropped_mass']
    k = int(np.argmax(dropped > 0))
    assert dropped[k] == pytest.approx(5000.0)
    assert dropped.sum() == pytest.approx(5000.0)
    assert no_drop.trace['dropped_mass'].sum() == 0.0

    # Identical up to the drop, then 5 t lighter with higher acceleration
    np.testing.assert_allclose(with_drop.trace['mass'][:k + 1], no_drop.trace['mass'][:k + 1])
    assert with_drop.trace['mass'][k + 1] == pytest.approx(no_drop.trace['mass'][k + 1] - 5000.0)
    assert with_drop.trace['acceleration'][k + 1] > no_drop.trace['acceleration'][k + 1]
    assert with_drop.delta_v > no_drop.delta_v


def test_group_propellant_feeds_its_own_engines(kerbin):
    """Boosters with their own tanks run dry first, then the core flies on alone."""
    def stage(group_propellant):
        return StageInfo.from_engines(
            stage_number=1, wet_mass=30.0, propellant_mass=12.0,
            engines=[liquid_engine(thrust=200.0, vac=300.0, sea=270.0),
                     liquid_engine(thrust=200.0, vac=300.0, sea=270.0)],
            propellant_by_name={"LiquidFuel": 5.4, "Oxidizer": 6.6},
            separation_groups=[SeparationGroup([1], 2.0, liquid_propellant_mass=group_propellant)])

    staged = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=False)
    fed = staged.simulate_bottom_stage(stage(3.0), 30.0, 18.0, record=True).trace
    shared = staged.simulate_bottom_stage(stage(0.0), 30.0, 18.0, record=True).trace

    k = int(np.argmax(fed['dropped_mass'] > 0))
    assert fed['dropped_mass'][k] == pytest.approx(2000.0)
    # Equal engines burn equally: 3 t from the booster tanks means 6 t gone in total
    burned = fed['mass'][0] - fed['mass'][k + 1] - 2000.0
    assert burned == pytest.approx(6000.0, abs=100.0)
    assert fed['thrust'][k + 1] == pytest.approx(0.5 * fed['thrust'][k], rel=0.02)

    # Drawing from the shared pool the booster keeps firing past that point
    assert shared['dropped_mass'][:k + 2].sum() == 0.0
    assert shared['thrust'][k + 1] == pytest.approx(shared['thrust'][k], rel=0.02)


def test_simulation_mass_bookkeeping(kerbin):
    """Every step removes the burned propellant plus anything separated."""
    staged = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=False)
    trace = staged.simulate_bottom_stage(booster_stage(5.0), 30.0, 18.0, record=True).trace

    mass = trace['mass']
    expected = mass[:-1] - trace['mass_flow'][:-1] * trace['step'][:-1] - trace['dropped_mass'][:-1]
    np.testing.assert_allclose(mass[1:], expected, rtol=1e-9)
    assert np.all(trace['step'] <= 0.5)
    assert np.all(trace['thrust'] > 0)


def test_solid_thrust_curve_is_applied(kerbin):
    """A solid whose curve starts at half thrust produces less initial thrust."""
    def stage(curve):
        solid = EngineEntry(thrust=300.0, vacuum_isp=220.0, sea_level_isp=200.0, role=EngineRole.SOLID,
                            propellant_mass=8.0, propellant_names=["SolidFuel"],
                            thrust_curve_fractions=[0.0, 1.0] if curve else None,
                            thrust_curve_multipliers=[0.5, 1.0] if curve else None)
        return StageInfo.from_engines(stage_number=0, wet_mass=10.0, propellant_mass=8.0, engines=[solid])

    staged = StagedDeltaV(kerbin, 80.0, 1000.0, 1.0, 0.58, use_cache=False)
    flat = staged.simulate_bottom_stage(stage(False), 10.0, 2.0, record=True).trace
    curved = staged.simulate_bottom_stage(stage(True), 10.0, 2.0, record=True).trace
    assert curved['thrust'][0] == pytest.approx(0.5 * flat['thrust'][0])
    assert curved['t'][-1] > flat['t'][-1]


def test_display_delta_v(kerbin, two_stage):
    staged = StagedDeltaV(kerbin)
    sea = staged.compute_for_display(two_stage, use_sea_level_isp=True)
    vac = staged.compute_for_display(two_stage, use_sea_level_isp=False)
    assert 0.0 < sea < vac


def test_simple_delta_v_without_stages(mun):
    stats = VesselStats(name="Lump", stages=[], wet_mass=100.0, dry_mass=20.0, vacuum_isp=300.0)
    staged = StagedDeltaV(mun)
    expected = 300.0 * g0 * math.log(100.0 / 20.0)
    assert staged.simple_dv(stats) == pytest.approx(expected)
    assert staged.simple_dv_for_display(stats, True) == pytest.approx(expected)
    assert staged.simple_dv(stats, 10.0) == pytest.approx(300.0 * g0 * math.log(110.0 / 30.0))


def test_blend_factor(kerbin, mun):
    assert StagedDeltaV(mun).atmosphere_blend_factor() == 0.0
    staged = StagedDeltaV(kerbin)
    factor = staged.atmosphere_blend_factor()
    assert 0.0 < factor <= 0.5
    assert staged.effective_isp(320.0, 280.0, is_bottom=False) == 320.0
    assert staged.effective_isp(320.0, 280.0, is_bottom=True) == pytest.approx(320.0 - 40.0 * factor)
    assert 0.12 <= staged.default_blend_factor() <= 0.55


def test_launch_stage_and_twr(kerbin, two_stage):
    assert max_prop_stage_number(two_stage.stages) == 1
    twr = bottom_stage_sea_level_twr(two_stage, kerbin)
    assert twr == pytest.approx(700.0 * 280.0 / 320.0 / (42.0 * kerbin.surface_gravity))
    assert bottom_stage_sea_level_twr(two_stage, None) == 0.0
