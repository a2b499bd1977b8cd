# Licensed under the PolyForm Noncommercial License 1.0.0
"""
Command-line interface for the payload calculator.
"""

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger("payloadCalculator")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payload-calculator",
        description="Estimate the payload a staged rocket can deliver to a target orbit.")
    parser.add_argument("scenario", help="YAML scenario file")
    parser.add_argument("--mode", choices=["optimistic", "normal", "pessimistic"],
                        help="Loss estimate mode (overrides the scenario)")
    parser.add_argument("--periapsis", type=float, help="Target periapsis altitude [m]")
    parser.add_argument("--apoapsis", type=float, help="Target apoapsis altitude [m]")
    parser.add_argument("--inclination", type=float, help="Target inclination [deg]")
    parser.add_argument("--latitude", type=float, help="Launch latitude [deg]")
    parser.add_argument("--plot", metavar="PATH",
                        help="Save the delta-v breakdown figure to PATH and the ascent figure next to it")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def print_result(result, stats, body_name: str) -> None:
    print("Payload Calculator")
    print("==================")
    print(f"Vessel: {stats.name or '(unnamed)'}   Body: {body_name}")

    if not result.success:
        print(f"\nCalculation failed: {result.error.name} ({result.error_key})")
        return
    if result.warning is not None:
        print(f"Warning: {result.warning.name} ({result.warning_key})")

    losses = result.losses
    print(f"\nTarget orbit: {result.periapsis / 1000:.1f} x {result.apoapsis / 1000:.1f} km, "
          f"e={result.eccentricity:.4f}, i={result.inclination:.1f} deg")
    print(f"Orbital speed at periapsis: {result.orbital_speed:.1f} m/s")
    model = "direct ascent" if result.ideal_dv.uses_model_a else "Hohmann transfer"
    print(f"\nIdeal Δv ({model}):  {result.ideal_dv.total:9.1f} m/s")
    print(f"Rotation adjustment:   {result.rotation_dv:9.1f} m/s")
    print(f"Gravity loss:          {losses.gravity_loss:9.1f} m/s")
    print(f"Drag loss:             {losses.atmospheric_loss:9.1f} m/s")
    print(f"Attitude loss:         {losses.attitude_loss:9.1f} m/s")
    print(f"Plane change:          {result.plane_change_dv:9.1f} m/s")
    print(f"Required Δv:           {result.required_dv:9.1f} m/s")
    print(f"Available Δv:          {result.available_dv:9.1f} m/s "
          f"(sea level {result.available_dv_sea_level:.1f}, vacuum {result.available_dv_vacuum:.1f})")

    if result.active_stages:
        print("\nStage   Δv [m/s]   Isp [s]   m0 [t]   m1 [t]   TWR")
        for s in result.active_stages:
            print(f"{s.stage_number:5d} {s.delta_v:10.1f} {s.effective_isp:9.1f} "
                  f"{s.mass_at_ignition:8.2f} {s.mass_after_burn:8.2f} {s.twr_at_ignition:5.2f}")

    print(f"\nEstimated payload: {result.estimated_payload:.3f} t")


def main(argv=None) -> int:
    """Run the payload calculator on a scenario file."""
    try:
        from .config import ScenarioError, load_scenario
        from .core import PayloadCalculator
        from .losses import simulate_ascent_trace
        from .models import EstimateMode
        from .plotting import plot_ascent, plot_stage_breakdown
    except ImportError:
        from config import ScenarioError, load_scenario
        from core import PayloadCalculator
        from losses import simulate_ascent_trace
        from models import EstimateMode
        from plotting import plot_ascent, plot_stage_breakdown

    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        scenario = load_scenario(args.scenario)
    except (OSError, ScenarioError) as e:
        logger.error("Could not load scenario: %s", e)
        return 2

    targets = scenario.targets
    if args.mode:
        scenario.loss_config.mode = EstimateMode.parse(args.mode)
    if args.periapsis is not None:
        targets.periapsis = args.periapsis
    if args.apoapsis is not None:
        targets.apoapsis = args.apoapsis
    if args.inclination is not None:
        targets.inclination = args.inclination
    if args.latitude is not None:
        targets.latitude = args.latitude

    logger.info("Running payload calculation for %s", args.scenario)
    result = PayloadCalculator().compute(scenario.stats, targets, scenario.loss_config)
    print_result(result, scenario.stats, targets.body.name)

    if args.plot and result.success:
        plot_path = Path(args.plot)
        plot_stage_breakdown(result, show=False, save_path=str(plot_path))
        logger.info("Saved delta-v breakdown to %s", plot_path)
        if scenario.stats.can_simulate:
            ascent_path = plot_path.with_name(f"{plot_path.stem}_ascent{plot_path.suffix}")
            trace = simulate_ascent_trace(targets.body, targets, scenario.loss_config,
                                          scenario.stats, result.estimated_payload)
            plot_ascent(trace, show=False, save_path=str(ascent_path))
            logger.info("Saved ascent profile to %s", ascent_path)

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
