# Licensed under the PolyForm Noncommercial License 1.0.0
"""Payload Calculator - estimates how much payload a staged rocket can deliver to a target orbit."""

from .models import (
    g0,
    EstimateMode,
    EngineRole,
    ErrorKind,
    CalculationError,
    EngineEntry,
    SeparationGroup,
    StageInfo,
    StageResult,
    VesselStats,
    OrbitTargets,
    LossModelConfig,
    LossEstimate,
    IdealDv,
    PayloadCalculationResult,
)

from .bodies import CelestialBody, get_body
from .losses import estimate_losses, simulate_ascent_trace
from .staging import StagedDeltaV
from .core import PayloadCalculator
from .roles import EngineRecord, classify_engines
from .config import Scenario, ScenarioError, load_scenario
from .plotting import plot_ascent, plot_stage_breakdown

__version__ = "0.1.0"
__all__ = [
    "PayloadCalculator",
    "StagedDeltaV",
    "CelestialBody",
    "get_body",
    "estimate_losses",
    "simulate_ascent_trace",
    "EngineRecord",
    "classify_engines",
    "Scenario",
    "ScenarioError",
    "load_scenario",
    "plot_ascent",
    "plot_stage_breakdown",
    "EstimateMode",
    "EngineRole",
    "ErrorKind",
    "CalculationError",
    "EngineEntry",
    "SeparationGroup",
    "StageInfo",
    "StageResult",
    "VesselStats",
    "OrbitTargets",
    "LossModelConfig",
    "LossEstimate",
    "IdealDv",
    "PayloadCalculationResult",
    "g0",
]
