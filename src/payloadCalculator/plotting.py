# Licensed under the PolyForm Noncommercial License 1.0.0
"""Plotting functions for ascent traces and payload results."""

from typing import Dict, Optional
import numpy as np
import matplotlib.pyplot as plt

try:
    from .models import PayloadCalculationResult
except ImportError:
    from models import PayloadCalculationResult


def plot_ascent(trace: Dict, show: bool = True, save_path: Optional[str] = None) -> None:
    """
    Plot the loss-model ascent.

    Args:
        trace: Dictionary returned by simulate_ascent_trace
        show: Whether to display the plot
        save_path: If provided, save the plot to this path
    """
    t = trace['t']
    fig, axes = plt.subplots(2, 2, figsize=(12, 10))

    # 1. Altitude vs Time
    axes[0, 0].plot(t, trace['altitude'] / 1000)
    axes[0, 0].set_title("Altitude vs Time")
    axes[0, 0].set_xlabel("Time [s]")
    axes[0, 0].set_ylabel("Altitude [km]")

    # 2. Speed vs Time, with the dynamic drag on a twin axis
    axes[0, 1].plot(t, trace['velocity'], label="Speed")
    axes[0, 1].set_title("Speed and Drag vs Time")
    axes[0, 1].set_xlabel("Time [s]")
    axes[0, 1].set_ylabel("Speed [m/s]")
    drag_axis = axes[0, 1].twinx()
    drag_axis.plot(t, trace['drag'] / 1000, color='tab:red', ls='--', label="Drag")
    drag_axis.set_ylabel("Drag [kN]")

    # 3. Flight path angle
    axes[1, 0].plot(t, np.degrees(trace['gamma']))
    axes[1, 0].set_title("Flight Path Angle vs Time")
    axes[1, 0].set_xlabel("Time [s]")
    axes[1, 0].set_ylabel("Flight path angle [deg]")

    # 4. Cumulative losses
    axes[1, 1].plot(t, trace['gravity_loss'], label="Gravity loss")
    axes[1, 1].plot(t, trace['drag_loss'], label="Drag loss")
    axes[1, 1].set_title("Cumulative Δv losses")
    axes[1, 1].set_xlabel("Time [s]")
    axes[1, 1].set_ylabel("Δv [m/s]")
    axes[1, 1].legend()

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
    if show:
        plt.show()

    plt.close(fig)


def plot_stage_breakdown(result: PayloadCalculationResult, show: bool = True,
                         save_path: Optional[str] = None) -> None:
    """
    Plot the delta-v budget: per-stage contributions and required versus available.

    Args:
        result: A successful payload calculation
        show: Whether to display the plot
        save_path: If provided, save the plot to this path
    """
    fig, axes = plt.subplots(1, 2, figsize=(14, 6))

    stages = result.active_stages
    colors = plt.cm.viridis(np.linspace(0, 1, max(1, len(stages))))
    labels = [f"Stage {s.stage_number}" for s in stages]
    axes[0].bar(labels, [s.delta_v for s in stages], color=colors)
    for i, s in enumerate(stages):
        axes[0].annotate(f"Isp {s.effective_isp:.0f} s", (i, s.delta_v),
                         ha='center', va='bottom', fontsize=8)
    axes[0].set_title(f"Stage Δv (payload {result.estimated_payload:.2f} t)")
    axes[0].set_ylabel("Δv [m/s]")

    # Required budget stacked against what the vehicle has
    losses = result.losses
    parts = [
        ("Ideal", result.ideal_dv.total),
        ("Rotation", result.rotation_dv),
        ("Gravity", losses.gravity_loss),
        ("Drag", losses.atmospheric_loss),
        ("Attitude", losses.attitude_loss),
        ("Plane change", result.plane_change_dv),
    ]
    bottom = 0.0
    part_colors = plt.cm.tab10(np.arange(len(parts)))
    for (label, value), color in zip(parts, part_colors):
        axes[1].bar("Required", value, bottom=bottom, color=color, label=label)
        bottom += value
    axes[1].bar("Available", result.available_dv, color='grey', label="Available")
    axes[1].set_title("Δv budget")
    axes[1].set_ylabel("Δv [m/s]")
    axes[1].legend()

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
    if show:
        plt.show()

    plt.close(fig)
