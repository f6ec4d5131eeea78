"""
Result Visualization Tools
==========================

Plotting helpers for execution results and state vectors.

Key Functions
-------------
- plot_counts(): Bar chart of measured bitstring counts
- plot_noise_timeline(): Noise events per qubit over simulated time
- plot_state_probabilities(): Born probabilities of every basis state
"""

from __future__ import annotations

import numpy as np
import matplotlib.pyplot as plt
from typing import Dict, Optional, Tuple, Union

from .measurement import bitstring
from .metrics import ExecutionResult
from .noise_models import NoiseEventType
from .state_vector import StateVector


EVENT_STYLES = {
    NoiseEventType.DEPHASING: ("tab:blue", "o"),
    NoiseEventType.RELAXATION: ("tab:orange", "v"),
    NoiseEventType.GATE_ERROR: ("tab:red", "x"),
    NoiseEventType.ATOM_LOSS: ("black", "s"),
    NoiseEventType.ATOM_REPLENISHMENT: ("tab:green", "^"),
}


def plot_counts(
    result: Union[ExecutionResult, Dict[str, int]],
    ax: Optional[plt.Axes] = None,
    normalize: bool = False,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (10, 6),
) -> plt.Axes:
    """
    Bar chart of bitstring counts (qubit 0 is the leftmost character).

    Parameters
    ----------
    result : ExecutionResult or dict
        Result with ``counts``, or a counts dict directly.
    ax : plt.Axes, optional
        Axes to plot on. If None, creates new figure.
    normalize : bool
        Plot relative frequencies instead of raw counts.
    title : str, optional
        Plot title. Auto-generated if None.
    figsize : tuple
        Figure size (width, height) in inches

    Returns
    -------
    plt.Axes
        The axes with the plot
    """
    counts = result.counts if isinstance(result, ExecutionResult) else result
    if not counts:
        raise ValueError("No counts to plot; run with shots > 0")

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)

    labels = sorted(counts)
    values = np.array([counts[k] for k in labels], dtype=float)
    if normalize:
        values = values / values.sum()

    ax.bar(range(len(labels)), values, color='steelblue', edgecolor='navy', alpha=0.8)
    ax.set_xticks(range(len(labels)))
    ax.set_xticklabels([f"|{k}⟩" for k in labels], rotation=45 if len(labels) > 8 else 0)
    ax.set_xlabel("Outcome", fontsize=12)
    ax.set_ylabel("Probability" if normalize else "Counts", fontsize=12)

    if title is None:
        if isinstance(result, ExecutionResult):
            title = f"{result.circuit_name} - {result.shots} shots"
        else:
            title = f"{int(sum(counts.values()))} shots"
    ax.set_title(title, fontsize=14)

    ax.grid(True, axis='y', alpha=0.3)
    ax.set_axisbelow(True)

    plt.tight_layout()
    return ax


def plot_noise_timeline(
    result: ExecutionResult,
    ax: Optional[plt.Axes] = None,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (12, 5),
) -> plt.Axes:
    """
    Scatter of noise events: simulated time (µs) against qubit index.

    Parameters
    ----------
    result : ExecutionResult
        Result whose ``noise_events`` are plotted.
    ax : plt.Axes, optional
        Axes to plot on. If None, creates new figure.
    title : str, optional
        Plot title. Auto-generated if None.
    figsize : tuple
        Figure size (width, height) in inches

    Returns
    -------
    plt.Axes
        The axes with the plot
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)

    for event_type, (color, marker) in EVENT_STYLES.items():
        events = [e for e in result.noise_events if e.event_type is event_type]
        if not events:
            continue
        times = np.array([e.timestamp for e in events]) * 1e6
        qubits = [e.qubit for e in events]
        ax.scatter(times, qubits, c=color, marker=marker, s=40, alpha=0.7,
                   label=f"{event_type.value} ({len(events)})")

    ax.set_xlabel("Simulated time (µs)", fontsize=12)
    ax.set_ylabel("Qubit", fontsize=12)
    ax.set_yticks(range(result.num_qubits))
    ax.set_ylim(-0.5, result.num_qubits - 0.5)

    if title is None:
        title = (f"{result.circuit_name} - {len(result.noise_events)} noise events "
                 f"({result.operation_mode})")
    ax.set_title(title, fontsize=14)

    ax.grid(True, alpha=0.3)
    ax.set_axisbelow(True)
    if result.noise_events:
        ax.legend(loc='upper right', fontsize=9)

    plt.tight_layout()
    return ax


def plot_state_probabilities(
    state: Union[StateVector, np.ndarray],
    ax: Optional[plt.Axes] = None,
    threshold: float = 0.0,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (10, 6),
) -> plt.Axes:
    """
    Born probability |ψ_b|² of each basis state.

    Parameters
    ----------
    state : StateVector or np.ndarray
        Register or raw amplitudes (little-endian).
    ax : plt.Axes, optional
        Axes to plot on. If None, creates new figure.
    threshold : float
        Hide basis states with probability at or below this value.
    title : str, optional
        Plot title.
    figsize : tuple
        Figure size (width, height) in inches

    Returns
    -------
    plt.Axes
        The axes with the plot
    """
    amplitudes = state.amplitudes if isinstance(state, StateVector) else np.asarray(state)
    probs = np.abs(amplitudes) ** 2
    n = int(np.log2(probs.size))

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)

    shown = np.flatnonzero(probs > threshold) if threshold > 0 else np.arange(probs.size)
    labels = [f"|{bitstring(int(i), n)}⟩" for i in shown]

    # Color by phase so relative phases remain visible
    phases = np.angle(amplitudes[shown])
    ax.bar(range(len(shown)), probs[shown],
           color=plt.get_cmap('twilight')((phases + np.pi) / (2 * np.pi)),
           edgecolor='black', linewidth=0.5)

    ax.set_xticks(range(len(shown)))
    ax.set_xticklabels(labels, rotation=45 if len(shown) > 8 else 0)
    ax.set_xlabel("Basis state", fontsize=12)
    ax.set_ylabel("Probability", fontsize=12)
    ax.set_ylim(0, 1.05)
    ax.set_title(title or f"{n}-qubit state", fontsize=14)

    ax.grid(True, axis='y', alpha=0.3)
    ax.set_axisbelow(True)

    plt.tight_layout()
    return ax
