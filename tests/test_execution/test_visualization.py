"""
Test Suite: Result Plots
========================

Smoke tests on the non-interactive Agg backend.
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import numpy as np
import matplotlib.pyplot as plt

from circuit_simulator.circuit import Circuit
from circuit_simulator.configurations import NoiseParameters
from circuit_simulator.simulation import simulate_circuit
from circuit_simulator.state_vector import StateVector
from circuit_simulator.visualization import (
    plot_counts,
    plot_noise_timeline,
    plot_state_probabilities,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


@pytest.fixture
def noisy_result():
    c = Circuit("ghz", 3, "continuous").h(0).cnot(0, 1).cnot(1, 2)
    noise = NoiseParameters(dephasing_rate=0.5, gate_error_rate=1.0, atom_loss_rate=0.2)
    return simulate_circuit(c, noise, shots=200, seed=17)


class TestPlots:

    def test_plot_counts(self, noisy_result):
        ax = plot_counts(noisy_result)
        assert isinstance(ax, plt.Axes)
        assert len(ax.patches) == len(noisy_result.counts)

    def test_plot_counts_from_dict_normalised(self):
        ax = plot_counts({"0": 25, "1": 75}, normalize=True)
        heights = [p.get_height() for p in ax.patches]
        assert heights == pytest.approx([0.25, 0.75])

    def test_plot_counts_requires_counts(self):
        result = simulate_circuit(Circuit("x", 1).x(0))
        with pytest.raises(ValueError):
            plot_counts(result)

    def test_plot_noise_timeline(self, noisy_result):
        ax = plot_noise_timeline(noisy_result)
        assert isinstance(ax, plt.Axes)
        assert ax.get_legend() is not None

    def test_plot_state_probabilities_threshold(self):
        sv = StateVector(3)
        for q in range(2):
            sv.apply_matrix(np.array([[1, 1], [1, -1]]) / np.sqrt(2), [q])
        ax = plot_state_probabilities(sv, threshold=1e-9)
        assert len(ax.patches) == 4

    def test_plot_on_existing_axes(self):
        fig, ax = plt.subplots()
        out = plot_state_probabilities(np.array([1, 0, 0, 0], dtype=complex), ax=ax)
        assert out is ax
