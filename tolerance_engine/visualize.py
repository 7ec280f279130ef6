"""Matplotlib charts for stackup analyses.

Each function returns the figure. When ``save_path`` is given the figure is
also written to disk and closed.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from tolerance_engine.errors import PersistenceError, ValidationError
from tolerance_engine.models import AnalysisResult, Feature, SpecLimits, Stackup
from tolerance_engine.statistics import SensitivityAnalysis

logger = logging.getLogger(__name__)


def _finish(fig, save_path: Optional[str], what: str):
    import matplotlib.pyplot as plt

    fig.tight_layout()
    if save_path:
        try:
            fig.savefig(save_path, dpi=150, bbox_inches="tight")
        except OSError as exc:
            raise PersistenceError(f"Cannot save {what} to {save_path}: {exc}") from exc
        finally:
            plt.close(fig)
        logger.info("Saved %s to %s", what, save_path)
    return fig


def plot_contributions(
    stackup: Stackup,
    features: Sequence[Feature],
    title: Optional[str] = None,
    save_path: Optional[str] = None,
):
    """Draw a waterfall of each contribution's signed nominal and band.

    The final marker shows the worst-case range of the assembled dimension.
    """
    import matplotlib.pyplot as plt

    if len(features) != len(stackup.contributions):
        raise ValidationError("Features must match the stackup contributions")

    fig, ax = plt.subplots(figsize=(10, max(5, len(features) * 0.5 + 2)))

    cumulative = 0.0
    low_total = 0.0
    high_total = 0.0
    for i, (c, f) in enumerate(zip(stackup.contributions, features)):
        m = c.multiplier
        nom = f.nominal * m
        plus = f.tolerance.plus * abs(m)
        minus = f.tolerance.minus * abs(m)

        color = "#2196F3" if nom >= 0 else "#F44336"
        ax.barh(i, nom, left=cumulative, height=0.5, color=color, alpha=0.8,
                edgecolor="black", linewidth=0.5)

        end = cumulative + nom
        ax.plot([end - minus, end + plus], [i, i], color="black", linewidth=2)
        ax.plot([end - minus, end - minus], [i - 0.15, i + 0.15], color="black", linewidth=2)
        ax.plot([end + plus, end + plus], [i - 0.15, i + 0.15], color="black", linewidth=2)

        cumulative = end
        low_total += minus
        high_total += plus

    ax.axvline(x=cumulative, color="green", linestyle="--", linewidth=1.5,
               label=f"Nominal = {cumulative:.4f}")
    ax.axvspan(cumulative - low_total, cumulative + high_total, alpha=0.15, color="green",
               label=f"Worst-case [{cumulative - low_total:.4f}, {cumulative + high_total:.4f}]")

    limits = stackup.spec_limits()
    if limits is not None:
        ax.axvline(limits.lower, color="red", linewidth=1.5, label=f"LSL = {limits.lower:.4f}")
        ax.axvline(limits.upper, color="red", linewidth=1.5, label=f"USL = {limits.upper:.4f}")

    ax.set_yticks(list(range(len(features))))
    ax.set_yticklabels([f.name for f in features])
    ax.set_xlabel("Dimension")
    ax.set_title(title or f"{stackup.name}: Contribution Waterfall")
    ax.legend(loc="best", fontsize=8)
    ax.invert_yaxis()
    return _finish(fig, save_path, "waterfall chart")


def plot_monte_carlo_histogram(
    result: AnalysisResult,
    spec: Optional[SpecLimits] = None,
    title: Optional[str] = None,
    save_path: Optional[str] = None,
    bins: int = 100,
):
    """Plot a histogram of Monte Carlo samples.

    Args:
        result: A Monte Carlo AnalysisResult that still holds its samples.
        spec: Optional spec limits to overlay.
        title: Optional title override.
        save_path: If given, save the plot to this path.
        bins: Number of histogram bins.
    """
    import matplotlib.pyplot as plt

    if result.samples is None:
        raise ValidationError("AnalysisResult does not contain Monte Carlo samples")

    samples = np.asarray(result.samples, dtype=float)
    mean = result.nominal_dimension
    std = result.std_dev or 0.0

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.hist(samples, bins=bins, density=True, alpha=0.7, color="#2196F3",
            edgecolor="black", linewidth=0.3)

    if std > 0.0:
        x = np.linspace(samples.min(), samples.max(), 300)
        pdf = np.exp(-0.5 * ((x - mean) / std) ** 2) / (std * np.sqrt(2 * np.pi))
        ax.plot(x, pdf, "r-", linewidth=2, label="Normal fit")
        ax.axvline(mean - 3 * std, color="orange", linestyle=":", linewidth=0.8,
                   label=f"-3σ = {mean - 3 * std:.4f}")
        ax.axvline(mean + 3 * std, color="orange", linestyle=":", linewidth=0.8,
                   label=f"+3σ = {mean + 3 * std:.4f}")

    ax.axvline(mean, color="red", linestyle="--", linewidth=1.5, label=f"Mean = {mean:.4f}")

    if spec is not None:
        ax.axvline(spec.lower, color="red", linewidth=2, label=f"LSL = {spec.lower:.4f}")
        ax.axvline(spec.upper, color="red", linewidth=2, label=f"USL = {spec.upper:.4f}")
        out_of_spec = np.sum((samples < spec.lower) | (samples > spec.upper)) / len(samples) * 100
        ax.text(0.02, 0.95, f"Out of spec: {out_of_spec:.3f}%",
                transform=ax.transAxes, fontsize=10, verticalalignment="top",
                bbox=dict(boxstyle="round", facecolor="wheat", alpha=0.5))

    ax.set_xlabel("Assembled dimension")
    ax.set_ylabel("Probability Density")
    ax.set_title(title or f"Monte Carlo Distribution (n={len(samples):,})")
    ax.legend(loc="best", fontsize=8)
    return _finish(fig, save_path, "histogram")


def plot_sensitivity(
    sensitivity: SensitivityAnalysis,
    title: Optional[str] = None,
    save_path: Optional[str] = None,
):
    """Pareto chart of each feature's share of the assembled variance."""
    import matplotlib.pyplot as plt

    rows = sensitivity.contributions
    if not rows:
        raise ValidationError("No sensitivity data to plot")

    names = [r.feature_name for r in rows]
    values = [r.percentage for r in rows]
    colors = {"High": "#F44336", "Medium": "#FF9800", "Low": "#2196F3"}

    fig, ax = plt.subplots(figsize=(10, max(4, len(names) * 0.4 + 1)))
    y_pos = list(range(len(names)))
    ax.barh(y_pos, values, color=[colors[r.impact] for r in rows],
            edgecolor="black", linewidth=0.5, height=0.6)
    ax.plot(np.cumsum(values), y_pos, "k.-", linewidth=1, label="Cumulative %")
    ax.set_yticks(y_pos)
    ax.set_yticklabels(names)
    ax.set_xlim(0, 105)
    ax.set_xlabel("Share of variance (%)")
    ax.set_title(title or f"Sensitivity: {sensitivity.stackup_name}")
    ax.legend(loc="lower right", fontsize=8)
    ax.invert_yaxis()
    return _finish(fig, save_path, "sensitivity chart")


def plot_method_comparison(
    results: dict,
    spec: Optional[SpecLimits] = None,
    title: Optional[str] = None,
    save_path: Optional[str] = None,
):
    """Compare the predicted ranges of several analysis methods side by side."""
    import matplotlib.pyplot as plt

    if not results:
        raise ValidationError("No results to compare")

    fig, ax = plt.subplots(figsize=(8, 1.2 * len(results) + 2))
    for i, (method, r) in enumerate(results.items()):
        ax.plot([r.lower_bound, r.upper_bound], [i, i], linewidth=6, alpha=0.7,
                solid_capstyle="butt")
        ax.plot(r.nominal_dimension, i, "k|", markersize=18)
    ax.set_yticks(list(range(len(results))))
    ax.set_yticklabels([m.label for m in results])

    if spec is not None:
        ax.axvline(spec.lower, color="red", linewidth=1.5, label="LSL")
        ax.axvline(spec.upper, color="red", linewidth=1.5, label="USL")
        ax.legend(loc="best", fontsize=8)

    ax.set_xlabel("Assembled dimension")
    ax.set_title(title or "Predicted range by method")
    ax.invert_yaxis()
    return _finish(fig, save_path, "method comparison")
