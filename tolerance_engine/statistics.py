"""Process capability metrics and statistical utilities.

Provides Cp, Cpk, Pp, Ppk, Cpm, PPM, yield estimation, order-statistic
summaries of Monte Carlo samples, and variance-based sensitivity ranking of
stackup contributions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from scipy.stats import norm

from tolerance_engine.distributions import feature_std_dev
from tolerance_engine.errors import UnresolvedFeatureError, ValidationError
from tolerance_engine.models import (
    Distribution, Feature, QuartileData, SpecLimits, Stackup, Tolerance,
)

# Tail fractions of a +/-3 sigma normal band (99.73% coverage)
THREE_SIGMA_LOWER_TAIL = 0.00135
THREE_SIGMA_UPPER_TAIL = 0.99865


# ---------------------------------------------------------------------------
# Capability indices and yield
# ---------------------------------------------------------------------------

def capability_indices(
    mean: float,
    std: float,
    limits: Optional[SpecLimits],
) -> tuple[Optional[float], Optional[float], Optional[float]]:
    """Return (cp, cpk, sigma_level) for a normal-ish process.

    All three are None without spec limits or with zero spread.
    """
    if limits is None or not std > 0.0:
        return None, None, None
    cp = limits.width / (6.0 * std)
    cpu = (limits.upper - mean) / (3.0 * std)
    cpl = (mean - limits.lower) / (3.0 * std)
    cpk = min(cpu, cpl)
    return cp, cpk, 3.0 * cpk


def normal_yield(mean: float, std: float, lsl: float, usl: float) -> float:
    """Percentage of a normal population falling inside [lsl, usl]."""
    if not std > 0.0:
        return 100.0 if lsl <= mean <= usl else 0.0
    inside = norm.cdf((usl - mean) / std) - norm.cdf((lsl - mean) / std)
    return float(inside) * 100.0


def empirical_yield(samples: np.ndarray, lsl: float, usl: float) -> float:
    """Percentage of samples with ``lsl <= x <= usl``."""
    samples = np.asarray(samples, dtype=float)
    if samples.size == 0:
        raise ValidationError("Cannot compute yield of an empty sample")
    n_in = int(np.count_nonzero((samples >= lsl) & (samples <= usl)))
    return n_in / samples.size * 100.0


# ---------------------------------------------------------------------------
# Order statistics
# ---------------------------------------------------------------------------

def _floor_index(fraction: float, n: int) -> int:
    return min(int(math.floor(fraction * n)), n - 1)


def quartile_summary(sorted_samples: np.ndarray) -> QuartileData:
    """Order-statistic summary using floor-truncated indices.

    Args:
        sorted_samples: Samples sorted ascending.
    """
    s = np.asarray(sorted_samples, dtype=float)
    n = len(s)
    if n == 0:
        raise ValidationError("Cannot summarise an empty sample")
    q1 = float(s[_floor_index(0.25, n)])
    q3 = float(s[_floor_index(0.75, n)])
    return QuartileData(
        minimum=float(s[0]),
        p5=float(s[_floor_index(0.05, n)]),
        q1=q1,
        median=float(s[_floor_index(0.50, n)]),
        q3=q3,
        p95=float(s[_floor_index(0.95, n)]),
        maximum=float(s[n - 1]),
        iqr=q3 - q1,
    )


def quantile_band(
    sorted_samples: np.ndarray,
    center: float,
    lower_tail: float,
    upper_tail: float,
) -> Tolerance:
    """Tolerance band between two empirical quantiles, relative to ``center``."""
    s = np.asarray(sorted_samples, dtype=float)
    n = len(s)
    lo = _floor_index(lower_tail, n)
    hi = _floor_index(upper_tail, n)
    return Tolerance(
        plus=float(s[hi]) - center,
        minus=center - float(s[lo]),
        distribution=Distribution.normal(),
    )


def three_sigma_band(sorted_samples: np.ndarray, center: float) -> Tolerance:
    return quantile_band(sorted_samples, center,
                         THREE_SIGMA_LOWER_TAIL, THREE_SIGMA_UPPER_TAIL)


def confidence_band(sorted_samples: np.ndarray, center: float, confidence: float) -> Tolerance:
    """Two-sided band holding ``confidence`` of the samples."""
    alpha = 1.0 - confidence
    return quantile_band(sorted_samples, center, alpha / 2.0, 1.0 - alpha / 2.0)


# ---------------------------------------------------------------------------
# Sample-based process capability
# ---------------------------------------------------------------------------

class QualityRating(Enum):
    """Rating of a capability index."""
    EXCELLENT = "excellent"   # >= 1.67
    GOOD = "good"             # >= 1.33
    ADEQUATE = "adequate"     # >= 1.0
    MARGINAL = "marginal"     # >= 0.67
    POOR = "poor"             # < 0.67

    @property
    def rank(self) -> int:
        return _RATING_RANK[self]

    @classmethod
    def from_index(cls, value: Optional[float]) -> QualityRating:
        if value is None:
            return cls.POOR
        if value >= 1.67:
            return cls.EXCELLENT
        if value >= 1.33:
            return cls.GOOD
        if value >= 1.0:
            return cls.ADEQUATE
        if value >= 0.67:
            return cls.MARGINAL
        return cls.POOR


_RATING_RANK = {
    QualityRating.POOR: 1,
    QualityRating.MARGINAL: 2,
    QualityRating.ADEQUATE: 3,
    QualityRating.GOOD: 4,
    QualityRating.EXCELLENT: 5,
}

_RATING_ADVICE = {
    QualityRating.EXCELLENT: "Process is excellent. Consider cost optimization.",
    QualityRating.GOOD: "Process is good. Monitor for consistency.",
    QualityRating.ADEQUATE: "Process is adequate. Look for improvement opportunities.",
    QualityRating.MARGINAL: "Process needs improvement. Focus on variance reduction.",
    QualityRating.POOR: "Process requires immediate attention. Major improvements needed.",
}


@dataclass
class ProcessCapability:
    """Process capability metrics for a sampled assembled dimension.

    Attributes:
        usl: Upper specification limit.
        lsl: Lower specification limit.
        target: Target value (defaults to midpoint of limits).
        cp: Process capability index (spread only).
        cpk: Process capability index (with centering).
        pp: Process performance index (spread only, overall sigma).
        ppk: Process performance index (with centering, overall sigma).
        cpm: Taguchi capability index (accounts for target offset).
        ppm_upper: Parts per million exceeding USL.
        ppm_lower: Parts per million below LSL.
        ppm_total: Total PPM out of spec.
        yield_percent: Percentage of samples inside the limits.
        sigma_level: 3 * Cpk, or None when undefined.
        n_samples: Number of samples used.
        mean: Sample mean.
        std: Sample standard deviation.
        rating: Worse of the Cp and Cpk ratings.
        recommendations: Advice derived from the indices.
    """
    usl: float
    lsl: float
    target: float
    cp: Optional[float] = None
    cpk: Optional[float] = None
    pp: Optional[float] = None
    ppk: Optional[float] = None
    cpm: Optional[float] = None
    ppm_upper: float = 0.0
    ppm_lower: float = 0.0
    ppm_total: float = 0.0
    yield_percent: float = 0.0
    sigma_level: Optional[float] = None
    n_samples: int = 0
    mean: float = 0.0
    std: float = 0.0
    rating: QualityRating = QualityRating.POOR
    recommendations: list[str] = field(default_factory=list)

    def summary(self) -> str:
        def fmt(v: Optional[float], spec: str = ".4f") -> str:
            return "n/a" if v is None else format(v, spec)

        lines = [
            "=== Process Capability ===",
            f"  Specification:  LSL={self.lsl:.6f}  USL={self.usl:.6f}",
            f"  Target:         {self.target:.6f}",
            f"  Sample mean:    {self.mean:.6f}",
            f"  Sample std:     {self.std:.6f}",
            f"  Cp:             {fmt(self.cp)}",
            f"  Cpk:            {fmt(self.cpk)}",
            f"  Pp:             {fmt(self.pp)}",
            f"  Ppk:            {fmt(self.ppk)}",
            f"  Cpm:            {fmt(self.cpm)}",
            f"  Sigma level:    {fmt(self.sigma_level, '.2f')}",
            f"  Yield:          {self.yield_percent:.4f}%",
            f"  PPM total:      {self.ppm_total:.1f}",
            f"  N samples:      {self.n_samples}",
            f"  Rating:         {self.rating.value}",
        ]
        lines.extend(f"  - {r}" for r in self.recommendations)
        return "\n".join(lines)


def compute_process_capability(
    samples: np.ndarray,
    usl: float,
    lsl: float,
    target: Optional[float] = None,
) -> ProcessCapability:
    """Compute process capability metrics from sample data.

    Args:
        samples: 1D array of assembled-dimension values.
        usl: Upper specification limit.
        lsl: Lower specification limit.
        target: Target value. Defaults to midpoint of USL/LSL.

    Returns:
        ProcessCapability with all metrics computed. Indices are None when
        the sample has zero spread.
    """
    samples = np.asarray(samples, dtype=float).ravel()
    n = len(samples)
    if n < 2:
        raise ValidationError("Need at least 2 samples for capability analysis")
    if not lsl < usl:
        raise ValidationError(f"Lower spec limit {lsl} must be below upper spec limit {usl}")

    if target is None:
        target = (usl + lsl) / 2.0

    mean = float(np.mean(samples))
    std_overall = float(np.std(samples, ddof=1))

    # Simulated samples are independent, so short- and long-term indices agree.
    limits = SpecLimits(upper=usl, lower=lsl)
    cp, cpk, sigma_level = capability_indices(mean, std_overall, limits)
    pp, ppk = cp, cpk

    std_target = math.sqrt(std_overall ** 2 + (mean - target) ** 2)
    cpm = limits.width / (6.0 * std_target) if std_target > 0.0 else None

    n_above = int(np.sum(samples > usl))
    n_below = int(np.sum(samples < lsl))
    ppm_upper = n_above / n * 1_000_000
    ppm_lower = n_below / n * 1_000_000
    ppm_total = ppm_upper + ppm_lower

    rating = min(QualityRating.from_index(cp), QualityRating.from_index(cpk),
                 key=lambda r: r.rank)

    pc = ProcessCapability(
        usl=usl,
        lsl=lsl,
        target=target,
        cp=cp,
        cpk=cpk,
        pp=pp,
        ppk=ppk,
        cpm=cpm,
        ppm_upper=ppm_upper,
        ppm_lower=ppm_lower,
        ppm_total=ppm_total,
        yield_percent=empirical_yield(samples, lsl, usl),
        sigma_level=sigma_level,
        n_samples=n,
        mean=mean,
        std=std_overall,
        rating=rating,
    )
    pc.recommendations = _recommendations(pc)
    return pc


def _recommendations(pc: ProcessCapability) -> list[str]:
    advice = [_RATING_ADVICE[pc.rating]]
    if pc.cp is not None and pc.cpk is not None:
        if pc.cp > pc.cpk + 0.2:
            advice.append("Process is not well-centered. Adjust process mean.")
        if pc.cp < 1.33:
            advice.append("Process spread is too wide. Reduce process variation.")
    if pc.sigma_level is not None and pc.sigma_level < 3.0:
        advice.append("Sigma level is below 3. Implement process controls.")
    if pc.ppm_total > 1000.0:
        advice.append("Defect rate is high. Investigate root causes.")
    return advice


# ---------------------------------------------------------------------------
# Sensitivity
# ---------------------------------------------------------------------------

@dataclass
class SensitivityContribution:
    """One contribution's share of the stackup variance."""
    feature_id: str
    feature_name: str
    multiplier: float
    variance: float
    std_dev: float
    percentage: float = 0.0
    rank: int = 0

    @property
    def impact(self) -> str:
        if self.percentage >= 50.0:
            return "High"
        if self.percentage >= 25.0:
            return "Medium"
        return "Low"


@dataclass
class SensitivityAnalysis:
    """Variance breakdown of a stackup, ranked by contribution."""
    stackup_id: str
    stackup_name: str
    total_variance: float
    total_std_dev: float
    contributions: list[SensitivityContribution] = field(default_factory=list)

    def summary(self) -> str:
        lines = [
            f"=== Sensitivity: {self.stackup_name} ===",
            f"  Total variance:   {self.total_variance:.6g}",
            f"  Total std dev:    {self.total_std_dev:.6f}",
        ]
        for c in self.contributions:
            lines.append(
                f"  {c.rank:2d}. {c.feature_name:30s} {c.percentage:6.2f}%  "
                f"(x{c.multiplier:+.2f}, {c.impact})"
            )
        return "\n".join(lines)


def sensitivity_analysis(stackup: Stackup, features: Sequence[Feature]) -> SensitivityAnalysis:
    """Rank each contribution by its share of the assembled variance.

    The variance contribution of feature i is ``(std_i * |m_i|)**2`` where
    ``std_i`` is the analytic standard deviation of its distribution and
    ``m_i`` its effective multiplier.

    Args:
        stackup: The stackup whose chain is analysed.
        features: Resolved features, in contribution order.
    """
    if len(features) != len(stackup.contributions):
        raise UnresolvedFeatureError(
            f"Stackup '{stackup.name}' has {len(stackup.contributions)} "
            f"contributions but {len(features)} resolved features"
        )

    rows = []
    for contribution, feature in zip(stackup.contributions, features):
        m = contribution.multiplier
        var = (feature_std_dev(feature) * abs(m)) ** 2
        rows.append(SensitivityContribution(
            feature_id=feature.id,
            feature_name=feature.name,
            multiplier=m,
            variance=var,
            std_dev=math.sqrt(var),
        ))

    total = sum(r.variance for r in rows)
    for r in rows:
        r.percentage = r.variance / total * 100.0 if total > 0.0 else 0.0

    rows.sort(key=lambda r: r.percentage, reverse=True)
    for i, r in enumerate(rows, start=1):
        r.rank = i

    return SensitivityAnalysis(
        stackup_id=stackup.id,
        stackup_name=stackup.name,
        total_variance=total,
        total_std_dev=math.sqrt(total),
        contributions=rows,
    )


def critical_features(analysis: SensitivityAnalysis, threshold: float = 25.0) -> list[SensitivityContribution]:
    """Contributions whose share of the variance is at least ``threshold`` percent."""
    return [c for c in analysis.contributions if c.percentage >= threshold]
