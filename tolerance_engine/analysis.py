"""Stackup analysis engine supporting WC, RSS, and Monte Carlo.

Every method works on a stackup plus its features already resolved in
contribution order. Contribution ``i`` enters the assembled dimension with
the effective multiplier ``m_i = direction_i * (0.5 if half_count_i else 1)``.
"""

from __future__ import annotations

import copy
import logging
import math
from datetime import datetime
from typing import Iterable, Optional, Sequence

import numpy as np

from tolerance_engine.distributions import check_distribution, sample_feature
from tolerance_engine.errors import InvalidConfigError, UnresolvedFeatureError
from tolerance_engine.models import (
    AnalysisConfig, AnalysisMethod, AnalysisResult, Distribution,
    DistributionKind, Feature, Stackup, StackupAnalysis, Tolerance, utc_now,
)
from tolerance_engine.sink import SampleSink
from tolerance_engine.statistics import (
    capability_indices, confidence_band, empirical_yield, normal_yield,
    quartile_summary, three_sigma_band,
)

logger = logging.getLogger(__name__)

# Worst-case Cpk is reported as this fraction of Cp.
WORST_CASE_CPK_FACTOR = 0.8
WORST_CASE_SIGMA_LEVEL = 3.0
WORST_CASE_YIELD = 99.73

# LogNormal sigma = band / (6 * nominal) is only trusted below this ratio.
LOGNORMAL_SPREAD_LIMIT = 0.1


def resolve_features(stackup: Stackup, features: Iterable[Feature]) -> list[Feature]:
    """Pick the features a stackup references, in contribution order.

    Raises:
        UnresolvedFeatureError: Some contribution's feature is missing.
    """
    by_id = {f.id: f for f in features}
    missing = [fid for fid in stackup.feature_ids if fid not in by_id]
    if missing:
        raise UnresolvedFeatureError(
            f"Stackup '{stackup.name}' references unknown features: {', '.join(missing)}"
        )
    return [by_id[fid] for fid in stackup.feature_ids]


def _check_resolved(stackup: Stackup, features: Sequence[Feature]) -> None:
    if len(features) != len(stackup.contributions):
        raise UnresolvedFeatureError(
            f"Stackup '{stackup.name}' has {len(stackup.contributions)} "
            f"contributions but {len(features)} resolved features"
        )
    for i, (c, f) in enumerate(zip(stackup.contributions, features)):
        if c.feature_id != f.id:
            raise UnresolvedFeatureError(
                f"Contribution {i} of '{stackup.name}' expects feature "
                f"{c.feature_id}, got {f.id}"
            )


def _nominal(stackup: Stackup, features: Sequence[Feature]) -> float:
    return sum(f.nominal * c.multiplier for c, f in zip(stackup.contributions, features))


# ---------------------------------------------------------------------------
# Worst-Case analysis
# ---------------------------------------------------------------------------

def worst_case(stackup: Stackup, features: Sequence[Feature]) -> AnalysisResult:
    """Perform worst-case (min/max) stackup analysis.

    Every feature is assumed to be at its extreme limit simultaneously.
    With spec limits, Cp is the spec width over the worst-case band and
    Cpk, sigma level and yield are fixed conservative estimates
    (``0.8 * Cp``, 3, 99.73%) rather than derived values.
    """
    _check_resolved(stackup, features)

    nominal = 0.0
    total_plus = 0.0
    total_minus = 0.0
    for c, f in zip(stackup.contributions, features):
        m = c.multiplier
        nominal += f.nominal * m
        total_plus += f.tolerance.plus * abs(m)
        total_minus += f.tolerance.minus * abs(m)

    result = AnalysisResult(
        method=AnalysisMethod.WORST_CASE,
        nominal_dimension=nominal,
        predicted_tolerance=Tolerance(total_plus, total_minus, Distribution.uniform()),
    )

    limits = stackup.spec_limits()
    band = total_plus + total_minus
    if limits is not None and band > 0.0:
        result.cp = limits.width / band
        result.cpk = result.cp * WORST_CASE_CPK_FACTOR
        result.sigma_level = WORST_CASE_SIGMA_LEVEL
        result.yield_percentage = WORST_CASE_YIELD

    return result


# ---------------------------------------------------------------------------
# RSS (Root Sum of Squares) analysis
# ---------------------------------------------------------------------------

def rss_std_dev(stackup: Stackup, features: Sequence[Feature]) -> float:
    """Assembled standard deviation, treating every band as +/-3 sigma."""
    _check_resolved(stackup, features)
    sum_var = 0.0
    for c, f in zip(stackup.contributions, features):
        std_i = f.tolerance.band / 6.0
        sum_var += (std_i * abs(c.multiplier)) ** 2
    return math.sqrt(sum_var)


def rss(stackup: Stackup, features: Sequence[Feature]) -> AnalysisResult:
    """Perform RSS statistical stackup analysis.

    Each feature's band is taken as +/-3 sigma of a normal distribution
    regardless of its declared distribution. The predicted band is
    +/-3 sigma of the assembled dimension; yield is parametric.
    """
    _check_resolved(stackup, features)

    nominal = _nominal(stackup, features)
    std = rss_std_dev(stackup, features)
    band = Tolerance(3.0 * std, 3.0 * std, Distribution.normal())

    result = AnalysisResult(
        method=AnalysisMethod.RSS,
        nominal_dimension=nominal,
        predicted_tolerance=band,
        three_sigma_tolerance=band,
        std_dev=std,
    )

    limits = stackup.spec_limits()
    if limits is not None:
        result.cp, result.cpk, result.sigma_level = capability_indices(nominal, std, limits)
        result.yield_percentage = normal_yield(nominal, std, limits.lower, limits.upper)

    return result


# ---------------------------------------------------------------------------
# Monte Carlo analysis
# ---------------------------------------------------------------------------

def _lognormal_warnings(features: Sequence[Feature]) -> list[str]:
    warnings = []
    for f in features:
        if (f.distribution.kind == DistributionKind.LOGNORMAL
                and f.tolerance.band > LOGNORMAL_SPREAD_LIMIT * f.nominal):
            warnings.append(
                f"LogNormal spread approximation is coarse for '{f.name}' "
                f"(band {f.tolerance.band:g} vs nominal {f.nominal:g})"
            )
    return warnings


def simulate(
    stackup: Stackup,
    features: Sequence[Feature],
    n_samples: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw ``n_samples`` assembled dimensions, in draw order."""
    _check_resolved(stackup, features)
    # Validate every feature first so no partial run is attempted.
    for f in features:
        check_distribution(f)

    samples = np.zeros(n_samples)
    for c, f in zip(stackup.contributions, features):
        samples += sample_feature(f, rng, size=n_samples) * c.multiplier
    return samples


def monte_carlo(
    stackup: Stackup,
    features: Sequence[Feature],
    config: AnalysisConfig,
    rng: np.random.Generator,
    sink: Optional[SampleSink] = None,
    timestamp: Optional[datetime] = None,
) -> AnalysisResult:
    """Perform Monte Carlo stackup analysis.

    Each feature is sampled according to its distribution and the samples
    are combined through the contribution multipliers. Bands come from
    empirical quantiles of the sorted samples; yield is the fraction of
    samples inside the spec limits.

    Args:
        stackup: The stackup to analyze.
        features: Resolved features, in contribution order.
        config: Analysis settings; ``simulations`` sets the sample count.
        rng: NumPy random generator; seed it for reproducible results.
        sink: Where to persist samples when ``config.save_samples`` is set.
        timestamp: Timestamp passed to the sink (defaults to now).
    """
    config.validate()
    if config.save_samples and sink is None:
        raise InvalidConfigError("save_samples is set but no sample sink was given")

    n = int(config.simulations)
    raw = simulate(stackup, features, n, rng)
    ordered = np.sort(raw)

    mean = float(np.mean(ordered))
    std = float(np.std(ordered, ddof=1)) if n > 1 else 0.0

    three_sigma = three_sigma_band(ordered, mean)
    user_band = confidence_band(ordered, mean, config.confidence_level)

    result = AnalysisResult(
        method=AnalysisMethod.MONTE_CARLO,
        nominal_dimension=mean,
        predicted_tolerance=three_sigma if config.use_three_sigma else user_band,
        three_sigma_tolerance=three_sigma,
        user_confidence_tolerance=user_band,
        std_dev=std,
        quartiles=quartile_summary(ordered),
        warnings=_lognormal_warnings(features),
        samples=ordered,
    )
    for w in result.warnings:
        logger.warning("%s", w)

    limits = stackup.spec_limits()
    if limits is not None:
        result.cp, result.cpk, result.sigma_level = capability_indices(mean, std, limits)
        result.yield_percentage = empirical_yield(ordered, limits.lower, limits.upper)

    if config.save_samples:
        result.sample_file = sink.persist_samples(stackup.id, timestamp or utc_now(), raw)

    return result


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------

def analyze_stackup(
    stackup: Stackup,
    features: Sequence[Feature],
    config: Optional[AnalysisConfig] = None,
    rng: Optional[np.random.Generator] = None,
    sink: Optional[SampleSink] = None,
) -> StackupAnalysis:
    """Run the configured analysis and wrap it in a StackupAnalysis record.

    Args:
        stackup: The stackup to analyze.
        features: Resolved features, in contribution order.
        config: Analysis settings. Defaults to Monte Carlo, 10 000 samples.
        rng: Random generator for Monte Carlo; unseeded if omitted.
        sink: Sample sink for ``config.save_samples``.

    Returns:
        A StackupAnalysis snapshotting the contributions and config used.
    """
    config = config or AnalysisConfig()
    config.validate()
    _check_resolved(stackup, features)

    logger.debug("Analyzing '%s' with %s over %d contributions",
                 stackup.name, config.method.label, len(stackup.contributions))

    created = utc_now()
    if config.method == AnalysisMethod.WORST_CASE:
        result = worst_case(stackup, features)
    elif config.method == AnalysisMethod.RSS:
        result = rss(stackup, features)
    else:
        if rng is None:
            rng = np.random.default_rng()
        result = monte_carlo(stackup, features, config, rng, sink=sink, timestamp=created)

    logger.info("%s '%s': nominal=%.6f +%.6f/-%.6f",
                config.method.label, stackup.name, result.nominal_dimension,
                result.predicted_tolerance.plus, result.predicted_tolerance.minus)

    return StackupAnalysis(
        stackup_id=stackup.id,
        stackup_name=stackup.name,
        contributions=[copy.copy(c) for c in stackup.contributions],
        config=copy.copy(config),
        result=result,
        target_dimension=stackup.target_dimension,
        created=created,
    )


def analyze_stack(
    stackup: Stackup,
    features: Sequence[Feature],
    methods: Optional[list[str]] = None,
    mc_samples: int = 10_000,
    confidence_level: float = 0.95,
    rng: Optional[np.random.Generator] = None,
) -> dict[AnalysisMethod, AnalysisResult]:
    """Run one or more analysis methods on a stackup.

    Args:
        stackup: The stackup to analyze.
        features: Resolved features, in contribution order.
        methods: Method names ("wc", "rss", "mc", ...). Defaults to all.
        mc_samples: Number of Monte Carlo samples.
        confidence_level: Confidence level of the Monte Carlo user band.
        rng: Random generator for Monte Carlo.

    Returns:
        Dict mapping method to AnalysisResult, in request order.
    """
    if methods is None:
        methods = ["wc", "rss", "mc"]

    results: dict[AnalysisMethod, AnalysisResult] = {}
    for name in methods:
        method = AnalysisMethod.parse(name)
        config = AnalysisConfig(method=method, simulations=mc_samples,
                                confidence_level=confidence_level)
        results[method] = analyze_stackup(stackup, features, config, rng=rng).result
    return results
