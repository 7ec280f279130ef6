"""Per-feature distribution sampling.

This is the central sampling function used by the Monte Carlo analyzer.
Each feature's tolerance band ``[nominal - minus, nominal + plus]`` is
interpreted according to its distribution kind:

    normal      sigma = band / 6 (the band is a +/-3 sigma process window)
    uniform     flat over the band
    triangular  mode at nominal, limits at the band
    lognormal   mu = ln(nominal), sigma = band / (6 * nominal)
    beta        Beta(alpha, beta) mapped from [0, 1] onto the band

The lognormal sigma is a small-spread approximation that only holds when
the band is much smaller than the nominal.
"""

from __future__ import annotations

import math
from typing import Optional, Union

import numpy as np

from tolerance_engine.errors import IllFormedDistributionError
from tolerance_engine.models import DistributionKind, Feature


def check_distribution(feature: Feature) -> None:
    """Raise IllFormedDistributionError if the feature cannot be sampled."""
    dist = feature.distribution
    band = feature.tolerance.band

    if not band > 0.0:
        raise IllFormedDistributionError(
            f"Feature '{feature.name}' has a zero tolerance band"
        )

    if dist.kind == DistributionKind.LOGNORMAL:
        if feature.lower_limit <= 0.0:
            raise IllFormedDistributionError(
                f"LogNormal distribution on '{feature.name}' requires positive "
                f"values, lower limit is {feature.lower_limit}"
            )
    elif dist.kind == DistributionKind.BETA:
        if dist.alpha is None or dist.beta is None:
            raise IllFormedDistributionError(
                f"Beta distribution on '{feature.name}' needs alpha and beta"
            )
        if dist.alpha <= 0.0 or dist.beta <= 0.0:
            raise IllFormedDistributionError(
                f"Beta distribution on '{feature.name}' needs positive shape "
                f"parameters, got alpha={dist.alpha}, beta={dist.beta}"
            )


def sample_feature(
    feature: Feature,
    rng: np.random.Generator,
    size: Optional[int] = None,
) -> Union[float, np.ndarray]:
    """Draw samples of a feature's actual dimension.

    Args:
        feature: The feature to sample.
        rng: NumPy random generator; callers seed it for reproducibility.
        size: Number of draws. If None, a single float is returned.

    Returns:
        A float, or a 1D array of ``size`` samples.

    Raises:
        IllFormedDistributionError: The distribution parameters are
            inconsistent with the feature's band.
    """
    check_distribution(feature)

    dist = feature.distribution
    nominal = feature.nominal
    band = feature.tolerance.band
    low, high = feature.lower_limit, feature.upper_limit

    if dist.kind == DistributionKind.NORMAL:
        draws = rng.normal(loc=nominal, scale=band / 6.0, size=size)

    elif dist.kind == DistributionKind.UNIFORM:
        draws = rng.uniform(low=low, high=high, size=size)

    elif dist.kind == DistributionKind.TRIANGULAR:
        draws = rng.triangular(left=low, mode=nominal, right=high, size=size)

    elif dist.kind == DistributionKind.LOGNORMAL:
        draws = rng.lognormal(
            mean=math.log(nominal), sigma=band / (6.0 * nominal), size=size,
        )

    elif dist.kind == DistributionKind.BETA:
        draws = low + rng.beta(dist.alpha, dist.beta, size=size) * band

    else:
        raise IllFormedDistributionError(f"Unknown distribution: {dist.kind}")

    if size is None:
        return float(draws)
    return np.asarray(draws, dtype=float)


def feature_std_dev(feature: Feature) -> float:
    """Analytic standard deviation of a feature's sampled dimension."""
    check_distribution(feature)

    dist = feature.distribution
    band = feature.tolerance.band

    if dist.kind == DistributionKind.NORMAL:
        return band / 6.0

    if dist.kind == DistributionKind.UNIFORM:
        return band / math.sqrt(12.0)

    if dist.kind == DistributionKind.TRIANGULAR:
        a, b, c = feature.lower_limit, feature.upper_limit, feature.nominal
        var = (a * a + b * b + c * c - a * b - a * c - b * c) / 18.0
        return math.sqrt(max(var, 0.0))

    if dist.kind == DistributionKind.LOGNORMAL:
        mu = math.log(feature.nominal)
        s = band / (6.0 * feature.nominal)
        var = (math.exp(s * s) - 1.0) * math.exp(2.0 * mu + s * s)
        return math.sqrt(var)

    if dist.kind == DistributionKind.BETA:
        a, b = dist.alpha, dist.beta
        var = a * b / ((a + b) ** 2 * (a + b + 1.0))
        return math.sqrt(var) * band

    raise IllFormedDistributionError(f"Unknown distribution: {dist.kind}")
