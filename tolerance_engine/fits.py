"""Fit evaluation between two mated features.

Only diameter-to-diameter mates take part in fit arithmetic. The internal
feature (hole) and external feature (pin) are picked by category; fits are
internal minus external, so positive values are clearance and negative
values are interference.

    nominal fit = internal.nominal - external.nominal
    min fit     = internal.MMC - external.MMC      (tightest)
    max fit     = internal.LMC - external.LMC      (loosest)
"""

from __future__ import annotations

import logging
from typing import Optional

from tolerance_engine.errors import ValidationError
from tolerance_engine.models import (
    Feature, FeatureCategory, FeatureKind, FitValidation, Mate, MateKind,
)

logger = logging.getLogger(__name__)


def _orient(primary: Feature, secondary: Feature) -> tuple[Feature, Feature, Optional[str]]:
    """Return (internal, external, warning) for a feature pair."""
    if (primary.category == FeatureCategory.INTERNAL
            and secondary.category == FeatureCategory.EXTERNAL):
        return primary, secondary, None
    if (primary.category == FeatureCategory.EXTERNAL
            and secondary.category == FeatureCategory.INTERNAL):
        return secondary, primary, None
    warning = (
        f"Both '{primary.name}' and '{secondary.name}' are "
        f"{primary.category.value}; treating '{primary.name}' as internal"
    )
    return primary, secondary, warning


def _is_diameter_pair(primary: Feature, secondary: Feature) -> bool:
    return (primary.kind == FeatureKind.DIAMETER
            and secondary.kind == FeatureKind.DIAMETER)


def nominal_fit(primary: Feature, secondary: Feature, offset: float = 0.0) -> float:
    """Internal nominal minus external nominal, or ``offset`` for non-diameter pairs."""
    if not _is_diameter_pair(primary, secondary):
        return offset
    internal, external, _ = _orient(primary, secondary)
    return internal.nominal - external.nominal


def mmc_fit(primary: Feature, secondary: Feature, offset: float = 0.0) -> float:
    """Tightest fit: both features at maximum material condition."""
    if not _is_diameter_pair(primary, secondary):
        return offset
    internal, external, _ = _orient(primary, secondary)
    return internal.mmc - external.mmc


def lmc_fit(primary: Feature, secondary: Feature, offset: float = 0.0) -> float:
    """Loosest fit: both features at least material condition."""
    if not _is_diameter_pair(primary, secondary):
        return offset
    internal, external, _ = _orient(primary, secondary)
    return internal.lmc - external.lmc


def classify_fit(kind: MateKind, min_fit: float, max_fit: float) -> tuple[bool, Optional[str]]:
    """Check a min/max fit pair against a declared mate kind.

    Returns:
        (valid, message) where message explains an invalid fit.
    """
    if kind == MateKind.CLEARANCE:
        if min_fit > 0.0:
            return True, None
        return False, "Clearance fit must have positive minimum clearance"

    if kind == MateKind.INTERFERENCE:
        if max_fit < 0.0:
            return True, None
        return False, "Interference fit must have negative maximum clearance"

    if kind == MateKind.TRANSITION:
        if min_fit < 0.0 < max_fit:
            return True, None
        return False, "Transition fit must have both positive and negative clearances"

    raise ValidationError(f"Unknown mate kind: {kind!r}")


def validate_fit(mate: Mate, primary: Feature, secondary: Feature) -> FitValidation:
    """Evaluate a mate's fit from its two resolved features.

    Args:
        mate: The mate declaration.
        primary: Feature resolved from ``mate.primary_feature_id``.
        secondary: Feature resolved from ``mate.secondary_feature_id``.

    Returns:
        FitValidation. Non-diameter pairs report the mate offset as all three
        fits and are always valid. Pairs sharing a category are evaluated
        with the primary as internal and carry a warning.
    """
    if (primary.id, secondary.id) != mate.feature_ids:
        raise ValidationError(
            f"Features {primary.id}, {secondary.id} do not match mate '{mate.name}'"
        )

    if not _is_diameter_pair(primary, secondary):
        return FitValidation(
            valid=True,
            nominal_fit=mate.offset,
            min_fit=mate.offset,
            max_fit=mate.offset,
        )

    internal, external, warning = _orient(primary, secondary)
    if warning:
        logger.warning("Mate '%s': %s", mate.name, warning)

    nom = internal.nominal - external.nominal
    min_fit = internal.mmc - external.mmc
    max_fit = internal.lmc - external.lmc
    valid, message = classify_fit(mate.kind, min_fit, max_fit)

    logger.debug(
        "Mate '%s' (%s): nominal=%.6f min=%.6f max=%.6f valid=%s",
        mate.name, mate.kind.value, nom, min_fit, max_fit, valid,
    )
    return FitValidation(
        valid=valid,
        nominal_fit=nom,
        min_fit=min_fit,
        max_fit=max_fit,
        message=message,
        warning=warning,
    )
