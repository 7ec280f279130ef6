"""Data models for stackup tolerance analysis.

Components own features through a back-link on the feature, mates pair two
features, and stackups chain signed feature contributions into an assembled
dimension. Every entity validates on construction and exposes ``id``,
``name``, ``validate()``, ``to_dict()`` and ``from_dict()``.
"""

from __future__ import annotations

import copy
import math
import numbers
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import numpy as np

from tolerance_engine.errors import InvalidConfigError, ValidationError


def new_id() -> str:
    """Return a fresh opaque entity identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _opt_float(value) -> Optional[float]:
    return None if value is None else float(value)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FeatureKind(Enum):
    """What kind of dimension a feature controls."""
    LENGTH = "length"
    DIAMETER = "diameter"
    RADIUS = "radius"
    ANGLE = "angle"
    POSITION = "position"
    SURFACE = "surface"
    OTHER = "other"


class FeatureCategory(Enum):
    """Material polarity of a feature; governs MMC/LMC."""
    EXTERNAL = "external"   # shafts, pins
    INTERNAL = "internal"   # holes, slots


class DistributionKind(Enum):
    """Statistical distribution assumed for Monte Carlo sampling."""
    NORMAL = "normal"
    UNIFORM = "uniform"
    TRIANGULAR = "triangular"
    LOGNORMAL = "lognormal"
    BETA = "beta"


class MateKind(Enum):
    """Declared fit between two mating features."""
    CLEARANCE = "clearance"
    TRANSITION = "transition"
    INTERFERENCE = "interference"


class AnalysisMethod(Enum):
    """Stackup analysis method."""
    WORST_CASE = "worst_case"
    RSS = "rss"
    MONTE_CARLO = "monte_carlo"

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self]

    @classmethod
    def parse(cls, text: str) -> AnalysisMethod:
        """Parse a method name, accepting the short aliases used on the CLI."""
        key = text.lower().strip().replace("-", "_")
        if key in _METHOD_ALIASES:
            return _METHOD_ALIASES[key]
        raise ValidationError(f"Unknown analysis method: {text!r}")


_METHOD_LABELS = {
    AnalysisMethod.WORST_CASE: "Worst-Case",
    AnalysisMethod.RSS: "RSS",
    AnalysisMethod.MONTE_CARLO: "Monte Carlo",
}

_METHOD_ALIASES = {
    "wc": AnalysisMethod.WORST_CASE,
    "worst_case": AnalysisMethod.WORST_CASE,
    "rss": AnalysisMethod.RSS,
    "root_sum_square": AnalysisMethod.RSS,
    "mc": AnalysisMethod.MONTE_CARLO,
    "monte_carlo": AnalysisMethod.MONTE_CARLO,
}


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Distribution:
    """A distribution kind plus the shape parameters it needs.

    Only the Beta kind carries parameters; its ``alpha`` and ``beta`` are
    required. Positivity of the shape parameters is checked when sampling.
    """
    kind: DistributionKind = DistributionKind.NORMAL
    alpha: Optional[float] = None
    beta: Optional[float] = None

    def __post_init__(self) -> None:
        if self.kind == DistributionKind.BETA:
            if self.alpha is None or self.beta is None:
                raise ValidationError("Beta distribution requires alpha and beta")
        elif self.alpha is not None or self.beta is not None:
            raise ValidationError(
                f"Shape parameters only apply to beta, not {self.kind.value}"
            )

    @classmethod
    def normal(cls) -> Distribution:
        return cls(DistributionKind.NORMAL)

    @classmethod
    def uniform(cls) -> Distribution:
        return cls(DistributionKind.UNIFORM)

    @classmethod
    def triangular(cls) -> Distribution:
        return cls(DistributionKind.TRIANGULAR)

    @classmethod
    def lognormal(cls) -> Distribution:
        return cls(DistributionKind.LOGNORMAL)

    @classmethod
    def beta_dist(cls, alpha: float, beta: float) -> Distribution:
        return cls(DistributionKind.BETA, alpha=float(alpha), beta=float(beta))

    def __str__(self) -> str:
        if self.kind == DistributionKind.BETA:
            return f"beta({self.alpha:g}, {self.beta:g})"
        return self.kind.value

    def to_dict(self) -> dict:
        d = {"kind": self.kind.value}
        if self.kind == DistributionKind.BETA:
            d["alpha"] = self.alpha
            d["beta"] = self.beta
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Distribution:
        return cls(
            kind=DistributionKind(d.get("kind", "normal")),
            alpha=_opt_float(d.get("alpha")),
            beta=_opt_float(d.get("beta")),
        )


@dataclass(frozen=True)
class Tolerance:
    """Asymmetric tolerance band ``[nominal - minus, nominal + plus]``.

    Attributes:
        plus: Upper deviation (positive value).
        minus: Lower deviation (positive value, will be subtracted).
        distribution: Distribution assumed inside the band.
    """
    plus: float
    minus: float
    distribution: Distribution = field(default_factory=Distribution)

    @property
    def band(self) -> float:
        """Total width of the tolerance band."""
        return self.plus + self.minus

    def to_dict(self) -> dict:
        return {
            "plus": self.plus,
            "minus": self.minus,
            "distribution": self.distribution.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> Tolerance:
        return cls(
            plus=float(d["plus"]),
            minus=float(d["minus"]),
            distribution=Distribution.from_dict(d.get("distribution", {})),
        )


@dataclass(frozen=True)
class SpecLimits:
    """Customer specification limits on an assembled dimension."""
    upper: float
    lower: float

    @property
    def target(self) -> float:
        return (self.upper + self.lower) / 2.0

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class FeatureInfo:
    """Human-readable snapshot of a feature and its component.

    Kept on stackups and mates so the stored records stay readable after
    edits. Never consulted during computation.
    """
    feature_name: str
    feature_description: str
    component_name: str
    component_description: str
    category: FeatureCategory
    nominal: float
    plus: float
    minus: float

    @classmethod
    def from_feature(cls, feature: Feature, component: Component) -> FeatureInfo:
        return cls(
            feature_name=feature.name,
            feature_description=feature.description,
            component_name=component.name,
            component_description=component.description,
            category=feature.category,
            nominal=feature.nominal,
            plus=feature.tolerance.plus,
            minus=feature.tolerance.minus,
        )

    def to_dict(self) -> dict:
        return {
            "feature_name": self.feature_name,
            "feature_description": self.feature_description,
            "component_name": self.component_name,
            "component_description": self.component_description,
            "category": self.category.value,
            "nominal": self.nominal,
            "plus": self.plus,
            "minus": self.minus,
        }

    @classmethod
    def from_dict(cls, d: dict) -> FeatureInfo:
        return cls(
            feature_name=d["feature_name"],
            feature_description=d.get("feature_description", ""),
            component_name=d["component_name"],
            component_description=d.get("component_description", ""),
            category=FeatureCategory(d["category"]),
            nominal=float(d["nominal"]),
            plus=float(d["plus"]),
            minus=float(d["minus"]),
        )


def _opt_info(d: Optional[dict]) -> Optional[FeatureInfo]:
    return None if d is None else FeatureInfo.from_dict(d)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Component:
    """A manufactured part. Features link back to it via ``component_id``."""
    name: str
    description: str = ""
    part_number: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("Component id cannot be empty")
        if not self.name or not self.name.strip():
            raise ValidationError("Component name cannot be empty")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "part_number": self.part_number,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Component:
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description", ""),
            part_number=d.get("part_number"),
        )


@dataclass
class Feature:
    """One controlled dimension of a component.

    Attributes:
        name: Descriptive name for this feature.
        component_id: Identifier of the owning component.
        kind: What the dimension measures (length, diameter, ...).
        category: EXTERNAL or INTERNAL; decides MMC/LMC polarity.
        nominal: Nominal dimension value.
        tolerance: Asymmetric tolerance band and its distribution.
        description: Optional longer description.
        drawing_location: Optional drawing zone or balloon reference.
    """
    name: str
    component_id: str
    kind: FeatureKind
    category: FeatureCategory
    nominal: float
    tolerance: Tolerance
    description: str = ""
    drawing_location: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("Feature id cannot be empty")
        if not self.name or not self.name.strip():
            raise ValidationError("Feature name cannot be empty")
        if not self.component_id:
            raise ValidationError(f"Feature '{self.name}' has no component")
        if not math.isfinite(self.nominal):
            raise ValidationError(f"Feature '{self.name}' nominal must be finite")
        plus, minus = self.tolerance.plus, self.tolerance.minus
        if not (math.isfinite(plus) and math.isfinite(minus)):
            raise ValidationError(f"Feature '{self.name}' tolerance must be finite")
        if plus < 0.0 or minus < 0.0:
            raise ValidationError("Tolerance values cannot be negative")
        if plus + minus <= 0.0:
            raise ValidationError(
                f"Feature '{self.name}' needs a non-zero tolerance band"
            )

    @property
    def distribution(self) -> Distribution:
        return self.tolerance.distribution

    @property
    def lower_limit(self) -> float:
        return self.nominal - self.tolerance.minus

    @property
    def upper_limit(self) -> float:
        return self.nominal + self.tolerance.plus

    @property
    def mmc(self) -> float:
        """Maximum material condition: largest external, smallest internal."""
        if self.category == FeatureCategory.EXTERNAL:
            return self.upper_limit
        return self.lower_limit

    @property
    def lmc(self) -> float:
        """Least material condition: smallest external, largest internal."""
        if self.category == FeatureCategory.EXTERNAL:
            return self.lower_limit
        return self.upper_limit

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "component_id": self.component_id,
            "kind": self.kind.value,
            "category": self.category.value,
            "nominal": self.nominal,
            "tolerance": self.tolerance.to_dict(),
            "drawing_location": self.drawing_location,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Feature:
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description", ""),
            component_id=d["component_id"],
            kind=FeatureKind(d.get("kind", "length")),
            category=FeatureCategory(d.get("category", "external")),
            nominal=float(d["nominal"]),
            tolerance=Tolerance.from_dict(d["tolerance"]),
            drawing_location=d.get("drawing_location"),
        )


@dataclass(frozen=True)
class FitValidation:
    """Outcome of checking a mate's fit against its declared kind.

    Attributes:
        valid: Whether the fit satisfies the declared mate kind.
        nominal_fit: Internal nominal minus external nominal.
        min_fit: Tightest fit (both features at MMC).
        max_fit: Loosest fit (both features at LMC).
        message: Why the fit is invalid, if it is.
        warning: Non-fatal diagnostic, e.g. both features share a category.
    """
    valid: bool
    nominal_fit: float
    min_fit: float
    max_fit: float
    message: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "nominal_fit": self.nominal_fit,
            "min_fit": self.min_fit,
            "max_fit": self.max_fit,
            "message": self.message,
            "warning": self.warning,
        }

    @classmethod
    def from_dict(cls, d: dict) -> FitValidation:
        return cls(
            valid=bool(d["valid"]),
            nominal_fit=float(d["nominal_fit"]),
            min_fit=float(d["min_fit"]),
            max_fit=float(d["max_fit"]),
            message=d.get("message"),
            warning=d.get("warning"),
        )


@dataclass
class Mate:
    """A declared fit between two distinct features.

    ``offset`` is the fit reported for pairs that are not diameter to
    diameter; those mates are declarative only.
    """
    name: str
    kind: MateKind
    primary_feature_id: str
    secondary_feature_id: str
    description: str = ""
    offset: float = 0.0
    primary_info: Optional[FeatureInfo] = None
    secondary_info: Optional[FeatureInfo] = None
    fit: Optional[FitValidation] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.validate()

    @property
    def feature_ids(self) -> tuple[str, str]:
        return (self.primary_feature_id, self.secondary_feature_id)

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("Mate id cannot be empty")
        if not self.name or not self.name.strip():
            raise ValidationError("Mate name cannot be empty")
        if not self.primary_feature_id or not self.secondary_feature_id:
            raise ValidationError(f"Mate '{self.name}' needs two features")
        if self.primary_feature_id == self.secondary_feature_id:
            raise ValidationError("Primary and secondary features cannot be the same")
        if not math.isfinite(self.offset):
            raise ValidationError(f"Mate '{self.name}' offset must be finite")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind.value,
            "primary_feature_id": self.primary_feature_id,
            "secondary_feature_id": self.secondary_feature_id,
            "offset": self.offset,
            "primary_info": self.primary_info.to_dict() if self.primary_info else None,
            "secondary_info": self.secondary_info.to_dict() if self.secondary_info else None,
            "fit": self.fit.to_dict() if self.fit else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Mate:
        fit = d.get("fit")
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description", ""),
            kind=MateKind(d.get("kind", "clearance")),
            primary_feature_id=d["primary_feature_id"],
            secondary_feature_id=d["secondary_feature_id"],
            offset=float(d.get("offset", 0.0)),
            primary_info=_opt_info(d.get("primary_info")),
            secondary_info=_opt_info(d.get("secondary_info")),
            fit=FitValidation.from_dict(fit) if fit else None,
        )


@dataclass
class FeatureContribution:
    """One signed link in a stackup's dimension chain.

    Attributes:
        feature_id: Identifier of the contributing feature.
        direction: Signed multiplier, usually +1 or -1.
        half_count: Contribute only half the feature's extent.
        feature_info: Readable snapshot of the feature, refreshed on save.
    """
    feature_id: str
    direction: float = 1.0
    half_count: bool = False
    feature_info: Optional[FeatureInfo] = None

    @property
    def multiplier(self) -> float:
        """Effective multiplier ``direction * (0.5 if half_count else 1)``."""
        return self.direction * (0.5 if self.half_count else 1.0)

    def validate(self) -> None:
        if not self.feature_id:
            raise ValidationError("Contribution feature id cannot be empty")
        if not math.isfinite(self.direction):
            raise ValidationError("Contribution direction must be finite")

    def to_dict(self) -> dict:
        return {
            "feature_id": self.feature_id,
            "direction": self.direction,
            "half_count": self.half_count,
            "feature_info": self.feature_info.to_dict() if self.feature_info else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> FeatureContribution:
        return cls(
            feature_id=d["feature_id"],
            direction=float(d.get("direction", 1.0)),
            half_count=bool(d.get("half_count", False)),
            feature_info=_opt_info(d.get("feature_info")),
        )


@dataclass
class Stackup:
    """An ordered dimension chain with optional specification limits.

    The order of ``contributions`` is semantic and is never sorted.
    """
    name: str
    contributions: list[FeatureContribution] = field(default_factory=list)
    description: str = ""
    upper_spec_limit: Optional[float] = None
    lower_spec_limit: Optional[float] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("Stackup id cannot be empty")
        if not self.name or not self.name.strip():
            raise ValidationError("Stackup name cannot be empty")
        if not self.contributions:
            raise ValidationError(
                "Stackup must have at least one dimension in the chain"
            )
        for c in self.contributions:
            c.validate()
        usl, lsl = self.upper_spec_limit, self.lower_spec_limit
        if usl is not None and lsl is not None and not lsl < usl:
            raise ValidationError(
                f"Lower spec limit {lsl} must be below upper spec limit {usl}"
            )

    @property
    def feature_ids(self) -> list[str]:
        return [c.feature_id for c in self.contributions]

    @property
    def target_dimension(self) -> Optional[float]:
        """Midpoint of the spec limits, or None when either is missing."""
        limits = self.spec_limits()
        return limits.target if limits else None

    def spec_limits(self) -> Optional[SpecLimits]:
        if self.upper_spec_limit is None or self.lower_spec_limit is None:
            return None
        return SpecLimits(upper=self.upper_spec_limit, lower=self.lower_spec_limit)

    def set_spec_limits(self, upper: Optional[float], lower: Optional[float]) -> None:
        """Set both specification limits; leaves the stackup unchanged on error."""
        previous = (self.upper_spec_limit, self.lower_spec_limit)
        self.upper_spec_limit, self.lower_spec_limit = upper, lower
        try:
            self.validate()
        except ValidationError:
            self.upper_spec_limit, self.lower_spec_limit = previous
            raise

    def add(self, feature_id: str, direction: float = 1.0, half_count: bool = False) -> None:
        """Append a contribution to the chain."""
        contribution = FeatureContribution(feature_id, direction, half_count)
        contribution.validate()
        self.contributions.append(contribution)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "upper_spec_limit": self.upper_spec_limit,
            "lower_spec_limit": self.lower_spec_limit,
            "contributions": [c.to_dict() for c in self.contributions],
        }

    @classmethod
    def from_dict(cls, d: dict) -> Stackup:
        return cls(
            id=d["id"],
            name=d["name"],
            description=d.get("description", ""),
            upper_spec_limit=_opt_float(d.get("upper_spec_limit")),
            lower_spec_limit=_opt_float(d.get("lower_spec_limit")),
            contributions=[FeatureContribution.from_dict(c) for c in d["contributions"]],
        )


# ---------------------------------------------------------------------------
# Analysis configuration and results
# ---------------------------------------------------------------------------

@dataclass
class AnalysisConfig:
    """Settings for one analysis run.

    Attributes:
        method: Worst-case, RSS, or Monte Carlo.
        simulations: Number of Monte Carlo samples.
        confidence_level: Coverage of the user band, in (0, 1).
        use_three_sigma: Report the 3-sigma band as the primary Monte Carlo
            band; when False the user-confidence band is primary.
        save_samples: Persist Monte Carlo samples through a sample sink.
    """
    method: AnalysisMethod = AnalysisMethod.MONTE_CARLO
    simulations: int = 10_000
    confidence_level: float = 0.95
    use_three_sigma: bool = True
    save_samples: bool = False

    def validate(self) -> None:
        if not isinstance(self.method, AnalysisMethod):
            raise InvalidConfigError(f"Unknown analysis method: {self.method!r}")
        if (isinstance(self.simulations, bool)
                or not isinstance(self.simulations, numbers.Real)
                or not math.isfinite(self.simulations)
                or int(self.simulations) != self.simulations):
            raise InvalidConfigError(
                f"simulations must be an integer, got {self.simulations!r}"
            )
        if self.simulations <= 0:
            raise InvalidConfigError(
                f"simulations must be positive, got {self.simulations}"
            )
        if not 0.0 < self.confidence_level < 1.0:
            raise InvalidConfigError(
                f"confidence_level must lie in (0, 1), got {self.confidence_level}"
            )

    def to_dict(self) -> dict:
        return {
            "method": self.method.value,
            "simulations": self.simulations,
            "confidence_level": self.confidence_level,
            "use_three_sigma": self.use_three_sigma,
            "save_samples": self.save_samples,
        }

    @classmethod
    def from_dict(cls, d: dict) -> AnalysisConfig:
        return cls(
            method=AnalysisMethod(d.get("method", "monte_carlo")),
            simulations=int(d.get("simulations", 10_000)),
            confidence_level=float(d.get("confidence_level", 0.95)),
            use_three_sigma=bool(d.get("use_three_sigma", True)),
            save_samples=bool(d.get("save_samples", False)),
        )


@dataclass(frozen=True)
class QuartileData:
    """Order-statistic summary of a sorted Monte Carlo sample."""
    minimum: float
    p5: float
    q1: float
    median: float
    q3: float
    p95: float
    maximum: float
    iqr: float

    def to_dict(self) -> dict:
        return {
            "minimum": self.minimum,
            "p5": self.p5,
            "q1": self.q1,
            "median": self.median,
            "q3": self.q3,
            "p95": self.p95,
            "maximum": self.maximum,
            "iqr": self.iqr,
        }

    @classmethod
    def from_dict(cls, d: dict) -> QuartileData:
        return cls(**{k: float(d[k]) for k in
                      ("minimum", "p5", "q1", "median", "q3", "p95", "maximum", "iqr")})


def _opt_tol(d: Optional[dict]) -> Optional[Tolerance]:
    return None if d is None else Tolerance.from_dict(d)


@dataclass
class AnalysisResult:
    """Results from one stackup analysis.

    Capability fields (``cp``, ``cpk``, ``sigma_level``,
    ``yield_percentage``) are None when they cannot be computed, e.g. the
    stackup has no specification limits.

    Attributes:
        method: Analysis method used.
        nominal_dimension: Nominal (or Monte Carlo mean) assembled dimension.
        predicted_tolerance: The primary reported band.
        three_sigma_tolerance: 99.73% band (RSS and Monte Carlo).
        user_confidence_tolerance: Band at the configured confidence level
            (Monte Carlo only).
        std_dev: Standard deviation of the assembled dimension (statistical
            methods only).
        quartiles: Order-statistic summary (Monte Carlo only).
        sample_file: Opaque reference to persisted samples, if any.
        warnings: Non-fatal diagnostics raised during the run.
        samples: Sorted Monte Carlo samples; kept in memory only.
    """
    method: AnalysisMethod
    nominal_dimension: float
    predicted_tolerance: Tolerance
    three_sigma_tolerance: Optional[Tolerance] = None
    user_confidence_tolerance: Optional[Tolerance] = None
    cp: Optional[float] = None
    cpk: Optional[float] = None
    sigma_level: Optional[float] = None
    yield_percentage: Optional[float] = None
    std_dev: Optional[float] = None
    quartiles: Optional[QuartileData] = None
    sample_file: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    samples: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    @property
    def upper_bound(self) -> float:
        return self.nominal_dimension + self.predicted_tolerance.plus

    @property
    def lower_bound(self) -> float:
        return self.nominal_dimension - self.predicted_tolerance.minus

    def summary(self) -> str:
        tol = self.predicted_tolerance
        lines = [
            f"=== {self.method.label} Analysis ===",
            f"  Nominal:          {self.nominal_dimension:+.6f}",
            f"  Range:            [{self.lower_bound:+.6f}, {self.upper_bound:+.6f}]",
            f"  Upper tolerance:  +{tol.plus:.6f}",
            f"  Lower tolerance:  -{tol.minus:.6f}",
        ]
        if self.std_dev is not None:
            lines.append(f"  Std dev:          {self.std_dev:.6f}")
        if self.user_confidence_tolerance is not None:
            u = self.user_confidence_tolerance
            lines.append(f"  Confidence band:  +{u.plus:.6f} / -{u.minus:.6f}")
        lines.append(f"  Cp:               {_fmt_opt(self.cp, '.4f')}")
        lines.append(f"  Cpk:              {_fmt_opt(self.cpk, '.4f')}")
        lines.append(f"  Sigma level:      {_fmt_opt(self.sigma_level, '.2f')}")
        if self.yield_percentage is None:
            lines.append("  Yield:            n/a")
        else:
            lines.append(f"  Yield:            {self.yield_percentage:.4f}%")
        if self.quartiles is not None:
            q = self.quartiles
            lines.append(
                f"  Quartiles:        min={q.minimum:.6f} q1={q.q1:.6f} "
                f"median={q.median:.6f} q3={q.q3:.6f} max={q.maximum:.6f}"
            )
        if self.sample_file:
            lines.append(f"  Samples:          {self.sample_file}")
        for w in self.warnings:
            lines.append(f"  Warning: {w}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "method": self.method.value,
            "nominal_dimension": self.nominal_dimension,
            "predicted_tolerance": self.predicted_tolerance.to_dict(),
            "three_sigma_tolerance": (self.three_sigma_tolerance.to_dict()
                                      if self.three_sigma_tolerance else None),
            "user_confidence_tolerance": (self.user_confidence_tolerance.to_dict()
                                          if self.user_confidence_tolerance else None),
            "cp": self.cp,
            "cpk": self.cpk,
            "sigma_level": self.sigma_level,
            "yield_percentage": self.yield_percentage,
            "std_dev": self.std_dev,
            "quartiles": self.quartiles.to_dict() if self.quartiles else None,
            "sample_file": self.sample_file,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, d: dict) -> AnalysisResult:
        quartiles = d.get("quartiles")
        return cls(
            method=AnalysisMethod(d["method"]),
            nominal_dimension=float(d["nominal_dimension"]),
            predicted_tolerance=Tolerance.from_dict(d["predicted_tolerance"]),
            three_sigma_tolerance=_opt_tol(d.get("three_sigma_tolerance")),
            user_confidence_tolerance=_opt_tol(d.get("user_confidence_tolerance")),
            cp=_opt_float(d.get("cp")),
            cpk=_opt_float(d.get("cpk")),
            sigma_level=_opt_float(d.get("sigma_level")),
            yield_percentage=_opt_float(d.get("yield_percentage")),
            std_dev=_opt_float(d.get("std_dev")),
            quartiles=QuartileData.from_dict(quartiles) if quartiles else None,
            sample_file=d.get("sample_file"),
            warnings=list(d.get("warnings", [])),
        )


def _fmt_opt(value: Optional[float], spec: str) -> str:
    return "n/a" if value is None else format(value, spec)


@dataclass
class StackupAnalysis:
    """Record of one analysis run.

    Carries its own copy of the contributions, so it stays meaningful after
    the stackup it came from is edited or deleted.
    """
    stackup_id: str
    stackup_name: str
    contributions: list[FeatureContribution]
    config: AnalysisConfig
    result: AnalysisResult
    target_dimension: Optional[float] = None
    created: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.contributions = copy.deepcopy(self.contributions)
        self.validate()

    @property
    def name(self) -> str:
        return self.stackup_name

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("Analysis id cannot be empty")
        if not self.stackup_id:
            raise ValidationError("Analysis must reference a stackup")
        if not self.contributions:
            raise ValidationError("Analysis must carry its contributions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stackup_id": self.stackup_id,
            "stackup_name": self.stackup_name,
            "target_dimension": self.target_dimension,
            "created": self.created.isoformat(),
            "config": self.config.to_dict(),
            "contributions": [c.to_dict() for c in self.contributions],
            "result": self.result.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> StackupAnalysis:
        return cls(
            id=d["id"],
            stackup_id=d["stackup_id"],
            stackup_name=d.get("stackup_name", ""),
            target_dimension=_opt_float(d.get("target_dimension")),
            created=datetime.fromisoformat(d["created"]),
            config=AnalysisConfig.from_dict(d["config"]),
            contributions=[FeatureContribution.from_dict(c) for c in d["contributions"]],
            result=AnalysisResult.from_dict(d["result"]),
        )
