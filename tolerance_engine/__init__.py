"""Stackup Tolerance Analysis Engine.

Supports Worst-Case, RSS, and Monte Carlo analysis of one-dimensional
stackups built from component features, plus:
- Clearance / transition / interference fit evaluation for mated diameters
- Normal, uniform, triangular, lognormal and beta feature distributions
- Process capability metrics (Cp/Cpk/Pp/Ppk/Cpm/PPM) with quality rating
- Variance-share sensitivity ranking
- JSON project repository with referential integrity
- CSV sample export, text reports and matplotlib charts
"""

from tolerance_engine.errors import (
    ToleranceEngineError, ValidationError, NotFoundError, IntegrityError,
    IllFormedDistributionError, InvalidConfigError, UnresolvedFeatureError,
    PersistenceError,
)
from tolerance_engine.models import (
    AnalysisConfig, AnalysisMethod, AnalysisResult, Component, Distribution,
    DistributionKind, Feature, FeatureCategory, FeatureContribution,
    FeatureInfo, FeatureKind, FitValidation, Mate, MateKind, QuartileData,
    SpecLimits, Stackup, StackupAnalysis, Tolerance,
)
from tolerance_engine.distributions import check_distribution, feature_std_dev, sample_feature
from tolerance_engine.fits import classify_fit, lmc_fit, mmc_fit, nominal_fit, validate_fit
from tolerance_engine.analysis import (
    analyze_stack, analyze_stackup, monte_carlo, resolve_features, rss,
    worst_case,
)
from tolerance_engine.statistics import (
    ProcessCapability, QualityRating, SensitivityAnalysis,
    compute_process_capability, critical_features, sensitivity_analysis,
)
from tolerance_engine.repository import EntityStore, ToleranceRepository
from tolerance_engine.sink import CsvSampleSink, SampleSink, read_samples
from tolerance_engine.reporting import ReportConfig, generate_text_report, save_report

__all__ = [
    # Errors
    "ToleranceEngineError", "ValidationError", "NotFoundError", "IntegrityError",
    "IllFormedDistributionError", "InvalidConfigError", "UnresolvedFeatureError",
    "PersistenceError",
    # Core models
    "AnalysisConfig", "AnalysisMethod", "AnalysisResult", "Component",
    "Distribution", "DistributionKind", "Feature", "FeatureCategory",
    "FeatureContribution", "FeatureInfo", "FeatureKind", "FitValidation",
    "Mate", "MateKind", "QuartileData", "SpecLimits", "Stackup",
    "StackupAnalysis", "Tolerance",
    # Sampling
    "check_distribution", "feature_std_dev", "sample_feature",
    # Fits
    "classify_fit", "lmc_fit", "mmc_fit", "nominal_fit", "validate_fit",
    # Analysis
    "analyze_stack", "analyze_stackup", "monte_carlo", "resolve_features",
    "rss", "worst_case",
    # Statistics
    "ProcessCapability", "QualityRating", "SensitivityAnalysis",
    "compute_process_capability", "critical_features", "sensitivity_analysis",
    # Persistence
    "EntityStore", "ToleranceRepository", "CsvSampleSink", "SampleSink",
    "read_samples",
    # Reporting
    "ReportConfig", "generate_text_report", "save_report",
]
__version__ = "0.1.0"
