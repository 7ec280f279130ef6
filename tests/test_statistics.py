"""Tests for process capability metrics and statistical utilities."""

import math

import numpy as np
import pytest

from tolerance_engine.errors import UnresolvedFeatureError, ValidationError
from tolerance_engine.models import (
    Distribution, Feature, FeatureCategory, FeatureContribution, FeatureKind,
    SpecLimits, Stackup, Tolerance,
)
from tolerance_engine.statistics import (
    QualityRating, capability_indices, compute_process_capability,
    confidence_band, critical_features, empirical_yield, normal_yield,
    quartile_summary, sensitivity_analysis, three_sigma_band,
)


class TestCapabilityIndices:
    def test_centered(self):
        cp, cpk, sigma = capability_indices(0.0, 0.1, SpecLimits(0.4, -0.4))
        assert cp == pytest.approx(0.8 / 0.6)
        assert cpk == pytest.approx(cp)
        assert sigma == pytest.approx(4.0)

    def test_off_center(self):
        cp, cpk, _ = capability_indices(0.1, 0.1, SpecLimits(0.4, -0.4))
        assert cpk == pytest.approx(1.0)
        assert cp > cpk

    def test_undefined(self):
        assert capability_indices(0.0, 0.1, None) == (None, None, None)
        assert capability_indices(0.0, 0.0, SpecLimits(1.0, -1.0)) == (None, None, None)


class TestYield:
    def test_normal_yield_three_sigma(self):
        assert normal_yield(0.0, 1.0, -3.0, 3.0) == pytest.approx(99.73, abs=0.01)

    def test_normal_yield_point_mass(self):
        assert normal_yield(5.0, 0.0, 4.0, 6.0) == 100.0
        assert normal_yield(7.0, 0.0, 4.0, 6.0) == 0.0

    def test_empirical_yield_inclusive(self):
        s = np.array([1.0, 2.0, 3.0, 4.0])
        assert empirical_yield(s, 2.0, 3.0) == pytest.approx(50.0)
        assert empirical_yield(s, 0.0, 10.0) == pytest.approx(100.0)

    def test_empirical_yield_empty(self):
        with pytest.raises(ValidationError):
            empirical_yield(np.array([]), 0.0, 1.0)


class TestOrderStatistics:
    def test_quartiles_floor_indices(self):
        s = np.arange(100, dtype=float)
        q = quartile_summary(s)
        assert q.minimum == 0.0 and q.maximum == 99.0
        assert q.p5 == 5.0
        assert q.q1 == 25.0
        assert q.median == 50.0
        assert q.q3 == 75.0
        assert q.p95 == 95.0
        assert q.iqr == 50.0

    def test_single_sample(self):
        q = quartile_summary(np.array([3.5]))
        assert q.minimum == q.median == q.maximum == 3.5
        assert q.iqr == 0.0

    def test_three_sigma_band(self):
        s = np.linspace(-1.0, 1.0, 100_001)
        band = three_sigma_band(s, 0.0)
        assert band.plus == pytest.approx(0.9973, abs=1e-4)
        assert band.minus == pytest.approx(0.9973, abs=1e-4)

    def test_confidence_band(self):
        s = np.arange(1000, dtype=float)
        band = confidence_band(s, 500.0, 0.5)
        # indices floor(0.25 * 1000) = 250 and floor(0.75 * 1000) = 750
        assert band.minus == 250.0
        assert band.plus == 250.0

    def test_confidence_band_floors_inexact_tail(self):
        s = np.arange(1000, dtype=float)
        band = confidence_band(s, 500.0, 0.9)
        # 1 - 0.9 is slightly below 0.1, so the lower index floors to 49
        assert band.minus == 451.0
        assert band.plus == 450.0


class TestQualityRating:
    @pytest.mark.parametrize("value, rating", [
        (2.0, QualityRating.EXCELLENT),
        (1.67, QualityRating.EXCELLENT),
        (1.5, QualityRating.GOOD),
        (1.0, QualityRating.ADEQUATE),
        (0.7, QualityRating.MARGINAL),
        (0.5, QualityRating.POOR),
        (None, QualityRating.POOR),
    ])
    def test_thresholds(self, value, rating):
        assert QualityRating.from_index(value) == rating


class TestProcessCapability:
    def test_centered_normal(self):
        """Perfect process centered at target."""
        rng = np.random.default_rng(42)
        samples = rng.normal(loc=50.0, scale=1.0, size=10000)
        pc = compute_process_capability(samples, usl=53.0, lsl=47.0)
        assert pc.cp == pytest.approx(1.0, rel=0.1)
        assert pc.cpk == pytest.approx(1.0, rel=0.1)
        assert pc.pp == pc.cp
        assert pc.ppk == pc.cpk
        assert pc.yield_percent > 99.0
        assert pc.target == pytest.approx(50.0)

    def test_shifted_process(self):
        """Off-center process: Cpk < Cp."""
        rng = np.random.default_rng(42)
        samples = rng.normal(loc=51.0, scale=1.0, size=10000)
        pc = compute_process_capability(samples, usl=53.0, lsl=47.0)
        assert pc.cp > pc.cpk
        assert pc.cpk == pytest.approx(0.67, rel=0.15)
        assert any("centered" in r for r in pc.recommendations)

    def test_tight_process(self):
        rng = np.random.default_rng(42)
        samples = rng.normal(loc=50.0, scale=0.3, size=10000)
        pc = compute_process_capability(samples, usl=53.0, lsl=47.0)
        assert pc.cp > 2.0
        assert pc.rating == QualityRating.EXCELLENT

    def test_ppm_out_of_spec(self):
        rng = np.random.default_rng(42)
        samples = rng.normal(loc=50.0, scale=2.0, size=100000)
        pc = compute_process_capability(samples, usl=53.0, lsl=47.0)
        assert pc.ppm_total > 0
        assert pc.ppm_total == pytest.approx(pc.ppm_upper + pc.ppm_lower)
        assert pc.yield_percent == pytest.approx(100.0 - pc.ppm_total / 1e4)
        assert pc.rating == QualityRating.POOR

    def test_target_override(self):
        rng = np.random.default_rng(42)
        samples = rng.normal(loc=50.0, scale=1.0, size=10000)
        pc_default = compute_process_capability(samples, usl=53.0, lsl=47.0)
        pc_shifted = compute_process_capability(samples, usl=53.0, lsl=47.0, target=52.0)
        assert pc_shifted.cpm < pc_default.cpm

    def test_constant_samples(self):
        pc = compute_process_capability(np.full(10, 50.0), usl=53.0, lsl=47.0)
        assert pc.cp is None and pc.cpk is None
        assert pc.yield_percent == 100.0

    def test_few_samples(self):
        with pytest.raises(ValueError, match="at least 2"):
            compute_process_capability(np.array([1.0]), usl=2.0, lsl=0.0)

    def test_summary(self):
        rng = np.random.default_rng(42)
        samples = rng.normal(loc=50.0, scale=1.0, size=1000)
        s = compute_process_capability(samples, usl=53.0, lsl=47.0).summary()
        assert "Cp:" in s
        assert "Cpk:" in s
        assert "Rating:" in s


def _length(name, tol, distribution=None) -> Feature:
    return Feature(name, "c", FeatureKind.LENGTH, FeatureCategory.EXTERNAL, 10.0,
                   Tolerance(tol, tol, distribution or Distribution.normal()))


class TestSensitivity:
    def test_two_equal(self):
        a, b = _length("A", 0.1), _length("B", 0.1)
        stackup = Stackup("S", [FeatureContribution(a.id), FeatureContribution(b.id, -1.0)])
        sens = sensitivity_analysis(stackup, [a, b])
        assert [c.percentage for c in sens.contributions] == pytest.approx([50.0, 50.0])
        assert sens.total_std_dev == pytest.approx(math.sqrt(2) * 0.2 / 6)

    def test_dominant_ranked_first(self):
        a, b = _length("A", 0.01), _length("B", 0.5)
        stackup = Stackup("S", [FeatureContribution(a.id), FeatureContribution(b.id)])
        sens = sensitivity_analysis(stackup, [a, b])
        top = sens.contributions[0]
        assert top.feature_name == "B"
        assert top.rank == 1
        assert top.percentage > 99.0
        assert top.impact == "High"

    def test_multiplier_weighted(self):
        a, b = _length("A", 0.1), _length("B", 0.1)
        stackup = Stackup("S", [FeatureContribution(a.id, 2.0), FeatureContribution(b.id)])
        sens = sensitivity_analysis(stackup, [a, b])
        pct = {c.feature_name: c.percentage for c in sens.contributions}
        assert pct["A"] == pytest.approx(80.0)
        assert pct["B"] == pytest.approx(20.0)

    def test_uses_distribution_spread(self):
        a = _length("A", 0.1, Distribution.uniform())
        b = _length("B", 0.1)
        stackup = Stackup("S", [FeatureContribution(a.id), FeatureContribution(b.id)])
        pct = {c.feature_name: c.percentage
               for c in sensitivity_analysis(stackup, [a, b]).contributions}
        assert pct["A"] > pct["B"]

    def test_critical_features(self):
        a, b, c = _length("A", 0.3), _length("B", 0.1), _length("C", 0.05)
        stackup = Stackup("S", [FeatureContribution(f.id) for f in (a, b, c)])
        sens = sensitivity_analysis(stackup, [a, b, c])
        assert [f.feature_name for f in critical_features(sens)] == ["A"]
        assert len(critical_features(sens, threshold=0.0)) == 3

    def test_mismatch(self):
        a = _length("A", 0.1)
        stackup = Stackup("S", [FeatureContribution(a.id), FeatureContribution("other")])
        with pytest.raises(UnresolvedFeatureError):
            sensitivity_analysis(stackup, [a])

    def test_summary(self):
        a = _length("Housing bore", 0.1)
        stackup = Stackup("Gap", [FeatureContribution(a.id)])
        text = sensitivity_analysis(stackup, [a]).summary()
        assert "Gap" in text
        assert "Housing bore" in text
