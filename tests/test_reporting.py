"""Tests for report generation."""

import numpy as np
import pytest

from tolerance_engine.analysis import analyze_stackup
from tolerance_engine.errors import PersistenceError
from tolerance_engine.models import (
    AnalysisConfig, AnalysisMethod, Feature, FeatureCategory,
    FeatureContribution, FeatureKind, FitValidation, Stackup, Tolerance,
)
from tolerance_engine.reporting import ReportConfig, generate_text_report, save_report
from tolerance_engine.statistics import sensitivity_analysis


def _stackup():
    a = Feature("Block A", "c", FeatureKind.LENGTH, FeatureCategory.EXTERNAL, 10.0, Tolerance(0.1, 0.1))
    b = Feature("Block B", "c", FeatureKind.LENGTH, FeatureCategory.EXTERNAL, 20.0, Tolerance(0.2, 0.2))
    stackup = Stackup("Two-length", [FeatureContribution(a.id), FeatureContribution(b.id)],
                      upper_spec_limit=30.4, lower_spec_limit=29.6)
    return stackup, [a, b]


def _analyses():
    stackup, features = _stackup()
    rng = np.random.default_rng(0)
    return [
        analyze_stackup(stackup, features, AnalysisConfig(method=AnalysisMethod.WORST_CASE)),
        analyze_stackup(stackup, features, AnalysisConfig(simulations=2_000), rng=rng),
    ]


class TestTextReport:
    def test_basic(self):
        config = ReportConfig(title="Test Report", project="TestProject", author="QA",
                              date="2024-01-01")
        text = generate_text_report(config, _analyses())
        assert "Test Report" in text
        assert "Project:  TestProject" in text
        assert "Date:     2024-01-01" in text
        assert "Worst-Case" in text
        assert "Monte Carlo" in text
        assert "Stackup: Two-length" in text
        assert text.rstrip().endswith("END OF REPORT")

    def test_quartiles_toggle(self):
        analyses = _analyses()
        assert "Percentiles:" in generate_text_report(ReportConfig(), analyses)
        off = generate_text_report(ReportConfig(include_quartiles=False), analyses)
        assert "Percentiles:" not in off

    def test_sensitivity_section(self):
        stackup, features = _stackup()
        sens = [sensitivity_analysis(stackup, features)]
        text = generate_text_report(ReportConfig(), [], sensitivity=sens)
        assert "Sensitivity: Two-length" in text
        assert "Block B" in text
        off = generate_text_report(ReportConfig(include_sensitivity=False), [], sensitivity=sens)
        assert "Sensitivity" not in off

    def test_fits_section(self):
        fits = {
            "Pin in hole": FitValidation(True, 0.04, 0.04, 0.08),
            "Press fit": FitValidation(False, 0.01, -0.01, 0.01,
                                       message="Interference fit must have negative maximum clearance"),
        }
        text = generate_text_report(ReportConfig(), [], fits=fits)
        assert "Pin in hole" in text
        assert "[INVALID]" in text
        assert "negative maximum clearance" in text

    def test_chain_uses_snapshot_names(self):
        analyses = _analyses()
        text = generate_text_report(ReportConfig(), analyses)
        # Without snapshots the chain falls back to feature ids
        assert analyses[0].contributions[0].feature_id in text


class TestSaveReport:
    def test_writes_file(self, tmp_path):
        path = save_report("hello\n", tmp_path / "out" / "report.txt")
        assert path.read_text() == "hello\n"

    def test_unwritable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(PersistenceError):
            save_report("x", blocker / "report.txt")
