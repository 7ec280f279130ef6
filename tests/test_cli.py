"""Tests for the example project and the command-line interface."""

import matplotlib

matplotlib.use("Agg")

import pytest

from tolerance_engine.cli import main
from tolerance_engine.examples import create_example_repository
from tolerance_engine.models import AnalysisMethod
from tolerance_engine.repository import ToleranceRepository


class TestExampleRepository:
    def test_contents(self, tmp_path):
        repo = create_example_repository(tmp_path)
        assert len(repo.stackups) == 2
        assert len(repo.mates) == 1
        assert (tmp_path / "stackups.json").exists()

    def test_pin_hole_fit(self, tmp_path):
        repo = create_example_repository(tmp_path, save=False)
        mate = repo.mates.all()[0]
        assert mate.fit.valid
        assert mate.fit.min_fit == pytest.approx(0.04)
        assert mate.fit.max_fit == pytest.approx(0.08)

    def test_stackups_analyze(self, tmp_path):
        repo = create_example_repository(tmp_path, save=False)
        chain = repo.find_stackup("Two-length chain")
        wc = repo.run_analysis(chain.id, _config(AnalysisMethod.WORST_CASE)).result
        assert wc.nominal_dimension == pytest.approx(30.0)
        assert wc.predicted_tolerance.plus == pytest.approx(0.3)

        gap = repo.find_stackup("Shaft-housing gap")
        wc = repo.run_analysis(gap.id, _config(AnalysisMethod.WORST_CASE)).result
        assert wc.nominal_dimension == pytest.approx(0.7)
        assert wc.predicted_tolerance.plus == pytest.approx(0.225)

    def test_saved_project_reloads(self, tmp_path):
        repo = create_example_repository(tmp_path)
        assert ToleranceRepository.load(tmp_path) == repo


def _config(method):
    from tolerance_engine.models import AnalysisConfig
    return AnalysisConfig(method=method)


class TestCLI:
    def test_no_command(self, capsys):
        assert main([]) == 0
        assert "tolstack" in capsys.readouterr().out

    def test_example_and_list(self, tmp_path, capsys):
        root = str(tmp_path / "proj")
        assert main(["-r", root, "example"]) == 0
        assert main(["-r", root, "list", "stackups"]) == 0
        out = capsys.readouterr().out
        assert "Two-length chain" in out
        assert "Shaft-housing gap" in out

    def test_analyze_records(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "analyze", "Two-length chain", "-m", "wc,rss,mc",
                     "-n", "2000", "--seed", "1", "--capability"]) == 0
        out = capsys.readouterr().out
        assert "Worst-Case Analysis" in out
        assert "RSS Analysis" in out
        assert "Process Capability" in out
        assert len(ToleranceRepository.load(root).analyses) == 3

    def test_analyze_no_record(self, tmp_path):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "analyze", "Two-length chain", "-m", "rss", "--no-record"]) == 0
        assert len(ToleranceRepository.load(root).analyses) == 0

    def test_analyze_save_samples_and_plots(self, tmp_path):
        root = tmp_path / "proj"
        main(["-r", str(root), "example"])
        plot = tmp_path / "out.png"
        assert main(["-r", str(root), "analyze", "Shaft-housing gap", "-n", "500",
                     "--save-samples", "--save-plots", str(plot)]) == 0
        assert plot.exists()
        assert (tmp_path / "out_waterfall.png").exists()
        assert len(list((root / "simulations").glob("*.csv"))) == 1

    def test_unknown_stackup_fails_cleanly(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        before = (tmp_path / "analyses.json").read_text()
        assert main(["-r", root, "analyze", "Nope"]) == 1
        err = capsys.readouterr().err
        assert err.startswith("error: ")
        assert len(err.strip().splitlines()) == 1
        assert (tmp_path / "analyses.json").read_text() == before

    def test_bad_method_fails_cleanly(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "analyze", "Two-length chain", "-m", "taguchi"]) == 1
        assert "Unknown analysis method" in capsys.readouterr().err

    def test_invalid_config_fails_cleanly(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "analyze", "Two-length chain", "-n", "0"]) == 1
        assert "simulations" in capsys.readouterr().err

    def test_capability_needs_two_samples(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "analyze", "Two-length chain", "-m", "mc", "-n", "1",
                     "--save-samples", "--capability"]) == 1
        assert "at least 2" in capsys.readouterr().err
        assert not (tmp_path / "simulations").exists()
        assert len(ToleranceRepository.load(root).analyses) == 0

    def test_save_samples_requires_record(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "analyze", "Two-length chain", "-n", "100",
                     "--save-samples", "--no-record"]) == 1
        assert "--no-record" in capsys.readouterr().err
        assert not (tmp_path / "simulations").exists()

    def test_failed_plot_discards_samples(self, tmp_path, capsys):
        root = tmp_path / "proj"
        main(["-r", str(root), "example"])
        before = (root / "analyses.json").read_text()
        plot = tmp_path / "missing" / "out.png"
        assert main(["-r", str(root), "analyze", "Two-length chain", "-n", "100",
                     "--save-samples", "--save-plots", str(plot)]) == 1
        assert capsys.readouterr().err.startswith("error: ")
        assert not (root / "simulations").exists()
        assert (root / "analyses.json").read_text() == before

    def test_fit(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "fit", "Pin in hole"]) == 0
        out = capsys.readouterr().out
        assert "valid" in out
        assert "+0.080000" in out

    def test_sensitivity(self, tmp_path, capsys):
        root = str(tmp_path)
        main(["-r", root, "example"])
        assert main(["-r", root, "sensitivity", "Shaft-housing gap"]) == 0
        out = capsys.readouterr().out
        assert "Housing bore depth" in out
        assert "Critical features" in out

    def test_report(self, tmp_path):
        root = str(tmp_path / "proj")
        main(["-r", root, "example"])
        main(["-r", root, "analyze", "Two-length chain", "-m", "wc"])
        out = tmp_path / "report.txt"
        assert main(["-r", root, "report", "-o", str(out), "--project", "Demo"]) == 0
        text = out.read_text()
        assert "Demo" in text
        assert "Block A length" in text
        assert "Pin in hole" in text
        assert "END OF REPORT" in text
