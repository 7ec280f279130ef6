"""Command-line interface for stackup tolerance analysis."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

import numpy as np

from tolerance_engine.errors import NotFoundError, ToleranceEngineError, ValidationError
from tolerance_engine.models import AnalysisConfig, AnalysisMethod, Mate, StackupAnalysis
from tolerance_engine.repository import ToleranceRepository
from tolerance_engine.statistics import (
    compute_process_capability, critical_features, sensitivity_analysis,
)

DEFAULT_ROOT = "tolerance_project"


def _find_mate(repo: ToleranceRepository, key: str) -> Mate:
    mate = repo.mates.get(key)
    if mate is not None:
        return mate
    for m in repo.mates:
        if m.name == key:
            return m
    raise NotFoundError(f"Mate not found: {key}")


def _rng(seed: Optional[int]) -> np.random.Generator:
    return np.random.default_rng(seed)


def cmd_example(args: argparse.Namespace) -> None:
    """Create the example project."""
    from tolerance_engine.examples import create_example_repository

    repo = create_example_repository(args.root)
    print(f"Created example project in {repo.root}")
    print(f"  {len(repo.components)} components, {len(repo.features)} features, "
          f"{len(repo.mates)} mates, {len(repo.stackups)} stackups")


def cmd_list(args: argparse.Namespace) -> None:
    """List the entities of one kind."""
    repo = ToleranceRepository.load(args.root)

    if args.kind == "components":
        for c in repo.components:
            pn = f" [{c.part_number}]" if c.part_number else ""
            print(f"{c.id}  {c.name}{pn}")
    elif args.kind == "features":
        for f in repo.features:
            t = f.tolerance
            print(f"{f.id}  {f.name:30s} {f.kind.value:9s} {f.nominal:.4f} "
                  f"+{t.plus:.4f}/-{t.minus:.4f} {f.distribution}")
    elif args.kind == "mates":
        for m in repo.mates:
            print(f"{m.id}  {m.name:30s} {m.kind.value}")
    elif args.kind == "stackups":
        for s in repo.stackups:
            print(f"{s.id}  {s.name:30s} {len(s.contributions)} contributions")
    else:
        for a in repo.analyses:
            r = a.result
            print(f"{a.id}  {a.stackup_name:30s} {a.config.method.label:12s} "
                  f"{r.nominal_dimension:+.6f} +{r.predicted_tolerance.plus:.6f}"
                  f"/-{r.predicted_tolerance.minus:.6f}")


def _discard_samples(repo: ToleranceRepository, analyses: list[StackupAnalysis]) -> None:
    for analysis in analyses:
        if not analysis.result.sample_file:
            continue
        path = repo.root / analysis.result.sample_file
        path.unlink(missing_ok=True)
        if not any(path.parent.iterdir()):
            path.parent.rmdir()


def cmd_analyze(args: argparse.Namespace) -> None:
    """Analyze a stackup and record the analyses."""
    repo = ToleranceRepository.load(args.root)
    stackup = repo.find_stackup(args.stackup)
    methods = [AnalysisMethod.parse(m) for m in args.methods.split(",")]
    run_mc = AnalysisMethod.MONTE_CARLO in methods

    if args.save_samples and args.no_record:
        raise ValidationError("--save-samples needs the analysis to be recorded; drop --no-record")
    if args.capability and run_mc and args.simulations < 2:
        raise ValidationError("--capability needs at least 2 Monte Carlo samples")

    rng = _rng(args.seed)
    recorded: list[StackupAnalysis] = []
    try:
        results = {}
        for method in methods:
            config = AnalysisConfig(
                method=method,
                simulations=args.simulations,
                confidence_level=args.confidence,
                use_three_sigma=not args.confidence_band,
                save_samples=args.save_samples and method == AnalysisMethod.MONTE_CARLO,
            )
            analysis = repo.run_analysis(stackup.id, config, rng=rng)
            recorded.append(analysis)
            results[method] = analysis.result
            print(analysis.result.summary())
            print()

        limits = stackup.spec_limits()
        mc = results.get(AnalysisMethod.MONTE_CARLO)
        if args.capability and mc is not None and limits is not None:
            pc = compute_process_capability(mc.samples, limits.upper, limits.lower)
            print(pc.summary())
            print()

        if args.save_plots:
            from tolerance_engine.visualize import (
                plot_contributions, plot_method_comparison, plot_monte_carlo_histogram,
            )
            _, features = repo.resolve_stackup(stackup.id)
            base = args.save_plots
            plot_contributions(stackup, features,
                               save_path=base.replace(".png", "_waterfall.png"))
            plot_method_comparison(results, spec=limits,
                                   save_path=base.replace(".png", "_methods.png"))
            if mc is not None:
                plot_monte_carlo_histogram(mc, spec=limits, save_path=base)

        if not args.no_record:
            repo.save()
    except ToleranceEngineError:
        # Nothing was recorded, so sample files written by this run are orphans.
        _discard_samples(repo, recorded)
        raise


def cmd_fit(args: argparse.Namespace) -> None:
    """Evaluate one mate, or every mate."""
    repo = ToleranceRepository.load(args.root)
    mates = [_find_mate(repo, args.mate)] if args.mate else repo.mates.all()
    for mate in mates:
        fit = repo.evaluate_mate(mate.id)
        status = "valid" if fit.valid else "INVALID"
        print(f"{mate.name} ({mate.kind.value}): {status}")
        print(f"  nominal fit: {fit.nominal_fit:+.6f}")
        print(f"  min fit:     {fit.min_fit:+.6f}")
        print(f"  max fit:     {fit.max_fit:+.6f}")
        if fit.message:
            print(f"  {fit.message}")
        if fit.warning:
            print(f"  Warning: {fit.warning}")


def cmd_sensitivity(args: argparse.Namespace) -> None:
    """Rank the contributions of a stackup by variance share."""
    repo = ToleranceRepository.load(args.root)
    stackup = repo.find_stackup(args.stackup)
    stackup, features = repo.resolve_stackup(stackup.id)
    sens = sensitivity_analysis(stackup, features)
    print(sens.summary())

    critical = critical_features(sens, args.threshold)
    if critical:
        print(f"\nCritical features (>= {args.threshold:g}% of variance):")
        for c in critical:
            print(f"  {c.feature_name}")

    if args.save_plot:
        from tolerance_engine.visualize import plot_sensitivity
        plot_sensitivity(sens, save_path=args.save_plot)


def cmd_report(args: argparse.Namespace) -> None:
    """Write a text report of the recorded analyses."""
    from tolerance_engine.reporting import ReportConfig, generate_text_report, save_report

    repo = ToleranceRepository.load(args.root)
    config = ReportConfig(title=args.title, project=args.project, author=args.author)

    sensitivity = []
    for stackup in repo.stackups:
        _, features = repo.resolve_stackup(stackup.id)
        sensitivity.append(sensitivity_analysis(stackup, features))
    fits = {m.name: repo.evaluate_mate(m.id) for m in repo.mates}

    text = generate_text_report(config, repo.analyses.all(), sensitivity, fits)
    if args.output:
        path = save_report(text, args.output)
        print(f"Report written to {path}")
    else:
        print(text, end="")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tolstack",
        description="Stackup tolerance analysis tool",
    )
    parser.add_argument("-r", "--root", default=DEFAULT_ROOT,
                        help=f"Project directory (default: {DEFAULT_ROOT})")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- example ---
    p_example = subparsers.add_parser("example", help="Create the example project")
    p_example.set_defaults(func=cmd_example)

    # --- list ---
    p_list = subparsers.add_parser("list", help="List entities")
    p_list.add_argument("kind", nargs="?", default="stackups",
                        choices=["components", "features", "mates", "stackups", "analyses"])
    p_list.set_defaults(func=cmd_list)

    # --- analyze ---
    p_analyze = subparsers.add_parser("analyze", help="Analyze a stackup")
    p_analyze.add_argument("stackup", help="Stackup id or name")
    p_analyze.add_argument("-m", "--methods", default="mc",
                           help="Comma-separated methods: wc,rss,mc (default: mc)")
    p_analyze.add_argument("-n", "--simulations", type=int, default=10_000,
                           help="Number of Monte Carlo samples (default: 10000)")
    p_analyze.add_argument("--confidence", type=float, default=0.95,
                           help="Confidence level of the user band (default: 0.95)")
    p_analyze.add_argument("--confidence-band", action="store_true",
                           help="Report the confidence band instead of +/-3 sigma")
    p_analyze.add_argument("--seed", type=int, default=None,
                           help="Random seed for Monte Carlo")
    p_analyze.add_argument("--save-samples", action="store_true",
                           help="Write Monte Carlo samples to a CSV file")
    p_analyze.add_argument("--capability", action="store_true",
                           help="Print process capability of the Monte Carlo samples")
    p_analyze.add_argument("--save-plots", default=None,
                           help="Save plots (base path, e.g. output.png)")
    p_analyze.add_argument("--no-record", action="store_true",
                           help="Do not save the analyses to the project")
    p_analyze.set_defaults(func=cmd_analyze)

    # --- fit ---
    p_fit = subparsers.add_parser("fit", help="Evaluate mate fits")
    p_fit.add_argument("mate", nargs="?", default=None, help="Mate id or name (default: all)")
    p_fit.set_defaults(func=cmd_fit)

    # --- sensitivity ---
    p_sens = subparsers.add_parser("sensitivity", help="Variance contribution ranking")
    p_sens.add_argument("stackup", help="Stackup id or name")
    p_sens.add_argument("--threshold", type=float, default=25.0,
                        help="Critical feature threshold in percent (default: 25)")
    p_sens.add_argument("--save-plot", default=None, help="Save the Pareto chart")
    p_sens.set_defaults(func=cmd_sensitivity)

    # --- report ---
    p_report = subparsers.add_parser("report", help="Generate a text report")
    p_report.add_argument("-o", "--output", default=None, help="Output file (default: stdout)")
    p_report.add_argument("--title", default="Tolerance Analysis Report")
    p_report.add_argument("--project", default="")
    p_report.add_argument("--author", default="")
    p_report.set_defaults(func=cmd_report)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        args.func(args)
    except ToleranceEngineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
