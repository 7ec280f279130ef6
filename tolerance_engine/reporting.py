"""Plain-text report generation for stackup analyses."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Union

from tolerance_engine.errors import PersistenceError
from tolerance_engine.models import FitValidation, StackupAnalysis
from tolerance_engine.statistics import SensitivityAnalysis

logger = logging.getLogger(__name__)

WIDTH = 70


@dataclass
class ReportConfig:
    """Configuration for report generation.

    Attributes:
        title: Report title.
        project: Project name.
        author: Author name.
        revision: Document revision.
        date: Report date (defaults to now).
        include_sensitivity: Include the sensitivity section when given.
        include_quartiles: Include the Monte Carlo percentile table.
    """
    title: str = "Tolerance Analysis Report"
    project: str = ""
    author: str = ""
    revision: str = "A"
    date: str = ""
    include_sensitivity: bool = True
    include_quartiles: bool = True


def _header(config: ReportConfig) -> list[str]:
    return [
        "=" * WIDTH,
        config.title.center(WIDTH),
        "=" * WIDTH,
        f"Project:  {config.project}",
        f"Author:   {config.author}",
        f"Revision: {config.revision}",
        f"Date:     {config.date or datetime.now().strftime('%Y-%m-%d %H:%M')}",
        "=" * WIDTH,
        "",
    ]


def _analysis_block(analysis: StackupAnalysis, include_quartiles: bool) -> list[str]:
    result = analysis.result
    lines = [
        f"Stackup: {analysis.stackup_name}",
        f"Run:     {analysis.created.strftime('%Y-%m-%d %H:%M:%S %Z')}",
    ]
    if analysis.target_dimension is not None:
        lines.append(f"Target:  {analysis.target_dimension:.6f}")
    lines.append("Chain:")
    for i, c in enumerate(analysis.contributions, start=1):
        label = c.feature_info.feature_name if c.feature_info else c.feature_id
        half = " (half)" if c.half_count else ""
        lines.append(f"  {i:2d}. {label:30s} x{c.direction:+.2f}{half}")
    lines.append(result.summary())

    if include_quartiles and result.quartiles is not None:
        q = result.quartiles
        lines.extend([
            "  Percentiles:",
            f"    min   {q.minimum:+.6f}",
            f"    p5    {q.p5:+.6f}",
            f"    q1    {q.q1:+.6f}",
            f"    p50   {q.median:+.6f}",
            f"    q3    {q.q3:+.6f}",
            f"    p95   {q.p95:+.6f}",
            f"    max   {q.maximum:+.6f}",
            f"    IQR   {q.iqr:.6f}",
        ])
    lines.append("")
    return lines


def _fit_block(fits: dict[str, FitValidation]) -> list[str]:
    lines = ["=== Fits ==="]
    for name, fit in fits.items():
        status = "OK" if fit.valid else "INVALID"
        lines.append(
            f"  {name:24s} nominal={fit.nominal_fit:+.6f} "
            f"min={fit.min_fit:+.6f} max={fit.max_fit:+.6f}  [{status}]"
        )
        if fit.message:
            lines.append(f"    {fit.message}")
        if fit.warning:
            lines.append(f"    Warning: {fit.warning}")
    lines.append("")
    return lines


def generate_text_report(
    config: ReportConfig,
    analyses: Sequence[StackupAnalysis],
    sensitivity: Optional[Sequence[SensitivityAnalysis]] = None,
    fits: Optional[dict[str, FitValidation]] = None,
) -> str:
    """Generate a plain-text tolerance analysis report.

    Args:
        config: Report configuration.
        analyses: Analysis records, reported in the given order.
        sensitivity: Optional variance breakdowns.
        fits: Optional mate name -> fit result.

    Returns:
        The report text.
    """
    lines = _header(config)

    for analysis in analyses:
        lines.extend(_analysis_block(analysis, config.include_quartiles))

    if config.include_sensitivity and sensitivity:
        for s in sensitivity:
            lines.append(s.summary())
            lines.append("")

    if fits:
        lines.extend(_fit_block(fits))

    lines.append("=" * WIDTH)
    lines.append("END OF REPORT")
    return "\n".join(lines) + "\n"


def save_report(text: str, path: Union[str, os.PathLike]) -> Path:
    """Write a report to ``path``, creating parent directories."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Cannot write report {path}: {exc}") from exc
    logger.info("Report written to %s", path)
    return path
