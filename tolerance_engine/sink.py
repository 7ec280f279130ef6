"""Persistence of Monte Carlo sample vectors.

The analyzer only sees the reference string a sink returns; nothing else in
the package parses it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Protocol, Union

import numpy as np

from tolerance_engine.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

SAMPLE_HEADER = "sample_number,dimension_value"


class SampleSink(Protocol):
    """Anything that can persist a sample vector and hand back a reference."""

    def persist_samples(self, stackup_id: str, timestamp: datetime, samples: np.ndarray) -> str:
        ...


class CsvSampleSink:
    """Write samples as a two-column CSV table under a project directory.

    Files land in ``<root>/<subdir>/stackup_<id>_<timestamp>.csv`` and the
    returned reference is the path relative to ``root``. Each file is written
    to a temporary name first and renamed once complete, so a failed run
    never leaves a partial table behind.
    """

    def __init__(self, root: Union[str, os.PathLike], subdir: str = "simulations") -> None:
        self.root = Path(root)
        self.subdir = subdir

    def persist_samples(self, stackup_id: str, timestamp: datetime, samples: np.ndarray) -> str:
        samples = np.asarray(samples, dtype=float).ravel()
        directory = self.root / self.subdir
        filename = f"stackup_{stackup_id}_{timestamp.strftime('%Y%m%d_%H%M%S_%f')}.csv"
        target = directory / filename

        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
        except OSError as exc:
            raise PersistenceError(f"Cannot create sample file in {directory}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                table = np.column_stack((np.arange(1, len(samples) + 1), samples))
                np.savetxt(f, table, fmt=("%d", "%.12f"), delimiter=",",
                           header=SAMPLE_HEADER, comments="")
            os.replace(tmp_name, target)
        except OSError as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Failed to write samples to {target}: {exc}") from exc

        reference = f"{self.subdir}/{filename}"
        logger.info("Saved %d samples to %s", len(samples), target)
        return reference


def read_samples(root: Union[str, os.PathLike], reference: str) -> np.ndarray:
    """Load the dimension column of a sample table written by CsvSampleSink."""
    path = Path(root) / reference
    if not path.exists():
        raise NotFoundError(f"Sample file not found: {path}")
    try:
        table = np.loadtxt(path, delimiter=",", skiprows=1, ndmin=2)
    except (OSError, ValueError) as exc:
        raise PersistenceError(f"Cannot read sample file {path}: {exc}") from exc
    return table[:, 1]
