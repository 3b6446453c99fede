"""Read-only access to the experimental data shipped with Lilith."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from .. import __version__
from ..config import EngineSettings
from .errors import DatasetNotFoundError, ValidationError
from .models import DatasetEntry
from .validation import safe_resolve_path

logger = logging.getLogger(__name__)

LILITH_VERSION = "2.1"

EXPERIMENTS = ("ATLAS", "CMS", "ATLAS-CMS", "Tevatron")
RUN_PERIODS = ("Run1", "Run2")
DATA_LISTS = ("latest.list", "latestRun2.list", "finalRun1.list")


def _filter_value(value: Optional[str], allowed: tuple[str, ...]) -> str:
    return value if value in allowed else "all"


def _run_period(path: str) -> str:
    for period in RUN_PERIODS:
        if period in path:
            return period
    return "unknown"


def list_experimental_data(
    data_dir: Path,
    experiment: Optional[str] = "all",
    run_period: Optional[str] = "all",
) -> list[DatasetEntry]:
    """Datasets active in latest.list, optionally filtered.

    Unknown filter values mean "all" rather than an error.
    """
    experiment = _filter_value(experiment, EXPERIMENTS)
    run_period = _filter_value(run_period, RUN_PERIODS)

    list_path = Path(data_dir) / "latest.list"
    try:
        content = list_path.read_text(encoding="utf-8")
    except OSError:
        raise DatasetNotFoundError("Experimental data list not found: latest.list") from None

    datasets = []
    for line in content.splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#"):
            continue
        if experiment != "all" and entry.split("/")[0] != experiment:
            continue
        if run_period != "all" and run_period not in entry:
            continue
        datasets.append(DatasetEntry(path=entry, experiment=entry.split("/")[0], run_period=_run_period(entry)))
    return datasets


def get_dataset_info(data_dir: Path, dataset_path: Any) -> str:
    """Raw XML of one dataset file under the data directory."""
    if not isinstance(dataset_path, str) or not dataset_path:
        raise ValidationError("datasetPath is required and must be a string")
    path = safe_resolve_path(data_dir, dataset_path)
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        raise DatasetNotFoundError(f"Dataset not found: {dataset_path}") from None


def read_data_list(data_dir: Path, name: str) -> str:
    """Contents of one of the data lists shipped with Lilith, by file name."""
    if name not in DATA_LISTS:
        raise DatasetNotFoundError(f"Resource not found: lilith://data/{name}")
    path = safe_resolve_path(data_dir, name)
    try:
        return path.read_text(encoding="utf-8")
    except OSError:
        raise DatasetNotFoundError(f"Resource not found: lilith://data/{name}") from None


def read_database_version(data_dir: Path) -> str:
    """Second line of data/version, or "unknown"."""
    try:
        lines = (Path(data_dir) / "version").read_text(encoding="utf-8").strip().splitlines()
    except OSError:
        return "unknown"
    if len(lines) > 1 and lines[1].strip():
        return lines[1].strip()
    return lines[0].strip() if lines and lines[0].strip() else "unknown"


def get_version_info(settings: EngineSettings) -> dict:
    return {
        "pythia_mcp_version": __version__,
        "lilith_version": LILITH_VERSION,
        "database_version": read_database_version(settings.data_dir),
    }
