"""Runtime settings for the Lilith engine, read from the environment.

Lilith is expected in ./lilith next to the source tree unless LILITH_DIR
points elsewhere. Transient input files go to the Lilith directory by default
because run_lilith.py resolves relative data paths from its own cwd.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_LILITH_DIR = Path(__file__).resolve().parents[2] / "lilith"
DEFAULT_PYTHON_CMD = "python3"
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_OUTPUT_BYTES = 8 * 1024 * 1024
DEFAULT_MAX_CONCURRENT_SCANS = 10


class EngineSettings(BaseModel):
    """Where Lilith lives and how hard it may be driven."""

    lilith_dir: Path = DEFAULT_LILITH_DIR
    python_cmd: str = DEFAULT_PYTHON_CMD
    timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_output_bytes: int = Field(DEFAULT_MAX_OUTPUT_BYTES, gt=0)
    max_concurrent_scans: int = Field(DEFAULT_MAX_CONCURRENT_SCANS, ge=1)
    work_dir: Optional[Path] = None

    @property
    def data_dir(self) -> Path:
        return self.lilith_dir / "data"

    @property
    def input_dir(self) -> Path:
        return self.work_dir or self.lilith_dir


def _env_number(name: str, default: float, cast: type) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings() -> EngineSettings:
    """Build settings from LILITH_DIR, PYTHON_CMD and friends."""
    lilith_dir = Path(os.environ.get("LILITH_DIR", str(DEFAULT_LILITH_DIR))).expanduser()
    work_dir = os.environ.get("LILITH_WORK_DIR")
    settings = EngineSettings(
        lilith_dir=lilith_dir,
        python_cmd=os.environ.get("PYTHON_CMD", DEFAULT_PYTHON_CMD),
        timeout_seconds=_env_number("LILITH_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, float),
        max_output_bytes=_env_number("LILITH_MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES, int),
        max_concurrent_scans=_env_number("MAX_CONCURRENT_SCANS", DEFAULT_MAX_CONCURRENT_SCANS, int),
        work_dir=Path(work_dir).expanduser() if work_dir else None,
    )
    logger.debug("Loaded engine settings: %s", settings)
    return settings
