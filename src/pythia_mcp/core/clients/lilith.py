"""Lilith engine client.

Lilith is run as a subprocess: ``python run_lilith.py <input.xml> <exp.list>``.
Each invocation gets its own transient input file, a wall-clock timeout and a
cap on captured output. The transient file is removed exactly once, whether
the run succeeds, fails, times out or is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol

from ...config import EngineSettings
from ..errors import EngineError
from ..models import Dataset, EngineOutput
from ..validation import validate_dataset

logger = logging.getLogger(__name__)

RUN_SCRIPT = "run_lilith.py"
DEFAULT_DATASET = Dataset.LATEST.value

_READ_CHUNK = 64 * 1024
_STDERR_LOG_CHARS = 2000

_FLOAT = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
LIKELIHOOD_PATTERN = re.compile(rf"-2log\(likelihood\)\s*=\s*({_FLOAT})")
NDOF_PATTERN = re.compile(r"Ndof\s*=\s*(\d+)")
DB_VERSION_PATTERN = re.compile(r"database version\s+([\d.]+)")


class Engine(Protocol):
    """Anything that turns an input document into Lilith output text."""

    async def run(
        self,
        document: str,
        dataset: str = DEFAULT_DATASET,
        *,
        flags: Sequence[str] = (),
        prefix: str = "input",
    ) -> str: ...


class _OutputLimitExceeded(Exception):
    pass


def parse_engine_output(text: str) -> EngineOutput:
    """Pull -2 log L, Ndof and the database version out of Lilith's output.

    Missing values come back as None; deciding whether that is fatal is up
    to the caller.
    """
    likelihood_match = LIKELIHOOD_PATTERN.search(text)
    ndof_match = NDOF_PATTERN.search(text)
    version_match = DB_VERSION_PATTERN.search(text)
    return EngineOutput(
        likelihood=float(likelihood_match.group(1)) if likelihood_match else None,
        ndf=int(ndof_match.group(1)) if ndof_match else None,
        db_version=version_match.group(1) if version_match else None,
    )


async def _read_capped(stream: Optional[asyncio.StreamReader], limit: int) -> bytes:
    if stream is None:
        return b""
    chunks = []
    total = 0
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _OutputLimitExceeded()
        chunks.append(chunk)
    return b"".join(chunks)


class LilithClient:
    """Runs Lilith under the limits given by ``EngineSettings``."""

    def __init__(self, settings: EngineSettings):
        self._settings = settings

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    async def run(
        self,
        document: str,
        dataset: str = DEFAULT_DATASET,
        *,
        flags: Sequence[str] = (),
        prefix: str = "input",
    ) -> str:
        """Evaluate one input document against ``dataset`` and return stdout."""
        validate_dataset(dataset)
        with self._temp_file(prefix, document) as input_path:
            return await self._execute([RUN_SCRIPT, str(input_path), dataset, *flags])

    async def run_with_signal_strengths(
        self,
        document: str,
        dataset: str = DEFAULT_DATASET,
    ) -> tuple[str, str]:
        """Evaluate a couplings document and also collect Lilith's signal-strength output (-m)."""
        validate_dataset(dataset)
        with self._temp_file("convert", document) as input_path, self._temp_file("mu_output") as mu_path:
            output = await self._execute([RUN_SCRIPT, str(input_path), dataset, "-m", str(mu_path)])
            try:
                mu_xml = mu_path.read_text(encoding="utf-8")
            except OSError:
                mu_xml = ""
        return output, mu_xml

    @contextmanager
    def _temp_file(self, prefix: str, content: Optional[str] = None) -> Iterator[Path]:
        input_dir = self._settings.input_dir
        try:
            fd, name = tempfile.mkstemp(prefix=f"{prefix}_", suffix=".xml", dir=input_dir)
        except OSError as exc:
            logger.warning("Could not create Lilith input file in %s: %s", input_dir, exc)
            raise EngineError("Failed to write Lilith input file") from None
        path = Path(name)
        try:
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    if content is not None:
                        fh.write(content)
            except OSError as exc:
                logger.warning("Could not write Lilith input file %s: %s", path, exc)
                raise EngineError("Failed to write Lilith input file") from None
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove temp file %s: %s", path, exc)

    async def _execute(self, args: list[str]) -> str:
        settings = self._settings
        env = {**os.environ, "PYTHONPATH": str(settings.lilith_dir)}
        try:
            proc = await asyncio.create_subprocess_exec(
                settings.python_cmd,
                *args,
                cwd=str(settings.lilith_dir),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Could not start Lilith with %s: %s", settings.python_cmd, exc)
            raise EngineError("Failed to start Lilith") from None

        try:
            stdout, stderr, returncode = await asyncio.wait_for(
                self._communicate(proc), timeout=settings.timeout_seconds
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise EngineError(f"Lilith timed out after {settings.timeout_seconds:g} seconds") from None
        except _OutputLimitExceeded:
            await self._kill(proc)
            raise EngineError(f"Lilith output exceeded {settings.max_output_bytes} bytes") from None
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        if returncode != 0:
            logger.warning(
                "Lilith exited with code %s: %s",
                returncode,
                stderr.decode("utf-8", errors="replace")[-_STDERR_LOG_CHARS:],
            )
            raise EngineError(f"Lilith exited with code {returncode}")
        return stdout.decode("utf-8", errors="replace")

    async def _communicate(self, proc: asyncio.subprocess.Process) -> tuple[bytes, bytes, int]:
        limit = self._settings.max_output_bytes
        readers = [
            asyncio.ensure_future(_read_capped(proc.stdout, limit)),
            asyncio.ensure_future(_read_capped(proc.stderr, limit)),
        ]
        try:
            stdout, stderr = await asyncio.gather(*readers)
        finally:
            for reader in readers:
                reader.cancel()
        returncode = await proc.wait()
        return stdout, stderr, returncode

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()
