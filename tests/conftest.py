"""
Pytest bootstrap for src/ layout, plus a scripted stand-in for the Lilith engine.
"""
from __future__ import annotations

import asyncio
import re
import sys
from pathlib import Path

import pytest

repo_root = Path(__file__).resolve().parents[1]
src = repo_root / "src"
if src.is_dir():
    src_str = str(src)
    if src_str not in sys.path:
        # Put first so local src wins over any installed pythia_mcp.
        sys.path.insert(0, src_str)

from pythia_mcp.core.errors import EngineError  # noqa: E402


def coupling(document: str, target: str) -> float:
    """Read one <C to="..."> value back out of a reduced-couplings document."""
    match = re.search(rf'<C to="{target}">([^<]+)</C>', document)
    assert match, f"no coupling {target} in document"
    return float(match.group(1))


class FakeEngine:
    """
    Engine double driven by a scoring function.

    - likelihood(document) returns -2logL, None for "no likelihood in output",
      or raises EngineError
    - records every call and the peak number of calls in flight
    """

    def __init__(self, likelihood=None, delay: float = 0.0, ndf: int = 33) -> None:
        self.likelihood = likelihood or (lambda document: 10.0)
        self.delay = delay
        self.ndf = ndf
        self.calls: list[dict] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def run(self, document, dataset="data/latest.list", *, flags=(), prefix="input"):
        self.calls.append({"document": document, "dataset": dataset, "flags": tuple(flags), "prefix": prefix})
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            value = self.likelihood(document)
        finally:
            self.in_flight -= 1
        if value is None:
            return "Lilith finished without a result\n"
        return (
            "Lilith: database version 22.0\n"
            f"-2log(likelihood) = {value}\n"
            f"Ndof = {self.ndf}\n"
        )


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def failing_engine() -> FakeEngine:
    def fail(document: str) -> float:
        raise EngineError("Lilith exited with code 1")

    return FakeEngine(likelihood=fail)
