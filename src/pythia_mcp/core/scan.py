"""Bounded-concurrency likelihood scans over one or two parameters.

A scan expands its axes into a grid, serializes every point up front, then
lets a fixed number of asyncio workers pull points off a shared counter and
run them through the engine. Results are written at the point's grid index,
never in completion order, so the output always mirrors the grid.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional, TypeVar

from .clients.lilith import DEFAULT_DATASET, Engine, parse_engine_output
from .errors import AggregateFailure, EngineError, ValidationError
from .models import CouplingParams, PointStatus, ScanAxis, ScanPoint, ScanResult, ScanSummary
from .serializer import generate_reduced_couplings_xml
from .validation import MAX_STEPS_1D, MAX_STEPS_2D, validate_dataset, validate_scan_axis

logger = logging.getLogger(__name__)

MAX_CONCURRENT_SCANS = 10
SCAN_FLAGS = ("-s",)

T = TypeVar("T")
R = TypeVar("R")


async def parallel_limit(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """Run ``fn`` over ``items`` with at most ``limit`` calls in flight.

    Results come back in input order. The claim of the next index happens
    between awaits, so on one event loop no two workers share an index.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")
    results: list[Optional[R]] = [None] * len(items)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            index = next_index
            next_index += 1
            results[index] = await fn(items[index], index)

    await asyncio.gather(*(worker() for _ in range(min(limit, len(items)))))
    return results  # type: ignore[return-value]


def axis_values(axis: ScanAxis) -> list[float]:
    """Evenly spaced values from min to max inclusive; a single step is just min."""
    if axis.steps == 1:
        return [axis.min]
    step = (axis.max - axis.min) / (axis.steps - 1)
    return [axis.min + i * step for i in range(axis.steps)]


def _make_point(index: tuple[int, ...], coordinates: tuple[float, ...], params: CouplingParams) -> ScanPoint:
    return ScanPoint(
        index=index,
        coordinates=coordinates,
        params=params,
        document=generate_reduced_couplings_xml(params),
    )


def build_points_1d(axis: ScanAxis, fixed: Optional[CouplingParams] = None) -> list[ScanPoint]:
    validate_scan_axis(axis, MAX_STEPS_1D, "param")
    fixed = fixed or CouplingParams()
    return [
        _make_point((i,), (value,), fixed.with_value(axis.name, value))
        for i, value in enumerate(axis_values(axis))
    ]


def build_points_2d(
    axis1: ScanAxis,
    axis2: ScanAxis,
    fixed: Optional[CouplingParams] = None,
) -> list[ScanPoint]:
    """Row-major grid: axis1 varies slowest."""
    validate_scan_axis(axis1, MAX_STEPS_2D, "param1")
    validate_scan_axis(axis2, MAX_STEPS_2D, "param2")
    if axis1.name == axis2.name:
        raise ValidationError("param1 and param2 must be different parameters")
    fixed = fixed or CouplingParams()
    points = []
    for i, x in enumerate(axis_values(axis1)):
        row = fixed.with_value(axis1.name, x)
        for j, y in enumerate(axis_values(axis2)):
            points.append(_make_point((i, j), (x, y), row.with_value(axis2.name, y)))
    return points


def annotate_deltas(results: list[ScanResult]) -> tuple[float, tuple[float, ...], list[ScanResult]]:
    """Attach likelihood - minimum to every recorded result."""
    recorded = [r for r in results if r.likelihood is not None]
    if not recorded:
        raise AggregateFailure("All scan points failed")
    best = min(recorded, key=lambda r: r.likelihood)
    minimum = best.likelihood
    annotated = [
        r.model_copy(update={"delta_likelihood": r.likelihood - minimum}) if r.likelihood is not None else r
        for r in results
    ]
    return minimum, best.coordinates, annotated


class ScanExecutor:
    """Evaluates scan grids through an engine with a fixed concurrency cap."""

    def __init__(
        self,
        engine: Engine,
        *,
        max_concurrency: int = MAX_CONCURRENT_SCANS,
        dataset: str = DEFAULT_DATASET,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._engine = engine
        self._max_concurrency = max_concurrency
        self._dataset = validate_dataset(dataset)

    async def scan_1d(self, axis: ScanAxis, fixed: Optional[CouplingParams] = None) -> ScanSummary:
        """Likelihood profile along one parameter."""
        points = build_points_1d(axis, fixed)
        return await self._run([axis], points, "scan1d")

    async def scan_2d(
        self,
        axis1: ScanAxis,
        axis2: ScanAxis,
        fixed: Optional[CouplingParams] = None,
    ) -> ScanSummary:
        """Likelihood surface over two parameters, for contour plots."""
        points = build_points_2d(axis1, axis2, fixed)
        return await self._run([axis1, axis2], points, "scan2d")

    async def _run(self, axes: list[ScanAxis], points: list[ScanPoint], label: str) -> ScanSummary:
        names = " x ".join(a.name.value for a in axes)
        logger.info(
            "Starting %s over %s: %d points, concurrency %d",
            label, names, len(points), self._max_concurrency,
        )
        started = time.monotonic()
        states = [PointStatus.PENDING] * len(points)

        async def evaluate(point: ScanPoint, position: int) -> ScanResult:
            states[position] = PointStatus.IN_FLIGHT
            result = await self._evaluate_point(point, label)
            states[position] = result.status
            return result

        results = await parallel_limit(points, self._max_concurrency, evaluate)
        failed = sum(1 for s in states if s is PointStatus.FAILED)
        elapsed = time.monotonic() - started

        if failed == len(points):
            logger.error("%s over %s: all %d points failed (%.1fs)", label, names, failed, elapsed)
        minimum, best_fit, annotated = annotate_deltas(results)
        logger.info(
            "Finished %s over %s in %.1fs: %d/%d points recorded, minimum -2logL %.4f",
            label, names, elapsed, len(points) - failed, len(points), minimum,
        )
        return ScanSummary(
            parameters=axes,
            dataset=self._dataset,
            total_points=len(points),
            failed_points=failed,
            minimum_likelihood=minimum,
            best_fit=best_fit,
            results=annotated,
        )

    async def _evaluate_point(self, point: ScanPoint, label: str) -> ScanResult:
        prefix = f"{label}_{'_'.join(str(i) for i in point.index)}"
        try:
            output = await self._engine.run(point.document, self._dataset, flags=SCAN_FLAGS, prefix=prefix)
        except EngineError as exc:
            logger.warning("Scan point %s %s failed: %s", point.index, point.coordinates, exc)
            return ScanResult(index=point.index, coordinates=point.coordinates, status=PointStatus.FAILED)

        likelihood = parse_engine_output(output).likelihood
        if likelihood is None:
            logger.warning("Scan point %s %s: no likelihood in engine output", point.index, point.coordinates)
            return ScanResult(index=point.index, coordinates=point.coordinates, status=PointStatus.FAILED)
        return ScanResult(
            index=point.index,
            coordinates=point.coordinates,
            likelihood=likelihood,
            status=PointStatus.RECORDED,
        )
