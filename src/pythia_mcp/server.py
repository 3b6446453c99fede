"""Pythia MCP Server.

FastMCP server exposing Lilith Higgs likelihoods as 13 tools and 2 resources.
Run: pythia-mcp
"""

from __future__ import annotations

import functools
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

from .config import EngineSettings, load_settings
from .core import analysis, datasets, physics
from .core.clients import DEFAULT_DATASET, LilithClient
from .core.errors import PythiaError
from .core.models import CouplingParams, ScanAxis
from .core.scan import ScanExecutor
from .core.validation import parse_model

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)

_settings: Optional[EngineSettings] = None
_client: Optional[LilithClient] = None


def _get_settings() -> EngineSettings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def _get_client() -> LilithClient:
    global _client
    if _client is None:
        _client = LilithClient(_get_settings())
    return _client


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Configure logging and report where Lilith is expected."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    settings = _get_settings()
    logger.info(
        "Pythia MCP starting: Lilith at %s, timeout %gs, scan concurrency %d",
        settings.lilith_dir, settings.timeout_seconds, settings.max_concurrent_scans,
    )
    yield


mcp = FastMCP(
    "Pythia",
    instructions="Test Higgs boson scenarios against LHC measurements. Likelihoods, coupling scans, p-values and BSM benchmarks computed by Lilith.",
    lifespan=lifespan,
)


def _tool_errors(fn):
    """Turn core errors into tool errors; anything unexpected is logged and masked."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except PythiaError as exc:
            raise ToolError(str(exc)) from None
        except Exception:
            logger.exception("Unexpected error in %s", fn.__name__)
            raise ToolError("An unexpected error occurred") from None

    return wrapper


def _drop_none(**values: Any) -> dict:
    return {k: v for k, v in values.items() if v is not None}


# ─── Tool 1: Likelihood ──────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def compute_likelihood(
    mode: str = "couplings",
    mass: Optional[float] = None,
    CV: Optional[float] = None,
    CF: Optional[float] = None,
    Ct: Optional[float] = None,
    Cb: Optional[float] = None,
    Cc: Optional[float] = None,
    Ctau: Optional[float] = None,
    Cmu: Optional[float] = None,
    Cg: Optional[float] = None,
    Cgamma: Optional[float] = None,
    CZgamma: Optional[float] = None,
    BRinv: Optional[float] = None,
    BRundet: Optional[float] = None,
    precision: Optional[str] = None,
    signal_strengths: Optional[dict[str, float]] = None,
    exp_input: str = DEFAULT_DATASET,
) -> dict:
    """-2 log(likelihood) of a Higgs scenario against LHC data.

    Args:
        mode: 'couplings' (reduced couplings) or 'signalstrengths' (direct mu values).
        mass: Higgs mass in GeV. Default 125.09.
        CV: Coupling to W/Z bosons (SM = 1).
        CF: Universal fermion coupling, used for any fermion coupling not given.
        Ct, Cb, Cc, Ctau, Cmu: Individual fermion couplings.
        Cg, Cgamma, CZgamma: Loop-induced couplings. Computed by Lilith when omitted.
        BRinv: Invisible branching ratio, 0 to 1.
        BRundet: Undetected branching ratio, 0 to 1.
        precision: 'LO' or 'BEST-QCD' (default).
        signal_strengths: For mode='signalstrengths', mu values keyed '<prod>_<decay>', e.g. {'ggH_gammagamma': 1.1}.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    if mode == "signalstrengths":
        arguments = _drop_none(mode=mode, mass=mass, signalStrengths=signal_strengths, expInput=exp_input)
    else:
        arguments = _drop_none(
            mode=mode, mass=mass, CV=CV, CF=CF, Ct=Ct, Cb=Cb, Cc=Cc, Ctau=Ctau, Cmu=Cmu,
            Cg=Cg, Cgamma=Cgamma, CZgamma=CZgamma, BRinv=BRinv, BRundet=BRundet,
            precision=precision, expInput=exp_input,
        )
    request = analysis.parse_likelihood_request(arguments)
    result = await analysis.compute_likelihood(_get_client(), request)
    return result.model_dump(mode="json")


# ─── Tool 2: Standard Model Likelihood ───────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def compute_sm_likelihood(exp_input: str = DEFAULT_DATASET) -> dict:
    """Likelihood of the Standard Model point (all couplings 1) as a reference.

    Args:
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    result = await analysis.compute_sm_likelihood(_get_client(), exp_input)
    return result.model_dump(mode="json")


# ─── Tool 3: p-value ─────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def compute_pvalue(likelihood: float, ndf: int, reference: str = "SM") -> dict:
    """Chi-square p-value and significance of a -2 log L value.

    Args:
        likelihood: -2 log(likelihood), or a delta relative to the reference.
        ndf: Degrees of freedom, 1 to 1000.
        reference: 'SM' or 'bestfit'. Default 'SM'.
    """
    return analysis.compute_pvalue(likelihood, ndf, reference).model_dump(mode="json")


# ─── Tools 4-5: Scans ────────────────────────────────────────────────────────


def _scan_executor(exp_input: str) -> ScanExecutor:
    return ScanExecutor(
        _get_client(),
        max_concurrency=_get_settings().max_concurrent_scans,
        dataset=exp_input,
    )


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def scan_1d(
    param: str,
    min: float,
    max: float,
    steps: int,
    fixed_params: Optional[dict[str, Any]] = None,
    exp_input: str = DEFAULT_DATASET,
) -> dict:
    """Likelihood profile along one parameter, with delta -2 log L for each point.

    Args:
        param: Parameter to scan: mass, CV, CF, Ct, Cb, Cc, Ctau, Cmu, Cg, Cgamma, CZgamma, BRinv, BRundet.
        min: Lower bound of the scan.
        max: Upper bound of the scan.
        steps: Number of points, 1 to 1000.
        fixed_params: Other couplings held fixed, e.g. {'CF': 0.9}.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    axis = parse_model(ScanAxis, {"name": param, "min": min, "max": max, "steps": steps}, "param")
    fixed = parse_model(CouplingParams, fixed_params, "fixed_params")
    summary = await _scan_executor(exp_input).scan_1d(axis, fixed)
    return summary.model_dump(mode="json")


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def scan_2d(
    param1: dict[str, Any],
    param2: dict[str, Any],
    fixed_params: Optional[dict[str, Any]] = None,
    exp_input: str = DEFAULT_DATASET,
) -> dict:
    """Likelihood surface over two parameters, for contour plots.

    Args:
        param1: {'name', 'min', 'max', 'steps'} of the slow axis. At most 100 steps.
        param2: {'name', 'min', 'max', 'steps'} of the fast axis. At most 100 steps.
        fixed_params: Other couplings held fixed.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    axis1 = parse_model(ScanAxis, param1, "param1")
    axis2 = parse_model(ScanAxis, param2, "param2")
    fixed = parse_model(CouplingParams, fixed_params, "fixed_params")
    summary = await _scan_executor(exp_input).scan_2d(axis1, axis2, fixed)
    return summary.model_dump(mode="json")


# ─── Tools 6-7: BSM Benchmarks ───────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def analyze_2hdm(
    type: str,
    tan_beta: float,
    sin_beta_minus_alpha: float,
    mass: Optional[float] = None,
    exp_input: str = DEFAULT_DATASET,
) -> dict:
    """Two-Higgs-doublet model: map (type, tanβ, sin(β-α)) to couplings and fit.

    Args:
        type: 'I', 'II', 'L' (lepton-specific) or 'F' (flipped).
        tan_beta: Ratio of vacuum expectation values, 0.1 to 100.
        sin_beta_minus_alpha: sin(β-α), -1 to 1. The alignment limit is 1.
        mass: Higgs mass in GeV. Default 125.09.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    result = await analysis.analyze_2hdm(_get_client(), type, tan_beta, sin_beta_minus_alpha, mass, exp_input)
    return result.model_dump(mode="json")


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def analyze_singlet_extension(
    mixing_angle: float,
    br_inv: Optional[float] = None,
    exp_input: str = DEFAULT_DATASET,
) -> dict:
    """Higgs mixed with a scalar singlet: all couplings scaled by cos(angle).

    Args:
        mixing_angle: Mixing angle in radians, -π to π.
        br_inv: Invisible branching ratio, 0 to 1. Default 0.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    result = await analysis.analyze_singlet_extension(_get_client(), mixing_angle, br_inv, exp_input)
    return result.model_dump(mode="json")


# ─── Tools 8-9: Input Utilities ──────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def convert_to_signal_strength(
    couplings: dict[str, Any],
    exp_input: str = DEFAULT_DATASET,
) -> dict:
    """Reduced couplings to per-channel signal strengths, as computed by Lilith.

    Args:
        couplings: Reduced couplings, e.g. {'CV': 1.0, 'CF': 0.9}.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    params = parse_model(CouplingParams, couplings, "couplings")
    result = await analysis.convert_to_signal_strength(_get_client(), params, exp_input)
    return result.model_dump(mode="json")


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def validate_input(xml: str, exp_input: str = DEFAULT_DATASET) -> dict:
    """Check a hand-written Lilith XML input by dry-running it.

    Args:
        xml: Lilith input document, at most 100KB.
        exp_input: Experimental data list. Default 'data/latest.list'.
    """
    result = await analysis.validate_input(_get_client(), xml, exp_input)
    return result.model_dump(mode="json")


# ─── Tools 10-11: Reference Values ───────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def get_sm_predictions(mass: Optional[float] = None, sqrts: Optional[float] = None) -> dict:
    """Standard Model Higgs cross sections and branching ratios.

    Args:
        mass: Higgs mass in GeV. Default 125.09.
        sqrts: Collider energy in TeV: 7, 8, 13, 13.6 or 14. Default 13.
    """
    return physics.sm_predictions(mass, sqrts).model_dump(mode="json")


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def get_version_info() -> dict:
    """Versions of Pythia, Lilith and its experimental database."""
    return datasets.get_version_info(_get_settings())


# ─── Tools 12-13: Experimental Data ──────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def list_experimental_data(experiment: str = "all", run_period: str = "all") -> dict:
    """Experimental measurements included in the default data list.

    Args:
        experiment: 'ATLAS', 'CMS', 'ATLAS-CMS', 'Tevatron' or 'all'.
        run_period: 'Run1', 'Run2' or 'all'.
    """
    entries = datasets.list_experimental_data(_get_settings().data_dir, experiment, run_period)
    return {
        "experiment": experiment,
        "run_period": run_period,
        "count": len(entries),
        "datasets": [e.model_dump(mode="json") for e in entries],
    }


@mcp.tool(annotations=READ_ONLY)
@_tool_errors
async def get_dataset_info(dataset_path: str) -> dict:
    """Raw XML of one experimental dataset.

    Args:
        dataset_path: Path relative to the Lilith data directory, as listed by list_experimental_data.
    """
    content = datasets.get_dataset_info(_get_settings().data_dir, dataset_path)
    return {"dataset_path": dataset_path, "content": content}


# ─── Resources ───────────────────────────────────────────────────────────────


@mcp.resource("lilith://data/{name}", mime_type="text/plain")
def data_list(name: str) -> str:
    """A Lilith experimental data list, e.g. latest.list."""
    return datasets.read_data_list(_get_settings().data_dir, name)


@mcp.resource("lilith://version", mime_type="application/json")
def version() -> dict:
    """Pythia, Lilith and database versions."""
    return datasets.get_version_info(_get_settings())


def main():
    """Entry point for the CLI command."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    settings = _get_settings()
    if not settings.lilith_dir.is_dir():
        logger.error("Lilith not found at %s. Set LILITH_DIR to the Lilith installation.", settings.lilith_dir)
        sys.exit(1)
    mcp.run()


if __name__ == "__main__":
    main()
