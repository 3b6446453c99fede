"""Single-point analyses: likelihoods, p-values and benchmark models.

Unlike scans, a single evaluation has nothing to fall back on, so an engine
failure or output without a likelihood is raised as ``EngineError``.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .clients.lilith import DEFAULT_DATASET, Engine, LilithClient, parse_engine_output
from .errors import EngineError, ValidationError
from .models import (
    LIKELIHOOD_REQUEST_ADAPTER,
    CouplingParams,
    CouplingRequest,
    EngineOutput,
    InputValidation,
    LikelihoodResult,
    ModelAnalysis,
    PValueResult,
    SignalStrengthConversion,
    SignalStrengthRequest,
)
from .physics import singlet_params, two_hdm_params
from .serializer import generate_input_xml, generate_reduced_couplings_xml
from .stats import DELTA_CHI2_LEVELS, chi2_cdf, chi2_pvalue, classify_significance
from .validation import describe_validation_error, validate_dataset, validate_number

logger = logging.getLogger(__name__)

LIKELIHOOD_MODES = ("couplings", "signalstrengths")
MAX_VALIDATE_INPUT_CHARS = 100_000

PVALUE_NOTE = (
    "p-value from the chi-square distribution with ndf degrees of freedom. "
    "For profile or contour intervals compare delta -2logL to the tabulated thresholds."
)


def parse_likelihood_request(arguments: Mapping[str, Any]) -> Union[CouplingRequest, SignalStrengthRequest]:
    """Resolve raw tool arguments into a typed couplings or signal-strengths request."""
    if not isinstance(arguments, Mapping) or arguments.get("mode") not in LIKELIHOOD_MODES:
        raise ValidationError("Invalid mode. Use 'couplings' or 'signalstrengths'")
    try:
        return LIKELIHOOD_REQUEST_ADAPTER.validate_python(dict(arguments))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid arguments: {describe_validation_error(exc)}") from None


async def _evaluate(engine: Engine, document: str, dataset: str, *, flags=(), prefix: str) -> tuple[str, EngineOutput]:
    output = await engine.run(document, dataset, flags=flags, prefix=prefix)
    parsed = parse_engine_output(output)
    if parsed.likelihood is None:
        logger.warning("Lilith output for %s contained no likelihood", prefix)
        raise EngineError("Lilith output did not contain a likelihood value")
    return output, parsed


async def compute_likelihood(
    engine: Engine,
    request: Union[CouplingRequest, SignalStrengthRequest],
) -> LikelihoodResult:
    """-2 log L of one scenario against the requested experimental data."""
    document = generate_input_xml(request)
    dataset = validate_dataset(request.exp_input)
    output, parsed = await _evaluate(engine, document, dataset, flags=("-v",), prefix="input")
    return LikelihoodResult(
        mode=request.mode,
        dataset=dataset,
        likelihood=parsed.likelihood,
        ndf=parsed.ndf,
        db_version=parsed.db_version or "unknown",
        input_xml=document,
        raw_output=output,
    )


async def compute_sm_likelihood(engine: Engine, dataset: str = DEFAULT_DATASET) -> LikelihoodResult:
    """Standard Model reference point: all reduced couplings 1, no extra BR."""
    dataset = validate_dataset(dataset)
    document = generate_reduced_couplings_xml(CouplingParams(cv=1.0, cf=1.0, br_inv=0.0, br_undet=0.0))
    output, parsed = await _evaluate(engine, document, dataset, prefix="sm_input")
    return LikelihoodResult(
        mode="couplings",
        dataset=dataset,
        likelihood=parsed.likelihood,
        ndf=parsed.ndf,
        db_version=parsed.db_version or "unknown",
        input_xml=document,
        raw_output=output,
    )


def compute_pvalue(likelihood: Any, ndf: Any, reference: Optional[str] = "SM") -> PValueResult:
    """Chi-square p-value and sigma bucket for a -2 log L with ndf degrees of freedom."""
    likelihood = validate_number(likelihood, "likelihood", 0, 1e10)
    ndf = validate_number(ndf, "ndf", 1, 1000)
    if ndf != int(ndf):
        raise ValidationError("ndf must be an integer")
    ndf = int(ndf)
    reference = "bestfit" if reference == "bestfit" else "SM"

    cdf = chi2_cdf(likelihood, ndf)
    p_value = chi2_pvalue(likelihood, ndf)
    return PValueResult(
        likelihood=likelihood,
        ndf=ndf,
        reference=reference,
        cdf=cdf,
        p_value=p_value,
        significance=classify_significance(p_value),
        delta_chi2_levels=DELTA_CHI2_LEVELS.get(ndf, {}),
        note=PVALUE_NOTE,
    )


async def analyze_2hdm(
    engine: Engine,
    model_type: Any,
    tan_beta: Any,
    sin_beta_minus_alpha: Any,
    mass: Any = None,
    dataset: str = DEFAULT_DATASET,
) -> ModelAnalysis:
    model, tan_beta, sin_bma, couplings, params = two_hdm_params(model_type, tan_beta, sin_beta_minus_alpha, mass)
    dataset = validate_dataset(dataset)
    document = generate_reduced_couplings_xml(params)
    _, parsed = await _evaluate(engine, document, dataset, prefix="2hdm")
    return ModelAnalysis(
        model=f"2HDM Type-{model.value}",
        parameters={
            "tanBeta": tan_beta,
            "sinBetaMinusAlpha": sin_bma,
            "cosBetaMinusAlpha": math.sqrt(max(0.0, 1.0 - sin_bma ** 2)),
        },
        reduced_couplings={"CV": couplings.cv, "Ct": couplings.ct, "Cb": couplings.cb, "Ctau": couplings.ctau},
        likelihood=parsed.likelihood,
        ndf=parsed.ndf,
    )


async def analyze_singlet_extension(
    engine: Engine,
    mixing_angle: Any,
    br_inv: Any = None,
    dataset: str = DEFAULT_DATASET,
) -> ModelAnalysis:
    """Higgs-singlet mixing: every coupling scaled by cos(mixing angle)."""
    angle, br, params = singlet_params(mixing_angle, br_inv)
    dataset = validate_dataset(dataset)
    document = generate_reduced_couplings_xml(params)
    _, parsed = await _evaluate(engine, document, dataset, prefix="singlet")
    return ModelAnalysis(
        model="Higgs Singlet Extension",
        parameters={"mixingAngle": angle, "mixingAngleDegrees": math.degrees(angle), "BRinv": br},
        reduced_couplings={"C": params.cv},
        likelihood=parsed.likelihood,
        ndf=parsed.ndf,
    )


async def convert_to_signal_strength(
    client: LilithClient,
    params: CouplingParams,
    dataset: str = DEFAULT_DATASET,
) -> SignalStrengthConversion:
    """Let Lilith translate reduced couplings into per-channel signal strengths."""
    document = generate_reduced_couplings_xml(params)
    output, mu_xml = await client.run_with_signal_strengths(document, validate_dataset(dataset))
    return SignalStrengthConversion(
        input_couplings=params.model_dump(by_alias=True, exclude_none=True),
        signal_strengths_xml=mu_xml,
        raw_output=output,
    )


async def validate_input(engine: Engine, xml: Any, dataset: str = DEFAULT_DATASET) -> InputValidation:
    """Dry-run a hand-written input document through Lilith."""
    if not isinstance(xml, str) or not xml:
        raise ValidationError("xml is required and must be a string")
    if len(xml) > MAX_VALIDATE_INPUT_CHARS:
        raise ValidationError("XML input too large (max 100KB)")
    dataset = validate_dataset(dataset)
    try:
        await engine.run(xml, dataset, flags=("-s",), prefix="validate")
    except EngineError as exc:
        return InputValidation(valid=False, error=str(exc))
    return InputValidation(valid=True, message="Input XML is valid")
