# tests/test_analysis.py

import math

import pytest

from pythia_mcp.core import analysis
from pythia_mcp.core.errors import EngineError, ValidationError
from pythia_mcp.core.models import CouplingParams, CouplingRequest, SignalStrengthRequest, SignificanceLevel

from conftest import FakeEngine, coupling


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def test_parse_couplings_request():
    request = analysis.parse_likelihood_request({"mode": "couplings", "CV": 1.05, "CF": 0.95})
    assert isinstance(request, CouplingRequest)
    assert request.cv == 1.05
    assert request.exp_input == "data/latest.list"


def test_parse_signal_strengths_request():
    request = analysis.parse_likelihood_request(
        {"mode": "signalstrengths", "signalStrengths": {"ggH_gammagamma": 1.1}, "expInput": "data/finalRun1.list"}
    )
    assert isinstance(request, SignalStrengthRequest)
    assert request.signal_strengths == {"ggH_gammagamma": 1.1}
    assert request.exp_input == "data/finalRun1.list"


@pytest.mark.parametrize("arguments", [{}, {"mode": "kappa"}, {"mode": None}, "couplings"])
def test_parse_rejects_unknown_mode(arguments):
    with pytest.raises(ValidationError, match="Invalid mode. Use 'couplings' or 'signalstrengths'"):
        analysis.parse_likelihood_request(arguments)


def test_parse_rejects_non_numeric_coupling():
    with pytest.raises(ValidationError, match="Invalid arguments"):
        analysis.parse_likelihood_request({"mode": "couplings", "CV": "1.0"})
    with pytest.raises(ValidationError, match="Invalid arguments"):
        analysis.parse_likelihood_request({"mode": "signalstrengths"})


# ---------------------------------------------------------------------------
# Likelihoods
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_compute_likelihood(fake_engine):
    request = analysis.parse_likelihood_request({"mode": "couplings", "CV": 1.3, "CF": 0.8})
    result = await analysis.compute_likelihood(fake_engine, request)

    assert result.likelihood == 10.0
    assert result.ndf == 33
    assert result.db_version == "22.0"
    assert result.mode == "couplings"
    assert coupling(result.input_xml, "WW") == 1.3
    assert fake_engine.calls[0]["flags"] == ("-v",)


@pytest.mark.asyncio
async def test_compute_likelihood_invalid_input_never_reaches_engine(fake_engine):
    request = analysis.parse_likelihood_request({"mode": "couplings", "CV": 150.0})
    with pytest.raises(ValidationError, match="CV must be between"):
        await analysis.compute_likelihood(fake_engine, request)

    request = analysis.parse_likelihood_request({"mode": "couplings", "expInput": "/etc/passwd"})
    with pytest.raises(ValidationError, match="Invalid experimental input file"):
        await analysis.compute_likelihood(fake_engine, request)
    assert fake_engine.calls == []


@pytest.mark.asyncio
async def test_single_evaluation_without_likelihood_is_an_error():
    engine = FakeEngine(likelihood=lambda document: None)
    request = analysis.parse_likelihood_request({"mode": "couplings"})
    with pytest.raises(EngineError, match="did not contain a likelihood"):
        await analysis.compute_likelihood(engine, request)


@pytest.mark.asyncio
async def test_engine_failure_propagates(failing_engine):
    with pytest.raises(EngineError, match="exited with code 1"):
        await analysis.compute_sm_likelihood(failing_engine)


@pytest.mark.asyncio
async def test_compute_sm_likelihood_uses_unit_couplings(fake_engine):
    result = await analysis.compute_sm_likelihood(fake_engine, "data/latestRun2.list")
    assert result.dataset == "data/latestRun2.list"
    for target in ("tt", "bb", "cc", "tautau", "mumu", "ZZ", "WW"):
        assert coupling(result.input_xml, target) == 1.0


# ---------------------------------------------------------------------------
# p-values
# ---------------------------------------------------------------------------


def test_compute_pvalue():
    result = analysis.compute_pvalue(3.841, 1)
    assert result.p_value == pytest.approx(0.05, abs=1e-3)
    assert result.cdf + result.p_value == pytest.approx(1.0)
    assert result.significance is SignificanceLevel.SIGMA_1_TO_2
    assert result.reference == "SM"
    assert result.delta_chi2_levels["95.45%"] == 4.0


def test_compute_pvalue_reference_and_table():
    assert analysis.compute_pvalue(2.0, 2, "bestfit").reference == "bestfit"
    assert analysis.compute_pvalue(2.0, 2, "other").reference == "SM"
    assert analysis.compute_pvalue(40.0, 33).delta_chi2_levels == {}


@pytest.mark.parametrize(
    "likelihood, ndf, message",
    [
        (-1.0, 1, "likelihood must be between"),
        (math.nan, 1, "likelihood must be a finite number"),
        (1.0, 0, "ndf must be between 1 and 1000"),
        (1.0, 1001, "ndf must be between 1 and 1000"),
        (1.0, 2.5, "ndf must be an integer"),
    ],
)
def test_compute_pvalue_validation(likelihood, ndf, message):
    with pytest.raises(ValidationError, match=message):
        analysis.compute_pvalue(likelihood, ndf)


# ---------------------------------------------------------------------------
# Benchmark models
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_analyze_2hdm_alignment_limit_is_sm_like(fake_engine):
    result = await analysis.analyze_2hdm(fake_engine, "II", 5.0, 1.0)

    assert result.model == "2HDM Type-II"
    assert result.parameters["cosBetaMinusAlpha"] == 0.0
    assert result.reduced_couplings == {"CV": 1.0, "Ct": 1.0, "Cb": 1.0, "Ctau": 1.0}
    assert result.likelihood == 10.0


@pytest.mark.asyncio
async def test_analyze_2hdm_writes_mapped_couplings(fake_engine):
    result = await analysis.analyze_2hdm(fake_engine, "L", 2.0, 0.99)
    document = fake_engine.calls[0]["document"]

    assert coupling(document, "tt") == pytest.approx(result.reduced_couplings["Ct"])
    assert coupling(document, "cc") == pytest.approx(result.reduced_couplings["Ct"])
    assert coupling(document, "tautau") == pytest.approx(result.reduced_couplings["Ctau"])
    assert coupling(document, "mumu") == pytest.approx(result.reduced_couplings["Ctau"])
    assert coupling(document, "ZZ") == pytest.approx(0.99)


@pytest.mark.asyncio
async def test_analyze_2hdm_validation(fake_engine):
    with pytest.raises(ValidationError, match="Invalid 2HDM type"):
        await analysis.analyze_2hdm(fake_engine, "III", 5.0, 1.0)
    with pytest.raises(ValidationError, match="tanBeta must be between 0.1 and 100"):
        await analysis.analyze_2hdm(fake_engine, "I", 0.05, 1.0)
    with pytest.raises(ValidationError, match="sinBetaMinusAlpha"):
        await analysis.analyze_2hdm(fake_engine, "I", 1.0, 1.5)
    assert fake_engine.calls == []


@pytest.mark.asyncio
async def test_analyze_singlet_extension(fake_engine):
    result = await analysis.analyze_singlet_extension(fake_engine, 0.3, 0.1)
    document = fake_engine.calls[0]["document"]

    assert result.reduced_couplings["C"] == pytest.approx(math.cos(0.3))
    assert result.parameters["mixingAngleDegrees"] == pytest.approx(math.degrees(0.3))
    assert coupling(document, "WW") == pytest.approx(math.cos(0.3))
    assert coupling(document, "bb") == pytest.approx(math.cos(0.3))
    assert '<BR to="invisible">0.1</BR>' in document


@pytest.mark.asyncio
async def test_analyze_singlet_extension_validation(fake_engine):
    with pytest.raises(ValidationError, match="mixingAngle"):
        await analysis.analyze_singlet_extension(fake_engine, 4.0)
    with pytest.raises(ValidationError, match="BRinv"):
        await analysis.analyze_singlet_extension(fake_engine, 0.1, 1.5)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_validate_input_reports_engine_failure(failing_engine):
    result = await analysis.validate_input(failing_engine, "<lilithinput/>")
    assert result.valid is False
    assert result.error == "Lilith exited with code 1"


@pytest.mark.asyncio
async def test_validate_input_ok(fake_engine):
    result = await analysis.validate_input(fake_engine, "<lilithinput/>")
    assert result.valid is True
    assert fake_engine.calls[0]["flags"] == ("-s",)


@pytest.mark.asyncio
async def test_validate_input_limits(fake_engine):
    with pytest.raises(ValidationError, match="xml is required"):
        await analysis.validate_input(fake_engine, "")
    with pytest.raises(ValidationError, match="too large"):
        await analysis.validate_input(fake_engine, "x" * 100_001)
    assert fake_engine.calls == []


# ---------------------------------------------------------------------------
# Coupling to signal-strength conversion
# ---------------------------------------------------------------------------


class ConvertingClient(FakeEngine):
    async def run_with_signal_strengths(self, document, dataset="data/latest.list"):
        output = await self.run(document, dataset, flags=("-m",), prefix="convert")
        return output, '<mu prod="ggH" decay="ZZ">0.95</mu>'


@pytest.mark.asyncio
async def test_convert_to_signal_strength():
    client = ConvertingClient()
    params = CouplingParams(cv=0.98, br_inv=0.05)
    result = await analysis.convert_to_signal_strength(client, params)

    assert result.input_couplings["CV"] == 0.98
    assert result.input_couplings == {"CV": 0.98, "BRinv": 0.05}
    assert result.signal_strengths_xml == '<mu prod="ggH" decay="ZZ">0.95</mu>'
    assert coupling(client.calls[0]["document"], "ZZ") == 0.98


@pytest.mark.asyncio
async def test_convert_to_signal_strength_rejects_bad_dataset():
    client = ConvertingClient()
    params = CouplingParams()
    with pytest.raises(ValidationError):
        await analysis.convert_to_signal_strength(client, params, "data/none.list")
    assert client.calls == []
