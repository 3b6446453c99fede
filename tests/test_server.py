# tests/test_server.py

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from pythia_mcp import server
from pythia_mcp.config import EngineSettings

from conftest import FakeEngine, coupling

TOOLS = {
    "compute_likelihood",
    "compute_sm_likelihood",
    "compute_pvalue",
    "scan_1d",
    "scan_2d",
    "analyze_2hdm",
    "analyze_singlet_extension",
    "convert_to_signal_strength",
    "validate_input",
    "get_sm_predictions",
    "get_version_info",
    "list_experimental_data",
    "get_dataset_info",
}


@pytest.fixture
def engine(monkeypatch, tmp_path):
    fake = FakeEngine(likelihood=lambda document: 20.0 * (coupling(document, "ZZ") - 1.0) ** 2 + 30.0)
    monkeypatch.setattr(server, "_settings", EngineSettings(lilith_dir=tmp_path, max_concurrent_scans=3))
    monkeypatch.setattr(server, "_client", fake)
    return fake


@pytest.mark.asyncio
async def test_all_tools_registered_read_only():
    tools = await server.mcp.list_tools()
    assert {t.name for t in tools} == TOOLS
    assert all(t.annotations.readOnlyHint for t in tools)


@pytest.mark.asyncio
async def test_compute_likelihood_tool(engine):
    result = await server.compute_likelihood(mode="couplings", CV=1.1, CF=0.9)
    assert result["likelihood"] == pytest.approx(30.2)
    assert coupling(result["input_xml"], "bb") == 0.9


@pytest.mark.asyncio
async def test_compute_likelihood_signal_strengths(engine):
    result = await server.compute_likelihood(mode="signalstrengths", signal_strengths={"ggH_gammagamma": 1.1})
    assert result["mode"] == "signalstrengths"
    assert '<mu prod="ggH" decay="gammagamma">1.1</mu>' in result["input_xml"]


@pytest.mark.asyncio
async def test_validation_error_becomes_tool_error(engine):
    with pytest.raises(ToolError, match="Invalid mode"):
        await server.compute_likelihood(mode="kappa")
    with pytest.raises(ToolError, match="Invalid production mode: invalidProd"):
        await server.compute_likelihood(mode="signalstrengths", signal_strengths={"invalidProd_ZZ": 1.0})
    assert engine.calls == []


@pytest.mark.asyncio
async def test_unexpected_error_is_masked(monkeypatch, engine):
    def boom(*args, **kwargs):
        raise RuntimeError("/secret/path exploded")

    monkeypatch.setattr(server.physics, "sm_predictions", boom)
    with pytest.raises(ToolError) as excinfo:
        await server.get_sm_predictions()
    assert str(excinfo.value) == "An unexpected error occurred"


@pytest.mark.asyncio
async def test_scan_1d_tool_uses_configured_concurrency(engine):
    engine.delay = 0.01
    result = await server.scan_1d(param="CV", min=0.8, max=1.2, steps=9, fixed_params={"CF": 0.95})

    assert result["total_points"] == 9
    assert result["best_fit"] == pytest.approx([1.0])
    assert engine.peak_in_flight == 3
    assert all(coupling(c["document"], "tt") == 0.95 for c in engine.calls)


@pytest.mark.asyncio
async def test_scan_tools_reject_bad_arguments(engine):
    with pytest.raises(ToolError, match="Invalid param"):
        await server.scan_1d(param="Cx", min=0.8, max=1.2, steps=5)
    with pytest.raises(ToolError, match="Invalid fixed_params"):
        await server.scan_1d(param="CV", min=0.8, max=1.2, steps=5, fixed_params={"CF": "high"})
    with pytest.raises(ToolError, match="param2.steps"):
        await server.scan_2d(
            param1={"name": "CV", "min": 0.8, "max": 1.2, "steps": 10},
            param2={"name": "CF", "min": 0.8, "max": 1.2, "steps": 500},
        )
    assert engine.calls == []


@pytest.mark.asyncio
async def test_scan_2d_tool(engine):
    result = await server.scan_2d(
        param1={"name": "CV", "min": 0.9, "max": 1.1, "steps": 3},
        param2={"name": "BRinv", "min": 0.0, "max": 0.2, "steps": 2},
    )
    assert result["total_points"] == 6
    assert [r["index"] for r in result["results"]] == [[0, 0], [0, 1], [1, 0], [1, 1], [2, 0], [2, 1]]


@pytest.mark.asyncio
async def test_compute_pvalue_tool():
    result = await server.compute_pvalue(likelihood=1.0, ndf=2, reference="bestfit")
    assert result["significance"] == "<1σ"
    assert result["reference"] == "bestfit"


@pytest.mark.asyncio
async def test_version_resource(engine):
    info = server.version()
    assert set(info) == {"pythia_mcp_version", "lilith_version", "database_version"}
    assert info["database_version"] == "unknown"


def test_main_exits_without_lilith(monkeypatch, tmp_path):
    monkeypatch.setattr(server, "_settings", EngineSettings(lilith_dir=tmp_path / "missing"))
    with pytest.raises(SystemExit) as excinfo:
        server.main()
    assert excinfo.value.code == 1
