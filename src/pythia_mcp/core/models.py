"""Pydantic data models: the shared business objects.

The MCP server and the scan executor both work on these models. Caller
arguments are parsed into them once, at the boundary; everything downstream
operates on typed values rather than loose dictionaries.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter


def _require_number(value: Any) -> Any:
    # bool is an int subclass; "1.3" would be coerced by lax float parsing
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


Number = Annotated[float, BeforeValidator(_require_number)]


class ParameterName(str, Enum):
    """Numeric parameters of a reduced-couplings scenario."""

    MASS = "mass"
    CV = "CV"
    CF = "CF"
    CT = "Ct"
    CB = "Cb"
    CC = "Cc"
    CTAU = "Ctau"
    CMU = "Cmu"
    CG = "Cg"
    CGAMMA = "Cgamma"
    CZGAMMA = "CZgamma"
    BR_INV = "BRinv"
    BR_UNDET = "BRundet"

    @property
    def field(self) -> str:
        """Attribute name of this parameter on ``CouplingParams``."""
        return _PARAMETER_FIELDS[self]


_PARAMETER_FIELDS = {
    ParameterName.MASS: "mass",
    ParameterName.CV: "cv",
    ParameterName.CF: "cf",
    ParameterName.CT: "ct",
    ParameterName.CB: "cb",
    ParameterName.CC: "cc",
    ParameterName.CTAU: "ctau",
    ParameterName.CMU: "cmu",
    ParameterName.CG: "cg",
    ParameterName.CGAMMA: "cgamma",
    ParameterName.CZGAMMA: "czgamma",
    ParameterName.BR_INV: "br_inv",
    ParameterName.BR_UNDET: "br_undet",
}


class ProductionMode(str, Enum):
    """Higgs production modes accepted in signal-strength inputs."""

    GGH = "ggH"
    VBF = "VBF"
    WH = "WH"
    ZH = "ZH"
    TTH = "ttH"
    TH = "tH"
    BBH = "bbH"


class DecayMode(str, Enum):
    """Higgs decay modes accepted in signal-strength inputs."""

    GAMMAGAMMA = "gammagamma"
    ZZ = "ZZ"
    WW = "WW"
    BB = "bb"
    TAUTAU = "tautau"
    MUMU = "mumu"
    CC = "cc"
    ZGAMMA = "Zgamma"
    GG = "gg"
    INVISIBLE = "invisible"


class TwoHDMType(str, Enum):
    """Two-Higgs-doublet model variants."""

    TYPE_I = "I"
    TYPE_II = "II"
    LEPTON_SPECIFIC = "L"
    FLIPPED = "F"


class Dataset(str, Enum):
    """Experimental input lists shipped with Lilith."""

    LATEST = "data/latest.list"
    LATEST_RUN2 = "data/latestRun2.list"
    FINAL_RUN1 = "data/finalRun1.list"


class Precision(str, Enum):
    """QCD precision used by Lilith for loop-induced couplings."""

    LO = "LO"
    BEST_QCD = "BEST-QCD"


class PointStatus(str, Enum):
    """Lifecycle of one scan point."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RECORDED = "recorded"
    FAILED = "failed"


class SignificanceLevel(str, Enum):
    """Gaussian-equivalent significance bucket of a p-value."""

    BELOW_1_SIGMA = "<1σ"
    SIGMA_1_TO_2 = "1-2σ"
    SIGMA_2_TO_3 = "2-3σ"
    SIGMA_3_TO_4 = "3-4σ"
    SIGMA_4_TO_5 = "4-5σ"
    ABOVE_5_SIGMA = ">5σ"


# ─── Caller inputs ────────────────────────────────────────────────────────────


class CouplingParams(BaseModel):
    """Reduced couplings of the 125 GeV Higgs. Unset fields resolve on serialization."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    mass: Optional[Number] = Field(None, description="Higgs mass in GeV (default 125.09)")
    cv: Optional[Number] = Field(None, alias="CV", description="Coupling to W and Z")
    cf: Optional[Number] = Field(None, alias="CF", description="Universal fermion coupling")
    ct: Optional[Number] = Field(None, alias="Ct")
    cb: Optional[Number] = Field(None, alias="Cb")
    cc: Optional[Number] = Field(None, alias="Cc")
    ctau: Optional[Number] = Field(None, alias="Ctau")
    cmu: Optional[Number] = Field(None, alias="Cmu")
    cg: Optional[Number] = Field(None, alias="Cg", description="Loop-induced gluon coupling")
    cgamma: Optional[Number] = Field(None, alias="Cgamma", description="Loop-induced photon coupling")
    czgamma: Optional[Number] = Field(None, alias="CZgamma", description="Loop-induced Z-photon coupling")
    br_inv: Optional[Number] = Field(None, alias="BRinv", description="Invisible branching ratio")
    br_undet: Optional[Number] = Field(None, alias="BRundet", description="Undetected branching ratio")
    precision: Optional[str] = Field(None, description="'LO' or 'BEST-QCD'")

    def with_value(self, name: ParameterName, value: float) -> "CouplingParams":
        return self.model_copy(update={name.field: value})


class SignalStrengthParams(BaseModel):
    """Direct signal strengths keyed by ``"<production>_<decay>"``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    mass: Optional[Number] = None
    signal_strengths: dict[str, Number] = Field(alias="signalStrengths")


class CouplingRequest(CouplingParams):
    mode: Literal["couplings"]
    exp_input: str = Field(Dataset.LATEST.value, alias="expInput")


class SignalStrengthRequest(SignalStrengthParams):
    mode: Literal["signalstrengths"]
    exp_input: str = Field(Dataset.LATEST.value, alias="expInput")


LikelihoodRequest = Annotated[
    Union[CouplingRequest, SignalStrengthRequest],
    Field(discriminator="mode"),
]

LIKELIHOOD_REQUEST_ADAPTER: TypeAdapter[Union[CouplingRequest, SignalStrengthRequest]] = TypeAdapter(LikelihoodRequest)


class ScanAxis(BaseModel):
    """One scanned parameter: ``steps`` evenly spaced values from ``min`` to ``max``."""

    name: ParameterName
    min: Number
    max: Number
    steps: int


# ─── Scan state and results ───────────────────────────────────────────────────


class ScanPoint(BaseModel):
    """A grid point, fully resolved and serialized before dispatch."""

    model_config = ConfigDict(frozen=True)

    index: tuple[int, ...]
    coordinates: tuple[float, ...]
    params: CouplingParams
    document: str


class ScanResult(BaseModel):
    """Outcome of one scan point. ``likelihood`` is None when the point failed."""

    index: tuple[int, ...]
    coordinates: tuple[float, ...]
    likelihood: Optional[float] = None
    delta_likelihood: Optional[float] = None
    status: PointStatus

    @property
    def value(self) -> float:
        return self.coordinates[0]


class ScanSummary(BaseModel):
    """Ordered, delta-annotated result of a 1-D or 2-D scan."""

    parameters: list[ScanAxis]
    dataset: str
    status: Literal["completed"] = "completed"
    total_points: int
    failed_points: int
    minimum_likelihood: float
    best_fit: tuple[float, ...] = Field(description="Coordinates of the minimum")
    results: list[ScanResult]


# ─── Engine and analysis results ──────────────────────────────────────────────


class EngineOutput(BaseModel):
    """Values extracted from Lilith's textual output."""

    likelihood: Optional[float] = None
    ndf: Optional[int] = None
    db_version: Optional[str] = None


class LikelihoodResult(BaseModel):
    mode: str
    dataset: str
    likelihood: float = Field(description="-2 log L")
    ndf: Optional[int] = None
    db_version: str = "unknown"
    input_xml: str
    raw_output: str


class PValueResult(BaseModel):
    likelihood: float
    ndf: int
    reference: Literal["SM", "bestfit"]
    cdf: float
    p_value: float
    significance: SignificanceLevel
    delta_chi2_levels: dict[str, float] = Field(description="Δχ² at 68.27/95.45/99.73% CL for this ndf, when tabulated")
    note: str


class TwoHDMCouplings(BaseModel):
    cv: float
    ct: float
    cb: float
    ctau: float


class ModelAnalysis(BaseModel):
    """Likelihood of a BSM benchmark mapped onto reduced couplings."""

    model: str
    parameters: dict[str, float]
    reduced_couplings: dict[str, float]
    likelihood: float
    ndf: Optional[int] = None


class SignalStrengthConversion(BaseModel):
    input_couplings: dict[str, Any]
    signal_strengths_xml: str
    raw_output: str


class InputValidation(BaseModel):
    valid: bool
    message: Optional[str] = None
    error: Optional[str] = None


class SMPredictions(BaseModel):
    mass: float
    sqrts: float
    cross_sections_pb: dict[str, float]
    branching_ratios: dict[str, float]
    total_width_gev: float
    note: str


class DatasetEntry(BaseModel):
    path: str
    experiment: str
    run_period: str
