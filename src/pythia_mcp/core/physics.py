"""Benchmark BSM models mapped onto reduced Higgs couplings, plus SM reference values.

The likelihood itself always comes from Lilith; this module only translates
model parameters into the couplings Lilith understands.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from .errors import ValidationError
from .models import CouplingParams, SMPredictions, TwoHDMCouplings, TwoHDMType
from .validation import validate_branching_ratio, validate_mass, validate_number

logger = logging.getLogger(__name__)

TAN_BETA_RANGE = (0.1, 100.0)
SIN_BETA_MINUS_ALPHA_RANGE = (-1.0, 1.0)

DEFAULT_SQRTS = 13.0
ALLOWED_SQRTS = (7.0, 8.0, 13.0, 13.6, 14.0)

# LHC Higgs WG YR4 cross sections at mH = 125.09 GeV, in pb
SM_CROSS_SECTIONS: dict[float, dict[str, float]] = {
    7.0: {"ggH": 15.13, "VBF": 1.22, "WH": 0.58, "ZH": 0.34, "ttH": 0.09},
    8.0: {"ggH": 19.27, "VBF": 1.58, "WH": 0.70, "ZH": 0.42, "ttH": 0.13},
    13.0: {"ggH": 48.58, "VBF": 3.78, "WH": 1.37, "ZH": 0.88, "ttH": 0.51},
    13.6: {"ggH": 52.23, "VBF": 4.08, "WH": 1.46, "ZH": 0.95, "ttH": 0.57},
    14.0: {"ggH": 54.67, "VBF": 4.28, "WH": 1.51, "ZH": 0.99, "ttH": 0.61},
}

SM_BRANCHING_RATIOS = {
    "bb": 0.5809,
    "WW": 0.2152,
    "gg": 0.0818,
    "tautau": 0.0627,
    "cc": 0.0289,
    "ZZ": 0.0264,
    "gammagamma": 0.00228,
    "Zgamma": 0.00154,
    "mumu": 0.000218,
}

SM_TOTAL_WIDTH_GEV = 4.07e-3


def parse_2hdm_type(value: Any) -> TwoHDMType:
    try:
        return TwoHDMType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in TwoHDMType)
        raise ValidationError(f"Invalid 2HDM type. Allowed: {allowed}") from None


def compute_2hdm_couplings(
    model_type: TwoHDMType,
    tan_beta: float,
    sin_beta_minus_alpha: float,
) -> TwoHDMCouplings:
    """Reduced couplings of the light CP-even Higgs in a 2HDM.

    Up-type quarks always couple as s + c/tanβ. Down-type quarks and leptons
    take either that or s - c·tanβ depending on the Yukawa type.
    """
    # clamp: 1 - s² can dip below zero when |s| rounds to 1
    cos_bma = math.sqrt(max(0.0, 1.0 - sin_beta_minus_alpha ** 2))
    up_like = sin_beta_minus_alpha + cos_bma / tan_beta
    down_like = sin_beta_minus_alpha - cos_bma * tan_beta

    if model_type is TwoHDMType.TYPE_I:
        cb, ctau = up_like, up_like
    elif model_type is TwoHDMType.TYPE_II:
        cb, ctau = down_like, down_like
    elif model_type is TwoHDMType.LEPTON_SPECIFIC:
        cb, ctau = up_like, down_like
    else:
        cb, ctau = down_like, up_like

    return TwoHDMCouplings(cv=sin_beta_minus_alpha, ct=up_like, cb=cb, ctau=ctau)


def two_hdm_params(
    model_type: Any,
    tan_beta: Any,
    sin_beta_minus_alpha: Any,
    mass: Any = None,
) -> tuple[TwoHDMType, float, float, TwoHDMCouplings, CouplingParams]:
    """Validate 2HDM inputs and build the matching coupling set.

    Muons follow taus and charm follows top.
    """
    model = parse_2hdm_type(model_type)
    tan_beta = validate_number(tan_beta, "tanBeta", *TAN_BETA_RANGE)
    sin_bma = validate_number(sin_beta_minus_alpha, "sinBetaMinusAlpha", *SIN_BETA_MINUS_ALPHA_RANGE)
    mass = validate_mass(mass)
    couplings = compute_2hdm_couplings(model, tan_beta, sin_bma)
    params = CouplingParams(
        mass=mass,
        cv=couplings.cv,
        ct=couplings.ct,
        cb=couplings.cb,
        ctau=couplings.ctau,
        cmu=couplings.ctau,
        cc=couplings.ct,
    )
    return model, tan_beta, sin_bma, couplings, params


def singlet_params(mixing_angle: Any, br_inv: Any = None) -> tuple[float, float, CouplingParams]:
    """Singlet mixing scales every coupling by cos(angle); returns (angle, BRinv, params)."""
    angle = validate_number(mixing_angle, "mixingAngle", -math.pi, math.pi)
    br = validate_branching_ratio(br_inv, "BRinv")
    br = 0.0 if br is None else br
    scale = math.cos(angle)
    return angle, br, CouplingParams(cv=scale, cf=scale, br_inv=br)


def sm_predictions(mass: Any = None, sqrts: Any = None) -> SMPredictions:
    """Tabulated SM cross sections and branching ratios.

    Unsupported energies fall back to 13 TeV. The table is for 125.09 GeV;
    the mass is validated and echoed but does not rescale anything.
    """
    mass = validate_mass(mass)
    energy = float(sqrts) if isinstance(sqrts, (int, float)) and not isinstance(sqrts, bool) else DEFAULT_SQRTS
    if energy not in ALLOWED_SQRTS:
        logger.debug("Unsupported sqrt(s)=%s, using %s TeV", sqrts, DEFAULT_SQRTS)
        energy = DEFAULT_SQRTS
    return SMPredictions(
        mass=mass,
        sqrts=energy,
        cross_sections_pb=dict(SM_CROSS_SECTIONS[energy]),
        branching_ratios=dict(SM_BRANCHING_RATIOS),
        total_width_gev=SM_TOTAL_WIDTH_GEV,
        note="Values from LHC Higgs WG YR4 at mH = 125.09 GeV",
    )
