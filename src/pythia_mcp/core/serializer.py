"""Lilith XML input documents.

Two document kinds are produced: reduced couplings and signal strengths.
Both are built only from validated values, every value is escaped, and the
finished document is parsed back before it is handed to anyone.
"""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from typing import Union

from .errors import SerializationError, ValidationError
from .models import (
    CouplingParams,
    CouplingRequest,
    DecayMode,
    Precision,
    ProductionMode,
    SignalStrengthParams,
    SignalStrengthRequest,
)
from .validation import (
    COUPLING_RANGE,
    escape_xml,
    validate_branching_ratio,
    validate_choice,
    validate_coupling,
    validate_mass,
)

logger = logging.getLogger(__name__)

SM_COUPLING = 1.0

ALLOWED_PRODUCTION_MODES = tuple(m.value for m in ProductionMode)
ALLOWED_DECAY_MODES = tuple(m.value for m in DecayMode)

# (element target, field, alias) in document order
_FERMION_COUPLINGS = (
    ("tt", "ct", "Ct"),
    ("bb", "cb", "Cb"),
    ("cc", "cc", "Cc"),
    ("tautau", "ctau", "Ctau"),
    ("mumu", "cmu", "Cmu"),
)
_LOOP_COUPLINGS = (
    ("gg", "cg", "Cg"),
    ("gammagamma", "cgamma", "Cgamma"),
    ("Zgamma", "czgamma", "CZgamma"),
)


def resolve_precision(value: object) -> str:
    """Only "LO" is honoured; anything else gets BEST-QCD."""
    return Precision.LO.value if value == Precision.LO.value else Precision.BEST_QCD.value


def _check_well_formed(document: str) -> str:
    try:
        ET.fromstring(document)
    except ET.ParseError as exc:
        logger.error("Generated input document is not well-formed: %s", exc)
        raise SerializationError("Generated input document is not well-formed") from None
    return document


def generate_reduced_couplings_xml(params: CouplingParams) -> str:
    """Build a reduced-couplings input document.

    Fermion couplings fall back to CF, then to the SM value 1.0. Loop-induced
    couplings are written only when given, so Lilith computes them otherwise.
    """
    mass = validate_mass(params.mass)
    precision = resolve_precision(params.precision)

    cv = validate_coupling(params.cv, "CV")
    cf = validate_coupling(params.cf, "CF")
    cv = SM_COUPLING if cv is None else cv
    cf = SM_COUPLING if cf is None else cf

    fermions = []
    for target, field, alias in _FERMION_COUPLINGS:
        value = validate_coupling(getattr(params, field), alias)
        fermions.append((target, cf if value is None else value))

    loops = []
    for target, field, alias in _LOOP_COUPLINGS:
        value = validate_coupling(getattr(params, field), alias)
        if value is not None:
            loops.append((target, value))

    br_inv = validate_branching_ratio(params.br_inv, "BRinv")
    br_undet = validate_branching_ratio(params.br_undet, "BRundet")
    br_inv = 0.0 if br_inv is None else br_inv
    br_undet = 0.0 if br_undet is None else br_undet

    lines = [
        '<?xml version="1.0"?>',
        "<lilithinput>",
        "<reducedcouplings>",
        f"  <mass>{escape_xml(mass)}</mass>",
        "",
    ]
    for target, value in fermions:
        lines.append(f'  <C to="{target}">{escape_xml(value)}</C>')
    lines.append(f'  <C to="ZZ">{escape_xml(cv)}</C>')
    lines.append(f'  <C to="WW">{escape_xml(cv)}</C>')
    for target, value in loops:
        lines.append(f'  <C to="{target}">{escape_xml(value)}</C>')
    lines.extend([
        "",
        "  <extraBR>",
        f'    <BR to="invisible">{escape_xml(br_inv)}</BR>',
        f'    <BR to="undetected">{escape_xml(br_undet)}</BR>',
        "  </extraBR>",
        "",
        f"  <precision>{escape_xml(precision)}</precision>",
        "</reducedcouplings>",
        "</lilithinput>",
    ])
    return _check_well_formed("\n".join(lines))


def _parse_signal_strength_key(key: str) -> tuple[str, str]:
    parts = key.split("_")
    if len(parts) != 2 or not all(parts):
        raise ValidationError(f"Invalid signal strength key format: {key}. Expected 'prod_decay' format.")
    production = validate_choice(parts[0], ALLOWED_PRODUCTION_MODES, "production mode")
    decay = validate_choice(parts[1], ALLOWED_DECAY_MODES, "decay mode")
    return production, decay


def generate_signal_strengths_xml(params: SignalStrengthParams) -> str:
    """Build a signal-strengths input document. Any bad entry rejects the whole call."""
    mass = validate_mass(params.mass)

    if not isinstance(params.signal_strengths, dict):
        raise ValidationError("signalStrengths must be an object")

    low, high = COUPLING_RANGE
    entries = []
    for key, value in params.signal_strengths.items():
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or not math.isfinite(value)
            or not low <= value <= high
        ):
            raise ValidationError(
                f"Invalid signal strength value for {key}: must be a finite number between -100 and 100"
            )
        production, decay = _parse_signal_strength_key(key)
        entries.append(
            f'  <mu prod="{escape_xml(production)}" decay="{escape_xml(decay)}">{escape_xml(float(value))}</mu>'
        )

    lines = [
        '<?xml version="1.0"?>',
        "<lilithinput>",
        "<signalstrengths>",
        f"  <mass>{escape_xml(mass)}</mass>",
        *entries,
        "</signalstrengths>",
        "</lilithinput>",
    ]
    return _check_well_formed("\n".join(lines))


def generate_input_xml(request: Union[CouplingRequest, SignalStrengthRequest]) -> str:
    """Serialize a parsed likelihood request according to its mode."""
    if isinstance(request, SignalStrengthRequest):
        return generate_signal_strengths_xml(request)
    return generate_reduced_couplings_xml(request)
