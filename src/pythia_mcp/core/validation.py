"""Range, shape and whitelist checks shared by the serializer and the scan executor.

No caller-supplied value reaches a document, a file path or the engine
command line without passing through one of these functions.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional, TypeVar
from xml.sax.saxutils import escape

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import RangeError, ValidationError
from .models import Dataset, ParameterName, ScanAxis

DEFAULT_MASS = 125.09

COUPLING_RANGE = (-100.0, 100.0)
BRANCHING_RATIO_RANGE = (0.0, 1.0)
MASS_RANGE = (1.0, 1000.0)

PARAMETER_DOMAINS: dict[ParameterName, tuple[float, float]] = {
    name: COUPLING_RANGE for name in ParameterName
}
PARAMETER_DOMAINS[ParameterName.MASS] = MASS_RANGE
PARAMETER_DOMAINS[ParameterName.BR_INV] = BRANCHING_RATIO_RANGE
PARAMETER_DOMAINS[ParameterName.BR_UNDET] = BRANCHING_RATIO_RANGE

MAX_STEPS_1D = 1000
MAX_STEPS_2D = 100

ALLOWED_DATASETS = tuple(d.value for d in Dataset)

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}

ModelT = TypeVar("ModelT", bound=BaseModel)


def _fmt(bound: float) -> str:
    return f"{bound:g}"


def validate_number(value: Any, name: str, min_value: float, max_value: float) -> float:
    """Return ``value`` as a float if it is finite and within ``[min_value, max_value]``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise RangeError(f"{name} must be a finite number")
    if value < min_value or value > max_value:
        raise RangeError(f"{name} must be between {_fmt(min_value)} and {_fmt(max_value)}")
    return float(value)


def validate_coupling(value: Any, name: str) -> Optional[float]:
    """Validate a reduced coupling. Returns None when not provided."""
    if value is None:
        return None
    return validate_number(value, name, *COUPLING_RANGE)


def validate_branching_ratio(value: Any, name: str) -> Optional[float]:
    """Validate a branching ratio. Returns None when not provided."""
    if value is None:
        return None
    return validate_number(value, name, *BRANCHING_RATIO_RANGE)


def validate_mass(value: Any) -> float:
    """Validate the Higgs mass, defaulting to 125.09 GeV."""
    if value is None:
        return DEFAULT_MASS
    return validate_number(value, "mass", *MASS_RANGE)


def validate_choice(value: Any, allowed: Iterable[str], label: str) -> str:
    allowed = list(allowed)
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(f"Invalid {label}: {value}. Allowed: {', '.join(allowed)}")
    return value


def validate_dataset(value: Any) -> str:
    """Check the experimental input list against the whitelist."""
    if value not in ALLOWED_DATASETS:
        raise ValidationError(f"Invalid experimental input file. Allowed: {', '.join(ALLOWED_DATASETS)}")
    return value


def validate_scan_axis(axis: ScanAxis, max_steps: int, label: str) -> None:
    """Check scan bounds against the parameter's domain and bound the step count."""
    low, high = PARAMETER_DOMAINS[axis.name]
    validate_number(axis.min, f"{label}.min", low, high)
    validate_number(axis.max, f"{label}.max", low, high)
    validate_number(axis.steps, f"{label}.steps", 1, max_steps)
    if axis.min >= axis.max:
        raise ValidationError(f"{label}.min must be less than {label}.max")


def escape_xml(value: Any) -> str:
    """Escape XML special characters (& < > " ') to prevent markup injection."""
    return escape(str(value), _XML_ENTITIES)


def safe_resolve_path(base: Path, user_path: str) -> Path:
    """Resolve ``user_path`` under ``base``, refusing anything that escapes it."""
    root = Path(base).resolve()
    resolved = (root / user_path).resolve()
    if resolved != root and root not in resolved.parents:
        raise ValidationError("Invalid path: access denied")
    return resolved


def describe_validation_error(exc: PydanticValidationError) -> str:
    """Flatten the first pydantic error into a one-line message."""
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def parse_model(model: type[ModelT], data: Any, name: str) -> ModelT:
    """Parse caller arguments into ``model``, raising ``ValidationError`` on failure."""
    if data is None:
        data = {}
    if isinstance(data, model):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"{name} must be an object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {name}: {describe_validation_error(exc)}") from None
